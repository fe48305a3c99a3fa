import pytest
import pandas as pd
from unlocks import build_reverse_prereq_map, get_direct_unlocks


@pytest.fixture
def courses_df():
    return pd.DataFrame([
        {"course_code": "CS 1331"},
        {"course_code": "CS 1332"},
        {"course_code": "CS 2110"},
        {"course_code": "CS 2340"},
        {"course_code": "CS 3510"},
        {"course_code": "MATH 4107"},
        {"course_code": "CS 4699"},
    ])


@pytest.fixture
def prereq_map():
    return {
        "CS 1331": {"type": "none"},
        "CS 1332": {"type": "single", "course": "CS 1331"},
        "CS 2110": {"type": "single", "course": "CS 1331"},
        "CS 2340": {"type": "single", "course": "CS 1331"},
        "CS 3510": {"type": "and", "courses": ["CS 1332", "CS 2050"]},
        "MATH 4107": {"type": "or", "courses": ["MATH 3012", "MATH 2551"]},
        "CS 4699": {"type": "unsupported", "raw": "Permission of instructor"},
    }


class TestBuildReversePrereqMap:
    def test_one_course_unlocks_many(self, courses_df, prereq_map):
        reverse = build_reverse_prereq_map(courses_df, prereq_map)
        assert reverse["CS 1331"] == ["CS 1332", "CS 2110", "CS 2340"]

    def test_and_and_or_clauses_both_count(self, courses_df, prereq_map):
        reverse = build_reverse_prereq_map(courses_df, prereq_map)
        assert reverse["CS 2050"] == ["CS 3510"]
        assert reverse["MATH 3012"] == ["MATH 4107"]
        assert reverse["MATH 2551"] == ["MATH 4107"]

    def test_leaf_course_not_in_map(self, courses_df, prereq_map):
        reverse = build_reverse_prereq_map(courses_df, prereq_map)
        assert "CS 3510" not in reverse

    def test_unsupported_contributes_nothing(self, courses_df, prereq_map):
        reverse = build_reverse_prereq_map(courses_df, prereq_map)
        assert not any("CS 4699" in deps for deps in reverse.values())

    def test_missing_prereq_entry_treated_as_none(self, courses_df):
        assert build_reverse_prereq_map(courses_df, {}) == {}

    @pytest.mark.parametrize("df", [None, pd.DataFrame()])
    def test_empty_catalog(self, df, prereq_map):
        assert build_reverse_prereq_map(df, prereq_map) == {}


class TestGetDirectUnlocks:
    def test_limit_applied(self, courses_df, prereq_map):
        reverse = build_reverse_prereq_map(courses_df, prereq_map)
        assert get_direct_unlocks("CS 1331", reverse, limit=2) == ["CS 1332", "CS 2110"]

    def test_default_limit(self, courses_df, prereq_map):
        reverse = build_reverse_prereq_map(courses_df, prereq_map)
        assert len(get_direct_unlocks("CS 1331", reverse)) == 3

    def test_course_not_in_map(self, courses_df, prereq_map):
        reverse = build_reverse_prereq_map(courses_df, prereq_map)
        assert get_direct_unlocks("PSYC 1101", reverse) == []
