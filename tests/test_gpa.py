import pytest
from gpa import (
    analyze_trend,
    compute_cumulative_gpa,
    compute_gpa,
    compute_semester_gpas,
    grade_points,
    required_gpa_for_goal,
)


def rec(code, grade, credits=3, semester="Fall 2024", status="completed"):
    return {"code": code, "grade": grade, "credits": credits, "semester": semester, "status": status}


class TestGradePoints:
    def test_letter(self):
        assert float(grade_points("B+")) == 3.3

    def test_lowercase(self):
        assert float(grade_points("a-")) == 3.7

    @pytest.mark.parametrize("grade", ["W", "I", "IP", "", None, "Z"])
    def test_not_counted(self, grade):
        assert grade_points(grade) is None

    def test_f_counts_as_zero(self):
        assert float(grade_points("F")) == 0.0


class TestCumulativeGpa:
    def test_f_counts_credits_w_does_not(self):
        records = [
            rec("CS 1301", "F"),
            rec("CS 1331", "A"),
            rec("CS 1332", "W"),
        ]
        result = compute_cumulative_gpa(records)
        assert result["gpa"] == 2.0
        assert result["total_credits"] == 6
        assert result["quality_points"] == 12.0

    def test_reorder_invariant(self):
        records = [
            rec("CS 1301", "A"),
            rec("CS 1331", "B+", semester="Spring 2025"),
            rec("MATH 1551", "C", credits=2),
            rec("PHYS 2211", "B-", credits=4, semester="Spring 2025"),
        ]
        forward = compute_cumulative_gpa(records)
        backward = compute_cumulative_gpa(list(reversed(records)))
        assert forward == backward

    def test_no_graded_courses_is_zero(self):
        assert compute_cumulative_gpa([])["gpa"] == 0.0
        assert compute_cumulative_gpa([rec("CS 1301", "W")])["gpa"] == 0.0

    def test_non_completed_ignored(self):
        records = [
            rec("CS 1301", "A"),
            {"code": "CS 1331", "status": "in-progress", "credits": 3, "semester": "Spring 2025"},
            {"code": "CS 1332", "status": "planned", "credits": 3, "semester": "Fall 2025"},
        ]
        result = compute_cumulative_gpa(records)
        assert result["gpa"] == 4.0
        assert result["total_credits"] == 3

    def test_rounding_half_up(self):
        # (3.7*3 + 3.3*3 + 3.0*3) / 9 = 3.333...
        records = [rec("CS 1301", "A-"), rec("CS 1331", "B+"), rec("CS 1332", "B")]
        assert compute_cumulative_gpa(records)["gpa"] == 3.33

    def test_fractional_credits_not_truncated(self):
        records = [rec("CS 1301", "A", credits=3.5), rec("CS 1331", "F")]
        result = compute_cumulative_gpa(records)
        assert result["total_credits"] == 3
        assert result["gpa"] == 0.0


class TestSemesterGpas:
    def test_chronological_order(self):
        records = [
            rec("CS 1332", "B", semester="Fall 2025"),
            rec("CS 1331", "A", semester="Summer 2025"),
            rec("CS 1301", "C", semester="Spring 2025"),
            rec("ENGL 1101", "A", semester="Fall 2024"),
        ]
        rows = compute_semester_gpas(records)
        assert [r["semester"] for r in rows] == ["Fall 2024", "Spring 2025", "Summer 2025", "Fall 2025"]

    def test_row_contents(self):
        rows = compute_semester_gpas([rec("CS 1301", "A"), rec("MATH 1551", "B", credits=2)])
        assert len(rows) == 1
        row = rows[0]
        assert row["credits"] == 5
        assert row["gpa"] == 3.6
        assert {c["course_code"] for c in row["courses"]} == {"CS 1301", "MATH 1551"}

    def test_unparseable_semester_skipped(self):
        rows = compute_semester_gpas([rec("CS 1301", "A", semester=None)])
        assert rows == []


class TestTrend:
    def test_exact_threshold_is_stable(self):
        trend = analyze_trend([{"gpa": 3.0}, {"gpa": 3.1}])
        assert trend["direction"] == "stable"
        assert trend["change_from_last"] == 0.1

    def test_above_threshold_improving(self):
        assert analyze_trend([{"gpa": 3.0}, {"gpa": 3.11}])["direction"] == "improving"

    def test_above_threshold_declining(self):
        assert analyze_trend([{"gpa": 3.11}, {"gpa": 3.0}])["direction"] == "declining"

    def test_empty(self):
        assert analyze_trend([]) == {
            "direction": "stable",
            "change_from_last": 0.0,
            "average": 0.0,
            "projected_next": 0.0,
        }

    def test_single_semester(self):
        trend = analyze_trend([{"gpa": 3.5}])
        assert trend["direction"] == "stable"
        assert trend["projected_next"] == 3.5

    def test_projection_uses_recent_slope(self):
        trend = analyze_trend([{"gpa": 2.0}, {"gpa": 3.0}, {"gpa": 3.2}, {"gpa": 3.4}])
        assert trend["projected_next"] == 3.6
        assert trend["average"] == 2.9

    def test_projection_clamped(self):
        assert analyze_trend([{"gpa": 3.6}, {"gpa": 3.8}, {"gpa": 4.0}])["projected_next"] == 4.0


class TestRequiredGpaForGoal:
    def test_achievable(self):
        records = [rec(f"CS {1000 + i}", "B") for i in range(10)]  # 30 credits of B
        result = required_gpa_for_goal(records, 3.5, remaining_semesters=2)
        assert result["required_future_gpa"] == 4.0
        assert result["is_achievable"] is True
        assert "maintain a 4.00 GPA" in result["explanation"]

    def test_already_exceeds(self):
        records = [rec(f"CS {1000 + i}", "A") for i in range(10)]
        result = required_gpa_for_goal(records, 1.5, remaining_semesters=2)
        assert result["required_future_gpa"] == 0.0
        assert result["is_achievable"] is False
        assert "already exceeds" in result["explanation"]

    def test_above_scale(self):
        records = [rec(f"CS {1000 + i}", "F") for i in range(10)]
        result = required_gpa_for_goal(records, 3.0, remaining_semesters=2)
        assert result["required_future_gpa"] == 4.0
        assert result["is_achievable"] is False
        assert "would need a 6.00" in result["explanation"]

    def test_no_history(self):
        result = required_gpa_for_goal([], 3.2, remaining_semesters=4)
        assert result["required_future_gpa"] == 3.2
        assert result["is_achievable"] is True

    def test_no_remaining_semesters(self):
        result = required_gpa_for_goal([rec("CS 1301", "A")], 3.0, remaining_semesters=0)
        assert result["required_future_gpa"] == 0.0
        assert result["is_achievable"] is True

    def test_custom_credit_load(self):
        records = [rec(f"CS {1000 + i}", "B") for i in range(10)]
        # (3.5 * 40 - 90) / 10 = 5.0
        result = required_gpa_for_goal(records, 3.5, remaining_semesters=1, credits_per_semester=10)
        assert result["is_achievable"] is False


class TestComputeGpa:
    def test_end_to_end(self):
        records = [rec("CS 1301", "A"), rec("CS 1331", "B+")]
        data = compute_gpa(records)
        assert data["cumulative_gpa"] == 3.65
        assert data["current_gpa"] == 3.65
        assert data["total_credits"] == 6
        assert [r["semester"] for r in data["semester_gpas"]] == ["Fall 2024"]
        assert data["trend"]["direction"] == "stable"
