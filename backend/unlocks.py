import pandas as pd
from prereq_parser import prereq_course_codes


def build_reverse_prereq_map(
    courses_df: pd.DataFrame,
    prereq_map: dict,
) -> dict[str, list[str]]:
    """
    Maps each prerequisite code to the catalog courses that name it directly.

    {"CS 1331": ["CS 1332", "CS 2110", "CS 2340"], ...}

    One level only; codes from AND and OR clauses are both included.
    Dependent lists come back sorted.
    """
    reverse: dict[str, list[str]] = {}
    if courses_df is None or len(courses_df) == 0:
        return reverse

    for code in courses_df["course_code"]:
        for prereq in prereq_course_codes(prereq_map.get(code, {"type": "none"})):
            dependents = reverse.setdefault(prereq, [])
            if code not in dependents:
                dependents.append(code)

    for dependents in reverse.values():
        dependents.sort()
    return reverse


def get_direct_unlocks(course_code: str, reverse_map: dict[str, list[str]], limit: int = 3) -> list[str]:
    """First `limit` courses that list course_code as a direct prerequisite."""
    return reverse_map.get(course_code, [])[:limit]
