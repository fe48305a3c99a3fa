import pandas as pd

from heuristics import (
    CATEGORY_PRECEDENCE,
    DEFAULT_CATEGORY,
    FOUNDATION_LEVELS,
    PREFERRED_CREDITS,
    PRIORITY_THRESHOLDS,
    default_tables,
    thread_rule_matches,
)
from normalizer import course_level, course_subject
from prereq_parser import build_prereq_check_string, parse_prereqs, prereq_course_codes
from requirements import flatten_courses
from unlocks import build_reverse_prereq_map, get_direct_unlocks
from validators import course_status_sets

PRIORITIES = ("high", "medium", "low")

_REASONS = {
    "prerequisite_ready": "Prerequisites completed",
    "major_subject": "Related to your major",
    "thread_match": "Supports your threads",
    "foundation": "Foundation course",
    "sequence": "Next in sequence",
    "credit_load": "Standard credit load",
    "core_type": "Core course",
    "required_type": "Required course",
}


def _safe_int(val, default=None):
    try:
        if pd.isna(val):
            return default
        return int(val)
    except (TypeError, ValueError):
        return default


def priority_for_score(score: int) -> str:
    for bucket, threshold in PRIORITY_THRESHOLDS:
        if score >= threshold:
            return bucket
    return "low"


def category_for_bonuses(bonuses: dict) -> str:
    for key, tag in CATEGORY_PRECEDENCE:
        if key in bonuses:
            return tag
    return DEFAULT_CATEGORY


def _thread_match(code: str, title: str, threads: list[str], rules: list[dict]) -> bool:
    subject = course_subject(code)
    level = course_level(code)
    lowered = str(title or "").lower()
    for thread in threads:
        for rule in rules:
            if not thread_rule_matches(rule, thread):
                continue
            if rule.get("subjects") and subject not in rule["subjects"]:
                continue
            if rule.get("min_level") is not None and level < rule["min_level"]:
                continue
            if rule.get("max_level") is not None and level > rule["max_level"]:
                continue
            if any(k in lowered for k in rule.get("title_keywords", [])):
                return True
    return False


def score_course(
    row: dict,
    completed: set[str],
    major: str,
    threads: list[str],
    tables: dict,
) -> dict:
    """
    Bonus breakdown for one course that already passed the prerequisite gate.

    Returns {"score", "bonuses", "reasons"}; bonuses maps bonus key → points.
    """
    weights = tables["weights"]
    code = row["course_code"]
    bonuses: dict[str, int] = {"prerequisite_ready": weights["prerequisite_ready"]}

    if course_subject(code) in tables["major_subjects"].get(major or "", []):
        bonuses["major_subject"] = weights["major_subject"]

    if threads and _thread_match(code, row.get("course_name", ""), threads, tables["thread_rules"]):
        bonuses["thread_match"] = weights["thread_match"]

    lo, hi = FOUNDATION_LEVELS
    if lo <= course_level(code) < hi:
        bonuses["foundation"] = weights["foundation"]

    sequence = tables["course_sequences"].get(code)
    if sequence and all(c in completed for c in sequence):
        bonuses["sequence"] = weights["sequence"]

    credits = row.get("credits")
    if credits is not None and PREFERRED_CREDITS[0] <= credits <= PREFERRED_CREDITS[1]:
        bonuses["credit_load"] = weights["credit_load"]

    course_type = str(row.get("course_type", "") or "").strip().lower()
    if course_type == "core":
        bonuses["core_type"] = weights["core_type"]
    elif course_type == "required":
        bonuses["required_type"] = weights["required_type"]

    return {
        "score": sum(bonuses.values()),
        "bonuses": bonuses,
        "reasons": [_REASONS[k] for k in bonuses],
    }


def _fills(code: str, programs: list[dict]) -> list[str]:
    out = []
    for program in programs:
        for category in program.get("categories", []):
            if code in flatten_courses(category):
                out.append(category.get("label", category["category_id"]))
    return out


def apply_filters(recs: list[dict], filters: dict | None) -> list[dict]:
    """Restrict/truncate an already-sorted list. Scores are never touched."""
    filters = filters or {}
    priority = str(filters.get("priority") or "all").strip().lower()
    if priority in PRIORITIES:
        recs = [r for r in recs if r["priority"] == priority]
    max_results = _safe_int(filters.get("max_results"))
    if max_results is not None and max_results >= 0:
        recs = recs[:max_results]
    return recs


def recommend(
    records: list[dict],
    courses_df: pd.DataFrame,
    major: str,
    threads: list[str] | None = None,
    filters: dict | None = None,
    tables: dict | None = None,
    programs: list[dict] | None = None,
    prereq_map: dict | None = None,
    reverse_map: dict | None = None,
) -> list[dict]:
    """
    Recommendation entrypoint.

    Candidates are catalog courses the student has not completed, is not
    taking and has not planned. A course with any prerequisite outside the
    completed set (flat AND over every listed code) is dropped before
    scoring; unsupported prerequisite text is never auto-satisfied.

    Output is sorted by score descending, then course code ascending.
    An empty or missing catalog yields [].
    """
    if courses_df is None or len(courses_df) == 0:
        return []

    tables = tables or default_tables()
    threads = [t for t in (threads or []) if str(t or "").strip()]
    sets = course_status_sets(records)
    completed = sets["completed"]
    excluded = completed | sets["in_progress"] | sets["planned"]

    if prereq_map is None:
        prereq_map = {
            str(row["course_code"]).strip(): parse_prereqs(row.get("prereq_hard"))
            for _, row in courses_df.iterrows()
        }
    if reverse_map is None:
        reverse_map = build_reverse_prereq_map(courses_df, prereq_map)

    recs = []
    for _, raw in courses_df.iterrows():
        code = str(raw.get("course_code", "") or "").strip()
        if not code or code in excluded:
            continue

        parsed = prereq_map.get(code)
        if parsed is None:
            parsed = parse_prereqs(raw.get("prereq_hard"))
        if parsed.get("type") == "unsupported":
            continue
        required = prereq_course_codes(parsed)
        if any(c not in completed for c in required):
            continue

        row = {
            "course_code": code,
            "course_name": str(raw.get("course_name", "") or ""),
            "credits": _safe_int(raw.get("credits")),
            "course_type": raw.get("course_type", ""),
        }
        scored = score_course(row, completed, major, threads, tables)
        recs.append({
            "course_code": code,
            "course_name": row["course_name"],
            "credits": row["credits"],
            "score": scored["score"],
            "priority": priority_for_score(scored["score"]),
            "category": category_for_bonuses(scored["bonuses"]),
            "reasons": scored["reasons"],
            "bonuses": scored["bonuses"],
            "prereq_check": build_prereq_check_string(parsed, completed),
            "unlocks": get_direct_unlocks(code, reverse_map),
            "fills": _fills(code, programs or []),
        })

    recs.sort(key=lambda r: (-r["score"], r["course_code"]))
    return apply_filters(recs, filters)
