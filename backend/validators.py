"""
Pure input-validation helpers for student course records.
No Flask or data-loader imports.
"""

from typing import Dict, List, Optional, Set, Tuple

from normalizer import normalize_code, parse_semester

COMPLETED = "completed"
IN_PROGRESS = "in-progress"
PLANNED = "planned"

_STATUS_ALIASES = {
    "completed": COMPLETED,
    "complete": COMPLETED,
    "done": COMPLETED,
    "in-progress": IN_PROGRESS,
    "in_progress": IN_PROGRESS,
    "inprogress": IN_PROGRESS,
    "current": IN_PROGRESS,
    "planned": PLANNED,
    "plan": PLANNED,
}


def normalize_status(raw) -> Optional[str]:
    return _STATUS_ALIASES.get(str(raw or "").strip().lower())


def _parse_credits(value):
    """Whole-number credits ("3", 3, 3.0) as int; anything else is returned as-is."""
    if isinstance(value, bool):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        return value
    return int(number) if number.is_integer() else value


def normalize_record(raw: dict) -> dict:
    """Canonical copy of a CourseRecord: normalized code/status, int credits, upper grade."""
    rec = dict(raw)
    rec["code"] = normalize_code(raw.get("code") or raw.get("course_code")) or str(
        raw.get("code") or raw.get("course_code") or ""
    ).strip()
    rec["status"] = normalize_status(raw.get("status")) or str(raw.get("status") or "").strip().lower()
    grade = raw.get("grade")
    rec["grade"] = str(grade).strip().upper() if grade not in (None, "") else None
    rec["credits"] = _parse_credits(raw.get("credits"))
    return rec


def is_credit_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _slot_key(rec: dict):
    slot = rec.get("semester_slot_id")
    if slot not in (None, ""):
        return str(slot)
    sem = parse_semester(rec.get("semester"))
    return sem if sem is not None else None


def validate_course_records(records) -> Tuple[Optional[str], Optional[str]]:
    """Returns (error_code, message) on invalid input, (None, None) on success."""
    if records is None:
        return None, None
    if not isinstance(records, list):
        return "INVALID_INPUT", "records must be a list of course records."

    seen: Set[tuple] = set()
    for idx, raw in enumerate(records):
        if not isinstance(raw, dict):
            return "INVALID_INPUT", f"records[{idx}] must be an object."
        rec = normalize_record(raw)
        if not normalize_code(rec["code"]):
            return "INVALID_INPUT", f"records[{idx}] has an invalid course code '{rec['code']}'."
        if normalize_status(raw.get("status")) is None:
            return "INVALID_INPUT", (
                f"records[{idx}] status '{raw.get('status')}' must be one of "
                "completed, in-progress, planned."
            )
        if not is_credit_count(rec["credits"]):
            return "INVALID_INPUT", f"records[{idx}] credits must be a positive integer."
        if rec["grade"] and rec["status"] != COMPLETED:
            return "INVALID_INPUT", f"records[{idx}] has a grade but is not completed."
        if raw.get("semester") not in (None, "") and parse_semester(raw.get("semester")) is None:
            return "INVALID_INPUT", (
                f"records[{idx}] semester '{raw.get('semester')}' is not valid (e.g. 'Fall 2024')."
            )
        key = (rec["code"], _slot_key(rec))
        if key[1] is not None and key in seen:
            return "INVALID_INPUT", f"{rec['code']} appears twice in the same semester."
        seen.add(key)
    return None, None


def course_status_sets(records: List[dict]) -> Dict[str, object]:
    """
    Split records into disjoint code sets by best status reached.

    A course completed in one semester and retaken later counts as completed.
    Returns {"completed", "in_progress", "planned", "credits"} where credits
    maps each code to the credit value of its best-status record.
    """
    rank = {COMPLETED: 0, IN_PROGRESS: 1, PLANNED: 2}
    best: Dict[str, Tuple[int, int]] = {}
    for raw in records or []:
        rec = normalize_record(raw)
        status = normalize_status(rec["status"])
        if status is None or not rec["code"]:
            continue
        credits = rec["credits"] if is_credit_count(rec["credits"]) else 0
        current = best.get(rec["code"])
        if current is None or rank[status] < current[0]:
            best[rec["code"]] = (rank[status], credits)

    completed = {c for c, (r, _) in best.items() if r == 0}
    in_progress = {c for c, (r, _) in best.items() if r == 1}
    planned = {c for c, (r, _) in best.items() if r == 2}
    return {
        "completed": completed,
        "in_progress": in_progress,
        "planned": planned,
        "credits": {c: credits for c, (_, credits) in best.items()},
    }
