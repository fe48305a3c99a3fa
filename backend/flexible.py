"""
Flexible mapping resolver.

A mapping binds one course to one selection/flexible requirement path:

    {"student_id": "s1", "requirement_path": "CS_BS::CS_ELECTIVES::UPPER", "course_code": "CS 4641"}

propose_mapping() / remove_mapping() are the only writers of a student's
mapping list. Callers must hold that student's lock (StudentLocks) for the
whole call so that two proposals cannot both take the last open slot.
"""

import threading
from contextlib import contextmanager

import pandas as pd

from normalizer import normalize_code
from prereq_parser import parse_prereqs, prereq_course_codes
from requirements import FLEXIBLE_TYPES, find_node, in_pool, iter_nodes, split_path
from validators import course_status_sets

NOT_IN_POOL = "NOT_IN_POOL"
ALREADY_MAPPED = "ALREADY_MAPPED"
SLOT_FULL = "SLOT_FULL"
UNKNOWN_REQUIREMENT = "UNKNOWN_REQUIREMENT"
NOT_FLEXIBLE = "NOT_FLEXIBLE"
NOT_IN_RECORDS = "NOT_IN_RECORDS"


def _error(code: str, message: str) -> dict:
    return {"error_code": code, "message": message}


def _as_program_list(programs) -> list[dict]:
    if not programs:
        return []
    if isinstance(programs, dict):
        return [programs]
    return [p for p in programs if p]


def _locate_node(programs, path: str) -> dict | None:
    parts = split_path(path)
    if parts is None:
        return None
    for program in _as_program_list(programs):
        if program.get("program_id") == parts[0]:
            return find_node(program, path)
    return None


def _record_codes(records) -> set[str] | None:
    if records is None:
        return None
    sets = course_status_sets(records)
    return sets["completed"] | sets["in_progress"] | sets["planned"]


def _shareable_pair(programs, path_a: str, path_b: str) -> bool:
    node_a = _locate_node(programs, path_a)
    node_b = _locate_node(programs, path_b)
    return bool(node_a and node_b and node_a.get("shareable") and node_b.get("shareable"))


def _check_node(programs, path: str, code: str, record_codes: set[str] | None) -> tuple[dict | None, dict | None]:
    """Returns (node, error) for pool / records eligibility of one course at one path."""
    node = _locate_node(programs, path)
    if node is None:
        return None, _error(UNKNOWN_REQUIREMENT, f"No requirement exists at '{path}'.")
    if node["type"] not in FLEXIBLE_TYPES:
        return node, _error(NOT_FLEXIBLE, f"'{node.get('label', path)}' does not take course selections.")
    if not in_pool(node, code):
        return node, _error(NOT_IN_POOL, f"{code} is not eligible for '{node.get('label', path)}'.")
    if record_codes is not None and code not in record_codes:
        return node, _error(NOT_IN_RECORDS, f"{code} is not in your completed, in-progress or planned courses.")
    return node, None


def propose_mapping(
    mappings: list[dict],
    programs,
    requirement_path: str,
    course_code: str,
    records: list[dict] | None = None,
    student_id=None,
    sink=None,
) -> tuple[dict | None, dict | None]:
    """
    Bind course_code to requirement_path.

    The course must appear in `records` with any status. No records means an
    empty course set, so the proposal fails with NOT_IN_RECORDS.

    Returns (mapping, None) on success or (None, error). On success the sink
    (if any) is written first and the mapping is then appended to
    `mappings`; a sink exception propagates and leaves `mappings` unchanged.
    Proposing an existing mapping again returns it unchanged.
    """
    path = str(requirement_path or "").strip()
    code = normalize_code(course_code) or str(course_code or "").strip()

    node, err = _check_node(programs, path, code, _record_codes(records or []))
    if err:
        return None, err

    for m in mappings:
        if m["requirement_path"] == path and m["course_code"] == code:
            return m, None

    for m in mappings:
        if m["course_code"] != code or m["requirement_path"] == path:
            continue
        if not _shareable_pair(programs, path, m["requirement_path"]):
            return None, _error(
                ALREADY_MAPPED,
                f"{code} already counts toward '{m['requirement_path']}'. Remove it there first.",
            )

    used = sum(1 for m in mappings if m["requirement_path"] == path)
    if used >= node["selection_count"]:
        return None, _error(
            SLOT_FULL,
            f"'{node.get('label', path)}' already has {used}/{node['selection_count']} selections. "
            "Remove one before adding another.",
        )

    mapping = {"student_id": student_id, "requirement_path": path, "course_code": code}
    if sink is not None:
        sink.save_mapping(mapping)
    mappings.append(mapping)
    return mapping, None


def remove_mapping(
    mappings: list[dict],
    requirement_path: str,
    course_code: str,
    student_id=None,
    sink=None,
) -> bool:
    """Remove one mapping. Removing a mapping that does not exist is a no-op (False)."""
    path = str(requirement_path or "").strip()
    code = normalize_code(course_code) or str(course_code or "").strip()
    for idx, m in enumerate(mappings):
        if m["requirement_path"] == path and m["course_code"] == code:
            if sink is not None:
                sink.delete_mapping(path, code, student_id=student_id)
            del mappings[idx]
            return True
    return False


def validate_all(mappings: list[dict], programs, records: list[dict] | None = None) -> dict:
    """
    Re-check every stored mapping against the current program pools.

    Never mutates `mappings`: one error per invalid mapping, the caller
    decides whether to call remove_mapping().
    """
    record_codes = _record_codes(records)
    errors: list[dict] = []
    claimed: dict[str, list[str]] = {}
    filled: dict[str, int] = {}

    for m in mappings or []:
        path = m["requirement_path"]
        code = m["course_code"]
        node, err = _check_node(programs, path, code, record_codes)

        if err is None:
            for other_path in claimed.get(code, []):
                if other_path != path and not _shareable_pair(programs, path, other_path):
                    err = _error(ALREADY_MAPPED, f"{code} is counted toward both '{other_path}' and '{path}'.")
                    break
        if err is None and filled.get(path, 0) >= node["selection_count"]:
            err = _error(SLOT_FULL, f"'{path}' has more selections than its {node['selection_count']} slot(s).")

        if err is not None:
            errors.append({"requirement_path": path, "course_code": code, **err})
            continue
        claimed.setdefault(code, []).append(path)
        filled[path] = filled.get(path, 0) + 1

    return {"is_valid": len(errors) == 0, "errors": errors}


def flexible_progress(programs, mappings: list[dict]) -> list[dict]:
    """Selection count per flexible requirement, e.g. progress_text '1/2 selected'."""
    rows = []
    for program in _as_program_list(programs):
        for path, category, node in iter_nodes(program):
            if node["type"] not in FLEXIBLE_TYPES:
                continue
            selected = [m["course_code"] for m in mappings or [] if m["requirement_path"] == path]
            required = node["selection_count"]
            rows.append({
                "requirement_path": path,
                "category_id": category["category_id"],
                "label": node.get("label", node["node_id"]),
                "required": required,
                "selected": len(selected),
                "selected_courses": selected,
                "is_complete": len(selected) >= required,
                "progress_text": f"{len(selected)}/{required} selected",
            })
    return rows


def pool_options(
    programs,
    requirement_path: str,
    courses_df: pd.DataFrame,
    mappings: list[dict] | None = None,
    limit: int = 5,
) -> list[dict]:
    """
    Unselected catalog courses eligible for a flexible requirement, fewest
    prerequisites first, then by course code.
    """
    node = _locate_node(programs, requirement_path)
    if node is None or node["type"] not in FLEXIBLE_TYPES:
        return []
    if courses_df is None or len(courses_df) == 0:
        return []

    taken = {m["course_code"] for m in mappings or [] if m["requirement_path"] == requirement_path}
    options = []
    for _, row in courses_df.iterrows():
        code = str(row.get("course_code", "") or "").strip()
        if not code or code in taken or not in_pool(node, code):
            continue
        prereqs = prereq_course_codes(parse_prereqs(row.get("prereq_hard")))
        options.append({
            "course_code": code,
            "course_name": str(row.get("course_name", "") or ""),
            "credits": None if pd.isna(row.get("credits")) else int(row.get("credits")),
            "prerequisites": prereqs,
        })
    options.sort(key=lambda o: (len(o["prerequisites"]), o["course_code"]))
    return options[:limit]


class InMemoryMappingSink:
    """Process-local persistence sink keyed by student id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: dict = {}

    def save_mapping(self, mapping: dict) -> None:
        with self._lock:
            rows = self._rows.setdefault(mapping.get("student_id"), [])
            key = (mapping["requirement_path"], mapping["course_code"])
            if key not in [(r["requirement_path"], r["course_code"]) for r in rows]:
                rows.append(dict(mapping))

    def delete_mapping(self, requirement_path: str, course_code: str, student_id=None) -> None:
        with self._lock:
            rows = self._rows.get(student_id, [])
            self._rows[student_id] = [
                r for r in rows
                if not (r["requirement_path"] == requirement_path and r["course_code"] == course_code)
            ]

    def get_mappings(self, student_id) -> list[dict]:
        with self._lock:
            return [dict(r) for r in self._rows.get(student_id, [])]


class StudentLocks:
    """
    One lock per student id: the critical section for mapping writes.

    An entry lives only while some caller holds or waits on it, so the table
    never outgrows the number of in-flight requests.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict = {}  # student_id -> [lock, users]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, student_id):
        with self._guard:
            entry = self._locks.setdefault(student_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[student_id]
