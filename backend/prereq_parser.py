import json
import re

import pandas as pd

from normalizer import normalize_code

# Case-insensitive OR splitter; tokens keep their casing until normalize_code().
OR_SPLIT = re.compile(r'\s+or\s+', re.IGNORECASE)

# Parenthetical notes such as "(minimum grade D)" are dropped before parsing.
ANNOTATION_RE = re.compile(r'\s*\([^)]*\)')

# Catalog text that is not a course list. Such prereqs are never auto-satisfied.
UNSUPPORTED_SIGNALS = [
    "permission",
    "consent",
    "standing",
    "instructor",
    "placement",
    "admitted",
    "gpa",
]

NONE_VALUES = {"none", "none listed", "n/a", "nan", "", "[]", "{}"}


def _is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return False


def _code_token(raw) -> str | None:
    if isinstance(raw, dict):
        raw = raw.get("id") or raw.get("code") or raw.get("course")
    if raw is None:
        return None
    s = str(raw).strip()
    if not s:
        return None
    return normalize_code(s) or s


def _collapse(kind: str, clauses: list) -> dict:
    clauses = [c for c in clauses if c]
    if not clauses:
        return {"type": "none"}
    if len(clauses) == 1:
        only = clauses[0]
        if isinstance(only, dict):
            return only
        return {"type": "single", "course": only}
    return {"type": kind, "courses": clauses}


def _parse_structured(value) -> dict:
    """
    Parse list/dict prerequisite structures as stored in catalog JSON.

      ["and", {"id": "CS 1331"}, ["or", {"id": "MATH 1551"}, {"id": "MATH 1552"}]]
      ["CS 1331", "MATH 1551"]               (flat list → AND)
      {"courses": ["CS 1331"]}               (flat dict → AND)
      {"id": "CS 1331"}
    """
    if isinstance(value, dict):
        if "courses" in value:
            logic = str(value.get("logic", "and") or "and").strip().lower()
            return _parse_list(["or" if logic == "or" else "and", *(value.get("courses") or [])])
        code = _code_token(value)
        return {"type": "single", "course": code} if code else {"type": "none"}
    return _parse_list(list(value))


def _parse_list(items: list) -> dict:
    if not items:
        return {"type": "none"}
    kind = "and"
    head = items[0]
    if isinstance(head, str) and head.strip().lower() in {"and", "or"}:
        kind = head.strip().lower()
        items = items[1:]

    clauses = []
    for item in items:
        if isinstance(item, (list, tuple)) or (isinstance(item, dict) and "courses" in item):
            nested = _parse_structured(item)
            if nested["type"] == "single":
                clauses.append(nested["course"])
            elif nested["type"] != "none":
                clauses.append(nested)
        else:
            code = _code_token(item)
            if code:
                clauses.append(code)
    return _collapse(kind, clauses)


def _parse_text(s: str) -> dict:
    stripped = ANNOTATION_RE.sub("", s).strip()
    if not stripped:
        return {"type": "none"}
    lowered = stripped.lower()
    if any(signal in lowered for signal in UNSUPPORTED_SIGNALS):
        return {"type": "unsupported", "raw": s}

    clauses = []
    for tok in re.split(r"[;,]|\s+and\s+", stripped, flags=re.IGNORECASE):
        tok = tok.strip()
        if not tok:
            continue
        if OR_SPLIT.search(tok):
            options = [_code_token(p) for p in OR_SPLIT.split(tok)]
            clauses.append(_collapse("or", [o for o in options if o]))
        else:
            clauses.append(_code_token(tok))

    flat = []
    for clause in clauses:
        if isinstance(clause, dict) and clause.get("type") == "single":
            flat.append(clause["course"])
        else:
            flat.append(clause)
    return _collapse("and", flat)


def parse_prereqs(prereq) -> dict:
    """
    Parses a catalog prerequisite field into a tagged dict.

    Supported inputs:
      None / "none" / []              → {"type": "none"}
      "CS 1331"                       → {"type": "single", "course": "CS 1331"}
      "CS 1331; MATH 1551"            → {"type": "and", "courses": [...]}
      "CS 1331 or CS 1371"            → {"type": "or", "courses": [...]}
      '["and", {"id": ...}, ...]'     → JSON text is decoded, then parsed as a list
      list / dict structures          → see _parse_structured()

    Anything that reads like a non-course condition (consent, standing, ...)
    → {"type": "unsupported", "raw": "<original string>"}
    """
    if _is_missing(prereq):
        return {"type": "none"}
    if isinstance(prereq, (list, tuple, dict)):
        return _parse_structured(prereq)

    s = str(prereq).strip()
    if s.lower() in NONE_VALUES:
        return {"type": "none"}
    if s[0] in "[{":
        try:
            decoded = json.loads(s)
        except ValueError:
            return {"type": "unsupported", "raw": s}
        return _parse_structured(decoded)
    return _parse_text(s)


def prereq_course_codes(parsed_prereq: dict) -> list[str]:
    """Every course code named anywhere in the parsed prereq, in order, deduplicated."""
    t = parsed_prereq.get("type")
    out: list[str] = []
    if t == "single":
        course = parsed_prereq.get("course")
        if course:
            out.append(course)
    elif t in {"and", "or"}:
        for c in parsed_prereq.get("courses", []):
            if isinstance(c, dict):
                out.extend(prereq_course_codes(c))
            elif c:
                out.append(c)
    return list(dict.fromkeys(out))


def build_prereq_check_string(parsed_prereq: dict, completed: set) -> str:
    """
    Human-readable prereq status, e.g.
      "CS 1331 ✓"
      "CS 1331 ✓; MATH 1551 ✗"
      "(MATH 1551 ✓ or MATH 1552 ✗)"
    """
    def label_code(code: str) -> str:
        return f"{code} ✓" if code in completed else f"{code} ✗"

    def render(clause) -> str:
        if isinstance(clause, dict):
            inner = build_prereq_check_string(clause, completed)
            return f"({inner})" if clause.get("type") == "or" else inner
        return label_code(clause)

    t = parsed_prereq["type"]
    if t == "none":
        return "No prerequisites"
    if t == "single":
        return label_code(parsed_prereq["course"])
    if t == "and":
        return "; ".join(render(c) for c in parsed_prereq["courses"])
    if t == "or":
        return " or ".join(render(c) for c in parsed_prereq["courses"])
    return "Manual review required"
