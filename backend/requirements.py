"""
Requirement tree model.

A degree program is a plain dict:

    {
      "program_id": "CS_BS",
      "label": "Computer Science",
      "kind": "major",                  # major | thread | minor
      "total_credits": 126,
      "gpa_requirement": 2.0,
      "footnotes": {1: "..."},
      "categories": [
        {
          "category_id": "CS_CORE",
          "label": "CS Core",
          "min_credits": 9,             # None → sum of node nominal credits
          "nodes": [
            {"node_id": "1301", "type": "regular", "courses": ["CS 1301"], "credits": 3},
            {"node_id": "INTRO", "type": "or_group", "courses": ["CS 1331", "CS 1371"], "credits": 3},
            {"node_id": "SCI", "type": "and_group", "courses": ["PHYS 2211", "PHYS 2212"], "credits": 8},
            {"node_id": "UPPER", "type": "selection", "selection_count": 2, "credits": 3,
             "pool": {"subjects": ["CS"], "min_level": 3000}},
          ],
        },
      ],
    }

Nodes are dispatched on their "type" tag. Programs are built once and only
read afterwards.
"""

import pandas as pd

from normalizer import course_level, course_subject, normalize_code

REGULAR = "regular"
OR_GROUP = "or_group"
AND_GROUP = "and_group"
SELECTION = "selection"
FLEXIBLE = "flexible"

FLEXIBLE_TYPES = {SELECTION, FLEXIBLE}
NODE_TYPES = {REGULAR, OR_GROUP, AND_GROUP, SELECTION, FLEXIBLE}

_TYPE_ALIASES = {
    "course": REGULAR,
    "or": OR_GROUP,
    "or-group": OR_GROUP,
    "and": AND_GROUP,
    "and-group": AND_GROUP,
    "choose_n": SELECTION,
    "select": SELECTION,
}

# Credit value assumed when a node or course row carries none.
DEFAULT_NODE_CREDITS = 3

# Separator between program, category and node ids in a requirement path.
PATH_SEP = "::"


def _safe_int(val, default=None):
    try:
        if pd.isna(val):
            return default
        return int(val)
    except (TypeError, ValueError):
        return default


def _safe_bool(val) -> bool:
    if isinstance(val, bool):
        return val
    if val is None or (isinstance(val, float) and pd.isna(val)):
        return False
    if isinstance(val, (int, float)):
        return bool(val)
    return str(val).strip().lower() in {"true", "1", "yes", "y"}


def _code_list(raw) -> list[str]:
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return []
    if isinstance(raw, str):
        raw = [p for p in raw.replace(";", ",").split(",")]
    out = []
    for item in raw:
        if isinstance(item, dict):
            item = item.get("code") or item.get("id")
        code = normalize_code(item) if item is not None else None
        if code and code not in out:
            out.append(code)
    return out


def node_path(program_id: str, category_id: str, node_id: str) -> str:
    return PATH_SEP.join([str(program_id), str(category_id), str(node_id)])


def split_path(path: str) -> tuple[str, str, str] | None:
    parts = str(path or "").split(PATH_SEP)
    if len(parts) != 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[2]


def normalize_node_type(raw_type) -> str:
    t = str(raw_type or "").strip().lower()
    t = _TYPE_ALIASES.get(t, t)
    return t if t in NODE_TYPES else REGULAR


def build_node(raw: dict) -> dict:
    """Normalize one raw node dict into the canonical node shape."""
    node_type = normalize_node_type(raw.get("type"))
    courses = _code_list(raw.get("courses", raw.get("options")))
    if not courses and raw.get("code"):
        courses = _code_list([raw.get("code")])

    pool = raw.get("pool") or {}
    pool = {
        "subjects": [str(s).strip().upper() for s in (pool.get("subjects") or []) if str(s).strip()],
        "min_level": _safe_int(pool.get("min_level")),
        "max_level": _safe_int(pool.get("max_level")),
        "exclude": _code_list(pool.get("exclude")),
    }

    node_id = str(raw.get("node_id") or raw.get("id") or (courses[0] if courses else "")).strip()
    footnotes = [f for f in (_safe_int(x) for x in (raw.get("footnotes") or [])) if f is not None]
    return {
        "node_id": node_id,
        "type": node_type,
        "label": str(raw.get("label") or raw.get("name") or node_id),
        "courses": courses,
        "credits": _safe_int(raw.get("credits"), DEFAULT_NODE_CREDITS),
        "selection_count": max(1, _safe_int(raw.get("selection_count"), 1)),
        "shareable": _safe_bool(raw.get("shareable", False)),
        "pool": pool,
        "footnotes": footnotes,
    }


def build_category(raw: dict) -> dict:
    category_id = str(raw.get("category_id") or raw.get("id") or raw.get("label") or "").strip()
    return {
        "category_id": category_id,
        "label": str(raw.get("label") or raw.get("name") or category_id),
        "min_credits": _safe_int(raw.get("min_credits")),
        "nodes": [build_node(n) for n in (raw.get("nodes") or [])],
    }


def build_program(raw: dict) -> dict:
    """Normalize a raw program dict (e.g. decoded JSON) into the canonical shape."""
    program_id = str(raw.get("program_id") or raw.get("id") or raw.get("label") or "").strip()
    footnotes = {}
    for key, text in (raw.get("footnotes") or {}).items():
        fid = _safe_int(key)
        if fid is not None:
            footnotes[fid] = str(text)
    return {
        "program_id": program_id,
        "label": str(raw.get("label") or raw.get("name") or program_id),
        "kind": str(raw.get("kind") or "major").strip().lower(),
        "parent_program_id": str(raw.get("parent_program_id") or "").strip() or None,
        "total_credits": _safe_int(raw.get("total_credits")),
        "gpa_requirement": float(raw.get("gpa_requirement") or 0.0),
        "footnotes": footnotes,
        "categories": [build_category(c) for c in (raw.get("categories") or [])],
    }


def nominal_credits(node: dict) -> int:
    """Full credit value of a node once satisfied."""
    if node["type"] in FLEXIBLE_TYPES:
        return node["credits"] * node["selection_count"]
    return node["credits"]


def category_min_credits(category: dict) -> int:
    if category.get("min_credits") is not None:
        return category["min_credits"]
    return sum(nominal_credits(n) for n in category.get("nodes", []))


def flatten_courses(item: dict) -> set[str]:
    """
    Every course code listed anywhere in a node, category or program.

    Open-ended pools (subject/level filters) contribute only their explicit
    course list.
    """
    if "categories" in item:
        out: set[str] = set()
        for category in item["categories"]:
            out |= flatten_courses(category)
        return out
    if "nodes" in item:
        out = set()
        for node in item["nodes"]:
            out |= flatten_courses(node)
        return out
    return set(item.get("courses", []))


def in_pool(node: dict, course_code: str) -> bool:
    """Whether a course is eligible for a selection/flexible node."""
    code = normalize_code(course_code) or str(course_code or "").strip()
    pool = node.get("pool") or {}
    if code in (pool.get("exclude") or []):
        return False
    if code in node.get("courses", []):
        return True

    subjects = pool.get("subjects") or []
    min_level = pool.get("min_level")
    max_level = pool.get("max_level")
    if not subjects and min_level is None and max_level is None:
        return False
    if subjects and course_subject(code) not in subjects:
        return False
    level = course_level(code)
    if min_level is not None and level < min_level:
        return False
    if max_level is not None and level > max_level:
        return False
    return True


def iter_nodes(program: dict):
    """Yield (path, category, node) in program order."""
    for category in program.get("categories", []):
        for node in category.get("nodes", []):
            yield node_path(program["program_id"], category["category_id"], node["node_id"]), category, node


def find_node(program: dict, path: str) -> dict | None:
    for node_key, _, node in iter_nodes(program):
        if node_key == path:
            return node
    return None


def flexible_paths(program: dict) -> list[str]:
    return [p for p, _, node in iter_nodes(program) if node["type"] in FLEXIBLE_TYPES]


def footnote_text(program: dict, node: dict) -> list[str]:
    notes = program.get("footnotes", {})
    return [notes[f] for f in node.get("footnotes", []) if f in notes]
