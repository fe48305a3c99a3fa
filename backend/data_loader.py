import os

import pandas as pd

from heuristics import default_tables
from normalizer import normalize_code
from prereq_parser import parse_prereqs
from requirements import build_program, category_min_credits, nominal_credits
from unlocks import build_reverse_prereq_map

REQUIRED_TABLES = ["courses", "programs", "categories", "nodes"]
OPTIONAL_TABLES = [
    "node_courses",
    "footnotes",
    "major_subjects",
    "thread_rules",
    "course_sequences",
]

REQUIRED_COLUMNS = {
    "courses": ["course_code", "course_name", "credits"],
    "programs": ["program_id", "label"],
    "categories": ["program_id", "category_id"],
    "nodes": ["program_id", "category_id", "node_id", "type"],
    "node_courses": ["program_id", "category_id", "node_id", "course_code"],
    "footnotes": ["program_id", "footnote_id", "text"],
    "major_subjects": ["major", "subject"],
    "thread_rules": ["rule_id", "thread_keywords", "title_keywords"],
    "course_sequences": ["course_code", "requires_code"],
}

_BOOL_TRUTHY = {"true", "1", "yes", "y"}


def _safe_bool_col(df: pd.DataFrame, col: str) -> pd.DataFrame:
    """Normalize a boolean column to Python bool regardless of CSV/Excel format. NaN → False."""
    def _coerce(x):
        if pd.isna(x):
            return False
        if isinstance(x, bool):
            return x
        if isinstance(x, (int, float)):
            return bool(x)
        return str(x).strip().lower() in _BOOL_TRUTHY

    if col in df.columns:
        df[col] = df[col].apply(_coerce)
    return df


def _split_list(raw) -> list[str]:
    """'CS;MATH' / 'CS, MATH' → ['CS', 'MATH']; NaN → []."""
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return []
    return [p.strip() for p in str(raw).replace(",", ";").split(";") if p.strip()]


def _id_list(raw) -> list[int]:
    """Footnote ids from "1;2" text or a lone numeric cell (read as 1.0)."""
    if isinstance(raw, (int, float)) and not pd.isna(raw):
        return [int(raw)]
    return [i for i in (_optional_int(p) for p in _split_list(raw)) if i is not None]


def _optional_int(raw):
    if raw is None or pd.isna(raw):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _clean_str(df: pd.DataFrame, cols: list[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            df[col] = df[col].fillna("").astype(str).str.strip()
    return df


def _read_tables(data_path: str) -> dict[str, pd.DataFrame]:
    """Read every known table from a directory of CSVs or from an xlsx workbook."""
    if not os.path.exists(data_path):
        raise FileNotFoundError(data_path)

    tables: dict[str, pd.DataFrame] = {}
    if os.path.isdir(data_path):
        for name in REQUIRED_TABLES + OPTIONAL_TABLES:
            path = os.path.join(data_path, f"{name}.csv")
            if os.path.isfile(path):
                tables[name] = pd.read_csv(path)
    else:
        xl = pd.ExcelFile(data_path)
        for name in REQUIRED_TABLES + OPTIONAL_TABLES:
            if name in xl.sheet_names:
                tables[name] = xl.parse(name)

    missing = [name for name in REQUIRED_TABLES if name not in tables]
    if missing:
        raise ValueError(f"Missing required table(s) in {data_path}: {missing}")

    for name, df in tables.items():
        absent = [c for c in REQUIRED_COLUMNS.get(name, []) if c not in df.columns]
        if absent:
            raise ValueError(f"Table '{name}' is missing column(s): {absent}")
    return tables


def _load_courses(courses_df: pd.DataFrame) -> pd.DataFrame:
    courses_df = courses_df.copy()
    courses_df["course_code"] = courses_df["course_code"].apply(
        lambda c: normalize_code(c) or str(c).strip()
    )
    courses_df["course_name"] = courses_df["course_name"].fillna("").astype(str).str.strip()
    courses_df["credits"] = pd.to_numeric(courses_df["credits"], errors="coerce")
    for col, default in (("prereq_hard", "none"), ("course_type", "")):
        if col not in courses_df.columns:
            courses_df[col] = default
        courses_df[col] = courses_df[col].fillna(default)
    return courses_df.drop_duplicates(subset=["course_code"], keep="first").reset_index(drop=True)


def _build_programs(tables: dict[str, pd.DataFrame]) -> dict[str, dict]:
    """Assemble raw program dicts from the flat tables, then normalize via build_program()."""
    programs_df = _clean_str(tables["programs"].copy(), ["program_id", "label", "kind", "parent_program_id"])
    categories_df = _clean_str(tables["categories"].copy(), ["program_id", "category_id", "label"])
    nodes_df = _clean_str(tables["nodes"].copy(), ["program_id", "category_id", "node_id", "type", "label"])
    nodes_df = _safe_bool_col(nodes_df, "shareable")
    node_courses_df = _clean_str(
        tables.get("node_courses", pd.DataFrame(columns=REQUIRED_COLUMNS["node_courses"])).copy(),
        ["program_id", "category_id", "node_id", "course_code"],
    )
    footnotes_df = tables.get("footnotes", pd.DataFrame(columns=REQUIRED_COLUMNS["footnotes"]))

    courses_by_node: dict[tuple, list[str]] = {}
    for _, row in node_courses_df.iterrows():
        key = (row["program_id"], row["category_id"], row["node_id"])
        code = normalize_code(row["course_code"]) or row["course_code"]
        courses_by_node.setdefault(key, []).append(code)

    unknown_nodes = set(courses_by_node) - {
        (r["program_id"], r["category_id"], r["node_id"]) for _, r in nodes_df.iterrows()
    }
    if unknown_nodes:
        print(f"[WARN] {len(unknown_nodes)} node_courses row group(s) reference unknown nodes: {sorted(unknown_nodes)}")

    nodes_by_category: dict[tuple, list[dict]] = {}
    for _, row in nodes_df.iterrows():
        key = (row["program_id"], row["category_id"])
        nodes_by_category.setdefault(key, []).append({
            "node_id": row["node_id"],
            "type": row["type"],
            "label": row.get("label") or row["node_id"],
            "credits": row.get("credits"),
            "selection_count": row.get("selection_count"),
            "shareable": row.get("shareable", False),
            "courses": courses_by_node.get((row["program_id"], row["category_id"], row["node_id"]), []),
            "pool": {
                "subjects": _split_list(row.get("pool_subjects")),
                "min_level": _optional_int(row.get("pool_min_level")),
                "max_level": _optional_int(row.get("pool_max_level")),
                "exclude": _split_list(row.get("pool_exclude")),
            },
            "footnotes": _id_list(row.get("footnotes")),
        })

    if "sort_order" in categories_df.columns:
        categories_df = categories_df.sort_values(["program_id", "sort_order"], kind="stable")

    categories_by_program: dict[str, list[dict]] = {}
    for _, row in categories_df.iterrows():
        categories_by_program.setdefault(row["program_id"], []).append({
            "category_id": row["category_id"],
            "label": row.get("label") or row["category_id"],
            "min_credits": row.get("min_credits"),
            "nodes": nodes_by_category.get((row["program_id"], row["category_id"]), []),
        })

    notes_by_program: dict[str, dict] = {}
    for _, row in footnotes_df.iterrows():
        pid = str(row["program_id"]).strip()
        notes_by_program.setdefault(pid, {})[row["footnote_id"]] = str(row["text"])

    programs: dict[str, dict] = {}
    for _, row in programs_df.iterrows():
        pid = row["program_id"]
        if not pid:
            continue
        programs[pid] = build_program({
            "program_id": pid,
            "label": row.get("label") or pid,
            "kind": row.get("kind") or "major",
            "parent_program_id": row.get("parent_program_id"),
            "total_credits": row.get("total_credits"),
            "gpa_requirement": row.get("gpa_requirement") if pd.notna(row.get("gpa_requirement")) else 0.0,
            "footnotes": notes_by_program.get(pid, {}),
            "categories": categories_by_program.get(pid, []),
        })

    orphan_categories = set(categories_by_program) - set(programs)
    if orphan_categories:
        print(f"[WARN] {len(orphan_categories)} program_id(s) in categories not found in programs: {sorted(orphan_categories)}")
    return programs


def _load_heuristics(tables: dict[str, pd.DataFrame]) -> dict:
    """Default heuristic tables, with each data table replacing its default when present."""
    heuristics = default_tables()

    if "major_subjects" in tables:
        majors: dict[str, list[str]] = {}
        for _, row in _clean_str(tables["major_subjects"].copy(), ["major", "subject"]).iterrows():
            if row["major"] and row["subject"]:
                subjects = majors.setdefault(row["major"], [])
                if row["subject"].upper() not in subjects:
                    subjects.append(row["subject"].upper())
        heuristics["major_subjects"] = majors

    if "thread_rules" in tables:
        rules = []
        for _, row in tables["thread_rules"].iterrows():
            rules.append({
                "rule_id": str(row["rule_id"]).strip(),
                "thread_keywords": [k.lower() for k in _split_list(row.get("thread_keywords"))],
                "subjects": [s.upper() for s in _split_list(row.get("subjects"))],
                "min_level": _optional_int(row.get("min_level")),
                "max_level": _optional_int(row.get("max_level")),
                "title_keywords": [k.lower() for k in _split_list(row.get("title_keywords"))],
            })
        heuristics["thread_rules"] = rules

    if "course_sequences" in tables:
        sequences: dict[str, list[str]] = {}
        for _, row in tables["course_sequences"].iterrows():
            code = normalize_code(row["course_code"])
            requires = normalize_code(row["requires_code"])
            if code and requires:
                sequences.setdefault(code, []).append(requires)
        heuristics["course_sequences"] = sequences

    return heuristics


def load_data(data_path: str) -> dict:
    """Load catalog, programs and heuristic tables. Raises on file/schema errors."""
    tables = _read_tables(data_path)

    courses_df = _load_courses(tables["courses"])
    catalog_codes = set(courses_df["course_code"].tolist())

    # Build prereq map: course_code → parsed prereq dict
    prereq_map: dict = {}
    for _, row in courses_df.iterrows():
        prereq_map[row["course_code"]] = parse_prereqs(row.get("prereq_hard", "none"))

    programs = _build_programs(tables)
    heuristics = _load_heuristics(tables)

    # ── Startup data integrity checks ──────────────────────────────────────
    listed: set[str] = set()
    for program in programs.values():
        for category in program["categories"]:
            nominal = sum(nominal_credits(n) for n in category["nodes"])
            min_credits = category_min_credits(category)
            if min_credits > nominal:
                print(
                    f"[WARN] {program['program_id']}::{category['category_id']} requires "
                    f"{min_credits} credits but its nodes only cover {nominal}."
                )
            for node in category["nodes"]:
                listed.update(node["courses"])

    orphaned = listed - catalog_codes
    if orphaned:
        print(f"[WARN] {len(orphaned)} requirement course(s) not found in courses table: {sorted(orphaned)}")

    unsupported = [code for code, p in prereq_map.items() if p["type"] == "unsupported"]
    if unsupported:
        print(f"[WARN] {len(unsupported)} course(s) have unsupported prereq format (manual review required): {sorted(unsupported)}")

    major_labels = {p["label"] for p in programs.values() if p["kind"] == "major"}
    unknown_majors = [m for m in heuristics["major_subjects"] if m not in major_labels]
    if "major_subjects" in tables and unknown_majors:
        print(f"[INFO] {len(unknown_majors)} major(s) in major_subjects have no program tables: {sorted(unknown_majors)}")

    return {
        "courses_df": courses_df,
        "catalog_codes": catalog_codes,
        "prereq_map": prereq_map,
        "reverse_map": build_reverse_prereq_map(courses_df, prereq_map),
        "programs": programs,
        "programs_by_label": {p["label"]: pid for pid, p in programs.items()},
        "heuristics": heuristics,
    }
