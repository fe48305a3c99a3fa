"""
Publish gate validator for degree program tables.

Checks data-quality rules that must pass before a program (major, thread or
minor) is offered to students. Importable for tests and runnable as a
standalone CLI.

Offline maintenance tooling for whoever edits data/. The server and the
progress, GPA, mapping and recommendation code never call it: at runtime
malformed tables degrade to empty or partial results instead of being
rejected.

Usage:
    python scripts/validate_program.py --program CS_BS
    python scripts/validate_program.py --program CS_INTEL --path path/to/workbook.xlsx
    python scripts/validate_program.py --all
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from data_loader import load_data
from requirements import (
    AND_GROUP,
    FLEXIBLE_TYPES,
    OR_GROUP,
    category_min_credits,
    in_pool,
    iter_nodes,
    nominal_credits,
)


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for a single program validation run."""

    def __init__(self, program_id: str):
        self.program_id = program_id
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Program '{self.program_id}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def check_program_exists(program_id: str, programs: dict, result: ValidationResult) -> None:
    if program_id not in programs:
        result.error(f"Program '{program_id}' not found in programs table.")


def check_categories_exist(program: dict, result: ValidationResult) -> None:
    if not program["categories"]:
        result.error(f"No categories defined for program '{program['program_id']}'.")
    for category in program["categories"]:
        if not category["nodes"]:
            result.error(f"Category '{category['category_id']}' has no requirement nodes.")


def check_parent_link(program: dict, programs: dict, result: ValidationResult) -> None:
    """Threads should name an existing major through parent_program_id."""
    if program["kind"] != "thread":
        return
    parent = program.get("parent_program_id")
    if not parent:
        result.warn(f"Thread '{program['program_id']}' has no parent_program_id.")
    elif parent not in programs or programs[parent]["kind"] != "major":
        result.error(f"Thread '{program['program_id']}' references unknown major '{parent}'.")


def check_node_courses(program: dict, catalog_codes: set[str], result: ValidationResult) -> None:
    """Fixed nodes need courses; every listed course must be in the catalog."""
    for path, _, node in iter_nodes(program):
        if node["type"] not in FLEXIBLE_TYPES and not node["courses"]:
            result.error(f"{path}: {node['type']} node lists no courses.")
        if node["type"] in (OR_GROUP, AND_GROUP) and len(node["courses"]) == 1:
            result.warn(f"{path}: {node['type']} node has a single course.")
        orphans = [c for c in node["courses"] if c not in catalog_codes]
        if orphans:
            result.error(f"{path}: course(s) not found in courses table: {orphans}")


def check_selection_pools(program: dict, catalog_codes: set[str], result: ValidationResult) -> None:
    """A selection node whose catalog pool is smaller than its selection_count can never be satisfied."""
    for path, _, node in iter_nodes(program):
        if node["type"] not in FLEXIBLE_TYPES:
            continue
        eligible = [c for c in catalog_codes if in_pool(node, c)]
        if not eligible:
            result.error(f"{path}: selection pool matches no catalog course.")
        elif len(eligible) < node["selection_count"]:
            result.warn(
                f"{path}: only {len(eligible)} catalog course(s) for "
                f"{node['selection_count']} selections."
            )


def check_credit_targets(program: dict, result: ValidationResult) -> None:
    for category in program["categories"]:
        nominal = sum(nominal_credits(n) for n in category["nodes"])
        required = category_min_credits(category)
        if required > nominal:
            result.error(
                f"Category '{category['category_id']}' requires {required} credits "
                f"but its nodes only cover {nominal}."
            )
    if program["kind"] == "major" and not program.get("total_credits"):
        result.warn(f"Major '{program['program_id']}' has no total_credits; overall progress uses category totals.")


def validate_program(program_id: str, data: dict) -> ValidationResult:
    result = ValidationResult(program_id)
    programs = data["programs"]
    check_program_exists(program_id, programs, result)
    if not result.passed:
        return result

    program = programs[program_id]
    check_categories_exist(program, result)
    check_parent_link(program, programs, result)
    check_node_courses(program, data["catalog_codes"], result)
    check_selection_pools(program, data["catalog_codes"], result)
    check_credit_targets(program, result)
    return result


def main(argv=None) -> int:
    repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    parser = argparse.ArgumentParser(description="Validate degree program tables.")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--program", help="Program id to validate (e.g. CS_BS)")
    group.add_argument("--all", action="store_true", help="Validate every program")
    parser.add_argument(
        "--path",
        default=os.path.join(repo_root, "data"),
        help="Data directory of CSVs or an xlsx workbook",
    )
    args = parser.parse_args(argv)

    data = load_data(args.path)
    program_ids = sorted(data["programs"]) if args.all else [args.program.strip().upper()]

    results = [validate_program(pid, data) for pid in program_ids]
    for result in results:
        print(result.summary())
    return 0 if all(r.passed for r in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
