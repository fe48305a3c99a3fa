from requirements import (
    AND_GROUP,
    DEFAULT_NODE_CREDITS,
    FLEXIBLE_TYPES,
    OR_GROUP,
    REGULAR,
    category_min_credits,
    flatten_courses,
    footnote_text,
    in_pool,
    iter_nodes,
    node_path,
    nominal_credits,
)
from validators import course_status_sets


def _round(val) -> float:
    return round(float(val), 2)


def _empty_node_result(path: str, node: dict) -> dict:
    return {
        "path": path,
        "node_id": node["node_id"],
        "type": node["type"],
        "label": node.get("label", node["node_id"]),
        "credits": nominal_credits(node),
        "satisfied": False,
        "completed_credits": 0.0,
        "in_progress_credits": 0.0,
        "planned_credits": 0.0,
        "completed_courses": [],
        "in_progress_courses": [],
        "planned_courses": [],
    }


def _evaluate_regular(node: dict, result: dict, sets: dict) -> None:
    if not node["courses"]:
        return
    code = node["courses"][0]
    if code in sets["completed"]:
        result["satisfied"] = True
        result["completed_credits"] = node["credits"]
        result["completed_courses"] = [code]
    elif code in sets["in_progress"]:
        result["in_progress_credits"] = node["credits"]
        result["in_progress_courses"] = [code]
    elif code in sets["planned"]:
        result["planned_credits"] = node["credits"]
        result["planned_courses"] = [code]


def _evaluate_or_group(node: dict, result: dict, sets: dict) -> None:
    # The group is worth its own credit value once, whichever option is taken.
    for key in ("completed", "in_progress", "planned"):
        matched = [c for c in node["courses"] if c in sets[key]]
        if matched:
            result[f"{key}_credits"] = node["credits"]
            result[f"{key}_courses"] = matched[:1]
            result["satisfied"] = key == "completed"
            return


def _evaluate_and_group(node: dict, result: dict, sets: dict) -> None:
    total = len(node["courses"])
    if total == 0:
        return
    done = [c for c in node["courses"] if c in sets["completed"]]
    running = [c for c in node["courses"] if c in sets["in_progress"]]
    planned = [c for c in node["courses"] if c in sets["planned"]]

    share = node["credits"] / total
    result["completed_credits"] = _round(share * len(done))
    result["in_progress_credits"] = _round(share * len(running))
    result["planned_credits"] = _round(share * len(planned))
    result["completed_courses"] = done
    result["in_progress_courses"] = running
    result["planned_courses"] = planned
    result["satisfied"] = len(done) == total


def _evaluate_selection(node: dict, result: dict, sets: dict, chosen: list[str]) -> None:
    """
    Credits come from the chosen courses themselves, capped at
    credits × selection_count across completed + in-progress + planned.
    """
    cap = nominal_credits(node)
    by_status = {"completed": [], "in_progress": [], "planned": []}
    for code in chosen:
        if not in_pool(node, code):
            continue
        for bucket in ("completed", "in_progress", "planned"):
            if code in sets[bucket]:
                by_status[bucket].append(code)
                break

    used = 0
    for bucket in ("completed", "in_progress", "planned"):
        raw = sum(sets["credits"].get(c) or DEFAULT_NODE_CREDITS for c in by_status[bucket])
        applied = max(0, min(cap - used, raw))
        used += applied
        result[f"{bucket}_credits"] = _round(applied)
        result[f"{bucket}_courses"] = by_status[bucket]

    result["satisfied"] = len(by_status["completed"]) >= node["selection_count"]
    result["selected"] = len(dict.fromkeys(c for c in chosen if in_pool(node, c)))
    result["selection_count"] = node["selection_count"]


def evaluate_node(path: str, node: dict, sets: dict, chosen: list[str] | None = None) -> dict:
    """Evaluate one requirement node against the student's status sets."""
    result = _empty_node_result(path, node)
    t = node["type"]
    if t == REGULAR:
        _evaluate_regular(node, result, sets)
    elif t == OR_GROUP:
        _evaluate_or_group(node, result, sets)
    elif t == AND_GROUP:
        _evaluate_and_group(node, result, sets)
    elif t in FLEXIBLE_TYPES:
        _evaluate_selection(node, result, sets, chosen or [])
    result["applied_courses"] = (
        result["completed_courses"] + result["in_progress_courses"] + result["planned_courses"]
    )
    return result


def _mappings_by_path(mappings: list[dict] | None, programs: list[dict]) -> dict[str, list[str]]:
    """
    Chosen courses per flexible path, in mapping order.

    A course counts toward a second path only when every path it already
    counts toward, and the new one, is shareable. Later conflicting claims
    are dropped. Claims on unknown paths or outside the node's pool are ignored.
    """
    nodes = {path: node for program in programs for path, _, node in iter_nodes(program)}
    out: dict[str, list[str]] = {}
    claimed: dict[str, list[str]] = {}
    for m in mappings or []:
        path = str(m.get("requirement_path", "") or "").strip()
        code = str(m.get("course_code", "") or "").strip()
        node = nodes.get(path)
        if node is None or node["type"] not in FLEXIBLE_TYPES or not in_pool(node, code):
            continue
        if code in out.get(path, []):
            continue
        others = claimed.get(code, [])
        if others and not (node.get("shareable") and all(nodes[p].get("shareable") for p in others)):
            continue
        out.setdefault(path, []).append(code)
        claimed.setdefault(code, []).append(path)
    return out


def evaluate_category(program: dict, category: dict, sets: dict, chosen_by_path: dict) -> dict:
    """
    Aggregate node results for one category.

    A category with min_credits == 0 is trivially complete. When min_credits
    equals the nominal node total (no slack), every node must also be
    individually satisfied.
    """
    node_results = []
    for node in category.get("nodes", []):
        path = node_path(program["program_id"], category["category_id"], node["node_id"])
        res = evaluate_node(path, node, sets, chosen_by_path.get(path))
        notes = footnote_text(program, node)
        if notes:
            res["footnotes"] = notes
        node_results.append(res)

    min_credits = category_min_credits(category)
    nominal_total = sum(nominal_credits(n) for n in category.get("nodes", []))
    completed = _round(sum(r["completed_credits"] for r in node_results))
    in_progress = _round(sum(r["in_progress_credits"] for r in node_results))
    planned = _round(sum(r["planned_credits"] for r in node_results))

    if min_credits <= 0:
        percent = 100.0
        is_complete = True
    else:
        percent = _round(min(100.0, 100.0 * completed / min_credits))
        is_complete = completed >= min_credits
        if is_complete and min_credits >= nominal_total:
            is_complete = all(r["satisfied"] for r in node_results)

    def collect(key: str) -> list[str]:
        return list(dict.fromkeys(c for r in node_results for c in r[key]))

    taken = sets["completed"] | sets["in_progress"] | sets["planned"]
    return {
        "category_id": category["category_id"],
        "label": category.get("label", category["category_id"]),
        "min_credits": min_credits,
        "completed_credits": completed,
        "in_progress_credits": in_progress,
        "planned_credits": planned,
        "percent_complete": percent,
        "is_complete": is_complete,
        "completed_courses": collect("completed_courses"),
        "in_progress_courses": collect("in_progress_courses"),
        "planned_courses": collect("planned_courses"),
        "remaining_courses": sorted(flatten_courses(category) - taken),
        "nodes": node_results,
    }


def evaluate_program(program: dict, sets: dict, mappings: list[dict] | None = None) -> dict:
    return _evaluate_program(program, sets, _mappings_by_path(mappings, [program]))


def _evaluate_program(program: dict, sets: dict, chosen_by_path: dict) -> dict:
    categories = [
        evaluate_category(program, category, sets, chosen_by_path)
        for category in program.get("categories", [])
    ]
    return {
        "program_id": program["program_id"],
        "label": program.get("label", program["program_id"]),
        "kind": program.get("kind", "major"),
        "categories": categories,
        "is_complete": bool(categories) and all(c["is_complete"] for c in categories),
        "completed_credits": _round(sum(c["completed_credits"] for c in categories)),
        "required_credits": sum(c["min_credits"] for c in categories),
    }


def overall_progress(program: dict, categories: list[dict]) -> dict:
    """Program-wide summary over evaluated category results."""
    required = sum(c["min_credits"] for c in categories)
    completed = _round(sum(c["completed_credits"] for c in categories))
    program_total = program.get("total_credits") or required
    percent = _round(min(100.0, 100.0 * completed / required)) if required > 0 else 0.0
    return {
        "total_categories": len(categories),
        "completed_categories": sum(1 for c in categories if c["is_complete"]),
        "required_credits": required,
        "completed_credits": completed,
        "in_progress_credits": _round(sum(c["in_progress_credits"] for c in categories)),
        "planned_credits": _round(sum(c["planned_credits"] for c in categories)),
        "percent_complete": percent,
        "program_total_credits": program_total,
        "remaining_credits": _round(max(0, program_total - completed)),
    }


def evaluate_progress(
    program: dict | None,
    records: list[dict],
    mappings: list[dict] | None = None,
    threads: list[dict] | None = None,
    minors: list[dict] | None = None,
) -> dict:
    """
    Progress entrypoint.

    Returns one result per category of the degree program plus thread and
    minor results evaluated with the same node logic. A missing program
    yields empty results, never an error.
    """
    sets = course_status_sets(records)
    if not program:
        return {
            "program_id": None,
            "categories": [],
            "threads": [],
            "minors": [],
            "overall": overall_progress({}, []),
        }

    # One claim table across the major, threads and minors.
    chosen_by_path = _mappings_by_path(mappings, [program, *(threads or []), *(minors or [])])
    main = _evaluate_program(program, sets, chosen_by_path)
    return {
        "program_id": program["program_id"],
        "label": program.get("label", program["program_id"]),
        "categories": main["categories"],
        "threads": [_evaluate_program(t, sets, chosen_by_path) for t in threads or []],
        "minors": [_evaluate_program(m, sets, chosen_by_path) for m in minors or []],
        "overall": overall_progress(program, main["categories"]),
    }
