import os
import sys
import time

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pandas as pd
from flask import Flask, g, jsonify, request
from dotenv import load_dotenv

from data_loader import load_data
from flexible import (
    InMemoryMappingSink,
    StudentLocks,
    flexible_progress,
    pool_options,
    propose_mapping,
    remove_mapping,
    validate_all,
)
from gpa import compute_gpa, required_gpa_for_goal
from normalizer import normalize_code, normalize_input
from progress import evaluate_progress
from recommender import PRIORITIES, recommend as recommend_courses
from timeline import estimate_timeline
from validators import validate_course_records

load_dotenv()

app = Flask(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)
_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")
_env_data_path = os.environ.get("DATA_PATH")
if not _env_data_path:
    DATA_PATH = _DEFAULT_DATA_PATH
elif not os.path.isabs(_env_data_path):
    DATA_PATH = os.path.join(PROJECT_ROOT, _env_data_path)
else:
    DATA_PATH = _env_data_path


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
_DEFAULT_CREDITS_PER_SEMESTER = _env_int("DEFAULT_CREDITS_PER_SEMESTER", 15, minimum=1)
_MAX_RECOMMENDATIONS = _env_int("MAX_RECOMMENDATIONS", 10, minimum=1)

# Mapping writes: one critical section per student id around read-modify-write.
_mapping_sink = InMemoryMappingSink()
_student_locks = StudentLocks()

# ── Startup data load ──────────────────────────────────────────────────────────
try:
    _data = load_data(DATA_PATH)
    print(f"[OK] Loaded {len(_data['catalog_codes'])} courses and {len(_data['programs'])} programs from {DATA_PATH}")
except FileNotFoundError:
    print(f"[FATAL] Data path not found: {DATA_PATH}", file=sys.stderr)
    sys.exit(1)
except Exception as exc:
    print(f"[FATAL] Failed to load data: {exc}", file=sys.stderr)
    sys.exit(1)


# -- Request timing --------------------------------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


def _error_response(error_code: str, message: str, status: int):
    return jsonify({
        "mode": "error",
        "error": {"error_code": error_code, "message": message},
    }), status


# -- Health endpoint --------------------------------------------------------
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "courses": len(_data["catalog_codes"]),
        "programs": len(_data["programs"]),
    })


# -- Input validation ------------------------------------------------------
def _json_body():
    """Request JSON when it is an object; None for invalid JSON, arrays and scalars."""
    body = request.get_json(force=True, silent=True)
    return body if isinstance(body, dict) else None


def _validate_records_body(body):
    """Returns (error_code, message) on invalid input, (None, None) on success."""
    if body is None:
        return "INVALID_INPUT", "Request body must be valid JSON."
    return validate_course_records(body.get("records", []))


def _validate_recommend_body(body):
    err_code, err_msg = _validate_records_body(body)
    if err_code:
        return err_code, err_msg
    max_raw = body.get("max_results")
    if max_raw not in (None, ""):
        try:
            max_results = int(max_raw)
            if not (1 <= max_results <= 50):
                raise ValueError
        except (TypeError, ValueError):
            return "INVALID_INPUT", "max_results must be an integer between 1 and 50."
    priority = str(body.get("priority") or "all").strip().lower()
    if priority != "all" and priority not in PRIORITIES:
        return "INVALID_INPUT", "priority must be one of high, medium, low, all."
    return None, None


def _validate_goal_body(body):
    err_code, err_msg = _validate_records_body(body)
    if err_code:
        return err_code, err_msg
    try:
        target = float(body.get("target_gpa"))
        if not (0.0 <= target <= 4.0):
            raise ValueError
    except (TypeError, ValueError):
        return "INVALID_INPUT", "target_gpa must be a number between 0.0 and 4.0."
    for field in ("remaining_semesters", "credits_per_semester"):
        raw = body.get(field)
        if field == "credits_per_semester" and raw in (None, ""):
            continue
        try:
            if int(raw) < 0:
                raise ValueError
        except (TypeError, ValueError):
            return "INVALID_INPUT", f"{field} must be a non-negative integer."
    return None, None


def _validate_mapping_body(body):
    if body is None:
        return "INVALID_INPUT", "Request body must be valid JSON."
    if not str(body.get("student_id") or "").strip():
        return "INVALID_INPUT", "student_id is required."
    if not str(body.get("requirement_path") or "").strip():
        return "INVALID_INPUT", "requirement_path is required."
    if not normalize_code(body.get("course_code")):
        return "INVALID_INPUT", f"'{body.get('course_code')}' is not a valid course code."
    return None, None


# -- Program resolution ------------------------------------------------------
def _resolve_program(raw):
    """Program by id or by label; None when unknown or blank."""
    key = str(raw or "").strip()
    if not key:
        return None
    programs = _data["programs"]
    if key in programs:
        return programs[key]
    if key.upper() in programs:
        return programs[key.upper()]
    pid = _data["programs_by_label"].get(key)
    return programs.get(pid) if pid else None


def _resolve_programs(raw_list, kind: str) -> list[dict]:
    out = []
    for raw in raw_list or []:
        program = _resolve_program(raw)
        if program is not None and program["kind"] == kind and program not in out:
            out.append(program)
    return out


def _selected_programs(body) -> tuple[dict | None, list[dict], list[dict]]:
    program = _resolve_program(body.get("program_id") or body.get("major"))
    threads = _resolve_programs(body.get("threads"), "thread")
    minors = _resolve_programs(body.get("minors"), "minor")
    return program, threads, minors


def _coerce_course_list(raw_value) -> str:
    """Accept either a comma-delimited string or a JSON array of course codes."""
    if raw_value is None:
        return ""
    if isinstance(raw_value, list):
        return ", ".join(str(item) for item in raw_value if item)
    return str(raw_value)


def _expand_course_shorthand(body) -> tuple[str | None, str | None, list[str]]:
    """
    Build body["records"] from completed_courses / in_progress_courses when
    no records list was sent. Credits come from the catalog.

    Returns (error_code, message, not_in_catalog). Codes missing from the
    catalog are skipped and reported back, never fatal.
    """
    if body is None or "records" in body:
        return None, None, []
    if "completed_courses" not in body and "in_progress_courses" not in body:
        return None, None, []

    catalog_codes = _data["catalog_codes"]
    comp_result = normalize_input(_coerce_course_list(body.get("completed_courses")), catalog_codes)
    ip_result = normalize_input(_coerce_course_list(body.get("in_progress_courses")), catalog_codes)
    invalid = comp_result["invalid"] + ip_result["invalid"]
    if invalid:
        return "INVALID_INPUT", f"Unrecognized course code(s): {', '.join(invalid)}", []

    _cdf = _data["courses_df"]
    credits_lookup = dict(zip(
        _cdf["course_code"].astype(str),
        _cdf["credits"].apply(lambda x: int(x) if pd.notna(x) and x > 0 else 3),
    ))
    records = [{"code": c, "status": "completed", "credits": credits_lookup[c]} for c in comp_result["valid"]]
    records += [
        {"code": c, "status": "in-progress", "credits": credits_lookup[c]}
        for c in ip_result["valid"]
        if c not in comp_result["valid"]
    ]
    body["records"] = records
    return None, None, comp_result["not_in_catalog"] + ip_result["not_in_catalog"]


def _student_id(body) -> str:
    return str(body.get("student_id") or "").strip()


def _body_mappings(body) -> list[dict]:
    if isinstance(body.get("mappings"), list):
        return [
            {
                "requirement_path": str(m.get("requirement_path", "") or "").strip(),
                "course_code": normalize_code(m.get("course_code")) or str(m.get("course_code") or "").strip(),
            }
            for m in body["mappings"]
            if isinstance(m, dict)
        ]
    sid = _student_id(body)
    return _mapping_sink.get_mappings(sid) if sid else []


def _json_safe_records(df: pd.DataFrame, cols: list[str]) -> list[dict]:
    df = df.copy()
    for col in cols:
        if col not in df.columns:
            df[col] = None
    df = df[cols].astype(object).where(pd.notna(df[cols]), None)
    return df.to_dict(orient="records")


# ── 500 handler ────────────────────────────────────────────────────────────────
@app.errorhandler(Exception)
def handle_unexpected_error(e):
    print(f"[WARN] Unhandled error on {request.path}: {e!r}", file=sys.stderr)
    return _error_response("SERVER_ERROR", "An unexpected server error occurred.", 500)


# ── Routes ─────────────────────────────────────────────────────────────────────
def get_courses():
    cols = ["course_code", "course_name", "credits", "prereq_hard", "course_type"]
    return jsonify({"courses": _json_safe_records(_data["courses_df"], cols)})


def get_programs():
    """Program catalog for the major / thread / minor selectors."""
    payload = {"majors": [], "threads": [], "minors": []}
    for pid in sorted(_data["programs"]):
        program = _data["programs"][pid]
        row = {
            "program_id": pid,
            "label": program["label"],
            "total_credits": program["total_credits"],
        }
        if program["kind"] == "thread":
            row["parent_program_id"] = program.get("parent_program_id")
            payload["threads"].append(row)
        elif program["kind"] == "minor":
            payload["minors"].append(row)
        else:
            payload["majors"].append(row)
    return jsonify(payload)


def progress_endpoint():
    body = _json_body()
    err_code, err_msg, not_in_catalog = _expand_course_shorthand(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)
    err_code, err_msg = _validate_records_body(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)

    program, threads, minors = _selected_programs(body)
    mappings = _body_mappings(body)
    records = body.get("records", [])
    result = evaluate_progress(program, records, mappings, threads=threads, minors=minors)

    credits_per_semester = body.get("credits_per_semester") or _DEFAULT_CREDITS_PER_SEMESTER
    try:
        credits_per_semester = int(credits_per_semester)
    except (TypeError, ValueError):
        credits_per_semester = _DEFAULT_CREDITS_PER_SEMESTER

    return jsonify({
        "mode": "progress",
        **result,
        "flexible": flexible_progress([p for p in [program, *threads, *minors] if p], mappings),
        "timeline": estimate_timeline(result["overall"], credits_per_semester),
        "not_in_catalog_warning": not_in_catalog or None,
    })


def gpa_endpoint():
    body = _json_body()
    err_code, err_msg = _validate_records_body(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)
    return jsonify({"mode": "gpa", **compute_gpa(body.get("records", []))})


def gpa_goal_endpoint():
    body = _json_body()
    err_code, err_msg = _validate_goal_body(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)
    result = required_gpa_for_goal(
        body.get("records", []),
        float(body["target_gpa"]),
        int(body["remaining_semesters"]),
        int(body.get("credits_per_semester") or _DEFAULT_CREDITS_PER_SEMESTER),
    )
    return jsonify({"mode": "gpa_goal", **result})


def recommend():
    body = _json_body()
    err_code, err_msg, not_in_catalog = _expand_course_shorthand(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)
    err_code, err_msg = _validate_recommend_body(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)

    program, threads, minors = _selected_programs(body)
    major = program["label"] if program else str(body.get("major") or "").strip()
    thread_names = [t["label"] for t in threads] or [
        str(t) for t in body.get("threads") or [] if str(t or "").strip()
    ]
    filters = {
        "max_results": body.get("max_results") or _MAX_RECOMMENDATIONS,
        "priority": body.get("priority") or "all",
    }

    recs = recommend_courses(
        body.get("records", []),
        _data["courses_df"],
        major,
        thread_names,
        filters=filters,
        tables=_data["heuristics"],
        programs=[p for p in [program, *threads, *minors] if p],
        prereq_map=_data["prereq_map"],
        reverse_map=_data["reverse_map"],
    )
    return jsonify({
        "mode": "recommendations",
        "major": major,
        "recommendations": recs,
        "not_in_catalog_warning": not_in_catalog or None,
    })


def list_mappings():
    sid = str(request.args.get("student_id") or "").strip()
    if not sid:
        return _error_response("INVALID_INPUT", "student_id is required.", 400)
    return jsonify({"mode": "mappings", "student_id": sid, "mappings": _mapping_sink.get_mappings(sid)})


def add_mapping():
    body = _json_body()
    err_code, err_msg, _ = _expand_course_shorthand(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)
    err_code, err_msg = _validate_mapping_body(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)
    if not isinstance(body.get("records"), list):
        return _error_response("INVALID_INPUT", "records is required to map a course.", 400)
    err_code, err_msg = validate_course_records(body["records"])
    if err_code:
        return _error_response(err_code, err_msg, 400)

    sid = _student_id(body)
    program, threads, minors = _selected_programs(body)
    with _student_locks.hold(sid):
        current = _mapping_sink.get_mappings(sid)
        mapping, error = propose_mapping(
            current,
            [p for p in [program, *threads, *minors] if p],
            body["requirement_path"],
            body["course_code"],
            records=body["records"],
            student_id=sid,
            sink=_mapping_sink,
        )
    if error:
        return jsonify({"mode": "error", "error": error}), 409
    return jsonify({"mode": "mapping", "mapping": mapping, "mappings": current})


def delete_mapping():
    body = _json_body()
    err_code, err_msg = _validate_mapping_body(body)
    if err_code:
        return _error_response(err_code, err_msg, 400)

    sid = _student_id(body)
    with _student_locks.hold(sid):
        current = _mapping_sink.get_mappings(sid)
        removed = remove_mapping(
            current,
            body["requirement_path"],
            body["course_code"],
            student_id=sid,
            sink=_mapping_sink,
        )
    return jsonify({"mode": "mapping", "removed": removed, "mappings": current})


def validate_mappings_endpoint():
    body = _json_body()
    if body is None:
        return _error_response("INVALID_INPUT", "Request body must be valid JSON.", 400)
    err_code, err_msg = validate_course_records(body.get("records"))
    if err_code:
        return _error_response(err_code, err_msg, 400)

    program, threads, minors = _selected_programs(body)
    report = validate_all(
        _body_mappings(body),
        [p for p in [program, *threads, *minors] if p],
        records=body.get("records"),
    )
    return jsonify({"mode": "mapping_report", **report})


def mapping_options_endpoint():
    body = _json_body()
    if body is None or not str(body.get("requirement_path") or "").strip():
        return _error_response("INVALID_INPUT", "requirement_path is required.", 400)

    program, threads, minors = _selected_programs(body)
    options = pool_options(
        [p for p in [program, *threads, *minors] if p],
        str(body["requirement_path"]).strip(),
        _data["courses_df"],
        _body_mappings(body),
    )
    return jsonify({"mode": "mapping_options", "options": options})


app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])
app.add_url_rule("/api/courses", endpoint="api_courses", view_func=get_courses, methods=["GET"])
app.add_url_rule("/api/programs", endpoint="api_programs", view_func=get_programs, methods=["GET"])
app.add_url_rule("/api/progress", endpoint="api_progress", view_func=progress_endpoint, methods=["POST"])
app.add_url_rule("/api/gpa", endpoint="api_gpa", view_func=gpa_endpoint, methods=["POST"])
app.add_url_rule("/api/gpa/goal", endpoint="api_gpa_goal", view_func=gpa_goal_endpoint, methods=["POST"])
app.add_url_rule("/api/recommend", endpoint="api_recommend", view_func=recommend, methods=["POST"])
app.add_url_rule("/api/mappings", endpoint="api_mappings_list", view_func=list_mappings, methods=["GET"])
app.add_url_rule("/api/mappings", endpoint="api_mappings_add", view_func=add_mapping, methods=["POST"])
app.add_url_rule("/api/mappings", endpoint="api_mappings_delete", view_func=delete_mapping, methods=["DELETE"])
app.add_url_rule(
    "/api/mappings/validate", endpoint="api_mappings_validate",
    view_func=validate_mappings_endpoint, methods=["POST"],
)
app.add_url_rule(
    "/api/mappings/options", endpoint="api_mappings_options",
    view_func=mapping_options_endpoint, methods=["POST"],
)


# -- API catch-all (404 for unknown /api/* routes) -------------------
@app.route("/api/<path:rest>", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
def api_catch_all(rest):
    return jsonify({"error": f"/api/{rest} not found"}), 404


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
