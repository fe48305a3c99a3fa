"""
HTTP API tests against the shipped data/ tables.

Mapping tests use a distinct student_id each so the module-level mapping
store never leaks between tests.
"""

import pytest
import server

UPPER = "CS_BS::CS_ELECTIVES::UPPER"


@pytest.fixture(scope="module")
def client():
    server.app.config["TESTING"] = True
    with server.app.test_client() as c:
        yield c


def done(code, grade="A", credits=3, semester="Fall 2024"):
    return {"code": code, "status": "completed", "grade": grade, "credits": credits, "semester": semester}


class TestHealthAndCatalog:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "ok"
        assert data["programs"] == 4

    def test_security_headers(self, client):
        resp = client.get("/api/health")
        assert resp.headers.get("X-Frame-Options") == "DENY"
        assert resp.headers.get("X-Content-Type-Options") == "nosniff"
        assert resp.headers.get("Referrer-Policy") == "same-origin"

    def test_courses(self, client):
        courses = client.get("/api/courses").get_json()["courses"]
        assert len(courses) == 28
        cs1301 = next(c for c in courses if c["course_code"] == "CS 1301")
        assert cs1301["credits"] == 3
        assert cs1301["course_type"] == "Core"

    def test_programs(self, client):
        data = client.get("/api/programs").get_json()
        assert [m["program_id"] for m in data["majors"]] == ["CS_BS"]
        assert {t["program_id"] for t in data["threads"]} == {"CS_INTEL", "CS_SYS"}
        assert all(t["parent_program_id"] == "CS_BS" for t in data["threads"])
        assert [m["program_id"] for m in data["minors"]] == ["MATH_MINOR"]

    def test_unknown_api_route(self, client):
        assert client.get("/api/nope").status_code == 404


class TestInputValidation:
    def test_invalid_json(self, client):
        resp = client.post("/api/gpa", data="not json", content_type="application/json")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"

    @pytest.mark.parametrize("route", ["/api/gpa", "/api/progress", "/api/recommend", "/api/mappings"])
    @pytest.mark.parametrize("payload", [[1, 2], "CS 1301", 3])
    def test_non_object_body(self, client, route, payload):
        resp = client.post(route, json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"

    def test_records_not_a_list(self, client):
        resp = client.post("/api/progress", json={"program_id": "CS_BS", "records": "CS 1301"})
        assert resp.status_code == 400
        assert resp.get_json()["mode"] == "error"

    def test_fractional_credits(self, client):
        resp = client.post("/api/gpa", json={"records": [done("CS 1301", credits=3.5), done("CS 1331", grade="F")]})
        assert resp.status_code == 400
        assert "positive integer" in resp.get_json()["error"]["message"]

    def test_bad_course_code(self, client):
        resp = client.post("/api/gpa", json={"records": [done("not a course")]})
        assert resp.status_code == 400

    @pytest.mark.parametrize("body", [{"max_results": 0}, {"max_results": 51}, {"priority": "urgent"}])
    def test_bad_recommend_filters(self, client, body):
        resp = client.post("/api/recommend", json={"program_id": "CS_BS", "records": [], **body})
        assert resp.status_code == 400

    @pytest.mark.parametrize("body", [
        {"target_gpa": 5.0, "remaining_semesters": 2},
        {"target_gpa": "high", "remaining_semesters": 2},
        {"target_gpa": 3.0, "remaining_semesters": -1},
        {"target_gpa": 3.0},
    ])
    def test_bad_goal(self, client, body):
        resp = client.post("/api/gpa/goal", json={"records": [], **body})
        assert resp.status_code == 400


class TestProgress:
    def test_progress_shape(self, client):
        records = [done("CS 1301"), {"code": "CS 1331", "status": "in-progress", "credits": 3}]
        data = client.post("/api/progress", json={"program_id": "CS_BS", "records": records}).get_json()
        assert data["mode"] == "progress"
        assert data["program_id"] == "CS_BS"
        core = data["categories"][0]
        assert core["category_id"] == "CS_CORE"
        assert core["completed_credits"] == 3
        assert core["in_progress_credits"] == 3
        assert data["overall"]["program_total_credits"] == 126
        assert data["timeline"]["credits_per_semester"] == 15
        flex = {row["requirement_path"]: row for row in data["flexible"]}
        assert flex[UPPER]["progress_text"] == "0/2 selected"

    def test_program_by_label_with_thread(self, client):
        body = {"major": "Computer Science", "threads": ["Intelligence"], "records": [done("CS 3600")]}
        data = client.post("/api/progress", json=body).get_json()
        assert data["program_id"] == "CS_BS"
        assert len(data["threads"]) == 1
        assert data["threads"][0]["categories"][0]["is_complete"] is True

    def test_unknown_program_is_empty(self, client):
        data = client.post("/api/progress", json={"program_id": "EE_BS", "records": []}).get_json()
        assert data["categories"] == []
        assert data["timeline"]["estimated_semesters"] == 0

    def test_body_mappings_count(self, client):
        body = {
            "program_id": "CS_BS",
            "records": [done("CS 3600"), done("CS 4641", semester="Spring 2025")],
            "mappings": [
                {"requirement_path": UPPER, "course_code": "CS 3600"},
                {"requirement_path": UPPER, "course_code": "cs4641"},
            ],
        }
        data = client.post("/api/progress", json=body).get_json()
        electives = next(c for c in data["categories"] if c["category_id"] == "CS_ELECTIVES")
        assert electives["completed_credits"] == 6
        assert electives["is_complete"] is True


class TestGpa:
    def test_gpa(self, client):
        data = client.post("/api/gpa", json={"records": [done("CS 1301"), done("CS 1331", grade="B+")]}).get_json()
        assert data["mode"] == "gpa"
        assert data["cumulative_gpa"] == 3.65

    def test_goal(self, client):
        records = [done(f"CS {1000 + i}", grade="B") for i in range(10)]
        body = {"records": records, "target_gpa": 3.5, "remaining_semesters": 2}
        data = client.post("/api/gpa/goal", json=body).get_json()
        assert data["mode"] == "gpa_goal"
        assert data["required_future_gpa"] == 4.0
        assert data["is_achievable"] is True


class TestRecommend:
    def test_recommend(self, client):
        body = {"program_id": "CS_BS", "records": [done("CS 1301"), done("CS 1331")]}
        data = client.post("/api/recommend", json=body).get_json()
        assert data["mode"] == "recommendations"
        assert data["major"] == "Computer Science"
        recs = data["recommendations"]
        assert recs[0]["course_code"] == "CS 1332"
        assert recs[0]["score"] == 155
        assert recs[0]["priority"] == "high"
        assert "CS Core" in recs[0]["fills"]
        codes = [r["course_code"] for r in recs]
        assert "CS 1301" not in codes
        assert "CS 3600" not in codes
        assert len(recs) <= 10

    def test_max_results(self, client):
        body = {"program_id": "CS_BS", "records": [], "max_results": 3}
        assert len(client.post("/api/recommend", json=body).get_json()["recommendations"]) == 3

    def test_never_recommends_unsupported_prereq(self, client):
        body = {"program_id": "CS_BS", "records": [], "max_results": 50}
        codes = [r["course_code"] for r in client.post("/api/recommend", json=body).get_json()["recommendations"]]
        assert "CS 4699" not in codes


class TestMappings:
    def _add(self, client, sid, code, path=UPPER, **extra):
        body = {
            "student_id": sid, "program_id": "CS_BS", "requirement_path": path, "course_code": code,
            "records": [done(code)], **extra,
        }
        return client.post("/api/mappings", json=body)

    def test_add_list_remove(self, client):
        resp = self._add(client, "api-add", "CS 3600")
        assert resp.status_code == 200
        assert resp.get_json()["mapping"]["course_code"] == "CS 3600"

        listed = client.get("/api/mappings?student_id=api-add").get_json()["mappings"]
        assert [m["course_code"] for m in listed] == ["CS 3600"]

        body = {"student_id": "api-add", "requirement_path": UPPER, "course_code": "CS 3600"}
        resp = client.delete("/api/mappings", json=body)
        assert resp.get_json()["removed"] is True
        assert resp.get_json()["mappings"] == []
        assert client.delete("/api/mappings", json=body).get_json()["removed"] is False

    def test_slot_full(self, client):
        assert self._add(client, "api-full", "CS 3600").status_code == 200
        assert self._add(client, "api-full", "CS 4641").status_code == 200
        resp = self._add(client, "api-full", "CS 4476")
        assert resp.status_code == 409
        assert resp.get_json()["error"]["error_code"] == "SLOT_FULL"

    @pytest.mark.parametrize("code", ["CS 1332", "CS 4699"])
    def test_not_in_pool(self, client, code):
        resp = self._add(client, "api-pool", code)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["error_code"] == "NOT_IN_POOL"

    def test_not_in_records(self, client):
        resp = self._add(client, "api-records", "CS 3600", records=[done("CS 4641")])
        assert resp.get_json()["error"]["error_code"] == "NOT_IN_RECORDS"

    def test_unknown_requirement(self, client):
        resp = self._add(client, "api-unknown", "CS 3600", path="CS_BS::NOPE::X")
        assert resp.get_json()["error"]["error_code"] == "UNKNOWN_REQUIREMENT"

    def test_missing_records(self, client):
        body = {"student_id": "api-norecords", "requirement_path": UPPER, "course_code": "CS 3600"}
        resp = client.post("/api/mappings", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"
        assert client.get("/api/mappings?student_id=api-norecords").get_json()["mappings"] == []

    def test_shorthand_records(self, client):
        body = {
            "student_id": "api-shorthand", "program_id": "CS_BS", "requirement_path": UPPER,
            "course_code": "CS 3600", "completed_courses": "CS 3600",
        }
        assert client.post("/api/mappings", json=body).status_code == 200

    def test_missing_student_id(self, client):
        resp = client.post("/api/mappings", json={"requirement_path": UPPER, "course_code": "CS 3600"})
        assert resp.status_code == 400
        assert client.get("/api/mappings").status_code == 400

    def test_stored_mappings_feed_progress(self, client):
        self._add(client, "api-progress", "CS 3600")
        body = {"student_id": "api-progress", "program_id": "CS_BS", "records": [done("CS 3600")]}
        data = client.post("/api/progress", json=body).get_json()
        electives = next(c for c in data["categories"] if c["category_id"] == "CS_ELECTIVES")
        assert electives["completed_credits"] == 3
        flex = {row["requirement_path"]: row for row in data["flexible"]}
        assert flex[UPPER]["progress_text"] == "1/2 selected"

    def test_validate(self, client):
        body = {
            "program_id": "CS_BS",
            "mappings": [
                {"requirement_path": UPPER, "course_code": "CS 3600"},
                {"requirement_path": UPPER, "course_code": "CS 1332"},
            ],
        }
        data = client.post("/api/mappings/validate", json=body).get_json()
        assert data["is_valid"] is False
        assert [(e["course_code"], e["error_code"]) for e in data["errors"]] == [("CS 1332", "NOT_IN_POOL")]

    def test_options(self, client):
        body = {"program_id": "CS_BS", "requirement_path": UPPER, "mappings": []}
        options = client.post("/api/mappings/options", json=body).get_json()["options"]
        assert len(options) == 5
        assert options[0]["course_code"] == "CS 3251"
        assert all(o["course_code"] != "CS 4699" for o in options)


class TestCourseShorthand:
    def test_comma_string_builds_records(self, client):
        body = {"program_id": "CS_BS", "completed_courses": "cs1301, CS-1331", "in_progress_courses": ["CS 1332"]}
        data = client.post("/api/progress", json=body).get_json()
        core = data["categories"][0]
        assert core["completed_credits"] == 6
        assert core["in_progress_credits"] == 3
        assert data["not_in_catalog_warning"] is None

    def test_unknown_catalog_code_is_warning(self, client):
        body = {"program_id": "CS_BS", "completed_courses": "CS 1301, CS 9999"}
        data = client.post("/api/recommend", json=body).get_json()
        assert data["mode"] == "recommendations"
        assert data["not_in_catalog_warning"] == ["CS 9999"]
        assert "CS 1301" not in [r["course_code"] for r in data["recommendations"]]

    def test_malformed_code_rejected(self, client):
        resp = client.post("/api/recommend", json={"program_id": "CS_BS", "completed_courses": "CS 1301, banana"})
        assert resp.status_code == 400
        assert "banana" in resp.get_json()["error"]["message"]
