"""
Integration tests for the HTTP API

Tests the response envelope, gateway authentication, role checks and the
main admin and patient flows end to end.
"""
import uuid

import pytest

from carepath.api.auth import API_TOKEN


@pytest.fixture
async def program_with_module(catalog, make_program):
    program = await make_program("Detox-30", modules=[("Week 1", True)])
    module = (await catalog.list_modules(program.id))[0]
    return program, module


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["database"] == "ok"

    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == "CarePath API"


class TestAuthentication:
    async def test_missing_token(self, client):
        response = await client.get("/api/v1/categories")

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": {"message": "Authorization header missing"}}

    async def test_wrong_token(self, client, admin):
        response = await client.get(
            "/api/v1/categories",
            headers={"Authorization": "Bearer wrong", "X-User-Id": str(admin.id)},
        )

        assert response.status_code == 401

    async def test_unknown_user(self, client):
        response = await client.get(
            "/api/v1/categories",
            headers={"Authorization": f"Bearer {API_TOKEN}", "X-User-Id": str(uuid.uuid4())},
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Not authenticated"

    async def test_inactive_user(self, client, make_user, auth_headers):
        former = await make_user("patient", is_active=False)

        response = await client.get("/api/v1/patient/programs", headers=auth_headers(former))

        assert response.status_code == 401

    async def test_patient_cannot_use_admin_routes(self, client, patient, auth_headers):
        response = await client.post(
            "/api/v1/categories", json={"name": "Anxiety"}, headers=auth_headers(patient)
        )

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Admin access required"

    async def test_admin_cannot_use_patient_routes(self, client, admin, auth_headers):
        response = await client.get("/api/v1/patient/programs", headers=auth_headers(admin))

        assert response.status_code == 403


class TestEnvelope:
    async def test_success(self, client, admin, auth_headers):
        response = await client.post(
            "/api/v1/categories",
            json={"name": "Anxiety", "description": "Anxiety programs"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["name"] == "Anxiety"

    async def test_request_validation_is_400_with_field_details(self, client, admin, auth_headers):
        response = await client.post("/api/v1/categories", json={}, headers=auth_headers(admin))

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["message"] == "Name is required"
        assert body["error"]["details"] == {"name": ["Required"]}

    async def test_not_found(self, client, admin, auth_headers):
        response = await client.get(f"/api/v1/programs/{uuid.uuid4()}", headers=auth_headers(admin))

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Program not found"

    async def test_unknown_route(self, client):
        response = await client.get("/api/v1/no-such-thing")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": {"message": "Not Found"}}

    async def test_wrong_method(self, client):
        response = await client.delete("/health")

        assert response.status_code == 405
        assert response.json()["success"] is False
        assert response.json()["error"]["message"] == "Method Not Allowed"

    async def test_precondition_failed(self, client, admin, auth_headers, program_with_module):
        program, _ = program_with_module

        response = await client.delete(f"/api/v1/programs/{program.id}", headers=auth_headers(admin))

        assert response.status_code == 409
        assert response.json()["success"] is False


class TestAdminFlow:
    async def test_program_and_module_authoring(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        category = (await client.post("/api/v1/categories", json={"name": "Recovery"}, headers=headers)).json()
        program = (await client.post("/api/v1/programs", json={
            "title": "Detox-30", "category_id": category["data"]["id"], "duration_days": 30,
        }, headers=headers)).json()["data"]

        for title in ("Week 1", "Week 2", "Week 3"):
            created = await client.post(
                f"/api/v1/programs/{program['id']}/modules", json={"title": title}, headers=headers
            )
            assert created.status_code == 201
        modules = (await client.get(f"/api/v1/programs/{program['id']}/modules", headers=headers)).json()["data"]

        moved = await client.post(
            f"/api/v1/modules/{modules[2]['id']}/reorder", json={"new_position": 1}, headers=headers
        )
        reordered = (await client.get(f"/api/v1/programs/{program['id']}/modules", headers=headers)).json()["data"]

        assert moved.json()["data"]["sequence_number"] == 1
        assert [(m["title"], m["sequence_number"]) for m in reordered] == [
            ("Week 3", 1), ("Week 1", 2), ("Week 2", 3)
        ]

    async def test_batch_enrollment_reports_counts(self, client, admin, patient, catalog, make_program, auth_headers):
        category = await catalog.create_category("Substance Recovery")
        detox = await make_program("Detox-30", category=category)
        elsewhere = await make_program("Calm Mind")

        response = await client.post(
            f"/api/v1/patients/{patient.id}/programs/batch",
            json={
                "category_id": str(category.id),
                "program_ids": [str(detox.id), str(elsewhere.id)],
                "start_date": "2024-01-01",
            },
            headers=auth_headers(admin),
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["enrolled_count"] == 1
        assert data["requested_count"] == 2
        assert data["enrollments"][0]["expected_end_date"] == "2024-01-31"
        assert data["skipped"] == [
            {"program_id": str(elsewhere.id), "reason": "program does not belong to category"}
        ]

    async def test_illegal_transition(self, client, admin, patient, auth_headers, program_with_module):
        program, _ = program_with_module
        headers = auth_headers(admin)
        enrolled = (await client.post(
            f"/api/v1/patients/{patient.id}/programs",
            json={"program_id": str(program.id), "start_date": "2024-01-01"},
            headers=headers,
        )).json()["data"]
        await client.patch(f"/api/v1/enrollments/{enrolled['id']}", json={"status": "dropped"}, headers=headers)

        response = await client.patch(
            f"/api/v1/enrollments/{enrolled['id']}", json={"status": "in_progress"}, headers=headers
        )

        assert response.status_code == 400
        assert "status" in response.json()["error"]["details"]

    async def test_dashboard_requires_admin(self, client, admin, patient, auth_headers):
        assert (await client.get("/api/v1/dashboard/stats", headers=auth_headers(patient))).status_code == 403

        response = await client.get("/api/v1/dashboard/stats", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["data"]["total_patients"] == 1


class TestPatientFlow:
    async def test_progress_completes_enrollment(
        self, client, admin, patient, auth_headers, program_with_module
    ):
        program, module = program_with_module
        await client.post(
            f"/api/v1/patients/{patient.id}/programs",
            json={"program_id": str(program.id), "start_date": "2024-01-01"},
            headers=auth_headers(admin),
        )
        headers = auth_headers(patient)

        updated = await client.put(
            f"/api/v1/patient/modules/{module.id}/progress",
            json={"status": "completed", "time_spent_seconds": 600},
            headers=headers,
        )
        summary = await client.get(f"/api/v1/patient/programs/{program.id}/progress", headers=headers)

        assert updated.status_code == 200
        assert updated.json()["data"]["status"] == "completed"
        assert summary.json()["data"]["enrollment_status"] == "completed"
        assert summary.json()["data"]["completion_percentage"] == 100

    async def test_assessment_submission(self, client, admin, patient, auth_headers, program_with_module):
        _, module = program_with_module
        admin_headers = auth_headers(admin)
        assessment = (await client.post(
            f"/api/v1/modules/{module.id}/assessments",
            json={"title": "Readiness Check", "passing_score": 70},
            headers=admin_headers,
        )).json()["data"]
        for text, points in (("First step?", 7), ("Who to call?", 3)):
            await client.post(f"/api/v1/assessments/{assessment['id']}/questions", json={
                "question_text": text,
                "question_type": "multiple_choice",
                "points": points,
                "options": [{"option_text": "Right", "is_correct": True}, {"option_text": "Wrong"}],
            }, headers=admin_headers)

        headers = auth_headers(patient)
        view = (await client.get(f"/api/v1/assessments/{assessment['id']}", headers=headers)).json()["data"]
        assert all("is_correct" not in o for q in view["questions"] for o in q["options"])

        first, second = view["questions"]
        submitted = await client.post(f"/api/v1/assessments/{assessment['id']}/submit", json={"answers": [
            {"question_id": first["id"], "selected_option_id": first["options"][0]["id"]},
            {"question_id": second["id"], "selected_option_id": second["options"][1]["id"]},
        ]}, headers=headers)

        assert submitted.status_code == 201
        attempt = submitted.json()["data"]
        assert attempt["score"] == 70
        assert attempt["passed"] is True

        review = await client.get(f"/api/v1/attempts/{attempt['id']}/review", headers=headers)
        assert review.status_code == 200
        assert review.json()["data"]["questions"][1]["response"]["is_correct"] is False

    async def test_mood_entry(self, client, patient, auth_headers):
        headers = auth_headers(patient)

        created = await client.post(
            "/api/v1/patient/mood", json={"mood_type": "calm", "mood_score": 8}, headers=headers
        )
        listed = await client.get("/api/v1/patient/mood", headers=headers)

        assert created.status_code == 201
        assert [e["mood_type"] for e in listed.json()["data"]] == ["calm"]

    async def test_mood_score_out_of_range(self, client, patient, auth_headers):
        response = await client.post(
            "/api/v1/patient/mood", json={"mood_type": "calm", "mood_score": 12}, headers=auth_headers(patient)
        )

        assert response.status_code == 400
        assert "mood_score" in response.json()["error"]["details"]


class TestPatientDirectory:
    async def test_create_search_and_fetch(self, client, admin, auth_headers):
        headers = auth_headers(admin)

        created = await client.post("/api/v1/patients", json={
            "email": "jordan.lee@carepath.test", "first_name": "Jordan", "last_name": "Lee",
            "date_of_birth": "1990-01-01",
        }, headers=headers)
        duplicate = await client.post("/api/v1/patients", json={
            "email": "jordan.lee@carepath.test", "first_name": "Jo", "last_name": "Lee",
        }, headers=headers)
        found = await client.get("/api/v1/patients", params={"search": "lee"}, headers=headers)

        assert created.status_code == 201
        patient = created.json()["data"]
        assert patient["date_of_birth"] == "1990-01-01"
        assert duplicate.status_code == 400
        assert duplicate.json()["error"]["details"] == {"email": ["This email address is already registered"]}
        assert [p["id"] for p in found.json()["data"]] == [patient["id"]]

        record = await client.get(f"/api/v1/patients/{patient['id']}", headers=headers)
        assert record.json()["data"]["category"] is None

    async def test_recent_patients(self, client, admin, patient, auth_headers):
        response = await client.get("/api/v1/dashboard/recent-patients", headers=auth_headers(admin))

        assert response.status_code == 200
        assert [p["id"] for p in response.json()["data"]] == [str(patient.id)]


class TestPatientCategory:
    async def test_category_self_enrollment_and_assessments(
        self, client, admin, patient, catalog, make_program, auth_headers
    ):
        category = await catalog.create_category("Substance Recovery")
        await make_program("Detox-30", category=category)
        headers = auth_headers(patient)

        assert (await client.get("/api/v1/patient/category", headers=headers)).json()["data"] is None

        await client.post(
            f"/api/v1/patients/{patient.id}/category",
            json={"category_id": str(category.id), "start_date": "2024-01-01"},
            headers=auth_headers(admin),
        )
        mine = (await client.get("/api/v1/patient/category", headers=headers)).json()["data"]
        assert mine["category"]["name"] == "Substance Recovery"
        programs = (await client.get("/api/v1/patient/programs", headers=headers)).json()["data"]
        assert [p["program"]["title"] for p in programs] == ["Detox-30"]

        support = await make_program("Family Support", category=category, duration_days=14)
        enrolled = await client.post(f"/api/v1/patient/programs/{support.id}/enroll", headers=headers)
        again = await client.post(f"/api/v1/patient/programs/{support.id}/enroll", headers=headers)
        assert enrolled.status_code == 201
        assert again.status_code == 200
        assert again.json()["data"]["id"] == enrolled.json()["data"]["id"]

        listed = await client.get("/api/v1/patient/assessments", headers=headers)
        assert listed.status_code == 200
        assert listed.json()["data"] == {"available": [], "completed": []}

    async def test_other_category_assessments_are_refused(self, client, patient, catalog, auth_headers):
        other = await catalog.create_category("Anxiety")

        response = await client.get(
            "/api/v1/patient/assessments", params={"category_id": str(other.id)}, headers=auth_headers(patient)
        )

        assert response.status_code == 403
        assert response.json()["success"] is False
