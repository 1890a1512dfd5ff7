from coursehub.core.enums import RoleName
from tests.conftest import at


def test_requires_identity_headers(client, tenant):
    response = client.get(
        "/api/v1/lessons/check-conflicts",
        params={"start_time": at(10).isoformat(), "end_time": at(11).isoformat(), "room": "R1"},
    )
    assert response.status_code == 401


def test_check_conflicts_returns_camel_case(client, tenant, teacher, make_lesson, auth_headers):
    lesson = make_lesson(at(10), at(11), room="R1")

    response = client.get(
        "/api/v1/lessons/check-conflicts",
        params={
            "start_time": at(10, 30).isoformat(),
            "end_time": at(11, 30).isoformat(),
            "teacher_id": teacher.id,
            "room": "R2",
        },
        headers=auth_headers(tenant.id, RoleName.TEACHER),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["hasConflict"] is True
    (conflict,) = body["conflicts"]
    assert conflict["id"] == lesson.id
    assert conflict["conflictType"] == "teacher"
    assert conflict["teacherName"] == "Maria Lopez"
    assert conflict["className"] == "Piano - Beginners A"


def test_check_conflicts_rejects_inverted_interval(client, tenant, auth_headers):
    response = client.get(
        "/api/v1/lessons/check-conflicts",
        params={"start_time": at(11).isoformat(), "end_time": at(10).isoformat(), "room": "R1"},
        headers=auth_headers(tenant.id),
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_TIME_RANGE"


def test_create_lesson_and_conflict(client, tenant, teacher, school_class, auth_headers):
    body = {
        "class_id": school_class.id,
        "teacher_id": teacher.id,
        "title": "Ensemble",
        "start_time": at(10).isoformat(),
        "end_time": at(11).isoformat(),
        "room": "R1",
    }
    headers = auth_headers(tenant.id, RoleName.TEACHER)

    created = client.post("/api/v1/lessons", json=body, headers=headers)
    assert created.status_code == 201
    assert created.json()["status"] == "SCHEDULED"

    clash = client.post("/api/v1/lessons", json=body, headers=headers)
    assert clash.status_code == 409
    detail = clash.json()["detail"]
    assert detail["code"] == "LESSON_CONFLICT"
    assert detail["details"]["conflicts"][0]["conflict_type"] == "both"

    forced = client.post("/api/v1/lessons", params={"allow_conflicts": "true"}, json=body, headers=headers)
    assert forced.status_code == 201


def test_students_cannot_create_lessons(client, tenant, teacher, school_class, auth_headers):
    response = client.post(
        "/api/v1/lessons",
        json={
            "class_id": school_class.id,
            "teacher_id": teacher.id,
            "title": "Ensemble",
            "start_time": at(10).isoformat(),
            "end_time": at(11).isoformat(),
        },
        headers=auth_headers(tenant.id, RoleName.STUDENT),
    )
    assert response.status_code == 403


def test_lessons_are_tenant_scoped(client, tenant, other_tenant, make_lesson, auth_headers):
    lesson = make_lesson(at(10), at(11))

    assert client.get(f"/api/v1/lessons/{lesson.id}", headers=auth_headers(tenant.id)).status_code == 200
    assert client.get(f"/api/v1/lessons/{lesson.id}", headers=auth_headers(other_tenant.id)).status_code == 404


def test_status_transition(client, tenant, make_lesson, auth_headers):
    lesson = make_lesson(at(10), at(11))
    url = f"/api/v1/lessons/{lesson.id}/status"

    assert client.patch(url, json={"status": "COMPLETED"}, headers=auth_headers(tenant.id)).status_code == 422
    response = client.patch(url, json={"status": "IN_PROGRESS"}, headers=auth_headers(tenant.id))
    assert response.status_code == 200
    assert response.json()["status"] == "IN_PROGRESS"
