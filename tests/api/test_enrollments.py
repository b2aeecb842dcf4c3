"""Enrollment lifecycle: enroll, duplicate rejection, progress, completion."""

from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from marketplace.models.user import Role
from tests.conftest import Actor, create_course, seed_actor


def _sample(name: str) -> float:
    return REGISTRY.get_sample_value(name) or 0.0


def _enroll(client: TestClient, actor: Actor, course_id: int):
    return client.post(
        "/api/enrollments", json={"courseId": course_id}, headers=actor.headers
    )


def test_enroll_creates_enrollment(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    before = _sample("enrollments_created_total")

    resp = _enroll(client, student, course["id"])
    assert resp.status_code == 201
    enrollment = resp.json()
    assert enrollment["userId"] == student.id
    assert enrollment["courseId"] == course["id"]
    assert Decimal(enrollment["progress"]) == 0
    assert enrollment["completedAt"] is None
    assert _sample("enrollments_created_total") - before == 1


def test_enroll_bumps_enrollment_count(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    _enroll(client, student, course["id"])
    _enroll(client, seed_actor(Role.STUDENT), course["id"])
    detail = client.get(f"/api/courses/{course['id']}").json()
    assert detail["enrollmentCount"] == 2


def test_duplicate_enrollment_rejected(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    assert _enroll(client, student, course["id"]).status_code == 201
    before = _sample("enrollments_duplicate_total")

    resp = _enroll(client, student, course["id"])
    assert resp.status_code == 400
    assert resp.json() == {"message": "Already enrolled in this course"}
    assert _sample("enrollments_duplicate_total") - before == 1

    detail = client.get(f"/api/courses/{course['id']}").json()
    assert detail["enrollmentCount"] == 1


def test_enroll_in_unknown_course(client: TestClient, student: Actor) -> None:
    resp = _enroll(client, student, 404)
    assert resp.status_code == 404
    assert resp.json() == {"message": "Course not found"}


def test_enroll_requires_auth(client: TestClient, instructor: Actor) -> None:
    course = create_course(client, instructor)
    resp = client.post("/api/enrollments", json={"courseId": course["id"]})
    assert resp.status_code == 401


def test_my_enrollments_include_course(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    older = create_course(client, instructor, title="Older")
    newer = create_course(client, instructor, title="Newer")
    _enroll(client, student, older["id"])
    _enroll(client, student, newer["id"])

    resp = client.get("/api/enrollments", headers=student.headers)
    assert resp.status_code == 200
    titles = [e["course"]["title"] for e in resp.json()]
    assert titles == ["Newer", "Older"]


def test_enrollments_are_per_user(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    _enroll(client, student, course["id"])
    other = seed_actor(Role.STUDENT)
    assert client.get("/api/enrollments", headers=other.headers).json() == []


# ---- progress ----


def test_update_progress(client: TestClient, instructor: Actor, student: Actor) -> None:
    course = create_course(client, instructor)
    _enroll(client, student, course["id"])

    resp = client.put(
        f"/api/enrollments/{course['id']}/progress",
        json={"progress": 40},
        headers=student.headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert Decimal(data["progress"]) == Decimal("40")
    assert data["lastAccessedAt"] is not None
    assert data["completedAt"] is None


def test_completion_is_latched(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    _enroll(client, student, course["id"])
    url = f"/api/enrollments/{course['id']}/progress"

    done = client.put(url, json={"progress": 100}, headers=student.headers).json()
    assert done["completedAt"] is not None

    again = client.put(url, json={"progress": 100}, headers=student.headers).json()
    assert again["completedAt"] == done["completedAt"]

    back = client.put(url, json={"progress": 60}, headers=student.headers).json()
    assert Decimal(back["progress"]) == Decimal("60")
    assert back["completedAt"] == done["completedAt"]


def test_progress_out_of_range(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    _enroll(client, student, course["id"])
    url = f"/api/enrollments/{course['id']}/progress"
    for bad in (101, -1):
        resp = client.put(url, json={"progress": bad}, headers=student.headers)
        assert resp.status_code == 400


def test_progress_without_enrollment(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    resp = client.put(
        f"/api/enrollments/{course['id']}/progress",
        json={"progress": 10},
        headers=student.headers,
    )
    assert resp.status_code == 404
    assert resp.json() == {"message": "Enrollment not found"}


# ---- teacher view ----


def test_owner_sees_course_enrollments(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    _enroll(client, student, course["id"])

    resp = client.get(
        f"/api/courses/{course['id']}/enrollments", headers=instructor.headers
    )
    assert resp.status_code == 200
    [row] = resp.json()
    assert row["user"]["id"] == student.id


def test_student_cannot_see_course_enrollments(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    _enroll(client, student, course["id"])
    resp = client.get(
        f"/api/courses/{course['id']}/enrollments", headers=student.headers
    )
    assert resp.status_code == 403
