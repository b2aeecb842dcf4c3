from __future__ import annotations

from fastapi.testclient import TestClient

from marketplace.models.user import Role
from tests.conftest import Actor, create_course, seed_actor


def _enroll(client: TestClient, actor: Actor, course_id: int) -> None:
    resp = client.post(
        "/api/enrollments", json={"courseId": course_id}, headers=actor.headers
    )
    assert resp.status_code == 201


def test_teaching_stats(client: TestClient, instructor: Actor) -> None:
    a = create_course(client, instructor, price="10.00")
    b = create_course(client, instructor, price="25.50")
    create_course(client, seed_actor(Role.INSTRUCTOR), price="99.00")

    s1, s2 = seed_actor(Role.STUDENT), seed_actor(Role.STUDENT)
    _enroll(client, s1, a["id"])
    _enroll(client, s2, a["id"])
    _enroll(client, s1, b["id"])
    for student, rating in ((s1, 4), (s2, 5)):
        client.post(
            f"/api/courses/{a['id']}/reviews",
            json={"rating": rating},
            headers=student.headers,
        )

    resp = client.get("/api/dashboard/stats", headers=instructor.headers)
    assert resp.status_code == 200
    assert resp.json() == {
        "totalCourses": 2,
        "totalStudents": 3,
        "totalRevenue": 35.5,
        "avgRating": 2.25,
    }


def test_teaching_stats_with_no_courses(client: TestClient, instructor: Actor) -> None:
    resp = client.get("/api/dashboard/stats", headers=instructor.headers)
    assert resp.json() == {
        "totalCourses": 0,
        "totalStudents": 0,
        "totalRevenue": 0.0,
        "avgRating": 0.0,
    }


def test_learning_stats(client: TestClient, instructor: Actor, student: Actor) -> None:
    a = create_course(client, instructor, duration=90)
    b = create_course(client, instructor, duration=45)
    create_course(client, instructor, duration=600)
    _enroll(client, student, a["id"])
    _enroll(client, student, b["id"])
    client.put(
        f"/api/enrollments/{a['id']}/progress",
        json={"progress": 100},
        headers=student.headers,
    )

    resp = client.get("/api/dashboard/stats", headers=student.headers)
    assert resp.status_code == 200
    assert resp.json() == {
        "enrolledCourses": 2,
        "completedCourses": 1,
        "inProgress": 1,
        "totalHours": 135,
    }


def test_admin_gets_learning_stats(client: TestClient, admin: Actor) -> None:
    data = client.get("/api/dashboard/stats", headers=admin.headers).json()
    assert data == {
        "enrolledCourses": 0,
        "completedCourses": 0,
        "inProgress": 0,
        "totalHours": 0,
    }


def test_stats_follow_role_change(client: TestClient, student: Actor) -> None:
    client.patch(
        "/api/user/role", json={"role": "instructor"}, headers=student.headers
    )
    data = client.get("/api/dashboard/stats", headers=student.headers).json()
    assert "totalCourses" in data


def test_stats_require_auth(client: TestClient) -> None:
    assert client.get("/api/dashboard/stats").status_code == 401
