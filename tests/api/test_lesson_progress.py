"""Per-lesson progress upsert and lookup."""

from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tests.conftest import Actor, create_course, create_lesson, create_section


@pytest.fixture
def lesson(client: TestClient, instructor: Actor) -> dict:
    course = create_course(client, instructor)
    section = create_section(client, instructor, course["id"])
    return create_lesson(client, instructor, section["id"])


def _post(client: TestClient, actor: Actor, lesson_id: int, **fields):
    return client.post(
        "/api/lesson-progress",
        json={"lessonId": lesson_id, **fields},
        headers=actor.headers,
    )


def test_first_update_creates_record(
    client: TestClient, student: Actor, lesson: dict
) -> None:
    resp = _post(client, student, lesson["id"], watchTime=30)
    assert resp.status_code == 200
    record = resp.json()
    assert record["userId"] == student.id
    assert record["lessonId"] == lesson["id"]
    assert record["completed"] is False
    assert record["watchTime"] == 30
    assert record["completedAt"] is None


def test_second_update_replaces_same_record(
    client: TestClient, student: Actor, lesson: dict
) -> None:
    first = _post(client, student, lesson["id"], watchTime=30).json()
    second = _post(client, student, lesson["id"], watchTime=95, completed=True).json()

    assert second["id"] == first["id"]
    assert second["watchTime"] == 95
    assert second["completed"] is True
    assert second["completedAt"] is not None


def test_uncompleting_keeps_completed_at(
    client: TestClient, student: Actor, lesson: dict
) -> None:
    done = _post(client, student, lesson["id"], completed=True).json()
    undone = _post(client, student, lesson["id"], completed=False).json()
    assert undone["completed"] is False
    assert undone["completedAt"] == done["completedAt"]


def test_get_lesson_progress(client: TestClient, student: Actor, lesson: dict) -> None:
    _post(client, student, lesson["id"], watchTime=12)
    resp = client.get(f"/api/lesson-progress/{lesson['id']}", headers=student.headers)
    assert resp.status_code == 200
    assert resp.json()["watchTime"] == 12


def test_get_lesson_progress_missing(
    client: TestClient, student: Actor, lesson: dict
) -> None:
    resp = client.get(f"/api/lesson-progress/{lesson['id']}", headers=student.headers)
    assert resp.status_code == 404
    assert resp.json() == {"message": "Lesson progress not found"}


def test_progress_for_unknown_lesson(client: TestClient, student: Actor) -> None:
    resp = _post(client, student, 9999, completed=True)
    assert resp.status_code == 404
    assert resp.json() == {"message": "Lesson not found"}


def test_negative_watch_time_rejected(
    client: TestClient, student: Actor, lesson: dict
) -> None:
    resp = _post(client, student, lesson["id"], watchTime=-5)
    assert resp.status_code == 400


def test_lesson_completion_does_not_touch_enrollment(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    section = create_section(client, instructor, course["id"])
    only = create_lesson(client, instructor, section["id"])
    client.post(
        "/api/enrollments", json={"courseId": course["id"]}, headers=student.headers
    )

    _post(client, student, only["id"], completed=True)

    [enrollment] = client.get("/api/enrollments", headers=student.headers).json()
    assert Decimal(enrollment["progress"]) == 0
    assert enrollment["completedAt"] is None


def test_lesson_with_progress_cannot_be_deleted(
    client: TestClient, instructor: Actor, student: Actor, lesson: dict
) -> None:
    _post(client, student, lesson["id"], watchTime=1)
    resp = client.delete(f"/api/lessons/{lesson['id']}", headers=instructor.headers)
    assert resp.status_code == 400
    assert resp.json() == {"message": "Lesson still has progress records"}


def test_only_completed_updates_count_as_completions(
    client: TestClient, student: Actor, lesson: dict
) -> None:
    before = REGISTRY.get_sample_value("lessons_completed_total") or 0.0
    _post(client, student, lesson["id"], watchTime=10)
    _post(client, student, lesson["id"], completed=True)
    after = REGISTRY.get_sample_value("lessons_completed_total") or 0.0
    assert after - before == 1
