"""Course catalogue: create, list/filter, update, delete."""

from __future__ import annotations

from fastapi.testclient import TestClient

from marketplace.models.user import Role
from tests.conftest import Actor, create_course, create_section, seed_actor


def test_list_courses_empty(client: TestClient) -> None:
    resp = client.get("/api/courses")
    assert resp.status_code == 200
    assert resp.json() == []


def test_instructor_creates_course(client: TestClient, instructor: Actor) -> None:
    course = create_course(
        client,
        instructor,
        title="Async Python",
        price="19.50",
        duration=90,
        level="intermediate",
    )
    assert course["teacherId"] == instructor.id
    assert course["price"] == "19.50"
    assert course["level"] == "intermediate"
    assert course["rating"] == "0"
    assert course["reviewCount"] == 0
    assert course["enrollmentCount"] == 0


def test_teacher_id_in_body_is_ignored(
    client: TestClient, instructor: Actor, admin: Actor
) -> None:
    course = create_course(client, instructor, teacherId=admin.id)
    assert course["teacherId"] == instructor.id


def test_student_cannot_create_course(client: TestClient, student: Actor) -> None:
    resp = client.post(
        "/api/courses",
        json={"title": "Nope", "price": "1.00"},
        headers=student.headers,
    )
    assert resp.status_code == 403
    assert resp.json() == {"message": "Insufficient permissions"}


def test_anonymous_cannot_create_course(client: TestClient) -> None:
    resp = client.post("/api/courses", json={"title": "Nope", "price": "1.00"})
    assert resp.status_code == 401


def test_create_course_rejects_negative_price(
    client: TestClient, instructor: Actor
) -> None:
    resp = client.post(
        "/api/courses",
        json={"title": "Cheap", "price": "-1"},
        headers=instructor.headers,
    )
    assert resp.status_code == 400
    assert resp.json()["message"].startswith("price:")


def test_create_course_requires_title(client: TestClient, instructor: Actor) -> None:
    resp = client.post(
        "/api/courses", json={"price": "5.00"}, headers=instructor.headers
    )
    assert resp.status_code == 400
    assert "title" in resp.json()["message"]


def test_get_unknown_course(client: TestClient) -> None:
    resp = client.get("/api/courses/4242")
    assert resp.status_code == 404
    assert resp.json() == {"message": "Course not found"}


# ---- listing and filters ----


def test_list_is_newest_first(client: TestClient, instructor: Actor) -> None:
    first = create_course(client, instructor, title="First")
    second = create_course(client, instructor, title="Second")
    ids = [c["id"] for c in client.get("/api/courses").json()]
    assert ids == [second["id"], first["id"]]


def test_filter_by_search_matches_title_and_description(
    client: TestClient, instructor: Actor
) -> None:
    by_title = create_course(client, instructor, title="Mastering PYTHON")
    by_desc = create_course(
        client, instructor, title="Data work", description="pandas and python"
    )
    create_course(client, instructor, title="Rust basics")

    resp = client.get("/api/courses", params={"search": "python"})
    ids = {c["id"] for c in resp.json()}
    assert ids == {by_title["id"], by_desc["id"]}


def test_filter_by_teacher(client: TestClient, instructor: Actor) -> None:
    other = seed_actor(Role.INSTRUCTOR)
    mine = create_course(client, instructor)
    create_course(client, other)

    resp = client.get("/api/courses", params={"teacherId": instructor.id})
    assert [c["id"] for c in resp.json()] == [mine["id"]]


def test_filter_by_category(
    client: TestClient, instructor: Actor, admin: Actor
) -> None:
    cat = client.post(
        "/api/categories", json={"name": "Data"}, headers=admin.headers
    ).json()
    in_cat = create_course(client, instructor, categoryId=cat["id"])
    create_course(client, instructor)

    resp = client.get("/api/courses", params={"categoryId": cat["id"]})
    assert [c["id"] for c in resp.json()] == [in_cat["id"]]


def test_filter_by_published(client: TestClient, instructor: Actor) -> None:
    live = create_course(client, instructor, published=True)
    draft = create_course(client, instructor, published=False)

    published = client.get("/api/courses", params={"published": "true"}).json()
    drafts = client.get("/api/courses", params={"published": "false"}).json()
    assert [c["id"] for c in published] == [live["id"]]
    assert [c["id"] for c in drafts] == [draft["id"]]


def test_filters_combine(client: TestClient, instructor: Actor) -> None:
    match = create_course(client, instructor, title="Go concurrency", published=True)
    create_course(client, instructor, title="Go basics", published=False)

    resp = client.get("/api/courses", params={"search": "go", "published": "true"})
    assert [c["id"] for c in resp.json()] == [match["id"]]


# ---- update ----


def test_owner_updates_course(client: TestClient, instructor: Actor) -> None:
    course = create_course(client, instructor, title="Old", price="10.00")
    resp = client.put(
        f"/api/courses/{course['id']}",
        json={"title": "New"},
        headers=instructor.headers,
    )
    assert resp.status_code == 200
    updated = resp.json()
    assert updated["title"] == "New"
    assert updated["price"] == "10.00"


def test_update_can_clear_nullable_field(
    client: TestClient, instructor: Actor
) -> None:
    course = create_course(client, instructor, description="something")
    resp = client.put(
        f"/api/courses/{course['id']}",
        json={"description": None},
        headers=instructor.headers,
    )
    assert resp.status_code == 200
    assert resp.json()["description"] is None


def test_update_rejects_null_title(client: TestClient, instructor: Actor) -> None:
    course = create_course(client, instructor)
    resp = client.put(
        f"/api/courses/{course['id']}",
        json={"title": None},
        headers=instructor.headers,
    )
    assert resp.status_code == 400
    assert "title cannot be null" in resp.json()["message"]


def test_other_instructor_cannot_update(client: TestClient, instructor: Actor) -> None:
    course = create_course(client, instructor)
    intruder = seed_actor(Role.INSTRUCTOR)
    resp = client.put(
        f"/api/courses/{course['id']}",
        json={"title": "Mine now"},
        headers=intruder.headers,
    )
    assert resp.status_code == 403
    assert resp.json() == {"message": "You can only modify your own courses"}


def test_admin_can_update_any_course(
    client: TestClient, instructor: Actor, admin: Actor
) -> None:
    course = create_course(client, instructor)
    resp = client.put(
        f"/api/courses/{course['id']}",
        json={"published": False},
        headers=admin.headers,
    )
    assert resp.status_code == 200
    assert resp.json()["published"] is False
    assert resp.json()["teacherId"] == instructor.id


def test_update_unknown_course_is_404(client: TestClient, admin: Actor) -> None:
    resp = client.put("/api/courses/999", json={"title": "x"}, headers=admin.headers)
    assert resp.status_code == 404


# ---- delete ----


def test_owner_deletes_course(client: TestClient, instructor: Actor) -> None:
    course = create_course(client, instructor)
    resp = client.delete(f"/api/courses/{course['id']}", headers=instructor.headers)
    assert resp.status_code == 204
    assert client.get(f"/api/courses/{course['id']}").status_code == 404


def test_delete_refused_while_sections_exist(
    client: TestClient, instructor: Actor
) -> None:
    course = create_course(client, instructor)
    create_section(client, instructor, course["id"])
    resp = client.delete(f"/api/courses/{course['id']}", headers=instructor.headers)
    assert resp.status_code == 400
    assert resp.json() == {"message": "Course still has sections"}


def test_delete_refused_while_enrolled(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    client.post(
        "/api/enrollments", json={"courseId": course["id"]}, headers=student.headers
    )
    resp = client.delete(f"/api/courses/{course['id']}", headers=instructor.headers)
    assert resp.status_code == 400
    assert resp.json() == {"message": "Course still has enrollments"}


def test_student_cannot_delete(
    client: TestClient, instructor: Actor, student: Actor
) -> None:
    course = create_course(client, instructor)
    resp = client.delete(f"/api/courses/{course['id']}", headers=student.headers)
    assert resp.status_code == 403
