"""Demo: an instructor publishes a course and a student works through it.

Runs in-process against the in-memory storage with FastAPI's TestClient,
or against a live server when BASE_URL is set.

Run with:
    python scripts/demo_enrollment_flow.py
    BASE_URL=http://localhost:8000 python scripts/demo_enrollment_flow.py
"""

from __future__ import annotations

import os
from decimal import Decimal
from uuid import uuid4

import httpx

from marketplace.client.api_client import ApiError, MarketplaceClient


def _http() -> httpx.Client:
    base_url = os.environ.get("BASE_URL")
    if base_url:
        return httpx.Client(base_url=base_url, timeout=10.0)
    from fastapi.testclient import TestClient

    from marketplace.main import app

    return TestClient(app)


def main() -> None:
    http = _http()
    suffix = uuid4().hex[:6]

    # ── Instructor builds a course ──────────────────────────────────
    teacher = MarketplaceClient(http)
    teacher.register(
        username=f"teacher-{suffix}",
        email=f"teacher-{suffix}@example.com",
        password="demo-pass",
        role="instructor",
    )
    course = teacher.create_course(
        title="Practical asyncio",
        price=Decimal("29.00"),
        duration=150,
        published=True,
    )
    section = teacher.create_section(course.id, title="Event loop basics", order=1)
    lesson = teacher.create_lesson(
        section.id, course.id, title="Coroutines", order=1, isFree=True
    )
    print(f"1. course {course.id} with section {section.id}, lesson {lesson.id}")

    # ── Student enrolls ─────────────────────────────────────────────
    student = MarketplaceClient(http)
    student.register(
        username=f"student-{suffix}",
        email=f"student-{suffix}@example.com",
        password="demo-pass",
    )
    enrollment = student.enroll(course.id)
    print(f"2. enrolled            → enrollment {enrollment.id}")

    try:
        student.enroll(course.id)
    except ApiError as e:
        print(f"3. enroll again        → {e.status_code} {e.message}")

    # ── Progress and completion ─────────────────────────────────────
    record = student.update_lesson_progress(lesson.id, completed=True, watch_time=540)
    print(f"4. lesson completed    → watchTime={record.watchTime}s")

    done = student.update_enrollment_progress(course.id, Decimal("100"))
    print(f"5. course progress     → {done.progress}% completedAt={done.completedAt}")

    student.create_review(course.id, 5, "Clear and well paced")
    detail = student.course(course.id)
    print(f"6. reviewed            → rating={detail.rating} ({detail.reviewCount})")

    # ── Dashboards ──────────────────────────────────────────────────
    print(f"7. student dashboard   → {student.dashboard_stats().model_dump()}")
    print(f"8. teacher dashboard   → {teacher.dashboard_stats().model_dump()}")

    student.logout()
    teacher.logout()
    print("\nDone.")


if __name__ == "__main__":
    main()
