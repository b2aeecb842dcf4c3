"""Typed client for the marketplace HTTP API.

Wraps any ``httpx.Client`` (FastAPI's TestClient included). Reads go
through a QueryCache; each mutation invalidates the collections it changes,
and only after the server accepted it.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import httpx

from marketplace.api.schemas import (
    AuthResponse,
    CategoryOut,
    CourseDetailOut,
    CourseOut,
    EnrollmentOut,
    EnrollmentWithCourseOut,
    EnrollmentWithUserOut,
    LearningStatsOut,
    LessonOut,
    LessonProgressOut,
    ReviewOut,
    ReviewWithUserOut,
    SectionOut,
    TeachingStatsOut,
    UserOut,
)
from marketplace.client.query_cache import QueryCache, QueryKey

logger = logging.getLogger(__name__)

USER = ("/api/user",)
CATEGORIES = ("/api/categories",)
COURSES = ("/api/courses",)
ENROLLMENTS = ("/api/enrollments",)
DASHBOARD_STATS = ("/api/dashboard/stats",)


def course_key(course_id: int) -> QueryKey:
    return (*COURSES, course_id)


def reviews_key(course_id: int) -> QueryKey:
    return (*COURSES, course_id, "reviews")


def sections_key(course_id: int) -> QueryKey:
    return (*COURSES, course_id, "sections")


class ApiError(Exception):
    """Non-2xx response. ``message`` is the server's ``{"message"}`` text."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


def _json_safe(body: dict[str, Any]) -> dict[str, Any]:
    return {k: str(v) if isinstance(v, Decimal) else v for k, v in body.items()}


class MarketplaceClient:
    def __init__(
        self,
        http: httpx.Client,
        *,
        token: str | None = None,
        cache: QueryCache | None = None,
    ) -> None:
        self._http = http
        self.token = token
        self.cache = cache if cache is not None else QueryCache()

    # --- plumbing ---

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        response = self._http.request(
            method,
            path,
            json=_json_safe(json) if json is not None else None,
            params=params,
            headers=headers,
        )
        if response.is_error:
            try:
                message = response.json().get("message", response.reason_phrase)
            except ValueError:
                message = response.text or response.reason_phrase
            logger.debug(
                "%s %s failed: %d %s", method, path, response.status_code, message
            )
            raise ApiError(response.status_code, message)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _invalidate(self, *prefixes: QueryKey) -> None:
        for prefix in prefixes:
            self.cache.invalidate(prefix)

    # --- auth / user ---

    def register(self, **fields: Any) -> AuthResponse:
        auth = AuthResponse.model_validate(
            self._request("POST", "/api/register", json=fields)
        )
        self.token = auth.accessToken
        self.cache.clear()
        return auth

    def login(self, username: str, password: str) -> AuthResponse:
        auth = AuthResponse.model_validate(
            self._request(
                "POST", "/api/login", json={"username": username, "password": password}
            )
        )
        self.token = auth.accessToken
        self.cache.clear()
        return auth

    def logout(self) -> None:
        self._request("POST", "/api/logout")
        self.token = None
        self.cache.clear()

    def current_user(self) -> UserOut:
        return self.cache.fetch(
            USER, lambda: UserOut.model_validate(self._request("GET", "/api/user"))
        )

    def select_role(self, role: str) -> UserOut:
        user = UserOut.model_validate(
            self._request("PATCH", "/api/user/role", json={"role": role})
        )
        self._invalidate(USER, DASHBOARD_STATS)
        return user

    # --- categories ---

    def categories(self) -> list[CategoryOut]:
        return self.cache.fetch(
            CATEGORIES,
            lambda: [
                CategoryOut.model_validate(c)
                for c in self._request("GET", "/api/categories")
            ],
        )

    def create_category(self, **fields: Any) -> CategoryOut:
        category = CategoryOut.model_validate(
            self._request("POST", "/api/categories", json=fields)
        )
        self._invalidate(CATEGORIES)
        return category

    # --- courses ---

    def courses(self, **filters: Any) -> list[CourseOut]:
        params = {k: v for k, v in filters.items() if v is not None}
        if isinstance(params.get("published"), bool):
            params["published"] = "true" if params["published"] else "false"
        key = (*COURSES, "list", tuple(sorted(params.items())))
        return self.cache.fetch(
            key,
            lambda: [
                CourseOut.model_validate(c)
                for c in self._request("GET", "/api/courses", params=params)
            ],
        )

    def course(self, course_id: int) -> CourseDetailOut:
        return self.cache.fetch(
            course_key(course_id),
            lambda: CourseDetailOut.model_validate(
                self._request("GET", f"/api/courses/{course_id}")
            ),
        )

    def create_course(self, **fields: Any) -> CourseOut:
        course = CourseOut.model_validate(
            self._request("POST", "/api/courses", json=fields)
        )
        self._invalidate(COURSES)
        return course

    def update_course(self, course_id: int, **changes: Any) -> CourseOut:
        course = CourseOut.model_validate(
            self._request("PUT", f"/api/courses/{course_id}", json=changes)
        )
        self._invalidate(COURSES)
        return course

    def delete_course(self, course_id: int) -> None:
        self._request("DELETE", f"/api/courses/{course_id}")
        self._invalidate(COURSES)

    def course_enrollments(self, course_id: int) -> list[EnrollmentWithUserOut]:
        return [
            EnrollmentWithUserOut.model_validate(e)
            for e in self._request("GET", f"/api/courses/{course_id}/enrollments")
        ]

    # --- sections / lessons ---

    def course_sections(self, course_id: int) -> list[SectionOut]:
        return self.cache.fetch(
            sections_key(course_id),
            lambda: [
                SectionOut.model_validate(s)
                for s in self._request("GET", f"/api/courses/{course_id}/sections")
            ],
        )

    def create_section(self, course_id: int, **fields: Any) -> SectionOut:
        section = SectionOut.model_validate(
            self._request("POST", f"/api/courses/{course_id}/sections", json=fields)
        )
        self._invalidate(course_key(course_id))
        return section

    def update_section(self, section_id: int, **changes: Any) -> SectionOut:
        section = SectionOut.model_validate(
            self._request("PUT", f"/api/sections/{section_id}", json=changes)
        )
        self._invalidate(course_key(section.courseId))
        return section

    def delete_section(self, section_id: int, course_id: int) -> None:
        self._request("DELETE", f"/api/sections/{section_id}")
        self._invalidate(course_key(course_id))

    def create_lesson(
        self, section_id: int, course_id: int, **fields: Any
    ) -> LessonOut:
        lesson = LessonOut.model_validate(
            self._request("POST", f"/api/sections/{section_id}/lessons", json=fields)
        )
        self._invalidate(course_key(course_id))
        return lesson

    def update_lesson(
        self, lesson_id: int, course_id: int, **changes: Any
    ) -> LessonOut:
        lesson = LessonOut.model_validate(
            self._request("PUT", f"/api/lessons/{lesson_id}", json=changes)
        )
        self._invalidate(course_key(course_id))
        return lesson

    def delete_lesson(self, lesson_id: int, course_id: int) -> None:
        self._request("DELETE", f"/api/lessons/{lesson_id}")
        self._invalidate(course_key(course_id))

    # --- enrollments / progress ---

    def enrollments(self) -> list[EnrollmentWithCourseOut]:
        return self.cache.fetch(
            ENROLLMENTS,
            lambda: [
                EnrollmentWithCourseOut.model_validate(e)
                for e in self._request("GET", "/api/enrollments")
            ],
        )

    def enroll(self, course_id: int) -> EnrollmentOut:
        enrollment = EnrollmentOut.model_validate(
            self._request("POST", "/api/enrollments", json={"courseId": course_id})
        )
        self._invalidate(ENROLLMENTS, DASHBOARD_STATS)
        return enrollment

    def update_enrollment_progress(
        self, course_id: int, progress: Decimal | float | int
    ) -> EnrollmentOut:
        enrollment = EnrollmentOut.model_validate(
            self._request(
                "PUT",
                f"/api/enrollments/{course_id}/progress",
                json={"progress": progress},
            )
        )
        self._invalidate(ENROLLMENTS, DASHBOARD_STATS)
        return enrollment

    def update_lesson_progress(
        self, lesson_id: int, *, completed: bool = False, watch_time: int = 0
    ) -> LessonProgressOut:
        record = LessonProgressOut.model_validate(
            self._request(
                "POST",
                "/api/lesson-progress",
                json={
                    "lessonId": lesson_id,
                    "completed": completed,
                    "watchTime": watch_time,
                },
            )
        )
        self._invalidate(ENROLLMENTS)
        return record

    def lesson_progress(self, lesson_id: int) -> LessonProgressOut:
        return LessonProgressOut.model_validate(
            self._request("GET", f"/api/lesson-progress/{lesson_id}")
        )

    # --- reviews ---

    def course_reviews(self, course_id: int) -> list[ReviewWithUserOut]:
        return self.cache.fetch(
            reviews_key(course_id),
            lambda: [
                ReviewWithUserOut.model_validate(r)
                for r in self._request("GET", f"/api/courses/{course_id}/reviews")
            ],
        )

    def create_review(
        self, course_id: int, rating: int, comment: str | None = None
    ) -> ReviewOut:
        review = ReviewOut.model_validate(
            self._request(
                "POST",
                f"/api/courses/{course_id}/reviews",
                json={"rating": rating, "comment": comment},
            )
        )
        self._invalidate(course_key(course_id), reviews_key(course_id))
        return review

    # --- dashboard ---

    def dashboard_stats(self) -> TeachingStatsOut | LearningStatsOut:
        def load() -> TeachingStatsOut | LearningStatsOut:
            data = self._request("GET", "/api/dashboard/stats")
            if "totalCourses" in data:
                return TeachingStatsOut.model_validate(data)
            return LearningStatsOut.model_validate(data)

        return self.cache.fetch(DASHBOARD_STATS, load)
