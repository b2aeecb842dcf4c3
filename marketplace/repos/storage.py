from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from marketplace.models.course import (
    Category,
    Course,
    CourseSection,
    CourseWithRelations,
    Lesson,
    NewCategory,
    NewCourse,
    NewLesson,
    NewSection,
)
from marketplace.models.enrollment import (
    Enrollment,
    EnrollmentWithCourse,
    EnrollmentWithUser,
    LessonProgress,
    LessonProgressUpdate,
)
from marketplace.models.review import NewReview, Review, ReviewWithUser
from marketplace.models.user import NewUser, Role, User


@dataclass(frozen=True, slots=True)
class CourseFilters:
    """Course listing filters. Every filter that is set must match."""

    category_id: int | None = None
    search: str | None = None
    teacher_id: int | None = None
    published: bool | None = None


class Storage(Protocol):
    """Persistence boundary for the marketplace.

    Lookups return None for missing rows. Writes that break a data rule
    raise BusinessRuleViolation (DuplicateEnrollmentError for a second
    enrollment in the same course).
    """

    # users
    async def get_user(self, user_id: int) -> User | None: ...
    async def get_user_by_username(self, username: str) -> User | None: ...
    async def get_user_by_email(self, email: str) -> User | None: ...
    async def create_user(self, data: NewUser) -> User: ...
    async def update_user_role(self, user_id: int, role: Role) -> User | None: ...
    async def update_user_payment_info(
        self, user_id: int, customer_id: str, subscription_id: str | None = None
    ) -> User | None: ...

    # categories
    async def get_categories(self) -> list[Category]: ...
    async def get_category(self, category_id: int) -> Category | None: ...
    async def create_category(self, data: NewCategory) -> Category: ...

    # courses
    async def get_courses(
        self, filters: CourseFilters | None = None
    ) -> list[Course]: ...
    async def get_course(self, course_id: int) -> Course | None: ...
    async def get_course_with_relations(
        self, course_id: int
    ) -> CourseWithRelations | None: ...
    async def create_course(self, data: NewCourse) -> Course: ...
    async def update_course(
        self, course_id: int, changes: dict[str, Any]
    ) -> Course | None: ...
    async def delete_course(self, course_id: int) -> bool: ...

    # sections
    async def get_course_sections(self, course_id: int) -> list[CourseSection]: ...
    async def get_section(self, section_id: int) -> CourseSection | None: ...
    async def create_section(self, data: NewSection) -> CourseSection: ...
    async def update_section(
        self, section_id: int, changes: dict[str, Any]
    ) -> CourseSection | None: ...
    async def delete_section(self, section_id: int) -> bool: ...

    # lessons
    async def get_lessons(self, section_id: int) -> list[Lesson]: ...
    async def get_lesson(self, lesson_id: int) -> Lesson | None: ...
    async def create_lesson(self, data: NewLesson) -> Lesson: ...
    async def update_lesson(
        self, lesson_id: int, changes: dict[str, Any]
    ) -> Lesson | None: ...
    async def delete_lesson(self, lesson_id: int) -> bool: ...

    # enrollments
    async def get_user_enrollments(
        self, user_id: int
    ) -> list[EnrollmentWithCourse]: ...
    async def get_course_enrollments(
        self, course_id: int
    ) -> list[EnrollmentWithUser]: ...
    async def get_enrollment(
        self, user_id: int, course_id: int
    ) -> Enrollment | None: ...
    async def enroll_user(self, user_id: int, course_id: int) -> Enrollment: ...
    async def update_enrollment_progress(
        self, user_id: int, course_id: int, progress: Decimal
    ) -> Enrollment | None: ...

    # lesson progress
    async def get_lesson_progress(
        self, user_id: int, lesson_id: int
    ) -> LessonProgress | None: ...
    async def update_lesson_progress(
        self, data: LessonProgressUpdate
    ) -> LessonProgress: ...

    # reviews
    async def get_course_reviews(self, course_id: int) -> list[ReviewWithUser]: ...
    async def create_review(self, data: NewReview) -> Review: ...
