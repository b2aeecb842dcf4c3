"""In-process Storage used when no DATABASE_URL is configured (dev, tests).

Every method runs to completion without awaiting anything, so a
check-then-insert is atomic with respect to other coroutines on the same
event loop. That gives the enrollment uniqueness rule the same guarantee the
unique index gives in PostgreSQL.
"""

from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from marketplace.core.errors import (
    BusinessRuleViolation,
    DuplicateEnrollmentError,
    NotFound,
    ValidationError,
)
from marketplace.models.course import (
    COURSE_UPDATABLE_FIELDS,
    LESSON_UPDATABLE_FIELDS,
    SECTION_UPDATABLE_FIELDS,
    Category,
    Course,
    CourseSection,
    CourseWithRelations,
    Lesson,
    NewCategory,
    NewCourse,
    NewLesson,
    NewSection,
    SectionWithLessons,
)
from marketplace.models.enrollment import (
    COMPLETION_PROGRESS,
    Enrollment,
    EnrollmentWithCourse,
    EnrollmentWithUser,
    LessonProgress,
    LessonProgressUpdate,
)
from marketplace.models.review import NewReview, Review, ReviewWithUser, average_rating
from marketplace.models.user import NewUser, Role, User
from marketplace.repos.storage import CourseFilters


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_fields(kind: str, changes: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f"Unknown {kind} field(s): {', '.join(unknown)}")


class InMemoryStorage:
    def __init__(self) -> None:
        self._users: dict[int, User] = {}
        self._categories: dict[int, Category] = {}
        self._courses: dict[int, Course] = {}
        self._sections: dict[int, CourseSection] = {}
        self._lessons: dict[int, Lesson] = {}
        self._enrollments: dict[tuple[int, int], Enrollment] = {}
        self._lesson_progress: dict[tuple[int, int], LessonProgress] = {}
        self._reviews: dict[int, Review] = {}
        self._ids = itertools.count(1)

    def clear(self) -> None:
        """Drop every row and restart id allocation."""
        self.__init__()

    def _next_id(self) -> int:
        return next(self._ids)

    # --- users ---

    async def get_user(self, user_id: int) -> User | None:
        return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> User | None:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    async def get_user_by_email(self, email: str) -> User | None:
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    async def create_user(self, data: NewUser) -> User:
        for existing in self._users.values():
            if existing.username == data.username:
                raise BusinessRuleViolation("Username already exists")
            if existing.email == data.email:
                raise BusinessRuleViolation("Email already registered")
        now = _utcnow()
        user = User(
            id=self._next_id(),
            username=data.username,
            email=data.email,
            password_hash=data.password_hash,
            role=data.role,
            first_name=data.first_name,
            last_name=data.last_name,
            profile_image_url=data.profile_image_url,
            created_at=now,
            updated_at=now,
        )
        self._users[user.id] = user
        return user

    async def update_user_role(self, user_id: int, role: Role) -> User | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        updated = replace(user, role=role, updated_at=_utcnow())
        self._users[user_id] = updated
        return updated

    async def update_user_payment_info(
        self, user_id: int, customer_id: str, subscription_id: str | None = None
    ) -> User | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        updated = replace(
            user,
            stripe_customer_id=customer_id,
            stripe_subscription_id=subscription_id,
            updated_at=_utcnow(),
        )
        self._users[user_id] = updated
        return updated

    # --- categories ---

    async def get_categories(self) -> list[Category]:
        return sorted(self._categories.values(), key=lambda c: (c.name, c.id))

    async def get_category(self, category_id: int) -> Category | None:
        return self._categories.get(category_id)

    async def create_category(self, data: NewCategory) -> Category:
        category = Category(
            id=self._next_id(),
            name=data.name,
            description=data.description,
            icon=data.icon,
            created_at=_utcnow(),
        )
        self._categories[category.id] = category
        return category

    # --- courses ---

    async def get_courses(self, filters: CourseFilters | None = None) -> list[Course]:
        filters = filters or CourseFilters()
        needle = filters.search.lower() if filters.search else None

        def matches(course: Course) -> bool:
            if filters.category_id is not None:
                if course.category_id != filters.category_id:
                    return False
            if filters.teacher_id is not None:
                if course.teacher_id != filters.teacher_id:
                    return False
            if filters.published is not None:
                if course.published != filters.published:
                    return False
            if needle is not None:
                haystacks = (course.title, course.description or "")
                if not any(needle in h.lower() for h in haystacks):
                    return False
            return True

        found = [c for c in self._courses.values() if matches(c)]
        return sorted(found, key=lambda c: (c.created_at, c.id), reverse=True)

    async def get_course(self, course_id: int) -> Course | None:
        return self._courses.get(course_id)

    async def get_course_with_relations(
        self, course_id: int
    ) -> CourseWithRelations | None:
        course = self._courses.get(course_id)
        if course is None:
            return None
        category = (
            self._categories.get(course.category_id)
            if course.category_id is not None
            else None
        )
        sections = [
            SectionWithLessons(section=s, lessons=await self.get_lessons(s.id))
            for s in await self.get_course_sections(course_id)
        ]
        return CourseWithRelations(
            course=course,
            teacher=self._users.get(course.teacher_id),
            category=category,
            sections=sections,
            reviews=await self.get_course_reviews(course_id),
        )

    async def create_course(self, data: NewCourse) -> Course:
        now = _utcnow()
        course = Course(
            id=self._next_id(),
            title=data.title,
            price=data.price,
            teacher_id=data.teacher_id,
            description=data.description,
            short_description=data.short_description,
            category_id=data.category_id,
            thumbnail_url=data.thumbnail_url,
            video_url=data.video_url,
            duration=data.duration,
            level=data.level,
            published=data.published,
            created_at=now,
            updated_at=now,
        )
        self._courses[course.id] = course
        return course

    async def update_course(
        self, course_id: int, changes: dict[str, Any]
    ) -> Course | None:
        _check_fields("course", changes, COURSE_UPDATABLE_FIELDS)
        course = self._courses.get(course_id)
        if course is None:
            return None
        updated = replace(course, **changes, updated_at=_utcnow())
        self._courses[course_id] = updated
        return updated

    async def delete_course(self, course_id: int) -> bool:
        if course_id not in self._courses:
            return False
        if any(s.course_id == course_id for s in self._sections.values()):
            raise BusinessRuleViolation("Course still has sections")
        if any(cid == course_id for (_, cid) in self._enrollments):
            raise BusinessRuleViolation("Course still has enrollments")
        if any(r.course_id == course_id for r in self._reviews.values()):
            raise BusinessRuleViolation("Course still has reviews")
        del self._courses[course_id]
        return True

    # --- sections ---

    async def get_course_sections(self, course_id: int) -> list[CourseSection]:
        found = [s for s in self._sections.values() if s.course_id == course_id]
        return sorted(found, key=lambda s: (s.order, s.id))

    async def get_section(self, section_id: int) -> CourseSection | None:
        return self._sections.get(section_id)

    async def create_section(self, data: NewSection) -> CourseSection:
        if data.course_id not in self._courses:
            raise NotFound("Course not found")
        section = CourseSection(
            id=self._next_id(),
            course_id=data.course_id,
            title=data.title,
            order=data.order,
            description=data.description,
            created_at=_utcnow(),
        )
        self._sections[section.id] = section
        return section

    async def update_section(
        self, section_id: int, changes: dict[str, Any]
    ) -> CourseSection | None:
        _check_fields("section", changes, SECTION_UPDATABLE_FIELDS)
        section = self._sections.get(section_id)
        if section is None:
            return None
        updated = replace(section, **changes)
        self._sections[section_id] = updated
        return updated

    async def delete_section(self, section_id: int) -> bool:
        if section_id not in self._sections:
            return False
        if any(ls.section_id == section_id for ls in self._lessons.values()):
            raise BusinessRuleViolation("Section still has lessons")
        del self._sections[section_id]
        return True

    # --- lessons ---

    async def get_lessons(self, section_id: int) -> list[Lesson]:
        found = [ls for ls in self._lessons.values() if ls.section_id == section_id]
        return sorted(found, key=lambda ls: (ls.order, ls.id))

    async def get_lesson(self, lesson_id: int) -> Lesson | None:
        return self._lessons.get(lesson_id)

    async def create_lesson(self, data: NewLesson) -> Lesson:
        if data.section_id not in self._sections:
            raise NotFound("Section not found")
        lesson = Lesson(
            id=self._next_id(),
            section_id=data.section_id,
            title=data.title,
            order=data.order,
            description=data.description,
            video_url=data.video_url,
            duration=data.duration,
            is_free=data.is_free,
            created_at=_utcnow(),
        )
        self._lessons[lesson.id] = lesson
        return lesson

    async def update_lesson(
        self, lesson_id: int, changes: dict[str, Any]
    ) -> Lesson | None:
        _check_fields("lesson", changes, LESSON_UPDATABLE_FIELDS)
        lesson = self._lessons.get(lesson_id)
        if lesson is None:
            return None
        updated = replace(lesson, **changes)
        self._lessons[lesson_id] = updated
        return updated

    async def delete_lesson(self, lesson_id: int) -> bool:
        if lesson_id not in self._lessons:
            return False
        if any(lid == lesson_id for (_, lid) in self._lesson_progress):
            raise BusinessRuleViolation("Lesson still has progress records")
        del self._lessons[lesson_id]
        return True

    # --- enrollments ---

    async def get_user_enrollments(self, user_id: int) -> list[EnrollmentWithCourse]:
        found = [
            EnrollmentWithCourse(enrollment=e, course=self._courses[e.course_id])
            for (uid, _), e in self._enrollments.items()
            if uid == user_id
        ]
        return sorted(
            found,
            key=lambda x: (x.enrollment.enrolled_at, x.enrollment.id),
            reverse=True,
        )

    async def get_course_enrollments(
        self, course_id: int
    ) -> list[EnrollmentWithUser]:
        found = [
            EnrollmentWithUser(enrollment=e, user=self._users[e.user_id])
            for (_, cid), e in self._enrollments.items()
            if cid == course_id and e.user_id in self._users
        ]
        return sorted(
            found,
            key=lambda x: (x.enrollment.enrolled_at, x.enrollment.id),
            reverse=True,
        )

    async def get_enrollment(self, user_id: int, course_id: int) -> Enrollment | None:
        return self._enrollments.get((user_id, course_id))

    async def enroll_user(self, user_id: int, course_id: int) -> Enrollment:
        course = self._courses.get(course_id)
        if course is None:
            raise NotFound("Course not found")
        key = (user_id, course_id)
        if key in self._enrollments:
            raise DuplicateEnrollmentError()
        enrollment = Enrollment(
            id=self._next_id(),
            user_id=user_id,
            course_id=course_id,
            enrolled_at=_utcnow(),
        )
        self._enrollments[key] = enrollment
        self._courses[course_id] = replace(
            course, enrollment_count=course.enrollment_count + 1
        )
        return enrollment

    async def update_enrollment_progress(
        self, user_id: int, course_id: int, progress: Decimal
    ) -> Enrollment | None:
        key = (user_id, course_id)
        enrollment = self._enrollments.get(key)
        if enrollment is None:
            return None
        now = _utcnow()
        completed_at = enrollment.completed_at
        # First completion wins; later updates at 100 keep the timestamp.
        if progress >= COMPLETION_PROGRESS and completed_at is None:
            completed_at = now
        updated = replace(
            enrollment,
            progress=progress,
            last_accessed_at=now,
            completed_at=completed_at,
        )
        self._enrollments[key] = updated
        return updated

    # --- lesson progress ---

    async def get_lesson_progress(
        self, user_id: int, lesson_id: int
    ) -> LessonProgress | None:
        return self._lesson_progress.get((user_id, lesson_id))

    async def update_lesson_progress(
        self, data: LessonProgressUpdate
    ) -> LessonProgress:
        if data.lesson_id not in self._lessons:
            raise NotFound("Lesson not found")
        key = (data.user_id, data.lesson_id)
        existing = self._lesson_progress.get(key)
        completed_at = _utcnow() if data.completed else None
        if existing is None:
            record = LessonProgress(
                id=self._next_id(),
                user_id=data.user_id,
                lesson_id=data.lesson_id,
                completed=data.completed,
                watch_time=data.watch_time,
                completed_at=completed_at,
            )
        else:
            record = replace(
                existing,
                completed=data.completed,
                watch_time=data.watch_time,
                completed_at=completed_at or existing.completed_at,
            )
        self._lesson_progress[key] = record
        return record

    # --- reviews ---

    async def get_course_reviews(self, course_id: int) -> list[ReviewWithUser]:
        found = [
            ReviewWithUser(review=r, user=self._users[r.user_id])
            for r in self._reviews.values()
            if r.course_id == course_id and r.user_id in self._users
        ]
        return sorted(
            found, key=lambda x: (x.review.created_at, x.review.id), reverse=True
        )

    async def create_review(self, data: NewReview) -> Review:
        course = self._courses.get(data.course_id)
        if course is None:
            raise NotFound("Course not found")
        review = Review(
            id=self._next_id(),
            user_id=data.user_id,
            course_id=data.course_id,
            rating=data.rating,
            comment=data.comment,
            created_at=_utcnow(),
        )
        self._reviews[review.id] = review
        ratings = [r.rating for r in self._reviews.values() if r.course_id == course.id]
        self._courses[course.id] = replace(
            course,
            rating=average_rating(sum(ratings), len(ratings)),
            review_count=len(ratings),
        )
        return review
