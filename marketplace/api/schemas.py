"""Request / response schemas shared by the routers.

Field names are the camelCase JSON names clients use. ``*Out.from_domain``
builds a response from the frozen domain dataclasses; ``changes()`` turns a
partial update body into the snake_case dict Storage expects.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, model_validator

from marketplace.models.course import (
    Category,
    Course,
    CourseSection,
    CourseWithRelations,
    Lesson,
    Level,
    SectionWithLessons,
)
from marketplace.models.enrollment import (
    Enrollment,
    EnrollmentWithCourse,
    EnrollmentWithUser,
    LessonProgress,
)
from marketplace.models.review import Review, ReviewWithUser
from marketplace.models.user import Role, User
from marketplace.services.stats_service import LearningStats, TeachingStats

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

SelfServiceRole = Literal["student", "instructor"]


def snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class PartialUpdate(BaseModel):
    """Base for PUT bodies: only the fields the client sent are applied.

    Fields listed in ``NOT_NULL`` may be omitted but not sent as null.
    """

    NOT_NULL: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_nulls(self):
        for name in self.model_fields_set & self.NOT_NULL:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return {
            snake_case(k): v for k, v in self.model_dump(exclude_unset=True).items()
        }


# --- Auth / users ---------------------------------------------------------


class RegisterIn(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=1)
    firstName: str | None = None
    lastName: str | None = None
    role: SelfServiceRole = "student"


class LoginIn(BaseModel):
    username: str
    password: str


class RoleIn(BaseModel):
    role: SelfServiceRole


class UserOut(BaseModel):
    id: int
    username: str
    email: str
    firstName: str | None
    lastName: str | None
    profileImageUrl: str | None
    role: Role
    stripeCustomerId: str | None
    stripeSubscriptionId: str | None
    createdAt: datetime | None
    updatedAt: datetime | None

    @classmethod
    def from_domain(cls, user: User) -> UserOut:
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            firstName=user.first_name,
            lastName=user.last_name,
            profileImageUrl=user.profile_image_url,
            role=user.role,
            stripeCustomerId=user.stripe_customer_id,
            stripeSubscriptionId=user.stripe_subscription_id,
            createdAt=user.created_at,
            updatedAt=user.updated_at,
        )


class AuthResponse(BaseModel):
    accessToken: str
    user: UserOut


# --- Categories -----------------------------------------------------------


class CategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    icon: str | None = None


class CategoryOut(BaseModel):
    id: int
    name: str
    description: str | None
    icon: str | None
    createdAt: datetime | None

    @classmethod
    def from_domain(cls, category: Category) -> CategoryOut:
        return cls(
            id=category.id,
            name=category.name,
            description=category.description,
            icon=category.icon,
            createdAt=category.created_at,
        )


# --- Courses --------------------------------------------------------------


class CourseIn(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    shortDescription: str | None = None
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    categoryId: int | None = None
    thumbnailUrl: str | None = None
    videoUrl: str | None = None
    duration: int | None = Field(default=None, ge=0)
    level: Level = Level.BEGINNER
    published: bool = False


class CourseUpdateIn(PartialUpdate):
    NOT_NULL: ClassVar[frozenset[str]] = frozenset(
        {"title", "price", "level", "published"}
    )

    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    shortDescription: str | None = None
    price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    categoryId: int | None = None
    thumbnailUrl: str | None = None
    videoUrl: str | None = None
    duration: int | None = Field(default=None, ge=0)
    level: Level | None = None
    published: bool | None = None


class CourseOut(BaseModel):
    id: int
    title: str
    description: str | None
    shortDescription: str | None
    price: Decimal
    categoryId: int | None
    teacherId: int
    thumbnailUrl: str | None
    videoUrl: str | None
    duration: int | None
    level: Level
    published: bool
    rating: Decimal
    reviewCount: int
    enrollmentCount: int
    createdAt: datetime | None
    updatedAt: datetime | None

    @classmethod
    def fields_from(cls, course: Course) -> dict[str, Any]:
        return {
            "id": course.id,
            "title": course.title,
            "description": course.description,
            "shortDescription": course.short_description,
            "price": course.price,
            "categoryId": course.category_id,
            "teacherId": course.teacher_id,
            "thumbnailUrl": course.thumbnail_url,
            "videoUrl": course.video_url,
            "duration": course.duration,
            "level": course.level,
            "published": course.published,
            "rating": course.rating,
            "reviewCount": course.review_count,
            "enrollmentCount": course.enrollment_count,
            "createdAt": course.created_at,
            "updatedAt": course.updated_at,
        }

    @classmethod
    def from_domain(cls, course: Course) -> CourseOut:
        return cls(**cls.fields_from(course))


# --- Sections / lessons ---------------------------------------------------


class SectionIn(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    order: int


class SectionUpdateIn(PartialUpdate):
    NOT_NULL: ClassVar[frozenset[str]] = frozenset({"title", "order"})

    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    order: int | None = None


class SectionOut(BaseModel):
    id: int
    courseId: int
    title: str
    description: str | None
    order: int
    createdAt: datetime | None

    @classmethod
    def from_domain(cls, section: CourseSection) -> SectionOut:
        return cls(
            id=section.id,
            courseId=section.course_id,
            title=section.title,
            description=section.description,
            order=section.order,
            createdAt=section.created_at,
        )


class LessonIn(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    videoUrl: str | None = None
    duration: int | None = Field(default=None, ge=0)
    order: int
    isFree: bool = False


class LessonUpdateIn(PartialUpdate):
    NOT_NULL: ClassVar[frozenset[str]] = frozenset({"title", "order", "isFree"})

    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    videoUrl: str | None = None
    duration: int | None = Field(default=None, ge=0)
    order: int | None = None
    isFree: bool | None = None


class LessonOut(BaseModel):
    id: int
    sectionId: int
    title: str
    description: str | None
    videoUrl: str | None
    duration: int | None
    order: int
    isFree: bool
    createdAt: datetime | None

    @classmethod
    def from_domain(cls, lesson: Lesson) -> LessonOut:
        return cls(
            id=lesson.id,
            sectionId=lesson.section_id,
            title=lesson.title,
            description=lesson.description,
            videoUrl=lesson.video_url,
            duration=lesson.duration,
            order=lesson.order,
            isFree=lesson.is_free,
            createdAt=lesson.created_at,
        )


class SectionWithLessonsOut(SectionOut):
    lessons: list[LessonOut]

    @classmethod
    def from_view(cls, view: SectionWithLessons) -> SectionWithLessonsOut:
        base = SectionOut.from_domain(view.section)
        return cls(
            **base.model_dump(),
            lessons=[LessonOut.from_domain(lesson) for lesson in view.lessons],
        )


# --- Reviews --------------------------------------------------------------


class ReviewIn(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = None


class ReviewOut(BaseModel):
    id: int
    userId: int
    courseId: int
    rating: int
    comment: str | None
    createdAt: datetime | None

    @classmethod
    def from_domain(cls, review: Review) -> ReviewOut:
        return cls(
            id=review.id,
            userId=review.user_id,
            courseId=review.course_id,
            rating=review.rating,
            comment=review.comment,
            createdAt=review.created_at,
        )


class ReviewWithUserOut(ReviewOut):
    user: UserOut

    @classmethod
    def from_view(cls, view: ReviewWithUser) -> ReviewWithUserOut:
        base = ReviewOut.from_domain(view.review)
        return cls(**base.model_dump(), user=UserOut.from_domain(view.user))


class CourseDetailOut(CourseOut):
    teacher: UserOut | None
    category: CategoryOut | None
    sections: list[SectionWithLessonsOut]
    reviews: list[ReviewWithUserOut]

    @classmethod
    def from_view(cls, view: CourseWithRelations) -> CourseDetailOut:
        return cls(
            **CourseOut.fields_from(view.course),
            teacher=UserOut.from_domain(view.teacher) if view.teacher else None,
            category=CategoryOut.from_domain(view.category) if view.category else None,
            sections=[SectionWithLessonsOut.from_view(s) for s in view.sections],
            reviews=[ReviewWithUserOut.from_view(r) for r in view.reviews],
        )


# --- Enrollments / progress -----------------------------------------------


class EnrollIn(BaseModel):
    courseId: int


class EnrollmentProgressIn(BaseModel):
    progress: Decimal = Field(ge=0, le=100, max_digits=5, decimal_places=2)


class EnrollmentOut(BaseModel):
    id: int
    userId: int
    courseId: int
    progress: Decimal
    enrolledAt: datetime | None
    completedAt: datetime | None
    lastAccessedAt: datetime | None

    @classmethod
    def from_domain(cls, enrollment: Enrollment) -> EnrollmentOut:
        return cls(
            id=enrollment.id,
            userId=enrollment.user_id,
            courseId=enrollment.course_id,
            progress=enrollment.progress,
            enrolledAt=enrollment.enrolled_at,
            completedAt=enrollment.completed_at,
            lastAccessedAt=enrollment.last_accessed_at,
        )


class EnrollmentWithCourseOut(EnrollmentOut):
    course: CourseOut

    @classmethod
    def from_view(cls, view: EnrollmentWithCourse) -> EnrollmentWithCourseOut:
        base = EnrollmentOut.from_domain(view.enrollment)
        return cls(**base.model_dump(), course=CourseOut.from_domain(view.course))


class EnrollmentWithUserOut(EnrollmentOut):
    user: UserOut

    @classmethod
    def from_view(cls, view: EnrollmentWithUser) -> EnrollmentWithUserOut:
        base = EnrollmentOut.from_domain(view.enrollment)
        return cls(**base.model_dump(), user=UserOut.from_domain(view.user))


class LessonProgressIn(BaseModel):
    lessonId: int
    completed: bool = False
    watchTime: int = Field(default=0, ge=0)


class LessonProgressOut(BaseModel):
    id: int
    userId: int
    lessonId: int
    completed: bool
    watchTime: int
    completedAt: datetime | None

    @classmethod
    def from_domain(cls, record: LessonProgress) -> LessonProgressOut:
        return cls(
            id=record.id,
            userId=record.user_id,
            lessonId=record.lesson_id,
            completed=record.completed,
            watchTime=record.watch_time,
            completedAt=record.completed_at,
        )


# --- Dashboard ------------------------------------------------------------


class TeachingStatsOut(BaseModel):
    totalCourses: int
    totalStudents: int
    totalRevenue: float
    avgRating: float

    @classmethod
    def from_domain(cls, stats: TeachingStats) -> TeachingStatsOut:
        return cls(
            totalCourses=stats.total_courses,
            totalStudents=stats.total_students,
            totalRevenue=float(stats.total_revenue),
            avgRating=float(stats.avg_rating),
        )


class LearningStatsOut(BaseModel):
    enrolledCourses: int
    completedCourses: int
    inProgress: int
    totalHours: int

    @classmethod
    def from_domain(cls, stats: LearningStats) -> LearningStatsOut:
        return cls(
            enrolledCourses=stats.enrolled_courses,
            completedCourses=stats.completed_courses,
            inProgress=stats.in_progress,
            totalHours=stats.total_hours,
        )
