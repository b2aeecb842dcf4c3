from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from marketplace.models.review import ReviewWithUser
from marketplace.models.user import User


class Level(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


@dataclass(frozen=True, slots=True)
class Category:
    id: int
    name: str
    description: str | None = None
    icon: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class NewCategory:
    name: str
    description: str | None = None
    icon: str | None = None


@dataclass(frozen=True, slots=True)
class Course:
    id: int
    title: str
    price: Decimal
    teacher_id: int
    description: str | None = None
    short_description: str | None = None
    category_id: int | None = None
    thumbnail_url: str | None = None
    video_url: str | None = None
    duration: int | None = None  # minutes
    level: Level = Level.BEGINNER
    published: bool = False
    rating: Decimal = Decimal("0")
    review_count: int = 0
    enrollment_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class NewCourse:
    title: str
    price: Decimal
    teacher_id: int
    description: str | None = None
    short_description: str | None = None
    category_id: int | None = None
    thumbnail_url: str | None = None
    video_url: str | None = None
    duration: int | None = None
    level: Level = Level.BEGINNER
    published: bool = False


# Columns a course update may touch. rating/review_count/enrollment_count are
# maintained by storage; teacher_id never changes hands through an update.
COURSE_UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "short_description",
        "price",
        "category_id",
        "thumbnail_url",
        "video_url",
        "duration",
        "level",
        "published",
    }
)


@dataclass(frozen=True, slots=True)
class CourseSection:
    id: int
    course_id: int
    title: str
    order: int
    description: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class NewSection:
    course_id: int
    title: str
    order: int
    description: str | None = None


SECTION_UPDATABLE_FIELDS = frozenset({"title", "description", "order"})


@dataclass(frozen=True, slots=True)
class Lesson:
    id: int
    section_id: int
    title: str
    order: int
    description: str | None = None
    video_url: str | None = None
    duration: int | None = None  # minutes
    is_free: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class NewLesson:
    section_id: int
    title: str
    order: int
    description: str | None = None
    video_url: str | None = None
    duration: int | None = None
    is_free: bool = False


LESSON_UPDATABLE_FIELDS = frozenset(
    {"title", "description", "video_url", "duration", "order", "is_free"}
)


@dataclass(frozen=True, slots=True)
class SectionWithLessons:
    section: CourseSection
    lessons: list[Lesson] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CourseWithRelations:
    """Course detail view composed from several tables.

    ``teacher`` is None only when the course's teacher row is missing.
    """

    course: Course
    teacher: User | None
    category: Category | None = None
    sections: list[SectionWithLessons] = field(default_factory=list)
    reviews: list[ReviewWithUser] = field(default_factory=list)
