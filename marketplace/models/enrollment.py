from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from marketplace.models.course import Course
from marketplace.models.user import User

# Course-level progress at or above this value means the course is complete.
COMPLETION_PROGRESS = Decimal("100")


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A student's enrollment in a course.

    ``completed_at`` is a one-way latch: set the first time progress reaches
    COMPLETION_PROGRESS and never cleared afterwards.
    """

    id: int
    user_id: int
    course_id: int
    progress: Decimal = Decimal("0")
    enrolled_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.progress >= COMPLETION_PROGRESS


@dataclass(frozen=True, slots=True)
class EnrollmentWithCourse:
    enrollment: Enrollment
    course: Course


@dataclass(frozen=True, slots=True)
class EnrollmentWithUser:
    enrollment: Enrollment
    user: User


@dataclass(frozen=True, slots=True)
class LessonProgress:
    """Per-lesson progress. Independent of Enrollment.progress."""

    id: int
    user_id: int
    lesson_id: int
    completed: bool = False
    watch_time: int = 0  # seconds
    completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class LessonProgressUpdate:
    user_id: int
    lesson_id: int
    completed: bool = False
    watch_time: int = 0
