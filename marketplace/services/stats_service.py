"""Dashboard aggregates.

Instructors see teaching numbers over the courses they own. Every other
role sees learner numbers over their own enrollments.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from marketplace.core.errors import InternalError
from marketplace.models.user import Role
from marketplace.repos.storage import CourseFilters, Storage

_CENTS = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class TeachingStats:
    total_courses: int
    total_students: int
    total_revenue: Decimal  # list prices summed over owned courses
    avg_rating: Decimal


@dataclass(frozen=True, slots=True)
class LearningStats:
    enrolled_courses: int
    completed_courses: int
    in_progress: int
    total_hours: int  # course durations summed, as stored


async def teaching_stats(storage: Storage, teacher_id: int) -> TeachingStats:
    courses = await storage.get_courses(CourseFilters(teacher_id=teacher_id))
    revenue = sum((c.price for c in courses), Decimal("0"))
    if courses:
        avg = sum((c.rating for c in courses), Decimal("0")) / len(courses)
    else:
        avg = Decimal("0")
    return TeachingStats(
        total_courses=len(courses),
        total_students=sum(c.enrollment_count for c in courses),
        total_revenue=revenue.quantize(_CENTS, rounding=ROUND_HALF_UP),
        avg_rating=avg.quantize(_CENTS, rounding=ROUND_HALF_UP),
    )


async def learning_stats(storage: Storage, user_id: int) -> LearningStats:
    enrollments = await storage.get_user_enrollments(user_id)
    completed = sum(1 for e in enrollments if e.enrollment.is_completed)
    minutes = sum(e.course.duration or 0 for e in enrollments)
    return LearningStats(
        enrolled_courses=len(enrollments),
        completed_courses=completed,
        in_progress=len(enrollments) - completed,
        total_hours=minutes,
    )


async def dashboard_stats(
    storage: Storage, user_id: int, role: Role
) -> TeachingStats | LearningStats:
    if role is Role.INSTRUCTOR:
        return await teaching_stats(storage, user_id)
    if role in (Role.STUDENT, Role.ADMIN):
        return await learning_stats(storage, user_id)
    raise InternalError(f"Unhandled role {role!r}")
