"""Ownership and resource-level access checks.

These are plain functions (not FastAPI dependencies) because they need
both the Principal and a loaded resource. Call them at the top of an
endpoint body. Lookups raise NotFound before ownership is checked, so a
missing resource is a 404 for everyone.
"""

from __future__ import annotations

import logging

from marketplace.core.errors import Forbidden, NotFound
from marketplace.models.course import Course, CourseSection, Lesson
from marketplace.models.principal import Principal
from marketplace.repos.storage import Storage

logger = logging.getLogger(__name__)


def check_owner_or_admin(principal: Principal, course: Course) -> None:
    """Raise 403 unless the principal teaches the course or is an admin."""
    if principal.owns_or_admin(course.teacher_id):
        return
    logger.warning(
        "Access denied: user=%s does not own course=%s",
        principal.user_id,
        course.id,
    )
    raise Forbidden("You can only modify your own courses")


async def get_course_or_404(storage: Storage, course_id: int) -> Course:
    course = await storage.get_course(course_id)
    if course is None:
        raise NotFound("Course not found")
    return course


async def owned_course(
    storage: Storage, principal: Principal, course_id: int
) -> Course:
    course = await get_course_or_404(storage, course_id)
    check_owner_or_admin(principal, course)
    return course


async def owned_section(
    storage: Storage, principal: Principal, section_id: int
) -> CourseSection:
    section = await storage.get_section(section_id)
    if section is None:
        raise NotFound("Section not found")
    await owned_course(storage, principal, section.course_id)
    return section


async def owned_lesson(
    storage: Storage, principal: Principal, lesson_id: int
) -> Lesson:
    lesson = await storage.get_lesson(lesson_id)
    if lesson is None:
        raise NotFound("Lesson not found")
    await owned_section(storage, principal, lesson.section_id)
    return lesson
