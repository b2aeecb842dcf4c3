"""Enrollment and lesson-progress endpoints for the signed-in learner.

Course progress (``Enrollment.progress``) and per-lesson progress are
tracked independently: completing a lesson never changes the enrollment.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, status

from marketplace.api.dependencies import CurrentUser, StorageDep
from marketplace.api.schemas import (
    EnrollIn,
    EnrollmentOut,
    EnrollmentProgressIn,
    EnrollmentWithCourseOut,
    LessonProgressIn,
    LessonProgressOut,
)
from marketplace.core.context import course_id_var
from marketplace.core.errors import DuplicateEnrollmentError, NotFound
from marketplace.core.metrics import (
    DUPLICATE_ENROLLMENTS,
    ENROLLMENTS_CREATED,
    LESSONS_COMPLETED,
)
from marketplace.models.enrollment import LessonProgressUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["enrollments"])


@router.get("/enrollments", response_model=list[EnrollmentWithCourseOut])
async def list_enrollments(
    principal: CurrentUser, storage: StorageDep
) -> list[EnrollmentWithCourseOut]:
    return [
        EnrollmentWithCourseOut.from_view(e)
        for e in await storage.get_user_enrollments(principal.user_id)
    ]


@router.post(
    "/enrollments",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll(
    payload: EnrollIn, principal: CurrentUser, storage: StorageDep
) -> EnrollmentOut:
    course_id_var.set(payload.courseId)
    try:
        enrollment = await storage.enroll_user(principal.user_id, payload.courseId)
    except DuplicateEnrollmentError:
        DUPLICATE_ENROLLMENTS.inc()
        logger.info(
            "Duplicate enrollment rejected user=%s course=%s",
            principal.user_id,
            payload.courseId,
        )
        raise
    ENROLLMENTS_CREATED.inc()
    logger.info(
        "Enrolled user=%s course=%s enrollment=%s",
        principal.user_id,
        payload.courseId,
        enrollment.id,
    )
    return EnrollmentOut.from_domain(enrollment)


@router.put("/enrollments/{course_id}/progress", response_model=EnrollmentOut)
async def update_progress(
    course_id: int,
    payload: EnrollmentProgressIn,
    principal: CurrentUser,
    storage: StorageDep,
) -> EnrollmentOut:
    course_id_var.set(course_id)
    enrollment = await storage.update_enrollment_progress(
        principal.user_id, course_id, payload.progress
    )
    if enrollment is None:
        raise NotFound("Enrollment not found")
    return EnrollmentOut.from_domain(enrollment)


@router.post("/lesson-progress", response_model=LessonProgressOut)
async def update_lesson_progress(
    payload: LessonProgressIn, principal: CurrentUser, storage: StorageDep
) -> LessonProgressOut:
    record = await storage.update_lesson_progress(
        LessonProgressUpdate(
            user_id=principal.user_id,
            lesson_id=payload.lessonId,
            completed=payload.completed,
            watch_time=payload.watchTime,
        )
    )
    if record.completed:
        LESSONS_COMPLETED.inc()
    return LessonProgressOut.from_domain(record)


@router.get("/lesson-progress/{lesson_id}", response_model=LessonProgressOut)
async def get_lesson_progress(
    lesson_id: int, principal: CurrentUser, storage: StorageDep
) -> LessonProgressOut:
    record = await storage.get_lesson_progress(principal.user_id, lesson_id)
    if record is None:
        raise NotFound("Lesson progress not found")
    return LessonProgressOut.from_domain(record)
