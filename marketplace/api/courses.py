"""Course catalogue endpoints and the per-course sub-collections
(sections, reviews, enrollments).

Reads are public. Writes need a token; course-level writes also need the
caller to be the course's teacher or an admin (see access.py).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from marketplace.api.access import get_course_or_404, owned_course
from marketplace.api.dependencies import CurrentUser, StorageDep, require_teacher
from marketplace.api.schemas import (
    CourseDetailOut,
    CourseIn,
    CourseOut,
    CourseUpdateIn,
    EnrollmentWithUserOut,
    ReviewIn,
    ReviewOut,
    ReviewWithUserOut,
    SectionIn,
    SectionOut,
)
from marketplace.core.errors import NotFound
from marketplace.core.metrics import REVIEWS_CREATED
from marketplace.models.course import NewCourse, NewSection
from marketplace.models.principal import Principal
from marketplace.models.review import NewReview
from marketplace.repos.storage import CourseFilters

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/courses", tags=["courses"])


@router.get("", response_model=list[CourseOut])
async def list_courses(
    storage: StorageDep,
    category_id: Annotated[int | None, Query(alias="categoryId")] = None,
    search: Annotated[str | None, Query()] = None,
    teacher_id: Annotated[int | None, Query(alias="teacherId")] = None,
    published: Annotated[bool | None, Query()] = None,
) -> list[CourseOut]:
    filters = CourseFilters(
        category_id=category_id,
        search=search or None,
        teacher_id=teacher_id,
        published=published,
    )
    return [CourseOut.from_domain(c) for c in await storage.get_courses(filters)]


@router.get("/{course_id}", response_model=CourseDetailOut)
async def get_course(course_id: int, storage: StorageDep) -> CourseDetailOut:
    view = await storage.get_course_with_relations(course_id)
    if view is None:
        raise NotFound("Course not found")
    if view.teacher is None:
        logger.warning(
            "Course %s references missing teacher=%s",
            course_id,
            view.course.teacher_id,
        )
    return CourseDetailOut.from_view(view)


@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseIn,
    principal: Annotated[Principal, Depends(require_teacher)],
    storage: StorageDep,
) -> CourseOut:
    course = await storage.create_course(
        NewCourse(
            title=payload.title,
            price=payload.price,
            teacher_id=principal.user_id,
            description=payload.description,
            short_description=payload.shortDescription,
            category_id=payload.categoryId,
            thumbnail_url=payload.thumbnailUrl,
            video_url=payload.videoUrl,
            duration=payload.duration,
            level=payload.level,
            published=payload.published,
        )
    )
    logger.info("Course created id=%s teacher=%s", course.id, principal.user_id)
    return CourseOut.from_domain(course)


@router.put("/{course_id}", response_model=CourseOut)
async def update_course(
    course_id: int,
    payload: CourseUpdateIn,
    principal: CurrentUser,
    storage: StorageDep,
) -> CourseOut:
    await owned_course(storage, principal, course_id)
    course = await storage.update_course(course_id, payload.changes())
    if course is None:
        raise NotFound("Course not found")
    logger.info("Course updated id=%s by user=%s", course_id, principal.user_id)
    return CourseOut.from_domain(course)


@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(
    course_id: int, principal: CurrentUser, storage: StorageDep
) -> Response:
    await owned_course(storage, principal, course_id)
    await storage.delete_course(course_id)
    logger.info("Course deleted id=%s by user=%s", course_id, principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Sections -------------------------------------------------------------


@router.get("/{course_id}/sections", response_model=list[SectionOut])
async def list_sections(course_id: int, storage: StorageDep) -> list[SectionOut]:
    await get_course_or_404(storage, course_id)
    sections = await storage.get_course_sections(course_id)
    return [SectionOut.from_domain(s) for s in sections]


@router.post(
    "/{course_id}/sections",
    response_model=SectionOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_section(
    course_id: int,
    payload: SectionIn,
    principal: CurrentUser,
    storage: StorageDep,
) -> SectionOut:
    await owned_course(storage, principal, course_id)
    section = await storage.create_section(
        NewSection(
            course_id=course_id,
            title=payload.title,
            order=payload.order,
            description=payload.description,
        )
    )
    return SectionOut.from_domain(section)


# --- Reviews --------------------------------------------------------------


@router.get("/{course_id}/reviews", response_model=list[ReviewWithUserOut])
async def list_reviews(course_id: int, storage: StorageDep) -> list[ReviewWithUserOut]:
    reviews = await storage.get_course_reviews(course_id)
    return [ReviewWithUserOut.from_view(r) for r in reviews]


@router.post(
    "/{course_id}/reviews",
    response_model=ReviewOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_review(
    course_id: int,
    payload: ReviewIn,
    principal: CurrentUser,
    storage: StorageDep,
) -> ReviewOut:
    # Any signed-in user may review; enrollment is not required.
    review = await storage.create_review(
        NewReview(
            user_id=principal.user_id,
            course_id=course_id,
            rating=payload.rating,
            comment=payload.comment,
        )
    )
    REVIEWS_CREATED.inc()
    logger.info(
        "Review created id=%s course=%s rating=%d", review.id, course_id, review.rating
    )
    return ReviewOut.from_domain(review)


# --- Enrollments (teacher view) ------------------------------------------


@router.get("/{course_id}/enrollments", response_model=list[EnrollmentWithUserOut])
async def list_course_enrollments(
    course_id: int, principal: CurrentUser, storage: StorageDep
) -> list[EnrollmentWithUserOut]:
    await owned_course(storage, principal, course_id)
    return [
        EnrollmentWithUserOut.from_view(e)
        for e in await storage.get_course_enrollments(course_id)
    ]
