"""Section and lesson endpoints addressed by their own ids.

Ownership is resolved upwards: lesson -> section -> course -> teacher.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status

from marketplace.api.access import owned_lesson, owned_section
from marketplace.api.dependencies import CurrentUser, StorageDep
from marketplace.api.schemas import (
    LessonIn,
    LessonOut,
    LessonUpdateIn,
    SectionOut,
    SectionUpdateIn,
)
from marketplace.core.errors import NotFound
from marketplace.models.course import NewLesson

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sections"])


@router.put("/sections/{section_id}", response_model=SectionOut)
async def update_section(
    section_id: int,
    payload: SectionUpdateIn,
    principal: CurrentUser,
    storage: StorageDep,
) -> SectionOut:
    await owned_section(storage, principal, section_id)
    section = await storage.update_section(section_id, payload.changes())
    if section is None:
        raise NotFound("Section not found")
    return SectionOut.from_domain(section)


@router.delete("/sections/{section_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_section(
    section_id: int, principal: CurrentUser, storage: StorageDep
) -> Response:
    await owned_section(storage, principal, section_id)
    await storage.delete_section(section_id)
    logger.info("Section deleted id=%s by user=%s", section_id, principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sections/{section_id}/lessons", response_model=list[LessonOut])
async def list_lessons(section_id: int, storage: StorageDep) -> list[LessonOut]:
    if await storage.get_section(section_id) is None:
        raise NotFound("Section not found")
    return [LessonOut.from_domain(ls) for ls in await storage.get_lessons(section_id)]


@router.post(
    "/sections/{section_id}/lessons",
    response_model=LessonOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_lesson(
    section_id: int,
    payload: LessonIn,
    principal: CurrentUser,
    storage: StorageDep,
) -> LessonOut:
    await owned_section(storage, principal, section_id)
    lesson = await storage.create_lesson(
        NewLesson(
            section_id=section_id,
            title=payload.title,
            order=payload.order,
            description=payload.description,
            video_url=payload.videoUrl,
            duration=payload.duration,
            is_free=payload.isFree,
        )
    )
    return LessonOut.from_domain(lesson)


@router.put("/lessons/{lesson_id}", response_model=LessonOut)
async def update_lesson(
    lesson_id: int,
    payload: LessonUpdateIn,
    principal: CurrentUser,
    storage: StorageDep,
) -> LessonOut:
    await owned_lesson(storage, principal, lesson_id)
    lesson = await storage.update_lesson(lesson_id, payload.changes())
    if lesson is None:
        raise NotFound("Lesson not found")
    return LessonOut.from_domain(lesson)


@router.delete("/lessons/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lesson(
    lesson_id: int, principal: CurrentUser, storage: StorageDep
) -> Response:
    await owned_lesson(storage, principal, lesson_id)
    await storage.delete_lesson(lesson_id)
    logger.info("Lesson deleted id=%s by user=%s", lesson_id, principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
