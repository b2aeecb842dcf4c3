from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from marketplace.api.dependencies import StorageDep, require_role
from marketplace.api.schemas import CategoryIn, CategoryOut
from marketplace.models.course import NewCategory
from marketplace.models.principal import Principal
from marketplace.models.user import Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("", response_model=list[CategoryOut])
async def list_categories(storage: StorageDep) -> list[CategoryOut]:
    return [CategoryOut.from_domain(c) for c in await storage.get_categories()]


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryIn,
    principal: Annotated[Principal, Depends(require_role(Role.ADMIN))],
    storage: StorageDep,
) -> CategoryOut:
    category = await storage.create_category(
        NewCategory(
            name=payload.name, description=payload.description, icon=payload.icon
        )
    )
    logger.info("Category created id=%s by user=%s", category.id, principal.user_id)
    return CategoryOut.from_domain(category)
