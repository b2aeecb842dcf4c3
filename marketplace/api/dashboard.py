from __future__ import annotations

from fastapi import APIRouter

from marketplace.api.dependencies import CurrentUser, StorageDep
from marketplace.api.schemas import LearningStatsOut, TeachingStatsOut
from marketplace.services import stats_service
from marketplace.services.stats_service import TeachingStats

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=TeachingStatsOut | LearningStatsOut)
async def dashboard_stats(
    principal: CurrentUser, storage: StorageDep
) -> TeachingStatsOut | LearningStatsOut:
    stats = await stats_service.dashboard_stats(
        storage, principal.user_id, principal.role
    )
    if isinstance(stats, TeachingStats):
        return TeachingStatsOut.from_domain(stats)
    return LearningStatsOut.from_domain(stats)
