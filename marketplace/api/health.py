"""Health and readiness endpoints.

/health (liveness): the process answers. Dependency status is reported in
the body but never turns the response into an error, so an orchestrator
does not restart the container over a partial outage.

/ready (readiness): 503 while a configured database is unreachable, so the
load balancer stops routing here until it recovers. Redis is not critical:
the token blacklist has an in-memory fallback.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from marketplace.db.engine import engine, ping_database
from marketplace.db.redis import redis_pool

router = APIRouter(tags=["health"])


async def _redis_status() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        return "degraded"
    return "ok"


async def _database_status() -> str:
    if engine is None:
        return "not_configured"
    return "ok" if await ping_database() else "degraded"


@router.get("/health")
async def health() -> dict:
    """Liveness probe plus per-dependency status."""
    checks = {
        "database": await _database_status(),
        "redis": await _redis_status(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe."""
    if await _database_status() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
