from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace.api.auth import router as auth_router
from marketplace.api.categories import router as categories_router
from marketplace.api.courses import router as courses_router
from marketplace.api.dashboard import router as dashboard_router
from marketplace.api.enrollments import router as enrollments_router
from marketplace.api.health import router as health_router
from marketplace.api.metrics_endpoint import router as metrics_router
from marketplace.api.sections import router as sections_router
from marketplace.core.config import SETTINGS
from marketplace.core.errors import MarketplaceError
from marketplace.core.logging import setup_logging
from marketplace.db.engine import lifespan_db
from marketplace.db.redis import lifespan_redis
from marketplace.middleware.metrics import MetricsMiddleware
from marketplace.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order.
    async with lifespan_db():
        async with lifespan_redis():
            yield


def validation_message(exc: RequestValidationError) -> str:
    """Flatten pydantic errors into one line, e.g. ``price: Input should be ...``."""
    parts = []
    for err in exc.errors():
        # drop the leading "body" / "query" / "path"
        loc = ".".join(str(p) for p in err.get("loc", ())[1:])
        msg = err.get("msg", "Invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request"


async def marketplace_error_handler(
    request: Request, exc: MarketplaceError
) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(
        level,
        "%s on %s %s: %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc.message,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message},
        headers=headers,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    message = validation_message(exc)
    logger.info(
        "Validation failed on %s %s: %s", request.method, request.url.path, message
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": message},
    )


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": str(exc) or "Internal server error"},
    )


app = FastAPI(
    title="course-marketplace",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_exception_handler(MarketplaceError, marketplace_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) -> Metrics -> CORS -> route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(categories_router)
app.include_router(courses_router)
app.include_router(sections_router)
app.include_router(enrollments_router)
app.include_router(dashboard_router)

logger.info(
    "course-marketplace started  env=%s log_level=%s port=%d storage=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "postgres" if SETTINGS.database_url else "memory",
    "on" if SETTINGS.is_dev else "off",
)
