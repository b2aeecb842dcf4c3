from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

import jwt
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from marketplace.core.context import user_id_var
from marketplace.core.errors import Forbidden, Unauthenticated
from marketplace.db.engine import async_session_factory, session_scope
from marketplace.models.principal import Principal
from marketplace.models.user import Role
from marketplace.repos.memory_storage import InMemoryStorage
from marketplace.repos.pg_storage import PgStorage
from marketplace.repos.storage import Storage
from marketplace.services import token_service
from marketplace.services.token_blacklist import token_blacklist

logger = logging.getLogger(__name__)

# auto_error=False so a missing header goes through the same 401 path as a
# bad token and gets the {"message": ...} body.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login", auto_error=False)

# Used whenever DATABASE_URL is not configured (local dev, tests).
memory_storage = InMemoryStorage()


async def get_storage() -> AsyncGenerator[Storage, None]:
    """Request-scoped Storage.

    With a database, every storage call in one request shares one session
    and one transaction: commit on success, rollback on any exception.
    """
    if async_session_factory is None:
        yield memory_storage
        return
    async with session_scope() as session:
        yield PgStorage(session)


async def require_user(
    raw_token: Annotated[str | None, Depends(oauth2_scheme)],
    storage: Annotated[Storage, Depends(get_storage)],
) -> Principal:
    """Validate the bearer token and load the caller. Returns a Principal.

    The role comes from storage, not from the token, so a role change is
    honoured on the very next request.
    """
    if not raw_token:
        raise Unauthenticated()
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise Unauthenticated("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise Unauthenticated("Invalid token") from None

    if await token_blacklist.is_revoked(claims["jti"]):
        logger.warning("Revoked token rejected jti=%s", claims["jti"])
        raise Unauthenticated("Token revoked")

    try:
        user_id = int(claims["sub"])
    except ValueError:
        raise Unauthenticated("Invalid token") from None

    user = await storage.get_user(user_id)
    if user is None:
        logger.warning("Token for unknown user=%s rejected", user_id)
        raise Unauthenticated("User not found")

    user_id_var.set(user.id)
    logger.debug("Token validated for user=%s role=%s", user.id, user.role.value)
    return Principal(
        user_id=user.id,
        role=user.role,
        jti=claims["jti"],
        expires_at=float(claims["exp"]),
    )


def require_role(role: Role):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role(Role.ADMIN))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if principal.role is not role:
            logger.warning(
                "Access denied: user=%s role=%s required=%s",
                principal.user_id,
                principal.role.value,
                role.value,
            )
            raise Forbidden()
        return principal

    return _guard


def require_teacher(
    principal: Annotated[Principal, Depends(require_user)],
) -> Principal:
    """Admit roles that may author courses (instructor or admin)."""
    if not principal.can_teach():
        logger.warning(
            "Access denied: user=%s role=%s cannot teach",
            principal.user_id,
            principal.role.value,
        )
        raise Forbidden()
    return principal


StorageDep = Annotated[Storage, Depends(get_storage)]
CurrentUser = Annotated[Principal, Depends(require_user)]
