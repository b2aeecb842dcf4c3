"""JSON auth endpoints for the SPA (/api/register, /api/login, /api/logout)
plus the current-user and role-selection endpoints.

Register and login both return ``{accessToken, user}`` so the client can keep
the token in memory and go straight to the dashboard.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status

from marketplace.api.dependencies import CurrentUser, StorageDep
from marketplace.api.schemas import AuthResponse, LoginIn, RegisterIn, RoleIn, UserOut
from marketplace.core.errors import NotFound, Unauthenticated
from marketplace.models.user import Role, User
from marketplace.services import auth_service, token_service
from marketplace.services.token_blacklist import token_blacklist

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def _issue(user: User) -> AuthResponse:
    return AuthResponse(
        accessToken=token_service.create_access_token(
            user_id=user.id, role=user.role.value
        ),
        user=UserOut.from_domain(user),
    )


@router.post(
    "/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED
)
async def register(payload: RegisterIn, storage: StorageDep) -> AuthResponse:
    user = await auth_service.register_user(
        storage,
        username=payload.username.strip(),
        email=payload.email.lower().strip(),
        password=payload.password,
        role=Role(payload.role),
        first_name=payload.firstName,
        last_name=payload.lastName,
    )
    return _issue(user)


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginIn, storage: StorageDep) -> AuthResponse:
    user = await auth_service.authenticate_user(
        storage, payload.username.strip(), payload.password
    )
    if user is None:
        logger.info("Login failed  username=%s", payload.username)
        raise Unauthenticated("Invalid username or password")
    logger.info("Login succeeded  user_id=%s", user.id)
    return _issue(user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(principal: CurrentUser) -> Response:
    """Revoke the caller's token until it would have expired."""
    if principal.jti and principal.expires_at:
        await token_blacklist.revoke(principal.jti, principal.expires_at)
        logger.info("Token revoked jti=%s user=%s", principal.jti, principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/user", response_model=UserOut)
async def current_user(principal: CurrentUser, storage: StorageDep) -> UserOut:
    user = await storage.get_user(principal.user_id)
    if user is None:
        raise NotFound("User not found")
    return UserOut.from_domain(user)


@router.patch("/user/role", response_model=UserOut)
async def select_role(
    payload: RoleIn, principal: CurrentUser, storage: StorageDep
) -> UserOut:
    """Role-selection flow. Admin is never self-assigned (rejected by RoleIn)."""
    user = await storage.update_user_role(principal.user_id, Role(payload.role))
    if user is None:
        raise NotFound("User not found")
    logger.info("Role changed  user_id=%s role=%s", user.id, user.role.value)
    return UserOut.from_domain(user)
