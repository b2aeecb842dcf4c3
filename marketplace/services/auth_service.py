from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from marketplace.core.errors import BusinessRuleViolation
from marketplace.models.user import SELF_SERVICE_ROLES, NewUser, Role, User
from marketplace.repos.storage import Storage

logger = logging.getLogger(__name__)

_ph = PasswordHasher()


def hash_password(plain_password: str) -> str:
    if not plain_password:
        raise ValueError("password must be non-empty")
    # Argon2 encodes salt and parameters in the returned string.
    return _ph.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return _ph.verify(password_hash, plain_password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


async def register_user(
    storage: Storage,
    *,
    username: str,
    email: str,
    password: str,
    role: Role = Role.STUDENT,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """Create an account. Only self-service roles can be requested."""
    if role not in SELF_SERVICE_ROLES:
        raise BusinessRuleViolation(f"Role {role.value!r} cannot be self-assigned")
    user = await storage.create_user(
        NewUser(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=role,
            first_name=first_name,
            last_name=last_name,
        )
    )
    logger.info("Registered user=%s role=%s", user.id, user.role.value)
    return user


async def authenticate_user(
    storage: Storage, username: str, password: str
) -> User | None:
    user = await storage.get_user_by_username(username)
    if user is None:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
