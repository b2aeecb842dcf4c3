from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of platform roles."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


# Roles a user may pick for themselves (registration, role selection).
SELF_SERVICE_ROLES = frozenset({Role.STUDENT, Role.INSTRUCTOR})


@dataclass(frozen=True, slots=True)
class User:
    id: int
    username: str
    email: str
    password_hash: str
    role: Role = Role.STUDENT
    first_name: str | None = None
    last_name: str | None = None
    profile_image_url: str | None = None
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class NewUser:
    username: str
    email: str
    password_hash: str
    role: Role = Role.STUDENT
    first_name: str | None = None
    last_name: str | None = None
    profile_image_url: str | None = None
