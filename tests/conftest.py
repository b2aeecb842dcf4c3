from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from marketplace.api.dependencies import memory_storage
from marketplace.main import app
from marketplace.models.user import NewUser, Role, User
from marketplace.services import token_service
from marketplace.services.token_blacklist import token_blacklist

# Ensure repo root is on sys.path so `import marketplace` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_storage() -> None:
    """Every test starts with an empty marketplace."""
    memory_storage.clear()


@pytest.fixture(autouse=True)
def reset_token_blacklist() -> None:
    if hasattr(token_blacklist, "_revoked"):
        token_blacklist._revoked.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(user_id: int, role: Role = Role.STUDENT) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(user_id=user_id, role=role.value)


def auth(token: str | None) -> dict[str, str]:
    if token is None:
        return {}
    return {"Authorization": f"Bearer {token}"}


@dataclass(frozen=True)
class Actor:
    """A seeded user plus ready-to-send auth headers."""

    user: User
    headers: dict[str, str]

    @property
    def id(self) -> int:
        return self.user.id


def seed_user(role: Role = Role.STUDENT, username: str | None = None) -> User:
    """Insert a user straight into storage (no password login)."""
    name = username or f"{role.value}-{uuid4().hex[:6]}"
    return asyncio.run(
        memory_storage.create_user(
            NewUser(
                username=name,
                email=f"{name}@example.com",
                password_hash="x",
                role=role,
            )
        )
    )


def seed_actor(role: Role = Role.STUDENT) -> Actor:
    user = seed_user(role)
    return Actor(user=user, headers=auth(mint_token(user.id, role)))


@pytest.fixture
def student() -> Actor:
    return seed_actor(Role.STUDENT)


@pytest.fixture
def instructor() -> Actor:
    return seed_actor(Role.INSTRUCTOR)


@pytest.fixture
def admin() -> Actor:
    return seed_actor(Role.ADMIN)


# ---------------------------------------------------------------------------
# Catalogue helpers
# ---------------------------------------------------------------------------


def create_course(client: TestClient, owner: Actor, **overrides) -> dict:
    body = {"title": "Intro to Python", "price": "49.99", "published": True}
    body.update(overrides)
    resp = client.post("/api/courses", json=body, headers=owner.headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_section(
    client: TestClient, owner: Actor, course_id: int, order: int = 1, **overrides
) -> dict:
    body = {"title": f"Section {order}", "order": order}
    body.update(overrides)
    resp = client.post(
        f"/api/courses/{course_id}/sections", json=body, headers=owner.headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_lesson(
    client: TestClient, owner: Actor, section_id: int, order: int = 1, **overrides
) -> dict:
    body = {"title": f"Lesson {order}", "order": order}
    body.update(overrides)
    resp = client.post(
        f"/api/sections/{section_id}/lessons", json=body, headers=owner.headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()
