"""Registration, login, logout and role selection over /api."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
from fastapi.testclient import TestClient

from marketplace.services import token_service
from tests.conftest import Actor, auth, mint_token


def _register(client: TestClient, username: str = "ada", **overrides):
    body = {
        "username": username,
        "email": f"{username}@example.com",
        "password": "correct-horse",
    }
    body.update(overrides)
    return client.post("/api/register", json=body)


def test_register_returns_token_and_user(client: TestClient) -> None:
    resp = _register(client, firstName="Ada", lastName="Lovelace")
    assert resp.status_code == 201
    data = resp.json()
    assert data["accessToken"]
    assert data["user"]["username"] == "ada"
    assert data["user"]["role"] == "student"
    assert data["user"]["firstName"] == "Ada"
    assert "passwordHash" not in data["user"]
    assert "password_hash" not in data["user"]


def test_register_normalizes_email(client: TestClient) -> None:
    resp = _register(client, email="Ada@Example.COM")
    assert resp.status_code == 201
    assert resp.json()["user"]["email"] == "ada@example.com"


def test_register_as_instructor(client: TestClient) -> None:
    resp = _register(client, role="instructor")
    assert resp.status_code == 201
    assert resp.json()["user"]["role"] == "instructor"


def test_register_cannot_self_assign_admin(client: TestClient) -> None:
    resp = _register(client, role="admin")
    assert resp.status_code == 400
    assert "role" in resp.json()["message"]


def test_register_duplicate_username_rejected(client: TestClient) -> None:
    assert _register(client).status_code == 201
    resp = _register(client, email="other@example.com")
    assert resp.status_code == 400
    assert resp.json() == {"message": "Username already exists"}


def test_register_duplicate_email_rejected(client: TestClient) -> None:
    assert _register(client).status_code == 201
    resp = _register(client, username="grace", email="ada@example.com")
    assert resp.status_code == 400
    assert resp.json() == {"message": "Email already registered"}


def test_register_rejects_malformed_email(client: TestClient) -> None:
    resp = _register(client, email="not-an-email")
    assert resp.status_code == 400
    assert resp.json()["message"].startswith("email:")


def test_login_with_registered_credentials(client: TestClient) -> None:
    _register(client)
    resp = client.post(
        "/api/login", json={"username": "ada", "password": "correct-horse"}
    )
    assert resp.status_code == 200
    token = resp.json()["accessToken"]

    me = client.get("/api/user", headers=auth(token))
    assert me.status_code == 200
    assert me.json()["username"] == "ada"


def test_login_wrong_password(client: TestClient) -> None:
    _register(client)
    resp = client.post("/api/login", json={"username": "ada", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json() == {"message": "Invalid username or password"}
    assert resp.headers["www-authenticate"] == "Bearer"


def test_login_unknown_user(client: TestClient) -> None:
    resp = client.post("/api/login", json={"username": "ghost", "password": "x"})
    assert resp.status_code == 401


# ---- token handling ----


def test_current_user_requires_token(client: TestClient) -> None:
    resp = client.get("/api/user")
    assert resp.status_code == 401
    assert resp.json() == {"message": "Not authenticated"}


def test_garbage_token_rejected(client: TestClient) -> None:
    resp = client.get("/api/user", headers=auth("not.a.jwt"))
    assert resp.status_code == 401
    assert resp.json() == {"message": "Invalid token"}


def test_expired_token_rejected(client: TestClient, student: Actor) -> None:
    past = datetime.now(UTC) - timedelta(hours=2)
    token = jwt.encode(
        {
            "sub": str(student.id),
            "iss": token_service.ISSUER,
            "aud": token_service.AUDIENCE,
            "iat": past,
            "exp": past + timedelta(minutes=5),
            "jti": "expired-jti",
        },
        token_service._private_key,
        algorithm=token_service.ALGORITHM,
    )
    resp = client.get("/api/user", headers=auth(token))
    assert resp.status_code == 401
    assert resp.json() == {"message": "Token expired"}


def test_token_for_deleted_user_rejected(client: TestClient) -> None:
    resp = client.get("/api/user", headers=auth(mint_token(user_id=999)))
    assert resp.status_code == 401
    assert resp.json() == {"message": "User not found"}


def test_logout_revokes_token(client: TestClient, student: Actor) -> None:
    assert client.get("/api/user", headers=student.headers).status_code == 200

    resp = client.post("/api/logout", headers=student.headers)
    assert resp.status_code == 204

    resp = client.get("/api/user", headers=student.headers)
    assert resp.status_code == 401
    assert resp.json() == {"message": "Token revoked"}


def test_logout_leaves_other_tokens_alone(client: TestClient, student: Actor) -> None:
    other = auth(mint_token(student.id))
    client.post("/api/logout", headers=student.headers)
    assert client.get("/api/user", headers=other).status_code == 200


# ---- role selection ----


def test_select_role_switches_student_to_instructor(
    client: TestClient, student: Actor
) -> None:
    resp = client.patch(
        "/api/user/role", json={"role": "instructor"}, headers=student.headers
    )
    assert resp.status_code == 200
    assert resp.json()["role"] == "instructor"

    # Same token, new role: creating a course is now allowed.
    resp = client.post(
        "/api/courses",
        json={"title": "Fresh", "price": "10.00"},
        headers=student.headers,
    )
    assert resp.status_code == 201


def test_select_role_rejects_admin(client: TestClient, student: Actor) -> None:
    resp = client.patch(
        "/api/user/role", json={"role": "admin"}, headers=student.headers
    )
    assert resp.status_code == 400
    me = client.get("/api/user", headers=student.headers).json()
    assert me["role"] == "student"
