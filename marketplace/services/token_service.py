"""JWT access token creation and validation (ES256).

Issuance (auth.py) and validation (dependencies.py) share the same key and
claims schema through this module.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives.asymmetric import ec

# Dev/test: an ephemeral EC key pair generated on import, so tokens do not
# survive a restart.
_private_key = ec.generate_private_key(ec.SECP256R1())
_public_key = _private_key.public_key()

ALGORITHM = "ES256"
ISSUER = "course-marketplace"
AUDIENCE = "course-marketplace-api"
ACCESS_TOKEN_TTL_MIN = 60


def create_access_token(*, user_id: int, role: str) -> str:
    """Build and sign an access token for ``user_id``.

    ``role`` is informational for clients; the API re-reads the role from
    storage on every request.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "role": role,
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256. exp, iss and aud are validated by PyJWT.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )
