from __future__ import annotations

from dataclasses import dataclass

from marketplace.core.errors import InternalError
from marketplace.models.user import Role


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller, resolved from a validated access token.

    The role is read from storage on every request (not from the token), so
    a role change is visible on the caller's next request.
    """

    user_id: int
    role: Role
    jti: str | None = None
    expires_at: float | None = None

    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def can_teach(self) -> bool:
        if self.role in (Role.INSTRUCTOR, Role.ADMIN):
            return True
        if self.role is Role.STUDENT:
            return False
        raise InternalError(f"Unhandled role {self.role!r}")

    def owns_or_admin(self, owner_id: int) -> bool:
        return self.user_id == owner_id or self.is_admin()
