"""Error taxonomy shared by the storage and route layers.

Each error carries the HTTP status it maps to. The handlers registered in
marketplace.main turn them into ``{"message": ...}`` responses, so routes and
storage raise these instead of building HTTP responses themselves.
"""

from __future__ import annotations


class MarketplaceError(Exception):
    """Base class for every expected failure."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class Unauthenticated(MarketplaceError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class Forbidden(MarketplaceError):
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


class NotFound(MarketplaceError):
    status_code = 404


class ValidationError(MarketplaceError):
    status_code = 400


class BusinessRuleViolation(MarketplaceError):
    status_code = 400


class DuplicateEnrollmentError(BusinessRuleViolation):
    def __init__(self, message: str = "Already enrolled in this course") -> None:
        super().__init__(message)


class InternalError(MarketplaceError):
    status_code = 500
