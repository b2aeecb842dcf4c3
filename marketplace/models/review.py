from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from marketplace.models.user import User

_CENTS = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class Review:
    id: int
    user_id: int
    course_id: int
    rating: int  # 1..5
    comment: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class NewReview:
    user_id: int
    course_id: int
    rating: int
    comment: str | None = None


@dataclass(frozen=True, slots=True)
class ReviewWithUser:
    review: Review
    user: User


def average_rating(total: int | Decimal, count: int) -> Decimal:
    """Mean rating rounded half-up to 2 places; 0 when there are no reviews."""
    if count == 0:
        return Decimal("0.00")
    return (Decimal(total) / Decimal(count)).quantize(_CENTS, rounding=ROUND_HALF_UP)
