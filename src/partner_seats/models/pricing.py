"""Pricing models."""
from __future__ import annotations

import time
from decimal import Decimal
from enum import IntEnum
from typing import Any, Optional

from pydantic import Field

from .base import FrozenSeatsModel


class SessionsPerDay(IntEnum):
    """Daily practice-session allowance per candidate. UNLIMITED is -1 on the wire."""

    THREE = 3
    FIVE = 5
    TEN = 10
    UNLIMITED = -1

    @property
    def label(self) -> str:
        if self is SessionsPerDay.UNLIMITED:
            return "Unlimited"
        return f"{self.value} sessions/day"


class DurationMonths(IntEnum):
    """Subscription duration options."""

    ONE = 1
    THREE = 3
    SIX = 6
    TWELVE = 12


class QuoteKey(FrozenSeatsModel):
    """The input tuple a quote was priced for."""

    seat_count: int = Field(ge=1)
    sessions_per_day: SessionsPerDay
    months: DurationMonths

    def as_params(self) -> dict[str, int]:
        return {
            "seats": self.seat_count,
            "sessions_per_day": int(self.sessions_per_day),
            "months": int(self.months),
        }


class PriceQuote(FrozenSeatsModel):
    """Immutable price snapshot for one QuoteKey."""

    key: QuoteKey
    price_per_candidate: Decimal
    total: Decimal
    volume_discount_percent: Decimal = Field(default=Decimal("0"), ge=0)
    total_before_discount: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    currency: str = "USD"
    fetched_at: float = Field(default_factory=time.monotonic)

    def matches(self, key: QuoteKey) -> bool:
        return self.key == key

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.monotonic()) - self.fetched_at

    @classmethod
    def from_response(cls, key: QuoteKey, data: dict[str, Any]) -> "PriceQuote":
        """Build a quote from the pricing endpoint payload.

        Accepts both ``per_candidate``/``total`` and the older
        ``breakdown.price_per_candidate``/``amount`` shapes.
        """
        breakdown = data.get("breakdown") or {}
        per_candidate = data.get("per_candidate", breakdown.get("price_per_candidate"))
        total = data.get("total", data.get("amount", breakdown.get("final_amount")))
        if per_candidate is None or total is None:
            raise ValueError("pricing response is missing per_candidate or total")
        return cls(
            key=key,
            price_per_candidate=Decimal(str(per_candidate)),
            total=Decimal(str(total)),
            volume_discount_percent=Decimal(str(breakdown.get("volume_discount_percent", 0))),
            total_before_discount=_optional_decimal(breakdown.get("total_before_discount")),
            discount=_optional_decimal(breakdown.get("discount")),
            currency=str(data.get("currency", "USD")).upper(),
        )


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))
