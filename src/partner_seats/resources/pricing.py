"""Pricing resource."""
from __future__ import annotations

from typing import Optional

from ..models.pricing import DurationMonths, PriceQuote, QuoteKey, SessionsPerDay
from .base import AsyncBaseResource


class PricingResource(AsyncBaseResource):
    """Seat price quotes.

    Discount tiers are owned by the backend; every input change needs a
    new quote.
    """

    async def get_quote(
        self,
        seat_count: int,
        sessions_per_day: SessionsPerDay,
        months: DurationMonths,
        timeout: Optional[float] = None,
    ) -> PriceQuote:
        """Fetch a quote for one (seats, sessions/day, months) tuple.

        Args:
            seat_count: Number of seats
            sessions_per_day: Daily session allowance, UNLIMITED sent as -1
            months: Subscription duration
            timeout: Optional request timeout

        Returns:
            PriceQuote tagged with the key it was priced for
        """
        key = QuoteKey(seat_count=seat_count, sessions_per_day=sessions_per_day, months=months)
        return await self.get_quote_for(key, timeout=timeout)

    async def get_quote_for(self, key: QuoteKey, timeout: Optional[float] = None) -> PriceQuote:
        data = await self._get("/pricing", params=key.as_params(), timeout=timeout)
        return PriceQuote.from_response(key, data)
