"""Tests for the pricing engine's ordering and error mapping."""
from __future__ import annotations

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from typing import Dict, List

import httpx
import pytest

from conftest import pricing_url
from partner_seats.cache import InMemoryCache, pricing_key
from partner_seats.exceptions import PricingUnavailable, PurchaseCancelled
from partner_seats.models import DurationMonths, PriceQuote, QuoteKey, SessionsPerDay
from partner_seats.quotes import PricingEngine


def make_key(seats: int, sessions: SessionsPerDay = SessionsPerDay.FIVE) -> QuoteKey:
    return QuoteKey(seat_count=seats, sessions_per_day=sessions, months=DurationMonths.ONE)


class GatedPricing:
    """Pricing resource whose responses are held until released per seat count."""

    def __init__(self) -> None:
        self.gates: Dict[int, asyncio.Event] = {}
        self.calls: List[QuoteKey] = []
        self.finished: List[QuoteKey] = []

    def hold(self, seats: int) -> asyncio.Event:
        self.gates[seats] = asyncio.Event()
        return self.gates[seats]

    async def get_quote_for(self, key: QuoteKey, timeout=None) -> PriceQuote:
        self.calls.append(key)
        gate = self.gates.get(key.seat_count)
        if gate is not None:
            await gate.wait()
        self.finished.append(key)
        return PriceQuote(
            key=key,
            price_per_candidate=Decimal("10"),
            total=Decimal(key.seat_count * 10),
        )


@pytest.fixture
def pricing() -> GatedPricing:
    return GatedPricing()


@pytest.fixture
def engine(pricing) -> PricingEngine:
    return PricingEngine(SimpleNamespace(pricing=pricing), InMemoryCache())


async def settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


class TestLastRequestWins:
    """A superseded quote request never becomes the held quote."""

    async def test_returns_quote_for_key(self, engine):
        key = make_key(10)
        quote = await engine.get_quote(key)
        assert quote.matches(key)
        assert engine.held_quote is quote

    async def test_superseded_request_is_discarded(self, engine, pricing):
        """Should cancel the older request and hold only the newer quote."""
        pricing.hold(10)
        first = asyncio.create_task(engine.get_quote(make_key(10)))
        await settle()
        assert engine.is_fetching

        second = await engine.get_quote(make_key(20))

        assert await first is None
        assert second.total == Decimal("200")
        assert engine.held_quote is second
        assert engine.quote_for(make_key(10)) is None
        assert make_key(10) not in pricing.finished

    async def test_held_quote_dropped_on_key_change(self, engine, pricing):
        """Should not keep showing a quote for a previous configuration."""
        await engine.get_quote(make_key(10))
        pricing.hold(20)
        pending = asyncio.create_task(engine.get_quote(make_key(20)))
        await settle()

        assert engine.held_quote is None
        assert engine.quote_for(make_key(10)) is None

        pricing.gates[20].set()
        quote = await pending
        assert engine.quote_for(make_key(20)) is quote

    async def test_cancel_drops_everything(self, engine, pricing):
        """Should fail the pending request with PurchaseCancelled rather than return nothing."""
        pricing.hold(10)
        pending = asyncio.create_task(engine.get_quote(make_key(10)))
        await settle()

        engine.cancel()

        with pytest.raises(PurchaseCancelled):
            await pending
        assert engine.held_quote is None
        assert engine.latest_key is None

    async def test_outer_cancellation_propagates(self, engine, pricing):
        """Should not swallow cancellation of the caller's own task."""
        pricing.hold(10)
        pending = asyncio.create_task(engine.get_quote(make_key(10)))
        await settle()

        pending.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending


class TestQuoteCache:
    async def test_cached_per_input_tuple(self, pricing):
        cache = InMemoryCache()
        engine = PricingEngine(SimpleNamespace(pricing=pricing), cache)

        await engine.get_quote(make_key(10))
        await engine.get_quote(make_key(20))
        quote = await engine.get_quote(make_key(10))

        assert len(pricing.calls) == 2
        assert quote.total == Decimal("100")
        assert await cache.get(pricing_key(10, 5, 1)) is not None


class TestPricingErrors:
    """Backend failures surface as PricingUnavailable."""

    async def test_server_error_is_retryable(self, client, cache, httpx_mock):
        httpx_mock.add_response(
            url=pricing_url(), method="GET", status_code=503, json={"message": "down"}
        )
        engine = PricingEngine(client, cache)

        with pytest.raises(PricingUnavailable) as exc_info:
            await engine.get_quote(make_key(10))

        assert exc_info.value.retryable is True

    async def test_rejected_combination_is_not_retryable(self, client, cache, httpx_mock):
        httpx_mock.add_response(
            url=pricing_url(),
            method="GET",
            status_code=400,
            json={"success": False, "message": "Minimum 10 seats"},
        )
        engine = PricingEngine(client, cache)

        with pytest.raises(PricingUnavailable, match="Minimum 10 seats") as exc_info:
            await engine.get_quote(make_key(10))

        assert exc_info.value.retryable is False
        assert engine.held_quote is None

    async def test_timeout_is_retryable(self, client, cache, httpx_mock):
        httpx_mock.add_exception(httpx.ReadTimeout("slow"), url=pricing_url(), method="GET")
        engine = PricingEngine(client, cache)

        with pytest.raises(PricingUnavailable) as exc_info:
            await engine.get_quote(make_key(10))

        assert exc_info.value.retryable is True

    async def test_malformed_response(self, client, cache, httpx_mock):
        httpx_mock.add_response(url=pricing_url(), method="GET", json={"success": True, "data": {}})
        engine = PricingEngine(client, cache)

        with pytest.raises(PricingUnavailable, match="Invalid pricing response"):
            await engine.get_quote(make_key(10))
