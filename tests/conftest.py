"""
Pytest configuration and fixtures for the seat purchase tests.
"""
from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Union

import pytest

from partner_seats import AsyncPartnerClient, InMemoryCache, PartnerSession, SeatsSettings
from partner_seats.client import RetryConfig
from partner_seats.config import load_settings
from partner_seats.connectors.base import ProcessorConnector
from partner_seats.models.credentials import (
    CollectedPaymentDetails,
    ProcessorSetupResult,
    TokenizationSession,
)

BASE_URL = "https://console.test/api"
SETUP_SECRET = "seti_1AbC_secret_xyz"


class FakeConnector(ProcessorConnector):
    """Processor stand-in with scripted outcomes.

    Each call pops the next outcome; an exception outcome is raised. With an
    empty script the call succeeds with ``pm_new``. ``gate`` holds every call
    until it is set.
    """

    def __init__(self) -> None:
        self.outcomes: List[Union[ProcessorSetupResult, Exception]] = []
        self.calls: List[tuple[str, str]] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    async def confirm_setup(
        self,
        session: TokenizationSession,
        collected: CollectedPaymentDetails,
    ) -> ProcessorSetupResult:
        self.calls.append((session.session_id, collected.payment_method_token))
        if self.gate is not None:
            await self.gate.wait()
        if self.outcomes:
            outcome = self.outcomes.pop(0)
        else:
            outcome = ProcessorSetupResult(session_id=session.session_id, payment_method_id="pm_new")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


# Mock response data
MOCK_RESPONSES = {
    "pricing": {
        "success": True,
        "data": {
            "per_candidate": "12.50",
            "total": "125.00",
            "currency": "usd",
            "breakdown": {
                "volume_discount_percent": 0,
                "total_before_discount": "125.00",
                "discount": "0",
            },
        },
    },
    "no_cards": {
        "success": True,
        "data": {"cards": [], "default_payment_method": None},
    },
    "cards": {
        "success": True,
        "data": {
            "cards": [
                {
                    "id": "pm_visa",
                    "card_brand": "visa",
                    "last_four": "4242",
                    "expiry_month": 4,
                    "expiry_year": 2030,
                },
                {
                    "id": "pm_amex",
                    "card_brand": "amex",
                    "last_four": "0005",
                    "expiry_month": 11,
                    "expiry_year": 2029,
                },
            ],
            "default_payment_method": "pm_visa",
        },
    },
    "cards_no_default": {
        "success": True,
        "data": {
            "cards": [
                {
                    "id": "pm_visa",
                    "card_brand": "visa",
                    "last_four": "4242",
                    "expiry_month": 4,
                    "expiry_year": 2030,
                },
            ],
            "default_payment_method": None,
        },
    },
    "setup_secret": {
        "success": True,
        "data": {"client_secret": SETUP_SECRET},
    },
    "purchase": {
        "success": True,
        "message": "Seats purchased",
        "data": {
            "batch_id": "batch_001",
            "seats_allocated": 10,
            "transaction_id": "txn_001",
            "amount": "125.00",
            "status": "completed",
        },
    },
}


def pricing_url(seats: int = 10, sessions_per_day: int = 5, months: int = 1) -> str:
    return f"{BASE_URL}/pricing?seats={seats}&sessions_per_day={sessions_per_day}&months={months}"


def pricing_response(seats: int, per_candidate: str = "12.50") -> dict[str, Any]:
    total = f"{float(per_candidate) * seats:.2f}"
    return {
        "success": True,
        "data": {
            "per_candidate": per_candidate,
            "total": total,
            "breakdown": {"volume_discount_percent": 0},
        },
    }


@pytest.fixture(autouse=True)
def clear_settings_cache():
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


@pytest.fixture
def base_url() -> str:
    """Test base URL."""
    return BASE_URL


@pytest.fixture
def api_token() -> str:
    """Test session token."""
    return "test-session-token"


@pytest.fixture
def settings(base_url: str, api_token: str) -> SeatsSettings:
    return SeatsSettings(
        _env_file=None,
        api_base_url=base_url,
        api_token=api_token,
        processor_publishable_key="pk_test_123",
        max_retries=0,
    )


@pytest.fixture
async def client(base_url: str, api_token: str) -> AsyncPartnerClient:
    """Create a test client."""
    # Keep non-retry tests deterministic; retry behavior is tested explicitly.
    client = AsyncPartnerClient(
        base_url=base_url,
        api_token=api_token,
        retry=RetryConfig(max_retries=0),
    )
    yield client
    await client.close()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
async def session(settings, client, connector, cache) -> PartnerSession:
    session = PartnerSession(settings, client=client, connector=connector, cache=cache)
    yield session
    await session.close()


@pytest.fixture
def mock_responses() -> dict:
    """Return mock response data."""
    return MOCK_RESPONSES
