"""
Tests for AsyncPartnerClient and its resources.
"""
import json

import httpx
import pytest

from conftest import BASE_URL, pricing_url
from partner_seats import AsyncPartnerClient
from partner_seats.client import RetryConfig
from partner_seats.exceptions import APIError, AuthenticationError
from partner_seats.models import DurationMonths, PendingPayload, SessionsPerDay


class TestClientInitialization:
    """Tests for client initialization."""

    def test_initialize_all_resources(self, api_token, base_url):
        """Should initialize all resource classes."""
        client = AsyncPartnerClient(base_url=base_url, api_token=api_token)

        assert hasattr(client, "pricing")
        assert hasattr(client, "payment_methods")
        assert hasattr(client, "processor")
        assert hasattr(client, "seats")

    def test_strip_trailing_slash_from_base_url(self, api_token):
        """Should strip trailing slash from base URL."""
        client = AsyncPartnerClient(base_url="https://console.example.com/api/", api_token=api_token)
        assert client._base_url == "https://console.example.com/api"

    def test_from_settings(self, settings):
        """Should take base URL, token and retries from settings."""
        client = AsyncPartnerClient.from_settings(settings)
        assert client._base_url == BASE_URL
        assert client._api_token == "test-session-token"
        assert client._retry.max_retries == 0


class TestRetryConfig:
    def test_exponential_delay_is_capped(self):
        retry = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=0)
        assert retry.calculate_delay(0) == 1.0
        assert retry.calculate_delay(2) == 4.0
        assert retry.calculate_delay(10) == 5.0


class TestResponseHandling:
    """Tests for envelope unwrapping and error mapping."""

    async def test_unwrap_data_envelope(self, client, httpx_mock, mock_responses):
        """Should return the quote parsed from the data envelope."""
        httpx_mock.add_response(url=pricing_url(), method="GET", json=mock_responses["pricing"])

        quote = await client.pricing.get_quote(10, SessionsPerDay.FIVE, DurationMonths.ONE)

        assert str(quote.total) == "125.00"
        assert str(quote.price_per_candidate) == "12.50"
        assert quote.currency == "USD"

    async def test_send_bearer_token(self, client, httpx_mock, mock_responses):
        """Should authenticate with the session token."""
        httpx_mock.add_response(url=pricing_url(), method="GET", json=mock_responses["pricing"])

        await client.pricing.get_quote(10, SessionsPerDay.FIVE, DurationMonths.ONE)

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer test-session-token"

    async def test_unlimited_sessions_sent_as_minus_one(self, client, httpx_mock, mock_responses):
        httpx_mock.add_response(
            url=pricing_url(seats=25, sessions_per_day=-1, months=12),
            method="GET",
            json=mock_responses["pricing"],
        )

        quote = await client.pricing.get_quote(25, SessionsPerDay.UNLIMITED, DurationMonths.TWELVE)

        assert quote.key.sessions_per_day is SessionsPerDay.UNLIMITED

    async def test_success_false_raises(self, client, httpx_mock):
        """Should raise APIError on a success:false envelope even with HTTP 200."""
        httpx_mock.add_response(
            url=pricing_url(),
            method="GET",
            json={"success": False, "message": "Seat count below minimum"},
        )

        with pytest.raises(APIError) as exc_info:
            await client.pricing.get_quote(10, SessionsPerDay.FIVE, DurationMonths.ONE)

        assert exc_info.value.message == "Seat count below minimum"
        assert exc_info.value.status_code == 200

    async def test_error_code_from_envelope(self, client, httpx_mock):
        httpx_mock.add_response(
            url=f"{BASE_URL}/processor/setup-secret",
            method="GET",
            status_code=422,
            json={"success": False, "message": "Customer missing", "code": "NO_CUSTOMER"},
        )

        with pytest.raises(APIError) as exc_info:
            await client.processor.get_setup_secret()

        assert exc_info.value.error_code == "NO_CUSTOMER"
        assert not exc_info.value.is_server_error

    async def test_authentication_error(self, client, httpx_mock):
        """Should raise AuthenticationError on 401."""
        httpx_mock.add_response(
            url=f"{BASE_URL}/payment-methods",
            method="GET",
            status_code=401,
            json={"message": "Unauthorized"},
        )

        with pytest.raises(AuthenticationError):
            await client.payment_methods.list()

    async def test_empty_body(self, client, httpx_mock):
        httpx_mock.add_response(
            url=f"{BASE_URL}/payment-methods/pm_visa",
            method="DELETE",
            status_code=204,
        )

        await client.payment_methods.delete("pm_visa")


class TestRetries:
    """Transport retries apply to GET only."""

    async def test_get_retried_on_connect_error(self, api_token, base_url, httpx_mock, mock_responses):
        """Should retry a GET after a transport error."""
        httpx_mock.add_exception(httpx.ConnectError("refused"), url=pricing_url(), method="GET")
        httpx_mock.add_response(url=pricing_url(), method="GET", json=mock_responses["pricing"])

        async with AsyncPartnerClient(
            base_url=base_url,
            api_token=api_token,
            retry=RetryConfig(max_retries=2, base_delay=0, jitter=0),
        ) as client:
            quote = await client.pricing.get_quote(10, SessionsPerDay.FIVE, DurationMonths.ONE)

        assert str(quote.total) == "125.00"
        assert len(httpx_mock.get_requests()) == 2

    async def test_post_not_retried(self, api_token, base_url, httpx_mock):
        """Should send a confirmation exactly once even when retries are enabled."""
        httpx_mock.add_exception(
            httpx.ConnectError("refused"),
            url=f"{BASE_URL}/seats/confirm-purchase",
            method="POST",
        )
        payload = PendingPayload(
            attempt_id="spa_1",
            seat_count=10,
            sessions_per_day=SessionsPerDay.FIVE,
            months=DurationMonths.ONE,
            auto_renew=False,
            batch_name="Cohort A",
            payment_method_id="pm_visa",
        )

        async with AsyncPartnerClient(
            base_url=base_url,
            api_token=api_token,
            retry=RetryConfig(max_retries=2, base_delay=0, jitter=0),
        ) as client:
            with pytest.raises(httpx.ConnectError):
                await client.seats.confirm_purchase(payload)

        assert len(httpx_mock.get_requests()) == 1


class TestSeatsResource:
    async def test_confirm_purchase(self, client, httpx_mock, mock_responses):
        """Should post the captured body and parse the allocation."""
        httpx_mock.add_response(
            url=f"{BASE_URL}/seats/confirm-purchase",
            method="POST",
            json=mock_responses["purchase"],
        )
        payload = PendingPayload(
            attempt_id="spa_1",
            seat_count=10,
            sessions_per_day=SessionsPerDay.UNLIMITED,
            months=DurationMonths.THREE,
            auto_renew=True,
            batch_id="batch_001",
            payment_method_id="pm_visa",
        )

        result = await client.seats.confirm_purchase(payload)

        body = json.loads(httpx_mock.get_request().content)
        assert body["sessions_per_day"] == -1
        assert body["batch_id"] == "batch_001"
        assert "batch_name" not in body
        assert result.attempt_id == "spa_1"
        assert result.transaction_id == "txn_001"
        assert result.seats_allocated == 10
