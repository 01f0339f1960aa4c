"""
Partner console API client.

Example usage:
    ```python
    from partner_seats import AsyncPartnerClient

    async with AsyncPartnerClient(
        base_url="https://console.example.com/api",
        api_token="session-token",
    ) as client:
        quote = await client.pricing.get_quote(10, SessionsPerDay.FIVE, DurationMonths.ONE)
        cards = await client.payment_methods.list()
    ```
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from .config import SeatsSettings
from .exceptions import APIError, AuthenticationError
from .resources.payment_methods import PaymentMethodsResource
from .resources.pricing import PricingResource
from .resources.processor import ProcessorResource
from .resources.seats import SeatsResource

logger = logging.getLogger(__name__)

USER_AGENT = "partner-seats-python/0.1.0"
_RETRYABLE_METHODS = frozenset({"GET"})


@dataclass(frozen=True)
class RetryConfig:
    """Transport retry behaviour for idempotent requests.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        base_delay: Initial delay between retries in seconds
        max_delay: Upper bound for a single delay in seconds
        exponential_base: Base for exponential backoff
        jitter: Maximum jitter factor (0.0-1.0) applied to each delay
    """

    max_retries: int = 2
    base_delay: float = 0.5
    max_delay: float = 8.0
    exponential_base: float = 2.0
    jitter: float = 0.1

    def calculate_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter > 0:
            jitter_range = delay * self.jitter
            delay = delay + random.uniform(-jitter_range, jitter_range)
        return max(0.0, delay)


class AsyncPartnerClient:
    """
    Async client for the partner console backend.

    Resources:
    - pricing: Seat price quotes
    - payment_methods: Stored payment credentials
    - processor: Tokenization sessions for new credentials
    - seats: Seat purchase confirmation

    Args:
        base_url: Backend API root
        api_token: Console session token, sent as a bearer token
        timeout: Default request timeout in seconds
        retry: Transport retry configuration for GET requests
    """

    DEFAULT_BASE_URL = "http://localhost:3000/api"
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._retry = retry if retry is not None else RetryConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        self.pricing = PricingResource(self)
        self.payment_methods = PaymentMethodsResource(self)
        self.processor = ProcessorResource(self)
        self.seats = SeatsResource(self)

    @classmethod
    def from_settings(cls, settings: SeatsSettings) -> "AsyncPartnerClient":
        return cls(
            base_url=settings.api_base_url,
            api_token=settings.api_token or None,
            retry=RetryConfig(max_retries=settings.max_retries),
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            }
            if self._api_token:
                headers["Authorization"] = f"Bearer {self._api_token}"
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        timeout: Optional[Union[float, httpx.Timeout]] = None,
    ) -> dict[str, Any]:
        """Make an HTTP request and unwrap the ``{success, data}`` envelope.

        Transport errors on GET are retried with exponential backoff; any
        other method is sent exactly once.
        """
        client = await self._get_client()
        max_attempts = self._retry.max_retries + 1 if method.upper() in _RETRYABLE_METHODS else 1
        request_timeout = timeout if timeout is not None else self._timeout

        for attempt in range(max_attempts):
            try:
                response = await client.request(
                    method=method,
                    url=path,
                    params=params,
                    json=json,
                    timeout=request_timeout,
                )
            except httpx.TransportError as e:
                if attempt < max_attempts - 1:
                    delay = self._retry.calculate_delay(attempt)
                    logger.warning(
                        f"{method} {path} failed ({type(e).__name__}), retrying in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise
            return self._handle_response(response)

        raise RuntimeError("Unexpected error in request retry loop")

    @staticmethod
    def _handle_response(response: httpx.Response) -> dict[str, Any]:
        if response.status_code == 401:
            raise AuthenticationError()

        if response.status_code == 204 or not response.content:
            if response.status_code >= 400:
                raise APIError.from_response(response.status_code, {})
            return {}

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}

        if response.status_code >= 400:
            raise APIError.from_response(response.status_code, body)

        if isinstance(body, dict) and body.get("success") is False:
            raise APIError.from_response(response.status_code, body)

        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            return body["data"]
        return body if isinstance(body, dict) else {"data": body}

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "AsyncPartnerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
