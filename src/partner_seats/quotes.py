"""Pricing engine: quote fetching with last-request-wins ordering."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

import httpx

from .cache import CacheBackend, pricing_key
from .exceptions import APIError, PricingUnavailable, PurchaseCancelled
from .models.pricing import PriceQuote, QuoteKey

if TYPE_CHECKING:
    from .client import AsyncPartnerClient

logger = logging.getLogger(__name__)


class PricingEngine:
    """
    Fetches price quotes for the purchase configuration.

    Every configuration change requests a new quote. A request that is
    superseded by a newer one is cancelled, and if its response still
    arrives it is discarded rather than merged, so the held quote always
    belongs to the most recently requested key.

    Quotes are cached per input tuple in the shared query cache.
    """

    def __init__(
        self,
        client: "AsyncPartnerClient",
        cache: CacheBackend,
        timeout: float = 10.0,
        cache_ttl_seconds: int = 60,
    ):
        self._client = client
        self._cache = cache
        self._timeout = timeout
        self._cache_ttl = cache_ttl_seconds
        self._sequence = 0
        self._cancelled_sequence = 0
        self._latest_key: Optional[QuoteKey] = None
        self._held: Optional[PriceQuote] = None
        self._inflight: Optional[asyncio.Task] = None

    @property
    def held_quote(self) -> Optional[PriceQuote]:
        """The quote for the most recently requested key, if it has arrived."""
        return self._held

    @property
    def latest_key(self) -> Optional[QuoteKey]:
        return self._latest_key

    @property
    def is_fetching(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def quote_for(self, key: QuoteKey) -> Optional[PriceQuote]:
        """Return the held quote only if it was priced for ``key``."""
        if self._held is not None and self._held.matches(key):
            return self._held
        return None

    async def get_quote(self, key: QuoteKey) -> Optional[PriceQuote]:
        """
        Request a quote for ``key``, superseding any request in flight.

        Returns:
            The quote, or None when a newer request superseded this one

        Raises:
            PricingUnavailable: The backend could not price the combination
            PurchaseCancelled: ``cancel()`` was called while this request was pending
        """
        self._sequence += 1
        sequence = self._sequence
        self._latest_key = key
        if self._held is not None and not self._held.matches(key):
            self._held = None
        self._cancel_inflight()

        cached = await self._cache.get(_cache_key(key))
        if cached is not None:
            quote = PriceQuote.model_validate_json(cached)
            return self._accept(sequence, quote)

        task = asyncio.ensure_future(self._fetch(key))
        self._inflight = task
        try:
            quote = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if sequence != self._sequence and not (current and current.cancelling()):
                self._check_cancelled(sequence)
                logger.debug(f"Quote request for {key.as_params()} superseded")
                return None
            raise
        finally:
            if self._inflight is task:
                self._inflight = None

        await self._cache.set(
            _cache_key(key),
            quote.model_dump_json(),
            ttl=self._cache_ttl,
        )
        return self._accept(sequence, quote)

    def cancel(self) -> None:
        """Cancel any request in flight and drop the held quote.

        A caller still awaiting the latest request gets ``PurchaseCancelled``.
        """
        self._cancelled_sequence = self._sequence
        self._sequence += 1
        self._cancel_inflight()
        self._held = None
        self._latest_key = None

    def _accept(self, sequence: int, quote: PriceQuote) -> Optional[PriceQuote]:
        if sequence != self._sequence:
            self._check_cancelled(sequence)
            logger.debug(f"Discarding late quote for {quote.key.as_params()}")
            return None
        self._held = quote
        return quote

    def _check_cancelled(self, sequence: int) -> None:
        if sequence == self._cancelled_sequence:
            raise PurchaseCancelled("Quote request was cancelled")

    def _cancel_inflight(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None

    async def _fetch(self, key: QuoteKey) -> PriceQuote:
        try:
            return await self._client.pricing.get_quote_for(key, timeout=self._timeout)
        except APIError as e:
            logger.warning(f"Pricing rejected for {key.as_params()}: {e}")
            raise PricingUnavailable(
                e.message,
                retryable=e.is_server_error,
                details={"status_code": e.status_code},
            ) from e
        except httpx.TimeoutException as e:
            raise PricingUnavailable("Pricing timed out. Please try again.", retryable=True) from e
        except httpx.TransportError as e:
            raise PricingUnavailable("Pricing service unreachable. Please try again.", retryable=True) from e
        except ValueError as e:
            raise PricingUnavailable(f"Invalid pricing response: {e}") from e


def _cache_key(key: QuoteKey) -> str:
    return pricing_key(key.seat_count, int(key.sessions_per_day), int(key.months))
