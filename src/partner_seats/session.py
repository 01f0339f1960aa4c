"""Partner session: shared resources and purchase exclusivity."""
from __future__ import annotations

import logging
from typing import Any, Optional

from .acquisition import CredentialAcquisition
from .cache import CacheBackend, InMemoryCache
from .client import AsyncPartnerClient
from .config import SeatsSettings, load_settings
from .configuration import PurchaseConfigurationState
from .confirmation import PurchaseConfirmation
from .connectors.base import ProcessorConnector
from .connectors.stripe import StripeConnector
from .credentials import CredentialStore
from .exceptions import ConfirmationInFlight, PurchaseInProgress
from .idempotency import IdempotencyManager, InMemoryIdempotencyStore
from .logging_config import bind_partner
from .models.purchase import PurchaseState
from .orchestrator import PurchaseOrchestrator
from .quotes import PricingEngine

logger = logging.getLogger(__name__)


class PartnerSession:
    """
    One signed-in partner.

    Owns the backend client, the processor connector and the query cache
    shared by every screen, and allows at most one open purchase at a time.

    Example:
        ```python
        async with PartnerSession(load_settings()) as session:
            purchase = session.open_purchase(batch_name="Spring cohort", seat_count=25)
            await purchase.requote()
            await purchase.load_credentials()
            result = await purchase.submit()
        ```
    """

    def __init__(
        self,
        settings: Optional[SeatsSettings] = None,
        client: Optional[AsyncPartnerClient] = None,
        connector: Optional[ProcessorConnector] = None,
        cache: Optional[CacheBackend] = None,
        partner_id: Optional[str] = None,
    ):
        self.settings = settings if settings is not None else load_settings()
        self.client = client if client is not None else AsyncPartnerClient.from_settings(self.settings)
        if connector is None:
            connector = StripeConnector(
                publishable_key=self.settings.processor_publishable_key,
                api_base=self.settings.processor_api_base,
                timeout=self.settings.processor_timeout_seconds,
            )
        self.connector = connector
        self.cache = cache if cache is not None else InMemoryCache()
        self.partner_id = partner_id
        self.credentials = CredentialStore(
            self.client,
            self.cache,
            ttl_seconds=self.settings.credential_cache_ttl_seconds,
        )
        self._ledger = IdempotencyManager(InMemoryIdempotencyStore())
        self._confirmation = PurchaseConfirmation(
            self.client,
            self.cache,
            ledger=self._ledger,
            timeout=self.settings.confirm_timeout_seconds,
        )
        self._active: Optional[PurchaseOrchestrator] = None
        bind_partner(partner_id)

    @property
    def active_purchase(self) -> Optional[PurchaseOrchestrator]:
        return self._active

    def open_purchase(
        self,
        batch_name: Optional[str] = None,
        batch_id: Optional[str] = None,
        **selections: Any,
    ) -> PurchaseOrchestrator:
        """
        Open the purchase flow for a new batch or for extending one.

        Args:
            batch_name: Name of the batch to create
            batch_id: Existing batch to add seats to (takes precedence)
            **selections: Initial seat_count, sessions_per_day,
                duration_months, auto_renew

        Raises:
            PurchaseInProgress: Another purchase is still open
        """
        if self._active is not None and not self._active.closed:
            raise PurchaseInProgress(
                f"Purchase {self._active.attempt.attempt_id} is still open"
            )

        if batch_id:
            configuration = PurchaseConfigurationState.for_existing_batch(
                batch_id, minimum_seats=self.settings.extend_min_seats, **selections
            )
        else:
            configuration = PurchaseConfigurationState.for_new_batch(
                batch_name or "", minimum_seats=self.settings.new_batch_min_seats, **selections
            )

        purchase = PurchaseOrchestrator(
            configuration=configuration,
            pricing=PricingEngine(
                self.client,
                self.cache,
                timeout=self.settings.pricing_timeout_seconds,
                cache_ttl_seconds=self.settings.quote_cache_ttl_seconds,
            ),
            credentials=self.credentials,
            acquisition=CredentialAcquisition(
                self.client,
                self.connector,
                setup_timeout=self.settings.setup_timeout_seconds,
            ),
            confirmation=self._confirmation,
            quote_max_age_seconds=self.settings.quote_max_age_seconds,
            on_close=self._purchase_closed,
        )
        self._active = purchase
        logger.info(f"Opened purchase {purchase.attempt.attempt_id}")
        return purchase

    def _purchase_closed(self, purchase: PurchaseOrchestrator) -> None:
        if self._active is purchase:
            self._active = None

    async def logout(self) -> None:
        """Close any open purchase and drop every cached query.

        Raises:
            ConfirmationInFlight: A purchase is confirming with the backend
        """
        if self._active is not None:
            if self._active.state is PurchaseState.CONFIRMING_WITH_BACKEND:
                raise ConfirmationInFlight()
            if self._active.state is PurchaseState.FAILED:
                self._active.acknowledge()
            self._active.close()
        await self.cache.clear()
        bind_partner(None)
        logger.info("Partner session logged out")

    async def close(self) -> None:
        await self.client.close()
        await self.connector.close()

    async def __aenter__(self) -> "PartnerSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
