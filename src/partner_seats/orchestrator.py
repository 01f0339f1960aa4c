"""
Purchase orchestrator: the seat purchase saga.

State machine for one purchase attempt:

    Configuring ──► AwaitingCredential ──► ConfirmingWithProcessor ──┐
         │                ▲    │                    │                │
         │                └────┼──── declined ──────┘                │
         │                     └──► Failed (init error)              │
         └──────────────► ConfirmingWithBackend ◄────────────────────┘
                               │
                               ├──► Succeeded
                               ├──► Failed (capacity allocation)
                               └──► Configuring / AwaitingCredential (retryable)
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, TypeVar

from .acquisition import CredentialAcquisition
from .configuration import PurchaseConfigurationState
from .confirmation import PurchaseConfirmation
from .credentials import CredentialStore
from .exceptions import (
    BackendUnavailable,
    CapacityAllocationFailed,
    ChargeDeclined,
    ConfirmationInFlight,
    CredentialRejected,
    InvalidConfiguration,
    InvalidTransition,
    NoCredentialSelected,
    PurchaseCancelled,
    SeatPurchaseError,
    StaleQuote,
    TokenizationInitFailed,
)
from .logging_config import bind_attempt
from .models.credentials import CollectedPaymentDetails, StoredCredential, TokenizationSession
from .models.pricing import PriceQuote, QuoteKey
from .models.purchase import (
    PendingPayload,
    PurchaseResult,
    PurchaseState,
    StateTransition,
)
from .quotes import PricingEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSITIONS: Dict[Optional[PurchaseState], FrozenSet[PurchaseState]] = {
    None: frozenset({PurchaseState.CONFIGURING, PurchaseState.AWAITING_CREDENTIAL}),
    PurchaseState.CONFIGURING: frozenset(
        {PurchaseState.AWAITING_CREDENTIAL, PurchaseState.CONFIRMING_WITH_BACKEND}
    ),
    PurchaseState.AWAITING_CREDENTIAL: frozenset(
        {PurchaseState.CONFIRMING_WITH_PROCESSOR, PurchaseState.FAILED}
    ),
    PurchaseState.CONFIRMING_WITH_PROCESSOR: frozenset(
        {
            PurchaseState.AWAITING_CREDENTIAL,
            PurchaseState.CONFIRMING_WITH_BACKEND,
            PurchaseState.FAILED,
        }
    ),
    PurchaseState.CONFIRMING_WITH_BACKEND: frozenset(
        {
            PurchaseState.SUCCEEDED,
            PurchaseState.FAILED,
            PurchaseState.CONFIGURING,
            PurchaseState.AWAITING_CREDENTIAL,
        }
    ),
    PurchaseState.SUCCEEDED: frozenset(),
    PurchaseState.FAILED: frozenset(),
}


def _new_attempt_id() -> str:
    return f"spa_{uuid.uuid4().hex}"


@dataclass
class PurchaseAttempt:
    """In-memory record of one purchase attempt.

    ``pending_payload`` is captured once, when the attempt leaves
    Configuring, and replayed unchanged for every later step.
    """

    attempt_id: str = field(default_factory=_new_attempt_id)
    state: Optional[PurchaseState] = None
    pending_payload: Optional[PendingPayload] = None
    # Payload as captured, before a tokenized credential was attached.
    captured_payload: Optional[PendingPayload] = None
    quote: Optional[PriceQuote] = None
    credential_acquired: bool = False
    failure: Optional[SeatPurchaseError] = None
    result: Optional[PurchaseResult] = None
    transitions: List[StateTransition] = field(default_factory=list)

    @property
    def history(self) -> List[PurchaseState]:
        """States entered by this attempt, in order."""
        return [t.to_state for t in self.transitions]

    def transition(self, to_state: PurchaseState, reason: Optional[str] = None) -> None:
        if to_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Cannot move purchase from {self.state.value if self.state else 'start'} "
                f"to {to_state.value}"
            )
        self.transitions.append(
            StateTransition(
                from_state=self.state,
                to_state=to_state,
                at=datetime.now(timezone.utc),
                reason=reason,
            )
        )
        logger.info(
            f"Purchase {self.attempt_id}: "
            f"{self.state.value if self.state else 'start'} -> {to_state.value}"
            + (f" ({reason})" if reason else "")
        )
        self.state = to_state
        if to_state.is_terminal:
            self.pending_payload = None
            self.captured_payload = None


class PurchaseOrchestrator:
    """
    Drives one purchase from configuration to a terminal outcome.

    Routing: when stored credentials exist the user must pick one (the
    default is preselected) and the purchase goes straight to the backend.
    When none exist, or the user asks for a new card, the purchase first
    collects and tokenizes a credential, then confirms with it.

    Closing is honoured up to the backend confirmation. Once that request
    is out, ``close()`` raises ConfirmationInFlight until the outcome is
    known.
    """

    def __init__(
        self,
        configuration: PurchaseConfigurationState,
        pricing: PricingEngine,
        credentials: CredentialStore,
        acquisition: CredentialAcquisition,
        confirmation: PurchaseConfirmation,
        quote_max_age_seconds: float = 300.0,
        on_close: Optional[Callable[["PurchaseOrchestrator"], None]] = None,
    ):
        self.configuration = configuration
        self._pricing = pricing
        self._credentials = credentials
        self._acquisition = acquisition
        self._confirmation = confirmation
        self._quote_max_age = quote_max_age_seconds
        self._on_close = on_close

        self._attempt = PurchaseAttempt()
        self._attempt.transition(PurchaseState.CONFIGURING)
        self.attempts: List[PurchaseAttempt] = [self._attempt]

        self._stored: Optional[List[StoredCredential]] = None
        self._selected_credential_id: Optional[str] = None
        self._use_new_credential = False
        self._step: Optional[asyncio.Task] = None
        self._acknowledged = False
        self._closed = False

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def attempt(self) -> PurchaseAttempt:
        return self._attempt

    @property
    def state(self) -> PurchaseState:
        return self._attempt.state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def quote(self) -> Optional[PriceQuote]:
        """Held quote, only if it matches the current configuration."""
        return self._pricing.quote_for(self.configuration.quote_key)

    @property
    def stored_credentials(self) -> List[StoredCredential]:
        return list(self._stored or [])

    @property
    def selected_credential_id(self) -> Optional[str]:
        return self._selected_credential_id

    @property
    def requires_new_credential(self) -> bool:
        return self._use_new_credential or (self._stored is not None and not self._stored)

    @property
    def tokenization_session(self) -> Optional[TokenizationSession]:
        return self._acquisition.session

    # ------------------------------------------------------------------
    # Configuring
    # ------------------------------------------------------------------

    async def update(self, **changes: Any) -> Optional[PriceQuote]:
        """Edit the configuration and requote if a priced field changed.

        Edits never reach a payload that was already captured, and are
        refused while an unconfirmed submission is held for replay.
        """
        self._ensure_open()
        self._ensure_no_replay()
        if self.configuration.update(**changes) or self.quote is None:
            return await self.requote()
        return self.quote

    async def requote(self) -> Optional[PriceQuote]:
        """Fetch a quote for the current configuration.

        Returns None when a later edit superseded this request.
        """
        self._ensure_open()
        with bind_attempt(self._attempt.attempt_id):
            return await self._pricing.get_quote(self.configuration.quote_key)

    async def load_credentials(self, refresh: bool = False) -> List[StoredCredential]:
        """Load stored credentials and preselect the default one."""
        self._ensure_open()
        with bind_attempt(self._attempt.attempt_id):
            stored = await self._credentials.list_credentials(refresh=refresh)
        self._stored = stored
        ids = {credential.id for credential in stored}
        if self._selected_credential_id not in ids:
            self._selected_credential_id = next(
                (credential.id for credential in stored if credential.is_default), None
            )
        return stored

    def select_credential(self, credential_id: str) -> None:
        self._require_state(PurchaseState.CONFIGURING)
        self._ensure_no_replay()
        if self._stored is None or all(c.id != credential_id for c in self._stored):
            raise InvalidConfiguration(
                f"Unknown payment method {credential_id}", field="payment_method_id"
            )
        self._selected_credential_id = credential_id
        self._use_new_credential = False

    def use_new_credential(self) -> None:
        """Collect a new card even though stored ones exist."""
        self._require_state(PurchaseState.CONFIGURING)
        self._ensure_no_replay()
        self._use_new_credential = True
        self._selected_credential_id = None

    # ------------------------------------------------------------------
    # Saga steps
    # ------------------------------------------------------------------

    async def submit(self) -> Optional[PurchaseResult]:
        """
        Leave Configuring.

        With a stored credential the purchase is confirmed right away and the
        result returned. Otherwise a tokenization session is prepared and
        None is returned; continue with ``submit_credential()``.

        Raises:
            InvalidConfiguration: Selections are invalid; nothing was sent
            StaleQuote: No quote for the current configuration, or too old
            NoCredentialSelected: Stored cards exist but none was chosen
        """
        self._require_state(PurchaseState.CONFIGURING)
        attempt = self._attempt
        with bind_attempt(attempt.attempt_id):
            if attempt.pending_payload is not None:
                logger.info("Replaying captured payload after an unconfirmed submission")
                attempt.transition(PurchaseState.CONFIRMING_WITH_BACKEND, "retry")
                return await self._confirm()

            snapshot = self.configuration.snapshot()
            quote = self._fresh_quote(snapshot.quote_key)

            if self._stored is None:
                await self.load_credentials()
                self._require_state(PurchaseState.CONFIGURING)

            if self.requires_new_credential:
                attempt.pending_payload = PendingPayload.capture(attempt.attempt_id, snapshot)
                attempt.captured_payload = attempt.pending_payload
                attempt.quote = quote
                attempt.transition(PurchaseState.AWAITING_CREDENTIAL, "no stored credential")
                await self.start_collection()
                return None

            if self._selected_credential_id is None:
                raise NoCredentialSelected()

            attempt.pending_payload = PendingPayload.capture(
                attempt.attempt_id, snapshot, payment_method_id=self._selected_credential_id
            )
            attempt.captured_payload = attempt.pending_payload
            attempt.quote = quote
            attempt.transition(PurchaseState.CONFIRMING_WITH_BACKEND, "stored credential")
            return await self._confirm()

    async def start_collection(self) -> TokenizationSession:
        """Ensure a tokenization session exists for the hosted fields.

        Raises:
            TokenizationInitFailed: A retryable failure keeps the attempt
                awaiting a credential; any other failure ends it
        """
        self._require_state(PurchaseState.AWAITING_CREDENTIAL)
        with bind_attempt(self._attempt.attempt_id):
            try:
                return await self._run_step(self._acquisition.begin())
            except TokenizationInitFailed as e:
                if not e.retryable:
                    self._fail(e)
                raise

    async def submit_credential(
        self,
        collected: CollectedPaymentDetails,
        save_for_future: bool = True,
    ) -> PurchaseResult:
        """
        Tokenize the collected card and confirm the captured payload with it.

        Raises:
            CredentialRejected: Processor declined; still awaiting a credential
            TokenizationInitFailed: A replacement session could not be issued
        """
        self._require_state(PurchaseState.AWAITING_CREDENTIAL)
        attempt = self._attempt
        with bind_attempt(attempt.attempt_id):
            if self._acquisition.session is None:
                await self.start_collection()

            attempt.transition(PurchaseState.CONFIRMING_WITH_PROCESSOR)
            try:
                acquired = await self._run_step(
                    self._acquisition.submit(collected, save_for_future=save_for_future)
                )
            except CredentialRejected as e:
                attempt.transition(PurchaseState.AWAITING_CREDENTIAL, e.decline_code or "rejected")
                raise
            except TokenizationInitFailed as e:
                if e.retryable:
                    attempt.transition(PurchaseState.AWAITING_CREDENTIAL, "session unavailable")
                else:
                    self._fail(e)
                raise
            except asyncio.CancelledError:
                if not self._closed:
                    attempt.transition(PurchaseState.AWAITING_CREDENTIAL, "cancelled")
                raise

            await self._credentials.invalidate()
            attempt.pending_payload = attempt.captured_payload.with_credential(
                acquired.payment_method_id,
                setup_intent_id=acquired.setup_intent_id,
                save_payment_method=acquired.save_payment_method,
            )
            attempt.credential_acquired = True
            attempt.transition(PurchaseState.CONFIRMING_WITH_BACKEND, "credential tokenized")
            return await self._confirm()

    async def _confirm(self) -> PurchaseResult:
        attempt = self._attempt
        try:
            result = await self._confirmation.confirm(attempt.pending_payload)
        except BackendUnavailable as e:
            attempt.failure = e
            attempt.transition(PurchaseState.CONFIGURING, "backend unavailable")
            raise
        except asyncio.CancelledError:
            # Outcome unknown; the same payload may be replayed safely.
            attempt.transition(PurchaseState.CONFIGURING, "confirmation interrupted")
            raise
        except ChargeDeclined as e:
            self._restart_after_decline(e)
            raise
        except CapacityAllocationFailed as e:
            logger.error(
                f"Capacity allocation failed; manual reconciliation needed for {attempt.attempt_id}"
            )
            self._fail(e)
            raise

        attempt.result = result
        attempt.failure = None
        attempt.transition(PurchaseState.SUCCEEDED)
        return result

    def _restart_after_decline(self, error: ChargeDeclined) -> None:
        """Start a new attempt; the declined attempt id is never reused."""
        declined = self._attempt
        if declined.credential_acquired:
            next_state = PurchaseState.AWAITING_CREDENTIAL
            self._acquisition.abandon()
        else:
            next_state = PurchaseState.CONFIGURING
        declined.failure = error
        declined.transition(next_state, "charge declined")
        declined.pending_payload = None

        attempt = PurchaseAttempt()
        if next_state is PurchaseState.AWAITING_CREDENTIAL:
            attempt.captured_payload = declined.captured_payload.model_copy(
                update={"attempt_id": attempt.attempt_id}
            )
            attempt.pending_payload = attempt.captured_payload
            attempt.quote = declined.quote
        declined.captured_payload = None
        attempt.transition(next_state, f"retry after decline of {declined.attempt_id}")
        self._attempt = attempt
        self.attempts.append(attempt)

    # ------------------------------------------------------------------
    # Ending
    # ------------------------------------------------------------------

    def acknowledge(self) -> SeatPurchaseError:
        """Acknowledge a failed attempt and return its failure."""
        self._require_state(PurchaseState.FAILED)
        self._acknowledged = True
        return self._attempt.failure

    def close(self) -> None:
        """
        Close the purchase, cancelling anything still pending.

        Raises:
            ConfirmationInFlight: The backend confirmation is outstanding
            InvalidTransition: A failure has not been acknowledged
        """
        if self._closed:
            return
        if self.state is PurchaseState.CONFIRMING_WITH_BACKEND:
            raise ConfirmationInFlight()
        if self.state is PurchaseState.FAILED and not self._acknowledged:
            raise InvalidTransition("Acknowledge the failed purchase before closing it")

        self._closed = True
        self._pricing.cancel()
        if self._step is not None and not self._step.done():
            self._step.cancel()
        self._acquisition.abandon()
        self._attempt.pending_payload = None
        self._attempt.captured_payload = None
        logger.info(f"Purchase {self._attempt.attempt_id} closed in state {self.state.value}")
        if self._on_close is not None:
            self._on_close(self)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run_step(self, coro: Awaitable[T]) -> T:
        """Run a cancellable pre-backend step; close() cancels it."""
        task = asyncio.ensure_future(coro)
        self._step = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._closed and not (current and current.cancelling()):
                raise PurchaseCancelled("Purchase was closed") from None
            raise
        finally:
            if self._step is task:
                self._step = None

    def _fresh_quote(self, key: QuoteKey) -> PriceQuote:
        quote = self._pricing.quote_for(key)
        if quote is None:
            raise StaleQuote("Price is still updating for the current selection")
        if quote.age() > self._quote_max_age:
            raise StaleQuote("Price quote has expired; please refresh")
        return quote

    def _fail(self, error: SeatPurchaseError) -> None:
        self._attempt.failure = error
        self._attempt.transition(PurchaseState.FAILED, error.error_code)

    def _ensure_open(self) -> None:
        if self._closed:
            raise PurchaseCancelled("Purchase was closed")

    def _ensure_no_replay(self) -> None:
        if self.state is PurchaseState.CONFIGURING and self._attempt.pending_payload is not None:
            raise InvalidTransition(
                "A submitted purchase is awaiting confirmation; submit again or close it"
            )

    def _require_state(self, *states: PurchaseState) -> None:
        self._ensure_open()
        if self.state not in states:
            raise InvalidTransition(
                f"Operation not allowed while purchase is {self.state.value}"
            )
