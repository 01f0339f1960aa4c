"""Credential acquisition: collect and tokenize a new payment credential."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import httpx

from .connectors.base import ProcessorConnector
from .exceptions import APIError, CredentialRejected, TokenizationInitFailed
from .models.credentials import (
    AcquiredCredential,
    CollectedPaymentDetails,
    TokenizationSession,
)

if TYPE_CHECKING:
    from .client import AsyncPartnerClient

logger = logging.getLogger(__name__)


class CredentialAcquisition:
    """
    Two-phase exchange with the payment processor.

    1. ``begin()`` asks the backend for a single-use tokenization session.
    2. The caller binds the processor's hosted fields to the session's
       client secret and passes the resulting opaque token to ``submit()``.
    3. ``submit()`` confirms the session with the processor and returns the
       new credential reference.

    A declined card leaves the session usable, so the user can try again
    with the same client secret. Only when the processor reports the secret
    as consumed or expired is the session dropped; the next ``submit()``
    then requests a fresh one. No charge happens here.
    """

    def __init__(
        self,
        client: "AsyncPartnerClient",
        connector: ProcessorConnector,
        setup_timeout: float = 10.0,
    ):
        self._client = client
        self._connector = connector
        self._setup_timeout = setup_timeout
        self._session: Optional[TokenizationSession] = None
        self.sessions_requested = 0

    @property
    def session(self) -> Optional[TokenizationSession]:
        return self._session

    async def begin(self) -> TokenizationSession:
        """
        Return the usable tokenization session, requesting one if needed.

        Raises:
            TokenizationInitFailed: The backend could not issue a session
        """
        if self._session is not None and not self._session.consumed:
            return self._session

        self.sessions_requested += 1
        try:
            session = await self._client.processor.get_setup_secret(timeout=self._setup_timeout)
        except APIError as e:
            logger.warning(f"Setup secret request rejected: {e}")
            raise TokenizationInitFailed(
                e.message,
                retryable=e.is_server_error,
                details={"status_code": e.status_code},
            ) from e
        except httpx.TimeoutException as e:
            raise TokenizationInitFailed(
                "Payment setup timed out. Please try again.", retryable=True
            ) from e
        except httpx.TransportError as e:
            raise TokenizationInitFailed(
                "Could not reach the server to set up payment. Please try again.",
                retryable=True,
            ) from e
        except ValueError as e:
            raise TokenizationInitFailed(f"Invalid payment setup response: {e}") from e

        self._session = session
        logger.info(f"Tokenization session {session.session_id} issued")
        return session

    async def submit(
        self,
        collected: CollectedPaymentDetails,
        save_for_future: bool = True,
    ) -> AcquiredCredential:
        """
        Confirm the collected details with the processor.

        Args:
            collected: Opaque token from the hosted collection fields
            save_for_future: Keep the card for later purchases

        Returns:
            AcquiredCredential with the processor's payment-method reference

        Raises:
            CredentialRejected: Declined; retry with new details
            TokenizationInitFailed: A replacement session could not be issued
        """
        session = await self.begin()
        try:
            result = await self._connector.confirm_setup(session, collected)
        except CredentialRejected as e:
            if e.session_expired:
                logger.info(f"Tokenization session {session.session_id} expired; discarding")
                self._session = None
            else:
                logger.info(f"Processor declined details ({e.decline_code}); session kept for retry")
            raise

        session.consumed = True
        logger.info(f"Credential {result.payment_method_id} tokenized via {self._connector.name}")
        return AcquiredCredential(
            payment_method_id=result.payment_method_id,
            setup_intent_id=result.session_id,
            save_payment_method=save_for_future,
        )

    def abandon(self) -> None:
        """Drop the session; a processor secret is never reused afterwards."""
        if self._session is not None:
            logger.debug(f"Abandoning tokenization session {self._session.session_id}")
        self._session = None
