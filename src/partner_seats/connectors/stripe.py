"""Stripe processor connector (client-side SetupIntent confirmation)."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..exceptions import CredentialRejected
from ..models.credentials import (
    CollectedPaymentDetails,
    ProcessorSetupResult,
    TokenizationSession,
)
from .base import ProcessorConnector

logger = logging.getLogger(__name__)

# Error codes meaning the client secret can no longer be confirmed.
SESSION_EXPIRED_CODES = frozenset(
    {
        "setup_intent_unexpected_state",
        "resource_missing",
    }
)


class StripeConnector(ProcessorConnector):
    """Stripe connector authenticated with the publishable key only.

    Mirrors what the processor's browser SDK does after its hosted fields
    produced a payment-method token: confirm the SetupIntent named by the
    client secret and read back the saved payment method id.
    """

    def __init__(
        self,
        publishable_key: str,
        api_base: str = "https://api.stripe.com/v1",
        timeout: float = 30.0,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.api_base,
            auth=(publishable_key, ""),
            timeout=timeout,
        )

    @property
    def name(self) -> str:
        return "stripe"

    async def confirm_setup(
        self,
        session: TokenizationSession,
        collected: CollectedPaymentDetails,
    ) -> ProcessorSetupResult:
        """Confirm the SetupIntent bound to the session's client secret."""
        form = {
            "client_secret": session.client_secret.get_secret_value(),
            "payment_method": collected.payment_method_token,
        }
        try:
            response = await self._client.post(
                f"/setup_intents/{session.session_id}/confirm",
                data=form,
            )
        except httpx.TimeoutException:
            logger.warning(f"Processor confirm timed out for session {session.session_id}")
            raise CredentialRejected(
                "The payment processor did not respond. Please try again.",
                decline_code="processor_timeout",
            )
        except httpx.TransportError as e:
            logger.warning(f"Processor unreachable for session {session.session_id}: {e}")
            raise CredentialRejected(
                "Could not reach the payment processor. Please try again.",
                decline_code="processor_unavailable",
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            raise self._rejection_from_error(response.status_code, data.get("error") or {})

        return self._result_from_intent(session, data)

    def _rejection_from_error(self, status_code: int, error: Dict[str, Any]) -> CredentialRejected:
        code = error.get("code")
        message = error.get("message") or "Failed to save payment method"
        if code in SESSION_EXPIRED_CODES:
            logger.info(f"Processor reported session no longer usable ({code})")
            return CredentialRejected(message, decline_code=code, session_expired=True)
        if status_code >= 500:
            return CredentialRejected(
                "The payment processor is temporarily unavailable. Please try again.",
                decline_code="processor_unavailable",
            )
        return CredentialRejected(message, decline_code=error.get("decline_code") or code)

    def _result_from_intent(
        self,
        session: TokenizationSession,
        intent: Dict[str, Any],
    ) -> ProcessorSetupResult:
        status = intent.get("status")
        payment_method = intent.get("payment_method")
        payment_method_id: Optional[str] = (
            payment_method.get("id") if isinstance(payment_method, dict) else payment_method
        )

        if status == "succeeded" and payment_method_id:
            return ProcessorSetupResult(
                session_id=intent.get("id", session.session_id),
                payment_method_id=payment_method_id,
                status=status,
            )
        if status == "canceled":
            raise CredentialRejected(
                "This card setup was cancelled. Please enter your card again.",
                decline_code="setup_intent_canceled",
                session_expired=True,
            )
        if status == "requires_action":
            raise CredentialRejected(
                "Your bank requires additional authentication for this card.",
                decline_code="authentication_required",
            )

        last_error = intent.get("last_setup_error") or {}
        raise CredentialRejected(
            last_error.get("message") or "Failed to save payment method",
            decline_code=last_error.get("decline_code") or last_error.get("code") or status,
        )

    async def close(self) -> None:
        await self._client.aclose()
