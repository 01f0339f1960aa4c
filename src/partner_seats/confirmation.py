"""Purchase confirmation: hand the finalized purchase to the backend."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import httpx

from .cache import BATCHES_PREFIX, SEATS_PREFIX, CacheBackend
from .exceptions import (
    APIError,
    AuthenticationError,
    BackendUnavailable,
    CapacityAllocationFailed,
    ChargeDeclined,
)
from .idempotency import IdempotencyManager, InMemoryIdempotencyStore
from .models.purchase import PendingPayload, PurchaseResult

if TYPE_CHECKING:
    from .client import AsyncPartnerClient

logger = logging.getLogger(__name__)

CAPACITY_ALLOCATION_CODES = frozenset({"CAPACITY_ALLOCATION_FAILED", "SEAT_ALLOCATION_FAILED"})


class PurchaseConfirmation:
    """
    Submits a captured payload to the backend, which charges the credential
    and allocates the seats in one step.

    Every submission goes through the idempotency ledger under the payload's
    attempt id: a completed attempt is answered locally, and an attempt that
    ended in ``CapacityAllocationFailed`` is never sent again.
    """

    def __init__(
        self,
        client: "AsyncPartnerClient",
        cache: CacheBackend,
        ledger: Optional[IdempotencyManager] = None,
        timeout: float = 30.0,
    ):
        self._client = client
        self._cache = cache
        self._ledger = ledger if ledger is not None else IdempotencyManager(InMemoryIdempotencyStore())
        self._timeout = timeout

    async def confirm(
        self,
        payload: PendingPayload,
        credential_id: Optional[str] = None,
    ) -> PurchaseResult:
        """
        Confirm a purchase.

        Args:
            payload: Captured payload for this attempt
            credential_id: Credential to charge when the payload carries none

        Raises:
            ChargeDeclined: The charge was declined; nothing moved
            CapacityAllocationFailed: Charged but seats not allocated
            BackendUnavailable: Unreachable or timed out; retry with the same payload
        """
        if credential_id is not None:
            if payload.payment_method_id is None:
                payload = payload.with_credential(credential_id)
            elif payload.payment_method_id != credential_id:
                raise ValueError(
                    f"payload already carries credential {payload.payment_method_id}"
                )

        body = payload.to_request_body()
        result, is_duplicate = await self._ledger.execute_idempotent(
            idempotency_key=payload.attempt_id,
            operation="confirm_purchase",
            request_data=body,
            execute_fn=lambda: self._submit(payload),
            serialize_fn=lambda r: r.model_dump(mode="json"),
            deserialize_fn=PurchaseResult.model_validate,
            fatal_exceptions=(CapacityAllocationFailed,),
        )
        if not is_duplicate:
            await self._cache.delete_prefix(BATCHES_PREFIX)
            await self._cache.delete_prefix(SEATS_PREFIX)
        return result

    async def _submit(self, payload: PendingPayload) -> PurchaseResult:
        logger.info(
            f"Confirming purchase of {payload.seat_count} seats "
            f"({int(payload.sessions_per_day)}/day, {int(payload.months)} months)"
        )
        try:
            result = await self._client.seats.confirm_purchase(payload, timeout=self._timeout)
        except AuthenticationError as e:
            raise BackendUnavailable(
                "Your session has expired. Sign in again and retry.",
                details={"status_code": e.status_code},
            ) from e
        except APIError as e:
            raise self._map_api_error(payload.attempt_id, e) from e
        except httpx.TimeoutException as e:
            logger.warning("Backend confirmation timed out; outcome unknown")
            raise BackendUnavailable(
                "The server did not respond in time. Your purchase may still complete; "
                "retrying is safe."
            ) from e
        except httpx.TransportError as e:
            raise BackendUnavailable("Could not reach the server. Please try again.") from e

        logger.info(f"Purchase confirmed (transaction {result.transaction_id})")
        return result

    @staticmethod
    def _map_api_error(attempt_id: str, error: APIError) -> Exception:
        details = {"status_code": error.status_code, **error.details}
        if error.error_code in CAPACITY_ALLOCATION_CODES:
            logger.error(f"Charge succeeded but seat allocation failed: {error.message}")
            return CapacityAllocationFailed(error.message, attempt_id=attempt_id, details=details)
        if error.is_server_error:
            logger.warning(f"Backend error {error.status_code} during confirmation")
            return BackendUnavailable(
                "The server could not complete the purchase. Please try again.",
                details=details,
            )
        logger.info(f"Charge declined: {error.message}")
        return ChargeDeclined(error.message or "Payment failed", details=details)
