"""Seat purchase resource."""
from __future__ import annotations

from typing import Optional

from ..models.purchase import PendingPayload, PurchaseResult
from .base import AsyncBaseResource


class SeatsResource(AsyncBaseResource):
    """Seat capacity purchases.

    The backend charges the credential and allocates seats in one call;
    ``attempt_id`` lets it deduplicate retried submissions.
    """

    async def confirm_purchase(
        self,
        payload: PendingPayload,
        timeout: Optional[float] = None,
    ) -> PurchaseResult:
        """Submit a finalized purchase.

        Args:
            payload: Captured payload with a resolved credential
            timeout: Optional request timeout

        Returns:
            PurchaseResult describing the allocation
        """
        data = await self._post(
            "/seats/confirm-purchase",
            payload.to_request_body(),
            timeout=timeout,
        )
        return PurchaseResult.from_response(payload.attempt_id, data)
