"""Stored payment methods resource."""
from __future__ import annotations

from typing import List, Optional

from ..models.credentials import StoredCredential, parse_payment_methods
from .base import AsyncBaseResource


class PaymentMethodsResource(AsyncBaseResource):
    """Payment credentials on file for the partner."""

    async def list(self, timeout: Optional[float] = None) -> List[StoredCredential]:
        """List stored credentials."""
        data = await self._get("/payment-methods", timeout=timeout)
        return parse_payment_methods(data)

    async def set_default(self, payment_method_id: str, timeout: Optional[float] = None) -> None:
        """Mark a stored credential as the partner's default."""
        await self._post(f"/payment-methods/{payment_method_id}/default", timeout=timeout)

    async def delete(self, payment_method_id: str, timeout: Optional[float] = None) -> None:
        """Remove a stored credential."""
        await self._delete(f"/payment-methods/{payment_method_id}", timeout=timeout)
