"""Processor session resource."""
from __future__ import annotations

from typing import Optional

from ..models.credentials import TokenizationSession
from .base import AsyncBaseResource


class ProcessorResource(AsyncBaseResource):
    """Backend-issued processor sessions."""

    async def get_setup_secret(self, timeout: Optional[float] = None) -> TokenizationSession:
        """Request a single-use client secret for collecting a new credential."""
        data = await self._get("/processor/setup-secret", timeout=timeout)
        client_secret = data.get("client_secret")
        if not client_secret:
            raise ValueError("setup-secret response is missing client_secret")
        return TokenizationSession(client_secret=client_secret)
