"""Base processor connector interface."""
from __future__ import annotations

from abc import ABC, abstractmethod

from ..models.credentials import (
    CollectedPaymentDetails,
    ProcessorSetupResult,
    TokenizationSession,
)


class ProcessorConnector(ABC):
    """Abstract interface for the client side of a payment processor."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the processor name."""
        pass

    @abstractmethod
    async def confirm_setup(
        self,
        session: TokenizationSession,
        collected: CollectedPaymentDetails,
    ) -> ProcessorSetupResult:
        """
        Confirm a tokenization session with collected payment details.

        Args:
            session: Session bound to the processor-issued client secret
            collected: Opaque token produced by the hosted collection fields

        Returns:
            ProcessorSetupResult with the new credential reference

        Raises:
            CredentialRejected: The processor declined the details, or the
                session is no longer usable (``session_expired``)
        """
        pass

    async def close(self) -> None:
        """Release connector resources."""
        return None
