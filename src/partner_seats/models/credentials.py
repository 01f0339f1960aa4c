"""Stored payment credential and tokenization models."""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import Field, SecretStr

from .base import FrozenSeatsModel, SeatsModel


class StoredCredential(FrozenSeatsModel):
    """A payment method already on file with the backend."""

    id: str
    brand: str = Field(default="card", alias="card_brand")
    last_four: str
    is_default: bool = False
    expiry_month: int = Field(ge=1, le=12)
    expiry_year: int

    @property
    def expiry(self) -> tuple[int, int]:
        return (self.expiry_month, self.expiry_year)

    @property
    def display_name(self) -> str:
        return f"{self.brand} **** {self.last_four} exp {self.expiry_month:02d}/{self.expiry_year % 100:02d}"


def parse_payment_methods(data: dict[str, Any]) -> list[StoredCredential]:
    """Parse the payment-methods payload into credentials.

    The backend marks the default either per card (``is_default``) or with a
    top-level ``default_payment_method`` that is an id or a card object.
    """
    raw_cards = data.get("cards")
    if raw_cards is None:
        raw_cards = data.get("payment_methods", [])

    default = data.get("default_payment_method")
    default_id = default.get("id") if isinstance(default, dict) else default

    credentials = []
    for raw in raw_cards:
        card = dict(raw)
        if default_id is not None:
            card["is_default"] = card.get("id") == default_id or bool(card.get("is_default"))
        credentials.append(StoredCredential.model_validate(card))
    return credentials


class TokenizationMode(str, Enum):
    """Processor exchange mode. Seat purchases only ever collect-and-save."""

    SETUP = "setup"


class TokenizationSession(SeatsModel):
    """Single-use processor session created when no credential is on file."""

    client_secret: SecretStr
    mode: TokenizationMode = TokenizationMode.SETUP
    consumed: bool = False

    @property
    def session_id(self) -> str:
        """Processor-side id embedded in the secret (``<id>_secret_<nonce>``)."""
        secret = self.client_secret.get_secret_value()
        return secret.split("_secret_", 1)[0]


class CollectedPaymentDetails(FrozenSeatsModel):
    """Opaque output of the processor's hosted collection fields.

    Only a processor-issued token travels through the client; raw card data
    never does.
    """

    payment_method_token: str = Field(min_length=1)
    billing_name: Optional[str] = None


class ProcessorSetupResult(FrozenSeatsModel):
    """Terminal processor success for a tokenization session."""

    session_id: str
    payment_method_id: str
    status: str = "succeeded"


class AcquiredCredential(FrozenSeatsModel):
    """Credential reference yielded by a completed acquisition sub-flow."""

    payment_method_id: str
    setup_intent_id: str
    save_payment_method: bool = True
