"""Purchase configuration, payload and result models."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field, field_validator, model_validator

from .base import FrozenSeatsModel, SeatsModel
from .pricing import DurationMonths, QuoteKey, SessionsPerDay

NEW_BATCH_MIN_SEATS = 10
EXTEND_MIN_SEATS = 1


class NewBatch(FrozenSeatsModel):
    """Seats for a batch that the purchase creates."""

    kind: Literal["new"] = "new"
    name: str

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("batch name is required")
        return v


class ExistingBatch(FrozenSeatsModel):
    """Seats added to an existing batch."""

    kind: Literal["existing"] = "existing"
    batch_id: str = Field(min_length=1)


BatchTarget = Annotated[Union[NewBatch, ExistingBatch], Field(discriminator="kind")]


def default_minimum_seats(target: Union[NewBatch, ExistingBatch]) -> int:
    return NEW_BATCH_MIN_SEATS if isinstance(target, NewBatch) else EXTEND_MIN_SEATS


class PurchaseConfiguration(FrozenSeatsModel):
    """Validated snapshot of the user's selections."""

    seat_count: int
    sessions_per_day: SessionsPerDay = SessionsPerDay.THREE
    duration_months: DurationMonths = DurationMonths.ONE
    auto_renew: bool = False
    target: BatchTarget
    minimum_seats: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_seat_minimum(self) -> "PurchaseConfiguration":
        if self.seat_count < self.effective_minimum:
            raise ValueError(
                f"seat_count must be at least {self.effective_minimum}, got {self.seat_count}"
            )
        return self

    @property
    def effective_minimum(self) -> int:
        if self.minimum_seats is not None:
            return self.minimum_seats
        return default_minimum_seats(self.target)

    @property
    def quote_key(self) -> QuoteKey:
        return QuoteKey(
            seat_count=self.seat_count,
            sessions_per_day=self.sessions_per_day,
            months=self.duration_months,
        )


class PendingPayload(FrozenSeatsModel):
    """Exact confirmation body, captured once per purchase attempt.

    The credential fields start empty when the credential still has to be
    tokenized and are filled exactly once through ``with_credential``.
    """

    attempt_id: str
    seat_count: int
    sessions_per_day: SessionsPerDay
    months: DurationMonths
    auto_renew: bool
    batch_id: Optional[str] = None
    batch_name: Optional[str] = None
    payment_method_id: Optional[str] = None
    setup_intent_id: Optional[str] = None
    save_payment_method: Optional[bool] = None

    @model_validator(mode="after")
    def exactly_one_target(self) -> "PendingPayload":
        if (self.batch_id is None) == (self.batch_name is None):
            raise ValueError("exactly one of batch_id or batch_name is required")
        return self

    @classmethod
    def capture(
        cls,
        attempt_id: str,
        configuration: PurchaseConfiguration,
        payment_method_id: Optional[str] = None,
    ) -> "PendingPayload":
        target = configuration.target
        return cls(
            attempt_id=attempt_id,
            seat_count=configuration.seat_count,
            sessions_per_day=configuration.sessions_per_day,
            months=configuration.duration_months,
            auto_renew=configuration.auto_renew,
            batch_id=target.batch_id if isinstance(target, ExistingBatch) else None,
            batch_name=target.name if isinstance(target, NewBatch) else None,
            payment_method_id=payment_method_id,
        )

    @property
    def has_credential(self) -> bool:
        return self.payment_method_id is not None

    @property
    def quote_key(self) -> QuoteKey:
        return QuoteKey(
            seat_count=self.seat_count,
            sessions_per_day=self.sessions_per_day,
            months=self.months,
        )

    def with_credential(
        self,
        payment_method_id: str,
        setup_intent_id: Optional[str] = None,
        save_payment_method: Optional[bool] = None,
    ) -> "PendingPayload":
        if self.payment_method_id is not None:
            raise ValueError("payload already carries a credential")
        return self.model_copy(
            update={
                "payment_method_id": payment_method_id,
                "setup_intent_id": setup_intent_id,
                "save_payment_method": save_payment_method,
            }
        )

    def to_request_body(self) -> dict[str, Any]:
        """Serialize to the confirm-purchase wire body."""
        if self.payment_method_id is None:
            raise ValueError("payload has no resolved credential")
        body = self.model_dump(mode="json", exclude_none=True)
        body["sessions_per_day"] = int(self.sessions_per_day)
        body["months"] = int(self.months)
        return body


class PurchaseResult(SeatsModel):
    """Successful confirmation returned by the backend."""

    attempt_id: str
    batch_id: Optional[str] = None
    seats_allocated: Optional[int] = None
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    status: str = "completed"
    message: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_response(
        cls,
        attempt_id: str,
        data: dict[str, Any],
        message: Optional[str] = None,
    ) -> "PurchaseResult":
        batch = data.get("batch") if isinstance(data.get("batch"), dict) else {}
        return cls(
            attempt_id=attempt_id,
            batch_id=data.get("batch_id", batch.get("id")),
            seats_allocated=data.get("seats_allocated", data.get("seat_count")),
            transaction_id=data.get("transaction_id"),
            amount=data.get("amount"),
            status=data.get("status", "completed"),
            message=message,
            data=data,
        )


class PurchaseState(str, Enum):
    """States of one purchase attempt."""

    CONFIGURING = "configuring"
    AWAITING_CREDENTIAL = "awaiting_credential"
    CONFIRMING_WITH_PROCESSOR = "confirming_with_processor"
    CONFIRMING_WITH_BACKEND = "confirming_with_backend"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PurchaseState.SUCCEEDED, PurchaseState.FAILED)


class StateTransition(FrozenSeatsModel):
    """One entry in an attempt's transition log."""

    from_state: Optional[PurchaseState]
    to_state: PurchaseState
    at: datetime
    reason: Optional[str] = None
