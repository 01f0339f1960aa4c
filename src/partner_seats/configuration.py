"""In-progress purchase selections."""
from __future__ import annotations

import logging
from typing import Any, Literal, Optional, Union

from pydantic import ValidationError

from .exceptions import InvalidConfiguration
from .models.pricing import DurationMonths, QuoteKey, SessionsPerDay
from .models.purchase import (
    EXTEND_MIN_SEATS,
    NEW_BATCH_MIN_SEATS,
    ExistingBatch,
    NewBatch,
    PurchaseConfiguration,
)

logger = logging.getLogger(__name__)


class PurchaseConfigurationState:
    """
    Mutable selections behind the purchase form.

    The target variant (new batch or existing batch) is fixed at creation.
    The seat count starts at the applicable minimum when none is given and
    can never be set below it, at creation or later. Every accepted edit
    bumps ``revision``.
    """

    def __init__(
        self,
        kind: Literal["new", "existing"],
        batch_ref: str = "",
        seat_count: Optional[int] = None,
        sessions_per_day: Union[SessionsPerDay, int] = SessionsPerDay.THREE,
        duration_months: Union[DurationMonths, int] = DurationMonths.ONE,
        auto_renew: bool = False,
        minimum_seats: Optional[int] = None,
    ):
        if kind == "existing" and not batch_ref:
            raise InvalidConfiguration("Batch ID is required for extending seats", field="batch_id")
        self._kind = kind
        self._batch_ref = batch_ref
        default_minimum = NEW_BATCH_MIN_SEATS if kind == "new" else EXTEND_MIN_SEATS
        self._minimum_seats = minimum_seats if minimum_seats is not None else default_minimum
        if seat_count is None:
            seat_count = self._minimum_seats
        elif seat_count < self._minimum_seats:
            raise InvalidConfiguration(
                f"Minimum {self._minimum_seats} seats required, got {seat_count}",
                field="seat_count",
            )
        self._seat_count = seat_count
        self._sessions_per_day = _coerce_sessions(sessions_per_day)
        self._duration_months = _coerce_months(duration_months)
        self._auto_renew = auto_renew
        self.revision = 0

    @classmethod
    def for_new_batch(cls, name: str = "", **kwargs: Any) -> "PurchaseConfigurationState":
        return cls("new", name, **kwargs)

    @classmethod
    def for_existing_batch(cls, batch_id: str, **kwargs: Any) -> "PurchaseConfigurationState":
        return cls("existing", batch_id, **kwargs)

    @property
    def is_new_batch(self) -> bool:
        return self._kind == "new"

    @property
    def minimum_seats(self) -> int:
        return self._minimum_seats

    @property
    def seat_count(self) -> int:
        return self._seat_count

    @property
    def sessions_per_day(self) -> SessionsPerDay:
        return self._sessions_per_day

    @property
    def duration_months(self) -> DurationMonths:
        return self._duration_months

    @property
    def auto_renew(self) -> bool:
        return self._auto_renew

    @property
    def batch_name(self) -> Optional[str]:
        return self._batch_ref if self.is_new_batch else None

    @property
    def batch_id(self) -> Optional[str]:
        return None if self.is_new_batch else self._batch_ref

    @property
    def meets_minimum(self) -> bool:
        return self._seat_count >= self._minimum_seats

    @property
    def quote_key(self) -> QuoteKey:
        return QuoteKey(
            seat_count=self._seat_count,
            sessions_per_day=self._sessions_per_day,
            months=self._duration_months,
        )

    def set_seat_count(self, seat_count: int) -> None:
        if seat_count < self._minimum_seats:
            raise InvalidConfiguration(
                f"Minimum {self._minimum_seats} seats required, got {seat_count}",
                field="seat_count",
            )
        self._apply("_seat_count", seat_count)

    def set_sessions_per_day(self, sessions_per_day: Union[SessionsPerDay, int]) -> None:
        self._apply("_sessions_per_day", _coerce_sessions(sessions_per_day))

    def set_duration_months(self, months: Union[DurationMonths, int]) -> None:
        self._apply("_duration_months", _coerce_months(months))

    def set_auto_renew(self, auto_renew: bool) -> None:
        self._apply("_auto_renew", bool(auto_renew))

    def set_batch_name(self, name: str) -> None:
        if not self.is_new_batch:
            raise InvalidConfiguration(
                "Cannot rename an existing batch from the purchase form",
                field="batch_name",
            )
        self._apply("_batch_ref", name)

    def update(self, **changes: Any) -> bool:
        """Apply several edits at once. Returns True if the quote key changed.

        Either all edits are applied or, if one is invalid, none are.
        """
        setters = {
            "seat_count": self.set_seat_count,
            "sessions_per_day": self.set_sessions_per_day,
            "duration_months": self.set_duration_months,
            "auto_renew": self.set_auto_renew,
            "batch_name": self.set_batch_name,
        }
        unknown = set(changes) - set(setters)
        if unknown:
            raise InvalidConfiguration(f"Unknown configuration fields: {sorted(unknown)}")

        before = self.quote_key
        saved = self.__dict__.copy()
        try:
            for field, value in changes.items():
                setters[field](value)
        except InvalidConfiguration:
            self.__dict__.update(saved)
            raise
        return self.quote_key != before

    def snapshot(self) -> PurchaseConfiguration:
        """Validate and freeze the current selections.

        Raises:
            InvalidConfiguration: The selections cannot be submitted
        """
        try:
            target = (
                NewBatch(name=self._batch_ref)
                if self.is_new_batch
                else ExistingBatch(batch_id=self._batch_ref)
            )
            return PurchaseConfiguration(
                seat_count=self._seat_count,
                sessions_per_day=self._sessions_per_day,
                duration_months=self._duration_months,
                auto_renew=self._auto_renew,
                target=target,
                minimum_seats=self._minimum_seats,
            )
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            if self.is_new_batch and not self._batch_ref.strip():
                raise InvalidConfiguration("Please enter a batch name", field="batch_name") from e
            raise InvalidConfiguration(first.get("msg", str(e)), field=field) from e

    def _apply(self, attr: str, value: Any) -> None:
        if getattr(self, attr) != value:
            setattr(self, attr, value)
            self.revision += 1
            logger.debug(f"Configuration {attr.lstrip('_')} -> {value} (revision {self.revision})")


def _coerce_sessions(value: Union[SessionsPerDay, int]) -> SessionsPerDay:
    try:
        return SessionsPerDay(value)
    except ValueError:
        raise InvalidConfiguration(
            f"sessions_per_day must be one of 3, 5, 10 or unlimited, got {value}",
            field="sessions_per_day",
        ) from None


def _coerce_months(value: Union[DurationMonths, int]) -> DurationMonths:
    try:
        return DurationMonths(value)
    except ValueError:
        raise InvalidConfiguration(
            f"duration_months must be one of 1, 3, 6 or 12, got {value}",
            field="duration_months",
        ) from None
