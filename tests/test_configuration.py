"""Tests for purchase configuration state and models."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from partner_seats.configuration import PurchaseConfigurationState
from partner_seats.exceptions import InvalidConfiguration
from partner_seats.models import (
    DurationMonths,
    ExistingBatch,
    NewBatch,
    PendingPayload,
    PurchaseConfiguration,
    SessionsPerDay,
)


class TestSeatMinimum:
    """The seat count never drops below the applicable minimum."""

    def test_new_batch_minimum_is_ten(self):
        config = PurchaseConfigurationState.for_new_batch("Cohort A")
        assert config.minimum_seats == 10
        assert config.seat_count == 10

    def test_extension_minimum_is_one(self):
        config = PurchaseConfigurationState.for_existing_batch("batch_001")
        assert config.minimum_seats == 1
        assert config.seat_count == 1

    def test_initial_request_below_minimum_is_rejected(self):
        """Should reject an initial seat count below the minimum instead of adjusting it."""
        with pytest.raises(InvalidConfiguration, match="Minimum 10 seats") as exc_info:
            PurchaseConfigurationState.for_new_batch("Cohort A", seat_count=5)
        assert exc_info.value.field == "seat_count"

    def test_extension_rejects_initial_zero(self):
        with pytest.raises(InvalidConfiguration):
            PurchaseConfigurationState.for_existing_batch("batch_001", seat_count=0)

    def test_initial_request_above_minimum_is_kept(self):
        config = PurchaseConfigurationState.for_new_batch("Cohort A", seat_count=40)
        assert config.seat_count == 40

    @pytest.mark.parametrize("seats", [0, 5, 9])
    def test_new_batch_rejects_edit_below_minimum(self, seats):
        """Should reject seats below 10 for a new batch."""
        config = PurchaseConfigurationState.for_new_batch("Cohort A")
        with pytest.raises(InvalidConfiguration) as exc_info:
            config.set_seat_count(seats)
        assert exc_info.value.field == "seat_count"
        assert config.seat_count == 10

    def test_extension_accepts_single_seat(self):
        config = PurchaseConfigurationState.for_existing_batch("batch_001", seat_count=3)
        config.set_seat_count(1)
        assert config.seat_count == 1

    def test_extension_rejects_zero(self):
        config = PurchaseConfigurationState.for_existing_batch("batch_001")
        with pytest.raises(InvalidConfiguration):
            config.set_seat_count(0)

    def test_model_rejects_below_minimum(self):
        """Should refuse to build a configuration below the minimum."""
        with pytest.raises(ValidationError, match="at least 10"):
            PurchaseConfiguration(seat_count=5, target=NewBatch(name="Cohort A"))


class TestOptions:
    def test_unlimited_sessions(self):
        config = PurchaseConfigurationState.for_new_batch("Cohort A")
        config.set_sessions_per_day(-1)
        assert config.sessions_per_day is SessionsPerDay.UNLIMITED
        assert config.quote_key.as_params()["sessions_per_day"] == -1

    def test_rejects_unknown_sessions(self):
        config = PurchaseConfigurationState.for_new_batch("Cohort A")
        with pytest.raises(InvalidConfiguration, match="sessions_per_day"):
            config.set_sessions_per_day(7)

    def test_rejects_unknown_duration(self):
        config = PurchaseConfigurationState.for_new_batch("Cohort A")
        with pytest.raises(InvalidConfiguration, match="duration_months"):
            config.set_duration_months(2)


class TestUpdate:
    def test_reports_quote_key_change(self):
        config = PurchaseConfigurationState.for_new_batch("Cohort A")
        assert config.update(seat_count=20) is True
        assert config.update(auto_renew=True) is False
        assert config.revision == 2

    def test_update_is_all_or_nothing(self):
        """Should roll back every field when one edit is invalid."""
        config = PurchaseConfigurationState.for_new_batch("Cohort A")
        with pytest.raises(InvalidConfiguration):
            config.update(sessions_per_day=10, seat_count=3)
        assert config.sessions_per_day is SessionsPerDay.THREE
        assert config.seat_count == 10
        assert config.revision == 0

    def test_rejects_unknown_field(self):
        config = PurchaseConfigurationState.for_new_batch("Cohort A")
        with pytest.raises(InvalidConfiguration, match="Unknown"):
            config.update(price=1)

    def test_cannot_rename_existing_batch(self):
        config = PurchaseConfigurationState.for_existing_batch("batch_001")
        with pytest.raises(InvalidConfiguration):
            config.set_batch_name("Renamed")


class TestSnapshot:
    def test_blank_batch_name(self):
        """Should ask for a batch name before submission."""
        config = PurchaseConfigurationState.for_new_batch("   ")
        with pytest.raises(InvalidConfiguration, match="Please enter a batch name"):
            config.snapshot()

    def test_snapshot_of_extension(self):
        config = PurchaseConfigurationState.for_existing_batch(
            "batch_001", seat_count=4, duration_months=DurationMonths.SIX, auto_renew=True
        )
        snapshot = config.snapshot()
        assert snapshot.target == ExistingBatch(batch_id="batch_001")
        assert snapshot.duration_months is DurationMonths.SIX
        assert snapshot.auto_renew is True

    def test_existing_batch_requires_id(self):
        with pytest.raises(InvalidConfiguration):
            PurchaseConfigurationState.for_existing_batch("")


class TestPendingPayload:
    def _snapshot(self) -> PurchaseConfiguration:
        return PurchaseConfigurationState.for_new_batch(
            "Cohort A", sessions_per_day=5
        ).snapshot()

    def test_capture_is_frozen(self):
        """Should not allow a captured payload to be mutated."""
        payload = PendingPayload.capture("spa_1", self._snapshot())
        with pytest.raises(ValidationError):
            payload.seat_count = 50

    def test_request_body(self):
        payload = PendingPayload.capture("spa_1", self._snapshot(), payment_method_id="pm_visa")
        body = payload.to_request_body()
        assert body == {
            "attempt_id": "spa_1",
            "seat_count": 10,
            "sessions_per_day": 5,
            "months": 1,
            "auto_renew": False,
            "batch_name": "Cohort A",
            "payment_method_id": "pm_visa",
        }

    def test_body_requires_credential(self):
        payload = PendingPayload.capture("spa_1", self._snapshot())
        with pytest.raises(ValueError, match="no resolved credential"):
            payload.to_request_body()

    def test_credential_attached_once(self):
        payload = PendingPayload.capture("spa_1", self._snapshot())
        resolved = payload.with_credential("pm_new", setup_intent_id="seti_1", save_payment_method=True)

        assert payload.payment_method_id is None
        assert resolved.to_request_body()["setup_intent_id"] == "seti_1"
        with pytest.raises(ValueError):
            resolved.with_credential("pm_other")

    def test_exactly_one_target(self):
        with pytest.raises(ValidationError):
            PendingPayload(
                attempt_id="spa_1",
                seat_count=10,
                sessions_per_day=SessionsPerDay.FIVE,
                months=DurationMonths.ONE,
                auto_renew=False,
                batch_id="batch_001",
                batch_name="Cohort A",
            )
