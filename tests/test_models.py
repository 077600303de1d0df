"""
Tests for Travel Tracker

Test strategy:
1. Unit tests for individual components (models, analytics, ingestion)
2. Integration tests for flows (with fake extractor and store)
3. No real API calls in tests (use fakes)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from travel_tracker.models.receipt import (
    BatchResult,
    BudgetStatus,
    DuplicateReceipt,
    FileFailure,
    MonthlyStat,
    Receipt,
    SortConfig,
    SortDirection,
    SortKey,
    Theme,
    TripType,
    ViewState,
    month_key_of,
    month_label,
    normalize_time,
    shift_month_key,
    validate_month_key,
)
from travel_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def make_receipt(**overrides) -> Receipt:
    data = {
        "trip_date": date(2026, 3, 14),
        "trip_time": "08:30",
        "amount": Decimal("245.50"),
        "pickup_location": "Koramangala",
        "dropoff_location": "Manyata Tech Park",
    }
    data.update(overrides)
    return Receipt(**data)


class TestReceiptModel:
    """Tests for the Receipt model and its stored JSON layout."""

    def test_receipt_from_stored_json(self):
        """Test that camelCase JSON written by the browser app loads."""
        receipt = Receipt.model_validate({
            "id": "abc-123",
            "date": "2026-03-14",
            "time": "08:30",
            "amount": 245.5,
            "currency": "INR",
            "pickupLocation": "Koramangala",
            "dropoffLocation": "Manyata Tech Park",
            "tripType": "Home to Office",
        })
        assert receipt.id == "abc-123"
        assert receipt.trip_date == date(2026, 3, 14)
        assert receipt.amount == Decimal("245.5")
        assert receipt.pickup_location == "Koramangala"
        assert receipt.trip_type == "Home to Office"

    def test_storage_dict_uses_camel_case_keys(self):
        """Test that to_storage_dict writes the stored field names."""
        data = make_receipt(id="r1").to_storage_dict()
        assert set(data) == {
            "id", "date", "time", "amount", "currency",
            "pickupLocation", "dropoffLocation", "tripType",
        }
        assert data["date"] == "2026-03-14"
        assert data["amount"] == 245.5
        assert isinstance(data["amount"], float)

    def test_id_generated_when_missing(self):
        """Test that every receipt gets a unique id."""
        first = make_receipt()
        second = make_receipt()
        assert first.id and second.id
        assert first.id != second.id

    def test_receipt_is_immutable(self):
        """Test that receipts cannot be edited in place."""
        receipt = make_receipt()
        with pytest.raises(ValidationError):
            receipt.amount = Decimal("1")

    def test_receipt_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValidationError):
            make_receipt(amount=Decimal("-10"))

    def test_receipt_rejects_invalid_date(self):
        with pytest.raises(ValidationError):
            Receipt.model_validate({"date": "2026-02-30", "amount": 10})

    def test_time_and_currency_normalized(self):
        receipt = make_receipt(trip_time="9:05", currency="inr")
        assert receipt.trip_time == "09:05"
        assert receipt.currency == "INR"

    def test_missing_locations_become_empty(self):
        receipt = make_receipt(pickup_location=None, dropoff_location=None)
        assert receipt.pickup_location == ""
        assert receipt.dropoff_location == ""

    def test_month_key(self):
        assert make_receipt(trip_date=date(2026, 1, 5)).month_key == "2026-01"

    def test_trip_key_ignores_id(self):
        """Test that two uploads of the same trip share a trip key."""
        first = make_receipt(id="a")
        second = make_receipt(id="b")
        assert first.trip_key == second.trip_key

    def test_trip_key_differs_on_time(self):
        assert make_receipt(trip_time="08:30").trip_key != make_receipt(trip_time="18:30").trip_key

    def test_sort_instant_defaults_missing_time_to_midnight(self):
        receipt = make_receipt(trip_time="")
        assert receipt.sort_instant == datetime(2026, 3, 14, 0, 0)


class TestNormalizeTime:
    """Tests for wall-clock time normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("9:05", "09:05"),
        ("09:05:59", "09:05"),
        ("9.05 pm", "21:05"),
        ("12:15 AM", "00:15"),
        ("12:15 pm", "12:15"),
        ("23:59", "23:59"),
    ])
    def test_valid_times(self, raw, expected):
        assert normalize_time(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "noon", "25:00", "13:00 pm", "10:75"])
    def test_invalid_times_become_empty(self, raw):
        assert normalize_time(raw) == ""


class TestMonthKeys:
    """Tests for month key helpers."""

    def test_month_key_of_zero_pads(self):
        assert month_key_of(date(987, 4, 1)) == "0987-04"

    @pytest.mark.parametrize("key", ["2026-1", "2026-13", "2026-00", "26-01", "2026/01", "", None])
    def test_validate_rejects_bad_keys(self, key):
        with pytest.raises(ValueError):
            validate_month_key(key)

    def test_validate_returns_key(self):
        assert validate_month_key("2026-12") == "2026-12"

    @pytest.mark.parametrize("key,offset,expected", [
        ("2026-01", -1, "2025-12"),
        ("2025-12", 1, "2026-01"),
        ("2026-03", 0, "2026-03"),
        ("2026-01", 13, "2027-02"),
        ("2026-01", -25, "2023-12"),
    ])
    def test_shift_wraps_years(self, key, offset, expected):
        assert shift_month_key(key, offset) == expected

    def test_month_label(self):
        assert month_label("2026-10") == "October 2026"
        assert month_label("2026-10", short=True) == "Oct 2026"


class TestViewState:
    """Tests for the dashboard view state transitions."""

    def test_defaults(self):
        state = ViewState()
        assert state.selected_month_key == month_key_of(date.today())
        assert state.theme == Theme.SYSTEM
        assert state.sort == SortConfig(key=SortKey.DATE, direction=SortDirection.DESC)

    def test_navigate_back_and_forward(self):
        state = ViewState(selected_month_key="2026-01")
        assert state.navigate(-1).selected_month_key == "2025-12"
        assert state.navigate(1).selected_month_key == "2026-02"
        # Original unchanged
        assert state.selected_month_key == "2026-01"

    def test_navigate_rejects_other_steps(self):
        state = ViewState(selected_month_key="2026-01")
        for direction in (0, 2, -2):
            with pytest.raises(ValueError):
                state.navigate(direction)

    def test_select_month_allows_months_without_data(self):
        state = ViewState(selected_month_key="2026-01").select_month("1999-07")
        assert state.selected_month_key == "1999-07"

    def test_select_month_rejects_invalid_key(self):
        with pytest.raises(ValueError):
            ViewState().select_month("2026-13")

    def test_invalid_initial_month_rejected(self):
        with pytest.raises(ValidationError):
            ViewState(selected_month_key="2026-1")

    def test_with_theme(self):
        assert ViewState().with_theme(Theme.DARK).theme == Theme.DARK

    def test_after_upload_jumps_to_first_added_month(self):
        added = [
            Receipt(trip_date=date(2026, 2, 27), amount=Decimal("80")),
            Receipt(trip_date=date(2026, 4, 1), amount=Decimal("95")),
        ]
        state = ViewState(selected_month_key="2026-05").after_upload(BatchResult(added=added))
        assert state.selected_month_key == "2026-02"

    def test_after_upload_without_additions_keeps_month(self):
        state = ViewState(selected_month_key="2026-05")
        assert state.after_upload(BatchResult()) is state


class TestSortConfig:
    """Tests for column-header sort toggling."""

    def test_same_key_flips_direction(self):
        config = SortConfig(key=SortKey.AMOUNT, direction=SortDirection.DESC)
        flipped = config.toggle(SortKey.AMOUNT)
        assert flipped.direction == SortDirection.ASC
        assert flipped.toggle(SortKey.AMOUNT).direction == SortDirection.DESC

    def test_new_key_resets_to_descending(self):
        config = SortConfig(key=SortKey.AMOUNT, direction=SortDirection.ASC)
        switched = config.toggle(SortKey.PICKUP_LOCATION)
        assert switched.key == SortKey.PICKUP_LOCATION
        assert switched.direction == SortDirection.DESC

    def test_toggle_accepts_string_key(self):
        assert SortConfig().toggle("amount").key == SortKey.AMOUNT


class TestBatchResult:
    """Tests for the upload summary."""

    def test_all_added(self):
        result = BatchResult(added=[make_receipt(), make_receipt(trip_time="19:00")])
        assert result.summary_message() == "Added 2 receipts."
        assert not result.has_issues

    def test_all_failed(self):
        result = BatchResult(errors=[
            FileFailure(file_name="a.png", message="x"),
            FileFailure(file_name="b.png", message="y"),
        ])
        assert result.summary_message() == (
            "Failed to process all 2 receipts. Please ensure they are valid receipts."
        )

    def test_partial_failure_names_files(self):
        result = BatchResult(
            added=[make_receipt()],
            errors=[FileFailure(file_name="bad.pdf", message="x")],
        )
        assert result.summary_message() == "Processed 1 receipts. Failed: 1 (bad.pdf)."
        assert result.processed_count == 2

    def test_duplicates_are_reported(self):
        receipt = make_receipt()
        result = BatchResult(
            added=[receipt],
            duplicates=[DuplicateReceipt(file_name="again.png", data=receipt)],
        )
        assert result.summary_message() == (
            "Added 1 receipts. Skipped 1 duplicates (again.png)."
        )
        assert result.has_issues


class TestMonthlyStat:

    def test_month_pattern_enforced(self):
        with pytest.raises(ValidationError):
            MonthlyStat(month="2026-13")

    def test_average_and_utilization(self):
        stat = MonthlyStat(
            month="2026-03",
            total_spent=Decimal("300"),
            trip_count=3,
            remaining_budget=Decimal("700"),
            status=BudgetStatus.SAFE,
        )
        assert stat.average_per_trip == Decimal("100")
        assert stat.utilization_percent(Decimal("1000")) == 30.0
        assert stat.utilization_percent(Decimal("0")) == 0.0

    def test_average_of_empty_month_is_zero(self):
        assert MonthlyStat(month="2026-03").average_per_trip == Decimal("0")


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.RECEIPT_SAVED,
            description="Saved",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = AuditEventBuilder.receipt_saved(
            receipt_id="r1",
            amount="245.50",
            correlation_id=correlation_id,
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "receipt_saved"
        assert log_dict["entity_id"] == "r1"
        assert log_dict["correlation_id"] == str(correlation_id)

    def test_batch_received_is_user_action(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.batch_received(["a.png", "b.pdf"], correlation_id)
        assert event.event_type == AuditEventType.BATCH_RECEIVED
        assert event.is_user_action
        assert event.details["file_names"] == ["a.png", "b.pdf"]

    def test_batch_completed_warns_on_errors(self):
        event = AuditEventBuilder.batch_completed(1, 0, 2, uuid4())
        assert event.severity == AuditSeverity.WARNING


class TestTripTypes:

    def test_trip_type_values(self):
        assert TripType.HOME_TO_OFFICE.value == "Home to Office"
        assert TripType.OFFICE_TO_HOME.value == "Office to Home"
        assert TripType.COMMUTE.value == "Commute"
