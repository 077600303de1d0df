"""
Core Data Models for Travel Tracker

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Load receipts written by the browser version unchanged (camelCase JSON)

DESIGN DECISION: Amounts are Decimal, not float. Monthly totals must not
depend on the order receipts are summed in, and Decimal addition is exact.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel


MONTH_KEY_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
TRIP_TYPE_MAX_LENGTH = 50

_TIME_RE = re.compile(r"^\s*(\d{1,2})[:.](\d{2})(?::\d{2})?\s*([AaPp][Mm])?\s*$")


def month_key_of(value: date) -> str:
    """Format a date as its zero-padded YYYY-MM month key."""
    return f"{value.year:04d}-{value.month:02d}"


def validate_month_key(key: str) -> str:
    """Return the key unchanged if it is YYYY-MM with month 01-12."""
    if not isinstance(key, str) or not re.fullmatch(MONTH_KEY_PATTERN, key):
        raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
    return key


def shift_month_key(key: str, offset: int) -> str:
    """
    Move a month key by whole calendar months.

    The key is anchored at day 15 of its month before stepping.
    """
    validate_month_key(key)
    anchor = date(int(key[:4]), int(key[5:7]), 15)
    year, month_index = divmod(anchor.year * 12 + anchor.month - 1 + offset, 12)
    return month_key_of(anchor.replace(year=year, month=month_index + 1))


def month_label(key: str, short: bool = False) -> str:
    """Display label for a month key, e.g. "October 2026" or "Oct 2026"."""
    validate_month_key(key)
    first_day = date(int(key[:4]), int(key[5:7]), 1)
    return first_day.strftime("%b %Y" if short else "%B %Y")


def normalize_time(value: Optional[str]) -> str:
    """
    Normalize a wall-clock time to HH:MM (24h).

    Accepts "9:05", "09:05:00", "9.05 pm". Anything unparseable becomes "",
    which sorts as midnight.
    """
    if not value:
        return ""
    match = _TIME_RE.match(str(value))
    if not match:
        return ""
    hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)
    if meridiem:
        if not 1 <= hour <= 12:
            return ""
        hour = hour % 12 + (12 if meridiem.lower() == "pm" else 0)
    if hour > 23 or minute > 59:
        return ""
    return f"{hour:02d}:{minute:02d}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TripType(str, Enum):
    """
    Known trip classifications.

    The receipt field itself is a free string: the extraction model may
    propose values outside this list and they are kept as-is.
    """
    HOME_TO_OFFICE = "Home to Office"
    OFFICE_TO_HOME = "Office to Home"
    COMMUTE = "Commute"
    PERSONAL = "Personal"
    BUSINESS = "Business"


class BudgetStatus(str, Enum):
    """Where a month's spend sits relative to the allowance."""
    SAFE = "Safe"
    WARNING = "Warning"
    OVER_BUDGET = "OverBudget"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class SortKey(str, Enum):
    """History table sort keys (values match the stored JSON field names)."""
    DATE = "date"
    AMOUNT = "amount"
    PICKUP_LOCATION = "pickupLocation"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =============================================================================
# CORE RECEIPT MODEL
# =============================================================================

class Receipt(BaseModel):
    """
    One parsed travel expense record.

    CRITICAL: Receipts are immutable once created. There is no edit
    operation - a wrong receipt is deleted and re-uploaded.

    The `id` changes on every upload attempt, so duplicate detection uses
    `trip_key` instead.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        min_length=1,
        description="Unique receipt ID, generated at ingestion"
    )
    trip_date: date = Field(
        ...,
        alias="date",
        description="Trip start date (YYYY-MM-DD)"
    )
    trip_time: str = Field(
        default="",
        alias="time",
        description="Trip start time (HH:MM, 24h) or empty if unknown"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount paid, currency-agnostic magnitude"
    )
    currency: str = Field(
        default="INR",
        max_length=5,
        description="Short currency code"
    )
    pickup_location: str = Field(
        default="",
        max_length=300,
        description="Pickup location (may be empty or N/A)"
    )
    dropoff_location: str = Field(
        default="",
        max_length=300,
        description="Dropoff location (may be empty or N/A)"
    )
    trip_type: str = Field(
        default=TripType.COMMUTE.value,
        max_length=TRIP_TYPE_MAX_LENGTH,
        description="Trip classification, derived from the locations"
    )

    @field_validator('trip_time', mode='before')
    @classmethod
    def normalize_trip_time(cls, v) -> str:
        return normalize_time(v)

    @field_validator('currency', mode='before')
    @classmethod
    def normalize_currency(cls, v) -> str:
        if not v:
            return "INR"
        return str(v).strip().upper()

    @field_validator('pickup_location', 'dropoff_location', 'trip_type', mode='before')
    @classmethod
    def none_to_empty(cls, v) -> str:
        return "" if v is None else v

    @field_serializer('amount', when_used='json')
    def serialize_amount(self, value: Decimal) -> float:
        """Stored JSON keeps amounts as numbers, like the browser app did."""
        return float(value)

    @property
    def month_key(self) -> str:
        """YYYY-MM grouping key."""
        return month_key_of(self.trip_date)

    @property
    def trip_key(self) -> tuple:
        """Exact-match duplicate key: same trip regardless of receipt id."""
        return (
            self.trip_date,
            self.trip_time,
            self.amount,
            self.pickup_location,
            self.dropoff_location,
        )

    @property
    def sort_instant(self) -> datetime:
        """Date and time as one orderable instant (missing time = midnight)."""
        return datetime.strptime(
            f"{self.trip_date.isoformat()} {self.trip_time or '00:00'}",
            "%Y-%m-%d %H:%M",
        )

    def to_storage_dict(self) -> dict:
        """JSON-ready dict using the stored (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# INGESTION MODELS
# =============================================================================

class ReceiptFile(BaseModel):
    """A file submitted for extraction (image or PDF)."""

    file_name: str = Field(
        ...,
        min_length=1,
        description="Original file name, used in user-facing reports"
    )
    content: bytes = Field(
        ...,
        repr=False,
        description="Raw file bytes"
    )
    mime_type: Optional[str] = Field(
        default=None,
        description="MIME type reported by the uploader, if any"
    )

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class ExtractedReceiptData(BaseModel):
    """
    Data returned by the extraction model.

    CRITICAL: This is PROPOSED data, NOT verified.
    All fields are optional because the model might miss any of them;
    the ingestion pipeline decides whether the result is usable.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    extracted_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When extraction was performed"
    )

    trip_date: Optional[str] = Field(
        default=None,
        description="Date as the model reported it"
    )
    trip_time: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    pickup_location: Optional[str] = None
    dropoff_location: Optional[str] = None
    trip_type: Optional[str] = Field(
        default=None,
        description="Model's own classification (overridden downstream)"
    )

    raw_response: Optional[str] = Field(
        default=None,
        description="Raw model output for debugging"
    )


class DuplicateReceipt(BaseModel):
    """A receipt that matched one already stored (or earlier in the batch)."""

    file_name: str
    data: Receipt


class FileFailure(BaseModel):
    """A file that could not be turned into a receipt."""

    file_name: str
    message: str = Field(
        ...,
        description="Short human-readable reason"
    )
    error_type: str = Field(
        default="UnknownError",
        description="Failure class name, for logging and tests"
    )


class BatchResult(BaseModel):
    """
    Outcome of one upload batch.

    The batch call itself never fails: an all-errors result is still a result.
    Persisting `added` is the caller's job.
    """

    added: list[Receipt] = Field(default_factory=list)
    duplicates: list[DuplicateReceipt] = Field(default_factory=list)
    errors: list[FileFailure] = Field(default_factory=list)

    # receipt id -> file name, so callers can name the file behind an added receipt
    source_files: dict[str, str] = Field(default_factory=dict)

    @property
    def processed_count(self) -> int:
        return len(self.added) + len(self.duplicates) + len(self.errors)

    @property
    def has_issues(self) -> bool:
        return bool(self.errors or self.duplicates)

    def summary_message(self) -> str:
        """
        One-paragraph summary for the user: counts and file names only.
        """
        parts = []

        if self.errors and not self.added and not self.duplicates:
            parts.append(
                f"Failed to process all {len(self.errors)} receipts. "
                "Please ensure they are valid receipts."
            )
        elif self.errors:
            names = ", ".join(failure.file_name for failure in self.errors)
            parts.append(
                f"Processed {len(self.added)} receipts. "
                f"Failed: {len(self.errors)} ({names})."
            )
        else:
            parts.append(f"Added {len(self.added)} receipts.")

        if self.duplicates:
            names = ", ".join(dup.file_name for dup in self.duplicates)
            parts.append(
                f"Skipped {len(self.duplicates)} duplicates ({names})."
            )

        return " ".join(parts)


# =============================================================================
# DERIVED / VIEW MODELS
# =============================================================================

class MonthlyStat(BaseModel):
    """
    Aggregate of one calendar month's receipts.

    Derived, never persisted: recomputed whenever receipts or the
    allowance change.
    """
    model_config = ConfigDict(frozen=True)

    month: str = Field(
        ...,
        pattern=MONTH_KEY_PATTERN,
        description="YYYY-MM"
    )
    total_spent: Decimal = Field(default=Decimal("0"), ge=0)
    trip_count: int = Field(default=0, ge=0)
    remaining_budget: Decimal = Field(default=Decimal("0"), ge=0)
    status: BudgetStatus = BudgetStatus.SAFE

    @property
    def average_per_trip(self) -> Decimal:
        if self.trip_count == 0:
            return Decimal("0")
        return self.total_spent / self.trip_count

    def utilization_percent(self, allowance: Decimal) -> float:
        """Spend as a percentage of the allowance (0 when there is no allowance)."""
        if allowance <= 0:
            return 0.0
        return float(self.total_spent / allowance * 100)


class SortConfig(BaseModel):
    """History table sort configuration."""
    model_config = ConfigDict(frozen=True)

    key: SortKey = SortKey.DATE
    direction: SortDirection = SortDirection.DESC

    def toggle(self, key: SortKey) -> "SortConfig":
        """
        Column-header click: the same key flips direction, a new key
        starts descending.
        """
        key = SortKey(key)
        if key == self.key:
            flipped = (
                SortDirection.ASC
                if self.direction == SortDirection.DESC
                else SortDirection.DESC
            )
            return SortConfig(key=key, direction=flipped)
        return SortConfig(key=key, direction=SortDirection.DESC)


class ViewState(BaseModel):
    """
    Everything the dashboard session remembers.

    Explicit and serializable: it lives in the UI session and is passed to
    the analytics functions, never held in a module-level global.
    """
    model_config = ConfigDict(frozen=True)

    selected_month_key: str = Field(
        default_factory=lambda: month_key_of(date.today()),
        pattern=MONTH_KEY_PATTERN,
        description="Month currently shown (YYYY-MM)"
    )
    theme: Theme = Theme.SYSTEM
    sort: SortConfig = Field(default_factory=SortConfig)

    def select_month(self, key: str) -> "ViewState":
        """
        Jump straight to a month.

        Months without receipts are allowed; the view shows an empty stat.
        """
        return self.model_copy(update={"selected_month_key": validate_month_key(key)})

    def navigate(self, direction: int) -> "ViewState":
        """Step one month back (-1) or forward (+1)."""
        if direction not in (-1, 1):
            raise ValueError(f"direction must be -1 or +1, got {direction!r}")
        return self.model_copy(
            update={"selected_month_key": shift_month_key(self.selected_month_key, direction)}
        )

    def after_upload(self, result: BatchResult) -> "ViewState":
        """Show the month of the first receipt the batch added, if any."""
        if not result.added:
            return self
        return self.select_month(result.added[0].month_key)

    def with_sort(self, key: SortKey) -> "ViewState":
        return self.model_copy(update={"sort": self.sort.toggle(key)})

    def with_theme(self, theme: Theme) -> "ViewState":
        return self.model_copy(update={"theme": Theme(theme)})


class UserIdentity(BaseModel):
    """Signed-in user, as supplied by the identity provider."""

    uid: str = Field(
        ...,
        min_length=1,
        description="Stable user id, used to namespace storage"
    )
    display_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
