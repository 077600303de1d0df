"""
Data Models Package

This package contains all Pydantic models used in the Travel Tracker system.
All data flowing through the system must conform to these schemas.
"""

from travel_tracker.models.receipt import (
    MONTH_KEY_PATTERN,
    BatchResult,
    BudgetStatus,
    DuplicateReceipt,
    ExtractedReceiptData,
    FileFailure,
    MonthlyStat,
    Receipt,
    ReceiptFile,
    SortConfig,
    SortDirection,
    SortKey,
    Theme,
    TripType,
    UserIdentity,
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

__all__ = [
    # Receipt models
    "MONTH_KEY_PATTERN",
    "BatchResult",
    "BudgetStatus",
    "DuplicateReceipt",
    "ExtractedReceiptData",
    "FileFailure",
    "MonthlyStat",
    "Receipt",
    "ReceiptFile",
    "SortConfig",
    "SortDirection",
    "SortKey",
    "Theme",
    "TripType",
    "UserIdentity",
    "ViewState",
    "month_key_of",
    "month_label",
    "normalize_time",
    "shift_month_key",
    "validate_month_key",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
