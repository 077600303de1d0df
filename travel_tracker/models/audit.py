"""
Audit Models for Travel Tracker

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of all operations
2. Debugging information when things go wrong
3. A record of which files failed and why

DESIGN DECISION: Audit events are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the receipt pipeline has its own event type.
    """
    # Ingestion
    BATCH_RECEIVED = "batch_received"
    BATCH_COMPLETED = "batch_completed"
    RECEIPT_EXTRACTED = "receipt_extracted"
    EXTRACTION_FAILED = "extraction_failed"
    DUPLICATE_DETECTED = "duplicate_detected"

    # Persistence
    RECEIPT_SAVED = "receipt_saved"
    RECEIPT_DELETED = "receipt_deleted"
    SAVE_FAILED = "save_failed"
    DELETE_FAILED = "delete_failed"

    # Budget
    ALLOWANCE_UPDATED = "allowance_updated"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'receipt', 'file', 'batch')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one upload batch share an id
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.batch_received(file_names, correlation_id)
        event = AuditEventBuilder.receipt_saved(receipt_id, amount, correlation_id)
    """

    @staticmethod
    def batch_received(
        file_names: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_RECEIVED,
            entity_type="batch",
            entity_id=str(correlation_id),
            correlation_id=correlation_id,
            description=f"Batch of {len(file_names)} files received",
            details={"file_names": file_names},
            is_user_action=True,
        )

    @staticmethod
    def batch_completed(
        added: int,
        duplicates: int,
        errors: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_COMPLETED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            entity_type="batch",
            entity_id=str(correlation_id),
            correlation_id=correlation_id,
            description=(
                f"Batch completed: {added} added, {duplicates} duplicates, "
                f"{errors} failed"
            ),
            details={
                "added": added,
                "duplicates": duplicates,
                "errors": errors,
            },
        )

    @staticmethod
    def receipt_extracted(
        receipt_id: str,
        file_name: str,
        trip_type: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_EXTRACTED,
            entity_type="receipt",
            entity_id=receipt_id,
            correlation_id=correlation_id,
            description=f"Receipt extracted from {file_name}",
            details={
                "file_name": file_name,
                "trip_type": trip_type,
            },
        )

    @staticmethod
    def extraction_failed(
        file_name: str,
        error_type: str,
        message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="file",
            entity_id=file_name,
            correlation_id=correlation_id,
            description=f"Could not extract {file_name}",
            error_code=error_type,
            error_message=message,
        )

    @staticmethod
    def duplicate_detected(
        file_name: str,
        trip_date: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_DETECTED,
            entity_type="file",
            entity_id=file_name,
            correlation_id=correlation_id,
            description=f"Duplicate receipt skipped: {file_name}",
            details={
                "date": trip_date,
                "amount": amount,
            },
        )

    @staticmethod
    def receipt_saved(
        receipt_id: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_SAVED,
            entity_type="receipt",
            entity_id=receipt_id,
            correlation_id=correlation_id,
            description=f"Receipt saved: {amount}",
            details={"amount": amount},
        )

    @staticmethod
    def save_failed(
        receipt_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="receipt",
            entity_id=receipt_id,
            correlation_id=correlation_id,
            description="Receipt could not be saved",
            error_message=error_message,
        )

    @staticmethod
    def receipt_deleted(receipt_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_DELETED,
            entity_type="receipt",
            entity_id=receipt_id,
            description="Receipt removed by user",
            is_user_action=True,
        )

    @staticmethod
    def delete_failed(
        receipt_id: str,
        error_message: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DELETE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="receipt",
            entity_id=receipt_id,
            description="Receipt could not be removed",
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def allowance_updated(
        old_value: str,
        new_value: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOWANCE_UPDATED,
            entity_type="budget",
            description=f"Monthly allowance changed from {old_value} to {new_value}",
            details={
                "old_value": old_value,
                "new_value": new_value,
            },
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
