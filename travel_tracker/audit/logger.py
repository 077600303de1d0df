"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of each upload batch
2. Debugging capability when extraction misbehaves
3. A record of persistence failures the UI only shows as a summary

The audit logger:
- Is async so it can sit inside the upload flow
- Gracefully handles failures (never crashes the app if logging fails)
- Supports correlation IDs to trace every file of one batch
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from travel_tracker.models.audit import AuditEvent, AuditEventBuilder


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog output through the stdlib root logger at `level`.

    structlog renders the JSON line; the stdlib handler only prints it.
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Writes every AuditEvent to the structured local log at a level
    matching the event's severity.
    """

    def __init__(self):
        self._logger = structlog.get_logger("travel_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be written; never raises.
        """
        try:
            log_dict = event.to_log_dict()

            if event.severity.value in ("error", "critical"):
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Audit must never break the main flow
            self._logger.error(
                "audit_log_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

        return True

    async def log_batch_received(
        self,
        file_names: list[str],
        correlation_id: UUID,
    ) -> None:
        """Log the start of an upload batch."""
        await self.log(AuditEventBuilder.batch_received(
            file_names=file_names,
            correlation_id=correlation_id,
        ))

    async def log_batch_completed(
        self,
        added: int,
        duplicates: int,
        errors: int,
        correlation_id: UUID,
    ) -> None:
        """Log the classified outcome of an upload batch."""
        await self.log(AuditEventBuilder.batch_completed(
            added=added,
            duplicates=duplicates,
            errors=errors,
            correlation_id=correlation_id,
        ))

    async def log_receipt_extracted(
        self,
        receipt_id: str,
        file_name: str,
        trip_type: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_extracted(
            receipt_id=receipt_id,
            file_name=file_name,
            trip_type=trip_type,
            correlation_id=correlation_id,
        ))

    async def log_extraction_failed(
        self,
        file_name: str,
        error_type: str,
        message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_failed(
            file_name=file_name,
            error_type=error_type,
            message=message,
            correlation_id=correlation_id,
        ))

    async def log_duplicate_detected(
        self,
        file_name: str,
        trip_date: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.duplicate_detected(
            file_name=file_name,
            trip_date=trip_date,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_receipt_saved(
        self,
        receipt_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_saved(
            receipt_id=receipt_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        receipt_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            receipt_id=receipt_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_receipt_deleted(self, receipt_id: str) -> None:
        await self.log(AuditEventBuilder.receipt_deleted(receipt_id))

    async def log_delete_failed(
        self,
        receipt_id: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.delete_failed(
            receipt_id=receipt_id,
            error_message=error_message,
        ))

    async def log_allowance_updated(
        self,
        old_value: str,
        new_value: str,
    ) -> None:
        await self.log(AuditEventBuilder.allowance_updated(
            old_value=old_value,
            new_value=new_value,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., an upload batch).
    Pass it through all subsequent operations.
    """
    return uuid4()
