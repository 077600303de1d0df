"""
Main Orchestrator for Travel Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Receipt Upload (files -> extract -> validate -> dedupe -> save)
2. Dashboard (load receipts + allowance -> aggregate -> render snapshot)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The ingestion pipeline never persists; this module saves `added`
- A storage failure never crashes a flow; the view may be stale until the
  next successful sync
- Every step is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import structlog

from travel_tracker.analytics import DashboardSnapshot, build_dashboard
from travel_tracker.audit import AuditLogger, configure_logging, create_correlation_id
from travel_tracker.config import AppSettings, get_settings
from travel_tracker.ingestion import ReceiptIngestionPipeline
from travel_tracker.models.receipt import (
    BatchResult,
    FileFailure,
    Receipt,
    ReceiptFile,
    Theme,
    UserIdentity,
    ViewState,
)
from travel_tracker.services.extraction import (
    GeminiReceiptExtractor,
    ReceiptExtractorInterface,
)
from travel_tracker.services.storage import (
    LocalKeyValueStorage,
    LocalReceiptStore,
    ReceiptStoreInterface,
    StorageError,
    create_receipt_store,
    load_theme,
    save_theme,
)


logger = structlog.get_logger(__name__)


SAVE_FAILED_MESSAGE = "Receipt was read but could not be saved. Please try again."


class ReceiptUploadFlow:
    """
    Orchestrates the receipt upload flow.

    Flow:
    1. Receive -> Audit the batch
    2. Ingest -> Extract every file concurrently, classify outcomes
    3. Save -> Persist each added receipt, one at a time, after the join
    4. Report -> BatchResult with added / duplicates / errors

    A receipt that fails to save is moved from `added` to `errors`.
    The batch call itself never fails.
    """

    def __init__(
        self,
        pipeline: ReceiptIngestionPipeline,
        store: ReceiptStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._pipeline = pipeline
        self._store = store
        self._audit_logger = audit_logger

    async def _existing_receipts(self, correlation_id: UUID) -> list[Receipt]:
        try:
            return await self._store.list_receipts()
        except StorageError as e:
            # Dedupe against the batch only; stored duplicates slip through
            logger.warning("existing_receipts_unavailable", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="storage",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return []

    async def process_batch(
        self,
        files: list[ReceiptFile],
        existing: Optional[list[Receipt]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        """
        Ingest a batch of files and persist the new receipts.

        Args:
            files: Uploaded files in the order the user picked them
            existing: Receipts already shown; read from the store if None
            correlation_id: Ties together every audit event of this batch

        Returns:
            BatchResult after persistence
        """
        correlation_id = correlation_id or create_correlation_id()

        if self._audit_logger:
            await self._audit_logger.log_batch_received(
                file_names=[file.file_name for file in files],
                correlation_id=correlation_id,
            )

        if existing is None:
            existing = await self._existing_receipts(correlation_id)

        result = await self._pipeline.ingest(files, existing)

        if self._audit_logger:
            for failure in result.errors:
                await self._audit_logger.log_extraction_failed(
                    file_name=failure.file_name,
                    error_type=failure.error_type,
                    message=failure.message,
                    correlation_id=correlation_id,
                )
            for duplicate in result.duplicates:
                await self._audit_logger.log_duplicate_detected(
                    file_name=duplicate.file_name,
                    trip_date=duplicate.data.trip_date.isoformat(),
                    amount=str(duplicate.data.amount),
                    correlation_id=correlation_id,
                )

        saved: list[Receipt] = []
        errors = list(result.errors)
        source_files: dict[str, str] = {}

        for receipt in result.added:
            file_name = result.source_files.get(receipt.id, receipt.id)

            if self._audit_logger:
                await self._audit_logger.log_receipt_extracted(
                    receipt_id=receipt.id,
                    file_name=file_name,
                    trip_type=receipt.trip_type,
                    correlation_id=correlation_id,
                )

            try:
                await self._store.save_receipt(receipt)
            except StorageError as e:
                logger.error(
                    "receipt_save_failed",
                    receipt_id=receipt.id,
                    file_name=file_name,
                    error=str(e),
                )
                if self._audit_logger:
                    await self._audit_logger.log_save_failed(
                        receipt_id=receipt.id,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                errors.append(FileFailure(
                    file_name=file_name,
                    message=SAVE_FAILED_MESSAGE,
                    error_type="SaveError",
                ))
                continue

            saved.append(receipt)
            source_files[receipt.id] = file_name

            if self._audit_logger:
                await self._audit_logger.log_receipt_saved(
                    receipt_id=receipt.id,
                    amount=str(receipt.amount),
                    correlation_id=correlation_id,
                )

        final = BatchResult(
            added=saved,
            duplicates=result.duplicates,
            errors=errors,
            source_files=source_files,
        )

        if self._audit_logger:
            await self._audit_logger.log_batch_completed(
                added=len(final.added),
                duplicates=len(final.duplicates),
                errors=len(final.errors),
                correlation_id=correlation_id,
            )

        return final


class DashboardFlow:
    """
    Orchestrates the dashboard reads and the few writes it allows
    (delete a receipt, change the allowance, change the theme).

    Keeps the last receipt list that loaded successfully, so a failed
    sync shows stale data instead of an empty page.
    """

    def __init__(
        self,
        store: ReceiptStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
        preferences: Optional[LocalKeyValueStorage] = None,
    ):
        """
        Args:
            store: Active receipt store (local or Google Sheets)
            audit_logger: Optional audit logger
            app_settings: Defaults to settings
            preferences: Key-value storage for the theme; always local,
                         whichever receipt store is active
        """
        self._store = store
        self._audit_logger = audit_logger
        self._settings = app_settings or get_settings().app
        if preferences is None:
            if isinstance(store, LocalReceiptStore):
                preferences = store.storage
            else:
                preferences = LocalKeyValueStorage(self._settings.local_storage_file)
        self._preferences = preferences
        self._last_receipts: list[Receipt] = []

    @property
    def store(self) -> ReceiptStoreInterface:
        return self._store

    @property
    def last_receipts(self) -> list[Receipt]:
        return list(self._last_receipts)

    async def load_receipts(self) -> list[Receipt]:
        """Current receipts, or the last known list if storage fails."""
        try:
            receipts = await self._store.list_receipts()
        except StorageError as e:
            logger.error("receipts_load_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="storage",
                    error_message=str(e),
                )
            return list(self._last_receipts)

        self._last_receipts = list(receipts)
        return list(receipts)

    async def delete_receipt(self, receipt_id: str) -> bool:
        """
        Delete a receipt.

        Returns:
            True if deleted; False if not found or the write failed
        """
        try:
            deleted = await self._store.delete_receipt(receipt_id)
        except StorageError as e:
            logger.error("receipt_delete_failed", receipt_id=receipt_id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_delete_failed(
                    receipt_id=receipt_id,
                    error_message=str(e),
                )
            return False

        if deleted:
            self._last_receipts = [
                receipt for receipt in self._last_receipts if receipt.id != receipt_id
            ]
            if self._audit_logger:
                await self._audit_logger.log_receipt_deleted(receipt_id)
        else:
            logger.info("receipt_delete_missing", receipt_id=receipt_id)
        return deleted

    async def get_allowance(self) -> Decimal:
        try:
            return await self._store.get_allowance()
        except StorageError as e:
            logger.error("allowance_load_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="AllowanceLoadError",
                    error_message=str(e),
                    details={"fallback": str(self._settings.default_monthly_allowance)},
                )
            return self._settings.default_monthly_allowance

    async def update_allowance(self, value) -> bool:
        """
        Change the monthly allowance.

        Raises:
            ValueError: If the value is not a positive number

        Returns:
            True if saved, False if the write failed
        """
        try:
            new_value = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Allowance must be a number, got {value!r}")
        if not new_value.is_finite() or new_value <= 0:
            raise ValueError(f"Allowance must be greater than zero, got {value!r}")

        old_value = await self.get_allowance()

        try:
            await self._store.set_allowance(new_value)
        except StorageError as e:
            logger.error("allowance_save_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="storage",
                    error_message=str(e),
                )
            return False

        if self._audit_logger:
            await self._audit_logger.log_allowance_updated(
                old_value=str(old_value),
                new_value=str(new_value),
            )
        return True

    def load_theme(self) -> Theme:
        try:
            return load_theme(self._preferences, self._settings)
        except StorageError as e:
            logger.warning("theme_load_failed", error=str(e))
            return Theme.SYSTEM

    def save_theme(self, theme: Theme) -> bool:
        try:
            save_theme(self._preferences, theme, self._settings)
        except StorageError as e:
            logger.warning("theme_save_failed", error=str(e))
            return False
        return True

    async def snapshot(
        self,
        view_state: ViewState,
        receipts: Optional[list[Receipt]] = None,
        allowance: Optional[Decimal] = None,
    ) -> DashboardSnapshot:
        """Build the dashboard snapshot, loading whatever was not passed in."""
        if receipts is None:
            receipts = await self.load_receipts()
        if allowance is None:
            allowance = await self.get_allowance()
        return build_dashboard(
            receipts,
            allowance,
            view_state,
            warning_fraction=self._settings.warning_fraction,
        )


def create_app_components(
    identity: Optional[UserIdentity] = None,
    extractor: Optional[ReceiptExtractorInterface] = None,
) -> tuple[ReceiptUploadFlow, DashboardFlow, ReceiptStoreInterface]:
    """
    Factory function to create all application components.

    Args:
        identity: Signed-in user, or None for the local guest profile
        extractor: Extraction collaborator; Gemini if None

    Returns:
        (receipt_upload_flow, dashboard_flow, store)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)
    audit_logger = AuditLogger()

    try:
        store = create_receipt_store(identity, settings)
    except Exception as e:
        # Remote storage not configured - continue with local storage
        logger.warning("remote_storage_unavailable", error=str(e))
        store = LocalReceiptStore(app_settings=settings.app)

    pipeline = ReceiptIngestionPipeline(
        extractor or GeminiReceiptExtractor(),
        app_settings=settings.app,
    )

    upload_flow = ReceiptUploadFlow(
        pipeline=pipeline,
        store=store,
        audit_logger=audit_logger,
    )
    dashboard_flow = DashboardFlow(
        store=store,
        audit_logger=audit_logger,
        app_settings=settings.app,
    )

    return upload_flow, dashboard_flow, store
