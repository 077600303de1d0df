"""
Receipt Ingestion Pipeline

Turns a batch of uploaded files into receipts:

    file -> size check -> read check -> extract -> validate -> classify -> dedupe

DESIGN DECISION: Settle-all concurrency. Every file is extracted at the
same time with asyncio.gather(return_exceptions=True), so one bad file
never cancels or hides the results of the others. The batch call itself
does not fail; each file ends up in exactly one of added / duplicates /
errors.

IMPORTANT BOUNDARIES:
1. The pipeline never persists anything - the caller saves `added`
2. Existing receipts are passed in, never mutated
3. Nothing is retried; retry is a user re-upload
"""

import asyncio
import io
import re
from datetime import date
from typing import Optional
from uuid import uuid4

import structlog
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from travel_tracker.config import AppSettings, get_settings
from travel_tracker.ingestion.trip_classifier import classify_trip_type
from travel_tracker.models.receipt import (
    BatchResult,
    DuplicateReceipt,
    ExtractedReceiptData,
    FileFailure,
    Receipt,
    ReceiptFile,
)
from travel_tracker.services.extraction.interface import (
    ExtractionError,
    MalformedResponseError,
    OversizeError,
    ReadError,
    ReceiptExtractorInterface,
    UnknownError,
)


logger = structlog.get_logger(__name__)


PDF_MAGIC = b"%PDF"

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def sniff_mime_type(content: bytes) -> str:
    """
    Work out what a file really is from its bytes.

    Raises:
        ReadError: Empty, or neither a PDF nor an image Pillow can open
    """
    if not content:
        raise ReadError("File is empty")

    if content.startswith(PDF_MAGIC):
        return "application/pdf"

    try:
        with Image.open(io.BytesIO(content)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError) as e:
        raise ReadError(f"Not a readable image or PDF: {e}") from e

    return Image.MIME.get(image_format or "", "application/octet-stream")


def parse_trip_date(value: Optional[str]) -> date:
    """
    Parse a strict ISO YYYY-MM-DD calendar date.

    Raises:
        MalformedResponseError: Missing, wrongly formatted, or not a real date
    """
    if not value:
        raise MalformedResponseError("Extraction returned no date")
    text = value.strip()
    if not _ISO_DATE_RE.match(text):
        raise MalformedResponseError(f"Date is not YYYY-MM-DD: {value!r}")
    try:
        return date.fromisoformat(text)
    except ValueError as e:
        raise MalformedResponseError(f"Date is not a calendar date: {value!r}") from e


class ReceiptIngestionPipeline:
    """
    Batch ingestion with per-file failure isolation.
    """

    def __init__(
        self,
        extractor: ReceiptExtractorInterface,
        app_settings: Optional[AppSettings] = None,
    ):
        """
        Args:
            extractor: The extraction collaborator (Gemini in production)
            app_settings: Size limit and office keywords; defaults to settings
        """
        self._extractor = extractor
        self._settings = app_settings or get_settings().app

    def _check_file(self, file: ReceiptFile) -> ReceiptFile:
        """Reject oversized or unreadable files before any network call."""
        limit_bytes = self._settings.max_upload_size_bytes
        if file.size_bytes > limit_bytes:
            raise OversizeError(
                f"{file.file_name} is {file.size_bytes} bytes (limit {limit_bytes})",
                limit_mb=self._settings.max_upload_size_mb,
            )

        mime_type = sniff_mime_type(file.content)
        return file.model_copy(update={"mime_type": mime_type})

    def _build_receipt(self, extracted: ExtractedReceiptData) -> Receipt:
        """
        Validate extracted fields and build a receipt with a fresh id.

        The trip type is always re-derived from the locations.

        Raises:
            MalformedResponseError: Missing or invalid date / amount
        """
        trip_date = parse_trip_date(extracted.trip_date)

        # The extraction prompt asks for 0 when there is no amount
        if extracted.amount is None or extracted.amount <= 0:
            raise MalformedResponseError(
                f"Extraction returned no usable amount: {extracted.amount!r}"
            )

        trip_type = classify_trip_type(
            extracted.pickup_location,
            extracted.dropoff_location,
            proposed=extracted.trip_type,
            office_keywords=self._settings.office_keywords_list,
        )

        try:
            return Receipt(
                id=str(uuid4()),
                trip_date=trip_date,
                trip_time=extracted.trip_time,
                amount=extracted.amount,
                currency=extracted.currency or self._settings.default_currency,
                pickup_location=extracted.pickup_location,
                dropoff_location=extracted.dropoff_location,
                trip_type=trip_type,
            )
        except ValidationError as e:
            raise MalformedResponseError(f"Extracted fields failed validation: {e}") from e

    async def _process_file(self, file: ReceiptFile) -> Receipt:
        checked = self._check_file(file)
        extracted = await self._extractor.extract(checked)
        return self._build_receipt(extracted)

    async def ingest(
        self,
        files: list[ReceiptFile],
        existing: list[Receipt],
    ) -> BatchResult:
        """
        Process a batch of files.

        Args:
            files: Uploaded files, in the order the user picked them
            existing: Receipts already stored, for duplicate detection

        Returns:
            BatchResult where every file appears exactly once
        """
        if not files:
            return BatchResult()

        outcomes = await asyncio.gather(
            *(self._process_file(file) for file in files),
            return_exceptions=True,
        )

        added: list[Receipt] = []
        duplicates: list[DuplicateReceipt] = []
        errors: list[FileFailure] = []
        source_files: dict[str, str] = {}

        # Earlier files in the batch count as "existing" for later ones
        seen_keys = {receipt.trip_key for receipt in existing}

        for file, outcome in zip(files, outcomes):
            if isinstance(outcome, ExtractionError):
                logger.info(
                    "file_rejected",
                    file_name=file.file_name,
                    error_type=outcome.error_type,
                    detail=outcome.detail,
                )
                errors.append(FileFailure(
                    file_name=file.file_name,
                    message=outcome.user_message,
                    error_type=outcome.error_type,
                ))
                continue

            if isinstance(outcome, Exception):
                logger.error(
                    "file_processing_crashed",
                    file_name=file.file_name,
                    error=str(outcome),
                    error_class=type(outcome).__name__,
                )
                unknown = UnknownError(f"{type(outcome).__name__}: {outcome}")
                errors.append(FileFailure(
                    file_name=file.file_name,
                    message=unknown.user_message,
                    error_type=unknown.error_type,
                ))
                continue

            if isinstance(outcome, BaseException):
                # Cancellation and interpreter exits are not per-file failures
                raise outcome

            if outcome.trip_key in seen_keys:
                duplicates.append(DuplicateReceipt(file_name=file.file_name, data=outcome))
                continue

            seen_keys.add(outcome.trip_key)
            added.append(outcome)
            source_files[outcome.id] = file.file_name

        logger.info(
            "batch_ingested",
            files=len(files),
            added=len(added),
            duplicates=len(duplicates),
            errors=len(errors),
        )

        return BatchResult(
            added=added,
            duplicates=duplicates,
            errors=errors,
            source_files=source_files,
        )
