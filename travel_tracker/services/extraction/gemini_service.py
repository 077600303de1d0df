"""
Receipt Extraction using Gemini

DESIGN DECISION: We send the raw file (image or PDF) straight to Gemini
instead of running OCR first, because:
1. Ride receipts (Uber, Ola, Rapido, Cityflo) vary wildly in layout
2. The model returns STRUCTURED JSON, not raw text
3. PDFs and images go through the same call

This service handles:
1. Sending the file bytes inline with the extraction prompt
2. Mapping provider failures to our error taxonomy
3. Parsing the JSON payload into ExtractedReceiptData

CRITICAL: This service only extracts. It does not decide whether the
result is usable - the ingestion pipeline validates date and amount.
"""

import asyncio
import json
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import BlockedPromptException, StopCandidateException

from travel_tracker.config import get_settings
from travel_tracker.models.receipt import ExtractedReceiptData, ReceiptFile
from travel_tracker.services.extraction.interface import (
    AuthError,
    ContentBlockedError,
    EmptyResponseError,
    ExtractionError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
    ReceiptExtractorInterface,
    ServiceUnavailableError,
    UnknownError,
)


logger = structlog.get_logger(__name__)


EXTRACTION_PROMPT = """Analyze this travel/transport receipt (image or PDF). It could be from Uber, Ola, Rapido, Cityflo, or a generic taxi/travel invoice. Extract the following details:
- date: trip date (YYYY-MM-DD)
- time: trip start time (HH:MM 24hr format)
- amount: total amount (numeric value only)
- currency: currency code (e.g., INR, USD)
- pickupLocation: pickup location (simplify to street/area name, use "N/A" if not applicable like for a Cityflo pass or generic invoice)
- dropoffLocation: dropoff location (simplify to street/area name, use "N/A" if not applicable)
- tripType: one of "Commute", "Personal", "Business" if you can tell, otherwise "Commute"

Respond with ONLY a JSON object with exactly these keys.
If the file is not a receipt or details are missing, use empty strings for text fields and 0 for amount."""

# Finish reasons that mean the provider withheld content
_BLOCKED_FINISH_REASONS = {"SAFETY", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII", "RECITATION"}

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def classify_provider_error(exc: BaseException) -> ExtractionError:
    """
    Map a provider / transport exception to our error taxonomy.

    Order matters: DeadlineExceeded is a GatewayTimeout (a ServerError)
    in google-api-core, but for the user it is a network timeout.
    """
    if isinstance(exc, ExtractionError):
        return exc

    detail = f"{type(exc).__name__}: {exc}"

    if isinstance(exc, (BlockedPromptException, StopCandidateException)):
        return ContentBlockedError(detail)
    if isinstance(exc, (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests)):
        return RateLimitError(detail)
    if isinstance(exc, (google_exceptions.Unauthorized, google_exceptions.Forbidden)):
        return AuthError(detail)
    if isinstance(exc, google_exceptions.InvalidArgument) and "api key" in str(exc).lower():
        return AuthError(detail)
    if isinstance(exc, (google_exceptions.DeadlineExceeded, google_exceptions.RetryError)):
        return NetworkError(detail)
    if isinstance(exc, google_exceptions.ServerError):
        return ServiceUnavailableError(detail)
    if isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return NetworkError(detail)

    return UnknownError(detail)


_AMOUNT_PATTERN = re.compile(r"-?\d[\d,]*(?:\.\d+)?")


def _safe_decimal(value: Any) -> Optional[Decimal]:
    """Safely convert a model-reported amount to Decimal."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        # "₹1,234.50" / "Rs. 350" -> "1234.50" / "350"
        match = _AMOUNT_PATTERN.search(value)
        if match is None:
            return None
        value = match.group(0).replace(",", "")
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        return None


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_extraction_payload(text: Optional[str]) -> ExtractedReceiptData:
    """
    Parse the model's JSON answer into ExtractedReceiptData.

    Tolerates markdown code fences and prose around the JSON object.

    Raises:
        EmptyResponseError: Nothing was returned
        MalformedResponseError: No JSON object could be parsed
    """
    if text is None or not text.strip():
        raise EmptyResponseError("Model returned an empty response")

    cleaned = _CODE_FENCE_RE.sub("", text.strip())

    # Find JSON in response
    start = cleaned.find("{")
    end = cleaned.rfind("}") + 1
    if start < 0 or end <= start:
        raise MalformedResponseError(f"No JSON object in response: {text[:200]!r}")

    try:
        data = json.loads(cleaned[start:end])
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON in response: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponseError("Response JSON is not an object")

    return ExtractedReceiptData(
        trip_date=_clean_str(data.get("date")),
        trip_time=_clean_str(data.get("time")),
        amount=_safe_decimal(data.get("amount")),
        currency=_clean_str(data.get("currency")),
        pickup_location=_clean_str(data.get("pickupLocation")),
        dropoff_location=_clean_str(data.get("dropoffLocation")),
        trip_type=_clean_str(data.get("tripType")),
        raw_response=text[:2000],
    )


class GeminiReceiptExtractor(ReceiptExtractorInterface):
    """
    Extraction collaborator backed by a Gemini model.

    IMPORTANT BOUNDARIES:
    1. One call per file, no automatic retries
    2. No timeout of our own - the client library's policy applies
    3. Every failure leaves as an ExtractionError subclass
    """

    def __init__(self, model: Optional[Any] = None):
        """
        Args:
            model: A ready GenerativeModel (tests pass a fake).
                   If None, one is built from GeminiSettings on first use.
        """
        self._model = model

    def _get_model(self) -> Any:
        """Get or create the Gemini model."""
        if self._model is None:
            try:
                settings = get_settings().gemini
            except Exception as e:
                raise AuthError(f"Gemini is not configured: {e}") from e

            genai.configure(api_key=settings.api_key)
            self._model = genai.GenerativeModel(
                model_name=settings.model_name,
                generation_config={
                    "temperature": settings.temperature,
                    "max_output_tokens": settings.max_tokens,
                    "response_mime_type": "application/json",
                },
            )
        return self._model

    def _response_text(self, response: Any) -> str:
        """Pull the text out of a response, classifying blocked / empty ones."""
        feedback = getattr(response, "prompt_feedback", None)
        if feedback is not None and getattr(feedback, "block_reason", None):
            raise ContentBlockedError(f"Prompt blocked: {feedback.block_reason}")

        candidates = getattr(response, "candidates", None)
        if not candidates:
            raise EmptyResponseError("Response has no candidates")

        finish_reason = getattr(candidates[0], "finish_reason", None)
        reason_name = getattr(finish_reason, "name", str(finish_reason or ""))
        if reason_name in _BLOCKED_FINISH_REASONS:
            raise ContentBlockedError(f"Generation stopped: {reason_name}")

        try:
            return response.text
        except ValueError as e:
            # .text raises when the candidate has no parts
            raise EmptyResponseError(str(e)) from e

    async def extract(self, file: ReceiptFile) -> ExtractedReceiptData:
        """
        Extract receipt fields from one file.

        Raises:
            ExtractionError: Classified provider / payload failure
        """
        model = self._get_model()
        file_part = {
            "mime_type": file.mime_type or "application/octet-stream",
            "data": file.content,
        }

        try:
            response = await model.generate_content_async([file_part, EXTRACTION_PROMPT])
        except Exception as e:
            error = classify_provider_error(e)
            logger.warning(
                "extraction_call_failed",
                file_name=file.file_name,
                error_type=error.error_type,
                detail=error.detail,
            )
            raise error from e

        text = self._response_text(response)
        extracted = parse_extraction_payload(text)

        logger.debug(
            "extraction_completed",
            file_name=file.file_name,
            has_date=extracted.trip_date is not None,
            has_amount=extracted.amount is not None,
        )
        return extracted
