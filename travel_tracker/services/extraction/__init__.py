"""Receipt extraction services package."""

from travel_tracker.services.extraction.interface import (
    AuthError,
    ContentBlockedError,
    EmptyResponseError,
    ExtractionError,
    MalformedResponseError,
    NetworkError,
    OversizeError,
    RateLimitError,
    ReadError,
    ReceiptExtractorInterface,
    ServiceUnavailableError,
    UnknownError,
)
from travel_tracker.services.extraction.gemini_service import (
    GeminiReceiptExtractor,
    classify_provider_error,
    parse_extraction_payload,
)

__all__ = [
    # Interface
    "ReceiptExtractorInterface",
    # Error taxonomy
    "AuthError",
    "ContentBlockedError",
    "EmptyResponseError",
    "ExtractionError",
    "MalformedResponseError",
    "NetworkError",
    "OversizeError",
    "RateLimitError",
    "ReadError",
    "ServiceUnavailableError",
    "UnknownError",
    # Gemini implementation
    "GeminiReceiptExtractor",
    "classify_provider_error",
    "parse_extraction_payload",
]
