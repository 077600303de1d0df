"""
Receipt Extraction Interface

DESIGN DECISION: The extraction model is a black box behind a one-method
interface. The ingestion pipeline only ever sees `extract(file)` and the
error taxonomy below, so:
1. The Gemini implementation can be swapped for another provider
2. Tests run against a fake extractor with no network access
3. Provider-specific error codes never leak into user messages

Every failure a file can hit maps to exactly one ExtractionError subclass,
and each subclass carries a short message that is safe to show the user.
None of them are retried automatically - retry is a user re-upload.
"""

from abc import ABC, abstractmethod
from typing import Optional

from travel_tracker.models.receipt import ExtractedReceiptData, ReceiptFile


class ReceiptExtractorInterface(ABC):
    """
    Abstract interface for the extraction collaborator.
    """

    @abstractmethod
    async def extract(self, file: ReceiptFile) -> ExtractedReceiptData:
        """
        Turn a receipt file into proposed structured fields.

        Args:
            file: The uploaded receipt (image or PDF)

        Returns:
            ExtractedReceiptData - may be partially populated

        Raises:
            ExtractionError: Any provider, network or payload failure
        """
        pass


class ExtractionError(Exception):
    """Base exception for per-file ingestion failures."""

    user_message = "An unexpected error occurred while processing this file."

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.user_message
        super().__init__(self.detail)

    @property
    def error_type(self) -> str:
        return type(self).__name__


class OversizeError(ExtractionError):
    """File is over the upload size ceiling (no network call made)."""
    user_message = "File is too large. The limit is 20 MB per receipt."

    def __init__(self, detail: Optional[str] = None, limit_mb: int = 20):
        self.user_message = f"File is too large. The limit is {limit_mb} MB per receipt."
        super().__init__(detail)


class ReadError(ExtractionError):
    """File could not be read as an image or PDF."""
    user_message = "File could not be read. Please upload an image or PDF."


class EmptyResponseError(ExtractionError):
    """The model returned no usable payload."""
    user_message = "No details could be read from this receipt."


class MalformedResponseError(ExtractionError):
    """Payload was not valid JSON or is missing the date / amount."""
    user_message = "Could not find a valid date and amount on this receipt."


class RateLimitError(ExtractionError):
    """Provider quota or rate limit hit."""
    user_message = "Too many requests right now. Please wait a minute and upload again."


class AuthError(ExtractionError):
    """Provider rejected the credentials."""
    user_message = "The receipt reader is not authorized. Please check the API key."


class ServiceUnavailableError(ExtractionError):
    """Provider is down or returned a server error."""
    user_message = "The receipt reader is temporarily unavailable. Please try again later."


class NetworkError(ExtractionError):
    """Request never completed (connection or timeout)."""
    user_message = "Network problem while reading this receipt. Please check your connection."


class ContentBlockedError(ExtractionError):
    """Provider refused the content on policy grounds."""
    user_message = "This file was blocked by the receipt reader's content policy."


class UnknownError(ExtractionError):
    """Anything we could not classify."""
    pass
