"""Services package."""

from travel_tracker.services.extraction import (
    ExtractionError,
    GeminiReceiptExtractor,
    ReceiptExtractorInterface,
)
from travel_tracker.services.storage import (
    ConnectionError,
    GoogleSheetsReceiptStore,
    LocalReceiptStore,
    ReceiptStoreInterface,
    StorageError,
    create_receipt_store,
)

__all__ = [
    # Extraction services
    "ExtractionError",
    "GeminiReceiptExtractor",
    "ReceiptExtractorInterface",
    # Storage services
    "ConnectionError",
    "GoogleSheetsReceiptStore",
    "LocalReceiptStore",
    "ReceiptStoreInterface",
    "StorageError",
    "create_receipt_store",
]
