"""Receipt ingestion package."""

from travel_tracker.ingestion.pipeline import (
    ReceiptIngestionPipeline,
    parse_trip_date,
    sniff_mime_type,
)
from travel_tracker.ingestion.trip_classifier import classify_trip_type

__all__ = [
    "ReceiptIngestionPipeline",
    "classify_trip_type",
    "parse_trip_date",
    "sniff_mime_type",
]
