"""
Storage Services Package

Provides the abstract receipt store and its two variants: local JSON
storage for guests and Google Sheets for signed-in users.
"""

from typing import Optional

from travel_tracker.config import Settings, get_settings
from travel_tracker.models.receipt import UserIdentity
from travel_tracker.services.storage.interface import (
    ConnectionError,
    ReceiptListener,
    ReceiptStoreInterface,
    StorageError,
)
from travel_tracker.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsReceiptStore,
)
from travel_tracker.services.storage.local_store import (
    LocalKeyValueStorage,
    LocalReceiptStore,
    load_theme,
    save_theme,
)


def create_receipt_store(
    identity: Optional[UserIdentity] = None,
    settings: Optional[Settings] = None,
) -> ReceiptStoreInterface:
    """
    Pick the store variant for a session.

    Signed-in users get their own Google Sheets worksheet; everyone else
    gets the local store.
    """
    settings = settings or get_settings()
    if identity is None:
        return LocalReceiptStore(app_settings=settings.app)
    return GoogleSheetsReceiptStore(
        user_id=identity.uid,
        client=GoogleSheetsClient(settings.google_sheets),
        app_settings=settings.app,
    )


__all__ = [
    # Interface
    "ReceiptListener",
    "ReceiptStoreInterface",
    "create_receipt_store",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsReceiptStore",
    # Local implementation
    "LocalKeyValueStorage",
    "LocalReceiptStore",
    "load_theme",
    "save_theme",
]
