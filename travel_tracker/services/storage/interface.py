"""
Abstract Receipt Store Interface

DESIGN DECISION: We define one abstract "receipt store" capability with
two variants:
1. LocalReceiptStore - guest mode, a JSON file standing in for browser storage
2. GoogleSheetsReceiptStore - signed-in users, one worksheet per user

The variant is picked once at startup from the identity. Aggregation,
navigation and sorting only ever see `list[Receipt]` and a Decimal
allowance, so they never special-case which store is active.

Subscriptions: `subscribe(listener)` pushes the current receipt list
immediately and again after every change, so a UI can treat either
store as a live feed.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable, Optional

import structlog

from travel_tracker.models.receipt import Receipt


ReceiptListener = Callable[[list[Receipt]], None]

logger = structlog.get_logger(__name__)


class ReceiptStoreInterface(ABC):
    """
    Abstract interface for receipt and budget storage.

    Receipts are never edited in place by the app; `save_receipt` is an
    upsert keyed by id so a re-sync is harmless.
    """

    def __init__(self):
        self._listeners: list[ReceiptListener] = []

    @abstractmethod
    async def list_receipts(self) -> list[Receipt]:
        """
        Return every stored receipt.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def save_receipt(self, receipt: Receipt) -> None:
        """
        Insert or replace a receipt by id.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_receipt(self, receipt_id: str) -> bool:
        """
        Delete a receipt by id.

        Returns:
            True if a receipt was removed, False if none had that id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_allowance(self) -> Decimal:
        """Return the monthly allowance, or the configured default if never set."""
        pass

    @abstractmethod
    async def set_allowance(self, value: Decimal) -> None:
        """
        Store a new monthly allowance.

        Raises:
            StorageError: If the write fails
        """
        pass

    async def subscribe(self, listener: ReceiptListener) -> Callable[[], None]:
        """
        Register a listener for receipt-list changes.

        The listener is called right away with the current list.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)
        listener(await self.list_receipts())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, receipts: Optional[list[Receipt]] = None) -> None:
        """Push the current list to every listener after a change."""
        if not self._listeners:
            return
        if receipts is None:
            receipts = await self.list_receipts()
        for listener in list(self._listeners):
            try:
                listener(receipts)
            except Exception as e:
                # A broken listener must not undo a successful write
                logger.error("receipt_listener_failed", error=str(e))


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
