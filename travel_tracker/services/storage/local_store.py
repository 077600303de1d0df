"""
Local (Guest Mode) Storage

DESIGN DECISION: Anonymous users keep everything on their own machine in
one JSON document of string keys to string values - the same shape as
browser local storage, so the stored layout stays familiar:

    travel-tracker-invoices   JSON array of receipts (camelCase fields)
    uber-tracker-invoices     legacy array, read once as a migration fallback
    travel-tracker-allowance  numeric string
    theme                     "light" | "dark" | "system"

The legacy key is never written. When receipts are found only under it,
they are copied to the primary key on first read so ids stay stable.
"""

import json
import os
import tempfile
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError

from travel_tracker.config import AppSettings, get_settings
from travel_tracker.models.receipt import Receipt, Theme
from travel_tracker.services.storage.interface import (
    ReceiptStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class LocalKeyValueStorage:
    """
    A JSON file mapping string keys to string values.

    Every call reads or rewrites the whole file; it holds one user's data.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Local storage file is unreadable: {e}") from e
        if not isinstance(data, dict):
            raise StorageError("Local storage file does not hold a key-value object")
        return data

    def _write(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so a crash never leaves half a file
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Failed to write local storage: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except OSError as e:
            raise StorageError(f"Failed to write local storage: {e}") from e
        finally:
            # Gone after a successful replace
            Path(tmp_name).unlink(missing_ok=True)

    def get_item(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return None if value is None else str(value)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class LocalReceiptStore(ReceiptStoreInterface):
    """
    Receipt store for the anonymous local profile.
    """

    def __init__(
        self,
        storage: Optional[LocalKeyValueStorage] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        super().__init__()
        self._settings = app_settings or get_settings().app
        self._storage = storage or LocalKeyValueStorage(self._settings.local_storage_file)

    @property
    def storage(self) -> LocalKeyValueStorage:
        return self._storage

    def _parse_receipts(self, raw: str, key: str) -> list[Receipt]:
        """Parse a stored JSON array, skipping entries that no longer validate."""
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("local_receipts_unparseable", key=key, error=str(e))
            return []

        if not isinstance(items, list):
            logger.error("local_receipts_not_a_list", key=key)
            return []

        receipts = []
        for index, item in enumerate(items):
            try:
                receipts.append(Receipt.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "local_receipt_skipped",
                    key=key,
                    index=index,
                    error_count=e.error_count(),
                )
        return receipts

    def _write_receipts(self, receipts: list[Receipt]) -> None:
        payload = json.dumps([receipt.to_storage_dict() for receipt in receipts])
        self._storage.set_item(self._settings.receipts_storage_key, payload)

    async def list_receipts(self) -> list[Receipt]:
        primary_key = self._settings.receipts_storage_key
        raw = self._storage.get_item(primary_key)
        if raw is not None:
            return self._parse_receipts(raw, primary_key)

        legacy_key = self._settings.legacy_receipts_storage_key
        legacy_raw = self._storage.get_item(legacy_key)
        if legacy_raw is None:
            return []

        receipts = self._parse_receipts(legacy_raw, legacy_key)
        self._write_receipts(receipts)
        logger.info("local_receipts_migrated", count=len(receipts), from_key=legacy_key)
        return receipts

    async def save_receipt(self, receipt: Receipt) -> None:
        receipts = await self.list_receipts()
        for index, existing in enumerate(receipts):
            if existing.id == receipt.id:
                receipts[index] = receipt
                break
        else:
            # Newest first, like the upload history
            receipts.insert(0, receipt)
        self._write_receipts(receipts)
        await self._notify()

    async def delete_receipt(self, receipt_id: str) -> bool:
        receipts = await self.list_receipts()
        remaining = [receipt for receipt in receipts if receipt.id != receipt_id]
        if len(remaining) == len(receipts):
            return False
        self._write_receipts(remaining)
        await self._notify()
        return True

    async def get_allowance(self) -> Decimal:
        default = self._settings.default_monthly_allowance
        raw = self._storage.get_item(self._settings.allowance_storage_key)
        if raw is None:
            return default
        try:
            return Decimal(raw.strip())
        except InvalidOperation:
            logger.warning("local_allowance_invalid", value=raw)
            return default

    async def set_allowance(self, value: Decimal) -> None:
        self._storage.set_item(self._settings.allowance_storage_key, str(value))


def load_theme(
    storage: LocalKeyValueStorage,
    app_settings: Optional[AppSettings] = None,
) -> Theme:
    """Stored theme preference, `system` when unset or unknown."""
    settings = app_settings or get_settings().app
    raw = storage.get_item(settings.theme_storage_key)
    try:
        return Theme(raw) if raw else Theme.SYSTEM
    except ValueError:
        return Theme.SYSTEM


def save_theme(
    storage: LocalKeyValueStorage,
    theme: Theme,
    app_settings: Optional[AppSettings] = None,
) -> None:
    settings = app_settings or get_settings().app
    storage.set_item(settings.theme_storage_key, Theme(theme).value)
