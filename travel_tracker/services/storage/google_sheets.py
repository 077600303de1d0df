"""
Google Sheets Storage Implementation (signed-in users)

DESIGN DECISION: Google Sheets is the remote backend because:
1. Users can see and export their receipts directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Layout:
- One worksheet per user: "<prefix>_<user id>", one receipt per row
- One shared "Budgets" worksheet: [user_id, monthly_allowance, updated_at]

TRADEOFFS:
- No transactions: concurrent writes are last-writer-wins per row
- No push notifications: `refresh()` re-reads the sheet and notifies
  subscribers when rows changed, which gives live-subscription
  semantics to a polling UI
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from travel_tracker.config import AppSettings, GoogleSheetsSettings, get_settings
from travel_tracker.models.receipt import Receipt
from travel_tracker.services.storage.interface import (
    ConnectionError,
    ReceiptStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for a receipts sheet (same names as the stored JSON)
RECEIPT_COLUMNS = [
    "id",
    "date",
    "time",
    "amount",
    "currency",
    "pickupLocation",
    "dropoffLocation",
    "tripType",
]

BUDGET_COLUMNS = [
    "user_id",
    "monthly_allowance",
    "updated_at",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_receipts_sheet(self, user_id: str) -> gspread.Worksheet:
        """Get or create the receipts worksheet of one user."""
        title = f"{self._settings.receipts_sheet_prefix}_{user_id}"
        return self._get_or_create_sheet(title, RECEIPT_COLUMNS, rows=1000)

    def get_budget_sheet(self) -> gspread.Worksheet:
        """Get or create the shared budgets worksheet."""
        return self._get_or_create_sheet(
            self._settings.budget_sheet_name,
            BUDGET_COLUMNS,
            rows=100,
        )


def receipt_to_row(receipt: Receipt) -> list:
    """Convert a Receipt to a spreadsheet row."""
    data = receipt.to_storage_dict()
    row = [data[column] for column in RECEIPT_COLUMNS]
    # Amounts go in as exact strings, not floats
    row[RECEIPT_COLUMNS.index("amount")] = str(receipt.amount)
    return row


def row_to_receipt(row: list) -> Receipt:
    """Convert a spreadsheet row to a Receipt."""
    padded = list(row) + [""] * (len(RECEIPT_COLUMNS) - len(row))
    data = dict(zip(RECEIPT_COLUMNS, padded))
    return Receipt.model_validate(data)


class GoogleSheetsReceiptStore(ReceiptStoreInterface):
    """
    Remote receipt store keyed by the signed-in user's id.
    """

    def __init__(
        self,
        user_id: str,
        client: Optional[GoogleSheetsClient] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        super().__init__()
        self._user_id = user_id
        self._client = client or GoogleSheetsClient()
        self._app_settings = app_settings or get_settings().app
        self._last_snapshot: Optional[list[Receipt]] = None

    @property
    def user_id(self) -> str:
        return self._user_id

    def _read_rows(self) -> list[list]:
        sheet = self._client.get_receipts_sheet(self._user_id)
        return sheet.get_all_values()[1:]  # Skip header

    async def list_receipts(self) -> list[Receipt]:
        """List all receipts of this user."""
        try:
            rows = self._read_rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list receipts: {e}")

        receipts = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                receipts.append(row_to_receipt(row))
            except ValidationError:
                logger.warning("sheet_receipt_skipped", receipt_id=row[0])
                continue

        self._last_snapshot = receipts
        return receipts

    async def refresh(self) -> bool:
        """
        Re-read the sheet and notify subscribers if anything changed.

        Returns True when a change was pushed.
        """
        previous = self._last_snapshot
        current = await self.list_receipts()
        if previous is not None and previous == current:
            return False
        await self._notify(current)
        return True

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _write_receipt(self, receipt: Receipt) -> None:
        try:
            sheet = self._client.get_receipts_sheet(self._user_id)
            all_rows = sheet.get_all_values()
            new_row = receipt_to_row(receipt)

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if row and row[0] == receipt.id:
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[new_row],
                        value_input_option="RAW",
                    )
                    return

            sheet.append_row(new_row, value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save receipt: {e}")

    async def save_receipt(self, receipt: Receipt) -> None:
        """Upsert a receipt row by id."""
        await self._write_receipt(receipt)
        await self._notify()

    async def delete_receipt(self, receipt_id: str) -> bool:
        """Delete a receipt row by id."""
        try:
            sheet = self._client.get_receipts_sheet(self._user_id)
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == receipt_id:
                    sheet.delete_rows(idx)
                    break
            else:
                return False
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete receipt: {e}")

        await self._notify()
        return True

    def _find_budget_row(self, sheet: gspread.Worksheet) -> tuple[Optional[int], Optional[list]]:
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == self._user_id:
                return idx, row
        return None, None

    async def get_allowance(self) -> Decimal:
        """Get this user's allowance, falling back to the default."""
        default = self._app_settings.default_monthly_allowance
        try:
            sheet = self._client.get_budget_sheet()
            _, row = self._find_budget_row(sheet)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read allowance: {e}")

        if row is None or len(row) < 2 or not row[1]:
            return default
        try:
            return Decimal(row[1])
        except InvalidOperation:
            logger.warning("sheet_allowance_invalid", user_id=self._user_id, value=row[1])
            return default

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def set_allowance(self, value: Decimal) -> None:
        """Upsert this user's allowance row."""
        try:
            sheet = self._client.get_budget_sheet()
            idx, _ = self._find_budget_row(sheet)
            row = [self._user_id, str(value), datetime.utcnow().isoformat()]
            if idx is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(
                    range_name=f"A{idx}",
                    values=[row],
                    value_input_option="RAW",
                )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save allowance: {e}")
