"""
Tests for the local (guest) store and the Google Sheets store.
"""

import asyncio
import json
from datetime import date
from decimal import Decimal

import pytest

from travel_tracker.config import AppSettings
from travel_tracker.models.receipt import Receipt, Theme
from travel_tracker.services.storage import (
    LocalKeyValueStorage,
    LocalReceiptStore,
    StorageError,
    load_theme,
    save_theme,
)
from travel_tracker.services.storage import local_store
from travel_tracker.services.storage.google_sheets import (
    RECEIPT_COLUMNS,
    GoogleSheetsReceiptStore,
    receipt_to_row,
    row_to_receipt,
)


def make_receipt(receipt_id: str, day: int = 1, amount: str = "100") -> Receipt:
    return Receipt(
        id=receipt_id,
        trip_date=date(2026, 3, day),
        trip_time="09:15",
        amount=Decimal(amount),
        pickup_location="Home",
        dropoff_location="Office",
    )


@pytest.fixture
def app_settings(tmp_path):
    return AppSettings(local_storage_path=str(tmp_path / "storage.json"))


@pytest.fixture
def kv(app_settings):
    return LocalKeyValueStorage(app_settings.local_storage_file)


@pytest.fixture
def store(kv, app_settings):
    return LocalReceiptStore(storage=kv, app_settings=app_settings)


class TestLocalKeyValueStorage:

    def test_missing_file_reads_empty(self, kv):
        assert kv.get_item("anything") is None

    def test_set_get_remove(self, kv):
        kv.set_item("theme", "dark")
        assert kv.get_item("theme") == "dark"
        kv.remove_item("theme")
        assert kv.get_item("theme") is None

    def test_failed_write_leaves_no_temp_file(self, kv, monkeypatch):
        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(local_store.os, "replace", failing_replace)
        with pytest.raises(StorageError):
            kv.set_item("theme", "dark")
        assert list(kv.path.parent.glob("*.tmp")) == []

    def test_corrupt_file_raises_storage_error(self, kv):
        kv.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            kv.get_item("theme")


class TestLocalReceiptStore:
    """Tests for guest-mode receipt storage."""

    def test_empty_store(self, store):
        assert asyncio.run(store.list_receipts()) == []

    def test_save_and_list(self, store, kv, app_settings):
        receipt = make_receipt("r1")
        asyncio.run(store.save_receipt(receipt))

        assert asyncio.run(store.list_receipts()) == [receipt]
        stored = json.loads(kv.get_item(app_settings.receipts_storage_key))
        assert stored[0]["pickupLocation"] == "Home"
        assert stored[0]["date"] == "2026-03-01"

    def test_save_is_upsert_by_id(self, store):
        asyncio.run(store.save_receipt(make_receipt("r1", amount="100")))
        asyncio.run(store.save_receipt(make_receipt("r1", amount="150")))

        receipts = asyncio.run(store.list_receipts())
        assert len(receipts) == 1
        assert receipts[0].amount == Decimal("150")

    def test_new_receipts_listed_first(self, store):
        asyncio.run(store.save_receipt(make_receipt("old")))
        asyncio.run(store.save_receipt(make_receipt("new", day=2)))
        assert [r.id for r in asyncio.run(store.list_receipts())] == ["new", "old"]

    def test_delete(self, store):
        asyncio.run(store.save_receipt(make_receipt("r1")))
        assert asyncio.run(store.delete_receipt("r1")) is True
        assert asyncio.run(store.delete_receipt("r1")) is False
        assert asyncio.run(store.list_receipts()) == []

    def test_legacy_key_migrated(self, store, kv, app_settings):
        """Receipts under the old key are read and copied to the new key."""
        legacy = [make_receipt("legacy-1").to_storage_dict()]
        kv.set_item(app_settings.legacy_receipts_storage_key, json.dumps(legacy))

        receipts = asyncio.run(store.list_receipts())

        assert [r.id for r in receipts] == ["legacy-1"]
        assert kv.get_item(app_settings.receipts_storage_key) is not None
        # Legacy key left as it was
        assert json.loads(kv.get_item(app_settings.legacy_receipts_storage_key)) == legacy

    def test_primary_key_wins_over_legacy(self, store, kv, app_settings):
        kv.set_item(app_settings.legacy_receipts_storage_key, json.dumps([make_receipt("legacy").to_storage_dict()]))
        kv.set_item(app_settings.receipts_storage_key, json.dumps([make_receipt("current").to_storage_dict()]))
        assert [r.id for r in asyncio.run(store.list_receipts())] == ["current"]

    def test_malformed_entries_skipped(self, store, kv, app_settings):
        entries = [
            make_receipt("good").to_storage_dict(),
            {"id": "bad-date", "date": "soon", "amount": 10},
            {"id": "no-amount", "date": "2026-03-01"},
        ]
        kv.set_item(app_settings.receipts_storage_key, json.dumps(entries))
        assert [r.id for r in asyncio.run(store.list_receipts())] == ["good"]

    def test_unparseable_list_reads_empty(self, store, kv, app_settings):
        kv.set_item(app_settings.receipts_storage_key, "[{oops")
        assert asyncio.run(store.list_receipts()) == []

    def test_allowance_default_and_update(self, store, app_settings):
        assert asyncio.run(store.get_allowance()) == app_settings.default_monthly_allowance
        asyncio.run(store.set_allowance(Decimal("8000")))
        assert asyncio.run(store.get_allowance()) == Decimal("8000")

    def test_invalid_allowance_falls_back(self, store, kv, app_settings):
        kv.set_item(app_settings.allowance_storage_key, "lots")
        assert asyncio.run(store.get_allowance()) == app_settings.default_monthly_allowance

    def test_subscribe_pushes_current_and_changes(self, store):
        seen = []
        unsubscribe = asyncio.run(store.subscribe(lambda receipts: seen.append([r.id for r in receipts])))
        asyncio.run(store.save_receipt(make_receipt("r1")))
        asyncio.run(store.delete_receipt("r1"))
        unsubscribe()
        asyncio.run(store.save_receipt(make_receipt("r2")))

        assert seen == [[], ["r1"], []]

    def test_broken_listener_does_not_undo_write(self, store):
        def broken(receipts):
            if receipts:
                raise RuntimeError("listener bug")

        asyncio.run(store.subscribe(broken))
        asyncio.run(store.save_receipt(make_receipt("r1")))
        assert [r.id for r in asyncio.run(store.list_receipts())] == ["r1"]


class TestThemePreference:

    def test_default_is_system(self, kv, app_settings):
        assert load_theme(kv, app_settings) == Theme.SYSTEM

    def test_round_trip(self, kv, app_settings):
        save_theme(kv, Theme.DARK, app_settings)
        assert kv.get_item("theme") == "dark"
        assert load_theme(kv, app_settings) == Theme.DARK

    def test_unknown_value_is_system(self, kv, app_settings):
        kv.set_item("theme", "sepia")
        assert load_theme(kv, app_settings) == Theme.SYSTEM


class TestSheetRows:
    """Tests for the Google Sheets row layout."""

    def test_row_layout(self):
        row = receipt_to_row(make_receipt("r1", amount="245.50"))
        assert len(row) == len(RECEIPT_COLUMNS)
        assert row[0] == "r1"
        assert row[RECEIPT_COLUMNS.index("amount")] == "245.50"
        assert row[RECEIPT_COLUMNS.index("date")] == "2026-03-01"

    def test_short_row_is_padded(self):
        receipt = row_to_receipt(["r1", "2026-03-01", "", "99"])
        assert receipt.id == "r1"
        assert receipt.amount == Decimal("99")
        assert receipt.pickup_location == ""
        assert receipt.currency == "INR"


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the receipt store."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append(list(row))

    def update(self, range_name, values, value_input_option=None):
        index = int(range_name[1:]) - 1
        self.rows[index] = list(values[0])

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.receipt_sheets = {}
        self.budget_sheet = FakeWorksheet(["user_id", "monthly_allowance", "updated_at"])

    def get_receipts_sheet(self, user_id):
        return self.receipt_sheets.setdefault(user_id, FakeWorksheet(RECEIPT_COLUMNS))

    def get_budget_sheet(self):
        return self.budget_sheet


class TestGoogleSheetsReceiptStore:
    """Tests for the signed-in store against an in-memory sheet."""

    @pytest.fixture
    def client(self):
        return FakeSheetsClient()

    @pytest.fixture
    def sheets_store(self, client, app_settings):
        return GoogleSheetsReceiptStore(user_id="user-1", client=client, app_settings=app_settings)

    def test_save_list_upsert_delete(self, sheets_store, client):
        asyncio.run(sheets_store.save_receipt(make_receipt("r1", amount="100")))
        asyncio.run(sheets_store.save_receipt(make_receipt("r1", amount="175")))
        asyncio.run(sheets_store.save_receipt(make_receipt("r2", day=2)))

        receipts = asyncio.run(sheets_store.list_receipts())
        assert {r.id: r.amount for r in receipts} == {"r1": Decimal("175"), "r2": Decimal("100")}
        assert len(client.receipt_sheets["user-1"].rows) == 3

        assert asyncio.run(sheets_store.delete_receipt("r1")) is True
        assert asyncio.run(sheets_store.delete_receipt("r1")) is False
        assert [r.id for r in asyncio.run(sheets_store.list_receipts())] == ["r2"]

    def test_users_are_isolated(self, client, app_settings):
        first = GoogleSheetsReceiptStore(user_id="a", client=client, app_settings=app_settings)
        second = GoogleSheetsReceiptStore(user_id="b", client=client, app_settings=app_settings)
        asyncio.run(first.save_receipt(make_receipt("r1")))
        assert asyncio.run(second.list_receipts()) == []

    def test_allowance_per_user(self, sheets_store, client, app_settings):
        assert asyncio.run(sheets_store.get_allowance()) == app_settings.default_monthly_allowance
        asyncio.run(sheets_store.set_allowance(Decimal("9000")))
        asyncio.run(sheets_store.set_allowance(Decimal("9500")))
        assert asyncio.run(sheets_store.get_allowance()) == Decimal("9500")
        assert len(client.budget_sheet.rows) == 2

    def test_refresh_notifies_on_remote_change(self, sheets_store, client):
        seen = []
        asyncio.run(sheets_store.subscribe(lambda receipts: seen.append(len(receipts))))
        assert asyncio.run(sheets_store.refresh()) is False

        # Another device appends a row
        client.get_receipts_sheet("user-1").append_row(receipt_to_row(make_receipt("remote")))
        assert asyncio.run(sheets_store.refresh()) is True
        assert seen == [0, 1]

    def test_bad_rows_skipped(self, sheets_store, client):
        sheet = client.get_receipts_sheet("user-1")
        sheet.append_row(["broken", "not-a-date", "", "12"])
        sheet.append_row([])
        sheet.append_row(receipt_to_row(make_receipt("ok")))
        assert [r.id for r in asyncio.run(sheets_store.list_receipts())] == ["ok"]
