import os

import gspread
import pytest

from groupledger.models import ExactSplit, ExpenseDraft, Group
from groupledger.service import GroupLedgerService
from groupledger.storage import GoogleSheetsStore, JsonFileStore


class FakeWorksheet:
    """In-memory stand-in for a gspread Worksheet, including its grid size."""

    def __init__(self, values=None, rows=200, cols=8):
        self.values = [list(r) for r in (values or [])]
        self.row_count = max(rows, len(self.values))
        self.col_count = cols
        self.fail_updates = False

    def row_values(self, row):
        return list(self.values[row - 1]) if len(self.values) >= row else []

    def resize(self, rows, cols):
        self.row_count, self.col_count = rows, cols

    def update(self, range_name, values, value_input_option=None):
        assert range_name == "A1"
        assert value_input_option == "RAW"
        if self.fail_updates:
            raise RuntimeError("quota exceeded")
        if len(values) > self.row_count or any(len(r) > self.col_count for r in values):
            raise ValueError("range exceeds grid limits")
        for i, row in enumerate(values):
            if i < len(self.values):
                self.values[i] = list(row)
            else:
                self.values.append(list(row))

    def batch_clear(self, ranges):
        for rng in ranges:
            first_row = int(rng.split(":")[0][1:])
            del self.values[first_row - 1:]

    def get_all_values(self):
        return [list(r) for r in self.values]


class FakeSpreadsheet:
    def __init__(self):
        self.sheets = {}

    def worksheet(self, title):
        if title not in self.sheets:
            raise gspread.exceptions.WorksheetNotFound(title)
        return self.sheets[title]

    def add_worksheet(self, title, rows, cols):
        self.sheets[title] = FakeWorksheet(rows=rows, cols=cols)
        return self.sheets[title]


def _sample_state():
    service = GroupLedgerService()
    group = service.create_group("Office Lunch", ["David", "Eve"], currency="INR")
    service.add_expense(group.id, ExpenseDraft(amount="500", paid_by="david", description="Thali"))
    service.add_expense(group.id, ExpenseDraft(
        amount="120.40", paid_by="eve", split=ExactSplit({"david": "100", "eve": "20.40"}), date="2025-02-01",
    ))
    return service._state()


def _bulk_state(n_expenses):
    expenses = [
        {
            "id": i, "description": f"item {i}", "amount": "1.00", "paid_by": "alice", "date": "",
            "category": "general", "split": {"kind": "equal", "participants": ["alice"]},
        }
        for i in range(1, n_expenses + 1)
    ]
    return {"groups": [{
        "id": "bulk00000001", "name": "Bulk", "currency": "EUR", "minor_digits": 2,
        "next_expense_id": n_expenses + 1, "members": [{"id": "alice", "display_name": "Alice"}],
        "expenses": expenses,
    }]}


def test_json_store_missing_file_loads_empty(tmp_path):
    assert JsonFileStore(str(tmp_path / "nope.json")).load_state() == {}


def test_json_store_round_trip_leaves_no_temp_files(tmp_path):
    store = JsonFileStore(str(tmp_path / "data" / "groups.json"))
    state = _sample_state()
    store.save_state(state)
    assert store.load_state() == state
    assert os.listdir(tmp_path / "data") == ["groups.json"]
    store.clear()
    assert store.load_state() == {}


def test_sheets_store_writes_headers_on_init():
    spreadsheet = FakeSpreadsheet()
    store = GoogleSheetsStore(spreadsheet=spreadsheet)
    assert store.available
    assert sorted(spreadsheet.sheets) == ["expenses_a", "expenses_b", "groups_a", "groups_b", "meta"]
    assert spreadsheet.sheets["meta"].values == [GoogleSheetsStore.META_HEADERS]
    assert spreadsheet.sheets["groups_b"].values == [GoogleSheetsStore.GROUP_HEADERS]
    assert spreadsheet.sheets["expenses_a"].values == [GoogleSheetsStore.EXPENSE_HEADERS]
    assert store.load_state() == {"groups": []}


def test_sheets_store_round_trip_flips_active_slot():
    spreadsheet = FakeSpreadsheet()
    store = GoogleSheetsStore(spreadsheet=spreadsheet)
    state = _sample_state()
    store.save_state(state)
    assert spreadsheet.sheets["meta"].values[1] == ["active_slot", "b"]
    assert len(spreadsheet.sheets["expenses_b"].values) == 3
    loaded = store.load_state()
    assert loaded == state
    group = Group.from_dict(loaded["groups"][0])
    assert group.currency == "INR"
    assert [e.id for e in group.expenses] == [1, 2]

    store.save_state(state)
    assert spreadsheet.sheets["meta"].values[1] == ["active_slot", "a"]
    assert store.load_state() == state


@pytest.mark.parametrize("failing_sheet", ["groups_a", "expenses_a", "meta"])
def test_sheets_store_failed_save_keeps_previous_state(failing_sheet):
    spreadsheet = FakeSpreadsheet()
    store = GoogleSheetsStore(spreadsheet=spreadsheet)
    before = _sample_state()
    store.save_state(before)

    spreadsheet.sheets[failing_sheet].fail_updates = True
    with pytest.raises(RuntimeError):
        store.save_state(_bulk_state(3))

    assert store.load_state() == before
    assert GoogleSheetsStore(spreadsheet=spreadsheet).load_state() == before


def test_sheets_store_grows_sheet_past_initial_size():
    spreadsheet = FakeSpreadsheet()
    store = GoogleSheetsStore(spreadsheet=spreadsheet)
    state = _bulk_state(1200)
    store.save_state(state)
    assert spreadsheet.sheets["expenses_b"].row_count >= 1201
    assert store.load_state() == state


def test_sheets_store_clears_rows_left_by_a_longer_save():
    spreadsheet = FakeSpreadsheet()
    store = GoogleSheetsStore(spreadsheet=spreadsheet)
    service = GroupLedgerService(store)
    trip = service.create_group("Trip", ["Alice", "Bob"])
    for amount in ("10", "20", "30"):
        service.add_expense(trip.id, ExpenseDraft(amount=amount, paid_by="alice"))
    service.remove_expense(trip.id, 1)
    service.remove_expense(trip.id, 2)

    reloaded = GroupLedgerService(store).get_group(trip.id)
    assert [e.id for e in reloaded.expenses] == [3]
    for slot in ("a", "b"):
        assert len(spreadsheet.sheets[f"groups_{slot}"].values) == 2
    active = spreadsheet.sheets["meta"].values[1][1]
    assert len(spreadsheet.sheets[f"expenses_{active}"].values) == 2


def test_sheets_store_skips_blank_rows_orphans_and_bad_cells():
    spreadsheet = FakeSpreadsheet()
    spreadsheet.sheets["meta"] = FakeWorksheet([GoogleSheetsStore.META_HEADERS, ["active_slot", "a"]])
    spreadsheet.sheets["groups_a"] = FakeWorksheet([
        GoogleSheetsStore.GROUP_HEADERS,
        ["", "", "", "", "", ""],
        ["abc123def456", "Flat", "EUR", "two", "", "{not json"],
    ])
    spreadsheet.sheets["expenses_a"] = FakeWorksheet([
        GoogleSheetsStore.EXPENSE_HEADERS,
        ["abc123def456", "3", "Rent", "900.00", "bob", "2025-01-01", "", "{oops"],
        ["zzz", "1", "Orphan", "5.00", "bob", "", "", ""],
        ["abc123def456", "x", "No id", "5.00", "bob", "", "", ""],
    ])
    loaded = GoogleSheetsStore(spreadsheet=spreadsheet).load_state()
    assert loaded == {"groups": [{
        "id": "abc123def456", "name": "Flat", "currency": "EUR", "minor_digits": 2,
        "next_expense_id": 1, "members": [],
        "expenses": [{
            "id": 3, "description": "Rent", "amount": "900.00", "paid_by": "bob",
            "date": "2025-01-01", "category": "general", "split": {},
        }],
    }]}


def test_sheets_store_without_sheet_id_is_unavailable():
    store = GoogleSheetsStore(sheet_id="")
    assert not store.available
    assert store.reason == "GOOGLE_SHEET_ID is not set"
    assert store.load_state() == {}
    with pytest.raises(RuntimeError):
        store.save_state({"groups": []})


def test_service_reports_storage_status(tmp_path):
    assert GroupLedgerService().storage_status()[0] == "memory"
    name, msg = GroupLedgerService(JsonFileStore(str(tmp_path / "g.json"))).storage_status()
    assert name == "local_json"
    assert "g.json" in msg
