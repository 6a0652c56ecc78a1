"""
storage.py - persistence adapters for group ledger state

State is a plain dict: {"groups": [Group.to_dict(), ...]}. Balances are
derived data and are never written.

Backends:
  - GoogleSheetsStore: one row per group and one row per expense, written to
    alternating worksheet slots so an interrupted save never loses data
  - JsonFileStore: local JSON file written atomically (temp file + move)

default_store() prefers Google Sheets when GOOGLE_SHEET_ID is configured and
reachable, and falls back to the local file otherwise.
"""

import ast
import json
import os
import shutil
import tempfile
from typing import Any, Dict, Iterator, List, Optional, Tuple

import google.auth
import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1

from groupledger import settings
from groupledger.settings import get_logger

logger = get_logger(__name__)


class JsonFileStore:
    """Local JSON file backend."""

    name = "local_json"

    def __init__(self, path: Optional[str] = None):
        self.path = os.path.abspath(path or settings.DATA_FILE)

    def describe(self) -> str:
        return f"Using local file {self.path}."

    def load_state(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save_state(self, data: Dict[str, Any]) -> None:
        """
        Write atomically: dump to a temp file in the same directory, then move
        it over the target. A failed write leaves the previous file intact.
        """
        dirn = os.path.dirname(self.path)
        os.makedirs(dirn, exist_ok=True)
        logger.info("Saving ledger to %s (groups=%d)", self.path, len(data.get("groups", [])))
        fd, tmp_path = tempfile.mkstemp(prefix="tmp_groups_", dir=dirn, text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            shutil.move(tmp_path, self.path)
        except Exception:
            logger.exception("Failed to save data file")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)


class GoogleSheetsStore:
    """
    Google Sheets backend.

    Data layout: one row per group and one row per expense, kept in two
    slots ("a" and "b"), each a pair of worksheets (groups_<slot>,
    expenses_<slot>). The "meta" worksheet names the active slot. A save
    writes the inactive slot in full and only then flips active_slot, so a
    failed or partial save leaves the previously saved state readable.

    Pass `spreadsheet` to bypass credential lookup (any object with the
    gspread Spreadsheet worksheet API will do).
    """

    name = "google_sheets"
    META_SHEET_NAME = "meta"
    SLOTS = ("a", "b")
    GROUP_HEADERS = [
        "id",
        "name",
        "currency",
        "minor_digits",
        "next_expense_id",
        "members_json",
    ]
    EXPENSE_HEADERS = [
        "group_id",
        "id",
        "description",
        "amount",
        "paid_by",
        "date",
        "category",
        "split_json",
    ]
    META_HEADERS = ["key", "value"]
    SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

    def __init__(self, spreadsheet=None, sheet_id: Optional[str] = None):
        self.available = False
        self.reason = ""
        self.sheet_id = (sheet_id if sheet_id is not None else os.getenv("GOOGLE_SHEET_ID") or "").strip()
        self._spreadsheet = spreadsheet
        self._meta_ws = None
        self._slots: Dict[str, Tuple[Any, Any]] = {}

        if self._spreadsheet is None and not self.sheet_id:
            self.reason = "GOOGLE_SHEET_ID is not set"
            return

        try:
            if self._spreadsheet is None:
                client = gspread.authorize(self._build_credentials())
                self._spreadsheet = client.open_by_key(self.sheet_id)
            self._meta_ws = self._get_or_create_worksheet(self.META_SHEET_NAME, rows=20, cols=len(self.META_HEADERS))
            for slot in self.SLOTS:
                self._slots[slot] = (
                    self._get_or_create_worksheet(f"groups_{slot}", rows=200, cols=len(self.GROUP_HEADERS)),
                    self._get_or_create_worksheet(f"expenses_{slot}", rows=1000, cols=len(self.EXPENSE_HEADERS)),
                )
            self._ensure_headers()
            self.available = True
        except Exception as exc:
            self.available = False
            self.reason = f"Google Sheets init failed ({exc.__class__.__name__})"
            logger.warning("Google Sheets backend unavailable: %s", self.reason)

    def describe(self) -> str:
        if self.available:
            return "Persistent storage active (Google Sheets)."
        return f"Google Sheets unavailable: {self.reason}."

    def _build_credentials(self):
        service_account_json = (os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON") or "").strip()
        service_account_file = (os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE") or "").strip()

        if service_account_json:
            try:
                info = json.loads(service_account_json)
            except ValueError:
                # tolerate Python-dict style strings often pasted into env vars
                info = ast.literal_eval(service_account_json)
            if not isinstance(info, dict):
                raise ValueError("GOOGLE_SERVICE_ACCOUNT_JSON must decode to an object")
            return Credentials.from_service_account_info(info, scopes=self.SCOPES)

        if service_account_file:
            return Credentials.from_service_account_file(service_account_file, scopes=self.SCOPES)

        creds, _ = google.auth.default(scopes=self.SCOPES)
        return creds

    def _get_or_create_worksheet(self, title: str, rows: int, cols: int):
        try:
            return self._spreadsheet.worksheet(title)
        except gspread.exceptions.WorksheetNotFound:
            return self._spreadsheet.add_worksheet(title=title, rows=rows, cols=cols)

    @staticmethod
    def _ensure_sheet_size(ws, min_rows: int, min_cols: int):
        new_rows = max(ws.row_count, min_rows)
        new_cols = max(ws.col_count, min_cols)
        if new_rows != ws.row_count or new_cols != ws.col_count:
            ws.resize(rows=new_rows, cols=new_cols)

    def _ensure_headers(self):
        sheets = [(self._meta_ws, self.META_HEADERS)]
        for groups_ws, expenses_ws in self._slots.values():
            sheets += [(groups_ws, self.GROUP_HEADERS), (expenses_ws, self.EXPENSE_HEADERS)]
        for ws, headers in sheets:
            first = ws.row_values(1) or []
            if [x.strip() for x in first] != headers:
                self._ensure_sheet_size(ws, 2, len(headers))
                ws.update(range_name="A1", values=[headers], value_input_option="RAW")

    @staticmethod
    def _to_int(value: Any, default: int) -> int:
        try:
            return int(float(str(value).strip()))
        except (ValueError, OverflowError):
            return default

    @staticmethod
    def _parse_json(value: Any, default):
        text = str(value or "").strip()
        if not text:
            return default
        try:
            return json.loads(text)
        except ValueError:
            logger.warning("Skipping unreadable JSON cell: %.40s", text)
            return default

    @staticmethod
    def _records(ws) -> Iterator[Dict[str, str]]:
        """Non-blank rows below the header, keyed by lower-cased header."""
        values = ws.get_all_values() or []
        if not values:
            return
        headers = [str(h).strip().lower() for h in values[0]]
        for row in values[1:]:
            if not any(str(c).strip() for c in row):
                continue
            yield {h: (row[i] if i < len(row) else "") for i, h in enumerate(headers) if h}

    def _active_slot(self) -> str:
        for record in self._records(self._meta_ws):
            if str(record.get("key", "")).strip() == "active_slot":
                slot = str(record.get("value", "")).strip()
                if slot in self.SLOTS:
                    return slot
        return self.SLOTS[0]

    def _row_to_group_dict(self, record: Dict[str, str]) -> Dict[str, Any]:
        return {
            "id": str(record.get("id", "")).strip(),
            "name": str(record.get("name", "")).strip(),
            "currency": str(record.get("currency", "")).strip() or settings.DEFAULT_CURRENCY,
            "minor_digits": self._to_int(record.get("minor_digits", ""), settings.DEFAULT_MINOR_DIGITS),
            "next_expense_id": self._to_int(record.get("next_expense_id", ""), 1),
            "members": self._parse_json(record.get("members_json"), []),
            "expenses": [],
        }

    def _row_to_expense_dict(self, record: Dict[str, str]) -> Dict[str, Any]:
        return {
            "id": self._to_int(record.get("id", ""), 0),
            "description": str(record.get("description", "")),
            "amount": str(record.get("amount", "")).strip() or "0",
            "paid_by": str(record.get("paid_by", "")).strip(),
            "date": str(record.get("date", "")).strip(),
            "category": str(record.get("category", "")).strip() or "general",
            "split": self._parse_json(record.get("split_json"), {}),
        }

    def _write_rows(self, ws, rows: List[List[str]], cols: int):
        """Overwrite from A1, then blank whatever an earlier, longer save left below."""
        self._ensure_sheet_size(ws, len(rows) + 10, cols)
        # RAW keeps user text from being interpreted as spreadsheet formulas.
        ws.update(range_name="A1", values=rows, value_input_option="RAW")
        tail_end = rowcol_to_a1(ws.row_count, cols)
        ws.batch_clear([f"A{len(rows) + 1}:{tail_end}"])

    def save_state(self, data: Dict[str, Any]) -> None:
        if not self.available:
            raise RuntimeError(f"Google Sheets backend unavailable: {self.reason}")
        group_rows: List[List[str]] = [self.GROUP_HEADERS]
        expense_rows: List[List[str]] = [self.EXPENSE_HEADERS]
        for g in data.get("groups", []):
            group_rows.append(
                [
                    str(g.get("id", "")),
                    str(g.get("name", "")),
                    str(g.get("currency", "")),
                    str(g.get("minor_digits", settings.DEFAULT_MINOR_DIGITS)),
                    str(g.get("next_expense_id", 1)),
                    json.dumps(g.get("members", []), ensure_ascii=False),
                ]
            )
            for e in g.get("expenses", []):
                expense_rows.append(
                    [
                        str(g.get("id", "")),
                        str(e.get("id", "")),
                        str(e.get("description", "") or ""),
                        str(e.get("amount", "")),
                        str(e.get("paid_by", "")),
                        str(e.get("date", "") or ""),
                        str(e.get("category", "") or ""),
                        json.dumps(e.get("split", {}), ensure_ascii=False),
                    ]
                )

        active = self._active_slot()
        target = self.SLOTS[1] if active == self.SLOTS[0] else self.SLOTS[0]
        groups_ws, expenses_ws = self._slots[target]
        logger.info("Saving ledger to Google Sheets slot %s (groups=%d, expenses=%d)",
                    target, len(group_rows) - 1, len(expense_rows) - 1)
        self._write_rows(groups_ws, group_rows, len(self.GROUP_HEADERS))
        self._write_rows(expenses_ws, expense_rows, len(self.EXPENSE_HEADERS))
        self._meta_ws.update(
            range_name="A1",
            values=[self.META_HEADERS, ["active_slot", target]],
            value_input_option="RAW",
        )

    def load_state(self) -> Dict[str, Any]:
        if not self.available:
            return {}
        groups_ws, expenses_ws = self._slots[self._active_slot()]
        groups: List[Dict[str, Any]] = []
        by_id: Dict[str, Dict[str, Any]] = {}
        for record in self._records(groups_ws):
            group = self._row_to_group_dict(record)
            if group["id"]:
                groups.append(group)
                by_id[group["id"]] = group
        for record in self._records(expenses_ws):
            group = by_id.get(str(record.get("group_id", "")).strip())
            expense = self._row_to_expense_dict(record)
            if group is None or expense["id"] <= 0:
                logger.warning("Skipping expense row without a known group or id: %s", record)
                continue
            group["expenses"].append(expense)
        return {"groups": groups}


def default_store():
    """Google Sheets when configured and reachable, local JSON otherwise."""
    if os.getenv("GOOGLE_SHEET_ID") and not settings.running_under_pytest():
        sheets = GoogleSheetsStore()
        if sheets.available:
            return sheets
        logger.warning("Falling back to local JSON storage: %s", sheets.reason)
    return JsonFileStore()
