# luckydraw/sheets.py — Google Sheets backed store
from __future__ import annotations
import logging
import threading
from typing import Any, Dict, List

import gspread
from google.oauth2.service_account import Credentials

from .errors import SheetNotFound
from .normalize import TzLike
from .schemas import DrawRecord, Prize
from .storage import (
    PRIZE_NAME_COL, PRIZE_RATE_COL, PRIZES_SHEET, RECORD_COLUMNS, RECORDS_SHEET,
    SETTING_KEY_COL, SETTING_VALUE_COL, SETTINGS_SHEET, DrawKey, DrawStore,
)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

log = logging.getLogger("luckydraw.sheets")


class SheetStore(DrawStore):
    """Store over the campaign spreadsheet (設定 / 獎項設定 / 抽獎紀錄).

    The Sheets API has no conditional write, so ``append_unique`` re-reads
    抽獎紀錄 and appends while holding a process-wide lock. That keeps one
    draw per key for a single server process only.
    """

    name = "sheets"

    def __init__(self, spreadsheet: gspread.Spreadsheet, tz: TzLike = None):
        super().__init__(tz)
        self.doc = spreadsheet
        self._write_lock = threading.Lock()

    @classmethod
    def connect(cls, sheet_id: str, credentials_info: Dict[str, Any],
                timeout: float = 10.0, tz: TzLike = None) -> "SheetStore":
        creds = Credentials.from_service_account_info(credentials_info, scopes=SCOPES)
        client = gspread.authorize(creds)
        client.set_timeout(timeout)
        doc = client.open_by_key(sheet_id)
        log.info(f"loaded spreadsheet: {doc.title}")
        return cls(doc, tz=tz)

    def _sheet(self, title: str) -> gspread.Worksheet:
        try:
            return self.doc.worksheet(title)
        except gspread.exceptions.WorksheetNotFound:
            raise SheetNotFound(title) from None

    def _rows(self, title: str) -> List[Dict[str, Any]]:
        # keep "0921..." and "0.5" as text
        return self._sheet(title).get_all_records(numericise_ignore=["all"])

    def get_setting(self, key: str) -> str:
        for row in self._rows(SETTINGS_SHEET):
            if str(row.get(SETTING_KEY_COL, "")) == key:
                return str(row.get(SETTING_VALUE_COL) or "")
        return ""

    def list_prizes(self) -> List[Prize]:
        return [
            Prize(name=str(row.get(PRIZE_NAME_COL, "")), rate=row.get(PRIZE_RATE_COL) or "0")
            for row in self._rows(PRIZES_SHEET)
        ]

    def list_records(self) -> List[DrawRecord]:
        return [
            DrawRecord(**{field: row.get(col, "") for field, col in RECORD_COLUMNS.items()})
            for row in self._rows(RECORDS_SHEET)
        ]

    def append_record(self, record: DrawRecord) -> None:
        ws = self._sheet(RECORDS_SHEET)
        headers = ws.row_values(1) or list(RECORD_COLUMNS.values())
        cells = {col: getattr(record, field) for field, col in RECORD_COLUMNS.items()}
        ws.append_row([cells.get(h, "") for h in headers], value_input_option="RAW")

    def append_unique(self, key: DrawKey, record: DrawRecord) -> DrawRecord | None:
        with self._write_lock:
            for existing in self.list_records():
                if self.key_of(existing) == key:
                    return existing
            self.append_record(record)
            return None
