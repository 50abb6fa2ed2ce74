from __future__ import annotations
import threading
from abc import ABC, abstractmethod
from datetime import date
from typing import Dict, Iterable, List, Tuple

from .normalize import TzLike, draw_key, normalize_phone, resolve_tz
from .schemas import DrawRecord, Prize

# worksheet titles / header cells of the campaign spreadsheet
SETTINGS_SHEET = "設定"
PRIZES_SHEET = "獎項設定"
RECORDS_SHEET = "抽獎紀錄"

SETTING_KEY_COL = "項目"
SETTING_VALUE_COL = "設定值"
PRIZE_NAME_COL = "獎項名稱"
PRIZE_RATE_COL = "中獎率"

RECORD_COLUMNS = {
    "time": "抽獎時間",
    "phone": "電話號碼",
    "prize": "中獎獎項",
    "expire": "到期日",
    "claimed": "兌獎日期",
}

# setting keys (項目)
TITLE_KEY = "抽獎活動標題"
DESCRIPTION_KEY = "活動說明"
DEADLINE_KEY = "活動截止日"
VALID_DAYS_KEY = "兌獎有效日期"

DrawKey = Tuple[str, date]


class DrawStore(ABC):
    """Tabular store holding settings, prizes and draw records.

    Methods block; ``DrawService`` runs them off the event loop under a
    timeout.
    """

    name = "store"

    def __init__(self, tz: TzLike = None):
        self.tz = resolve_tz(tz)

    @abstractmethod
    def get_setting(self, key: str) -> str:
        ...

    @abstractmethod
    def list_prizes(self) -> List[Prize]:
        ...

    @abstractmethod
    def list_records(self) -> List[DrawRecord]:
        ...

    @abstractmethod
    def append_record(self, record: DrawRecord) -> None:
        ...

    @abstractmethod
    def append_unique(self, key: DrawKey, record: DrawRecord) -> DrawRecord | None:
        """Append ``record`` unless a record with the same draw key exists.

        Returns the existing record on conflict, ``None`` once written.
        """

    def find_records_by_phone(self, phone: str) -> List[DrawRecord]:
        target = normalize_phone(phone)
        if not target:
            return []
        return [r for r in self.list_records() if normalize_phone(r.phone) == target]

    def key_of(self, record: DrawRecord) -> DrawKey | None:
        return draw_key(record.phone, record.time, self.tz)


class MemoryStore(DrawStore):
    """In-process store; ``STORE_BACKEND=memory`` and the test suite use it."""

    name = "memory"

    def __init__(
        self,
        settings: Dict[str, str] | None = None,
        prizes: Iterable[Prize] | None = None,
        records: Iterable[DrawRecord] | None = None,
        tz: TzLike = None,
    ):
        super().__init__(tz)
        self._lock = threading.Lock()
        self.settings: Dict[str, str] = dict(settings or {})
        self.prizes: List[Prize] = list(prizes or [])
        self.records: List[DrawRecord] = []
        self._index: Dict[DrawKey, DrawRecord] = {}
        for r in records or []:
            self._append(r)

    def _append(self, record: DrawRecord) -> None:
        self.records.append(record)
        key = self.key_of(record)
        if key is not None:
            self._index.setdefault(key, record)

    def get_setting(self, key: str) -> str:
        return str(self.settings.get(key) or "")

    def list_prizes(self) -> List[Prize]:
        return list(self.prizes)

    def list_records(self) -> List[DrawRecord]:
        with self._lock:
            return list(self.records)

    def append_record(self, record: DrawRecord) -> None:
        with self._lock:
            self._append(record)

    def append_unique(self, key: DrawKey, record: DrawRecord) -> DrawRecord | None:
        with self._lock:
            existing = self._index.get(key)
            if existing is not None:
                return existing
            self._append(record)
            return None
