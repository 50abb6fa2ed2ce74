from __future__ import annotations
import asyncio
import logging
import random
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Sequence

from .errors import LuckyDrawError, MissingField, NoPrizesConfigured, StoreUnavailable
from .normalize import (expire_date, format_draw_time, normalize_phone, parse_days,
                        parse_rate, to_day)
from .schemas import CheckResult, DrawOutcome, DrawRecord, Prize
from .storage import (DEADLINE_KEY, DESCRIPTION_KEY, TITLE_KEY, VALID_DAYS_KEY,
                      DrawStore)

log = logging.getLogger("luckydraw")


def pick_prize(prizes: Sequence[Prize], rng: random.Random | None = None) -> Prize:
    """Weighted pick; rates are relative weights. All-zero rates -> first prize."""
    if not prizes:
        raise NoPrizesConfigured()
    rng = rng or random
    weights = [parse_rate(p.rate) for p in prizes]
    total = sum(weights)
    if total <= 0:
        return prizes[0]
    r = rng.random() * total
    last = prizes[0]
    for prize, w in zip(prizes, weights):
        if w <= 0:
            continue
        if r < w:
            return prize
        r -= w
        last = prize
    # float leftovers land on the last weighted prize
    return last


class PhoneLocks:
    """One asyncio.Lock per normalised phone, dropped when nobody waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


class DrawService:
    def __init__(self, store: DrawStore, timeout: float = 10.0,
                 clock: Callable[[], datetime] | None = None,
                 rng: random.Random | None = None):
        self.store = store
        self.tz = store.tz
        self.timeout = timeout
        self.clock = clock
        self.rng = rng or random.Random()
        self.locks = PhoneLocks()

    def now(self) -> datetime:
        dt = self.clock() if self.clock else datetime.now(self.tz)
        return self.tz.localize(dt) if dt.tzinfo is None else dt.astimezone(self.tz)

    async def _call(self, fn: Callable, *args):
        # every store call is bounded; failures are reported, never retried
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise StoreUnavailable(f"{fn.__name__} timed out after {self.timeout}s") from None
        except LuckyDrawError:
            raise
        except Exception as e:
            raise StoreUnavailable(f"{fn.__name__} failed: {e}") from e

    # ---- settings / prizes ----
    async def get_setting(self, key: str) -> str:
        return await self._call(self.store.get_setting, key)

    async def title(self) -> str:
        return await self.get_setting(TITLE_KEY)

    async def description(self) -> str:
        return await self.get_setting(DESCRIPTION_KEY)

    async def deadline(self) -> str:
        return await self.get_setting(DEADLINE_KEY)

    async def list_prizes(self) -> List[Prize]:
        return await self._call(self.store.list_prizes)

    async def _deadline_day(self) -> date | None:
        raw = await self.deadline()
        if not raw:
            return None
        day = to_day(raw, self.tz)
        if day is None:
            log.warning(f"deadline {raw!r} is not a recognised date; duplicate check disabled")
        return day

    # ---- duplicate check ----
    @staticmethod
    def _phone_key(phone: str | None) -> str:
        # "0", "000" carry no digits once normalised; treat them as absent
        key = normalize_phone(phone)
        if not key:
            raise MissingField("phone")
        return key

    def _match(self, records: Sequence[DrawRecord], phone: str, day: date) -> CheckResult:
        target = normalize_phone(phone)
        for r in records:
            stored = normalize_phone(r.phone)
            if not stored or stored != target:
                continue
            rday = to_day(r.time, self.tz)
            if rday is None:
                log.debug(f"skipping record with unparseable time {r.time!r}")
                continue
            if rday == day:
                return CheckResult(exists=True, time=r.time, prize=r.prize)
        return CheckResult(exists=False)

    async def check_draw_on_deadline(self, phone: str | None) -> CheckResult:
        self._phone_key(phone)
        day = await self._deadline_day()
        if day is None:
            return CheckResult(exists=False)
        records = await self._call(self.store.list_records)
        return self._match(records, phone, day)

    # ---- recording ----
    async def _new_record(self, phone: str, prize: str) -> DrawRecord:
        days = parse_days(await self.get_setting(VALID_DAYS_KEY))
        now = self.now()
        return DrawRecord(time=format_draw_time(now), phone=normalize_phone(phone),
                          prize=prize, expire=expire_date(now, days))

    async def record_draw(self, phone: str | None, prize: str | None) -> DrawRecord:
        """Append a record without any duplicate check."""
        self._phone_key(phone)
        if not prize:
            raise MissingField("prize")
        record = await self._new_record(phone, prize)
        await self._call(self.store.append_record, record)
        log.info(f"recorded draw phone={record.phone} prize={record.prize}")
        return record

    async def _check_and_record(self, phone: str,
                                choose: Callable[[], Awaitable[str]]) -> DrawOutcome:
        day = await self._deadline_day()
        if day is not None:
            hit = self._match(await self._call(self.store.list_records), phone, day)
            if hit.exists:
                return DrawOutcome(status="alreadyDrawn", time=hit.time, prize=hit.prize)
        record = await self._new_record(phone, await choose())
        key = self.store.key_of(record)
        if day is not None and key is not None and key[1] == day:
            existing = await self._call(self.store.append_unique, key, record)
            if existing is not None:
                log.info(f"conflicting draw for phone={record.phone}; keeping the stored one")
                return DrawOutcome(status="alreadyDrawn", time=existing.time, prize=existing.prize)
        else:
            await self._call(self.store.append_record, record)
        log.info(f"recorded draw phone={record.phone} prize={record.prize}")
        return DrawOutcome(status="drawn", time=record.time, prize=record.prize,
                           expire=record.expire)

    async def record_draw_once(self, phone: str | None, prize: str | None) -> DrawOutcome:
        """Check-then-record as one critical section per phone."""
        key = self._phone_key(phone)
        if not prize:
            raise MissingField("prize")

        async def chosen() -> str:
            return prize

        async with self.locks.hold(key):
            return await self._check_and_record(phone, chosen)

    async def draw(self, phone: str | None) -> DrawOutcome:
        """Server-side weighted draw for ``phone``."""
        key = self._phone_key(phone)

        async def weighted() -> str:
            return pick_prize(await self.list_prizes(), self.rng).name

        async with self.locks.hold(key):
            return await self._check_and_record(phone, weighted)

    # ---- history ----
    async def query_history(self, phone: str | None) -> List[DrawRecord]:
        if not normalize_phone(phone):
            return []
        return await self._call(self.store.find_records_by_phone, phone)
