# luckydraw/normalize.py — phone / date-string normalisation
"""Normalisation helpers shared by the store and the draw service.

Sheet cells arrive in whatever format the operator (or an older server
version) wrote them: ``2025/3/26``, ``2025/3/26 下午 2:05:00``,
``2025/3/26 14:05:00``, ``2025-03-26T06:05:00Z``, ``2025年3月26日`` ...
Everything here reduces those to a calendar day in the campaign timezone.
A value that matches no known pattern yields ``None``; callers treat that as
"no match", never as an error.
"""
from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Tuple

import pytz
from pytz.tzinfo import BaseTzInfo

log = logging.getLogger("luckydraw.normalize")

DEFAULT_TZ = "Asia/Taipei"

_MARK = r"上午|下午|[ap]\.?m\.?"
_AM_MARKS = {"上午", "am", "a.m.", "a.m", "am."}

_DATE_RE = re.compile(
    r"^(?:"
    r"(?P<y>\d{4})(?P<sep>[/.\-])(?P<m>\d{1,2})(?P=sep)(?P<d>\d{1,2})"
    r"|(?P<cy>\d{4})\s*年\s*(?P<cm>\d{1,2})\s*月\s*(?P<cd>\d{1,2})\s*日"
    r")"
    r"(?:\s*,?\s*(?P<pre>" + _MARK + r")?\s*"
    r"(?P<H>\d{1,2}):(?P<M>\d{2})(?::(?P<S>\d{2}))?"
    r"\s*(?P<post>" + _MARK + r")?)?$",
    re.IGNORECASE,
)

TzLike = str | BaseTzInfo | None


def resolve_tz(tz: TzLike = None) -> BaseTzInfo:
    if tz is None:
        return pytz.timezone(DEFAULT_TZ)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def normalize_phone(value: Any) -> str:
    """Strip leading zeros; ``0921000223`` and ``921000223`` are the same person."""
    if value is None:
        return ""
    return str(value).lstrip("0")


def _apply_marker(hour: int, marker: str | None) -> int:
    if not marker:
        return hour
    if marker.lower() in _AM_MARKS:
        # 12 AM is kept as 12 (noon); only the day matters here
        return hour
    return hour + 12 if hour < 12 else hour


def _parse_locale(text: str) -> datetime | None:
    m = _DATE_RE.match(text)
    if not m:
        return None
    if m.group("pre") and m.group("post"):
        return None
    if m.group("y"):
        y, mo, d = m.group("y"), m.group("m"), m.group("d")
    else:
        y, mo, d = m.group("cy"), m.group("cm"), m.group("cd")
    hour = minute = second = 0
    if m.group("H") is not None:
        hour = _apply_marker(int(m.group("H")), m.group("pre") or m.group("post"))
        minute = int(m.group("M"))
        second = int(m.group("S") or 0)
    try:
        return datetime(int(y), int(mo), int(d), hour, minute, second)
    except ValueError:
        return None


def _parse_iso(text: str) -> datetime | None:
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_timestamp(value: Any, tz: TzLike = None) -> datetime | None:
    """Parse a stored timestamp into an aware datetime in the campaign timezone.

    Returns ``None`` for blank or unrecognised input.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    zone = resolve_tz(tz)
    dt = _parse_locale(text) or _parse_iso(text)
    if dt is None:
        log.debug(f"unparseable timestamp: {text!r}")
        return None
    if dt.tzinfo is None:
        return zone.localize(dt)
    return dt.astimezone(zone)


def to_day(value: Any, tz: TzLike = None) -> date | None:
    dt = parse_timestamp(value, tz)
    return dt.date() if dt else None


def same_day(a: Any, b: Any, tz: TzLike = None) -> bool:
    da, db = to_day(a, tz), to_day(b, tz)
    return da is not None and da == db


def draw_key(phone: Any, draw_time: Any, tz: TzLike = None) -> Tuple[str, date] | None:
    """(normalised phone, draw day); at most one record per key counts."""
    day = to_day(draw_time, tz)
    if day is None:
        return None
    return normalize_phone(phone), day


def format_draw_time(dt: datetime) -> str:
    # zh-TW with hour12 off, as existing sheets hold it
    return f"{dt.year}/{dt.month}/{dt.day} {dt:%H:%M:%S}"


def expire_date(dt: datetime, days: int) -> str:
    return (dt.date() + timedelta(days=days)).isoformat()


def parse_days(value: Any) -> int:
    """Leading integer of ``value`` or 0 (``"6"``, ``"6天"`` -> 6)."""
    m = re.match(r"\s*([+-]?\d+)", str(value or ""))
    return int(m.group(1)) if m else 0


def parse_rate(value: Any) -> float:
    text = str(value if value is not None else "").strip().rstrip("%").strip()
    if not text:
        return 0.0
    try:
        rate = float(text)
    except ValueError:
        log.debug(f"unparseable prize rate: {value!r}")
        return 0.0
    if math.isnan(rate) or math.isinf(rate) or rate < 0:
        return 0.0
    return rate
