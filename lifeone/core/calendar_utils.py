"""Calendar and date helpers — pure business logic.

Date/time normalization for AI output, Korean public holidays, D-Day
labels, the KST clock used for relative-time resolution, phone number
formatting and random category colors.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
import random
import re
from datetime import date, datetime, timedelta, timezone

logger = logging.getLogger(__name__)

KST = timezone(timedelta(hours=9), name="KST")

WEEKDAYS_KO = ("월", "화", "수", "목", "금", "토", "일")  # date.weekday() order

_FIXED_HOLIDAYS = {
    "01-01": "신정",
    "03-01": "삼일절",
    "05-05": "어린이날",
    "06-06": "현충일",
    "08-15": "광복절",
    "10-03": "개천절",
    "10-09": "한글날",
    "12-25": "크리스마스",
}

# Lunar-calendar and substitute holidays are not computable from the
# solar date alone; 2024-2026 are tabulated.
_VARIABLE_HOLIDAYS = {
    "2024-02-09": "설날 연휴", "2024-02-10": "설날", "2024-02-11": "설날 연휴",
    "2024-02-12": "대체공휴일",
    "2024-04-10": "국회의원 선거",
    "2024-05-06": "대체공휴일",
    "2024-05-15": "부처님오신날",
    "2024-09-16": "추석 연휴", "2024-09-17": "추석", "2024-09-18": "추석 연휴",
    "2025-01-28": "설날 연휴", "2025-01-29": "설날", "2025-01-30": "설날 연휴",
    "2025-03-03": "대체공휴일",
    "2025-05-05": "어린이날/부처님오신날",
    "2025-05-06": "대체공휴일",
    "2025-10-05": "추석 연휴", "2025-10-06": "추석", "2025-10-07": "추석 연휴",
    "2025-10-08": "대체공휴일",
    "2026-02-16": "설날 연휴", "2026-02-17": "설날", "2026-02-18": "설날 연휴",
    "2026-05-24": "부처님오신날", "2026-05-25": "대체공휴일",
    "2026-09-24": "추석 연휴", "2026-09-25": "추석", "2026-09-26": "추석 연휴",
}

_DATE_RE = re.compile(r"^\s*(\d{4})\s*[-./년]\s*(\d{1,2})\s*[-./월]\s*(\d{1,2})\s*일?\s*\.?\s*$")
_COMPACT_DATE_RE = re.compile(r"^\s*(\d{4})(\d{2})(\d{2})\s*$")
_TIME_RE = re.compile(r"^\s*(\d{1,2})\s*:\s*(\d{2})(?::\d{2})?\s*$")
_COMPACT_TIME_RE = re.compile(r"^\s*(\d{2})(\d{2})\s*$")
_KO_TIME_RE = re.compile(r"^\s*(오전|오후)?\s*(\d{1,2})\s*시\s*(?:(\d{1,2})\s*분|(반))?\s*$")


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


def kst_now() -> datetime:
    """Current time in Korea Standard Time (UTC+9)."""
    return datetime.now(KST)


def kst_today() -> date:
    return kst_now().date()


def format_kst_timestamp(now: datetime | None = None) -> str:
    """Format as ``YYYY-MM-DD (요일) HH:MM`` in KST, e.g. ``2025-03-10 (월) 14:05``."""
    now = (now or kst_now()).astimezone(KST)
    weekday = WEEKDAYS_KO[now.weekday()]
    return f"{now:%Y-%m-%d} ({weekday}) {now:%H:%M}"


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_date(raw: str | None) -> str | None:
    """Return ``YYYY-MM-DD`` for common date spellings, or None if unparseable."""
    if not raw:
        return None
    text = str(raw).strip()
    if "T" in text:
        text = text.split("T")[0]
    match = _DATE_RE.match(text) or _COMPACT_DATE_RE.match(text)
    if match is None:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        logger.warning("Invalid calendar date: %r", raw)
        return None


def normalize_time(raw: str | None) -> str | None:
    """Return ``HH:MM`` (24h) for ``9:05``, ``0905``, ``오후 3시``, ``오전 9시 반``."""
    if not raw:
        return None
    text = str(raw).strip()
    match = _TIME_RE.match(text) or _COMPACT_TIME_RE.match(text)
    if match is not None:
        hour, minute = int(match.group(1)), int(match.group(2))
    else:
        match = _KO_TIME_RE.match(text)
        if match is None:
            return None
        meridiem, hour_s, minute_s, half = match.groups()
        hour = int(hour_s)
        minute = 30 if half else int(minute_s or 0)
        if meridiem == "오후" and hour < 12:
            hour += 12
        elif meridiem == "오전" and hour == 12:
            hour = 0
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return f"{hour:02d}:{minute:02d}"


def phone_digits(raw: str | None) -> str:
    return re.sub(r"\D", "", raw or "")[:11]


def format_phone(raw: str | None) -> str:
    """Korean phone format: ``01012345678`` → ``010-1234-5678``."""
    d = phone_digits(raw)
    if len(d) <= 3:
        return d
    if len(d) <= 7:
        return f"{d[:3]}-{d[3:]}"
    return f"{d[:3]}-{d[3:7]}-{d[7:11]}"


def random_bright_color(rng: random.Random | None = None) -> str:
    """Random hex color built from the bright digits 8-F only."""
    rng = rng or random
    return "#" + "".join(rng.choice("89ABCDEF") for _ in range(6))


# ---------------------------------------------------------------------------
# Holidays & D-Day
# ---------------------------------------------------------------------------


def korean_holiday(day: date) -> str | None:
    """Name of the Korean public holiday on ``day``, or None."""
    fixed = _FIXED_HOLIDAYS.get(f"{day:%m-%d}")
    if fixed:
        return fixed
    return _VARIABLE_HOLIDAYS.get(day.isoformat())


def days_until(target: str, today: date | None = None) -> int | None:
    """Signed day difference target - today; None if ``target`` is not a date."""
    normalized = normalize_date(target)
    if normalized is None:
        return None
    today = today or kst_today()
    return (date.fromisoformat(normalized) - today).days


def dday_label(target: str, today: date | None = None) -> tuple[str, bool]:
    """Return (label, is_past): ``("D-DAY", False)``, ``("D-3", False)``, ``("D+2", True)``."""
    diff = days_until(target, today)
    if diff is None:
        return "", False
    if diff == 0:
        return "D-DAY", False
    if diff > 0:
        return f"D-{diff}", False
    return f"D+{-diff}", True
