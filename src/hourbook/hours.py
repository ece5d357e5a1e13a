"""Hour-slot ordering and date key helpers.

A day runs from 7am to 6am the next morning, so "12am".."6am" sort *after*
"11pm". Dates arrive either as MMDDYY (six digits) or ISO (YYYY-MM-DD or
YYYYMMDD); both map onto the canonical ISO string used as a storage key.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

from hourbook.errors import ValidationError

HOURS: tuple[str, ...] = (
    "7am", "8am", "9am", "10am", "11am",
    "12pm", "1pm", "2pm", "3pm", "4pm", "5pm", "6pm",
    "7pm", "8pm", "9pm", "10pm", "11pm",
    "12am", "1am", "2am", "3am", "4am", "5am", "6am",
)

_HOUR_INDEX = {h: i for i, h in enumerate(HOURS)}

_MMDDYY = re.compile(r"^(\d{2})(\d{2})(\d{2})$")
_ISO_DASHED = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_ISO_COMPACT = re.compile(r"^(\d{4})(\d{2})(\d{2})$")


def slot_index(hour: str) -> int:
    """Position of *hour* in the 7am-start ordering. Raises ValidationError."""
    try:
        return _HOUR_INDEX[hour]
    except KeyError:
        raise ValidationError(
            f"Invalid hour '{hour}'. Must be one of: {', '.join(HOURS)}"
        ) from None


def is_valid_hour(hour: str) -> bool:
    return hour in _HOUR_INDEX


def compare_slot_order(a: str, b: str) -> int:
    """Return -1, 0 or 1 comparing two hour names in canonical order."""
    ia, ib = slot_index(a), slot_index(b)
    return (ia > ib) - (ia < ib)


def slots_between(start: str, end: str) -> list[str]:
    """All slots from *start* through *end* inclusive (display span of a range)."""
    return list(HOURS[slot_index(start): slot_index(end) + 1])


def parse_date(raw: str) -> str:
    """Canonicalise a caller date to ISO ``YYYY-MM-DD``.

    Accepts ``MMDDYY`` (years 2000-2099), ``YYYY-MM-DD`` and ``YYYYMMDD``.
    """
    if not isinstance(raw, str):
        raise ValidationError(f"Invalid date {raw!r}: expected a string")
    text = raw.strip()

    if m := _MMDDYY.match(text):
        month, day, yy = (int(g) for g in m.groups())
        year = 2000 + yy
    elif m := (_ISO_DASHED.match(text) or _ISO_COMPACT.match(text)):
        year, month, day = (int(g) for g in m.groups())
    else:
        raise ValidationError(
            f"Invalid date '{raw}'. Use YYYY-MM-DD (e.g. 2025-11-25) or MMDDYY (e.g. 112525)"
        )

    try:
        return date(year, month, day).isoformat()
    except ValueError as e:
        raise ValidationError(f"Invalid date '{raw}': {e}") from None


def slot_start(iso_date: str, hour: str) -> datetime:
    """Wall-clock start of *hour* on the day *iso_date*; 12am-6am fall on the next morning."""
    midnight = datetime.fromisoformat(parse_date(iso_date))
    return midnight + timedelta(hours=7 + slot_index(hour))


def today() -> str:
    return date.today().isoformat()


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")
