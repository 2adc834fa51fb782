# Rounding logic - check-in parsing, overdue status and hourly activity slots
from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

NO_CHECK_DISPLAY = "None"
SLOT_COUNT = 24
SLOT_WIDTH = timedelta(hours=1)

# "UTC-5", "UTC+5:30", "GMT-0500"
_OFFSET_MARKER = re.compile(r"(?:UTC|GMT)([+-])(\d{1,2})(?::?(\d{2}))?")

# Two defaults that disagree on every date field: a parse that depends on
# the default was missing part of its date.
_PROBE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))

_MONTHS = [
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
]


def _offset_as_numeric(match: re.Match) -> str:
    sign, hours, minutes = match.group(1), int(match.group(2)), int(match.group(3) or 0)
    return f"{sign}{hours:02d}:{minutes:02d}"


def clean_check_time(raw: str) -> str:
    """
    Rewrite the store's display format into something the date parser reads:
    " at " becomes a space and a "UTC-5" style marker becomes the numeric
    offset "-05:00" (same sign, same magnitude).

    dateutil reads "GMT-5" with the POSIX sign ("GMT is 5 hours behind me"),
    so the label is dropped rather than passed through.
    """
    cleaned = raw.replace(" at ", " ", 1)
    return _OFFSET_MARKER.sub(_offset_as_numeric, cleaned, count=1)


def parse_check_time(raw: Any, default_tz: tzinfo = timezone.utc) -> Optional[datetime]:
    """
    Parse a check-in timestamp such as "November 20, 2025 at 12:55:25 AM UTC-5".

    Returns an aware datetime, or None when the value is not a string or does
    not hold a complete calendar date. Timestamps without an offset are read
    in default_tz.
    """
    if not raw or not isinstance(raw, str):
        return None

    cleaned = clean_check_time(raw)
    try:
        first, second = (date_parser.parse(cleaned, default=d) for d in _PROBE_DEFAULTS)
        if first != second:
            return None  # partial date, e.g. "12:55 AM" or "November 2025"
        first.utcoffset()  # raises for offsets of a day or more
    except (ValueError, OverflowError):
        return None

    if first.tzinfo is None:
        first = first.replace(tzinfo=default_tz)
    return first


def format_check_time(instant: datetime, tz: tzinfo = timezone.utc) -> str:
    """Render an instant in the store's text format: "November 20, 2025 at 12:55:25 AM UTC-5"."""
    local = instant.astimezone(tz)
    offset_minutes = int(local.utcoffset().total_seconds() // 60)
    sign = "-" if offset_minutes < 0 else "+"
    hours, minutes = divmod(abs(offset_minutes), 60)
    offset = f"UTC{sign}{hours}" + (f":{minutes:02d}" if minutes else "")
    if offset_minutes == 0:
        offset = "UTC"
    hour12 = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return (
        f"{_MONTHS[local.month - 1]} {local.day}, {local.year} at "
        f"{hour12}:{local.minute:02d}:{local.second:02d} {meridiem} {offset}"
    )


def format_display_time(instant: datetime, tz: tzinfo = timezone.utc) -> str:
    """Short en-US rendering used on patient cards and reports: "11/20/2025, 12:55:25 AM"."""
    local = instant.astimezone(tz)
    hour12 = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return (
        f"{local.month}/{local.day}/{local.year}, "
        f"{hour12}:{local.minute:02d}:{local.second:02d} {meridiem}"
    )


def get_check_ins(patient: Optional[Mapping], strict: bool = False) -> List[Dict]:
    """Return a patient's check-ins as a list, whether stored as a list or as a keyed mapping."""
    if not patient or not patient.get("checkIns"):
        return []

    check_ins = patient["checkIns"]
    if isinstance(check_ins, (list, tuple)):
        return list(check_ins)
    if isinstance(check_ins, Mapping):
        return list(check_ins.values())

    if strict:
        raise TypeError(f"checkIns must be a list or a mapping, got {type(check_ins).__name__}")
    logger.warning("Ignoring checkIns of unexpected type %s", type(check_ins).__name__)
    return []


def get_parsed_check_ins(
    patient: Optional[Mapping],
    default_tz: tzinfo = timezone.utc,
    strict: bool = False,
) -> List[Dict]:
    """Check-ins that parse, each copied with an "instant" key. Order follows get_check_ins."""
    parsed = []
    for entry in get_check_ins(patient, strict=strict):
        if not isinstance(entry, Mapping):
            continue
        instant = parse_check_time(entry.get("time"), default_tz)
        if instant is not None:
            parsed.append({**entry, "instant": instant})
    return parsed


def get_check_in_interval(patient: Optional[Mapping]) -> float:
    """checkInInterval in minutes; missing, malformed, negative or non-finite values count as 0."""
    if not patient:
        return 0
    try:
        interval = float(patient.get("checkInInterval") or 0)
    except (TypeError, ValueError, OverflowError):
        return 0
    # "nan" and "inf" parse as floats but would never compare as overdue
    if not math.isfinite(interval) or interval < 0:
        return 0
    return interval


def _as_aware(value: datetime, tz: tzinfo) -> datetime:
    """Naive datetimes are read in tz."""
    return value.replace(tzinfo=tz) if value.tzinfo is None else value


def _no_check() -> Dict:
    return {"display": NO_CHECK_DISPLAY, "instant": None, "staff": "", "isOverdue": True}


def get_last_check(
    patient: Optional[Mapping],
    now: datetime,
    display_tz: tzinfo = timezone.utc,
    strict: bool = False,
) -> Dict:
    """
    Latest parseable check-in for a patient and whether the patient is overdue.

    Overdue when there is no parseable check-in, or when more than
    checkInInterval minutes have passed since the latest one (a check-in
    exactly on the boundary is on time). Equal instants keep extraction order,
    so the first of them wins. A naive now is read in display_tz.
    """
    now = _as_aware(now, display_tz)
    parsed = get_parsed_check_ins(patient, default_tz=display_tz, strict=strict)
    if not parsed:
        return _no_check()

    parsed.sort(key=lambda entry: entry["instant"], reverse=True)
    latest = parsed[0]

    minutes_since = (now - latest["instant"]).total_seconds() / 60
    return {
        "display": format_display_time(latest["instant"], display_tz),
        "instant": latest["instant"],
        "staff": latest.get("staff") or "",
        "isOverdue": minutes_since > get_check_in_interval(patient),
    }


def is_patient_overdue(
    patient: Optional[Mapping],
    now: datetime,
    display_tz: tzinfo = timezone.utc,
    strict: bool = False,
) -> bool:
    """Overdue flag from get_last_check."""
    return get_last_check(patient, now, display_tz=display_tz, strict=strict)["isOverdue"]


def build_hour_slots(now: datetime) -> List[datetime]:
    """
    24 hour-aligned slot starts ending with the current hour, oldest first.

    Hours are truncated in now's own offset, so pass now in the timezone the
    grid is labelled in.
    """
    current_hour = now.replace(minute=0, second=0, microsecond=0)
    return [current_hour - SLOT_WIDTH * i for i in range(SLOT_COUNT - 1, -1, -1)]


def has_check_in_in_slot(
    patient: Optional[Mapping],
    slot_start: datetime,
    default_tz: tzinfo = timezone.utc,
    strict: bool = False,
) -> bool:
    """
    True if any parseable check-in falls in [slot_start, slot_start + 1 hour).

    A naive slot_start is read in default_tz.
    """
    slot_start = _as_aware(slot_start, default_tz)
    slot_end = slot_start + SLOT_WIDTH
    return any(
        slot_start <= entry["instant"] < slot_end
        for entry in get_parsed_check_ins(patient, default_tz=default_tz, strict=strict)
    )
