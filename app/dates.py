"""Wire date and slot label handling.

Dates travel as ``dd/mm/yyyy`` and slots as ``HH:MM`` labels. Inside the
core they are kept apart as a ``date`` plus a normalized label and only
combined into a naive local ``datetime`` when comparing against the clock.
"""
import re
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from .config import settings
from .errors import ValidationError

WIRE_DATE_FORMAT = "%d/%m/%Y"

_WIRE_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
_SLOT_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?$")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def parse_date(value: str) -> date:
    if not isinstance(value, str) or not _WIRE_DATE_RE.match(value.strip()):
        raise ValidationError(f"Invalid date format, expected dd/mm/yyyy: {value!r}")
    try:
        return datetime.strptime(value.strip(), WIRE_DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(f"Invalid calendar date: {value!r}")


def format_date(value: date) -> str:
    return value.strftime(WIRE_DATE_FORMAT)


def normalize_time_slot(value: str) -> str:
    """``"9"`` -> ``"09:00"``, ``"9:30"`` -> ``"09:30"``. Minutes need two digits."""
    match = _SLOT_RE.match(str(value).strip()) if value is not None else None
    if not match:
        raise ValidationError(f"Invalid time slot, expected HH:MM: {value!r}")
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    if hours > 23 or minutes > 59:
        raise ValidationError(f"Invalid time slot, expected HH:MM: {value!r}")
    return f"{hours:02d}:{minutes:02d}"


def weekday_name(value: date) -> str:
    return WEEKDAYS[value.weekday()]


def slot_start(day: date, label: str) -> datetime:
    hours, minutes = normalize_time_slot(label).split(":")
    return datetime.combine(day, time(int(hours), int(minutes)))


def local_now() -> datetime:
    return datetime.now(ZoneInfo(settings.TIMEZONE)).replace(tzinfo=None)
