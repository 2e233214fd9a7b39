"""Conversions between stored UTC instants and local calendar values."""

import calendar
import logging
import os
import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from trainer_calendar.domain.errors import ValidationError

_logger = logging.getLogger(__name__)

DECEMBER = 12
_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_OF_DAY_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_ZONEINFO_DIR = "zoneinfo/"


@dataclass(frozen=True)
class MonthRange:
    """Inclusive range of stored instants covering a (padded) month."""

    start: datetime
    end: datetime


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the named zone, or the host zone when no name is configured.

    The host zone is read from ``TZ``, then ``/etc/localtime``, then
    ``/etc/timezone``, so it keeps its DST rules. UTC is the last resort.
    """
    if name:
        return ZoneInfo(name)
    host = _host_zone_key()
    if host:
        try:
            return ZoneInfo(host)
        except (ZoneInfoNotFoundError, ValueError):
            _logger.warning("Unknown host timezone %r, falling back to UTC", host)
    return UTC


def _host_zone_key() -> str | None:
    configured = os.environ.get("TZ", "").lstrip(":")
    if configured:
        return _zone_key(configured)
    localtime = Path("/etc/localtime")
    if localtime.is_symlink():
        return _zone_key(str(localtime.resolve()))
    timezone_file = Path("/etc/timezone")
    if timezone_file.is_file():
        return timezone_file.read_text().strip() or None
    return None


def _zone_key(value: str) -> str:
    marker = value.rfind(_ZONEINFO_DIR)
    if marker < 0:
        return value
    return value[marker + len(_ZONEINFO_DIR) :]


def to_stored_instant(local: datetime) -> datetime:
    """Convert an aware local datetime to a UTC instant."""
    if local.tzinfo is None:
        raise ValidationError("Local datetimes must be timezone-aware")
    return local.astimezone(UTC)


def to_local_date(instant: datetime, tz: tzinfo) -> datetime:
    """Project a stored instant into the display timezone."""
    if instant.tzinfo is None:
        raise ValidationError("Stored instants must be timezone-aware")
    return instant.astimezone(tz)


def date_key(local: datetime | date) -> str:
    """Return the zero-padded YYYY-MM-DD key of a local date."""
    return f"{local.year:04d}-{local.month:02d}-{local.day:02d}"


def parse_date_key(key: str) -> date:
    """Parse a YYYY-MM-DD key."""
    if not _DATE_KEY_RE.match(key):
        raise ValidationError(f"Invalid date key: {key!r}")
    try:
        return date.fromisoformat(key)
    except ValueError as exc:
        raise ValidationError(f"Invalid date key: {key!r}") from exc


def month_key(year: int, month: int) -> str:
    """Return the cache key for a calendar month."""
    return f"{year:04d}-{month:02d}"


def month_key_for_date_key(key: str) -> str:
    """Return the month key that owns a date key."""
    day = parse_date_key(key)
    return month_key(day.year, day.month)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move a (year, month) pair by ``delta`` months."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def nearest_half_hour(value: datetime) -> datetime:
    """Round to :00 or :30 of the wall clock, dropping seconds."""
    rounded = value.replace(second=0, microsecond=0)
    if rounded.minute < 15:  # noqa: PLR2004
        return rounded.replace(minute=0)
    if rounded.minute < 45:  # noqa: PLR2004
        return rounded.replace(minute=30)
    return rounded.replace(minute=0) + timedelta(hours=1)


def month_range(year: int, month: int, padding_weeks: int, tz: tzinfo) -> MonthRange:
    """Return stored instants spanning a month plus ``padding_weeks`` each side."""
    if not 1 <= month <= DECEMBER:
        raise ValidationError(f"Invalid month: {month}")
    padding = timedelta(days=padding_weeks * 7)
    last_day = calendar.monthrange(year, month)[1]
    first = date(year, month, 1) - padding
    last = date(year, month, last_day) + padding
    start = datetime.combine(first, time.min, tzinfo=tz)
    end = datetime.combine(last, time.max, tzinfo=tz)
    return MonthRange(start=to_stored_instant(start), end=to_stored_instant(end))


def ranges_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Return True when two half-open intervals intersect."""
    return start_a < end_b and start_b < end_a


def add_minutes(value: datetime, minutes: int) -> datetime:
    """Return ``value`` shifted by a number of minutes."""
    return value + timedelta(minutes=minutes)


def at_time_of_day(key: str, hh_mm: str, tz: tzinfo) -> datetime:
    """Combine a date key and an HH:MM form value into a local datetime."""
    match = _TIME_OF_DAY_RE.match(hh_mm.strip())
    if not match:
        raise ValidationError(f"Invalid time of day: {hh_mm!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:  # noqa: PLR2004
        raise ValidationError(f"Invalid time of day: {hh_mm!r}")
    return datetime.combine(parse_date_key(key), time(hour, minute), tzinfo=tz)


def format_time_of_day(value: datetime) -> str:
    """Format a local datetime as 12-hour clock time, e.g. ``9:05 AM``."""
    suffix = "PM" if value.hour >= 12 else "AM"  # noqa: PLR2004
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {suffix}"


def format_range(start: datetime, end: datetime) -> str:
    """Format a local time range for agenda display."""
    return f"{format_time_of_day(start)} - {format_time_of_day(end)}"


def is_past(instant: datetime, now: datetime | None = None) -> bool:
    """Return True when the instant lies before ``now``."""
    return instant < (now or datetime.now(tz=UTC))
