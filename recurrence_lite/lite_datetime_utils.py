"""DateTime helpers for RRULE processing - recurrence_lite.

Covers the compact iCalendar date token used by UNTIL (``YYYYMMDD`` or
``YYYYMMDDTHHMMSS[Z]``) and small aware/naive conversions shared by the parser,
serializer and expander.
"""

import calendar
import logging
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

UTC = timezone.utc

DateLike = Union[date, datetime]


def ensure_timezone_aware(dt: datetime) -> datetime:
    """Ensure datetime is timezone-aware.

    Args:
        dt: Datetime to make timezone-aware

    Returns:
        Timezone-aware datetime (UTC if originally naive)
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def localize(naive: datetime, zone: tzinfo) -> datetime:
    """Attach ``zone`` to a naive wall-clock datetime.

    Wall-clock times that fall inside a DST gap are normalized forward by a
    round trip through UTC.
    """
    return naive.replace(tzinfo=zone).astimezone(UTC).astimezone(zone)


def to_epoch_millis(dt: datetime) -> int:
    """Milliseconds since the Unix epoch for an aware (or UTC-naive) datetime."""
    aware = ensure_timezone_aware(dt)
    delta = aware - datetime(1970, 1, 1, tzinfo=UTC)
    return delta // timedelta(milliseconds=1)


def day_key(value: DateLike, zone: tzinfo) -> date:
    """Calendar day of ``value`` as observed in ``zone``.

    Plain dates are returned unchanged; datetimes are converted into ``zone``
    first (naive datetimes are taken as UTC).
    """
    if isinstance(value, datetime):
        return ensure_timezone_aware(value).astimezone(zone).date()
    return value


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    """Shift a (year, month) pair by ``months`` (may be negative)."""
    shifted = date(year, month, 1) + relativedelta(months=months)
    return shifted.year, shifted.month


def parse_ical_date(token: str, default_tz: Optional[tzinfo] = None) -> datetime:
    """Decode a compact iCalendar date token.

    Args:
        token: ``YYYYMMDD``, ``YYYYMMDDTHHMMSS`` or ``YYYYMMDDTHHMMSSZ``
        default_tz: Zone for tokens without a ``Z`` suffix (UTC if None)

    Returns:
        Aware datetime. ``Z`` tokens are UTC; date-only tokens are midnight
        in ``default_tz``.

    Raises:
        ValueError: If the token is not in a supported format
    """
    value = token.strip()
    has_utc_marker = value.upper().endswith("Z")
    body = value[:-1] if has_utc_marker else value

    if not body.isascii():
        raise ValueError(f"Unable to parse date token: {token!r}")
    if len(body) == 8 and not has_utc_marker:
        naive = datetime.strptime(body, "%Y%m%d")
    elif len(body) == 15:
        naive = datetime.strptime(body.upper(), "%Y%m%dT%H%M%S")
    else:
        raise ValueError(f"Unable to parse date token: {token!r}")

    if has_utc_marker:
        return naive.replace(tzinfo=UTC)
    return localize(naive, default_tz or UTC)


def format_ical_date(dt: datetime) -> str:
    """Encode an instant as a ``YYYYMMDDTHHMMSSZ`` UTC token."""
    return ensure_timezone_aware(dt).astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")
