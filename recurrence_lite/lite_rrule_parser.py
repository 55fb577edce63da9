"""RRULE string parsing for recurrence_lite.

Parsing is fail-open: a string that cannot be understood yields ``None`` so the
caller can treat the event as non-recurring while keeping the raw string for a
later fix. ``strict=True`` raises ``RRuleParseError`` instead.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

from .lite_datetime_utils import parse_ical_date
from .lite_exceptions import RRuleParseError
from .lite_models import ByDayEntry, Frequency, RecurrenceRule, Weekday
from .timezone_utils import get_default_timezone, resolve_zone

logger = logging.getLogger(__name__)

RRULE_PREFIX = "RRULE:"

_BYDAY_RE = re.compile(r"^([+-]?[0-9]{1,2})?([A-Z]{2})$")
_INT_RE = re.compile(r"^[+-]?[0-9]+$")


def parse_rrule_dict(rrule_string: str) -> dict[str, str]:
    """Split an RRULE string into an uppercase key -> raw value mapping.

    The optional ``RRULE:`` prefix is dropped, empty segments and segments
    without ``=`` are skipped. Later duplicates win.
    """
    body = rrule_string.strip()
    if body.upper().startswith(RRULE_PREFIX):
        body = body[len(RRULE_PREFIX):]

    parts: dict[str, str] = {}
    for segment in body.split(";"):
        if "=" not in segment:
            continue
        key, value = segment.split("=", 1)
        key = key.strip().upper()
        if key:
            parts[key] = value.strip()
    return parts


def _parse_positive_int(value: str, key: str) -> int:
    if not _INT_RE.match(value):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    number = int(value)
    if number < 1:
        raise ValueError(f"{key} must be positive, got {number}")
    return number


def _parse_int_list(value: str, key: str) -> tuple[int, ...]:
    items = [item.strip() for item in value.split(",") if item.strip()]
    if not items:
        raise ValueError(f"{key} list is empty")
    for item in items:
        if not _INT_RE.match(item):
            raise ValueError(f"{key} contains a non-integer value {item!r}")
    return tuple(int(item) for item in items)


def _parse_weekday(value: str) -> Weekday:
    try:
        return Weekday(value.strip().upper())
    except ValueError as e:
        raise ValueError(f"Unknown weekday {value!r}") from e


def _parse_by_day(value: str) -> tuple[ByDayEntry, ...]:
    entries = []
    for item in value.split(","):
        token = item.strip().upper()
        if not token:
            continue
        match = _BYDAY_RE.match(token)
        if not match:
            raise ValueError(f"Malformed BYDAY entry {item!r}")
        position = int(match.group(1)) if match.group(1) else None
        entries.append(ByDayEntry(day=_parse_weekday(match.group(2)), position=position))
    if not entries:
        raise ValueError("BYDAY list is empty")
    return tuple(entries)


def _build_rule(parts: dict[str, str], default_timezone: Optional[str]) -> RecurrenceRule:
    freq = parts.get("FREQ", "").strip()
    if not freq:
        raise ValueError("RRULE missing required FREQ parameter")
    try:
        frequency = Frequency(freq.lower())
    except ValueError as e:
        raise ValueError(f"Unsupported FREQ {freq!r}") from e

    fields: dict[str, Any] = {"frequency": frequency}

    for key, value in parts.items():
        if key == "FREQ":
            continue
        if key == "INTERVAL":
            fields["interval"] = _parse_positive_int(value, key)
        elif key == "COUNT":
            fields["count"] = _parse_positive_int(value, key)
        elif key == "UNTIL":
            fields["until"] = _parse_until(value, default_timezone)
        elif key == "BYDAY":
            fields["by_day"] = _parse_by_day(value)
        elif key == "BYMONTHDAY":
            fields["by_month_day"] = _parse_int_list(value, key)
        elif key == "BYMONTH":
            fields["by_month"] = _parse_int_list(value, key)
        elif key == "BYSETPOS":
            fields["by_set_pos"] = _parse_int_list(value, key)
        elif key == "WKST":
            fields["week_start"] = _parse_weekday(value)
        else:
            logger.debug("Ignoring unsupported RRULE key %s=%s", key, value)

    return RecurrenceRule(**fields)


def _parse_until(value: str, default_timezone: Optional[str]) -> datetime:
    if value.upper().endswith("Z"):
        return parse_ical_date(value)

    # Floating UNTIL is read as wall-clock time in the configured (or host) zone
    zone = resolve_zone(default_timezone or get_default_timezone())
    return parse_ical_date(value, zone)


def parse_rrule(
    rrule_string: Optional[str],
    *,
    default_timezone: Optional[str] = None,
    strict: bool = False,
) -> Optional[RecurrenceRule]:
    """Parse an RRULE string into a RecurrenceRule.

    Args:
        rrule_string: e.g. "RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE"
        default_timezone: Zone for UNTIL tokens without a ``Z`` suffix
            (RECURRENCE_DEFAULT_TIMEZONE, then host zone, when None)
        strict: Raise instead of returning None on failure

    Returns:
        Parsed rule, or None if the string is not a usable rule

    Raises:
        RRuleParseError: Only when ``strict`` is True
    """
    if not rrule_string or not rrule_string.strip():
        if strict:
            raise RRuleParseError("Empty RRULE string")
        return None

    try:
        return _build_rule(parse_rrule_dict(rrule_string), default_timezone)
    except Exception as e:
        if strict:
            raise RRuleParseError(f"Invalid RRULE {rrule_string!r}: {e}") from e
        logger.warning("Ignoring invalid RRULE %r: %s", rrule_string, e)
        return None
