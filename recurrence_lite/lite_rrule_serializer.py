"""RecurrenceRule -> RRULE string serialization for recurrence_lite."""

from .lite_datetime_utils import format_ical_date
from .lite_models import ByDayEntry, RecurrenceRule
from .lite_rrule_parser import RRULE_PREFIX


def format_by_day(entry: ByDayEntry) -> str:
    """Render a BYDAY entry, keeping its ordinal prefix (e.g. "-1FR")."""
    if entry.position:
        return f"{entry.position}{entry.day.value}"
    return entry.day.value


def _join(values: tuple[int, ...]) -> str:
    return ",".join(str(value) for value in values)


def serialize_rrule(rule: RecurrenceRule, *, include_prefix: bool = True) -> str:
    """Serialize a rule back to the RRULE grammar.

    INTERVAL is omitted when 1 and UNTIL is always written as a UTC token.
    EXDATE/RDATE values travel separately and are never part of the string.

    Examples:
        >>> from recurrence_lite.lite_models import Frequency
        >>> serialize_rrule(RecurrenceRule(frequency=Frequency.DAILY, count=3))
        'RRULE:FREQ=DAILY;COUNT=3'
    """
    parts = [f"FREQ={rule.frequency.value.upper()}"]

    if rule.interval != 1:
        parts.append(f"INTERVAL={rule.interval}")
    if rule.count:
        parts.append(f"COUNT={rule.count}")
    if rule.until:
        parts.append(f"UNTIL={format_ical_date(rule.until)}")
    if rule.by_day:
        parts.append("BYDAY=" + ",".join(format_by_day(entry) for entry in rule.by_day))
    if rule.by_month_day:
        parts.append(f"BYMONTHDAY={_join(rule.by_month_day)}")
    if rule.by_month:
        parts.append(f"BYMONTH={_join(rule.by_month)}")
    if rule.by_set_pos:
        parts.append(f"BYSETPOS={_join(rule.by_set_pos)}")
    if rule.week_start:
        parts.append(f"WKST={rule.week_start.value}")

    body = ";".join(parts)
    return f"{RRULE_PREFIX}{body}" if include_prefix else body
