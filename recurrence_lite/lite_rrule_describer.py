"""Human-readable descriptions of recurrence rules."""

from typing import Optional

from .lite_models import (
    FREQUENCY_LABELS,
    WEEKDAY_LABELS,
    WEEKDAY_ORDER,
    WEEKDAY_SHORT_LABELS,
    ByDayEntry,
    Frequency,
    RecurrenceRule,
    ordinal_suffix,
)
from .timezone_utils import convert_to_timezone, get_default_timezone

_UNIT_NAMES = {
    Frequency.DAILY: "day",
    Frequency.WEEKLY: "week",
    Frequency.MONTHLY: "month",
    Frequency.YEARLY: "year",
}

_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_WEEKDAYS = frozenset(WEEKDAY_ORDER[:5])
_WEEKEND = frozenset(WEEKDAY_ORDER[5:])


def ordinal_word(n: int) -> str:
    """Render a signed ordinal position.

    Examples:
        >>> ordinal_word(2)
        '2nd'
        >>> ordinal_word(-1)
        'last'
        >>> ordinal_word(-2)
        '2nd to last'
    """
    if n == -1:
        return "last"
    if n < 0:
        return f"{-n}{ordinal_suffix(n)} to last"
    return f"{n}{ordinal_suffix(n)}"


def _join_words(words: list[str]) -> str:
    if len(words) <= 2:
        return " and ".join(words)
    return ", ".join(words[:-1]) + " and " + words[-1]


def _plain_days_phrase(entries: tuple[ByDayEntry, ...]) -> str:
    days = {entry.day for entry in entries}
    if days == _WEEKDAYS:
        return "weekdays"
    if days == _WEEKEND:
        return "weekends"
    ordered = [day for day in WEEKDAY_ORDER if day in days]
    if len(ordered) == 1:
        return WEEKDAY_LABELS[ordered[0]]
    return ", ".join(WEEKDAY_SHORT_LABELS[day] for day in ordered)


def _by_day_phrase(rule: RecurrenceRule) -> str:
    entries = rule.by_day
    if rule.by_set_pos and not rule.has_ordinal_by_day:
        days = {entry.day for entry in entries}
        if days == _WEEKDAYS:
            target = "weekday"
        elif days == _WEEKEND:
            target = "weekend day"
        else:
            target = "of " + _plain_days_phrase(entries)
        positions = _join_words([ordinal_word(pos) for pos in rule.by_set_pos])
        return f"on the {positions} {target}"

    if not rule.has_ordinal_by_day:
        return f"on {_plain_days_phrase(entries)}"

    words = []
    for entry in entries:
        if entry.position:
            words.append(f"the {ordinal_word(entry.position)} {WEEKDAY_LABELS[entry.day]}")
        else:
            words.append(f"every {WEEKDAY_LABELS[entry.day]}")
    return "on " + _join_words(words)


def _month_day_phrase(values: tuple[int, ...]) -> str:
    words = []
    for value in values:
        if value == -1:
            words.append("last day")
        elif value < 0:
            words.append(f"{ordinal_word(value)} day")
        else:
            words.append(ordinal_word(value))
    return "on the " + _join_words(words)


def describe_rrule(rule: RecurrenceRule, *, time_zone: Optional[str] = None) -> str:
    """Describe a rule as a short English phrase for UI labels.

    Args:
        rule: Rule to describe
        time_zone: Zone used to render the UNTIL date. When None, the same
            default the parser uses for floating UNTIL values
            (RECURRENCE_DEFAULT_TIMEZONE, then the host zone)

    Returns:
        Text such as "Every 2 weeks on weekdays" or
        "Monthly on the last Friday until Dec 31, 2024"
    """
    if rule.interval == 1:
        parts = [FREQUENCY_LABELS[rule.frequency]]
    else:
        parts = [f"Every {rule.interval} {_UNIT_NAMES[rule.frequency]}s"]

    if rule.by_month:
        parts.append("in " + _join_words([_MONTH_NAMES[month - 1] for month in rule.by_month]))
    if rule.by_month_day:
        parts.append(_month_day_phrase(rule.by_month_day))
    if rule.by_day:
        parts.append(_by_day_phrase(rule))

    # COUNT wins when both end conditions are present
    if rule.count:
        noun = "occurrence" if rule.count == 1 else "occurrences"
        parts.append(f"for {rule.count} {noun}")
    elif rule.until:
        local = convert_to_timezone(rule.until, time_zone or get_default_timezone())
        month = _MONTH_NAMES[local.month - 1][:3]
        parts.append(f"until {month} {local.day}, {local.year}")

    return " ".join(parts)
