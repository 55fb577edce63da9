"""Custom exception hierarchy for recurrence_lite.

Parsing failures are normally reported fail-open (the parser returns None),
so these types mostly surface from strict parsing, argument validation in the
expander, and internal timezone lookups that are caught before they reach a
caller's render path.
"""


class RecurrenceError(Exception):
    """Base exception for all recurrence_lite errors."""


class RRuleParseError(RecurrenceError):
    """RRULE string could not be parsed.

    Raised when:
    - FREQ is missing or names an unsupported frequency
    - INTERVAL or COUNT is not a positive integer
    - A BYxxx list contains a malformed or out-of-range value
    - UNTIL is not a YYYYMMDD[THHMMSS[Z]] token

    Only raised by ``parse_rrule(..., strict=True)``.
    """


class RRuleExpansionError(RecurrenceError):
    """Occurrence expansion was called with unusable arguments.

    Raised when:
    - max_instances is smaller than 1
    - The query range ends before it starts
    """


class TimezoneResolutionError(RecurrenceError):
    """A timezone name could not be resolved to a zone.

    Public timezone helpers catch this and degrade to a fallback value.
    """
