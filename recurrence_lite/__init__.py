"""recurrence_lite - RRULE parsing, expansion and description for calendar events.

Parses a subset of RFC 5545 recurrence rules, expands master events into
concrete occurrences in a query range, serializes rules back to strings and
renders them as short English phrases.
"""

__version__ = "0.1.0"

from typing import Optional

from .lite_exceptions import (
    RecurrenceError,
    RRuleExpansionError,
    RRuleParseError,
    TimezoneResolutionError,
)
from .lite_models import (
    ByDayEntry,
    CalendarEvent,
    ExpandedInstance,
    ExpansionResult,
    Frequency,
    RecurrenceRule,
    Weekday,
)
from .lite_rrule_describer import describe_rrule
from .lite_rrule_expander import (
    LiteRRuleExpander,
    RRuleExpanderConfig,
    expand_event,
    expand_event_with_status,
    expand_events,
    iter_occurrences,
)
from .lite_rrule_parser import parse_rrule
from .lite_rrule_serializer import serialize_rrule

__all__ = [
    "ByDayEntry",
    "CalendarEvent",
    "ExpandedInstance",
    "ExpansionResult",
    "Frequency",
    "LiteRRuleExpander",
    "RRuleExpanderConfig",
    "RRuleExpansionError",
    "RRuleParseError",
    "RecurrenceError",
    "RecurrenceRule",
    "TimezoneResolutionError",
    "Weekday",
    "__version__",
    "describe_rrule",
    "expand_event",
    "expand_event_with_status",
    "expand_events",
    "iter_occurrences",
    "parse_rrule",
    "serialize_rrule",
]


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized console handler when the root logger has none, then
    sets the root level. RECURRENCE_DEBUG (truthy values: "1", "true", "yes",
    "on") forces DEBUG regardless of ``level_name``.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("RECURRENCE_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        candidate = getattr(logging, level_name.strip().upper(), None)
        if isinstance(candidate, int):
            level = candidate
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )
