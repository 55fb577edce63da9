"""Command-line entry for recurrence_lite.

Examples:
  python -m recurrence_lite parse "RRULE:FREQ=WEEKLY;BYDAY=MO,WE,FR"
  python -m recurrence_lite describe "FREQ=MONTHLY;BYDAY=-1FR"
  python -m recurrence_lite expand "FREQ=DAILY;COUNT=5" --start 2024-01-01T09:00
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timedelta
from typing import Optional

from dateutil.parser import isoparse

from . import _init_logging
from .config_manager import ConfigManager
from .lite_datetime_utils import UTC, localize
from .lite_exceptions import RecurrenceError
from .lite_logging import configure_lite_logging
from .lite_models import CalendarEvent
from .lite_rrule_describer import describe_rrule
from .lite_rrule_expander import LiteRRuleExpander, RRuleExpanderConfig
from .lite_rrule_parser import parse_rrule
from .timezone_utils import get_default_timezone, normalize_timezone_name, resolve_zone

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for recurrence_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="recurrence_lite",
        description="Parse, describe and expand RFC 5545 recurrence rules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1] if __doc__ else None,
    )
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        help="Console log level (default: INFO, or from RECURRENCE_LOG_LEVEL env var)",
    )
    parser.add_argument(
        "--timezone",
        metavar="TZ",
        help="Zone for floating times (default: RECURRENCE_DEFAULT_TIMEZONE or host zone)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Parse a rule and print it as JSON")
    parse_cmd.add_argument("rrule", help="RRULE string")
    parse_cmd.add_argument("--strict", action="store_true", help="Fail on invalid rules")

    describe_cmd = subparsers.add_parser("describe", help="Describe a rule in English")
    describe_cmd.add_argument("rrule", help="RRULE string")

    expand_cmd = subparsers.add_parser("expand", help="Expand a rule into occurrences (JSON)")
    expand_cmd.add_argument("rrule", help="RRULE string")
    expand_cmd.add_argument("--start", required=True, help="Series start (ISO 8601)")
    expand_cmd.add_argument("--end", help="Range end (ISO 8601, default: start + 1 year)")
    expand_cmd.add_argument(
        "--range-start", help="Range start (ISO 8601, default: series start)"
    )
    expand_cmd.add_argument(
        "--duration", type=int, default=60, metavar="MINUTES", help="Event length (default: 60)"
    )
    expand_cmd.add_argument("--title", default="", help="Event title")
    expand_cmd.add_argument("--max-instances", type=int, help="Safety cap override")

    return parser


def _parse_instant(value: str, time_zone: str) -> datetime:
    parsed = isoparse(value)
    if parsed.tzinfo is None:
        return localize(parsed, resolve_zone(time_zone) or UTC)
    return parsed


def _run_parse(args: argparse.Namespace, time_zone: str) -> int:
    rule = parse_rrule(args.rrule, default_timezone=time_zone, strict=args.strict)
    if rule is None:
        print(f"Invalid RRULE: {args.rrule}", file=sys.stderr)
        return 1
    print(rule.model_dump_json(indent=2, exclude_none=True))
    return 0


def _run_describe(args: argparse.Namespace, time_zone: str) -> int:
    rule = parse_rrule(args.rrule, default_timezone=time_zone)
    if rule is None:
        print(f"Invalid RRULE: {args.rrule}", file=sys.stderr)
        return 1
    print(describe_rrule(rule, time_zone=time_zone))
    return 0


def _run_expand(args: argparse.Namespace, time_zone: str) -> int:
    rule = parse_rrule(args.rrule, default_timezone=time_zone, strict=True)
    start = _parse_instant(args.start, time_zone)
    range_start = _parse_instant(args.range_start, time_zone) if args.range_start else start
    range_end = (
        _parse_instant(args.end, time_zone) if args.end else range_start + timedelta(days=366)
    )

    event = CalendarEvent(
        id="cli",
        title=args.title,
        start=start,
        end=start + timedelta(minutes=args.duration),
        time_zone=time_zone,
        recurrence=rule,
    )
    expander = LiteRRuleExpander(RRuleExpanderConfig.from_env())
    result = expander.expand_with_status(event, range_start, range_end, args.max_instances)
    print(result.model_dump_json(indent=2, exclude_none=True))
    return 0


_COMMANDS = {
    "parse": _run_parse,
    "describe": _run_describe,
    "expand": _run_expand,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Run the recurrence_lite CLI and return the process exit code."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    # .env defaults land in os.environ before anything reads RECURRENCE_* settings
    config = ConfigManager().load_full_config()

    log_level = (args.log_level or config.get("log_level") or "").strip().upper() or None
    _init_logging(log_level)
    configure_lite_logging(debug_mode=log_level == "DEBUG", log_level=log_level)

    time_zone = normalize_timezone_name(args.timezone) if args.timezone else None
    if time_zone is None:
        time_zone = get_default_timezone(config.get("default_timezone"))
    logger.debug("Running %s with timezone %s", args.command, time_zone)

    try:
        return _COMMANDS[args.command](args, time_zone)
    except (RecurrenceError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
