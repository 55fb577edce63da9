"""RRULE expansion logic for recurrence_lite.

Expansion walks a wall-clock cursor through the series of a master event in the
event's own zone, filters it against the rule, and materializes the occurrences
that overlap the query range. The walk is bounded by COUNT, UNTIL, the range
end, and a configurable safety cap.
"""

import heapq
import logging
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Callable, Optional

from .lite_datetime_utils import (
    UTC,
    add_months,
    day_key,
    days_in_month,
    ensure_timezone_aware,
    localize,
    to_epoch_millis,
)
from .lite_exceptions import RRuleExpansionError
from .lite_models import (
    CalendarEvent,
    ExpandedInstance,
    ExpansionResult,
    Frequency,
    RecurrenceRule,
    Weekday,
)
from .lite_rrule_parser import parse_rrule
from .timezone_utils import resolve_zone

logger = logging.getLogger(__name__)

DEFAULT_MAX_INSTANCES = 366


@dataclass
class RRuleExpanderConfig:
    """Configuration for RRULE expansion.

    Consolidates all expansion limits with explicit defaults.
    """

    # Safety cap on series positions (emitted or skipped) per event
    max_instances: int = DEFAULT_MAX_INSTANCES
    # Cursor steps per event, guards rules whose filters rarely match
    max_iterations: int = 100_000
    # Months/years scanned for a candidate day before a series is declared over
    max_empty_periods: int = 120

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        """Extract expansion configuration from a settings object.

        Args:
            settings: Object with optional max_instances / max_iterations /
                max_empty_periods attributes

        Returns:
            RRuleExpanderConfig with values from settings or defaults
        """
        return cls(
            max_instances=getattr(settings, "max_instances", DEFAULT_MAX_INSTANCES),
            max_iterations=getattr(settings, "max_iterations", 100_000),
            max_empty_periods=getattr(settings, "max_empty_periods", 120),
        )

    @classmethod
    def from_env(cls) -> "RRuleExpanderConfig":
        """Build configuration from RECURRENCE_* variables, after loading .env defaults."""
        from .config_manager import ConfigManager

        cfg = ConfigManager().load_full_config()
        defaults = cls()
        return cls(
            max_instances=cfg.get("max_instances", defaults.max_instances),
            max_iterations=cfg.get("max_iterations", defaults.max_iterations),
            max_empty_periods=cfg.get("max_empty_periods", defaults.max_empty_periods),
        )


@dataclass(frozen=True)
class _WalkContext:
    rule: RecurrenceRule
    anchor: datetime  # naive wall-clock start of the master event
    max_empty_periods: int


@dataclass
class _WalkState:
    budget: int = 0
    steps: int = 0
    truncated: bool = False


def instance_id(master_id: str, instance_start: datetime) -> str:
    """Deterministic ID for an occurrence of ``master_id`` starting at ``instance_start``."""
    return f"{master_id}_{to_epoch_millis(instance_start)}"


def nth_weekday_of_month(year: int, month: int, weekday: Weekday, n: int) -> Optional[int]:
    """Day of month of the Nth (or Nth-from-last for negative N) ``weekday``.

    Returns None when the month has no such day (e.g. a 5th Tuesday).

    Examples:
        >>> nth_weekday_of_month(2024, 1, Weekday.TU, 2)
        9
        >>> nth_weekday_of_month(2024, 5, Weekday.FR, -1)
        31
    """
    last_day = days_in_month(year, month)
    if n > 0:
        first = 1 + (weekday.number - date(year, month, 1).weekday()) % 7
        day = first + (n - 1) * 7
        return day if day <= last_day else None
    last = last_day - (date(year, month, last_day).weekday() - weekday.number) % 7
    day = last - (abs(n) - 1) * 7
    return day if day >= 1 else None


def _resolve_month_day(value: int, last_day: int) -> Optional[int]:
    day = value if value > 0 else last_day + value + 1
    return day if 1 <= day <= last_day else None


def _apply_set_pos(candidates: list[datetime], set_pos: Optional[tuple[int, ...]]) -> list[datetime]:
    if not set_pos:
        return candidates
    picked = set()
    for pos in set_pos:
        index = pos - 1 if pos > 0 else len(candidates) + pos
        if 0 <= index < len(candidates):
            picked.add(candidates[index])
    return sorted(picked)


def _month_days(year: int, month: int, rule: RecurrenceRule, anchor_day: int) -> list[int]:
    """Candidate days of one month for monthly/yearly rules."""
    last_day = days_in_month(year, month)
    if rule.by_day:
        days: set[int] = set()
        first_weekday = date(year, month, 1).weekday()
        for entry in rule.by_day:
            if entry.position:
                day = nth_weekday_of_month(year, month, entry.day, entry.position)
                if day is not None:
                    days.add(day)
            else:
                first = 1 + (entry.day.number - first_weekday) % 7
                days.update(range(first, last_day + 1, 7))
        if rule.by_month_day:
            days &= {_resolve_month_day(value, last_day) for value in rule.by_month_day}
        return sorted(days)
    if rule.by_month_day:
        resolved = (_resolve_month_day(value, last_day) for value in rule.by_month_day)
        return sorted({day for day in resolved if day is not None})
    # Fixed day-of-month clamps to the last day of shorter months
    return [min(anchor_day, last_day)]


def _period_of(ctx: _WalkContext, cursor: datetime) -> tuple[int, int]:
    if ctx.rule.frequency is Frequency.MONTHLY:
        return cursor.year, cursor.month
    return cursor.year, 1


def _shift_period(ctx: _WalkContext, period: tuple[int, int], periods: int) -> tuple[int, int]:
    year, month = period
    if ctx.rule.frequency is Frequency.MONTHLY:
        return add_months(year, month, periods * ctx.rule.interval)
    return year + periods * ctx.rule.interval, month


def _period_candidates(ctx: _WalkContext, period: tuple[int, int]) -> list[datetime]:
    rule = ctx.rule
    year, month = period
    if rule.frequency is Frequency.MONTHLY:
        months = [month]
    else:
        months = sorted(set(rule.by_month or (ctx.anchor.month,)))
    at = ctx.anchor.time()
    candidates = [
        datetime.combine(date(year, m, day), at)
        for m in months
        for day in _month_days(year, m, rule, ctx.anchor.day)
    ]
    return _apply_set_pos(candidates, rule.by_set_pos)


def _first_candidate_after(ctx: _WalkContext, period: tuple[int, int]) -> Optional[datetime]:
    """First candidate in the periods following ``period``, skipping empty ones."""
    for offset in range(1, ctx.max_empty_periods + 1):
        candidates = _period_candidates(ctx, _shift_period(ctx, period, offset))
        if candidates:
            return candidates[0]
    logger.debug("No candidate day within %d periods, ending series", ctx.max_empty_periods)
    return None


def _first_cursor(ctx: _WalkContext) -> Optional[datetime]:
    if ctx.rule.frequency in (Frequency.MONTHLY, Frequency.YEARLY):
        period = _period_of(ctx, ctx.anchor)
        for candidate in _period_candidates(ctx, period):
            if candidate >= ctx.anchor:
                return candidate
        return _first_candidate_after(ctx, period)
    return ctx.anchor


def _step_daily(ctx: _WalkContext, cursor: datetime) -> Optional[datetime]:
    return cursor + timedelta(days=ctx.rule.interval)


def _step_weekly(ctx: _WalkContext, cursor: datetime) -> Optional[datetime]:
    rule = ctx.rule
    if not rule.by_day:
        return cursor + timedelta(weeks=rule.interval)

    week_start = (rule.week_start or Weekday.SU).number
    offsets = sorted({(entry.day.number - week_start) % 7 for entry in rule.by_day})
    current = (cursor.weekday() - week_start) % 7
    for offset in offsets:
        if offset > current:
            return cursor + timedelta(days=offset - current)
    # Nothing left this week: first listed day `interval` weeks ahead
    return cursor + timedelta(days=7 - current + offsets[0] + (rule.interval - 1) * 7)


def _step_period(ctx: _WalkContext, cursor: datetime) -> Optional[datetime]:
    period = _period_of(ctx, cursor)
    for candidate in _period_candidates(ctx, period):
        if candidate > cursor:
            return candidate
    return _first_candidate_after(ctx, period)


_STEP_FUNCTIONS: dict[Frequency, Callable[[_WalkContext, datetime], Optional[datetime]]] = {
    Frequency.DAILY: _step_daily,
    Frequency.WEEKLY: _step_weekly,
    Frequency.MONTHLY: _step_period,
    Frequency.YEARLY: _step_period,
}


def matches_filters(rule: RecurrenceRule, cursor: datetime) -> bool:
    """Test a wall-clock cursor against BYMONTH, BYMONTHDAY and plain BYDAY."""
    if rule.by_month and cursor.month not in rule.by_month:
        return False

    if rule.by_month_day:
        last_day = days_in_month(cursor.year, cursor.month)
        if not any(_resolve_month_day(v, last_day) == cursor.day for v in rule.by_month_day):
            return False

    # Ordinal BYDAY entries are placed by the step function, not filtered here
    if rule.by_day and not rule.has_ordinal_by_day:
        if Weekday.from_number(cursor.weekday()) not in {entry.day for entry in rule.by_day}:
            return False

    return True


def _advance(step: Callable, ctx: _WalkContext, cursor: datetime) -> Optional[datetime]:
    try:
        return step(ctx, cursor)
    except (OverflowError, ValueError):
        # Walked past the last representable date
        return None


def _initial_cursor(ctx: _WalkContext, _cursor: datetime) -> Optional[datetime]:
    return _first_cursor(ctx)


def _event_zone(event: CalendarEvent) -> tzinfo:
    zone = resolve_zone(event.time_zone)
    if zone is not None:
        return zone
    logger.warning(
        "Unknown time_zone %r on event %s, using its start offset", event.time_zone, event.id
    )
    return event.start.tzinfo or UTC


def _build_instance(
    event: CalendarEvent,
    start: datetime,
    zone: tzinfo,
    recurring: bool = True,
) -> ExpandedInstance:
    fields = dict(event)
    fields.update(
        id=instance_id(event.id, start) if recurring else event.id,
        start=start,
        end=(start.astimezone(UTC) + event.duration).astimezone(zone),
        is_recurrence_instance=recurring,
        instance_date=start,
        master_event_id=event.id if recurring else None,
    )
    return ExpandedInstance(**fields)


def _rdate_instances(
    event: CalendarEvent,
    zone: tzinfo,
    window_start: datetime,
    range_end: datetime,
) -> list[ExpandedInstance]:
    """Extra occurrences from RDATE values, sorted, outside the COUNT budget."""
    rule = event.recurrence
    excluded_days = {day_key(value, zone) for value in rule.exdates or ()}
    anchor_time = event.start.astimezone(zone).time()
    starts = set()
    for value in rule.rdates or ():
        if isinstance(value, datetime):
            instant = ensure_timezone_aware(value).astimezone(zone)
        else:
            # Date-only RDATE takes the master's wall-clock time
            instant = localize(datetime.combine(value, anchor_time), zone)
        if instant.date() in excluded_days:
            continue
        if window_start <= instant < range_end:
            starts.add(instant)
    return [_build_instance(event, start, zone) for start in sorted(starts)]


def _walk_series(
    event: CalendarEvent,
    zone: tzinfo,
    range_start: datetime,
    range_end: datetime,
    config: RRuleExpanderConfig,
    max_instances: int,
    state: _WalkState,
) -> Iterator[ExpandedInstance]:
    rule = event.recurrence
    anchor = event.start.astimezone(zone).replace(tzinfo=None)
    ctx = _WalkContext(rule=rule, anchor=anchor, max_empty_periods=config.max_empty_periods)
    step = _STEP_FUNCTIONS[rule.frequency]
    excluded_days = {day_key(value, zone) for value in rule.exdates or ()}
    window_start = range_start - event.duration

    cursor = _advance(_initial_cursor, ctx, anchor)
    while cursor is not None:
        instant = localize(cursor, zone)

        if rule.until and instant > rule.until:
            break
        if instant >= range_end:
            break
        if rule.count and state.budget >= rule.count:
            break
        if state.budget >= max_instances:
            state.truncated = True
            logger.debug("Event %s hit the %d instance cap", event.id, max_instances)
            break
        if state.steps >= config.max_iterations:
            state.truncated = True
            logger.warning(
                "Event %s stopped after %d cursor steps without finishing",
                event.id,
                state.steps,
            )
            break
        state.steps += 1

        if matches_filters(rule, cursor):
            # The budget counts the whole series, not only what is visible
            state.budget += 1
            if cursor.date() not in excluded_days and instant >= window_start:
                yield _build_instance(event, instant, zone)

        cursor = _advance(step, ctx, cursor)


def _merge_unique(
    series: Iterator[ExpandedInstance], extras: list[ExpandedInstance]
) -> Iterator[ExpandedInstance]:
    """Merge RDATE instances into the series by start, dropping duplicate starts."""
    last_start: Optional[datetime] = None
    for instance in heapq.merge(series, extras, key=lambda i: i.start):
        if instance.start == last_start:
            continue
        last_start = instance.start
        yield instance


class LiteRRuleExpander:
    """Expands master events into ordered occurrence instances.

    Holds only immutable configuration, so one expander can serve any number of
    threads concurrently.
    """

    def __init__(self, config: Optional[RRuleExpanderConfig] = None):
        """Initialize expander.

        Args:
            config: Expansion limits (defaults when None)
        """
        self.config = config or RRuleExpanderConfig()
        logger.debug(
            "LiteRRuleExpander initialized: max_instances=%d, max_iterations=%d, "
            "max_empty_periods=%d",
            self.config.max_instances,
            self.config.max_iterations,
            self.config.max_empty_periods,
        )

    def _check_arguments(
        self,
        range_start: datetime,
        range_end: datetime,
        max_instances: Optional[int],
    ) -> tuple[datetime, datetime, int]:
        cap = self.config.max_instances if max_instances is None else max_instances
        if cap < 1:
            raise RRuleExpansionError(f"max_instances must be at least 1, got {cap}")
        range_start = ensure_timezone_aware(range_start).astimezone(UTC)
        range_end = ensure_timezone_aware(range_end).astimezone(UTC)
        if range_end < range_start:
            raise RRuleExpansionError(
                f"Range end {range_end.isoformat()} is before start {range_start.isoformat()}"
            )
        return range_start, range_end, cap

    def _iterate(
        self,
        event: CalendarEvent,
        range_start: datetime,
        range_end: datetime,
        cap: int,
        state: _WalkState,
    ) -> Iterator[ExpandedInstance]:
        zone = _event_zone(event)

        if event.recurrence is None:
            if event.start < range_end and event.end > range_start:
                yield _build_instance(event, event.start, zone, recurring=False)
            return

        series = _walk_series(event, zone, range_start, range_end, self.config, cap, state)
        if not event.recurrence.rdates:
            yield from series
            return

        extras = _rdate_instances(event, zone, range_start - event.duration, range_end)
        yield from _merge_unique(series, extras)

    def iter_occurrences(
        self,
        event: CalendarEvent,
        range_start: datetime,
        range_end: datetime,
        max_instances: Optional[int] = None,
    ) -> Iterator[ExpandedInstance]:
        """Lazily yield occurrences of ``event`` within ``[range_start, range_end)``.

        Arguments are checked on call. Stopping iteration early is the way to
        cancel; nothing needs cleanup.

        Raises:
            RRuleExpansionError: If max_instances < 1 or the range is reversed
        """
        range_start, range_end, cap = self._check_arguments(range_start, range_end, max_instances)
        return self._iterate(event, range_start, range_end, cap, _WalkState())

    def expand_with_status(
        self,
        event: CalendarEvent,
        range_start: datetime,
        range_end: datetime,
        max_instances: Optional[int] = None,
    ) -> ExpansionResult:
        """Expand an event and report whether the safety cap truncated it.

        Args:
            event: Master event (recurring or not)
            range_start: Inclusive start of the query range
            range_end: Exclusive end of the query range
            max_instances: Safety cap override (config default when None)

        Returns:
            ExpansionResult with ordered instances and the truncation flag

        Raises:
            RRuleExpansionError: If max_instances < 1 or the range is reversed
        """
        range_start, range_end, cap = self._check_arguments(range_start, range_end, max_instances)
        started = time.perf_counter()
        state = _WalkState()
        instances = list(self._iterate(event, range_start, range_end, cap, state))
        logger.debug(
            "Expanded event %s: %d instances, %d steps, truncated=%s, %.1fms",
            event.id,
            len(instances),
            state.steps,
            state.truncated,
            (time.perf_counter() - started) * 1000,
        )
        return ExpansionResult(instances=instances, truncated=state.truncated)

    def expand_event(
        self,
        event: CalendarEvent,
        range_start: datetime,
        range_end: datetime,
        max_instances: Optional[int] = None,
    ) -> list[ExpandedInstance]:
        """Expand an event into its ordered occurrences within the range."""
        return self.expand_with_status(event, range_start, range_end, max_instances).instances

    def expand_rrule(
        self,
        master_event: CalendarEvent,
        rrule_string: Optional[str],
        range_start: datetime,
        range_end: datetime,
        exdates: Optional[Iterable[Any]] = None,
    ) -> list[ExpandedInstance]:
        """Expand a master event using a stored RRULE string.

        An unparseable string leaves the event non-recurring (fail-open).
        """
        rule = parse_rrule(rrule_string, default_timezone=master_event.time_zone)
        if rule is not None and exdates:
            rule = rule.model_copy(update={"exdates": tuple(exdates)})
        event = master_event.model_copy(update={"recurrence": rule})
        return self.expand_event(event, range_start, range_end)

    def expand_events(
        self,
        events: Iterable[CalendarEvent],
        range_start: datetime,
        range_end: datetime,
    ) -> list[ExpandedInstance]:
        """Expand many events and merge their instances by start time.

        An event that fails to expand is logged and skipped.
        """
        per_event: list[list[ExpandedInstance]] = []
        for event in events:
            try:
                per_event.append(self.expand_event(event, range_start, range_end))
            except Exception:
                logger.exception("Expansion failed for event %s", getattr(event, "id", None))
                continue
        return list(heapq.merge(*per_event, key=lambda instance: instance.start))


# Global expander instance (created on first use)
_default_expander: Optional[LiteRRuleExpander] = None


def get_default_expander() -> LiteRRuleExpander:
    """Get or create the shared expander configured from the environment."""
    global _default_expander
    if _default_expander is None:
        _default_expander = LiteRRuleExpander(RRuleExpanderConfig.from_env())
    return _default_expander


def expand_event(
    event: CalendarEvent,
    range_start: datetime,
    range_end: datetime,
    max_instances: Optional[int] = None,
) -> list[ExpandedInstance]:
    """Expand ``event`` within ``[range_start, range_end)`` (convenience function)."""
    return get_default_expander().expand_event(event, range_start, range_end, max_instances)


def expand_event_with_status(
    event: CalendarEvent,
    range_start: datetime,
    range_end: datetime,
    max_instances: Optional[int] = None,
) -> ExpansionResult:
    """Expand ``event`` and report truncation (convenience function)."""
    return get_default_expander().expand_with_status(event, range_start, range_end, max_instances)


def iter_occurrences(
    event: CalendarEvent,
    range_start: datetime,
    range_end: datetime,
    max_instances: Optional[int] = None,
) -> Iterator[ExpandedInstance]:
    """Lazily yield occurrences of ``event`` (convenience function)."""
    return get_default_expander().iter_occurrences(event, range_start, range_end, max_instances)


def expand_events(
    events: Iterable[CalendarEvent],
    range_start: datetime,
    range_end: datetime,
) -> list[ExpandedInstance]:
    """Expand and merge many events (convenience function)."""
    return get_default_expander().expand_events(events, range_start, range_end)
