"""
Unit tests for recurrence_lite.lite_rrule_expander.

Covers daily/weekly/monthly/yearly stepping, end conditions, exception and
extra dates, the safety cap, DST behaviour and the batch helpers.
"""

from datetime import date, datetime, timedelta, timezone
from itertools import islice
from types import SimpleNamespace
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from recurrence_lite.lite_exceptions import RRuleExpansionError
from recurrence_lite.lite_models import CalendarEvent, RecurrenceRule, Weekday
from recurrence_lite.lite_rrule_expander import (
    DEFAULT_MAX_INSTANCES,
    LiteRRuleExpander,
    RRuleExpanderConfig,
    expand_event,
    expand_event_with_status,
    expand_events,
    instance_id,
    iter_occurrences,
    matches_filters,
    nth_weekday_of_month,
)
from recurrence_lite.lite_rrule_parser import parse_rrule

pytestmark = pytest.mark.unit

UTC = timezone.utc
NEW_YORK = ZoneInfo("America/New_York")


def _event(
    start: datetime,
    rrule: Optional[str] = None,
    *,
    minutes: int = 60,
    tz: str = "UTC",
    event_id: str = "evt-1",
    **rule_updates,
) -> CalendarEvent:
    """Helper to construct a master event, optionally recurring."""
    rule = parse_rrule(rrule, strict=True) if rrule else None
    if rule is not None and rule_updates:
        rule = rule.model_copy(update=rule_updates)
    return CalendarEvent(
        id=event_id,
        title="Standup",
        start=start,
        end=start + timedelta(minutes=minutes),
        time_zone=tz,
        recurrence=rule,
    )


def _starts(instances) -> list[datetime]:
    return [instance.start for instance in instances]


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


# --- daily -----------------------------------------------------------------


def test_daily_bounded_by_count(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;COUNT=5")
    instances = expand_event(event, *jan_2024)
    assert _starts(instances) == [_utc(2024, 1, day, 9) for day in range(1, 6)]


def test_daily_bounded_by_range_end() -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY")
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2024, 1, 11))
    assert len(instances) == 10
    assert all(instance.start < _utc(2024, 1, 11) for instance in instances)


def test_daily_interval(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;INTERVAL=10")
    assert _starts(expand_event(event, *jan_2024)) == [
        _utc(2024, 1, 1, 9),
        _utc(2024, 1, 11, 9),
        _utc(2024, 1, 21, 9),
        _utc(2024, 1, 31, 9),
    ]


def test_until_is_inclusive(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;UNTIL=20240103T090000Z")
    assert len(expand_event(event, *jan_2024)) == 3


# --- weekly ----------------------------------------------------------------


def test_weekly_by_day_count(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=3")
    assert _starts(expand_event(event, *jan_2024)) == [
        _utc(2024, 1, 1, 9),
        _utc(2024, 1, 3, 9),
        _utc(2024, 1, 5, 9),
    ]


def test_weekly_interval_skips_weeks(jan_2024) -> None:
    event = _event(_utc(2024, 1, 2, 9), "FREQ=WEEKLY;INTERVAL=2;BYDAY=TU,TH")
    assert [i.start.day for i in expand_event(event, *jan_2024)] == [2, 4, 16, 18, 30]


def test_weekly_without_by_day_repeats_start_weekday(jan_2024) -> None:
    event = _event(_utc(2024, 1, 3, 9), "FREQ=WEEKLY;COUNT=3")
    assert [i.start.day for i in expand_event(event, *jan_2024)] == [3, 10, 17]


@pytest.mark.parametrize(
    "wkst,expected_days",
    [
        ("MO", [5, 10, 19, 24]),
        ("SU", [5, 17, 19, 31]),
    ],
)
def test_weekly_week_start_changes_biweekly_grouping(wkst, expected_days) -> None:
    event = _event(
        _utc(1997, 8, 5, 9), f"FREQ=WEEKLY;INTERVAL=2;COUNT=4;BYDAY=TU,SU;WKST={wkst}"
    )
    instances = expand_event(event, _utc(1997, 8, 1), _utc(1997, 9, 30))
    assert [i.start.day for i in instances] == expected_days


def test_weekly_defaults_to_sunday_week_start() -> None:
    event = _event(_utc(1997, 8, 5, 9), "FREQ=WEEKLY;INTERVAL=2;COUNT=4;BYDAY=TU,SU")
    instances = expand_event(event, _utc(1997, 8, 1), _utc(1997, 9, 30))
    assert [i.start.day for i in instances] == [5, 17, 19, 31]


# --- monthly ---------------------------------------------------------------


def test_monthly_ordinal_weekday_anchor() -> None:
    event = _event(_utc(2024, 1, 9, 10), "FREQ=MONTHLY;BYDAY=2TU")
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2024, 3, 1))
    assert _starts(instances) == [_utc(2024, 1, 9, 10), _utc(2024, 2, 13, 10)]


def test_monthly_ordinal_aligns_start_to_first_anchor() -> None:
    event = _event(_utc(2024, 1, 1, 10), "FREQ=MONTHLY;BYDAY=2TU;COUNT=1")
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2024, 3, 1))
    assert _starts(instances) == [_utc(2024, 1, 9, 10)]


def test_monthly_last_friday() -> None:
    event = _event(_utc(2024, 1, 26, 15), "FREQ=MONTHLY;BYDAY=-1FR;COUNT=3")
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2024, 12, 31))
    assert [i.start.date() for i in instances] == [
        date(2024, 1, 26),
        date(2024, 2, 23),
        date(2024, 3, 29),
    ]


def test_monthly_skips_months_without_the_ordinal_day() -> None:
    event = _event(_utc(2024, 1, 30, 9), "FREQ=MONTHLY;BYDAY=5TU;COUNT=2")
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2024, 12, 31))
    assert [i.start.date() for i in instances] == [date(2024, 1, 30), date(2024, 4, 30)]


def test_monthly_fixed_day_clamps_to_month_end() -> None:
    event = _event(_utc(2024, 1, 31, 9), "FREQ=MONTHLY;COUNT=4")
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2024, 12, 31))
    assert [i.start.date() for i in instances] == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
    ]


def test_monthly_by_month_day_with_negative_index() -> None:
    event = _event(_utc(2024, 1, 15, 9), "FREQ=MONTHLY;BYMONTHDAY=15,-1;COUNT=4")
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2024, 12, 31))
    assert [i.start.date() for i in instances] == [
        date(2024, 1, 15),
        date(2024, 1, 31),
        date(2024, 2, 15),
        date(2024, 2, 29),
    ]


def test_monthly_by_set_pos_last_weekday() -> None:
    event = _event(
        _utc(2024, 1, 31, 9), "FREQ=MONTHLY;BYDAY=MO,TU,WE,TH,FR;BYSETPOS=-1;COUNT=3"
    )
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2024, 12, 31))
    assert [i.start.date() for i in instances] == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 29),
    ]


# --- yearly ----------------------------------------------------------------


def test_yearly_nth_weekday_in_month() -> None:
    event = _event(_utc(2024, 11, 28, 17), "FREQ=YEARLY;BYMONTH=11;BYDAY=4TH;COUNT=3")
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2027, 1, 1))
    assert [i.start.date() for i in instances] == [
        date(2024, 11, 28),
        date(2025, 11, 27),
        date(2026, 11, 26),
    ]


def test_yearly_leap_day_clamps_in_common_years() -> None:
    event = _event(_utc(2024, 2, 29, 9), "FREQ=YEARLY;COUNT=3")
    instances = expand_event(event, _utc(2024, 1, 1), _utc(2027, 1, 1))
    assert [i.start.date() for i in instances] == [
        date(2024, 2, 29),
        date(2025, 2, 28),
        date(2026, 2, 28),
    ]


# --- exception and extra dates ----------------------------------------------


def test_exdate_consumes_count(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;COUNT=5", exdates=(date(2024, 1, 3),))
    assert [i.start.day for i in expand_event(event, *jan_2024)] == [1, 2, 4, 5]


def test_exdate_matched_by_day_in_event_zone(jan_2024) -> None:
    start = datetime(2024, 1, 1, 9, tzinfo=NEW_YORK)
    event = _event(
        start,
        "FREQ=DAILY;COUNT=4",
        tz="America/New_York",
        exdates=(_utc(2024, 1, 3, 14),),
    )
    assert [i.start.day for i in expand_event(event, *jan_2024)] == [1, 2, 4]


def test_rdates_are_merged_in_order_and_deduplicated(jan_2024) -> None:
    event = _event(
        _utc(2024, 1, 1, 9),
        "FREQ=DAILY;COUNT=3",
        rdates=(_utc(2024, 1, 10, 9), date(2024, 1, 2)),
    )
    assert [i.start.day for i in expand_event(event, *jan_2024)] == [1, 2, 3, 10]


def test_rdate_on_exdate_day_is_dropped(jan_2024) -> None:
    event = _event(
        _utc(2024, 1, 1, 9),
        "FREQ=DAILY;COUNT=2",
        rdates=(_utc(2024, 1, 10, 9),),
        exdates=(date(2024, 1, 10),),
    )
    assert [i.start.day for i in expand_event(event, *jan_2024)] == [1, 2]


# --- range handling ---------------------------------------------------------


def test_count_budget_includes_occurrences_before_range() -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;COUNT=10")
    instances = expand_event(event, _utc(2024, 1, 6), _utc(2024, 2, 1))
    assert [i.start.day for i in instances] == [6, 7, 8, 9, 10]


def test_instance_overlapping_range_start_is_included() -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY", minutes=120)
    instances = expand_event(event, _utc(2024, 1, 5, 10), _utc(2024, 1, 6))
    assert _starts(instances) == [_utc(2024, 1, 5, 9)]


def test_empty_range_yields_nothing() -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY")
    assert expand_event(event, _utc(2024, 1, 5), _utc(2024, 1, 5)) == []


def test_non_recurring_event_inside_range(jan_2024) -> None:
    event = _event(_utc(2024, 1, 15, 9))
    instances = expand_event(event, *jan_2024)
    assert len(instances) == 1
    instance = instances[0]
    assert instance.id == "evt-1"
    assert instance.is_recurrence_instance is False
    assert instance.master_event_id is None
    assert instance.start == event.start
    assert instance.end == event.end


def test_non_recurring_event_outside_range(jan_2024) -> None:
    event = _event(_utc(2024, 3, 1, 9))
    assert expand_event(event, *jan_2024) == []


def test_non_recurring_event_overlapping_range_end(jan_2024) -> None:
    event = _event(_utc(2024, 1, 31, 23), minutes=120)
    assert len(expand_event(event, *jan_2024)) == 1


# --- instance records -------------------------------------------------------


def test_instances_carry_master_fields_and_stable_ids(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;COUNT=2", minutes=30)
    first = expand_event(event, *jan_2024)
    second = expand_event(event, *jan_2024)

    assert [i.id for i in first] == [i.id for i in second]
    assert first[0].id == "evt-1_1704099600000"
    assert first[0].master_event_id == "evt-1"
    assert first[0].is_recurrence_instance is True
    assert first[0].title == "Standup"
    assert first[0].instance_date == first[0].start
    assert first[0].end - first[0].start == timedelta(minutes=30)


def test_instance_id_format() -> None:
    assert instance_id("abc", _utc(1970, 1, 1, 0, 0, 1)) == "abc_1000"


# --- safety cap ---------------------------------------------------------------


def test_unbounded_rule_stops_at_default_cap() -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY")
    result = expand_event_with_status(event, _utc(2024, 1, 1), _utc(2026, 1, 1))
    assert len(result.instances) == DEFAULT_MAX_INSTANCES == 366
    assert result.truncated is True


def test_count_below_cap_is_not_truncated(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;COUNT=5")
    result = expand_event_with_status(event, *jan_2024)
    assert len(result) == 5
    assert result.truncated is False


def test_max_instances_override(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY")
    result = LiteRRuleExpander().expand_with_status(event, *jan_2024, max_instances=10)
    assert len(result) == 10
    assert result.truncated is True


def test_iteration_guard_stops_rules_that_rarely_match() -> None:
    expander = LiteRRuleExpander(RRuleExpanderConfig(max_iterations=10))
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;BYMONTH=12")
    result = expander.expand_with_status(event, _utc(2024, 1, 1), _utc(2025, 1, 1))
    assert result.instances == []
    assert result.truncated is True


def test_cap_from_environment(monkeypatch, jan_2024) -> None:
    monkeypatch.setenv("RECURRENCE_MAX_INSTANCES", "4")
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY")
    result = expand_event_with_status(event, *jan_2024)
    assert len(result) == 4
    assert result.truncated is True


# --- timezones ----------------------------------------------------------------


def test_daily_keeps_wall_clock_across_dst_change() -> None:
    start = datetime(2024, 3, 9, 9, tzinfo=NEW_YORK)
    event = _event(start, "FREQ=DAILY;COUNT=3", tz="America/New_York")
    instances = expand_event(event, _utc(2024, 3, 1), _utc(2024, 4, 1))

    assert [i.start.astimezone(NEW_YORK).hour for i in instances] == [9, 9, 9]
    assert [i.start.astimezone(UTC).hour for i in instances] == [14, 13, 13]


def test_wall_clock_inside_dst_gap_moves_forward() -> None:
    start = datetime(2024, 3, 9, 2, 30, tzinfo=NEW_YORK)
    event = _event(start, "FREQ=DAILY;COUNT=3", tz="America/New_York")
    instances = expand_event(event, _utc(2024, 3, 1), _utc(2024, 4, 1))
    local = [i.start.astimezone(NEW_YORK) for i in instances]

    assert [(t.day, t.hour, t.minute) for t in local] == [(9, 2, 30), (10, 3, 30), (11, 2, 30)]


def test_duration_is_preserved_across_dst() -> None:
    start = _utc(2024, 3, 10, 4)  # 23:00 EST the night before the change
    event = _event(start, "FREQ=DAILY;COUNT=2", tz="America/New_York", minutes=240)
    instances = expand_event(event, _utc(2024, 3, 1), _utc(2024, 4, 1))
    assert all(
        i.end.astimezone(UTC) - i.start.astimezone(UTC) == timedelta(hours=4) for i in instances
    )


def test_unknown_event_zone_falls_back_to_start_offset(caplog, jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;COUNT=2", tz="Mars/Olympus_Mons")
    with caplog.at_level("WARNING"):
        instances = expand_event(event, *jan_2024)
    assert _starts(instances) == [_utc(2024, 1, 1, 9), _utc(2024, 1, 2, 9)]
    assert "Unknown time_zone" in caplog.text


# --- argument validation and iteration -------------------------------------


def test_reversed_range_raises(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY")
    with pytest.raises(RRuleExpansionError):
        expand_event(event, jan_2024[1], jan_2024[0])


def test_non_positive_cap_raises(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY")
    with pytest.raises(RRuleExpansionError):
        LiteRRuleExpander().expand_event(event, *jan_2024, max_instances=0)


def test_iter_occurrences_validates_on_call(jan_2024) -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY")
    with pytest.raises(RRuleExpansionError):
        iter_occurrences(event, jan_2024[1], jan_2024[0])


def test_iter_occurrences_is_lazy() -> None:
    event = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY")
    iterator = iter_occurrences(event, _utc(2024, 1, 1), _utc(2124, 1, 1), max_instances=10**9)
    assert [i.start.day for i in islice(iterator, 3)] == [1, 2, 3]


# --- batch helpers ---------------------------------------------------------------


def test_expand_events_merges_by_start(jan_2024) -> None:
    morning = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;COUNT=2", event_id="morning")
    evening = _event(_utc(2024, 1, 1, 18), "FREQ=DAILY;COUNT=2", event_id="evening")
    instances = expand_events([evening, morning], *jan_2024)
    assert [i.master_event_id for i in instances] == ["morning", "evening", "morning", "evening"]


def test_expand_events_skips_failing_event(caplog, jan_2024) -> None:
    good = _event(_utc(2024, 1, 1, 9), "FREQ=DAILY;COUNT=2")
    bad = SimpleNamespace(id="broken")
    with caplog.at_level("ERROR"):
        instances = expand_events([bad, good], *jan_2024)
    assert len(instances) == 2
    assert "broken" in caplog.text


def test_expand_rrule_from_string_with_exdates(jan_2024) -> None:
    master = _event(_utc(2024, 1, 1, 9))
    instances = LiteRRuleExpander().expand_rrule(
        master, "RRULE:FREQ=DAILY;COUNT=3", *jan_2024, exdates=[date(2024, 1, 2)]
    )
    assert [i.start.day for i in instances] == [1, 3]


def test_expand_rrule_invalid_string_is_non_recurring(jan_2024) -> None:
    master = _event(_utc(2024, 1, 1, 9))
    instances = LiteRRuleExpander().expand_rrule(master, "FREQ=NEVER", *jan_2024)
    assert len(instances) == 1
    assert instances[0].is_recurrence_instance is False


# --- helpers ------------------------------------------------------------------------


@pytest.mark.parametrize(
    "year,month,weekday,n,expected",
    [
        (2024, 1, Weekday.TU, 2, 9),
        (2024, 2, Weekday.TU, 2, 13),
        (2024, 1, Weekday.FR, -1, 26),
        (2024, 2, Weekday.TH, -1, 29),
        (2024, 3, Weekday.SU, -2, 24),
        (2024, 2, Weekday.TU, 5, None),
    ],
)
def test_nth_weekday_of_month(year, month, weekday, n, expected) -> None:
    assert nth_weekday_of_month(year, month, weekday, n) == expected


def test_matches_filters_ignores_ordinal_by_day() -> None:
    rule = parse_rrule("FREQ=MONTHLY;BYDAY=2TU")
    assert matches_filters(rule, datetime(2024, 1, 1, 9)) is True


def test_matches_filters_plain_by_day_and_month() -> None:
    rule = RecurrenceRule.model_validate(
        {"frequency": "weekly", "by_day": [{"day": "MO"}], "by_month": [1]}
    )
    assert matches_filters(rule, datetime(2024, 1, 1, 9)) is True
    assert matches_filters(rule, datetime(2024, 1, 2, 9)) is False
    assert matches_filters(rule, datetime(2024, 2, 5, 9)) is False


def test_config_from_settings_uses_defaults_for_missing_attributes() -> None:
    config = RRuleExpanderConfig.from_settings(SimpleNamespace(max_instances=10))
    assert config.max_instances == 10
    assert config.max_iterations == RRuleExpanderConfig().max_iterations
