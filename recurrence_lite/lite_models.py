"""Data models for recurrence rules and calendar events - recurrence_lite."""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from .lite_datetime_utils import UTC, ensure_timezone_aware


class Frequency(str, Enum):
    """Base frequency of a recurrence rule."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Weekday(str, Enum):
    """Two-letter RRULE weekday codes."""

    MO = "MO"
    TU = "TU"
    WE = "WE"
    TH = "TH"
    FR = "FR"
    SA = "SA"
    SU = "SU"

    @property
    def number(self) -> int:
        """Weekday number matching ``datetime.weekday()`` (Monday is 0)."""
        return WEEKDAY_ORDER.index(self)

    @classmethod
    def from_number(cls, number: int) -> "Weekday":
        return WEEKDAY_ORDER[number % 7]


WEEKDAY_ORDER: tuple[Weekday, ...] = (
    Weekday.MO,
    Weekday.TU,
    Weekday.WE,
    Weekday.TH,
    Weekday.FR,
    Weekday.SA,
    Weekday.SU,
)

WEEKDAY_LABELS: dict[Weekday, str] = {
    Weekday.MO: "Monday",
    Weekday.TU: "Tuesday",
    Weekday.WE: "Wednesday",
    Weekday.TH: "Thursday",
    Weekday.FR: "Friday",
    Weekday.SA: "Saturday",
    Weekday.SU: "Sunday",
}

WEEKDAY_SHORT_LABELS: dict[Weekday, str] = {day: label[:3] for day, label in WEEKDAY_LABELS.items()}

FREQUENCY_LABELS: dict[Frequency, str] = {
    Frequency.DAILY: "Daily",
    Frequency.WEEKLY: "Weekly",
    Frequency.MONTHLY: "Monthly",
    Frequency.YEARLY: "Yearly",
}


def ordinal_suffix(n: int) -> str:
    """English ordinal suffix for ``n`` ("st", "nd", "rd" or "th")."""
    value = abs(n) % 100
    if 11 <= value <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(value % 10, "th")


class ByDayEntry(BaseModel):
    """One BYDAY item: a weekday with an optional signed ordinal position."""

    model_config = ConfigDict(frozen=True)

    day: Weekday
    position: Optional[int] = Field(
        default=None, description="Ordinal within the period, e.g. 2 = 2nd, -1 = last"
    )

    @field_validator("position")
    @classmethod
    def _validate_position(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and (value == 0 or abs(value) > 53):
            raise ValueError(f"BYDAY position must be in 1..53 or -53..-1, got {value}")
        return value


def _check_signed_range(values: Optional[tuple[int, ...]], limit: int, name: str) -> None:
    if values is None:
        return
    for value in values:
        if value == 0 or abs(value) > limit:
            raise ValueError(f"{name} values must be in 1..{limit} or -{limit}..-1, got {value}")


class RecurrenceRule(BaseModel):
    """Structured RRULE. Immutable: edits produce a new rule."""

    model_config = ConfigDict(frozen=True)

    frequency: Frequency
    interval: int = Field(default=1, ge=1, description="Step between periods")

    # End conditions (both optional, whichever is hit first wins)
    count: Optional[int] = Field(default=None, ge=1, description="Total occurrences in the series")
    until: Optional[datetime] = Field(default=None, description="Inclusive end instant")

    # Filters
    by_day: Optional[tuple[ByDayEntry, ...]] = None
    by_month_day: Optional[tuple[int, ...]] = None
    by_month: Optional[tuple[int, ...]] = None
    by_set_pos: Optional[tuple[int, ...]] = None
    week_start: Optional[Weekday] = None

    # Exceptions carried alongside the rule, never serialized
    exdates: Optional[tuple[Union[datetime, date], ...]] = None
    rdates: Optional[tuple[Union[datetime, date], ...]] = None

    @field_validator("until")
    @classmethod
    def _until_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        # UNTIL tokens carry whole seconds only
        return ensure_timezone_aware(value).replace(microsecond=0)

    @field_validator("by_month")
    @classmethod
    def _validate_by_month(cls, value: Optional[tuple[int, ...]]) -> Optional[tuple[int, ...]]:
        if value is not None and any(not 1 <= month <= 12 for month in value):
            raise ValueError(f"BYMONTH values must be in 1..12, got {list(value)}")
        return value

    @model_validator(mode="after")
    def _validate_signed_lists(self) -> "RecurrenceRule":
        _check_signed_range(self.by_month_day, 31, "BYMONTHDAY")
        _check_signed_range(self.by_set_pos, 366, "BYSETPOS")
        return self

    @property
    def has_ordinal_by_day(self) -> bool:
        """True when any BYDAY entry carries a position (e.g. 2TU, -1FR)."""
        return bool(self.by_day) and any(entry.position for entry in self.by_day)

    @field_serializer("until", when_used="unless-none")
    def serialize_until(self, dt: datetime) -> str:
        return dt.isoformat()


class CalendarEvent(BaseModel):
    """Master event record consumed by the expander."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Event ID")
    title: str = Field(default="", description="Event title")
    start: datetime = Field(..., description="Start instant")
    end: datetime = Field(..., description="End instant")
    time_zone: str = Field(default="UTC", description="Zone whose wall clock drives recurrence")
    recurrence: Optional[RecurrenceRule] = Field(default=None, description="Recurrence rule")
    location: Optional[str] = None
    description: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return ensure_timezone_aware(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> "CalendarEvent":
        if self.end <= self.start:
            raise ValueError("Event end must be after its start")
        return self

    @property
    def duration(self) -> timedelta:
        """Elapsed time between start and end, independent of DST shifts."""
        return self.end.astimezone(UTC) - self.start.astimezone(UTC)

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to ISO format."""
        return dt.isoformat()


class ExpandedInstance(CalendarEvent):
    """One materialized occurrence. Recomputed per query, never persisted."""

    is_recurrence_instance: bool = Field(
        default=True, description="True if generated from a recurrence rule"
    )
    instance_date: datetime = Field(..., description="Start of this occurrence")
    master_event_id: Optional[str] = Field(
        default=None, description="ID of the master event for recurrence instances"
    )

    @field_serializer("instance_date")
    def serialize_instance_date(self, dt: datetime) -> str:
        return dt.isoformat()


class ExpansionResult(BaseModel):
    """Expanded instances plus whether the safety cap cut the series short."""

    instances: list[ExpandedInstance] = Field(default_factory=list)
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.instances)


_WORK_WEEK = tuple(ByDayEntry(day=day) for day in WEEKDAY_ORDER[:5])

# Quick-pick rules offered by rule editors; None means "does not repeat"
RECURRENCE_PRESETS: list[tuple[str, Optional[RecurrenceRule]]] = [
    ("Does not repeat", None),
    ("Daily", RecurrenceRule(frequency=Frequency.DAILY)),
    ("Weekly", RecurrenceRule(frequency=Frequency.WEEKLY)),
    ("Monthly", RecurrenceRule(frequency=Frequency.MONTHLY)),
    ("Yearly", RecurrenceRule(frequency=Frequency.YEARLY)),
    ("Every weekday", RecurrenceRule(frequency=Frequency.WEEKLY, by_day=_WORK_WEEK)),
]
