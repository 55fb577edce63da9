"""Timezone detection and conversion utilities for recurrence_lite."""

from __future__ import annotations

import datetime
import logging
import os
import re
import time
from functools import lru_cache
from pathlib import Path
from typing import ClassVar, NamedTuple, Optional
from zoneinfo import ZoneInfo

from .lite_exceptions import TimezoneResolutionError

logger = logging.getLogger(__name__)

# Fallback when the host zone cannot be detected
DEFAULT_SYSTEM_TIMEZONE = "UTC"


class WallClock(NamedTuple):
    """Date and time strings as observed in a particular zone."""

    date: str  # YYYY-MM-DD
    time: str  # HH:MM


class TimezoneDetector:
    """Detects the host timezone using multiple fallback strategies."""

    # Timezone abbreviation to IANA identifier mapping
    TZ_ABBREV_MAP: ClassVar[dict[str, str]] = {
        "PST": "America/Los_Angeles",
        "PDT": "America/Los_Angeles",
        "EST": "America/New_York",
        "EDT": "America/New_York",
        "CST": "America/Chicago",
        "CDT": "America/Chicago",
        "MST": "America/Denver",
        "MDT": "America/Denver",
        "UTC": "UTC",
        "GMT": "UTC",
    }

    # Windows timezone names to IANA identifier mapping
    # Common Windows timezones found in calendar data exported from Outlook/Exchange
    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        "Pacific Standard Time": "America/Los_Angeles",
        "Mountain Standard Time": "America/Denver",
        "Central Standard Time": "America/Chicago",
        "Eastern Standard Time": "America/New_York",
        "Alaskan Standard Time": "America/Anchorage",
        "Hawaiian Standard Time": "Pacific/Honolulu",
        "US Mountain Standard Time": "America/Phoenix",
        "Atlantic Standard Time": "America/Halifax",
        "GMT Standard Time": "Europe/London",
        "Romance Standard Time": "Europe/Paris",
        "W. Europe Standard Time": "Europe/Berlin",
        "Central European Standard Time": "Europe/Warsaw",
        "Russian Standard Time": "Europe/Moscow",
        "Arabian Standard Time": "Asia/Dubai",
        "India Standard Time": "Asia/Kolkata",
        "SE Asia Standard Time": "Asia/Bangkok",
        "China Standard Time": "Asia/Shanghai",
        "Tokyo Standard Time": "Asia/Tokyo",
        "Korea Standard Time": "Asia/Seoul",
        "Singapore Standard Time": "Asia/Singapore",
        "AUS Eastern Standard Time": "Australia/Sydney",
        "W. Australia Standard Time": "Australia/Perth",
        "New Zealand Standard Time": "Pacific/Auckland",
        "E. South America Standard Time": "America/Sao_Paulo",
        "South Africa Standard Time": "Africa/Johannesburg",
    }

    # Obsolete or alternate names to canonical IANA identifiers
    TZ_ALIAS_MAP: ClassVar[dict[str, str]] = {
        "US/Pacific": "America/Los_Angeles",
        "US/Mountain": "America/Denver",
        "US/Central": "America/Chicago",
        "US/Eastern": "America/New_York",
        "US/Alaska": "America/Anchorage",
        "US/Hawaii": "Pacific/Honolulu",
        "US/Arizona": "America/Phoenix",
        "GMT": "UTC",
        "Etc/UTC": "UTC",
        "Etc/GMT": "UTC",
        "Etc/Universal": "UTC",
        "Universal": "UTC",
        "Zulu": "UTC",
        "Z": "UTC",
        "Asia/Calcutta": "Asia/Kolkata",
        "Asia/Rangoon": "Asia/Yangon",
        "America/Godthab": "America/Nuuk",
    }

    def get_system_timezone(self) -> str:
        """Get the host's local timezone as an IANA timezone identifier.

        Returns:
            IANA timezone string, or "UTC" if detection fails.
        """
        try:
            # Strategy 1: explicit TZ environment variable
            tz_env = os.environ.get("TZ", "").lstrip(":").strip()
            if tz_env:
                resolved = normalize_timezone_name(tz_env)
                if resolved:
                    return resolved

            # Strategy 2: /etc/localtime symlink into the zoneinfo database
            localtime = Path("/etc/localtime")
            if localtime.is_symlink():
                target = str(localtime.resolve())
                marker = "zoneinfo/"
                if marker in target:
                    candidate = target.split(marker, 1)[1]
                    ZoneInfo(candidate)
                    return candidate

            # Strategy 3: system timezone abbreviation
            local_tz_name = time.tzname[time.daylight] if time.daylight else time.tzname[0]
            if local_tz_name in self.TZ_ABBREV_MAP:
                iana_tz = self.TZ_ABBREV_MAP[local_tz_name]
                ZoneInfo(iana_tz)
                return iana_tz

            logger.debug("Could not detect system timezone, falling back to UTC")
            return DEFAULT_SYSTEM_TIMEZONE

        except Exception as e:
            logger.warning("Failed to detect system timezone: %s, falling back to UTC", e)
            return DEFAULT_SYSTEM_TIMEZONE


class TimeProvider:
    """Provides current time with test time override support."""

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden for testing via the RECURRENCE_TEST_TIME environment
        variable (ISO 8601, e.g. "2024-03-10T08:00:00-05:00").
        """
        test_time = os.environ.get("RECURRENCE_TEST_TIME")
        if test_time:
            try:
                from dateutil import parser as date_parser

                dt = date_parser.isoparse(test_time)
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.timezone.utc)
                # Naive override is taken as UTC
                return dt.replace(tzinfo=datetime.timezone.utc)
            except Exception as e:
                logger.warning("Failed to parse RECURRENCE_TEST_TIME=%r: %s", test_time, e)

        return datetime.datetime.now(datetime.timezone.utc)


# Long names for the abbreviations zoneinfo reports
LONG_NAME_MAP: dict[str, str] = {
    "UTC": "Coordinated Universal Time",
    "GMT": "Greenwich Mean Time",
    "BST": "British Summer Time",
    "IST": "India Standard Time",
    "CET": "Central European Standard Time",
    "CEST": "Central European Summer Time",
    "EET": "Eastern European Standard Time",
    "EEST": "Eastern European Summer Time",
    "MSK": "Moscow Standard Time",
    "EST": "Eastern Standard Time",
    "EDT": "Eastern Daylight Time",
    "CST": "Central Standard Time",
    "CDT": "Central Daylight Time",
    "MST": "Mountain Standard Time",
    "MDT": "Mountain Daylight Time",
    "PST": "Pacific Standard Time",
    "PDT": "Pacific Daylight Time",
    "AKST": "Alaska Standard Time",
    "AKDT": "Alaska Daylight Time",
    "HST": "Hawaii-Aleutian Standard Time",
    "JST": "Japan Standard Time",
    "KST": "Korean Standard Time",
    "HKT": "Hong Kong Standard Time",
    "AEST": "Australian Eastern Standard Time",
    "AEDT": "Australian Eastern Daylight Time",
    "AWST": "Australian Western Standard Time",
    "NZST": "New Zealand Standard Time",
    "NZDT": "New Zealand Daylight Time",
    "SAST": "South Africa Standard Time",
}

# Abbreviations that are ambiguous across regions, keyed by zone
ZONE_LONG_NAME_OVERRIDES: dict[tuple[str, str], str] = {
    ("Asia/Shanghai", "CST"): "China Standard Time",
    ("Asia/Taipei", "CST"): "Taipei Standard Time",
    ("Europe/Dublin", "IST"): "Irish Standard Time",
    ("Asia/Jerusalem", "IST"): "Israel Standard Time",
}

COMMON_TIMEZONES: list[tuple[str, str]] = [
    # US
    ("America/New_York", "Eastern Time (US & Canada)"),
    ("America/Chicago", "Central Time (US & Canada)"),
    ("America/Denver", "Mountain Time (US & Canada)"),
    ("America/Los_Angeles", "Pacific Time (US & Canada)"),
    ("America/Anchorage", "Alaska"),
    ("Pacific/Honolulu", "Hawaii"),
    # Europe
    ("Europe/London", "London"),
    ("Europe/Paris", "Paris"),
    ("Europe/Berlin", "Berlin"),
    ("Europe/Rome", "Rome"),
    ("Europe/Madrid", "Madrid"),
    ("Europe/Amsterdam", "Amsterdam"),
    ("Europe/Stockholm", "Stockholm"),
    ("Europe/Warsaw", "Warsaw"),
    ("Europe/Moscow", "Moscow"),
    # Asia
    ("Asia/Dubai", "Dubai"),
    ("Asia/Kolkata", "New Delhi"),
    ("Asia/Bangkok", "Bangkok"),
    ("Asia/Hong_Kong", "Hong Kong"),
    ("Asia/Shanghai", "Beijing"),
    ("Asia/Tokyo", "Tokyo"),
    ("Asia/Seoul", "Seoul"),
    ("Asia/Singapore", "Singapore"),
    # Australia
    ("Australia/Sydney", "Sydney"),
    ("Australia/Melbourne", "Melbourne"),
    ("Australia/Perth", "Perth"),
    # Americas
    ("America/Toronto", "Toronto"),
    ("America/Vancouver", "Vancouver"),
    ("America/Mexico_City", "Mexico City"),
    ("America/Sao_Paulo", "São Paulo"),
    ("America/Argentina/Buenos_Aires", "Buenos Aires"),
    # Other
    ("Africa/Johannesburg", "Johannesburg"),
    ("Pacific/Auckland", "Auckland"),
    ("UTC", "UTC"),
]

# "a" only counts when no other letter touches it
_FORMAT_TOKEN_RE = re.compile(r"yyyy|MM|dd|HH|mm|(?<![A-Za-z])a(?![A-Za-z])")

# Singleton instances for global use
_detector = TimezoneDetector()
_time_provider = TimeProvider()


def get_system_timezone() -> str:
    """Get the host's local timezone (convenience function)."""
    return _detector.get_system_timezone()


def get_default_timezone(fallback: Optional[str] = None) -> str:
    """Get the configured default timezone with validation.

    Checks RECURRENCE_DEFAULT_TIMEZONE first, then ``fallback``, then the
    detected host zone.
    """
    configured = os.environ.get("RECURRENCE_DEFAULT_TIMEZONE") or fallback
    if configured:
        resolved = normalize_timezone_name(configured)
        if resolved:
            return resolved
        logger.warning("Invalid default timezone %r, using system timezone", configured)
    return get_system_timezone()


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function)."""
    return _time_provider.now_utc()


def windows_tz_to_iana(windows_tz: str) -> str | None:
    """Convert a Windows timezone name to an IANA identifier, or None."""
    return _detector.WINDOWS_TZ_MAP.get(windows_tz)


def resolve_timezone_alias(tz_name: str) -> str:
    """Resolve an alias (e.g. "US/Pacific") to its canonical IANA identifier.

    Examples:
        >>> resolve_timezone_alias("US/Pacific")
        'America/Los_Angeles'
        >>> resolve_timezone_alias("Europe/Paris")
        'Europe/Paris'
    """
    return _detector.TZ_ALIAS_MAP.get(tz_name, tz_name)


def normalize_timezone_name(tz_str: str | None) -> str | None:
    """Normalize a Windows name, alias or IANA id to a canonical IANA id.

    Returns:
        Canonical IANA timezone identifier or None if it cannot be resolved
    """
    if not tz_str:
        return None

    candidate = windows_tz_to_iana(tz_str) or resolve_timezone_alias(tz_str.strip())
    try:
        ZoneInfo(candidate)
    except Exception:
        logger.debug("Unrecognized timezone %r", tz_str)
        return None
    return candidate


@lru_cache(maxsize=64)
def resolve_zone(tz_name: str | None) -> ZoneInfo | None:
    """Resolve a timezone name to a ZoneInfo, or None when it is unknown."""
    canonical = normalize_timezone_name(tz_name)
    if canonical is None:
        return None
    return ZoneInfo(canonical)


def _require_zone(tz_name: str | None) -> ZoneInfo:
    zone = resolve_zone(tz_name)
    if zone is None:
        raise TimezoneResolutionError(f"Unknown timezone: {tz_name!r}")
    return zone


def _zone_or_system(tz_name: str | None) -> ZoneInfo:
    """Resolve ``tz_name``, degrading to the host zone (then UTC)."""
    try:
        return _require_zone(tz_name)
    except TimezoneResolutionError:
        logger.warning("Unknown timezone %r, using system timezone", tz_name)
    return resolve_zone(get_system_timezone()) or ZoneInfo("UTC")


def _as_aware(instant: datetime.datetime) -> datetime.datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=datetime.timezone.utc)
    return instant


def _utc_offset(zone: ZoneInfo, at: datetime.datetime) -> datetime.timedelta:
    return _as_aware(at).astimezone(zone).utcoffset() or datetime.timedelta(0)


def format_offset_label(offset: datetime.timedelta) -> str:
    """Render an offset as "UTC", "UTC-5" or "UTC+5:30"."""
    total_minutes = int(offset.total_seconds() // 60)
    if total_minutes == 0:
        return "UTC"
    sign = "+" if total_minutes > 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    if minutes:
        return f"UTC{sign}{hours}:{minutes:02d}"
    return f"UTC{sign}{hours}"


def get_offset_label(tz_name: str, at: Optional[datetime.datetime] = None) -> str:
    """Get the DST-aware offset label of ``tz_name`` at instant ``at``.

    Args:
        tz_name: IANA identifier (aliases and Windows names accepted)
        at: Instant to evaluate the offset at (defaults to now)

    Returns:
        Label such as "UTC-5" or "UTC+5:30"; "UTC+0" for unknown zones
    """
    try:
        zone = _require_zone(tz_name)
        return format_offset_label(_utc_offset(zone, at or now_utc()))
    except Exception as e:
        logger.debug("Offset lookup failed for %r: %s", tz_name, e)
        return "UTC+0"


def get_short_name(tz_name: str, at: Optional[datetime.datetime] = None) -> str:
    """Get the abbreviated zone name (e.g. "EST") at ``at``; "" if unknown."""
    try:
        zone = _require_zone(tz_name)
        return _as_aware(at or now_utc()).astimezone(zone).tzname() or ""
    except Exception as e:
        logger.debug("Short name lookup failed for %r: %s", tz_name, e)
        return ""


def get_display_name(tz_name: str, at: Optional[datetime.datetime] = None) -> str:
    """Get the long zone name (e.g. "Eastern Daylight Time") at ``at``.

    Falls back to the curated common-zone label, then to the zone identifier.
    """
    try:
        zone = _require_zone(tz_name)
        abbrev = _as_aware(at or now_utc()).astimezone(zone).tzname() or ""
    except Exception as e:
        logger.debug("Display name lookup failed for %r: %s", tz_name, e)
        return tz_name

    canonical = str(zone.key)
    override = ZONE_LONG_NAME_OVERRIDES.get((canonical, abbrev))
    if override:
        return override
    if abbrev in LONG_NAME_MAP:
        return LONG_NAME_MAP[abbrev]
    for value, label in COMMON_TIMEZONES:
        if value == canonical:
            return label
    return tz_name


def get_common_timezones(at: Optional[datetime.datetime] = None) -> list[dict[str, str]]:
    """List commonly used zones with their label and current offset."""
    moment = at or now_utc()
    return [
        {"value": value, "label": label, "offset": get_offset_label(value, moment)}
        for value, label in COMMON_TIMEZONES
    ]


def convert_to_timezone(
    dt: datetime.datetime,
    tz_str: str,
    source_tz: Optional[str] = None,
) -> datetime.datetime:
    """Convert a datetime to a specific timezone.

    Args:
        dt: Datetime to convert; a naive value is read in ``source_tz`` (UTC if unset)
        tz_str: Target timezone identifier (unknown zones degrade to the host zone)
        source_tz: Zone to interpret a naive ``dt`` in

    Returns:
        Datetime in the target timezone
    """
    if dt.tzinfo is None:
        source = _zone_or_system(source_tz) if source_tz else datetime.timezone.utc
        dt = dt.replace(tzinfo=source)
    return dt.astimezone(_zone_or_system(tz_str))


def wall_clock_to_instant(date_str: str, time_str: str, tz_name: str) -> datetime.datetime:
    """Interpret a wall-clock date/time in ``tz_name`` as an absolute instant.

    Args:
        date_str: "YYYY-MM-DD"
        time_str: "HH:MM" (seconds optional)
        tz_name: Zone the wall clock is observed in; unknown zones use the host zone

    Returns:
        Aware datetime in UTC

    Raises:
        ValueError: If the date or time string is malformed
    """
    local = datetime.datetime.combine(
        datetime.date.fromisoformat(date_str.strip()),
        datetime.time.fromisoformat(time_str.strip()),
    )
    zone = _zone_or_system(tz_name)
    # Round-trip through UTC so wall-clock times inside a DST gap move forward
    return local.replace(tzinfo=zone).astimezone(datetime.timezone.utc)


def instant_to_wall_clock(instant: datetime.datetime, tz_name: str) -> WallClock:
    """Render ``instant`` as the date/time strings observed in ``tz_name``."""
    local = _as_aware(instant).astimezone(_zone_or_system(tz_name))
    return WallClock(date=local.strftime("%Y-%m-%d"), time=local.strftime("%H:%M"))


def format_in_zone(instant: datetime.datetime, pattern: str, tz_name: str) -> str:
    """Substitute yyyy/MM/dd/HH/mm/a tokens with the zone's local fields.

    A standalone ``a`` token renders AM/PM and switches ``HH`` to a 12-hour
    clock. Other letters are copied through unchanged.

    Examples:
        >>> from datetime import datetime, timezone
        >>> format_in_zone(datetime(2024, 1, 1, 17, 5, tzinfo=timezone.utc), "yyyy-MM-dd HH:mm", "UTC")
        '2024-01-01 17:05'
    """
    local = _as_aware(instant).astimezone(_zone_or_system(tz_name))
    twelve_hour = any(m.group(0) == "a" for m in _FORMAT_TOKEN_RE.finditer(pattern))
    hour = local.hour
    if twelve_hour:
        hour = hour % 12 or 12
    fields = {
        "yyyy": f"{local.year:04d}",
        "MM": f"{local.month:02d}",
        "dd": f"{local.day:02d}",
        "HH": f"{hour:02d}",
        "mm": f"{local.minute:02d}",
        "a": "AM" if local.hour < 12 else "PM",
    }
    return _FORMAT_TOKEN_RE.sub(lambda m: fields[m.group(0)], pattern)
