"""Timezone resolution and clock utilities for linkki_events."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache
from typing import ClassVar

logger = logging.getLogger(__name__)

# Zone used for floating feed times and for the human-readable date strings
DEFAULT_FEED_TIMEZONE = "Europe/Helsinki"


class TimezoneResolver:
    """Maps the zone names found in calendar feeds to IANA identifiers."""

    # Windows timezone names emitted by Outlook/Exchange exports
    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        "FLE Standard Time": "Europe/Helsinki",  # Finland, Latvia, Estonia
        "GTB Standard Time": "Europe/Athens",
        "E. Europe Standard Time": "Europe/Bucharest",
        "W. Europe Standard Time": "Europe/Berlin",
        "Central Europe Standard Time": "Europe/Budapest",
        "Central European Standard Time": "Europe/Warsaw",
        "Romance Standard Time": "Europe/Paris",
        "GMT Standard Time": "Europe/London",
        "Greenwich Standard Time": "Atlantic/Reykjavik",
        "Russian Standard Time": "Europe/Moscow",
        "Pacific Standard Time": "America/Los_Angeles",
        "Mountain Standard Time": "America/Denver",
        "Central Standard Time": "America/Chicago",
        "Eastern Standard Time": "America/New_York",
        "China Standard Time": "Asia/Shanghai",
        "Tokyo Standard Time": "Asia/Tokyo",
        "India Standard Time": "Asia/Kolkata",
        "AUS Eastern Standard Time": "Australia/Sydney",
        "UTC": "UTC",
    }

    # Obsolete or alias names still found in older ICS files
    TZ_ALIAS_MAP: ClassVar[dict[str, str]] = {
        "UTC": "UTC",
        "GMT": "UTC",
        "Etc/UTC": "UTC",
        "Etc/GMT": "UTC",
        "Universal": "UTC",
        "Zulu": "UTC",
        "Z": "UTC",
        "EET": "Europe/Helsinki",
        "Europe/Mariehamn": "Europe/Helsinki",
        "US/Pacific": "America/Los_Angeles",
        "US/Eastern": "America/New_York",
    }

    def windows_to_iana(self, windows_tz: str) -> str | None:
        """Return the IANA name for a Windows timezone name, if known."""
        return self.WINDOWS_TZ_MAP.get(windows_tz)

    def resolve_alias(self, tz_name: str) -> str:
        """Resolve a timezone alias, returning the input unchanged when it is not one."""
        return self.TZ_ALIAS_MAP.get(tz_name, tz_name)


_resolver = TimezoneResolver()


def normalize_timezone_name(tz_str: str | None) -> str | None:
    """Normalize a timezone string to a canonical IANA identifier.

    Resolution order: Windows zone name, alias, plain IANA name. Every candidate
    is validated with zoneinfo.

    Args:
        tz_str: Timezone string (Windows name, alias, or IANA identifier)

    Returns:
        Canonical IANA timezone identifier or None if it cannot be resolved

    Examples:
        >>> normalize_timezone_name("FLE Standard Time")
        'Europe/Helsinki'
        >>> normalize_timezone_name("Etc/UTC")
        'UTC'
        >>> normalize_timezone_name("Invalid/Timezone") is None
        True
    """
    if not tz_str:
        return None

    candidate = tz_str.strip().strip('"')
    windows_tz = _resolver.windows_to_iana(candidate)
    if windows_tz:
        candidate = windows_tz
    else:
        candidate = _resolver.resolve_alias(candidate)

    try:
        zoneinfo.ZoneInfo(candidate)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError, OSError):
        logger.debug("Unknown timezone name %r", tz_str)
        return None
    return candidate


@lru_cache(maxsize=64)
def get_zone(tz_name: str) -> zoneinfo.ZoneInfo:
    """Return a cached ZoneInfo for an already validated IANA name."""
    return zoneinfo.ZoneInfo(tz_name)


def resolve_zone(tz_name: str | None, fallback: str = DEFAULT_FEED_TIMEZONE) -> zoneinfo.ZoneInfo:
    """Resolve a zone name to a ZoneInfo, falling back when it is unknown.

    Args:
        tz_name: Zone name from a feed or from configuration
        fallback: IANA name used when tz_name is empty or unknown

    Returns:
        ZoneInfo instance
    """
    normalized = normalize_timezone_name(tz_name)
    if normalized is None:
        if tz_name:
            logger.warning("Unknown timezone %r, falling back to %s", tz_name, fallback)
        normalized = normalize_timezone_name(fallback) or "UTC"
    return get_zone(normalized)


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the LINKKI_EVENTS_TEST_TIME environment
    variable (ISO 8601, e.g. "2024-06-12T12:00:00+03:00").

    Returns:
        Current time in UTC with timezone info
    """
    test_time = os.environ.get("LINKKI_EVENTS_TEST_TIME")
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(datetime.UTC)
            return dt.replace(tzinfo=datetime.UTC)
        except ValueError as e:
            logger.warning("Failed to parse LINKKI_EVENTS_TEST_TIME=%r: %s", test_time, e)

    return datetime.datetime.now(datetime.UTC)
