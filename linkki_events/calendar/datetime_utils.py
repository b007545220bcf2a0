"""DateTime helpers for iCalendar properties.

Every value leaving this module is a timezone-aware ``datetime``. Date-only
values become local midnight in the feed zone and are flagged as all-day.
"""

import logging
from datetime import UTC, date, datetime, time, tzinfo
from typing import Any, Optional

from linkki_events.core.timezone_utils import DEFAULT_FEED_TIMEZONE, resolve_zone

logger = logging.getLogger(__name__)


def serialize_datetime_utc(dt: datetime) -> str:
    """Serialize datetime to ISO 8601 UTC string with Z suffix.

    Args:
        dt: Datetime to serialize (timezone-aware or naive)

    Returns:
        ISO 8601 string with Z suffix (e.g., "2024-06-12T15:00:00Z")

    Raises:
        ValueError: If datetime is None

    Examples:
        >>> from datetime import datetime, timezone
        >>> serialize_datetime_utc(datetime(2024, 6, 12, 15, 0, tzinfo=timezone.utc))
        '2024-06-12T15:00:00Z'
    """
    if dt is None:
        raise ValueError("Cannot serialize None datetime")

    dt_utc = dt.astimezone(UTC) if dt.tzinfo is not None else dt.replace(tzinfo=UTC)
    return dt_utc.replace(microsecond=0).isoformat().replace("+00:00", "Z")


class DateTimeResolver:
    """Turns iCalendar date/datetime properties into aware datetimes.

    Zone precedence for a value: its own zone (icalendar resolves TZIDs it
    knows), then its TZID parameter normalized by our resolver, then the
    calendar's X-WR-TIMEZONE, then the configured default zone.
    """

    def __init__(self, calendar_timezone: Optional[str] = None, default_timezone: str = DEFAULT_FEED_TIMEZONE):
        """Initialize the resolver.

        Args:
            calendar_timezone: The feed's declared zone (X-WR-TIMEZONE), if any
            default_timezone: Zone used when the feed declares none
        """
        self.default_timezone = default_timezone
        self.calendar_timezone = calendar_timezone
        self.floating_zone: tzinfo = resolve_zone(calendar_timezone or default_timezone, default_timezone)

    def zone_for(self, tzid: Optional[str]) -> tzinfo:
        """Return the zone for a TZID parameter, falling back to the floating zone."""
        if not tzid:
            return self.floating_zone
        return resolve_zone(tzid, str(self.floating_zone))

    def resolve(self, value: Any, tzid: Optional[str] = None) -> tuple[datetime, bool]:
        """Convert a decoded date or datetime into an aware datetime.

        Args:
            value: ``prop.dt`` of a DTSTART/DTEND/RECURRENCE-ID style property
            tzid: TZID parameter of the property, if any

        Returns:
            Tuple of (aware datetime, is_all_day)

        Raises:
            TypeError: If the value is neither a date nor a datetime
        """
        if isinstance(value, datetime):
            if value.tzinfo is None:
                if tzid:
                    logger.debug("Resolving unknown TZID %r through zone aliases", tzid)
                return value.replace(tzinfo=self.zone_for(tzid)), False
            return value, False

        if isinstance(value, date):
            return datetime.combine(value, time.min, tzinfo=self.floating_zone), True

        raise TypeError(f"Unsupported date value: {value!r}")

    def resolve_property(self, prop: Any) -> tuple[datetime, bool]:
        """Resolve an icalendar property object (anything with ``.dt`` and ``.params``)."""
        params = getattr(prop, "params", {}) or {}
        return self.resolve(prop.dt, params.get("TZID"))

    def resolve_optional(self, prop: Any) -> Optional[datetime]:
        """Resolve an optional property, returning None when absent or undecodable."""
        if prop is None:
            return None
        try:
            return self.resolve_property(prop)[0]
        except (ValueError, TypeError, AttributeError) as e:
            logger.debug("Ignoring undecodable date property: %s", e)
            return None
