"""Conversion of parsed calendar entries into served ``Event`` records."""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Optional

from linkki_events.core.timezone_utils import DEFAULT_FEED_TIMEZONE, resolve_zone

from .datetime_utils import serialize_datetime_utc
from .locations import LocationLinker
from .models import Event, EventLocation, ParsedCalendarEntry

logger = logging.getLogger(__name__)

RANGE_SEPARATOR = "–"  # en dash
DEFAULT_HORIZON_DAYS = 365


def format_date(dt: datetime) -> str:
    """Finnish short date without zero padding, e.g. 12.6.2024."""
    return f"{dt.day}.{dt.month}.{dt.year}"


def format_time(dt: datetime) -> str:
    return f"{dt.hour:02d}:{dt.minute:02d}"


def effective_end(entry: ParsedCalendarEntry) -> datetime:
    """Instant after which the entry is over.

    Open-ended timed entries end at their start; all-day entries without an
    end cover their whole day.
    """
    if entry.end is not None:
        return entry.end
    if entry.all_day:
        return entry.start + timedelta(days=1)
    return entry.start


class EventNormalizer:
    """Filters, orders and formats parsed entries."""

    def __init__(
        self,
        display_timezone: str = DEFAULT_FEED_TIMEZONE,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        linker: Optional[LocationLinker] = None,
    ):
        """Initialize the normalizer.

        Args:
            display_timezone: Zone used for the human-readable ``date`` field
            horizon_days: Entries starting later than this many days from now are dropped
            linker: Location URL resolver (no links beyond the entry's own when omitted)
        """
        self.display_zone = resolve_zone(display_timezone)
        self.horizon = timedelta(days=horizon_days)
        self.linker = linker or LocationLinker()

    @classmethod
    def from_settings(cls, settings: Any, linker: Optional[LocationLinker] = None) -> "EventNormalizer":
        return cls(
            display_timezone=getattr(settings, "default_timezone", DEFAULT_FEED_TIMEZONE),
            horizon_days=getattr(settings, "horizon_days", DEFAULT_HORIZON_DAYS),
            linker=linker,
        )

    def normalize(
        self,
        entries: Iterable[ParsedCalendarEntry],
        now: datetime,
        linker: Optional[LocationLinker] = None,
    ) -> list[Event]:
        """Turn parsed entries into the ordered list served to clients.

        Drops entries that are over (end, or start when open-ended, strictly
        before ``now``) and entries starting beyond the horizon. Sorting is
        stable, so entries with equal starts keep feed order.

        Args:
            entries: Parsed entries in feed order
            now: Current aware time
            linker: Overrides the configured location linker for this call

        Returns:
            Events ascending by start
        """
        linker = linker or self.linker
        latest_start = now + self.horizon

        upcoming = [
            entry
            for entry in entries
            if not effective_end(entry) < now and not entry.start > latest_start
        ]
        upcoming.sort(key=lambda entry: entry.start)

        events = [self.to_event(entry, linker) for entry in upcoming]
        logger.debug("Normalized %d upcoming events", len(events))
        return events

    def to_event(self, entry: ParsedCalendarEntry, linker: Optional[LocationLinker] = None) -> Event:
        linker = linker or self.linker

        if entry.all_day:
            start_iso = entry.start.date().isoformat()
            if entry.end is None:
                end_iso = None
            elif entry.timed_end:
                end_iso = serialize_datetime_utc(entry.end)
            else:
                end_iso = entry.end.date().isoformat()
        else:
            start_iso = serialize_datetime_utc(entry.start)
            end_iso = serialize_datetime_utc(entry.end) if entry.end is not None else None

        location = None
        if entry.location_name:
            location = EventLocation(
                string=entry.location_name,
                url=linker.url_for(entry.location_name, entry.location_url),
            )

        return Event(
            summary=entry.title,
            date=self.format_date_range(entry),
            start_iso8601=start_iso,
            end_iso8601=end_iso,
            location=location,
            description=entry.description,
        )

    def format_date_range(self, entry: ParsedCalendarEntry) -> str:
        """Build the human-readable ``date`` string.

        Examples: ``12.6.2024 18:00–21:00``, ``12.6.2024 18:00–13.6.2024 02:00``,
        ``12.6.2024 18:00``, ``12.6.2024``, ``12.6.2024–14.6.2024``,
        ``12.6.2024–14.6.2024 12:00``.
        """
        if entry.all_day:
            if entry.timed_end and entry.end is not None:
                end = entry.end.astimezone(self.display_zone)
                return f"{format_date(entry.start)}{RANGE_SEPARATOR}{format_date(end)} {format_time(end)}"
            # All-day dates stay in the feed zone; ICS end dates are exclusive
            first_day = entry.start
            last_day = entry.end - timedelta(days=1) if entry.end is not None else first_day
            if last_day.date() <= first_day.date():
                return format_date(first_day)
            return f"{format_date(first_day)}{RANGE_SEPARATOR}{format_date(last_day)}"

        start = entry.start.astimezone(self.display_zone)
        text = f"{format_date(start)} {format_time(start)}"
        if entry.end is None:
            return text

        end = entry.end.astimezone(self.display_zone)
        if end.date() == start.date():
            return f"{text}{RANGE_SEPARATOR}{format_time(end)}"
        return f"{text}{RANGE_SEPARATOR}{format_date(end)} {format_time(end)}"
