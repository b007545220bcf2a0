"""VEVENT component parsing for calendar feeds.

Turns one icalendar VEVENT into a ``ParsedCalendarEntry`` plus the recurrence
data the expander needs. Problems with a single component raise
``EntryAnomaly``; the feed parser counts those and moves on.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from icalendar import Event as ICalEvent

from linkki_events.core.config_manager import (
    MAX_EVENT_DESCRIPTION_LENGTH,
    MAX_EVENT_LOCATION_LENGTH,
    MAX_EVENT_SUMMARY_LENGTH,
)

from .datetime_utils import DateTimeResolver
from .models import ParsedCalendarEntry

logger = logging.getLogger(__name__)


class EntryAnomaly(ValueError):
    """A single calendar entry could not be used. Never fatal to the feed."""

    def __init__(self, message: str, uid: Optional[str] = None):
        super().__init__(message)
        self.uid = uid


@dataclass
class ParsedComponent:
    """A parsed VEVENT together with its recurrence data."""

    entry: ParsedCalendarEntry
    rrule: Optional[str] = None
    rdates: list[datetime] = field(default_factory=list)
    exdates: list[datetime] = field(default_factory=list)
    rdate_durations: dict[datetime, timedelta] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def duration(self) -> Optional[timedelta]:
        if self.entry.end is None:
            return None
        return self.entry.end - self.entry.start

    @property
    def is_recurring(self) -> bool:
        return bool(self.rrule or self.rdates)


def _truncate(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    return value[:limit]


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class EventComponentParser:
    """Parser for iCalendar VEVENT components."""

    def __init__(self, resolver: DateTimeResolver):
        """Initialize event component parser.

        Args:
            resolver: Zone-aware resolver for date and datetime properties
        """
        self.resolver = resolver

    def parse_event_component(self, component: ICalEvent) -> ParsedComponent:
        """Parse a single VEVENT component.

        Args:
            component: iCalendar VEVENT component

        Returns:
            ParsedComponent with the entry and its recurrence data

        Raises:
            EntryAnomaly: If a mandatory field is missing or undecodable
        """
        uid = str(component.get("UID") or "").strip() or f"generated-{uuid.uuid4()}"

        try:
            title = _truncate(self._text(component.get("SUMMARY")), MAX_EVENT_SUMMARY_LENGTH)
            if title is None:
                raise EntryAnomaly("Event missing SUMMARY", uid)

            start, end, all_day, timed_end = self._parse_event_times(component, uid)
            location_name, location_url = self._parse_location(component.get("LOCATION"))

            entry = ParsedCalendarEntry(
                uid=uid,
                title=title,
                start=start,
                end=end,
                all_day=all_day,
                timed_end=timed_end,
                location_name=location_name,
                location_url=location_url,
                description=_truncate(
                    self._text(component.get("DESCRIPTION")), MAX_EVENT_DESCRIPTION_LENGTH
                ),
                recurrence_id=self.resolver.resolve_optional(component.get("RECURRENCE-ID")),
            )

            rdate_durations: dict[datetime, timedelta] = {}
            return ParsedComponent(
                entry=entry,
                rrule=self._rrule_string(component.get("RRULE")),
                rdates=self._collect_dates(component.get("RDATE"), rdate_durations),
                rdate_durations=rdate_durations,
                exdates=self._collect_dates(component.get("EXDATE")),
                cancelled=str(component.get("STATUS") or "").upper() == "CANCELLED",
            )
        except EntryAnomaly:
            raise
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            raise EntryAnomaly(f"Undecodable event: {e}", uid) from e

    @staticmethod
    def _text(prop: Any) -> Optional[str]:
        if prop is None:
            return None
        return str(prop)

    def _parse_event_times(
        self, component: ICalEvent, uid: str
    ) -> tuple[datetime, Optional[datetime], bool, bool]:
        """Parse start and end.

        End comes from DTEND, else DTSTART + DURATION, else None (open-ended).
        The last flag marks a DATE start paired with a DATE-TIME DTEND.

        Raises:
            EntryAnomaly: If DTSTART is missing or the end precedes the start
        """
        dtstart = component.get("DTSTART")
        if dtstart is None:
            raise EntryAnomaly("Event missing DTSTART", uid)

        start, all_day = self.resolver.resolve_property(dtstart)

        end: Optional[datetime] = None
        end_all_day = all_day
        dtend = component.get("DTEND")
        if dtend is not None:
            end, end_all_day = self.resolver.resolve_property(dtend)
        else:
            duration = component.get("DURATION")
            if duration is not None and isinstance(duration.dt, timedelta):
                end = start + duration.dt

        if end is not None and end < start:
            raise EntryAnomaly("Event ends before it starts", uid)

        return start, end, all_day, all_day and not end_all_day

    @staticmethod
    def _parse_location(prop: Any) -> tuple[Optional[str], Optional[str]]:
        """Return (location name, ALTREP URL) from a LOCATION property."""
        name = _truncate(EventComponentParser._text(prop), MAX_EVENT_LOCATION_LENGTH)
        if name is None:
            return None, None

        params = getattr(prop, "params", {}) or {}
        altrep = params.get("ALTREP")
        url = str(altrep).strip().strip('"') if altrep else None
        return name, url or None

    @staticmethod
    def _rrule_string(prop: Any) -> Optional[str]:
        props = _as_list(prop)
        if not props:
            return None
        if len(props) > 1:
            logger.debug("Multiple RRULE properties, using the first")
        raw = props[0].to_ical()
        return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

    def _collect_dates(
        self, prop: Any, periods: Optional[dict[datetime, timedelta]] = None
    ) -> list[datetime]:
        """Collect EXDATE/RDATE values as aware datetimes.

        icalendar returns a single vDDDLists or a list of them when the property
        repeats. Period values contribute their start, and their length is
        recorded in ``periods`` keyed by that start when a mapping is given.
        """
        dates: list[datetime] = []
        for date_list in _as_list(prop):
            params = getattr(date_list, "params", {}) or {}
            tzid = params.get("TZID")
            for item in getattr(date_list, "dts", []):
                value = item.dt
                period_end = None
                if isinstance(value, tuple):
                    value, period_end = value
                try:
                    resolved, _ = self.resolver.resolve(value, tzid)
                    if periods is not None and period_end is not None:
                        if isinstance(period_end, timedelta):
                            length = period_end
                        else:
                            length = self.resolver.resolve(period_end, tzid)[0] - resolved
                        if length >= timedelta(0):
                            periods[resolved] = length
                except TypeError:
                    logger.debug("Skipping unsupported date list value %r", value)
                    continue
                dates.append(resolved)
        return dates
