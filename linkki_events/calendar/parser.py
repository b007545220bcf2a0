"""iCalendar feed parser for linkki_events."""

import logging
from datetime import datetime
from typing import Any, Optional, Union

from icalendar import Calendar

from linkki_events.core.timezone_utils import DEFAULT_FEED_TIMEZONE, now_utc

from .datetime_utils import DateTimeResolver
from .event_parser import EntryAnomaly, EventComponentParser, ParsedComponent
from .models import ParsedCalendarEntry, ParseResult, RawFeedDocument
from .rrule_expander import RecurrenceConfig, RecurrenceExpander, RecurrenceExpansionError

logger = logging.getLogger(__name__)


class CalendarParseError(ValueError):
    """The document is not a recognizable calendar. Aborts the whole parse."""

    reason = "unrecognized_format"


def _decode(doc: Union[RawFeedDocument, str, bytes]) -> str:
    if isinstance(doc, RawFeedDocument):
        return doc.text
    if isinstance(doc, bytes):
        return doc.decode("utf-8", errors="replace")
    return doc


class CalendarParser:
    """Parses ICS documents into ordered ``ParsedCalendarEntry`` records.

    Individual broken entries are skipped and counted as anomalies. Only a
    document that is not a calendar at all raises ``CalendarParseError``.
    """

    def __init__(
        self,
        default_timezone: str = DEFAULT_FEED_TIMEZONE,
        recurrence: Optional[RecurrenceConfig] = None,
    ) -> None:
        """Initialize the parser.

        Args:
            default_timezone: Zone for floating times when the feed declares none
            recurrence: Recurrence expansion settings
        """
        self.default_timezone = default_timezone
        self.expander = RecurrenceExpander(recurrence)

    @classmethod
    def from_settings(cls, settings: Any) -> "CalendarParser":
        return cls(
            default_timezone=getattr(settings, "default_timezone", DEFAULT_FEED_TIMEZONE),
            recurrence=RecurrenceConfig.from_settings(settings),
        )

    def parse(
        self,
        doc: Union[RawFeedDocument, str, bytes],
        now: Optional[datetime] = None,
    ) -> ParseResult:
        """Parse a calendar document.

        Args:
            doc: Fetched document, or raw ICS text
            now: Reference time for recurrence expansion (defaults to now_utc())

        Returns:
            ParseResult with entries in feed order, recurring masters expanded

        Raises:
            CalendarParseError: If the document is empty or not an iCalendar
        """
        now = now or now_utc()
        text = _decode(doc)

        if not text or not text.strip():
            logger.warning("Empty calendar document")
            raise CalendarParseError("Empty calendar document")

        if "BEGIN:VCALENDAR" not in text:
            logger.warning("Document has no BEGIN:VCALENDAR delimiter")
            raise CalendarParseError("Missing BEGIN:VCALENDAR")

        try:
            calendar = Calendar.from_ical(text)
        except ValueError as e:
            logger.warning("Calendar document could not be parsed: %s", e)
            raise CalendarParseError(f"Unparseable calendar: {e}") from e

        if getattr(calendar, "name", None) != "VCALENDAR":
            raise CalendarParseError(f"Top-level component is {calendar.name!r}, not VCALENDAR")

        calendar_name = self._get_calendar_property(calendar, "X-WR-CALNAME")
        timezone_str = self._get_calendar_property(calendar, "X-WR-TIMEZONE")
        resolver = DateTimeResolver(timezone_str, self.default_timezone)
        event_parser = EventComponentParser(resolver)

        parsed: list[ParsedComponent] = []
        warnings: list[str] = []
        anomalies = 0
        total_components = 0

        for component in calendar.walk("VEVENT"):
            total_components += 1
            try:
                parsed.append(event_parser.parse_event_component(component))
            except EntryAnomaly as e:
                anomalies += 1
                warning = f"Skipping entry {e.uid}: {e}"
                warnings.append(warning)
                logger.warning(warning)

        entries, expansion_anomalies = self._expand(parsed, now, warnings)
        anomalies += expansion_anomalies
        entries = self._deduplicate(entries)

        logger.debug(
            "Parsed %d entries from %d VEVENTs (%d anomalies)",
            len(entries),
            total_components,
            anomalies,
        )

        return ParseResult(
            entries=entries,
            calendar_name=calendar_name,
            timezone=timezone_str,
            anomalies=anomalies,
            total_components=total_components,
            warnings=warnings,
        )

    def _expand(
        self, parsed: list[ParsedComponent], now: datetime, warnings: list[str]
    ) -> tuple[list[ParsedCalendarEntry], int]:
        """Expand recurring masters and apply RECURRENCE-ID overrides, keeping feed order."""
        overridden: dict[str, set[datetime]] = {}
        for item in parsed:
            if item.entry.recurrence_id is not None:
                overridden.setdefault(item.entry.uid, set()).add(item.entry.recurrence_id)

        entries: list[ParsedCalendarEntry] = []
        anomalies = 0

        for item in parsed:
            entry = item.entry
            if item.cancelled:
                logger.debug("Dropping cancelled entry %s", entry.uid)
                continue

            if entry.recurrence_id is None and item.is_recurring:
                try:
                    entries.extend(self.expander.expand(item, now, overridden.get(entry.uid)))
                    continue
                except RecurrenceExpansionError as e:
                    anomalies += 1
                    warning = f"Keeping only the first occurrence of {entry.uid}: {e}"
                    warnings.append(warning)
                    logger.warning(warning)

            entries.append(entry)

        return entries, anomalies

    @staticmethod
    def _deduplicate(entries: list[ParsedCalendarEntry]) -> list[ParsedCalendarEntry]:
        """Keep the first entry for each (uid, start) pair."""
        seen: set[tuple[str, datetime]] = set()
        unique = []
        for entry in entries:
            key = (entry.uid, entry.start)
            if key in seen:
                logger.debug("Dropping duplicate entry %s at %s", entry.uid, entry.start)
                continue
            seen.add(key)
            unique.append(entry)
        return unique

    @staticmethod
    def _get_calendar_property(calendar: Calendar, prop_name: str) -> Optional[str]:
        prop = calendar.get(prop_name)
        return str(prop).strip() or None if prop else None
