"""Recurrence expansion (RRULE, RDATE, EXDATE) for parsed calendar entries."""

import itertools
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any, Optional

from dateutil.rrule import rruleset, rrulestr

from .event_parser import ParsedComponent
from .models import ParsedCalendarEntry

logger = logging.getLogger(__name__)

_UNTIL_RE = re.compile(r"UNTIL=(\d{8}(?:T\d{6})?)(Z?)", re.IGNORECASE)


class RecurrenceExpansionError(ValueError):
    """A recurrence rule could not be interpreted."""


@dataclass
class RecurrenceConfig:
    """Configuration for recurrence expansion.

    Consolidates all expansion settings with explicit defaults.
    """

    max_occurrences: int = 100
    horizon_days: int = 365
    lookback: timedelta = timedelta(days=1)

    @classmethod
    def from_settings(cls, settings: Any) -> "RecurrenceConfig":
        """Extract expansion configuration from a settings object.

        Args:
            settings: Configuration object (e.g. ServiceSettings)

        Returns:
            RecurrenceConfig with values from settings or defaults
        """
        return cls(
            max_occurrences=getattr(settings, "max_occurrences", 100),
            horizon_days=getattr(settings, "horizon_days", 365),
        )


class RecurrenceExpander:
    """Expands recurring masters into one entry per occurrence."""

    def __init__(self, config: Optional[RecurrenceConfig] = None):
        self.config = config or RecurrenceConfig()

    def expand(
        self,
        parsed: ParsedComponent,
        now: datetime,
        overridden: Optional[set[datetime]] = None,
    ) -> list[ParsedCalendarEntry]:
        """Expand a recurring master within the window around ``now``.

        The window is ``[now - 1 day - duration, now + horizon]`` so occurrences
        still in progress are kept. At most ``max_occurrences`` are produced.

        Args:
            parsed: Master component with its RRULE/RDATE/EXDATE data
            now: Current aware time
            overridden: Original start instants replaced by RECURRENCE-ID entries

        Returns:
            List of occurrence entries in chronological order

        Raises:
            RecurrenceExpansionError: If the rule cannot be parsed or evaluated
        """
        master = parsed.entry
        duration = parsed.duration
        zone = master.start.tzinfo

        lower = now - self.config.lookback - (duration or timedelta(0))
        upper = now + timedelta(days=self.config.horizon_days)

        if master.all_day:
            # All-day rules run on naive local dates so day boundaries follow the feed zone
            dtstart = master.start.replace(tzinfo=None)
            lower_b = lower.astimezone(zone).replace(tzinfo=None)
            upper_b = upper.astimezone(zone).replace(tzinfo=None)
        else:
            dtstart = master.start
            lower_b, upper_b = lower, upper

        try:
            rset = self._build_ruleset(parsed, dtstart, zone)
            occurrences = list(
                itertools.islice(
                    itertools.takewhile(
                        lambda occ: occ <= upper_b, rset.xafter(lower_b, inc=True)
                    ),
                    self.config.max_occurrences,
                )
            )
        except (ValueError, TypeError, OverflowError) as e:
            raise RecurrenceExpansionError(f"Invalid recurrence for {master.uid}: {e}") from e

        overridden = overridden or set()
        entries = []
        for occurrence in occurrences:
            start = occurrence.replace(tzinfo=zone) if occurrence.tzinfo is None else occurrence
            if start in overridden:
                logger.debug("Occurrence %s of %s replaced by an override", start, master.uid)
                continue
            length = parsed.rdate_durations.get(start, duration)
            entries.append(
                master.model_copy(
                    update={
                        "start": start,
                        "end": start + length if length is not None else None,
                        "is_recurring_instance": True,
                    }
                )
            )

        logger.debug("Expanded %s into %d occurrences", master.uid, len(entries))
        return entries

    def _build_ruleset(self, parsed: ParsedComponent, dtstart: datetime, zone: Optional[tzinfo]) -> rruleset:
        rset = rruleset()
        # DTSTART is always the first instance; rruleset drops the duplicate
        rset.rdate(dtstart)

        if parsed.rrule:
            rule_text = self._align_until(parsed.rrule, dtstart, zone)
            rset.rrule(rrulestr(rule_text, dtstart=dtstart))

        for rdate in parsed.rdates:
            rset.rdate(self._match_awareness(rdate, dtstart, zone))
        for exdate in parsed.exdates:
            rset.exdate(self._match_awareness(exdate, dtstart, zone))
        return rset

    @staticmethod
    def _match_awareness(value: datetime, dtstart: datetime, zone: Optional[tzinfo]) -> datetime:
        if dtstart.tzinfo is None:
            return value.astimezone(zone).replace(tzinfo=None)
        return value

    @staticmethod
    def _align_until(rule: str, dtstart: datetime, zone: Optional[tzinfo]) -> str:
        """Make UNTIL as naive or as UTC-aware as DTSTART.

        dateutil refuses a UTC UNTIL with a floating DTSTART and the reverse,
        both of which occur in real feeds.
        """
        match = _UNTIL_RE.search(rule)
        if match is None:
            return rule

        raw, utc_marker = match.group(1), match.group(2)
        fmt = "%Y%m%dT%H%M%S" if "T" in raw.upper() else "%Y%m%d"
        until = datetime.strptime(raw.upper(), fmt)

        if dtstart.tzinfo is None and utc_marker:
            local = until.replace(tzinfo=UTC).astimezone(zone).replace(tzinfo=None)
            replacement = f"UNTIL={local.strftime('%Y%m%dT%H%M%S')}"
        elif dtstart.tzinfo is not None and not utc_marker:
            if fmt == "%Y%m%d":
                until = until.replace(hour=23, minute=59, second=59)
            aware = until.replace(tzinfo=dtstart.tzinfo).astimezone(UTC)
            replacement = f"UNTIL={aware.strftime('%Y%m%dT%H%M%S')}Z"
        else:
            return rule

        return rule[: match.start()] + replacement + rule[match.end() :]
