"""Unit tests for linkki_events.calendar.parser.CalendarParser.

Covers timezone handling, per-entry anomalies, document level errors,
recurrence expansion with EXDATE and RECURRENCE-ID overrides, and
duplicate suppression.
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from linkki_events.calendar.models import RawFeedDocument
from linkki_events.calendar.parser import CalendarParseError, CalendarParser
from linkki_events.calendar.rrule_expander import RecurrenceConfig

pytestmark = [pytest.mark.unit]

NOW = datetime(2024, 6, 1, 0, 0, tzinfo=UTC)
HELSINKI = ZoneInfo("Europe/Helsinki")


@pytest.fixture
def parser() -> CalendarParser:
    return CalendarParser()


class TestCalendarParserTimezones:
    def test_parse_when_tzid_then_start_converted_to_utc_instant(self, parser, sauna_ics) -> None:
        result = parser.parse(sauna_ics, NOW)

        assert len(result.entries) == 1
        entry = result.entries[0]
        assert entry.title == "Sauna ilta"
        assert entry.start.astimezone(UTC) == datetime(2024, 6, 12, 15, 0, tzinfo=UTC)
        assert entry.end.astimezone(UTC) == datetime(2024, 6, 12, 18, 0, tzinfo=UTC)
        assert entry.location_name == "Linkki"
        assert result.calendar_name == "Linkki Jyväskylä ry"
        assert result.timezone == "Europe/Helsinki"

    def test_parse_when_floating_time_then_calendar_timezone_applies(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:floating@test
            DTSTART:20240612T180000
            DTEND:20240612T200000
            SUMMARY:Floating
            """
        )

        entry = parser.parse(ics, NOW).entries[0]

        assert entry.start.astimezone(UTC) == datetime(2024, 6, 12, 15, 0, tzinfo=UTC)

    def test_parse_when_no_calendar_timezone_then_default_zone_applies(self, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:floating@test
            DTSTART:20240115T120000
            SUMMARY:Winter
            """,
            calendar_timezone=None,
        )

        entry = CalendarParser(default_timezone="Europe/Helsinki").parse(ics, NOW).entries[0]

        assert entry.start.astimezone(UTC) == datetime(2024, 1, 15, 10, 0, tzinfo=UTC)

    def test_parse_when_windows_tzid_then_resolved(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:outlook@test
            DTSTART;TZID=FLE Standard Time:20240612T180000
            DTEND;TZID=FLE Standard Time:20240612T190000
            SUMMARY:Outlook export
            """
        )

        entry = parser.parse(ics, NOW).entries[0]

        assert entry.start.astimezone(UTC) == datetime(2024, 6, 12, 15, 0, tzinfo=UTC)

    def test_parse_when_utc_time_then_kept(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:utc@test
            DTSTART:20240612T150000Z
            SUMMARY:UTC event
            """
        )

        entry = parser.parse(ics, NOW).entries[0]

        assert entry.start == datetime(2024, 6, 12, 15, 0, tzinfo=UTC)
        assert entry.end is None

    def test_parse_when_all_day_then_local_midnight(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:allday@test
            DTSTART;VALUE=DATE:20240615
            DTEND;VALUE=DATE:20240617
            SUMMARY:Kesäpäivät
            """
        )

        entry = parser.parse(ics, NOW).entries[0]

        assert entry.all_day is True
        assert entry.start == datetime(2024, 6, 15, tzinfo=HELSINKI)
        assert entry.end == datetime(2024, 6, 17, tzinfo=HELSINKI)

    def test_parse_when_date_start_with_datetime_end_then_timed_end(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:mixed@test
            DTSTART;VALUE=DATE:20240603
            DTEND:20240605T090000Z
            SUMMARY:Leiri
            """
        )

        entry = parser.parse(ics, NOW).entries[0]

        assert entry.all_day is True
        assert entry.timed_end is True
        assert entry.end == datetime(2024, 6, 5, 9, 0, tzinfo=UTC)

    def test_parse_when_duration_then_end_computed(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:duration@test
            DTSTART:20240612T150000Z
            DURATION:PT2H
            SUMMARY:Two hours
            """
        )

        entry = parser.parse(ics, NOW).entries[0]

        assert entry.end - entry.start == timedelta(hours=2)


class TestCalendarParserFields:
    def test_parse_when_location_altrep_then_url_kept(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:altrep@test
            DTSTART:20240612T150000Z
            SUMMARY:Linked
            LOCATION;ALTREP="https://example.com/place":Agora
            DESCRIPTION:Bring a towel
            """
        )

        entry = parser.parse(ics, NOW).entries[0]

        assert entry.location_name == "Agora"
        assert entry.location_url == "https://example.com/place"
        assert entry.description == "Bring a towel"

    def test_parse_when_summary_too_long_then_truncated(self, parser, ics_factory) -> None:
        ics = ics_factory(
            f"""
            UID:long@test
            DTSTART:20240612T150000Z
            SUMMARY:{"x" * 300}
            """
        )

        entry = parser.parse(ics, NOW).entries[0]

        assert len(entry.title) == 200

    def test_parse_when_no_uid_then_generated(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            DTSTART:20240612T150000Z
            SUMMARY:Anonymous
            """
        )

        entry = parser.parse(ics, NOW).entries[0]

        assert entry.uid.startswith("generated-")


class TestCalendarParserAnomalies:
    def test_parse_when_one_entry_broken_then_others_kept(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:ok-1@test
            DTSTART:20240612T150000Z
            SUMMARY:First
            """,
            """
            UID:broken@test
            SUMMARY:No start
            """,
            """
            UID:ok-2@test
            DTSTART:20240613T150000Z
            SUMMARY:Second
            """,
        )

        result = parser.parse(ics, NOW)

        assert [entry.title for entry in result.entries] == ["First", "Second"]
        assert result.anomalies == 1
        assert result.total_components == 3
        assert any("broken@test" in warning for warning in result.warnings)

    def test_parse_when_missing_summary_then_anomaly(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:nosummary@test
            DTSTART:20240612T150000Z
            """
        )

        result = parser.parse(ics, NOW)

        assert result.entries == []
        assert result.anomalies == 1

    def test_parse_when_end_before_start_then_anomaly(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:backwards@test
            DTSTART:20240612T150000Z
            DTEND:20240612T140000Z
            SUMMARY:Backwards
            """
        )

        result = parser.parse(ics, NOW)

        assert result.entries == []
        assert result.anomalies == 1

    def test_parse_when_cancelled_then_dropped(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:cancelled@test
            DTSTART:20240612T150000Z
            SUMMARY:Called off
            STATUS:CANCELLED
            """
        )

        assert parser.parse(ics, NOW).entries == []

    @pytest.mark.parametrize(
        "document",
        [
            "",
            "   \n",
            "<html><body>Service unavailable</body></html>",
            "BEGIN:VEVENT\r\nSUMMARY:x\r\nEND:VEVENT\r\n",
        ],
    )
    def test_parse_when_not_a_calendar_then_parse_error(self, parser, document) -> None:
        with pytest.raises(CalendarParseError) as exc_info:
            parser.parse(document, NOW)

        assert exc_info.value.reason == "unrecognized_format"

    def test_parse_when_raw_document_then_decoded(self, parser, sauna_ics) -> None:
        doc = RawFeedDocument(content=sauna_ics.encode("utf-8"))

        result = parser.parse(doc, NOW)

        assert result.entries[0].title == "Sauna ilta"


class TestCalendarParserRecurrence:
    def test_parse_when_weekly_rule_with_exdate_then_expanded(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:weekly@test
            DTSTART;TZID=Europe/Helsinki:20240605T180000
            DTEND;TZID=Europe/Helsinki:20240605T200000
            RRULE:FREQ=WEEKLY;COUNT=4
            EXDATE;TZID=Europe/Helsinki:20240612T180000
            SUMMARY:Weekly
            """
        )

        entries = parser.parse(ics, NOW).entries

        starts = [entry.start.astimezone(UTC) for entry in entries]
        assert starts == [
            datetime(2024, 6, 5, 15, 0, tzinfo=UTC),
            datetime(2024, 6, 19, 15, 0, tzinfo=UTC),
            datetime(2024, 6, 26, 15, 0, tzinfo=UTC),
        ]
        assert all(entry.is_recurring_instance for entry in entries)
        assert all(entry.end - entry.start == timedelta(hours=2) for entry in entries)

    def test_parse_when_rule_crosses_dst_then_local_time_kept(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:dst@test
            DTSTART;TZID=Europe/Helsinki:20241020T180000
            RRULE:FREQ=WEEKLY;COUNT=2
            SUMMARY:Across DST
            """
        )

        entries = CalendarParser().parse(ics, datetime(2024, 10, 1, tzinfo=UTC)).entries

        assert [entry.start.astimezone(HELSINKI).hour for entry in entries] == [18, 18]
        assert entries[1].start.astimezone(UTC).hour == 16

    def test_parse_when_recurrence_id_override_then_replaces_occurrence(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:weekly@test
            DTSTART;TZID=Europe/Helsinki:20240605T180000
            DTEND;TZID=Europe/Helsinki:20240605T200000
            RRULE:FREQ=WEEKLY;COUNT=3
            SUMMARY:Weekly
            """,
            """
            UID:weekly@test
            RECURRENCE-ID;TZID=Europe/Helsinki:20240612T180000
            DTSTART;TZID=Europe/Helsinki:20240612T190000
            DTEND;TZID=Europe/Helsinki:20240612T210000
            SUMMARY:Weekly (moved)
            """,
        )

        entries = parser.parse(ics, NOW).entries

        by_title = sorted((entry.start.astimezone(UTC), entry.title) for entry in entries)
        assert by_title == [
            (datetime(2024, 6, 5, 15, 0, tzinfo=UTC), "Weekly"),
            (datetime(2024, 6, 12, 16, 0, tzinfo=UTC), "Weekly (moved)"),
            (datetime(2024, 6, 19, 15, 0, tzinfo=UTC), "Weekly"),
        ]

    def test_parse_when_rule_invalid_then_master_kept_and_counted(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:badrule@test
            DTSTART:20240612T150000Z
            RRULE:FREQ=WEEKLY;BYSETPOS=0
            SUMMARY:Bad rule
            """
        )

        result = parser.parse(ics, NOW)

        assert [entry.title for entry in result.entries] == ["Bad rule"]
        assert result.entries[0].is_recurring_instance is False
        assert result.anomalies == 1

    def test_parse_when_unbounded_rule_then_capped(self, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:daily@test
            DTSTART:20240601T150000Z
            RRULE:FREQ=DAILY
            SUMMARY:Daily
            """
        )
        parser = CalendarParser(recurrence=RecurrenceConfig(max_occurrences=10))

        entries = parser.parse(ics, NOW).entries

        assert len(entries) == 10

    def test_parse_when_rule_beyond_horizon_then_stops_at_horizon(self, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:daily@test
            DTSTART:20240601T150000Z
            RRULE:FREQ=DAILY
            SUMMARY:Daily
            """
        )
        parser = CalendarParser(recurrence=RecurrenceConfig(horizon_days=7))

        entries = parser.parse(ics, NOW).entries

        assert entries[-1].start <= NOW + timedelta(days=7)
        assert len(entries) == 7

    def test_parse_when_all_day_rule_with_utc_until_then_expanded(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:allday-weekly@test
            DTSTART;VALUE=DATE:20240603
            DTEND;VALUE=DATE:20240604
            RRULE:FREQ=WEEKLY;UNTIL=20240616T000000Z
            SUMMARY:Mondays
            """
        )

        entries = parser.parse(ics, NOW).entries

        assert [entry.start.date().isoformat() for entry in entries] == ["2024-06-03", "2024-06-10"]
        assert all(entry.all_day for entry in entries)

    def test_parse_when_rdate_period_then_occurrence_uses_period_end(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:rdate-period@test
            DTSTART:20240603T150000Z
            DTEND:20240603T160000Z
            RDATE;VALUE=PERIOD:20240605T150000Z/20240605T170000Z
            RDATE;VALUE=PERIOD:20240607T150000Z/PT30M
            SUMMARY:Extra sessions
            """
        )

        entries = parser.parse(ics, NOW).entries

        lengths = [(entry.start.astimezone(UTC).day, entry.end - entry.start) for entry in entries]
        assert lengths == [
            (3, timedelta(hours=1)),
            (5, timedelta(hours=2)),
            (7, timedelta(minutes=30)),
        ]

    def test_parse_when_duplicate_entries_then_first_kept(self, parser, ics_factory) -> None:
        ics = ics_factory(
            """
            UID:dup@test
            DTSTART:20240612T150000Z
            SUMMARY:Original
            """,
            """
            UID:dup@test
            DTSTART:20240612T150000Z
            SUMMARY:Copy
            """,
        )

        entries = parser.parse(ics, NOW).entries

        assert [entry.title for entry in entries] == ["Original"]
