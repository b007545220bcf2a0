"""Shared fixtures for linkki_events tests."""

from collections.abc import AsyncIterator, Callable, Generator
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from linkki_events.core.http_client import close_all_clients

SAUNA_ICS = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Google Inc//Google Calendar 70.9054//EN
X-WR-CALNAME:Linkki Jyväskylä ry
X-WR-TIMEZONE:Europe/Helsinki
BEGIN:VEVENT
UID:sauna-2024@linkki
DTSTAMP:20240601T080000Z
DTSTART;TZID=Europe/Helsinki:20240612T180000
DTEND;TZID=Europe/Helsinki:20240612T210000
SUMMARY:Sauna ilta
LOCATION:Linkki
END:VEVENT
END:VCALENDAR
"""


def make_ics(*events: str, calendar_timezone: str | None = "Europe/Helsinki") -> str:
    """Wrap VEVENT bodies (without BEGIN/END lines) in a calendar document."""
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//linkki-events tests//EN"]
    if calendar_timezone:
        lines.append(f"X-WR-TIMEZONE:{calendar_timezone}")
    for body in events:
        lines.append("BEGIN:VEVENT")
        lines.extend(line.strip() for line in body.strip().splitlines())
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 6, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def sauna_ics() -> str:
    """Single timed event, the canonical example of the /events format."""
    return SAUNA_ICS


@pytest.fixture
def ics_factory() -> Callable[..., str]:
    return make_ics


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], Any]], httpx.AsyncClient]:
    """Build an httpx.AsyncClient backed by a MockTransport handler."""

    def _build(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _build


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear linkki_events environment overrides around every test."""
    for key in (
        "LINKKI_EVENTS_TEST_TIME",
        "LINKKI_EVENTS_DEBUG",
        "LINKKI_EVENTS_LOG_LEVEL",
        "LINKKI_EVENTS_DEFAULT_TIMEZONE",
    ):
        monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after each test to avoid leaking connections."""
    yield
    await close_all_clients()
