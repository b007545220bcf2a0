"""Data models for calendar feed processing."""

import hashlib
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from linkki_events.core.timezone_utils import now_utc as _now_utc


def normalize_ics_for_hashing(content: str) -> str:
    """Remove volatile DTSTAMP fields for stable hash computation.

    Calendar exporters regenerate DTSTAMP on every download even if event data
    is unchanged. Removing it allows hash-based change detection.

    Args:
        content: Raw ICS file content

    Returns:
        Normalized ICS content with DTSTAMP lines removed
    """
    return "".join(
        line for line in content.splitlines(keepends=True) if not line.startswith("DTSTAMP")
    )


def compute_normalized_hash(content: str) -> str:
    """Compute SHA-256 hash of normalized ICS content."""
    normalized = normalize_ics_for_hashing(content)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class FeedSource(BaseModel):
    """Configuration for the upstream calendar feed."""

    url: str = Field(..., description="ICS calendar URL")
    timeout: float = Field(default=15.0, gt=0, description="HTTP timeout in seconds")
    spaces_url: Optional[str] = Field(
        default=None, description="JSON list of university spaces used for location links"
    )

    model_config = ConfigDict(frozen=True)


class RawFeedDocument(BaseModel):
    """Feed bytes plus the identifiers used to skip reprocessing identical content."""

    content: bytes = b""
    fetched_at: datetime = Field(default_factory=_now_utc)
    etag: Optional[str] = None
    not_modified: bool = False
    status_code: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    @property
    def content_hash(self) -> Optional[str]:
        """SHA-256 of the content without DTSTAMP lines, None for a 304 response."""
        if self.not_modified:
            return None
        return compute_normalized_hash(self.text)


class ParsedCalendarEntry(BaseModel):
    """One VEVENT (or one expanded occurrence) extracted from the feed."""

    uid: str = Field(..., description="Raw-entry identifier used for duplicate suppression")
    title: str
    start: datetime = Field(..., description="Aware start instant")
    end: Optional[datetime] = Field(default=None, description="Aware end instant, None if open-ended")
    all_day: bool = False
    timed_end: bool = Field(default=False, description="All-day start whose DTEND carries a time of day")
    location_name: Optional[str] = None
    location_url: Optional[str] = None
    description: Optional[str] = None
    recurrence_id: Optional[datetime] = None
    is_recurring_instance: bool = False

    model_config = ConfigDict(frozen=True)


class ParseResult(BaseModel):
    """Result of parsing one feed document."""

    entries: list[ParsedCalendarEntry] = Field(default_factory=list)
    calendar_name: Optional[str] = None
    timezone: Optional[str] = None
    anomalies: int = 0
    total_components: int = 0
    warnings: list[str] = Field(default_factory=list)


class EventLocation(BaseModel):
    """Location object of the wire format."""

    string: str
    url: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Event(BaseModel):
    """Output record served by GET /events."""

    summary: str
    date: str
    start_iso8601: str
    end_iso8601: Optional[str] = None
    location: Optional[EventLocation] = None
    description: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON object; ``description`` is included only when set."""
        data = self.model_dump(mode="json")
        if data.get("description") is None:
            data.pop("description", None)
        return data
