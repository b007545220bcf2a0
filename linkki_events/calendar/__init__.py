"""Calendar feed ingestion: fetching, parsing and normalization."""

from .fetcher import (
    FeedFetcher,
    FeedFetchError,
    FeedHTTPStatusError,
    FeedTimeoutError,
    FeedUnreachableError,
    FetchErrorReason,
)
from .loader import CalendarEventLoader
from .models import Event, EventLocation, FeedSource, ParsedCalendarEntry, ParseResult, RawFeedDocument
from .normalizer import EventNormalizer
from .parser import CalendarParseError, CalendarParser

__all__ = [
    "CalendarEventLoader",
    "CalendarParseError",
    "CalendarParser",
    "Event",
    "EventLocation",
    "EventNormalizer",
    "FeedFetchError",
    "FeedFetcher",
    "FeedHTTPStatusError",
    "FeedSource",
    "FeedTimeoutError",
    "FeedUnreachableError",
    "FetchErrorReason",
    "ParseResult",
    "ParsedCalendarEntry",
    "RawFeedDocument",
]
