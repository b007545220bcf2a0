"""Fetch, parse and normalize pipeline run by each cache refresh."""

import asyncio
import datetime
import logging
from typing import Any, Optional

import httpx

from linkki_events.core.event_cache import CacheEntry, LoadOutcome

from .fetcher import FeedFetcher, FeedFetchError, FeedHTTPStatusError
from .locations import LocationLinker, Space, parse_spaces
from .models import FeedSource, ParsedCalendarEntry, RawFeedDocument
from .normalizer import EventNormalizer
from .parser import CalendarParser

logger = logging.getLogger(__name__)

# Recurrences are expanded relative to parse time, so unchanged feeds are reparsed daily
REPARSE_AFTER = datetime.timedelta(hours=24)


class CalendarEventLoader:
    """One refresh attempt: fetch the feed, parse it if it changed, normalize.

    Exceptions from the fetcher and parser propagate to the cache, which turns
    them into the stale fallback.
    """

    def __init__(
        self,
        fetcher: FeedFetcher,
        parser: CalendarParser,
        normalizer: EventNormalizer,
        spaces_url: Optional[str] = None,
        maps_fallback: bool = False,
    ):
        """Initialize the loader.

        Args:
            fetcher: Downloads the feed (and the spaces list)
            parser: Turns ICS text into entries
            normalizer: Turns entries into served events
            spaces_url: JSON list of university spaces, None to skip space links
            maps_fallback: Link unmatched locations to a Google Maps search
        """
        self.fetcher = fetcher
        self.parser = parser
        self.normalizer = normalizer
        self.spaces_url = spaces_url
        self.maps_fallback = maps_fallback

        self._spaces: list[Space] = []
        self._last_document: Optional[RawFeedDocument] = None
        self._parsed_at: Optional[datetime.datetime] = None

    @classmethod
    def from_settings(cls, settings: Any, client: Optional[httpx.AsyncClient] = None) -> "CalendarEventLoader":
        """Build the full pipeline from ServiceSettings.

        Args:
            settings: ServiceSettings (or any object with the same attributes)
            client: Optional HTTP client, the shared pooled client is used when omitted
        """
        source = FeedSource(
            url=settings.ics_url,
            timeout=settings.request_timeout,
            spaces_url=settings.spaces_url,
        )
        return cls(
            fetcher=FeedFetcher(source, client=client),
            parser=CalendarParser.from_settings(settings),
            normalizer=EventNormalizer.from_settings(settings),
            spaces_url=source.spaces_url,
            maps_fallback=settings.maps_fallback,
        )

    async def load(self, previous: Optional[CacheEntry], now: datetime.datetime) -> LoadOutcome:
        """Run one refresh.

        Args:
            previous: Current cache entry, whose ETag, hash and entries allow reuse
            now: Reference time for filtering and recurrence expansion

        Returns:
            LoadOutcome with the new events and the entries they came from

        Raises:
            FeedFetchError: The feed could not be downloaded
            CalendarParseError: The feed is not a calendar
        """
        etag = previous.etag if previous is not None else None
        spaces_task = asyncio.create_task(self._load_spaces())
        try:
            doc = await self.fetcher.fetch(etag=etag)
        except BaseException:
            spaces_task.cancel()
            raise
        spaces = await spaces_task
        linker = LocationLinker(spaces, maps_fallback=self.maps_fallback)

        reused = False
        if doc.not_modified:
            if previous is None or self._last_document is None:
                raise FeedHTTPStatusError("Feed answered 304 without a cached copy", 304, self.fetcher.source.url)
            content_hash = previous.content_hash
            etag = doc.etag or etag
            entries = self._reuse_entries(previous, now)
            reused = True
        else:
            content_hash = doc.content_hash
            etag = doc.etag
            if previous is not None and previous.content_hash == content_hash and self._last_document is not None:
                entries = self._reuse_entries(previous, now)
                reused = True
            else:
                entries = self._parse(doc, now)

        events = self.normalizer.normalize(entries, now, linker)
        return LoadOutcome(
            events=tuple(events),
            entries=tuple(entries),
            etag=etag,
            content_hash=content_hash,
            reused=reused,
        )

    def _parse(self, doc: RawFeedDocument, now: datetime.datetime) -> list[ParsedCalendarEntry]:
        result = self.parser.parse(doc, now)
        if result.anomalies:
            logger.warning(
                "Feed parsed with %d skipped entries out of %d",
                result.anomalies,
                result.total_components,
            )
        self._last_document = doc
        self._parsed_at = now
        return result.entries

    def _reuse_entries(self, previous: CacheEntry, now: datetime.datetime) -> list[ParsedCalendarEntry]:
        if self._parsed_at is not None and now - self._parsed_at >= REPARSE_AFTER and self._last_document:
            logger.debug("Feed unchanged but expansion window is old, reparsing")
            return self._parse(self._last_document, now)
        logger.debug("Feed unchanged, reusing %d parsed entries", len(previous.entries))
        return list(previous.entries)

    async def _load_spaces(self) -> list[Space]:
        """Fetch the spaces list; on failure keep the last known list."""
        if not self.spaces_url:
            return []
        try:
            payload = await self.fetcher.fetch_json(self.spaces_url)
        except FeedFetchError as e:
            logger.warning("Could not fetch spaces list (%s): %s", e.reason.value, e)
            return self._spaces

        spaces = parse_spaces(payload)
        if spaces:
            self._spaces = spaces
        return self._spaces
