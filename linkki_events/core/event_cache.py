"""Time-bounded event cache with single-flight refresh for linkki_events.

The cache owns exactly one ``CacheEntry`` at a time. Reads of a fresh entry are
plain attribute reads. When the entry expires, one refresh task is started and
every caller that arrives while it runs shares it. Refresh failures never reach
callers: the previous event list is kept and marked fresh for a short fallback
window so a broken upstream is not retried on every request.

State machine::

    fresh --(age >= fresh_for)--> expired --> refreshing --+--> fresh (ttl)
                                                           +--> failed (fallback window, old events kept)
"""

from __future__ import annotations

import asyncio
import datetime
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from linkki_events.core.timezone_utils import now_utc

logger = logging.getLogger(__name__)


class RefreshPolicy(str, enum.Enum):
    """How callers behave while a refresh is in flight."""

    SERVE_STALE = "serve_stale"  # return the stored list immediately
    WAIT = "wait"  # await the in-flight refresh


@dataclass(frozen=True)
class LoadOutcome:
    """Result of one successful loader run."""

    events: tuple[Any, ...]
    entries: tuple[Any, ...] = ()
    etag: Optional[str] = None
    content_hash: Optional[str] = None
    reused: bool = False


@dataclass(frozen=True)
class CacheEntry:
    """Immutable snapshot of the cached event list."""

    events: tuple[Any, ...]
    fetched_at: datetime.datetime
    fresh_for: datetime.timedelta
    entries: tuple[Any, ...] = ()
    etag: Optional[str] = None
    content_hash: Optional[str] = None
    succeeded: bool = True

    def age(self, now: datetime.datetime) -> datetime.timedelta:
        return now - self.fetched_at

    def is_fresh(self, now: datetime.datetime) -> bool:
        return self.age(now) < self.fresh_for


class EventLoader(Protocol):
    """Anything that can fetch, parse and normalize the feed."""

    async def load(self, previous: Optional[CacheEntry], now: datetime.datetime) -> LoadOutcome: ...


@dataclass
class CacheStatus:
    """Snapshot of cache health for the /health route."""

    has_data: bool
    event_count: int
    age_seconds: Optional[float]
    fresh: bool
    last_refresh_succeeded: Optional[bool]
    last_success_at: Optional[str]
    last_error: Optional[str]
    refresh_in_flight: bool
    refresh_count: int = 0


class EventCache:
    """Serves events from memory and refreshes them at most once at a time."""

    def __init__(
        self,
        loader: EventLoader,
        *,
        ttl_seconds: float = 600,
        fallback_seconds: float = 60,
        policy: RefreshPolicy = RefreshPolicy.SERVE_STALE,
        clock: Callable[[], datetime.datetime] = now_utc,
    ):
        """Initialize the cache.

        Args:
            loader: Object whose ``load(previous, now)`` produces a LoadOutcome
            ttl_seconds: Freshness window after a successful refresh
            fallback_seconds: Freshness window after a failed refresh
            policy: Behaviour of callers arriving during an in-flight refresh
            clock: Returns the current aware UTC time
        """
        if fallback_seconds >= ttl_seconds:
            raise ValueError("fallback window must be shorter than the TTL")

        self._loader = loader
        self._ttl = datetime.timedelta(seconds=ttl_seconds)
        self._fallback = datetime.timedelta(seconds=fallback_seconds)
        self._policy = policy
        self._clock = clock

        self._entry: Optional[CacheEntry] = None
        self._refresh_task: Optional[asyncio.Task[CacheEntry]] = None
        self._last_success_at: Optional[datetime.datetime] = None
        self._last_error: Optional[str] = None
        self._refresh_count = 0

    @property
    def entry(self) -> Optional[CacheEntry]:
        """Current cache entry, or None before the first refresh completes."""
        return self._entry

    @property
    def policy(self) -> RefreshPolicy:
        return self._policy

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def get_events(self) -> list[Any]:
        """Return the current ordered event list.

        Never raises for upstream or parse problems. A fresh entry is returned
        without suspending. An expired entry starts (or joins) the single
        refresh; whether the caller waits for it depends on the policy. With no
        entry at all every caller waits, so the first request sees real data.

        Returns:
            List of events, empty only when no refresh has ever succeeded
        """
        entry = self._entry
        now = self._clock()

        if entry is not None and entry.is_fresh(now):
            return list(entry.events)

        task = self._ensure_refresh()

        if entry is not None and self._policy is RefreshPolicy.SERVE_STALE:
            logger.debug("Serving stale events while refresh runs (age=%s)", entry.age(now))
            return list(entry.events)

        # Shield so a cancelled request does not cancel the shared refresh
        refreshed = await asyncio.shield(task)
        return list(refreshed.events)

    async def prime(self) -> list[Any]:
        """Run (or join) a refresh and wait for it, regardless of policy."""
        refreshed = await asyncio.shield(self._ensure_refresh())
        return list(refreshed.events)

    def status(self) -> CacheStatus:
        """Return a health snapshot without touching the network."""
        entry = self._entry
        now = self._clock()
        return CacheStatus(
            has_data=entry is not None,
            event_count=len(entry.events) if entry else 0,
            age_seconds=entry.age(now).total_seconds() if entry else None,
            fresh=bool(entry and entry.is_fresh(now)),
            last_refresh_succeeded=entry.succeeded if entry else None,
            last_success_at=self._last_success_at.isoformat() if self._last_success_at else None,
            last_error=self._last_error,
            refresh_in_flight=self.refresh_in_flight,
            refresh_count=self._refresh_count,
        )

    async def aclose(self) -> None:
        """Cancel an in-flight refresh, if any."""
        task = self._refresh_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("In-flight refresh cancelled on close")
        self._refresh_task = None

    def _ensure_refresh(self) -> asyncio.Task[CacheEntry]:
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.create_task(self._refresh(), name="linkki-events-refresh")
            self._refresh_task = task
        return task

    async def _refresh(self) -> CacheEntry:
        previous = self._entry
        self._refresh_count += 1
        started = self._clock()
        logger.debug("Refreshing events (attempt %d)", self._refresh_count)

        try:
            outcome = await self._loader.load(previous, started)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            new_entry = self._failed_entry(previous, e)
        else:
            now = self._clock()
            new_entry = CacheEntry(
                events=tuple(outcome.events),
                fetched_at=now,
                fresh_for=self._ttl,
                entries=tuple(outcome.entries),
                etag=outcome.etag,
                content_hash=outcome.content_hash,
                succeeded=True,
            )
            self._last_success_at = now
            self._last_error = None
            logger.info(
                "Refreshed %d events%s",
                len(new_entry.events),
                " (upstream unchanged)" if outcome.reused else "",
            )

        # Single assignment swap; readers see either the old or the new entry
        self._entry = new_entry
        return new_entry

    def _failed_entry(self, previous: Optional[CacheEntry], error: Exception) -> CacheEntry:
        self._last_error = f"{type(error).__name__}: {error}"
        now = self._clock()

        if previous is None:
            logger.error(
                "Initial refresh failed, serving empty list for %ss: %s",
                self._fallback.total_seconds(),
                self._last_error,
            )
            return CacheEntry(events=(), fetched_at=now, fresh_for=self._fallback, succeeded=False)

        logger.warning(
            "Refresh failed, keeping %d cached events for %ss: %s",
            len(previous.events),
            self._fallback.total_seconds(),
            self._last_error,
        )
        return CacheEntry(
            events=previous.events,
            fetched_at=now,
            fresh_for=self._fallback,
            entries=previous.entries,
            etag=previous.etag,
            content_hash=previous.content_hash,
            succeeded=False,
        )
