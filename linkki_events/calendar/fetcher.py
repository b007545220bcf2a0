"""HTTP fetcher for the upstream calendar feed."""

import asyncio
import enum
import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from linkki_events.core.http_client import build_timeout, get_shared_client

from .models import FeedSource, RawFeedDocument

logger = logging.getLogger(__name__)


class FetchErrorReason(str, enum.Enum):
    """Reason tag carried by every FeedFetchError."""

    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    HTTP_STATUS = "http_status"


class FeedFetchError(Exception):
    """Base exception for feed fetch errors."""

    reason: FetchErrorReason = FetchErrorReason.UNREACHABLE

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class FeedTimeoutError(FeedFetchError):
    """The upstream did not answer within the configured timeout."""

    reason = FetchErrorReason.TIMEOUT


class FeedUnreachableError(FeedFetchError):
    """DNS, connection, TLS or URL validation failure."""

    reason = FetchErrorReason.UNREACHABLE


class FeedHTTPStatusError(FeedFetchError):
    """Upstream answered with a non-success status or an unusable body."""

    reason = FetchErrorReason.HTTP_STATUS

    def __init__(self, message: str, status_code: int, url: Optional[str] = None):
        super().__init__(message, url)
        self.status_code = status_code


def validate_feed_url(url: str) -> bool:
    """Check that a URL is an absolute HTTP(S) URL with a hostname.

    Args:
        url: URL string to validate

    Returns:
        True if the URL can be requested, False otherwise
    """
    try:
        parsed = urlparse(url)
    except ValueError as e:
        logger.debug("URL validation error for %s: %s", url, e)
        return False

    if parsed.scheme not in ("http", "https"):
        logger.debug("Blocked non-HTTP(S) URL: %s", url)
        return False

    if not parsed.hostname:
        logger.debug("Blocked URL with missing hostname: %s", url)
        return False

    return True


class FeedFetcher:
    """Downloads the configured feed with exactly one request per call.

    There are no retries here; the event cache decides when to try again.
    """

    def __init__(self, source: FeedSource, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize the fetcher.

        Args:
            source: Feed configuration (URL and timeout)
            client: Optional HTTP client; the shared pooled client is used when omitted
        """
        self.source = source
        self.client: Optional[httpx.AsyncClient] = client
        self._client_id = "feed_fetcher"

        logger.debug("Feed fetcher initialized for %s (timeout=%ss)", source.url, source.timeout)

    async def _ensure_client(self) -> httpx.AsyncClient:
        # Shared clients are closed by close_all_clients at shutdown

        if self.client is None or self.client.is_closed:
            self.client = await get_shared_client(
                self._client_id, timeout=build_timeout(self.source.timeout)
            )
        return self.client

    @staticmethod
    def get_conditional_headers(etag: Optional[str] = None) -> dict[str, str]:
        """Build conditional request headers from a previous ETag."""
        return {"If-None-Match": etag} if etag else {}

    async def fetch(self, etag: Optional[str] = None) -> RawFeedDocument:
        """Download the feed once.

        Args:
            etag: ETag of the previously processed document, sent as If-None-Match

        Returns:
            RawFeedDocument; ``not_modified`` is set and content is empty on HTTP 304

        Raises:
            FeedTimeoutError: No complete response within the timeout
            FeedUnreachableError: Invalid URL or network failure
            FeedHTTPStatusError: Non-2xx status or empty body
        """
        url = self.source.url
        response = await self._get(url, self.get_conditional_headers(etag))

        if response.status_code == 304:
            logger.debug("Feed not modified (304)")
            return RawFeedDocument(
                content=b"",
                etag=response.headers.get("etag") or etag,
                not_modified=True,
                status_code=304,
            )

        content = response.content
        if not content or not content.strip():
            logger.error("Empty feed content received from %s", url)
            raise FeedHTTPStatusError(
                f"Empty content received (HTTP {response.status_code})", response.status_code, url
            )

        if b"BEGIN:VCALENDAR" not in content[:4096]:
            logger.warning("Content from %s does not appear to be ICS", url)

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
            logger.debug("Unexpected content type: %s", content_type)

        logger.debug("Fetched feed from %s (%d bytes)", url, len(content))
        return RawFeedDocument(
            content=content,
            etag=response.headers.get("etag"),
            status_code=response.status_code,
        )

    async def fetch_json(self, url: str) -> Any:
        """Download and decode a JSON document with the same error taxonomy as fetch().

        Raises:
            FeedFetchError: Any fetch failure, or a body that is not valid JSON
        """
        response = await self._get(url, {"Accept": "application/json"})
        try:
            return response.json()
        except ValueError as e:
            raise FeedHTTPStatusError(
                f"Invalid JSON body: {e}", response.status_code, url
            ) from e

    async def _get(self, url: str, headers: dict[str, str]) -> httpx.Response:
        if not validate_feed_url(url):
            raise FeedUnreachableError(f"Invalid feed URL: {url!r}", url)

        client = await self._ensure_client()
        timeout = self.source.timeout

        try:
            # wait_for bounds the whole exchange, httpx timeouts only bound single phases
            response = await asyncio.wait_for(
                client.get(url, headers=headers, timeout=build_timeout(timeout)),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("Timeout after %ss fetching %s", timeout, url)
            raise FeedTimeoutError(f"Request timeout after {timeout}s", url) from e
        except httpx.HTTPError as e:
            logger.warning("Network error fetching %s: %s", url, e)
            raise FeedUnreachableError(f"Network error: {e}", url) from e
        except httpx.InvalidURL as e:
            raise FeedUnreachableError(f"Invalid feed URL: {e}", url) from e

        if response.status_code == 304:
            return response

        if not response.is_success:
            logger.warning("HTTP %s fetching %s", response.status_code, url)
            raise FeedHTTPStatusError(
                f"HTTP {response.status_code}: {response.reason_phrase}", response.status_code, url
            )

        return response
