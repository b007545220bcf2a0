"""Shared HTTP client manager for upstream feed requests.

Keeps one pooled ``httpx.AsyncClient`` per client id so each cache refresh reuses
connections instead of building a new client. Call ``close_all_clients`` at
shutdown.
"""

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_shared_clients: dict[str, httpx.AsyncClient] = {}
_client_lock = asyncio.Lock()

# Only one refresh runs at a time, so a small pool is enough
DEFAULT_LIMITS = httpx.Limits(
    max_connections=4,
    max_keepalive_connections=2,
)

DEFAULT_TIMEOUT = httpx.Timeout(15.0, connect=10.0)

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "linkki-events/1.0 (+https://linkkijkl.fi)",
    "Accept": "text/calendar, application/json, text/plain, */*",
    "Accept-Encoding": "gzip, deflate",
}


def build_timeout(seconds: float) -> httpx.Timeout:
    """Build an httpx timeout whose every phase is bounded by ``seconds``."""
    return httpx.Timeout(seconds, connect=min(10.0, seconds))


async def get_shared_client(
    client_id: str = "default",
    limits: Optional[httpx.Limits] = None,
    timeout: Optional[httpx.Timeout] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Get or create a shared HTTP client with connection pooling.

    Args:
        client_id: Identifier for the client (allows multiple clients if needed)
        limits: Custom connection limits
        timeout: Custom timeout configuration
        transport: Optional transport, used by tests to inject httpx.MockTransport

    Returns:
        Shared httpx.AsyncClient

    Raises:
        RuntimeError: If client creation fails
    """
    async with _client_lock:
        client = _shared_clients.get(client_id)
        if client is None or client.is_closed:
            effective_limits = limits or DEFAULT_LIMITS
            try:
                client = httpx.AsyncClient(
                    transport=transport,
                    limits=effective_limits,
                    timeout=timeout or DEFAULT_TIMEOUT,
                    follow_redirects=True,
                    headers=DEFAULT_HEADERS,
                )
            except Exception as e:
                logger.exception("Failed to create shared HTTP client '%s'", client_id)
                raise RuntimeError(f"Failed to create shared HTTP client: {e}") from e

            _shared_clients[client_id] = client
            logger.debug(
                "Created shared HTTP client '%s' (max_connections=%s)",
                client_id,
                effective_limits.max_connections,
            )

        return client


async def close_all_clients() -> None:
    """Close all shared HTTP clients.

    Should be called during application shutdown.
    """
    async with _client_lock:
        for client_id, client in _shared_clients.items():
            try:
                if not client.is_closed:
                    await client.aclose()
                    logger.debug("Closed shared HTTP client '%s'", client_id)
            except (httpx.HTTPError, RuntimeError) as e:
                logger.warning("Error closing shared HTTP client '%s': %s", client_id, e)

        _shared_clients.clear()
