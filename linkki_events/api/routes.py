"""HTTP routes for linkki_events."""

from __future__ import annotations

import logging
from dataclasses import asdict

from aiohttp import web

from linkki_events.core.event_cache import EventCache

logger = logging.getLogger(__name__)


def register_routes(app: web.Application, cache: EventCache) -> None:
    """Register the public routes.

    Args:
        app: aiohttp web application
        cache: Event cache serving GET /events
    """

    async def index(_request: web.Request) -> web.Response:
        return web.Response(text="Hello world!")

    async def events(_request: web.Request) -> web.Response:
        """Serve the cached upcoming events as a JSON array."""
        current = await cache.get_events()
        logger.debug("/events serving %d events", len(current))
        return web.json_response([event.to_wire() for event in current])

    async def health(_request: web.Request) -> web.Response:
        """Report cache state. Always 200; `status` is "ok" or "degraded"."""
        status = cache.status()
        healthy = status.has_data and status.last_refresh_succeeded is not False
        body = {"status": "ok" if healthy else "degraded", "cache": asdict(status)}
        return web.json_response(body)

    app.router.add_get("/", index)
    app.router.add_get("/events", events)
    app.router.add_get("/health", health)
