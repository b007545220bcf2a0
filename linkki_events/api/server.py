"""aiohttp server wiring for linkki_events."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any, Optional

import httpx
from aiohttp import web

from linkki_events.calendar.loader import CalendarEventLoader
from linkki_events.core.config_manager import ServiceSettings
from linkki_events.core.event_cache import EventCache
from linkki_events.core.http_client import close_all_clients
from linkki_events.core.logging_config import configure_logging
from linkki_events.core.timezone_utils import now_utc

from .middleware import add_cors_headers, error_middleware
from .routes import register_routes

logger = logging.getLogger(__name__)

CACHE_KEY = web.AppKey("cache", EventCache)


def build_cache(settings: ServiceSettings, client: Optional[httpx.AsyncClient] = None) -> EventCache:
    """Create the event cache and its loader pipeline from settings."""
    loader = CalendarEventLoader.from_settings(settings, client=client)
    return EventCache(
        loader,
        ttl_seconds=settings.cache_ttl_seconds,
        fallback_seconds=settings.fallback_seconds,
        policy=settings.refresh_policy,
        clock=now_utc,
    )


def make_app(settings: ServiceSettings, cache: Optional[EventCache] = None) -> web.Application:
    """Create the aiohttp application.

    Args:
        settings: Service settings
        cache: Prebuilt cache, tests pass one with a fake loader

    Returns:
        Configured web.Application
    """
    cache = cache or build_cache(settings)

    app = web.Application(middlewares=[error_middleware])
    app[CACHE_KEY] = cache
    app.on_response_prepare.append(add_cors_headers)

    register_routes(app, cache)

    async def _close_cache(app: web.Application) -> None:
        await app[CACHE_KEY].aclose()

    app.on_cleanup.append(_close_cache)
    return app


async def _warm_up(cache: EventCache) -> None:
    events = await cache.prime()
    logger.info("Cache warm-up loaded %d events", len(events))


async def _serve(settings: ServiceSettings, external_stop_event: asyncio.Event | None = None) -> None:
    """Run the server until signalled to stop.

    Args:
        settings: Service settings
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are not registered (caller owns signal handling).
    """
    stop_event = external_stop_event or asyncio.Event()
    app = make_app(settings)
    cache = app[CACHE_KEY]

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host=settings.server_bind, port=settings.server_port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", settings.server_bind, settings.server_port)
        await runner.cleanup()
        raise

    logger.info("Serving events on http://%s:%d", settings.server_bind, settings.server_port)

    # First request still waits for the initial refresh if warm-up has not finished
    warm_up = asyncio.create_task(_warm_up(cache))

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    warm_up.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await warm_up

    await runner.cleanup()
    await close_all_clients()
    logger.info("Server shutdown complete")


def start_server(config: Any) -> None:
    """Start the asyncio event loop and HTTP server.

    Args:
        config: dict or dataclass-like object accepted by ServiceSettings.from_config

    Blocks until SIGINT/SIGTERM is received.
    """
    settings = config if isinstance(config, ServiceSettings) else ServiceSettings.from_config(config)
    configure_logging(debug_mode=settings.debug_logging)

    logger.debug(
        "Resolved settings: ics_url=%s timeout=%ss fallback=%ss policy=%s tz=%s",
        settings.ics_url,
        settings.request_timeout,
        settings.fallback_seconds,
        settings.refresh_policy.value,
        settings.default_timezone,
    )

    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
