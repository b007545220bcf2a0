"""Central logging configuration for linkki_events.

Suppresses chatty third-party loggers while keeping the service's own modules
at the requested verbosity.
"""

import logging
import os
from typing import Optional

_TRUTHY = ("1", "true", "yes", "on")

# Third-party loggers and the level they are capped at
NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> int:
    """Configure logger levels for the service.

    Args:
        debug_mode: Whether to enable debug logging for linkki_events modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        LINKKI_EVENTS_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        LINKKI_EVENTS_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The root level that was applied
    """
    env_debug = os.getenv("LINKKI_EVENTS_DEBUG", "").strip().lower() in _TRUTHY
    env_log_level = os.getenv("LINKKI_EVENTS_LOG_LEVEL", "").strip().upper()

    if force_debug is not None:
        final_debug = force_debug
    else:
        final_debug = debug_mode or env_debug

    root_level = logging.DEBUG if final_debug else logging.INFO
    if not final_debug and env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
        root_logger.addHandler(handler)

    for logger_name, level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger("linkki_events").setLevel(logging.DEBUG if final_debug else root_level)

    if final_debug:
        root_logger.info("Debug logging enabled for linkki_events modules")
    return root_level
