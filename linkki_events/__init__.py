"""linkki_events - republishes the Linkki public calendar as a cached JSON API.

Imports are kept light so the package can be inspected without starting the
server or pulling in aiohttp.
"""

__version__ = "1.0.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Honors LINKKI_EVENTS_DEBUG (truthy values: "1", "true", "yes", "on"), which
    forces DEBUG verbosity regardless of the requested level.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("LINKKI_EVENTS_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS LEVEL   logger.name: message, only the level is colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))


def run_server(args: Optional[object] = None) -> None:
    """Load configuration, apply command line overrides and start the server.

    Args:
        args: Optional argparse namespace with ``port``, ``bind`` and ``debug``
    """
    import logging
    import os

    _init_logging(os.environ.get("LINKKI_EVENTS_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from linkki_events.api.server import start_server
    from linkki_events.core.config_manager import ConfigManager

    cfg = ConfigManager().load_full_config()

    if args is not None:
        port = getattr(args, "port", None)
        if port is not None:
            cfg["server_port"] = int(port)
            logger.debug("Applied command line port override: %d", cfg["server_port"])

        bind = getattr(args, "bind", None)
        if bind:
            cfg["server_bind"] = bind

        if getattr(args, "debug", False):
            cfg["debug_logging"] = True

    logger.debug(
        "Resolved configuration (diagnostic): %s",
        {k: cfg.get(k) for k in ("ics_url", "server_bind", "server_port", "refresh_policy")},
    )
    start_server(cfg)
