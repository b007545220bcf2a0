"""Configuration management for the linkki_events server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from linkki_events.core.event_cache import RefreshPolicy
from linkki_events.core.timezone_utils import DEFAULT_FEED_TIMEZONE, normalize_timezone_name

logger = logging.getLogger(__name__)

# Published freshness contract of the /events endpoint. Changing it needs a version note.
CACHE_TTL_SECONDS = 600
DEFAULT_FALLBACK_SECONDS = 60
DEFAULT_REQUEST_TIMEOUT_SECONDS = 15.0
DEFAULT_HORIZON_DAYS = 365

DEFAULT_ICS_URL = (
    "https://calendar.google.com/calendar/ical/"
    "c_g2eqt2a7u1fc1pahe2o0ecm7as%40group.calendar.google.com/public/basic.ics"
)
DEFAULT_SPACES_URL = "https://navi.jyu.fi/api/spaces"
DEFAULT_SERVER_BIND = "0.0.0.0"  # nosec B104 - service is meant to listen on all interfaces
DEFAULT_SERVER_PORT = 3030

# Input limits for event fields taken from the upstream feed
MAX_EVENT_SUMMARY_LENGTH = 200
MAX_EVENT_LOCATION_LENGTH = 200
MAX_EVENT_DESCRIPTION_LENGTH = 2000

_TRUTHY = ("1", "true", "yes", "on")


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()

        if not line or line.startswith("#") or "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - LINKKI_EVENTS_ICS_URL -> 'ics_url'
        - LINKKI_EVENTS_SPACES_URL -> 'spaces_url' (empty string disables the lookup)
        - LINKKI_EVENTS_WEB_HOST -> 'server_bind'
        - LINKKI_EVENTS_WEB_PORT -> 'server_port' (int)
        - LINKKI_EVENTS_REQUEST_TIMEOUT -> 'request_timeout' (float seconds)
        - LINKKI_EVENTS_FALLBACK_SECONDS -> 'fallback_seconds' (int)
        - LINKKI_EVENTS_REFRESH_POLICY -> 'refresh_policy' ("serve_stale" or "wait")
        - LINKKI_EVENTS_DEFAULT_TIMEZONE -> 'default_timezone'
        - LINKKI_EVENTS_HORIZON_DAYS -> 'horizon_days' (int)
        - LINKKI_EVENTS_MAPS_FALLBACK -> 'maps_fallback' (bool)
        - LINKKI_EVENTS_DEBUG -> 'debug_logging' (bool)

        Returns:
            Configuration dictionary compatible with start_server
        """
        cfg: dict[str, Any] = {}

        for env_key, cfg_key in (
            ("LINKKI_EVENTS_ICS_URL", "ics_url"),
            ("LINKKI_EVENTS_WEB_HOST", "server_bind"),
            ("LINKKI_EVENTS_DEFAULT_TIMEZONE", "default_timezone"),
            ("LINKKI_EVENTS_REFRESH_POLICY", "refresh_policy"),
        ):
            value = os.environ.get(env_key)
            if value:
                cfg[cfg_key] = value.strip()

        # An explicitly empty spaces URL turns the lookup off
        spaces_url = os.environ.get("LINKKI_EVENTS_SPACES_URL")
        if spaces_url is not None:
            cfg["spaces_url"] = spaces_url.strip()

        for env_key, cfg_key, cast in (
            ("LINKKI_EVENTS_WEB_PORT", "server_port", int),
            ("LINKKI_EVENTS_REQUEST_TIMEOUT", "request_timeout", float),
            ("LINKKI_EVENTS_FALLBACK_SECONDS", "fallback_seconds", int),
            ("LINKKI_EVENTS_HORIZON_DAYS", "horizon_days", int),
        ):
            raw = os.environ.get(env_key)
            if not raw:
                continue
            try:
                cfg[cfg_key] = cast(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, raw)

        for env_key, cfg_key in (
            ("LINKKI_EVENTS_MAPS_FALLBACK", "maps_fallback"),
            ("LINKKI_EVENTS_DEBUG", "debug_logging"),
        ):
            raw = os.environ.get(env_key)
            if raw:
                cfg[cfg_key] = raw.strip().lower() in _TRUTHY

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)


@dataclass(frozen=True)
class ServiceSettings:
    """Typed, validated settings for the calendar service.

    Consolidates every tunable with explicit defaults. Timeouts and the failure
    fallback window are kept strictly below the cache TTL so that a hung
    upstream can never hold the cache across more than one freshness window.
    """

    ics_url: str = DEFAULT_ICS_URL
    spaces_url: str | None = DEFAULT_SPACES_URL
    server_bind: str = DEFAULT_SERVER_BIND
    server_port: int = DEFAULT_SERVER_PORT
    cache_ttl_seconds: int = CACHE_TTL_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    fallback_seconds: int = DEFAULT_FALLBACK_SECONDS
    refresh_policy: RefreshPolicy = RefreshPolicy.SERVE_STALE
    default_timezone: str = DEFAULT_FEED_TIMEZONE
    horizon_days: int = DEFAULT_HORIZON_DAYS
    maps_fallback: bool = False
    debug_logging: bool = False

    @classmethod
    def from_config(cls, config: Any) -> ServiceSettings:
        """Build settings from a config dict or attribute object.

        Args:
            config: Mapping produced by ConfigManager, or any object with attributes

        Returns:
            ServiceSettings with values from config or defaults
        """
        ttl = CACHE_TTL_SECONDS

        timeout = float(get_config_value(config, "request_timeout", DEFAULT_REQUEST_TIMEOUT_SECONDS))
        if timeout <= 0 or timeout >= ttl:
            logger.warning(
                "request_timeout=%s must be between 0 and the %ss cache TTL; using %s",
                timeout,
                ttl,
                DEFAULT_REQUEST_TIMEOUT_SECONDS,
            )
            timeout = DEFAULT_REQUEST_TIMEOUT_SECONDS

        fallback = int(get_config_value(config, "fallback_seconds", DEFAULT_FALLBACK_SECONDS))
        if fallback <= 0 or fallback >= ttl:
            logger.warning(
                "fallback_seconds=%s must be between 0 and the %ss cache TTL; using %s",
                fallback,
                ttl,
                DEFAULT_FALLBACK_SECONDS,
            )
            fallback = DEFAULT_FALLBACK_SECONDS

        policy_raw = get_config_value(config, "refresh_policy", RefreshPolicy.SERVE_STALE)
        try:
            policy = RefreshPolicy(policy_raw)
        except ValueError:
            logger.warning("Unknown refresh_policy %r; using %s", policy_raw, RefreshPolicy.SERVE_STALE.value)
            policy = RefreshPolicy.SERVE_STALE

        tz_raw = get_config_value(config, "default_timezone", DEFAULT_FEED_TIMEZONE)
        default_timezone = normalize_timezone_name(tz_raw)
        if default_timezone is None:
            logger.warning("Invalid default_timezone %r; using %s", tz_raw, DEFAULT_FEED_TIMEZONE)
            default_timezone = DEFAULT_FEED_TIMEZONE

        spaces_url = get_config_value(config, "spaces_url", DEFAULT_SPACES_URL)

        return cls(
            ics_url=get_config_value(config, "ics_url", DEFAULT_ICS_URL) or DEFAULT_ICS_URL,
            spaces_url=spaces_url or None,
            server_bind=get_config_value(config, "server_bind", DEFAULT_SERVER_BIND),
            server_port=int(get_config_value(config, "server_port", DEFAULT_SERVER_PORT)),
            cache_ttl_seconds=ttl,
            request_timeout=timeout,
            fallback_seconds=fallback,
            refresh_policy=policy,
            default_timezone=default_timezone,
            horizon_days=max(1, int(get_config_value(config, "horizon_days", DEFAULT_HORIZON_DAYS))),
            maps_fallback=bool(get_config_value(config, "maps_fallback", False)),
            debug_logging=bool(get_config_value(config, "debug_logging", False)),
        )
