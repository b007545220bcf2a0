"""Unit tests for linkki_events logging setup."""

import logging

import pytest

from linkki_events import _init_logging
from linkki_events.core.logging_config import configure_logging

pytestmark = [pytest.mark.unit]


@pytest.fixture(autouse=True)
def restore_levels():
    root = logging.getLogger()
    saved = root.level
    yield
    root.setLevel(saved)
    logging.getLogger("linkki_events").setLevel(logging.NOTSET)


def test_configure_logging_when_default_then_info_and_noisy_capped() -> None:
    level = configure_logging()

    assert level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger().level == logging.INFO


def test_configure_logging_when_env_debug_then_debug(monkeypatch) -> None:
    monkeypatch.setenv("LINKKI_EVENTS_DEBUG", "true")

    assert configure_logging() == logging.DEBUG
    assert logging.getLogger("linkki_events").level == logging.DEBUG


def test_configure_logging_when_force_debug_false_then_env_ignored(monkeypatch) -> None:
    monkeypatch.setenv("LINKKI_EVENTS_DEBUG", "1")

    assert configure_logging(force_debug=False) == logging.INFO


def test_configure_logging_when_log_level_env_then_applied(monkeypatch) -> None:
    monkeypatch.setenv("LINKKI_EVENTS_LOG_LEVEL", "warning")

    assert configure_logging() == logging.WARNING


def test_init_logging_when_level_name_then_root_level_set() -> None:
    _init_logging("ERROR")

    assert logging.getLogger().level == logging.ERROR


def test_init_logging_when_debug_env_then_overrides_level(monkeypatch) -> None:
    monkeypatch.setenv("LINKKI_EVENTS_DEBUG", "on")

    _init_logging("ERROR")

    assert logging.getLogger().level == logging.DEBUG
