"""Unit tests for the linkki_events command line entry."""

from __future__ import annotations

from argparse import Namespace
from unittest.mock import Mock

import pytest

import linkki_events
from linkki_events.__main__ import _create_parser, main

pytestmark = [pytest.mark.unit]


class TestCreateParser:
    def test_create_parser_when_no_args_then_defaults_none(self) -> None:
        args = _create_parser().parse_args([])

        assert args.port is None
        assert args.bind is None
        assert args.debug is False

    def test_create_parser_when_invalid_port_then_exits(self) -> None:
        with pytest.raises(SystemExit):
            _create_parser().parse_args(["--port", "invalid"])


class TestMain:
    def test_main_when_run_server_returns_then_exits_zero(self, monkeypatch: pytest.MonkeyPatch) -> None:
        mock_run_server = Mock()
        monkeypatch.setattr("linkki_events.__main__.run_server", mock_run_server)

        with pytest.raises(SystemExit) as exc_info:
            main(["--port", "5000", "--debug"])

        assert exc_info.value.code == 0
        args = mock_run_server.call_args[0][0]
        assert args.port == 5000
        assert args.debug is True


class TestRunServer:
    def test_run_server_when_overrides_then_applied_to_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Command line values win over environment configuration."""
        captured = {}
        monkeypatch.setenv("LINKKI_EVENTS_WEB_PORT", "3000")
        monkeypatch.setattr("linkki_events.api.server.start_server", lambda cfg: captured.update(cfg))
        monkeypatch.setattr("linkki_events._init_logging", lambda level: None)

        linkki_events.run_server(Namespace(port=8080, bind="127.0.0.1", debug=True))

        assert captured["server_port"] == 8080
        assert captured["server_bind"] == "127.0.0.1"
        assert captured["debug_logging"] is True
