"""Tests for mwaction logging utilities."""

from __future__ import annotations

import json
import logging

import structlog

from mwaction.logging import bind_site, configure_logging, enable_http_debug, get_logger


class TestConfigureLogging:
    def test_json_output(self, capsys) -> None:
        configure_logging(level="INFO", json_output=True)
        get_logger("test").info("tokens_refreshed", generation=2)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "tokens_refreshed"
        assert event["generation"] == 2
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_level_filters(self, capsys) -> None:
        configure_logging(level="WARNING", json_output=True)
        get_logger("test").info("hidden")
        assert capsys.readouterr().err == ""

    def test_bind_site_adds_context(self, capsys) -> None:
        configure_logging(level="INFO", json_output=True)
        bind_site("https://wiki.example.org/w/api.php")
        get_logger("test").info("call_dispatch")

        event = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert event["site"] == "https://wiki.example.org/w/api.php"
        structlog.contextvars.clear_contextvars()


class TestEnableHttpDebug:
    def test_sets_wire_loggers_to_debug(self) -> None:
        urllib3_logger = logging.getLogger("urllib3")
        original_level = urllib3_logger.level
        original_handlers = list(urllib3_logger.handlers)
        try:
            enable_http_debug()
            assert urllib3_logger.level == logging.DEBUG
            assert logging.getLogger("requests").level == logging.DEBUG
            assert any(type(h) is logging.StreamHandler for h in urllib3_logger.handlers)
        finally:
            urllib3_logger.setLevel(original_level)
            urllib3_logger.handlers = original_handlers
            logging.getLogger("requests").handlers = [
                h for h in logging.getLogger("requests").handlers if type(h) is not logging.StreamHandler
            ]
            logging.getLogger("requests").setLevel(logging.NOTSET)
