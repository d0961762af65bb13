# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for sidescroller.logging_config — structlog + stdlib bridge."""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest
import structlog

from sidescroller.logging_config import configure, configure_from_env
from sidescroller.selector import detect
from tests._builders import VIEWPORT, el


@pytest.fixture(autouse=True)
def _reset_logging():
    """Ensure clean logging state before/after each test."""
    root = logging.getLogger()
    old_handlers = root.handlers[:]
    old_level = root.level
    quiet = {name: logging.getLogger(name).level for name in ("aiosqlite", "asyncio")}
    yield
    root.handlers = old_handlers
    root.setLevel(old_level)
    for name, lvl in quiet.items():
        logging.getLogger(name).setLevel(lvl)
    structlog.reset_defaults()


class TestConsoleRenderer:
    def test_single_stderr_handler(self):
        configure(json_output=False)
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.handlers[0].stream is sys.stderr

    def test_human_readable(self, capsys):
        configure(json_output=False)
        logging.getLogger("test.console").warning("hello world")
        captured = capsys.readouterr()
        assert "hello world" in captured.err
        assert not captured.err.strip().startswith("{")

    def test_custom_stream(self):
        buf = io.StringIO()
        configure(json_output=True, stream=buf)
        logging.getLogger("test.stream").warning("to buffer")
        assert json.loads(buf.getvalue().strip())["event"] == "to buffer"


class TestJSONRenderer:
    def test_valid_json_with_logger_name(self, capsys):
        configure(json_output=True)
        logging.getLogger("my.module").info("json test")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed["event"] == "json test"
        assert parsed["logger"] == "my.module"
        assert "timestamp" in parsed

    def test_detection_summary_logged(self, capsys):
        configure(json_output=True)
        detect([el(0, "Next")], VIEWPORT)
        lines = [json.loads(line) for line in capsys.readouterr().err.strip().splitlines()]
        loggers = {line["logger"] for line in lines}
        assert "sidescroller.selector" in loggers
        assert any(line["event"].startswith("Detection:") for line in lines)

    def test_contextvars_in_output(self, capsys):
        configure(json_output=True)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(site="example.com")
        try:
            structlog.get_logger("test.ctx").info("ctx test")
            parsed = json.loads(capsys.readouterr().err.strip())
            assert parsed["site"] == "example.com"
        finally:
            structlog.contextvars.clear_contextvars()


class TestLogLevel:
    def test_default_level_is_info(self):
        configure()
        assert logging.getLogger().level == logging.INFO

    def test_invalid_level_falls_back_to_info(self):
        configure(level="NONEXISTENT")
        assert logging.getLogger().level == logging.INFO

    def test_library_loggers_quiet_at_info(self):
        configure(level="INFO")
        assert logging.getLogger("aiosqlite").level == logging.WARNING
        assert logging.getLogger("asyncio").level == logging.WARNING

    def test_library_loggers_follow_root_at_debug(self):
        configure(level="INFO")
        configure(level="DEBUG")
        assert logging.getLogger("aiosqlite").level == logging.NOTSET
        assert logging.getLogger("aiosqlite").getEffectiveLevel() == logging.DEBUG

    def test_non_level_attribute_falls_back_to_info(self):
        configure(level="basic_format")
        assert logging.getLogger().level == logging.INFO

    def test_no_handler_stacking(self):
        configure(json_output=False)
        configure(json_output=True)
        configure(json_output=False)
        assert len(logging.getLogger().handlers) == 1


class TestConfigureFromEnv:
    def test_env_level(self, monkeypatch):
        monkeypatch.setenv("SIDESCROLLER_LOG_LEVEL", "warning")
        monkeypatch.delenv("SIDESCROLLER_LOG_JSON", raising=False)
        configure_from_env()
        assert logging.getLogger().level == logging.WARNING

    def test_verbose_forces_debug(self, monkeypatch):
        monkeypatch.setenv("SIDESCROLLER_LOG_LEVEL", "ERROR")
        configure_from_env(verbose=True)
        assert logging.getLogger().level == logging.DEBUG

    @pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
    def test_env_json(self, monkeypatch, capsys, value):
        monkeypatch.delenv("SIDESCROLLER_LOG_LEVEL", raising=False)
        monkeypatch.setenv("SIDESCROLLER_LOG_JSON", value)
        configure_from_env()
        logging.getLogger("test.env").info("env json")
        assert json.loads(capsys.readouterr().err.strip())["event"] == "env json"
