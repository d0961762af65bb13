# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge. Interactive: ConsoleRenderer, machine output: JSONRenderer.

Leaf module — no sidescroller imports. Safe to call early in startup.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

import structlog

_TRUTHY = frozenset({"1", "true", "yes", "on"})

# Chatty below WARNING during every scan; only shown at DEBUG.
_QUIET_LOGGERS = ("aiosqlite", "asyncio")


def configure(*, json_output: bool = False, level: str = "INFO", stream: TextIO | None = None) -> None:
    """Configure structlog with stdlib bridge.

    Args:
        json_output: True for JSON lines (``watch`` under a supervisor),
            False for human-readable console output.
        level: Root logger level (default INFO).
        stream: Output stream (default stderr; stdout carries command output).
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root_level = logging.getLevelName(level.upper())
    if not isinstance(root_level, int):
        root_level = logging.INFO
    root.setLevel(root_level)

    quiet_level = logging.NOTSET if root_level <= logging.DEBUG else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def configure_from_env(*, verbose: bool = False) -> None:
    """Configure from SIDESCROLLER_LOG_LEVEL / SIDESCROLLER_LOG_JSON.

    ``verbose`` forces DEBUG regardless of the environment.
    """
    level = "DEBUG" if verbose else os.environ.get("SIDESCROLLER_LOG_LEVEL", "INFO").strip() or "INFO"
    json_output = os.environ.get("SIDESCROLLER_LOG_JSON", "").strip().lower() in _TRUTHY
    configure(json_output=json_output, level=level)
