# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Side Scroller exception hierarchy.

All Side Scroller errors inherit from SideScrollerError, allowing callers
to catch the base class for any failure or specific subclasses for
targeted handling.
"""

from __future__ import annotations


class SideScrollerError(Exception):
    """Base exception for all Side Scroller errors."""


class ExtractionError(SideScrollerError):
    """Element snapshot is malformed and cannot be turned into a signal."""

    def __init__(self, message: str, *, ref: int = 0) -> None:
        super().__init__(message)
        self.ref = ref


class ConfigError(SideScrollerError):
    """Configuration file or value is invalid."""


class SnapshotError(SideScrollerError):
    """Host document could not produce an element snapshot."""


class BrowserError(SideScrollerError):
    """Browser launch, navigation, or element activation failure."""


class InitializationError(SideScrollerError):
    """Initial detection pass failed on every attempt."""

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class OverrideStoreError(SideScrollerError):
    """Trained-element store read or write failure."""
