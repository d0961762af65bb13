# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import sidescroller  # noqa: F401
except ImportError:
    raise ImportError("sidescroller is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from sidescroller.config import DetectorConfig, SchedulerConfig


@pytest.fixture
def fast_config() -> DetectorConfig:
    """Default detection tuning with scheduler delays shrunk for tests."""
    return DetectorConfig(
        scheduler=SchedulerConfig(
            mutation_debounce=0.05,
            location_settle=0.05,
            initial_delay=0.0,
            max_retries=3,
            retry_delay=0.0,
        )
    )
