# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Detection configuration.

Every tuning constant of the filter, scorer, selector and scheduler lives in a
frozen dataclass so a deployment can override it from YAML without touching
code.  ``DEFAULT_CONFIG`` reproduces the empirically tuned values.

YAML layout (every section and key optional)::

    zones:
      chrome_zone_height: 120
    scoring:
      minimum_score: 8
    scheduler:
      mutation_debounce: 0.5
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError

CONFIG_ENV_VAR = "SIDESCROLLER_CONFIG"


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ZoneConfig:
    """Viewport regions reserved for browser chrome."""

    chrome_zone_height: float = 120.0  # vertical centre above this is chrome
    edge_margin: float = 5.0  # horizontal centre this close to an edge is chrome
    viewport_slack: float = 50.0  # tolerated overflow beyond the viewport

    def __post_init__(self) -> None:
        if self.chrome_zone_height < 0:
            raise ValueError(f"chrome_zone_height must be >= 0, got {self.chrome_zone_height}")
        if self.edge_margin < 0:
            raise ValueError(f"edge_margin must be >= 0, got {self.edge_margin}")
        if self.viewport_slack < 0:
            raise ValueError(f"viewport_slack must be >= 0, got {self.viewport_slack}")


@dataclass(frozen=True, slots=True)
class SizeConstraints:
    min_width: float = 8.0
    min_height: float = 8.0
    max_width: float = 500.0
    max_height: float = 200.0
    min_area: float = 64.0

    def __post_init__(self) -> None:
        if self.min_width > self.max_width:
            raise ValueError(f"min_width {self.min_width} exceeds max_width {self.max_width}")
        if self.min_height > self.max_height:
            raise ValueError(f"min_height {self.min_height} exceeds max_height {self.max_height}")


@dataclass(frozen=True, slots=True)
class ZIndexThresholds:
    high: int = 999_999
    suspicious: int = 2_147_483_647  # max 32-bit z-index, typical of injected UI

    def __post_init__(self) -> None:
        if self.high > self.suspicious:
            raise ValueError(f"high ({self.high}) must be <= suspicious ({self.suspicious})")


@dataclass(frozen=True, slots=True)
class ScoringConfig:
    """Scorer and selector weights."""

    minimum_score: float = 8.0
    multiple_pattern_bonus: float = 2.0  # per matching rule when more than one matches
    rel_bonus: float = 25.0
    pagination_class_bonus: float = 20.0
    nav_class_bonus: float = 15.0
    single_character_bonus: float = 5.0
    link_bonus: float = 5.0
    button_bonus: float = 3.0
    episodic_bonus: float = 25.0
    lightbox_bonus: float = 20.0
    position_bonus: float = 5.0
    veto_score: float = -50.0
    small_element_penalty: float = -5.0
    large_element_penalty: float = -8.0
    empty_text_penalty: float = -5.0
    verbose_text_penalty: float = -15.0
    small_area: float = 16.0
    large_area: float = 10_000.0
    verbose_length: int = 75
    proximity_reach: float = 0.3  # fraction of viewport height where proximity hits 0
    proximity_max: float = 12.0
    tolerance_multiplier: float = 2.0  # candidate band = reach * multiplier around the middle
    previous_zone: float = 0.4  # centre left of this fraction earns the position bonus
    next_zone: float = 0.6  # centre right of this fraction earns the position bonus

    def __post_init__(self) -> None:
        if self.veto_score >= 0:
            raise ValueError(f"veto_score must be < 0, got {self.veto_score}")
        if self.proximity_reach <= 0:
            raise ValueError(f"proximity_reach must be > 0, got {self.proximity_reach}")
        if self.tolerance_multiplier <= 0:
            raise ValueError(f"tolerance_multiplier must be > 0, got {self.tolerance_multiplier}")
        if not 0 <= self.previous_zone <= 1 or not 0 <= self.next_zone <= 1:
            raise ValueError("previous_zone and next_zone must be fractions in [0, 1]")

    @property
    def vertical_tolerance(self) -> float:
        """Candidate band half-height as a fraction of viewport height."""
        return self.proximity_reach * self.tolerance_multiplier


@dataclass(frozen=True, slots=True)
class SchedulerConfig:
    mutation_debounce: float = 0.5
    location_settle: float = 1.0
    initial_delay: float = 0.5  # wait after load before the first pass
    max_retries: int = 3
    retry_delay: float = 2.0

    def __post_init__(self) -> None:
        if self.mutation_debounce < 0:
            raise ValueError(f"mutation_debounce must be >= 0, got {self.mutation_debounce}")
        if self.location_settle < 0:
            raise ValueError(f"location_settle must be >= 0, got {self.location_settle}")
        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay must be >= 0, got {self.retry_delay}")


@dataclass(frozen=True, slots=True)
class DetectorConfig:
    zones: ZoneConfig = field(default_factory=ZoneConfig)
    sizes: SizeConstraints = field(default_factory=SizeConstraints)
    z_index: ZIndexThresholds = field(default_factory=ZIndexThresholds)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


DEFAULT_CONFIG = DetectorConfig()

_SECTIONS: dict[str, type] = {
    "zones": ZoneConfig,
    "sizes": SizeConstraints,
    "z_index": ZIndexThresholds,
    "scoring": ScoringConfig,
    "scheduler": SchedulerConfig,
}


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _build_section(section_cls: type, name: str, raw: Any) -> Any:
    if raw is None:
        return section_cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"config section '{name}' must be a mapping, got {type(raw).__name__}")
    known = {f.name for f in dataclasses.fields(section_cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"unknown key(s) in '{name}': {', '.join(unknown)}")
    try:
        return section_cls(**raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid '{name}' config: {e}") from e


def config_from_mapping(data: dict[str, Any] | None) -> DetectorConfig:
    """Build a validated DetectorConfig from a plain mapping."""
    if not data:
        return DEFAULT_CONFIG
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigError(f"unknown config section(s): {', '.join(unknown)}")
    kwargs = {name: _build_section(section_cls, name, data.get(name)) for name, section_cls in _SECTIONS.items()}
    return DetectorConfig(**kwargs)


def load_config(path: str | Path | None = None) -> DetectorConfig:
    """Load configuration from YAML.

    ``path`` defaults to $SIDESCROLLER_CONFIG; with neither set the defaults
    are returned.

    Raises:
        ConfigError: unreadable file, malformed YAML, or invalid values.
    """
    import yaml

    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR, "").strip()
        if not env_path:
            return DEFAULT_CONFIG
        path = env_path

    p = Path(path).expanduser()
    try:
        with open(p, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config file {p}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"malformed YAML in {p}: {e}") from e
    return config_from_mapping(data)
