# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Chrome/UI exclusion filter.

Vetoes elements that belong to the browser, to other extensions, or that
sit where browser chrome lives.  Six independent checks each return a
reason string or None; an element is excluded iff at least one fires.
All reasons are collected so diagnostics can show every check that fired.

Checks:
  1. position  – chrome zone at the top, extreme edges, outside the viewport
  2. selector  – chrome tokens in class/id/data-*, Back/Forward labels
  3. ancestor  – chrome tokens anywhere up the ancestor chain (depth <= 10)
  4. size      – too small, too large, or too little clickable area
  5. z-index   – high or suspicious (max 32-bit) stacking order
  6. phrase    – explicit browser-navigation wording or shortcut hints

A separate host guard (``is_internal_origin``) excludes entire pages served
from browser-internal schemes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from . import Viewport
from .config import DEFAULT_CONFIG, DetectorConfig
from .patterns import (
    BROWSER_NAVIGATION_PHRASES,
    CHROME_ATTRIBUTE_TOKENS,
    CHROME_CONTAINER_IDS,
    CHROME_LABEL_WORDS,
    INTERNAL_URL_PREFIXES,
    KEYBOARD_SHORTCUT_HINTS,
)
from .signals import MAX_ANCESTOR_DEPTH, StructuralFacts

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExclusionVerdict:
    excluded: bool
    reasons: tuple[str, ...] = ()

    @property
    def reason(self) -> str | None:
        """First reason, or None when not excluded."""
        return self.reasons[0] if self.reasons else None


NOT_EXCLUDED = ExclusionVerdict(excluded=False)


# ---------------------------------------------------------------------------
# Individual checks (pure)
# ---------------------------------------------------------------------------


def check_position(facts: StructuralFacts, viewport: Viewport, config: DetectorConfig = DEFAULT_CONFIG) -> str | None:
    zones = config.zones
    rect = facts.rect

    if rect.center_y < zones.chrome_zone_height:
        return "top-browser-ui-zone"

    if rect.center_x < zones.edge_margin or rect.center_x > viewport.width - zones.edge_margin:
        return "extreme-edge-position"

    slack = zones.viewport_slack
    if (
        rect.top < -slack
        or rect.left < -slack
        or rect.right > viewport.width + slack
        or rect.bottom > viewport.height + slack
    ):
        return "outside-viewport-bounds"

    return None


def _chrome_token(value: str) -> str | None:
    lower = value.lower()
    return next((t for t in CHROME_ATTRIBUTE_TOKENS if t in lower), None)


def check_selector(facts: StructuralFacts) -> str | None:
    for attr, value in facts.attributes.items():
        token = _chrome_token(value)
        if token:
            return f'browser-ui-attribute: {attr}="{value}" ({token})'

    if facts.id.lower() in CHROME_CONTAINER_IDS:
        return f"browser-ui-container-id: {facts.id}"

    for attr, value in (("aria-label", facts.aria_label), ("title", facts.title), ("alt", facts.alt)):
        for word in CHROME_LABEL_WORDS:
            if word in value:
                return f'browser-ui-label: {attr}="{value}"'

    return None


def check_ancestors(facts: StructuralFacts) -> str | None:
    for depth, ancestor in enumerate(facts.ancestors[:MAX_ANCESTOR_DEPTH], 1):
        class_string = " ".join(ancestor.class_names)
        if class_string and _chrome_token(class_string):
            return f'inside-browser-ui-parent: class="{class_string}" (depth {depth})'
        if ancestor.id and (_chrome_token(ancestor.id) or ancestor.id.lower() in CHROME_CONTAINER_IDS):
            return f'inside-browser-ui-parent: id="{ancestor.id}" (depth {depth})'
    return None


def check_size(facts: StructuralFacts, config: DetectorConfig = DEFAULT_CONFIG) -> str | None:
    sizes = config.sizes
    width, height = facts.rect.width, facts.rect.height

    if width < sizes.min_width or height < sizes.min_height:
        return f"too-small: {width:g}x{height:g}"

    if width > sizes.max_width or height > sizes.max_height:
        return f"too-large: {width:g}x{height:g}"

    area = width * height
    if area < sizes.min_area:
        return f"insufficient-click-area: {area:g}px²"

    return None


def check_z_index(facts: StructuralFacts, config: DetectorConfig = DEFAULT_CONFIG) -> str | None:
    z = facts.z_index
    if z is None:
        return None
    if z >= config.z_index.suspicious:
        return f"suspicious-z-index: {z}"
    if z >= config.z_index.high:
        return f"high-z-index: {z}"
    return None


def check_browser_phrases(facts: StructuralFacts) -> str | None:
    text = facts.label_text
    for phrase in BROWSER_NAVIGATION_PHRASES:
        if phrase in text:
            return f"browser-navigation-term: {phrase}"
    if any(hint in text for hint in KEYBOARD_SHORTCUT_HINTS):
        return "browser-keyboard-shortcut"
    return None


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------


def should_exclude(
    facts: StructuralFacts,
    viewport: Viewport,
    config: DetectorConfig = DEFAULT_CONFIG,
) -> ExclusionVerdict:
    """Run all six checks and collect every reason that fired."""
    checks: tuple[Callable[[], str | None], ...] = (
        lambda: check_position(facts, viewport, config),
        lambda: check_selector(facts),
        lambda: check_ancestors(facts),
        lambda: check_size(facts, config),
        lambda: check_z_index(facts, config),
        lambda: check_browser_phrases(facts),
    )
    reasons = tuple(r for r in (check() for check in checks) if r is not None)
    if not reasons:
        return NOT_EXCLUDED
    return ExclusionVerdict(excluded=True, reasons=reasons)


def is_internal_origin(url: str) -> bool:
    """True for browser-internal pages (settings, extension pages, about:, ...)."""
    lower = url.strip().lower()
    return any(lower.startswith(prefix) for prefix in INTERNAL_URL_PREFIXES)
