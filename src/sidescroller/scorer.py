# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pattern scorer — weighted multi-signal classification and ranking.

Two entry points:

``classify(text)``
    Text-only direction decision.  Veto patterns short-circuit to None;
    otherwise each intent's weighted rules are summed (with a convergence
    bonus when several rules match), the shared content penalty is added,
    and the intent whose final score clears the minimum *and* strictly beats
    the other wins.  Ties are no-match.

``score_element(signal, intent, viewport)``
    Full ranking score for an element already classified toward ``intent``:
    pattern score + penalty + structural bonuses + vertical proximity + size,
    text-length, tag, position and special-context adjustments.

``determine_direction`` layers the explicit ``rel``/class override on top of
``classify`` — an explicit marker bypasses text scoring entirely.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from . import NEXT, PREVIOUS, Viewport
from .config import DEFAULT_CONFIG, DetectorConfig
from .patterns import (
    EPISODIC_CLASS_MARKERS,
    EPISODIC_TEXT_MARKERS,
    EXPLICIT_CLASS_MARKERS,
    LIGHTBOX_CLASS_MARKERS,
    LIGHTBOX_ICON_MARKERS,
    LIGHTBOX_TEXT_MARKERS,
    NAV_CLASS_MARKER,
    PAGINATION_CLASS_MARKERS,
    PAGINATION_DIRECTION_MARKERS,
    PENALTY_PATTERNS,
    RULES_BY_INTENT,
    VETO_PATTERNS,
)
from .signals import ElementSignal, StructuralFacts

logger = logging.getLogger(__name__)

EPISODIC = "episodic"
LIGHTBOX = "lightbox"

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PatternScore:
    score: float
    matches: int
    tags: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    """Additive components of an element's ranking score."""

    vetoed: bool = False
    veto: float = 0.0
    patterns: float = 0.0
    penalty: float = 0.0
    rel: float = 0.0
    pagination_class: float = 0.0
    nav_class: float = 0.0
    proximity: float = 0.0
    size: float = 0.0
    text_length: float = 0.0
    tag: float = 0.0
    position: float = 0.0
    special: float = 0.0
    context: str | None = None  # episodic | lightbox | None
    tags: tuple[str, ...] = ()

    @property
    def total(self) -> float:
        if self.vetoed:
            return self.veto
        return (
            self.patterns
            + self.penalty
            + self.rel
            + self.pagination_class
            + self.nav_class
            + self.proximity
            + self.size
            + self.text_length
            + self.tag
            + self.position
            + self.special
        )

    def as_dict(self) -> dict[str, float]:
        """Numeric components only (diagnostics)."""
        return {
            k: float(v)
            for k, v in asdict(self).items()
            if isinstance(v, (int, float)) and not isinstance(v, bool) and v
        }


# ---------------------------------------------------------------------------
# Text-level primitives
# ---------------------------------------------------------------------------


def veto_match(text: str) -> str | None:
    """Return the first veto pattern that matches, or None."""
    for pattern in VETO_PATTERNS:
        if pattern.search(text):
            return pattern.pattern
    return None


def is_vetoed(text: str) -> bool:
    return veto_match(text) is not None


def pattern_score(text: str, intent: str, config: DetectorConfig = DEFAULT_CONFIG) -> PatternScore:
    """Sum rule weights for ``intent``; several matches earn ``matches × bonus``."""
    total = 0.0
    tags: list[str] = []
    for rule in RULES_BY_INTENT[intent]:
        if rule.regex.search(text):
            total += rule.weight
            tags.append(rule.tag)
    matches = len(tags)
    if matches > 1:
        total += matches * config.scoring.multiple_pattern_bonus
    return PatternScore(score=total, matches=matches, tags=tuple(tags))


def content_penalty(text: str) -> float:
    """Direction-agnostic deduction for generic non-navigation vocabulary."""
    return float(sum(p.penalty for p in PENALTY_PATTERNS if p.regex.search(text)))


def final_scores(text: str, config: DetectorConfig = DEFAULT_CONFIG) -> tuple[float, float]:
    """(finalNext, finalPrev) — pattern score plus shared penalty."""
    penalty = content_penalty(text)
    return (
        pattern_score(text, NEXT, config).score + penalty,
        pattern_score(text, PREVIOUS, config).score + penalty,
    )


def classify(text: str, config: DetectorConfig = DEFAULT_CONFIG) -> str | None:
    """Classify text as 'next', 'previous' or None (vetoed, weak, or tied)."""
    text = text.lower()
    if is_vetoed(text):
        return None
    final_next, final_prev = final_scores(text, config)
    minimum = config.scoring.minimum_score
    if final_next >= minimum and final_next > final_prev:
        return NEXT
    if final_prev >= minimum and final_prev > final_next:
        return PREVIOUS
    return None


# ---------------------------------------------------------------------------
# Element-level direction
# ---------------------------------------------------------------------------


def explicit_direction(facts: StructuralFacts) -> str | None:
    """Direction from rel or pagination/pager class markers, if any."""
    if NEXT in facts.rel:
        return NEXT
    if PREVIOUS in facts.rel or "prev" in facts.rel:
        return PREVIOUS

    classes = facts.class_string
    if any(m in classes for m in PAGINATION_CLASS_MARKERS):
        for intent in (NEXT, PREVIOUS):
            if any(m in classes for m in PAGINATION_DIRECTION_MARKERS[intent]):
                return intent

    for intent in (NEXT, PREVIOUS):
        if any(m in classes for m in EXPLICIT_CLASS_MARKERS[intent]):
            return intent
    return None


def determine_direction(signal: ElementSignal, config: DetectorConfig = DEFAULT_CONFIG) -> str | None:
    explicit = explicit_direction(signal.facts)
    if explicit is not None:
        return explicit
    return classify(signal.text.text, config)


def special_context(signal: ElementSignal) -> str | None:
    """Recognize episodic (webtoon/episode) or lightbox/overlay navigation.

    Episodic wins when both apply.
    """
    text = signal.text.text
    facts = signal.facts
    chain_classes = [facts.class_string] + [" ".join(a.class_names).lower() for a in facts.ancestors]

    if any(m in text for m in EPISODIC_TEXT_MARKERS) or any(
        m in classes for classes in chain_classes for m in EPISODIC_CLASS_MARKERS
    ):
        return EPISODIC

    if (
        any(m in text for m in LIGHTBOX_TEXT_MARKERS)
        or any(m in classes for classes in chain_classes for m in LIGHTBOX_CLASS_MARKERS)
        or facts.role == "dialog"
        or any(a.role.lower() == "dialog" for a in facts.ancestors)
        or any(m in name for name in facts.icon_names for m in LIGHTBOX_ICON_MARKERS)
    ):
        return LIGHTBOX

    return None


# ---------------------------------------------------------------------------
# Ranking score
# ---------------------------------------------------------------------------


def proximity_score(center_y: float, viewport: Viewport, config: DetectorConfig = DEFAULT_CONFIG) -> float:
    """Triangular falloff from the vertical middle, 0 at ``proximity_reach``."""
    scoring = config.scoring
    reach = viewport.height * scoring.proximity_reach
    if reach <= 0:
        return 0.0
    distance = abs(center_y - viewport.middle_y)
    return max(0.0, scoring.proximity_max * (1 - distance / reach))


def score_element(
    signal: ElementSignal,
    intent: str,
    viewport: Viewport,
    config: DetectorConfig = DEFAULT_CONFIG,
) -> ScoreBreakdown:
    """Ranking score for an element classified toward ``intent``."""
    scoring = config.scoring
    text = signal.text.text
    facts = signal.facts

    if is_vetoed(text):
        return ScoreBreakdown(vetoed=True, veto=scoring.veto_score)

    patterns = pattern_score(text, intent, config)
    penalty = content_penalty(text)

    rel = scoring.rel_bonus if intent in facts.rel or (intent == PREVIOUS and "prev" in facts.rel) else 0.0

    classes = facts.class_string
    pagination = scoring.pagination_class_bonus if any(m in classes for m in PAGINATION_CLASS_MARKERS) else 0.0
    nav_class = scoring.nav_class_bonus if (intent in classes or NAV_CLASS_MARKER in classes) else 0.0

    proximity = proximity_score(facts.rect.center_y, viewport, config)

    area = facts.rect.area
    if area < scoring.small_area:
        size = scoring.small_element_penalty
    elif area > scoring.large_area:
        size = scoring.large_element_penalty
    else:
        size = 0.0

    length = len(text)
    if length == 0:
        text_length = scoring.empty_text_penalty
    elif length == 1:
        text_length = scoring.single_character_bonus
    elif length > scoring.verbose_length:
        text_length = scoring.verbose_text_penalty
    else:
        text_length = 0.0

    if facts.tag == "a":
        tag = scoring.link_bonus
    elif facts.tag == "button":
        tag = scoring.button_bonus
    else:
        tag = 0.0

    context = special_context(signal)
    if context == EPISODIC:
        special = scoring.episodic_bonus
    elif context == LIGHTBOX:
        special = scoring.lightbox_bonus
    else:
        special = 0.0

    # Special contexts are not required to sit in the traditional half.
    position = 0.0
    if context is None:
        center_x = facts.rect.center_x
        if intent == PREVIOUS and center_x < viewport.width * scoring.previous_zone:
            position = scoring.position_bonus
        elif intent == NEXT and center_x > viewport.width * scoring.next_zone:
            position = scoring.position_bonus

    breakdown = ScoreBreakdown(
        patterns=patterns.score,
        penalty=penalty,
        rel=rel,
        pagination_class=pagination,
        nav_class=nav_class,
        proximity=proximity,
        size=size,
        text_length=text_length,
        tag=tag,
        position=position,
        special=special,
        context=context,
        tags=patterns.tags,
    )
    logger.debug(
        "score ref=%d intent=%s total=%.1f patterns=%.0f penalty=%.0f proximity=%.1f context=%s",
        facts.ref,
        intent,
        breakdown.total,
        patterns.score,
        penalty,
        proximity,
        context,
    )
    return breakdown
