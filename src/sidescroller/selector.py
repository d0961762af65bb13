# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Candidate selection — one detection pass over a page snapshot.

For each element: extract → chrome filter → direction → score → vertical
band filter (ordinary candidates only) → per-intent candidate list.  The
maximum score per intent wins; ties keep the first element in document
order.  A failure on one element drops that element and never aborts the
pass.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from . import (
    EMPTY_RESULT,
    INTENTS,
    NEXT,
    PREVIOUS,
    Candidate,
    Decision,
    DetectionResult,
    ElementSnapshot,
    PageSnapshot,
    Viewport,
)
from .chrome_filter import is_internal_origin, should_exclude
from .config import DEFAULT_CONFIG, DetectorConfig
from .scorer import determine_direction, score_element
from .signals import extract

logger = logging.getLogger(__name__)

DecisionCallback = Callable[[Decision], None]


@dataclass
class DetectionReport:
    """Result of one pass plus everything observed along the way."""

    result: DetectionResult
    candidates: dict[str, list[Candidate]] = field(default_factory=lambda: {PREVIOUS: [], NEXT: []})
    decisions: list[Decision] = field(default_factory=list)
    skipped_reason: str = ""  # set when the whole pass was short-circuited

    @property
    def excluded_count(self) -> int:
        return sum(1 for d in self.decisions if d.stage == "excluded")

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.decisions if d.stage == "error")


def select_best(candidates: list[Candidate]) -> Candidate | None:
    """Highest score wins; on ties the earliest candidate is kept."""
    best: Candidate | None = None
    for candidate in candidates:
        if best is None or candidate.score > best.score:
            best = candidate
    return best


def _evaluate(
    element: ElementSnapshot,
    viewport: Viewport,
    config: DetectorConfig,
) -> tuple[Decision, Candidate | None]:
    signal = extract(element)

    verdict = should_exclude(signal.facts, viewport, config)
    if verdict.excluded:
        return Decision(ref=element.ref, stage="excluded", reason="; ".join(verdict.reasons)), None

    intent = determine_direction(signal, config)
    if intent is None:
        return Decision(ref=element.ref, stage="unclassified", reason=signal.text.text[:80]), None

    breakdown = score_element(signal, intent, viewport, config)
    is_special = breakdown.context is not None
    total = breakdown.total

    if not is_special:
        tolerance = viewport.height * config.scoring.vertical_tolerance
        if abs(signal.facts.rect.center_y - viewport.middle_y) > tolerance:
            return (
                Decision(
                    ref=element.ref,
                    stage="out_of_band",
                    reason="too far from vertical middle",
                    intent=intent,
                    score=total,
                    breakdown=breakdown.as_dict(),
                    tags=breakdown.tags,
                ),
                None,
            )

    decision = Decision(
        ref=element.ref,
        stage="candidate",
        reason=breakdown.context or "",
        intent=intent,
        score=total,
        breakdown=breakdown.as_dict(),
        tags=breakdown.tags,
    )
    return decision, Candidate(element=element, text=signal.text.text, score=total, is_special=is_special)


def analyze(
    elements: Iterable[ElementSnapshot],
    viewport: Viewport,
    *,
    config: DetectorConfig = DEFAULT_CONFIG,
    page_url: str | None = None,
    on_decision: DecisionCallback | None = None,
) -> DetectionReport:
    """Run one detection pass and keep the full diagnostic report."""
    if page_url is not None and is_internal_origin(page_url):
        logger.info("Browser-internal page, detection skipped: %s", page_url)
        return DetectionReport(result=EMPTY_RESULT, skipped_reason="internal-origin")

    report = DetectionReport(result=EMPTY_RESULT)

    for element in elements:
        try:
            decision, candidate = _evaluate(element, viewport, config)
        except Exception as e:
            logger.debug("Element %s dropped: %s", getattr(element, "ref", "?"), e, exc_info=True)
            decision, candidate = Decision(ref=getattr(element, "ref", 0), stage="error", reason=str(e)), None

        report.decisions.append(decision)
        if on_decision is not None:
            try:
                on_decision(decision)
            except Exception:
                logger.warning("Decision callback failed for element %s", decision.ref, exc_info=True)
        if candidate is not None and decision.intent is not None:
            report.candidates[decision.intent].append(candidate)

    best = {intent: select_best(report.candidates[intent]) for intent in INTENTS}
    report.result = DetectionResult(
        previous=best[PREVIOUS].element if best[PREVIOUS] else None,
        next=best[NEXT].element if best[NEXT] else None,
    )

    logger.info(
        "Detection: %d elements, %d excluded, %d previous / %d next candidates, %d errors",
        len(report.decisions),
        report.excluded_count,
        len(report.candidates[PREVIOUS]),
        len(report.candidates[NEXT]),
        report.error_count,
    )
    for intent in INTENTS:
        chosen = best[intent]
        if chosen is not None:
            logger.info("Best %s candidate: %s (score %.1f)", intent, chosen.element.describe(), chosen.score)
    return report


def detect(
    elements: Iterable[ElementSnapshot],
    viewport: Viewport,
    *,
    config: DetectorConfig = DEFAULT_CONFIG,
    page_url: str | None = None,
) -> DetectionResult:
    """Pick at most one element per intent."""
    return analyze(elements, viewport, config=config, page_url=page_url).result


def detect_snapshot(snapshot: PageSnapshot, *, config: DetectorConfig = DEFAULT_CONFIG) -> DetectionReport:
    """Convenience wrapper: full report for a host snapshot, host guard included."""
    return analyze(snapshot.elements, snapshot.viewport, config=config, page_url=snapshot.url)
