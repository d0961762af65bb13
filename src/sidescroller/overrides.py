# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-site trained overrides — protocol-based storage.

A user can "train" a site by picking the previous/next elements by hand.
The picks are stored as unique CSS selectors keyed by hostname; when at least
one trained selector still resolves on the page, the trained pair replaces
automatic detection for that pass.

Defines ``OverrideStore`` (runtime-checkable Protocol) and
``InMemoryOverrideStore``.  The persistent implementation lives in
``overrides_sqlite.py``.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from . import INTENTS, NEXT, PREVIOUS, DetectionResult, ElementSnapshot

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TrainedElement:
    """A hand-picked navigation element."""

    selector: str
    text: str = ""
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not self.selector.strip():
            raise ValueError("selector must be non-empty")


@dataclass(frozen=True, slots=True)
class SiteOverride:
    site: str
    previous: TrainedElement | None = None
    next: TrainedElement | None = None

    def get(self, intent: str) -> TrainedElement | None:
        return self.previous if intent == PREVIOUS else self.next

    @property
    def trained_count(self) -> int:
        return sum(1 for intent in INTENTS if self.get(intent) is not None)

    @property
    def has_any(self) -> bool:
        return self.trained_count > 0

    def resolve(self, elements: Iterable[ElementSnapshot]) -> DetectionResult:
        """Map trained selectors onto the elements of the current snapshot."""
        by_selector: dict[str, ElementSnapshot] = {}
        for element in elements:
            if element.selector:
                by_selector.setdefault(element.selector, element)
        return DetectionResult(
            previous=by_selector.get(self.previous.selector) if self.previous else None,
            next=by_selector.get(self.next.selector) if self.next else None,
        )


def _validate_intent(intent: str) -> None:
    if intent not in INTENTS:
        raise ValueError(f"intent must be one of {INTENTS}, got {intent!r}")


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class OverrideStore(Protocol):
    """Interface for trained-override storage — in-memory or SQLite."""

    async def get(self, site: str) -> SiteOverride | None: ...

    async def set(self, site: str, intent: str, element: TrainedElement) -> None: ...

    async def clear(self, site: str) -> bool: ...

    async def sites(self) -> list[str]: ...

    async def close(self) -> None: ...


async def override_status(store: OverrideStore, site: str) -> dict[str, object]:
    """Summary suitable for display: which intents are trained for ``site``."""
    override = await store.get(site)
    status: dict[str, object] = {"site": site, "has_trained_elements": False, "trained_count": 0}
    if override is None:
        return status
    status["has_trained_elements"] = override.has_any
    status["trained_count"] = override.trained_count
    for intent in INTENTS:
        trained = override.get(intent)
        status[intent] = None if trained is None else {"selector": trained.selector, "text": trained.text}
    return status


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryOverrideStore:
    """Dict-backed store for tests and one-off sessions."""

    def __init__(self) -> None:
        self._sites: dict[str, SiteOverride] = {}

    async def get(self, site: str) -> SiteOverride | None:
        return self._sites.get(site)

    async def set(self, site: str, intent: str, element: TrainedElement) -> None:
        _validate_intent(intent)
        current = self._sites.get(site) or SiteOverride(site=site)
        if intent == NEXT:
            self._sites[site] = SiteOverride(site=site, previous=current.previous, next=element)
        else:
            self._sites[site] = SiteOverride(site=site, previous=element, next=current.next)

    async def clear(self, site: str) -> bool:
        return self._sites.pop(site, None) is not None

    async def sites(self) -> list[str]:
        return sorted(self._sites)

    async def close(self) -> None:
        """No-op for the in-memory store."""
