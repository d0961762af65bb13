# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Navigation binder — the per-page context object.

``NavigationBinder`` owns everything one page needs: the latest detection
result, the key bindings derived from it, and the rescan scheduler that
keeps both fresh.  Every pass goes cleanup → snapshot → (trained override
or detection) → bind, so bindings never outlive the result that produced
them.

The host is abstract (``NavigationHost``): the Playwright adapter in
``browser.py`` implements it for real pages, tests use a fake.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from . import EMPTY_RESULT, INTENTS, NEXT, PREVIOUS, DetectionResult, ElementSnapshot, PageSnapshot
from .chrome_filter import is_internal_origin
from .config import DEFAULT_CONFIG, DetectorConfig
from .errors import OverrideStoreError
from .overrides import OverrideStore
from .scheduler import LocationChange, MutationEvent, RescanScheduler
from .selector import DetectionReport, detect_snapshot

logger = logging.getLogger(__name__)

KEY_FOR_INTENT: dict[str, str] = {PREVIOUS: "ArrowLeft", NEXT: "ArrowRight"}
INTENT_FOR_KEY: dict[str, str] = {key: intent for intent, key in KEY_FOR_INTENT.items()}


@runtime_checkable
class NavigationHost(Protocol):
    """What the binder needs from the embedding environment."""

    async def snapshot(self) -> PageSnapshot: ...

    async def activate(self, element: ElementSnapshot) -> None: ...

    async def publish_bindings(self, keys: frozenset[str]) -> None: ...


# ---------------------------------------------------------------------------
# Key bindings
# ---------------------------------------------------------------------------


class KeyBindings:
    """Logical key → element map. At most one element per key."""

    def __init__(self) -> None:
        self._bound: dict[str, ElementSnapshot] = {}

    def bind(self, intent: str, element: ElementSnapshot) -> bool:
        """Bind ``element`` to the key for ``intent``. False if that key is taken."""
        key = KEY_FOR_INTENT[intent]
        if key in self._bound:
            logger.debug("Key %s already bound, skipping %s", key, element.describe())
            return False
        self._bound[key] = element
        return True

    def unbind_all(self) -> None:
        self._bound.clear()

    def element_for(self, key: str) -> ElementSnapshot | None:
        return self._bound.get(key)

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(self._bound)

    def __len__(self) -> int:
        return len(self._bound)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class NavigationBinder:
    """Per-page navigation context.

    Args:
        host: snapshot/activation provider.
        store: optional trained-override store consulted before detection.
        config: detection and scheduling configuration.
    """

    def __init__(
        self,
        host: NavigationHost,
        *,
        store: OverrideStore | None = None,
        config: DetectorConfig = DEFAULT_CONFIG,
    ) -> None:
        self._host = host
        self._store = store
        self._config = config
        self.bindings = KeyBindings()
        self.result: DetectionResult = EMPTY_RESULT
        self.last_report: DetectionReport | None = None
        self.used_override = False
        self.site = ""
        self.scheduler = RescanScheduler(self.refresh, config=config.scheduler)

    # ── Passes ────────────────────────────────────────────────────

    async def refresh(self) -> DetectionResult:
        """One full pass: cleanup, snapshot, resolve, bind.

        The host always receives the resulting key set, also when the pass
        fails, so a failed pass leaves no stale keys claimed on the page.
        """
        self.cleanup()
        try:
            snapshot = await self._host.snapshot()
            self.site = snapshot.site
            self.scheduler.track_location(snapshot.url)

            if is_internal_origin(snapshot.url):
                logger.info("Browser-internal page, navigation disabled: %s", snapshot.url)
                return self.result

            result = await self._resolve_override(snapshot)
            if result is None:
                self.last_report = detect_snapshot(snapshot, config=self._config)
                result = self.last_report.result
            self.result = result

            for intent in INTENTS:
                element = result.get(intent)
                if element is not None:
                    self.bindings.bind(intent, element)
            return result
        finally:
            await self._host.publish_bindings(self.bindings.keys)

    async def _resolve_override(self, snapshot: PageSnapshot) -> DetectionResult | None:
        self.used_override = False
        if self._store is None or not snapshot.site:
            return None
        try:
            override = await self._store.get(snapshot.site)
        except OverrideStoreError as e:
            logger.warning("Trained override lookup failed for %s: %s", snapshot.site, e)
            return None
        if override is None or not override.has_any:
            return None

        resolved = override.resolve(snapshot.elements)
        if not resolved.found:
            logger.info("Trained elements for %s not present on this page, falling back to detection", snapshot.site)
            return None
        logger.info("Using trained elements for %s", snapshot.site)
        self.used_override = True
        return resolved

    def cleanup(self) -> None:
        """Drop bindings and the previous result."""
        self.bindings.unbind_all()
        self.result = EMPTY_RESULT

    # ── Lifecycle ─────────────────────────────────────────────────

    async def start(self, *, raise_on_failure: bool = False) -> bool:
        """Initial pass with retries (see ``RescanScheduler.initialize``)."""
        return await self.scheduler.initialize(raise_on_failure=raise_on_failure)

    def handle(self, event: MutationEvent | LocationChange) -> bool:
        return self.scheduler.notify(event)

    def handle_mutations(self, events: list[MutationEvent]) -> bool:
        return self.scheduler.notify_mutations(events)

    def handle_location(self, url: str) -> bool:
        return self.scheduler.notify_location(url)

    async def close(self) -> None:
        await self.scheduler.close()
        self.cleanup()

    # ── Keys ──────────────────────────────────────────────────────

    async def press(self, key: str, *, modifiers: bool = False, editable_focus: bool = False) -> bool:
        """Dispatch a key press. Returns True if a bound element was activated.

        Presses with modifier keys held, or while an editable element has
        focus, are left to the page.
        """
        if modifiers or editable_focus:
            return False
        element = self.bindings.element_for(key)
        if element is None:
            return False
        logger.info("Activating %s via %s", INTENT_FOR_KEY.get(key, key), key)
        await self._host.activate(element)
        return True

    def status(self) -> dict[str, Any]:
        return {
            "site": self.site,
            "state": self.scheduler.state.value,
            "inactive": self.scheduler.inactive,
            "scan_count": self.scheduler.scan_count,
            "used_override": self.used_override,
            "bound_keys": sorted(self.bindings.keys),
            PREVIOUS: self.result.previous.describe() if self.result.previous else None,
            NEXT: self.result.next.describe() if self.result.next else None,
        }
