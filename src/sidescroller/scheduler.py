# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Rescan scheduler — debounced, coalescing re-detection.

State machine::

    Idle ──qualifying event──▶ Scheduled ──timer fires──▶ Running ──done──▶ Idle
                                  ▲   │
                                  └───┘ further events restart the timer

Everything runs on one asyncio loop.  The pending ``TimerHandle`` is the only
cancellable unit; a scan that is already running is never interrupted, and a
timer that fires mid-scan queues exactly one follow-up scan.

The host feeds abstract change events (``MutationEvent``, ``LocationChange``);
the browser adapter and the tests drive the same machine.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .config import SchedulerConfig
from .errors import InitializationError
from .patterns import EPISODIC_CLASS_MARKERS, OVERLAY_CLASS_MARKERS, WATCHED_ATTRIBUTES

logger = logging.getLogger(__name__)

ScanFn = Callable[[], Awaitable[Any]]


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


# ---------------------------------------------------------------------------
# Change events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NodeInfo:
    """Minimal description of a mutated DOM node."""

    tag: str = ""
    class_names: tuple[str, ...] = ()
    role: str = ""
    aria_label: str = ""
    icon_name: str = ""
    descendants: tuple[NodeInfo, ...] = ()  # host-selected overlay-looking descendants

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> NodeInfo:
        return cls(
            tag=str(raw.get("tag", "")).lower(),
            class_names=tuple(raw.get("classNames") or ()),
            role=raw.get("role") or "",
            aria_label=raw.get("ariaLabel") or "",
            icon_name=raw.get("iconName") or "",
            descendants=tuple(cls.from_dict(d) for d in raw.get("descendants") or ()),
        )


@dataclass(frozen=True, slots=True)
class MutationEvent:
    kind: str  # "child_list" | "attributes"
    nodes: tuple[NodeInfo, ...]  # added + removed nodes, or the attribute target
    attribute: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> MutationEvent:
        return cls(
            kind=raw.get("kind", ""),
            nodes=tuple(NodeInfo.from_dict(n) for n in raw.get("nodes") or ()),
            attribute=raw.get("attribute") or "",
        )


@dataclass(frozen=True, slots=True)
class LocationChange:
    url: str


def _matches_overlay(node: NodeInfo) -> bool:
    classes = " ".join(node.class_names).lower()
    if any(m in classes for m in OVERLAY_CLASS_MARKERS):
        return True
    if any(m in classes for m in EPISODIC_CLASS_MARKERS):
        return True
    if node.role.lower() == "dialog":
        return True
    label = node.aria_label.lower()
    if "lightbox" in label:
        return True
    if node.tag == "svg" and "fill" in node.icon_name.lower():
        return True
    return node.tag == "button" and "page" in label


def is_overlay_node(node: NodeInfo) -> bool:
    """Node itself, or one of its reported descendants, looks like overlay/episodic UI."""
    return _matches_overlay(node) or any(_matches_overlay(d) for d in node.descendants)


def is_relevant_mutation(event: MutationEvent) -> bool:
    if event.kind == "child_list":
        return any(is_overlay_node(n) for n in event.nodes)
    if event.kind == "attributes":
        return event.attribute in WATCHED_ATTRIBUTES and any(is_overlay_node(n) for n in event.nodes)
    return False


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class RescanScheduler:
    """Debounce change events into detection passes.

    Args:
        scan: async callable performing cleanup + detect + bind.
        config: delays and retry policy.
        url: initial document location (location changes compare against it).
    """

    def __init__(self, scan: ScanFn, *, config: SchedulerConfig | None = None, url: str = "") -> None:
        self._scan = scan
        self._config = config or SchedulerConfig()
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._rerun = False
        self._last_url = url
        self.scan_count = 0
        self.failure_count = 0
        self.inactive = False

    @property
    def state(self) -> SchedulerState:
        if self._running:
            return SchedulerState.RUNNING
        if self._timer is not None:
            return SchedulerState.SCHEDULED
        return SchedulerState.IDLE

    @property
    def last_url(self) -> str:
        return self._last_url

    # ── Event intake ──────────────────────────────────────────────

    def notify(self, event: MutationEvent | LocationChange) -> bool:
        """Feed one change event. Returns True if it (re)armed the timer."""
        if isinstance(event, LocationChange):
            return self.notify_location(event.url)
        return self.notify_mutations([event])

    def notify_mutations(self, events: Iterable[MutationEvent]) -> bool:
        """Feed a batch of mutations (one observer callback); arms at most once."""
        if not any(is_relevant_mutation(e) for e in events):
            return False
        logger.debug("Relevant DOM change, rescan in %.2fs", self._config.mutation_debounce)
        self.schedule(self._config.mutation_debounce)
        return True

    def track_location(self, url: str) -> None:
        """Record the current location without scheduling a pass."""
        self._last_url = url

    def notify_location(self, url: str) -> bool:
        if url == self._last_url:
            return False
        logger.info("Location change detected: %s", url)
        self._last_url = url
        self.schedule(self._config.location_settle)
        return True

    # ── Timer ─────────────────────────────────────────────────────

    def schedule(self, delay: float) -> None:
        """Arm (or restart) the debounce timer."""
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(delay, self._fire)

    def cancel(self) -> None:
        """Discard a pending timer. A running scan is left to finish."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if self._running:
            self._rerun = True
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        self._running = True
        try:
            while True:
                self._rerun = False
                try:
                    await self._scan()
                except Exception as e:
                    self.failure_count += 1
                    logger.warning("Rescan failed: %s", e, exc_info=True)
                else:
                    self.scan_count += 1
                    self.inactive = False
                if not self._rerun:
                    break
        finally:
            self._running = False

    # ── Initial pass ──────────────────────────────────────────────

    async def initialize(self, *, raise_on_failure: bool = False) -> bool:
        """Run the first pass with retries.

        Returns True on success.  After ``max_retries`` failed retries the
        scheduler is marked inactive until a later event re-arms it.
        Changes notified while it is in progress (delays included) are
        coalesced into one follow-up pass started when it finishes.

        Raises:
            InitializationError: every attempt failed and ``raise_on_failure``.
        """
        cfg = self._config
        attempts = cfg.max_retries + 1
        last_error: Exception | None = None

        await self.wait_idle()
        # Running covers the delays too: timers firing meanwhile only queue a follow-up.
        self._running = True
        try:
            if cfg.initial_delay:
                await asyncio.sleep(cfg.initial_delay)
            for attempt in range(1, attempts + 1):
                if attempt > 1:
                    logger.info("Retrying initialization (%d/%d)", attempt - 1, cfg.max_retries)
                    await asyncio.sleep(cfg.retry_delay)
                try:
                    await self._scan()
                except Exception as e:
                    last_error = e
                    self.failure_count += 1
                    logger.warning("Initialization attempt %d failed: %s", attempt, e)
                    continue
                self.scan_count += 1
                self.inactive = False
                return True

            self.inactive = True
            logger.error("Failed to initialize after %d retries", cfg.max_retries)
        finally:
            self._running = False
            if self._rerun:
                logger.debug("Change arrived during initialization, rescanning")
                self._task = asyncio.get_running_loop().create_task(self._run())

        if raise_on_failure:
            raise InitializationError(f"initial detection failed: {last_error}", attempts=attempts) from last_error
        return False

    async def wait_idle(self) -> None:
        """Await the in-flight scan, if any (pending timers are not awaited)."""
        if self._task is not None and not self._task.done():
            await self._task

    async def close(self) -> None:
        self.cancel()
        await self.wait_idle()
