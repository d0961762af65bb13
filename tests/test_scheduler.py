# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the rescan scheduler: relevance, debounce coalescing, retries."""

from __future__ import annotations

import asyncio

import pytest

from sidescroller.config import SchedulerConfig
from sidescroller.errors import InitializationError
from sidescroller.scheduler import (
    LocationChange,
    MutationEvent,
    NodeInfo,
    RescanScheduler,
    SchedulerState,
    is_relevant_mutation,
)

FAST = SchedulerConfig(mutation_debounce=0.05, location_settle=0.05, initial_delay=0.0, max_retries=3, retry_delay=0.0)

OVERLAY = NodeInfo(tag="div", class_names=("modal-backdrop",))
PLAIN = NodeInfo(tag="p", class_names=("comment",))


def _added(*nodes: NodeInfo) -> MutationEvent:
    return MutationEvent(kind="child_list", nodes=nodes)


class _Counter:
    def __init__(self, failures: int = 0) -> None:
        self.calls = 0
        self.failures = failures

    async def __call__(self) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"scan {self.calls} failed")


# ---------------------------------------------------------------------------
# Relevance
# ---------------------------------------------------------------------------


class TestRelevance:
    def test_overlay_node_added(self):
        assert is_relevant_mutation(_added(OVERLAY))

    def test_plain_node_ignored(self):
        assert not is_relevant_mutation(_added(PLAIN))

    def test_overlay_descendant(self):
        wrapper = NodeInfo(tag="div", descendants=(NodeInfo(tag="div", role="dialog"),))
        assert is_relevant_mutation(_added(wrapper))

    @pytest.mark.parametrize(
        "node",
        [
            NodeInfo(tag="section", class_names=("episode-list",)),
            NodeInfo(tag="div", class_names=("Carousel",)),
            NodeInfo(tag="svg", icon_name="right-fill"),
            NodeInfo(tag="button", aria_label="Next page"),
            NodeInfo(tag="div", aria_label="Lightbox viewer"),
        ],
    )
    def test_overlay_markers(self, node):
        assert is_relevant_mutation(_added(node))

    def test_watched_attribute_on_overlay(self):
        assert is_relevant_mutation(MutationEvent(kind="attributes", nodes=(OVERLAY,), attribute="aria-hidden"))

    def test_unwatched_attribute(self):
        assert not is_relevant_mutation(MutationEvent(kind="attributes", nodes=(OVERLAY,), attribute="href"))

    def test_watched_attribute_on_plain_node(self):
        assert not is_relevant_mutation(MutationEvent(kind="attributes", nodes=(PLAIN,), attribute="class"))

    def test_unknown_kind(self):
        assert not is_relevant_mutation(MutationEvent(kind="character_data", nodes=(OVERLAY,)))

    def test_from_dict(self):
        event = MutationEvent.from_dict(
            {
                "kind": "child_list",
                "nodes": [{"tag": "DIV", "classNames": ["x"], "descendants": [{"tag": "div", "role": "dialog"}]}],
            }
        )
        assert event.nodes[0].tag == "div"
        assert event.nodes[0].descendants[0].role == "dialog"
        assert is_relevant_mutation(event)


# ---------------------------------------------------------------------------
# Debounce
# ---------------------------------------------------------------------------


class TestDebounce:
    async def test_burst_coalesces_to_one_scan(self):
        scan = _Counter()
        scheduler = RescanScheduler(scan, config=FAST)
        for _ in range(5):
            assert scheduler.notify(_added(OVERLAY))
            await asyncio.sleep(0.01)
        assert scheduler.state is SchedulerState.SCHEDULED
        await asyncio.sleep(0.2)
        await scheduler.wait_idle()
        assert scan.calls == 1
        assert scheduler.scan_count == 1
        assert scheduler.state is SchedulerState.IDLE

    async def test_spaced_events_each_scan(self):
        scan = _Counter()
        scheduler = RescanScheduler(scan, config=FAST)
        for _ in range(3):
            scheduler.notify(_added(OVERLAY))
            await asyncio.sleep(0.15)
            await scheduler.wait_idle()
        assert scan.calls == 3

    async def test_irrelevant_mutations_do_not_arm(self):
        scan = _Counter()
        scheduler = RescanScheduler(scan, config=FAST)
        assert not scheduler.notify_mutations([_added(PLAIN), _added(PLAIN)])
        assert scheduler.state is SchedulerState.IDLE
        await asyncio.sleep(0.1)
        assert scan.calls == 0

    async def test_cancel_discards_pending_timer(self):
        scan = _Counter()
        scheduler = RescanScheduler(scan, config=FAST)
        scheduler.notify(_added(OVERLAY))
        scheduler.cancel()
        assert scheduler.state is SchedulerState.IDLE
        await asyncio.sleep(0.1)
        assert scan.calls == 0

    async def test_running_state_and_single_follow_up(self):
        release = asyncio.Event()
        calls = 0

        async def slow_scan():
            nonlocal calls
            calls += 1
            await release.wait()

        scheduler = RescanScheduler(slow_scan, config=FAST)
        scheduler.notify(_added(OVERLAY))
        await asyncio.sleep(0.1)
        assert scheduler.state is SchedulerState.RUNNING

        # Events during the pass queue exactly one more pass.
        scheduler.notify(_added(OVERLAY))
        await asyncio.sleep(0.1)
        scheduler.notify(_added(OVERLAY))
        await asyncio.sleep(0.1)
        release.set()
        await scheduler.wait_idle()
        assert calls == 2
        assert scheduler.state is SchedulerState.IDLE

    async def test_failed_pass_is_contained(self):
        scan = _Counter(failures=1)
        scheduler = RescanScheduler(scan, config=FAST)
        scheduler.notify(_added(OVERLAY))
        await asyncio.sleep(0.1)
        await scheduler.wait_idle()
        assert scheduler.failure_count == 1
        assert scheduler.scan_count == 0
        assert scheduler.state is SchedulerState.IDLE


# ---------------------------------------------------------------------------
# Location changes
# ---------------------------------------------------------------------------


class TestLocation:
    async def test_new_url_schedules(self):
        scan = _Counter()
        scheduler = RescanScheduler(scan, config=FAST, url="https://example.com/1")
        assert scheduler.notify(LocationChange("https://example.com/2"))
        assert scheduler.last_url == "https://example.com/2"
        await asyncio.sleep(0.1)
        await scheduler.wait_idle()
        assert scan.calls == 1

    async def test_same_url_ignored(self):
        scheduler = RescanScheduler(_Counter(), config=FAST, url="https://example.com/1")
        assert not scheduler.notify_location("https://example.com/1")
        assert scheduler.state is SchedulerState.IDLE

    async def test_track_location_does_not_schedule(self):
        scheduler = RescanScheduler(_Counter(), config=FAST)
        scheduler.track_location("https://example.com/3")
        assert scheduler.state is SchedulerState.IDLE
        assert not scheduler.notify_location("https://example.com/3")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


class TestInitialize:
    async def test_first_attempt_succeeds(self):
        scan = _Counter()
        scheduler = RescanScheduler(scan, config=FAST)
        assert await scheduler.initialize()
        assert scan.calls == 1
        assert not scheduler.inactive

    async def test_retries_then_succeeds(self):
        scan = _Counter(failures=2)
        scheduler = RescanScheduler(scan, config=FAST)
        assert await scheduler.initialize()
        assert scan.calls == 3
        assert scheduler.scan_count == 1

    async def test_exhausted_retries_leave_inactive(self):
        scan = _Counter(failures=100)
        scheduler = RescanScheduler(scan, config=FAST)
        assert not await scheduler.initialize()
        assert scan.calls == FAST.max_retries + 1
        assert scheduler.inactive
        assert scheduler.state is SchedulerState.IDLE

    async def test_raise_on_failure(self):
        scheduler = RescanScheduler(_Counter(failures=100), config=FAST)
        with pytest.raises(InitializationError) as exc_info:
            await scheduler.initialize(raise_on_failure=True)
        assert exc_info.value.attempts == 4
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    async def test_later_trigger_reactivates(self):
        scan = _Counter(failures=4)
        scheduler = RescanScheduler(scan, config=FAST)
        assert not await scheduler.initialize()
        scheduler.notify(_added(OVERLAY))
        await asyncio.sleep(0.1)
        await scheduler.wait_idle()
        assert not scheduler.inactive
        assert scan.calls == 5


class _Tracker:
    """Scan that takes ``duration`` seconds and records overlapping calls."""

    def __init__(self, duration: float, failures: int = 0) -> None:
        self.duration = duration
        self.failures = failures
        self.calls = 0
        self.active = 0
        self.peak = 0

    async def __call__(self) -> None:
        self.calls += 1
        call = self.calls
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.duration)
            if call <= self.failures:
                raise RuntimeError(f"scan {call} failed")
        finally:
            self.active -= 1


class TestEventsDuringInitialize:
    async def test_change_during_retry_delay_does_not_overlap(self):
        config = SchedulerConfig(mutation_debounce=0.05, initial_delay=0.0, max_retries=3, retry_delay=0.2)
        scan = _Tracker(0.1, failures=1)
        scheduler = RescanScheduler(scan, config=config)

        init = asyncio.create_task(scheduler.initialize())
        await asyncio.sleep(0.22)
        assert scheduler.state is SchedulerState.RUNNING
        scheduler.notify(_added(OVERLAY))

        assert await init
        await scheduler.wait_idle()
        assert scan.peak == 1
        # failed attempt, successful retry, one follow-up for the change
        assert scan.calls == 3
        assert scheduler.state is SchedulerState.IDLE

    async def test_change_during_initial_pass_gets_follow_up(self):
        config = SchedulerConfig(mutation_debounce=0.01, initial_delay=0.0, retry_delay=0.0)
        scan = _Tracker(0.1)
        scheduler = RescanScheduler(scan, config=config)

        init = asyncio.create_task(scheduler.initialize())
        await asyncio.sleep(0.02)
        scheduler.notify(_added(OVERLAY))

        assert await init
        await scheduler.wait_idle()
        assert scan.calls == 2
        assert scan.peak == 1
        assert scheduler.scan_count == 2
        assert scheduler.state is SchedulerState.IDLE

    async def test_change_during_initial_delay(self):
        config = SchedulerConfig(mutation_debounce=0.01, initial_delay=0.1, retry_delay=0.0)
        scan = _Tracker(0.02)
        scheduler = RescanScheduler(scan, config=config)

        init = asyncio.create_task(scheduler.initialize())
        await asyncio.sleep(0.02)
        scheduler.notify(_added(OVERLAY))
        await asyncio.sleep(0.03)
        # the timer fired, but no pass may start before the initial one
        assert scan.calls == 0

        assert await init
        await scheduler.wait_idle()
        assert scan.calls == 2
        assert scan.peak == 1

    async def test_burst_during_initialize_queues_one_pass(self):
        config = SchedulerConfig(mutation_debounce=0.01, initial_delay=0.0, retry_delay=0.0)
        scan = _Tracker(0.15)
        scheduler = RescanScheduler(scan, config=config)

        init = asyncio.create_task(scheduler.initialize())
        for _ in range(4):
            await asyncio.sleep(0.03)
            scheduler.notify(_added(OVERLAY))

        assert await init
        await scheduler.wait_idle()
        assert scan.calls == 2

    async def test_follow_up_after_exhausted_retries(self):
        config = SchedulerConfig(mutation_debounce=0.01, initial_delay=0.0, max_retries=1, retry_delay=0.05)
        scan = _Tracker(0.02, failures=2)
        scheduler = RescanScheduler(scan, config=config)

        init = asyncio.create_task(scheduler.initialize())
        await asyncio.sleep(0.03)
        scheduler.notify(_added(OVERLAY))

        assert not await init
        assert scheduler.inactive
        await scheduler.wait_idle()
        assert scan.calls == 3
        assert scan.peak == 1
        assert not scheduler.inactive
