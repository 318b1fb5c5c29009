"""Tests for GuardStation debounce and throttle admission control."""

import asyncio
import logging
import time

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from actionpipe.core.logging import ActionLogger
from actionpipe.guards.station import GuardStation


# =============================================================================
# Throttle
# =============================================================================


class TestThrottle:
    def test_burst_inside_window_is_denied(self, log, clock):
        guards = GuardStation(log, clock=clock)

        clock.set_ms(0)
        assert guards.throttle("scroll", 50) is True
        clock.set_ms(10)
        assert guards.throttle("scroll", 50) is False
        clock.set_ms(40)
        assert guards.throttle("scroll", 50) is False

    def test_allows_again_after_window(self, log, clock):
        guards = GuardStation(log, clock=clock)

        clock.set_ms(0)
        assert guards.throttle("scroll", 50) is True
        clock.set_ms(10)
        assert guards.throttle("scroll", 50) is False
        clock.set_ms(60)
        assert guards.throttle("scroll", 50) is True
        clock.set_ms(70)
        assert guards.throttle("scroll", 50) is False

    def test_keys_are_independent(self, log, clock):
        guards = GuardStation(log, clock=clock)
        assert guards.throttle("a", 50) is True
        assert guards.throttle("b", 50) is True
        assert guards.throttle("a", 50) is False

    def test_first_denial_enters_cool_down(self, log, clock):
        guards = GuardStation(log, clock=clock)
        guards.throttle("scroll", 50)
        clock.set_ms(5)
        guards.throttle("scroll", 50)

        state = guards.get_guard_state("scroll")
        assert state is not None
        assert state.is_throttled is True
        # No running loop, so no timer is armed.
        assert state.throttle_timer is None

    async def test_cool_down_timer_armed_inside_loop(self, log, clock):
        guards = GuardStation(log, clock=clock)
        guards.throttle("scroll", 20)
        clock.set_ms(5)
        assert guards.throttle("scroll", 20) is False
        assert guards.throttle("scroll", 20) is False

        state = guards.get_guard_state("scroll")
        assert state.throttle_timer is not None

        await asyncio.sleep(0.04)
        assert state.is_throttled is False
        assert state.throttle_timer is None


@given(
    gaps=st.lists(st.integers(min_value=0, max_value=120), min_size=1, max_size=40),
    window=st.integers(min_value=1, max_value=100),
)
@settings(max_examples=100)
def test_throttle_never_allows_twice_within_window(gaps: list[int], window: int):
    """For any call sequence, allowed calls are at least one window apart."""
    now = {"ms": 0}
    guards = GuardStation(
        ActionLogger(logging.getLogger("actionpipe.tests.guards")),
        clock=lambda: now["ms"] / 1000.0,
    )

    allowed_at = []
    for gap in gaps:
        now["ms"] += gap
        if guards.throttle("key", window):
            allowed_at.append(now["ms"])

    assert allowed_at, "the first call is always allowed"
    for earlier, later in zip(allowed_at, allowed_at[1:]):
        assert later - earlier >= window - 1e-6


# =============================================================================
# Debounce
# =============================================================================


class TestDebounce:
    @pytest.mark.timeout(5)
    async def test_burst_resolves_once_after_last_call(self, log):
        guards = GuardStation(log)
        called_at: dict[int, float] = {}
        resolved_at: dict[int, float] = {}

        async def call(index: int) -> bool:
            called_at[index] = time.monotonic()
            result = await guards.debounce("search", 50)
            resolved_at[index] = time.monotonic()
            return result

        tasks = []
        for index in range(4):
            tasks.append(asyncio.create_task(call(index)))
            await asyncio.sleep(0.01)

        results = await asyncio.gather(*tasks)

        assert results == [False, False, False, True]
        # The surviving call resolves one quiet window after it was made.
        waited = resolved_at[3] - called_at[3]
        assert 0.045 <= waited <= 0.2

    async def test_single_call_resolves_true_and_records_execution(self, log):
        guards = GuardStation(log)
        assert await guards.debounce("save", 5) is True

        state = guards.get_guard_state("save")
        assert state.last_executed_at is not None
        assert state.debounce_timer is None
        assert state.debounce_waiter is None

    async def test_keys_do_not_coalesce(self, log):
        guards = GuardStation(log)
        results = await asyncio.gather(
            guards.debounce("a", 10),
            guards.debounce("b", 10),
        )
        assert results == [True, True]

    async def test_clear_guards_releases_pending_waiter(self, log):
        guards = GuardStation(log)
        task = asyncio.create_task(guards.debounce("search", 1000))
        await asyncio.sleep(0)

        guards.clear_guards("search")

        assert await asyncio.wait_for(task, 0.5) is False
        assert guards.get_guard_state("search") is None

    async def test_clear_all_cancels_every_timer(self, log, clock):
        guards = GuardStation(log, clock=clock)
        task = asyncio.create_task(guards.debounce("a", 1000))
        await asyncio.sleep(0)
        guards.throttle("b", 1000)
        clock.set_ms(1)
        guards.throttle("b", 1000)

        guards.clear_all()

        assert await asyncio.wait_for(task, 0.5) is False
        assert guards.get_all_guard_states() == {}
        # State is recreated lazily after a clear.
        assert guards.throttle("b", 1000) is True
