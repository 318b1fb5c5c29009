"""Debounce and throttle admission control keyed by action.

Guard state lives for the lifetime of the station and is only dropped by
``clear_guards`` / ``clear_all``. Timers are event loop callbacks, so a
station must be used from the loop that awaits its debounce signals.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from actionpipe.core.logging import LogSink


@dataclass
class GuardState:
    """Timing state for one guard key.

    Attributes:
        last_executed_at: Clock reading (ms) of the last admitted execution.
        debounce_timer: Pending debounce timer, if any.
        debounce_waiter: Future resolved when the pending debounce fires.
        throttle_timer: Timer ending the current throttle cool-down.
        is_throttled: Whether a cool-down is in progress.
    """

    last_executed_at: float | None = None
    debounce_timer: asyncio.TimerHandle | None = None
    debounce_waiter: asyncio.Future | None = None
    throttle_timer: asyncio.TimerHandle | None = None
    is_throttled: bool = False

    def cancel_timers(self) -> None:
        if self.debounce_timer is not None:
            self.debounce_timer.cancel()
            self.debounce_timer = None
        if self.debounce_waiter is not None and not self.debounce_waiter.done():
            self.debounce_waiter.set_result(False)
        self.debounce_waiter = None
        if self.throttle_timer is not None:
            self.throttle_timer.cancel()
            self.throttle_timer = None
        self.is_throttled = False


class GuardStation:
    """Per-key trailing-edge debounce and leading-edge throttle.

    Args:
        log: Log sink for guard decisions (trace level).
        clock: Monotonic clock returning seconds. Injectable for tests.
    """

    def __init__(self, log: LogSink, clock: Callable[[], float] = time.monotonic) -> None:
        self._guards: dict[str, GuardState] = {}
        self._log = log
        self._clock = clock

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _state(self, key: str) -> GuardState:
        state = self._guards.get(key)
        if state is None:
            state = GuardState()
            self._guards[key] = state
        return state

    async def debounce(self, key: str, delay_ms: float) -> bool:
        """Wait until ``delay_ms`` passes without another debounce call for ``key``.

        Returns:
            True for the call that survived the quiet window, False for every
            call superseded by a later one (or released by a clear).
        """
        self._log.trace(f"Checking debounce for '{key}'", action=key, delay_ms=delay_ms)
        loop = asyncio.get_running_loop()
        state = self._state(key)

        if state.debounce_timer is not None:
            state.debounce_timer.cancel()
            self._log.trace(f"Cleared existing debounce timer for '{key}'", action=key)
        if state.debounce_waiter is not None and not state.debounce_waiter.done():
            state.debounce_waiter.set_result(False)

        waiter = loop.create_future()

        def fire() -> None:
            state.debounce_timer = None
            state.debounce_waiter = None
            state.last_executed_at = self._now_ms()
            if not waiter.done():
                waiter.set_result(True)
            self._log.trace(f"Debounce completed for '{key}'", action=key)

        state.debounce_waiter = waiter
        state.debounce_timer = loop.call_later(delay_ms / 1000.0, fire)
        return await waiter

    def throttle(self, key: str, window_ms: float) -> bool:
        """Decide immediately whether a call for ``key`` may proceed.

        The first call, and any call at least ``window_ms`` after the last
        admitted one, is allowed. Calls inside the window are denied; the
        first denial arms a single cool-down timer for the key.
        """
        state = self._state(key)
        now = self._now_ms()
        elapsed = None if state.last_executed_at is None else now - state.last_executed_at

        if elapsed is None or elapsed >= window_ms:
            if state.throttle_timer is not None:
                state.throttle_timer.cancel()
                state.throttle_timer = None
            state.last_executed_at = now
            state.is_throttled = False
            self._log.trace(f"Throttle passed for '{key}'", action=key, elapsed_ms=elapsed)
            return True

        if state.is_throttled:
            self._log.trace(f"Action '{key}' is already throttled", action=key)
            return False

        state.is_throttled = True
        remaining = window_ms - elapsed
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:

            def release() -> None:
                state.is_throttled = False
                state.throttle_timer = None
                self._log.trace(f"Throttle period ended for '{key}'", action=key)

            state.throttle_timer = loop.call_later(remaining / 1000.0, release)

        self._log.trace(
            f"Action '{key}' throttled", action=key, elapsed_ms=elapsed, remaining_ms=remaining
        )
        return False

    def clear_guards(self, key: str) -> None:
        state = self._guards.pop(key, None)
        if state is not None:
            state.cancel_timers()
            self._log.debug(f"Cleared guards for '{key}'", action=key)

    def clear_all(self) -> None:
        for state in self._guards.values():
            state.cancel_timers()
        self._guards.clear()
        self._log.debug("Cleared all action guards")

    def get_guard_state(self, key: str) -> GuardState | None:
        return self._guards.get(key)

    def get_all_guard_states(self) -> dict[str, GuardState]:
        return dict(self._guards)
