"""End-to-end tests for ActionRegister registration, dispatch and lifecycle events."""

import asyncio
import time

import pytest
from pydantic import ValidationError

from actionpipe import ActionEvent, ActionRegister, ExecutionMode, HandlerConfig


@pytest.fixture
def register(log) -> ActionRegister:
    return ActionRegister(name="test", logger=log)


def capture(register: ActionRegister, event: str) -> list[dict]:
    seen: list[dict] = []
    register.on(event, seen.append)
    return seen


# =============================================================================
# Registration
# =============================================================================


class TestRegistration:
    def test_register_emits_event_with_generated_id(self, register):
        registered = capture(register, "handler:register")

        register.register("save", lambda p, c: None, priority=3)

        assert len(registered) == 1
        assert registered[0]["action"] == "save"
        assert registered[0]["handler_id"].startswith("handler_")
        assert registered[0]["config"].priority == 3

    def test_options_as_mapping_config_or_keywords(self, register):
        register.register("a", lambda p, c: None, {"id": "m", "priority": 1})
        register.register("a", lambda p, c: None, HandlerConfig(id="c"), priority=2)
        register.register("a", lambda p, c: None, id="k")
        assert register.get_handler_count("a") == 3

    def test_invalid_options_rejected(self, register):
        with pytest.raises(ValidationError):
            register.register("a", lambda p, c: None, priority="high")
        with pytest.raises(ValidationError):
            register.register("a", lambda p, c: None, retries=3)
        with pytest.raises(ValidationError):
            register.register("a", lambda p, c: None, id="   ")

    def test_unregister_function_emits_event(self, register):
        removed = capture(register, "handler:unregister")
        unregister = register.register("save", lambda p, c: None, id="h")

        unregister()
        unregister()

        assert removed == [{"action": "save", "handler_id": "h"}]
        assert register.has_handlers("save") is False

    def test_unregister_by_id(self, register):
        removed = capture(register, "handler:unregister")
        register.register("save", lambda p, c: None, id="h")

        assert register.unregister("save", "h") is True
        assert register.unregister("save", "h") is False
        assert len(removed) == 1

    def test_duplicate_id_warns_and_keeps_original(self, register, log):
        registered = capture(register, "handler:register")
        register.register("save", lambda p, c: None, id="h", priority=1)
        noop = register.register("save", lambda p, c: None, id="h", priority=99)

        noop()

        assert register.get_handler_count("save") == 1
        assert len(registered) == 1
        assert any("already exists" in msg for msg in log.messages("warn"))

    def test_introspection(self, register):
        register.register("b", lambda p, c: None)
        register.register("a", lambda p, c: None)
        register.register("a", lambda p, c: None)

        assert register.get_registered_actions() == ["b", "a"]
        assert register.get_handler_count("a") == 2
        assert register.get_handler_count("missing") == 0

    async def test_clear_all_drops_handlers_and_listeners(self, register):
        started = capture(register, "action:start")
        register.register("a", lambda p, c: None)

        register.clear_all()

        assert register.get_registered_actions() == []
        register.register("a", lambda p, c: None)
        await register.dispatch("a")
        assert started == []


# =============================================================================
# Dispatch
# =============================================================================


class TestDispatch:
    async def test_payload_modification_flows_to_lower_priority(self, register):
        seen = []
        register.register("calc", lambda p, c: c.modify_payload(lambda x: x * 2), priority=10)
        register.register("calc", lambda p, c: seen.append(c.get_payload()), priority=0)

        await register.dispatch("calc", 5)

        assert seen == [10]

    async def test_complete_event_carries_metrics(self, register):
        completed = capture(register, "action:complete")
        started = capture(register, "action:start")
        register.register("calc", lambda p, c: None)
        register.register("calc", lambda p, c: None)

        await register.dispatch("calc", {"x": 1})

        assert started == [{"action": "calc", "payload": {"x": 1}}]
        assert len(completed) == 1
        metrics = completed[0]["metrics"]
        assert metrics.action == "calc"
        assert metrics.handler_count == 2
        assert metrics.success is True
        assert metrics.error is None
        assert metrics.execution_time_ms >= 0

    async def test_abort_emits_abort_event_and_returns(self, register):
        aborted = capture(register, "action:abort")
        completed = capture(register, "action:complete")
        ran = []
        register.register("save", lambda p, c: c.abort("invalid input"), priority=5)
        register.register("save", lambda p, c: ran.append("late"), priority=0)

        await register.dispatch("save", {})

        assert ran == []
        assert completed == []
        assert len(aborted) == 1
        assert aborted[0]["reason"] == "invalid input"
        assert aborted[0]["metrics"].success is False

    async def test_handler_exception_rethrown_and_error_emitted(self, register):
        errors = capture(register, "action:error")
        completed = capture(register, "action:complete")
        boom = KeyError("missing")

        def failing(payload, controller):
            raise boom

        register.register("save", failing)

        with pytest.raises(KeyError) as excinfo:
            await register.dispatch("save", {"id": 1})

        assert excinfo.value is boom
        assert completed == []
        assert len(errors) == 1
        assert errors[0]["error"] is boom
        assert errors[0]["payload"] == {"id": 1}
        assert errors[0]["metrics"].success is False

    async def test_dispatch_without_handlers_completes(self, register, log):
        started = capture(register, "action:start")
        completed = capture(register, "action:complete")
        register.register("save", lambda p, c: None)
        register.clear_action("save")
        assert register.has_handlers("save") is False
        assert register.get_handler_count("save") == 0

        await register.dispatch("save", 1)

        assert len(started) == 1
        assert len(completed) == 1
        assert completed[0]["metrics"].handler_count == 0
        assert any("No handlers" in msg for msg in log.messages("warn"))

    async def test_async_handlers_awaited_when_blocking(self, register):
        seen = []

        async def slow(payload, controller):
            await asyncio.sleep(0.01)
            controller.modify_payload(lambda x: x + 1)

        register.register("inc", slow, priority=1, blocking=True)
        register.register("inc", lambda p, c: seen.append(c.get_payload()), priority=0)

        await register.dispatch("inc", 1)

        assert seen == [2]

    async def test_listener_failure_does_not_affect_dispatch(self, register, log):
        def broken(data):
            raise RuntimeError("listener bug")

        register.on("action:start", broken)
        register.on("action:complete", broken)
        ran = []
        register.register("save", lambda p, c: ran.append(p))

        await register.dispatch("save", 7)

        assert ran == [7]
        assert len(log.messages("error")) == 2

    async def test_off_detaches_listener(self, register):
        seen = []
        register.on(ActionEvent.ACTION_START, seen.append)
        register.off(ActionEvent.ACTION_START, seen.append)
        register.register("a", lambda p, c: None)

        await register.dispatch("a")

        assert seen == []


# =============================================================================
# One-shot handlers
# =============================================================================


class TestOnce:
    async def test_removed_after_successful_dispatch(self, register):
        calls = []
        register.register("init", lambda p, c: calls.append(p), once=True)

        await register.dispatch("init", 1)
        await register.dispatch("init", 2)

        assert calls == [1]
        assert register.has_handlers("init") is False

    async def test_kept_when_dispatch_fails(self, register):
        calls = []

        def failing(payload, controller):
            raise ValueError("nope")

        register.register("init", lambda p, c: calls.append(p), once=True, priority=10)
        register.register("init", failing, priority=0)

        with pytest.raises(ValueError):
            await register.dispatch("init", 1)

        assert register.get_handler_count("init") == 2

    async def test_kept_when_abort_happens_before_it_runs(self, register):
        register.register("init", lambda p, c: c.abort("stop"), priority=10)
        register.register("init", lambda p, c: None, id="one-shot", once=True, priority=0)

        await register.dispatch("init")

        assert register.get_handler_count("init") == 2

    async def test_removed_when_it_ran_and_then_aborted(self, register):
        register.register("init", lambda p, c: c.abort("done"), id="one-shot", once=True)

        await register.dispatch("init")

        assert register.has_handlers("init") is False

    async def test_skipped_by_condition_is_kept(self, register):
        register.register("init", lambda p, c: None, once=True, condition=lambda: False)

        await register.dispatch("init")

        assert register.get_handler_count("init") == 1


# =============================================================================
# Snapshots and concurrency
# =============================================================================


class TestIsolation:
    async def test_handler_registered_during_dispatch_runs_next_time(self, register):
        calls = []

        def late(payload, controller):
            calls.append(("late", payload))

        def first(payload, controller):
            calls.append(("first", payload))
            if payload == 1:
                register.register("act", late, priority=-1)

        register.register("act", first, priority=10)

        await register.dispatch("act", 1)
        await register.dispatch("act", 2)

        assert calls == [("first", 1), ("first", 2), ("late", 2)]

    async def test_handler_removed_during_dispatch_still_runs_once(self, register):
        calls = []
        unregister_second = register.register("act", lambda p, c: calls.append("second"))

        def first(payload, controller):
            calls.append("first")
            unregister_second()

        register.register("act", first, priority=10)

        await register.dispatch("act")
        await register.dispatch("act")

        assert calls == ["first", "second", "first"]

    @pytest.mark.timeout(5)
    async def test_concurrent_dispatches_do_not_share_state(self, register):
        seen = []

        async def tag(payload, controller):
            controller.modify_payload(lambda p: {**p, "tagged": True})
            await asyncio.sleep(0.01)

        async def record(payload, controller):
            seen.append(controller.get_payload())
            if payload["n"] == 1:
                controller.abort("first only")

        register.register("act", tag, priority=10, blocking=True)
        register.register("act", record, priority=0, blocking=True)

        await asyncio.gather(
            register.dispatch("act", {"n": 1}),
            register.dispatch("act", {"n": 2}),
        )

        assert sorted(item["n"] for item in seen) == [1, 2]
        assert all(item["tagged"] for item in seen)


# =============================================================================
# Execution modes
# =============================================================================


class TestExecutionModes:
    def test_default_mode_from_config(self, log):
        register = ActionRegister(logger=log, default_execution_mode="parallel")
        assert register.default_execution_mode is ExecutionMode.PARALLEL
        assert register.get_action_execution_mode("any") is ExecutionMode.PARALLEL

    def test_per_action_override(self, register):
        register.set_action_execution_mode("search", "race")
        assert register.get_action_execution_mode("search") is ExecutionMode.RACE
        assert register.get_action_execution_mode("save") is ExecutionMode.SEQUENTIAL

        register.remove_action_execution_mode("search")
        assert register.get_action_execution_mode("search") is ExecutionMode.SEQUENTIAL

    def test_unknown_mode_rejected(self, register):
        with pytest.raises(ValueError):
            register.set_action_execution_mode("search", "fastest")

    @pytest.mark.timeout(5)
    async def test_parallel_action_runs_concurrently(self, register):
        async def sleeper(payload, controller):
            await asyncio.sleep(0.05)

        register.set_action_execution_mode("load", ExecutionMode.PARALLEL)
        for _ in range(3):
            register.register("load", sleeper)

        started = time.monotonic()
        await register.dispatch("load")

        assert time.monotonic() - started < 0.12

    @pytest.mark.timeout(5)
    async def test_race_rejects_as_soon_as_first_handler_fails(self, register):
        errors = capture(register, "action:error")

        async def slow(payload, controller):
            await asyncio.sleep(0.1)

        async def fast_failure(payload, controller):
            await asyncio.sleep(0.005)
            raise TimeoutError("upstream timed out")

        register.set_action_execution_mode("fetch", "race")
        register.register("fetch", slow, priority=10)
        register.register("fetch", fast_failure, priority=0)

        started = time.monotonic()
        with pytest.raises(TimeoutError):
            await register.dispatch("fetch")
        elapsed = time.monotonic() - started

        assert elapsed < 0.05
        assert len(errors) == 1
        await asyncio.sleep(0.12)
