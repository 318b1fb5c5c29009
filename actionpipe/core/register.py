"""ActionRegister: the application-facing facade of the action pipeline.

The register composes the handler registry, the pipeline executor, the
guard station and the lifecycle event bus:

- ``register`` inserts a handler and announces it on the bus
- ``dispatch`` applies guards, snapshots the pipeline, runs it, prunes
  one-shot handlers and announces exactly one terminal lifecycle event

Handler exceptions are re-raised to the ``dispatch`` caller untouched.
"""

import time
from collections.abc import Callable, Mapping
from typing import Any

from actionpipe.core.config import ActionRegisterConfig
from actionpipe.core.context import ExecutionContext, OutcomeStatus, PipelineOutcome
from actionpipe.core.events import ActionEvent, ActionMetrics, EventBus, Listener
from actionpipe.core.executor import PipelineExecutor
from actionpipe.core.logging import LogSink, configure_register_logger
from actionpipe.core.registration import (
    DispatchOptions,
    ExecutionMode,
    Handler,
    HandlerConfig,
    HandlerRegistration,
)
from actionpipe.core.registry import HandlerRegistry
from actionpipe.core.results import (
    ExecutionResult,
    ExecutionStats,
    HandlerFailure,
    reduce_results,
)
from actionpipe.guards.station import GuardStation

DEBOUNCED = "Debounced execution"
THROTTLED = "Throttled execution"


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


class ActionRegister:
    """Registers handlers per action and dispatches payloads through them.

    Args:
        config: Register configuration. Keyword arguments override its
            fields, or build one when ``config`` is omitted.

    Example:
        register = ActionRegister(name="app")
        register.register("double", lambda p, c: c.modify_payload(lambda x: x * 2), priority=10)
        await register.dispatch("double", 5)
    """

    def __init__(self, config: ActionRegisterConfig | None = None, **overrides: Any) -> None:
        if config is None:
            config = ActionRegisterConfig(**overrides)
        elif overrides:
            config = ActionRegisterConfig(**{**dict(config), **overrides})
        self.config = config

        self._log: LogSink = config.logger or configure_register_logger(
            config.name, config.log_level, config.debug
        )
        self._registry = HandlerRegistry(self._log)
        self._executor = PipelineExecutor(self._log)
        self._guards = GuardStation(self._log)
        self._events = EventBus(self._log)
        self._execution_mode = config.default_execution_mode
        self._action_modes: dict[str, ExecutionMode] = {}

        if config.debug:
            self._log.info(
                f"{config.name} initialized",
                log_level=config.log_level.name,
                execution_mode=self._execution_mode.value,
            )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def guards(self) -> GuardStation:
        return self._guards

    @property
    def default_execution_mode(self) -> ExecutionMode:
        return self._execution_mode

    def get_config(self) -> ActionRegisterConfig:
        return self.config

    def get_logger(self) -> LogSink:
        return self._log

    # -- registration -----------------------------------------------------

    def register(
        self,
        action: str,
        handler: Handler,
        config: HandlerConfig | Mapping[str, Any] | None = None,
        **options: Any,
    ) -> Callable[[], None]:
        """Register ``handler`` for ``action``.

        Handler options may be given as a :class:`HandlerConfig`, a mapping,
        keyword arguments, or a combination (keywords win).

        Returns:
            A function that unregisters the handler. Registering an id that
            already exists for ``action`` logs a warning and returns a no-op.

        Raises:
            pydantic.ValidationError: If the handler options are invalid.
            TypeError: If ``handler`` is not callable.
        """
        if isinstance(config, HandlerConfig):
            handler_config = (
                HandlerConfig.model_validate({**dict(config), **options}) if options else config
            )
        else:
            handler_config = HandlerConfig.model_validate({**(config or {}), **options})

        self._log.trace(f"Registering handler for action '{action}'", action=action)

        def announce(registration: HandlerRegistration) -> None:
            self._log.debug(
                f"Registered handler '{registration.id}' for action '{action}'",
                action=action,
                handler_id=registration.id,
                priority=registration.priority,
                blocking=registration.config.blocking,
                once=registration.config.once,
            )
            self._events.emit(
                ActionEvent.HANDLER_REGISTER,
                {"action": action, "handler_id": registration.id, "config": registration.config},
            )

        def retract(registration: HandlerRegistration) -> None:
            self._events.emit(
                ActionEvent.HANDLER_UNREGISTER,
                {"action": action, "handler_id": registration.id},
            )

        return self._registry.register(
            action, handler, handler_config, on_register=announce, on_unregister=retract
        )

    def unregister(self, action: str, handler_id: str) -> bool:
        """Remove a handler by id. Returns False if it was not registered."""
        if not self._registry.unregister(action, handler_id):
            return False
        self._events.emit(
            ActionEvent.HANDLER_UNREGISTER, {"action": action, "handler_id": handler_id}
        )
        return True

    def get_handler_count(self, action: str) -> int:
        return self._registry.count(action)

    def has_handlers(self, action: str) -> bool:
        return self._registry.has_handlers(action)

    def get_registered_actions(self) -> list[str]:
        return self._registry.list_actions()

    def clear_action(self, action: str) -> None:
        self._registry.clear(action)

    def clear_all(self) -> None:
        """Drop every pipeline and every lifecycle listener."""
        action_count = len(self._registry.list_actions())
        total = self._registry.clear_all()
        self._events.remove_all_listeners()
        self._log.info(
            "Cleared all handlers", action_count=action_count, total_handlers=total
        )

    # -- execution modes --------------------------------------------------

    def set_action_execution_mode(self, action: str, mode: ExecutionMode | str) -> None:
        """Override the execution mode of one action.

        Raises:
            ValueError: If ``mode`` is not a known execution mode.
        """
        self._action_modes[action] = ExecutionMode(mode)

    def get_action_execution_mode(self, action: str) -> ExecutionMode:
        return self._action_modes.get(action, self._execution_mode)

    def remove_action_execution_mode(self, action: str) -> None:
        self._action_modes.pop(action, None)

    # -- lifecycle events -------------------------------------------------

    def on(self, event: ActionEvent | str, listener: Listener) -> Callable[[], None]:
        return self._events.on(event, listener)

    def off(self, event: ActionEvent | str, listener: Listener) -> None:
        self._events.off(event, listener)

    def remove_all_listeners(self, event: ActionEvent | str | None = None) -> None:
        self._events.remove_all_listeners(event)

    # -- dispatch ---------------------------------------------------------

    def _select(
        self, action: str, options: DispatchOptions | None
    ) -> tuple[HandlerRegistration, ...]:
        handlers = self._registry.snapshot_for(action)
        if options is not None and options.filter is not None:
            handlers = tuple(reg for reg in handlers if options.filter.matches(reg.config))
        return handlers

    async def _admit(
        self,
        action: str,
        handlers: tuple[HandlerRegistration, ...],
        options: DispatchOptions | None,
    ) -> str | None:
        """Apply debounce/throttle guards. Returns the rejection reason, if any.

        Dispatch options win over handler configs; among handlers the first
        (highest priority) one declaring a window is used. Debounce governs
        alone when both are set, since a fired debounce counts as an
        execution for the throttle window.
        """
        debounce = options.debounce if options is not None else None
        if debounce is None:
            debounce = next(
                (reg.config.debounce for reg in handlers if reg.config.debounce is not None), None
            )
        if debounce is not None:
            if await self._guards.debounce(action, debounce):
                return None
            return DEBOUNCED

        throttle = options.throttle if options is not None else None
        if throttle is None:
            throttle = next(
                (reg.config.throttle for reg in handlers if reg.config.throttle is not None), None
            )
        if throttle is not None and not self._guards.throttle(action, throttle):
            return THROTTLED
        return None

    def _resolve_mode(self, action: str, options: DispatchOptions | None) -> ExecutionMode:
        if options is not None and options.execution_mode is not None:
            return options.execution_mode
        return self.get_action_execution_mode(action)

    async def _execute(
        self, action: str, payload: Any, options: DispatchOptions | None
    ) -> tuple[ExecutionContext, PipelineOutcome, ActionMetrics] | str:
        rejected = await self._admit(action, self._select(action, options), options)
        if rejected is not None:
            self._log.debug(f"Dispatch of '{action}' suppressed: {rejected}", action=action)
            return rejected

        started = time.perf_counter()
        context = ExecutionContext(
            action=action,
            payload=payload,
            handlers=self._select(action, options),
            execution_mode=self._resolve_mode(action, options),
        )
        self._log.trace(f"Starting dispatch for action '{action}'", action=action)
        self._events.emit(ActionEvent.ACTION_START, {"action": action, "payload": payload})

        if not context.handlers:
            self._log.warn(f"No handlers registered for action '{action}'", action=action)
            outcome = PipelineOutcome(OutcomeStatus.COMPLETED)
        else:
            try:
                outcome = await self._executor.run(context)
            except Exception as e:
                outcome = PipelineOutcome(OutcomeStatus.FAILED, error=e)

        if not outcome.failed:
            self._registry.prune_once(action, outcome.executed)

        metrics = ActionMetrics(
            action=action,
            execution_time_ms=_elapsed_ms(started),
            handler_count=len(context.handlers),
            success=outcome.status is OutcomeStatus.COMPLETED,
        )

        if outcome.failed:
            metrics.error = str(outcome.error) or type(outcome.error).__name__
            self._log.error(
                f"Dispatch of '{action}' failed: {metrics.error}",
                action=action,
                execution_time_ms=metrics.execution_time_ms,
            )
            self._events.emit(
                ActionEvent.ACTION_ERROR,
                {"action": action, "payload": payload, "error": outcome.error, "metrics": metrics},
            )
        elif outcome.aborted:
            metrics.error = outcome.reason
            self._events.emit(
                ActionEvent.ACTION_ABORT,
                {"action": action, "payload": payload, "reason": outcome.reason, "metrics": metrics},
            )
        else:
            self._log.debug(
                f"Dispatch of '{action}' completed",
                action=action,
                execution_time_ms=metrics.execution_time_ms,
                handler_count=metrics.handler_count,
            )
            self._events.emit(
                ActionEvent.ACTION_COMPLETE,
                {"action": action, "payload": payload, "metrics": metrics},
            )

        return context, outcome, metrics

    @staticmethod
    def _coerce_options(
        options: DispatchOptions | Mapping[str, Any] | None,
    ) -> DispatchOptions | None:
        if options is None or isinstance(options, DispatchOptions):
            return options
        return DispatchOptions.model_validate(options)

    async def dispatch(
        self,
        action: str,
        payload: Any = None,
        options: DispatchOptions | Mapping[str, Any] | None = None,
    ) -> None:
        """Run ``payload`` through the pipeline of ``action``.

        Aborts and guard suppression return normally.

        Raises:
            Exception: Whatever a handler raised, unchanged.
        """
        executed = await self._execute(action, payload, self._coerce_options(options))
        if isinstance(executed, str):
            return
        _, outcome, _ = executed
        if outcome.failed:
            raise outcome.error

    async def dispatch_with_result(
        self,
        action: str,
        payload: Any = None,
        options: DispatchOptions | Mapping[str, Any] | None = None,
    ) -> ExecutionResult:
        """Dispatch and report the outcome instead of raising.

        Handler exceptions are captured in ``errors``; guard suppression is
        reported as an abort with reason ``"Debounced execution"`` or
        ``"Throttled execution"``.
        """
        options = self._coerce_options(options)
        start_time = time.time()
        started = time.perf_counter()

        executed = await self._execute(action, payload, options)
        if isinstance(executed, str):
            return ExecutionResult(
                success=False,
                aborted=True,
                abort_reason=executed,
                execution=ExecutionStats(
                    duration_ms=_elapsed_ms(started),
                    handlers_skipped=self._registry.count(action),
                    start_time=start_time,
                    end_time=time.time(),
                ),
            )

        context, outcome, _ = executed
        invoked = len(set(outcome.executed))
        errors = []
        if outcome.failed:
            errors.append(
                HandlerFailure(
                    handler_id=outcome.handler_id, error=outcome.error, timestamp=time.time()
                )
            )

        result = None
        if not outcome.failed:
            try:
                result = reduce_results(context, options.result if options else None)
            except Exception as e:
                errors.append(HandlerFailure(handler_id=None, error=e, timestamp=time.time()))

        return ExecutionResult(
            success=not errors and not outcome.aborted,
            aborted=outcome.aborted,
            abort_reason=outcome.reason,
            terminated=context.terminated,
            result=result,
            results=list(context.results),
            execution=ExecutionStats(
                duration_ms=_elapsed_ms(started),
                handlers_executed=invoked,
                handlers_skipped=max(0, len(context.handlers) - invoked),
                handlers_failed=1 if outcome.failed else 0,
                start_time=start_time,
                end_time=time.time(),
            ),
            errors=errors,
        )
