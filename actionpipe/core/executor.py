"""Execution disciplines for action pipelines.

The executor runs one ExecutionContext to a terminal PipelineOutcome:

- sequential: handlers run one after another in snapshot order
- parallel: every eligible handler starts at once; all must settle
- race: every eligible handler starts at once; the first to settle decides

Cancellation is cooperative in every mode. ``abort()`` stops the executor
from starting further handlers, it never interrupts a handler that is
already running. Handlers left running (non-blocking sequential handlers,
race losers) are tracked until they finish and their failures are logged.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from actionpipe.core.context import (
    Controller,
    ExecutionContext,
    OutcomeStatus,
    PipelineOutcome,
)
from actionpipe.core.errors import UnknownExecutionModeError
from actionpipe.core.logging import LogSink
from actionpipe.core.registration import ExecutionMode, HandlerRegistration

Runner = Callable[[ExecutionContext], Coroutine[Any, Any, PipelineOutcome]]


class PipelineExecutor:
    """Runs handler snapshots under one of the three execution modes."""

    def __init__(self, log: LogSink) -> None:
        self._log = log
        self._background: set[asyncio.Future] = set()
        self._runners: dict[ExecutionMode, Runner] = {
            ExecutionMode.SEQUENTIAL: self._run_sequential,
            ExecutionMode.PARALLEL: self._run_parallel,
            ExecutionMode.RACE: self._run_race,
        }

    @property
    def pending_background(self) -> int:
        """Number of handler tasks still running after their dispatch moved on."""
        return len(self._background)

    def run(self, context: ExecutionContext) -> Awaitable[PipelineOutcome]:
        """Start running ``context`` under its execution mode.

        Raises:
            UnknownExecutionModeError: Immediately, before any handler runs,
                if the context's mode is not recognized.
        """
        try:
            mode = ExecutionMode(context.execution_mode)
        except ValueError:
            raise UnknownExecutionModeError(context.execution_mode) from None

        self._log.trace(
            f"Starting pipeline execution for '{context.action}'",
            action=context.action,
            execution_mode=mode.value,
            handler_count=len(context.handlers),
        )
        return self._runners[mode](context)

    def _eligible(self, context: ExecutionContext, registration: HandlerRegistration) -> bool:
        if registration.config.is_eligible(context.payload):
            return True
        self._log.trace(
            f"Skipping handler '{registration.id}': condition or validation not met",
            action=context.action,
            handler_id=registration.id,
        )
        return False

    def _failed(
        self,
        context: ExecutionContext,
        registration: HandlerRegistration | None,
        error: BaseException,
        executed: list[HandlerRegistration],
    ) -> PipelineOutcome:
        handler_id = registration.id if registration is not None else None
        self._log.error(
            f"Handler {handler_id} raised exception: {error}",
            action=context.action,
            handler_id=handler_id,
            error=str(error),
        )
        return PipelineOutcome(
            OutcomeStatus.FAILED, executed=executed, error=error, handler_id=handler_id
        )

    def _settled(
        self, context: ExecutionContext, executed: list[HandlerRegistration]
    ) -> PipelineOutcome:
        if context.aborted:
            return PipelineOutcome(
                OutcomeStatus.ABORTED, executed=executed, reason=context.abort_reason
            )
        return PipelineOutcome(OutcomeStatus.COMPLETED, executed=executed)

    @staticmethod
    async def _invoke(
        context: ExecutionContext, registration: HandlerRegistration, controller: Controller
    ) -> Any:
        result = registration.handler(context.payload, controller)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _track(
        self,
        task: asyncio.Future,
        context: ExecutionContext,
        registration: HandlerRegistration,
        collect: bool,
    ) -> None:
        """Keep a reference to ``task`` until it finishes and report its outcome."""
        self._background.add(task)

        def done(finished: asyncio.Future) -> None:
            self._background.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                if collect:
                    self._log.error(
                        f"Non-blocking handler {registration.id} raised exception: {error}",
                        action=context.action,
                        handler_id=registration.id,
                        error=str(error),
                    )
                else:
                    self._log.debug(
                        f"Discarded error from handler {registration.id}: {error}",
                        action=context.action,
                        handler_id=registration.id,
                    )
                return
            if collect:
                context.collect(finished.result())

        task.add_done_callback(done)

    async def _run_sequential(self, context: ExecutionContext) -> PipelineOutcome:
        handlers = context.handlers
        executed: list[HandlerRegistration] = []
        i = 0

        while i < len(handlers) and not context.stopped:
            registration = handlers[i]
            try:
                if not self._eligible(context, registration):
                    i += 1
                    continue

                executed.append(registration)
                controller = Controller(context, registration, self._log)
                result = registration.handler(context.payload, controller)

                if not inspect.isawaitable(result):
                    context.collect(result)
                elif registration.config.blocking:
                    context.collect(await result)
                else:
                    task = asyncio.ensure_future(result)
                    self._track(task, context, registration, collect=True)
                    # Let the handler run up to its first suspension point so
                    # abort/modify_payload calls made before it are observed.
                    await asyncio.sleep(0)
            except Exception as e:
                return self._failed(context, registration, e, executed)

            if context.stopped:
                break

            if context.jump_to_priority is not None:
                target = context.jump_to_priority
                context.jump_to_priority = None
                i = next(
                    (j for j, reg in enumerate(handlers) if reg.priority <= target),
                    len(handlers),
                )
                self._log.trace(
                    f"Jumped to priority {target} at position {i}",
                    action=context.action,
                )
                continue

            i += 1

        return self._settled(context, executed)

    def _runnable(self, context: ExecutionContext) -> list[HandlerRegistration]:
        return [reg for reg in context.handlers if self._eligible(context, reg)]

    async def _run_parallel(self, context: ExecutionContext) -> PipelineOutcome:
        try:
            runnable = self._runnable(context)
        except Exception as e:
            return self._failed(context, None, e, [])

        results = await asyncio.gather(
            *(
                self._invoke(context, reg, Controller(context, reg, self._log))
                for reg in runnable
            ),
            return_exceptions=True,
        )

        failure: tuple[HandlerRegistration, BaseException] | None = None
        for registration, result in zip(runnable, results):
            if isinstance(result, BaseException):
                if failure is None:
                    failure = (registration, result)
                continue
            context.collect(result)

        if failure is not None:
            return self._failed(context, failure[0], failure[1], runnable)
        return self._settled(context, runnable)

    async def _run_race(self, context: ExecutionContext) -> PipelineOutcome:
        try:
            runnable = self._runnable(context)
        except Exception as e:
            return self._failed(context, None, e, [])

        if not runnable:
            return PipelineOutcome(OutcomeStatus.COMPLETED)

        entries: list[tuple[HandlerRegistration, Controller, asyncio.Future]] = []
        for registration in runnable:
            controller = Controller(context, registration, self._log)
            task = asyncio.ensure_future(self._invoke(context, registration, controller))
            entries.append((registration, controller, task))

        done, _ = await asyncio.wait(
            [task for _, _, task in entries], return_when=asyncio.FIRST_COMPLETED
        )

        # Simultaneous finishers are resolved in snapshot order.
        winner = next(entry for entry in entries if entry[2] in done)
        for entry in entries:
            if entry is not winner:
                self._track(entry[2], context, entry[0], collect=False)

        registration, controller, task = winner
        if task.cancelled():
            return self._failed(context, registration, asyncio.CancelledError(), runnable)
        error = task.exception()
        if error is not None:
            return self._failed(context, registration, error, runnable)

        context.collect(task.result())
        if controller.abort_called:
            return PipelineOutcome(
                OutcomeStatus.ABORTED, executed=runnable, reason=controller.abort_reason
            )
        return PipelineOutcome(OutcomeStatus.COMPLETED, executed=runnable)
