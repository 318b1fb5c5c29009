"""Per-dispatch execution state and the controller handed to handlers."""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from actionpipe.core.registration import ExecutionMode, HandlerRegistration

if TYPE_CHECKING:
    from actionpipe.core.logging import LogSink


@dataclass
class ExecutionContext:
    """Mutable state of one dispatch.

    A context is created at dispatch entry and discarded at exit. It is never
    shared between dispatches; only the controllers created for this
    dispatch mutate it.
    """

    action: str
    payload: Any
    handlers: tuple[HandlerRegistration, ...]
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    aborted: bool = False
    abort_reason: str | None = None
    jump_to_priority: int | float | None = None
    results: list[Any] = field(default_factory=list)
    terminated: bool = False
    termination_result: Any = None

    @property
    def stopped(self) -> bool:
        return self.aborted or self.terminated

    def mark_aborted(self, reason: str | None) -> None:
        # First reason wins; aborted never goes back to False.
        if not self.aborted:
            self.aborted = True
            self.abort_reason = reason

    def collect(self, result: Any) -> None:
        """Record a handler return value unless the pipeline was terminated."""
        if result is not None and not self.terminated:
            self.results.append(result)


class Controller:
    """Capabilities of one handler invocation over its dispatch context.

    A new controller is built for every invocation so abort and jump
    requests are attributable to exactly one handler. In parallel and race
    modes several controllers share the same context.
    """

    def __init__(
        self,
        context: ExecutionContext,
        registration: HandlerRegistration,
        log: "LogSink",
    ) -> None:
        self._context = context
        self._registration = registration
        self._log = log
        self.abort_called = False
        self.abort_reason: str | None = None

    @property
    def handler_id(self) -> str:
        return self._registration.id

    def next(self) -> None:
        """Placeholder kept for handler symmetry; the executor advances."""

    def abort(self, reason: str | None = None) -> None:
        """Stop further pipeline progression.

        Handlers already started in parallel or race mode keep running.
        """
        self.abort_called = True
        self.abort_reason = reason
        self._context.mark_aborted(reason)
        self._log.warn(
            f"Pipeline aborted by handler '{self.handler_id}'",
            action=self._context.action,
            handler_id=self.handler_id,
            reason=reason,
        )

    def modify_payload(self, modifier: Callable[[Any], Any]) -> None:
        """Replace the payload with ``modifier(payload)`` for later handlers."""
        self._context.payload = modifier(self._context.payload)
        self._log.debug(
            f"Payload modified by handler '{self.handler_id}'",
            action=self._context.action,
            handler_id=self.handler_id,
        )

    def get_payload(self) -> Any:
        return self._context.payload

    def jump_to_priority(self, priority: int | float) -> None:
        """Continue a sequential pipeline at the first handler with priority <= ``priority``."""
        self._log.trace(
            f"Handler '{self.handler_id}' jumping to priority {priority}",
            action=self._context.action,
            handler_id=self.handler_id,
        )
        self._context.jump_to_priority = priority

    def set_result(self, result: Any) -> None:
        self._context.results.append(result)

    def get_results(self) -> list[Any]:
        return list(self._context.results)

    def merge_result(self, merger: Callable[[list[Any], Any], Any]) -> None:
        """Replace the latest result with ``merger(previous_results, latest)``."""
        results = self._context.results
        if not results:
            return
        results[-1] = merger(results[:-1], results[-1])

    def terminate(self, result: Any = None) -> None:
        """End the pipeline successfully, recording ``result`` as its outcome."""
        self._context.terminated = True
        self._context.termination_result = result
        self._log.debug(
            f"Pipeline terminated by handler '{self.handler_id}'",
            action=self._context.action,
            handler_id=self.handler_id,
        )


class OutcomeStatus(Enum):
    """Terminal state of a pipeline run."""

    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class PipelineOutcome:
    """Result of running one ExecutionContext to completion."""

    status: OutcomeStatus
    executed: list[HandlerRegistration] = field(default_factory=list)
    reason: str | None = None
    error: BaseException | None = None
    handler_id: str | None = None

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED

    @property
    def aborted(self) -> bool:
        return self.status is OutcomeStatus.ABORTED
