"""Structured dispatch results returned by ``dispatch_with_result``."""

from dataclasses import dataclass, field
from typing import Any

from actionpipe.core.context import ExecutionContext
from actionpipe.core.errors import ResultStrategyError
from actionpipe.core.registration import ResultOptions, ResultStrategy


@dataclass
class ExecutionStats:
    """Timing and handler counts of one dispatch."""

    duration_ms: float = 0.0
    handlers_executed: int = 0
    handlers_skipped: int = 0
    handlers_failed: int = 0
    start_time: float = 0.0
    end_time: float = 0.0


@dataclass
class HandlerFailure:
    """A handler exception captured by ``dispatch_with_result``."""

    handler_id: str | None
    error: BaseException
    timestamp: float


@dataclass
class ExecutionResult:
    """Outcome of ``dispatch_with_result``.

    ``result`` is only populated when result collection was requested; the
    raw handler return values are always available in ``results``.
    """

    success: bool
    aborted: bool = False
    abort_reason: str | None = None
    terminated: bool = False
    result: Any = None
    results: list[Any] = field(default_factory=list)
    execution: ExecutionStats = field(default_factory=ExecutionStats)
    errors: list[HandlerFailure] = field(default_factory=list)


def reduce_results(context: ExecutionContext, options: ResultOptions | None) -> Any:
    """Reduce the values collected in ``context`` according to ``options``.

    A termination result set through ``controller.terminate()`` takes
    precedence over every strategy.

    Raises:
        ResultStrategyError: If the custom strategy has no merger.
    """
    if options is None or not options.collect:
        return None

    if context.terminated and context.termination_result is not None:
        return context.termination_result

    results = list(context.results)
    if options.max_results is not None:
        results = results[: options.max_results]
    if not results:
        return None

    strategy = options.strategy
    if strategy is ResultStrategy.FIRST:
        return results[0]
    if strategy is ResultStrategy.LAST:
        return results[-1]
    if strategy is ResultStrategy.MERGE:
        if options.merger is not None:
            return options.merger(results)
        return results[-1]
    if strategy is ResultStrategy.CUSTOM:
        if options.merger is None:
            raise ResultStrategyError("Custom result strategy requires a merger function")
        return options.merger(results)
    return results
