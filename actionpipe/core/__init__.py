"""Core components of the actionpipe action pipeline.

This module exposes the primary types:

Registration:
    HandlerConfig: Immutable, validated per-handler options.
    HandlerRegistration: A handler bound to an action.
    HandlerRegistry: Priority-ordered pipelines keyed by action name.

Execution:
    ExecutionMode: Enum of execution disciplines (SEQUENTIAL, PARALLEL, RACE).
    ExecutionContext: Mutable state of one dispatch.
    Controller: Capabilities handed to each handler invocation.
    PipelineExecutor: Runs a context to a PipelineOutcome.

Facade:
    ActionRegister: Registration, dispatch and lifecycle events.
    ActionRegisterConfig: Construction-time configuration.
    DispatchOptions / HandlerFilter / ResultOptions: Per-dispatch overrides.
    ExecutionResult: Structured result of dispatch_with_result.

Events:
    ActionEvent: Lifecycle event names.
    ActionMetrics: Per-dispatch timing emitted with terminal events.
    EventBus: Listener registry with per-listener error isolation.
"""

from actionpipe.core.config import ActionRegisterConfig
from actionpipe.core.context import (
    Controller,
    ExecutionContext,
    OutcomeStatus,
    PipelineOutcome,
)
from actionpipe.core.errors import (
    ActionPipeError,
    ResultStrategyError,
    UnknownExecutionModeError,
)
from actionpipe.core.events import ActionEvent, ActionMetrics, EventBus
from actionpipe.core.executor import PipelineExecutor
from actionpipe.core.logging import ActionLogger, LogLevel, LogSink
from actionpipe.core.register import ActionRegister
from actionpipe.core.registration import (
    DispatchOptions,
    ExecutionMode,
    HandlerConfig,
    HandlerFilter,
    HandlerRegistration,
    ResultOptions,
    ResultStrategy,
)
from actionpipe.core.registry import HandlerRegistry
from actionpipe.core.results import ExecutionResult, ExecutionStats, HandlerFailure

__all__ = [
    "ActionRegister",
    "ActionRegisterConfig",
    "HandlerConfig",
    "HandlerRegistration",
    "HandlerRegistry",
    "ExecutionMode",
    "ExecutionContext",
    "Controller",
    "PipelineExecutor",
    "PipelineOutcome",
    "OutcomeStatus",
    "DispatchOptions",
    "HandlerFilter",
    "ResultOptions",
    "ResultStrategy",
    "ExecutionResult",
    "ExecutionStats",
    "HandlerFailure",
    "ActionEvent",
    "ActionMetrics",
    "EventBus",
    "ActionLogger",
    "LogLevel",
    "LogSink",
    "ActionPipeError",
    "ResultStrategyError",
    "UnknownExecutionModeError",
]
