"""actionpipe - Priority-ordered async action pipelines for Python."""

import logging

from actionpipe.core import (
    ActionEvent,
    ActionMetrics,
    ActionPipeError,
    ActionRegister,
    ActionRegisterConfig,
    Controller,
    DispatchOptions,
    ExecutionMode,
    ExecutionResult,
    HandlerConfig,
    HandlerFilter,
    LogLevel,
    ResultOptions,
    ResultStrategy,
    UnknownExecutionModeError,
)
from actionpipe.guards import GuardStation

# Silent unless the application configures logging.
logging.getLogger("actionpipe").addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Core
    "ActionRegister",
    "ActionRegisterConfig",
    "Controller",
    "HandlerConfig",
    "ExecutionMode",
    # Dispatch
    "DispatchOptions",
    "HandlerFilter",
    "ResultOptions",
    "ResultStrategy",
    "ExecutionResult",
    # Events
    "ActionEvent",
    "ActionMetrics",
    # Guards
    "GuardStation",
    # Logging and errors
    "LogLevel",
    "ActionPipeError",
    "UnknownExecutionModeError",
    # Meta
    "__version__",
]
