"""Exceptions raised by the actionpipe core.

Handler exceptions are never wrapped: they reach the dispatch caller as
raised. The classes below cover configuration and programming errors only.
"""


class ActionPipeError(Exception):
    """Base class for errors raised by actionpipe itself."""


class UnknownExecutionModeError(ActionPipeError, ValueError):
    """Raised when a pipeline is run under an unrecognized execution mode.

    Attributes:
        mode: The offending mode value.
    """

    def __init__(self, mode: object) -> None:
        self.mode = mode
        super().__init__(f"Unknown execution mode: {mode!r}")


class ResultStrategyError(ActionPipeError, ValueError):
    """Raised when a result strategy cannot be applied."""
