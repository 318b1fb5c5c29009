"""Lifecycle notifications for the action register.

The bus is a reporting side channel: listeners observe registrations and
dispatches but cannot influence them. A listener that raises is logged and
skipped; delivery to the remaining listeners continues.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from actionpipe.core.logging import LogSink

Listener = Callable[[dict[str, Any]], None]


class ActionEvent(str, Enum):
    """Names of the events emitted by ActionRegister."""

    HANDLER_REGISTER = "handler:register"
    HANDLER_UNREGISTER = "handler:unregister"
    ACTION_START = "action:start"
    ACTION_COMPLETE = "action:complete"
    ACTION_ABORT = "action:abort"
    ACTION_ERROR = "action:error"


@dataclass
class ActionMetrics:
    """Timing and outcome of a single dispatch. Emitted, never retained."""

    action: str
    execution_time_ms: float
    handler_count: int
    success: bool
    error: str | None = None
    timestamp: float = field(default_factory=time.time)


class EventBus:
    """Publish/subscribe over :class:`ActionEvent` names."""

    def __init__(self, log: LogSink) -> None:
        self._listeners: dict[ActionEvent, list[Listener]] = {}
        self._log = log

    def on(self, event: ActionEvent | str, listener: Listener) -> Callable[[], None]:
        """Subscribe ``listener`` and return a function that unsubscribes it.

        Raises:
            ValueError: If ``event`` is not a known event name.
            TypeError: If ``listener`` is not callable.
        """
        if not callable(listener):
            raise TypeError(f"listener must be callable, got {type(listener).__name__}")
        name = ActionEvent(event)
        self._listeners.setdefault(name, []).append(listener)

        def unsubscribe() -> None:
            self.off(name, listener)

        return unsubscribe

    def off(self, event: ActionEvent | str, listener: Listener) -> None:
        name = ActionEvent(event)
        listeners = self._listeners.get(name)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[name]

    def emit(self, event: ActionEvent | str, data: dict[str, Any]) -> None:
        name = ActionEvent(event)
        for listener in list(self._listeners.get(name, ())):
            try:
                listener(data)
            except Exception as e:
                self._log.error(
                    f"Listener for '{name.value}' raised exception: {e}",
                    exc_info=True,
                    event=name.value,
                    error=str(e),
                )

    def remove_all_listeners(self, event: ActionEvent | str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(ActionEvent(event), None)

    def listener_count(self, event: ActionEvent | str) -> int:
        return len(self._listeners.get(ActionEvent(event), ()))
