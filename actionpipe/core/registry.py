"""Per-action handler pipelines.

The registry owns the live pipelines. Dispatches never iterate a live
pipeline; they take a snapshot first, so registrations and removals made
while a dispatch is in flight only affect later dispatches.
"""

import itertools
from collections.abc import Callable, Iterable, Iterator
from typing import Any, ClassVar

from actionpipe.core.logging import LogSink
from actionpipe.core.registration import Handler, HandlerConfig, HandlerRegistration


def _noop() -> None:
    return None


class HandlerRegistry:
    """Priority-ordered handler lists keyed by action name."""

    # Shared by every registry in the process; only advanced by register().
    _id_counter: ClassVar[Iterator[int]] = itertools.count(1)

    def __init__(self, log: LogSink) -> None:
        self._pipelines: dict[str, list[HandlerRegistration]] = {}
        self._index: dict[str, dict[str, HandlerRegistration]] = {}
        self._log = log

    @classmethod
    def _next_id(cls) -> str:
        return f"handler_{next(cls._id_counter)}"

    def register(
        self,
        action: str,
        handler: Handler,
        config: HandlerConfig,
        on_register: Callable[[HandlerRegistration], Any] | None = None,
        on_unregister: Callable[[HandlerRegistration], Any] | None = None,
    ) -> Callable[[], None]:
        """Insert ``handler`` into the pipeline of ``action``.

        Args:
            action: The action name.
            handler: Callable invoked as ``handler(payload, controller)``.
            config: The handler configuration.
            on_register: Called with the registration once it is inserted.
            on_unregister: Called with the registration after the returned
                function actually removes it.

        Returns:
            A function removing exactly this registration from the live
            pipeline. Registering a duplicate id returns a no-op function.

        Raises:
            TypeError: If ``handler`` is not callable.
        """
        if not callable(handler):
            raise TypeError(f"handler must be callable, got {type(handler).__name__}")

        index = self._index.setdefault(action, {})
        pipeline = self._pipelines.setdefault(action, [])

        handler_id = config.id
        if handler_id is None:
            # Generated ids never collide with an explicit id already in use.
            handler_id = self._next_id()
            while handler_id in index:
                handler_id = self._next_id()

        if handler_id in index:
            self._log.warn(
                f"Handler with ID '{handler_id}' already exists for action '{action}'",
                action=action,
                handler_id=handler_id,
            )
            return _noop

        if config.id != handler_id:
            config = config.model_copy(update={"id": handler_id})
        registration = HandlerRegistration(handler=handler, id=handler_id, config=config)

        pipeline.append(registration)
        # list.sort is stable: equal priorities keep registration order.
        pipeline.sort(key=lambda reg: -reg.priority)
        index[handler_id] = registration

        self._log.trace(
            f"Pipeline sorted by priority for '{action}'",
            action=action,
            priorities=[(reg.id, reg.priority) for reg in pipeline],
        )
        if on_register is not None:
            on_register(registration)

        def unregister() -> None:
            if self._remove(action, registration) and on_unregister is not None:
                on_unregister(registration)

        return unregister

    def _remove(self, action: str, registration: HandlerRegistration) -> bool:
        index = self._index.get(action)
        if index is None or index.get(registration.id) is not registration:
            self._log.trace(
                f"Handler '{registration.id}' not found in pipeline for '{action}'",
                action=action,
                handler_id=registration.id,
            )
            return False
        del index[registration.id]
        self._pipelines[action].remove(registration)
        self._log.debug(
            f"Unregistered handler '{registration.id}' from action '{action}'",
            action=action,
            handler_id=registration.id,
        )
        return True

    def unregister(self, action: str, handler_id: str) -> bool:
        """Remove the handler with ``handler_id``. Returns False if absent."""
        registration = self.get(action, handler_id)
        if registration is None:
            return False
        return self._remove(action, registration)

    def get(self, action: str, handler_id: str) -> HandlerRegistration | None:
        return self._index.get(action, {}).get(handler_id)

    def snapshot_for(self, action: str) -> tuple[HandlerRegistration, ...]:
        return tuple(self._pipelines.get(action, ()))

    def prune_once(self, action: str, executed: Iterable[HandlerRegistration]) -> int:
        """Remove executed one-shot handlers from the live pipeline.

        Returns:
            The number of handlers removed.
        """
        one_shot = [reg for reg in executed if reg.config.once]
        if not one_shot:
            return 0

        removed = 0
        for registration in one_shot:
            if self._remove(action, registration):
                removed += 1
        if removed:
            self._log.debug(
                f"Removed {removed} one-time handlers from '{action}'",
                action=action,
            )
        return removed

    def count(self, action: str) -> int:
        return len(self._pipelines.get(action, ()))

    def has_handlers(self, action: str) -> bool:
        return self.count(action) > 0

    def list_actions(self) -> list[str]:
        return [action for action, pipeline in self._pipelines.items() if pipeline]

    def clear(self, action: str) -> int:
        """Drop the pipeline of ``action``. Returns the number of handlers removed."""
        pipeline = self._pipelines.pop(action, None)
        self._index.pop(action, None)
        if pipeline is None:
            self._log.trace(f"No pipeline found for action '{action}' to clear", action=action)
            return 0
        self._log.debug(f"Cleared {len(pipeline)} handlers for action '{action}'", action=action)
        return len(pipeline)

    def clear_all(self) -> int:
        """Drop every pipeline. Returns the number of handlers removed."""
        total = sum(len(pipeline) for pipeline in self._pipelines.values())
        self._pipelines.clear()
        self._index.clear()
        return total
