"""Handler registration and dispatch option models."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from actionpipe.core.context import Controller

Handler = Callable[[Any, "Controller"], "Any | Awaitable[Any]"]


class ExecutionMode(str, Enum):
    """How the handlers of one dispatch are scheduled relative to each other."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    RACE = "race"


class HandlerConfig(BaseModel):
    """Immutable, validated per-handler configuration.

    Attributes:
        id: Unique id within the action. Auto-generated when omitted.
        priority: Higher runs first. Ties keep registration order.
        blocking: In sequential mode, await an async handler before moving on.
        once: Remove the handler after it ran in a non-failed dispatch.
        condition: Zero-argument predicate; the handler is skipped when false.
        debounce: Trailing-edge debounce window in milliseconds.
        throttle: Leading-edge throttle window in milliseconds.
        validation: Payload predicate; the handler is skipped when false.
        middleware: Marks the handler as middleware. Informational only.
        tags: Free-form labels usable in dispatch filters.
        category: Category usable in dispatch filters.
        description: Human readable description.
        metadata: Arbitrary extra data.
    """

    id: str | None = None
    priority: int = 0
    blocking: bool = False
    once: bool = False
    condition: Callable[[], bool] | None = None
    debounce: float | None = Field(default=None, ge=0)
    throttle: float | None = Field(default=None, ge=0)
    validation: Callable[[Any], bool] | None = None
    middleware: bool = False
    tags: list[str] = Field(default_factory=list)
    category: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str | None) -> str | None:
        """Ensure an explicit id is non-empty after whitespace stripping."""
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("id must not be empty")
        return v

    def is_eligible(self, payload: Any) -> bool:
        """Return True when both condition and validation admit ``payload``."""
        if self.condition is not None and not self.condition():
            return False
        if self.validation is not None and not self.validation(payload):
            return False
        return True


@dataclass(eq=False, frozen=True)
class HandlerRegistration:
    """A handler bound to an action, as stored in a pipeline."""

    handler: Handler
    id: str
    config: HandlerConfig

    @property
    def priority(self) -> int:
        return self.config.priority


class HandlerFilter(BaseModel):
    """Selects which registered handlers take part in one dispatch.

    Include criteria must all match; any matching exclude criterion drops
    the handler. ``custom`` receives the handler's :class:`HandlerConfig`.
    """

    tags: list[str] = Field(default_factory=list)
    category: str | None = None
    handler_ids: list[str] = Field(default_factory=list)
    exclude_tags: list[str] = Field(default_factory=list)
    exclude_category: str | None = None
    exclude_handler_ids: list[str] = Field(default_factory=list)
    custom: Callable[[HandlerConfig], bool] | None = None

    model_config = {"extra": "forbid", "frozen": True}

    def matches(self, config: HandlerConfig) -> bool:
        if self.tags and not any(tag in config.tags for tag in self.tags):
            return False
        if self.category is not None and config.category != self.category:
            return False
        if self.handler_ids and config.id not in self.handler_ids:
            return False
        if self.exclude_tags and any(tag in config.tags for tag in self.exclude_tags):
            return False
        if self.exclude_category is not None and config.category == self.exclude_category:
            return False
        if config.id in self.exclude_handler_ids:
            return False
        if self.custom is not None and not self.custom(config):
            return False
        return True


class ResultStrategy(str, Enum):
    """How collected handler results are reduced by dispatch_with_result."""

    FIRST = "first"
    LAST = "last"
    ALL = "all"
    MERGE = "merge"
    CUSTOM = "custom"


class ResultOptions(BaseModel):
    """Result collection settings for dispatch_with_result."""

    collect: bool = False
    strategy: ResultStrategy = ResultStrategy.ALL
    merger: Callable[[list[Any]], Any] | None = None
    max_results: int | None = Field(default=None, ge=1)

    model_config = {"extra": "forbid", "frozen": True}


class DispatchOptions(BaseModel):
    """Per-dispatch overrides."""

    execution_mode: ExecutionMode | None = None
    throttle: float | None = Field(default=None, ge=0)
    debounce: float | None = Field(default=None, ge=0)
    filter: HandlerFilter | None = None
    result: ResultOptions | None = None

    model_config = {"extra": "forbid", "frozen": True}
