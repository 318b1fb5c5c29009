"""Construction-time configuration for ActionRegister."""

from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from actionpipe.core.logging import LogLevel
from actionpipe.core.registration import ExecutionMode

ENV_PREFIX = "ACTIONPIPE_"

DEFAULT_NAME = "ActionRegister"


class ActionRegisterConfig(BaseSettings):
    """Validated register configuration.

    Fields not passed explicitly are read from ``ACTIONPIPE_``-prefixed
    environment variables (``ACTIONPIPE_NAME``, ``ACTIONPIPE_DEBUG``,
    ``ACTIONPIPE_LOG_LEVEL``, ``ACTIONPIPE_DEFAULT_EXECUTION_MODE``) at
    construction. Empty variables count as unset.

    Attributes:
        name: Register name, also used as the logger name suffix.
        log_level: Minimum level of the default logger.
        debug: Attach a JSON stderr handler to the default logger.
        default_execution_mode: Mode used by actions without an override.
        logger: Custom log sink. Replaces the default logger entirely.
    """

    name: str = DEFAULT_NAME
    log_level: LogLevel = LogLevel.ERROR
    debug: bool = False
    default_execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    logger: Any | None = None

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        case_sensitive=False,
        extra="forbid",
        frozen=True,
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def parse_log_level(cls, v: Any) -> LogLevel:
        try:
            return LogLevel.parse(v)
        except TypeError as e:
            raise ValueError(str(e)) from e
