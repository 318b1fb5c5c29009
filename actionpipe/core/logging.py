"""Structured JSON logging for actionpipe."""

import json
import logging
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any, Protocol

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Dynamically derive standard LogRecord attributes at module import time
# This ensures future Python additions (like taskName) are automatically handled
_STANDARD_LOGRECORD_KEYS: frozenset[str] = frozenset(
    logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
    ).__dict__.keys()
)


class LogLevel(IntEnum):
    """Log levels understood by the register, mapped onto stdlib levels."""

    TRACE = TRACE
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARN = logging.WARNING
    ERROR = logging.ERROR
    NONE = logging.CRITICAL + 10

    @classmethod
    def parse(cls, value: "LogLevel | int | str") -> "LogLevel":
        """Resolve a level from an enum member, a stdlib number or a name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name.isdigit():
                return cls.parse(int(name))
            if name == "WARNING":
                name = "WARN"
            try:
                return cls[name]
            except KeyError:
                raise ValueError(f"unknown log level: {value!r}") from None
        if isinstance(value, int) and not isinstance(value, bool):
            for member in cls:
                if member.value == value:
                    return member
            raise ValueError(f"unknown log level: {value!r}")
        raise TypeError(f"log level must be LogLevel, int or str, got {type(value).__name__}")


class LogSink(Protocol):
    """Leveled logging interface consumed by the pipeline core."""

    def trace(self, msg: str, **fields: Any) -> None: ...
    def debug(self, msg: str, **fields: Any) -> None: ...
    def info(self, msg: str, **fields: Any) -> None: ...
    def warn(self, msg: str, **fields: Any) -> None: ...
    def error(self, msg: str, **fields: Any) -> None: ...
    def set_level(self, level: LogLevel | int | str) -> None: ...
    def get_level(self) -> LogLevel: ...


class JSONFormatter(logging.Formatter):
    """JSON formatter with UTC ISO8601 timestamps."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add standard actionpipe fields if present
        for field in ("register", "action", "handler_id", "execution_mode"):
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        # Add any extra fields passed via extra={}
        for key, value in vars(record).items():
            if key not in _STANDARD_LOGRECORD_KEYS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        try:
            return json.dumps(log_data, default=str)
        except Exception:
            # Fallback to safe string representation if serialization fails
            return str(log_data)


class ActionLogger:
    """Adapts a stdlib logger to the :class:`LogSink` interface.

    Keyword arguments passed to the leveled methods become structured
    ``extra`` fields on the emitted record. Every record is tagged with the
    owning register's name.
    """

    def __init__(self, logger: logging.Logger, register_name: str | None = None) -> None:
        self.logger = logger
        self.register_name = register_name

    def _log(self, level: int, msg: str, fields: dict[str, Any], exc_info: bool = False) -> None:
        if not self.logger.isEnabledFor(level):
            return
        extra = dict(fields)
        if self.register_name is not None:
            extra.setdefault("register", self.register_name)
        self.logger.log(level, msg, extra=extra, exc_info=exc_info, stacklevel=3)

    def trace(self, msg: str, **fields: Any) -> None:
        self._log(TRACE, msg, fields)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, fields)

    def warn(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, fields)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, fields, exc_info=exc_info)

    def set_level(self, level: LogLevel | int | str) -> None:
        self.logger.setLevel(LogLevel.parse(level))

    def get_level(self) -> LogLevel:
        level = self.logger.getEffectiveLevel()
        try:
            return LogLevel.parse(level)
        except ValueError:
            return LogLevel.NONE


def _setup_json_handler(logger: logging.Logger, level: int) -> None:
    """Configure a logger with JSON formatting.

    Args:
        logger: The logger to configure.
        level: The logging level to set.
    """
    if not any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def configure_register_logger(
    name: str,
    level: LogLevel | int | str = LogLevel.ERROR,
    debug: bool = False,
) -> ActionLogger:
    """Build the default logger for an ActionRegister.

    Without ``debug`` the logger only inherits the package ``NullHandler``
    and stays silent until the application configures logging. With
    ``debug`` a JSON stream handler is attached and the level is lowered to
    at least DEBUG.

    Args:
        name: The register name, used as the logger name suffix.
        level: The requested log level.
        debug: Whether to emit JSON logs to stderr.
    """
    resolved = LogLevel.parse(level)
    logger = logging.getLogger(f"actionpipe.{name}")
    if debug:
        _setup_json_handler(logger, min(resolved, LogLevel.DEBUG))
    else:
        logger.setLevel(resolved)
    return ActionLogger(logger, register_name=name)


def get_logger(name: str = "actionpipe", level: int = logging.INFO) -> logging.Logger:
    """Get a logger with JSON formatting.

    Args:
        name: The logger name. Defaults to "actionpipe".
        level: The logging level to set. Defaults to logging.INFO.
    """
    logger = logging.getLogger(name)
    _setup_json_handler(logger, level)
    return logger
