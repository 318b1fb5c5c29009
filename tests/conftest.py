"""Pytest configuration, Hypothesis profiles and shared test doubles."""

from typing import Any

import pytest
from hypothesis import settings

from actionpipe.core.logging import LogLevel

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100)
settings.register_profile("dev", max_examples=20)

# Load dev profile by default, CI can override via --hypothesis-profile=ci
settings.load_profile("dev")


class RecordingLog:
    """LogSink that keeps every call for assertions."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []
        self.level = LogLevel.TRACE

    def _record(self, level: str, msg: str, fields: dict[str, Any]) -> None:
        self.records.append((level, msg, fields))

    def trace(self, msg: str, **fields: Any) -> None:
        self._record("trace", msg, fields)

    def debug(self, msg: str, **fields: Any) -> None:
        self._record("debug", msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._record("info", msg, fields)

    def warn(self, msg: str, **fields: Any) -> None:
        self._record("warn", msg, fields)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._record("error", msg, fields)

    def set_level(self, level: LogLevel | int | str) -> None:
        self.level = LogLevel.parse(level)

    def get_level(self) -> LogLevel:
        return self.level

    def messages(self, level: str) -> list[str]:
        return [msg for lvl, msg, _ in self.records if lvl == level]


class FakeClock:
    """Manually advanced monotonic clock, in seconds."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def set_ms(self, ms: float) -> None:
        self.now = ms / 1000.0


@pytest.fixture
def log() -> RecordingLog:
    return RecordingLog()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
