"""Admission control for time-sensitive dispatches."""

from actionpipe.guards.station import GuardStation, GuardState

__all__ = ["GuardStation", "GuardState"]
