"""Exception hierarchy for the QC engine."""

from __future__ import annotations


class FlowQCError(Exception):
    """Base exception for all flowqc errors."""

    pass


class ConfigError(FlowQCError):
    """Invalid or incomplete QC configuration."""

    pass


class InsufficientData(FlowQCError):
    """Too few windows or samples for the requested stage."""

    def __init__(self, required: int, actual: int, what: str = "windows") -> None:
        self.required = required
        self.actual = actual
        self.what = what
        super().__init__(f"Insufficient {what}: required {required}, got {actual}")


class NoPeaksDetected(FlowQCError):
    """No channel produced a usable density peak."""

    def __init__(self, message: str = "No peaks detected in any channel") -> None:
        super().__init__(message)


class ChannelNotFound(FlowQCError, KeyError):
    """Requested channel is absent from the event source."""

    def __init__(self, channel: str, available: list[str] | None = None) -> None:
        self.channel = channel
        self.available = list(available or [])
        message = f"Channel '{channel}' not found"
        if self.available:
            message = f"{message}. Known channels: [{', '.join(self.available)}]"
        super().__init__(message)

    def __str__(self) -> str:
        return str(self.args[0])


class StatsError(FlowQCError):
    """Numerical failure inside a statistical routine."""

    pass


class EventTableError(FlowQCError):
    """Event table cannot be read or fails validation."""

    pass


class LengthMismatch(FlowQCError, ValueError):
    """Mask length differs from the number of events."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Mask length {actual} does not match event count {expected}")


__all__ = [
    "FlowQCError",
    "ConfigError",
    "InsufficientData",
    "NoPeaksDetected",
    "ChannelNotFound",
    "StatsError",
    "EventTableError",
    "LengthMismatch",
]
