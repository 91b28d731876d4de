"""Automated quality control for flow-cytometry event streams."""

from .exceptions import (
    ChannelNotFound,
    ConfigError,
    EventTableError,
    FlowQCError,
    InsufficientData,
    LengthMismatch,
    NoPeaksDetected,
    StatsError,
)
from .qc import QCMode, QCResult, QCSettings, load_qc_settings, run_quality_control
from .sources import EventSource, FrameEventSource

__version__ = "0.1.0"

__all__ = [
    "ChannelNotFound",
    "ConfigError",
    "EventTableError",
    "FlowQCError",
    "InsufficientData",
    "LengthMismatch",
    "NoPeaksDetected",
    "StatsError",
    "QCMode",
    "QCResult",
    "QCSettings",
    "load_qc_settings",
    "run_quality_control",
    "EventSource",
    "FrameEventSource",
]
