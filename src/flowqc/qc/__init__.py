"""Quality-control stages for ordered flow-cytometry event streams.

Modules:
- windows: overlapping window construction and window/event mask expansion
- density: FFT Gaussian KDE and peak finding
- peaks: per-window peak extraction and cross-window clustering
- isolation_forest: ensemble of random partition trees over peak features
- mad: smoothed MAD outlier detection
- consecutive: short interior good-run removal
- margins, doublets, monotonic: optional pre-QC checks
- transform: arcsinh scaling of the QC channels
- pipeline: orchestration of the stages above
"""

from .models import ChannelPeakSet, Peak, QCMode, QCResult, QCSettings, Window
from .pipeline import run_quality_control
from .settings import load_qc_settings, validate_settings

__all__ = [
    "ChannelPeakSet",
    "Peak",
    "QCMode",
    "QCResult",
    "QCSettings",
    "Window",
    "run_quality_control",
    "load_qc_settings",
    "validate_settings",
]
