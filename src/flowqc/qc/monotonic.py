from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np
from scipy.stats import spearmanr

from ..logger import get_qc_logger
from .models import MonotonicResult, Window

DEFAULT_BANDWIDTH = 50.0
MONOTONIC_FRACTION = 0.75


def kernel_smooth(values: Sequence[float] | np.ndarray, bandwidth: float = DEFAULT_BANDWIDTH) -> np.ndarray:
    """Nadaraya-Watson smoother with a Gaussian kernel over the window index."""
    y = np.asarray(values, dtype=float)
    x = np.arange(y.size, dtype=float)
    distances = (x[:, None] - x[None, :]) / bandwidth
    weights = np.exp(-0.5 * distances**2)
    return (weights @ y) / weights.sum(axis=1)


def _trend_fraction(smoothed: np.ndarray, running: np.ndarray) -> float:
    return float(np.mean(np.abs(running - smoothed) < 1e-10))


def find_monotonic_channels(
    source,
    channels: Sequence[str],
    windows: Sequence[Window],
    *,
    bandwidth: float = DEFAULT_BANDWIDTH,
    threshold: float = MONOTONIC_FRACTION,
    log=None,
) -> MonotonicResult:
    """Detect channels whose per-window median keeps drifting up or down."""
    log = log or get_qc_logger(stage="monotonic")
    increasing: List[str] = []
    decreasing: List[str] = []
    correlations: Dict[str, float] = {}
    for channel in channels:
        values = np.asarray(source.channel_values(channel), dtype=float)
        medians = np.array([np.median(values[w.start : w.end]) for w in windows if w.end > w.start])
        if medians.size < 3:
            continue
        smoothed = kernel_smooth(medians, bandwidth)
        rho = spearmanr(np.arange(medians.size), medians).statistic
        correlations[channel] = float(rho) if np.isfinite(rho) else 0.0
        if _trend_fraction(smoothed, np.maximum.accumulate(smoothed)) > threshold:
            increasing.append(channel)
        elif _trend_fraction(smoothed, np.minimum.accumulate(smoothed)) > threshold:
            decreasing.append(channel)

    both = sorted(set(increasing) | set(decreasing)) if increasing and decreasing else []
    if increasing:
        log.warning(f"Increasing channels detected: {increasing}")
    if decreasing:
        log.warning(f"Decreasing channels detected: {decreasing}")
    if both:
        log.warning("Both increasing and decreasing channels detected, acquisition conditions look unstable")
    return MonotonicResult(increasing=increasing, decreasing=decreasing, both=both, correlations=correlations)


__all__ = ["kernel_smooth", "find_monotonic_channels"]
