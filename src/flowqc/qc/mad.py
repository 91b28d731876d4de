from __future__ import annotations

from typing import Dict, Optional

import numpy as np

from ..exceptions import NoPeaksDetected
from .models import ChannelPeakSet, MADResult, QCSettings
from .peaks import build_feature_matrix
from .stats import median_mad, MAD_SCALE, smooth_trajectory

MIN_MAD_WINDOWS = 3


def mad_flags(values: np.ndarray, threshold: float, spar: float = 0.5) -> np.ndarray:
    """Flag values whose smoothed trajectory leaves ``median +/- threshold * scaled MAD``."""
    values = np.asarray(values, dtype=float)
    if values.size == 0 or np.ptp(values) == 0:
        return np.zeros(values.size, dtype=bool)
    smoothed = smooth_trajectory(values, spar)
    center, raw_mad = median_mad(smoothed)
    # Rounding noise left by the spline fit counts as zero spread.
    if raw_mad <= 64 * np.finfo(float).eps * max(1.0, abs(center)):
        return np.zeros(smoothed.size, dtype=bool)
    scaled = raw_mad * MAD_SCALE
    return (smoothed > center + threshold * scaled) | (smoothed < center - threshold * scaled)


def detect_mad_outliers(
    peak_sets: Dict[str, ChannelPeakSet],
    settings: QCSettings,
    existing_outliers: Optional[np.ndarray] = None,
) -> MADResult:
    """Union of MAD outliers over every (channel, cluster) trajectory.

    Windows already flagged in ``existing_outliers`` are left out of the statistics
    and are never reported again.
    """
    if not peak_sets:
        raise NoPeaksDetected()
    features = build_feature_matrix(peak_sets)
    n_windows = features.n_windows
    if existing_outliers is None:
        candidates = np.ones(n_windows, dtype=bool)
    else:
        candidates = ~np.asarray(existing_outliers, dtype=bool)
    candidate_idx = np.flatnonzero(candidates)

    outliers = np.zeros(n_windows, dtype=bool)
    per_channel: Dict[str, np.ndarray] = {channel: np.zeros(n_windows, dtype=bool) for channel in peak_sets}
    if candidate_idx.size >= MIN_MAD_WINDOWS:
        for column, (channel, _cluster) in enumerate(features.columns):
            flagged = mad_flags(features.values[candidate_idx, column], settings.mad_threshold, settings.smoothing)
            per_channel[channel][candidate_idx[flagged]] = True
        for flags in per_channel.values():
            outliers |= flags

    contribution = {
        channel: 100.0 * float(flags.sum()) / n_windows if n_windows else 0.0
        for channel, flags in sorted(per_channel.items())
    }
    return MADResult(outliers=outliers, contribution=contribution)


__all__ = ["MIN_MAD_WINDOWS", "mad_flags", "detect_mad_outliers"]
