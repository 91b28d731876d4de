from __future__ import annotations

import math
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed

from ..exceptions import ChannelNotFound, FlowQCError, InsufficientData
from ..logger import get_qc_logger
from .density import density_peaks
from .models import ChannelPeakSet, FeatureMatrix, Peak, QCSettings, Window

MIN_CLUSTER_WINDOW_FRACTION = 0.5


def extract_window_peaks(
    values: np.ndarray,
    windows: Sequence[Window],
    *,
    peak_removal: float = 1.0 / 3.0,
    remove_zeros: bool = False,
) -> List[List[float]]:
    """Density peaks of every window, ascending; windows too sparse for a KDE get no peaks."""
    per_window: List[List[float]] = []
    for window in windows:
        chunk = values[window.start : window.end]
        if remove_zeros:
            chunk = chunk[chunk != 0]
        try:
            per_window.append(density_peaks(chunk, peak_removal=peak_removal))
        except InsufficientData:
            per_window.append([])
    return per_window


def reference_peak_count(per_window: Sequence[Sequence[float]], min_coverage_pct: float) -> Optional[int]:
    """Most frequent non-zero peak count among counts seen in enough windows.

    Ties go to the numerically largest count.
    """
    n_windows = len(per_window)
    if n_windows == 0:
        return None
    frequencies = Counter(len(peaks) for peaks in per_window if peaks)
    min_windows = math.ceil(min_coverage_pct / 100.0 * n_windows)
    eligible = [(freq, count) for count, freq in frequencies.items() if freq >= min_windows]
    if not eligible:
        return None
    return max(eligible)[1]


def cluster_centers(per_window: Sequence[Sequence[float]], count: int) -> List[float]:
    reference = [peaks for peaks in per_window if len(peaks) == count]
    centers: List[float] = []
    for index in range(count):
        column = [peaks[index] for peaks in reference]
        if column:
            centers.append(float(np.median(column)))
    return centers


def assign_clusters(per_window: Sequence[Sequence[float]], centers: Sequence[float]) -> List[Peak]:
    peaks: List[Peak] = []
    center_arr = np.asarray(centers, dtype=float)
    for window_index, values in enumerate(per_window):
        for value in values:
            if center_arr.size == 0:
                cluster = 1
            else:
                # argmin returns the first minimum, so ties favour the lower cluster.
                cluster = int(np.argmin(np.abs(center_arr - value))) + 1
            peaks.append(Peak(window=window_index, value=float(value), cluster=cluster))
    return peaks


def drop_sparse_clusters(peaks: Sequence[Peak], n_windows: int, min_fraction: float = MIN_CLUSTER_WINDOW_FRACTION) -> List[Peak]:
    coverage: Dict[int, set] = {}
    for peak in peaks:
        coverage.setdefault(peak.cluster, set()).add(peak.window)
    min_windows = math.ceil(n_windows * min_fraction)
    keep = {cluster for cluster, members in coverage.items() if len(members) >= min_windows}
    return [peak for peak in peaks if peak.cluster in keep]


def cluster_channel_peaks(
    channel: str,
    per_window: Sequence[Sequence[float]],
    *,
    min_coverage_pct: float = 10.0,
) -> Optional[ChannelPeakSet]:
    n_windows = len(per_window)
    count = reference_peak_count(per_window, min_coverage_pct)
    centers = cluster_centers(per_window, count) if count else []
    peaks = drop_sparse_clusters(assign_clusters(per_window, centers), n_windows)
    if not peaks:
        return None
    return ChannelPeakSet(channel=channel, peaks=tuple(peaks), n_windows=n_windows)


def determine_channel_peaks(source, channel: str, windows: Sequence[Window], settings: QCSettings) -> Optional[ChannelPeakSet]:
    values = np.asarray(source.channel_values(channel), dtype=float)
    per_window = extract_window_peaks(
        values,
        windows,
        peak_removal=settings.peak_removal,
        remove_zeros=settings.remove_zeros,
    )
    return cluster_channel_peaks(channel, per_window, min_coverage_pct=settings.min_cluster_coverage_pct)


def _safe_channel_peaks(source, channel: str, windows: Sequence[Window], settings: QCSettings) -> Tuple[str, Optional[ChannelPeakSet], Optional[str]]:
    try:
        return channel, determine_channel_peaks(source, channel, windows, settings), None
    except ChannelNotFound as exc:
        return channel, None, str(exc)
    except FlowQCError as exc:
        return channel, None, f"{type(exc).__name__}: {exc}"


def determine_peaks_all_channels(
    source,
    windows: Sequence[Window],
    settings: QCSettings,
    *,
    log=None,
) -> Dict[str, ChannelPeakSet]:
    """Extract and cluster peaks for every requested channel.

    Channels that are missing or fail extraction are skipped with a warning.
    """
    log = log or get_qc_logger()
    channels = list(settings.channels)
    if settings.n_jobs == 1 or len(channels) < 2:
        outcomes = [_safe_channel_peaks(source, channel, windows, settings) for channel in channels]
    else:
        outcomes = Parallel(n_jobs=settings.n_jobs, prefer="threads")(
            delayed(_safe_channel_peaks)(source, channel, windows, settings) for channel in channels
        )

    results: Dict[str, ChannelPeakSet] = {}
    for channel, peak_set, error in outcomes:
        if error is not None:
            log.warning(f"Skipping channel {channel}: {error}")
            continue
        if peak_set is None:
            log.warning(f"Channel {channel} produced no retained peaks")
            continue
        log.debug(f"Channel {channel}: {len(peak_set.peaks)} peaks in clusters {peak_set.cluster_ids}")
        results[channel] = peak_set
    return results


def build_feature_matrix(peak_sets: Dict[str, ChannelPeakSet] | Sequence[ChannelPeakSet]) -> FeatureMatrix:
    """Window x (channel, cluster) matrix of median peak values.

    Windows without a peak in a cluster take that cluster's median.
    """
    sets = list(peak_sets.values()) if isinstance(peak_sets, dict) else list(peak_sets)
    sets.sort(key=lambda s: s.channel)
    n_windows = max((s.n_windows for s in sets), default=0)
    columns: List[Tuple[str, int]] = []
    data: List[np.ndarray] = []
    for peak_set in sets:
        grouped: Dict[int, Dict[int, List[float]]] = {}
        for peak in peak_set.peaks:
            grouped.setdefault(peak.cluster, {}).setdefault(peak.window, []).append(peak.value)
        for cluster in sorted(grouped):
            per_window = grouped[cluster]
            column = np.full(n_windows, np.nan)
            for window, values in per_window.items():
                column[window] = float(np.median(values))
            fill = float(np.median(column[~np.isnan(column)]))
            column[np.isnan(column)] = fill
            columns.append((peak_set.channel, cluster))
            data.append(column)
    if not data:
        return FeatureMatrix(values=np.empty((n_windows, 0)), columns=[])
    return FeatureMatrix(values=np.column_stack(data), columns=columns)


__all__ = [
    "extract_window_peaks",
    "reference_peak_count",
    "cluster_centers",
    "assign_clusters",
    "drop_sparse_clusters",
    "cluster_channel_peaks",
    "determine_channel_peaks",
    "determine_peaks_all_channels",
    "build_feature_matrix",
]
