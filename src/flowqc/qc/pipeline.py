"""End-to-end quality control of one event source."""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..exceptions import FlowQCError, NoPeaksDetected
from ..logger import get_qc_logger
from .consecutive import remove_short_runs
from .isolation_forest import detect_isolation_outliers
from .mad import detect_mad_outliers
from .models import IsolationForestResult, MADResult, QCResult, QCSettings
from .peaks import determine_peaks_all_channels
from .settings import validate_settings
from .windows import create_windows, events_in_windows, expand_window_mask, find_window_size

HIGH_REMOVAL_WARNING_PCT = 70.0


def _percent(count: int, total: int) -> float:
    return 100.0 * count / total if total else 0.0


def run_quality_control(source, settings: QCSettings, *, log=None) -> QCResult:
    """Run windowing, peak clustering, isolation forest, MAD and the run filter.

    ``log`` receives progress messages through ``debug``/``info``/``warning``;
    a bound loguru logger is used when omitted.
    """
    log = log or get_qc_logger()
    validate_settings(settings)

    n_events = source.event_count()
    window_size = settings.window_size or find_window_size(n_events, settings.min_window_events, settings.max_windows)
    windows = create_windows(n_events, window_size)
    n_windows = len(windows)
    log.info(f"Quality control on {n_events} events: {n_windows} windows of {window_size} events, mode={settings.mode.value}")

    peaks = determine_peaks_all_channels(source, windows, settings, log=log)
    if not peaks:
        raise NoPeaksDetected(f"No peaks detected in any of the channels {settings.channels}")
    log.info(f"Peaks retained for {len(peaks)}/{len(settings.channels)} channels")

    window_mask = np.zeros(n_windows, dtype=bool)
    it_result: Optional[IsolationForestResult] = None
    mad_result: Optional[MADResult] = None

    if settings.mode.runs_isolation_forest:
        try:
            it_result = detect_isolation_outliers(peaks, settings)
        except FlowQCError as exc:
            log.warning(f"Isolation forest skipped: {exc}")
        else:
            window_mask |= it_result.outliers
            log.info(f"Isolation forest flagged {it_result.n_outliers} windows")

    if settings.mode.runs_mad:
        mad_result = detect_mad_outliers(peaks, settings, existing_outliers=window_mask)
        window_mask |= mad_result.outliers
        log.info(f"MAD flagged {mad_result.n_outliers} windows")

    detector_mask = window_mask.copy()
    if it_result is not None or mad_result is not None:
        window_mask = remove_short_runs(window_mask, settings.consecutive_windows)
        log.debug(f"Consecutive filter flagged {int(window_mask.sum() - detector_mask.sum())} additional windows")

    keep = expand_window_mask(window_mask, windows, n_events)
    removed = int((~keep).sum())
    percentage_removed = _percent(removed, n_events)

    it_events = events_in_windows(it_result.outliers, windows, n_events) if it_result is not None else 0
    detector_events = events_in_windows(detector_mask, windows, n_events)
    it_percentage = _percent(it_events, n_events) if it_result is not None else None
    mad_percentage = _percent(detector_events - it_events, n_events) if mad_result is not None else None
    consecutive_percentage = _percent(removed - detector_events, n_events)

    log.info(f"Removed {removed} events ({percentage_removed:.2f}%)")
    if percentage_removed > HIGH_REMOVAL_WARNING_PCT:
        log.warning(f"More than {HIGH_REMOVAL_WARNING_PCT:.0f}% of events removed ({percentage_removed:.2f}%); check the acquisition")

    return QCResult(
        keep_mask=keep,
        percentage_removed=percentage_removed,
        it_percentage=it_percentage,
        mad_percentage=mad_percentage,
        consecutive_percentage=consecutive_percentage,
        peaks=peaks,
        n_windows=n_windows,
        window_size=window_size,
        window_mask=window_mask,
        windows=windows,
        it_scores=it_result.scores if it_result is not None else None,
        mad_contribution=mad_result.contribution if mad_result is not None else {},
    )


__all__ = ["HIGH_REMOVAL_WARNING_PCT", "run_quality_control"]
