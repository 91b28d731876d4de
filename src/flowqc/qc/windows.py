from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np

from ..exceptions import ConfigError, InsufficientData, LengthMismatch
from .models import Window


def window_overlap(window_size: int) -> int:
    return (window_size + 1) // 2


def find_window_size(n_events: int, min_events: int = 150, max_windows: int = 500, step: int = 500) -> int:
    """Pick the number of events per window.

    Doubles ``n_events / max_windows`` to account for 50% overlap, rounds it up
    to the next multiple of ``step`` and never goes below ``min_events``.
    """
    if n_events <= 0:
        raise InsufficientData(1, n_events, "events")
    if max_windows < 1:
        raise ConfigError("max_windows must be positive")
    max_cells = math.ceil(n_events / max_windows * 2)
    rounded = (max_cells // step) * step + step
    return max(int(min_events), int(rounded))


def create_windows(n_events: int, window_size: int) -> List[Window]:
    if window_size < 2:
        raise ConfigError(f"Window size must be at least 2, got {window_size}")
    if n_events <= 0:
        raise InsufficientData(1, n_events, "events")
    if n_events < window_size:
        return [Window(0, n_events)]

    step = window_size - window_overlap(window_size)
    windows: List[Window] = []
    for start in range(0, n_events, step):
        windows.append(Window(start, min(start + window_size, n_events)))
    return windows


def expand_window_mask(window_mask: Sequence[bool] | np.ndarray, windows: Sequence[Window], n_events: int) -> np.ndarray:
    """Translate bad windows into an event keep mask.

    An event is discarded as soon as one window covering it is bad.
    """
    bad = np.asarray(window_mask, dtype=bool)
    if bad.size != len(windows):
        raise LengthMismatch(len(windows), bad.size)
    keep = np.ones(n_events, dtype=bool)
    for window, is_bad in zip(windows, bad):
        if is_bad:
            keep[window.start : window.end] = False
    return keep


def events_in_windows(window_mask: Sequence[bool] | np.ndarray, windows: Sequence[Window], n_events: int) -> int:
    return int((~expand_window_mask(window_mask, windows, n_events)).sum())


__all__ = [
    "window_overlap",
    "find_window_size",
    "create_windows",
    "expand_window_mask",
    "events_in_windows",
]
