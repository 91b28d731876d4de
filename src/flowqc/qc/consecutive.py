from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from ..exceptions import ConfigError


def good_runs(window_mask: Sequence[bool] | np.ndarray) -> List[Tuple[int, int]]:
    """Half-open ``(start, end)`` ranges of consecutive good (False) windows."""
    mask = np.asarray(window_mask, dtype=bool)
    runs: List[Tuple[int, int]] = []
    start = None
    for index, bad in enumerate(mask):
        if not bad and start is None:
            start = index
        elif bad and start is not None:
            runs.append((start, index))
            start = None
    if start is not None:
        runs.append((start, mask.size))
    return runs


def remove_short_runs(window_mask: Sequence[bool] | np.ndarray, min_run: int) -> np.ndarray:
    """Flip interior good runs shorter than ``min_run`` to bad.

    Runs touching either end of the array are left untouched.
    """
    if min_run < 0:
        raise ConfigError(f"Minimum run length must be non-negative, got {min_run}")
    result = np.asarray(window_mask, dtype=bool).copy()
    for start, end in good_runs(result):
        if start == 0 or end == result.size:
            continue
        if end - start < min_run:
            result[start:end] = True
    return result


__all__ = ["good_runs", "remove_short_runs"]
