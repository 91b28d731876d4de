"""Robust statistics shared by the QC stages."""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np
from scipy.interpolate import make_smoothing_spline

from ..exceptions import StatsError

MAD_SCALE = 1.4826


def _finite(values: Sequence[float] | np.ndarray) -> np.ndarray:
    arr = np.asarray(values, dtype=float).ravel()
    return arr[np.isfinite(arr)]


def median(values: Sequence[float] | np.ndarray) -> float:
    arr = _finite(values)
    if arr.size == 0:
        raise StatsError("Cannot compute the median of an empty sequence")
    return float(np.median(arr))


def median_mad(values: Sequence[float] | np.ndarray) -> Tuple[float, float]:
    """Return ``(median, raw MAD)`` over finite values."""
    arr = _finite(values)
    if arr.size == 0:
        raise StatsError("Cannot compute MAD of an empty sequence")
    center = float(np.median(arr))
    return center, float(np.median(np.abs(arr - center)))


def scaled_mad(values: Sequence[float] | np.ndarray) -> float:
    _, raw = median_mad(values)
    return raw * MAD_SCALE


def iqr(values: Sequence[float] | np.ndarray) -> float:
    arr = _finite(values)
    if arr.size == 0:
        raise StatsError("Cannot compute IQR of an empty sequence")
    q1, q3 = np.percentile(arr, [25.0, 75.0])
    return float(q3 - q1)


def silverman_bandwidth(values: Sequence[float] | np.ndarray, adjust: float = 1.0) -> float:
    """Silverman's rule of thumb with the usual fallbacks for degenerate samples.

    When ``min(sd, IQR/1.34)`` is zero the scale falls back to the standard
    deviation, then to the magnitude of the first value, then to 1.
    """
    arr = _finite(values)
    if arr.size < 2:
        raise StatsError("Bandwidth selection needs at least two finite values")
    sd = float(np.std(arr, ddof=1))
    scale = min(sd, iqr(arr) / 1.34)
    if not scale > 0:
        scale = sd
    if not scale > 0:
        scale = abs(float(arr[0]))
    if not scale > 0:
        scale = 1.0
    bandwidth = 0.9 * scale * arr.size ** (-0.2) * adjust
    if not np.isfinite(bandwidth) or bandwidth <= 0:
        raise StatsError(f"Invalid bandwidth {bandwidth!r}")
    return float(bandwidth)


def spar_to_lambda(spar: float) -> float:
    """Curvature penalty for a smoothing level in [0, 1); 0.5 weighs fit and roughness equally."""
    if not 0.0 <= spar < 1.0:
        raise StatsError(f"Smoothing level must lie in [0, 1), got {spar}")
    return spar / (1.0 - spar)


def smooth_trajectory(values: Sequence[float] | np.ndarray, spar: float = 0.5) -> np.ndarray:
    """Cubic smoothing spline over the window index; short series are returned as-is."""
    y = np.asarray(values, dtype=float)
    if y.size < 5:
        return y.copy()
    if not np.all(np.isfinite(y)):
        raise StatsError("Smoothing requires finite values")
    x = np.arange(y.size, dtype=float)
    try:
        spline = make_smoothing_spline(x, y, lam=spar_to_lambda(spar))
    except (ValueError, np.linalg.LinAlgError) as exc:
        raise StatsError(f"Smoothing spline failed: {exc}") from exc
    smoothed = spline(x)
    if not np.all(np.isfinite(smoothed)):
        raise StatsError("Smoothing spline produced non-finite values")
    return np.asarray(smoothed, dtype=float)


__all__ = [
    "MAD_SCALE",
    "median",
    "median_mad",
    "scaled_mad",
    "iqr",
    "silverman_bandwidth",
    "spar_to_lambda",
    "smooth_trajectory",
]
