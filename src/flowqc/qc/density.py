"""FFT-accelerated Gaussian kernel density estimation and peak finding."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from ..exceptions import InsufficientData, StatsError
from .stats import silverman_bandwidth

DEFAULT_GRID_SIZE = 512
MIN_KDE_VALUES = 3


@dataclass
class DensityEstimate:
    grid: np.ndarray
    density: np.ndarray
    bandwidth: float
    n: int


def _next_power_of_two(value: int) -> int:
    size = 1
    while size < value:
        size <<= 1
    return size


def _linear_bin(values: np.ndarray, lo: float, delta: float, grid_size: int) -> np.ndarray:
    pos = (values - lo) / delta
    left = np.clip(np.floor(pos).astype(np.int64), 0, grid_size - 2)
    frac = np.clip(pos - left, 0.0, 1.0)
    counts = np.bincount(left, weights=1.0 - frac, minlength=grid_size)
    counts += np.bincount(left + 1, weights=frac, minlength=grid_size)
    return counts[:grid_size]


def kernel_density(
    values: Sequence[float] | np.ndarray,
    *,
    adjust: float = 1.0,
    grid_size: int = DEFAULT_GRID_SIZE,
) -> DensityEstimate:
    """Gaussian KDE evaluated on a regular grid via circular FFT convolution."""
    data = np.asarray(values, dtype=float).ravel()
    data = data[np.isfinite(data)]
    if data.size < MIN_KDE_VALUES:
        raise InsufficientData(MIN_KDE_VALUES, int(data.size), "finite values")
    if grid_size < 3:
        raise StatsError(f"Grid size must be at least 3, got {grid_size}")

    bandwidth = silverman_bandwidth(data, adjust=adjust)
    lo = float(data.min()) - 3.0 * bandwidth
    hi = float(data.max()) + 3.0 * bandwidth
    grid = np.linspace(lo, hi, grid_size)
    delta = (hi - lo) / (grid_size - 1)

    fft_size = _next_power_of_two(2 * grid_size)
    binned = np.zeros(fft_size)
    binned[:grid_size] = _linear_bin(data, lo, delta, grid_size)

    offsets = np.arange(grid_size) * delta / bandwidth
    weights = np.exp(-0.5 * offsets**2) / np.sqrt(2.0 * np.pi)
    kernel = np.zeros(fft_size)
    kernel[:grid_size] = weights
    kernel[fft_size - grid_size + 1 :] = weights[1:][::-1]

    # irfft already divides by fft_size.
    convolved = np.fft.irfft(np.fft.rfft(binned) * np.fft.rfft(kernel), n=fft_size)[:grid_size]
    density = np.maximum(convolved, 0.0) / (data.size * bandwidth)
    if not np.all(np.isfinite(density)):
        raise StatsError("Density estimate contains non-finite values")
    return DensityEstimate(grid=grid, density=density, bandwidth=bandwidth, n=int(data.size))


def find_density_peaks(estimate: DensityEstimate, peak_removal: float = 1.0 / 3.0) -> List[float]:
    """Grid positions of strict local maxima above ``peak_removal`` times the global maximum.

    Falls back to the global maximum when nothing qualifies.
    """
    density = estimate.density
    if density.size == 0:
        return []
    top = float(density.max())
    inner = density[1:-1]
    is_peak = (inner > density[:-2]) & (inner > density[2:]) & (inner > peak_removal * top)
    indices = np.flatnonzero(is_peak) + 1
    if indices.size == 0:
        indices = np.array([int(np.argmax(density))])
    return [float(estimate.grid[i]) for i in np.sort(indices)]


def density_peaks(
    values: Sequence[float] | np.ndarray,
    *,
    peak_removal: float = 1.0 / 3.0,
    adjust: float = 1.0,
    grid_size: int = DEFAULT_GRID_SIZE,
) -> List[float]:
    return find_density_peaks(kernel_density(values, adjust=adjust, grid_size=grid_size), peak_removal)


__all__ = [
    "DEFAULT_GRID_SIZE",
    "DensityEstimate",
    "kernel_density",
    "find_density_peaks",
    "density_peaks",
]
