from __future__ import annotations

from typing import Sequence

import numpy as np

from ..exceptions import ChannelNotFound, ConfigError
from ..logger import get_qc_logger
from ..sources import FrameEventSource

DEFAULT_COFACTOR = 2000.0


def arcsinh_transform(values, cofactor: float = DEFAULT_COFACTOR) -> np.ndarray:
    """``asinh(x / cofactor)``: linear near zero, logarithmic for large intensities."""
    if not cofactor > 0:
        raise ConfigError(f"Transform cofactor must be positive, got {cofactor}")
    return np.arcsinh(np.asarray(values, dtype=float) / cofactor)


def transform_channels(
    source: FrameEventSource,
    channels: Sequence[str],
    cofactor: float = DEFAULT_COFACTOR,
    *,
    log=None,
) -> FrameEventSource:
    """Copy of ``source`` with ``channels`` on the arcsinh scale; other columns untouched.

    Declared channel ranges are mapped through the same transform.
    """
    if not cofactor > 0:
        raise ConfigError(f"Transform cofactor must be positive, got {cofactor}")
    log = log or get_qc_logger(stage="transform")
    frame = source.frame.copy()
    ranges = {}
    for name in source.channel_names():
        bounds = source.channel_range(name)
        if bounds is not None:
            ranges[name] = bounds
    transformed = 0
    for name in channels:
        try:
            values = source.channel_values(name)
        except ChannelNotFound as exc:
            log.warning(f"Transform skipped: {exc}")
            continue
        frame[name] = arcsinh_transform(values, cofactor)
        transformed += 1
        if name in ranges:
            low, high = ranges[name]
            ranges[name] = (float(np.arcsinh(low / cofactor)), float(np.arcsinh(high / cofactor)))
    log.info(f"Arcsinh transform (cofactor={cofactor:g}) applied to {transformed} channels")
    return FrameEventSource(frame, ranges=ranges)


__all__ = ["DEFAULT_COFACTOR", "arcsinh_transform", "transform_channels"]
