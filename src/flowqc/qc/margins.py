from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..exceptions import ConfigError
from ..logger import get_qc_logger
from .models import MarginResult

DEFAULT_MAX_RANGE = 262144.0
MARGIN_WARNING_PCT = 10.0


def _channel_range(source, channel: str, values: np.ndarray, overrides: Optional[Mapping[str, Tuple[float, float]]]) -> Tuple[float, float]:
    if overrides and channel in overrides:
        low, high = overrides[channel]
        return float(low), float(high)
    getter = getattr(source, "channel_range", None)
    declared = getter(channel) if getter is not None else None
    if declared is not None:
        return float(declared[0]), float(declared[1])
    return min(float(values.min()), 0.0), max(float(values.max()), DEFAULT_MAX_RANGE)


def remove_margins(
    source,
    channels: Sequence[str],
    *,
    ranges: Optional[Mapping[str, Tuple[float, float]]] = None,
    remove_min: Optional[Sequence[str]] = None,
    remove_max: Optional[Sequence[str]] = None,
    log=None,
) -> MarginResult:
    """Discard events sitting on the lower or upper limit of the detector range."""
    log = log or get_qc_logger(stage="margins")
    if not channels:
        raise ConfigError("No channels specified for margin removal")
    remove_min = list(channels) if remove_min is None else list(remove_min)
    remove_max = list(channels) if remove_max is None else list(remove_max)

    n_events = source.event_count()
    keep = np.ones(n_events, dtype=bool)
    counts: Dict[str, Tuple[int, int]] = {}
    for channel in channels:
        values = np.asarray(source.channel_values(channel), dtype=float)
        min_range, max_range = _channel_range(source, channel, values, ranges)
        low_removed = high_removed = 0
        if channel in remove_min:
            threshold = max(min(min_range, 0.0), float(values.min()))
            low = values <= threshold
            low_removed = int(low.sum())
            keep &= ~low
        if channel in remove_max:
            threshold = min(max_range, float(values.max()))
            high = (values > threshold) & keep
            high_removed = int(high.sum())
            keep &= ~high
        counts[channel] = (low_removed, high_removed)

    percentage = 100.0 * float((~keep).sum()) / n_events if n_events else 0.0
    if percentage > MARGIN_WARNING_PCT:
        log.warning(f"More than {percentage:.2f}% of events removed as margin events. This should be verified.")
    else:
        log.info(f"Margin removal discarded {percentage:.2f}% of events")
    return MarginResult(keep_mask=keep, counts=counts, percentage_removed=percentage)


__all__ = ["remove_margins"]
