from __future__ import annotations

import numpy as np

from ..logger import get_qc_logger
from .models import DoubletResult
from .stats import median_mad


def remove_doublets(
    source,
    area_channel: str = "FSC-A",
    height_channel: str = "FSC-H",
    *,
    nmad: float = 4.0,
    b: float = 0.0,
    log=None,
) -> DoubletResult:
    """Keep events whose area/height ratio stays below ``median + nmad * MAD``."""
    log = log or get_qc_logger(stage="doublets")
    area = np.asarray(source.channel_values(area_channel), dtype=float)
    height = np.asarray(source.channel_values(height_channel), dtype=float)
    ratios = area / (1e-10 + height + b)
    center, mad = median_mad(ratios)
    threshold = center + nmad * mad
    keep = ratios < threshold
    percentage = 100.0 * float((~keep).sum()) / keep.size if keep.size else 0.0
    log.info(f"Doublet removal ({area_channel}/{height_channel}) discarded {percentage:.2f}% of events")
    return DoubletResult(
        keep_mask=keep,
        ratios=ratios,
        threshold=float(threshold),
        median=center,
        mad=mad,
        percentage_removed=percentage,
    )


__all__ = ["remove_doublets"]
