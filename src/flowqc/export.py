"""Writers for QC masks and reports; the QC core itself never touches disk."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from .qc.models import QCResult


def mask_frame(
    keep_mask: np.ndarray,
    *,
    mask_format: str = "numeric",
    column_name: str = "PeacoQC",
    good_value: int = 2000,
    bad_value: int = 6000,
) -> pd.DataFrame:
    """One row per event: ``1/0`` in boolean format, ``good_value/bad_value`` in numeric format."""
    keep = np.asarray(keep_mask, dtype=bool)
    if mask_format == "boolean":
        values = keep.astype(int)
    elif mask_format == "numeric":
        values = np.where(keep, good_value, bad_value)
    else:
        raise ValueError(f"Unknown mask format '{mask_format}', expected 'boolean' or 'numeric'")
    return pd.DataFrame({column_name: values})


def write_mask_csv(keep_mask: np.ndarray, path: Path, **kwargs: Any) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    mask_frame(keep_mask, **kwargs).to_csv(path, index=False)
    return path


def build_report(result: QCResult, *, source_name: Optional[str] = None, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "source": source_name,
        **result.summary(),
        "clusters": {
            channel: {str(k): v for k, v in peak_set.cluster_coverage().items()}
            for channel, peak_set in sorted(result.peaks.items())
        },
    }
    if extra:
        report.update(extra)
    return report


def write_report_json(report: Dict[str, Any], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    return path


def write_peaks_csv(result: QCResult, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frames = [peak_set.to_frame() for _, peak_set in sorted(result.peaks.items())]
    table = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=["channel", "window", "value", "cluster"])
    table.to_csv(path, index=False)
    return path


__all__ = ["mask_frame", "write_mask_csv", "build_report", "write_report_json", "write_peaks_csv"]
