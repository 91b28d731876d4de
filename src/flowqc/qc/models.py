from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


class QCMode(str, Enum):
    BOTH = "both"
    ISOLATION_FOREST = "isolation_forest"
    MAD = "mad"
    NONE = "none"

    @property
    def runs_isolation_forest(self) -> bool:
        return self in (QCMode.BOTH, QCMode.ISOLATION_FOREST)

    @property
    def runs_mad(self) -> bool:
        return self in (QCMode.BOTH, QCMode.MAD)

    @classmethod
    def parse(cls, value: "QCMode | str") -> "QCMode":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        aliases = {"it": "isolation_forest", "isolationtree": "isolation_forest", "all": "both"}
        return cls(aliases.get(key, key))


class Window(NamedTuple):
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Peak:
    window: int
    value: float
    cluster: int = 0  # 0 = unassigned


@dataclass(frozen=True)
class ChannelPeakSet:
    """Clustered peaks of one channel across every window."""

    channel: str
    peaks: Tuple[Peak, ...]
    n_windows: int

    @property
    def cluster_ids(self) -> List[int]:
        return sorted({peak.cluster for peak in self.peaks})

    def cluster_coverage(self) -> Dict[int, int]:
        """Number of distinct windows holding at least one peak of each cluster."""
        windows: Dict[int, set] = {}
        for peak in self.peaks:
            windows.setdefault(peak.cluster, set()).add(peak.window)
        return {cluster: len(members) for cluster, members in sorted(windows.items())}

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "channel": [self.channel] * len(self.peaks),
                "window": [p.window for p in self.peaks],
                "value": [p.value for p in self.peaks],
                "cluster": [p.cluster for p in self.peaks],
            }
        )


@dataclass
class FeatureMatrix:
    values: np.ndarray  # windows x features
    columns: List[Tuple[str, int]]

    @property
    def n_windows(self) -> int:
        return int(self.values.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.values.shape[1]) if self.values.ndim == 2 else 0

    @property
    def column_names(self) -> List[str]:
        return [f"{channel}_cluster_{cluster}" for channel, cluster in self.columns]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.values, columns=self.column_names)


@dataclass
class QCSettings:
    channels: List[str] = field(default_factory=list)
    mode: QCMode = QCMode.BOTH
    min_window_events: int = 150
    max_windows: int = 500
    window_size: Optional[int] = None
    mad_threshold: float = 6.0
    it_limit: float = 0.6
    consecutive_windows: int = 5
    remove_zeros: bool = False
    peak_removal: float = 1.0 / 3.0
    min_cluster_coverage_pct: float = 10.0
    force_it: int = 150
    smoothing: float = 0.5
    n_trees: int = 100
    sample_size: int = 256
    max_depth: int = 10
    seed: Optional[int] = None
    n_jobs: int = 1


@dataclass
class IsolationForestResult:
    outliers: np.ndarray
    scores: np.ndarray
    n_trees: int
    sample_size: int

    @property
    def n_outliers(self) -> int:
        return int(self.outliers.sum())


@dataclass
class MADResult:
    outliers: np.ndarray
    contribution: Dict[str, float]  # channel -> % windows flagged

    @property
    def n_outliers(self) -> int:
        return int(self.outliers.sum())


@dataclass
class QCResult:
    keep_mask: np.ndarray
    percentage_removed: float
    it_percentage: Optional[float]
    mad_percentage: Optional[float]
    consecutive_percentage: float
    peaks: Dict[str, ChannelPeakSet]
    n_windows: int
    window_size: int
    window_mask: np.ndarray
    windows: List[Window] = field(default_factory=list)
    it_scores: Optional[np.ndarray] = None
    mad_contribution: Dict[str, float] = field(default_factory=dict)

    @property
    def n_events(self) -> int:
        return int(self.keep_mask.size)

    @property
    def n_removed(self) -> int:
        return int((~self.keep_mask).sum())

    def summary(self) -> Dict[str, object]:
        return {
            "n_events": self.n_events,
            "n_removed": self.n_removed,
            "percentage_removed": round(self.percentage_removed, 4),
            "it_percentage": None if self.it_percentage is None else round(self.it_percentage, 4),
            "mad_percentage": None if self.mad_percentage is None else round(self.mad_percentage, 4),
            "consecutive_percentage": round(self.consecutive_percentage, 4),
            "n_windows": self.n_windows,
            "window_size": self.window_size,
            "bad_windows": int(self.window_mask.sum()),
            "channels": sorted(self.peaks),
            "mad_contribution": {k: round(v, 4) for k, v in self.mad_contribution.items()},
        }


@dataclass
class MarginResult:
    keep_mask: np.ndarray
    counts: Dict[str, Tuple[int, int]]  # channel -> (below min, above max)
    percentage_removed: float


@dataclass
class DoubletResult:
    keep_mask: np.ndarray
    ratios: np.ndarray
    threshold: float
    median: float
    mad: float
    percentage_removed: float


@dataclass
class MonotonicResult:
    increasing: List[str]
    decreasing: List[str]
    both: List[str]
    correlations: Dict[str, float]

    @property
    def has_issues(self) -> bool:
        return bool(self.increasing or self.decreasing)


def channel_sequence(channels: Sequence[str] | str) -> List[str]:
    if isinstance(channels, str):
        return [channels]
    return [str(c) for c in channels]


__all__ = [
    "QCMode",
    "Window",
    "Peak",
    "ChannelPeakSet",
    "FeatureMatrix",
    "QCSettings",
    "IsolationForestResult",
    "MADResult",
    "QCResult",
    "MarginResult",
    "DoubletResult",
    "MonotonicResult",
    "channel_sequence",
]
