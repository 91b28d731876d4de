from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
import pandas as pd
from pandera.errors import SchemaError, SchemaErrors

from .exceptions import ChannelNotFound, EventTableError, LengthMismatch
from .schemas import EventTableSchema

SCATTER_AND_TIME_MARKERS = ("FSC", "SSC", "TIME")


@runtime_checkable
class EventSource(Protocol):
    """Read access to the channel columns of an ordered event stream."""

    def event_count(self) -> int: ...

    def channel_names(self) -> List[str]: ...

    def channel_values(self, name: str) -> np.ndarray: ...

    def fluorescence_channel_names(self) -> List[str]: ...

    def channel_range(self, name: str) -> Optional[Tuple[float, float]]: ...

    def apply_mask(self, mask: Sequence[bool]) -> "EventSource": ...


def is_fluorescence_channel(name: str) -> bool:
    upper = name.upper()
    return not any(marker in upper for marker in SCATTER_AND_TIME_MARKERS)


class FrameEventSource:
    """Event source backed by a pandas DataFrame with one column per channel."""

    def __init__(self, frame: pd.DataFrame, ranges: Optional[Mapping[str, Tuple[float, float]]] = None):
        self._frame = frame.reset_index(drop=True)
        self._ranges: Dict[str, Tuple[float, float]] = {k: (float(v[0]), float(v[1])) for k, v in (ranges or {}).items()}

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame

    def event_count(self) -> int:
        return int(len(self._frame))

    def channel_names(self) -> List[str]:
        return [str(column) for column in self._frame.columns]

    def channel_values(self, name: str) -> np.ndarray:
        if name not in self._frame.columns:
            raise ChannelNotFound(name, self.channel_names())
        return self._frame[name].to_numpy(dtype=float)

    def fluorescence_channel_names(self) -> List[str]:
        return [name for name in self.channel_names() if is_fluorescence_channel(name)]

    def channel_range(self, name: str) -> Optional[Tuple[float, float]]:
        return self._ranges.get(name)

    def apply_mask(self, mask: Sequence[bool]) -> "FrameEventSource":
        keep = np.asarray(mask, dtype=bool)
        if keep.size != self.event_count():
            raise LengthMismatch(self.event_count(), int(keep.size))
        return FrameEventSource(self._frame.loc[keep], ranges=self._ranges)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        channels: Optional[Sequence[str]] = None,
        ranges: Optional[Mapping[str, Tuple[float, float]]] = None,
    ) -> "FrameEventSource":
        """Validate numeric channel columns and wrap a copy of ``frame``."""
        if not isinstance(frame, pd.DataFrame):
            raise EventTableError(f"Expected pandas.DataFrame, got {type(frame)!r}")
        columns = list(channels) if channels is not None else [str(c) for c in frame.columns]
        missing = [c for c in columns if c not in frame.columns]
        if missing:
            raise ChannelNotFound(missing[0], [str(c) for c in frame.columns])
        try:
            validated = EventTableSchema.create(columns).validate(frame.copy())
        except (SchemaError, SchemaErrors) as exc:
            raise EventTableError(f"Event table failed validation: {exc}") from exc
        return cls(validated[columns], ranges=ranges)

    @classmethod
    def from_csv(cls, path: Path | str, channels: Optional[Sequence[str]] = None, **kwargs) -> "FrameEventSource":
        path = Path(path)
        if not path.exists():
            raise EventTableError(f"Event table not found: {path}")
        return cls.from_frame(pd.read_csv(path, **kwargs), channels=channels)

    @classmethod
    def from_parquet(cls, path: Path | str, channels: Optional[Sequence[str]] = None) -> "FrameEventSource":
        path = Path(path)
        if not path.exists():
            raise EventTableError(f"Event table not found: {path}")
        return cls.from_frame(pd.read_parquet(path), channels=channels)

    @classmethod
    def from_path(cls, path: Path | str, channels: Optional[Sequence[str]] = None) -> "FrameEventSource":
        suffix = Path(path).suffix.lower()
        if suffix in (".parquet", ".pq"):
            return cls.from_parquet(path, channels=channels)
        if suffix in (".csv", ".txt"):
            return cls.from_csv(path, channels=channels)
        if suffix == ".tsv":
            return cls.from_csv(path, channels=channels, sep="\t")
        raise EventTableError(f"Unsupported event table format: {suffix or path}")


__all__ = ["EventSource", "FrameEventSource", "is_fluorescence_channel"]
