"""Shared pytest fixtures for flowqc tests.

Event tables are synthetic: a stable fluorescence channel drawn from a normal
distribution, optionally with a block of saturated events in the middle, plus
scatter and time columns so channel classification can be exercised.
"""

import numpy as np
import pandas as pd
import pytest

from flowqc.qc.models import ChannelPeakSet, Peak, QCMode, QCSettings
from flowqc.sources import FrameEventSource

N_EVENTS = 10_000
SPIKE = slice(5000, 5100)


def _base_frame(rng: np.random.Generator, n_events: int = N_EVENTS) -> pd.DataFrame:
    height = rng.normal(50_000.0, 2_000.0, n_events)
    return pd.DataFrame(
        {
            "FSC-A": height * 2.0 + rng.normal(0.0, 500.0, n_events),
            "FSC-H": height,
            "SSC-A": rng.normal(30_000.0, 3_000.0, n_events),
            "FL1-A": rng.normal(100.0, 10.0, n_events),
            "Time": np.arange(n_events, dtype=float),
        }
    )


@pytest.fixture
def rng() -> np.random.Generator:
    """Deterministic random generator."""
    return np.random.default_rng(42)


@pytest.fixture
def stable_frame(rng) -> pd.DataFrame:
    """Event table without acquisition artefacts."""
    return _base_frame(rng)


@pytest.fixture
def spike_frame(rng) -> pd.DataFrame:
    """Event table whose FL1-A channel jumps to 1000 for events 5000-5099."""
    frame = _base_frame(rng)
    frame.loc[SPIKE.start : SPIKE.stop - 1, "FL1-A"] = 1000.0
    return frame


@pytest.fixture
def spike_source(spike_frame) -> FrameEventSource:
    return FrameEventSource.from_frame(spike_frame)


@pytest.fixture
def stable_source(stable_frame) -> FrameEventSource:
    return FrameEventSource.from_frame(stable_frame)


@pytest.fixture
def mad_settings() -> QCSettings:
    return QCSettings(channels=["FL1-A"], mode=QCMode.MAD, seed=1)


@pytest.fixture
def make_peak_set():
    """Factory for a single-cluster peak set with one value per window."""

    def _make(channel: str, values_per_window, cluster: int = 1) -> ChannelPeakSet:
        peaks = tuple(Peak(window=i, value=float(v), cluster=cluster) for i, v in enumerate(values_per_window))
        return ChannelPeakSet(channel=channel, peaks=peaks, n_windows=len(values_per_window))

    return _make
