"""Tests for mask and report writers."""

import json

import numpy as np
import pandas as pd
import pytest

from flowqc.export import build_report, mask_frame, write_mask_csv, write_peaks_csv, write_report_json
from flowqc.qc.pipeline import run_quality_control


class TestMaskFrame:
    def test_numeric_format(self):
        frame = mask_frame(np.array([True, False, True]))
        assert frame.columns.tolist() == ["PeacoQC"]
        assert frame["PeacoQC"].tolist() == [2000, 6000, 2000]

    def test_boolean_format(self):
        frame = mask_frame(np.array([True, False]), mask_format="boolean", column_name="keep")
        assert frame["keep"].tolist() == [1, 0]

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            mask_frame(np.array([True]), mask_format="bits")

    def test_write_csv(self, tmp_path):
        path = write_mask_csv(np.array([True, False]), tmp_path / "out" / "mask.csv", mask_format="boolean")
        assert pd.read_csv(path)["PeacoQC"].tolist() == [1, 0]


class TestReport:
    def test_report_round_trip(self, spike_source, mad_settings, tmp_path):
        result = run_quality_control(spike_source, mad_settings)
        report = build_report(result, source_name="spike.csv", extra={"note": "synthetic"})
        path = write_report_json(report, tmp_path / "report.json")
        loaded = json.loads(path.read_text(encoding="utf-8"))
        assert loaded["source"] == "spike.csv"
        assert loaded["note"] == "synthetic"
        assert loaded["n_windows"] == 40
        assert loaded["it_percentage"] is None
        assert "FL1-A" in loaded["clusters"]

    def test_peaks_csv(self, spike_source, mad_settings, tmp_path):
        result = run_quality_control(spike_source, mad_settings)
        table = pd.read_csv(write_peaks_csv(result, tmp_path / "peaks.csv"))
        assert table.columns.tolist() == ["channel", "window", "value", "cluster"]
        assert set(table["channel"]) == {"FL1-A"}
        assert table["window"].between(0, 38).all()
