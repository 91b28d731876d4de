"""Tests for peak extraction, clustering and the feature matrix."""

import numpy as np
import pytest

from flowqc.qc.models import ChannelPeakSet, Peak, QCSettings
from flowqc.qc.peaks import (
    assign_clusters,
    build_feature_matrix,
    cluster_centers,
    cluster_channel_peaks,
    determine_peaks_all_channels,
    drop_sparse_clusters,
    extract_window_peaks,
    reference_peak_count,
)
from flowqc.qc.windows import create_windows


class TestReferencePeakCount:
    """Test selection of the reference number of peaks."""

    def test_most_frequent_count(self):
        per_window = [[1.0], [1.0], [1.0, 5.0], [1.0, 5.0], [1.0, 5.0], []]
        assert reference_peak_count(per_window, 10.0) == 2

    def test_tie_prefers_larger_count(self):
        per_window = [[1.0], [1.0], [1.0, 5.0], [1.0, 5.0]]
        assert reference_peak_count(per_window, 10.0) == 2

    def test_coverage_minimum(self):
        """No count reaches half of the windows."""
        per_window = [[1.0]] * 4 + [[1.0, 2.0]] * 3 + [[1.0, 2.0, 3.0]] * 3
        assert reference_peak_count(per_window, 50.0) is None

    def test_empty_windows_are_not_a_count(self):
        assert reference_peak_count([[], [], [], [1.0]], 10.0) == 1


class TestClustering:
    """Test nearest-center cluster assignment."""

    def test_centers_are_per_index_medians(self):
        per_window = [[1.0, 10.0], [2.0, 12.0], [3.0, 11.0], [50.0]]
        assert cluster_centers(per_window, 2) == [2.0, 11.0]

    def test_all_peaks_assigned_to_nearest_center(self):
        per_window = [[1.0, 10.0], [2.0], [9.0]]
        peaks = assign_clusters(per_window, [1.0, 10.0])
        assert [p.cluster for p in peaks] == [1, 2, 1, 2]
        assert [p.window for p in peaks] == [0, 0, 1, 2]

    def test_tie_goes_to_lower_cluster(self):
        peaks = assign_clusters([[1.0]], [0.0, 2.0])
        assert peaks[0].cluster == 1

    def test_no_centers_assigns_single_cluster(self):
        peaks = assign_clusters([[1.0, 2.0], [3.0]], [])
        assert {p.cluster for p in peaks} == {1}

    def test_sparse_clusters_are_dropped(self):
        peaks = [Peak(0, 1.0, 1), Peak(1, 1.0, 1), Peak(2, 1.0, 1), Peak(0, 9.0, 2)]
        kept = drop_sparse_clusters(peaks, n_windows=4)
        assert {p.cluster for p in kept} == {1}

    def test_cluster_at_exactly_half_is_kept(self):
        peaks = [Peak(0, 1.0, 1), Peak(1, 1.0, 1)]
        assert len(drop_sparse_clusters(peaks, n_windows=4)) == 2

    def test_channel_clustering(self):
        per_window = [[1.0, 10.0]] * 6 + [[1.5]] * 2 + [[30.0]]
        peak_set = cluster_channel_peaks("FL1-A", per_window, min_coverage_pct=10.0)
        assert peak_set.cluster_ids == [1, 2]
        # 30.0 joins the upper cluster; 1.5 joins the lower one.
        assert peak_set.cluster_coverage() == {1: 8, 2: 7}

    def test_no_reference_windows_single_cluster(self):
        per_window = [[1.0], [1.0, 2.0], [1.0, 2.0, 3.0], [4.0, 5.0, 6.0, 7.0]]
        peak_set = cluster_channel_peaks("FL1-A", per_window, min_coverage_pct=50.0)
        assert peak_set.cluster_ids == [1]
        assert len(peak_set.peaks) == 10

    def test_channel_without_peaks(self):
        assert cluster_channel_peaks("FL1-A", [[], [], []]) is None


class TestFeatureMatrix:
    """Test the window x (channel, cluster) feature matrix."""

    def test_columns_sorted_by_channel_then_cluster(self):
        b = ChannelPeakSet("B", (Peak(0, 5.0, 2), Peak(1, 6.0, 2), Peak(0, 1.0, 1), Peak(1, 2.0, 1)), 2)
        a = ChannelPeakSet("A", (Peak(0, 3.0, 1), Peak(1, 4.0, 1)), 2)
        features = build_feature_matrix({"B": b, "A": a})
        assert features.columns == [("A", 1), ("B", 1), ("B", 2)]
        assert features.column_names == ["A_cluster_1", "B_cluster_1", "B_cluster_2"]
        np.testing.assert_array_equal(features.values, [[3.0, 1.0, 5.0], [4.0, 2.0, 6.0]])

    def test_missing_windows_backfilled_with_cluster_median(self):
        peak_set = ChannelPeakSet("A", (Peak(0, 1.0, 1), Peak(1, 2.0, 1), Peak(2, 3.0, 1)), 4)
        features = build_feature_matrix([peak_set])
        np.testing.assert_array_equal(features.values[:, 0], [1.0, 2.0, 3.0, 2.0])

    def test_multiple_peaks_in_one_window_use_median(self):
        peak_set = ChannelPeakSet("A", (Peak(0, 1.0, 1), Peak(0, 3.0, 1), Peak(1, 5.0, 1)), 2)
        features = build_feature_matrix([peak_set])
        np.testing.assert_array_equal(features.values[:, 0], [2.0, 5.0])

    def test_empty_input(self):
        features = build_feature_matrix({})
        assert features.n_features == 0


class TestChannelExtraction:
    """Test peak extraction against an event source."""

    def test_extract_window_peaks(self, spike_source):
        windows = create_windows(spike_source.event_count(), 500)
        per_window = extract_window_peaks(spike_source.channel_values("FL1-A"), windows)
        assert len(per_window) == len(windows)
        # Windows 19 and 20 contain the block of saturated events.
        assert any(abs(p - 1000.0) < 10.0 for p in per_window[19])
        assert all(p < 200.0 for p in per_window[0])

    def test_sparse_windows_yield_no_peaks(self):
        values = np.zeros(10)
        windows = create_windows(10, 4)
        per_window = extract_window_peaks(values, windows, remove_zeros=True)
        assert per_window == [[]] * len(windows)

    def test_missing_channel_is_skipped(self, spike_source):
        windows = create_windows(spike_source.event_count(), 500)
        settings = QCSettings(channels=["FL1-A", "missing"])
        peaks = determine_peaks_all_channels(spike_source, windows, settings)
        assert list(peaks) == ["FL1-A"]
        assert peaks["FL1-A"].n_windows == len(windows)

    def test_parallel_matches_sequential(self, spike_source):
        windows = create_windows(spike_source.event_count(), 500)
        sequential = determine_peaks_all_channels(spike_source, windows, QCSettings(channels=["FL1-A", "SSC-A"]))
        parallel = determine_peaks_all_channels(spike_source, windows, QCSettings(channels=["FL1-A", "SSC-A"], n_jobs=2))
        assert sequential == parallel
