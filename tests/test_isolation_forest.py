"""Tests for the isolation forest scorer."""

import math

import numpy as np
import pytest

from flowqc.exceptions import InsufficientData, NoPeaksDetected
from flowqc.qc.isolation_forest import (
    EULER_GAMMA,
    Leaf,
    Node,
    average_path_length,
    build_tree,
    detect_isolation_outliers,
    isolation_forest_outliers,
    isolation_scores,
    path_lengths,
)
from flowqc.qc.models import QCSettings


def _depth(tree) -> int:
    if isinstance(tree, Leaf):
        return 0
    return 1 + max(_depth(tree.left), _depth(tree.right))


def _leaf_sizes(tree) -> int:
    if isinstance(tree, Leaf):
        return tree.size
    return _leaf_sizes(tree.left) + _leaf_sizes(tree.right)


class TestAveragePathLength:
    """Test c(n)."""

    def test_trivial_sizes(self):
        assert average_path_length(0) == 0.0
        assert average_path_length(1) == 0.0

    def test_closed_form(self):
        assert average_path_length(2) == pytest.approx(2 * EULER_GAMMA - 1.0)
        expected = 2 * (math.log(255) + EULER_GAMMA) - 2 * 255 / 256
        assert average_path_length(256) == pytest.approx(expected)


class TestTrees:
    """Test tree growth and traversal."""

    def test_tree_respects_max_depth(self, rng):
        data = rng.normal(size=(200, 3))
        tree = build_tree(data, rng, max_depth=4)
        assert _depth(tree) <= 4
        assert _leaf_sizes(tree) == 200

    def test_constant_data_is_a_leaf(self, rng):
        tree = build_tree(np.ones((10, 2)), rng, max_depth=10)
        assert tree == Leaf(10)

    def test_constant_feature_is_never_split(self, rng):
        """A constant column does not end the node; the varying column is split instead."""
        data = np.column_stack([np.full(64, 3.0), np.arange(64, dtype=float)])
        tree = build_tree(data, rng, max_depth=3)
        assert isinstance(tree, Node)

        def _features(node):
            if isinstance(node, Leaf):
                return set()
            return {node.feature} | _features(node.left) | _features(node.right)

        assert _features(tree) == {1}

    def test_single_sample_is_a_leaf(self, rng):
        assert build_tree(np.array([[1.0, 2.0]]), rng, max_depth=10) == Leaf(1)

    def test_split_sends_smaller_values_left(self):
        tree = Node(feature=0, threshold=5.0, left=Leaf(1), right=Node(0, 8.0, Leaf(3), Leaf(1)))
        lengths = path_lengths(tree, np.array([[1.0], [6.0], [9.0]]))
        np.testing.assert_allclose(lengths, [1.0, 2.0 + average_path_length(3), 2.0])


class TestIsolationScores:
    """Test window scoring and outlier flags."""

    @pytest.fixture
    def outlier_features(self):
        values = np.ones((20, 1))
        values[10, 0] = 10.0
        return values

    def test_outlier_window_is_flagged(self, outlier_features):
        settings = QCSettings(channels=["A"], force_it=10, seed=3)
        result = isolation_forest_outliers(outlier_features, settings)
        assert result.scores[10] > 0.6
        assert result.outliers[10]
        assert result.n_outliers == 1
        assert result.sample_size == 20

    def test_scores_match_closed_form(self, outlier_features):
        """Every tree isolates the outlier at the root split."""
        scores = isolation_scores(outlier_features, n_trees=10, seed=0)
        c20 = average_path_length(20)
        assert scores[10] == pytest.approx(2 ** (-1.0 / c20))
        assert scores[0] == pytest.approx(2 ** (-(1.0 + average_path_length(19)) / c20))

    def test_seed_reproducibility(self, rng):
        data = rng.normal(size=(60, 3))
        first = isolation_scores(data, n_trees=25, seed=11)
        second = isolation_scores(data, n_trees=25, seed=11)
        np.testing.assert_array_equal(first, second)

    def test_parallel_matches_sequential(self, rng):
        data = rng.normal(size=(60, 2))
        sequential = isolation_scores(data, n_trees=20, seed=5, n_jobs=1)
        parallel = isolation_scores(data, n_trees=20, seed=5, n_jobs=2)
        np.testing.assert_allclose(sequential, parallel)

    def test_scores_in_unit_interval(self, rng):
        scores = isolation_scores(rng.normal(size=(100, 2)), n_trees=30, seed=2)
        assert np.all((scores > 0.0) & (scores < 1.0))

    def test_too_few_windows_raises(self, outlier_features):
        settings = QCSettings(channels=["A"], force_it=150)
        with pytest.raises(InsufficientData) as excinfo:
            isolation_forest_outliers(outlier_features, settings)
        assert excinfo.value.required == 150
        assert excinfo.value.actual == 20

    def test_no_features_raises(self):
        settings = QCSettings(channels=["A"], force_it=5)
        with pytest.raises(NoPeaksDetected):
            isolation_forest_outliers(np.empty((20, 0)), settings)

    def test_detect_from_peak_sets(self, make_peak_set):
        values = [1.0] * 20
        values[10] = 10.0
        settings = QCSettings(channels=["A"], force_it=20, seed=9)
        result = detect_isolation_outliers({"A": make_peak_set("A", values)}, settings)
        assert np.flatnonzero(result.outliers).tolist() == [10]

    def test_detect_without_peak_sets_raises(self):
        with pytest.raises(NoPeaksDetected):
            detect_isolation_outliers({}, QCSettings(channels=["A"]))
