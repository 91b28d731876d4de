"""Isolation forest over the window-level peak feature matrix.

Each tree is grown on a random subsample of windows by splitting on a random
feature at a random threshold until a node is isolated, has no spread left or
reaches ``max_depth``. Windows that are isolated after few splits are
anomalous; the average path length over the ensemble is normalised with the
expected path length of an unsuccessful BST search, ``c(n)``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import numpy as np
from joblib import Parallel, delayed
from numpy.random import SeedSequence, default_rng

from ..exceptions import InsufficientData, NoPeaksDetected
from .models import ChannelPeakSet, FeatureMatrix, IsolationForestResult, QCSettings
from .peaks import build_feature_matrix

EULER_GAMMA = 0.5772156649015329


@dataclass
class Leaf:
    size: int


@dataclass
class Node:
    feature: int
    threshold: float
    left: "IsolationTree"
    right: "IsolationTree"


IsolationTree = Union[Leaf, Node]


def average_path_length(n: int) -> float:
    """c(n): average path length of an unsuccessful search in a BST of n nodes."""
    if n <= 1:
        return 0.0
    return 2.0 * (math.log(n - 1) + EULER_GAMMA) - 2.0 * (n - 1) / n


def build_tree(data: np.ndarray, rng: np.random.Generator, max_depth: int, depth: int = 0) -> IsolationTree:
    """Grow one isolation tree over ``data`` (rows = windows).

    The split feature is drawn uniformly among the features that still have
    spread in this node, not among all features. A node only becomes a leaf on
    zero spread when every feature is constant. This deliberately departs from
    drawing any feature and stopping when the drawn one is constant, which would
    cut paths short on matrices with constant back-filled columns.
    """
    n_samples = data.shape[0]
    if depth >= max_depth or n_samples <= 1:
        return Leaf(n_samples)
    lows = data.min(axis=0)
    highs = data.max(axis=0)
    candidates = np.flatnonzero(highs > lows)
    if candidates.size == 0:
        return Leaf(n_samples)
    feature = int(candidates[rng.integers(candidates.size)])
    threshold = float(rng.uniform(lows[feature], highs[feature]))
    goes_left = data[:, feature] < threshold
    return Node(
        feature=feature,
        threshold=threshold,
        left=build_tree(data[goes_left], rng, max_depth, depth + 1),
        right=build_tree(data[~goes_left], rng, max_depth, depth + 1),
    )


def path_lengths(tree: IsolationTree, data: np.ndarray) -> np.ndarray:
    """Path length of every row: edges traversed plus c(size) of the reached leaf."""
    lengths = np.zeros(data.shape[0])

    def _descend(node: IsolationTree, rows: np.ndarray, depth: int) -> None:
        if rows.size == 0:
            return
        if isinstance(node, Leaf):
            lengths[rows] = depth + average_path_length(node.size)
            return
        goes_left = data[rows, node.feature] < node.threshold
        _descend(node.left, rows[goes_left], depth + 1)
        _descend(node.right, rows[~goes_left], depth + 1)

    _descend(tree, np.arange(data.shape[0]), 0)
    return lengths


def _grow_and_score(data: np.ndarray, seed: SeedSequence, sample_size: int, max_depth: int) -> np.ndarray:
    rng = default_rng(seed)
    sample = rng.choice(data.shape[0], size=sample_size, replace=False)
    tree = build_tree(data[sample], rng, max_depth)
    return path_lengths(tree, data)


def isolation_scores(
    data: np.ndarray,
    *,
    n_trees: int = 100,
    sample_size: int = 256,
    max_depth: int = 10,
    seed: Optional[int] = None,
    n_jobs: int = 1,
) -> np.ndarray:
    """Anomaly score ``2 ** (-mean_path / c(sample_size))`` for every row of ``data``."""
    matrix = np.asarray(data, dtype=float)
    if matrix.ndim == 1:
        matrix = matrix[:, None]
    n_rows = matrix.shape[0]
    if n_rows < 2:
        raise InsufficientData(2, n_rows)
    effective = min(sample_size, n_rows)
    # One child seed per tree keeps results independent of n_jobs.
    seeds = SeedSequence(seed).spawn(n_trees)
    if n_jobs == 1:
        per_tree: List[np.ndarray] = [_grow_and_score(matrix, s, effective, max_depth) for s in seeds]
    else:
        per_tree = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_grow_and_score)(matrix, s, effective, max_depth) for s in seeds
        )
    mean_path = np.mean(np.vstack(per_tree), axis=0)
    return np.power(2.0, -mean_path / average_path_length(effective))


def isolation_forest_outliers(
    features: FeatureMatrix | np.ndarray,
    settings: QCSettings,
) -> IsolationForestResult:
    matrix = features.values if isinstance(features, FeatureMatrix) else np.asarray(features, dtype=float)
    if matrix.ndim == 1:
        matrix = matrix[:, None]
    n_windows = matrix.shape[0]
    if n_windows < settings.force_it:
        raise InsufficientData(settings.force_it, n_windows)
    if matrix.shape[1] == 0:
        raise NoPeaksDetected("No retained peak clusters to build the isolation forest on")
    scores = isolation_scores(
        matrix,
        n_trees=settings.n_trees,
        sample_size=settings.sample_size,
        max_depth=settings.max_depth,
        seed=settings.seed,
        n_jobs=settings.n_jobs,
    )
    return IsolationForestResult(
        outliers=scores > settings.it_limit,
        scores=scores,
        n_trees=settings.n_trees,
        sample_size=min(settings.sample_size, n_windows),
    )


def detect_isolation_outliers(peak_sets: Dict[str, ChannelPeakSet], settings: QCSettings) -> IsolationForestResult:
    if not peak_sets:
        raise NoPeaksDetected()
    n_windows = max(peak_set.n_windows for peak_set in peak_sets.values())
    if n_windows < settings.force_it:
        raise InsufficientData(settings.force_it, n_windows)
    return isolation_forest_outliers(build_feature_matrix(peak_sets), settings)


__all__ = [
    "EULER_GAMMA",
    "Leaf",
    "Node",
    "IsolationTree",
    "average_path_length",
    "build_tree",
    "path_lengths",
    "isolation_scores",
    "isolation_forest_outliers",
    "detect_isolation_outliers",
]
