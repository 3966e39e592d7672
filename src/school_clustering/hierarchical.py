"""
Agglomerative Hierarchical Clustering

This module builds merge trees (dendrograms) from a distance matrix using
single, complete or Ward linkage. Inter-cluster dissimilarities are updated
with the Lance-Williams recurrence after every merge instead of being
recomputed from raw distances.

Cluster ids follow the classical convention: observations are 1..n and the
i-th merge creates cluster n + i.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from .distance import DistanceMatrix
from .exceptions import InvalidInputError, InvalidKError

logger = logging.getLogger(__name__)

SUPPORTED_LINKAGES = ("single", "complete", "ward")


@dataclass(frozen=True)
class MergeEvent:
    """
    A single merge in the dendrogram.

    Attributes:
        left_id: Smaller id of the two merged clusters
        right_id: Larger id of the two merged clusters
        height: Linkage dissimilarity at merge time
        new_id: Id of the cluster created by the merge
        size: Number of observations in the new cluster
    """
    left_id: int
    right_id: int
    height: float
    new_id: int
    size: int


@dataclass(frozen=True)
class MergeTree:
    """
    Immutable merge history produced by LinkageEngine.

    Attributes:
        n_observations: Number of original observations
        method: Linkage criterion used to build the tree
        merges: Tuple of n - 1 MergeEvent in merge order
    """
    n_observations: int
    method: str
    merges: Tuple[MergeEvent, ...]

    @property
    def heights(self) -> np.ndarray:
        return np.array([m.height for m in self.merges], dtype=float)

    def is_monotonic(self, atol: float = 1e-12) -> bool:
        """True when merge heights never decrease."""
        return bool(np.all(np.diff(self.heights) >= -atol))

    def cut(self, k: int) -> np.ndarray:
        """
        Cut the tree into k clusters by undoing the last k - 1 merges.

        Args:
            k: Number of clusters, 1 <= k <= n

        Returns:
            Array of labels in 1..k, numbered in order of first appearance
            by observation index

        Raises:
            InvalidKError: If k is out of range
        """
        n = self.n_observations
        if k < 1 or k > n:
            raise InvalidKError(
                f"Number of clusters must be between 1 and {n}, got {k}",
                details={"k": k, "n_observations": n}
            )

        members: Dict[int, List[int]] = {i + 1: [i] for i in range(n)}
        for merge in self.merges[:n - k]:
            members[merge.new_id] = members.pop(merge.left_id) + members.pop(merge.right_id)

        group_of = np.empty(n, dtype=int)
        for cluster_id, observations in members.items():
            group_of[observations] = cluster_id

        labels = np.zeros(n, dtype=int)
        relabel: Dict[int, int] = {}
        for i in range(n):
            if group_of[i] not in relabel:
                relabel[group_of[i]] = len(relabel) + 1
            labels[i] = relabel[group_of[i]]

        return labels

    def cut_at_height(self, height: float) -> np.ndarray:
        """
        Cut the tree at a given height, keeping every merge at or below it.

        Raises:
            InvalidInputError: If the tree is not monotonic, in which case a
                height cut is not well defined
        """
        if not self.is_monotonic():
            raise InvalidInputError(
                "Cannot cut a non-monotonic tree by height; use cut(k) instead",
                details={"method": self.method}
            )
        n_merges = int(np.sum(self.heights <= height))
        return self.cut(self.n_observations - n_merges)

    def first_merge_heights(self) -> np.ndarray:
        """Height at which each observation first joins another cluster."""
        n = self.n_observations
        heights = np.full(n, np.nan)
        for merge in self.merges:
            for cluster_id in (merge.left_id, merge.right_id):
                if cluster_id <= n:
                    heights[cluster_id - 1] = merge.height
        return heights

    def to_linkage_matrix(self) -> np.ndarray:
        """
        Export as a scipy-style linkage matrix for dendrogram rendering.

        Rows are [left, right, height, size] with 0-based ids, so original
        observations are 0..n-1 and merge i creates n + i.
        """
        return np.array(
            [[m.left_id - 1, m.right_id - 1, m.height, m.size] for m in self.merges],
            dtype=float
        )

    def __len__(self) -> int:
        return len(self.merges)


class LinkageEngine:
    """
    Agglomerative clustering over a DistanceMatrix.

    Supports:
    - single linkage (minimum pairwise distance)
    - complete linkage (maximum pairwise distance)
    - Ward linkage (minimum increase in within-cluster sum of squares)

    Ward heights follow the Euclidean Lance-Williams convention shared by
    scipy and R's agnes/hclust(ward.D2): a merge at height h increases the
    total within-cluster sum of squares by h**2 / 2.

    When several pairs are equally minimal, the pair with the lowest
    (left_id, right_id) is merged first.
    """

    def __init__(self, method: str = "ward"):
        if method not in SUPPORTED_LINKAGES:
            raise InvalidInputError(
                f"Linkage '{method}' not supported. Available: {list(SUPPORTED_LINKAGES)}",
                details={"method": method}
            )
        self.method = method

    def fit(self, distance_matrix: DistanceMatrix) -> MergeTree:
        """
        Build the merge tree.

        Args:
            distance_matrix: Pairwise distances between observations

        Returns:
            MergeTree with n - 1 merge events
        """
        n = distance_matrix.n_observations
        logger.info(f"Fitting {self.method} linkage on {n} observations")
        start_time = time.time()

        # Working copy; inactive slots and the diagonal hold +inf
        work = distance_matrix.values.copy()
        np.fill_diagonal(work, np.inf)

        slot_ids = np.arange(1, n + 1)
        sizes = np.ones(n, dtype=int)
        active = np.ones(n, dtype=bool)

        merges: List[MergeEvent] = []
        for step in range(n - 1):
            i, j, height = self._select_pair(work, slot_ids)

            left_id, right_id = sorted((int(slot_ids[i]), int(slot_ids[j])))
            new_id = n + step + 1
            new_size = int(sizes[i] + sizes[j])
            merges.append(MergeEvent(left_id, right_id, height, new_id, new_size))

            # New cluster reuses slot i, slot j is retired
            active[j] = False
            others = np.where(active)[0]
            others = others[others != i]

            if len(others) > 0:
                updated = self._lance_williams(
                    work[i, others], work[j, others], height,
                    sizes[i], sizes[j], sizes[others]
                )
                work[i, others] = updated
                work[others, i] = updated

            work[j, :] = np.inf
            work[:, j] = np.inf
            slot_ids[i] = new_id
            sizes[i] = new_size

        tree = MergeTree(n_observations=n, method=self.method, merges=tuple(merges))
        logger.info(
            f"{self.method.capitalize()} linkage completed in {time.time() - start_time:.3f}s, "
            f"final height: {tree.heights[-1]:.3f}"
        )
        return tree

    @staticmethod
    def _select_pair(work: np.ndarray, slot_ids: np.ndarray) -> Tuple[int, int, float]:
        """Find the minimal pair, tie-broken by lowest (left_id, right_id)."""
        height = float(work.min())
        rows, cols = np.nonzero(work == height)
        upper = rows < cols
        rows, cols = rows[upper], cols[upper]

        if len(rows) == 1:
            return int(rows[0]), int(cols[0]), height

        ids_a, ids_b = slot_ids[rows], slot_ids[cols]
        left = np.minimum(ids_a, ids_b)
        right = np.maximum(ids_a, ids_b)
        best = np.lexsort((right, left))[0]
        return int(rows[best]), int(cols[best]), height

    def _lance_williams(
        self,
        d_ik: np.ndarray,
        d_jk: np.ndarray,
        d_ij: float,
        n_i: int,
        n_j: int,
        n_k: np.ndarray
    ) -> np.ndarray:
        """Dissimilarity between the merged cluster (i ∪ j) and every other cluster k."""
        if self.method == "single":
            return np.minimum(d_ik, d_jk)
        elif self.method == "complete":
            return np.maximum(d_ik, d_jk)
        else:
            total = n_i + n_j + n_k
            squared = (
                (n_i + n_k) * d_ik ** 2
                + (n_j + n_k) * d_jk ** 2
                - n_k * d_ij ** 2
            ) / total
            return np.sqrt(np.clip(squared, 0.0, None))
