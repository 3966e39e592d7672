"""
Clustering Evaluation Module

This module provides quality metrics for clustering results: silhouette
coefficients, the within/between sum-of-squares decomposition and the
agglomerative coefficient of a merge tree.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List, Tuple

import numpy as np
from sklearn.metrics import davies_bouldin_score, calinski_harabasz_score

from .distance import DistanceMatrix
from .exceptions import InvalidInputError, InvalidKError
from .hierarchical import MergeTree

logger = logging.getLogger(__name__)


@dataclass
class QualityReport:
    """
    Quality metrics for one cluster assignment.

    Silhouette fields are None for a single cluster; the agglomerative
    coefficient is None unless the assignment came from a merge tree.
    """
    k: int
    within_ss: float
    between_ss: float
    total_ss: float
    silhouette_samples: Optional[np.ndarray] = None
    cluster_silhouettes: Dict[int, float] = field(default_factory=dict)
    overall_silhouette: Optional[float] = None
    agglomerative_coefficient: Optional[float] = None
    explained_variance_ratio: Optional[float] = None
    calinski_harabasz: Optional[float] = None
    davies_bouldin: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Scalar metrics only, for tabular comparison."""
        data = asdict(self)
        data.pop("silhouette_samples")
        data.pop("cluster_silhouettes")
        return data


def _encode_labels(labels: np.ndarray, n: int) -> Tuple[np.ndarray, np.ndarray]:
    labels = np.asarray(labels)
    if labels.ndim != 1 or len(labels) != n:
        raise InvalidInputError(
            f"Expected {n} labels, got shape {labels.shape}",
            details={"n_observations": n}
        )
    return np.unique(labels, return_inverse=True)


def silhouette_samples(distance_matrix: DistanceMatrix, labels: np.ndarray) -> np.ndarray:
    """
    Silhouette coefficient of every observation.

    s(i) = (b(i) - a(i)) / max(a(i), b(i)), where a(i) is the mean distance
    to the other members of its cluster and b(i) the smallest mean distance
    to another cluster. Members of singleton clusters, and observations with
    a(i) = b(i) = 0, get 0.

    Raises:
        InvalidKError: If fewer than 2 clusters are present
    """
    D = distance_matrix.values
    unique, codes = _encode_labels(labels, D.shape[0])
    k = len(unique)
    if k < 2:
        raise InvalidKError("Silhouette requires at least 2 clusters", details={"k": k})

    one_hot = np.eye(k)[codes]
    sums = D @ one_hot
    counts = one_hot.sum(axis=0)

    rows = np.arange(len(codes))
    own_counts = counts[codes]
    a = np.where(own_counts > 1, sums[rows, codes] / np.maximum(own_counts - 1, 1), 0.0)

    means = sums / counts
    means[rows, codes] = np.inf
    b = means.min(axis=1)

    denom = np.maximum(a, b)
    with np.errstate(invalid='ignore', divide='ignore'):
        scores = np.where(denom > 0, (b - a) / denom, 0.0)
    scores[own_counts == 1] = 0.0
    return scores


def silhouette_summary(
    distance_matrix: DistanceMatrix,
    labels: np.ndarray
) -> Tuple[np.ndarray, Dict[int, float], float]:
    """
    Per-observation, per-cluster and overall silhouette.

    Returns:
        Tuple of (sample values, {label: mean silhouette}, overall mean)
    """
    values = silhouette_samples(distance_matrix, labels)
    labels = np.asarray(labels)
    per_cluster = {
        int(label): float(values[labels == label].mean())
        for label in np.unique(labels)
    }
    return values, per_cluster, float(values.mean())


def sum_of_squares(X: np.ndarray, labels: np.ndarray) -> Tuple[float, float, float]:
    """
    Decompose the total sum of squares about the grand centroid.

    Returns:
        Tuple of (within, between, total); within + between == total up to
        round-off
    """
    X = np.asarray(X, dtype=float)
    _, codes = _encode_labels(labels, X.shape[0])

    grand_centroid = X.mean(axis=0)
    total = float(np.sum((X - grand_centroid) ** 2))

    within = 0.0
    between = 0.0
    for code in np.unique(codes):
        members = X[codes == code]
        centroid = members.mean(axis=0)
        within += float(np.sum((members - centroid) ** 2))
        between += len(members) * float(np.sum((centroid - grand_centroid) ** 2))

    return within, between, total


def agglomerative_coefficient(tree: MergeTree) -> float:
    """
    Agglomerative coefficient of a merge tree.

    For each observation, the height at which it first merges is divided by
    the height of the final merge; the coefficient is 1 minus the mean ratio.
    Values near 1 indicate strong clustering structure. A tree whose final
    height is 0 (all observations identical) has no structure and returns 0.

    Heights are taken as the tree reports them. Ward trees use the
    unsquared Euclidean scale of scipy and R's agnes, where a merge at
    height h adds h²/2 to the within-cluster sum of squares; the result
    therefore matches agnes' coefficient, not one computed on raw ESS
    increases.
    """
    final_height = tree.heights[-1]
    if final_height <= 0:
        logger.warning("Final merge height is zero, agglomerative coefficient set to 0")
        return 0.0
    ratios = tree.first_merge_heights() / final_height
    return float(1.0 - ratios.mean())


class ClusteringEvaluator:
    """
    Clustering evaluation using multiple metrics.

    Provides:
    - Silhouette analysis (per observation, per cluster, overall)
    - Within/between/total sum of squares
    - Agglomerative coefficient for hierarchical results
    - Calinski-Harabasz and Davies-Bouldin indices
    """

    def __init__(self):
        """Initialize clustering evaluator."""
        logger.info("Initialized clustering evaluator")

    def evaluate(
        self,
        X: np.ndarray,
        labels: np.ndarray,
        distance_matrix: Optional[DistanceMatrix] = None,
        merge_tree: Optional[MergeTree] = None,
        algorithm: str = "unknown"
    ) -> QualityReport:
        """
        Build the quality report for one assignment.

        Args:
            X: Feature matrix of shape (n_samples, n_features)
            labels: Cluster labels
            distance_matrix: Precomputed distances, computed from X if omitted
            merge_tree: Tree the labels were cut from (hierarchical only)
            algorithm: Algorithm name for context

        Returns:
            QualityReport
        """
        X = np.asarray(X, dtype=float)
        labels = np.asarray(labels)
        k = len(np.unique(labels))
        n = X.shape[0]

        logger.info(f"Evaluating {algorithm} clustering with {k} clusters")

        within, between, total = sum_of_squares(X, labels)
        report = QualityReport(
            k=k,
            within_ss=within,
            between_ss=between,
            total_ss=total,
            explained_variance_ratio=between / total if total > 0 else None
        )

        if merge_tree is not None:
            report.agglomerative_coefficient = agglomerative_coefficient(merge_tree)

        if k < 2:
            logger.warning("Silhouette not defined for a single cluster")
            return report

        if distance_matrix is None:
            distance_matrix = DistanceMatrix.from_features(X)

        samples, per_cluster, overall = silhouette_summary(distance_matrix, labels)
        report.silhouette_samples = samples
        report.cluster_silhouettes = per_cluster
        report.overall_silhouette = overall

        # Index-based scores are only defined for 2 <= k <= n - 1
        if k < n:
            report.calinski_harabasz = float(calinski_harabasz_score(X, labels))
            report.davies_bouldin = float(davies_bouldin_score(X, labels))

        logger.info(f"Evaluation completed: Silhouette={overall:.3f}")
        return report

    def compare_reports(
        self,
        reports: List[QualityReport]
    ) -> Dict[str, Any]:
        """
        Compare multiple quality reports.

        Args:
            reports: Reports to compare

        Returns:
            Comparison with per-metric summary and rankings (indices into
            ``reports``, best first)
        """
        if len(reports) < 2:
            raise InvalidInputError("Need at least two reports to compare")

        comparison = {
            "n_results": len(reports),
            "metrics_comparison": {},
            "rankings": {}
        }

        for metric in ["overall_silhouette", "calinski_harabasz", "davies_bouldin"]:
            indexed = [
                (i, getattr(report, metric)) for i, report in enumerate(reports)
                if getattr(report, metric) is not None
            ]
            if not indexed:
                continue

            values = np.array([value for _, value in indexed])
            comparison["metrics_comparison"][metric] = {
                "values": values.tolist(),
                "mean": float(np.mean(values)),
                "std": float(np.std(values)),
                "min": float(np.min(values)),
                "max": float(np.max(values))
            }

            # Higher is better for silhouette and Calinski-Harabasz
            if metric == "davies_bouldin":
                order = np.argsort(values, kind="stable")
            else:
                order = np.argsort(-values, kind="stable")
            comparison["rankings"][metric] = [indexed[i][0] for i in order]

        return comparison
