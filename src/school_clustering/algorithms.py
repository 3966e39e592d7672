"""
Clustering Algorithm Manager

This module provides a unified interface for the clustering algorithms
of the engine: multi-start K-Means and agglomerative hierarchical
clustering with single, complete or Ward linkage.
"""

import logging
import time
import concurrent.futures
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

import numpy as np

from .distance import DistanceMatrix
from .exceptions import EmptyClusterError, InvalidKError, InvalidInputError
from .hierarchical import LinkageEngine, MergeTree, SUPPORTED_LINKAGES

logger = logging.getLogger(__name__)


@dataclass
class ClusteringResult:
    """
    Container for clustering algorithm results.

    Labels are 1..k and carry no meaning of their own: the same number in two
    results (different runs or different k) does not denote the same group.
    Use summarizer.compare_assignments to relate two results.

    Attributes:
        algorithm: Name of the clustering algorithm
        k: Number of clusters
        labels: Cluster assignment labels in 1..k
        execution_time: Time taken to fit in seconds
        centers: Cluster centroids (k × p), ordered by label
        merge_tree: Dendrogram the labels were cut from (hierarchical only)
        additional_info: Any additional algorithm-specific information
    """
    algorithm: str
    k: int
    labels: np.ndarray
    execution_time: float
    centers: Optional[np.ndarray] = None
    merge_tree: Optional[MergeTree] = None
    additional_info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class KMeansRun:
    """
    Outcome of a single Lloyd run.

    Attributes:
        labels: 0-based cluster index per observation
        centers: Centroids of the final assignment
        within_ss: Total within-cluster sum of squares
        n_iter: Iterations performed
        converged: False when max_iter was reached with labels still changing
        history: Within-cluster sum of squares after each centroid update
    """
    labels: np.ndarray
    centers: np.ndarray
    within_ss: float
    n_iter: int
    converged: bool
    history: List[float]


def compute_centroids(X: np.ndarray, labels: np.ndarray, k: int) -> np.ndarray:
    """
    Feature-wise mean of each cluster's members.

    Raises:
        EmptyClusterError: If any of the k clusters has no members
    """
    counts = np.bincount(labels, minlength=k)
    if np.any(counts == 0):
        raise EmptyClusterError(
            f"{int(np.sum(counts == 0))} of {k} clusters have no members",
            details={"empty_clusters": np.where(counts == 0)[0].tolist()}
        )

    centers = np.zeros((k, X.shape[1]))
    np.add.at(centers, labels, X)
    return centers / counts[:, None]


def nearest_centroid(X: np.ndarray, centers: np.ndarray) -> np.ndarray:
    """Index of the closest centroid under squared Euclidean distance (ties to lowest index)."""
    sq_dist = ((X[:, None, :] - centers[None, :, :]) ** 2).sum(axis=2)
    return np.argmin(sq_dist, axis=1)


def within_sum_of_squares(X: np.ndarray, labels: np.ndarray, centers: np.ndarray) -> float:
    return float(np.sum((X - centers[labels]) ** 2))


class KMeansEngine:
    """
    Multi-start K-Means (Lloyd iterations).

    Each restart seeds its centroids with k distinct observations drawn
    uniformly at random. Restart r draws from child r of a SeedSequence built
    from ``random_state``, so results do not depend on execution order and
    are identical between sequential and parallel runs.

    A restart that degenerates to an empty cluster is retried with a fresh
    seed up to ``max_retries`` times, then excluded from the comparison.
    """

    def __init__(
        self,
        n_restarts: int = 10,
        max_iter: int = 1000,
        max_retries: int = 5,
        random_state: Optional[int] = None,
        n_jobs: int = 1
    ):
        """
        Initialize K-Means engine.

        Args:
            n_restarts: Number of independent restarts
            max_iter: Maximum Lloyd iterations per restart (soft limit)
            max_retries: Retries allowed for a restart hitting an empty cluster
            random_state: Seed for reproducibility; None draws fresh entropy
            n_jobs: Worker threads for restarts (1 = sequential)
        """
        if n_restarts < 1:
            raise InvalidInputError(f"n_restarts must be at least 1, got {n_restarts}")
        if max_iter < 1:
            raise InvalidInputError(f"max_iter must be at least 1, got {max_iter}")
        if max_retries < 0:
            raise InvalidInputError(f"max_retries cannot be negative, got {max_retries}")

        self.n_restarts = n_restarts
        self.max_iter = max_iter
        self.max_retries = max_retries
        self.random_state = random_state
        self.n_jobs = max(1, n_jobs)

    def fit(self, X: np.ndarray, k: int) -> ClusteringResult:
        """
        Run all restarts and keep the one with the lowest within-cluster SS.

        Args:
            X: Feature matrix of shape (n_samples, n_features)
            k: Number of clusters, 1 <= k < n

        Returns:
            ClusteringResult with labels in 1..k

        Raises:
            InvalidKError: If k is out of range
            EmptyClusterError: If every restart degenerated
        """
        X = np.asarray(X, dtype=float)
        if X.ndim != 2 or not np.isfinite(X).all():
            raise InvalidInputError("Feature matrix must be 2D with finite values")

        n = X.shape[0]
        if k < 1 or k >= n:
            raise InvalidKError(
                f"Number of clusters must satisfy 1 <= k < {n}, got {k}",
                details={"k": k, "n_observations": n}
            )

        seed_seq = np.random.SeedSequence(self.random_state)
        restart_seeds = seed_seq.spawn(self.n_restarts)

        logger.info(f"Fitting K-Means with k={k}, {self.n_restarts} restarts on data shape {X.shape}")
        start_time = time.time()

        if self.n_jobs > 1 and self.n_restarts > 1:
            workers = min(self.n_jobs, self.n_restarts)
            with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                runs = list(executor.map(lambda s: self._run_restart(X, k, s), restart_seeds))
        else:
            runs = [self._run_restart(X, k, s) for s in restart_seeds]

        execution_time = time.time() - start_time

        valid = [(index, run) for index, run in enumerate(runs) if run is not None]
        excluded = [index for index, run in enumerate(runs) if run is None]

        if not valid:
            raise EmptyClusterError(
                f"All {self.n_restarts} K-Means restarts degenerated to empty clusters",
                details={"k": k, "max_retries": self.max_retries}
            )

        if excluded:
            logger.warning(f"Excluded {len(excluded)} degenerate restarts: {excluded}")

        # Strict comparison keeps the first restart on ties
        best_index, best = valid[0]
        for index, run in valid[1:]:
            if run.within_ss < best.within_ss:
                best_index, best = index, run

        if not best.converged:
            logger.warning(f"Best K-Means run did not converge within {self.max_iter} iterations")

        logger.info(
            f"K-Means completed in {execution_time:.3f}s, "
            f"within SS: {best.within_ss:.3f} (restart {best_index})"
        )

        return ClusteringResult(
            algorithm='kmeans',
            k=k,
            labels=best.labels + 1,
            execution_time=execution_time,
            centers=best.centers,
            additional_info={
                'within_ss': best.within_ss,
                'n_iter': best.n_iter,
                'converged': best.converged,
                'best_restart': best_index,
                'n_valid_restarts': len(valid),
                'excluded_restarts': excluded,
                'restart_within_ss': [run.within_ss if run else None for run in runs],
                'within_ss_history': best.history,
                'seed_entropy': seed_seq.entropy
            }
        )

    def _run_restart(
        self,
        X: np.ndarray,
        k: int,
        seed: np.random.SeedSequence
    ) -> Optional[KMeansRun]:
        """Run one restart, retrying with fresh child seeds on empty clusters."""
        for attempt, attempt_seed in enumerate(seed.spawn(self.max_retries + 1)):
            rng = np.random.default_rng(attempt_seed)
            try:
                return self.single_run(X, k, rng)
            except EmptyClusterError as e:
                logger.debug(f"Restart attempt {attempt} degenerated: {e}")
        return None

    def single_run(self, X: np.ndarray, k: int, rng: np.random.Generator) -> KMeansRun:
        """
        One Lloyd run from k randomly chosen observations.

        Raises:
            EmptyClusterError: If a cluster loses all of its members
        """
        initial = rng.choice(X.shape[0], size=k, replace=False)
        labels = nearest_centroid(X, X[initial])

        history = []
        converged = False
        n_iter = 0
        for n_iter in range(1, self.max_iter + 1):
            centers = compute_centroids(X, labels, k)
            history.append(within_sum_of_squares(X, labels, centers))

            new_labels = nearest_centroid(X, centers)
            if np.array_equal(new_labels, labels):
                converged = True
                break
            labels = new_labels

        if not converged:
            centers = compute_centroids(X, labels, k)

        return KMeansRun(
            labels=labels,
            centers=centers,
            within_ss=within_sum_of_squares(X, labels, centers),
            n_iter=n_iter,
            converged=converged,
            history=history
        )


class ClusteringAlgorithmManager:
    """
    Manages clustering algorithms with a unified interface.

    Supports:
    - K-Means clustering ('kmeans')
    - Agglomerative hierarchical clustering ('hierarchical')
    """

    def __init__(self, random_state: Optional[int] = 42):
        """
        Initialize algorithm manager.

        Args:
            random_state: Random state for reproducibility
        """
        self.random_state = random_state
        self.supported_algorithms = ['kmeans', 'hierarchical']

        logger.info(f"Initialized algorithm manager with algorithms: {self.supported_algorithms}")

    def fit_clustering(
        self,
        X: np.ndarray,
        algorithm: str,
        k: int,
        algorithm_params: Optional[Dict[str, Any]] = None,
        distance_matrix: Optional[DistanceMatrix] = None,
        merge_tree: Optional[MergeTree] = None
    ) -> ClusteringResult:
        """
        Fit clustering algorithm to data.

        Args:
            X: Feature matrix of shape (n_samples, n_features)
            algorithm: Algorithm name ('kmeans', 'hierarchical')
            k: Number of clusters
            algorithm_params: Algorithm-specific parameters
            distance_matrix: Precomputed distances (hierarchical only)
            merge_tree: Precomputed tree to cut (hierarchical only)

        Returns:
            ClusteringResult object

        Raises:
            InvalidInputError: If algorithm is not supported
        """
        if algorithm not in self.supported_algorithms:
            raise InvalidInputError(
                f"Algorithm '{algorithm}' not supported. Available: {self.supported_algorithms}"
            )

        algorithm_params = algorithm_params or {}

        logger.info(f"Fitting {algorithm} clustering with k={k} on data shape {np.shape(X)}")

        if algorithm == 'kmeans':
            return self._fit_kmeans(X, k, algorithm_params)
        else:
            return self._fit_hierarchical(X, k, algorithm_params, distance_matrix, merge_tree)

    def _fit_kmeans(self, X: np.ndarray, k: int, params: Dict[str, Any]) -> ClusteringResult:
        default_params = {
            'n_restarts': 10,
            'max_iter': 1000,
            'max_retries': 5,
            'n_jobs': 1
        }
        default_params.update(params)

        engine = KMeansEngine(random_state=self.random_state, **default_params)
        return engine.fit(X, k)

    def _fit_hierarchical(
        self,
        X: np.ndarray,
        k: int,
        params: Dict[str, Any],
        distance_matrix: Optional[DistanceMatrix],
        merge_tree: Optional[MergeTree]
    ) -> ClusteringResult:
        """
        Cut a hierarchical tree into k clusters.

        The tree is built here unless one is supplied, so callers scanning a
        k range can build it once and cut it repeatedly.
        """
        method = params.get('linkage', 'ward')
        X = np.asarray(X, dtype=float)

        start_time = time.time()
        if merge_tree is None:
            if distance_matrix is None:
                distance_matrix = DistanceMatrix.from_features(X)
            merge_tree = LinkageEngine(method).fit(distance_matrix)
        elif merge_tree.method != method:
            logger.warning(f"Using supplied {merge_tree.method} tree instead of {method}")

        labels = merge_tree.cut(k)
        centers = compute_centroids(X, labels - 1, k)
        execution_time = time.time() - start_time

        return ClusteringResult(
            algorithm='hierarchical',
            k=k,
            labels=labels,
            execution_time=execution_time,
            centers=centers,
            merge_tree=merge_tree,
            additional_info={
                'linkage': merge_tree.method,
                'cut_height': float(merge_tree.heights[-k]) if k < merge_tree.n_observations else 0.0,
                'monotonic': merge_tree.is_monotonic()
            }
        )

    def get_supported_algorithms(self) -> list:
        """
        Get list of supported clustering algorithms.

        Returns:
            List of supported algorithm names
        """
        return self.supported_algorithms.copy()

    def validate_algorithm_params(
        self,
        algorithm: str,
        params: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Validate and clean algorithm parameters.

        Args:
            algorithm: Algorithm name
            params: Parameters to validate

        Returns:
            Dictionary with validation results:
            {
                'valid': bool,
                'errors': List[str],
                'warnings': List[str],
                'cleaned_params': Dict[str, Any]
            }
        """
        errors = []
        warnings = []
        cleaned_params = params.copy()

        if algorithm == 'kmeans':
            if 'n_restarts' in params and params['n_restarts'] < 1:
                errors.append("n_restarts must be at least 1")

            if 'max_iter' in params and params['max_iter'] < 1:
                errors.append("max_iter must be at least 1")

            if 'max_retries' in params and params['max_retries'] < 0:
                errors.append("max_retries cannot be negative")

            if 'n_jobs' in params and params['n_jobs'] < 1:
                warnings.append("n_jobs below 1, running restarts sequentially")
                cleaned_params['n_jobs'] = 1

        elif algorithm == 'hierarchical':
            if params.get('linkage', 'ward') not in SUPPORTED_LINKAGES:
                errors.append(f"linkage must be one of {list(SUPPORTED_LINKAGES)}")

        else:
            errors.append(f"Unknown algorithm: {algorithm}")

        return {
            'valid': len(errors) == 0,
            'errors': errors,
            'warnings': warnings,
            'cleaned_params': cleaned_params
        }
