"""
Main Clustering Analysis Pipeline

This module orchestrates the clustering analysis: feature preparation,
distance computation, hierarchical and K-Means clustering over a range of
k, quality evaluation, MDS projection and cluster summaries.
"""

import logging
import time
from typing import Dict, Any, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .config import ClusteringPipelineConfig
from .input_handler import ClusteringInputHandler
from .algorithms import ClusteringAlgorithmManager, ClusteringResult
from .distance import DistanceMatrix
from .evaluator import ClusteringEvaluator, QualityReport
from .exceptions import ClusteringError, InvalidInputError, InvalidKError
from .hierarchical import LinkageEngine, MergeTree
from .mds import ClassicalMDS
from .summarizer import ClusterSummarizer
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)

HIGHER_IS_BETTER = {"overall_silhouette", "calinski_harabasz", "explained_variance_ratio",
                    "agglomerative_coefficient"}


class ClusteringAnalysisPipeline:
    """
    Main clustering analysis pipeline.

    Orchestrates:
    1. Feature matrix preparation and validation
    2. One distance matrix shared by every component
    3. One merge tree per linkage criterion, cut at every k
    4. Multi-start K-Means at every k
    5. Quality reports, MDS projection and cluster summaries

    Components receive their inputs explicitly; nothing is kept in shared
    mutable state between calls.
    """

    def __init__(self, config: Optional[ClusteringPipelineConfig] = None):
        """
        Initialize clustering analysis pipeline.

        Args:
            config: Pipeline configuration
        """
        self.config = config or ClusteringPipelineConfig()

        if self.config.enable_file_logging:
            setup_logging(
                enable_file_logging=True,
                log_level=self.config.log_level,
                log_dir=self.config.log_dir
            )

        self.input_handler = ClusteringInputHandler(
            id_column=self.config.id_column,
            standardize=self.config.standardize
        )
        self.algorithm_manager = ClusteringAlgorithmManager(self.config.random_state)
        self.evaluator = ClusteringEvaluator()
        self.summarizer = ClusterSummarizer()

        logger.info(f"Initialized clustering pipeline with algorithms: {self.config.algorithms}")

    def run_complete_analysis(
        self,
        features: Union[pd.DataFrame, np.ndarray],
        excluded: Optional[pd.DataFrame] = None
    ) -> Dict[str, Any]:
        """
        Run clustering analysis across all algorithms and k values.

        Args:
            features: Cleaned DataFrame (configured id and excluded columns are
                split off) or a numeric feature matrix
            excluded: Withheld columns keyed like features; summaries are
                produced when any withheld columns are available

        Returns:
            Dictionary with per-experiment results, shared artefacts
            (distance matrix, merge trees, MDS projection) and a run summary
        """
        logger.info("Starting complete clustering analysis")
        start_time = time.time()

        X, observation_ids, excluded_df = self._prepare(features, excluded)
        distance_matrix = DistanceMatrix.from_features(X)

        merge_trees: Dict[str, MergeTree] = {}
        if "hierarchical" in self.config.algorithms:
            for method in self.config.linkage_methods:
                merge_trees[method] = LinkageEngine(method).fit(distance_matrix)

        experiments = self._experiment_keys()
        all_results: Dict[str, Dict[int, Any]] = {}
        total_experiments = len(experiments) * len(self.config.k_range)
        experiment_count = 0

        for key, algorithm, linkage in experiments:
            algorithm_results = {}

            for k in self.config.k_range:
                experiment_count += 1
                logger.info(f"Running experiment {experiment_count}/{total_experiments}: {key} k={k}")

                algorithm_results[k] = self._run_single_experiment(
                    X, algorithm, k, distance_matrix,
                    merge_trees.get(linkage) if linkage else None,
                    excluded_df
                )

            all_results[key] = algorithm_results

        projection = None
        try:
            projection = ClassicalMDS(self.config.mds_components).fit(distance_matrix)
        except ClusteringError as e:
            logger.error(f"MDS projection failed: {e}")

        total_time = time.time() - start_time
        logger.info(f"Complete analysis finished in {total_time:.2f} seconds")

        return {
            "results": all_results,
            "observation_ids": observation_ids,
            "distance_matrix": distance_matrix,
            "merge_trees": merge_trees,
            "projection": projection,
            "summary": {
                "total_experiments": total_experiments,
                "successful_experiments": sum(
                    1 for alg_results in all_results.values()
                    for result in alg_results.values()
                    if result["success"]
                ),
                "total_time_seconds": total_time,
                "algorithms": [key for key, _, _ in experiments],
                "k_range": list(self.config.k_range)
            }
        }

    def run_single_clustering(
        self,
        features: Union[pd.DataFrame, np.ndarray],
        algorithm: str,
        k: int,
        linkage: Optional[str] = None,
        excluded: Optional[pd.DataFrame] = None
    ) -> Dict[str, Any]:
        """
        Run one clustering at one k.

        Unlike the batch analysis, errors propagate to the caller.

        Args:
            features: Cleaned DataFrame or numeric feature matrix
            algorithm: 'kmeans' or 'hierarchical'
            k: Number of clusters
            linkage: Linkage criterion for hierarchical clustering
            excluded: Withheld columns keyed like features

        Returns:
            Dictionary with the ClusteringResult, QualityReport and summary
        """
        logger.info(f"Running single clustering: {algorithm} k={k}")

        supported = self.algorithm_manager.get_supported_algorithms()
        if algorithm not in supported:
            raise InvalidInputError(
                f"Algorithm '{algorithm}' not supported. Available: {supported}",
                details={"algorithm": algorithm}
            )

        X, observation_ids, excluded_df = self._prepare(features, excluded)

        validation = self.input_handler.validate_clustering_inputs(X, k, algorithm)
        if not validation['valid']:
            error_msg = f"Invalid inputs: {validation['errors']}"
            logger.error(error_msg)
            raise InvalidKError(error_msg, details=validation)

        distance_matrix = DistanceMatrix.from_features(X)
        params = self.config.get_algorithm_params(algorithm, linkage)
        result = self._fit_clustering_algorithm(X, algorithm, k, params, distance_matrix)
        quality = self.evaluator.evaluate(
            X, result.labels, distance_matrix, result.merge_tree, algorithm
        )

        return {
            "observation_ids": observation_ids,
            "result": result,
            "quality": quality,
            "cluster_summary": self._summarize(result.labels, excluded_df)
        }

    def _prepare(
        self,
        features: Union[pd.DataFrame, np.ndarray],
        excluded: Optional[pd.DataFrame]
    ) -> Tuple[np.ndarray, List[Any], pd.DataFrame]:
        X, observation_ids, excluded_df = self.input_handler.prepare_inputs(
            features, excluded, exclude_columns=self.config.exclude_columns
        )
        label_column = self.summarizer.cluster_column
        if label_column in excluded_df.columns:
            raise InvalidInputError(
                f"Excluded column '{label_column}' clashes with the cluster label column",
                details={"column": label_column}
            )
        return X, observation_ids, excluded_df

    def _experiment_keys(self) -> List[tuple]:
        """(result key, algorithm, linkage) for every configured experiment."""
        keys = []
        for algorithm in self.config.algorithms:
            if algorithm == "hierarchical":
                for method in self.config.linkage_methods:
                    keys.append((f"hierarchical_{method}", algorithm, method))
            else:
                keys.append((algorithm, algorithm, None))
        return keys

    def _run_single_experiment(
        self,
        X: np.ndarray,
        algorithm: str,
        k: int,
        distance_matrix: DistanceMatrix,
        merge_tree: Optional[MergeTree],
        excluded_df: pd.DataFrame
    ) -> Dict[str, Any]:
        """Run a single clustering experiment, recording failures instead of raising."""
        try:
            linkage = merge_tree.method if merge_tree is not None else None
            params = self.config.get_algorithm_params(algorithm, linkage)
            result = self._fit_clustering_algorithm(
                X, algorithm, k, params, distance_matrix, merge_tree
            )
            quality = self.evaluator.evaluate(
                X, result.labels, distance_matrix, result.merge_tree, algorithm
            )

            return {
                "algorithm": algorithm,
                "k": k,
                "labels": result.labels.tolist(),
                "result": result,
                "quality": quality,
                "metrics": quality.to_dict(),
                "cluster_summary": self._summarize(result.labels, excluded_df),
                "execution_time": result.execution_time,
                "success": True
            }

        except ClusteringError as e:
            logger.error(f"Experiment {algorithm} k={k} failed: {e}")
            return {
                "algorithm": algorithm,
                "k": k,
                "error": str(e),
                "error_type": e.error_type,
                "success": False
            }

    def _fit_clustering_algorithm(
        self,
        X: np.ndarray,
        algorithm: str,
        k: int,
        params: Dict[str, Any],
        distance_matrix: DistanceMatrix,
        merge_tree: Optional[MergeTree] = None
    ) -> ClusteringResult:
        """Validate parameters and fit clustering algorithm."""
        param_validation = self.algorithm_manager.validate_algorithm_params(algorithm, params)
        if not param_validation['valid']:
            raise InvalidInputError(f"Invalid parameters for {algorithm}: {param_validation['errors']}")
        for warning in param_validation['warnings']:
            logger.warning(warning)

        return self.algorithm_manager.fit_clustering(
            X, algorithm, k, param_validation['cleaned_params'],
            distance_matrix=distance_matrix, merge_tree=merge_tree
        )

    def _summarize(self, labels: np.ndarray, excluded_df: pd.DataFrame) -> Optional[Dict[str, Any]]:
        if excluded_df.shape[1] == 0:
            return None
        return self.summarizer.summarize(labels, excluded_df)

    def comparison_frame(self, results: Dict[str, Dict[int, Any]]) -> pd.DataFrame:
        """One row of scalar metrics per successful experiment."""
        rows = []
        for key, alg_results in results.items():
            for k, result in alg_results.items():
                if result["success"]:
                    rows.append({"experiment": key, **result["metrics"]})
        return pd.DataFrame(rows)

    def get_best_clustering(
        self,
        results: Dict[str, Dict[int, Any]],
        metric: str = "overall_silhouette"
    ) -> Optional[Dict[str, Any]]:
        """
        Identify best clustering result based on specified metric.

        Args:
            results: All clustering results
            metric: Any scalar QualityReport field

        Returns:
            Best clustering result or None if no valid results
        """
        higher_is_better = metric in HIGHER_IS_BETTER
        best_result = None
        best_score = float('-inf') if higher_is_better else float('inf')

        for key, alg_results in results.items():
            for k, result in alg_results.items():
                if not result["success"]:
                    continue

                score = result["metrics"].get(metric)
                if score is None:
                    continue

                is_better = score > best_score if higher_is_better else score < best_score
                if is_better:
                    best_score = score
                    best_result = {
                        "experiment": key,
                        "k": k,
                        "score": score,
                        "result": result
                    }

        return best_result
