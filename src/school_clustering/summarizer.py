"""
Cluster Summarizer

Joins cluster assignments back to the columns held out of clustering
(demographics, the withheld response label) and produces group-level
descriptive statistics.

Cluster labels are arbitrary: label 1 of one run and label 1 of another run
need not describe the same schools. Assignments are therefore related only
through contingency tables and overlap scores, never through label equality.
"""

import logging
from typing import Dict, Any, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import adjusted_rand_score

from .exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class ClusterSummarizer:
    """Descriptive statistics per cluster over excluded columns."""

    def __init__(self, cluster_column: str = "Cluster"):
        self.cluster_column = cluster_column

    def _attach_labels(self, labels: Sequence[int], excluded_df: pd.DataFrame) -> pd.DataFrame:
        if len(labels) != len(excluded_df):
            raise InvalidInputError(
                f"Number of labels ({len(labels)}) doesn't match excluded table rows ({len(excluded_df)})"
            )
        if self.cluster_column in excluded_df.columns:
            raise InvalidInputError(
                f"Excluded column '{self.cluster_column}' clashes with the cluster label column",
                details={"column": self.cluster_column}
            )
        merged = excluded_df.copy()
        merged[self.cluster_column] = np.asarray(labels)
        return merged

    def summarize(self, labels: Sequence[int], excluded_df: pd.DataFrame) -> Dict[str, Any]:
        """
        Per-cluster sizes, numeric means and categorical proportions.

        Args:
            labels: Cluster label per observation, aligned with excluded_df rows
            excluded_df: Columns withheld from clustering

        Returns:
            {
                'sizes': Series of cluster sizes,
                'numeric_means': DataFrame (cluster × numeric column),
                'categorical_proportions': {column: DataFrame (cluster × category)}
            }
        """
        merged = self._attach_labels(labels, excluded_df)
        grouped = merged.groupby(self.cluster_column)

        numeric_cols = list(excluded_df.select_dtypes(include=[np.number]).columns)
        categorical_cols = [col for col in excluded_df.columns if col not in numeric_cols]

        summary = {
            'sizes': grouped.size().rename("size"),
            'numeric_means': grouped[numeric_cols].mean() if numeric_cols else pd.DataFrame(),
            'categorical_proportions': {
                col: pd.crosstab(merged[self.cluster_column], merged[col], normalize='index')
                for col in categorical_cols
            }
        }

        logger.info(
            f"Summarized {merged[self.cluster_column].nunique()} clusters over "
            f"{len(numeric_cols)} numeric and {len(categorical_cols)} categorical columns"
        )
        return summary

    def profile_against_label(
        self,
        labels: Sequence[int],
        response: Sequence[Any],
        normalize: bool = True
    ) -> pd.DataFrame:
        """Cluster × withheld-label contingency table (row proportions by default)."""
        if len(labels) != len(response):
            raise InvalidInputError("labels and response must have the same length")
        return pd.crosstab(
            pd.Series(np.asarray(labels), name=self.cluster_column),
            pd.Series(np.asarray(response), name="Label"),
            normalize='index' if normalize else False
        )


def compare_assignments(
    labels_a: Sequence[int],
    labels_b: Sequence[int],
    names: Optional[Sequence[str]] = None
) -> Dict[str, Any]:
    """
    Relate two cluster assignments of the same observations.

    Returns:
        {'contingency': DataFrame of co-membership counts,
         'adjusted_rand': float, 1.0 for identical partitions up to relabeling}
    """
    if len(labels_a) != len(labels_b):
        raise InvalidInputError("Assignments must cover the same observations")

    name_a, name_b = names or ("A", "B")
    contingency = pd.crosstab(
        pd.Series(np.asarray(labels_a), name=name_a),
        pd.Series(np.asarray(labels_b), name=name_b)
    )
    return {
        'contingency': contingency,
        'adjusted_rand': float(adjusted_rand_score(labels_a, labels_b))
    }
