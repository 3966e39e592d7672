"""
Input Handler for Clustering Pipeline

This module turns cleaned school-level data into the numeric feature matrix
used by the clustering engine, keeping identifiers and held-out columns
aside for the summaries.

Two input forms are accepted:
- a DataFrame holding feature, identifier and held-out columns, and
- a ready numeric feature matrix with an optional held-out table whose
  rows line up with the matrix rows.
"""

import logging
from typing import Optional, Tuple, Dict, Any, List, Sequence, Union

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from .distance import DistanceMatrix
from .exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class ClusteringInputHandler:
    """
    Prepares inputs for the clustering pipeline.

    Supports:
    - Splitting feature columns from identifier and excluded columns
    - Input validation (numeric, finite, at least 2 observations)
    - Optional z-scoring with scikit-learn's StandardScaler
    """

    def __init__(self, id_column: Optional[str] = None, standardize: bool = False):
        """
        Initialize input handler.

        Args:
            id_column: Column identifying observations; the index is used if None
            standardize: Whether to z-score feature columns
        """
        self.id_column = id_column
        self.standardize = standardize
        self.scaler: Optional[StandardScaler] = None

    def get_feature_names(
        self,
        df: pd.DataFrame,
        exclude_columns: Optional[Sequence[str]] = None
    ) -> List[str]:
        """
        Get list of feature column names.

        Args:
            df: DataFrame with features
            exclude_columns: Columns withheld from clustering

        Returns:
            List of feature column names
        """
        skip = set(exclude_columns or [])
        if self.id_column is not None:
            skip.add(self.id_column)
        return [col for col in df.columns if col not in skip]

    def validate_feature_dataframe(
        self,
        df: pd.DataFrame,
        exclude_columns: Optional[Sequence[str]] = None
    ) -> Dict[str, Any]:
        """
        Validate that DataFrame has required structure for clustering.

        Args:
            df: DataFrame to validate
            exclude_columns: Columns withheld from clustering

        Returns:
            Dictionary with validation results:
            {
                'valid': bool,
                'errors': List[str],
                'warnings': List[str],
                'feature_count': int,
                'observation_count': int
            }
        """
        errors = []
        warnings = []
        exclude_columns = list(exclude_columns or [])

        if df.empty:
            errors.append("DataFrame is empty")
            return {
                'valid': False,
                'errors': errors,
                'warnings': warnings,
                'feature_count': 0,
                'observation_count': 0
            }

        if self.id_column is not None and self.id_column not in df.columns:
            errors.append(f"Missing identifier column '{self.id_column}'")

        if self.id_column is not None and self.id_column in exclude_columns:
            errors.append(f"Identifier column '{self.id_column}' cannot also be excluded")

        missing_excluded = [col for col in exclude_columns if col not in df.columns]
        if missing_excluded:
            errors.append(f"Excluded columns not found: {missing_excluded}")

        feature_cols = self.get_feature_names(df, exclude_columns)
        if len(feature_cols) == 0:
            errors.append("No feature columns found")

        non_numeric = [col for col in feature_cols if not pd.api.types.is_numeric_dtype(df[col])]
        if non_numeric:
            errors.append(f"Non-numeric feature columns: {non_numeric}")

        numeric_cols = [col for col in feature_cols if col not in non_numeric]
        if numeric_cols:
            missing = df[numeric_cols].isnull().sum()
            if missing.any():
                errors.append(f"Missing values detected: {missing[missing > 0].to_dict()}")

            if np.isinf(df[numeric_cols].to_numpy(dtype=float)).any():
                errors.append("Infinite values detected in feature columns")

        if self.id_column is not None and self.id_column in df.columns:
            duplicates = int(df[self.id_column].duplicated().sum())
            if duplicates > 0:
                warnings.append(f"Duplicate identifiers found: {duplicates} duplicates")

        if len(df) < 2:
            errors.append("At least 2 observations required for clustering")

        return {
            'valid': len(errors) == 0,
            'errors': errors,
            'warnings': warnings,
            'feature_count': len(feature_cols),
            'observation_count': len(df)
        }

    def prepare_feature_matrix(
        self,
        df: pd.DataFrame,
        exclude_columns: Optional[Sequence[str]] = None
    ) -> Tuple[np.ndarray, List[Any], pd.DataFrame]:
        """
        Extract feature matrix, observation ids and excluded columns.

        Args:
            df: DataFrame with feature, identifier and excluded columns
            exclude_columns: Columns withheld from clustering

        Returns:
            Tuple of (feature_matrix, observation_ids, excluded_df)

        Raises:
            InvalidInputError: If the DataFrame fails validation
        """
        exclude_columns = list(exclude_columns or [])
        validation = self.validate_feature_dataframe(df, exclude_columns)
        if not validation['valid']:
            raise InvalidInputError(
                f"Invalid feature data: {validation['errors']}",
                details=validation
            )
        for warning in validation['warnings']:
            logger.warning(warning)

        feature_cols = self.get_feature_names(df, exclude_columns)
        X = df[feature_cols].to_numpy(dtype=float)

        if self.id_column is not None:
            observation_ids = df[self.id_column].tolist()
        else:
            observation_ids = df.index.tolist()

        excluded_df = df[exclude_columns].reset_index(drop=True)

        X = self._scale(X, feature_cols)
        logger.info(f"Prepared feature matrix: {X.shape[0]} observations × {X.shape[1]} features")

        return X, observation_ids, excluded_df

    def prepare_array(
        self,
        X: Union[np.ndarray, Sequence[Sequence[float]]],
        excluded: Optional[pd.DataFrame] = None
    ) -> Tuple[np.ndarray, List[Any], pd.DataFrame]:
        """
        Validate a ready feature matrix and pair it with its excluded table.

        Rows of ``excluded`` correspond to rows of X by position; its index
        supplies the observation ids. Without it, ids are row positions.

        Returns:
            Tuple of (feature_matrix, observation_ids, excluded_df)

        Raises:
            InvalidInputError: If X is not a finite 2-D numeric matrix with
                at least 2 rows, or excluded has a different row count
        """
        X = DistanceMatrix.check_features(X)
        n = X.shape[0]

        if excluded is None:
            observation_ids = list(range(n))
            excluded_df = pd.DataFrame(index=pd.RangeIndex(n))
        else:
            if len(excluded) != n:
                raise InvalidInputError(
                    f"Excluded table has {len(excluded)} rows, feature matrix has {n}",
                    details={"excluded_rows": len(excluded), "n_observations": n}
                )
            observation_ids = excluded.index.tolist()
            excluded_df = excluded.reset_index(drop=True)

        feature_cols = [f"feature_{j}" for j in range(X.shape[1])]
        X = self._scale(X, feature_cols)
        logger.info(f"Prepared feature matrix: {n} observations × {X.shape[1]} features")

        return X, observation_ids, excluded_df

    def prepare_inputs(
        self,
        features: Union[pd.DataFrame, np.ndarray],
        excluded: Optional[pd.DataFrame] = None,
        exclude_columns: Optional[Sequence[str]] = None
    ) -> Tuple[np.ndarray, List[Any], pd.DataFrame]:
        """
        Prepare either input form for clustering.

        Args:
            features: DataFrame (split with exclude_columns) or numeric matrix
            excluded: Extra withheld table; for a DataFrame it is aligned on
                the DataFrame's index, for a matrix by row position
            exclude_columns: Columns of a features DataFrame withheld from clustering

        Returns:
            Tuple of (feature_matrix, observation_ids, excluded_df)
        """
        if not isinstance(features, pd.DataFrame):
            if exclude_columns:
                logger.debug("exclude_columns ignored for a feature matrix input")
            return self.prepare_array(features, excluded)

        X, observation_ids, excluded_df = self.prepare_feature_matrix(features, exclude_columns)
        if excluded is None:
            return X, observation_ids, excluded_df

        aligned = self._align_excluded(excluded, features.index)
        clashes = sorted(set(aligned.columns) & set(excluded_df.columns))
        if clashes:
            raise InvalidInputError(
                f"Excluded table repeats columns already excluded from the features: {clashes}",
                details={"columns": clashes}
            )
        return X, observation_ids, pd.concat([excluded_df, aligned], axis=1)

    def _align_excluded(self, excluded: pd.DataFrame, index: pd.Index) -> pd.DataFrame:
        """Reorder excluded rows to match the feature index."""
        if not excluded.index.is_unique:
            raise InvalidInputError("Excluded table index contains duplicates")
        missing = index.difference(excluded.index)
        if len(missing) > 0:
            raise InvalidInputError(
                f"Excluded table is missing {len(missing)} observations",
                details={"missing": missing[:10].tolist()}
            )
        return excluded.loc[index].reset_index(drop=True)

    def _scale(self, X: np.ndarray, feature_cols: List[str]) -> np.ndarray:
        if self.standardize:
            return self._standardize(X, feature_cols)
        self._check_scaling(X, feature_cols)
        return X

    def _standardize(self, X: np.ndarray, feature_cols: List[str]) -> np.ndarray:
        """Z-score each column; constant columns cannot be scaled."""
        constant = [col for col, std in zip(feature_cols, X.std(axis=0)) if std == 0]
        if constant:
            raise InvalidInputError(
                f"Cannot standardize constant columns: {constant}",
                details={"columns": constant}
            )
        self.scaler = StandardScaler()
        X_scaled = self.scaler.fit_transform(X)
        logger.info(
            f"Standardized features: mean={X_scaled.mean():.4f}, std={X_scaled.std():.4f}"
        )
        return X_scaled

    def _check_scaling(self, X: np.ndarray, feature_cols: List[str], tol: float = 0.05):
        """Warn when features do not look z-scored."""
        means = np.abs(X.mean(axis=0))
        # Either population or sample variance scaling is accepted
        pop_std = X.std(axis=0)
        sample_std = X.std(axis=0, ddof=1)
        off = [
            col for col, m, s0, s1 in zip(feature_cols, means, pop_std, sample_std)
            if m > tol or min(abs(s0 - 1.0), abs(s1 - 1.0)) > tol
        ]
        if off:
            logger.warning(f"{len(off)} feature columns do not appear standardized: {off[:5]}")

    def validate_clustering_inputs(
        self,
        X: np.ndarray,
        k: int,
        algorithm: str = "kmeans"
    ) -> Dict[str, Any]:
        """
        Validate inputs for clustering algorithm.

        Args:
            X: Feature matrix
            k: Number of clusters
            algorithm: Algorithm name; hierarchical cuts allow k == n

        Returns:
            Validation results dictionary
        """
        errors = []
        warnings = []

        if X.size == 0:
            errors.append("Feature matrix is empty")
        elif len(X.shape) != 2:
            errors.append(f"Feature matrix must be 2D, got shape {X.shape}")
        else:
            if np.isnan(X).any():
                errors.append("Feature matrix contains NaN values")
            if np.isinf(X).any():
                errors.append("Feature matrix contains infinite values")

            n = X.shape[0]
            upper = n if algorithm == 'hierarchical' else n - 1
            if k < 1:
                errors.append("Number of clusters (k) must be at least 1")
            elif k > upper:
                errors.append(f"Number of clusters (k={k}) must be at most {upper} for {algorithm}")

            feature_vars = np.var(X, axis=0)
            zero_var_features = int(np.sum(feature_vars == 0))
            if zero_var_features > 0:
                warnings.append(f"{zero_var_features} features have zero variance")

        return {
            'valid': len(errors) == 0,
            'errors': errors,
            'warnings': warnings
        }
