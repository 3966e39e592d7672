"""
Distance Matrix Module

Pairwise Euclidean dissimilarities between observations of a scaled feature
matrix. The matrix is computed once and shared read-only by the linkage
engine, classical MDS and the quality metrics.
"""

import logging
from typing import Union

import numpy as np
from scipy.spatial.distance import pdist, squareform

from .exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class DistanceMatrix:
    """
    Symmetric n×n Euclidean distance matrix with zero diagonal.

    The underlying array is flagged read-only; use ``copy()`` on ``values``
    when a mutable working copy is needed.
    """

    def __init__(self, values: np.ndarray):
        values = np.array(values, dtype=float)
        values.setflags(write=False)
        self._values = values

    @staticmethod
    def check_features(X: Union[np.ndarray, list]) -> np.ndarray:
        """
        Validate a feature matrix and return it as a float array.

        Raises:
            InvalidInputError: If X is not 2-D, has fewer than 2 rows or
                contains non-finite or non-numeric values
        """
        try:
            X = np.asarray(X, dtype=float)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Feature matrix must be numeric: {e}") from e

        if X.ndim != 2:
            raise InvalidInputError(
                f"Feature matrix must be 2D, got shape {X.shape}",
                details={"shape": X.shape}
            )

        if X.shape[0] < 2:
            raise InvalidInputError(
                f"At least 2 observations required, got {X.shape[0]}",
                details={"n_observations": X.shape[0]}
            )

        bad_rows = np.where(~np.isfinite(X).all(axis=1))[0]
        if len(bad_rows) > 0:
            raise InvalidInputError(
                f"Feature matrix contains non-finite values in {len(bad_rows)} rows",
                details={"rows": bad_rows[:10].tolist()}
            )
        return X

    @classmethod
    def from_features(cls, X: Union[np.ndarray, list]) -> 'DistanceMatrix':
        """
        Compute Euclidean distances between all rows of X.

        Args:
            X: Feature matrix of shape (n_samples, n_features)

        Returns:
            DistanceMatrix instance

        Raises:
            InvalidInputError: If X fails ``check_features``
        """
        X = cls.check_features(X)
        logger.debug(f"Computing distance matrix for {X.shape[0]} observations × {X.shape[1]} features")
        return cls(squareform(pdist(X, metric='euclidean')))

    @classmethod
    def from_matrix(cls, D: Union[np.ndarray, list], atol: float = 1e-10) -> 'DistanceMatrix':
        """
        Wrap an already computed square dissimilarity matrix.

        Raises:
            InvalidInputError: If D is not square, symmetric, non-negative
                with zero diagonal, or has fewer than 2 rows
        """
        D = np.asarray(D, dtype=float)

        if D.ndim != 2 or D.shape[0] != D.shape[1]:
            raise InvalidInputError(f"Distance matrix must be square, got shape {D.shape}")
        if D.shape[0] < 2:
            raise InvalidInputError("At least 2 observations required")
        if not np.isfinite(D).all():
            raise InvalidInputError("Distance matrix contains non-finite values")
        if not np.allclose(D, D.T, atol=atol):
            raise InvalidInputError("Distance matrix is not symmetric")
        if np.any(np.abs(np.diag(D)) > atol):
            raise InvalidInputError("Distance matrix diagonal must be zero")
        if np.any(D < -atol):
            raise InvalidInputError("Distance matrix contains negative entries")

        D = (D + D.T) / 2.0
        np.fill_diagonal(D, 0.0)
        return cls(np.clip(D, 0.0, None))

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def n_observations(self) -> int:
        return self._values.shape[0]

    def distance(self, i: int, j: int) -> float:
        """Distance between observations i and j (0-based)."""
        return float(self._values[i, j])

    def squared(self) -> np.ndarray:
        """Element-wise squared distances as a new array."""
        return self._values ** 2

    def condensed(self) -> np.ndarray:
        """Upper triangle in scipy condensed form."""
        return squareform(self._values, checks=False)

    def __len__(self) -> int:
        return self.n_observations

    def __repr__(self) -> str:
        return f"DistanceMatrix(n_observations={self.n_observations})"
