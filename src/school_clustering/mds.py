"""
Classical Multidimensional Scaling

Projects a distance matrix into a low-dimensional Euclidean space by
eigendecomposition of the double-centred squared-distance (Gram) matrix.

The output columns are only defined up to rotation and reflection. A sign
convention is applied for repeatable output, but individual axes carry no
meaning and should not be compared across datasets.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy.linalg import eigh

from .distance import DistanceMatrix
from .exceptions import InvalidInputError, NonEmbeddableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MDSResult:
    """
    Attributes:
        coordinates: n × q embedding
        eigenvalues: All eigenvalues of the Gram matrix, descending
        goodness_of_fit: (sum of the q kept eigenvalues / sum of |eigenvalues|,
            sum of the q kept eigenvalues / sum of positive eigenvalues)
    """
    coordinates: np.ndarray
    eigenvalues: np.ndarray
    goodness_of_fit: Tuple[float, float]


def double_center(squared_distances: np.ndarray) -> np.ndarray:
    """Gram matrix B = -1/2 · J D² J with J the centring matrix."""
    row_means = squared_distances.mean(axis=1, keepdims=True)
    col_means = squared_distances.mean(axis=0, keepdims=True)
    grand_mean = squared_distances.mean()
    return -0.5 * (squared_distances - row_means - col_means + grand_mean)


class ClassicalMDS:
    """
    Classical (Torgerson) MDS.

    Negative eigenvalues whose magnitude is within ``tol`` times the largest
    eigenvalue are treated as round-off and clamped to zero. If any of the q
    requested eigenvalues is more negative than that, the distances cannot
    be embedded in q real dimensions and NonEmbeddableError is raised.
    """

    def __init__(self, n_components: int = 2, tol: float = 1e-9):
        """
        Args:
            n_components: Target dimensionality q
            tol: Relative tolerance for clamping tiny negative eigenvalues
        """
        if n_components < 1:
            raise InvalidInputError(f"n_components must be at least 1, got {n_components}")
        self.n_components = n_components
        self.tol = tol

    def fit(self, distance_matrix: DistanceMatrix) -> MDSResult:
        """
        Embed the distance matrix in n_components dimensions.

        Raises:
            NonEmbeddableError: If n_components exceeds n - 1 or a requested
                eigenvalue is negative
        """
        n = distance_matrix.n_observations
        q = self.n_components
        if q >= n:
            raise NonEmbeddableError(
                f"At most {n - 1} dimensions available for {n} observations, {q} requested",
                details={"n_components": q, "n_observations": n}
            )

        gram = double_center(distance_matrix.squared())
        eigenvalues, eigenvectors = eigh(gram)

        # eigh returns ascending order
        order = np.argsort(eigenvalues)[::-1]
        eigenvalues = eigenvalues[order]
        eigenvectors = eigenvectors[:, order]

        # Relative to the leading eigenvalue; an all-zero Gram matrix has no round-off scale
        threshold = self.tol * abs(eigenvalues[0]) if eigenvalues[0] != 0 else 0.0
        kept = eigenvalues[:q].copy()

        if kept[-1] < -threshold:
            raise NonEmbeddableError(
                f"Only {int(np.sum(eigenvalues > -threshold))} non-negative eigenvalues available, "
                f"{q} dimensions requested",
                details={"eigenvalues": kept.tolist()}
            )

        n_clamped = int(np.sum(kept < 0))
        if n_clamped:
            logger.debug(f"Clamping {n_clamped} near-zero negative eigenvalues")
        kept = np.clip(kept, 0.0, None)

        vectors = eigenvectors[:, :q]
        # Deterministic orientation: largest-magnitude entry of each column positive
        signs = np.sign(vectors[np.argmax(np.abs(vectors), axis=0), np.arange(q)])
        signs[signs == 0] = 1.0
        coordinates = vectors * signs * np.sqrt(kept)

        abs_total = np.sum(np.abs(eigenvalues))
        pos_total = np.sum(np.clip(eigenvalues, 0.0, None))
        goodness_of_fit = (
            float(kept.sum() / abs_total) if abs_total > 0 else 0.0,
            float(kept.sum() / pos_total) if pos_total > 0 else 0.0
        )

        logger.info(
            f"Classical MDS to {q} dimensions: goodness of fit {goodness_of_fit[0]:.3f}"
        )

        return MDSResult(
            coordinates=coordinates,
            eigenvalues=eigenvalues,
            goodness_of_fit=goodness_of_fit
        )
