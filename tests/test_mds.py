"""Tests for classical multidimensional scaling."""

import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform

from school_clustering import (
    ClassicalMDS,
    DistanceMatrix,
    InvalidInputError,
    NonEmbeddableError,
)
from school_clustering.mds import double_center


@pytest.fixture
def planar_points_in_3d():
    """Ten points lying on a 2-D plane inside 3-D space."""
    rng = np.random.default_rng(3)
    plane = rng.normal(size=(10, 2))
    basis, _ = np.linalg.qr(rng.normal(size=(3, 2)))
    return plane @ basis.T + np.array([1.0, -2.0, 0.5])


@pytest.fixture
def non_euclidean_distances():
    """Collinear distances shrunk by a constant: Gram eigenvalues 4.5, 0, -0.5, -0.5."""
    squared = np.subtract.outer(np.arange(4), np.arange(4)) ** 2 - 1.0
    np.fill_diagonal(squared, 0.0)
    return DistanceMatrix.from_matrix(np.sqrt(squared))


class TestClassicalMDS:
    def test_exactly_embeddable_round_trip(self, planar_points_in_3d):
        D = DistanceMatrix.from_features(planar_points_in_3d)
        result = ClassicalMDS(n_components=2).fit(D)

        assert result.coordinates.shape == (10, 2)
        assert np.allclose(squareform(pdist(result.coordinates)), D.values, atol=1e-8)
        assert result.goodness_of_fit[0] == pytest.approx(1.0)
        assert result.goodness_of_fit[1] == pytest.approx(1.0)

    def test_eigenvalues_descending(self, random_features):
        result = ClassicalMDS(n_components=2).fit(DistanceMatrix.from_features(random_features))

        assert len(result.eigenvalues) == 20
        assert np.all(np.diff(result.eigenvalues) <= 1e-12)

    def test_coordinates_are_centred(self, random_features):
        result = ClassicalMDS(n_components=3).fit(DistanceMatrix.from_features(random_features))
        assert np.allclose(result.coordinates.mean(axis=0), 0.0, atol=1e-10)

    def test_sign_convention_is_deterministic(self, random_features):
        D = DistanceMatrix.from_features(random_features)
        coords = ClassicalMDS(n_components=2).fit(D).coordinates

        largest = coords[np.argmax(np.abs(coords), axis=0), [0, 1]]
        assert np.all(largest > 0)
        assert np.array_equal(coords, ClassicalMDS(n_components=2).fit(D).coordinates)

    def test_collinear_points_clamp_zero_eigenvalue(self):
        X = np.column_stack([np.arange(6, dtype=float), np.zeros(6)])
        D = DistanceMatrix.from_features(X)
        result = ClassicalMDS(n_components=2).fit(D)

        assert np.allclose(result.coordinates[:, 1], 0.0, atol=1e-6)
        assert np.allclose(squareform(pdist(result.coordinates)), D.values, atol=1e-6)

    def test_negative_eigenvalue_raises(self, non_euclidean_distances):
        with pytest.raises(NonEmbeddableError):
            ClassicalMDS(n_components=3).fit(non_euclidean_distances)

    def test_negative_eigenvalues_beyond_request_are_ignored(self, non_euclidean_distances):
        result = ClassicalMDS(n_components=2).fit(non_euclidean_distances)

        assert result.eigenvalues.tolist() == pytest.approx([4.5, 0.0, -0.5, -0.5], abs=1e-9)
        assert np.allclose(result.coordinates[:, 1], 0.0, atol=1e-6)
        assert result.goodness_of_fit[0] == pytest.approx(4.5 / 5.5)

    @pytest.mark.parametrize("n_components", [6, 10])
    def test_too_many_components(self, n_components, two_triples_distances):
        with pytest.raises(NonEmbeddableError) as excinfo:
            ClassicalMDS(n_components=n_components).fit(two_triples_distances)
        assert excinfo.value.error_type == "NON_EMBEDDABLE"

    def test_n_minus_one_components_allowed(self, two_triples_distances):
        result = ClassicalMDS(n_components=5).fit(two_triples_distances)
        assert result.coordinates.shape == (6, 5)

    def test_small_scale_negative_eigenvalue_raises(self):
        squared = (np.subtract.outer(np.arange(4), np.arange(4)) ** 2 - 1.0) * 1e-12
        np.fill_diagonal(squared, 0.0)
        tiny = DistanceMatrix.from_matrix(np.sqrt(squared))

        with pytest.raises(NonEmbeddableError):
            ClassicalMDS(n_components=3).fit(tiny)

    def test_identical_points(self):
        result = ClassicalMDS(n_components=2).fit(DistanceMatrix.from_features(np.ones((4, 2))))

        assert np.array_equal(result.coordinates, np.zeros((4, 2)))
        assert result.goodness_of_fit == (0.0, 0.0)

    def test_zero_components(self):
        with pytest.raises(InvalidInputError):
            ClassicalMDS(n_components=0)


def test_double_center_rows_sum_to_zero(random_features):
    gram = double_center(DistanceMatrix.from_features(random_features).squared())

    assert np.allclose(gram.sum(axis=0), 0.0, atol=1e-9)
    assert np.allclose(gram, gram.T)
