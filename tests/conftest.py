"""Shared fixtures: small synthetic feature matrices and a school-level table."""

import numpy as np
import pandas as pd
import pytest

from school_clustering import DistanceMatrix


@pytest.fixture
def two_triples():
    """Six 2-D points forming two well-separated groups of three."""
    return np.array([
        [0.0, 0.0], [0.0, 1.0], [1.0, 0.0],
        [10.0, 10.0], [10.0, 11.0], [11.0, 10.0],
    ])


@pytest.fixture
def two_triples_distances(two_triples):
    return DistanceMatrix.from_features(two_triples)


@pytest.fixture
def random_features():
    rng = np.random.default_rng(0)
    return rng.normal(size=(20, 3))


@pytest.fixture
def school_table():
    """Twelve schools in two socio-economic groups with held-out columns."""
    rng = np.random.default_rng(7)
    n_per_group = 6
    low = rng.normal(loc=[-2.0, -2.0, -1.5], scale=0.3, size=(n_per_group, 3))
    high = rng.normal(loc=[2.0, 2.0, 1.5], scale=0.3, size=(n_per_group, 3))
    features = np.vstack([low, high])

    return pd.DataFrame({
        "school": [f"school_{i:02d}" for i in range(2 * n_per_group)],
        "pct_free_lunch": features[:, 0],
        "median_income": features[:, 1],
        "pct_english_learners": features[:, 2],
        "district_type": ["urban"] * n_per_group + ["suburban"] * n_per_group,
        "proficiency": np.r_[np.full(n_per_group, 40.0), np.full(n_per_group, 80.0)],
    })
