"""Tests for feature-matrix preparation."""

import numpy as np
import pandas as pd
import pytest

from school_clustering import ClusteringInputHandler, InvalidInputError


HELD_OUT = ["district_type", "proficiency"]


@pytest.fixture
def handler():
    return ClusteringInputHandler(id_column="school", standardize=True)


class TestPrepareFeatureMatrix:
    def test_splits_columns(self, handler, school_table):
        X, ids, excluded = handler.prepare_feature_matrix(school_table, HELD_OUT)

        assert X.shape == (12, 3)
        assert ids[0] == "school_00"
        assert list(excluded.columns) == ["district_type", "proficiency"]
        assert handler.get_feature_names(school_table, HELD_OUT) == [
            "pct_free_lunch", "median_income", "pct_english_learners"
        ]

    def test_standardizes_columns(self, handler, school_table):
        X, _, _ = handler.prepare_feature_matrix(school_table, HELD_OUT)

        assert np.allclose(X.mean(axis=0), 0.0)
        assert np.allclose(X.std(axis=0), 1.0)

    def test_index_used_without_id_column(self, school_table):
        handler = ClusteringInputHandler()
        _, ids, _ = handler.prepare_feature_matrix(
            school_table.set_index(school_table.index + 100), ["school"] + HELD_OUT
        )

        assert ids[:2] == [100, 101]

    def test_rejects_non_numeric_features(self, school_table):
        handler = ClusteringInputHandler(id_column="school")
        with pytest.raises(InvalidInputError) as excinfo:
            handler.prepare_feature_matrix(school_table, ["proficiency"])
        assert "district_type" in str(excinfo.value)

    def test_rejects_missing_values(self, handler, school_table):
        school_table.loc[3, "median_income"] = np.nan
        with pytest.raises(InvalidInputError):
            handler.prepare_feature_matrix(school_table, HELD_OUT)

    def test_rejects_infinite_values(self, handler, school_table):
        school_table.loc[0, "pct_free_lunch"] = np.inf
        with pytest.raises(InvalidInputError):
            handler.prepare_feature_matrix(school_table, HELD_OUT)

    def test_rejects_constant_column_when_standardizing(self, handler, school_table):
        school_table["pct_english_learners"] = 1.0
        with pytest.raises(InvalidInputError):
            handler.prepare_feature_matrix(school_table, HELD_OUT)

    def test_rejects_missing_excluded_column(self, school_table):
        handler = ClusteringInputHandler(id_column="school")
        validation = handler.validate_feature_dataframe(school_table, ["enrollment"])

        assert not validation["valid"]
        assert any("enrollment" in error for error in validation["errors"])

    def test_rejects_empty_frame(self, handler):
        validation = handler.validate_feature_dataframe(pd.DataFrame())
        assert validation["errors"] == ["DataFrame is empty"]


    def test_identifier_cannot_be_excluded(self, handler, school_table):
        validation = handler.validate_feature_dataframe(school_table, ["school"])
        assert not validation["valid"]


class TestPrepareInputs:
    def test_array_without_excluded(self, two_triples):
        X, ids, excluded = ClusteringInputHandler().prepare_inputs(two_triples)

        assert np.array_equal(X, two_triples)
        assert ids == [0, 1, 2, 3, 4, 5]
        assert excluded.shape == (6, 0)

    def test_array_with_excluded_by_position(self, two_triples):
        held_out = pd.DataFrame({"district_type": list("uuurrr")}, index=list("abcdef"))
        _, ids, excluded = ClusteringInputHandler().prepare_inputs(two_triples, held_out)

        assert ids == list("abcdef")
        assert excluded["district_type"].tolist() == list("uuurrr")
        assert excluded.index.tolist() == list(range(6))

    def test_array_row_count_mismatch(self, two_triples):
        with pytest.raises(InvalidInputError):
            ClusteringInputHandler().prepare_inputs(two_triples, pd.DataFrame({"a": [1, 2]}))

    @pytest.mark.parametrize("features", [
        np.arange(6.0),
        [[0.0, 1.0]],
        [[0.0, np.nan], [1.0, 2.0]],
        [["a", "b"], ["c", "d"]],
    ])
    def test_array_rejects_invalid_matrix(self, features):
        with pytest.raises(InvalidInputError):
            ClusteringInputHandler().prepare_inputs(np.asarray(features, dtype=object))

    def test_array_is_standardized(self, two_triples):
        X, _, _ = ClusteringInputHandler(standardize=True).prepare_inputs(two_triples)
        assert np.allclose(X.std(axis=0), 1.0)

    def test_dataframe_with_separate_excluded_aligned_on_index(self, handler, school_table):
        features = school_table.drop(columns=["proficiency"])
        proficiency = school_table[["proficiency"]].iloc[::-1]

        _, _, excluded = handler.prepare_inputs(features, proficiency, ["district_type"])

        assert list(excluded.columns) == ["district_type", "proficiency"]
        assert excluded["proficiency"].tolist() == school_table["proficiency"].tolist()

    def test_dataframe_excluded_missing_rows(self, handler, school_table):
        features = school_table.drop(columns=HELD_OUT)
        with pytest.raises(InvalidInputError):
            handler.prepare_inputs(features, school_table[["proficiency"]].iloc[:5])

    def test_dataframe_excluded_repeats_column(self, handler, school_table):
        with pytest.raises(InvalidInputError):
            handler.prepare_inputs(school_table, school_table[["proficiency"]], HELD_OUT)


class TestValidateClusteringInputs:
    def test_kmeans_requires_k_below_n(self, handler):
        X = np.random.default_rng(0).normal(size=(5, 2))

        assert handler.validate_clustering_inputs(X, 4)["valid"]
        assert not handler.validate_clustering_inputs(X, 5)["valid"]
        assert handler.validate_clustering_inputs(X, 5, "hierarchical")["valid"]
        assert not handler.validate_clustering_inputs(X, 0)["valid"]

    def test_zero_variance_warning(self, handler):
        X = np.column_stack([np.arange(5.0), np.ones(5)])
        validation = handler.validate_clustering_inputs(X, 2)

        assert validation["valid"]
        assert validation["warnings"] == ["1 features have zero variance"]
