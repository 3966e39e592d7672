"""End-to-end tests for the clustering analysis pipeline."""

import logging

import pandas as pd
import pytest

from school_clustering import (
    ClusteringAnalysisPipeline,
    ClusteringPipelineConfig,
    InvalidInputError,
    InvalidKError,
    compare_assignments,
)
from school_clustering.utils.logger import run_log_path, setup_logging


@pytest.fixture
def config():
    return ClusteringPipelineConfig(
        algorithms=["kmeans", "hierarchical"],
        linkage_methods=["ward", "complete"],
        k_range=[2, 3],
        n_restarts=4,
        id_column="school",
        exclude_columns=["district_type", "proficiency"],
        standardize=True,
        random_state=0
    )


class TestCompleteAnalysis:
    def test_runs_every_experiment(self, config, school_table):
        output = ClusteringAnalysisPipeline(config).run_complete_analysis(school_table)

        assert set(output["results"]) == {"kmeans", "hierarchical_ward", "hierarchical_complete"}
        assert output["summary"]["total_experiments"] == 6
        assert output["summary"]["successful_experiments"] == 6
        assert set(output["merge_trees"]) == {"ward", "complete"}
        assert output["projection"].coordinates.shape == (12, 2)
        assert output["distance_matrix"].n_observations == 12
        assert output["observation_ids"][-1] == "school_11"

    def test_two_groups_are_recovered(self, config, school_table):
        output = ClusteringAnalysisPipeline(config).run_complete_analysis(school_table)
        results = output["results"]

        kmeans_labels = results["kmeans"][2]["labels"]
        ward_labels = results["hierarchical_ward"][2]["labels"]
        truth = [1] * 6 + [2] * 6

        assert compare_assignments(kmeans_labels, truth)["adjusted_rand"] == pytest.approx(1.0)
        assert compare_assignments(ward_labels, truth)["adjusted_rand"] == pytest.approx(1.0)

    def test_quality_and_summary_attached(self, config, school_table):
        output = ClusteringAnalysisPipeline(config).run_complete_analysis(school_table)
        experiment = output["results"]["hierarchical_ward"][2]

        assert experiment["quality"].agglomerative_coefficient > 0.5
        assert experiment["metrics"]["overall_silhouette"] > 0.7
        summary = experiment["cluster_summary"]
        assert sorted(summary["sizes"].tolist()) == [6, 6]
        assert set(summary["categorical_proportions"]) == {"district_type"}

    def test_best_clustering_and_comparison(self, config, school_table):
        pipeline = ClusteringAnalysisPipeline(config)
        output = pipeline.run_complete_analysis(school_table)

        best = pipeline.get_best_clustering(output["results"])
        assert best["k"] == 2

        lowest_db = pipeline.get_best_clustering(output["results"], metric="davies_bouldin")
        assert lowest_db["k"] == 2

        frame = pipeline.comparison_frame(output["results"])
        assert len(frame) == 6
        assert {"experiment", "k", "overall_silhouette", "within_ss"} <= set(frame.columns)

    def test_failed_experiment_is_recorded(self, school_table):
        config = ClusteringPipelineConfig(
            algorithms=["kmeans", "hierarchical"],
            k_range=[2, 12],
            n_restarts=2,
            id_column="school",
            exclude_columns=["district_type", "proficiency"]
        )
        output = ClusteringAnalysisPipeline(config).run_complete_analysis(school_table)

        failed = output["results"]["kmeans"][12]
        assert not failed["success"]
        assert failed["error_type"] == "INVALID_K"
        assert output["results"]["hierarchical_ward"][12]["success"]
        assert output["summary"]["successful_experiments"] == 3

    def test_kmeans_is_reproducible(self, config, school_table):
        first = ClusteringAnalysisPipeline(config).run_complete_analysis(school_table)
        second = ClusteringAnalysisPipeline(config).run_complete_analysis(school_table)

        assert first["results"]["kmeans"][3]["labels"] == second["results"]["kmeans"][3]["labels"]


class TestSingleClustering:
    def test_hierarchical(self, config, school_table):
        output = ClusteringAnalysisPipeline(config).run_single_clustering(
            school_table, "hierarchical", 2, linkage="complete"
        )

        assert output["result"].merge_tree.method == "complete"
        assert output["quality"].k == 2
        assert output["cluster_summary"]["sizes"].sum() == 12

    def test_invalid_k_raises(self, config, school_table):
        with pytest.raises(InvalidKError):
            ClusteringAnalysisPipeline(config).run_single_clustering(school_table, "kmeans", 12)

    def test_no_summary_without_excluded_columns(self, school_table):
        config = ClusteringPipelineConfig.for_single_run(
            "kmeans", k=2, id_column="school", exclude_columns=[]
        )
        features = school_table.drop(columns=["district_type", "proficiency"])
        output = ClusteringAnalysisPipeline(config).run_single_clustering(features, "kmeans", 2)

        assert output["cluster_summary"] is None

    def test_unsupported_algorithm(self, config, school_table):
        with pytest.raises(InvalidInputError) as excinfo:
            ClusteringAnalysisPipeline(config).run_single_clustering(school_table, "spectral", 2)
        assert excinfo.value.details["algorithm"] == "spectral"

    def test_feature_matrix_with_excluded(self, two_triples):
        held_out = pd.DataFrame({"district_type": list("uuurrr")}, index=list("abcdef"))
        config = ClusteringPipelineConfig.for_single_run("hierarchical", k=2, linkage="single")

        output = ClusteringAnalysisPipeline(config).run_single_clustering(
            two_triples, "hierarchical", 2, linkage="single", excluded=held_out
        )

        assert output["observation_ids"] == list("abcdef")
        proportions = output["cluster_summary"]["categorical_proportions"]["district_type"]
        assert proportions.loc[1, "u"] == pytest.approx(1.0)


class TestFeatureMatrixInput:
    @pytest.fixture
    def array_config(self):
        return ClusteringPipelineConfig(k_range=[2, 3], n_restarts=3, random_state=0)

    def test_matrix_only(self, array_config, two_triples):
        output = ClusteringAnalysisPipeline(array_config).run_complete_analysis(two_triples)

        assert output["summary"]["successful_experiments"] == 4
        assert output["observation_ids"] == [0, 1, 2, 3, 4, 5]
        assert output["results"]["kmeans"][2]["cluster_summary"] is None
        assert compare_assignments(
            output["results"]["hierarchical_ward"][2]["labels"], [1, 1, 1, 2, 2, 2]
        )["adjusted_rand"] == pytest.approx(1.0)

    def test_matrix_with_excluded(self, array_config, two_triples):
        held_out = pd.DataFrame({"proficiency": [40.0, 50.0, 60.0, 80.0, 90.0, 100.0]})
        output = ClusteringAnalysisPipeline(array_config).run_complete_analysis(two_triples, held_out)

        summary = output["results"]["hierarchical_ward"][2]["cluster_summary"]
        assert sorted(summary["numeric_means"]["proficiency"].tolist()) == pytest.approx([50.0, 90.0])

    def test_invalid_matrix(self, array_config):
        with pytest.raises(InvalidInputError):
            ClusteringAnalysisPipeline(array_config).run_complete_analysis([[0.0, float("nan")], [1.0, 1.0]])

    def test_excluded_column_named_like_label_column(self, array_config, two_triples):
        held_out = pd.DataFrame({"Cluster": list("aabbcc")})
        with pytest.raises(InvalidInputError):
            ClusteringAnalysisPipeline(array_config).run_complete_analysis(two_triples, held_out)


def test_file_logging(tmp_path, school_table):
    config = ClusteringPipelineConfig.for_single_run(
        "kmeans", k=2, id_column="school",
        exclude_columns=["district_type", "proficiency"],
        enable_file_logging=True,
        log_dir=tmp_path / "logs"
    )
    ClusteringAnalysisPipeline(config)

    assert len(list((tmp_path / "logs").glob("school_clustering_*.log"))) == 1

    # Leave the package logger as other tests expect it
    package_logger = logging.getLogger("school_clustering")
    for handler in list(package_logger.handlers):
        handler.close()
        package_logger.removeHandler(handler)


def test_setup_logging_replaces_handlers():
    setup_logging(log_level="info", module_name="school_clustering.test")
    logger = setup_logging(log_level="warning", module_name="school_clustering.test")

    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1
    logger.handlers.clear()


def test_run_log_path(tmp_path):
    path = run_log_path(tmp_path, "school_clustering")

    assert path.parent == tmp_path
    assert path.name.startswith("school_clustering_")
    assert path.suffix == ".log"
