"""
School Clustering Engine

Unsupervised clustering analysis of school-level indicators: distance
computation, hierarchical and K-Means clustering, classical MDS and
cluster-quality metrics.
"""

from .config import ClusteringPipelineConfig
from .distance import DistanceMatrix
from .hierarchical import LinkageEngine, MergeTree, MergeEvent
from .algorithms import KMeansEngine, ClusteringAlgorithmManager, ClusteringResult
from .mds import ClassicalMDS, MDSResult
from .evaluator import (
    ClusteringEvaluator,
    QualityReport,
    silhouette_samples,
    sum_of_squares,
    agglomerative_coefficient
)
from .summarizer import ClusterSummarizer, compare_assignments
from .input_handler import ClusteringInputHandler
from .pipeline import ClusteringAnalysisPipeline
from .exceptions import (
    ClusteringError,
    InvalidInputError,
    InvalidKError,
    EmptyClusterError,
    NonEmbeddableError
)

__all__ = [
    'ClusteringPipelineConfig',
    'DistanceMatrix',
    'LinkageEngine',
    'MergeTree',
    'MergeEvent',
    'KMeansEngine',
    'ClusteringAlgorithmManager',
    'ClusteringResult',
    'ClassicalMDS',
    'MDSResult',
    'ClusteringEvaluator',
    'QualityReport',
    'silhouette_samples',
    'sum_of_squares',
    'agglomerative_coefficient',
    'ClusterSummarizer',
    'compare_assignments',
    'ClusteringInputHandler',
    'ClusteringAnalysisPipeline',
    'ClusteringError',
    'InvalidInputError',
    'InvalidKError',
    'EmptyClusterError',
    'NonEmbeddableError'
]
