"""
Clustering Pipeline Configuration

This module defines the configuration for the clustering analysis pipeline:
which algorithms and linkage criteria to run, the k values to scan, K-Means
restart policy, MDS dimensionality and logging.
"""

from pathlib import Path
from typing import List, Dict, Any, Optional, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class ClusteringPipelineConfig(BaseModel):
    """
    Configuration for clustering analysis pipeline.

    Uses Pydantic for validation and type checking.
    """

    # Clustering parameters
    algorithms: List[Literal["kmeans", "hierarchical"]] = Field(
        default=["kmeans", "hierarchical"],
        description="Clustering algorithms to run"
    )
    linkage_methods: List[Literal["single", "complete", "ward"]] = Field(
        default=["ward"],
        description="Linkage criteria for hierarchical clustering"
    )
    k_range: List[int] = Field(
        default_factory=lambda: list(range(2, 7)),
        description="Numbers of clusters to evaluate"
    )
    random_state: Optional[int] = Field(
        default=42,
        description="Seed for K-Means initialization; None draws fresh entropy"
    )

    # K-Means restart policy
    n_restarts: int = Field(default=10, description="Independent K-Means restarts")
    max_iter: int = Field(default=1000, description="Maximum Lloyd iterations per restart")
    max_retries: int = Field(
        default=5,
        description="Retries for a restart that degenerates to an empty cluster"
    )
    n_jobs: int = Field(default=1, description="Worker threads for K-Means restarts")

    # Projection
    mds_components: int = Field(default=2, description="Target dimension of classical MDS")

    # Input handling
    id_column: Optional[str] = Field(
        default=None,
        description="Column identifying observations (e.g. school name)"
    )
    exclude_columns: List[str] = Field(
        default_factory=list,
        description="Columns withheld from clustering and used only for summaries"
    )
    standardize: bool = Field(
        default=False,
        description="Z-score feature columns before clustering"
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )
    log_dir: Path = Field(default=Path("logs"), description="Directory to save log files")
    enable_file_logging: bool = Field(
        default=False,
        description="Whether to save logs to file (True) or console only (False)"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator('algorithms', 'linkage_methods')
    @classmethod
    def validate_not_empty(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("At least one entry must be specified")
        if len(v) != len(set(v)):
            raise ValueError("Duplicate entries found")
        return v

    @field_validator('k_range')
    @classmethod
    def validate_k_range(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("k_range cannot be empty")
        if min(v) < 1:
            raise ValueError("Minimum k value must be at least 1")
        return sorted(set(v))

    @field_validator('n_restarts', 'max_iter', 'n_jobs', 'mds_components')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator('max_retries')
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries cannot be negative")
        return v

    @model_validator(mode='after')
    def validate_id_not_excluded(self) -> 'ClusteringPipelineConfig':
        if self.id_column is not None and self.id_column in self.exclude_columns:
            raise ValueError(f"id_column '{self.id_column}' cannot also be an excluded column")
        return self

    @classmethod
    def for_single_run(
        cls,
        algorithm: str = "kmeans",
        k: int = 3,
        linkage: str = "ward",
        **overrides: Any
    ) -> 'ClusteringPipelineConfig':
        """
        Create configuration for a single algorithm at a single k.

        Args:
            algorithm: Clustering algorithm to use
            k: Number of clusters
            linkage: Linkage criterion (hierarchical only)
            overrides: Any other field

        Returns:
            ClusteringPipelineConfig instance
        """
        return cls(
            algorithms=[algorithm],
            linkage_methods=[linkage],
            k_range=[k],
            **overrides
        )

    def get_algorithm_params(self, algorithm: str, linkage: Optional[str] = None) -> Dict[str, Any]:
        """
        Get parameters for specific algorithm.

        Args:
            algorithm: Algorithm name
            linkage: Linkage criterion, defaults to the first configured one

        Returns:
            Dictionary of algorithm parameters
        """
        if algorithm == 'kmeans':
            return {
                'n_restarts': self.n_restarts,
                'max_iter': self.max_iter,
                'max_retries': self.max_retries,
                'n_jobs': self.n_jobs
            }
        if algorithm == 'hierarchical':
            return {'linkage': linkage or self.linkage_methods[0]}
        return {}
