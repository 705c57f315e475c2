"""
data_models.py

Pydantic data models for the clustering library.
Defines algorithm parameter schemas, dendrogram records and the header
written in front of persisted models.

Schema Design:
- Parameters: validated once when an algorithm is constructed
- Dendrogram: plain tuples for the hot loop, a pydantic view for export
- Persistence: self-describing header checked on load
"""

from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class ClusterAlgorithm(str, Enum):
    """Supported clustering algorithms."""

    KMEANS = "kmeans"
    DPMEANS = "dpmeans"
    AGGLOMERATIVE = "agglomerative"


class DistanceMetric(str, Enum):
    """Distance metric names."""

    EUCLIDEAN = "euclidean"
    COSINE = "cosine"


class LinkageMethod(str, Enum):
    """Agglomerative linkage rules."""

    SINGLE = "single"
    COMPLETE = "complete"
    AVERAGE = "average"


# =============================================================================
# DENDROGRAM MODELS
# =============================================================================


class MergeRecord(NamedTuple):
    """One merge of a dendrogram: cluster slot `right` folded into `left`."""

    left: int
    right: int
    distance: float


class Dendrogram(BaseModel):
    """Serializable view of a full merge sequence."""

    n_points: int = Field(..., ge=0, description="Number of clustered points")
    linkage: LinkageMethod = Field(..., description="Linkage rule used")
    distance: DistanceMetric = Field(default=DistanceMetric.EUCLIDEAN, description="Point distance")
    merges: List[MergeRecord] = Field(default_factory=list, description="Merges in formation order")

    @model_validator(mode="after")
    def check_merge_count(self) -> "Dendrogram":
        expected = max(self.n_points - 1, 0)
        if len(self.merges) != expected:
            raise ValueError(f"Expected {expected} merges for {self.n_points} points, got {len(self.merges)}")
        return self


# =============================================================================
# ALGORITHM PARAMETERS
# =============================================================================


class KMeansParams(BaseModel):
    """Lloyd's K-Means parameters."""

    model_config = ConfigDict(extra="forbid")

    n_clusters: int = Field(..., ge=1, description="Number of clusters (K)")


class DPMeansParams(BaseModel):
    """DP-Means parameters."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    lambda_: float = Field(..., gt=0.0, alias="lambda", description="Cluster penalty; new cluster when distance > sqrt(lambda)")
    min_clusters: int = Field(default=1, ge=1, description="Minimum number of clusters")
    max_clusters: Optional[int] = Field(default=None, ge=1, description="Maximum number of clusters (null = unbounded)")

    @model_validator(mode="after")
    def check_cluster_bounds(self) -> "DPMeansParams":
        if self.max_clusters is not None and self.max_clusters < self.min_clusters:
            raise ValueError(
                f"max_clusters ({self.max_clusters}) must be >= min_clusters ({self.min_clusters})"
            )
        return self


class AgglomerativeParams(BaseModel):
    """Agglomerative clustering parameters."""

    model_config = ConfigDict(extra="forbid")

    linkage: LinkageMethod = Field(default=LinkageMethod.AVERAGE, description="Linkage rule")
    distance: DistanceMetric = Field(default=DistanceMetric.EUCLIDEAN, description="Point distance")


# =============================================================================
# PERSISTENCE
# =============================================================================


class ModelHeader(BaseModel):
    """Header stored in front of the centroid matrix of a saved model."""

    format: str = Field(..., description="Format name")
    version: int = Field(..., ge=1, description="Format version")
    algorithm: ClusterAlgorithm = Field(..., description="Concrete clustering algorithm")
    distance: DistanceMetric = Field(..., description="Concrete distance strategy")
    params: Dict[str, Any] = Field(default_factory=dict, description="Algorithm parameters")
    dim: int = Field(..., ge=0, description="Centroid dimension")
    n_clusters: int = Field(..., ge=0, description="Number of centroids")
    random_state: Optional[int] = Field(default=None, description="Seed the model was built with")
    rng_state: Optional[Dict[str, Any]] = Field(default=None, description="numpy bit generator state")

    @field_validator("format")
    @classmethod
    def check_format(cls, value: str) -> str:
        if not value:
            raise ValueError("format must be non-empty")
        return value
