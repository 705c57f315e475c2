"""
Core clustering module.

Exports:
- ClusteringEngine: Main orchestration class
- BasePartitionalClustering: Base class for centroid-based algorithms
- ClusteringResult: Result container
- ClusteringConfig: Configuration container
- Distance and linkage strategies
- Individual algorithm implementations
"""

from colclust.core.base_clustering import (
    BasePartitionalClustering,
    ClusteringResult,
    ClusteringConfig,
)
from colclust.core.distance import DistanceStrategy, EuclideanDistance, get_distance_strategy
from colclust.core.linkage import (
    LinkageStrategy,
    SingleLinkage,
    CompleteLinkage,
    AverageLinkage,
    get_linkage_strategy,
)
from colclust.core.kmeans_algorithm import KMeansAlgorithm
from colclust.core.dpmeans_algorithm import DPMeansAlgorithm
from colclust.core.agglomerative_algorithm import AgglomerativeAlgorithm, cut_dendrogram
from colclust.core.clustering_engine import ClusteringEngine

__all__ = [
    "ClusteringEngine",
    "BasePartitionalClustering",
    "ClusteringResult",
    "ClusteringConfig",
    "DistanceStrategy",
    "EuclideanDistance",
    "get_distance_strategy",
    "LinkageStrategy",
    "SingleLinkage",
    "CompleteLinkage",
    "AverageLinkage",
    "get_linkage_strategy",
    "KMeansAlgorithm",
    "DPMeansAlgorithm",
    "AgglomerativeAlgorithm",
    "cut_dendrogram",
]
