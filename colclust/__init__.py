"""
colclust - clustering of column-major feature matrices.

Partitional clustering (K-Means, DP-Means) and agglomerative dendrograms
over matrices holding one instance per column.
"""

from colclust.core import (
    AgglomerativeAlgorithm,
    BasePartitionalClustering,
    ClusteringConfig,
    ClusteringEngine,
    ClusteringResult,
    DPMeansAlgorithm,
    EuclideanDistance,
    KMeansAlgorithm,
    cut_dendrogram,
)

__version__ = "1.0.0"

__all__ = [
    "AgglomerativeAlgorithm",
    "BasePartitionalClustering",
    "ClusteringConfig",
    "ClusteringEngine",
    "ClusteringResult",
    "DPMeansAlgorithm",
    "EuclideanDistance",
    "KMeansAlgorithm",
    "cut_dendrogram",
]
