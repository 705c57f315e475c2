"""
Agglomerative Hierarchical Clustering Algorithm Implementation.

Builds the full merge sequence (dendrogram) over the columns of a feature
matrix: start from singletons, repeatedly merge the globally closest pair of
active clusters and let the linkage strategy derive the merged cluster's
distances.

Agglomerative clustering is ideal for:
- Building hierarchical cluster trees (dendrograms)
- When cluster hierarchy is important
- Small to medium datasets
"""

import logging
from typing import List, Optional, Sequence, Union

import numpy as np

from colclust.core.distance import DistanceStrategy, get_distance_strategy
from colclust.core.linalg import FeatureMatrix, as_feature_matrix, feature_shape
from colclust.core.linkage import LinkageStrategy, get_linkage_strategy
from colclust.schemas.data_models import AgglomerativeParams, MergeRecord
from colclust.utils.advanced_logging import PerformanceLogger, get_logger
from colclust.utils.error_handling import ConfigurationError, InvalidInputError
from colclust.utils.notify import NULL_NOTIFIER, Notifier

logger = logging.getLogger(__name__)

# Each merge scans the whole N x N matrix, so the build is O(N^3)
LARGE_INPUT_WARNING = 5000


class AgglomerativeAlgorithm:
    """
    Agglomerative hierarchical clustering driver.

    Strengths: Builds hierarchy, exchangeable linkage criteria
    Weaknesses: Slow (O(n^3)), O(n^2) memory, not scalable
    """

    def __init__(
        self,
        linkage: Union[str, LinkageStrategy, None] = None,
        distance: Union[str, DistanceStrategy, None] = None,
        notifier: Optional[Notifier] = None,
    ):
        """
        Initialize Agglomerative algorithm.

        Args:
            linkage: Linkage name or strategy (default average)
            distance: Distance name or strategy (default euclidean)
            notifier: Default progress sink for build_dendrogram()
        """
        self.linkage = get_linkage_strategy(linkage)
        self.distance = get_distance_strategy(distance)
        self.notifier = notifier or NULL_NOTIFIER

        logger.info(
            f"Initialized Agglomerative: linkage={self.linkage.name}, distance={self.distance.name}"
        )

    @classmethod
    def from_params(
        cls,
        params: Union[dict, AgglomerativeParams, None] = None,
        notifier: Optional[Notifier] = None,
    ) -> "AgglomerativeAlgorithm":
        """Build from a parameter dict as found in settings."""
        if not isinstance(params, AgglomerativeParams):
            params = AgglomerativeParams(**(params or {}))
        return cls(linkage=params.linkage, distance=params.distance, notifier=notifier)

    def build_dendrogram(
        self,
        vectors: FeatureMatrix,
        notifier: Optional[Notifier] = None,
    ) -> List[MergeRecord]:
        """
        Merge all columns of `vectors` into one cluster.

        Args:
            vectors: Feature matrix (D x N)
            notifier: Progress sink (overrides the constructor default)

        Returns:
            N-1 MergeRecords in formation order; `right` is folded into `left`
            and the merged cluster keeps slot `left`

        Raises:
            InvalidInputError: If the matrix has no features or no instances
        """
        dim, n_inst = feature_shape(vectors)
        notifier = notifier or self.notifier

        logger.info(f"Starting Agglomerative clustering on {n_inst} vectors")
        if n_inst > LARGE_INPUT_WARNING:
            logger.warning(
                f"Agglomerative clustering on {n_inst} vectors "
                "may be slow and memory-intensive. Consider using K-Means or DP-Means."
            )

        X = as_feature_matrix(vectors)
        merges: List[MergeRecord] = []

        with PerformanceLogger(
            "dendrogram_build",
            logger=get_logger(__name__),
            item_count=n_inst,
            linkage=self.linkage.name,
        ):
            dist = self.distance.pairwise_squared(X, X)
            item_counts = np.ones(n_inst, dtype=np.int64)

            # Scratch buffers for the pair scan
            upper = np.triu(np.ones((n_inst, n_inst), dtype=bool), k=1)
            valid = np.empty_like(upper)
            scan = np.empty_like(dist)

            for _ in range(n_inst - 1):
                active = item_counts > 0
                np.logical_and(upper, active[:, np.newaxis], out=valid)
                np.logical_and(valid, active[np.newaxis, :], out=valid)
                scan.fill(np.inf)
                np.copyto(scan, dist, where=valid)

                # argmin returns the first minimum in row-major order: lowest i, then lowest j
                i, j = divmod(int(np.argmin(scan)), n_inst)
                merge_dist = float(np.sqrt(max(0.0, dist[i, j])))

                notifier.notify(f"Merging clusters {i}, {j}, distance: {merge_dist:.3f}")
                merges.append(MergeRecord(i, j, merge_dist))

                self.linkage.join_clusters(dist, item_counts, i, j)
                item_counts[i] += item_counts[j]
                item_counts[j] = 0

        logger.info(f"Agglomerative produced {len(merges)} merges")
        return merges

    def fit_predict(
        self,
        vectors: FeatureMatrix,
        n_clusters: Optional[int] = None,
        distance_threshold: Optional[float] = None,
        notifier: Optional[Notifier] = None,
    ) -> np.ndarray:
        """Build the dendrogram and cut it into flat labels."""
        _, n_inst = feature_shape(vectors)
        merges = self.build_dendrogram(vectors, notifier=notifier)
        return cut_dendrogram(
            merges, n_inst, n_clusters=n_clusters, distance_threshold=distance_threshold
        )


def cut_dendrogram(
    merges: Sequence[MergeRecord],
    n_points: int,
    n_clusters: Optional[int] = None,
    distance_threshold: Optional[float] = None,
) -> np.ndarray:
    """
    Flat cluster labels from a merge sequence.

    Replays either the first n_points - n_clusters merges, or the merges up
    to (excluding) the first one whose distance exceeds distance_threshold.
    Labels are numbered in order of each cluster's lowest point index.

    Args:
        merges: Output of build_dendrogram()
        n_points: Number of clustered points
        n_clusters: Desired number of clusters
        distance_threshold: Maximum merge distance

    Returns:
        Integer label per point
    """
    if n_clusters is None and distance_threshold is None:
        raise ConfigurationError("Must specify either n_clusters or distance_threshold")
    if n_clusters is not None and distance_threshold is not None:
        logger.warning(
            "Both n_clusters and distance_threshold specified. "
            "Ignoring n_clusters (distance_threshold takes precedence)"
        )
        n_clusters = None
    if len(merges) != max(n_points - 1, 0):
        raise InvalidInputError(
            f"Expected {max(n_points - 1, 0)} merges for {n_points} points, got {len(merges)}"
        )

    if n_clusters is not None:
        if not 1 <= n_clusters <= max(n_points, 1):
            raise InvalidInputError(f"n_clusters must be in [1, {n_points}], got {n_clusters}")
        n_applied = n_points - n_clusters
    else:
        n_applied = 0
        for merge in merges:
            if merge.distance > distance_threshold:
                break
            n_applied += 1

    parent = np.arange(n_points)

    def find(node: int) -> int:
        root = node
        while parent[root] != root:
            root = parent[root]
        while parent[node] != root:
            parent[node], node = root, parent[node]
        return root

    for left, right, _ in merges[:n_applied]:
        parent[find(right)] = find(left)

    roots = np.array([find(p) for p in range(n_points)], dtype=np.intp)
    _, first_seen, inverse = np.unique(roots, return_index=True, return_inverse=True)
    rank = np.empty(len(first_seen), dtype=np.intp)
    rank[np.argsort(first_seen)] = np.arange(len(first_seen))
    return rank[inverse.ravel()]
