"""
DP-Means Clustering Algorithm Implementation.

A K-Means variant that infers the number of clusters: a point farther than
sqrt(lambda) from every centroid opens a new cluster of its own. The cluster
count is kept within [min_clusters, max_clusters].
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from colclust.core.base_clustering import (
    BasePartitionalClustering,
    ClusteringConfig,
)
from colclust.core.distance import DistanceStrategy
from colclust.core.linalg import FeatureMatrix, get_column
from colclust.schemas.data_models import ClusterAlgorithm, DPMeansParams
from colclust.utils.error_handling import InsufficientDataError
from colclust.utils.notify import Notifier

logger = logging.getLogger(__name__)


class DPMeansAlgorithm(BasePartitionalClustering):
    """
    DP-Means clustering implementation.

    Best for: Data where the number of groups is unknown but the distance
    separating them can be estimated
    Weaknesses: Result depends on point order and on lambda
    """

    algorithm = ClusterAlgorithm.DPMEANS
    params_model = DPMeansParams

    def __init__(
        self,
        config: ClusteringConfig,
        distance: Optional[DistanceStrategy] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize DP-Means algorithm.

        Args:
            config: Clustering configuration
                (params: lambda, min_clusters, max_clusters)
            distance: Optional distance strategy
            rng: Optional random generator
        """
        super().__init__(config, distance=distance, rng=rng)
        self.lambda_ = self.params.lambda_
        self.min_clusters = self.params.min_clusters
        self.max_clusters = self.params.max_clusters

        logger.info(
            f"Initialized DP-Means: lambda={self.lambda_}, min_clusters={self.min_clusters}, "
            f"max_clusters={self.max_clusters}"
        )

    def _fit(
        self,
        X: FeatureMatrix,
        n_inst: int,
        dim: int,
        max_iter: int,
        notifier: Notifier,
    ) -> Tuple[np.ndarray, np.ndarray, int, bool, List[float]]:
        """
        Run DP-Means passes. At least one pass is always made.
        """
        if n_inst < self.min_clusters:
            raise InsufficientDataError(
                f"Cannot form {self.min_clusters} clusters from {n_inst} instances",
                details={"min_clusters": self.min_clusters, "n_instances": n_inst},
            )

        # A pass starts with at most n_inst non-empty clusters and opens at most n_inst more
        capacity = 2 * n_inst
        if self.max_clusters is not None:
            capacity = min(self.max_clusters, capacity)
        threshold = float(np.sqrt(self.lambda_))

        k = self.min_clusters
        centroids = np.empty((dim, max(capacity, k)), dtype=np.float64)
        centroids[:, :k] = self.select_initial_centroids(X, k)

        # Scratch buffers reused by every pass
        norm_x = self.distance.refresh_column_squared_norms(X)
        labels = np.empty(n_inst, dtype=np.intp)
        prev_labels = np.full(n_inst, -1, dtype=np.intp)

        inertia_history: List[float] = []
        n_iter = 0
        converged = False

        while True:
            k, inertia = self._assignment_pass(
                X, centroids, k, capacity, threshold, norm_x, labels
            )
            _, counts = self.recompute_centroids(X, labels, centroids[:, :k])
            k = self._drop_empty_clusters(centroids, labels, counts, k)
            if k < self.min_clusters:
                k = self._force_splits(X, centroids, labels, k, norm_x)

            n_iter += 1
            inertia_history.append(inertia)
            notifier.notify(f"DP-Means pass {n_iter}: {k} clusters", level="debug")

            if np.array_equal(labels, prev_labels):
                converged = True
                break
            if n_iter >= max_iter:
                break

            labels, prev_labels = prev_labels, labels

        notifier.notify(
            f"DP-Means finished after {n_iter} passes with {k} clusters (converged={converged})"
        )
        return centroids[:, :k].copy(), labels.copy(), n_iter, converged, inertia_history

    def _assignment_pass(
        self,
        X: FeatureMatrix,
        centroids: np.ndarray,
        k: int,
        max_k: int,
        threshold: float,
        norm_x: Optional[np.ndarray],
        labels: np.ndarray,
    ) -> Tuple[int, float]:
        """
        Assign points in index order, opening clusters as needed.

        A cluster opened at point i competes for every point after i.

        Returns:
            Tuple of (cluster count, sum of squared assignment distances)
        """
        n_inst = labels.shape[0]
        dist2 = self.distance.pairwise_squared(centroids[:, :k], X, None, norm_x)
        nearest = np.argmin(dist2, axis=0)
        best = np.take_along_axis(dist2, nearest[np.newaxis, :], axis=0).ravel()

        inertia = 0.0
        for i in range(n_inst):
            if k < max_k and np.sqrt(best[i]) > threshold:
                centroids[:, k] = get_column(X, i)
                labels[i] = k

                if i + 1 < n_inst:
                    tail_norm = None if norm_x is None else norm_x[i + 1:]
                    new_dist2 = self.distance.pairwise_squared(
                        centroids[:, [k]], X[:, i + 1:], None, tail_norm
                    )[0]
                    closer = np.flatnonzero(new_dist2 < best[i + 1:]) + i + 1
                    best[closer] = new_dist2[closer - i - 1]
                    nearest[closer] = k

                k += 1
            else:
                labels[i] = nearest[i]
                inertia += best[i]

        return k, inertia

    def _drop_empty_clusters(
        self,
        centroids: np.ndarray,
        labels: np.ndarray,
        counts: np.ndarray,
        k: int,
    ) -> int:
        """Compact away clusters without points, preserving their order."""
        kept = np.flatnonzero(counts[:k] > 0)
        if len(kept) == k:
            return k

        logger.debug(f"DP-Means dropping {k - len(kept)} empty clusters")
        remap = np.full(k, -1, dtype=np.intp)
        remap[kept] = np.arange(len(kept))
        centroids[:, :len(kept)] = centroids[:, kept]
        labels[:] = remap[labels]
        return len(kept)

    def _force_splits(
        self,
        X: FeatureMatrix,
        centroids: np.ndarray,
        labels: np.ndarray,
        k: int,
        norm_x: Optional[np.ndarray],
    ) -> int:
        """
        Split off singleton clusters until min_clusters is reached.

        Each split takes the point farthest from its centroid among clusters
        holding more than one point, i.e. the outermost point of the
        widest cluster.
        """
        n_inst = labels.shape[0]
        while k < self.min_clusters:
            dist2 = self.distance.pairwise_squared(centroids[:, :k], X, None, norm_x)
            own = dist2[labels, np.arange(n_inst)]
            counts = np.bincount(labels, minlength=k)

            own[counts[labels] < 2] = -np.inf
            point = int(np.argmax(own))

            centroids[:, k] = get_column(X, point)
            labels[point] = k
            k += 1
            self.recompute_centroids(X, labels, centroids[:, :k])

            logger.debug(f"DP-Means forced split at point {point}, now {k} clusters")

        return k
