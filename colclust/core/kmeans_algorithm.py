"""
K-Means Clustering Algorithm Implementation.

Lloyd's algorithm over column-major feature matrices:
random initial centroids, then alternate assignment and centroid update until
the assignment stops changing or the iteration cap is reached.

K-Means is ideal for:
- When the number of clusters is known
- Spherical, evenly-sized clusters
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from colclust.core.base_clustering import (
    BasePartitionalClustering,
    ClusteringConfig,
)
from colclust.core.distance import DistanceStrategy
from colclust.core.linalg import FeatureMatrix
from colclust.schemas.data_models import ClusterAlgorithm, KMeansParams
from colclust.utils.notify import Notifier

logger = logging.getLogger(__name__)


class KMeansAlgorithm(BasePartitionalClustering):
    """
    K-Means clustering implementation.

    Strengths: Fast, simple, monotone objective
    Weaknesses: Requires k as input, assumes spherical clusters, sensitive to seeding
    """

    algorithm = ClusterAlgorithm.KMEANS
    params_model = KMeansParams

    def __init__(
        self,
        config: ClusteringConfig,
        distance: Optional[DistanceStrategy] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize K-Means algorithm.

        Args:
            config: Clustering configuration (params: n_clusters)
            distance: Optional distance strategy
            rng: Optional random generator
        """
        super().__init__(config, distance=distance, rng=rng)
        self.k = self.params.n_clusters

        logger.info(f"Initialized K-Means: n_clusters={self.k}, distance={self.distance.name}")

    def _fit(
        self,
        X: FeatureMatrix,
        n_inst: int,
        dim: int,
        max_iter: int,
        notifier: Notifier,
    ) -> Tuple[np.ndarray, np.ndarray, int, bool, List[float]]:
        centroids = self.select_initial_centroids(X, self.k)

        # Scratch buffers reused by every iteration
        norm_x = self.distance.refresh_column_squared_norms(X)
        norm_c = None
        labels = np.empty(n_inst, dtype=np.intp)
        prev_labels = np.full(n_inst, -1, dtype=np.intp)

        inertia_history: List[float] = []
        n_iter = 0
        converged = False

        while True:
            norm_c = self.distance.refresh_column_squared_norms(centroids, out=norm_c)
            labels, inertia = self._assign(X, centroids, norm_x, norm_c, out=labels)
            inertia_history.append(inertia)

            if np.array_equal(labels, prev_labels):
                converged = True
                break
            if n_iter >= max_iter:
                break

            self.recompute_centroids(X, labels, centroids)
            n_iter += 1
            notifier.notify(f"K-Means iteration {n_iter}: inertia {inertia:.6f}", level="debug")

            labels, prev_labels = prev_labels, labels

        notifier.notify(
            f"K-Means finished after {n_iter} iterations (converged={converged})"
        )
        return centroids, labels.copy(), n_iter, converged, inertia_history
