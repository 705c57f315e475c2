"""
Base Partitional Clustering Interface.

Defines the contract shared by centroid-based algorithms (K-Means, DP-Means).
Feature matrices are column-major: shape (D x N), one instance per column.
The model owns a dense (D x K) centroid matrix; subclasses only supply the
fitting loop.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type

import numpy as np
from pydantic import BaseModel, ValidationError

from colclust.core.distance import DistanceStrategy, get_distance_strategy
from colclust.core.linalg import (
    FeatureMatrix,
    as_feature_matrix,
    feature_shape,
    get_columns,
    indicator_sums,
    is_sparse,
)
from colclust.schemas.data_models import ClusterAlgorithm
from colclust.utils.advanced_logging import PerformanceLogger, get_logger
from colclust.utils.error_handling import (
    ConfigurationError,
    InsufficientDataError,
    InvalidInputError,
    NotFittedError,
)
from colclust.utils.notify import NULL_NOTIFIER, Notifier

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITER = 10000

# Silhouette is quadratic in N; larger inputs are scored on a sample
QUALITY_SAMPLE_SIZE = 5000


@dataclass
class ClusteringConfig:
    """Configuration for clustering algorithms."""

    algorithm_name: str
    params: Dict[str, Any] = field(default_factory=dict)
    distance: str = "euclidean"
    random_state: Optional[int] = 0
    compute_quality_metrics: bool = True


class ClusteringResult:
    """Results from a fit."""

    def __init__(
        self,
        cluster_labels: np.ndarray,
        n_clusters: int,
        centroids: np.ndarray,
        n_iter: int,
        converged: bool,
        inertia_history: Optional[List[float]] = None,
        quality_metrics: Optional[Dict[str, float]] = None,
    ):
        self.cluster_labels = cluster_labels
        self.n_clusters = n_clusters
        self.centroids = centroids
        self.n_iter = n_iter
        self.converged = converged
        self.inertia_history = inertia_history or []
        self.quality_metrics = quality_metrics or {}

    @property
    def labels(self) -> np.ndarray:
        """Alias for cluster_labels."""
        return self.cluster_labels

    @property
    def inertia(self) -> Optional[float]:
        """Sum of squared distances of points to their assigned centroid."""
        return self.quality_metrics.get("inertia")

    @property
    def cluster_centroids(self) -> Dict[int, np.ndarray]:
        """Return centroids as dict mapping cluster_id -> centroid_vector."""
        return {k: self.centroids[:, k] for k in range(self.centroids.shape[1])}

    def cluster_sizes(self) -> np.ndarray:
        """Number of points assigned to each cluster."""
        return np.bincount(self.cluster_labels, minlength=self.n_clusters)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "n_clusters": self.n_clusters,
            "n_iter": self.n_iter,
            "converged": self.converged,
            "quality_metrics": self.quality_metrics,
            "cluster_sizes": self.cluster_sizes().tolist(),
            "total_items": len(self.cluster_labels),
        }


class BasePartitionalClustering(ABC):
    """
    Abstract base class for centroid-based clustering.

    Owns the centroid matrix, the distance strategy and the random generator.
    Subclasses implement _fit() and declare their algorithm name and
    parameter model.
    """

    algorithm: ClusterAlgorithm
    params_model: Type[BaseModel]

    def __init__(
        self,
        config: ClusteringConfig,
        distance: Optional[DistanceStrategy] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize clustering algorithm.

        Args:
            config: Clustering configuration
            distance: Distance strategy; resolved from config.distance if None
            rng: Random generator; seeded from config.random_state if None

        Raises:
            ConfigurationError: If the parameters do not validate
        """
        self.config = config
        self.name = config.algorithm_name

        try:
            self.params = self.params_model(**config.params)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid {self.algorithm.value} parameters: {e}",
                details={"errors": e.errors(include_url=False)},
            ) from e

        self.distance = get_distance_strategy(distance if distance is not None else config.distance)
        self.rng = rng if rng is not None else np.random.default_rng(config.random_state)
        self.centroids: Optional[np.ndarray] = None

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def fit(
        self,
        vectors: FeatureMatrix,
        max_iter: int = DEFAULT_MAX_ITER,
        notifier: Optional[Notifier] = None,
    ) -> ClusteringResult:
        """
        Fit centroids to the columns of `vectors`.

        Args:
            vectors: Feature matrix (D x N), dense or scipy sparse
            max_iter: Iteration cap; reaching it is not an error
            notifier: Progress sink

        Returns:
            ClusteringResult with labels, centroids and metrics

        Raises:
            InvalidInputError: If the matrix has no features or no instances
        """
        dim, n_inst = feature_shape(vectors)
        if max_iter < 0:
            raise InvalidInputError(f"max_iter must be >= 0, got {max_iter}")

        X = as_feature_matrix(vectors)
        notifier = notifier or NULL_NOTIFIER

        logger.info(f"Starting {self.name} clustering on {n_inst} vectors of dimension {dim}")

        with PerformanceLogger(
            f"{self.name}_fit",
            logger=get_logger(__name__),
            item_count=n_inst,
            dim=dim,
        ) as perf:
            centroids, labels, n_iter, converged, inertia_history = self._fit(
                X, n_inst, dim, max_iter, notifier
            )

        # A failed re-fit leaves the previous centroids in place
        self.centroids = centroids

        if not converged:
            logger.warning(f"{self.name} stopped after {n_iter} iterations without converging")

        quality_metrics: Dict[str, float] = {}
        if self.config.compute_quality_metrics:
            quality_metrics = self._calculate_quality_metrics(X, labels)
        quality_metrics["inertia"] = self._inertia(X, labels)
        quality_metrics["iterations"] = n_iter

        logger.info(
            f"{self.name} created {self.n_clusters} clusters in {n_iter} iterations "
            f"({perf.elapsed_time:.3f}s)"
        )

        return ClusteringResult(
            cluster_labels=labels,
            n_clusters=self.n_clusters,
            centroids=self.centroids.copy(),
            n_iter=n_iter,
            converged=converged,
            inertia_history=inertia_history,
            quality_metrics=quality_metrics,
        )

    @abstractmethod
    def _fit(
        self,
        X: FeatureMatrix,
        n_inst: int,
        dim: int,
        max_iter: int,
        notifier: Notifier,
    ) -> Tuple[np.ndarray, np.ndarray, int, bool, List[float]]:
        """
        Run the algorithm-specific loop on a private centroid buffer.

        Must not touch self.centroids.

        Returns:
            Tuple of (centroids, labels, iterations, converged flag,
            inertia per iteration)
        """
        pass

    # ------------------------------------------------------------------
    # Shared machinery
    # ------------------------------------------------------------------

    def select_initial_centroids(self, X: FeatureMatrix, k: int) -> np.ndarray:
        """
        Dense (D x k) copy of k distinct columns of X chosen uniformly.

        Raises:
            InsufficientDataError: If X has fewer than k columns
        """
        n_inst = X.shape[1]
        if k > n_inst:
            raise InsufficientDataError(
                f"Cannot select {k} initial centroids from {n_inst} instances",
                details={"requested": k, "n_instances": n_inst},
            )
        selected = self.rng.choice(n_inst, size=k, replace=False)
        return get_columns(X, selected)

    def recompute_centroids(
        self,
        X: FeatureMatrix,
        assignment: np.ndarray,
        centroids: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Move every centroid to the mean of its assigned points, in place.

        A centroid whose cluster received no points keeps its previous value.

        Returns:
            Tuple of (centroids, item count per cluster)
        """
        n_clusters = centroids.shape[1]

        counts = np.bincount(assignment, minlength=n_clusters)
        sums = indicator_sums(X, assignment, n_clusters)

        filled = counts > 0
        centroids[:, filled] = sums[:, filled] / counts[filled]
        return centroids, counts

    def _assign(
        self,
        X: FeatureMatrix,
        centroids: np.ndarray,
        norm_x: Optional[np.ndarray],
        norm_c: Optional[np.ndarray],
        out: Optional[np.ndarray] = None,
    ) -> Tuple[np.ndarray, float]:
        """Nearest-centroid labels and their inertia, reusing cached norms."""
        dist2 = self.distance.pairwise_squared(centroids, X, norm_c, norm_x)
        labels = np.argmin(dist2, axis=0, out=out)
        inertia = float(np.take_along_axis(dist2, labels[np.newaxis, :], axis=0).sum())
        return labels, inertia

    def _inertia(self, X: FeatureMatrix, labels: np.ndarray) -> float:
        dist2 = self.distance.pairwise_squared(self.centroids, X)
        return float(np.take_along_axis(dist2, labels[np.newaxis, :], axis=0).sum())

    def _calculate_quality_metrics(
        self,
        X: FeatureMatrix,
        labels: np.ndarray,
    ) -> Dict[str, float]:
        """
        Calculate clustering quality metrics.

        Args:
            X: Feature matrix (D x N)
            labels: Cluster labels

        Returns:
            Dictionary of quality metrics
        """
        from sklearn.metrics import davies_bouldin_score, silhouette_score

        metrics: Dict[str, float] = {}
        n_inst = labels.shape[0]
        n_labels = len(np.unique(labels))

        # Both scores are undefined for a single cluster or all singletons
        if not 1 < n_labels < n_inst:
            return metrics

        samples = X.T
        sample_size = QUALITY_SAMPLE_SIZE if n_inst > QUALITY_SAMPLE_SIZE else None
        metrics["silhouette_score"] = float(
            silhouette_score(
                samples,
                labels,
                metric="euclidean",
                sample_size=sample_size,
                random_state=self.config.random_state,
            )
        )

        if not is_sparse(X):
            metrics["davies_bouldin_index"] = float(davies_bouldin_score(samples, labels))

        return metrics

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def n_clusters(self) -> int:
        """Number of centroids (0 before fit)."""
        return 0 if self.centroids is None else self.centroids.shape[1]

    @property
    def dim(self) -> int:
        """Centroid dimension (0 before fit)."""
        return 0 if self.centroids is None else self.centroids.shape[0]

    def get_centroid(self, cluster: int) -> np.ndarray:
        """Copy of the centroid of `cluster`."""
        self._check_cluster(cluster)
        return self.centroids[:, cluster].copy()

    def assign(self, vectors: FeatureMatrix) -> np.ndarray:
        """
        Index of the nearest centroid for every column of `vectors`.

        Ties go to the lowest centroid index.
        """
        X = self._check_input(vectors)
        dist2 = self.distance.pairwise_squared(self.centroids, X)
        return np.argmin(dist2, axis=0)

    def distance_to_cluster(self, cluster: int, point) -> float:
        """Distance between `point` and the centroid of `cluster`."""
        self._check_cluster(cluster)
        return float(self.distance.point_to_set(self.centroids[:, [cluster]], point)[0])

    def distance_to_all_clusters(self, point) -> np.ndarray:
        """Distances between `point` and every centroid."""
        self._check_fitted()
        return self.distance.point_to_set(self.centroids, point)

    def pairwise_distance_to_centroids(self, vectors: FeatureMatrix) -> np.ndarray:
        """
        Distance matrix (K x N); entry [i, j] is between centroid i and
        instance j.
        """
        X = self._check_input(vectors)
        return self.distance.pairwise(self.centroids, X)

    def get_params(self) -> Dict[str, Any]:
        """Validated parameters as a JSON-ready dict (aliases applied)."""
        return self.params.model_dump(mode="json", by_alias=True)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, target) -> None:
        """Serialize the fitted model to a path or binary file object."""
        from colclust.storage.model_store import save_model

        save_model(self, target)

    @classmethod
    def load(cls, source) -> "BasePartitionalClustering":
        """
        Load a model saved by save().

        Raises:
            ModelFormatError: If the stored algorithm is not this class's
        """
        from colclust.storage.model_store import load_model

        return load_model(source, expected_algorithm=cls.algorithm)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _check_fitted(self) -> None:
        if self.centroids is None:
            raise NotFittedError(f"{self.name} model has no centroids; call fit() first")

    def _check_cluster(self, cluster: int) -> None:
        self._check_fitted()
        if not 0 <= cluster < self.n_clusters:
            raise InvalidInputError(
                f"Cluster index {cluster} out of range [0, {self.n_clusters})"
            )

    def _check_input(self, vectors: FeatureMatrix) -> FeatureMatrix:
        self._check_fitted()
        dim, _ = feature_shape(vectors)
        if dim != self.dim:
            raise InvalidInputError(
                f"Input dimension {dim} does not match model dimension {self.dim}"
            )
        return as_feature_matrix(vectors)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(params={self.get_params()}, "
            f"distance={self.distance.name!r}, n_clusters={self.n_clusters})"
        )
