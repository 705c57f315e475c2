"""
Distance strategies.

A DistanceStrategy computes point-to-set and set-to-set distances between
columns of feature matrices. EuclideanDistance expands
|x - c|^2 = |x|^2 - 2 x.c + |c|^2 so the whole matrix costs two matrix
products plus two norm vectors.

Callers that iterate (K-Means, DP-Means) keep the norm vectors themselves and
pass them back in on every call; strategies never hold hidden caches.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Union

import numpy as np

from colclust.core.linalg import (
    FeatureMatrix,
    as_feature_matrix,
    as_vector,
    col_norm2,
    cross_product,
)
from colclust.schemas.data_models import DistanceMetric
from colclust.utils.error_handling import (
    ConfigurationError,
    DistanceNotImplementedError,
    InvalidInputError,
    NumericalInstabilityError,
)

# Squared distances below this are a bug, not rounding noise
NEGATIVE_TOLERANCE = -1e-8


class DistanceStrategy(ABC):
    """
    Abstract distance between column vectors.

    Implementations must return non-negative values and keep
    pairwise() == sqrt(pairwise_squared()) element-wise. Swapping the
    operands must return the exact transpose.
    """

    name: str = ""

    @abstractmethod
    def point_to_set(self, centroids: FeatureMatrix, point) -> np.ndarray:
        """
        Distance from one point to every column of `centroids`.

        Args:
            centroids: Matrix (D x K)
            point: Vector of length D

        Returns:
            Array of K distances
        """
        pass

    @abstractmethod
    def pairwise_squared(
        self,
        X: FeatureMatrix,
        Y: FeatureMatrix,
        norm_x: Optional[np.ndarray] = None,
        norm_y: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Squared distances between columns of X and columns of Y.

        Args:
            X: Matrix (D x Nx)
            Y: Matrix (D x Ny)
            norm_x: Optional cached output of refresh_column_squared_norms(X)
            norm_y: Optional cached output of refresh_column_squared_norms(Y)

        Returns:
            Matrix (Nx x Ny), entry [i, j] relates X[:, i] to Y[:, j]
        """
        pass

    def pairwise(self, X: FeatureMatrix, Y: FeatureMatrix) -> np.ndarray:
        """Distances between columns of X and columns of Y (Nx x Ny)."""
        dist = self.pairwise_squared(X, Y)
        np.maximum(dist, 0.0, out=dist)
        np.sqrt(dist, out=dist)
        return dist

    def refresh_column_squared_norms(
        self, matrix: FeatureMatrix, out: Optional[np.ndarray] = None
    ) -> Optional[np.ndarray]:
        """
        Recompute the per-column cache consumed by pairwise_squared().

        Strategies without a cache return None; pairwise_squared() then
        computes whatever it needs on each call.
        """
        return None


class EuclideanDistance(DistanceStrategy):
    """Euclidean distance through the norm expansion."""

    name = DistanceMetric.EUCLIDEAN.value

    def point_to_set(self, centroids: FeatureMatrix, point) -> np.ndarray:
        centroids = as_feature_matrix(centroids)
        x = as_vector(point)
        if x.shape[0] != centroids.shape[0]:
            raise InvalidInputError(
                f"Point has dimension {x.shape[0]}, centroids have {centroids.shape[0]}"
            )

        # |c|^2 - 2 x.c + |x|^2
        dist = col_norm2(centroids)
        dist -= 2.0 * cross_product(centroids, x.reshape(-1, 1)).ravel()
        dist += float(x @ x)

        _clamp_negative(dist)
        np.sqrt(dist, out=dist)
        return dist

    def pairwise_squared(
        self,
        X: FeatureMatrix,
        Y: FeatureMatrix,
        norm_x: Optional[np.ndarray] = None,
        norm_y: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        same = X is Y
        X = as_feature_matrix(X)
        Y = as_feature_matrix(Y)
        if X.shape[0] != Y.shape[0]:
            raise InvalidInputError(
                f"Dimension mismatch: {X.shape[0]} rows vs {Y.shape[0]} rows"
            )

        if norm_x is None:
            norm_x = col_norm2(X)
        if norm_y is None:
            norm_y = col_norm2(Y)

        # X^T Y + (Y^T X)^T: each entry adds the same two dot products whichever
        # operand comes first, so pairwise_squared(Y, X) is exactly the transpose
        cross = cross_product(X, Y)
        if same:
            cross = cross + cross.T
        else:
            cross += cross_product(Y, X).T

        dist = norm_x[:, np.newaxis] + norm_y[np.newaxis, :]
        dist -= cross

        _clamp_negative(dist)
        return dist

    def refresh_column_squared_norms(
        self, matrix: FeatureMatrix, out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        return col_norm2(as_feature_matrix(matrix), out=out)


def _clamp_negative(values: np.ndarray) -> None:
    """Zero rounding noise in place; raise on anything below the tolerance."""
    if values.size == 0:
        return
    lowest = float(values.min())
    if lowest < NEGATIVE_TOLERANCE:
        raise NumericalInstabilityError(
            "Distance lower than numerical error!",
            details={"min_value": lowest, "tolerance": NEGATIVE_TOLERANCE},
        )
    np.maximum(values, 0.0, out=values)


# Registry of implemented metrics
DISTANCES = {
    DistanceMetric.EUCLIDEAN: EuclideanDistance,
}


def get_distance_strategy(
    metric: Union[str, DistanceMetric, DistanceStrategy, None] = None,
) -> DistanceStrategy:
    """
    Resolve a metric name to a fresh strategy instance.

    Args:
        metric: Metric name, enum member, ready strategy (returned as is) or
            None for Euclidean

    Raises:
        DistanceNotImplementedError: For metrics that are named but not implemented
        ConfigurationError: For unknown metric names
    """
    if isinstance(metric, DistanceStrategy):
        return metric
    if metric is None:
        metric = DistanceMetric.EUCLIDEAN

    value = metric.value if isinstance(metric, Enum) else str(metric).lower()
    try:
        metric = DistanceMetric(value)
    except ValueError:
        raise ConfigurationError(
            f"Unsupported distance '{value}'. Supported: {[m.value for m in DISTANCES]}",
            details={"metric": value},
        )

    if metric not in DISTANCES:
        raise DistanceNotImplementedError(
            f"Distance '{metric.value}' is not implemented",
            details={"metric": metric.value},
        )

    return DISTANCES[metric]()
