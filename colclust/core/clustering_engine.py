"""
Clustering Engine - Orchestrates clustering operations.

Main entry point for clustering functionality.
Manages algorithm selection, merges configured defaults with per-call
parameters, and runs partitional fits and dendrogram builds.
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from colclust.config.settings_loader import Settings, get_settings
from colclust.core.agglomerative_algorithm import AgglomerativeAlgorithm
from colclust.core.base_clustering import (
    BasePartitionalClustering,
    ClusteringConfig,
    ClusteringResult,
)
from colclust.core.dpmeans_algorithm import DPMeansAlgorithm
from colclust.core.kmeans_algorithm import KMeansAlgorithm
from colclust.core.linalg import FeatureMatrix, feature_shape
from colclust.schemas.data_models import AgglomerativeParams, Dendrogram
from colclust.utils.advanced_logging import get_logger
from colclust.utils.error_handling import ClusteringServiceError, InvalidAlgorithmError, log_error
from colclust.utils.notify import Notifier

logger = get_logger(__name__)


class ClusteringEngine:
    """
    Main clustering engine that orchestrates different algorithms.

    Provides a unified interface for all clustering operations regardless
    of the underlying algorithm.
    """

    # Registry of available partitional algorithms
    ALGORITHMS = {
        "kmeans": KMeansAlgorithm,
        "dpmeans": DPMeansAlgorithm,
    }

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize clustering engine.

        Args:
            settings: Settings to draw defaults from (global settings if None)
        """
        self.settings = settings or get_settings()
        logger.info(
            "clustering_engine_initialized",
            default_algorithm=self.settings.clustering.default_algorithm.value,
        )

    def _resolve_algorithm(self, algorithm: Optional[str]) -> str:
        if algorithm is None:
            return self.settings.clustering.default_algorithm.value
        name = str(getattr(algorithm, "value", algorithm)).lower()
        if name not in self.ALGORITHMS:
            raise InvalidAlgorithmError(
                f"Unsupported algorithm '{name}'. "
                f"Supported: {list(self.ALGORITHMS.keys())}",
                details={"algorithm": name},
            )
        return name

    def default_params(self, algorithm: str) -> Dict[str, Any]:
        """Configured parameters of `algorithm`, keyed as the algorithm expects."""
        algorithm = self._resolve_algorithm(algorithm)
        section = getattr(self.settings.clustering.algorithms, algorithm)
        return section.model_dump(mode="json", by_alias=True)

    def create_model(
        self,
        algorithm: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        distance: Optional[str] = None,
        random_state: Optional[int] = None,
    ) -> BasePartitionalClustering:
        """
        Instantiate an unfitted partitional model.

        Args:
            algorithm: kmeans or dpmeans (configured default if None)
            params: Overrides for the configured algorithm parameters
            distance: Distance name (configured distance if None)
            random_state: Seed (configured seed if None)

        Returns:
            Unfitted model

        Raises:
            InvalidAlgorithmError: If algorithm is not supported
            ConfigurationError: If the merged parameters do not validate
        """
        algorithm = self._resolve_algorithm(algorithm)
        clustering = self.settings.clustering

        overrides = dict(params or {})
        if "lambda_" in overrides:
            overrides["lambda"] = overrides.pop("lambda_")
        merged = {**self.default_params(algorithm), **overrides}

        config = ClusteringConfig(
            algorithm_name=algorithm,
            params=merged,
            distance=distance or clustering.distance.value,
            random_state=random_state if random_state is not None else clustering.random_state,
            compute_quality_metrics=clustering.compute_quality_metrics,
        )
        return self.ALGORITHMS[algorithm](config)

    def cluster(
        self,
        vectors: FeatureMatrix,
        algorithm: Optional[str] = None,
        algorithm_params: Optional[Dict[str, Any]] = None,
        max_iter: Optional[int] = None,
        distance: Optional[str] = None,
        random_state: Optional[int] = None,
        notifier: Optional[Notifier] = None,
    ) -> Tuple[BasePartitionalClustering, ClusteringResult]:
        """
        Perform clustering using the specified algorithm.

        Args:
            vectors: Feature matrix (D x N)
            algorithm: Algorithm name (kmeans/dpmeans)
            algorithm_params: Algorithm-specific parameter overrides
            max_iter: Iteration cap (configured cap if None)
            distance: Distance name override
            random_state: Seed override
            notifier: Progress sink

        Returns:
            Tuple of (fitted model, ClusteringResult)
        """
        model = self.create_model(algorithm, algorithm_params, distance, random_state)
        if max_iter is None:
            max_iter = self.settings.clustering.max_iter

        dim, n_inst = feature_shape(vectors)
        logger.info(
            "clustering_started",
            algorithm=model.name,
            n_vectors=n_inst,
            dim=dim,
            params=model.get_params(),
        )

        try:
            result = model.fit(vectors, max_iter=max_iter, notifier=notifier)
        except ClusteringServiceError as e:
            log_error("cluster", e, {"algorithm": model.name})
            raise

        logger.info(
            "clustering_completed",
            algorithm=model.name,
            n_clusters=result.n_clusters,
            n_iter=result.n_iter,
            converged=result.converged,
        )
        return model, result

    def build_dendrogram(
        self,
        vectors: FeatureMatrix,
        linkage: Optional[str] = None,
        distance: Optional[str] = None,
        notifier: Optional[Notifier] = None,
    ) -> Dendrogram:
        """
        Build the full agglomerative merge sequence.

        Args:
            vectors: Feature matrix (D x N)
            linkage: Linkage name (configured linkage if None)
            distance: Distance name (configured distance if None)
            notifier: Progress sink

        Returns:
            Dendrogram with N-1 merges
        """
        configured = self.settings.clustering.algorithms.agglomerative
        params = AgglomerativeParams(
            linkage=linkage or configured.linkage,
            distance=distance or configured.distance,
        )
        algorithm = AgglomerativeAlgorithm.from_params(params, notifier=notifier)

        _, n_inst = feature_shape(vectors)
        merges = algorithm.build_dendrogram(vectors)

        logger.info(
            "dendrogram_built",
            n_points=n_inst,
            linkage=params.linkage.value,
            n_merges=len(merges),
        )
        return Dendrogram(
            n_points=n_inst,
            linkage=params.linkage,
            distance=params.distance,
            merges=merges,
        )

    def validate_clustering_config(
        self,
        algorithm: str,
        params: Dict[str, Any],
    ) -> Dict[str, str]:
        """
        Validate clustering configuration.

        Args:
            algorithm: Algorithm name (kmeans/dpmeans/agglomerative)
            params: Algorithm parameters

        Returns:
            Dictionary of validation errors (empty if valid)
        """
        errors: Dict[str, str] = {}

        if algorithm == "agglomerative":
            params_model = AgglomerativeParams
        elif algorithm in self.ALGORITHMS:
            params_model = self.ALGORITHMS[algorithm].params_model
            params = {**self.default_params(algorithm), **params}
        else:
            errors["algorithm"] = f"Unsupported algorithm '{algorithm}'"
            return errors

        try:
            params_model(**params)
        except ValidationError as e:
            for error in e.errors(include_url=False):
                field = ".".join(str(part) for part in error["loc"]) or "config"
                errors[field] = error["msg"]

        return errors
