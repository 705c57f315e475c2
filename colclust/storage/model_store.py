"""
Model Store

Persists fitted partitional models (K-Means, DP-Means) as numpy .npz
archives:
- `header`: JSON document (format, version, algorithm, distance, params,
  shape, random generator state)
- `centroids`: the (D x K) centroid matrix

Archives are read with allow_pickle=False, so loading never executes code
from the file.
"""

import json
import os
import zipfile
from typing import Any, BinaryIO, Dict, Optional, Union

import numpy as np
from pydantic import ValidationError

from colclust.core.base_clustering import BasePartitionalClustering, ClusteringConfig
from colclust.core.dpmeans_algorithm import DPMeansAlgorithm
from colclust.core.kmeans_algorithm import KMeansAlgorithm
from colclust.schemas.data_models import ClusterAlgorithm, DistanceMetric, ModelHeader
from colclust.utils.advanced_logging import get_logger
from colclust.utils.error_handling import ModelFormatError


logger = get_logger(__name__)

FORMAT_NAME = "colclust.partitional-model"
FORMAT_VERSION = 1

MODEL_CLASSES = {
    ClusterAlgorithm.KMEANS: KMeansAlgorithm,
    ClusterAlgorithm.DPMEANS: DPMeansAlgorithm,
}

# Bit generators whose state is plain data and may be rebuilt by name
SUPPORTED_BIT_GENERATORS = ("PCG64", "PCG64DXSM", "MT19937")

PathOrFile = Union[str, os.PathLike, BinaryIO]


# =============================================================================
# Random generator state
# =============================================================================


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.integer):
        return int(value)
    return value


def rng_state(rng: np.random.Generator) -> Dict[str, Any]:
    """JSON-ready snapshot of a Generator's bit generator state."""
    bit_generator = getattr(rng, "bit_generator", None)
    if bit_generator is None:
        raise ModelFormatError(
            f"Cannot persist random generator of type {type(rng).__name__}"
        )
    state = _jsonable(bit_generator.state)
    if state.get("bit_generator") not in SUPPORTED_BIT_GENERATORS:
        raise ModelFormatError(
            f"Unsupported bit generator: {state.get('bit_generator')}",
            details={"supported": list(SUPPORTED_BIT_GENERATORS)},
        )
    return state


def restore_rng(state: Dict[str, Any]) -> np.random.Generator:
    """Rebuild a Generator that continues exactly where the saved one stopped."""
    name = state.get("bit_generator")
    if name not in SUPPORTED_BIT_GENERATORS:
        raise ModelFormatError(
            f"Unsupported bit generator: {name}",
            details={"supported": list(SUPPORTED_BIT_GENERATORS)},
        )

    bit_generator = getattr(np.random, name)()
    if name == "MT19937":
        state = dict(state, state=dict(state["state"]))
        state["state"]["key"] = np.asarray(state["state"]["key"], dtype=np.uint32)
    try:
        bit_generator.state = state
    except (TypeError, ValueError, KeyError) as e:
        raise ModelFormatError(f"Invalid {name} state: {e}") from e
    return np.random.Generator(bit_generator)


# =============================================================================
# Save / Load
# =============================================================================


def save_model(model: BasePartitionalClustering, target: PathOrFile) -> None:
    """
    Write a fitted model to a path or a binary file object.

    Args:
        model: Fitted K-Means or DP-Means model
        target: File path or writable binary file object

    Raises:
        NotFittedError: If the model has no centroids
        ModelFormatError: If the random generator state cannot be persisted
    """
    model._check_fitted()

    header = ModelHeader(
        format=FORMAT_NAME,
        version=FORMAT_VERSION,
        algorithm=model.algorithm,
        distance=DistanceMetric(model.distance.name),
        params=model.get_params(),
        dim=model.dim,
        n_clusters=model.n_clusters,
        random_state=model.config.random_state,
        rng_state=rng_state(model.rng),
    )
    arrays = {
        "header": np.array(json.dumps(header.model_dump(mode="json"))),
        "centroids": np.ascontiguousarray(model.centroids, dtype=np.float64),
    }

    if hasattr(target, "write"):
        np.savez(target, **arrays)
    else:
        # Opened explicitly so numpy does not append a .npz suffix
        with open(target, "wb") as f:
            np.savez(f, **arrays)

    logger.info(
        "model_saved",
        algorithm=header.algorithm.value,
        n_clusters=header.n_clusters,
        dim=header.dim,
    )


def load_model(
    source: PathOrFile,
    expected_algorithm: Optional[Union[str, ClusterAlgorithm]] = None,
) -> BasePartitionalClustering:
    """
    Read a model written by save_model().

    Args:
        source: File path or readable binary file object
        expected_algorithm: Reject archives holding a different algorithm

    Returns:
        KMeansAlgorithm or DPMeansAlgorithm with centroids, params, distance
        and random generator restored

    Raises:
        ModelFormatError: If the archive is malformed, of an unknown format
            or version, or holds an unexpected algorithm
    """
    try:
        archive = np.load(source, allow_pickle=False)
    except FileNotFoundError:
        raise
    except (ValueError, OSError, EOFError, zipfile.BadZipFile) as e:
        raise ModelFormatError(f"Not a readable model archive: {e}") from e

    if not isinstance(archive, np.lib.npyio.NpzFile):
        raise ModelFormatError("Expected an .npz archive, found a single array")

    with archive:
        if "header" not in archive.files or "centroids" not in archive.files:
            raise ModelFormatError(
                "Archive is missing the header or centroids entry",
                details={"entries": list(archive.files)},
            )
        try:
            raw_header = str(archive["header"][()])
            centroids = np.array(archive["centroids"], dtype=np.float64)
        except (ValueError, zipfile.BadZipFile) as e:
            raise ModelFormatError(f"Corrupt model archive: {e}") from e

    header = _parse_header(raw_header)

    if expected_algorithm is not None:
        expected = ClusterAlgorithm(expected_algorithm)
        if header.algorithm != expected:
            raise ModelFormatError(
                f"Expected a {expected.value} model, found {header.algorithm.value}",
                details={"expected": expected.value, "found": header.algorithm.value},
            )

    model_class = MODEL_CLASSES.get(header.algorithm)
    if model_class is None:
        raise ModelFormatError(f"Algorithm {header.algorithm.value} has no persisted form")

    if centroids.shape != (header.dim, header.n_clusters):
        raise ModelFormatError(
            f"Centroid shape {centroids.shape} does not match header "
            f"({header.dim}, {header.n_clusters})"
        )

    rng = restore_rng(header.rng_state) if header.rng_state is not None else None
    config = ClusteringConfig(
        algorithm_name=header.algorithm.value,
        params=header.params,
        distance=header.distance.value,
        random_state=header.random_state,
    )
    model = model_class(config, rng=rng)
    model.centroids = centroids

    logger.info(
        "model_loaded",
        algorithm=header.algorithm.value,
        n_clusters=header.n_clusters,
        dim=header.dim,
    )
    return model


def _parse_header(raw_header: str) -> ModelHeader:
    try:
        header = ModelHeader.model_validate(json.loads(raw_header))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ModelFormatError(f"Invalid model header: {e}") from e

    if header.format != FORMAT_NAME:
        raise ModelFormatError(
            f"Unknown model format '{header.format}'",
            details={"expected": FORMAT_NAME},
        )
    if header.version > FORMAT_VERSION:
        raise ModelFormatError(
            f"Model format version {header.version} is newer than supported version {FORMAT_VERSION}"
        )
    return header
