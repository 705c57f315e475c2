#!/usr/bin/env python3
"""
colclust CLI

Command-line interface for clustering feature matrices stored on disk.
Results are printed as JSON on stdout; logs go to stderr.

Usage:
    colclust kmeans data.npy --n-clusters 5            # Fit K-Means
    colclust dpmeans data.csv --lambda 4.0             # Fit DP-Means
    colclust dendrogram data.npy --linkage single      # Build merge sequence
    colclust dendrogram data.npy --n-clusters 3        # ...and cut it
    colclust assign data.npy --model model.npz         # Label with a saved model

Input files hold one instance per column (.npy, .csv, or scipy sparse .npz);
pass --rows-are-instances for the usual one-instance-per-row layout.
"""

import argparse
import json
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import scipy.sparse as sp

from colclust.config.settings_loader import ConfigManager, Settings
from colclust.core.agglomerative_algorithm import cut_dendrogram
from colclust.core.clustering_engine import ClusteringEngine
from colclust.core.linalg import FeatureMatrix
from colclust.storage.model_store import load_model
from colclust.utils.advanced_logging import (
    LogContext,
    configure_logging,
    get_logger,
    log_exceptions,
)
from colclust.utils.error_handling import ClusteringServiceError, InvalidInputError
from colclust.utils.notify import LoggingNotifier


logger = get_logger(__name__)


# =============================================================================
# Input / Output
# =============================================================================


def load_matrix(path: str, rows_are_instances: bool = False) -> FeatureMatrix:
    """
    Read a feature matrix from disk.

    Args:
        path: .npy (dense), .npz (scipy sparse) or .csv file
        rows_are_instances: Transpose so rows become columns

    Returns:
        Feature matrix (D x N)
    """
    suffix = Path(path).suffix.lower()
    if suffix == ".npy":
        matrix = np.load(path, allow_pickle=False)
    elif suffix == ".npz":
        matrix = sp.load_npz(path)
    elif suffix == ".csv":
        matrix = np.loadtxt(path, delimiter=",", ndmin=2)
    else:
        raise InvalidInputError(
            f"Unsupported input format '{suffix}'. Supported: .npy, .npz, .csv",
            details={"path": path},
        )

    if rows_are_instances:
        matrix = matrix.T
    return matrix


def print_json(data: Dict[str, Any], indent: int = 2):
    """Pretty print JSON."""
    print(json.dumps(data, indent=indent, default=str))


def _labels_payload(labels: np.ndarray) -> List[int]:
    return [int(label) for label in labels]


# =============================================================================
# Commands
# =============================================================================


class ClusteringCLI:
    """CLI commands on top of ClusteringEngine."""

    def __init__(self, settings: Settings):
        """
        Initialize CLI.

        Args:
            settings: Loaded settings
        """
        self.settings = settings
        self.engine = ClusteringEngine(settings)
        self.notifier = LoggingNotifier(get_logger("colclust.progress"))

    def partitional(self, args: argparse.Namespace) -> Dict[str, Any]:
        """Fit K-Means or DP-Means."""
        vectors = load_matrix(args.input, args.rows_are_instances)

        if args.command == "kmeans":
            params = {}
            if args.n_clusters is not None:
                params["n_clusters"] = args.n_clusters
        else:
            params = {
                key: value
                for key, value in (
                    ("lambda", args.lambda_),
                    ("min_clusters", args.min_clusters),
                    ("max_clusters", args.max_clusters),
                )
                if value is not None
            }

        model, result = self.engine.cluster(
            vectors,
            algorithm=args.command,
            algorithm_params=params,
            max_iter=args.max_iter,
            random_state=args.seed,
            notifier=self.notifier,
        )

        if args.save:
            model.save(args.save)

        output = {"algorithm": model.name, "params": model.get_params()}
        output.update(result.to_dict())
        output["labels"] = _labels_payload(result.labels)
        output["centroids"] = model.centroids.T.tolist()
        if args.save:
            output["model_path"] = args.save
        return output

    def dendrogram(self, args: argparse.Namespace) -> Dict[str, Any]:
        """Build a dendrogram and optionally cut it into flat clusters."""
        vectors = load_matrix(args.input, args.rows_are_instances)
        dendrogram = self.engine.build_dendrogram(
            vectors,
            linkage=args.linkage,
            distance=args.distance,
            notifier=self.notifier,
        )

        output = dendrogram.model_dump(mode="json")
        if args.n_clusters is not None or args.distance_threshold is not None:
            labels = cut_dendrogram(
                dendrogram.merges,
                dendrogram.n_points,
                n_clusters=args.n_clusters,
                distance_threshold=args.distance_threshold,
            )
            output["labels"] = _labels_payload(labels)
            output["n_clusters"] = int(labels.max()) + 1 if len(labels) else 0
        return output

    def assign(self, args: argparse.Namespace) -> Dict[str, Any]:
        """Label instances with a saved model."""
        model = load_model(args.model)
        vectors = load_matrix(args.input, args.rows_are_instances)
        labels = model.assign(vectors)
        return {
            "algorithm": model.name,
            "n_clusters": model.n_clusters,
            "labels": _labels_payload(labels),
        }


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        prog="colclust",
        description="Cluster column-major feature matrices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to settings YAML")
    parser.add_argument("--log-level", help="Override configured log level")
    parser.add_argument("--log-format", choices=["json", "console"], help="Override configured log format")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("input", help="Feature matrix (.npy, .npz or .csv)")
    common.add_argument(
        "--rows-are-instances",
        action="store_true",
        help="Input holds one instance per row instead of per column",
    )

    fit = argparse.ArgumentParser(add_help=False, parents=[common])
    fit.add_argument("--max-iter", type=int, help="Iteration cap")
    fit.add_argument("--seed", type=int, help="Random seed")
    fit.add_argument("--save", help="Write the fitted model to this path")

    subparsers = parser.add_subparsers(dest="command", required=True)

    kmeans = subparsers.add_parser("kmeans", parents=[fit], help="Fit K-Means")
    kmeans.add_argument("--n-clusters", "-k", type=int, help="Number of clusters")

    dpmeans = subparsers.add_parser("dpmeans", parents=[fit], help="Fit DP-Means")
    dpmeans.add_argument("--lambda", dest="lambda_", type=float, help="Cluster penalty")
    dpmeans.add_argument("--min-clusters", type=int, help="Minimum number of clusters")
    dpmeans.add_argument("--max-clusters", type=int, help="Maximum number of clusters")

    dendrogram = subparsers.add_parser("dendrogram", parents=[common], help="Build a dendrogram")
    dendrogram.add_argument("--linkage", choices=["single", "complete", "average"], help="Linkage rule")
    dendrogram.add_argument("--distance", help="Point distance")
    dendrogram.add_argument("--n-clusters", type=int, help="Cut into this many clusters")
    dendrogram.add_argument("--distance-threshold", type=float, help="Cut at this merge distance")

    assign = subparsers.add_parser("assign", parents=[common], help="Label with a saved model")
    assign.add_argument("--model", required=True, help="Model written by --save")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.config:
            settings = ConfigManager.reload_config(args.config)
        else:
            settings = ConfigManager.get_settings()
    except ClusteringServiceError as e:
        print_json(e.to_dict(), indent=None)
        return 2

    configure_logging(
        log_level=args.log_level or settings.logging.level,
        log_format=args.log_format or settings.logging.format,
        log_file=settings.logging.file,
        service_name=settings.service.name,
    )

    cli = ClusteringCLI(settings)
    commands = {
        "kmeans": cli.partitional,
        "dpmeans": cli.partitional,
        "dendrogram": cli.dendrogram,
        "assign": cli.assign,
    }

    run_id = f"{args.command}-{uuid.uuid4().hex[:8]}"
    try:
        with LogContext.run_context(run_id), log_exceptions(logger, operation=args.command):
            output = commands[args.command](args)
    except (ClusteringServiceError, OSError, ValueError) as e:
        error = e.to_dict() if isinstance(e, ClusteringServiceError) else {
            "error_type": type(e).__name__,
            "message": str(e),
        }
        print(f"❌ {error['message']}", file=sys.stderr)
        print_json({"error": error})
        return 1

    print_json(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
