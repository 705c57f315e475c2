"""
Agglomerative linkage strategies.

Each strategy folds cluster slot j into slot i of a symmetric cluster
distance matrix. Only row and column i change; slot j keeps its stale values
and is skipped by the driver once its item count drops to zero.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Union

import numpy as np

from colclust.schemas.data_models import LinkageMethod
from colclust.utils.error_handling import ConfigurationError


class LinkageStrategy(ABC):
    """Rule deriving the distance of a merged cluster to every other cluster."""

    name: str = ""

    def join_clusters(
        self,
        dist_matrix: np.ndarray,
        item_counts: np.ndarray,
        i: int,
        j: int,
    ) -> None:
        """
        Update row/column i of `dist_matrix` to represent i merged with j.

        Must be called before the caller updates `item_counts`.

        Args:
            dist_matrix: Square cluster distance matrix, modified in place
            item_counts: Points per cluster slot (0 = inactive)
            i: Surviving slot
            j: Slot being folded into i
        """
        others = item_counts > 0
        others[i] = False
        others[j] = False
        if not others.any():
            return

        merged = self._combine(
            dist_matrix[i, others],
            dist_matrix[j, others],
            int(item_counts[i]),
            int(item_counts[j]),
        )
        dist_matrix[i, others] = merged
        dist_matrix[others, i] = merged

    @abstractmethod
    def _combine(
        self,
        dist_i: np.ndarray,
        dist_j: np.ndarray,
        count_i: int,
        count_j: int,
    ) -> np.ndarray:
        """Distances of the merged cluster given distances of its two parts."""
        pass


class SingleLinkage(LinkageStrategy):
    """Nearest members."""

    name = LinkageMethod.SINGLE.value

    def _combine(self, dist_i, dist_j, count_i, count_j):
        return np.minimum(dist_i, dist_j)


class CompleteLinkage(LinkageStrategy):
    """Farthest members."""

    name = LinkageMethod.COMPLETE.value

    def _combine(self, dist_i, dist_j, count_i, count_j):
        return np.maximum(dist_i, dist_j)


class AverageLinkage(LinkageStrategy):
    """Size-weighted mean (Lance-Williams UPGMA form)."""

    name = LinkageMethod.AVERAGE.value

    def _combine(self, dist_i, dist_j, count_i, count_j):
        return (count_i * dist_i + count_j * dist_j) / (count_i + count_j)


# Registry of available linkages
LINKAGES = {
    LinkageMethod.SINGLE: SingleLinkage,
    LinkageMethod.COMPLETE: CompleteLinkage,
    LinkageMethod.AVERAGE: AverageLinkage,
}


def get_linkage_strategy(
    linkage: Union[str, LinkageMethod, LinkageStrategy, None] = None,
) -> LinkageStrategy:
    """
    Resolve a linkage name to a strategy instance.

    Args:
        linkage: Name, enum member, ready strategy (returned as is) or None
            for average linkage

    Raises:
        ConfigurationError: If the name is unknown
    """
    if isinstance(linkage, LinkageStrategy):
        return linkage
    if linkage is None:
        linkage = LinkageMethod.AVERAGE

    value = linkage.value if isinstance(linkage, Enum) else str(linkage).lower()
    try:
        method = LinkageMethod(value)
    except ValueError:
        raise ConfigurationError(
            f"Unsupported linkage '{value}'. Supported: {[m.value for m in LINKAGES]}",
            details={"linkage": value},
        )
    return LINKAGES[method]()
