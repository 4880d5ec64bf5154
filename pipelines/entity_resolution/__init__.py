"""Near-duplicate clustering of ads into stacks."""

from .resolver import ClusteringInvariantError, ClusteringResult, DuplicateClusterer

__all__ = ["ClusteringInvariantError", "ClusteringResult", "DuplicateClusterer"]
