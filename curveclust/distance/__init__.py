"""Pairwise distance module for curveclust."""

from curveclust.distance.engine import (
    PairwiseDistanceEngine,
    compute_distances,
    compute_overlap,
)

__all__ = ["PairwiseDistanceEngine", "compute_distances", "compute_overlap"]
