"""Clustering analysis module for curveclust.

This module clusters groups from their pairwise distance matrix.

Main components:
- Partitioner: Partition around medoids (PAM) for a fixed k
- ClusterSelector: Dispersion, silhouette and gap statistic for a range of k
- suggest_k: Heuristic k from one metric column (advisory)
"""

from curveclust.analysis.partitioner import Partitioner, PamResult, pam, partition
from curveclust.analysis.selector import (
    ClusterSelector,
    SelectionStrategy,
    classical_mds,
    select_k,
    suggest_k,
)

__all__ = [
    # Partitioning
    "Partitioner",
    "PamResult",
    "pam",
    "partition",
    # Cluster-count selection
    "ClusterSelector",
    "SelectionStrategy",
    "classical_mds",
    "select_k",
    "suggest_k",
]
