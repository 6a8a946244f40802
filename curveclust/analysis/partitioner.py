"""Partition around medoids (PAM) on a precomputed distance matrix.

The build phase picks medoids greedily; the swap phase applies the first
strictly improving (medoid, non-medoid) exchange found scanning medoid
positions in order and candidates by ascending group index, and repeats until
no swap improves the total cost or ``max_iter`` swaps have been accepted.
There is no randomness, so results depend only on the matrix and k.
"""

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from curveclust.models.schemas import ClusterAssignment, DistanceMatrix

logger = logging.getLogger(__name__)

# Minimum cost reduction for a swap to count as an improvement
IMPROVEMENT_TOLERANCE = 1e-12


@dataclass
class PamResult:
    """Raw PAM output on index positions."""

    medoids: list[int]  # ascending group index; cluster id i has medoids[i]
    labels: NDArray[np.int64]
    cost: float
    n_iterations: int
    converged: bool


def total_cost(distances: NDArray[np.float64], medoids: list[int]) -> float:
    """Sum over all points of the distance to the nearest medoid."""
    return float(distances[medoids].min(axis=0).sum())


def _build(distances: NDArray[np.float64], k: int) -> list[int]:
    n = distances.shape[0]
    medoids = [int(np.argmin(distances.sum(axis=1)))]
    nearest = distances[medoids[0]].copy()

    while len(medoids) < k:
        best, best_cost = -1, np.inf
        for candidate in range(n):
            if candidate in medoids:
                continue
            cost = float(np.minimum(nearest, distances[candidate]).sum())
            if cost < best_cost:
                best, best_cost = candidate, cost
        medoids.append(best)
        nearest = np.minimum(nearest, distances[best])

    return medoids


def _first_improving_swap(
    distances: NDArray[np.float64], medoids: list[int], current: float
) -> tuple[list[int], float] | None:
    n = distances.shape[0]
    for position in range(len(medoids)):
        for candidate in range(n):
            if candidate in medoids:
                continue
            trial = list(medoids)
            trial[position] = candidate
            cost = total_cost(distances, trial)
            if current - cost > IMPROVEMENT_TOLERANCE:
                return trial, cost
    return None


def assign(distances: NDArray[np.float64], medoids: list[int]) -> NDArray[np.int64]:
    """Label each point with the id of its nearest medoid.

    ``medoids`` must be in ascending order; ties go to the lowest medoid index
    and every medoid belongs to its own cluster.
    """
    labels = np.argmin(distances[medoids], axis=0).astype(np.int64)
    for cluster_id, medoid in enumerate(medoids):
        labels[medoid] = cluster_id
    return labels


def pam(distances: NDArray[np.float64], k: int, max_iter: int = 100) -> PamResult:
    """Run PAM on a dense distance array.

    Args:
        distances: Square symmetric array with zero diagonal.
        k: Number of clusters, 1 <= k <= n.
        max_iter: Maximum number of accepted swaps.

    Returns:
        PamResult with medoids sorted by group index.
    """
    n = distances.shape[0]
    if not 1 <= k <= n:
        raise ValueError(f"k must be between 1 and {n}, got {k}")
    if max_iter < 1:
        raise ValueError("max_iter must be at least 1")

    medoids = _build(distances, k)
    cost = total_cost(distances, medoids)

    n_iterations = 0
    converged = False
    while n_iterations < max_iter:
        swap = _first_improving_swap(distances, medoids, cost)
        if swap is None:
            converged = True
            break
        medoids, cost = swap
        n_iterations += 1

    if not converged:
        converged = _first_improving_swap(distances, medoids, cost) is None

    medoids = sorted(medoids)
    labels = assign(distances, medoids)
    cost = float(distances[medoids][labels, np.arange(n)].sum())
    return PamResult(
        medoids=medoids,
        labels=labels,
        cost=cost,
        n_iterations=n_iterations,
        converged=converged,
    )


class Partitioner:
    """Assigns groups to k clusters with PAM.

    Example:
        >>> assignment = Partitioner().partition(matrix, k=3)
        >>> assignment.members(0)
    """

    def __init__(self, max_iter: int = 100) -> None:
        self.max_iter = max_iter

    def partition(self, matrix: DistanceMatrix, k: int) -> ClusterAssignment:
        """Partition the groups of ``matrix`` into ``k`` clusters.

        Args:
            matrix: Complete distance matrix.
            k: Number of clusters (1 <= k <= number of groups).

        Returns:
            ClusterAssignment with cluster ids in [0, k).

        Raises:
            UndefinedDistanceError: If any distance in the matrix is undefined.
            ValueError: If k is out of range.
        """
        distances = matrix.to_numpy()
        if not 1 <= k <= matrix.size:
            raise ValueError(f"k must be between 1 and {matrix.size}, got {k}")

        result = pam(distances, k, max_iter=self.max_iter)
        if not result.converged:
            logger.warning(f"PAM for k={k} stopped after {self.max_iter} swaps without converging")
        logger.debug(
            f"PAM k={k}: cost={result.cost:.6g}, swaps={result.n_iterations}, "
            f"medoids={[matrix.keys[m] for m in result.medoids]}"
        )

        return ClusterAssignment(
            k=k,
            labels={key: int(label) for key, label in zip(matrix.keys, result.labels)},
            medoids=tuple(matrix.keys[m] for m in result.medoids),
            cost=result.cost,
            n_iterations=result.n_iterations,
            converged=result.converged,
        )


def partition(matrix: DistanceMatrix, k: int, max_iter: int = 100) -> ClusterAssignment:
    """Partition groups into k clusters around medoids."""
    return Partitioner(max_iter=max_iter).partition(matrix, k)
