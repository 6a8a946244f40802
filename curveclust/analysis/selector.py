"""Cluster-count selection metrics.

For each candidate k the selector runs PAM and reports:

- Dispersion: total distance of every group to its medoid
- Average silhouette width, with singleton clusters contributing 0
- Gap statistic with its Monte Carlo standard error

The gap statistic needs point coordinates for its uniform reference data, so
the distance matrix is first embedded with classical multidimensional scaling.
Observed and reference dispersions are both PAM costs on Euclidean distances
in that embedding.

The selector reports metrics only. ``suggest_k`` applies a common heuristic
to one metric column but choosing k is left to the caller.
"""

import logging
import math
from enum import Enum

import numpy as np
from numpy.typing import NDArray
from sklearn.metrics import pairwise_distances, silhouette_samples

from curveclust.analysis.partitioner import pam
from curveclust.config import SelectionConfig
from curveclust.models.schemas import ClusterMetrics, DistanceMatrix, KMetrics
from curveclust.utils.parallel import parallel_map

logger = logging.getLogger(__name__)

# Floor added to dispersions before taking logs
LOG_FLOOR = 1e-10


class SelectionStrategy(str, Enum):
    """Metrics the selector can compute for each k."""

    DISPERSION = "dispersion"
    SILHOUETTE = "silhouette"
    GAP_STATISTIC = "gap_statistic"


ALL_STRATEGIES = frozenset(SelectionStrategy)


def classical_mds(distances: NDArray[np.float64]) -> NDArray[np.float64]:
    """Principal coordinates of a distance matrix.

    Only axes with positive eigenvalues are kept. If there are none (all
    distances zero) a single zero column is returned.

    Args:
        distances: Square symmetric distance array.

    Returns:
        Array of shape (n, d), axes ordered by decreasing eigenvalue.
    """
    n = distances.shape[0]
    centering = np.eye(n) - np.full((n, n), 1.0 / n)
    gram = -0.5 * centering @ (distances**2) @ centering

    eigenvalues, eigenvectors = np.linalg.eigh(gram)
    order = np.argsort(eigenvalues)[::-1]
    eigenvalues = eigenvalues[order]
    eigenvectors = eigenvectors[:, order]

    scale = max(float(np.abs(eigenvalues).max()), 1.0) if n else 1.0
    keep = eigenvalues > 1e-10 * scale
    if not keep.any():
        return np.zeros((n, 1))
    return eigenvectors[:, keep] * np.sqrt(eigenvalues[keep])


def average_silhouette(distances: NDArray[np.float64], labels: NDArray[np.int64]) -> float:
    """Mean silhouette width over all groups; singletons count as 0."""
    widths = silhouette_samples(distances, labels, metric="precomputed")
    return float(np.mean(np.nan_to_num(widths, nan=0.0)))


def gap_statistic(
    embedded_distances: NDArray[np.float64],
    reference_distances: list[NDArray[np.float64]],
    k: int,
    max_iter: int = 100,
) -> tuple[float, float]:
    """Gap and standard error for one k.

    gap = mean_b log(W*_kb) - log(W_k); se = sd_b(log W*_kb) * sqrt(1 + 1/B).

    Args:
        embedded_distances: Distances between the embedded groups.
        reference_distances: One distance array per reference dataset.
        k: Number of clusters.
        max_iter: PAM swap limit.

    Returns:
        (gap, standard error).
    """
    observed = pam(embedded_distances, k, max_iter=max_iter).cost
    log_w = math.log(observed + LOG_FLOOR)

    ref_log_w = np.array(
        [math.log(pam(ref, k, max_iter=max_iter).cost + LOG_FLOOR) for ref in reference_distances]
    )
    b = len(reference_distances)
    gap = float(ref_log_w.mean() - log_w)
    se = float(ref_log_w.std() * math.sqrt(1.0 + 1.0 / b))
    return gap, se


class ClusterSelector:
    """Computes per-k clustering quality metrics.

    Example:
        >>> selector = ClusterSelector(k_min=2, k_max=6, bootstrap_replicates=50)
        >>> metrics = selector.select(matrix)
        >>> metrics.column("silhouette")
    """

    def __init__(
        self,
        k_min: int = 2,
        k_max: int = 8,
        bootstrap_replicates: int = 100,
        random_state: int = 42,
        strategies: set[SelectionStrategy] | frozenset[SelectionStrategy] | None = None,
        max_iter: int = 100,
        max_concurrency: int = 1,
    ) -> None:
        """Initialize the selector.

        Args:
            k_min: Smallest candidate k (at least 2).
            k_max: Largest candidate k.
            bootstrap_replicates: Reference datasets for the gap statistic;
                0 disables it.
            random_state: Seed for the reference datasets.
            strategies: Metrics to compute; all of them by default.
            max_iter: PAM swap limit.
            max_concurrency: Worker threads, one task per k.
        """
        if k_min < 2:
            raise ValueError(f"k_min must be at least 2, got {k_min}")
        if k_max < k_min:
            raise ValueError(f"k_max ({k_max}) must not be below k_min ({k_min})")
        if bootstrap_replicates < 0:
            raise ValueError("bootstrap_replicates must be non-negative")

        self.k_min = k_min
        self.k_max = k_max
        self.bootstrap_replicates = bootstrap_replicates
        self.random_state = random_state
        self.strategies = frozenset(strategies) if strategies is not None else ALL_STRATEGIES
        self.max_iter = max_iter
        self.max_concurrency = max_concurrency

    @classmethod
    def from_config(
        cls,
        config: SelectionConfig,
        strategies: set[SelectionStrategy] | None = None,
        max_concurrency: int = 1,
    ) -> "ClusterSelector":
        return cls(
            k_min=config.k_min,
            k_max=config.k_max,
            bootstrap_replicates=config.bootstrap_replicates,
            random_state=config.random_state,
            strategies=strategies,
            max_iter=config.max_iter,
            max_concurrency=max_concurrency,
        )

    @property
    def computes_gap(self) -> bool:
        return SelectionStrategy.GAP_STATISTIC in self.strategies and self.bootstrap_replicates > 0

    def select(self, matrix: DistanceMatrix) -> ClusterMetrics:
        """Compute the metrics table over [k_min, k_max].

        Args:
            matrix: Complete distance matrix.

        Returns:
            ClusterMetrics with one row per k, in ascending k.

        Raises:
            UndefinedDistanceError: If any distance is undefined.
            ValueError: If k_max exceeds the number of groups minus one.
        """
        distances = matrix.to_numpy()
        n = matrix.size
        if self.k_max > n - 1:
            raise ValueError(
                f"k_max ({self.k_max}) must be at most n - 1 = {n - 1} for {n} groups"
            )

        ks = list(range(self.k_min, self.k_max + 1))
        logger.info(
            f"Computing cluster metrics for k={self.k_min}..{self.k_max} on {n} groups "
            f"({', '.join(sorted(s.value for s in self.strategies))})"
        )

        embedded_distances: NDArray[np.float64] | None = None
        references: list[NDArray[np.float64]] = []
        if self.computes_gap:
            embedded_distances, references = self._reference_data(distances)

        def compute_k(k: int) -> KMetrics:
            result = pam(distances, k, max_iter=self.max_iter)
            silhouette = None
            if SelectionStrategy.SILHOUETTE in self.strategies:
                silhouette = average_silhouette(distances, result.labels)
            gap = gap_se = None
            if embedded_distances is not None:
                gap, gap_se = gap_statistic(embedded_distances, references, k, self.max_iter)

            logger.debug(
                f"k={k}: dispersion={result.cost:.6g}, silhouette={silhouette}, gap={gap}"
            )
            return KMetrics(
                k=k,
                dispersion=result.cost if SelectionStrategy.DISPERSION in self.strategies else None,
                silhouette=silhouette,
                gap=gap,
                gap_se=gap_se,
                medoids=tuple(matrix.keys[m] for m in result.medoids),
            )

        rows = parallel_map(ks, compute_k, max_concurrency=self.max_concurrency)
        return ClusterMetrics(
            rows=tuple(rows),
            bootstrap_replicates=self.bootstrap_replicates if self.computes_gap else 0,
        )

    def _reference_data(
        self, distances: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], list[NDArray[np.float64]]]:
        embedding = classical_mds(distances)
        mins = embedding.min(axis=0)
        maxs = embedding.max(axis=0)
        logger.debug(
            f"Gap reference: {embedding.shape[1]} embedded dimension(s), "
            f"{self.bootstrap_replicates} replicates"
        )

        rng = np.random.default_rng(self.random_state)
        references = [
            pairwise_distances(rng.uniform(mins, maxs, size=embedding.shape))
            for _ in range(self.bootstrap_replicates)
        ]
        return pairwise_distances(embedding), references


def select_k(
    matrix: DistanceMatrix,
    k_range: tuple[int, int] = (2, 8),
    bootstrap_replicates: int = 100,
    random_state: int = 42,
    strategies: set[SelectionStrategy] | None = None,
    max_iter: int = 100,
    max_concurrency: int = 1,
) -> ClusterMetrics:
    """Compute dispersion, silhouette and gap metrics for each k in k_range.

    Args:
        matrix: Complete distance matrix.
        k_range: Inclusive (k_min, k_max).
        bootstrap_replicates: Reference datasets for the gap statistic.
        random_state: Seed for the reference datasets.
        strategies: Metrics to compute; all by default.
        max_iter: PAM swap limit.
        max_concurrency: Worker threads.

    Returns:
        The per-k metrics table.
    """
    k_min, k_max = k_range
    selector = ClusterSelector(
        k_min=k_min,
        k_max=k_max,
        bootstrap_replicates=bootstrap_replicates,
        random_state=random_state,
        strategies=strategies,
        max_iter=max_iter,
        max_concurrency=max_concurrency,
    )
    return selector.select(matrix)


def suggest_k(metrics: ClusterMetrics, strategy: SelectionStrategy) -> int:
    """Suggest a k from one metric column.

    - SILHOUETTE: k with the largest average silhouette (smallest k on ties)
    - GAP_STATISTIC: smallest k with gap_k >= gap_{k+1} - se_{k+1}, falling back
      to the largest gap
    - DISPERSION: elbow, the k with the largest second difference

    Raises:
        ValueError: If the metric was not computed or there are too few rows.
    """
    rows = list(metrics.rows)

    if strategy == SelectionStrategy.SILHOUETTE:
        scored = [(row.k, row.silhouette) for row in rows if row.silhouette is not None]
        if not scored:
            raise ValueError("Silhouette was not computed")
        best = max(value for _, value in scored)
        return next(k for k, value in scored if value == best)

    if strategy == SelectionStrategy.GAP_STATISTIC:
        scored_gap = [row for row in rows if row.gap is not None and row.gap_se is not None]
        if not scored_gap:
            raise ValueError("Gap statistic was not computed")
        for current, following in zip(scored_gap, scored_gap[1:]):
            assert current.gap is not None and following.gap is not None
            assert following.gap_se is not None
            if current.gap >= following.gap - following.gap_se:
                return current.k
        return max(scored_gap, key=lambda row: row.gap if row.gap is not None else -math.inf).k

    dispersion = [(row.k, row.dispersion) for row in rows if row.dispersion is not None]
    if len(dispersion) < 3:
        raise ValueError("Elbow needs dispersion for at least 3 values of k")
    values = np.array([value for _, value in dispersion])
    second_diff = values[:-2] - 2 * values[1:-1] + values[2:]
    return dispersion[int(np.argmax(second_diff)) + 1][0]
