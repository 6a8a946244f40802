"""Pairwise distance engine for resampled curves.

For every pair of groups the distance is the sum of absolute differences at
the grid points both curves share, divided by the width of the overlap of the
two smoothed models' domains:

    d(i, j) = sum_{x in S} |y_i(x) - y_j(x)| * step / (hi - lo)

The step factor makes the distance a mean absolute discrepancy per unit of x,
so refining the grid leaves it essentially unchanged; it can be turned off to
divide the raw sum directly. For a grid step of 1 both forms are identical.

A pair whose domains do not intersect, or whose overlap holds no grid point,
has an undefined distance (``None`` in the matrix).
"""

import logging
import math

import numpy as np

from curveclust.config import DistanceConfig
from curveclust.errors import DegenerateIntervalError
from curveclust.models.schemas import DistanceMatrix, PairOverlap, ResampledCurve
from curveclust.smoothing.loess import LoessModel
from curveclust.utils.parallel import parallel_map

logger = logging.getLogger(__name__)


def compute_overlap(a: tuple[float, float], b: tuple[float, float]) -> PairOverlap:
    """Intersection of two domains; empty (lo > hi) when they do not meet."""
    return PairOverlap(lo=max(a[0], b[0]), hi=min(a[1], b[1]))


class PairwiseDistanceEngine:
    """Builds the symmetric distance matrix over all groups.

    Example:
        >>> engine = PairwiseDistanceEngine()
        >>> matrix = engine.compute(resampled, models)
        >>> matrix.get("P1", "P2")
    """

    def __init__(
        self,
        min_overlap_width: float = 1e-9,
        step_weighted: bool = True,
        max_concurrency: int = 1,
    ) -> None:
        """Initialize the engine.

        Args:
            min_overlap_width: Overlaps narrower than this that still hold grid
                points raise DegenerateIntervalError.
            step_weighted: Multiply the absolute-difference sum by the grid step.
            max_concurrency: Worker threads; one task per matrix row.
        """
        if min_overlap_width < 0:
            raise ValueError("min_overlap_width must be non-negative")
        self.min_overlap_width = min_overlap_width
        self.step_weighted = step_weighted
        self.max_concurrency = max_concurrency

    @classmethod
    def from_config(cls, config: DistanceConfig, max_concurrency: int = 1) -> "PairwiseDistanceEngine":
        return cls(
            min_overlap_width=config.min_overlap_width,
            step_weighted=config.step_weighted,
            max_concurrency=max_concurrency,
        )

    def pair_distance(
        self,
        a: ResampledCurve,
        b: ResampledCurve,
        domain_a: tuple[float, float],
        domain_b: tuple[float, float],
    ) -> float | None:
        """Normalized distance between two curves.

        Args:
            a: First resampled curve.
            b: Second resampled curve.
            domain_a: Domain of the model behind ``a``.
            domain_b: Domain of the model behind ``b``.

        Returns:
            The distance, or None when it is undefined.

        Raises:
            DegenerateIntervalError: If the overlap holds grid points but is
                too narrow to divide by.
        """
        pair = (a.key, b.key)
        overlap = compute_overlap(domain_a, domain_b)
        if overlap.is_empty:
            logger.debug(f"Pair {pair}: domains do not overlap")
            return None

        values_a = a.values_by_index()
        values_b = b.values_by_index()
        shared = sorted(set(values_a) & set(values_b))
        if not shared:
            logger.debug(
                f"Pair {pair}: overlap [{overlap.lo}, {overlap.hi}] holds no grid point"
            )
            return None

        width = overlap.width
        if width <= 0.0 or width < self.min_overlap_width:
            raise DegenerateIntervalError(pair, width, self.min_overlap_width)

        diffs = np.abs(
            np.array([values_a[i] for i in shared]) - np.array([values_b[i] for i in shared])
        )
        raw = float(diffs.sum())
        if self.step_weighted:
            raw *= a.step

        distance = raw / width
        if not math.isfinite(distance):
            raise DegenerateIntervalError(pair, width, self.min_overlap_width)
        return distance

    def compute(
        self,
        resampled: dict[str, ResampledCurve],
        models: dict[str, LoessModel],
    ) -> DistanceMatrix:
        """Compute the full distance matrix.

        Args:
            resampled: Group key -> resampled curve.
            models: Group key -> smoothed model, used for the domain bounds.

        Returns:
            DistanceMatrix with rows and columns in sorted key order.

        Raises:
            ValueError: If a curve has no model or curves come from different grids.
            DegenerateIntervalError: If any overlap is too narrow. Every pair is
                checked first and the error lists all degenerate pairs.
        """
        keys = sorted(resampled)
        missing = [key for key in keys if key not in models]
        if missing:
            raise ValueError(f"No smoothed model for group(s): {', '.join(missing)}")

        steps = sorted({resampled[key].step for key in keys})
        if steps and not math.isclose(steps[0], steps[-1]):
            raise ValueError(f"Resampled curves come from grids with different steps: {steps}")

        n = len(keys)
        logger.info(f"Computing distances for {n} groups ({n * (n - 1) // 2} pairs)")

        curves = [resampled[key] for key in keys]
        domains = [models[key].domain for key in keys]

        def compute_row(i: int) -> tuple[list[float | None], list[DegenerateIntervalError]]:
            row: list[float | None] = []
            degenerate: list[DegenerateIntervalError] = []
            for j in range(i + 1, n):
                try:
                    row.append(self.pair_distance(curves[i], curves[j], domains[i], domains[j]))
                except DegenerateIntervalError as e:
                    degenerate.append(e)
                    row.append(None)
            return row, degenerate

        rows = parallel_map(list(range(n)), compute_row, max_concurrency=self.max_concurrency)

        failures = [error for _, degenerate in rows for error in degenerate]
        if failures:
            for error in failures:
                logger.error(f"Degenerate overlap: {error}")
            first = failures[0]
            raise DegenerateIntervalError(
                first.pair, first.width, first.epsilon, pairs=[error.pair for error in failures]
            )

        values: list[list[float | None]] = [[0.0] * n for _ in range(n)]
        for i, (row, _) in enumerate(rows):
            for offset, distance in enumerate(row):
                j = i + 1 + offset
                values[i][j] = distance
                values[j][i] = distance

        matrix = DistanceMatrix(keys=tuple(keys), values=tuple(tuple(row) for row in values))

        undefined = matrix.undefined_pairs()
        for a, b in undefined:
            logger.debug(f"Undefined distance for ({a}, {b})")
        logger.info(f"Distance matrix complete: {len(undefined)} undefined pair(s)")
        return matrix


def compute_distances(
    resampled: dict[str, ResampledCurve],
    models: dict[str, LoessModel],
    config: DistanceConfig | None = None,
    max_concurrency: int = 1,
) -> DistanceMatrix:
    """Compute the pairwise distance matrix for resampled curves.

    Args:
        resampled: Group key -> resampled curve.
        models: Group key -> smoothed model (domain bounds).
        config: Overlap epsilon and normalization; defaults to DistanceConfig().
        max_concurrency: Worker threads.

    Returns:
        The symmetric DistanceMatrix, undefined pairs stored as None.
    """
    engine = PairwiseDistanceEngine.from_config(config or DistanceConfig(), max_concurrency)
    return engine.compute(resampled, models)
