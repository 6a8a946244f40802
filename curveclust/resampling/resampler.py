"""Grid resampler: evaluates smoothed models on the shared evaluation grid.

Only grid points inside a model's observed domain are evaluated, so every
resampled curve is a subset of the same grid and curves can be compared point
by point through their grid indices.
"""

import logging

import numpy as np

from curveclust.models.schemas import Grid, ResampledCurve
from curveclust.smoothing.loess import LoessModel
from curveclust.utils.parallel import parallel_map

logger = logging.getLogger(__name__)


def make_grid(start: float, stop: float, step: float) -> Grid:
    """Build an evenly spaced grid over [start, stop]."""
    return Grid(start=start, stop=stop, step=step)


class GridResampler:
    """Evaluates LoessModels at the grid points inside their domains.

    Example:
        >>> resampler = GridResampler(make_grid(0, 100, 1))
        >>> curve = resampler.resample_one(model)
        >>> curve.x[0], curve.x[-1]
    """

    def __init__(self, grid: Grid, max_concurrency: int = 1) -> None:
        self.grid = grid
        self.max_concurrency = max_concurrency

    def resample_one(self, model: LoessModel) -> ResampledCurve:
        """Evaluate one model in ascending grid order.

        An empty curve is returned when no grid point falls inside the domain.
        """
        lo, hi = model.domain
        indices = self.grid.indices_within(lo, hi)
        if not indices:
            logger.debug(f"No grid point inside domain of '{model.key}' [{lo}, {hi}]")
            return ResampledCurve(key=model.key, domain=(lo, hi), step=self.grid.step)

        xs = np.array([self.grid.point(i) for i in indices], dtype=np.float64)
        # Snap end points that sit on the domain boundary within tolerance
        xs = np.clip(xs, lo, hi)
        ys = np.asarray(model.predict(xs), dtype=np.float64)

        return ResampledCurve(
            key=model.key,
            x=tuple(float(v) for v in xs),
            y=tuple(float(v) for v in ys),
            indices=tuple(indices),
            domain=(lo, hi),
            step=self.grid.step,
        )

    def resample(self, models: dict[str, LoessModel]) -> dict[str, ResampledCurve]:
        """Evaluate every model.

        Args:
            models: Group key -> smoothed model.

        Returns:
            Group key -> resampled curve, ordered by key.
        """
        keys = sorted(models)
        logger.info(
            f"Resampling {len(keys)} groups on grid [{self.grid.start}, {self.grid.stop}] "
            f"step {self.grid.step} ({len(self.grid)} points)"
        )
        curves = parallel_map(
            [models[key] for key in keys],
            self.resample_one,
            max_concurrency=self.max_concurrency,
        )

        empty = [curve.key for curve in curves if curve.is_empty]
        if empty:
            logger.info(f"{len(empty)} group(s) have no grid point in their domain: {', '.join(empty)}")

        return dict(zip(keys, curves))


def resample(
    models: dict[str, LoessModel],
    grid: Grid,
    max_concurrency: int = 1,
) -> dict[str, ResampledCurve]:
    """Evaluate each smoothed model on the shared grid.

    Args:
        models: Group key -> smoothed model.
        grid: Shared evaluation grid.
        max_concurrency: Worker threads.

    Returns:
        Group key -> resampled curve, ordered by key.
    """
    return GridResampler(grid, max_concurrency=max_concurrency).resample(models)
