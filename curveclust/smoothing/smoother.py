"""Curve smoother: turns raw group observations into loess models.

Groups are independent, so they are fitted through the ParallelProcessor.
Groups with too few distinct x values either abort the run or are excluded,
depending on the configured policy; excluded groups are always reported.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal

from curveclust.config import SmoothingConfig
from curveclust.errors import InsufficientDataError
from curveclust.models.schemas import RawCurve
from curveclust.smoothing.loess import LoessModel
from curveclust.utils.parallel import ParallelProcessor

logger = logging.getLogger(__name__)

InsufficientDataPolicy = Literal["abort", "exclude"]


@dataclass
class SmoothingReport:
    """Models fitted by the smoother plus the groups it had to leave out."""

    models: dict[str, LoessModel]
    excluded: dict[str, InsufficientDataError] = field(default_factory=dict)


class CurveSmoother:
    """Fits a LoessModel to each group's raw curve.

    Example:
        >>> smoother = CurveSmoother(degree=2, span=0.75)
        >>> model = smoother.fit(raw_curve)
        >>> report = smoother.fit_all(raw_curves, on_insufficient="exclude")
    """

    def __init__(
        self,
        degree: int = 2,
        span: float = 0.75,
        max_concurrency: int = 1,
    ) -> None:
        """Initialize the smoother.

        Args:
            degree: Local polynomial degree (0, 1 or 2).
            span: Neighborhood size as a fraction of each group's observations.
            max_concurrency: Worker threads used by fit_all.
        """
        self.degree = degree
        self.span = span
        self.max_concurrency = max_concurrency

    @classmethod
    def from_config(cls, config: SmoothingConfig, max_concurrency: int = 1) -> "CurveSmoother":
        return cls(degree=config.degree, span=config.span, max_concurrency=max_concurrency)

    def fit(self, curve: RawCurve) -> LoessModel:
        """Fit one group.

        Raises:
            InsufficientDataError: If the curve cannot support the degree.
        """
        model = LoessModel(curve.key, curve.x, curve.y, degree=self.degree, span=self.span)
        logger.debug(
            f"Smoothed '{curve.key}': {model.n_observations} points, "
            f"domain {model.domain}, neighborhood {model.neighborhood_size}"
        )
        return model

    def fit_all(
        self,
        raw_curves: dict[str, RawCurve],
        on_insufficient: InsufficientDataPolicy = "abort",
        insufficient: dict[str, InsufficientDataError] | None = None,
    ) -> SmoothingReport:
        """Fit every group.

        Args:
            raw_curves: Group key -> raw curve.
            on_insufficient: "abort" raises the first InsufficientDataError (in
                sorted key order); "exclude" drops those groups and reports them.
            insufficient: Groups already known to lack data, such as those a
                loader could not turn into a RawCurve. They go through the same
                policy as groups that fail to smooth.

        Returns:
            SmoothingReport with models ordered by group key.

        Raises:
            InsufficientDataError: Under the abort policy.
        """
        if on_insufficient not in ("abort", "exclude"):
            raise ValueError(f"Unknown insufficient-data policy: {on_insufficient}")

        keys = sorted(raw_curves)
        for key in keys:
            if raw_curves[key].key != key:
                raise ValueError(
                    f"Curve stored under '{key}' has key '{raw_curves[key].key}'"
                )
        prior = dict(insufficient or {})
        overlap = sorted(set(prior) & set(raw_curves))
        if overlap:
            raise ValueError(f"Groups both loaded and marked insufficient: {', '.join(overlap)}")

        logger.info(f"Smoothing {len(keys)} groups (degree={self.degree}, span={self.span})")

        def log_failure(index: int, error: Exception) -> None:
            logger.error(f"Cannot smooth group '{keys[index]}': {error}")

        processor: ParallelProcessor[RawCurve, LoessModel] = ParallelProcessor(
            process_fn=self.fit,
            max_concurrency=self.max_concurrency,
            on_error=log_failure,
        )
        results = processor.process([raw_curves[key] for key in keys])

        for key, error in prior.items():
            logger.error(f"Cannot smooth group '{key}': {error}")

        models: dict[str, LoessModel] = {}
        failed: dict[str, InsufficientDataError] = dict(prior)
        for key, result in zip(keys, results):
            if result.success:
                assert result.result is not None
                models[key] = result.result
            elif isinstance(result.error, InsufficientDataError):
                failed[key] = result.error
            else:
                assert result.error is not None
                raise result.error

        excluded = {key: failed[key] for key in sorted(failed)}
        if excluded:
            if on_insufficient == "abort":
                raise next(iter(excluded.values()))
            logger.warning(
                f"Excluded {len(excluded)} group(s) with insufficient data: "
                f"{', '.join(excluded)}"
            )

        return SmoothingReport(models=models, excluded=excluded)


def smooth(
    raw_curves: dict[str, RawCurve],
    config: SmoothingConfig | None = None,
    on_insufficient: InsufficientDataPolicy = "abort",
    max_concurrency: int = 1,
) -> dict[str, LoessModel]:
    """Smooth every group's raw curve.

    Args:
        raw_curves: Group key -> raw curve.
        config: Degree and span; defaults to SmoothingConfig().
        on_insufficient: "abort" or "exclude" (excluded groups are logged).
        max_concurrency: Worker threads.

    Returns:
        Group key -> LoessModel, ordered by key.
    """
    smoother = CurveSmoother.from_config(config or SmoothingConfig(), max_concurrency)
    return smoother.fit_all(raw_curves, on_insufficient=on_insufficient).models
