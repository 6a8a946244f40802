"""Main curveclust analyzer orchestrating the clustering pipeline.

This module provides the main entry point for clustering groups by the shape
of their curves:

1. Smoothing: loess fit per group
2. Resampling: evaluate every fit on the shared grid
3. Distances: domain-aware normalized pairwise distances
4. Selection: per-k dispersion, silhouette and gap statistic (optional)
5. Partitioning: PAM for a chosen k (optional)
"""

import logging
from pathlib import Path

from curveclust.analysis.partitioner import Partitioner
from curveclust.analysis.selector import ClusterSelector
from curveclust.config import Config, SelectionConfig
from curveclust.distance.engine import PairwiseDistanceEngine
from curveclust.errors import InsufficientDataError
from curveclust.models.schemas import (
    AnalysisMetadata,
    AnalysisResult,
    ClusterMetrics,
    DistanceMatrix,
    RawCurve,
)
from curveclust.resampling.resampler import GridResampler
from curveclust.smoothing.smoother import CurveSmoother
from curveclust.utils.curve_loader import read_curves_csv

logger = logging.getLogger(__name__)


class CurveClusterAnalyzer:
    """Main orchestrator for the curveclust pipeline.

    Each stage consumes the previous stage's immutable output:
    raw curves -> loess models -> resampled curves -> distance matrix ->
    {cluster metrics, cluster assignment}.
    """

    def __init__(self, config: Config | None = None) -> None:
        """Initialize the analyzer.

        Args:
            config: Configuration object. If None, uses defaults.
        """
        self.config = config or Config()
        workers = self.config.processing.max_concurrency

        self.grid = self.config.grid.to_grid()
        self.smoother = CurveSmoother.from_config(self.config.smoothing, max_concurrency=workers)
        self.resampler = GridResampler(self.grid, max_concurrency=workers)
        self.distance_engine = PairwiseDistanceEngine.from_config(
            self.config.distance, max_concurrency=workers
        )
        self.partitioner = Partitioner(max_iter=self.config.selection.max_iter)

    def analyze(
        self,
        raw_curves: dict[str, RawCurve],
        k: int | None = None,
        select: bool = True,
        source: str = "",
        insufficient: dict[str, InsufficientDataError] | None = None,
    ) -> AnalysisResult:
        """Run the pipeline on raw curves.

        Args:
            raw_curves: Group key -> raw curve.
            k: Number of clusters for the final partition; skipped when None.
            select: Whether to compute the per-k metrics table.
            source: Identifier recorded in the result metadata.
            insufficient: Groups that could not be built into raw curves; they
                are aborted on or excluded like groups that fail to smooth.

        Returns:
            AnalysisResult with resampled curves, distances and, when requested,
            metrics and assignment.

        Raises:
            InsufficientDataError: Under the abort policy.
            UndefinedDistanceError: If clustering is requested on an incomplete matrix.
        """
        logger.info(f"Starting curveclust analysis of {len(raw_curves)} groups")

        logger.info("Stage 1: Smoothing")
        report = self.smoother.fit_all(
            raw_curves,
            on_insufficient=self.config.processing.on_insufficient_data,
            insufficient=insufficient,
        )

        logger.info("Stage 2: Resampling")
        resampled = self.resampler.resample(report.models)

        logger.info("Stage 3: Distances")
        distances = self.distance_engine.compute(resampled, report.models)

        metrics = None
        if select:
            logger.info("Stage 4: Cluster-count metrics")
            metrics = self._select(distances)

        assignment = None
        if k is not None:
            logger.info(f"Stage 5: Partitioning into {k} clusters")
            assignment = self.partitioner.partition(distances, k)

        metadata = AnalysisMetadata(
            source=source,
            n_groups=len(report.models),
            grid=self.grid,
            degree=self.config.smoothing.degree,
            span=self.config.smoothing.span,
        )
        logger.info(f"Analysis complete: {len(report.models)} groups clustered")

        return AnalysisResult(
            metadata=metadata,
            resampled=resampled,
            distances=distances,
            metrics=metrics,
            assignment=assignment,
            excluded_groups={key: str(error) for key, error in report.excluded.items()},
        )

    def _select(self, distances: DistanceMatrix) -> ClusterMetrics | None:
        selection = self.config.selection
        k_max = min(selection.k_max, distances.size - 1)
        if k_max < selection.k_min:
            logger.warning(
                f"Skipping cluster-count metrics: {distances.size} groups cannot support "
                f"k_min={selection.k_min}"
            )
            return None
        if k_max < selection.k_max:
            logger.warning(f"Limiting k_max to {k_max} for {distances.size} groups")

        selector = ClusterSelector.from_config(
            SelectionConfig(**{**selection.model_dump(), "k_max": k_max}),
            max_concurrency=self.config.processing.max_concurrency,
        )
        return selector.select(distances)

    def analyze_file(
        self,
        file_path: str | Path,
        group_col: str = "group",
        x_col: str = "x",
        y_col: str = "y",
        k: int | None = None,
        select: bool = True,
    ) -> AnalysisResult:
        """Analyze a long-format CSV file.

        Args:
            file_path: Path to the CSV file.
            group_col: Column holding the group key.
            x_col: Column holding the independent variable.
            y_col: Column holding the response.
            k: Number of clusters for the final partition.
            select: Whether to compute the per-k metrics table.

        Returns:
            AnalysisResult with complete analysis data.
        """
        file_path = Path(file_path)
        loaded = read_curves_csv(file_path, group_col=group_col, x_col=x_col, y_col=y_col)
        return self.analyze(
            loaded.curves,
            k=k,
            select=select,
            source=str(file_path),
            insufficient=loaded.insufficient,
        )


def analyze(
    raw_curves: dict[str, RawCurve],
    k: int | None = None,
    config: Config | None = None,
    select: bool = True,
) -> AnalysisResult:
    """Convenience function to run the pipeline with minimal setup.

    Args:
        raw_curves: Group key -> raw curve.
        k: Number of clusters for the final partition (optional).
        config: Configuration object (optional).
        select: Whether to compute the per-k metrics table.

    Returns:
        AnalysisResult with complete analysis data.
    """
    analyzer = CurveClusterAnalyzer(config=config)
    return analyzer.analyze(raw_curves, k=k, select=select)
