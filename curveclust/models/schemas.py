"""Pydantic schemas for curveclust data validation.

This module defines the immutable data carriers passed between pipeline stages:
- RawCurve: (x, y) observations for one group
- Grid: the shared evenly spaced evaluation grid
- ResampledCurve: a smoothed curve evaluated on the grid points inside its domain
- PairOverlap: the domain intersection of two curves
- DistanceMatrix: symmetric group-by-group dissimilarities with explicit undefined cells
- KMetrics / ClusterMetrics: cluster-count selection table
- ClusterAssignment: final group -> cluster mapping
- AnalysisResult: complete pipeline output
"""

import math
from datetime import datetime, timezone

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, model_validator

from curveclust.errors import UndefinedDistanceError

# Relative tolerance used when snapping values onto the grid lattice
GRID_TOLERANCE = 1e-9


# =============================================================================
# Input Curves
# =============================================================================


class RawCurve(BaseModel):
    """Raw observations of one group's growth curve.

    Observations keep the order they were given in; the smoother sorts its own
    copy. At least two distinct x values are required.
    """

    key: str = Field(min_length=1, description="Group key (e.g. protein name)")
    x: tuple[float, ...] = Field(description="Independent variable values")
    y: tuple[float, ...] = Field(description="Measured response values")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_observations(self) -> "RawCurve":
        if len(self.x) != len(self.y):
            raise ValueError(
                f"Curve '{self.key}': x and y lengths differ ({len(self.x)} != {len(self.y)})"
            )
        if not all(math.isfinite(v) for v in self.x + self.y):
            raise ValueError(f"Curve '{self.key}': observations must be finite")
        if len(set(self.x)) < 2:
            raise ValueError(f"Curve '{self.key}': at least 2 distinct x values required")
        return self

    @property
    def domain(self) -> tuple[float, float]:
        """Observed domain [min_x, max_x]."""
        return min(self.x), max(self.x)

    @property
    def n_distinct_x(self) -> int:
        return len(set(self.x))


# =============================================================================
# Evaluation Grid
# =============================================================================


class Grid(BaseModel):
    """Evenly spaced evaluation points over [start, stop].

    ``stop`` is included when it lies on the lattice start + i * step.
    """

    start: float = Field(description="First grid point")
    stop: float = Field(description="Upper bound of the grid")
    step: float = Field(gt=0.0, description="Spacing between grid points")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_bounds(self) -> "Grid":
        if not (math.isfinite(self.start) and math.isfinite(self.stop)):
            raise ValueError("Grid bounds must be finite")
        if self.stop < self.start:
            raise ValueError(f"Grid stop ({self.stop}) is below start ({self.start})")
        return self

    def __len__(self) -> int:
        return int(math.floor((self.stop - self.start) / self.step + GRID_TOLERANCE)) + 1

    @property
    def points(self) -> tuple[float, ...]:
        return tuple(self.point(i) for i in range(len(self)))

    def point(self, index: int) -> float:
        """Grid value at ``index``."""
        return self.start + index * self.step

    def indices_within(self, lo: float, hi: float) -> range:
        """Indices of grid points x with lo <= x <= hi.

        Returns an empty range when the interval holds no grid point.
        """
        if hi < lo:
            return range(0)
        first = math.ceil((lo - self.start) / self.step - GRID_TOLERANCE)
        last = math.floor((hi - self.start) / self.step + GRID_TOLERANCE)
        first = max(first, 0)
        last = min(last, len(self) - 1)
        if last < first:
            return range(0)
        return range(first, last + 1)


# =============================================================================
# Resampled Curves
# =============================================================================


class ResampledCurve(BaseModel):
    """A group's smoothed curve evaluated at the grid points inside its domain."""

    key: str = Field(description="Group key")
    x: tuple[float, ...] = Field(default=(), description="Grid x values, ascending")
    y: tuple[float, ...] = Field(default=(), description="Smoothed values at x")
    indices: tuple[int, ...] = Field(default=(), description="Grid index of each x")
    domain: tuple[float, float] = Field(description="Domain of the smoothed model")
    step: float = Field(gt=0.0, description="Step of the grid the curve was sampled on")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_lengths(self) -> "ResampledCurve":
        if not len(self.x) == len(self.y) == len(self.indices):
            raise ValueError(f"Resampled curve '{self.key}': x, y and indices lengths differ")
        if any(b <= a for a, b in zip(self.indices, self.indices[1:])):
            raise ValueError(f"Resampled curve '{self.key}': indices must be increasing")
        return self

    @property
    def is_empty(self) -> bool:
        return len(self.x) == 0

    def values_by_index(self) -> dict[int, float]:
        """Map grid index -> smoothed value."""
        return dict(zip(self.indices, self.y))

    def value_at(self, x: float) -> float:
        """Smoothed value at grid point ``x``.

        Raises:
            KeyError: If ``x`` is not one of this curve's grid points.
        """
        for xi, yi in zip(self.x, self.y):
            if math.isclose(xi, x, rel_tol=GRID_TOLERANCE, abs_tol=GRID_TOLERANCE * self.step):
                return yi
        raise KeyError(f"{x} is not a grid point of curve '{self.key}'")


class PairOverlap(BaseModel):
    """Intersection [lo, hi] of two curve domains; empty when lo > hi."""

    lo: float
    hi: float

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return self.lo > self.hi

    @property
    def width(self) -> float:
        return self.hi - self.lo


# =============================================================================
# Distance Matrix
# =============================================================================


class DistanceMatrix(BaseModel):
    """Symmetric dissimilarity matrix over group keys.

    Undefined distances (non-overlapping domains, or overlaps holding no grid
    point) are stored as ``None`` and never as a number. The diagonal is 0.
    """

    keys: tuple[str, ...] = Field(description="Group keys, row/column order")
    values: tuple[tuple[float | None, ...], ...] = Field(description="Square matrix")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_matrix(self) -> "DistanceMatrix":
        n = len(self.keys)
        if len(set(self.keys)) != n:
            raise ValueError("Distance matrix keys must be unique")
        if len(self.values) != n or any(len(row) != n for row in self.values):
            raise ValueError(f"Distance matrix must be {n}x{n}")

        for i in range(n):
            if self.values[i][i] != 0.0:
                raise ValueError(f"Diagonal entry for '{self.keys[i]}' must be 0")
            for j in range(i + 1, n):
                a, b = self.values[i][j], self.values[j][i]
                if (a is None) != (b is None):
                    raise ValueError(
                        f"Asymmetric undefined entry for ({self.keys[i]}, {self.keys[j]})"
                    )
                if a is None or b is None:
                    continue
                if not (math.isfinite(a) and a >= 0.0):
                    raise ValueError(
                        f"Distance ({self.keys[i]}, {self.keys[j]}) must be finite and >= 0"
                    )
                if not math.isclose(a, b, rel_tol=1e-9, abs_tol=1e-12):
                    raise ValueError(
                        f"Asymmetric distance for ({self.keys[i]}, {self.keys[j]})"
                    )
        return self

    @classmethod
    def from_numpy(cls, keys: list[str] | tuple[str, ...], array: NDArray[np.float64]) -> "DistanceMatrix":
        """Build a matrix from a square array; NaN cells become undefined."""
        arr = np.asarray(array, dtype=np.float64)
        values = tuple(
            tuple(None if math.isnan(v) else float(v) for v in row) for row in arr
        )
        return cls(keys=tuple(keys), values=values)

    @property
    def size(self) -> int:
        return len(self.keys)

    def index_of(self, key: str) -> int:
        try:
            return self.keys.index(key)
        except ValueError:
            raise KeyError(f"Unknown group key: {key}") from None

    def get(self, a: str, b: str) -> float | None:
        """Distance between groups ``a`` and ``b`` (None when undefined)."""
        return self.values[self.index_of(a)][self.index_of(b)]

    def is_defined(self, a: str, b: str) -> bool:
        return self.get(a, b) is not None

    def undefined_pairs(self) -> list[tuple[str, str]]:
        """All unordered pairs with an undefined distance, in row order."""
        pairs = []
        for i in range(self.size):
            for j in range(i + 1, self.size):
                if self.values[i][j] is None:
                    pairs.append((self.keys[i], self.keys[j]))
        return pairs

    @property
    def is_complete(self) -> bool:
        return not self.undefined_pairs()

    def to_numpy(self) -> NDArray[np.float64]:
        """Convert to a dense float array.

        Raises:
            UndefinedDistanceError: If any entry is undefined.
        """
        undefined = self.undefined_pairs()
        if undefined:
            raise UndefinedDistanceError(undefined)
        return np.array(self.values, dtype=np.float64)


# =============================================================================
# Cluster Selection and Assignment
# =============================================================================


class KMetrics(BaseModel):
    """Cluster-count quality metrics for one k."""

    k: int = Field(ge=1, description="Number of clusters")
    dispersion: float | None = Field(
        default=None, description="Total distance of groups to their medoid"
    )
    silhouette: float | None = Field(
        default=None, description="Average silhouette width (-1 to 1, higher is better)"
    )
    gap: float | None = Field(default=None, description="Gap statistic")
    gap_se: float | None = Field(default=None, description="Monte Carlo standard error of gap")
    medoids: tuple[str, ...] = Field(default=(), description="Medoids of the partition")

    model_config = ConfigDict(frozen=True)


class ClusterMetrics(BaseModel):
    """Per-k metrics table, ordered by k. Picking k is left to the caller."""

    rows: tuple[KMetrics, ...] = Field(default=(), description="One row per candidate k")
    bootstrap_replicates: int = Field(default=0, ge=0, description="Gap reference replicates")

    model_config = ConfigDict(frozen=True)

    @property
    def ks(self) -> list[int]:
        return [row.k for row in self.rows]

    def for_k(self, k: int) -> KMetrics:
        for row in self.rows:
            if row.k == k:
                return row
        raise KeyError(f"No metrics computed for k={k}")

    def column(self, metric: str) -> list[float | None]:
        """Values of one metric ("dispersion", "silhouette", "gap", "gap_se") by k."""
        if metric not in ("dispersion", "silhouette", "gap", "gap_se"):
            raise ValueError(f"Unknown metric: {metric}")
        return [getattr(row, metric) for row in self.rows]


class ClusterAssignment(BaseModel):
    """Partition of groups into k clusters with ids in [0, k)."""

    k: int = Field(ge=1, description="Number of clusters")
    labels: dict[str, int] = Field(description="Group key -> cluster id")
    medoids: tuple[str, ...] = Field(description="Medoid of cluster i at position i")
    cost: float = Field(ge=0.0, description="Sum of distances to the assigned medoid")
    n_iterations: int = Field(default=0, ge=0, description="Accepted swaps")
    converged: bool = Field(default=True, description="False if max_iter was reached")

    model_config = ConfigDict(frozen=True)

    def members(self, cluster_id: int) -> list[str]:
        return sorted(key for key, label in self.labels.items() if label == cluster_id)

    @property
    def cluster_sizes(self) -> dict[int, int]:
        sizes = {cluster_id: 0 for cluster_id in range(self.k)}
        for label in self.labels.values():
            sizes[label] += 1
        return sizes


# =============================================================================
# Complete Analysis Result
# =============================================================================


class AnalysisMetadata(BaseModel):
    """Metadata for an analysis run."""

    source: str = Field(default="", description="Source file or dataset identifier")
    analysis_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the analysis was run",
    )
    n_groups: int = Field(default=0, description="Number of groups clustered")
    grid: Grid | None = Field(default=None, description="Evaluation grid used")
    degree: int | None = Field(default=None, description="Local polynomial degree")
    span: float | None = Field(default=None, description="Loess span")


class AnalysisResult(BaseModel):
    """Complete analysis result from the curveclust pipeline.

    Contains:
    - Metadata about the run
    - Resampled curves per group
    - The pairwise distance matrix
    - Cluster-count metrics and the final assignment, when requested
    - Groups excluded for insufficient data, with the reason
    """

    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)
    resampled: dict[str, ResampledCurve] = Field(default_factory=dict)
    distances: DistanceMatrix = Field(
        default_factory=lambda: DistanceMatrix(keys=(), values=())
    )
    metrics: ClusterMetrics | None = None
    assignment: ClusterAssignment | None = None
    excluded_groups: dict[str, str] = Field(default_factory=dict)
