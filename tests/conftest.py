"""Shared pytest fixtures for curveclust tests."""

import numpy as np
import pytest

from curveclust.config import Config
from curveclust.models.schemas import DistanceMatrix, RawCurve


def constant_curve(key: str, value: float, lo: float, hi: float, n: int = 11) -> RawCurve:
    """Raw curve with constant y over [lo, hi]."""
    xs = np.linspace(lo, hi, n)
    return RawCurve(key=key, x=tuple(float(x) for x in xs), y=tuple(value for _ in xs))


def affine_curve(
    key: str, slope: float, intercept: float, lo: float, hi: float, n: int = 21
) -> RawCurve:
    """Raw curve with y = slope * x + intercept over [lo, hi]."""
    xs = np.linspace(lo, hi, n)
    return RawCurve(
        key=key,
        x=tuple(float(x) for x in xs),
        y=tuple(float(slope * x + intercept) for x in xs),
    )


@pytest.fixture
def sample_config() -> Config:
    """Create a sample configuration."""
    return Config()


@pytest.fixture
def two_cluster_curves() -> dict[str, RawCurve]:
    """Three groups near y=0 and three near y=10, all on [0, 10]."""
    levels = {"A1": 0.0, "A2": 0.5, "A3": 1.0, "B1": 10.0, "B2": 10.5, "B3": 11.0}
    return {key: constant_curve(key, value, 0.0, 10.0) for key, value in levels.items()}


@pytest.fixture
def two_cluster_matrix() -> DistanceMatrix:
    """Distance matrix of two well separated groups of three."""
    levels = np.array([0.0, 0.5, 1.0, 10.0, 10.5, 11.0])
    distances = np.abs(levels[:, None] - levels[None, :])
    return DistanceMatrix.from_numpy(["A1", "A2", "A3", "B1", "B2", "B3"], distances)


@pytest.fixture
def line_matrix() -> DistanceMatrix:
    """Distances between points on a line at 0, 1, 2, 10, 11, 20."""
    points = np.array([0.0, 1.0, 2.0, 10.0, 11.0, 20.0])
    distances = np.abs(points[:, None] - points[None, :])
    return DistanceMatrix.from_numpy(["p0", "p1", "p2", "p3", "p4", "p5"], distances)
