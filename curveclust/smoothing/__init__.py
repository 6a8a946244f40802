"""Smoothing module for curveclust.

Fits a loess model to each group's raw observations.
"""

from curveclust.smoothing.loess import LoessModel, tricube
from curveclust.smoothing.smoother import CurveSmoother, SmoothingReport, smooth

__all__ = ["LoessModel", "tricube", "CurveSmoother", "SmoothingReport", "smooth"]
