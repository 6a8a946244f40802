"""Resampling module for curveclust."""

from curveclust.resampling.resampler import GridResampler, make_grid, resample

__all__ = ["GridResampler", "make_grid", "resample"]
