"""curveclust - clustering of growth curves by shape.

Smooths each group's curve with local regression, compares the curves on a
shared grid over their common domain, and groups them around medoids.
"""

from curveclust.analyzer import CurveClusterAnalyzer, analyze
from curveclust.config import Config, load_config
from curveclust.models.schemas import AnalysisResult

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "CurveClusterAnalyzer",
    "analyze",
    "Config",
    "load_config",
    "AnalysisResult",
]
