"""Tests for the main curveclust analyzer."""

import json
from pathlib import Path

import pytest
from conftest import constant_curve

from curveclust.analyzer import CurveClusterAnalyzer, analyze
from curveclust.config import Config
from curveclust.errors import InsufficientDataError, UndefinedDistanceError
from curveclust.models.schemas import AnalysisResult, RawCurve


@pytest.fixture
def unit_config() -> Config:
    """Grid over [0, 10] with step 1, few gap replicates, sequential."""
    return Config(
        grid={"start": 0, "stop": 10, "step": 1},
        selection={"k_min": 2, "k_max": 4, "bootstrap_replicates": 10},
        processing={"max_concurrency": 1},
    )


class TestCurveClusterAnalyzer:
    """Tests for the CurveClusterAnalyzer class."""

    def test_init_with_config(self, unit_config: Config) -> None:
        """Test analyzer initialization with config."""
        analyzer = CurveClusterAnalyzer(config=unit_config)

        assert analyzer.config == unit_config
        assert len(analyzer.grid) == 11
        assert analyzer.smoother.degree == 2

    def test_init_defaults(self) -> None:
        """Test analyzer initialization with defaults."""
        analyzer = CurveClusterAnalyzer()
        assert analyzer.config == Config()

    def test_full_pipeline(
        self, unit_config: Config, two_cluster_curves: dict[str, RawCurve]
    ) -> None:
        """Test the whole pipeline recovers two groups of curves."""
        result = CurveClusterAnalyzer(unit_config).analyze(two_cluster_curves, k=2, source="test")

        assert isinstance(result, AnalysisResult)
        assert result.metadata.source == "test"
        assert result.metadata.n_groups == 6
        assert list(result.resampled) == ["A1", "A2", "A3", "B1", "B2", "B3"]
        assert result.distances.is_complete
        assert result.distances.get("A1", "B1") == pytest.approx(11.0)

        assert result.metrics is not None
        assert result.metrics.ks == [2, 3, 4]
        silhouettes = result.metrics.column("silhouette")
        assert silhouettes[0] == max(silhouettes)

        assert result.assignment is not None
        labels = result.assignment.labels
        assert labels["A1"] == labels["A2"] == labels["A3"]
        assert labels["B1"] == labels["B2"] == labels["B3"]
        assert labels["A1"] != labels["B1"]

    def test_k_max_limited_to_group_count(
        self, two_cluster_curves: dict[str, RawCurve]
    ) -> None:
        """Test the candidate range is limited to n - 1 clusters."""
        config = Config(
            grid={"start": 0, "stop": 10, "step": 1},
            selection={"k_max": 8, "bootstrap_replicates": 0},
        )
        result = CurveClusterAnalyzer(config).analyze(two_cluster_curves)

        assert result.metrics is not None
        assert result.metrics.ks == [2, 3, 4, 5]

    def test_selection_skipped_for_two_groups(self, unit_config: Config) -> None:
        """Test two groups are too few for cluster-count metrics."""
        curves = {
            "a": constant_curve("a", 0.0, 0, 10),
            "b": constant_curve("b", 1.0, 0, 10),
        }
        result = CurveClusterAnalyzer(unit_config).analyze(curves)
        assert result.metrics is None

    def test_exclude_insufficient(
        self, two_cluster_curves: dict[str, RawCurve]
    ) -> None:
        """Test groups with too few points are excluded and reported."""
        config = Config(
            grid={"start": 0, "stop": 10, "step": 1},
            selection={"bootstrap_replicates": 0},
            processing={"on_insufficient_data": "exclude"},
        )
        curves = dict(two_cluster_curves)
        curves["short"] = RawCurve(key="short", x=(0.0, 10.0), y=(1.0, 1.0))

        result = CurveClusterAnalyzer(config).analyze(curves, select=False)

        assert "short" in result.excluded_groups
        assert "short" not in result.resampled
        assert result.metadata.n_groups == 6

    def test_abort_insufficient(self, unit_config: Config) -> None:
        """Test the abort policy stops the pipeline."""
        curves = {
            "ok": constant_curve("ok", 1.0, 0, 10),
            "short": RawCurve(key="short", x=(0.0, 10.0), y=(1.0, 1.0)),
        }
        with pytest.raises(InsufficientDataError):
            CurveClusterAnalyzer(unit_config).analyze(curves)

    def test_undefined_distances_block_clustering(self, unit_config: Config) -> None:
        """Test disjoint domains block clustering but not the distance matrix."""
        curves = {
            "a": constant_curve("a", 0.0, 0, 4),
            "b": constant_curve("b", 0.0, 6, 10),
            "c": constant_curve("c", 0.0, 0, 10),
        }
        analyzer = CurveClusterAnalyzer(unit_config)

        result = analyzer.analyze(curves, select=False)
        assert result.distances.undefined_pairs() == [("a", "b")]

        with pytest.raises(UndefinedDistanceError):
            analyzer.analyze(curves, k=2, select=False)

    def test_analyze_file(self, unit_config: Config, tmp_path: Path) -> None:
        """Test analyzing a CSV file."""
        lines = ["group,x,y"]
        for key, level in [("g1", 0.0), ("g2", 0.2), ("g3", 5.0), ("g4", 5.2)]:
            lines += [f"{key},{x},{level}" for x in range(11)]
        path = tmp_path / "curves.csv"
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        result = CurveClusterAnalyzer(unit_config).analyze_file(path, k=2)

        assert result.metadata.source == str(path)
        assert result.assignment is not None
        assert result.assignment.members(0) == ["g1", "g2"]

    def test_analyze_file_single_row_group(self, tmp_path: Path) -> None:
        """Test a one-row group is excluded or aborted according to the policy."""
        lines = ["group,x,y"]
        for key, level in [("A", 0.0), ("B", 1.0), ("C", 5.0)]:
            lines += [f"{key},{x},{level}" for x in range(10)]
        lines.append("D,3,1.0")
        path = tmp_path / "curves.csv"
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        grid = {"start": 0, "stop": 9, "step": 1}
        exclude = Config(grid=grid, processing={"on_insufficient_data": "exclude"})
        result = CurveClusterAnalyzer(exclude).analyze_file(path, select=False)

        assert list(result.resampled) == ["A", "B", "C"]
        assert list(result.excluded_groups) == ["D"]
        assert result.metadata.n_groups == 3

        with pytest.raises(InsufficientDataError) as exc_info:
            CurveClusterAnalyzer(Config(grid=grid)).analyze_file(path, select=False)
        assert exc_info.value.group_key == "D"

    def test_result_is_json_serializable(
        self, unit_config: Config, two_cluster_curves: dict[str, RawCurve]
    ) -> None:
        """Test the result dumps to JSON."""
        result = CurveClusterAnalyzer(unit_config).analyze(two_cluster_curves, k=2)
        data = json.loads(json.dumps(result.model_dump(mode="json")))

        assert data["metadata"]["n_groups"] == 6
        assert len(data["distances"]["keys"]) == 6


class TestAnalyzeFunction:
    """Tests for the analyze convenience function."""

    def test_analyze(self, two_cluster_curves: dict[str, RawCurve]) -> None:
        """Test one-call analysis."""
        config = Config(
            grid={"start": 0, "stop": 10, "step": 1},
            selection={"bootstrap_replicates": 0},
        )
        result = analyze(two_cluster_curves, k=2, config=config, select=False)

        assert result.metrics is None
        assert result.assignment is not None
        assert result.assignment.cluster_sizes == {0: 3, 1: 3}
