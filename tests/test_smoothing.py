"""Tests for loess smoothing and the CurveSmoother."""

import logging

import numpy as np
import pytest
from conftest import affine_curve, constant_curve

from curveclust.config import SmoothingConfig
from curveclust.errors import InsufficientDataError
from curveclust.models.schemas import RawCurve
from curveclust.smoothing import CurveSmoother, LoessModel, smooth, tricube


class TestTricube:
    """Tests for the tricube kernel."""

    def test_center_and_edges(self) -> None:
        """Test kernel is 1 at the center and 0 at and beyond |u| = 1."""
        values = tricube(np.array([0.0, 1.0, -1.0, 1.5, -3.0]))
        assert values[0] == 1.0
        assert np.all(values[1:] == 0.0)

    def test_interior_value(self) -> None:
        """Test kernel value at u = 0.5."""
        assert tricube(np.array([0.5]))[0] == pytest.approx((1 - 0.125) ** 3)

    def test_symmetric(self) -> None:
        """Test kernel is symmetric in u."""
        u = np.linspace(0, 1, 7)
        np.testing.assert_array_equal(tricube(u), tricube(-u))


class TestLoessModel:
    """Tests for the LoessModel class."""

    def test_constant_data(self) -> None:
        """Test constant observations are reproduced."""
        model = LoessModel("c", x=np.arange(10), y=np.full(10, 5.0))
        np.testing.assert_allclose(model.predict(np.linspace(0, 9, 19)), 5.0, atol=1e-9)

    @pytest.mark.parametrize("degree", [1, 2])
    def test_linear_data_reproduced(self, degree: int) -> None:
        """Test a local linear or quadratic fit reproduces a straight line."""
        x = np.linspace(0, 20, 30)
        model = LoessModel("lin", x=x, y=3.0 * x - 2.0, degree=degree, span=0.4)
        queries = np.array([0.0, 3.3, 10.0, 17.5, 20.0])
        np.testing.assert_allclose(model.predict(queries), 3.0 * queries - 2.0, atol=1e-8)

    def test_quadratic_data_reproduced(self) -> None:
        """Test degree 2 reproduces a parabola."""
        x = np.linspace(-5, 5, 25)
        model = LoessModel("quad", x=x, y=x**2, degree=2, span=0.5)
        assert model.predict(1.7) == pytest.approx(1.7**2, abs=1e-8)

    def test_smooths_noise(self) -> None:
        """Test fitted values are closer to the signal than the noisy data."""
        rng = np.random.default_rng(0)
        x = np.linspace(0, 2 * np.pi, 80)
        truth = np.sin(x)
        noisy = truth + rng.normal(0, 0.3, size=x.size)
        model = LoessModel("sin", x=x, y=noisy, degree=2, span=0.3)

        fitted_error = np.mean((model.fitted() - truth) ** 2)
        noisy_error = np.mean((noisy - truth) ** 2)
        assert fitted_error < noisy_error

    def test_deterministic_queries(self) -> None:
        """Test repeated queries at the same x return identical values."""
        x = np.linspace(0, 1, 15)
        model = LoessModel("d", x=x, y=np.cos(5 * x))
        assert model.predict(0.37) == model.predict(0.37)
        assert model(0.37) == model.predict(0.37)

    def test_domain_and_sorting(self) -> None:
        """Test unsorted input is sorted and the domain is [min_x, max_x]."""
        model = LoessModel("u", x=[3.0, 1.0, 2.0, 0.0], y=[3.0, 1.0, 2.0, 0.0], degree=1)
        assert model.domain == (0.0, 3.0)
        assert model.contains(1.5)
        assert not model.contains(3.5)
        np.testing.assert_allclose(model.fitted(), [0.0, 1.0, 2.0, 3.0], atol=1e-9)

    def test_array_shape_preserved(self) -> None:
        """Test array queries return an array of the same shape."""
        model = LoessModel("s", x=np.arange(6), y=np.arange(6) * 2.0, degree=1)
        result = model.predict(np.array([[0.5, 1.5], [2.5, 3.5]]))
        assert isinstance(result, np.ndarray)
        assert result.shape == (2, 2)

    def test_scalar_query_returns_float(self) -> None:
        """Test scalar queries return a float."""
        model = LoessModel("s", x=np.arange(6), y=np.arange(6) * 2.0, degree=1)
        assert isinstance(model.predict(2), float)

    def test_insufficient_distinct_points(self) -> None:
        """Test degree 2 needs at least 3 distinct x values."""
        with pytest.raises(InsufficientDataError) as exc_info:
            LoessModel("P9", x=[0.0, 1.0, 1.0, 0.0], y=[1.0, 2.0, 2.5, 1.5], degree=2)

        assert exc_info.value.group_key == "P9"
        assert exc_info.value.n_distinct == 2
        assert exc_info.value.required == 3
        assert "P9" in str(exc_info.value)

    def test_duplicate_x_retained(self) -> None:
        """Test duplicate x values are kept as separate observations."""
        model = LoessModel("dup", x=[0, 1, 1, 2, 3], y=[0, 1, 1, 2, 3], degree=1)
        assert model.n_observations == 5

    def test_small_span_uses_minimum_neighborhood(self) -> None:
        """Test the neighborhood never drops below degree + 1 points."""
        model = LoessModel("n", x=np.arange(10), y=np.arange(10.0), degree=2, span=0.01)
        assert model.neighborhood_size == 3
        assert model.predict(4.5) == pytest.approx(4.5, abs=1e-8)

    def test_span_above_one(self) -> None:
        """Test spans above 1 use every observation."""
        model = LoessModel("w", x=np.arange(5), y=np.arange(5.0), degree=1, span=2.0)
        assert model.neighborhood_size == 5
        assert model.predict(2.0) == pytest.approx(2.0)

    def test_degree_zero(self) -> None:
        """Test local constant fit stays within the data range."""
        model = LoessModel("z", x=np.arange(10), y=np.arange(10.0), degree=0, span=0.5)
        assert 0.0 <= model.predict(4.0) <= 9.0

    @pytest.mark.parametrize("degree", [-1, 3])
    def test_invalid_degree(self, degree: int) -> None:
        """Test unsupported degrees are rejected."""
        with pytest.raises(ValueError, match="degree"):
            LoessModel("x", x=np.arange(5), y=np.arange(5.0), degree=degree)

    def test_invalid_span(self) -> None:
        """Test non-positive spans are rejected."""
        with pytest.raises(ValueError, match="span"):
            LoessModel("x", x=np.arange(5), y=np.arange(5.0), span=0.0)

    def test_non_finite_rejected(self) -> None:
        """Test NaN observations are rejected."""
        with pytest.raises(ValueError, match="finite"):
            LoessModel("x", x=[0.0, 1.0, 2.0], y=[0.0, np.nan, 1.0], degree=1)


class TestCurveSmoother:
    """Tests for the CurveSmoother class."""

    def test_fit(self) -> None:
        """Test fitting a single raw curve."""
        smoother = CurveSmoother(degree=1, span=0.5)
        model = smoother.fit(affine_curve("g", 2.0, 1.0, 0.0, 10.0))

        assert model.key == "g"
        assert model.domain == (0.0, 10.0)
        assert model.predict(5.0) == pytest.approx(11.0)

    def test_fit_all_sorted(self) -> None:
        """Test models come back ordered by group key."""
        curves = {
            "b": constant_curve("b", 1.0, 0, 10),
            "a": constant_curve("a", 2.0, 0, 10),
            "c": constant_curve("c", 3.0, 0, 10),
        }
        report = CurveSmoother().fit_all(curves)

        assert list(report.models) == ["a", "b", "c"]
        assert report.excluded == {}

    def test_abort_raises_first_failing_group(self) -> None:
        """Test the abort policy raises for the first failing group in key order."""
        curves = {
            "z": RawCurve(key="z", x=(0.0, 1.0), y=(0.0, 1.0)),
            "m": RawCurve(key="m", x=(0.0, 1.0, 0.0), y=(0.0, 1.0, 0.5)),
            "a": constant_curve("a", 1.0, 0, 10),
        }
        with pytest.raises(InsufficientDataError) as exc_info:
            CurveSmoother(degree=2).fit_all(curves, on_insufficient="abort")

        assert exc_info.value.group_key == "m"

    def test_exclude_reports_groups(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test the exclude policy drops and reports failing groups."""
        curves = {
            "short": RawCurve(key="short", x=(0.0, 1.0), y=(0.0, 1.0)),
            "ok": constant_curve("ok", 1.0, 0, 10),
        }
        with caplog.at_level(logging.WARNING):
            report = CurveSmoother(degree=2).fit_all(curves, on_insufficient="exclude")

        assert list(report.models) == ["ok"]
        assert list(report.excluded) == ["short"]
        assert isinstance(report.excluded["short"], InsufficientDataError)
        assert any("short" in record.message for record in caplog.records)

    def test_failures_logged_per_group(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test each failing group is logged at ERROR as it fails."""
        curves = {
            "short": RawCurve(key="short", x=(0.0, 1.0), y=(0.0, 1.0)),
            "tiny": RawCurve(key="tiny", x=(0.0, 2.0), y=(1.0, 1.0)),
            "ok": constant_curve("ok", 1.0, 0, 10),
        }
        with caplog.at_level(logging.ERROR, logger="curveclust.smoothing.smoother"):
            CurveSmoother(degree=2).fit_all(curves, on_insufficient="exclude")

        logged = [r.message for r in caplog.records if r.levelno == logging.ERROR]
        assert len(logged) == 2
        assert logged[0].startswith("Cannot smooth group 'short'")
        assert logged[1].startswith("Cannot smooth group 'tiny'")

    def test_prior_insufficient_excluded(self) -> None:
        """Test groups rejected before smoothing follow the exclude policy."""
        prior = {"lone": InsufficientDataError("lone", 1, 2)}
        report = CurveSmoother().fit_all(
            {"ok": constant_curve("ok", 1.0, 0, 10)},
            on_insufficient="exclude",
            insufficient=prior,
        )

        assert list(report.models) == ["ok"]
        assert report.excluded == prior

    def test_prior_insufficient_abort_in_key_order(self) -> None:
        """Test the abort policy picks the first failing group across both sources."""
        curves = {
            "m": RawCurve(key="m", x=(0.0, 1.0), y=(0.0, 1.0)),
            "ok": constant_curve("ok", 1.0, 0, 10),
        }
        with pytest.raises(InsufficientDataError) as exc_info:
            CurveSmoother(degree=2).fit_all(
                curves, insufficient={"z": InsufficientDataError("z", 1, 2)}
            )
        assert exc_info.value.group_key == "m"

        with pytest.raises(InsufficientDataError) as exc_info:
            CurveSmoother(degree=2).fit_all(
                curves, insufficient={"a": InsufficientDataError("a", 1, 2)}
            )
        assert exc_info.value.group_key == "a"

    def test_prior_insufficient_must_not_be_loaded(self) -> None:
        """Test a group cannot be both a curve and marked insufficient."""
        with pytest.raises(ValueError, match="both loaded"):
            CurveSmoother().fit_all(
                {"a": constant_curve("a", 1.0, 0, 10)},
                insufficient={"a": InsufficientDataError("a", 1, 2)},
            )

    def test_degree_one_accepts_two_points(self) -> None:
        """Test two distinct points are enough for a local linear fit."""
        curves = {"two": RawCurve(key="two", x=(0.0, 1.0), y=(0.0, 1.0))}
        report = CurveSmoother(degree=1).fit_all(curves)
        assert list(report.models) == ["two"]

    def test_unknown_policy(self) -> None:
        """Test an unknown insufficient-data policy is rejected."""
        with pytest.raises(ValueError, match="policy"):
            CurveSmoother().fit_all({}, on_insufficient="ignore")  # type: ignore[arg-type]

    def test_mismatched_key(self) -> None:
        """Test a curve stored under another key is rejected."""
        with pytest.raises(ValueError, match="has key"):
            CurveSmoother().fit_all({"a": constant_curve("b", 1.0, 0, 10)})

    def test_parallel_matches_sequential(self, two_cluster_curves: dict[str, RawCurve]) -> None:
        """Test threaded smoothing gives the same models."""
        sequential = CurveSmoother(max_concurrency=1).fit_all(two_cluster_curves).models
        threaded = CurveSmoother(max_concurrency=4).fit_all(two_cluster_curves).models

        assert list(sequential) == list(threaded)
        for key in sequential:
            assert sequential[key].predict(4.2) == threaded[key].predict(4.2)


class TestSmoothFunction:
    """Tests for the smooth convenience function."""

    def test_uses_config(self, two_cluster_curves: dict[str, RawCurve]) -> None:
        """Test degree and span come from the config."""
        models = smooth(two_cluster_curves, SmoothingConfig(degree=1, span=0.5))

        assert len(models) == 6
        assert all(model.degree == 1 and model.span == 0.5 for model in models.values())

    def test_exclude_policy(self) -> None:
        """Test excluded groups are missing from the returned models."""
        curves = {
            "short": RawCurve(key="short", x=(0.0, 1.0), y=(0.0, 1.0)),
            "ok": constant_curve("ok", 1.0, 0, 10),
        }
        models = smooth(curves, on_insufficient="exclude")
        assert list(models) == ["ok"]
