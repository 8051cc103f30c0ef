"""Tests for the public API and the optional plotting helpers."""

import math
import os

import pytest

from graphcalc_pkg import api
from graphcalc_pkg.context import EngineContext
from graphcalc_pkg.types import EvalResult


class TestEvaluate:
    """Test evaluation through the public API."""

    def test_basic(self):
        result = api.evaluate("2 + 2")
        assert isinstance(result, EvalResult)
        assert result.ok
        assert result.result == "4"
        assert result.value == 4.0

    def test_scope(self):
        result = api.evaluate("x^2 - 4", {"x": 3})
        assert result.result == "5"
        assert result.variables == ["x"]

    def test_missing_variable(self):
        result = api.evaluate("x + 1")
        assert not result.ok
        assert result.error == "Missing value(s) for: x"

    def test_forbidden_input(self):
        assert not api.evaluate("__import__('os')").ok

    def test_undefined_result(self):
        result = api.evaluate("sqrt(x)", {"x": -1})
        assert not result.ok
        assert result.error == "Result is undefined"

    def test_to_dict(self):
        data = api.evaluate("1/4").to_dict()
        assert data == {"ok": True, "value": 0.25, "result": "0.25", "variables": []}


class TestValidateExpression:
    def test_valid(self):
        assert api.validate_expression("sin(x) + 1") == (True, None)

    def test_forbidden(self):
        assert api.validate_expression("import os") == (
            False,
            "Forbidden token in input: 'import'",
        )

    def test_unparseable(self):
        ok, error = api.validate_expression("x +* 1")
        assert not ok
        assert error.startswith("Could not parse expression")


class TestAnalysis:
    def test_zeros(self):
        found = api.zeros("x^2 - 4", -5, 5)
        assert found == pytest.approx([-2.0, 2.0])

    def test_extrema(self):
        found = api.extrema("x^2", -2, 2)
        assert found.minima == pytest.approx([0.0], abs=1e-4)

    def test_intersections(self):
        points = api.intersections("x", "2 - x", -5, 5)
        assert len(points) == 1
        assert points[0][0] == pytest.approx(1.0)

    def test_diff(self):
        assert api.diff("x^3").result == "3*x^2"
        assert not api.diff("x +* 1").ok

    def test_integrate(self):
        result = api.integrate("3*x^2", bounds=(0, 2))
        assert result.result == "x^3"
        assert result.definite_value == pytest.approx(8.0)

    def test_contour(self):
        rings = api.contour("x^2 + y^2 = 4.1", -3, 3, -3, 3, context=EngineContext())
        assert len(rings) == 1
        assert all(math.hypot(x, y) == pytest.approx(math.sqrt(4.1), abs=0.05) for x, y in rings[0])

    def test_ode_trajectory(self):
        points = api.ode_trajectory("y", 0, 1, 1.0)
        assert points[0] == (0.0, 1.0)
        assert points[-1][1] == pytest.approx(math.e, rel=1e-4)

    def test_solve_is_exported(self):
        assert api.solve("algebra", "x - 3 = 0").output == "x = 3"


class TestPlotting:
    def test_plot_function(self, tmp_path):
        pytest.importorskip("matplotlib")
        from graphcalc_pkg.plotting import plot_function

        path = tmp_path / "f.png"
        result = plot_function("x^2", output=str(path))
        assert result.ok
        assert result.result == str(path)
        assert os.path.exists(path)

    def test_plot_contour(self, tmp_path):
        pytest.importorskip("matplotlib")
        from graphcalc_pkg.plotting import plot_contour

        result = plot_contour("x^2 + y^2 = 4.1", -3, 3, -3, 3, output=str(tmp_path / "c.png"))
        assert result.ok

    def test_plot_rejects_bad_input(self):
        pytest.importorskip("matplotlib")
        from graphcalc_pkg.plotting import plot_contour, plot_function

        assert not plot_function("x", 1, 0).ok
        assert not plot_function("x +* 1").ok
        assert not plot_contour("x^2 + y^2 + 1").ok
