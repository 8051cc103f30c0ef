"""Tests for ODE integration and the ODE text front-end."""

import logging
import math
import unittest
from types import SimpleNamespace

import pytest

from graphcalc_pkg import ode
from graphcalc_pkg.compiler import compile_expression
from graphcalc_pkg.context import EngineContext
from graphcalc_pkg.ode import (
    detect_affine_rhs,
    integrate_adaptive,
    linear_general_solution,
    phase_portrait,
    rearrange_implicit_ode,
    rk4,
    second_order_to_system,
    slope_field_solution,
    solve_ode_plot,
    solve_ode_text,
)
from graphcalc_pkg.types import SolverError


class TestIntegrators(unittest.TestCase):
    def test_rk4_exponential(self):
        states = rk4(lambda t, y: [y[0]], (0.0, 1.0), [1.0], steps=100)
        self.assertEqual(len(states), 101)
        self.assertAlmostEqual(states[-1].t, 1.0)
        self.assertAlmostEqual(states[-1].y[0], math.e, places=6)

    def test_rk4_clamps_non_finite_state(self):
        states = rk4(lambda t, y: [math.nan], (0.0, 1.0), [1.0], steps=4)
        self.assertEqual(states[1].y, (0.0,))

    def test_rk4_backwards(self):
        states = rk4(lambda t, y: [y[0]], (0.0, -1.0), [1.0], steps=200)
        self.assertAlmostEqual(states[-1].y[0], math.exp(-1), places=6)

    def test_adaptive_exponential(self):
        states = integrate_adaptive(lambda t, y: [y[0]], (0.0, 1.0), [1.0], steps=10)
        self.assertEqual(len(states), 11)
        self.assertAlmostEqual(states[-1].y[0], math.e, places=6)

    def test_adaptive_harmonic_oscillator(self):
        states = integrate_adaptive(lambda t, y: [y[1], -y[0]], (0.0, math.pi), [1.0, 0.0])
        self.assertAlmostEqual(states[-1].y[0], -1.0, places=6)


class TestAdaptiveFallback:
    """RK4 takes over when the adaptive solver cannot."""

    def test_solver_exception(self, monkeypatch, caplog):
        def broken(*args, **kwargs):
            raise RuntimeError("step size underflow")

        monkeypatch.setattr(ode, "solve_ivp", broken)
        with caplog.at_level(logging.WARNING, logger="graphcalc.ode"):
            states = integrate_adaptive(lambda t, y: [y[0]], (0.0, 1.0), [1.0], steps=100)
        assert len(states) == 101
        assert states[-1].y[0] == pytest.approx(math.e, rel=1e-6)
        assert "falling back to RK4" in caplog.text

    def test_solver_reports_failure(self, monkeypatch, caplog):
        def unsuccessful(*args, **kwargs):
            return SimpleNamespace(success=False, message="Required step size is less than spacing")

        monkeypatch.setattr(ode, "solve_ivp", unsuccessful)
        with caplog.at_level(logging.WARNING, logger="graphcalc.ode"):
            states = integrate_adaptive(lambda t, y: [y[0]], (0.0, 1.0), [1.0], steps=100)
        assert states == rk4(lambda t, y: [y[0]], (0.0, 1.0), [1.0], steps=100)
        assert "Required step size" in caplog.text


class TestEquationForms(unittest.TestCase):
    def setUp(self):
        self.ctx = EngineContext()

    def test_second_order_system(self):
        system = second_order_to_system("y'' = -y", context=self.ctx)
        self.assertEqual(system(0.0, [1.0, 0.5]), [0.5, -1.0])

    def test_second_order_with_velocity(self):
        system = second_order_to_system("-y - y'", context=self.ctx)
        self.assertEqual(system(0.0, [1.0, 2.0]), [2.0, -3.0])

    def test_rearrange_implicit(self):
        rearranged = rearrange_implicit_ode("y*y' + x = 0", context=self.ctx)
        self.assertAlmostEqual(rearranged.rhs_fn({"x": 1.0, "y": 2.0}), -0.5)
        self.assertEqual(rearranged.rhs, "-x/y")

    def test_rearrange_requires_derivative(self):
        self.assertIsNone(rearrange_implicit_ode("x + y = 0", context=self.ctx))

    def test_detect_affine(self):
        coefficients = detect_affine_rhs(compile_expression("2*y + x + 3", context=self.ctx))
        self.assertEqual(tuple(round(c, 9) for c in coefficients), (2.0, 1.0, 3.0))
        self.assertIsNone(detect_affine_rhs(compile_expression("y^2", context=self.ctx)))

    def test_linear_general_solution(self):
        self.assertEqual(linear_general_solution(1.0, 0.0, 0.0), "y = C*e^(x)")
        self.assertEqual(linear_general_solution(2.0, 1.0, 0.0), "y + 0.5x + 0.25 = C*e^(2x)")
        self.assertEqual(linear_general_solution(0.0, 2.0, 1.0), "y = x^2 + x + C")

    def test_general_solution_drops_zero_and_unit_terms(self):
        self.assertEqual(linear_general_solution(-1.0, 3.0, 0.0), "y - 3x + 3 = C*e^(-x)")
        self.assertEqual(linear_general_solution(0.0, 0.0, -1.0), "y = -x + C")
        self.assertEqual(linear_general_solution(0.0, 0.0, 0.0), "y = C")


class TestSolveOdeText(unittest.TestCase):
    """Test the solver panel front-end."""

    def setUp(self):
        self.ctx = EngineContext()

    def test_linear_first_order(self):
        result = solve_ode_text("dy/dx = y", context=self.ctx)
        self.assertEqual(result.output, "y = C*e^(x)")
        self.assertIn("Detected first-order linear ODE: y' = a*y + b*x + c", result.steps)

    def test_prime_notation(self):
        result = solve_ode_text("y' = 2*y + x", context=self.ctx)
        self.assertEqual(result.output, "y + 0.5x + 0.25 = C*e^(2x)")
        self.assertEqual(result.steps[0], "Given: dy/dx = 2*y + x")

    def test_nonlinear_is_integrated(self):
        result = solve_ode_text("dy/dx = sin(y)", context=self.ctx)
        self.assertTrue(result.output.startswith("y(10.00) = "))
        self.assertIn("Initial condition: y(0) = 1", result.steps)

    def test_second_order(self):
        result = solve_ode_text("y'' = -y", context=self.ctx)
        self.assertEqual(result.output, "y(10.00) = {:.4f}".format(math.cos(10)))
        self.assertEqual(result.steps[1], "Rewritten as a system: y' = p, p' = -y")

    def test_implicit_form(self):
        result = solve_ode_text("y' - y = 0", context=self.ctx)
        self.assertEqual(result.steps[1], "Rearranged to: dy/dx = y")
        self.assertEqual(result.output, "y = C*e^(x)")

    def test_unrecognized_form(self):
        with pytest.raises(SolverError) as exc_info:
            solve_ode_text("x + y", context=self.ctx)
        assert exc_info.value.code == "ODE_FORM"

    def test_uncompilable_rhs(self):
        with pytest.raises(SolverError) as exc_info:
            solve_ode_text("dy/dx = x +* y", context=self.ctx)
        assert exc_info.value.code == "ODE_COMPILE"


class TestPlotting(unittest.TestCase):
    def test_trajectory_points(self):
        points = solve_ode_plot("y", (0.0, 1.0), [1.0], steps=100)
        self.assertEqual(len(points), 101)
        self.assertAlmostEqual(points[-1][1], math.e, places=4)

    def test_trajectory_stops_when_it_blows_up(self):
        points = solve_ode_plot("y^2", (0.0, 2.0), [1.0], steps=200)
        self.assertLess(points[-1][0], 1.1)
        self.assertLess(len(points), 201)

    def test_slope_field_solution_passes_through_seed(self):
        points = slope_field_solution("y", "first-order", -1.0, 1.0)
        self.assertAlmostEqual(points[0][0], -3.0)
        self.assertAlmostEqual(points[-1][0], 3.0)
        self.assertIn((0.0, 1.0), points)

    def test_slope_field_second_order(self):
        points = slope_field_solution("y'' = -y", "second-order", -1.0, 1.0)
        self.assertIn((0.0, 1.0), points)

    def test_phase_portrait_seeds_grid(self):
        trajectories = phase_portrait("y", "-x", -1, 1, -1, 1, 1, 1)
        self.assertEqual(len(trajectories), 9)
        self.assertTrue(all(len(t) > 2 for t in trajectories))

    def test_phase_portrait_stops_early(self):
        trajectories = phase_portrait("y", "-x", -1, 1, -1, 1, 1, 1, should_stop=lambda: True)
        self.assertEqual(trajectories, [])
