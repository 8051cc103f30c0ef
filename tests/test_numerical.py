"""Tests for root finding, extrema, quadrature and linear systems."""

import math
import unittest

from graphcalc_pkg.context import EngineContext
from graphcalc_pkg.numerical import (
    dedupe,
    find_extrema,
    find_intersections,
    find_zeros,
    gauss_jordan,
    series_sum,
    simpson_integrate,
    solve_linear_system,
)


class TestFindZeros(unittest.TestCase):
    def setUp(self):
        self.ctx = EngineContext()

    def test_quadratic(self):
        zeros = find_zeros("x^2 - 4", -10, 10, context=self.ctx)
        self.assertEqual(len(zeros), 2)
        self.assertAlmostEqual(zeros[0], -2.0, places=6)
        self.assertAlmostEqual(zeros[1], 2.0, places=6)

    def test_parameters_from_scope(self):
        zeros = find_zeros("x - a", -10, 10, scope={"a": 3.3}, context=self.ctx)
        self.assertEqual(len(zeros), 1)
        self.assertAlmostEqual(zeros[0], 3.3, places=6)

    def test_callable_input(self):
        zeros = find_zeros(lambda s: math.cos(s["x"]), 0, 3)
        self.assertEqual(len(zeros), 1)
        self.assertAlmostEqual(zeros[0], math.pi / 2, places=6)

    def test_degenerate_input(self):
        self.assertEqual(find_zeros("x +* 1", -1, 1, context=self.ctx), [])
        self.assertEqual(find_zeros("x", 1, -1, context=self.ctx), [])
        self.assertEqual(find_zeros("x", -math.inf, 1, context=self.ctx), [])

    def test_no_zero(self):
        self.assertEqual(find_zeros("x^2 + 1", -5, 5, context=self.ctx), [])

    def test_dedupe(self):
        self.assertEqual(dedupe([2.0, 1.0, 1.0 + 1e-12]), [1.0, 2.0])


class TestExtremaAndIntersections(unittest.TestCase):
    def test_cubic_extrema(self):
        found = find_extrema("x^3 - 3*x", -3, 3, context=EngineContext())
        self.assertEqual(len(found.maxima), 1)
        self.assertEqual(len(found.minima), 1)
        self.assertAlmostEqual(found.maxima[0], -1.0, places=4)
        self.assertAlmostEqual(found.minima[0], 1.0, places=4)

    def test_monotonic_has_none(self):
        found = find_extrema("x", -3, 3, context=EngineContext())
        self.assertEqual(found.minima, [])
        self.assertEqual(found.maxima, [])

    def test_line_and_parabola(self):
        points = find_intersections("x", "x^2", -1, 2, context=EngineContext())
        self.assertEqual(len(points), 2)
        self.assertAlmostEqual(points[0][0], 0.0, places=6)
        self.assertAlmostEqual(points[1][0], 1.0, places=6)
        self.assertAlmostEqual(points[1][1], 1.0, places=6)

    def test_intersection_limit(self):
        points = find_intersections("sin(x)", "0", 0.5, 60, limit=3, context=EngineContext())
        self.assertEqual(len(points), 3)


class TestQuadratureAndSeries(unittest.TestCase):
    def test_simpson_is_exact_for_cubics(self):
        self.assertAlmostEqual(simpson_integrate("x^2", 0, 1), 1 / 3, places=10)
        self.assertAlmostEqual(simpson_integrate("x^3", -1, 2, n=7), 3.75, places=10)

    def test_simpson_edge_cases(self):
        self.assertEqual(simpson_integrate("x", 2, 2), 0.0)
        self.assertTrue(math.isnan(simpson_integrate("x", 0, math.inf)))
        self.assertTrue(math.isnan(simpson_integrate("x +* 1", 0, 1)))

    def test_series_sum(self):
        self.assertEqual(series_sum("k", "k", 1, 10), 55.0)
        self.assertEqual(series_sum("k", "k", 1, 5, product=True), 120.0)

    def test_series_nan_term(self):
        self.assertTrue(math.isnan(series_sum("1/(k-3)", "k", 1, 5)))


class TestLinearSystems(unittest.TestCase):
    def test_gauss_jordan(self):
        solution = gauss_jordan([[2, 1], [1, 3]], [3, 5])
        self.assertAlmostEqual(solution[0], 0.8)
        self.assertAlmostEqual(solution[1], 1.4)

    def test_gauss_jordan_singular(self):
        self.assertIsNone(gauss_jordan([[1, 2], [2, 4]], [1, 2]))

    def test_two_unknowns(self):
        self.assertEqual(solve_linear_system("x+2*y=5, 3*x-y=1"), {"x": 1.0, "y": 2.0})

    def test_three_unknowns(self):
        solution = solve_linear_system("x + y + z = 6; x - y = 0; 2*z = 6")
        self.assertEqual(solution, {"x": 1.5, "y": 1.5, "z": 3.0})

    def test_rejected_systems(self):
        self.assertIsNone(solve_linear_system("x^2 + y = 3, x - y = 1"))
        self.assertIsNone(solve_linear_system("x + y = 1, 2*x + 2*y = 2"))
        self.assertIsNone(solve_linear_system("x + y = 1, x - y = 1, x = 2"))
        self.assertIsNone(solve_linear_system("x + y = 1"))
