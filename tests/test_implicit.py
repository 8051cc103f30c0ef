"""Tests for marching squares and implicit field sampling."""

import math
import unittest

from graphcalc_pkg.context import EngineContext
from graphcalc_pkg.implicit import (
    _cell_segments,
    adaptive_grid_size,
    marching_squares,
    sample_implicit_field,
    segments_to_rings,
)


class TestAdaptiveGrid(unittest.TestCase):
    def test_grid_steps(self):
        self.assertEqual(adaptive_grid_size(10, 10), 190)
        self.assertEqual(adaptive_grid_size(30), 150)
        self.assertEqual(adaptive_grid_size(1000, 1000), 120)

    def test_narrow_view_is_clamped(self):
        self.assertEqual(adaptive_grid_size(4, 4), 200)

    def test_widest_axis_wins(self):
        self.assertEqual(adaptive_grid_size(4, 30), 150)


class TestMarchingSquares(unittest.TestCase):
    """Test contour extraction on known curves."""

    def setUp(self):
        self.ctx = EngineContext()

    def test_circle_is_one_closed_ring(self):
        segments = marching_squares("x^2 + y^2 = 1.1", -2, 2, -2, 2, 40, context=self.ctx)
        self.assertGreater(len(segments), 0)
        rings = segments_to_rings(segments)
        self.assertEqual(len(rings), 1)
        ring = rings[0]
        self.assertAlmostEqual(ring[0][0], ring[-1][0])
        self.assertAlmostEqual(ring[0][1], ring[-1][1])
        for x, y in ring:
            self.assertAlmostEqual(math.hypot(x, y), math.sqrt(1.1), delta=0.05)

    def test_cache_hit_returns_equal_copy(self):
        first = marching_squares("x^2 + y^2 = 1.1", -2, 2, -2, 2, 20, context=self.ctx)
        second = marching_squares("x^2 + y^2 = 1.1", -2, 2, -2, 2, 20, context=self.ctx)
        self.assertEqual(first, second)
        self.assertIsNot(first, second)

    def test_mutating_result_leaves_cache_intact(self):
        first = marching_squares("x^2 + y^2 = 1.1", -2, 2, -2, 2, 20, context=self.ctx)
        count = len(first)
        first.clear()
        again = marching_squares("x^2 + y^2 = 1.1", -2, 2, -2, 2, 20, context=self.ctx)
        self.assertEqual(len(again), count)

    def test_hyperbola_branches_stay_apart(self):
        # one cell, corners of x*y + 0.01 give a saddle with a positive center
        segments = marching_squares(
            lambda p: p["x"] * p["y"] + 0.01, -1, 1, -1, 1, 1, context=self.ctx
        )
        self.assertEqual(len(segments), 2)
        for (x1, y1), (x2, y2) in segments:
            self.assertAlmostEqual(x1 * y1 + 0.01, 0.0)
            self.assertAlmostEqual(x2 * y2 + 0.01, 0.0)
            self.assertGreater(x1 * x2, 0)


class TestSaddleCells(unittest.TestCase):
    """A positive center joins the positive corners."""

    def setUp(self):
        self.ctx = EngineContext()

    def check(self, code, corners, expected):
        self.assertEqual(_cell_segments(code, -1.0, 1.0, -1.0, 1.0, *corners), expected)

    def test_code_5_positive_center(self):
        self.check(
            5,
            (-0.5, 1.5, -0.5, 1.5),
            [((-1.0, -0.5), (-0.5, -1.0)), ((0.5, 1.0), (1.0, 0.5))],
        )

    def test_code_5_negative_center(self):
        self.check(
            5,
            (-1.5, 0.5, -1.5, 0.5),
            [((-1.0, 0.5), (-0.5, 1.0)), ((0.5, -1.0), (1.0, -0.5))],
        )

    def test_code_10_positive_center(self):
        self.check(
            10,
            (1.5, -0.5, 1.5, -0.5),
            [((-1.0, 0.5), (-0.5, 1.0)), ((0.5, -1.0), (1.0, -0.5))],
        )

    def test_code_10_negative_center(self):
        self.check(
            10,
            (0.5, -1.5, 0.5, -1.5),
            [((-1.0, -0.5), (-0.5, -1.0)), ((0.5, 1.0), (1.0, 0.5))],
        )

    def test_scope_changes_the_contour(self):
        small = marching_squares("x^2 + y^2 = r", -2, 2, -2, 2, 20, {"r": 0.5}, context=self.ctx)
        large = marching_squares("x^2 + y^2 = r", -2, 2, -2, 2, 20, {"r": 2.5}, context=self.ctx)
        self.assertIsNot(small, large)
        self.assertNotEqual(small, large)

    def test_callable_source(self):
        segments = marching_squares(lambda p: p["x"] - 0.3, -1, 1, -1, 1, 10, context=self.ctx)
        self.assertGreater(len(segments), 0)
        for (x1, _), (x2, _) in segments:
            self.assertAlmostEqual(x1, 0.3)
            self.assertAlmostEqual(x2, 0.3)

    def test_degenerate_viewport(self):
        self.assertEqual(marching_squares("x + y", 1, 1, -1, 1, 10, context=self.ctx), [])
        self.assertEqual(marching_squares("x + y", -1, 1, -1, 1, 0, context=self.ctx), [])
        self.assertEqual(marching_squares("x + y", -math.inf, 1, -1, 1, 10, context=self.ctx), [])

    def test_uncompilable(self):
        self.assertEqual(marching_squares("x +* y", -1, 1, -1, 1, 10, context=self.ctx), [])

    def test_no_crossing(self):
        self.assertEqual(marching_squares("x^2 + y^2 + 1", -1, 1, -1, 1, 10, context=self.ctx), [])


class TestSegmentsToRings(unittest.TestCase):
    def test_open_chain(self):
        segments = [((1.0, 0.0), (2.0, 0.0)), ((0.0, 0.0), (1.0, 0.0))]
        self.assertEqual(segments_to_rings(segments), [[(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)]])

    def test_separate_pieces(self):
        segments = [((0.0, 0.0), (1.0, 0.0)), ((5.0, 5.0), (6.0, 5.0))]
        self.assertEqual(len(segments_to_rings(segments)), 2)


class TestSampleImplicitField(unittest.TestCase):
    def setUp(self):
        self.ctx = EngineContext()

    def test_sphere_layout(self):
        sample = sample_implicit_field("x^2+y^2+z^2 = 1", resolution=4, context=self.ctx)
        self.assertEqual(sample.resolution, 4)
        self.assertEqual(len(sample.values), 64)
        self.assertFalse(sample.timed_out)
        self.assertAlmostEqual(sample.values[0], 74.0)
        # x varies fastest
        self.assertAlmostEqual(sample.values[1], 51.7778, places=3)

    def test_budget_exhausted(self):
        sample = sample_implicit_field("x + y + z", resolution=4, time_budget_ms=-1, context=self.ctx)
        self.assertTrue(sample.timed_out)
        self.assertEqual(len(sample.values), 64)
        self.assertTrue(math.isnan(sample.values[-1]))

    def test_callable_matches_compiled(self):
        compiled = sample_implicit_field("x - 2*y + z", resolution=3, context=self.ctx)
        direct = sample_implicit_field(
            lambda p: p["x"] - 2 * p["y"] + p["z"], resolution=3, context=self.ctx
        )
        for a, b in zip(compiled.values, direct.values):
            self.assertAlmostEqual(a, b)

    def test_uncompilable(self):
        self.assertIsNone(sample_implicit_field("x +* y", resolution=3, context=self.ctx))
