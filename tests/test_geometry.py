"""Tests for arc length, curvature and osculating circles."""

import math
import unittest

from graphcalc_pkg.geometry import arc_length, curvature, osculating_circle


class TestArcLength(unittest.TestCase):
    def test_straight_line(self):
        self.assertAlmostEqual(arc_length("2*x", 0, 1), math.sqrt(5), places=5)

    def test_quarter_circle(self):
        self.assertAlmostEqual(arc_length("sqrt(1 - x^2)", 0, 0.5), math.pi / 6, places=4)

    def test_empty_interval(self):
        self.assertEqual(arc_length("x", 1, 1), 0.0)
        self.assertEqual(arc_length("x", 2, 1), 0.0)
        self.assertEqual(arc_length("x +* 2", 0, 1), 0.0)


class TestCurvature(unittest.TestCase):
    def test_parabola_vertex(self):
        self.assertAlmostEqual(curvature("x^2", 0), 2.0, places=3)

    def test_sign_follows_concavity(self):
        self.assertLess(curvature("-x^2", 0), 0)

    def test_line_is_flat(self):
        self.assertLess(abs(curvature("3*x + 1", 0.5)), 1e-3)

    def test_undefined_point(self):
        self.assertTrue(math.isnan(curvature("sqrt(x)", -1)))


class TestOsculatingCircle(unittest.TestCase):
    def test_parabola_vertex(self):
        circle = osculating_circle("x^2", 0)
        self.assertAlmostEqual(circle.radius, 0.5, places=3)
        self.assertAlmostEqual(circle.center[0], 0.0, places=3)
        self.assertAlmostEqual(circle.center[1], 0.5, places=3)

    def test_concave_down_centre_is_below(self):
        circle = osculating_circle("-x^2", 0)
        self.assertAlmostEqual(circle.center[1], -0.5, places=3)

    def test_centre_lies_on_the_normal(self):
        circle = osculating_circle("x^2", 1)
        # slope 2 at x=1: the normal points towards (-2, 1)
        dx, dy = circle.center[0] - 1.0, circle.center[1] - 1.0
        self.assertAlmostEqual(dx / dy, -2.0, places=3)
        self.assertAlmostEqual(math.hypot(dx, dy), circle.radius, places=6)

    def test_straight_line_has_none(self):
        self.assertIsNone(osculating_circle("2*x + 1", 0))

    def test_radius_above_cutoff_has_none(self):
        # curvature 4e-5 is measurable, but the radius is 25000
        self.assertAlmostEqual(curvature("x^2/50000", 0), 4e-5, places=8)
        self.assertIsNone(osculating_circle("x^2/50000", 0))

    def test_radius_below_cutoff(self):
        circle = osculating_circle("x^2/10000", 0)
        self.assertAlmostEqual(circle.radius, 5000.0, delta=1.0)
