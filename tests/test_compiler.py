"""Tests for the expression compiler and its cache."""

import math
import unittest

import numpy as np

from graphcalc_pkg.compiler import as_evaluator, compile_expression, compile_implicit
from graphcalc_pkg.context import EngineContext, LRUCache


class TestCompileExpression(unittest.TestCase):
    """Test compiled evaluators."""

    def setUp(self):
        self.ctx = EngineContext()

    def test_polynomial(self):
        f = compile_expression("x^2 - 4", context=self.ctx)
        self.assertEqual(f({"x": 3}), 5.0)
        self.assertEqual(f.variables, ("x",))

    def test_leading_assignment_is_dropped(self):
        f = compile_expression("y = 2x + 1", context=self.ctx)
        self.assertEqual(f({"x": 2}), 5.0)

    def test_undefined_results_are_nan(self):
        self.assertTrue(math.isnan(compile_expression("1/x", context=self.ctx)({"x": 0})))
        self.assertTrue(math.isnan(compile_expression("sqrt(x)", context=self.ctx)({"x": -1})))
        self.assertTrue(math.isnan(compile_expression("ln(x)", context=self.ctx)({"x": -1})))

    def test_missing_variable_is_nan(self):
        f = compile_expression("x + a", context=self.ctx)
        self.assertTrue(math.isnan(f({"x": 1})))
        self.assertEqual(f({"x": 1, "a": 2}), 3.0)

    def test_invalid_text_returns_none(self):
        self.assertIsNone(compile_expression("x +* 2", context=self.ctx))
        self.assertIsNone(compile_expression("", context=self.ctx))
        self.assertIsNone(compile_expression("__import__('os')", context=self.ctx))

    def test_latex_notation(self):
        f = compile_expression(r"\frac{x}{2}", notation="latex", context=self.ctx)
        self.assertEqual(f({"x": 4}), 2.0)

    def test_leibniz_derivative(self):
        f = compile_expression("d/dx x^3", context=self.ctx)
        self.assertAlmostEqual(f({"x": 2}), 12.0)
        g = compile_expression("d^2/dx^2 x^3", context=self.ctx)
        self.assertAlmostEqual(g({"x": 1}), 6.0)

    def test_domain_restriction(self):
        f = compile_expression("x^2 {0 < x < 3}", context=self.ctx)
        self.assertEqual(f({"x": 2}), 4.0)
        self.assertTrue(math.isnan(f({"x": 4})))

    def test_constants(self):
        f = compile_expression("sin(pi/2) + e^0", context=self.ctx)
        self.assertAlmostEqual(f({}), 2.0)

    def test_evaluate_array(self):
        f = compile_expression("x^2", context=self.ctx)
        values = f.evaluate_array({"x": np.array([1.0, 2.0, -3.0])}, (3,))
        np.testing.assert_allclose(values, [1.0, 4.0, 9.0])

    def test_evaluate_array_broadcasts_constants(self):
        f = compile_expression("2", context=self.ctx)
        np.testing.assert_allclose(f.evaluate_array({}, (2, 2)), np.full((2, 2), 2.0))

    def test_as_evaluator_passes_callables_through(self):
        fn = lambda scope: 1.0  # noqa: E731
        self.assertIs(as_evaluator(fn, self.ctx), fn)
        self.assertEqual(as_evaluator("x", self.ctx)({"x": 7}), 7.0)


class TestCompileImplicit(unittest.TestCase):
    def test_equation_becomes_difference(self):
        ctx = EngineContext()
        f = compile_implicit("x^2 + y^2 = 1", context=ctx)
        self.assertEqual(f({"x": 1, "y": 1}), 1.0)
        self.assertEqual(f({"x": 1, "y": 0}), 0.0)

    def test_plain_field(self):
        f = compile_implicit("x*y", context=EngineContext())
        self.assertEqual(f({"x": 2, "y": 3}), 6.0)


class TestCompileCache(unittest.TestCase):
    """Test evaluator memoization."""

    def test_repeat_compilation_hits_cache(self):
        ctx = EngineContext()
        first = compile_expression("x^3", context=ctx)
        second = compile_expression("x^3", context=ctx)
        self.assertIs(first, second)
        self.assertEqual(ctx.compile_cache.hits, 1)
        self.assertEqual(ctx.compile_cache.misses, 1)

    def test_failures_are_cached(self):
        ctx = EngineContext()
        self.assertIsNone(compile_expression("x +* 2", context=ctx))
        self.assertIsNone(compile_expression("x +* 2", context=ctx))
        self.assertEqual(ctx.compile_cache.hits, 1)

    def test_capacity_is_bounded(self):
        ctx = EngineContext(compile_cache_size=2)
        for text in ("x", "x+1", "x+2"):
            compile_expression(text, context=ctx)
        self.assertEqual(len(ctx.compile_cache), 2)
        self.assertEqual(ctx.cache_stats()["compile"]["capacity"], 2)

    def test_registry_change_invalidates(self):
        ctx = EngineContext()
        ctx.registry.define("f", "x", "x^2")
        self.assertEqual(compile_expression("f(2)", allow_user_functions=True, context=ctx)({}), 4.0)
        ctx.registry.define("f", "x", "x^3")
        self.assertEqual(compile_expression("f(2)", allow_user_functions=True, context=ctx)({}), 8.0)


class TestLRUCache(unittest.TestCase):
    def test_least_recently_used_is_evicted(self):
        cache = LRUCache(2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)
        self.assertIn("a", cache)
        self.assertNotIn("b", cache)
        self.assertEqual(cache.keys(), ["a", "c"])

    def test_rejects_zero_capacity(self):
        with self.assertRaises(ValueError):
            LRUCache(0)

    def test_stats(self):
        cache = LRUCache(4)
        cache.get("missing")
        cache.put("k", 1)
        cache.get("k")
        self.assertEqual(cache.stats(), {"size": 1, "capacity": 4, "hits": 1, "misses": 1})
