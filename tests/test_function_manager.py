"""Tests for user function definitions and expansion."""

import pytest

from graphcalc_pkg.compiler import compile_expression
from graphcalc_pkg.context import EngineContext
from graphcalc_pkg.engine import SympyEngine
from graphcalc_pkg.function_manager import FunctionRegistry, parse_function_definition
from graphcalc_pkg.types import FunctionDefinition, ValidationError


class TestParseDefinition:
    """Test definition recognition."""

    def test_simple_definition(self):
        assert parse_function_definition("f(x) = x^2 + 1") == FunctionDefinition(
            name="f", parameter="x", body="x^2 + 1"
        )

    def test_other_parameter(self):
        definition = parse_function_definition("g(t) = sin(t)")
        assert definition.name == "g"
        assert definition.parameter == "t"

    def test_reserved_names(self):
        for text in ("x(t) = 1", "e(x) = 1", "i(x) = 1", "y(x) = 2"):
            assert parse_function_definition(text) is None

    def test_not_a_definition(self):
        assert parse_function_definition("y = 3") is None
        assert parse_function_definition("x^2 + 1") is None
        assert parse_function_definition("") is None


class TestFunctionRegistry:
    """Test registry rebuilds and expansion."""

    def test_rebuild_skips_non_definitions(self):
        registry = FunctionRegistry()
        version = registry.rebuild(["f(x) = x^2", "y = 2", "g(t) = f(t) + 1"])
        assert version == 1
        assert registry.names() == ["f", "g"]
        assert len(registry) == 2
        assert "f" in registry

    def test_every_change_bumps_version(self):
        registry = FunctionRegistry()
        registry.rebuild([])
        registry.define("h", "x", "2*x")
        registry.clear()
        assert registry.version == 3
        assert len(registry) == 0

    def test_define_rejects_bad_names(self):
        registry = FunctionRegistry()
        with pytest.raises(ValidationError) as exc_info:
            registry.define("x", "t", "t")
        assert exc_info.value.code == "INVALID_FUNCTION_NAME"
        with pytest.raises(ValidationError) as exc_info:
            registry.define("f", "tt", "tt")
        assert exc_info.value.code == "INVALID_PARAMETER"
        with pytest.raises(ValidationError):
            registry.define("f", "x", "  ")

    def test_list_functions(self):
        registry = FunctionRegistry()
        registry.rebuild(["g(t) = t + 1", "f(x) = x^2"])
        assert registry.list_functions() == {"f": ("x", "x^2"), "g": ("t", "t + 1")}

    def test_nested_expansion(self):
        ctx = EngineContext()
        ctx.registry.rebuild(["f(x) = x^2", "g(t) = f(t) + 1"])
        assert ctx.registry.expand_text("g(3)", ctx.engine) == "10"

    def test_expansion_in_compiled_expression(self):
        ctx = EngineContext()
        ctx.registry.rebuild(["f(x) = x^2 + 2x"])
        evaluator = compile_expression("f(x + 1)", allow_user_functions=True, context=ctx)
        assert evaluator({"x": 1}) == 8.0

    def test_self_reference_does_not_compile(self):
        ctx = EngineContext()
        ctx.registry.rebuild(["f(x) = f(x) + 1"])
        assert compile_expression("f(2)", allow_user_functions=True, context=ctx) is None

    def test_mutual_recursion_does_not_compile(self):
        ctx = EngineContext()
        ctx.registry.rebuild(["f(x) = g(x)", "g(x) = f(x)"])
        assert compile_expression("f(1)", allow_user_functions=True, context=ctx) is None

    def test_expansion_goes_through_the_engine(self):
        engine = _RecordingEngine()
        registry = FunctionRegistry()
        registry.rebuild(["f(x) = x^2", "g(t) = f(t) + 1"])
        assert registry.expand_text("g(3)", engine) == "10"
        assert engine.substituted == ["t", "x"]


class _RecordingEngine(SympyEngine):
    def __init__(self):
        super().__init__()
        self.substituted = []

    def substitute(self, expr, variable, value):
        self.substituted.append(variable)
        return super().substitute(expr, variable, value)
