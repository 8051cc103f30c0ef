"""Public API for graphcalc - returns structured objects without side effects."""

from __future__ import annotations

import math
from typing import Mapping, Sequence

from .calculus import differentiate
from .compiler import compile_expression
from .config import DEFAULT_SAMPLES
from .context import EngineContext
from .implicit import adaptive_grid_size, marching_squares, segments_to_rings
from .integration import integrate_symbolically
from .logging_config import get_logger
from .numerical import find_extrema, find_intersections, find_zeros
from .ode import solve_ode_plot
from .parser import format_number, validate_input
from .solver import solve
from .types import (
    EvalResult,
    Extrema,
    ParseError,
    Point,
    SymbolicIntegrationResult,
    ValidationError,
)

logger = get_logger("api")

__all__ = [
    "evaluate",
    "validate_expression",
    "zeros",
    "extrema",
    "intersections",
    "diff",
    "integrate",
    "contour",
    "ode_trajectory",
    "solve",
]


def evaluate(
    expression: str,
    scope: Mapping[str, float] | None = None,
    notation: str = "plain",
    context: EngineContext | None = None,
) -> EvalResult:
    """Evaluate a mathematical expression.

    Args:
        expression: Mathematical expression string (e.g., "2+2", "sin(pi/2)")
        scope: Variable values, e.g. ``{"x": 2}``
        notation: ``"plain"`` or ``"latex"``
        context: Execution context (default context if None)

    Returns:
        EvalResult with the numeric value and the variables it reads

    Example:
        >>> evaluate("x^2 - 4", {"x": 3}).result
        '5'
    """
    evaluator = compile_expression(expression, notation=notation, context=context)
    if evaluator is None:
        return EvalResult(ok=False, error=f"Could not parse expression: {expression}")
    missing = [name for name in evaluator.variables if name not in (scope or {})]
    if missing:
        return EvalResult(
            ok=False,
            variables=list(evaluator.variables),
            error=f"Missing value(s) for: {', '.join(missing)}",
        )
    value = evaluator(scope or {})
    if math.isnan(value):
        return EvalResult(
            ok=False, variables=list(evaluator.variables), error="Result is undefined"
        )
    return EvalResult(
        ok=True,
        value=value,
        result=format_number(value),
        variables=list(evaluator.variables),
    )


def validate_expression(expression: str) -> tuple[bool, str | None]:
    """Validate an expression without evaluating it.

    Returns:
        Tuple of (is_valid, error_message)

    Example:
        >>> validate_expression("import os")
        (False, "Forbidden token in input: 'import'")
    """
    try:
        validate_input(expression)
    except ValidationError as e:
        return False, str(e)
    if compile_expression(expression) is None:
        return False, f"Could not parse expression: {expression}"
    return True, None


def zeros(
    expression: str,
    x_min: float = -10.0,
    x_max: float = 10.0,
    scope: Mapping[str, float] | None = None,
    samples: int = DEFAULT_SAMPLES,
    context: EngineContext | None = None,
) -> list[float]:
    """Zeros of ``expression`` in ``x`` on ``[x_min, x_max]``."""
    return find_zeros(expression, x_min, x_max, scope=scope, samples=samples, context=context)


def extrema(
    expression: str,
    x_min: float = -10.0,
    x_max: float = 10.0,
    scope: Mapping[str, float] | None = None,
    samples: int = DEFAULT_SAMPLES,
    context: EngineContext | None = None,
) -> Extrema:
    return find_extrema(expression, x_min, x_max, scope=scope, samples=samples, context=context)


def intersections(
    f: str,
    g: str,
    x_min: float = -10.0,
    x_max: float = 10.0,
    scope: Mapping[str, float] | None = None,
    context: EngineContext | None = None,
) -> list[Point]:
    return find_intersections(f, g, x_min, x_max, scope=scope, context=context)


def diff(expression: str, variable: str | None = None) -> EvalResult:
    """Differentiate an expression.

    Example:
        >>> diff("x^3").result
        '3*x^2'
    """
    try:
        text, _render_form = differentiate(expression, variable)
    except (ParseError, ValidationError) as e:
        return EvalResult(ok=False, error=str(e))
    except Exception as e:
        logger.error("Unexpected differentiation error: %s", e, exc_info=True)
        return EvalResult(ok=False, error="Differentiation failed unexpectedly")
    return EvalResult(ok=True, result=text)


def integrate(
    expression: str,
    variable: str = "x",
    bounds: Sequence[float] | None = None,
    context: EngineContext | None = None,
) -> SymbolicIntegrationResult:
    """Rule-based symbolic integral; see ``integration.integrate_symbolically``."""
    return integrate_symbolically(expression, variable, bounds=bounds, context=context)


def contour(
    expression: str,
    x_min: float = -10.0,
    x_max: float = 10.0,
    y_min: float = -10.0,
    y_max: float = 10.0,
    grid_size: int | None = None,
    scope: Mapping[str, float] | None = None,
    context: EngineContext | None = None,
) -> list[list[Point]]:
    """Polylines of the implicit curve ``expression`` over the viewport.

    ``grid_size`` None picks a resolution from the viewport span. Use
    ``worker.BackgroundRunner`` to compute this off the calling thread.
    """
    size = grid_size or adaptive_grid_size(x_max - x_min, y_max - y_min)
    segments = marching_squares(
        expression, x_min, x_max, y_min, y_max, size, scope=scope, context=context
    )
    return segments_to_rings(segments)


def ode_trajectory(
    expression: str,
    t_start: float = 0.0,
    t_end: float = 10.0,
    y0: float = 1.0,
    adaptive: bool = True,
    context: EngineContext | None = None,
) -> list[Point]:
    """Plot points of ``dy/dx = expression`` from ``y(t_start) = y0``."""
    return solve_ode_plot(
        expression, (t_start, t_end), [y0], adaptive=adaptive, context=context
    )
