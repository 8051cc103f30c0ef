"""Dedicated calculus operations: derivatives, Taylor polynomials and limits."""

from __future__ import annotations

import math

from .compiler import compile_expression
from .config import LIMIT_AGREEMENT, TAYLOR_MAX_ORDER
from .context import EngineContext, get_default_context
from .engine import SymbolicEngine
from .logging_config import get_logger
from .parser import format_number, to_plain
from .simplify import surface_text, tidy_symbolic_string
from .types import LimitResult, ParseError, TaylorExpansion, ValidationError

logger = get_logger("calculus")

LIMIT_STEPS = (1e-3, 1e-5, 1e-7, 1e-9)


def differentiate(
    expression: str,
    variable: str | None = None,
    engine: SymbolicEngine | None = None,
) -> tuple[str, str]:
    """Differentiate an expression with respect to a variable.

    Args:
        expression: Expression string (e.g., "x^3")
        variable: Variable to differentiate with respect to (default: ``x``,
            or the only free variable)
        engine: Symbolic engine (default context's engine if None)

    Returns:
        ``(derivative_text, render_form)``

    Raises:
        ParseError: If the expression cannot be parsed
        ValidationError: If the input is empty or too long
    """
    engine = engine if engine is not None else get_default_context().engine
    expr = engine.parse(to_plain(expression))
    if variable is None:
        free = engine.free_variables(expr)
        variable = free[0] if len(free) == 1 else "x"
    derivative = engine.simplify(engine.differentiate(expr, variable))
    return tidy_symbolic_string(surface_text(derivative, engine)), engine.render(derivative)


def _coefficient_text(c: float, n: int) -> str:
    if abs(abs(c) - 1) < 1e-12 and n > 0:
        return "-" if c < 0 else ""
    return f"{c:.4f}"


def _shifted(variable: str, center: float) -> str:
    if center == 0:
        return variable
    sign = "-" if center > 0 else "+"
    return f"({variable}{sign}{format_number(abs(center))})"


def format_taylor(coefficients: list[float], variable: str, center: float) -> str:
    """Polynomial text such as ``1.0000 + x + 0.5000x^2``; ``0`` if all vanish."""
    base = _shifted(variable, center)
    terms = []
    for n, c in enumerate(coefficients):
        if abs(c) < 1e-12:
            continue
        if n == 0:
            terms.append(f"{c:.4f}")
        else:
            power = f"^{n}" if n > 1 else ""
            terms.append(f"{_coefficient_text(c, n)}{base}{power}")
    return " + ".join(terms).replace("+ -", "- ") or "0"


def taylor_expansion(
    expression: str,
    variable: str = "x",
    center: float = 0.0,
    order: int = 5,
    engine: SymbolicEngine | None = None,
) -> TaylorExpansion | None:
    """Taylor polynomial of ``expression`` about ``center``.

    Coefficients are ``f^(n)(c) / n!``; a derivative that is not finite at the
    center contributes zero. ``order`` is clamped to ``[0, TAYLOR_MAX_ORDER]``.

    Returns:
        TaylorExpansion, or None if the expression cannot be parsed

    Example:
        >>> taylor_expansion("exp(x)", order=2).text
        '1.0000 + x + 0.5000x^2'
    """
    engine = engine if engine is not None else get_default_context().engine
    order = max(0, min(int(order), TAYLOR_MAX_ORDER))
    try:
        current = engine.parse(to_plain(expression))
    except (ParseError, ValidationError) as e:
        logger.debug("Taylor expansion skipped for %r: %s", expression, e)
        return None

    coefficients: list[float] = []
    for n in range(order + 1):
        try:
            value = complex(engine.lambdify(current, [variable])(center))
            value = value.real if abs(value.imag) < 1e-12 else math.nan
        except (TypeError, ValueError, NameError, ZeroDivisionError, ArithmeticError):
            value = math.nan
        coefficients.append(value / math.factorial(n) if math.isfinite(value) else 0.0)
        if n < order:
            current = engine.differentiate(current, variable)

    return TaylorExpansion(
        variable=variable,
        center=float(center),
        order=order,
        coefficients=coefficients,
        text=format_taylor(coefficients, variable, center),
    )


def numerical_limit(
    expression: str,
    variable: str = "x",
    approach: float = 0.0,
    context: EngineContext | None = None,
) -> LimitResult | None:
    """Two-sided limit estimated from ``approach ± eps`` for shrinking ``eps``.

    Each side takes its last finite sample. The limit exists when both sides
    are finite and agree within ``1e-4``; its value is then their average,
    otherwise ``nan``.

    Returns:
        LimitResult, or None if the expression cannot be compiled

    Example:
        >>> round(numerical_limit("sin(x)/x", "x", 0).value, 6)
        1.0
    """
    evaluator = compile_expression(expression, context=context)
    if evaluator is None:
        return None

    def side(direction: float) -> float:
        last = math.nan
        for eps in LIMIT_STEPS:
            value = evaluator({variable: approach + direction * eps})
            if math.isfinite(value):
                last = value
        return last

    right = side(1.0)
    left = side(-1.0)
    value = math.nan
    if math.isfinite(left) and math.isfinite(right) and abs(right - left) < LIMIT_AGREEMENT:
        value = (left + right) / 2
    return LimitResult(value=value, left=left, right=right)
