"""Symbolic integration orchestration.

``integrate_symbolically`` tries, in order:

1. Undo a derivative wrapper: ``diff(f, x)`` and ``d/dx(f)`` integrate to ``f``
2. Piecewise: ``piecewise(e1, c1, e2, c2, ...)`` branch by branch
3. Closed-form rules on each top-level term (see ``integration_rules``)
4. The special-function table (erf, Fresnel, Ei, incomplete gamma)
5. The symbolic engine; an unevaluated ``Integral`` counts as failure

Every success is simplified and run through domain analysis. Nothing here
raises for bad input; failures come back as ``IntegrationFailure``.
"""

from __future__ import annotations

import math
import re
from typing import Sequence

from .compiler import compile_expression
from .config import SIMPSON_FALLBACK_INTERVALS
from .context import EngineContext, get_default_context
from .domain_analysis import analyze_domain, analyze_rational, merge_discontinuities
from .engine import SymbolicEngine
from .integration_rules import integrate_by_rules, integrate_special
from .logging_config import get_logger
from .numerical import simpson_integrate
from .parser import normalize_plain, split_top_level, strip_outer_parens
from .simplify import (
    apply_simple_identities,
    full_simplify,
    render,
    surface_text,
    tidy_symbolic_string,
)
from .types import (
    IntegrationFailure,
    IntegrationSuccess,
    ParseError,
    SymbolicIntegrationResult,
)

logger = get_logger("integration")

INTEGRAL_HINT = (
    "Try expanding products, writing exponentials as exp(...), "
    "or giving bounds for a numerical value"
)

_UNDEFINED_TOKENS = (
    (re.compile(r"\bundefined\b"), "Expression contains undefined token"),
    (re.compile(r"\bNaN\b|\bnan\b"), "Expression contains NaN token"),
)

_LN_ABS_RE = re.compile(r"\bln\(abs\(([^()]+)\)\)")


def describe_integral_failure(
    expression: str, variable: str, bounds: Sequence[float] | None = None
) -> str:
    """Message for an integral that no strategy could solve.

    Example:
        >>> describe_integral_failure("x^x", "x", (0, 1))
        'Could not determine a symbolic integral for x^x dx on [0, 1]'
    """
    suffix = ""
    if bounds is not None:
        suffix = f" on [{bounds[0]}, {bounds[1]}]"
    return f"Could not determine a symbolic integral for {expression} d{variable}{suffix}"


def normalize_integrand(expression: str) -> str:
    """Compact plain form: no whitespace, ``^`` powers, outer parens dropped."""
    compact = normalize_plain(expression).replace("**", "^")
    return strip_outer_parens(re.sub(r"\s+", "", compact))


def try_implicit_derivative(expression: str, variable: str) -> str | None:
    """Return ``f`` from ``diff(f, x)`` or ``d/dx(f)``, else None."""
    v = re.escape(variable)
    match = re.fullmatch(rf"diff\((.+),{v}\)", expression)
    if match is None:
        match = re.fullmatch(rf"d/d{v}\((.+)\)", expression)
    return match.group(1) if match else None


def build_piecewise_render(branches: list[tuple[str, str]]) -> str:
    rows = " \\\\ ".join(f"{expr} & {condition}" for expr, condition in branches)
    return f"\\begin{{cases}} {rows} \\end{{cases}}"


def _expanded(normalized: str, engine: SymbolicEngine) -> str | None:
    """Engine-expanded form of the integrand, for a second pass of the rules."""
    try:
        expr = engine.parse(normalized)
    except ParseError:
        return None
    expanded = getattr(expr, "expand", None)
    if expanded is None:
        return None
    return tidy_symbolic_string(surface_text(expanded(), engine))


def _success(
    result: str,
    method: str,
    variable: str,
    engine: SymbolicEngine,
    render_form: str | None = None,
    piecewise_render_form: str | None = None,
) -> IntegrationSuccess:
    discontinuities, issues = analyze_domain(result, variable)
    rational = analyze_rational(result, variable, engine)
    return IntegrationSuccess(
        result=result,
        method=method,
        render_form=render_form,
        piecewise_render_form=piecewise_render_form,
        discontinuities=merge_discontinuities(discontinuities, rational),
        domain_issues=issues,
    )


def _integrate_piecewise(
    normalized: str, variable: str, engine: SymbolicEngine, context: EngineContext
) -> IntegrationSuccess | None:
    if not (normalized.startswith("piecewise(") and normalized.endswith(")")):
        return None
    parts = split_top_level(normalized[len("piecewise("):-1], ",")
    if not parts or len(parts) % 2:
        return None
    branches: list[tuple[str, str]] = []
    for i in range(0, len(parts), 2):
        sub = integrate_symbolically(parts[i], variable, engine=engine, context=context)
        if not sub.ok:
            return None
        branches.append((sub.result, parts[i + 1]))
    flat = ",".join(f"{expr},{condition}" for expr, condition in branches)
    result = tidy_symbolic_string(apply_simple_identities(f"piecewise({flat})"))
    return _success(
        result,
        "symbolic",
        variable,
        engine,
        piecewise_render_form=build_piecewise_render(branches),
    )


def integrate_with_engine(
    normalized: str, variable: str, engine: SymbolicEngine
) -> IntegrationSuccess | None:
    """Antiderivative straight from the engine, or None if it stays unevaluated."""
    try:
        integral = engine.integrate(engine.parse(normalized), variable)
    except ParseError:
        return None
    except Exception as e:
        logger.debug("Engine integration failed for %r: %s", normalized, e)
        return None
    if "Integral(" in str(integral):
        logger.debug("Engine left %r unevaluated", normalized)
        return None
    try:
        simplified = engine.simplify(integral)
        factored = engine.factor(simplified)
        if len(str(factored)) < len(str(simplified)):
            simplified = factored
    except Exception as e:
        logger.debug("Simplify failed, keeping raw antiderivative: %s", e)
        simplified = integral
    text = tidy_symbolic_string(apply_simple_identities(surface_text(simplified, engine)))
    return _success(text, "engine", variable, engine, render_form=engine.render(simplified))


def interior_discontinuities(
    integrand: str,
    variable: str,
    bounds: Sequence[float],
    engine: SymbolicEngine | None,
    extra: Sequence[float] = (),
) -> list[float]:
    """Discontinuities of ``integrand`` strictly between the bounds."""
    low, high = sorted((float(bounds[0]), float(bounds[1])))
    breaks = merge_discontinuities(
        list(extra),
        analyze_domain(integrand, variable)[0],
        analyze_rational(integrand, variable, engine),
    )
    return [d for d in breaks if low < d < high]


def describe_discontinuity(variable: str, where: float, bounds: Sequence[float]) -> str:
    a, b = float(bounds[0]), float(bounds[1])
    return f"Integrand is discontinuous at {variable} = {where:g} inside [{a:g}, {b:g}]"


def _definite_value(
    success: IntegrationSuccess,
    integrand: str,
    variable: str,
    bounds: Sequence[float],
    engine: SymbolicEngine,
    context: EngineContext,
) -> float | None:
    a, b = float(bounds[0]), float(bounds[1])
    inside = interior_discontinuities(
        integrand, variable, bounds, engine, extra=success.discontinuities
    )
    if inside:
        success.domain_issues.append(describe_discontinuity(variable, inside[0], bounds))
        return None

    antiderivative = compile_expression(success.result, context=context)
    if antiderivative is not None and set(antiderivative.variables) <= {variable}:
        value = antiderivative({variable: b}) - antiderivative({variable: a})
        if math.isfinite(value):
            return value

    logger.debug("Falling back to Simpson's rule for %r on [%s, %s]", integrand, a, b)
    value = simpson_integrate(
        integrand, a, b, n=SIMPSON_FALLBACK_INTERVALS, var=variable, context=context
    )
    return value if math.isfinite(value) else None


def integrate_symbolically(
    expression: str,
    variable: str = "x",
    bounds: Sequence[float] | None = None,
    engine: SymbolicEngine | None = None,
    context: EngineContext | None = None,
) -> SymbolicIntegrationResult:
    """Antiderivative of ``expression`` with respect to ``variable``.

    Args:
        expression: Plain integrand text, e.g. ``3*x^2 + cos(2*x)``
        variable: Integration variable
        bounds: Optional ``(a, b)``; adds ``definite_value = F(b) - F(a)``
        engine: Symbolic engine (the context's engine if None)
        context: Execution context used for compilation caches

    Returns:
        IntegrationSuccess or IntegrationFailure

    Example:
        >>> integrate_symbolically("3*x^2").result
        'x^3'
        >>> integrate_symbolically("1/x").result
        'ln(|x|)'
    """
    ctx = context if context is not None else get_default_context()
    engine = engine if engine is not None else ctx.engine

    normalized = normalize_integrand(expression or "")
    if not normalized:
        return IntegrationFailure(error="Integrand is empty", hint=INTEGRAL_HINT)

    undefined = [message for pattern, message in _UNDEFINED_TOKENS if pattern.search(normalized)]
    if undefined:
        return IntegrationFailure(error="Integrand invalid", undefined_issues=undefined)

    success = _solve(normalized, variable, engine, ctx)
    if success is None:
        logger.debug("No strategy integrated %r", normalized)
        return IntegrationFailure(
            error=describe_integral_failure(expression, variable, bounds),
            hint=INTEGRAL_HINT,
        )
    if bounds is not None:
        success.definite_value = _definite_value(
            success, normalized, variable, bounds, engine, ctx
        )
    return success


def _solve(
    normalized: str, variable: str, engine: SymbolicEngine, ctx: EngineContext
) -> IntegrationSuccess | None:
    inner = try_implicit_derivative(normalized, variable)
    if inner is not None:
        simplified, render_form = full_simplify(inner, engine)
        return _success(simplified, "symbolic", variable, engine, render_form=render_form)

    piecewise = _integrate_piecewise(normalized, variable, engine, ctx)
    if piecewise is not None:
        return piecewise

    candidates = [normalized]
    expanded = _expanded(normalized, engine)
    if expanded and expanded != normalized:
        candidates.append(expanded)
    for candidate in candidates:
        manual = integrate_by_rules(candidate, variable)
        if manual is not None:
            result, render_form = _polish(manual, engine)
            return _success(result, "rules", variable, engine, render_form=render_form)

    special = integrate_special(normalized, variable)
    if special is not None:
        result, render_form = _polish(special, engine)
        return _success(result, "special", variable, engine, render_form=render_form)

    return integrate_with_engine(normalized, variable, engine)


def _polish(text: str, engine: SymbolicEngine) -> tuple[str, str | None]:
    """Engine simplification of a table result, keeping the ``ln(|u|)`` surface."""
    simplified, render_form = full_simplify(text, engine)
    simplified = _LN_ABS_RE.sub(r"ln(|\1|)", simplified)
    if render_form is None:
        render_form = render(simplified, engine)
    return simplified, render_form
