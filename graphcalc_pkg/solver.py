"""Solver dispatcher: one entry point per interactive solve category.

``solve(category, text)`` routes the input to the matching handler and
always returns a ``SolverResult``. Handlers raise; this module is the only
place where their failures become user-facing messages, formatted as the
category hint followed by the underlying detail.

Categories:
- algebra: linear systems and single equations
- trigonometry: closed form first, then numerical roots on [0, 2π)
- calculus: integrals, derivatives, Taylor polynomials and limits
- ode: first and second order equations
- matrices / vectors: numpy.linalg backed operations and arithmetic
- statistics: descriptive statistics of a data list
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable

from .calculus import differentiate, numerical_limit, taylor_expansion
from .compiler import compile_expression
from .config import (
    OUTPUT_PRECISION,
    PI_MATCH_TOLERANCE,
    PI_MAX_DENOMINATOR,
    SIMPSON_FALLBACK_INTERVALS,
    TRIG_DEDUP_TOLERANCE,
    TRIG_SAMPLES,
    TWO_PI,
)
from .context import EngineContext, get_default_context
from .engine import SymbolicEngine
from .integration import (
    describe_discontinuity,
    integrate_symbolically,
    integrate_with_engine,
    interior_discontinuities,
    normalize_integrand,
)
from .linalg import evaluate_matrix_expression, evaluate_vector_expression
from .logging_config import get_logger
from .numerical import find_zeros, simpson_integrate, solve_linear_system
from .ode import solve_ode_text
from .parser import (
    format_fixed,
    format_number,
    split_equation,
    split_top_level,
    to_plain,
    validate_input,
)
from .simplify import surface_text, tidy_symbolic_string
from .statistics import descriptive_stats, parse_values
from .types import (
    ParseError,
    SolverError,
    SolverResult,
    UnsupportedOperationError,
    ValidationError,
)

logger = get_logger("solver")

ERROR_HINTS = {
    "algebra": (
        "Could not solve. Try an equation like x^2 - 4 = 0 "
        "or a system like x + y = 5, 2x - y = 1"
    ),
    "trigonometry": "Try a trig equation like sin(x) = 0.5",
    "calculus": (
        "Try: diff(x^3), int(x^2, 0, 5), taylor(sin(x), x, 0, 5), or lim(sin(x)/x, x, 0)"
    ),
    "ode": "Enter an ODE like dy/dx = x + y",
    "matrices": (
        "Enter matrix operations like det([[1,2],[3,4]]), inv(...), transpose(...), "
        "trace(...), rank(...), or arithmetic like [[1,2],[3,4]]+[[5,6],[7,8]]"
    ),
    "vectors": (
        "Enter vector operations like cross([1,2,3],[4,5,6]), dot([1,2],[3,4]), "
        "norm([3,4]), or arithmetic like [1,2]+[3,4]"
    ),
    "statistics": "Enter a data set like: 1, 2, 3, 4, 5",
}

CATEGORIES = tuple(ERROR_HINTS)

_EXPECTED_ERRORS = (ValidationError, ParseError, SolverError, UnsupportedOperationError)
# engine failures that send trigonometry to the sampling fallback
_SYMBOLIC_FAILURES = (SolverError, ParseError, NotImplementedError, ValueError, TypeError)


def error_result(category: str, text: str, error: Exception | str) -> SolverResult:
    """Failure result: the category hint, a blank line, then the detail."""
    message = str(error) or type(error).__name__
    hint = ERROR_HINTS.get(category, "Could not solve")
    return SolverResult(input=text, output=f"{hint}\n\nDetail: {message}", error=True)


def format_as_pi_multiple(radians: float) -> str:
    """Render an angle as a rational multiple of π when one is close.

    Denominators up to 24 are tried; the best fraction must lie within
    ``1e-3`` of ``radians / π``, otherwise the value is printed with six
    decimals.

    Example:
        >>> format_as_pi_multiple(math.pi / 6)
        'π/6'
        >>> format_as_pi_multiple(0.1)
        '0.100000'
    """
    ratio = radians / math.pi
    nearest = round(ratio)
    if abs(ratio - nearest) < 1e-6:
        if nearest == 0:
            return "0"
        if nearest == 1:
            return "π"
        return f"{nearest}π"

    best_numerator, best_denominator, best_error = 0, 1, math.inf
    for denominator in range(1, PI_MAX_DENOMINATOR + 1):
        numerator = round(ratio * denominator)
        error = abs(ratio - numerator / denominator)
        if error < best_error:
            best_numerator, best_denominator, best_error = numerator, denominator, error

    if best_error > PI_MATCH_TOLERANCE:
        return format_fixed(radians, OUTPUT_PRECISION)

    divisor = math.gcd(best_numerator, best_denominator)
    numerator = best_numerator // divisor
    denominator = best_denominator // divisor
    if numerator == 0:
        return "0"
    if denominator == 1:
        return "π" if numerator == 1 else f"{numerator}π"
    if numerator == 1:
        return f"π/{denominator}"
    return f"{numerator}π/{denominator}"


def _call_arguments(text: str, names: tuple[str, ...]) -> tuple[str, list[str]] | None:
    """``(name, args)`` when the whole of ``text`` is one call to ``names``."""
    match = re.match(rf"^({'|'.join(names)})\s*\(", text)
    if match is None or not text.endswith(")"):
        return None
    depth = 0
    start = match.end() - 1
    for i in range(start, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0 and i != len(text) - 1:
                return None
    return match.group(1), split_top_level(text[start + 1:-1], ",")


def _constant(text: str, context: EngineContext, what: str) -> float:
    """Value of a variable-free expression such as ``pi/2``."""
    evaluator = compile_expression(text, context=context)
    value = evaluator({}) if evaluator is not None and not evaluator.variables else math.nan
    if not math.isfinite(value):
        raise ValidationError(f"{what} must be a finite number: {text}", "INVALID_BOUND")
    return value


def _equation_difference(text: str, engine: SymbolicEngine) -> Any:
    lhs, rhs = split_equation(text)
    return engine.parse(f"({to_plain(lhs)})-({to_plain(rhs)})")


def _solution_text(solution: Any, engine: SymbolicEngine) -> str:
    if getattr(solution, "is_Float", False):
        return format_number(float(solution))
    return tidy_symbolic_string(surface_text(solution, engine))


# Algebra and trigonometry


def _is_system(text: str) -> bool:
    return ("," in text or ";" in text) and text.count("=") >= 2


def _solve_algebra(text: str, engine: SymbolicEngine, context: EngineContext) -> SolverResult:
    if _is_system(text):
        solution = solve_linear_system(text, context=context)
        if solution is None:
            raise SolverError(
                "System must be linear, with as many equations as unknowns (at most 4), "
                "and have a unique solution",
                "NO_UNIQUE_SOLUTION",
            )
        assignments = [f"{name} = {format_number(value)}" for name, value in solution.items()]
        return SolverResult(
            input=text,
            output=", ".join(assignments),
            steps=[
                f"Given: {text}",
                f"Solve the {len(solution)}x{len(solution)} linear system by Gauss-Jordan elimination",
                *assignments,
            ],
        )

    expr = _equation_difference(text, engine)
    free = engine.free_variables(expr)
    if not free:
        raise SolverError("No variable to solve for", "NO_VARIABLE")
    variable = "x" if "x" in free or len(free) > 1 else free[0]
    try:
        solutions = engine.solve(expr, variable)
    except NotImplementedError as e:
        raise SolverError(f"No closed-form solution for {variable}", "NO_CLOSED_FORM") from e
    if not solutions:
        raise SolverError("No solutions found", "NO_SOLUTION")

    texts = [_solution_text(s, engine) for s in solutions]
    numbered = [
        f"{variable}_{i + 1} = {t}" if len(texts) > 1 else f"{variable} = {t}"
        for i, t in enumerate(texts)
    ]
    return SolverResult(
        input=text,
        output=f"{variable} = {', '.join(texts)}",
        render_form=", ".join(engine.render(s) for s in solutions),
        steps=[f"Given: {text}", f"Solve for {variable}", *numbered],
    )


def _solve_trigonometry(
    text: str, engine: SymbolicEngine, context: EngineContext
) -> SolverResult:
    try:
        return _solve_algebra(text, engine, context)
    except _SYMBOLIC_FAILURES as e:
        logger.debug("Symbolic trig solve failed for %r (%s), sampling [0, 2π)", text, e)

    lhs, rhs = split_equation(text)
    difference = f"({lhs})-({rhs})"
    if compile_expression(difference, context=context) is None:
        raise SolverError("Cannot compile trigonometric expression", "COMPILE_FAILED")

    raw = find_zeros(difference, 0.0, TWO_PI, samples=TRIG_SAMPLES, context=context)
    roots: list[float] = []
    for root in sorted(r % TWO_PI for r in raw if math.isfinite(r)):
        if not roots or abs(root - roots[-1]) > TRIG_DEDUP_TOLERANCE:
            roots.append(root)
    # a root just below 2π is the one at 0
    if len(roots) > 1 and abs(roots[0] + TWO_PI - roots[-1]) <= TRIG_DEDUP_TOLERANCE:
        roots.pop()
    if not roots:
        raise SolverError("No solutions found", "NO_SOLUTION")

    principal = [format_as_pi_multiple(r) for r in roots]
    joined = ", ".join(principal)
    if len(roots) == 1:
        output = f"x = {principal[0]} + 2πk"
    else:
        output = f"x = {joined} (mod 2π)"
    return SolverResult(
        input=text,
        output=output,
        steps=[
            f"Given: {text}",
            "Symbolic solve returned no closed-form result",
            "Applied numerical root finding on [0, 2π)",
            f"Principal root(s): {joined}",
            "General solution repeats every 2π",
        ],
    )


# Calculus


def _definite_integral(
    text: str,
    body: str,
    variable: str,
    lower_text: str,
    upper_text: str,
    engine: SymbolicEngine,
    context: EngineContext,
) -> SolverResult:
    lower = _constant(lower_text, context, "Lower bound")
    upper = _constant(upper_text, context, "Upper bound")
    given = f"Given: f({variable}) = {body}"
    normalized = normalize_integrand(body)

    inside = interior_discontinuities(normalized, variable, (lower, upper), engine)
    if inside:
        raise SolverError(describe_discontinuity(variable, inside[0], (lower, upper)), "DISCONTINUOUS")

    antiderivative = integrate_with_engine(normalized, variable, engine)
    if antiderivative is not None:
        evaluator = compile_expression(antiderivative.result, context=context)
        if evaluator is not None and set(evaluator.variables) <= {variable}:
            value = evaluator({variable: upper}) - evaluator({variable: lower})
            if math.isfinite(value):
                shown = format_fixed(value)
                return SolverResult(
                    input=text,
                    output=shown,
                    render_form=antiderivative.render_form,
                    steps=[
                        given,
                        f"Integrate with respect to {variable}",
                        f"F({variable}) = {antiderivative.result}",
                        f"F({upper_text}) - F({lower_text}) = {shown}",
                    ],
                )

    value = simpson_integrate(
        body, lower, upper, n=SIMPSON_FALLBACK_INTERVALS, var=variable, context=context
    )
    if not math.isfinite(value):
        raise SolverError("Cannot evaluate integral", "INTEGRAL_FAILED")
    shown = format_fixed(value)
    return SolverResult(
        input=text,
        output=shown,
        steps=[
            given,
            f"Definite integral from {lower_text} to {upper_text}",
            f"Numerical result (Simpson's rule): {shown}",
        ],
    )


def _indefinite_integral(
    text: str, body: str, variable: str, engine: SymbolicEngine, context: EngineContext
) -> SolverResult:
    result = integrate_with_engine(normalize_integrand(body), variable, engine)
    if result is None:
        result = integrate_symbolically(body, variable, engine=engine, context=context)
    if not result.ok:
        raise SolverError(
            "Cannot compute symbolic antiderivative. Try a definite integral with bounds.",
            "NO_ANTIDERIVATIVE",
        )
    output = f"{result.result} + C"
    steps = [
        f"Given: f({variable}) = {body}",
        f"Integrate with respect to {variable}",
        f"F({variable}) = {output}",
    ]
    steps.extend(f"Note: {issue}" for issue in result.domain_issues)
    return SolverResult(input=text, output=output, render_form=result.render_form, steps=steps)


def _integral(
    text: str, args: list[str], engine: SymbolicEngine, context: EngineContext
) -> SolverResult:
    if len(args) == 4:
        body, variable, lower, upper = args
        if not re.fullmatch(r"[a-zA-Z]", variable):
            raise ValidationError(f"Integration variable must be a letter: {variable}", "INVALID_VARIABLE")
        return _definite_integral(text, body, variable, lower, upper, engine, context)
    if len(args) == 2 and re.fullmatch(r"[a-zA-Z]", args[1]):
        return _indefinite_integral(text, args[0], args[1], engine, context)
    if len(args) == 3:
        return _definite_integral(text, args[0], "x", args[1], args[2], engine, context)
    if len(args) == 1:
        return _indefinite_integral(text, args[0], "x", engine, context)
    raise ValidationError("Expected int(f), int(f, x), int(f, a, b) or int(f, x, a, b)", "INVALID_ARGUMENTS")


def _derivative(text: str, body: str, variable: str, engine: SymbolicEngine) -> SolverResult:
    output, render_form = differentiate(body, variable, engine=engine)
    return SolverResult(
        input=text,
        output=output,
        render_form=render_form,
        steps=[
            f"Given: f({variable}) = {body}",
            f"Differentiate with respect to {variable}",
            f"f'({variable}) = {output}",
        ],
    )


def _solve_calculus(text: str, engine: SymbolicEngine, context: EngineContext) -> SolverResult:
    call = _call_arguments(text, ("taylor", "lim", "integrate", "int", "diff", "derivative"))
    if call is None:
        bare = re.match(r"^integrate\s+(.+)$", text)
        if bare:
            return _indefinite_integral(text, bare.group(1), "x", engine, context)
        return _derivative(text, text, "x", engine)

    name, args = call
    if name == "taylor":
        if len(args) != 4 or not args[3].isdigit():
            raise ValidationError("Expected taylor(f, x, center, order)", "INVALID_ARGUMENTS")
        body, variable, center_text, order_text = args
        center = _constant(center_text, context, "Center")
        expansion = taylor_expansion(body, variable, center, int(order_text), engine=engine)
        if expansion is None:
            raise SolverError("Cannot compute Taylor expansion", "TAYLOR_FAILED")
        return SolverResult(
            input=text,
            output=expansion.text,
            steps=[
                f"Given: f({variable}) = {body}",
                f"Taylor expansion around {variable} = {format_number(center)}, order {expansion.order}",
                f"T({variable}) = {expansion.text}",
            ],
        )

    if name == "lim":
        if len(args) != 3:
            raise ValidationError("Expected lim(f, x, value)", "INVALID_ARGUMENTS")
        body, variable, approach_text = args
        approach = _constant(approach_text, context, "Limit value")
        limit = numerical_limit(body, variable, approach, context=context)
        if limit is None:
            raise SolverError("Cannot compute limit", "LIMIT_FAILED")

        def shown(value: float) -> str:
            return format_fixed(value) if math.isfinite(value) else "DNE"

        return SolverResult(
            input=text,
            output=shown(limit.value),
            steps=[
                f"Given: f({variable}) = {body}",
                f"Compute limit as {variable} → {format_number(approach)}",
                f"Left limit: {shown(limit.left)}",
                f"Right limit: {shown(limit.right)}",
                f"Limit = {shown(limit.value)}",
            ],
        )

    if name in ("int", "integrate"):
        return _integral(text, args, engine, context)

    if len(args) == 1:
        return _derivative(text, args[0], "x", engine)
    if len(args) == 2 and re.fullmatch(r"\w+", args[1]):
        return _derivative(text, args[0], args[1], engine)
    raise ValidationError("Expected diff(f) or diff(f, x)", "INVALID_ARGUMENTS")


# Remaining categories


def _solve_ode(text: str, engine: SymbolicEngine, context: EngineContext) -> SolverResult:
    return solve_ode_text(text, context=context)


def _solve_matrices(text: str, engine: SymbolicEngine, context: EngineContext) -> SolverResult:
    output, steps = evaluate_matrix_expression(text)
    return SolverResult(input=text, output=output, steps=steps)


def _solve_vectors(text: str, engine: SymbolicEngine, context: EngineContext) -> SolverResult:
    output, steps = evaluate_vector_expression(text)
    return SolverResult(input=text, output=output, steps=steps)


def _solve_statistics(text: str, engine: SymbolicEngine, context: EngineContext) -> SolverResult:
    values = parse_values(text)
    stats = descriptive_stats(values)
    listed = ", ".join(format_number(v) for v in values)
    return SolverResult(
        input=text,
        output=f"Mean: {stats.mean:.4f}, Median: {stats.median:.4f}, StdDev: {stats.stddev:.4f}",
        steps=[
            f"Data: [{listed}]  (n = {stats.count})",
            f"Mean: {stats.mean:.4f}",
            f"Median: {stats.median:.4f}",
            f"Standard Deviation: {stats.stddev:.4f}",
            f"Variance: {stats.variance:.4f}",
            f"Min: {format_number(stats.min)}, Max: {format_number(stats.max)}",
            f"Q1: {stats.q1:.4f}, Q3: {stats.q3:.4f}",
            f"IQR: {stats.iqr:.4f}",
        ],
    )


_HANDLERS: dict[str, Callable[[str, SymbolicEngine, EngineContext], SolverResult]] = {
    "algebra": _solve_algebra,
    "trigonometry": _solve_trigonometry,
    "calculus": _solve_calculus,
    "ode": _solve_ode,
    "matrices": _solve_matrices,
    "vectors": _solve_vectors,
    "statistics": _solve_statistics,
}


def solve(
    category: str,
    text: str,
    engine: SymbolicEngine | None = None,
    context: EngineContext | None = None,
) -> SolverResult:
    """Solve ``text`` in ``category``; never raises.

    Args:
        category: One of ``CATEGORIES``
        text: User input
        engine: Symbolic engine (the context's engine if None)
        context: Execution context for compilation caches

    Returns:
        SolverResult; ``error=True`` with a hint and detail on failure

    Example:
        >>> solve("algebra", "x^2 - 4 = 0").output
        'x = -2, 2'
        >>> solve("matrices", "det([[1,2],[3,4]])").output
        '-2'
    """
    handler = _HANDLERS.get(category)
    if handler is None:
        return SolverResult(
            input=text,
            output=f"Unknown category: {category}. Supported: {', '.join(CATEGORIES)}",
            error=True,
        )
    ctx = context if context is not None else get_default_context()
    engine = engine if engine is not None else ctx.engine
    try:
        cleaned = validate_input(text)
        result = handler(cleaned, engine, ctx)
    except _EXPECTED_ERRORS as e:
        logger.debug("%s solve failed for %r: %s", category, text, e)
        return error_result(category, text, e)
    except Exception as e:
        logger.error("Unexpected %s solver error for %r: %s", category, text, e, exc_info=True)
        return error_result(category, text, e)

    result.input = text
    if not result.output or result.output in ("nan", "NaN"):
        return error_result(category, text, "No result")
    return result
