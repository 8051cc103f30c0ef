"""Numerical toolkit: roots, extrema, intersections, quadrature, linear systems.

Every routine samples a fixed number of points on ``[x_min, x_max]`` and
refines by bisection with a fixed iteration count, so no call can loop
unboundedly. Evaluators may be given as expression text or as compiled
callables; routines degrade to an empty result (or ``nan``) instead of
raising when the input cannot be evaluated.
"""

from __future__ import annotations

import math
from typing import Callable, Mapping, Union

from .compiler import as_evaluator, compile_expression
from .config import (
    DEFAULT_SAMPLES,
    EXTREMA_BISECT_ITERATIONS,
    LINEAR_ROUND_DIGITS,
    MAX_INTERSECTIONS,
    MAX_LINEAR_UNKNOWNS,
    MAX_SERIES_ITERATIONS,
    PIVOT_TOLERANCE,
    ROOT_DEDUP_TOLERANCE,
    ZERO_BISECT_ITERATIONS,
    ZERO_TOLERANCE,
)
from .context import EngineContext
from .logging_config import get_logger
from .parser import split_equation, split_top_level
from .types import Extrema, ValidationError

logger = get_logger("numerical")

Scope = Mapping[str, float]
FunctionLike = Union[str, Callable[[Scope], float]]


def make_sampler(
    f: FunctionLike, scope: Scope | None, var: str, context: EngineContext | None
) -> Callable[[float], float] | None:
    evaluator = as_evaluator(f, context)
    if evaluator is None:
        return None
    base = dict(scope or {})

    def at(x: float) -> float:
        base[var] = x
        return evaluator(base)

    return at


def _valid_interval(x_min: float, x_max: float, samples: int) -> bool:
    return (
        math.isfinite(x_min)
        and math.isfinite(x_max)
        and x_max > x_min
        and samples >= 1
    )


def bisect(
    g: Callable[[float], float], a: float, b: float, ga: float, iterations: int
) -> float:
    """Refine a sign change of ``g`` on ``[a, b]`` by interval halving."""
    for _ in range(iterations):
        mid = 0.5 * (a + b)
        gm = g(mid)
        if math.isnan(gm):
            break
        if gm == 0:
            return mid
        if (gm < 0) == (ga < 0):
            a, ga = mid, gm
        else:
            b = mid
    return 0.5 * (a + b)


def dedupe(values: list[float], tolerance: float = ROOT_DEDUP_TOLERANCE) -> list[float]:
    """Sort and drop values closer than ``tolerance`` to the previous one."""
    result: list[float] = []
    for value in sorted(values):
        if not result or abs(value - result[-1]) > tolerance:
            result.append(value)
    return result


def _scan_sign_changes(
    g: Callable[[float], float],
    x_min: float,
    x_max: float,
    samples: int,
    iterations: int,
    limit: int | None = None,
) -> list[float]:
    dx = (x_max - x_min) / samples
    found: list[float] = []
    prev_x = x_min
    prev_y = g(x_min)
    if not math.isnan(prev_y) and abs(prev_y) < ZERO_TOLERANCE:
        found.append(x_min)
    for i in range(1, samples + 1):
        if limit is not None and len(found) >= limit:
            break
        x = x_min + i * dx
        y = g(x)
        if not math.isnan(y) and not math.isnan(prev_y):
            if abs(y) < ZERO_TOLERANCE:
                found.append(x)
            elif prev_y * y < 0 and abs(prev_y) >= ZERO_TOLERANCE:
                found.append(bisect(g, prev_x, x, prev_y, iterations))
        prev_x, prev_y = x, y
    return dedupe(found)


def find_zeros(
    f: FunctionLike,
    x_min: float,
    x_max: float,
    scope: Scope | None = None,
    samples: int = DEFAULT_SAMPLES,
    var: str = "x",
    context: EngineContext | None = None,
) -> list[float]:
    """Find the zeros of ``f`` on ``[x_min, x_max]``.

    Samples the interval, keeps samples with ``|y| < 1e-10`` and refines each
    sign change with 40 bisection steps. ``nan`` samples are skipped.

    Example:
        >>> [round(z, 6) for z in find_zeros("x^2 - 4", -10, 10)]
        [-2.0, 2.0]
    """
    at = make_sampler(f, scope, var, context)
    if at is None or not _valid_interval(x_min, x_max, samples):
        return []
    return _scan_sign_changes(at, x_min, x_max, samples, ZERO_BISECT_ITERATIONS)


def find_extrema(
    f: FunctionLike,
    x_min: float,
    x_max: float,
    scope: Scope | None = None,
    samples: int = DEFAULT_SAMPLES,
    var: str = "x",
    context: EngineContext | None = None,
) -> Extrema:
    """Locate local minima and maxima of ``f`` on ``[x_min, x_max]``.

    A central-difference derivative (step ``dx * 0.01``) is sampled; each of
    its sign changes is bisected 30 times. Positive-to-negative is a maximum.
    """
    at = make_sampler(f, scope, var, context)
    if at is None or not _valid_interval(x_min, x_max, samples):
        return Extrema()
    dx = (x_max - x_min) / samples
    h = dx * 0.01

    def derivative(x: float) -> float:
        return (at(x + h) - at(x - h)) / (2 * h)

    minima: list[float] = []
    maxima: list[float] = []
    prev_x = x_min
    prev_d = derivative(x_min)
    for i in range(1, samples + 1):
        x = x_min + i * dx
        d = derivative(x)
        if not math.isnan(d) and not math.isnan(prev_d) and prev_d * d < 0:
            location = bisect(derivative, prev_x, x, prev_d, EXTREMA_BISECT_ITERATIONS)
            if prev_d > 0:
                maxima.append(location)
            else:
                minima.append(location)
        prev_x, prev_d = x, d
    return Extrema(minima=minima, maxima=maxima)


def find_intersections(
    f: FunctionLike,
    g: FunctionLike,
    x_min: float,
    x_max: float,
    scope: Scope | None = None,
    samples: int = DEFAULT_SAMPLES,
    limit: int = MAX_INTERSECTIONS,
    var: str = "x",
    context: EngineContext | None = None,
) -> list[tuple[float, float]]:
    """Intersection points of two curves, at most ``limit`` of them."""
    at_f = make_sampler(f, scope, var, context)
    at_g = make_sampler(g, scope, var, context)
    if at_f is None or at_g is None or not _valid_interval(x_min, x_max, samples):
        return []

    def difference(x: float) -> float:
        return at_f(x) - at_g(x)

    xs = _scan_sign_changes(
        difference, x_min, x_max, samples, ZERO_BISECT_ITERATIONS, limit=limit
    )
    points = []
    for x in xs[:limit]:
        y = at_f(x)
        if not math.isnan(y):
            points.append((x, y))
    return points


def simpson_integrate(
    f: FunctionLike,
    a: float,
    b: float,
    scope: Scope | None = None,
    n: int = 50,
    var: str = "x",
    context: EngineContext | None = None,
) -> float:
    """Composite Simpson's rule for the integral of ``f`` from ``a`` to ``b``.

    ``n`` is forced even. ``nan`` samples count as zero.

    Returns:
        0.0 when ``a == b``; ``nan`` for non-finite bounds or uncompilable input
    """
    if not (math.isfinite(a) and math.isfinite(b)):
        return math.nan
    if a == b:
        return 0.0
    at = make_sampler(f, scope, var, context)
    if at is None:
        return math.nan
    n = max(2, int(n))
    if n % 2:
        n += 1
    h = (b - a) / n
    total = 0.0
    for i in range(n + 1):
        y = at(a + i * h)
        if math.isnan(y):
            y = 0.0
        if i == 0 or i == n:
            total += y
        elif i % 2 == 1:
            total += 4 * y
        else:
            total += 2 * y
    return h / 3 * total


def series_sum(
    term: FunctionLike,
    index: str,
    start: int,
    end: int,
    scope: Scope | None = None,
    product: bool = False,
    context: EngineContext | None = None,
) -> float:
    """Partial sum (or product) of ``term`` for ``index`` in ``[start, end]``.

    At most ``MAX_SERIES_ITERATIONS`` terms are taken; a ``nan`` term makes
    the whole result ``nan``.
    """
    at = make_sampler(term, scope, index, context)
    if at is None:
        return math.nan
    last = min(int(end), int(start) + MAX_SERIES_ITERATIONS - 1)
    accumulator = 1.0 if product else 0.0
    for k in range(int(start), last + 1):
        value = at(float(k))
        if math.isnan(value):
            return math.nan
        accumulator = accumulator * value if product else accumulator + value
    return accumulator


def gauss_jordan(matrix: list[list[float]], rhs: list[float]) -> list[float] | None:
    """Solve ``matrix @ x = rhs`` with partial pivoting.

    Returns:
        Solution vector, or None if a pivot falls below ``1e-12``
    """
    n = len(matrix)
    aug = [list(map(float, row)) + [float(b)] for row, b in zip(matrix, rhs)]
    for col in range(n):
        pivot_row = max(range(col, n), key=lambda r: abs(aug[r][col]))
        if abs(aug[pivot_row][col]) < PIVOT_TOLERANCE:
            return None
        aug[col], aug[pivot_row] = aug[pivot_row], aug[col]
        pivot = aug[col][col]
        aug[col] = [value / pivot for value in aug[col]]
        for row in range(n):
            if row != col and aug[row][col] != 0:
                factor = aug[row][col]
                aug[row] = [rv - factor * cv for rv, cv in zip(aug[row], aug[col])]
    return [aug[i][n] for i in range(n)]


def _round_solution(value: float) -> float:
    rounded = round(value, LINEAR_ROUND_DIGITS)
    return 0.0 if rounded == 0 else rounded


def solve_linear_system(
    text: str, context: EngineContext | None = None
) -> dict[str, float] | None:
    """Solve a comma/semicolon separated system of linear equations.

    Coefficients are sampled numerically: for each equation ``g = lhs - rhs``
    the coefficient of unknown ``j`` is ``g(e_j) - g(0)`` and the constant
    is ``-g(0)``. This relies on the equations being linear; a system that
    fails a linearity check at an off-grid point is rejected.

    Returns:
        ``{name: value}`` sorted by name, or None when the unknowns number
        more than four, differ from the equation count, or the matrix is
        singular

    Example:
        >>> solve_linear_system("x+2*y=5, 3*x-y=1")
        {'x': 1.0, 'y': 2.0}
    """
    equations = split_top_level(text or "", ",;")
    if len(equations) < 2:
        return None

    evaluators = []
    try:
        for equation in equations:
            lhs, rhs = split_equation(equation)
            evaluator = compile_expression(f"({lhs})-({rhs})", context=context)
            if evaluator is None:
                return None
            evaluators.append(evaluator)
    except ValidationError as e:
        logger.debug("Rejected system %r: %s", text, e)
        return None

    names = sorted({name for ev in evaluators for name in ev.variables})
    if (
        not names
        or len(names) > MAX_LINEAR_UNKNOWNS
        or len(names) != len(evaluators)
        or any(len(name) != 1 for name in names)
    ):
        return None

    origin = {name: 0.0 for name in names}
    matrix: list[list[float]] = []
    rhs: list[float] = []
    for evaluator in evaluators:
        g0 = evaluator(origin)
        row = [evaluator({**origin, name: 1.0}) - g0 for name in names]
        if math.isnan(g0) or any(math.isnan(c) for c in row):
            return None
        check_point = {name: 1.5 + 0.5 * k for k, name in enumerate(names)}
        predicted = g0 + sum(c * check_point[name] for c, name in zip(row, names))
        if abs(evaluator(check_point) - predicted) > 1e-6 * max(1.0, abs(predicted)):
            logger.debug("System %r is not linear", text)
            return None
        matrix.append(row)
        rhs.append(-g0)

    solution = gauss_jordan(matrix, rhs)
    if solution is None:
        return None
    return {name: _round_solution(value) for name, value in zip(names, solution)}
