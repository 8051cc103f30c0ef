"""Ordinary differential equation integration.

Provides a fixed-step RK4 integrator, an adaptive integrator backed by
``scipy.integrate.solve_ivp`` that falls back to RK4 on any failure, and the
text front-ends used by the solver panel and the slope-field plots:

- ``dy/dx = f(x, y)`` (also ``y' =`` and ``diff(y, x) =``)
- second-order ``y'' = f(x, y, y')``, lowered to a first-order system
- implicit first-order forms such as ``y*y' + x = 0``, rearranged to
  ``y' = -F/G`` under the assumption that they are affine in ``y'``
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

import numpy as np
from scipy.integrate import solve_ivp

from .compiler import CompiledEvaluator, compile_expression
from .config import (
    ADAPTIVE_ATOL,
    ADAPTIVE_METHOD,
    ADAPTIVE_RTOL,
    DIVISION_GUARD,
    ODE_DEFAULT_T_END,
    ODE_DEFAULT_Y0,
    PHASE_LIMIT,
    PIVOT_TOLERANCE,
    RK4_STEPS,
    TRAJECTORY_LIMIT,
)
from .context import EngineContext, get_default_context
from .logging_config import get_logger
from .parser import format_number
from .types import ODEState, ParseError, SolverError, SolverResult

logger = get_logger("ode")

ODEFunction = Callable[[float, Sequence[float]], Sequence[float]]
Point = tuple[float, float]

_PRIME_CHARS_RE = re.compile(r"[′’ʼ]|\\prime")
_FIRST_ORDER_RE = re.compile(
    r"^(?:\(\s*dy\s*\)\s*/\s*\(\s*dx\s*\)|dy\s*/\s*dx|diff\(\s*y\s*(?:,\s*x\s*)?\)|y')\s*=\s*(.+)$"
)
_SECOND_ORDER_RE = re.compile(r"^(?:y''|d\^?2y\s*/\s*dx\^?2)\s*=\s*(.+)$")
_TRAILING_ZERO_RE = re.compile(r"\s*=\s*0\s*$")

# y' is substituted by these letters before compiling
_SLOPE_PLACEHOLDER = "W"
_VELOCITY_VARIABLE = "p"

_IMPLICIT_TEST_POINTS = ((1.0, 1.0), (2.0, 3.0), (-1.0, 2.0))
_AFFINE_CHECKPOINTS = ((2.0, 3.0), (-1.0, 2.0), (0.5, -1.5))
_AFFINE_TOLERANCE = 1e-6


def _finite_or_zero(values: Sequence[float]) -> list[float]:
    return [float(v) if math.isfinite(v) else 0.0 for v in values]


def rk4(
    f: ODEFunction,
    t_span: tuple[float, float],
    y0: Sequence[float],
    steps: int = RK4_STEPS,
) -> list[ODEState]:
    """Classic fourth-order Runge-Kutta with a fixed step.

    Any non-finite state component is clamped to zero right after the step
    that produced it.

    Example:
        >>> states = rk4(lambda t, y: [y[0]], (0.0, 1.0), [1.0], steps=100)
        >>> round(states[-1].y[0], 4)
        2.7183
    """
    t0, t_end = float(t_span[0]), float(t_span[1])
    steps = max(1, int(steps))
    h = (t_end - t0) / steps
    y = [float(v) for v in y0]
    dim = len(y)
    states = [ODEState(t0, tuple(y))]

    for i in range(steps):
        t = t0 + i * h
        k1 = f(t, y)
        k2 = f(t + h / 2, [y[d] + h / 2 * k1[d] for d in range(dim)])
        k3 = f(t + h / 2, [y[d] + h / 2 * k2[d] for d in range(dim)])
        k4 = f(t + h, [y[d] + h * k3[d] for d in range(dim)])
        y = _finite_or_zero(
            [y[d] + h / 6 * (k1[d] + 2 * k2[d] + 2 * k3[d] + k4[d]) for d in range(dim)]
        )
        states.append(ODEState(t0 + (i + 1) * h, tuple(y)))
    return states


def integrate_adaptive(
    f: ODEFunction,
    t_span: tuple[float, float],
    y0: Sequence[float],
    steps: int = RK4_STEPS,
) -> list[ODEState]:
    """Integrate with an adaptive high-order method, sampled at ``steps + 1`` points.

    Falls back to ``rk4`` when the adaptive solver raises or reports failure.
    """
    t0, t_end = float(t_span[0]), float(t_span[1])
    steps = max(1, int(steps))
    if t0 == t_end:
        return rk4(f, t_span, y0, steps)
    t_eval = np.linspace(t0, t_end, steps + 1)
    try:
        solution = solve_ivp(
            lambda t, y: np.asarray(f(float(t), list(y)), dtype=float),
            (t0, t_end),
            np.asarray(y0, dtype=float),
            method=ADAPTIVE_METHOD,
            t_eval=t_eval,
            rtol=ADAPTIVE_RTOL,
            atol=ADAPTIVE_ATOL,
        )
    except (ValueError, TypeError, ArithmeticError, RuntimeError) as e:
        logger.warning("Adaptive integration raised (%s); falling back to RK4", e)
        return rk4(f, t_span, y0, steps)
    if not solution.success or solution.y.shape[1] != len(t_eval):
        logger.warning(
            "Adaptive integration failed (%s); falling back to RK4", solution.message
        )
        return rk4(f, t_span, y0, steps)
    return [
        ODEState(float(t), tuple(_finite_or_zero(solution.y[:, i])))
        for i, t in enumerate(solution.t)
    ]


def scalar_rhs(
    evaluator: Callable[[Mapping[str, float]], float],
    scope: Mapping[str, float] | None = None,
) -> ODEFunction:
    """Wrap ``f(x, y)`` as a one-dimensional system; ``nan`` slopes become 0."""
    base = dict(scope or {})

    def rhs(t: float, state: Sequence[float]) -> list[float]:
        value = evaluator({**base, "x": t, "y": state[0]})
        return [0.0 if math.isnan(value) else value]

    return rhs


def _normalize(text: str) -> str:
    return _PRIME_CHARS_RE.sub("'", text or "").strip()


def second_order_to_system(
    text: str,
    scope: Mapping[str, float] | None = None,
    context: EngineContext | None = None,
) -> ODEFunction | None:
    """Lower ``y'' = f(x, y, y')`` to the system ``(y, y') -> (y', y'')``.

    ``text`` may be the full equation or just its right-hand side.

    Returns:
        System function, or None if the right-hand side does not compile
    """
    normalized = _normalize(text)
    match = _SECOND_ORDER_RE.match(normalized)
    rhs = match.group(1) if match else normalized
    evaluator = compile_expression(rhs.replace("y'", _VELOCITY_VARIABLE), context=context)
    if evaluator is None:
        return None
    base = dict(scope or {})

    def system(t: float, state: Sequence[float]) -> list[float]:
        y, velocity = state[0], state[1]
        value = evaluator({**base, "x": t, "y": y, _VELOCITY_VARIABLE: velocity})
        return [velocity, 0.0 if math.isnan(value) else value]

    return system


@dataclass
class RearrangedODE:
    """Explicit form ``y' = rhs`` recovered from an implicit equation."""

    rhs: str
    rhs_fn: Callable[[Mapping[str, float]], float]


def rearrange_implicit_ode(
    text: str, context: EngineContext | None = None
) -> RearrangedODE | None:
    """Rearrange ``F(x, y) + G(x, y) * y' = 0`` into ``y' = -F/G``.

    ``F`` is the expression with ``y' = 0`` and ``G`` the change when
    ``y' = 1``. The result is only correct when the equation is affine in
    ``y'``; nonlinear forms are rearranged just the same.

    Returns:
        Rearranged equation, or None if ``G`` vanishes at every test point
    """
    normalized = _normalize(text)
    if "y'" not in normalized:
        return None
    cleaned = _TRAILING_ZERO_RE.sub("", normalized)
    if "=" in cleaned:
        lhs, _, rhs = cleaned.partition("=")
        cleaned = f"({lhs.strip()})-({rhs.strip()})"
    if not cleaned:
        return None

    evaluator = compile_expression(cleaned.replace("y'", _SLOPE_PLACEHOLDER), context=context)
    if evaluator is None:
        return None

    def coefficients(scope: Mapping[str, float]) -> tuple[float, float]:
        f_value = evaluator({**scope, _SLOPE_PLACEHOLDER: 0.0})
        g_value = evaluator({**scope, _SLOPE_PLACEHOLDER: 1.0}) - f_value
        return f_value, g_value

    for tx, ty in _IMPLICIT_TEST_POINTS:
        f_value, g_value = coefficients({"x": tx, "y": ty})
        if not (math.isfinite(f_value) and math.isfinite(g_value)):
            continue
        if abs(g_value) < PIVOT_TOLERANCE:
            continue

        def rhs_fn(scope: Mapping[str, float]) -> float:
            f_at, g_at = coefficients(scope)
            if not math.isfinite(f_at) or not math.isfinite(g_at) or abs(g_at) < DIVISION_GUARD:
                return math.nan
            return -f_at / g_at

        return RearrangedODE(rhs=_describe_rearranged(cleaned, context), rhs_fn=rhs_fn)

    return None


def _describe_rearranged(cleaned: str, context: EngineContext | None) -> str:
    engine = (context or get_default_context()).engine
    free = cleaned.replace("y'", "(0)")
    with_unit = cleaned.replace("y'", "(1)")
    text = f"-({free})/(({with_unit})-({free}))"
    try:
        return engine.to_text(engine.simplify(engine.parse(text)))
    except ParseError:
        return text


def detect_affine_rhs(
    evaluator: Callable[[Mapping[str, float]], float],
) -> tuple[float, float, float] | None:
    """Detect ``f(x, y) = a*y + b*x + c`` by sampling.

    Returns:
        ``(a, b, c)``, or None if any checkpoint disagrees by more than 1e-6
    """
    c = evaluator({"x": 0.0, "y": 0.0})
    fx = evaluator({"x": 1.0, "y": 0.0})
    fy = evaluator({"x": 0.0, "y": 1.0})
    if any(math.isnan(v) for v in (c, fx, fy)):
        return None
    a, b = fy - c, fx - c
    for x, y in _AFFINE_CHECKPOINTS:
        actual = evaluator({"x": x, "y": y})
        if math.isnan(actual) or abs(actual - (a * y + b * x + c)) > _AFFINE_TOLERANCE:
            return None
    return a, b, c


def _terms(terms: Sequence[tuple[float, str]], lead: str = "") -> str:
    """Signed ``coefficient*suffix`` terms after ``lead``; zero terms and unit factors dropped."""
    text = lead
    for coefficient, suffix in terms:
        if format_number(coefficient) == "0":
            continue
        magnitude = format_number(abs(coefficient))
        if suffix and magnitude == "1":
            magnitude = ""
        if text:
            text += f" {'-' if coefficient < 0 else '+'} {magnitude}{suffix}"
        else:
            text = f"{'-' if coefficient < 0 else ''}{magnitude}{suffix}"
    return text


def linear_general_solution(a: float, b: float, c: float) -> str:
    """General solution of ``y' = a*y + b*x + c``.

    Example:
        >>> linear_general_solution(2.0, 1.0, 0.0)
        'y + 0.5x + 0.25 = C*e^(2x)'
    """
    if abs(a) < 1e-10:
        polynomial = _terms([(b / 2, "x^2"), (c, "x")])
        return f"y = {polynomial} + C" if polynomial else "y = C"
    p = b / a
    q = b / (a * a) + c / a
    rate = {"1": "", "-1": "-"}.get(format_number(a), format_number(a))
    return f"{_terms([(p, 'x'), (q, '')], lead='y')} = C*e^({rate}x)"


def solve_ode_plot(
    text: str,
    t_span: tuple[float, float],
    y0: Sequence[float],
    scope: Mapping[str, float] | None = None,
    steps: int = 400,
    adaptive: bool = False,
    notation: str = "plain",
    context: EngineContext | None = None,
) -> list[Point]:
    """Trajectory of ``dy/dx = f(x, y)`` as plot points.

    RK4 trajectories stop at the first non-finite value or ``|y| > 1e6``;
    adaptive trajectories skip such samples instead.
    """
    evaluator = compile_expression(text, notation=notation, context=context)
    if evaluator is None:
        return []
    rhs = scalar_rhs(evaluator, scope)
    integrate = integrate_adaptive if adaptive else rk4
    points: list[Point] = []
    for state in integrate(rhs, t_span, y0, steps):
        value = state.y[0]
        if not math.isfinite(value) or abs(value) > TRAJECTORY_LIMIT:
            if adaptive:
                continue
            break
        points.append((state.t, value))
    return points


def slope_field_solution(
    text: str,
    kind: str,
    x_min: float,
    x_max: float,
    scope: Mapping[str, float] | None = None,
    context: EngineContext | None = None,
) -> list[Point]:
    """Particular solution through ``y(0) = 1`` drawn across a slope field.

    Args:
        text: Right-hand side (first order), ``y''`` equation, or implicit form
        kind: ``"first-order"``, ``"second-order"`` or ``"implicit"``
        x_min: Left edge of the view; integration runs two units past it
        x_max: Right edge of the view
    """
    if kind == "second-order":
        system = second_order_to_system(text, scope, context)
        if system is None:
            return []
        f, y0 = system, [ODE_DEFAULT_Y0, 0.0]
    elif kind == "implicit":
        rearranged = rearrange_implicit_ode(text, context)
        if rearranged is None:
            return []
        f, y0 = scalar_rhs(rearranged.rhs_fn, scope), [ODE_DEFAULT_Y0]
    else:
        evaluator = compile_expression(text, context=context)
        if evaluator is None:
            return []
        f, y0 = scalar_rhs(evaluator, scope), [ODE_DEFAULT_Y0]

    forward = rk4(f, (0.0, x_max + 2), y0, 400)
    backward = rk4(f, (0.0, x_min - 2), y0, 400)

    points: list[Point] = []
    for state in reversed(backward[1:]):
        value = state.y[0]
        if math.isfinite(value) and abs(value) <= TRAJECTORY_LIMIT:
            points.append((state.t, value))
    for state in forward:
        value = state.y[0]
        if not math.isfinite(value) or abs(value) > TRAJECTORY_LIMIT:
            break
        points.append((state.t, value))
    return points


def phase_portrait(
    dx_text: str,
    dy_text: str,
    x_min: float,
    x_max: float,
    y_min: float,
    y_max: float,
    step_x: float,
    step_y: float,
    context: EngineContext | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> list[list[Point]]:
    """Trajectories of the planar system ``x' = P(x, y), y' = Q(x, y)``.

    One trajectory is seeded at every grid point; each is cut where it
    leaves ``|x|, |y| <= 1e4`` and kept only if it has more than two points.
    ``should_stop`` is polled before each seed; returning True ends the
    sweep early with the trajectories found so far.
    """
    fx = compile_expression(dx_text, context=context)
    fy = compile_expression(dy_text, context=context)
    if fx is None or fy is None or step_x <= 0 or step_y <= 0:
        return []

    def system(_t: float, state: Sequence[float]) -> list[float]:
        scope = {"x": state[0], "y": state[1]}
        dx, dy = fx(scope), fy(scope)
        return [0.0 if math.isnan(dx) else dx, 0.0 if math.isnan(dy) else dy]

    trajectories: list[list[Point]] = []
    for sx in np.arange(x_min, x_max + step_x / 2, step_x):
        for sy in np.arange(y_min, y_max + step_y / 2, step_y):
            if should_stop is not None and should_stop():
                return trajectories
            points: list[Point] = []
            for state in rk4(system, (0.0, 10.0), [float(sx), float(sy)], 200):
                x, y = state.y
                if not (math.isfinite(x) and math.isfinite(y)) or abs(x) > PHASE_LIMIT or abs(y) > PHASE_LIMIT:
                    break
                points.append((x, y))
            if len(points) > 2:
                trajectories.append(points)
    return trajectories


def _trajectory_summary(states: list[ODEState]) -> tuple[str, list[str]]:
    interval = max(1, len(states) // 5)
    lines = [f"y({s.t:.2f}) = {s.y[0]:.4f}" for s in states[::interval]]
    last = states[-1]
    return f"y({last.t:.2f}) = {last.y[0]:.4f}", lines


def solve_ode_text(text: str, context: EngineContext | None = None) -> SolverResult:
    """Solve an ODE typed into the solver panel.

    Affine right-hand sides ``a*y + b*x + c`` get a closed-form general
    solution; anything else is integrated numerically from ``y(0) = 1`` on
    ``[0, 10]`` and summarized by its final value.

    Raises:
        SolverError: If the equation has no recognizable form or does not compile
    """
    normalized = _normalize(text)
    t0, y0, t_end = 0.0, ODE_DEFAULT_Y0, ODE_DEFAULT_T_END
    initial = f"Initial condition: y({format_number(t0)}) = {format_number(y0)}"

    second = _SECOND_ORDER_RE.match(normalized)
    if second:
        system = second_order_to_system(second.group(1), context=context)
        if system is None:
            raise SolverError(f"Cannot compile expression: {second.group(1)}", "ODE_COMPILE")
        states = integrate_adaptive(system, (t0, t_end), [y0, 0.0])
        lowered = second.group(1).replace("y'", _VELOCITY_VARIABLE)
        output, lines = _trajectory_summary(states)
        return SolverResult(
            input=text,
            output=output,
            steps=[
                f"Given: y'' = {second.group(1)}",
                f"Rewritten as a system: y' = p, p' = {lowered}",
                f"{initial}, y'({format_number(t0)}) = 0",
                f"Numerical solution on [{format_number(t0)}, {format_number(t_end)}]:",
                *lines,
            ],
        )

    match = _FIRST_ORDER_RE.match(normalized)
    implicit_form = False
    if match:
        rhs = match.group(1).strip()
        evaluator: Callable[[Mapping[str, float]], float] | CompiledEvaluator | None
        evaluator = compile_expression(rhs, context=context)
        if evaluator is None:
            raise SolverError(f"Cannot compile expression: {rhs}", "ODE_COMPILE")
    else:
        if "y'" not in normalized:
            raise SolverError(
                "Expected form: dy/dx = f(x,y), y' = f(x,y), or an implicit ODE containing y'",
                "ODE_FORM",
            )
        rearranged = rearrange_implicit_ode(normalized, context)
        if rearranged is None:
            raise SolverError(
                "Cannot rearrange implicit ODE. Try writing it as y' = f(x,y)", "ODE_REARRANGE"
            )
        rhs, evaluator, implicit_form = rearranged.rhs, rearranged.rhs_fn, True

    given = [f"Given: {text.strip()}" if implicit_form else f"Given: dy/dx = {rhs}"]
    if implicit_form:
        given.append(f"Rearranged to: dy/dx = {rhs}")

    coefficients = detect_affine_rhs(evaluator)
    if coefficients is not None:
        equation = linear_general_solution(*coefficients)
        return SolverResult(
            input=text,
            output=equation,
            steps=[
                *given,
                "Detected first-order linear ODE: y' = a*y + b*x + c",
                f"General solution: {equation}",
            ],
        )

    states = integrate_adaptive(scalar_rhs(evaluator), (t0, t_end), [y0])
    output, lines = _trajectory_summary(states)
    return SolverResult(
        input=text,
        output=output,
        steps=[
            *given,
            initial,
            f"Numerical solution on [{format_number(t0)}, {format_number(t_end)}]:",
            *lines,
        ],
    )
