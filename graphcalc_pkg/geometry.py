"""Differential geometry of plane curves ``y = f(x)``."""

from __future__ import annotations

import math

from .config import (
    ARC_LENGTH_STEP,
    CURVATURE_STEP,
    DIVISION_GUARD,
    MAX_OSCULATING_RADIUS,
    MIN_CURVATURE,
)
from .context import EngineContext
from .numerical import FunctionLike, Scope, make_sampler
from .types import OsculatingCircle


def arc_length(
    f: FunctionLike,
    a: float,
    b: float,
    scope: Scope | None = None,
    n: int = 200,
    var: str = "x",
    context: EngineContext | None = None,
) -> float:
    """Length of the curve on ``[a, b]`` by Simpson's rule on ``sqrt(1 + f'^2)``.

    Returns:
        0.0 for an empty or non-finite interval, or uncompilable input
    """
    if not (math.isfinite(a) and math.isfinite(b)) or a >= b:
        return 0.0
    at = make_sampler(f, scope, var, context)
    if at is None:
        return 0.0
    n = max(2, int(n) + int(n) % 2)
    h = (b - a) / n
    total = 0.0
    for i in range(n + 1):
        x = a + i * h
        slope = (at(x + ARC_LENGTH_STEP) - at(x - ARC_LENGTH_STEP)) / (2 * ARC_LENGTH_STEP)
        integrand = math.sqrt(1 + slope * slope)
        if i == 0 or i == n:
            total += integrand
        elif i % 2 == 1:
            total += 4 * integrand
        else:
            total += 2 * integrand
    return h / 3 * total


def _derivatives(at, x: float) -> tuple[float, float, float]:
    h = CURVATURE_STEP
    ym, y0, yp = at(x - h), at(x), at(x + h)
    return y0, (yp - ym) / (2 * h), (yp - 2 * y0 + ym) / (h * h)


def curvature(
    f: FunctionLike,
    x: float,
    scope: Scope | None = None,
    var: str = "x",
    context: EngineContext | None = None,
) -> float:
    """Signed curvature ``f'' / (1 + f'^2)^1.5`` at ``x``; ``nan`` if undefined."""
    at = make_sampler(f, scope, var, context)
    if at is None:
        return math.nan
    y0, first, second = _derivatives(at, x)
    if math.isnan(y0) or math.isnan(first) or math.isnan(second):
        return math.nan
    denom = (1 + first * first) ** 1.5
    if denom < DIVISION_GUARD:
        return 0.0
    return second / denom


def osculating_circle(
    f: FunctionLike,
    x: float,
    scope: Scope | None = None,
    var: str = "x",
    context: EngineContext | None = None,
) -> OsculatingCircle | None:
    """Circle of curvature at ``x``.

    The centre lies one radius along the unit normal, on the concave side.

    Returns:
        None for (nearly) straight curves, radii above 1e4, or undefined values
    """
    at = make_sampler(f, scope, var, context)
    if at is None:
        return None
    y0, first, second = _derivatives(at, x)
    if math.isnan(y0) or math.isnan(first) or math.isnan(second):
        return None
    k = second / (1 + first * first) ** 1.5
    if not math.isfinite(k) or abs(k) < MIN_CURVATURE:
        return None
    radius = 1 / abs(k)
    if radius > MAX_OSCULATING_RADIUS:
        return None
    sign = 1.0 if k > 0 else -1.0
    norm = math.sqrt(1 + first * first)
    center = (x - sign * first * radius / norm, y0 + sign * radius / norm)
    return OsculatingCircle(center=center, radius=radius, curvature=k)
