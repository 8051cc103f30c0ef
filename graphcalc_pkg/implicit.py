"""Implicit contour extraction by marching squares, and 3-D field sampling.

The zero level of ``F(x, y)`` is traced on a regular grid. Each cell is
classified by the signs of its four corners (bl=8, br=4, tr=2, tl=1) and the
crossing points on its edges are found by linear interpolation. Saddle cells
(codes 5 and 10) are resolved by the average of the four corners.
"""

from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from typing import Any, Callable, Mapping

import numpy as np

from .compiler import CompiledEvaluator, compile_implicit
from .config import (
    DEFAULT_GRID_SIZE,
    DIVISION_GUARD,
    IMPLICIT_FIELD_RESOLUTION,
    IMPLICIT_TIME_BUDGET_MS,
    IMPLICIT_VIEW_MAX,
    IMPLICIT_VIEW_MIN,
    MAX_GRID_SIZE,
    MIN_GRID_SIZE,
)
from .context import EngineContext, get_default_context
from .logging_config import get_logger
from .types import ContourSegment, FieldSample, Point

logger = get_logger("implicit")

Scope = Mapping[str, float]
FieldSource = Any  # expression text or a Scope -> float callable

# (span upper bound, grid size); wider viewports get coarser grids
_GRID_STEPS = ((8.0, 240), (20.0, 190), (50.0, 150))
_WIDE_GRID = 120


def adaptive_grid_size(x_span: float, y_span: float | None = None) -> int:
    """Grid resolution for a viewport, coarser as the span grows.

    Example:
        >>> adaptive_grid_size(10, 10)
        190
    """
    span = max(abs(x_span), abs(y_span if y_span is not None else x_span))
    size = _WIDE_GRID
    for limit, steps in _GRID_STEPS:
        if span <= limit:
            size = steps
            break
    return max(MIN_GRID_SIZE, min(MAX_GRID_SIZE, size))


def _resolve(source: FieldSource, context: EngineContext) -> Callable | None:
    if callable(source):
        return source
    return compile_implicit(source, context=context)


def _sample_grid(
    fn: Callable, xs: np.ndarray, ys: np.ndarray, scope: Scope | None
) -> np.ndarray:
    """Values of ``fn`` at every ``(xs[i], ys[j])``, non-finite mapped to 1."""
    shape = (len(xs), len(ys))
    if isinstance(fn, CompiledEvaluator):
        gx, gy = np.meshgrid(xs, ys, indexing="ij")
        grid = fn.evaluate_array({**(scope or {}), "x": gx, "y": gy}, shape)
    else:
        grid = np.empty(shape)
        point = dict(scope or {})
        for i, x in enumerate(xs):
            point["x"] = float(x)
            for j, y in enumerate(ys):
                point["y"] = float(y)
                grid[i, j] = fn(point)
    grid = np.asarray(grid, dtype=float)
    grid[~np.isfinite(grid)] = 1.0
    return grid


def _lerp(a: float, b: float, va: float, vb: float) -> float:
    denom = vb - va
    if abs(denom) < DIVISION_GUARD:
        return (a + b) / 2
    return a + (0 - va) / denom * (b - a)


def _cell_segments(
    code: int,
    x0: float,
    x1: float,
    y0: float,
    y1: float,
    bl: float,
    br: float,
    tr: float,
    tl: float,
) -> list[ContourSegment]:
    bottom = (_lerp(x0, x1, bl, br), y0)
    right = (x1, _lerp(y0, y1, br, tr))
    top = (_lerp(x0, x1, tl, tr), y1)
    left = (x0, _lerp(y0, y1, bl, tl))

    if code in (1, 14):
        return [(left, top)]
    if code in (2, 13):
        return [(top, right)]
    if code in (3, 12):
        return [(left, right)]
    if code in (4, 11):
        return [(bottom, right)]
    if code in (6, 9):
        return [(bottom, top)]
    if code in (7, 8):
        return [(left, bottom)]

    # positive center joins the positive corners; cut off the negative ones
    center = (bl + br + tr + tl) / 4
    if code == 5:
        if center > 0:
            return [(left, bottom), (top, right)]
        return [(left, top), (bottom, right)]
    if code == 10:
        if center > 0:
            return [(left, top), (bottom, right)]
        return [(left, bottom), (top, right)]
    return []


def _contour_key(
    source: FieldSource,
    x_min: float,
    x_max: float,
    y_min: float,
    y_max: float,
    grid_size: int,
    scope: Scope | None,
) -> str | None:
    if isinstance(source, str):
        label = source
    elif isinstance(source, CompiledEvaluator):
        label = source.text
    else:
        return None
    params = ",".join(f"{k}={v}" for k, v in sorted((scope or {}).items()))
    return f"{label}|{x_min}|{x_max}|{y_min}|{y_max}|{grid_size}|{params}"


def marching_squares(
    expr: FieldSource,
    x_min: float,
    x_max: float,
    y_min: float,
    y_max: float,
    grid_size: int = DEFAULT_GRID_SIZE,
    scope: Scope | None = None,
    context: EngineContext | None = None,
) -> list[ContourSegment]:
    """Line segments approximating the contour ``F(x, y) = 0``.

    Args:
        expr: ``F`` as text (``A = B`` means ``A - B``) or a compiled evaluator
        x_min, x_max, y_min, y_max: Viewport
        grid_size: Cells per axis; ``(grid_size + 1)^2`` samples are taken
        scope: Extra variable values (sliders)
        context: Execution context owning the contour cache

    Returns:
        List of ``((x1, y1), (x2, y2))`` segments; empty if ``F`` cannot be
        compiled or the viewport is degenerate

    Example:
        >>> segments = marching_squares("x^2 + y^2 = 1", -2, 2, -2, 2, 40)
        >>> len(segments) > 0
        True
    """
    ctx = context if context is not None else get_default_context()
    grid_size = int(grid_size)
    if (
        grid_size < 1
        or not all(math.isfinite(v) for v in (x_min, x_max, y_min, y_max))
        or x_max <= x_min
        or y_max <= y_min
    ):
        return []

    key = _contour_key(expr, x_min, x_max, y_min, y_max, grid_size, scope)
    if key is not None:
        cached = ctx.contour_cache.get(key)
        if cached is not None:
            return list(cached)

    fn = _resolve(expr, ctx)
    if fn is None:
        return []

    xs = np.linspace(x_min, x_max, grid_size + 1)
    ys = np.linspace(y_min, y_max, grid_size + 1)
    grid = _sample_grid(fn, xs, ys, scope)

    positive = grid > 0
    codes = (
        positive[:-1, :-1] * 8
        + positive[1:, :-1] * 4
        + positive[1:, 1:] * 2
        + positive[:-1, 1:] * 1
    )

    segments: list[ContourSegment] = []
    for i, j in zip(*np.nonzero((codes != 0) & (codes != 15))):
        segments.extend(
            _cell_segments(
                int(codes[i, j]),
                float(xs[i]),
                float(xs[i + 1]),
                float(ys[j]),
                float(ys[j + 1]),
                float(grid[i, j]),
                float(grid[i + 1, j]),
                float(grid[i + 1, j + 1]),
                float(grid[i, j + 1]),
            )
        )

    logger.debug("Contour of %r: %d segments on a %d grid", key or expr, len(segments), grid_size)
    if key is not None:
        ctx.contour_cache.put(key, segments)
    return list(segments)


def segments_to_rings(segments: list[ContourSegment], digits: int = 9) -> list[list[Point]]:
    """Chain segments that share endpoints into polylines.

    A closed ring ends on the point it started from.
    """

    def key(point: Point) -> tuple[float, float]:
        return (round(point[0], digits), round(point[1], digits))

    touching: dict[tuple[float, float], list[int]] = defaultdict(list)
    for index, (a, b) in enumerate(segments):
        touching[key(a)].append(index)
        touching[key(b)].append(index)

    used = [False] * len(segments)

    def follow(tip: Point) -> Point | None:
        for index in touching[key(tip)]:
            if not used[index]:
                used[index] = True
                a, b = segments[index]
                return b if key(a) == key(tip) else a
        return None

    rings: list[list[Point]] = []
    for start, (a, b) in enumerate(segments):
        if used[start]:
            continue
        used[start] = True
        chain: deque[Point] = deque([a, b])
        point = follow(chain[-1])
        while point is not None:
            chain.append(point)
            point = follow(chain[-1])
        point = follow(chain[0])
        while point is not None:
            chain.appendleft(point)
            point = follow(chain[0])
        rings.append(list(chain))
    return rings


def sample_implicit_field(
    expr: FieldSource,
    resolution: int = IMPLICIT_FIELD_RESOLUTION,
    scope: Scope | None = None,
    time_budget_ms: float = IMPLICIT_TIME_BUDGET_MS,
    context: EngineContext | None = None,
) -> FieldSample | None:
    """Sample ``F(x, y, z)`` on a ``resolution^3`` cube over the implicit view.

    Values are laid out x-fastest (``ix + iy*N + iz*N*N``); slots never
    reached are ``nan``. The budget is checked after every z-slab and running
    over it stops sampling with ``timed_out=True``.

    Returns:
        FieldSample, or None when ``F`` cannot be compiled
    """
    ctx = context if context is not None else get_default_context()
    fn = _resolve(expr, ctx)
    if fn is None:
        return None
    n = max(2, int(resolution))
    axis = np.linspace(IMPLICIT_VIEW_MIN, IMPLICIT_VIEW_MAX, n)
    field = np.full((n, n, n), np.nan)  # [iz, iy, ix]
    gy, gx = np.meshgrid(axis, axis, indexing="ij")
    started = time.perf_counter()
    timed_out = False

    for iz, z in enumerate(axis):
        if isinstance(fn, CompiledEvaluator):
            slab = fn.evaluate_array({**(scope or {}), "x": gx, "y": gy, "z": z}, (n, n))
        else:
            point = dict(scope or {}, z=float(z))
            slab = np.empty((n, n))
            for iy, y in enumerate(axis):
                point["y"] = float(y)
                for ix, x in enumerate(axis):
                    point["x"] = float(x)
                    slab[iy, ix] = fn(point)
        slab = np.asarray(slab, dtype=float)
        slab[~np.isfinite(slab)] = np.nan
        field[iz] = slab
        if (time.perf_counter() - started) * 1000 > time_budget_ms:
            logger.warning(
                "Field sampling of %r ran over %s ms after %d of %d slabs",
                expr, time_budget_ms, iz + 1, n,
            )
            timed_out = True
            break

    return FieldSample(values=field.ravel().tolist(), resolution=n, timed_out=timed_out)
