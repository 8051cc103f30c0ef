"""Optional PNG rendering of curves and implicit contours."""

from __future__ import annotations

import os
import tempfile

import numpy as np

try:
    # Non-GUI backend; plots are only ever written to files
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    HAS_MATPLOTLIB = True
except ImportError:
    HAS_MATPLOTLIB = False

from .compiler import compile_expression
from .context import EngineContext
from .implicit import adaptive_grid_size, marching_squares, segments_to_rings
from .logging_config import get_logger
from .types import EvalResult

logger = get_logger("plotting")

_MISSING = "matplotlib not installed. Install the 'plot' extra: pip install graphcalc[plot]"


def _output_path(output: str | None, stem: str) -> str:
    if output:
        return output
    handle, path = tempfile.mkstemp(prefix=f"graphcalc_{stem}_", suffix=".png")
    os.close(handle)
    return path


def _save(fig, path: str) -> EvalResult:
    try:
        fig.savefig(path, dpi=120, bbox_inches="tight")
    except OSError as e:
        return EvalResult(ok=False, error=f"Could not write {path}: {e}")
    finally:
        plt.close(fig)
    logger.debug("Wrote plot to %s", path)
    return EvalResult(ok=True, result=path)


def plot_function(
    expression: str,
    x_min: float = -10.0,
    x_max: float = 10.0,
    points: int = 400,
    output: str | None = None,
    context: EngineContext | None = None,
) -> EvalResult:
    """Plot ``y = expression`` over ``[x_min, x_max]`` to a PNG file.

    Undefined samples leave gaps in the curve.

    Returns:
        EvalResult whose ``result`` is the path of the written file
    """
    if not HAS_MATPLOTLIB:
        return EvalResult(ok=False, error=_MISSING)
    if not x_max > x_min:
        return EvalResult(ok=False, error="x_max must be greater than x_min")
    evaluator = compile_expression(expression, context=context)
    if evaluator is None:
        return EvalResult(ok=False, error=f"Could not parse expression: {expression}")

    xs = np.linspace(x_min, x_max, max(2, int(points)))
    ys = evaluator.evaluate_array({"x": xs}, xs.shape)

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(xs, ys, label=f"y = {expression}", linewidth=2)
    ax.axhline(0, color="black", linewidth=0.5)
    ax.axvline(0, color="black", linewidth=0.5)
    ax.grid(True, alpha=0.3)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.legend()
    return _save(fig, _output_path(output, "function"))


def plot_contour(
    expression: str,
    x_min: float = -10.0,
    x_max: float = 10.0,
    y_min: float = -10.0,
    y_max: float = 10.0,
    grid_size: int | None = None,
    output: str | None = None,
    context: EngineContext | None = None,
) -> EvalResult:
    """Plot the implicit curve ``expression`` (``F = 0`` or ``A = B``) to a PNG file."""
    if not HAS_MATPLOTLIB:
        return EvalResult(ok=False, error=_MISSING)
    size = grid_size or adaptive_grid_size(x_max - x_min, y_max - y_min)
    segments = marching_squares(expression, x_min, x_max, y_min, y_max, size, context=context)
    if not segments:
        return EvalResult(ok=False, error=f"No contour found for {expression}")

    fig, ax = plt.subplots(figsize=(6, 6))
    for ring in segments_to_rings(segments):
        xs, ys = zip(*ring)
        ax.plot(xs, ys, color="tab:blue", linewidth=1.5)
    ax.set_xlim(x_min, x_max)
    ax.set_ylim(y_min, y_max)
    ax.set_aspect("equal")
    ax.grid(True, alpha=0.3)
    ax.set_title(expression)
    return _save(fig, _output_path(output, "contour"))
