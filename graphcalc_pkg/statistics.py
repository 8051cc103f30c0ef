"""Descriptive statistics, histograms, regression and CSV point parsing."""

from __future__ import annotations

import math
import re
from typing import Sequence

import numpy as np

from .logging_config import get_logger
from .types import DescriptiveStats, HistogramBin, RegressionResult, ValidationError

logger = get_logger("statistics")

_VALUE_SEPARATORS = re.compile(r"[,;\s]+")
_CSV_SEPARATORS = re.compile(r"[,\t;]+")

REGRESSION_KINDS = ("linear", "quadratic", "exponential")


def parse_values(text: str) -> list[float]:
    """Numbers from a comma, semicolon or whitespace separated list.

    Raises:
        ValidationError: If no number is present or a token is not numeric
    """
    tokens = [t for t in _VALUE_SEPARATORS.split(text or "") if t]
    values = []
    for token in tokens:
        try:
            value = float(token)
        except ValueError as e:
            raise ValidationError(f"Not a number: {token}", "INVALID_DATA") from e
        if not math.isfinite(value):
            raise ValidationError(f"Not a finite number: {token}", "INVALID_DATA")
        values.append(value)
    if not values:
        raise ValidationError("Enter at least one number", "EMPTY_DATA")
    return values


def descriptive_stats(data: Sequence[float]) -> DescriptiveStats:
    """Summary statistics with population variance and linear-interpolated quartiles.

    An empty data set gives all zeros.

    Example:
        >>> descriptive_stats([1, 2, 3, 4, 5]).median
        3.0
    """
    if len(data) == 0:
        return DescriptiveStats(0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
    values = np.sort(np.asarray(data, dtype=float))
    q1, median, q3 = np.quantile(values, [0.25, 0.5, 0.75])
    return DescriptiveStats(
        count=int(values.size),
        mean=float(np.mean(values)),
        median=float(median),
        stddev=float(np.std(values)),
        variance=float(np.var(values)),
        min=float(values[0]),
        max=float(values[-1]),
        q1=float(q1),
        q3=float(q3),
    )


def histogram(data: Sequence[float], bins: int = 10) -> list[HistogramBin]:
    """Equal-width bins over ``[min, max]``; the maximum falls in the last bin.

    A constant data set uses unit total width.
    """
    if len(data) == 0 or bins < 1:
        return []
    lo, hi = float(min(data)), float(max(data))
    step = ((hi - lo) or 1.0) / bins
    counts = [0] * bins
    for value in data:
        index = min(int(math.floor((value - lo) / step)), bins - 1)
        counts[index] += 1
    return [
        HistogramBin(lo=lo + i * step, hi=lo + (i + 1) * step, count=count)
        for i, count in enumerate(counts)
    ]


def parse_csv(text: str) -> list[tuple[float, float]]:
    """``(x, y)`` pairs from CSV text; rows without two numbers are skipped."""
    points = []
    for line in (text or "").splitlines():
        fields = [f for f in _CSV_SEPARATORS.split(line.strip()) if f]
        if len(fields) < 2:
            continue
        try:
            x, y = float(fields[0]), float(fields[1])
        except ValueError:
            logger.debug("Skipping CSV row %r", line)
            continue
        if math.isfinite(x) and math.isfinite(y):
            points.append((x, y))
    return points


def _r_squared(ys: np.ndarray, predicted: np.ndarray) -> float:
    ss_tot = float(np.sum((ys - ys.mean()) ** 2))
    if ss_tot == 0:
        return 1.0
    return 1.0 - float(np.sum((ys - predicted) ** 2)) / ss_tot


def fit_regression(
    points: Sequence[tuple[float, float]], kind: str = "linear"
) -> RegressionResult | None:
    """Least-squares fit through ``points``.

    ``linear`` is ``y = ax + b``; ``quadratic`` is ``y = ax^2 + bx + c``
    (falling back to linear when the normal equations are singular);
    ``exponential`` is ``y = a*e^(bx)`` fitted on ``ln y`` over the points with
    ``y > 0``.

    Returns:
        RegressionResult, or None with fewer than two points

    Raises:
        ValidationError: For an unknown ``kind``
    """
    if kind not in REGRESSION_KINDS:
        raise ValidationError(
            f"Unknown regression type: {kind}. Supported: {', '.join(REGRESSION_KINDS)}",
            "INVALID_REGRESSION",
        )
    if len(points) < 2:
        return None
    xs = np.array([p[0] for p in points], dtype=float)
    ys = np.array([p[1] for p in points], dtype=float)

    if kind == "quadratic":
        if len(np.unique(xs)) >= 3:
            a, b, c = np.polyfit(xs, ys, 2)
            return RegressionResult(
                kind="quadratic",
                coefficients=[float(a), float(b), float(c)],
                equation=f"y = {a:.4f}x² + {b:.4f}x + {c:.4f}",
                r2=_r_squared(ys, a * xs**2 + b * xs + c),
            )
        logger.debug("Quadratic fit is degenerate, falling back to linear")
        kind = "linear"

    if kind == "exponential":
        positive = ys > 0
        if positive.sum() < 2:
            return RegressionResult("exponential", [0.0, 0.0], "N/A", 0.0)
        slope, intercept = np.polyfit(xs[positive], np.log(ys[positive]), 1)
        a, b = math.exp(intercept), float(slope)
        return RegressionResult(
            kind="exponential",
            coefficients=[a, b],
            equation=f"y = {a:.4f}e^({b:.4f}x)",
            r2=_r_squared(ys, a * np.exp(b * xs)),
        )

    if len(np.unique(xs)) < 2:
        return None
    a, b = np.polyfit(xs, ys, 1)
    return RegressionResult(
        kind="linear",
        coefficients=[float(a), float(b)],
        equation=f"y = {a:.4f}x + {b:.4f}",
        r2=_r_squared(ys, a * xs + b),
    )
