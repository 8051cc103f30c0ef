"""Heuristic domain analysis of antiderivative text.

Discontinuities come from denominators; positivity constraints are flagged
for ``ln``/``log``/``sqrt`` arguments that contain the variable. The
constraints are advisory only and are never proven.
"""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

from .integration_rules import NUMBER_PATTERN, parse_linear
from .logging_config import get_logger
from .parser import normalize_plain

if TYPE_CHECKING:
    from .engine import SymbolicEngine

logger = get_logger("domain_analysis")

_LOG_RE = re.compile(r"(ln|log)\(([^()]+)\)")
_SQRT_RE = re.compile(r"sqrt\(([^()]+)\)")


def _division_pattern(variable: str) -> re.Pattern:
    v = re.escape(variable)
    return re.compile(
        rf"/(?:\(({NUMBER_PATTERN})?\*?{v}([+-]\d+(?:\.\d+)?)?\)|{v}(?![\w(]))"
    )


def analyze_domain(expr: str, variable: str) -> tuple[list[float], list[str]]:
    """Find ``/(a*x+b)`` discontinuities and flag argument positivity.

    Returns:
        ``(discontinuities, issues)``

    Example:
        >>> analyze_domain("ln(x-1)/(2*x+4)", "x")
        ([-2.0], ['ln/log argument > 0 ⇒ x-1 > 0'])
    """
    discontinuities: list[float] = []
    issues: list[str] = []

    for match in _division_pattern(variable).finditer(expr):
        a = float(match.group(1)) if match.group(1) else 1.0
        b = float(match.group(2)) if match.group(2) else 0.0
        if a != 0:
            root = -b / a
            discontinuities.append(0.0 if root == 0 else root)

    for match in _LOG_RE.finditer(expr):
        inner = match.group(2)
        if variable in inner and not inner.startswith("|"):
            if parse_linear(inner, variable) is not None:
                issues.append(f"ln/log argument > 0 ⇒ {inner} > 0")
            else:
                issues.append(f"Check positivity of {inner}")

    for match in _SQRT_RE.finditer(expr):
        inner = match.group(1)
        if variable in inner:
            issues.append(f"sqrt argument ≥ 0 ⇒ {inner} ≥ 0")

    return discontinuities, issues


def _denominators(expr: str) -> list[str]:
    """Top-level text following each ``/`` up to the next sign at depth zero."""
    found = []
    for index, char in enumerate(expr):
        if char != "/":
            continue
        depth = 0
        end = index + 1
        while end < len(expr):
            c = expr[end]
            if c == "(":
                depth += 1
            elif c == ")":
                depth -= 1
                if depth < 0:
                    break
            elif c in "+-*/" and depth == 0 and end > index + 1:
                break
            end += 1
        found.append(expr[index + 1:end])
    return found


def analyze_rational(expr: str, variable: str, engine: SymbolicEngine | None) -> list[float]:
    """Real roots of every denominator containing ``variable``, via the engine."""
    if engine is None:
        return []
    roots: list[float] = []
    for candidate in _denominators(expr):
        if variable not in candidate:
            continue
        try:
            solutions = engine.solve(engine.parse(normalize_plain(candidate)), variable)
        except Exception as e:
            logger.debug("Could not solve denominator %r: %s", candidate, e)
            continue
        for solution in solutions:
            try:
                value = complex(solution)
            except (TypeError, ValueError):
                continue
            if abs(value.imag) < 1e-12 and math.isfinite(value.real):
                roots.append(value.real)
    return roots


def merge_discontinuities(*groups: list[float], tolerance: float = 1e-9) -> list[float]:
    """Sorted union of discontinuity lists without near-duplicates."""
    merged: list[float] = []
    for value in sorted(v for group in groups for v in group):
        if not merged or abs(value - merged[-1]) > tolerance:
            merged.append(value)
    return merged
