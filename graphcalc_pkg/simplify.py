"""Identity-based simplification of antiderivative text."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from .logging_config import get_logger
from .parser import normalize_plain

if TYPE_CHECKING:
    from .engine import SymbolicEngine

logger = get_logger("simplify")

_PYTHAGOREAN_RE = [
    re.compile(r"sin\(([^()]+)\)\^2\+cos\(([^()]+)\)\^2"),
    re.compile(r"cos\(([^()]+)\)\^2\+sin\(([^()]+)\)\^2"),
]

# (pattern, replacement) pairs applied in order
_REWRITES = [
    (re.compile(r"1\+tan\(([^()]+)\)\^2"), r"sec(\1)^2"),
    (re.compile(r"1\+cot\(([^()]+)\)\^2"), r"csc(\1)^2"),
    (re.compile(r"sec\(([^()]+)\)\^2-1"), r"tan(\1)^2"),
    (re.compile(r"csc\(([^()]+)\)\^2-1"), r"cot(\1)^2"),
    (re.compile(r"--"), "+"),
    (re.compile(r"\+-"), "-"),
    (re.compile(r"ln\(exp\(([^()]+)\)\)"), r"\1"),
    (re.compile(r"exp\(ln\(([^()]+)\)\)"), r"\1"),
]


def _fold_pythagorean(match: re.Match) -> str:
    return "1" if match.group(1) == match.group(2) else match.group(0)


def apply_simple_identities(expr: str) -> str:
    """Fold a few trig and log identities on flattened text.

    Example:
        >>> apply_simple_identities("sin(x)^2+cos(x)^2")
        '1'
    """
    out = expr
    for pattern in _PYTHAGOREAN_RE:
        out = pattern.sub(_fold_pythagorean, out)
    for pattern, replacement in _REWRITES:
        out = pattern.sub(replacement, out)
    return out


def tidy_symbolic_string(value: str) -> str:
    """Drop whitespace, use ``^`` for powers and collapse doubled signs."""
    return (
        value.replace("**", "^")
        .replace(" ", "")
        .replace("+-", "-")
        .replace("--", "+")
    )


def surface_text(expr: Any, engine: SymbolicEngine) -> str:
    """Engine output in calculator syntax (``ln``, ``abs`` and ``^``)."""
    text = engine.to_text(expr)
    text = re.sub(r"\blog\(", "ln(", text)
    return re.sub(r"\bAbs\(", "abs(", text)


def render(text: str, engine: SymbolicEngine | None) -> str | None:
    """Displayable (LaTeX) form of ``text``, or None if it cannot be parsed."""
    if engine is None:
        return None
    try:
        return engine.render(engine.parse(normalize_plain(text)))
    except Exception as e:
        logger.debug("No render form for %r: %s", text, e)
        return None


def full_simplify(expr: str, engine: SymbolicEngine | None = None) -> tuple[str, str | None]:
    """Simplify with the engine (simplify, then factor) and fold identities.

    The shorter of the simplified and factored forms is kept. Without an
    engine, or when the engine cannot handle the text, only the identity
    pass runs.

    Returns:
        ``(simplified_text, render_form)``
    """
    current = expr
    render_form = None
    if engine is not None:
        try:
            parsed = engine.parse(normalize_plain(expr))
            simplified = engine.simplify(parsed)
            factored = engine.factor(simplified)
            best = factored if len(str(factored)) < len(str(simplified)) else simplified
            current = surface_text(best, engine)
            render_form = engine.render(best)
        except Exception as e:
            logger.debug("Engine simplification skipped for %r: %s", expr, e)
    current = tidy_symbolic_string(apply_simple_identities(current))
    return current, render_form
