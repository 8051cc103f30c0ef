"""Input parsing and preprocessing module.

This module handles:
- Input sanitization and validation
- Markup (LaTeX) to plain infix normalization
- Stripping of leading ``y =`` / ``z =`` / ``f(x) =`` definitions
- Depth-aware splitting of argument lists and equation sides
- Domain restrictions such as ``x^2 {0 < x < 3}``
- Number formatting shared by every result string
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from .config import (
    FORBIDDEN_TOKENS,
    LEADING_ASSIGNMENT_RE,
    MAX_INPUT_LENGTH,
    OUTPUT_PRECISION,
)
from .types import ValidationError

_LATEX_LEIBNIZ_RE = re.compile(
    r"\\frac\s*\{\s*d\s*(?:\^\s*\{?\s*(\d+)\s*\}?)?\s*\}\s*\{\s*d\s*([a-zA-Z])\s*(?:\^\s*\{?\s*\d+\s*\}?)?\s*\}"
)
_LATEX_SPACING_RE = re.compile(r"\\[,;:! ]|\\quad|\\qquad")
_LATEX_COMMAND_RE = re.compile(r"\\([A-Za-z]+)")
_ABS_BARS_RE = re.compile(r"\|([^|]+)\|")
_DOMAIN_RE = re.compile(r"^(.+?)\s*\{(.+)\}\s*$")
_NUMBER = r"-?\d+(?:\.\d+)?"
_RANGE_RE = re.compile(
    rf"^({_NUMBER})\s*(<=|<)\s*([a-zA-Z])\s*(<=|<)\s*({_NUMBER})$"
)
_SIMPLE_CONDITION_RE = re.compile(rf"^([a-zA-Z])\s*(>=|<=|!=|>|<)\s*({_NUMBER})$")

_LATEX_REPLACEMENTS = {
    "cdot": "*",
    "times": "*",
    "div": "/",
    "pi": "pi",
    "infty": "oo",
    "left": "",
    "right": "",
    "mathrm": "",
}


def is_balanced(input_str: str) -> tuple[bool, int | None]:
    """Check if parentheses/brackets are balanced. Returns (is_balanced, error_position)."""
    pairs = {"(": ")", "[": "]", "{": "}"}
    stack: list[tuple[str, int]] = []
    for i, char in enumerate(input_str):
        if char in pairs:
            stack.append((char, i))
        elif char in pairs.values():
            if not stack:
                return False, i
            opener, _ = stack.pop()
            if pairs[opener] != char:
                return False, i
    if stack:
        return False, stack[-1][1]
    return True, None


def validate_input(input_str: str) -> str:
    """Validate raw expression text and return it stripped.

    Raises:
        ValidationError: If the input is empty, too long, contains a forbidden
            token or has unbalanced delimiters
    """
    if input_str is None or not str(input_str).strip():
        raise ValidationError("Empty input", "EMPTY_INPUT")
    text = str(input_str).strip()
    if len(text) > MAX_INPUT_LENGTH:
        raise ValidationError(
            f"Input too long (maximum {MAX_INPUT_LENGTH} characters)", "TOO_LONG"
        )
    lowered = text.lower()
    for token in FORBIDDEN_TOKENS:
        if token in lowered:
            raise ValidationError(f"Forbidden token in input: {token!r}", "FORBIDDEN_TOKEN")
    balanced, position = is_balanced(text)
    if not balanced:
        raise ValidationError(
            f"Unbalanced delimiters at position {position}", "UNBALANCED_PARENS"
        )
    return text


def read_group(text: str, start: int, opener: str = "{", closer: str = "}") -> tuple[str, int]:
    """Read a delimited group starting at ``text[start]``.

    Returns:
        Tuple of (inner text, index just past the closing delimiter)
    """
    if start >= len(text) or text[start] != opener:
        raise ValidationError(f"Expected {opener!r} at position {start}", "MALFORMED_MARKUP")
    depth = 0
    for i in range(start, len(text)):
        if text[i] == opener:
            depth += 1
        elif text[i] == closer:
            depth -= 1
            if depth == 0:
                return text[start + 1 : i], i + 1
    raise ValidationError("Unterminated group in markup", "MALFORMED_MARKUP")


def _skip_spaces(text: str, i: int) -> int:
    while i < len(text) and text[i].isspace():
        i += 1
    return i


def latex_to_plain(latex: str) -> str:
    """Convert a LaTeX math string into plain infix text.

    Only the subset produced by a math input field is handled: fractions,
    roots, powers with braces, named functions, ``\\cdot``, ``\\left``/``\\right``
    and Leibniz derivative fractions.

    Example:
        >>> latex_to_plain(r"\\frac{x^{2}}{2}+\\sin\\left(x\\right)")
        '((x^(2))/(2))+sin(x)'
    """
    text = _LATEX_LEIBNIZ_RE.sub(
        lambda m: f"d^{m.group(1) or 1}/d{m.group(2)}^{m.group(1) or 1} ", latex
    )
    text = _LATEX_SPACING_RE.sub(" ", text)

    out: list[str] = []
    i = 0
    while i < len(text):
        if text.startswith("\\frac", i) or text.startswith("\\dfrac", i):
            i = _skip_spaces(text, i + (5 if text.startswith("\\frac", i) else 6))
            numerator, i = read_group(text, i)
            i = _skip_spaces(text, i)
            denominator, i = read_group(text, i)
            out.append(f"(({latex_to_plain(numerator)})/({latex_to_plain(denominator)}))")
            continue
        if text.startswith("\\sqrt", i):
            i = _skip_spaces(text, i + 5)
            index = None
            if i < len(text) and text[i] == "[":
                index, i = read_group(text, i, "[", "]")
                i = _skip_spaces(text, i)
            radicand, i = read_group(text, i)
            plain = latex_to_plain(radicand)
            if index is None:
                out.append(f"sqrt({plain})")
            else:
                out.append(f"(({plain})^(1/({latex_to_plain(index)})))")
            continue
        if text.startswith("\\operatorname", i):
            name, i = read_group(text, _skip_spaces(text, i + 13))
            out.append(name.strip())
            continue
        if text[i] == "\\":
            match = _LATEX_COMMAND_RE.match(text, i)
            if match is None:
                i += 1
                continue
            command = match.group(1)
            out.append(_LATEX_REPLACEMENTS.get(command, command))
            i = match.end()
            continue
        if text[i] in "^_" and i + 1 < len(text) and text[i + 1] == "{":
            inner, end = read_group(text, i + 1)
            if text[i] == "^":
                out.append(f"^({latex_to_plain(inner)})")
            else:
                out.append(f"_{inner.strip()}")
            i = end
            continue
        if text[i] == "{":
            inner, i = read_group(text, i)
            out.append(f"({latex_to_plain(inner)})")
            continue
        out.append(text[i])
        i += 1
    return "".join(out).strip()


def normalize_plain(text: str) -> str:
    """Normalize plain infix text for the SymPy parser."""
    result = text.strip()
    result = result.replace("π", "pi").replace("·", "*").replace("×", "*").replace("−", "-")
    result = re.sub(r"√\s*\(", "sqrt(", result)
    result = _ABS_BARS_RE.sub(r"abs(\1)", result)
    return result


def strip_assignment_prefix(text: str) -> str:
    """Remove a leading ``y =``, ``z =`` or ``f(x) =`` definition."""
    return LEADING_ASSIGNMENT_RE.sub("", text, count=1).strip()


def to_plain(text: str, notation: str = "plain") -> str:
    """Validate and normalize text in either notation to plain infix."""
    cleaned = validate_input(text)
    if notation == "latex":
        cleaned = latex_to_plain(cleaned)
    elif notation != "plain":
        raise ValidationError(f"Unknown notation: {notation}", "UNKNOWN_NOTATION")
    return normalize_plain(cleaned)


def split_top_level(input_str: str, separators: str = ",") -> list[str]:
    """Split a string on separators that are not inside (), [] or {}."""
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    for char in input_str:
        if char in separators and depth == 0:
            part = "".join(current).strip()
            if part:
                parts.append(part)
            current = []
            continue
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth = max(0, depth - 1)
        current.append(char)
    last = "".join(current).strip()
    if last:
        parts.append(last)
    return parts


def split_equation(text: str) -> tuple[str, str]:
    """Split ``lhs = rhs`` into its two sides; ``rhs`` is ``"0"`` when absent.

    Raises:
        ValidationError: If more than one ``=`` is present
    """
    cleaned = text.replace("==", "=")
    pieces = cleaned.split("=")
    if len(pieces) == 1:
        return pieces[0].strip(), "0"
    if len(pieces) != 2 or not pieces[0].strip() or not pieces[1].strip():
        raise ValidationError("Expected a single '=' in equation", "INVALID_EQUATION")
    return pieces[0].strip(), pieces[1].strip()


def strip_outer_parens(text: str) -> str:
    """Remove redundant parentheses wrapping the whole string."""
    result = text.strip()
    while result.startswith("(") and result.endswith(")"):
        depth = 0
        wraps = True
        for i, char in enumerate(result):
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
            if depth == 0 and i < len(result) - 1:
                wraps = False
                break
        if not wraps:
            break
        result = result[1:-1].strip()
    return result


@dataclass(frozen=True)
class DomainRestriction:
    """Interval condition on one variable, e.g. ``0 < x <= 3``."""

    variable: str
    lower: float = -math.inf
    upper: float = math.inf
    lower_inclusive: bool = False
    upper_inclusive: bool = False
    excluded: float | None = None

    def contains(self, value: float) -> bool:
        if self.excluded is not None and value == self.excluded:
            return False
        above = value >= self.lower if self.lower_inclusive else value > self.lower
        below = value <= self.upper if self.upper_inclusive else value < self.upper
        return above and below


def parse_domain_restriction(text: str) -> tuple[str, DomainRestriction | None]:
    """Split ``expr {condition}`` into the expression and its restriction.

    Unrecognized conditions are ignored and the expression is returned as is.

    Example:
        >>> expr, domain = parse_domain_restriction("x^2 {0 < x < 3}")
        >>> expr, domain.contains(4.0)
        ('x^2', False)
    """
    match = _DOMAIN_RE.match(text)
    if not match:
        return text, None
    expr, condition = match.group(1).strip(), match.group(2).strip()

    range_match = _RANGE_RE.match(condition)
    if range_match:
        return expr, DomainRestriction(
            variable=range_match.group(3),
            lower=float(range_match.group(1)),
            upper=float(range_match.group(5)),
            lower_inclusive=range_match.group(2) == "<=",
            upper_inclusive=range_match.group(4) == "<=",
        )

    simple_match = _SIMPLE_CONDITION_RE.match(condition)
    if simple_match:
        var, op, raw = simple_match.groups()
        value = float(raw)
        if op == ">":
            return expr, DomainRestriction(var, lower=value)
        if op == ">=":
            return expr, DomainRestriction(var, lower=value, lower_inclusive=True)
        if op == "<":
            return expr, DomainRestriction(var, upper=value)
        if op == "<=":
            return expr, DomainRestriction(var, upper=value, upper_inclusive=True)
        return expr, DomainRestriction(var, excluded=value)

    return expr, None


def format_number(val: Any, precision: int = OUTPUT_PRECISION) -> str:
    """Format a number: integers unadorned, otherwise rounded and trimmed.

    Args:
        val: Numeric value to format
        precision: Number of decimal places kept (default: OUTPUT_PRECISION)

    Returns:
        Formatted string, e.g. ``-2``, ``0.333333`` or ``2.5``
    """
    try:
        number = float(val)
    except (ValueError, TypeError, OverflowError):
        return str(val)
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "Infinity" if number > 0 else "-Infinity"
    if number.is_integer():
        return str(int(number))
    rounded = round(number, int(precision))
    if rounded == 0:
        return "0"
    if rounded.is_integer():
        return str(int(rounded))
    text = f"{rounded:.{int(precision)}f}".rstrip("0").rstrip(".")
    return text


def format_fixed(val: float, places: int = OUTPUT_PRECISION) -> str:
    """Format with a fixed number of decimals, e.g. ``0.333333``."""
    return f"{float(val):.{places}f}"


def format_complex(real: float, imag: float) -> str:
    """Format a complex value as ``a + bi``, dropping a negligible part."""
    if abs(imag) < 1e-12:
        return format_number(real)
    sign = "-" if imag < 0 else "+"
    return f"{format_number(real)} {sign} {format_number(abs(imag))}i"
