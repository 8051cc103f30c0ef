"""Closed-form antiderivative rules over plain expression text.

The integrand is split into top-level ``+``/``-`` terms. Each term has its
numeric coefficient peeled off (leading sign, a ``c*`` factor or a ``/c``
divisor) and the remaining factor is matched against a handful of rules.
Every rule requires the inner argument to be affine (``a*x + b``) in the
integration variable and declines otherwise, so the caller can fall back to
the symbolic engine.

Examples:
    3*x^2        -> x^3
    1/x          -> ln(|x|)
    cos(2*x)     -> 0.5*sin(2*x)
    sec(x)^2     -> tan(x)
    exp(-x^2)    -> sqrt(pi)/2*erf(x)   (special table)
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Callable

from .parser import format_number, strip_outer_parens

NUMBER_PATTERN = r"-?\d+(?:\.\d+)?"
_NUMBER_RE = re.compile(rf"^{NUMBER_PATTERN}$")
_FRACTION_DIVISOR_RE = re.compile(rf"^(.+)/({NUMBER_PATTERN})$")

# Characters after which a sign belongs to the following operand
_SIGN_BINDERS = "^*/(,"


@dataclass(frozen=True)
class LinearForm:
    """An affine inner argument ``factor * var + offset`` as written."""

    factor: float
    expression: str


def is_numeric(value: str) -> bool:
    return bool(_NUMBER_RE.match(value))


def parse_maybe_fraction(value: str) -> float | None:
    """Parse ``3``, ``-2.5`` or ``1/4``; None for anything else."""
    if is_numeric(value):
        return float(value)
    parts = value.split("/")
    if len(parts) == 2 and is_numeric(parts[0]) and is_numeric(parts[1]):
        denominator = float(parts[1])
        if denominator != 0:
            return float(parts[0]) / denominator
    return None


def needs_parentheses(value: str) -> bool:
    trimmed = value.strip()
    return any(char in "+-" for char in trimmed)


def apply_coefficient(expr: str, coefficient: float) -> str:
    """Prefix ``expr`` with a formatted coefficient, eliding 1 and -1."""
    formatted = format_number(coefficient)
    if formatted == "1":
        return expr
    if formatted == "-1":
        return f"-{expr}"
    if needs_parentheses(expr):
        return f"{formatted}*({expr})"
    return f"{formatted}*{expr}"


def parse_linear(inner: str, variable: str) -> LinearForm | None:
    """Recognize ``x``, ``a*x``, ``x*a``, ``a*x+b``, ``x+b`` and ``b-a*x``.

    Returns:
        The factor of ``variable`` and the argument text, or None when the
        argument is not affine in ``variable`` (or its factor is zero)
    """
    linear = _linear_form(strip_outer_parens(re.sub(r"\s+", "", inner)), variable)
    if linear is None or linear.factor == 0:
        return None
    return linear


def _linear_form(cleaned: str, variable: str) -> LinearForm | None:
    v = re.escape(variable)

    if cleaned == variable:
        return LinearForm(1.0, variable)

    match = re.fullmatch(rf"({NUMBER_PATTERN})\*?{v}", cleaned)
    if match:
        return LinearForm(float(match.group(1)), f"{match.group(1)}*{variable}")

    match = re.fullmatch(rf"{v}\*({NUMBER_PATTERN})", cleaned)
    if match:
        return LinearForm(float(match.group(1)), f"{variable}*{match.group(1)}")

    match = re.fullmatch(rf"({NUMBER_PATTERN})\*?{v}([+-]\d+(?:\.\d+)?)", cleaned)
    if match:
        return LinearForm(
            float(match.group(1)), f"{match.group(1)}*{variable}{match.group(2)}"
        )

    match = re.fullmatch(rf"{v}([+-]\d+(?:\.\d+)?)", cleaned)
    if match:
        return LinearForm(1.0, f"{variable}{match.group(1)}")

    match = re.fullmatch(rf"({NUMBER_PATTERN})([+-])(?:(\d+(?:\.\d+)?)\*?)?{v}", cleaned)
    if match:
        factor = float(match.group(3)) if match.group(3) else 1.0
        return LinearForm(-factor if match.group(2) == "-" else factor, cleaned)

    if cleaned.startswith("-"):
        negated = _linear_form(cleaned[1:], variable)
        if negated is not None:
            return LinearForm(-negated.factor, cleaned)
    return None


def _binds_sign(preceding: str) -> bool:
    if not preceding:
        return True
    last = preceding[-1]
    if last in _SIGN_BINDERS:
        return True
    # scientific notation such as 2e-5
    return last in "eE" and len(preceding) > 1 and preceding[-2].isdigit()


def split_top_level_terms(expression: str) -> list[str]:
    """Split on ``+`` and ``-`` outside parentheses, keeping each sign.

    A sign directly after ``^``, ``*``, ``/``, ``(`` or an exponent marker
    belongs to its operand and does not start a new term.
    """
    terms: list[str] = []
    buffer = ""
    depth = 0
    for i, char in enumerate(expression):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if (
            depth == 0
            and i > 0
            and char in "+-"
            and not _binds_sign(buffer.rstrip())
        ):
            terms.append(buffer)
            buffer = char
            continue
        buffer += char
    if buffer:
        terms.append(buffer)
    return [term.strip() for term in terms if term.strip()]


def join_terms(terms: list[str]) -> str:
    """Join integrated terms as ``a + b - c``."""
    pieces = []
    for index, term in enumerate(terms):
        trimmed = term.strip()
        if index == 0:
            pieces.append(trimmed)
        elif trimmed.startswith("-"):
            pieces.append(f"- {trimmed[1:]}")
        else:
            pieces.append(f"+ {trimmed}")
    return " ".join(pieces)


def _power_exponent(expression: str, variable: str) -> tuple[float, float] | None:
    """Return ``(exponent, extra_coefficient)`` for ``x^n``, ``c/x^n`` or ``sqrt(x)``."""
    v = re.escape(variable)
    exponent = rf"(?:\^(?:({NUMBER_PATTERN})|\(({NUMBER_PATTERN})\)))?"

    match = re.fullmatch(rf"{v}{exponent}", expression)
    if match:
        raw = match.group(1) or match.group(2)
        return (float(raw) if raw else 1.0), 1.0

    match = re.fullmatch(rf"({NUMBER_PATTERN})/\(?{v}{exponent}\)?", expression)
    if match:
        raw = match.group(2) or match.group(3)
        return -(float(raw) if raw else 1.0), float(match.group(1))

    if expression == f"sqrt({variable})":
        return 0.5, 1.0
    if expression == f"1/sqrt({variable})":
        return -0.5, 1.0
    return None


def integrate_power(expression: str, variable: str, coefficient: float) -> str | None:
    power = _power_exponent(expression, variable)
    if power is None:
        return None
    exponent, extra = power
    coefficient *= extra
    if exponent == -1:
        return apply_coefficient(f"ln(|{variable}|)", coefficient)
    next_exponent = exponent + 1
    return apply_coefficient(
        f"{variable}^{format_number(next_exponent)}", coefficient / next_exponent
    )


def integrate_exponential(expression: str, variable: str, coefficient: float) -> str | None:
    match = re.fullmatch(r"exp\((.+)\)", expression, re.IGNORECASE)
    if match:
        linear = parse_linear(match.group(1), variable)
        if linear:
            return apply_coefficient(f"exp({linear.expression})", coefficient / linear.factor)

    match = re.fullmatch(rf"e\^(?:\((.+)\)|({re.escape(variable)}))", expression)
    if match:
        linear = parse_linear(match.group(1) or match.group(2), variable)
        if linear:
            return apply_coefficient(f"e^({linear.expression})", coefficient / linear.factor)

    match = re.fullmatch(
        rf"(\d+(?:\.\d+)?)\^(?:\((.+)\)|({re.escape(variable)}))", expression
    )
    if match:
        base = float(match.group(1))
        linear = parse_linear(match.group(2) or match.group(3), variable)
        if linear and base > 0 and base != 1:
            factor = coefficient / (linear.factor * math.log(base))
            return apply_coefficient(f"{match.group(1)}^({linear.expression})", factor)
    return None


def integrate_trig(expression: str, variable: str, coefficient: float) -> str | None:
    match = re.fullmatch(r"(sin|cos|tan|cot)\((.+)\)", expression, re.IGNORECASE)
    if match:
        linear = parse_linear(match.group(2), variable)
        if not linear:
            return None
        scale = coefficient / linear.factor
        u = linear.expression
        return {
            "sin": lambda: apply_coefficient(f"cos({u})", -scale),
            "cos": lambda: apply_coefficient(f"sin({u})", scale),
            "tan": lambda: apply_coefficient(f"ln(|cos({u})|)", -scale),
            "cot": lambda: apply_coefficient(f"ln(|sin({u})|)", scale),
        }[match.group(1).lower()]()

    match = re.fullmatch(r"(sec|csc)\((.+)\)\^(?:2|\(2\))", expression, re.IGNORECASE)
    if match:
        linear = parse_linear(match.group(2), variable)
        if not linear:
            return None
        scale = coefficient / linear.factor
        if match.group(1).lower() == "sec":
            return apply_coefficient(f"tan({linear.expression})", scale)
        return apply_coefficient(f"cot({linear.expression})", -scale)

    match = re.fullmatch(r"(sec|csc)\((.+?)\)\*?(tan|cot)\((.+)\)", expression, re.IGNORECASE)
    if match:
        first, second = match.group(1).lower(), match.group(3).lower()
        if match.group(2) != match.group(4):
            return None
        linear = parse_linear(match.group(2), variable)
        if not linear:
            return None
        scale = coefficient / linear.factor
        if first == "sec" and second == "tan":
            return apply_coefficient(f"sec({linear.expression})", scale)
        if first == "csc" and second == "cot":
            return apply_coefficient(f"csc({linear.expression})", -scale)
    return None


def integrate_log(expression: str, variable: str, coefficient: float) -> str | None:
    match = re.fullmatch(r"(ln|log)\((.+)\)", expression, re.IGNORECASE)
    if not match:
        return None
    inner = match.group(2)
    linear = parse_linear(inner, variable)
    if not linear:
        return None
    lead = f"({inner})" if needs_parentheses(inner) else inner
    return apply_coefficient(f"{lead}*(ln({inner}) - 1)", coefficient / linear.factor)


def integrate_inverse_trig(expression: str, variable: str, coefficient: float) -> str | None:
    match = re.fullmatch(r"1/sqrt\(1-(.+)\^2\)", expression, re.IGNORECASE)
    if match:
        inner = strip_outer_parens(match.group(1))
        linear = parse_linear(inner, variable)
        if linear:
            return apply_coefficient(f"arcsin({inner})", coefficient / linear.factor)
        return None
    match = re.fullmatch(r"1/\((?:1\+(.+)\^2|(.+)\^2\+1)\)", expression, re.IGNORECASE)
    if match:
        inner = strip_outer_parens(match.group(1) or match.group(2))
        linear = parse_linear(inner, variable)
        if linear:
            return apply_coefficient(f"arctan({inner})", coefficient / linear.factor)
    return None


RULES: tuple[Callable[[str, str, float], str | None], ...] = (
    integrate_power,
    integrate_exponential,
    integrate_trig,
    integrate_log,
    integrate_inverse_trig,
)


def peel_coefficient(term: str) -> tuple[float, str]:
    """Split a term into its numeric coefficient and the remaining factor.

    Example:
        >>> peel_coefficient("-3*x^2")
        (-3.0, 'x^2')
    """
    coefficient = 1.0
    if term.startswith("-"):
        coefficient = -1.0
        term = term[1:]
    elif term.startswith("+"):
        term = term[1:]
    term = strip_outer_parens(term)

    star = term.find("*")
    if star > 0:
        parsed = parse_maybe_fraction(strip_outer_parens(term[:star]))
        if parsed is not None:
            return coefficient * parsed, term[star + 1:]
    else:
        match = _FRACTION_DIVISOR_RE.match(term)
        if match:
            denominator = float(match.group(2))
            if denominator != 0:
                return coefficient / denominator, strip_outer_parens(match.group(1))
    return coefficient, term


def integrate_term(raw_term: str, variable: str) -> str | None:
    """Antiderivative of a single term, or None if no rule applies."""
    term = re.sub(r"\s+", "", raw_term)
    if not term:
        return None
    if is_numeric(term):
        return apply_coefficient(variable, float(term))
    coefficient, factor = peel_coefficient(term)
    if is_numeric(factor):
        return apply_coefficient(variable, coefficient * float(factor))
    if variable not in factor and re.fullmatch(r"[A-Za-z]", factor):
        # a lone symbolic constant
        return apply_coefficient(f"{factor}*{variable}", coefficient)
    for rule in RULES:
        result = rule(factor, variable, coefficient)
        if result is not None:
            return result
    return None


def integrate_by_rules(normalized: str, variable: str) -> str | None:
    """Integrate term by term; None unless every term matches a rule."""
    terms = split_top_level_terms(normalized)
    if not terms:
        return None
    integrated = []
    for term in terms:
        result = integrate_term(term, variable)
        if result is None:
            return None
        integrated.append(result)
    return join_terms(integrated)


def integrate_special(expression: str, variable: str) -> str | None:
    """Exact-match table of integrals with special-function results."""
    v = variable
    table = {
        f"erf({v})": f"{v}*erf({v})+exp(-{v}^2)/sqrt(pi)",
        f"exp(-{v}^2)": f"sqrt(pi)/2*erf({v})",
        f"e^(-{v}^2)": f"sqrt(pi)/2*erf({v})",
        f"sin({v}^2)": f"sqrt(pi/2)*FresnelS(sqrt(2/pi)*{v})",
        f"cos({v}^2)": f"sqrt(pi/2)*FresnelC(sqrt(2/pi)*{v})",
        f"exp({v})/{v}": f"Ei({v})",
    }
    if expression in table:
        return table[expression]
    match = re.fullmatch(
        rf"{re.escape(v)}\^\(([A-Za-z0-9_.]+)-1\)\*exp\(-{re.escape(v)}\)", expression
    )
    if match:
        # upper incomplete gamma: d/dx -Gamma(a, x) = x^(a-1) e^-x
        return f"-uppergamma({match.group(1)},{v})"
    return None
