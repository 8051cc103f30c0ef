"""Symbolic engine capability used by the compiler and the integrator.

The rest of the package talks to symbolic mathematics only through the
narrow ``SymbolicEngine`` protocol below. ``SympyEngine`` satisfies it with
SymPy; tests or embedders may inject another implementation.
"""

from __future__ import annotations

import re
from tokenize import TokenError
from typing import Any, Callable, Protocol, Sequence

import sympy as sp
from sympy import parse_expr
from sympy.core.function import AppliedUndef

from .config import ALLOWED_SYMPY_NAMES, TRANSFORMATIONS
from .logging_config import get_logger
from .types import ParseError

logger = get_logger("engine")

# Single letters SymPy would otherwise resolve to its own objects (S, N, O...)
_LETTER_SYMBOLS = {letter: sp.Symbol(letter) for letter in "CNOQS"}
# A lone letter directly before "(" is a product unless it names a function
_CALL_LIKE_RE = re.compile(r"(?<![A-Za-z_0-9])([A-Za-z])\s*\(")


class SymbolicEngine(Protocol):
    """Parse / differentiate / simplify / render capability."""

    def parse(self, text: str, function_names: Sequence[str] = ()) -> Any: ...

    def differentiate(self, expr: Any, variable: str, order: int = 1) -> Any: ...

    def simplify(self, expr: Any) -> Any: ...

    def factor(self, expr: Any) -> Any: ...

    def integrate(self, expr: Any, variable: str) -> Any: ...

    def solve(self, expr: Any, variable: str) -> list[Any]: ...

    def render(self, expr: Any) -> str: ...

    def to_text(self, expr: Any) -> str: ...

    def free_variables(self, expr: Any) -> list[str]: ...

    def lambdify(self, expr: Any, variables: Sequence[str]) -> Callable[..., Any]: ...

    def unresolved_calls(self, expr: Any) -> list[str]: ...

    def applied_call(self, expr: Any) -> tuple[str, tuple[Any, ...]] | None: ...

    def children(self, expr: Any) -> tuple[Any, ...]: ...

    def rebuild(self, expr: Any, children: Sequence[Any]) -> Any: ...

    def substitute(self, expr: Any, variable: str, value: Any) -> Any: ...


class SympyEngine:
    """SymPy-backed symbolic engine."""

    def __init__(self):
        self._local_dict = dict(ALLOWED_SYMPY_NAMES)
        self._local_dict.update(_LETTER_SYMBOLS)

    def parse(self, text: str, function_names: Sequence[str] = ()) -> sp.Expr:
        """Parse plain infix text into a SymPy expression.

        Args:
            text: Plain infix expression
            function_names: Names to treat as undefined function heads

        Raises:
            ParseError: If SymPy cannot parse the text
        """
        text = _CALL_LIKE_RE.sub(
            lambda m: m.group(0) if m.group(1) in function_names else f"{m.group(1)}*(",
            text,
        )
        try:
            expr = parse_expr(
                text,
                local_dict=self._names_for(function_names),
                transformations=TRANSFORMATIONS,
                evaluate=True,
            )
        except (
            SyntaxError,
            TokenError,
            TypeError,
            ValueError,
            NameError,
            AttributeError,
            ZeroDivisionError,
            sp.SympifyError,
        ) as e:
            logger.debug("Parse failed for %r: %s", text, e)
            raise ParseError(f"Could not parse {text!r}: {e}") from e
        if not isinstance(expr, sp.Basic):
            raise ParseError(f"Not an expression: {text!r}")
        return expr

    def differentiate(self, expr: sp.Expr, variable: str, order: int = 1) -> sp.Expr:
        return sp.diff(expr, sp.Symbol(variable), order)

    def simplify(self, expr: sp.Expr) -> sp.Expr:
        return sp.simplify(expr)

    def factor(self, expr: sp.Expr) -> sp.Expr:
        return sp.factor(expr)

    def integrate(self, expr: sp.Expr, variable: str) -> sp.Expr:
        return sp.integrate(expr, sp.Symbol(variable))

    def solve(self, expr: sp.Expr, variable: str) -> list[sp.Expr]:
        return list(sp.solve(expr, sp.Symbol(variable)))

    def render(self, expr: sp.Expr) -> str:
        return sp.latex(expr)

    def to_text(self, expr: sp.Expr) -> str:
        return str(expr).replace("**", "^")

    def free_variables(self, expr: sp.Expr) -> list[str]:
        return sorted(str(s) for s in expr.free_symbols)

    def lambdify(self, expr: sp.Expr, variables: Sequence[str]) -> Callable[..., Any]:
        symbols = [sp.Symbol(name) for name in variables]
        return sp.lambdify(symbols, expr, modules=["numpy"])

    def _names_for(self, function_names: Sequence[str]) -> dict[str, Any]:
        names = dict(self._local_dict)
        for name in function_names:
            names[name] = sp.Function(name)
        return names

    def unresolved_calls(self, expr: sp.Expr) -> list[str]:
        """Names of undefined function heads still present in ``expr``."""
        return sorted({call.func.__name__ for call in expr.atoms(AppliedUndef)})

    def applied_call(self, expr: sp.Basic) -> tuple[str, tuple[sp.Basic, ...]] | None:
        """``(name, args)`` when ``expr`` applies an undefined function, else None."""
        if isinstance(expr, AppliedUndef):
            return expr.func.__name__, tuple(expr.args)
        return None

    def children(self, expr: sp.Basic) -> tuple[sp.Basic, ...]:
        return tuple(expr.args)

    def rebuild(self, expr: sp.Basic, children: Sequence[sp.Basic]) -> sp.Basic:
        return expr.func(*children)

    def substitute(self, expr: sp.Basic, variable: str, value: sp.Basic) -> sp.Basic:
        return expr.xreplace({sp.Symbol(variable): value})
