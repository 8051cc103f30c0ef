"""Expression compiler: text in, numeric evaluator out.

``compile_expression`` turns plain or LaTeX expression text into a
``CompiledEvaluator``, a pure callable from a variable scope to a float.
Evaluators never raise; any undefined evaluation (division by zero, domain
violation, missing variable, complex result) yields ``nan``.

Compilation results, failures included, are memoized in the context's
bounded LRU cache so repeated invalid input is not re-parsed.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Mapping

import numpy as np

from .config import LEIBNIZ_RE, ZERO_TOLERANCE
from .context import EngineContext, get_default_context
from .logging_config import get_logger
from .parser import (
    DomainRestriction,
    parse_domain_restriction,
    split_equation,
    strip_assignment_prefix,
    strip_outer_parens,
    to_plain,
)
from .types import ParseError, ValidationError

logger = get_logger("compiler")

Scope = Mapping[str, float]

# Cached in place of an evaluator when compilation fails
COMPILE_FAILED = object()


def _to_real(raw: Any) -> float:
    if isinstance(raw, (complex, np.complexfloating)):
        if abs(raw.imag) > ZERO_TOLERANCE:
            return math.nan
        raw = raw.real
    value = float(raw)
    return value if math.isfinite(value) else math.nan


class CompiledEvaluator:
    """Pure ``Scope -> float`` function compiled from one expression.

    Attributes:
        text: Source text the evaluator was compiled from
        expr: Symbolic form handed to the numeric backend
        variables: Sorted names the evaluator reads from the scope
        domain: Optional restriction outside of which the result is ``nan``
    """

    __slots__ = ("text", "expr", "variables", "domain", "_fn")

    def __init__(
        self,
        text: str,
        expr: Any,
        variables: list[str],
        fn: Callable[..., Any],
        domain: DomainRestriction | None = None,
    ):
        self.text = text
        self.expr = expr
        self.variables = tuple(variables)
        self.domain = domain
        self._fn = fn

    def __call__(self, scope: Scope | None = None) -> float:
        scope = scope or {}
        try:
            args = [float(scope[name]) for name in self.variables]
            if self.domain is not None and not self.domain.contains(
                float(scope[self.domain.variable])
            ):
                return math.nan
        except (KeyError, TypeError, ValueError):
            return math.nan
        try:
            with np.errstate(all="ignore"):
                return _to_real(self._fn(*args))
        except Exception:  # evaluators never raise
            return math.nan

    def evaluate_array(self, scope: Mapping[str, Any], shape: tuple[int, ...]) -> np.ndarray:
        """Vectorized evaluation over numpy arrays broadcast to ``shape``."""
        try:
            args = [np.asarray(scope[name], dtype=float) for name in self.variables]
            with np.errstate(all="ignore"):
                raw = np.asarray(self._fn(*args))
        except Exception:  # evaluators never raise
            return np.full(shape, np.nan)
        if np.iscomplexobj(raw):
            raw = np.where(np.abs(raw.imag) > ZERO_TOLERANCE, np.nan, raw.real)
        try:
            values = np.array(np.broadcast_to(raw.astype(float), shape))
        except (ValueError, TypeError):
            return np.full(shape, np.nan)
        values[~np.isfinite(values)] = np.nan
        if self.domain is not None and self.domain.variable in scope:
            inside = np.vectorize(self.domain.contains, otypes=[bool])(
                np.broadcast_to(np.asarray(scope[self.domain.variable], dtype=float), shape)
            )
            values[~inside] = np.nan
        return values

    def __repr__(self) -> str:
        return f"CompiledEvaluator({self.text!r}, variables={list(self.variables)!r})"


def _symbolic_form(plain: str, allow_user_functions: bool, ctx: EngineContext) -> Any:
    engine = ctx.engine
    names = ctx.registry.names() if allow_user_functions else []

    leibniz = LEIBNIZ_RE.match(plain)
    if leibniz:
        order = int(leibniz.group(1) or 1)
        variable = leibniz.group(2)
        body = engine.parse(strip_outer_parens(leibniz.group(3)), function_names=names)
        if allow_user_functions:
            body = ctx.registry.expand(body, engine)
        logger.debug("Differentiating %r %d time(s) in %s", plain, order, variable)
        return engine.differentiate(body, variable, order)

    expr = engine.parse(plain, function_names=names)
    if allow_user_functions:
        expr = ctx.registry.expand(expr, engine)
    return expr


def _build(text: str, notation: str, allow_user_functions: bool, implicit: bool, ctx: EngineContext):
    plain = to_plain(text, notation)
    plain, domain = parse_domain_restriction(plain)
    if implicit:
        lhs, rhs = split_equation(plain)
        plain = lhs if rhs == "0" else f"({lhs})-({rhs})"
    else:
        plain = strip_assignment_prefix(plain)
    if not plain:
        raise ValidationError("Nothing to compile", "EMPTY_INPUT")

    expr = _symbolic_form(plain, allow_user_functions, ctx)
    unresolved = ctx.engine.unresolved_calls(expr)
    if unresolved:
        raise ParseError(f"Unresolved function call(s): {', '.join(unresolved)}")

    variables = ctx.engine.free_variables(expr)
    fn = ctx.engine.lambdify(expr, variables)
    return CompiledEvaluator(text, expr, variables, fn, domain)


def _compile(
    text: str,
    notation: str,
    allow_user_functions: bool,
    implicit: bool,
    context: EngineContext | None,
) -> CompiledEvaluator | None:
    ctx = context if context is not None else get_default_context()
    version = ctx.registry.version if allow_user_functions else 0
    key = ("implicit" if implicit else "explicit", notation, text, allow_user_functions, version)

    cached = ctx.compile_cache.get(key)
    if cached is not None:
        return None if cached is COMPILE_FAILED else cached

    try:
        evaluator = _build(text or "", notation, allow_user_functions, implicit, ctx)
    except (ValidationError, ParseError) as e:
        logger.debug("Compilation of %r failed: %s", text, e)
        evaluator = None
    except (ValueError, TypeError, AttributeError, NotImplementedError, RecursionError) as e:
        logger.debug("Backend could not compile %r: %s", text, e)
        evaluator = None

    ctx.compile_cache.put(key, evaluator if evaluator is not None else COMPILE_FAILED)
    return evaluator


def compile_expression(
    text: str,
    notation: str = "plain",
    allow_user_functions: bool = False,
    context: EngineContext | None = None,
) -> CompiledEvaluator | None:
    """Compile expression text into an evaluator.

    A leading ``y =``, ``z =`` or ``f(x) =`` is dropped, a trailing
    ``{a < x < b}`` restricts the domain, and ``d^n/dx^n body`` is
    differentiated symbolically before compiling.

    Args:
        text: Expression source
        notation: ``"plain"`` or ``"latex"``
        allow_user_functions: Expand calls to functions in the context registry
        context: Execution context owning the cache (default context if None)

    Returns:
        Evaluator, or None when the text cannot be compiled

    Example:
        >>> f = compile_expression("x^2 - 4")
        >>> f({"x": 3})
        5.0
    """
    return _compile(text, notation, allow_user_functions, False, context)


def compile_implicit(
    text: str,
    notation: str = "plain",
    allow_user_functions: bool = False,
    context: EngineContext | None = None,
) -> CompiledEvaluator | None:
    """Compile ``A = B`` as the scalar field ``A - B`` (plain ``A`` as is)."""
    return _compile(text, notation, allow_user_functions, True, context)


def as_evaluator(
    source: str | Callable[[Scope], float],
    context: EngineContext | None = None,
) -> Callable[[Scope], float] | None:
    """Accept either expression text or an existing evaluator."""
    if callable(source):
        return source
    return compile_expression(source, context=context)
