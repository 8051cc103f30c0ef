"""User function definitions and their expansion into expressions.

Functions are single-letter, single-parameter definitions such as
``f(x) = x^2 + 2x``. The registry is rebuilt wholesale whenever the set of
definitions changes; every rebuild bumps ``version`` so that caches keyed on
it stop serving evaluators compiled against the old definitions.

Examples:
    Define: f(x) = x^2, g(t) = f(t) + 1
    Expand: g(3) -> 3^2 + 1
    Cycles: f(x) = f(x) + 1 expands once and leaves the inner f(x) alone
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Iterable

from .config import FUNCTION_NAME_RE, MAX_EXPANSION_DEPTH
from .logging_config import get_logger
from .types import FunctionDefinition, ParseError, ValidationError

if TYPE_CHECKING:
    from .engine import SymbolicEngine

logger = get_logger("function_manager")

_DEFINITION_RE = re.compile(r"^\s*([a-zA-Z])\s*\(\s*([a-zA-Z])\s*\)\s*=\s*(.+?)\s*$")


def parse_function_definition(text: str) -> FunctionDefinition | None:
    """Parse ``f(x) = body`` into a definition.

    Returns None when the text is not a definition or the name is reserved
    (``i``, ``x``, ``y``, ``z``, ``e`` and their upper-case forms).

    Example:
        >>> parse_function_definition("f(x) = x^2 + 1")
        FunctionDefinition(name='f', parameter='x', body='x^2 + 1')
    """
    match = _DEFINITION_RE.match(text or "")
    if not match:
        return None
    name, parameter, body = match.groups()
    if not FUNCTION_NAME_RE.match(name) or "=" in body:
        return None
    return FunctionDefinition(name=name, parameter=parameter, body=body)


class FunctionRegistry:
    """Named user functions with a version counter and cycle-safe expansion."""

    def __init__(self):
        self._definitions: dict[str, FunctionDefinition] = {}
        self._parsed: dict[str, Any] = {}
        self.version = 0

    def rebuild(self, expressions: Iterable[str]) -> int:
        """Replace all definitions with those found in ``expressions``.

        Entries that are not function definitions are skipped.

        Returns:
            The new registry version
        """
        self._definitions.clear()
        self._parsed.clear()
        for text in expressions:
            definition = parse_function_definition(text)
            if definition is not None:
                self._definitions[definition.name] = definition
        self.version += 1
        logger.debug(
            "Registry rebuilt (version %d): %s", self.version, sorted(self._definitions)
        )
        return self.version

    def define(self, name: str, parameter: str, body: str) -> None:
        """Add or replace a single definition.

        Raises:
            ValidationError: If the name or parameter is not a single letter
        """
        if not FUNCTION_NAME_RE.match(name):
            raise ValidationError(
                f"Invalid function name '{name}': use a single letter other than e, i, x, y, z",
                "INVALID_FUNCTION_NAME",
            )
        if not (len(parameter) == 1 and parameter.isalpha()):
            raise ValidationError(
                f"Invalid parameter '{parameter}': use a single letter", "INVALID_PARAMETER"
            )
        if not body or not body.strip():
            raise ValidationError("Function body is empty", "EMPTY_INPUT")
        self._definitions[name] = FunctionDefinition(name, parameter, body.strip())
        self._parsed.clear()
        self.version += 1

    def clear(self) -> None:
        self._definitions.clear()
        self._parsed.clear()
        self.version += 1

    def get(self, name: str) -> FunctionDefinition | None:
        return self._definitions.get(name)

    def names(self) -> list[str]:
        return sorted(self._definitions)

    def list_functions(self) -> dict[str, tuple[str, str]]:
        """Return ``{name: (parameter, body)}`` for every definition."""
        return {
            name: (definition.parameter, definition.body)
            for name, definition in sorted(self._definitions.items())
        }

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, name: str) -> bool:
        return name in self._definitions

    def _body(self, name: str, engine: SymbolicEngine) -> Any:
        if name not in self._parsed:
            definition = self._definitions[name]
            self._parsed[name] = engine.parse(definition.body, function_names=self.names())
        return self._parsed[name]

    def expand(self, expr: Any, engine: SymbolicEngine) -> Any:
        """Replace calls to registered functions by their substituted bodies.

        The walk carries the set of names currently being resolved; a call
        to one of them is left unexpanded instead of recursing. Expansion
        also stops at ``MAX_EXPANSION_DEPTH`` nested levels.

        Raises:
            ParseError: If a function body cannot be parsed
        """
        if not self._definitions:
            return expr
        return self._expand(expr, frozenset(), 0, engine)

    def _expand(self, node: Any, resolving: frozenset, depth: int, engine: SymbolicEngine) -> Any:
        if depth > MAX_EXPANSION_DEPTH:
            logger.warning("Function expansion depth limit reached at %s", node)
            return node
        call = engine.applied_call(node)
        if call is not None:
            name, args = call
            if name in self._definitions and len(args) == 1:
                if name in resolving:
                    return node
                definition = self._definitions[name]
                argument = self._expand(args[0], resolving, depth, engine)
                body = engine.substitute(self._body(name, engine), definition.parameter, argument)
                return self._expand(body, resolving | {name}, depth + 1, engine)
        children = engine.children(node)
        if not children:
            return node
        expanded = [self._expand(child, resolving, depth, engine) for child in children]
        return engine.rebuild(node, expanded)

    def expand_text(self, text: str, engine: SymbolicEngine) -> str:
        """Expand function calls in plain text and return plain text."""
        try:
            expr = engine.parse(text, function_names=self.names())
        except ParseError:
            return text
        return engine.to_text(self.expand(expr, engine))
