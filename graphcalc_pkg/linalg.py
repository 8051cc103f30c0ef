"""Matrix and vector operations over numpy.linalg.

Literals use bracket syntax (``[[1, 2], [3, 4]]``, ``[1, 2, 3]``). Inputs are
validated before any numpy call so that jagged, empty or non-finite data is
reported as a ``ValidationError`` instead of a numpy error.
"""

from __future__ import annotations

import ast
import math
import re
from typing import Any, Sequence

import numpy as np

from .config import PIVOT_TOLERANCE, RANK_TOLERANCE
from .logging_config import get_logger
from .parser import format_complex, format_number, split_top_level, strip_outer_parens
from .types import UnsupportedOperationError, ValidationError

logger = get_logger("linalg")

MATRIX_OPS = ("det", "inv", "eigs", "transpose", "trace", "rank")
VECTOR_OPS = ("cross", "dot", "norm", "normalize")

_CALL_RE = re.compile(r"^([a-zA-Z]+)\((.+)\)$")
_OP_TIMES_RE = re.compile(r"^([a-zA-Z][a-zA-Z*]*)\*(.+)$")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_literal(text: str) -> Any:
    """Parse a bracket literal or a plain number.

    Raises:
        ValidationError: If the text is not a numeric literal
    """
    compact = re.sub(r"\s+", "", text or "")
    if not compact:
        raise ValidationError("Empty matrix or vector literal", "EMPTY_INPUT")
    try:
        return ast.literal_eval(compact)
    except (ValueError, SyntaxError, MemoryError, RecursionError) as e:
        raise ValidationError(f"Could not parse literal: {text}", "INVALID_LITERAL") from e


def as_matrix(value: Any) -> np.ndarray:
    """Validate a nested list as a 2-D float array.

    Raises:
        ValidationError: For empty, jagged or non-finite input
    """
    if isinstance(value, str):
        value = parse_literal(value)
    if not isinstance(value, (list, tuple)) or len(value) == 0:
        raise ValidationError("Matrix must be a non-empty 2D numeric array", "INVALID_MATRIX")
    if not all(isinstance(row, (list, tuple)) for row in value):
        raise ValidationError("Matrix rows must be arrays", "INVALID_MATRIX")
    width = len(value[0])
    if width == 0:
        raise ValidationError("Matrix must be a non-empty 2D numeric array", "INVALID_MATRIX")
    if any(len(row) != width for row in value):
        raise ValidationError("Matrix rows must all have the same length", "JAGGED_MATRIX")
    for row in value:
        for entry in row:
            if not _is_number(entry) or not math.isfinite(entry):
                raise ValidationError("Matrix entries must be finite numbers", "INVALID_MATRIX")
    return np.array(value, dtype=float)


def as_vector(value: Any) -> np.ndarray:
    """Validate a flat list as a 1-D float array."""
    if isinstance(value, str):
        value = parse_literal(value)
    if not isinstance(value, (list, tuple)) or len(value) == 0:
        raise ValidationError("Expected a vector", "INVALID_VECTOR")
    for entry in value:
        if not _is_number(entry) or not math.isfinite(entry):
            raise ValidationError("Vector entries must be finite numbers", "INVALID_VECTOR")
    return np.array(value, dtype=float)


def _require_square(m: np.ndarray) -> None:
    if m.shape[0] != m.shape[1]:
        raise ValidationError(
            f"Matrix must be square, got {m.shape[0]}x{m.shape[1]}", "NOT_SQUARE"
        )


def format_vector(values: Sequence[Any]) -> str:
    """``[1, 2.5]``; complex entries print as ``a ± bi``."""
    return "[" + ", ".join(format_scalar(v) for v in values) + "]"


def format_matrix(m: Any) -> str:
    """``[[1, 2], [3, 4]]``."""
    rows = np.atleast_2d(np.asarray(m))
    return "[" + ", ".join(format_vector(row) for row in rows) + "]"


def format_scalar(value: Any) -> str:
    if isinstance(value, (complex, np.complexfloating)):
        return format_complex(float(value.real), float(value.imag))
    return format_number(value)


# Matrix operations


def det(matrix: Any) -> float:
    m = as_matrix(matrix)
    _require_square(m)
    return float(np.linalg.det(m))


def inv(matrix: Any) -> np.ndarray:
    """Inverse of a square matrix.

    Raises:
        ValidationError: If the matrix is singular
    """
    m = as_matrix(matrix)
    _require_square(m)
    if abs(np.linalg.det(m)) < PIVOT_TOLERANCE:
        raise ValidationError("Matrix is singular and cannot be inverted", "SINGULAR_MATRIX")
    try:
        return np.linalg.inv(m)
    except np.linalg.LinAlgError as e:
        raise ValidationError("Matrix is singular and cannot be inverted", "SINGULAR_MATRIX") from e


def eigs(matrix: Any) -> list[complex | float]:
    """Eigenvalues, real where the imaginary part vanishes, sorted by real part."""
    m = as_matrix(matrix)
    _require_square(m)
    values = np.linalg.eigvals(m)
    result: list[complex | float] = []
    for value in sorted(values, key=lambda v: (v.real, v.imag)):
        if abs(value.imag) < 1e-12:
            result.append(float(value.real))
        else:
            result.append(complex(value))
    return result


def transpose(matrix: Any) -> np.ndarray:
    return as_matrix(matrix).T


def trace(matrix: Any) -> float:
    m = as_matrix(matrix)
    _require_square(m)
    return float(np.trace(m))


def _gaussian_rank(m: np.ndarray, eps: float = RANK_TOLERANCE) -> int:
    work = [list(row) for row in m]
    rows, cols = len(work), len(work[0])
    rank = 0
    for col in range(cols):
        if rank == rows:
            break
        pivot = max(range(rank, rows), key=lambda r: abs(work[r][col]))
        if abs(work[pivot][col]) < eps:
            continue
        work[rank], work[pivot] = work[pivot], work[rank]
        for r in range(rank + 1, rows):
            factor = work[r][col] / work[rank][col]
            work[r] = [a - factor * b for a, b in zip(work[r], work[rank])]
        rank += 1
    return rank


def rank(matrix: Any) -> int:
    m = as_matrix(matrix)
    try:
        return int(np.linalg.matrix_rank(m, tol=RANK_TOLERANCE))
    except (np.linalg.LinAlgError, ValueError) as e:
        logger.debug("matrix_rank failed (%s), using elimination", e)
        return _gaussian_rank(m)


# Vector operations


def cross(a: Any, b: Any) -> np.ndarray:
    u, v = as_vector(a), as_vector(b)
    if len(u) != 3 or len(v) != 3:
        raise ValidationError("Cross product requires 3D vectors", "DIMENSION_MISMATCH")
    return np.cross(u, v)


def dot(a: Any, b: Any) -> float:
    u, v = as_vector(a), as_vector(b)
    if len(u) != len(v):
        raise ValidationError("Vectors must have equal length", "DIMENSION_MISMATCH")
    return float(np.dot(u, v))


def norm(a: Any) -> float:
    return float(np.linalg.norm(as_vector(a)))


def normalize(a: Any) -> np.ndarray:
    """Unit vector in the direction of ``a``.

    Raises:
        ValidationError: For the zero vector
    """
    v = as_vector(a)
    length = float(np.linalg.norm(v))
    if length < PIVOT_TOLERANCE:
        raise ValidationError("Cannot normalize the zero vector", "ZERO_VECTOR")
    return v / length


# Elementwise arithmetic


def _as_operand(value: Any) -> np.ndarray | float:
    if _is_number(value):
        return float(value)
    if isinstance(value, np.ndarray):
        return value
    if isinstance(value, (list, tuple)) and value and isinstance(value[0], (list, tuple)):
        return as_matrix(value)
    return as_vector(value)


def elementwise(a: Any, op: str, b: Any) -> np.ndarray | float:
    """Apply ``+``, ``-`` or ``*`` entry by entry; a scalar operand broadcasts.

    Raises:
        ValidationError: On a shape mismatch or an unknown operator
    """
    left, right = _as_operand(a), _as_operand(b)
    if not isinstance(left, float) and not isinstance(right, float):
        if left.shape != right.shape:
            raise ValidationError(
                f"Dimension mismatch: {left.shape} vs {right.shape}", "DIMENSION_MISMATCH"
            )
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    raise ValidationError(f"Unknown operator: {op}", "INVALID_OPERATOR")


def _split_arithmetic(text: str) -> list[tuple[str, str]]:
    """Split at top-level ``+ - *`` into ``(operator, operand)`` pairs.

    The first pair's operator is ``+``. A sign right after an operator, or at
    the start, belongs to the operand.
    """
    parts: list[tuple[str, str]] = []
    depth = 0
    op = "+"
    start = 0
    for i, char in enumerate(text):
        if char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
        elif char in "+-*" and depth == 0:
            operand = text[start:i]
            if i == 0 and char in "+-":
                op = char
                start = 1
                continue
            if not operand:
                if char == "*":
                    raise ValidationError("Missing operand before '*'", "INVALID_EXPRESSION")
                continue
            parts.append((op, operand))
            op = char
            start = i + 1
    parts.append((op, text[start:]))
    return parts


def _fold_arithmetic(text: str) -> Any:
    """Evaluate with ``*`` binding tighter than ``+`` and ``-``."""
    parts = _split_arithmetic(text)
    terms: list[tuple[str, Any]] = []
    for op, operand in parts:
        if not operand:
            raise ValidationError("Missing operand", "INVALID_EXPRESSION")
        value = _as_operand(parse_literal(strip_outer_parens(operand)))
        if op == "*":
            sign, previous = terms.pop()
            terms.append((sign, elementwise(previous, "*", value)))
        else:
            terms.append((op, value))
    sign, result = terms[0]
    if sign == "-":
        result = -result
    for sign, value in terms[1:]:
        result = elementwise(result, sign, value)
    return result


def _has_top_level_operator(text: str) -> bool:
    return len(_split_arithmetic(text)) > 1


def _format_result(value: Any) -> str:
    if isinstance(value, np.ndarray):
        return format_matrix(value) if value.ndim == 2 else format_vector(value)
    return format_scalar(value)


def _normalize_call(compact: str, supported: tuple[str, ...], kind: str) -> str:
    """Rewrite ``op*[...]`` as ``op([...])``; reject unknown names before a literal."""
    if kind == "matrix" and re.fullmatch(r"\*\[\[.+\]\]", compact):
        raise ValidationError(
            "Missing matrix operation before matrix literal. "
            f"Supported operations: {', '.join(supported)}",
            "MISSING_OPERATION",
        )
    match = _OP_TIMES_RE.match(compact)
    if match is None:
        return compact
    op = match.group(1).replace("*", "").lower()
    arg = strip_outer_parens(match.group(2))
    if op in supported:
        return f"{op}({arg})"
    if arg.startswith("["):
        raise UnsupportedOperationError(op, supported, kind)
    return compact


def _call(compact: str, supported: tuple[str, ...], kind: str) -> tuple[str, str] | None:
    match = _CALL_RE.match(compact)
    if match is None:
        return None
    op = match.group(1).lower()
    if op not in supported:
        raise UnsupportedOperationError(op, supported, kind)
    return op, match.group(2)


_MATRIX_STEPS = {
    "det": ("Compute determinant", "det(A) = "),
    "inv": ("Compute inverse", "A^(-1) = "),
    "eigs": ("Compute eigenvalues", "Eigenvalues: "),
    "transpose": ("Compute transpose", "A^T = "),
    "trace": ("Compute trace", "tr(A) = "),
    "rank": ("Compute rank", "rank(A) = "),
}


def evaluate_matrix_expression(text: str) -> tuple[str, list[str]]:
    """Evaluate a matrix operation or matrix arithmetic.

    Returns:
        ``(output, steps)``

    Raises:
        ValidationError: For malformed or degenerate matrices
        UnsupportedOperationError: For an unknown operation name

    Example:
        >>> evaluate_matrix_expression("det([[1,2],[3,4]])")[0]
        '-2'
    """
    compact = re.sub(r"\s+", "", text or "")
    if not compact:
        raise ValidationError("Empty matrix expression", "EMPTY_INPUT")
    compact = _normalize_call(compact, MATRIX_OPS, "matrix")

    call = _call(compact, MATRIX_OPS, "matrix")
    if call is not None:
        op, arg = call
        if op == "det":
            output = format_number(det(arg))
        elif op == "inv":
            output = format_matrix(inv(arg))
        elif op == "eigs":
            output = format_vector(eigs(arg))
        elif op == "transpose":
            output = format_matrix(transpose(arg))
        elif op == "trace":
            output = format_number(trace(arg))
        else:
            output = str(rank(arg))
        action, label = _MATRIX_STEPS[op]
        return output, [f"Given: A = {arg}", action, f"{label}{output}"]

    if _has_top_level_operator(compact):
        output = _format_result(_fold_arithmetic(compact))
        return output, [f"Given: {compact}", "Evaluate matrix arithmetic", f"Result: {output}"]

    output = format_matrix(as_matrix(parse_literal(strip_outer_parens(compact))))
    return output, [f"Given: A = {output}"]


def _two_args(arg: str) -> tuple[str, str]:
    parts = split_top_level(arg, ",")
    if len(parts) != 2:
        raise ValidationError("Expected two vector arguments", "INVALID_ARGUMENTS")
    return parts[0], parts[1]


def evaluate_vector_expression(text: str) -> tuple[str, list[str]]:
    """Evaluate a vector operation or vector arithmetic.

    Example:
        >>> evaluate_vector_expression("cross([1,0,0],[0,1,0])")[0]
        '[0, 0, 1]'
    """
    compact = re.sub(r"\s+", "", text or "")
    if not compact:
        raise ValidationError("Empty vector expression", "EMPTY_INPUT")
    compact = _normalize_call(compact, VECTOR_OPS, "vector")

    call = _call(compact, VECTOR_OPS, "vector")
    if call is not None:
        op, arg = call
        if op in ("cross", "dot"):
            a, b = _two_args(arg)
            if op == "cross":
                output = format_vector(cross(a, b))
                action = "Compute cross product a x b"
            else:
                output = format_number(dot(a, b))
                action = "Compute dot product a . b"
            return output, [f"Given: a = {a}, b = {b}", action, f"Result: {output}"]
        if op == "norm":
            output = format_number(norm(arg))
            action = "Compute Euclidean norm ||v||"
        else:
            output = format_vector(normalize(arg))
            action = "Compute unit vector v / ||v||"
        return output, [f"Given: v = {arg}", action, f"Result: {output}"]

    if _has_top_level_operator(compact):
        output = _format_result(_fold_arithmetic(compact))
        return output, [f"Given: {compact}", "Evaluate vector arithmetic", f"Result: {output}"]

    output = format_vector(as_vector(parse_literal(strip_outer_parens(compact))))
    return output, [f"Given: v = {output}"]
