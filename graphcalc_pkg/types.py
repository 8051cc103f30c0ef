"""Type definitions, result dataclasses and the error taxonomy."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class FunctionDefinition:
    """A registered single-parameter user function such as ``f(x) = x^2``."""

    name: str
    parameter: str
    body: str


@dataclass(frozen=True)
class ODEState:
    """One sample of an integrated trajectory."""

    t: float
    y: tuple[float, ...]


@dataclass(frozen=True)
class Extrema:
    """Locations of local minima and maxima found on an interval."""

    minima: list[float] = field(default_factory=list)
    maxima: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class OsculatingCircle:
    """Circle of curvature touching a curve at a point."""

    center: tuple[float, float]
    radius: float
    curvature: float


@dataclass
class FieldSample:
    """A sampled 3-D scalar field, possibly cut short by the time budget."""

    values: list[float]
    resolution: int
    timed_out: bool = False


@dataclass
class EvalResult:
    """Result of evaluating an expression at one point."""

    ok: bool
    value: float | None = None
    result: str | None = None
    variables: list[str] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result_dict: dict[str, Any] = {"ok": self.ok}
        if self.value is not None:
            result_dict["value"] = self.value
        if self.result is not None:
            result_dict["result"] = self.result
        if self.variables is not None:
            result_dict["variables"] = self.variables
        if self.error is not None:
            result_dict["error"] = self.error
        return result_dict

    def __repr__(self) -> str:
        if not self.ok:
            return f"EvalResult(ok=False, error={self.error!r})"
        return f"EvalResult(ok=True, result={self.result!r})"


Point = tuple[float, float]
ContourSegment = tuple[Point, Point]


@dataclass
class IntegrationSuccess:
    """Successful symbolic integration."""

    result: str
    method: str  # "rules", "symbolic", "special" or "engine"
    render_form: str | None = None
    piecewise_render_form: str | None = None
    discontinuities: list[float] = field(default_factory=list)
    domain_issues: list[str] = field(default_factory=list)
    undefined_issues: list[str] = field(default_factory=list)
    definite_value: float | None = None

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result_dict: dict[str, Any] = {
            "ok": True,
            "result": self.result,
            "method": self.method,
        }
        if self.render_form is not None:
            result_dict["render_form"] = self.render_form
        if self.piecewise_render_form is not None:
            result_dict["piecewise_render_form"] = self.piecewise_render_form
        if self.discontinuities:
            result_dict["discontinuities"] = self.discontinuities
        if self.domain_issues:
            result_dict["domain_issues"] = self.domain_issues
        if self.undefined_issues:
            result_dict["undefined_issues"] = self.undefined_issues
        if self.definite_value is not None:
            result_dict["definite_value"] = self.definite_value
        return result_dict


@dataclass
class IntegrationFailure:
    """Failed symbolic integration with a hint the caller can surface."""

    error: str
    hint: str | None = None
    undefined_issues: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        result_dict: dict[str, Any] = {"ok": False, "error": self.error}
        if self.hint is not None:
            result_dict["hint"] = self.hint
        if self.undefined_issues:
            result_dict["undefined_issues"] = self.undefined_issues
        return result_dict


SymbolicIntegrationResult = Union[IntegrationSuccess, IntegrationFailure]


@dataclass
class SolverResult:
    """Result of a dispatched solve request."""

    input: str
    output: str
    render_form: str | None = None
    steps: list[str] | None = None
    error: bool = False

    @property
    def ok(self) -> bool:
        return not self.error

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result_dict: dict[str, Any] = {"input": self.input, "output": self.output}
        if self.render_form is not None:
            result_dict["render_form"] = self.render_form
        if self.steps is not None:
            result_dict["steps"] = self.steps
        if self.error:
            result_dict["error"] = True
        return result_dict

    def __repr__(self) -> str:
        if self.error:
            return f"SolverResult(error=True, output={self.output!r})"
        return f"SolverResult(output={self.output!r}, steps={len(self.steps or [])})"


class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class ParseError(Exception):
    """Raised when parsing fails."""

    def __init__(self, message: str, code: str = "PARSE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class SolverError(Exception):
    """Raised when a solve request cannot be completed."""

    def __init__(self, message: str, code: str = "SOLVER_ERROR", transient: bool = False):
        self.message = message
        self.code = code
        self.transient = transient
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class UnsupportedOperationError(Exception):
    """Raised when a matrix or vector operation name is not recognized."""

    def __init__(self, operation: str, supported: tuple[str, ...], kind: str = "matrix"):
        self.operation = operation
        self.supported = supported
        self.code = "UNSUPPORTED_OPERATION"
        self.message = (
            f"Unsupported {kind} operation: {operation}. "
            f"Supported operations: {', '.join(supported)}"
        )
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class TaylorExpansion:
    """Taylor polynomial of order ``order`` about ``center``."""

    variable: str
    center: float
    order: int
    coefficients: list[float]
    text: str

    def evaluate(self, x: float) -> float:
        total = 0.0
        power = 1.0
        for coefficient in self.coefficients:
            total += coefficient * power
            power *= x - self.center
        return total


@dataclass(frozen=True)
class LimitResult:
    """Two-sided numerical limit; ``value`` is nan when the sides disagree."""

    value: float
    left: float
    right: float

    @property
    def exists(self) -> bool:
        return not math.isnan(self.value)


@dataclass(frozen=True)
class DescriptiveStats:
    count: int
    mean: float
    median: float
    stddev: float
    variance: float
    min: float
    max: float
    q1: float
    q3: float

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "mean": self.mean,
            "median": self.median,
            "stddev": self.stddev,
            "variance": self.variance,
            "min": self.min,
            "max": self.max,
            "q1": self.q1,
            "q3": self.q3,
        }


@dataclass(frozen=True)
class HistogramBin:
    lo: float
    hi: float
    count: int


@dataclass(frozen=True)
class RegressionResult:
    """Least-squares fit of ``kind`` "linear", "quadratic" or "exponential"."""

    kind: str
    coefficients: list[float]
    equation: str
    r2: float
