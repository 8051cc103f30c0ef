"""Centralized configuration for graphcalc.

This module defines:
- Cache capacities for compiled evaluators and contour results
- Sample counts and iteration bounds for the numerical routines
- Tolerances used by root finding, elimination and ODE integration
- Allowed SymPy functions and parser transformations
- Regex patterns shared by the parser and the dispatcher

Configuration can be overridden via environment variables prefixed with
GRAPHCALC_ (for example GRAPHCALC_COMPILE_CACHE_SIZE=128).
"""

import math
import os
import re

import sympy as sp
from sympy.parsing.sympy_parser import (
    convert_xor,
    implicit_multiplication_application,
    standard_transformations,
)

try:
    import importlib.metadata

    VERSION = importlib.metadata.version("graphcalc")
except importlib.metadata.PackageNotFoundError:
    VERSION = "0.1.0"

# Cache configuration
COMPILE_CACHE_SIZE = int(os.getenv("GRAPHCALC_COMPILE_CACHE_SIZE", "64"))
CONTOUR_CACHE_SIZE = int(os.getenv("GRAPHCALC_CONTOUR_CACHE_SIZE", "16"))
FUNCTION_CACHE_SIZE = int(os.getenv("GRAPHCALC_FUNCTION_CACHE_SIZE", "64"))

# Input validation limits
MAX_INPUT_LENGTH = int(os.getenv("GRAPHCALC_MAX_INPUT_LENGTH", "10000"))  # characters
MAX_EXPANSION_DEPTH = int(
    os.getenv("GRAPHCALC_MAX_EXPANSION_DEPTH", "32")
)  # nested user-function calls

# Sampling
DEFAULT_SAMPLES = int(os.getenv("GRAPHCALC_DEFAULT_SAMPLES", "200"))
ZERO_BISECT_ITERATIONS = int(os.getenv("GRAPHCALC_ZERO_BISECT_ITERATIONS", "40"))
EXTREMA_BISECT_ITERATIONS = int(
    os.getenv("GRAPHCALC_EXTREMA_BISECT_ITERATIONS", "30")
)
MAX_INTERSECTIONS = int(os.getenv("GRAPHCALC_MAX_INTERSECTIONS", "20"))
MAX_SERIES_ITERATIONS = int(os.getenv("GRAPHCALC_MAX_SERIES_ITERATIONS", "10000"))

# Numeric tolerance constants
ZERO_TOLERANCE = float(os.getenv("GRAPHCALC_ZERO_TOLERANCE", "1e-10"))
ROOT_DEDUP_TOLERANCE = float(os.getenv("GRAPHCALC_ROOT_DEDUP_TOLERANCE", "1e-9"))
PIVOT_TOLERANCE = float(os.getenv("GRAPHCALC_PIVOT_TOLERANCE", "1e-12"))
RANK_TOLERANCE = float(os.getenv("GRAPHCALC_RANK_TOLERANCE", "1e-10"))
DIVISION_GUARD = 1e-15
ARC_LENGTH_STEP = 1e-6
CURVATURE_STEP = 1e-5
MIN_CURVATURE = 1e-10
MAX_OSCULATING_RADIUS = float(os.getenv("GRAPHCALC_MAX_OSCULATING_RADIUS", "1e4"))

# Linear systems
MAX_LINEAR_UNKNOWNS = int(os.getenv("GRAPHCALC_MAX_LINEAR_UNKNOWNS", "4"))
LINEAR_ROUND_DIGITS = 8

# ODE integration
RK4_STEPS = int(os.getenv("GRAPHCALC_RK4_STEPS", "500"))
ADAPTIVE_METHOD = os.getenv("GRAPHCALC_ADAPTIVE_METHOD", "DOP853")
ADAPTIVE_RTOL = float(os.getenv("GRAPHCALC_ADAPTIVE_RTOL", "1e-8"))
ADAPTIVE_ATOL = float(os.getenv("GRAPHCALC_ADAPTIVE_ATOL", "1e-8"))
TRAJECTORY_LIMIT = 1e6
PHASE_LIMIT = 1e4
ODE_DEFAULT_T_END = 10.0
ODE_DEFAULT_Y0 = 1.0

# Trigonometric fallback and pi formatting
TRIG_SAMPLES = int(os.getenv("GRAPHCALC_TRIG_SAMPLES", "600"))
TRIG_DEDUP_TOLERANCE = float(os.getenv("GRAPHCALC_TRIG_DEDUP_TOLERANCE", "1e-4"))
PI_MAX_DENOMINATOR = int(os.getenv("GRAPHCALC_PI_MAX_DENOMINATOR", "24"))
PI_MATCH_TOLERANCE = float(os.getenv("GRAPHCALC_PI_MATCH_TOLERANCE", "1e-3"))
TWO_PI = 2 * math.pi

# Calculus helpers
TAYLOR_MAX_ORDER = int(os.getenv("GRAPHCALC_TAYLOR_MAX_ORDER", "10"))
LIMIT_AGREEMENT = 1e-4
SIMPSON_FALLBACK_INTERVALS = 1000

# Implicit contours and 3-D field sampling
DEFAULT_GRID_SIZE = int(os.getenv("GRAPHCALC_DEFAULT_GRID_SIZE", "100"))
MIN_GRID_SIZE = 32
MAX_GRID_SIZE = 200
IMPLICIT_VIEW_MIN = float(os.getenv("GRAPHCALC_IMPLICIT_VIEW_MIN", "-5"))
IMPLICIT_VIEW_MAX = float(os.getenv("GRAPHCALC_IMPLICIT_VIEW_MAX", "5"))
IMPLICIT_FIELD_RESOLUTION = int(os.getenv("GRAPHCALC_IMPLICIT_FIELD_RESOLUTION", "40"))
IMPLICIT_TIME_BUDGET_MS = int(os.getenv("GRAPHCALC_IMPLICIT_TIME_BUDGET_MS", "1500"))

# Background workers
WORKER_POOL_SIZE = int(os.getenv("GRAPHCALC_WORKER_POOL_SIZE", "2"))
WORKER_TIMEOUT = int(os.getenv("GRAPHCALC_WORKER_TIMEOUT", "60"))

OUTPUT_PRECISION = int(os.getenv("GRAPHCALC_OUTPUT_PRECISION", "6"))

ALLOWED_SYMPY_NAMES = {
    "pi": sp.pi,
    "e": sp.E,
    "E": sp.E,
    "sqrt": sp.sqrt,
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "sec": sp.sec,
    "csc": sp.csc,
    "cot": sp.cot,
    "asin": sp.asin,
    "acos": sp.acos,
    "atan": sp.atan,
    "arcsin": sp.asin,
    "arccos": sp.acos,
    "arctan": sp.atan,
    "sinh": sp.sinh,
    "cosh": sp.cosh,
    "tanh": sp.tanh,
    "asinh": sp.asinh,
    "acosh": sp.acosh,
    "atanh": sp.atanh,
    "log": sp.log,
    "ln": sp.log,
    "exp": sp.exp,
    "Abs": sp.Abs,
    "abs": sp.Abs,
    "floor": sp.floor,
    "ceil": sp.ceiling,
    "sign": sp.sign,
    "erf": sp.erf,
    "gamma": sp.gamma,
    "Gamma": sp.gamma,
    "uppergamma": sp.uppergamma,
    "FresnelS": sp.fresnels,
    "FresnelC": sp.fresnelc,
    "fresnels": sp.fresnels,
    "fresnelc": sp.fresnelc,
    "Ei": sp.Ei,
    "factorial": sp.factorial,
    "Mod": sp.Mod,
    "mod": sp.Mod,
}

TRANSFORMATIONS = standard_transformations + (
    implicit_multiplication_application,
    convert_xor,
)

FORBIDDEN_TOKENS = ("__", "import", "lambda", "eval", "exec", "open(")

SINGLE_LETTER_RE = re.compile(r"(?<![A-Za-z_])([A-Za-z])(?![A-Za-z_(])")
FUNCTION_NAME_RE = re.compile(r"^[a-dfghj-wA-DF-HJ-W]$")
LEADING_ASSIGNMENT_RE = re.compile(r"^\s*(?:[yz]|[a-zA-Z]\(\s*x\s*\))\s*=(?!=)")
LEIBNIZ_RE = re.compile(
    r"^\s*d\s*(?:\^\s*\{?\s*(\d+)\s*\}?)?\s*/\s*d\s*([a-zA-Z])\s*(?:\^\s*\{?\s*\d+\s*\}?)?\s*(.+)$"
)
