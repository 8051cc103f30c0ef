"""graphcalc package: expression compiler, numerics, symbolic integration and solvers."""

__all__ = [
    "config",
    "parser",
    "compiler",
    "numerical",
    "geometry",
    "ode",
    "integration",
    "implicit",
    "linalg",
    "solver",
    "worker",
    "cli",
    "types",
    "api",
    "logging_config",
]

# Public API exports

__api_exports__ = [
    "evaluate",
    "validate_expression",
    "zeros",
    "extrema",
    "intersections",
    "diff",
    "integrate",
    "contour",
    "ode_trajectory",
    "solve",
]
