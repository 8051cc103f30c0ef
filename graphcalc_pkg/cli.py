"""Command line interface for graphcalc.

Examples:
    python -m graphcalc_pkg solve --category algebra "x^2-4=0"
    python -m graphcalc_pkg eval "sin(x)^2" --var x=1.2
    python -m graphcalc_pkg zeros "x^3 - x" --range -3 3
    python -m graphcalc_pkg integrate "3*x^2" --bounds 0 2
    python -m graphcalc_pkg contour "x^2 + y^2 = 1" --view -2 2 -2 2 --json
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from . import api
from .config import VERSION
from .logging_config import get_logger, setup_logging
from .parser import format_number
from .solver import CATEGORIES
from .types import ValidationError

logger = get_logger("cli")


def _parse_assignments(pairs: list[str] | None) -> dict[str, float]:
    scope: dict[str, float] = {}
    for pair in pairs or []:
        name, sep, raw = pair.partition("=")
        if not sep or not name.strip():
            raise ValidationError(f"Expected NAME=VALUE, got {pair!r}", "INVALID_ASSIGNMENT")
        try:
            scope[name.strip()] = float(raw)
        except ValueError as e:
            raise ValidationError(f"Not a number in {pair!r}", "INVALID_ASSIGNMENT") from e
    return scope


def _emit(payload: dict[str, Any], as_json: bool, human: str) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(human)


def _cmd_solve(args: argparse.Namespace) -> int:
    result = api.solve(args.category, args.text)
    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False))
    else:
        print(result.output)
        if args.steps and result.steps:
            for step in result.steps:
                print(f"  {step}")
    return 1 if result.error else 0


def _cmd_eval(args: argparse.Namespace) -> int:
    result = api.evaluate(args.expression, _parse_assignments(args.var), notation=args.notation)
    _emit(result.to_dict(), args.json, result.result if result.ok else f"Error: {result.error}")
    return 0 if result.ok else 1


def _cmd_zeros(args: argparse.Namespace) -> int:
    x_min, x_max = args.range
    found = api.zeros(args.expression, x_min, x_max, _parse_assignments(args.var), args.samples)
    human = ", ".join(format_number(z) for z in found) if found else "No zeros found"
    _emit({"ok": True, "zeros": found}, args.json, human)
    return 0


def _cmd_integrate(args: argparse.Namespace) -> int:
    result = api.integrate(args.expression, args.variable, bounds=args.bounds)
    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False))
        return 0 if result.ok else 1
    if not result.ok:
        print(f"Error: {result.error}")
        if result.hint:
            print(f"Hint: {result.hint}")
        return 1
    print(f"{result.result} + C")
    if result.definite_value is not None:
        print(f"Definite value: {format_number(result.definite_value)}")
    for issue in result.domain_issues:
        print(f"Note: {issue}")
    return 0


def _cmd_contour(args: argparse.Namespace) -> int:
    x_min, x_max, y_min, y_max = args.view
    rings = api.contour(args.expression, x_min, x_max, y_min, y_max, grid_size=args.grid)
    if args.png:
        from .plotting import plot_contour

        written = plot_contour(
            args.expression, x_min, x_max, y_min, y_max, grid_size=args.grid, output=args.png
        )
        if not written.ok:
            print(f"Error: {written.error}", file=sys.stderr)
            return 1
    closed = sum(1 for ring in rings if len(ring) > 2 and ring[0] == ring[-1])
    human = f"{len(rings)} polyline(s), {closed} closed, {sum(len(r) for r in rings)} points"
    _emit({"ok": True, "rings": rings}, args.json, human)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="graphcalc", description="Graphing calculator computation engine"
    )
    parser.add_argument("-v", "--version", action="version", version=VERSION)
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Set logging level",
    )
    parser.add_argument("--log-file", type=str, help="Write logs to file")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-j", "--json", action="store_true", help="Emit JSON")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("solve", parents=[common], help="Solve input in a category")
    p.add_argument("text")
    p.add_argument("-c", "--category", choices=CATEGORIES, default="algebra")
    p.add_argument("--steps", action="store_true", help="Print solution steps")
    p.set_defaults(handler=_cmd_solve)

    p = sub.add_parser("eval", parents=[common], help="Evaluate an expression")
    p.add_argument("expression")
    p.add_argument("--var", action="append", metavar="NAME=VALUE", help="Variable value")
    p.add_argument("--notation", choices=["plain", "latex"], default="plain")
    p.set_defaults(handler=_cmd_eval)

    p = sub.add_parser("zeros", parents=[common], help="Find zeros on an interval")
    p.add_argument("expression")
    p.add_argument("--range", nargs=2, type=float, default=[-10.0, 10.0], metavar=("MIN", "MAX"))
    p.add_argument("--samples", type=int, default=200)
    p.add_argument("--var", action="append", metavar="NAME=VALUE", help="Parameter value")
    p.set_defaults(handler=_cmd_zeros)

    p = sub.add_parser("integrate", parents=[common], help="Symbolic antiderivative")
    p.add_argument("expression")
    p.add_argument("--variable", default="x")
    p.add_argument("--bounds", nargs=2, type=float, metavar=("A", "B"))
    p.set_defaults(handler=_cmd_integrate)

    p = sub.add_parser("contour", parents=[common], help="Trace an implicit curve")
    p.add_argument("expression")
    p.add_argument(
        "--view",
        nargs=4,
        type=float,
        default=[-10.0, 10.0, -10.0, 10.0],
        metavar=("XMIN", "XMAX", "YMIN", "YMAX"),
    )
    p.add_argument("--grid", type=int, help="Cells per axis (default: from the view span)")
    p.add_argument("--png", type=str, help="Also write the contour to this PNG file")
    p.set_defaults(handler=_cmd_contour)
    return parser


def main_entry(argv: list[str] | None = None) -> int:
    """
    Main entry point for the graphcalc CLI.

    Args:
        argv: Optional command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, log_file=args.log_file)
    try:
        return args.handler(args)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.error("Unexpected CLI error: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
