#!/usr/bin/env python3
"""
SOLVO Command-Line Interface

One subcommand per library operation. Expressions are S-expressions;
results are printed the same way.

Usage:
    solvo simplify "(* a 3 4)"                  # (* 12 a)
    solvo expand "(* (+ x 1) (+ x 2))"
    solvo fold "(+ 1 2 x)"                      # (+ 3 x)
    solvo diff "(^ x 3)" x x                    # second derivative
    solvo poly x "(* (+ x 1) (+ x a))"
    solvo rearrange x "(= (+ a x) b)"
    solvo solve "x y" "(= (+ x y) 3)" "(= (- x y) 1)"
    solvo eval "(+ x (* 2 y))" x=1 y=3

Options:
    -v, --verbose      Debug logging (strategy selection, budget trips)
    -t, --trace        Print the rule trace to stderr
"""

import argparse
import logging
import sys
from typing import List, Optional

from .calculus import DERIVATIVE_ENGINE, differentiate
from .canonical import CANONICAL_ENGINE, EXPAND_ENGINE
from .errors import SolvoError, failed
from .expressions import ExprType, canonical_ops, format_sexpr, parse_sexpr
from .polynomial import to_polynomial_normal_form
from .rearrange import rearrange
from .solver import ALL_VALUES, solve
from .transform import DEFAULT_RATIO, evaluate, evaluate_constants, multiply_out, simplify

logger = logging.getLogger(__name__)


def parse_expression(text: str) -> ExprType:
    expr = parse_sexpr(text)
    if expr is None:
        raise SolvoError(f"empty expression: {text!r}")
    return canonical_ops(expr)


def parse_binding(text: str):
    """NAME=VALUE -> (name, expression)"""
    name, sep, value = text.partition("=")
    if not sep or not name.strip():
        raise SolvoError(f"expected NAME=VALUE, got {text!r}")
    return name.strip(), parse_expression(value)


def _show_trace(engine, expr: ExprType) -> None:
    _, trace = engine.rewrite(expr, trace=True)
    print(trace.format("chain"), file=sys.stderr)


def _format_solution(solution) -> str:
    if isinstance(solution, dict):
        return ", ".join(f"{name} = {format_sexpr(value)}" for name, value in solution.items())
    if solution is ALL_VALUES:
        return "all values"
    return format_sexpr(solution)


def _report(result) -> int:
    if failed(result):
        print(f"Error: {result}", file=sys.stderr)
        return 1
    print(format_sexpr(result))
    return 0


# ============================================================
# Subcommands
# ============================================================

def cmd_simplify(args) -> int:
    expr = parse_expression(args.expr)
    if args.trace:
        _show_trace(CANONICAL_ENGINE, expr)
    return _report(simplify(expr, ratio=args.ratio))


def cmd_expand(args) -> int:
    expr = parse_expression(args.expr)
    if args.trace:
        _show_trace(EXPAND_ENGINE, expr)
    return _report(multiply_out(expr))


def cmd_fold(args) -> int:
    return _report(evaluate_constants(parse_expression(args.expr)))


def cmd_diff(args) -> int:
    expr = parse_expression(args.expr)
    if args.trace:
        _show_trace(DERIVATIVE_ENGINE, ["d", args.vars[0], expr])
    return _report(differentiate(args.vars, expr))


def cmd_poly(args) -> int:
    return _report(to_polynomial_normal_form(parse_expression(args.var), parse_expression(args.expr)))


def cmd_rearrange(args) -> int:
    result = rearrange(args.var, parse_expression(args.equation))
    if failed(result):
        return _report(result)
    for equation in result:
        print(format_sexpr(equation))
    return 0


def cmd_solve(args) -> int:
    names = args.vars.split()
    equations = [parse_expression(text) for text in args.equations]
    result = solve(names[0] if len(names) == 1 else names, equations)
    if failed(result):
        return _report(result)
    if not result:
        print("no solutions")
    for solution in result:
        print(_format_solution(solution))
    return 0


def cmd_eval(args) -> int:
    bindings = dict(parse_binding(text) for text in args.bindings)
    return _report(evaluate(parse_expression(args.expr), bindings))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solvo",
        description="SOLVO - symbolic simplification, differentiation and equation solving",
        epilog="Examples:\n"
               "  solvo simplify '(* a 3 4)'\n"
               "  solvo diff '(^ x 3)' x\n"
               "  solvo solve x '(= (+ 1 x) 3)'\n"
               "  solvo solve 'x y' '(= (+ x y) 3)' '(= (- x y) 1)'\n",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging"
    )

    parser.add_argument(
        "-t", "--trace",
        action="store_true",
        help="Print the rule trace to stderr"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser("simplify", help="Simplify to canonical form")
    p.add_argument("expr")
    p.add_argument("--ratio", type=float, default=DEFAULT_RATIO,
                   help="Maximum result size relative to the input")
    p.set_defaults(handler=cmd_simplify)

    p = commands.add_parser("expand", help="Multiply out products and powers of sums")
    p.add_argument("expr")
    p.set_defaults(handler=cmd_expand)

    p = commands.add_parser("fold", help="Fold constant sub-expressions")
    p.add_argument("expr")
    p.set_defaults(handler=cmd_fold)

    p = commands.add_parser("diff", help="Differentiate by each VAR in turn")
    p.add_argument("expr")
    p.add_argument("vars", nargs="+", metavar="VAR")
    p.set_defaults(handler=cmd_diff)

    p = commands.add_parser("poly", help="Polynomial normal form in VAR")
    p.add_argument("var")
    p.add_argument("expr")
    p.set_defaults(handler=cmd_poly)

    p = commands.add_parser("rearrange", help="Isolate VAR in an equation")
    p.add_argument("var")
    p.add_argument("equation")
    p.set_defaults(handler=cmd_rearrange)

    p = commands.add_parser("solve", help="Solve equations for VARS (space separated)")
    p.add_argument("vars")
    p.add_argument("equations", nargs="+", metavar="EQUATION")
    p.set_defaults(handler=cmd_solve)

    p = commands.add_parser("eval", help="Substitute NAME=VALUE bindings and evaluate")
    p.add_argument("expr")
    p.add_argument("bindings", nargs="*", metavar="NAME=VALUE")
    p.set_defaults(handler=cmd_eval)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.handler(args)
    except SolvoError as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
