"""
Isolate a single occurrence of an unknown by peeling operators.

Each operator on the path from the root to the unknown is undone by
applying its inverse to the other side:

    >>> rearrange("x", E("(= (+ a x) b)"))
    [['=', 'x', ['-', 'b', 'a']]]
    >>> rearrange("x", E("(= (^ x 2) 9)"))
    [['=', 'x', ['^', 9, Fraction(1, 2)]], ['=', 'x', ['-', ['^', 9, Fraction(1, 2)]]]]

Multi-valued inverses fork into one equation per branch. Nothing is
simplified; the solver tidies and checks the branches.
"""

from fractions import Fraction
from typing import Callable, Dict, List, Union

from .errors import MalformedExpression, MultipleOccurrences, NoOccurrence, UnsolvableStrategy
from .expressions import (
    ExprType, canonical_ops, constant, format_sexpr, free_in, is_equation, is_integer,
    make_product, make_sum, normalize_number, occurrences,
)

# peel(operands, index, rhs) -> right-hand sides for operands[index]
PeelType = Callable[[List[ExprType], int, ExprType], List[ExprType]]


def _others(operands: List[ExprType], index: int) -> List[ExprType]:
    return operands[:index] + operands[index + 1:]


def _reciprocal(n: ExprType) -> ExprType:
    if constant(n) and n != 0 and not isinstance(n, float):
        return normalize_number(Fraction(1) / Fraction(n))
    return ["/", 1, n]


def _peel_sum(operands, index, rhs):
    return [["-", rhs, make_sum(_others(operands, index))]]


def _peel_product(operands, index, rhs):
    return [["/", rhs, make_product(_others(operands, index))]]


def _peel_minus(operands, index, rhs):
    if len(operands) == 1:
        return [["-", rhs]]
    if index == 0:
        return [["+", rhs, operands[1]]]
    return [["-", operands[0], rhs]]


def _peel_quotient(operands, index, rhs):
    if index == 0:
        return [["*", rhs, operands[1]]]
    return [["/", operands[0], rhs]]


def _peel_power(operands, index, rhs):
    base, exponent = operands
    if index == 1:
        return [["/", ["log", rhs], ["log", base]]]
    root = ["^", rhs, _reciprocal(exponent)]
    if is_integer(exponent) and exponent != 0 and int(exponent) % 2 == 0:
        return [root, ["-", root]]
    return [root]


def _peel_log(operands, index, rhs):
    if len(operands) == 1:
        return [["exp", rhs]]
    value, base = operands
    if index == 0:
        return [["^", base, rhs]]
    return [["^", value, ["/", 1, rhs]]]


def _peel_abs(operands, index, rhs):
    return [rhs, ["-", rhs]]


def _function_inverse(name: str) -> PeelType:
    def peel(operands, index, rhs):
        return [[name, rhs]]
    return peel


INVERSES: Dict[str, PeelType] = {
    "+": _peel_sum,
    "*": _peel_product,
    "-": _peel_minus,
    "/": _peel_quotient,
    "^": _peel_power,
    "exp": _function_inverse("log"),
    "log": _peel_log,
    "abs": _peel_abs,
    "sqrt": lambda operands, index, rhs: [["^", rhs, 2]],
    "sin": _function_inverse("asin"),
    "cos": _function_inverse("acos"),
    "tan": _function_inverse("atan"),
}


def _isolate(unknown: str, lhs: ExprType, rhs: ExprType) -> Union[List[ExprType], UnsolvableStrategy]:
    if lhs == unknown:
        return [["=", unknown, rhs]]

    op, operands = lhs[0], lhs[1:]
    index = next(i for i, sub in enumerate(operands) if free_in(unknown, sub))
    peel = INVERSES.get(op)
    if peel is None:
        return UnsolvableStrategy(f"no inverse for {op!r}")

    equations = []
    for branch in peel(operands, index, rhs):
        isolated = _isolate(unknown, operands[index], branch)
        if isinstance(isolated, UnsolvableStrategy):
            return isolated
        equations.extend(isolated)
    return equations


def rearrange(unknown: str, equation: ExprType) -> Union[List[ExprType], MultipleOccurrences,
                                                           NoOccurrence, UnsolvableStrategy]:
    """
    Rearrange equation into (= unknown rhs), one equation per branch.

    Returns:
        A list of equations, or a falsy failure: NoOccurrence,
        MultipleOccurrences, or UnsolvableStrategy when the unknown sits
        under an operator without an inverse (dot, vec, d)

    Raises:
        MalformedExpression: if equation is not an equality
    """
    equation = canonical_ops(equation)
    if not is_equation(equation):
        raise MalformedExpression(f"not an equation: {format_sexpr(equation)}")

    _, lhs, rhs = equation
    count = occurrences(unknown, lhs) + occurrences(unknown, rhs)
    if count == 0:
        return NoOccurrence(unknown)
    if count > 1:
        return MultipleOccurrences(f"{unknown} occurs {count} times")

    if not free_in(unknown, lhs):
        lhs, rhs = rhs, lhs
    return _isolate(unknown, lhs, rhs)
