"""
Linear systems by Gauss-Jordan elimination.

Each residual f (an equation moved to one side) must be affine in the
unknowns with exact numeric coefficients. Constant terms may be
symbolic; they ride along in the right-hand side column.
"""

import logging
from fractions import Fraction
from typing import Dict, List, Optional, Tuple, Union

from .canonical import expand_terms, split_term
from .errors import InconsistentSystem
from .expressions import ExprType, constant, exact, free_in, is_zero, make_sum, normalize_number
from .transform import contract, multiply_out, tidy

logger = logging.getLogger(__name__)

Row = Tuple[List[Fraction], ExprType]


def affine_row(unknowns: List[str], f: ExprType) -> Optional[Row]:
    """
    Coefficients and right-hand side of f = 0 read as a linear equation.

        affine_row(["x", "y"], (+ -100 (* 3 x) (* 4 y)))  ->  ([3, 4], 100)

    Returns None if f is not affine in the unknowns or a coefficient is
    not an exact number.
    """
    coefficients = [Fraction(0)] * len(unknowns)
    rest = []
    for term in expand_terms(contract(multiply_out(f))):
        present = [i for i, name in enumerate(unknowns) if free_in(name, term)]
        if not present:
            rest.append(term)
            continue
        if len(present) > 1:
            return None
        index = present[0]
        coefficient, monomial = split_term(term)
        if monomial != unknowns[index] or not exact(coefficient):
            return None
        coefficients[index] += Fraction(coefficient)
    return coefficients, tidy(["*", -1, make_sum(rest)])


def _combine(a: ExprType, k: Fraction, b: ExprType) -> ExprType:
    """a - k*b"""
    if k == 0:
        return a
    if exact(a) and exact(b):
        return normalize_number(Fraction(a) - k * Fraction(b))
    return tidy(["+", a, ["*", normalize_number(-k), b]])


def _scale(a: ExprType, k: Fraction) -> ExprType:
    if exact(a):
        return normalize_number(Fraction(a) * k)
    return tidy(["*", normalize_number(k), a])


def gauss_jordan(rows: List[Row]) -> Tuple[List[Row], List[int]]:
    """Reduced row echelon form; returns (rows, pivot columns)."""
    rows = [(list(c), rhs) for c, rhs in rows]
    width = len(rows[0][0]) if rows else 0
    pivots = []
    r = 0
    for column in range(width):
        pivot = next((i for i in range(r, len(rows)) if rows[i][0][column] != 0), None)
        if pivot is None:
            continue
        rows[r], rows[pivot] = rows[pivot], rows[r]

        inverse = 1 / rows[r][0][column]
        rows[r] = ([c * inverse for c in rows[r][0]], _scale(rows[r][1], inverse))

        for i in range(len(rows)):
            if i == r:
                continue
            factor = rows[i][0][column]
            if factor != 0:
                rows[i] = ([c - factor * p for c, p in zip(rows[i][0], rows[r][0])],
                           _combine(rows[i][1], factor, rows[r][1]))
        pivots.append(column)
        r += 1
    return rows, pivots


def linear_solve(unknowns: List[str], residuals: List[ExprType],
                 placeholders) -> Union[Dict[str, ExprType], InconsistentSystem, None]:
    """
    Solve residuals = 0 for unknowns.

    Returns:
        A binding for every unknown (free ones bound to fresh placeholders),
        InconsistentSystem (falsy) for a contradiction, or None when the
        system is not linear or a zero row has a symbolic constant
    """
    rows = []
    for f in residuals:
        row = affine_row(unknowns, f)
        if row is None:
            logger.debug(f"not linear in {unknowns}: {f}")
            return None
        rows.append(row)

    rows, pivots = gauss_jordan(rows)

    for coefficients, rhs in rows[len(pivots):]:
        if is_zero(rhs):
            continue
        if constant(rhs):
            return InconsistentSystem(f"0 = {rhs}")
        logger.debug(f"zero row with symbolic constant {rhs}")
        return None

    parameters = {column: placeholders.next()
                  for column in range(len(unknowns)) if column not in pivots}

    solution = {}
    for (coefficients, rhs), column in zip(rows, pivots):
        value = rhs
        for free_column, parameter in parameters.items():
            value = _combine(value, coefficients[free_column], parameter)
        solution[unknowns[column]] = value
    for column, parameter in parameters.items():
        solution[unknowns[column]] = parameter
    return {name: solution[name] for name in unknowns}
