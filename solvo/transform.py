"""
Public rewriting operations: constant folding, expansion, simplification
and numeric evaluation.

    >>> simplify(E("(* a 3 4)"))
    ['*', 12, 'a']
    >>> simplify(E("(- (^ (+ x 1) 2) (^ x 2))"))
    ['+', 1, ['*', 2, 'x']]
"""

import logging
import math
from typing import Dict, List, Optional, Union

from .canonical import CANONICAL_ENGINE, EXPAND_ENGINE
from .engine import DEFAULT_MAX_STEPS
from .errors import RatioNotMet, RewriteLimitExceeded, ShapeError, failed
from .expressions import (
    OPERATORS, ExprType, canonical_ops, compound, constant, expr_size,
    format_sexpr, is_vector, make_vec, substitute, vector_shape,
)
from .rewriter import EXACT_PRELUDE, MATH_PRELUDE, FoldFuncsType, same_expr, try_fold

logger = logging.getLogger(__name__)

# Default bound on size(result) / size(input) for simplify
DEFAULT_RATIO = 3.0

# Fold/canonicalize rounds before contraction gives up
MAX_CONTRACT_ROUNDS = 8


# ============================================================
# Constant folding
# ============================================================

def _common_length(vectors: List[ExprType]) -> int:
    lengths = {len(v) - 1 for v in vectors}
    if len(lengths) != 1:
        raise ShapeError("vector operands have different lengths: "
                         + ", ".join(format_sexpr(v) for v in vectors))
    return lengths.pop()


def _dot(a: ExprType, b: ExprType, fold_funcs: FoldFuncsType) -> ExprType:
    """Inner product of vector/matrix literals."""
    shape_a, shape_b = vector_shape(a), vector_shape(b)
    if not shape_a or not shape_b:
        return ["dot", a, b]

    if len(shape_a) == 2:
        # matrix . vector or matrix . matrix, row by row
        return make_vec(_dot(row, b, fold_funcs) for row in a[1:])

    if len(shape_b) == 2:
        # vector . matrix, column by column
        if shape_a[0] != shape_b[0]:
            raise ShapeError(f"cannot take dot of {format_sexpr(a)} and {format_sexpr(b)}")
        columns = [make_vec(row[j + 1] for row in b[1:]) for j in range(shape_b[1])]
        return make_vec(_dot(a, column, fold_funcs) for column in columns)

    if shape_a != shape_b:
        raise ShapeError(f"cannot take dot of {format_sexpr(a)} and {format_sexpr(b)}")
    products = [["*", x, y] for x, y in zip(a[1:], b[1:])]
    return _fold_tree(["+"] + products, fold_funcs)


def _fold_vectors(op: str, args: List[ExprType], fold_funcs: FoldFuncsType) -> Optional[ExprType]:
    vectors = [a for a in args if is_vector(a)]
    if not vectors:
        return None
    if op in ("+", "-") and len(vectors) == len(args):
        length = _common_length(vectors)
        return make_vec(_fold_tree([op] + [v[i + 1] for v in vectors], fold_funcs)
                        for i in range(length))
    if op == "*" and len(vectors) == 1:
        scalars = [a for a in args if not is_vector(a)]
        return make_vec(_fold_tree(["*"] + scalars + [item], fold_funcs)
                        for item in vectors[0][1:])
    if op == "dot" and len(vectors) == 2:
        return _dot(args[0], args[1], fold_funcs)
    return None


def _fold_tree(exp: ExprType, fold_funcs: FoldFuncsType) -> ExprType:
    if not compound(exp) or not exp:
        return exp

    op = exp[0]
    args = [_fold_tree(a, fold_funcs) for a in exp[1:]]

    folded = _fold_vectors(op, args, fold_funcs)
    if folded is not None:
        return folded

    if all(constant(a) for a in args):
        result = try_fold(op, args, fold_funcs)
        return [op] + args if result is None else result

    info = OPERATORS.get(op)
    if info is not None and info.ac:
        constants = [a for a in args if constant(a)]
        others = [a for a in args if not constant(a)]
        if constants:
            result = try_fold(op, constants, fold_funcs)
            if result is None:
                return [op] + args
            if result != info.identity:
                others.insert(0, result)
        if len(others) == 1:
            return others[0]
        return [op] + others

    return [op] + args


def evaluate_constants(expr: ExprType, fold_funcs: FoldFuncsType = MATH_PRELUDE) -> ExprType:
    """
    Fold constant sub-expressions bottom-up.

    Compounds whose operands are all constants are evaluated. For + and *
    the constant operands are folded into one constant placed first, and
    dropped if it is the identity. Vector literals are combined
    elementwise. Undefined operations (1/0, log of a negative) are left
    as they are.

    Raises:
        ShapeError: for vector operands of different lengths
    """
    return _fold_tree(canonical_ops(expr), fold_funcs)


# ============================================================
# Expansion
# ============================================================

def multiply_out(expr: ExprType, max_steps: int = DEFAULT_MAX_STEPS) -> ExprType:
    """
    Expand products of sums, quotients of sums and positive integer
    powers of sums. Nested sums and products are flattened; like terms
    are not combined.
    """
    return EXPAND_ENGINE.rewrite(canonical_ops(expr), max_steps=max_steps)


def contract(expr: ExprType, max_steps: int = DEFAULT_MAX_STEPS) -> ExprType:
    """
    Canonical contracted form: exact folding plus the canonical rule set,
    repeated until neither changes the term.

    Raises:
        RewriteLimitExceeded: if the rule budget runs out or a cycle is found
    """
    current = expr
    for _ in range(MAX_CONTRACT_ROUNDS):
        result = CANONICAL_ENGINE.rewrite(_fold_tree(current, EXACT_PRELUDE), max_steps=max_steps)
        if same_expr(result, current):
            return result
        current = result
    raise RewriteLimitExceeded(f"no canonical form after {MAX_CONTRACT_ROUNDS} rounds", last=current)


def _expanded_candidate(contracted: ExprType, bound: float, max_steps: int) -> Optional[ExprType]:
    try:
        expanded = EXPAND_ENGINE.rewrite(contracted, max_steps=max_steps)
    except RewriteLimitExceeded as e:
        logger.debug(f"expansion abandoned: {e}")
        return None
    if same_expr(expanded, contracted):
        return None
    if expr_size(expanded) > bound:
        logger.debug(f"expansion exceeds size bound {bound}")
        return None
    try:
        return contract(expanded, max_steps)
    except RewriteLimitExceeded as e:
        logger.debug(f"contraction of expansion abandoned: {e}")
        return None


def simplify(expr: ExprType, ratio: float = DEFAULT_RATIO,
             max_steps: int = DEFAULT_MAX_STEPS) -> Union[ExprType, RatioNotMet]:
    """
    Simplify an expression to canonical form.

    Two candidates are considered: the contracted form and the contracted
    expansion. The smaller wins, the contracted form on a tie.

    Returns:
        The simplified expression, or RatioNotMet (falsy) when the result
        would be larger than ratio * expr_size(expr) or the rule budget ran out.
    """
    expr = canonical_ops(expr)
    bound = ratio * expr_size(expr)

    try:
        best = contract(expr, max_steps)
    except RewriteLimitExceeded as e:
        logger.debug(f"simplify gave up on {format_sexpr(expr)}: {e}")
        return RatioNotMet(str(e))

    expanded = _expanded_candidate(best, bound, max_steps)
    if expanded is not None and expr_size(expanded) < expr_size(best):
        best = expanded

    if expr_size(best) > bound:
        return RatioNotMet(f"size {expr_size(best)} exceeds {ratio} x {expr_size(expr)}")
    return best


def tidy(expr: ExprType, max_steps: int = DEFAULT_MAX_STEPS) -> ExprType:
    """simplify without a size bound; returns expr unchanged if the budget runs out."""
    result = simplify(expr, ratio=math.inf, max_steps=max_steps)
    if failed(result):
        return canonical_ops(expr)
    return result


# ============================================================
# Evaluation
# ============================================================

def evaluate(expr: ExprType, bindings: Optional[Dict[str, ExprType]] = None) -> ExprType:
    """
    Substitute bindings and fold numerically.

    Returns a number (or numeric vector) when everything folds, otherwise
    the partially evaluated expression.

        >>> evaluate(E("(+ x (* 2 y))"), {"x": 1, "y": 3})
        7
    """
    expr = canonical_ops(expr)
    if bindings:
        expr = substitute(expr, {name: canonical_ops(value) for name, value in bindings.items()})
    return _fold_tree(expr, MATH_PRELUDE)
