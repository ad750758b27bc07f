"""
Rule sets for canonicalization and expansion.

Canonical (contracted) form:
    - no -, / or sqrt: they are rewritten into +, * and ^
    - sums and products are flat and variadic
    - a sum has at most one constant term, placed first, and each
      monomial appears once with its coefficient summed
    - a product has at most one numeric coefficient, placed first, and
      each base appears once with its exponents summed
    - remaining operands are sorted by order_key

The AC collection steps are Python builders attached to DSL-style
patterns; the fixed identities are written in the rule DSL.
"""

from math import comb, factorial
from typing import Iterator, List, Tuple

from .engine import RuleEngine
from .expressions import (
    ExprType, constant, is_integer, is_one, is_op, is_zero,
    make_product, make_sum, order_key, parse_sexpr, to_tuple, zero_reciprocal,
)
from .rewriter import EXACT_PRELUDE, finish_number, try_fold

# Multinomial expansions with more terms than this are left unexpanded
MAX_EXPANSION_TERMS = 2000


# ============================================================
# Term anatomy
# ============================================================

def split_term(term: ExprType) -> Tuple[ExprType, ExprType]:
    """
    Split a sum operand into (coefficient, monomial).

        7          -> (7, 1)
        (* 2 x y)  -> (2, (* x y))
        x          -> (1, x)
    """
    if constant(term):
        return term, 1
    if is_op(term, "*") and len(term) > 1 and constant(term[1]):
        return term[1], make_product(term[2:])
    return 1, term


def split_factor(factor: ExprType) -> Tuple[ExprType, ExprType]:
    """Split a product operand into (base, exponent)."""
    if is_op(factor, "^") and len(factor) == 3:
        return factor[1], factor[2]
    return factor, 1


def _flat_operands(op: str, operands: List[ExprType]) -> Iterator[ExprType]:
    for operand in operands:
        if is_op(operand, op):
            yield from _flat_operands(op, operand[1:])
        else:
            yield operand


def _term_key(term: ExprType):
    return order_key(split_term(term)[1])


def _factor_key(factor: ExprType):
    return order_key(split_factor(factor)[0])


# ============================================================
# Collection builders
# ============================================================

def collect_sum(terms: List[ExprType]) -> ExprType:
    """Flatten a sum, fold its constants and merge like monomials."""
    total = 0
    groups = {}
    for term in _flat_operands("+", terms):
        if constant(term):
            total = total + term
            continue
        coefficient, monomial = split_term(term)
        key = to_tuple(monomial)
        if key in groups:
            groups[key][0] = groups[key][0] + coefficient
        else:
            groups[key] = [coefficient, monomial]

    result = []
    for coefficient, monomial in groups.values():
        coefficient = finish_number(coefficient)
        if is_zero(coefficient):
            continue
        if is_one(coefficient):
            result.append(monomial)
        elif is_op(monomial, "*"):
            result.append(["*", coefficient] + monomial[1:])
        else:
            result.append(["*", coefficient, monomial])
    result.sort(key=_term_key)

    total = finish_number(total)
    if not is_zero(total) or not result:
        result.insert(0, total)
    return make_sum(result)


def collect_product(factors: List[ExprType]) -> ExprType:
    """Flatten a product, fold its coefficient and merge equal bases."""
    coefficient = 1
    groups = {}
    for factor in _flat_operands("*", factors):
        if constant(factor):
            coefficient = coefficient * factor
            continue
        base, exponent = split_factor(factor)
        key = to_tuple(base)
        if key in groups:
            groups[key][1].append(exponent)
        else:
            groups[key] = [base, [exponent]]

    coefficient = finish_number(coefficient)
    if is_zero(coefficient) and not any(zero_reciprocal(["^", base, e])
                                        for base, exponents in groups.values() for e in exponents):
        return 0

    result = []
    regroup = []
    for base, exponents in groups.values():
        exponent = exponents[0] if len(exponents) == 1 else collect_sum(exponents)
        merged = simplify_power(base, exponent)
        if constant(merged):
            coefficient = finish_number(coefficient * merged)
        elif is_op(merged, "*"):
            regroup.append(merged)
        else:
            result.append(merged)

    if regroup:
        return collect_product([coefficient] + result + regroup)

    result.sort(key=_factor_key)
    if not is_one(coefficient) or not result:
        result.insert(0, coefficient)
    return make_product(result)


def simplify_power(base: ExprType, exponent: ExprType) -> ExprType:
    """
    Power identities:
        x^0 -> 1, x^1 -> x, 1^x -> 1, 0^c -> 0 for c > 0,
        exact numeric powers, (x^a)^n -> x^(a*n) and (x*y)^n -> x^n * y^n
        for integer n.
    """
    if is_zero(exponent):
        return 1
    if is_one(exponent):
        return base
    if is_one(base):
        return 1
    if constant(base) and constant(exponent):
        folded = try_fold("^", [base, exponent], EXACT_PRELUDE)
        if folded is not None:
            return folded
        return ["^", base, exponent]
    if is_zero(base) and constant(exponent) and exponent > 0:
        return 0
    if is_integer(exponent):
        n = int(exponent)
        if is_op(base, "^"):
            return simplify_power(base[1], collect_product([base[2], n]))
        if is_op(base, "*"):
            return collect_product([simplify_power(f, n) for f in base[1:]])
    return ["^", base, exponent]


# ============================================================
# Expansion builders
# ============================================================

def _sum_parts(exp: ExprType):
    """Operands of a sum-like term: (+ ...) or binary (- a b), else None."""
    if is_op(exp, "+"):
        return list(exp[1:])
    if is_op(exp, "-") and len(exp) == 3:
        return [exp[1], ["-", exp[2]]]
    return None


def distribute_product(bindings) -> ExprType:
    """Distribute a product over its first sum-like operand."""
    factors = list(_flat_operands("*", bindings["xs"]))
    for i, factor in enumerate(factors):
        if is_op(factor, "+"):
            pre, post = factors[:i], factors[i + 1:]
            return ["+"] + [make_product(pre + [t] + post) for t in factor[1:]]
        if is_op(factor, "-") and len(factor) == 3:
            pre, post = factors[:i], factors[i + 1:]
            return ["-", make_product(pre + [factor[1]] + post),
                    make_product(pre + [factor[2]] + post)]
    return make_product(factors)


def distribute_quotient(bindings) -> ExprType:
    """(/ (+ a b) d) -> (+ (/ a d) (/ b d))"""
    numerator, denominator = bindings["n"], bindings["d"]
    if is_op(numerator, "+"):
        return ["+"] + [["/", t, denominator] for t in numerator[1:]]
    if is_op(numerator, "-") and len(numerator) == 3:
        return ["-", ["/", numerator[1], denominator], ["/", numerator[2], denominator]]
    return ["/", numerator, denominator]


def negate_sum(bindings) -> ExprType:
    """(- (+ a b)) -> (+ (- a) (- b))"""
    return ["+"] + [["-", t] for t in bindings["xs"]]


def flatten_sum(bindings) -> ExprType:
    return make_sum(_flat_operands("+", bindings["xs"]))


def _compositions(n: int, parts: int) -> Iterator[Tuple[int, ...]]:
    """All ways to write n as an ordered sum of `parts` non-negative integers."""
    if parts == 1:
        yield (n,)
        return
    for first in range(n, -1, -1):
        for rest in _compositions(n - first, parts - 1):
            yield (first,) + rest


def multinomial(terms: List[ExprType], n: int) -> ExprType:
    """Expand (t1 + ... + tm)^n with exact multinomial coefficients."""
    result = []
    for powers in _compositions(n, len(terms)):
        coefficient = factorial(n)
        for k in powers:
            coefficient //= factorial(k)
        factors = [t if k == 1 else ["^", t, k] for t, k in zip(terms, powers) if k]
        if coefficient != 1:
            factors.insert(0, coefficient)
        result.append(make_product(factors))
    return make_sum(result)


def expand_power(bindings) -> ExprType:
    """(^ (+ ...) n) for a positive integer n -> multinomial expansion."""
    base, n = bindings["b"], bindings["n"]
    terms = _sum_parts(base)
    if terms is None or not is_integer(n) or n < 2:
        return ["^", base, n]
    n = int(n)
    if comb(n + len(terms) - 1, len(terms) - 1) > MAX_EXPANSION_TERMS:
        return ["^", base, n]
    return multinomial(terms, n)


# ============================================================
# Rule sets
# ============================================================

IDENTITY_RULES = """
[identity]
@add-empty: (+) => 0
@add-zero: (+ 0 ?xs...) => (+ :xs...)
@add-single: (+ ?x) => :x
@mul-empty: (*) => 1
@mul-zero "Zero annihilates a product": (* 0 ?xs...) => 0 when (! defined? :xs)
@mul-one: (* 1 ?xs...) => (* :xs...)
@mul-single: (* ?x) => :x
@pow-zero: (^ ?x 0) => 1
@pow-one: (^ ?x 1) => :x
@one-pow: (^ 1 ?x) => 1
@sub-zero: (- ?x 0) => :x
@zero-sub: (- 0 ?x) => (- :x)
@neg-zero: (- 0) => 0
@neg-neg: (- (- ?x)) => :x
@div-one: (/ ?x 1) => :x
@zero-div: (/ 0 ?x) => 0 when (! nonzero? :x)
"""

CANONICAL_RULES = """
[inverse]
@sub-self[20] "x - x is 0": (- ?x ?x) => 0
@div-self[20] "x / x is 1 unless x is provably zero": (/ ?x ?x) => 1 when (! nonzero? :x)
@log-one[20]: (log 1) => 0
@exp-zero[20]: (exp 0) => 1
@log-exp[20]: (log (exp ?x)) => :x
@exp-log[20]: (exp (log ?x)) => :x
@log-self[20]: (log ?x ?x) => 1 when (! nonzero? :x)
@abs-abs[20]: (abs (abs ?x)) => (abs :x)
@abs-neg[20]: (abs (* -1 ?x)) => (abs :x)
@abs-const[20]: (abs ?c:const) => (! abs :c)

[eliminate]
@neg "Negation is multiplication by -1": (- ?x) => (* -1 :x)
@sub "Subtraction adds the negation": (- ?x ?y) => (+ :x (* -1 :y))
@div "Division multiplies by the reciprocal": (/ ?x ?y) => (* :x (^ :y -1))
@sqrt "Square root is the power 1/2": (sqrt ?x) => (^ :x 1/2)
"""


def _collect_sum_rule(bindings) -> ExprType:
    return collect_sum(bindings["xs"])


def _collect_product_rule(bindings) -> ExprType:
    return collect_product(bindings["xs"])


def _power_rule(bindings) -> ExprType:
    return simplify_power(bindings["b"], bindings["e"])


def build_identity_engine() -> RuleEngine:
    """Identity/annihilator rules on raw (non-canonical) terms."""
    return RuleEngine.from_dsl(IDENTITY_RULES, fold_funcs=EXACT_PRELUDE)


def build_canonical_engine() -> RuleEngine:
    """Identities, inverse cancellations, elimination and AC collection."""
    engine = build_identity_engine() | RuleEngine.from_dsl(CANONICAL_RULES, fold_funcs=EXACT_PRELUDE)
    engine.add_rule(parse_sexpr("(+ ?xs...)"), _collect_sum_rule, name="collect-sum",
                    description="Merge like terms", tags=["collect"])
    engine.add_rule(parse_sexpr("(* ?xs...)"), _collect_product_rule, name="collect-product",
                    description="Merge equal bases", tags=["collect"])
    engine.add_rule(parse_sexpr("(^ ?b ?e)"), _power_rule, name="power",
                    description="Power identities", tags=["collect"])
    return engine


def build_expand_engine() -> RuleEngine:
    """Distribution rules for multiply_out; like terms are not combined."""
    engine = RuleEngine()
    engine.add_rule(parse_sexpr("(+ ?xs...)"), flatten_sum, name="flatten-sum",
                    guard=lambda b: any(is_op(t, "+") for t in b["xs"]))
    engine.add_rule(parse_sexpr("(* ?xs...)"), distribute_product, name="distribute",
                    description="Product of sums to sum of products")
    engine.add_rule(parse_sexpr("(/ ?n ?d)"), distribute_quotient, name="distribute-quotient")
    engine.add_rule(parse_sexpr("(- (+ ?xs...))"), negate_sum, name="negate-sum")
    engine.add_rule(parse_sexpr("(^ ?b ?n:const)"), expand_power, name="expand-power",
                    description="Multinomial expansion")
    return engine


IDENTITY_ENGINE = build_identity_engine()
CANONICAL_ENGINE = build_canonical_engine()
EXPAND_ENGINE = build_expand_engine()


def expand_terms(exp: ExprType) -> List[ExprType]:
    """Operands of a sum, or [exp] for anything else."""
    if is_op(exp, "+"):
        return list(exp[1:])
    return [exp]


def product_factors(exp: ExprType) -> List[ExprType]:
    """Operands of a product, or [exp] for anything else."""
    if is_op(exp, "*"):
        return list(exp[1:])
    return [exp]

