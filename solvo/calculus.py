"""
Symbolic differentiation.

Derivatives are rewrite rules over derivative nodes (d var expr). The
sum and product rules are variadic, so they are Python builders; the
rest are written in the rule DSL.
"""

from typing import Sequence, Union

from .canonical import IDENTITY_ENGINE
from .engine import DEFAULT_MAX_STEPS, RuleEngine
from .expressions import ExprType, canonical_ops, make_product, make_sum, parse_sexpr
from .rewriter import EXACT_PRELUDE, same_expr
from .transform import evaluate_constants

DERIVATIVE_RULES = """
[derivative]
@d-const[100] "Constants have zero derivative": (d ?v ?c:const) => 0
@d-var[100]: (d ?v ?v) => 1
@d-free[90] "Terms free of the variable are constant": (d ?v ?f:free(v)) => 0

@d-neg: (d ?v (- ?f)) => (- (d :v :f))
@d-sub: (d ?v (- ?f ?g)) => (- (d :v :f) (d :v :g))
@d-div "Quotient rule": (d ?v (/ ?f ?g)) => (/ (- (* (d :v :f) :g) (* :f (d :v :g))) (^ :g 2))

@d-pow[10] "Power rule": (d ?v (^ ?f ?n:free(v))) => (* :n (^ :f (! - :n 1)) (d :v :f))
@d-pow-general "Generalized power rule": (d ?v (^ ?f ?g)) => (* (^ :f :g) (+ (* (d :v :g) (log :f)) (/ (* :g (d :v :f)) :f)))

@d-exp: (d ?v (exp ?f)) => (* (exp :f) (d :v :f))
@d-log: (d ?v (log ?f)) => (/ (d :v :f) :f)
@d-log-base[10]: (d ?v (log ?f ?b:free(v))) => (/ (d :v :f) (* :f (log :b)))
@d-log-general: (d ?v (log ?f ?b)) => (d :v (/ (log :f) (log :b)))
@d-sqrt: (d ?v (sqrt ?f)) => (/ (d :v :f) (* 2 (sqrt :f)))
@d-abs: (d ?v (abs ?f)) => (* (/ :f (abs :f)) (d :v :f))

@d-sin: (d ?v (sin ?f)) => (* (cos :f) (d :v :f))
@d-cos: (d ?v (cos ?f)) => (* (- (sin :f)) (d :v :f))
@d-tan: (d ?v (tan ?f)) => (/ (d :v :f) (^ (cos :f) 2))
@d-asin: (d ?v (asin ?f)) => (/ (d :v :f) (sqrt (- 1 (^ :f 2))))
@d-acos: (d ?v (acos ?f)) => (- (/ (d :v :f) (sqrt (- 1 (^ :f 2)))))
@d-atan: (d ?v (atan ?f)) => (/ (d :v :f) (+ 1 (^ :f 2)))
"""


def _d_sum(bindings) -> ExprType:
    """Sum rule: (d v (+ f g ...)) -> (+ (d v f) (d v g) ...)"""
    v = bindings["v"]
    return make_sum([["d", v, f] for f in bindings["fs"]])


def _d_product(bindings) -> ExprType:
    """Product rule: one term per factor, with that factor differentiated."""
    v = bindings["v"]
    factors = bindings["fs"]
    terms = []
    for i, f in enumerate(factors):
        terms.append(make_product(factors[:i] + [["d", v, f]] + factors[i + 1:]))
    return make_sum(terms)


def _d_vec(bindings) -> ExprType:
    v = bindings["v"]
    return ["vec"] + [["d", v, item] for item in bindings["items"]]


def build_derivative_engine() -> RuleEngine:
    engine = RuleEngine.from_dsl(DERIVATIVE_RULES, fold_funcs=EXACT_PRELUDE)
    engine.add_rule(parse_sexpr("(d ?v (+ ?fs...))"), _d_sum, name="d-sum",
                    description="Sum rule", tags=["derivative"])
    engine.add_rule(parse_sexpr("(d ?v (* ?fs...))"), _d_product, name="d-product",
                    description="Product rule", tags=["derivative"])
    engine.add_rule(parse_sexpr("(d ?v (vec ?items...))"), _d_vec, name="d-vec",
                    description="Vectors differentiate elementwise", tags=["derivative"])
    return engine


DERIVATIVE_ENGINE = build_derivative_engine()


def _clean(expr: ExprType, max_steps: int) -> ExprType:
    """Constant folding and identity/annihilator rules, to a fixpoint."""
    while True:
        result = IDENTITY_ENGINE.rewrite(evaluate_constants(expr, EXACT_PRELUDE),
                                         max_steps=max_steps)
        if same_expr(result, expr):
            return result
        expr = result


def differentiate(symbols: Union[str, Sequence[str]], expr: ExprType,
                  max_steps: int = DEFAULT_MAX_STEPS) -> ExprType:
    """
    Differentiate expr with respect to each symbol in turn, left to right.

    The result is cleaned of zero terms and unit factors but not otherwise
    simplified; pipe it through simplify for a canonical form.

        >>> differentiate("x", E("(* 3 (^ x 2))"))
        ['*', 3, ['*', 2, 'x']]
        >>> differentiate(["x"] * 5, E("(+ (* 2 (** x 3)) (* 4 (** x 5)))"))
        480
    """
    if isinstance(symbols, str):
        symbols = [symbols]
    result = canonical_ops(expr)
    for symbol in symbols:
        result = DERIVATIVE_ENGINE.rewrite(["d", symbol, result], max_steps=max_steps)
        result = _clean(result, max_steps)
    return result
