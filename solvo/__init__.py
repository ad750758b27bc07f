"""
SOLVO - symbolic simplification, differentiation and equation solving

Expressions are nested lists in prefix form, with symbols as strings and
numbers as int, Fraction or float. Everything algebraic is done by rule
sets running on the rewrite engine.

Quick Start:
    from solvo import E, simplify, differentiate, solve

    simplify(E("(* a 3 4)"))                      # ['*', 12, 'a']
    differentiate("x", E("(^ x 3)"))              # ['*', 3, ['^', 'x', 2]]
    solve("x", E("(= (+ 1 x) 3)"))                # SolutionSet([2])
    solve(["x", "y"], [E("(= (+ (* 3 x) (* 4 y)) 100)"),
                       E("(= (- x y) 20)")])      # x = 180/7, y = 40/7

Operators:
    + * - / ^ =            arithmetic and equality (** and neg are aliases)
    exp log sqrt abs       log takes an optional base: (log x b)
    sin cos tan asin acos atan
    vec dot                vectors/matrices and inner products
    d                      derivative node (d var expr)

Expected failures are returned as falsy values (RatioNotMet,
NotPolynomial, MultipleOccurrences, NoOccurrence, UnsolvableStrategy,
InconsistentSystem); test for them with failed(). Malformed input raises
SolvoError subclasses.
"""

__version__ = "0.1.0"

# Expression model
from .expressions import (
    ExprType,
    NumericType,
    OPERATORS,
    E,
    parse_sexpr,
    format_sexpr,
    substitute,
    symbols_in,
)

# Results and errors
from .errors import (
    Failure,
    failed,
    RatioNotMet,
    NotPolynomial,
    MultipleOccurrences,
    NoOccurrence,
    UnsolvableStrategy,
    InconsistentSystem,
    SolvoError,
    MalformedExpression,
    ShapeError,
    RewriteLimitExceeded,
    RewriteCycle,
)

# Rewriting machinery
from .rewriter import (
    Bindings,
    NoMatch,
    ARITHMETIC_PRELUDE,
    MATH_PRELUDE,
    EXACT_PRELUDE,
    PREDICATE_PRELUDE,
    FULL_PRELUDE,
    NO_PRELUDE,
)
from .engine import RuleEngine, SequencedEngine, RewriteTrace, DEFAULT_MAX_STEPS

# Operations
from .transform import evaluate_constants, multiply_out, simplify, evaluate, DEFAULT_RATIO
from .polynomial import (
    to_polynomial_normal_form,
    polynomial_coefficients,
    polynomial_roots,
    find_kernels,
)
from .calculus import differentiate
from .rearrange import rearrange, INVERSES
from .solver import (
    solve,
    solve_equation,
    solve_linear_system,
    SolutionSet,
    ALL_VALUES,
    Placeholders,
)

__all__ = [
    "__version__",
    # Expressions
    "ExprType",
    "NumericType",
    "OPERATORS",
    "E",
    "parse_sexpr",
    "format_sexpr",
    "substitute",
    "symbols_in",
    # Results and errors
    "Failure",
    "failed",
    "RatioNotMet",
    "NotPolynomial",
    "MultipleOccurrences",
    "NoOccurrence",
    "UnsolvableStrategy",
    "InconsistentSystem",
    "SolvoError",
    "MalformedExpression",
    "ShapeError",
    "RewriteLimitExceeded",
    "RewriteCycle",
    # Rewriting
    "Bindings",
    "NoMatch",
    "ARITHMETIC_PRELUDE",
    "MATH_PRELUDE",
    "EXACT_PRELUDE",
    "PREDICATE_PRELUDE",
    "FULL_PRELUDE",
    "NO_PRELUDE",
    "RuleEngine",
    "SequencedEngine",
    "RewriteTrace",
    "DEFAULT_MAX_STEPS",
    # Operations
    "evaluate_constants",
    "multiply_out",
    "simplify",
    "evaluate",
    "DEFAULT_RATIO",
    "to_polynomial_normal_form",
    "polynomial_coefficients",
    "polynomial_roots",
    "find_kernels",
    "differentiate",
    "rearrange",
    "INVERSES",
    "solve",
    "solve_equation",
    "solve_linear_system",
    "SolutionSet",
    "ALL_VALUES",
    "Placeholders",
]
