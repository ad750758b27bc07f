"""
Core rewriter module for symbolic expression transformation.

This module provides pattern matching, skeleton instantiation and constant
folding for rule-based expression rewriting. Arithmetic folding is exact:
integers and Fractions stay exact, and floats only appear when a result
cannot be represented exactly (irrational roots, transcendental functions).
"""

from fractions import Fraction
from typing import Any, List, Union, Optional, Callable, Dict
import math

from .errors import MalformedExpression
from .expressions import (
    ExprType, NumericType, atom, compound, constant, exact, free_in,
    normalize_number, to_tuple, variable, zero_reciprocal,
)

BindingsType = Union[List[List], str]  # List of [name, value] pairs or "failed"

# Integer powers above this are folded in floating point
MAX_EXACT_EXPONENT = 4096


# ============================================================
# Bindings Class - Dict-like interface for match results
# ============================================================

class Bindings:
    """
    Dict-like wrapper for pattern matching bindings.

        if bindings := engine.match("(+ ?a ?b)", expr):
            print(bindings["a"], bindings["b"])

    Bindings objects are truthy when a match succeeded; NoMatch (falsy)
    represents a failed match. Builder and guard callables receive a
    Bindings object.
    """

    __slots__ = ('_dict',)

    def __init__(self, pairs: List[List]):
        self._dict = {name: value for name, value in pairs}

    def __bool__(self) -> bool:
        return True

    def __getitem__(self, key: str):
        return self._dict[key]

    def get(self, key: str, default=None):
        return self._dict.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._dict

    def keys(self):
        return self._dict.keys()

    def values(self):
        return self._dict.values()

    def items(self):
        return self._dict.items()

    def __iter__(self):
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"Bindings({self._dict})"

    def __eq__(self, other):
        if isinstance(other, Bindings):
            return self._dict == other._dict
        return False


class _NoMatch:
    """
    Singleton representing a failed pattern match.

    NoMatch is falsy, allowing natural use in conditionals:

        if bindings := engine.match(pattern, expr):
            # matched
        else:
            # NoMatch
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NoMatch"

    def __getitem__(self, key: str):
        raise KeyError(f"NoMatch has no binding for '{key}'")

    def get(self, key: str, default=None):
        return default

    def __contains__(self, key: str) -> bool:
        return False

    def __len__(self) -> int:
        return 0

    def __iter__(self):
        return iter([])


# Singleton instance
NoMatch = _NoMatch()


def wrap_bindings(result: BindingsType) -> Union[Bindings, _NoMatch]:
    """Convert the internal bindings list (or "failed") to Bindings or NoMatch."""
    if result == "failed":
        return NoMatch
    return Bindings(result)


# FoldOp handler: receives list of numeric args, returns result or None (can't fold)
FoldHandler = Callable[[List[NumericType]], Optional[NumericType]]
FoldFuncsType = Dict[str, FoldHandler]


# ============================================================
# Exact arithmetic
# ============================================================

def _int_root(n: int, k: int) -> Optional[int]:
    """Exact k-th root of a non-negative integer, or None."""
    if n < 2:
        return n
    guess = int(round(n ** (1.0 / k)))
    for candidate in (guess - 1, guess, guess + 1):
        if candidate >= 0 and candidate ** k == n:
            return candidate
    return None


def exact_div(a: NumericType, b: NumericType) -> Optional[NumericType]:
    """a / b, exact for exact operands; None for division by zero."""
    if b == 0:
        return None
    if exact(a) and exact(b):
        return normalize_number(Fraction(a) / Fraction(b))
    return a / b


def exact_power(base: NumericType, exponent: NumericType) -> Optional[NumericType]:
    """
    base ** exponent over the reals.

    Integer exponents of exact bases are exact. Rational exponents are
    exact when the root is (8^(2/3) = 4, (-8)^(1/3) = -2). Otherwise the
    result is a float. Returns None when the power is undefined or not real
    (0^-1, (-4)^(1/2)).
    """
    if isinstance(base, float) or isinstance(exponent, float):
        if base == 0 and exponent < 0:
            return None
        if base < 0 and not float(exponent).is_integer():
            return None
        return float(base) ** float(exponent)

    base = Fraction(base)
    exponent = Fraction(exponent)
    if base == 0:
        if exponent < 0:
            return None
        return 0 if exponent > 0 else 1

    if exponent.denominator == 1:
        if abs(exponent) > MAX_EXACT_EXPONENT:
            return float(base) ** int(exponent)
        return normalize_number(base ** int(exponent))

    k = exponent.denominator
    if base < 0 and k % 2 == 0:
        return None
    num = _int_root(abs(base.numerator), k)
    den = _int_root(base.denominator, k)
    if num is None or den is None:
        magnitude = float(abs(base)) ** float(exponent)
        if base < 0 and exponent.numerator % 2:
            return -magnitude
        return magnitude
    root = Fraction(num, den)
    if base < 0:
        root = -root
    return normalize_number(root ** exponent.numerator)


def finish_number(result: Any) -> Any:
    """Normalize a fold result: exact Fractions demote to int, integral floats to int."""
    if isinstance(result, Fraction):
        return normalize_number(result)
    if isinstance(result, float) and result.is_integer():
        return int(result)
    return result


# ============================================================
# Fold Operation Builders
# ============================================================

def nary_fold(
    identity: NumericType,
    binary_op: Callable[[NumericType, NumericType], NumericType],
    unary: Optional[Callable[[NumericType], NumericType]] = None,
) -> FoldHandler:
    """Create an n-ary folder with identity element.

    Examples:
        nary_fold(0, lambda a, b: a + b)  # (+) = 0, (+ x) = x, (+ x y z) = x+y+z
        nary_fold(1, lambda a, b: a * b)  # (*) = 1, (* x) = x, (* x y z) = x*y*z
    """
    def handler(args: List[NumericType]) -> NumericType:
        if len(args) == 0:
            return identity
        if len(args) == 1:
            return unary(args[0]) if unary else args[0]
        result = args[0]
        for a in args[1:]:
            result = binary_op(result, a)
        return result
    return handler


def unary_only(f: Callable[[NumericType], NumericType]) -> FoldHandler:
    """Create a unary-only folder (e.g., sin, cos, exp)."""
    def handler(args: List[NumericType]) -> Optional[NumericType]:
        if len(args) != 1:
            return None
        return f(args[0])
    return handler


def binary_only(f: Callable[[NumericType, NumericType], NumericType]) -> FoldHandler:
    """Create a binary-only folder (e.g., /, ^)."""
    def handler(args: List[NumericType]) -> Optional[NumericType]:
        if len(args) != 2:
            return None
        return f(args[0], args[1])
    return handler


def special_minus() -> FoldHandler:
    """Subtraction: (- x) = -x, (- x y) = x-y."""
    def handler(args: List[NumericType]) -> Optional[NumericType]:
        if len(args) == 1:
            return -args[0]
        if len(args) == 2:
            return args[0] - args[1]
        return None
    return handler


def safe_div() -> FoldHandler:
    """Exact division that declines to fold division by zero."""
    return binary_only(exact_div)


def _positive_only(f: Callable[[float], float]) -> Callable[[NumericType], Optional[float]]:
    def handler(x):
        if x <= 0:
            return None
        return f(x)
    return handler


def _log_fold(args: List[NumericType]) -> Optional[NumericType]:
    """(log x) natural log, (log x b) log of x to base b."""
    if len(args) == 1:
        return _positive_only(math.log)(args[0])
    if len(args) == 2:
        x, b = args
        if x <= 0 or b <= 0 or b == 1:
            return None
        return math.log(x) / math.log(b)
    return None


# ============================================================
# Standard Preludes for Constant Folding
# ============================================================

# Arithmetic prelude: exact +, -, *, /, ^
ARITHMETIC_PRELUDE: FoldFuncsType = {
    "+": nary_fold(0, lambda a, b: a + b),
    "*": nary_fold(1, lambda a, b: a * b),
    "-": special_minus(),
    "/": safe_div(),
    "^": binary_only(exact_power),
}

# Math prelude: arithmetic plus the built-in functions
MATH_PRELUDE: FoldFuncsType = {
    **ARITHMETIC_PRELUDE,
    "sin": unary_only(math.sin),
    "cos": unary_only(math.cos),
    "tan": unary_only(math.tan),
    "asin": unary_only(math.asin),
    "acos": unary_only(math.acos),
    "atan": unary_only(math.atan),
    "exp": unary_only(math.exp),
    "log": _log_fold,
    "sqrt": unary_only(lambda x: exact_power(x, Fraction(1, 2))),
    "abs": unary_only(abs),
}

# Predicate prelude: comparison and type predicates for conditional guards
PREDICATE_PRELUDE: FoldFuncsType = {
    ">": binary_only(lambda a, b: a > b),
    "<": binary_only(lambda a, b: a < b),
    ">=": binary_only(lambda a, b: a >= b),
    "<=": binary_only(lambda a, b: a <= b),
    "=": binary_only(lambda a, b: a == b),
    "!=": binary_only(lambda a, b: a != b),
    "const?": unary_only(constant),
    "var?": unary_only(variable),
    "list?": unary_only(compound),
    "atom?": unary_only(atom),
    "zero?": unary_only(lambda x: constant(x) and x == 0),
    "nonzero?": unary_only(lambda x: not (constant(x) and x == 0)),
    "positive?": unary_only(lambda x: constant(x) and x > 0),
    "negative?": unary_only(lambda x: constant(x) and x < 0),
    "integer?": unary_only(lambda x: exact(x) and Fraction(x).denominator == 1),
    "even?": unary_only(lambda x: exact(x) and Fraction(x).denominator == 1 and x % 2 == 0),
    "free?": binary_only(lambda e, v: not free_in(v, e)),
    "defined?": unary_only(lambda operands: not any(zero_reciprocal(x) for x in operands)),
    "not": unary_only(lambda x: not x),
    "and": binary_only(lambda a, b: a and b),
    "or": binary_only(lambda a, b: a or b),
}

# Full prelude: arithmetic + predicates (common choice for conditional rules)
FULL_PRELUDE: FoldFuncsType = {
    **ARITHMETIC_PRELUDE,
    **PREDICATE_PRELUDE,
}

def exact_only(handler: FoldHandler) -> FoldHandler:
    """Wrap a handler so it declines when exact operands give an inexact result."""
    def wrapped(args: List[NumericType]) -> Optional[NumericType]:
        result = handler(args)
        if isinstance(result, float) and all(exact(a) for a in args):
            return None
        return result
    return wrapped


# Exact prelude: folds only what stays exact, e.g. (^ 2 1/2) is left alone
EXACT_PRELUDE: FoldFuncsType = {
    **{op: exact_only(handler) for op, handler in ARITHMETIC_PRELUDE.items()},
    "abs": unary_only(abs),
}

# Empty prelude (no constant folding at all)
NO_PRELUDE: FoldFuncsType = {}


def try_fold(op: str, args: List[Any], fold_funcs: Optional[FoldFuncsType]) -> Optional[Any]:
    """
    Apply the fold handler for op, or return None if it can't fold.

    Arithmetic and domain errors (division by zero, log of a negative,
    overflow) and non-real results all decline to fold.
    """
    if not fold_funcs or op not in fold_funcs:
        return None
    try:
        result = fold_funcs[op](args)
    except (ArithmeticError, ValueError, TypeError):
        return None
    if result is None or isinstance(result, complex):
        return None
    if isinstance(result, float) and (math.isnan(result) or math.isinf(result)):
        return None
    return finish_number(result)


# ============================================================
# Primitive Operations (Lisp-like list operations)
# ============================================================

def car(lst: List) -> Any:
    """Return the first element of a non-empty list."""
    if not isinstance(lst, list):
        raise TypeError("car: argument must be a list")
    if not lst:
        raise ValueError("car: argument is an empty list")
    return lst[0]


def cdr(lst: List) -> List:
    """Return all but the first element of a list."""
    if not isinstance(lst, list):
        raise TypeError("cdr: argument must be a list")
    return lst[1:] if lst else []


def null(s: Any) -> bool:
    return isinstance(s, list) and not s


# ============================================================
# Pattern Matching Helpers
# ============================================================

def arbitrary_constant(pat: ExprType) -> bool:
    """Check if pattern matches any constant (?c)."""
    return compound(pat) and len(pat) == 2 and car(pat) == "?c"


def arbitrary_variable(pat: ExprType) -> bool:
    """Check if pattern matches any symbol (?v)."""
    return compound(pat) and len(pat) == 2 and car(pat) == "?v"


def arbitrary_expression(pat: ExprType) -> bool:
    """Check if pattern matches any expression (?)."""
    return compound(pat) and len(pat) == 2 and car(pat) == "?"


def arbitrary_free(pat: ExprType) -> bool:
    """Check if pattern matches an expression free of a variable (?free)."""
    return compound(pat) and len(pat) == 3 and car(pat) == "?free"


def arbitrary_rest(pat: ExprType) -> bool:
    """Check if pattern matches the remaining operands (?...).

    Forms:
        ["?...", "name"]           - any operands
        ["?...", "name", "const"]  - each must be constant
        ["?...", "name", "var"]    - each must be a symbol
    """
    return compound(pat) and len(pat) >= 2 and car(pat) == "?..."


def rest_type_constraint(pat: List) -> Optional[str]:
    if len(pat) >= 3:
        return pat[2]
    return None


def skeleton_splice(s: ExprType) -> bool:
    """Form: [":...", "name"] - splice a bound list into the parent."""
    return compound(s) and len(s) == 2 and car(s) == ":..."


def skeleton_compute(s: ExprType) -> bool:
    """Form: ["!", "op", arg1, ...] - fold op over args at instantiation."""
    return compound(s) and len(s) >= 2 and car(s) == "!"


def skeleton_evaluation(s: ExprType) -> bool:
    """Form: [":", "name"] - substitute the bound value."""
    return compound(s) and len(s) == 2 and car(s) == ":"


def variable_name(pat: List) -> str:
    return pat[1]


def same_expr(a: Any, b: Any) -> bool:
    """Structural equality; numbers compare by value, "1" and [1] stay apart."""
    if constant(a) and constant(b):
        return a == b
    return type(a) is type(b) and to_tuple(a) == to_tuple(b)


def extend_bindings(
    pat: List, dat: ExprType, bindings: BindingsType
) -> BindingsType:
    """Add [name, dat] to bindings; "failed" if name is bound to something else."""
    if bindings == "failed":
        return "failed"

    name = variable_name(pat)
    for entry in bindings:
        if entry[0] == name:
            if same_expr(entry[1], dat):
                return bindings
            return "failed"

    return bindings + [[name, dat]]


def lookup(var: str, bindings: BindingsType) -> Any:
    """Look up a name in the bindings; unbound names are returned unchanged."""
    if bindings == "failed":
        return var
    for entry in bindings:
        if entry[0] == var:
            return entry[1]
    return var


# ============================================================
# Pattern Matching
# ============================================================

def match(pat: ExprType, exp: ExprType, bindings: BindingsType) -> BindingsType:
    """
    Match a pattern against an expression with bindings.

    Pattern syntax:
        ["?", "name"]            - match any expression
        ["?c", "name"]           - match constants only
        ["?v", "name"]           - match symbols only
        ["?free", "name", "var"] - match expression not containing var
        ["?...", "name"]         - match remaining operands (zero or more)
        literal                  - match exact value

    Returns:
        Updated bindings on success, "failed" on failure
    """
    if bindings == "failed":
        return "failed"

    if null(pat):
        return bindings if null(exp) else "failed"

    if atom(pat):
        if not atom(exp):
            return "failed"
        if constant(pat):
            return bindings if constant(exp) and pat == exp else "failed"
        return bindings if pat == exp else "failed"

    if arbitrary_constant(pat):
        return extend_bindings(pat, exp, bindings) if constant(exp) else "failed"

    if arbitrary_variable(pat):
        return extend_bindings(pat, exp, bindings) if variable(exp) else "failed"

    if arbitrary_expression(pat):
        return extend_bindings(pat, exp, bindings)

    if arbitrary_free(pat):
        # ["?free", "name", "var"]: var may itself be a pattern name bound earlier
        excluded = lookup(pat[2], bindings)
        if not free_in(excluded, exp):
            return extend_bindings(pat, exp, bindings)
        return "failed"

    if arbitrary_rest(pat):
        raise MalformedExpression("rest pattern (?...) must appear inside a compound pattern")

    if not compound(pat):
        raise MalformedExpression(f"unknown pattern form: {pat!r}")

    if atom(exp) or null(exp):
        return "failed"

    return match_compound(pat, exp, bindings)


def match_compound(pat: List, exp: List, bindings: BindingsType) -> BindingsType:
    """
    Match compound patterns against compound expressions.

    Handles rest patterns (?...) which must appear at the end.
    """
    if bindings == "failed":
        return "failed"

    if null(pat) and null(exp):
        return bindings

    if null(pat):
        return "failed"

    current_pat = car(pat)
    rest_pat = cdr(pat)

    if arbitrary_rest(current_pat):
        if not null(rest_pat):
            raise MalformedExpression("rest pattern (?...) must be last in compound pattern")

        remaining = list(exp)
        type_constraint = rest_type_constraint(current_pat)
        if type_constraint:
            for item in remaining:
                if type_constraint == "const" and not constant(item):
                    return "failed"
                elif type_constraint == "var" and not variable(item):
                    return "failed"

        return extend_bindings(current_pat, remaining, bindings)

    if null(exp):
        return "failed"

    submatch = match(current_pat, car(exp), bindings)
    return match_compound(rest_pat, cdr(exp), submatch)


# ============================================================
# Instantiation
# ============================================================

def instantiate(
    skeleton: Any,
    bindings: BindingsType,
    fold_funcs: Optional[FoldFuncsType] = None,
) -> ExprType:
    """
    Instantiate a skeleton with bindings.

    Skeleton syntax:
        [":", "name"]           - substitute with bound value
        [":...", "name"]        - splice bound list into parent
        ["!", "op", args...]    - compute op(args) immediately
        callable                - builder(Bindings) -> expression
        literal                 - keep as-is
    """
    if callable(skeleton):
        return skeleton(wrap_bindings(bindings))

    def loop(s):
        if null(s):
            return []
        if atom(s):
            return s
        if skeleton_evaluation(s) or skeleton_splice(s):
            return lookup(s[1], bindings)
        if skeleton_compute(s):
            op = s[1]
            args = [loop(arg) for arg in s[2:]]
            result = try_fold(op, args, fold_funcs)
            if result is not None:
                return result
            return [op] + args
        return instantiate_compound(s, bindings, fold_funcs)

    return loop(skeleton)


def instantiate_compound(
    skeleton: List,
    bindings: BindingsType,
    fold_funcs: Optional[FoldFuncsType] = None,
) -> List:
    """
    Instantiate a compound skeleton, handling splice patterns.

    When a splice pattern [":...", "name"] is encountered, its bound list
    is spliced into the result rather than inserted as a single element.
    """
    result = []
    for element in skeleton:
        if skeleton_splice(element):
            spliced = lookup(element[1], bindings)
            if isinstance(spliced, list):
                result.extend(spliced)
            else:
                result.append(spliced)
        else:
            result.append(instantiate(element, bindings, fold_funcs))
    return result


