"""
Polynomial normal form, kernel recognition and root finding.

A polynomial is recognized relative to a "main" term, which is either a
symbol or a kernel: a sub-expression the solver can treat as a fresh
unknown. Kernels let disguised polynomials be recognized:

    (+ (^ 2 (* 2 x)) (^ 2 x) -6)  quadratic in (^ 2 x)
    (+ x (* -5 (^ x 1/2)) 6)      quadratic in (^ x 1/2)
"""

import logging
from fractions import Fraction
from math import gcd
from typing import List, Optional, Tuple, Union

from .canonical import EXPAND_ENGINE, expand_terms, product_factors, split_factor
from .errors import NotPolynomial, UnsolvableStrategy, failed
from .expressions import (
    ExprType, canonical_ops, compound, constant, exact, free_in, is_integer, is_one,
    is_op, is_zero, make_power, make_product, make_sum, normalize_number, replace,
    symbols_in, variable,
)
from .rewriter import exact_div, exact_power
from .transform import contract, tidy

logger = logging.getLogger(__name__)

# Highest degree searched for rational roots
MAX_SEARCH_DEGREE = 12

# Upper bound on p/q candidates tried by the rational root search
MAX_ROOT_CANDIDATES = 5000

FUNCTION_KERNELS = ("log", "sin", "cos", "tan", "asin", "acos", "atan", "abs")


class _Irreducible(Exception):
    """Raised inside kernel substitution when a term cannot be expressed in the kernel."""


# ============================================================
# Preparation
# ============================================================

def _expanded(expr: ExprType) -> ExprType:
    """Contracted full expansion of expr."""
    current = contract(expr)
    for _ in range(3):
        result = contract(EXPAND_ENGINE.rewrite(current))
        if result == current:
            break
        current = result
    return current


def _fresh_symbol(expr: ExprType, stem: str = "_k") -> str:
    taken = set(symbols_in(expr))
    index = 0
    while f"{stem}{index}" in taken:
        index += 1
    return f"{stem}{index}"


def _affine(var: str, expr: ExprType) -> Optional[Tuple[ExprType, ExprType]]:
    """(k, c) with expr = k*var + c, k numeric and c free of var; else None."""
    coefficients = polynomial_coefficients(var, expr)
    if failed(coefficients) or len(coefficients) > 2:
        return None
    if len(coefficients) == 1:
        return 0, coefficients[0]
    k = coefficients[1]
    if not constant(k):
        return None
    return k, coefficients[0]


def kernel_symbols(kernel: ExprType) -> List[str]:
    """The symbols a kernel stands in for."""
    if variable(kernel):
        return [kernel]
    if is_op(kernel, "^") and constant(kernel[2]):
        return symbols_in(kernel[1])
    if is_op(kernel, "^"):
        return symbols_in(kernel[2])
    if compound(kernel) and len(kernel) > 1:
        return symbols_in(kernel[1])
    return []


def _exponential_parts(kernel: ExprType):
    """(base, exponent) of an exponential kernel, base None for exp; else None."""
    if is_op(kernel, "exp"):
        return None, kernel[1]
    if is_op(kernel, "^") and not constant(kernel[2]) and kernel_symbols(kernel) \
            and not any(free_in(s, kernel[1]) for s in kernel_symbols(kernel)):
        return kernel[1], kernel[2]
    return None


def _substitute_power(expr: ExprType, var: str, g: ExprType, t: str) -> ExprType:
    """Rewrite powers of var as powers of t = var^g."""
    def power_of_t(e):
        k = exact_div(e, g)
        if k is None or not is_integer(k):
            raise _Irreducible(f"{var}^{e} is not a power of {var}^{g}")
        k = int(k)
        return t if k == 1 else ["^", t, k]

    def walk(e):
        if e == var:
            return power_of_t(1)
        if is_op(e, "^") and e[1] == var and constant(e[2]):
            return power_of_t(e[2])
        if compound(e) and e:
            return [e[0]] + [walk(sub) for sub in e[1:]]
        return e

    return walk(expr)


def _substitute_exponential(expr: ExprType, kernel: ExprType, t: str) -> ExprType:
    """Rewrite a^(k*K + c) as a^c * t^(k) where t = a^K, for integer k."""
    base, exponent = _exponential_parts(kernel)
    variables = kernel_symbols(kernel)
    if len(variables) != 1:
        return replace(expr, kernel, t)
    var = variables[0]
    kernel_affine = _affine(var, exponent)
    if kernel_affine is None or is_zero(kernel_affine[0]):
        return replace(expr, kernel, t)
    g, c0 = kernel_affine

    def rebuild(e_exponent):
        parts = _affine(var, e_exponent)
        if parts is None:
            raise _Irreducible(f"exponent {e_exponent} is not affine in {var}")
        k, c = parts
        ratio = exact_div(k, g)
        if ratio is None or not is_integer(ratio):
            raise _Irreducible(f"exponent {e_exponent} is not a multiple of {exponent}")
        ratio = int(ratio)
        rest = tidy(["+", c, ["*", -ratio, c0]])
        scale = ["exp", rest] if base is None else ["^", base, rest]
        return ["*", scale, ["^", t, ratio]]

    def walk(e):
        if base is None and is_op(e, "exp") and free_in(var, e[1]):
            return rebuild(e[1])
        if base is not None and is_op(e, "^") and e[1] == base and free_in(var, e[2]):
            return rebuild(e[2])
        if compound(e) and e:
            return [e[0]] + [walk(sub) for sub in e[1:]]
        return e

    return walk(expr)


def _in_kernel(main: ExprType, expr: ExprType) -> Tuple[ExprType, str]:
    """
    Express expr in terms of a symbol standing for main.

    Raises:
        _Irreducible: if some occurrence of the kernel's symbols is not
            captured by the kernel
    """
    if variable(main):
        return expr, main

    t = _fresh_symbol(["+", expr, main])
    if is_op(main, "^") and variable(main[1]) and constant(main[2]):
        result = _substitute_power(expr, main[1], main[2], t)
    elif _exponential_parts(main) is not None:
        result = _substitute_exponential(expr, main, t)
    else:
        result = replace(expr, main, t)

    for symbol in kernel_symbols(main):
        if free_in(symbol, result):
            raise _Irreducible(f"{symbol} occurs outside the kernel")
    return result, t


# ============================================================
# Coefficients and normal form
# ============================================================

def _monomial(t: str, term: ExprType) -> Tuple[ExprType, int]:
    """(coefficient, degree) of a canonical sum operand in the symbol t."""
    degree = 0
    rest = []
    for factor in product_factors(term):
        base, exponent = split_factor(factor)
        if base == t:
            if not is_integer(exponent):
                raise _Irreducible(f"non-integer power of {t}")
            degree += int(exponent)
        elif free_in(t, factor):
            raise _Irreducible(f"{t} occurs inside {factor}")
        else:
            rest.append(factor)
    if degree < 0:
        raise _Irreducible("negative power")
    return make_product(rest), degree


def polynomial_coefficients(main: ExprType, expr: ExprType) -> Union[List[ExprType], NotPolynomial]:
    """
    Coefficients [c0, c1, ..., cn] of expr as a polynomial in main.

    main is a symbol or a kernel such as (^ 2 x), (exp x) or (^ x 1/2).
    Each coefficient is free of main and simplified. The zero polynomial
    gives [0].

    Returns:
        The coefficient list, or NotPolynomial (falsy)
    """
    main = contract(canonical_ops(main))
    expr = _expanded(canonical_ops(expr))
    try:
        substituted, t = _in_kernel(main, expr)
        if substituted is not expr:
            substituted = _expanded(substituted)
        grouped = {}
        for term in expand_terms(substituted):
            coefficient, degree = _monomial(t, term)
            grouped.setdefault(degree, []).append(coefficient)
    except _Irreducible as e:
        return NotPolynomial(str(e))

    if not grouped:
        return [0]
    coefficients = [tidy(make_sum(grouped.get(i, []))) for i in range(max(grouped) + 1)]
    while len(coefficients) > 1 and is_zero(coefficients[-1]):
        coefficients.pop()
    return coefficients


def from_coefficients(main: ExprType, coefficients: List[ExprType]) -> ExprType:
    """Build (+ c0 (* c1 main) (* c2 (^ main 2)) ...) skipping zero terms."""
    terms = []
    for degree, c in enumerate(coefficients):
        if is_zero(c):
            continue
        if degree == 0:
            terms.append(c)
            continue
        power = make_power(main, degree)
        if is_one(c):
            terms.append(power)
        elif is_op(c, "*"):
            terms.append(c + [power])
        else:
            terms.append(["*", c, power])
    return make_sum(terms)


def to_polynomial_normal_form(main: ExprType, expr: ExprType) -> Union[ExprType, NotPolynomial]:
    """
    expr as a sum of powers of main in ascending order, each power once.

        >>> to_polynomial_normal_form("x", E("(* (+ x 1) (+ x a))"))
        ['+', 'a', ['*', ['+', 1, 'a'], 'x'], ['^', 'x', 2]]
    """
    coefficients = polynomial_coefficients(main, expr)
    if failed(coefficients):
        return coefficients
    return from_coefficients(contract(canonical_ops(main)), coefficients)


def polynomial_degree(main: ExprType, expr: ExprType) -> Union[int, NotPolynomial]:
    coefficients = polynomial_coefficients(main, expr)
    if failed(coefficients):
        return coefficients
    return len(coefficients) - 1


# ============================================================
# Kernel recognition
# ============================================================

def _rational_gcd(values: List[ExprType]) -> Fraction:
    numerators = 0
    denominators = 1
    for v in values:
        v = Fraction(v)
        numerators = gcd(numerators, abs(v.numerator))
        denominators = denominators * v.denominator // gcd(denominators, v.denominator)
    return Fraction(numerators, denominators)


def find_kernels(var: str, expr: ExprType) -> List[ExprType]:
    """
    Substitution-variable candidates for var in expr, most specific first:

        - var^g, g the rational gcd of the exponents of var (var itself if g = 1)
        - b^(g*var) per base b, and exp(g*var)
        - log(...) and other function applications containing var
    """
    expr = _expanded(canonical_ops(expr))
    powers = []
    exponentials = {}
    functions = []

    def visit(e):
        if e == var:
            powers.append(1)
            return
        if not compound(e) or not e:
            return
        if is_op(e, "^") and e[1] == var and exact(e[2]):
            powers.append(e[2])
            return
        if is_op(e, "^") and not free_in(var, e[1]):
            parts = _affine(var, e[2]) if free_in(var, e[2]) else None
            if parts is not None and exact(parts[0]) and not is_zero(parts[0]):
                exponentials.setdefault(("^", repr(e[1])), [e[1], []])[1].append(parts[0])
                return
        if is_op(e, "exp") and free_in(var, e[1]):
            parts = _affine(var, e[1])
            if parts is not None and exact(parts[0]) and not is_zero(parts[0]):
                exponentials.setdefault(("exp",), [None, []])[1].append(parts[0])
                return
        if e[0] in FUNCTION_KERNELS and free_in(var, e) and e not in functions:
            functions.append(e)
        for sub in e[1:]:
            visit(sub)

    visit(expr)

    kernels = []
    if powers:
        g = _rational_gcd(powers)
        kernels.append(var if g == 1 else ["^", var, normalize_number(g)])
    for base, multipliers in exponentials.values():
        g = normalize_number(_rational_gcd(multipliers))
        exponent = var if g == 1 else ["*", g, var]
        kernels.append(["exp", exponent] if base is None else ["^", base, exponent])
    kernels.extend(functions)
    return kernels


# ============================================================
# Roots
# ============================================================

def _horner(coefficients: List[Fraction], x: Fraction) -> Fraction:
    result = Fraction(0)
    for c in reversed(coefficients):
        result = result * x + c
    return result


def _deflate(coefficients: List[Fraction], root: Fraction) -> List[Fraction]:
    """Synthetic division by (x - root); coefficients are ascending."""
    descending = list(reversed(coefficients))
    quotient = [descending[0]]
    for c in descending[1:-1]:
        quotient.append(c + quotient[-1] * root)
    return list(reversed(quotient))


def _divisors(n: int) -> List[int]:
    n = abs(n)
    small, large = [], []
    i = 1
    while i * i <= n:
        if n % i == 0:
            small.append(i)
            if i * i != n:
                large.append(n // i)
        i += 1
    return small + large[::-1]


def _closed_form(coefficients: List[ExprType]) -> List[ExprType]:
    """Roots of a polynomial of degree 1 or 2 (coefficients may be symbolic)."""
    if len(coefficients) == 2:
        c0, c1 = coefficients
        return [tidy(["*", -1, c0, ["^", c1, -1]])]

    c, b, a = coefficients
    discriminant = tidy(["+", ["^", b, 2], ["*", -4, a, c]])
    if constant(discriminant):
        if discriminant < 0:
            return []
        if discriminant == 0:
            return [tidy(["*", -1, b, ["^", ["*", 2, a], -1]])]
    radical = ["^", discriminant, Fraction(1, 2)]
    if constant(discriminant):
        root = exact_power(discriminant, Fraction(1, 2))
        # irrational roots of exact discriminants stay as radicals
        if exact(root) or not exact(discriminant):
            radical = root
    return [tidy(["*", ["+", ["*", -1, b], ["*", sign, radical]], ["^", ["*", 2, a], -1]])
            for sign in (-1, 1)]


def _rational_roots(coefficients: List[ExprType]) -> Union[Tuple[List[ExprType], List[Fraction]], UnsolvableStrategy]:
    """Rational roots of an exact polynomial; returns (roots, remaining coefficients)."""
    exact_coefficients = [Fraction(c) for c in coefficients]
    scale = 1
    for c in exact_coefficients:
        scale = scale * c.denominator // gcd(scale, c.denominator)
    integers = [int(c * scale) for c in exact_coefficients]

    p_divisors = _divisors(integers[0])
    q_divisors = _divisors(integers[-1])
    if 2 * len(p_divisors) * len(q_divisors) > MAX_ROOT_CANDIDATES:
        return UnsolvableStrategy(f"more than {MAX_ROOT_CANDIDATES} rational root candidates")

    candidates = sorted({Fraction(sign * p, q) for p in p_divisors for q in q_divisors
                         for sign in (1, -1)}, key=lambda r: (abs(r), r < 0))
    roots = []
    remaining = exact_coefficients
    for candidate in candidates:
        while len(remaining) > 3 and _horner(remaining, candidate) == 0:
            roots.append(normalize_number(candidate))
            remaining = _deflate(remaining, candidate)
        if len(remaining) <= 3:
            break
    return roots, remaining


def polynomial_roots(coefficients: List[ExprType]) -> Union[List[ExprType], UnsolvableStrategy]:
    """
    Real roots of c0 + c1*t + ... + cn*t^n, without repeats.

    Degrees 1 and 2 use closed forms (symbolic coefficients allowed; a
    negative numeric discriminant has no real roots). Higher degrees need
    exact numeric coefficients: zero roots are factored out, then rational
    roots are found and divided out until a quadratic remains.

    Returns:
        A list of roots, or UnsolvableStrategy (falsy)
    """
    coefficients = list(coefficients)
    while len(coefficients) > 1 and is_zero(coefficients[-1]):
        coefficients.pop()
    if len(coefficients) == 1:
        if is_zero(coefficients[0]):
            return UnsolvableStrategy("every value is a root of the zero polynomial")
        return []

    roots = []
    while is_zero(coefficients[0]) and len(coefficients) > 1:
        if 0 not in roots:
            roots.append(0)
        coefficients = coefficients[1:]

    degree = len(coefficients) - 1
    if degree == 0:
        return roots
    if degree > 2:
        if degree > MAX_SEARCH_DEGREE:
            return UnsolvableStrategy(f"degree {degree} exceeds {MAX_SEARCH_DEGREE}")
        if not all(exact(c) for c in coefficients):
            return UnsolvableStrategy("degree above 2 with non-rational coefficients")
        found = _rational_roots(coefficients)
        if failed(found):
            return found
        rational, remaining = found
        if len(remaining) > 3:
            logger.debug(f"no rational factorization of degree {degree} polynomial")
            return UnsolvableStrategy(f"no closed form for degree {len(remaining) - 1}")
        roots.extend(rational)
        coefficients = [normalize_number(c) for c in remaining]

    for root in _closed_form(coefficients):
        if root not in roots:
            roots.append(root)
    return roots
