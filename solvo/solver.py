"""
Equation solving.

solve() runs the full pipeline: residuals are simplified, trivial
equations dropped, the system split into independent components, each
component solved by linear elimination, by the single-equation
strategies, or by substitution, and the candidates checked against the
original equations.

    >>> solve("x", E("(= (+ 1 x) 3)"))
    SolutionSet([2])
    >>> solve(["x", "y"], [E("(= (+ (* 3 x) (* 4 y)) 100)"), E("(= (- x y) 20)")])
    SolutionSet([{'x': Fraction(180, 7), 'y': Fraction(40, 7)}])

Results are SolutionSets: values for a single unknown, dicts for a
sequence of unknowns. The marker ALL_VALUES means every value satisfies
the system.
"""

import logging
import math
from fractions import Fraction
from itertools import product
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .canonical import expand_terms, product_factors, split_factor
from .engine import RuleEngine, SequencedEngine
from .errors import (
    Failure, InconsistentSystem, MalformedExpression, RewriteLimitExceeded, ShapeError,
    UnsolvableStrategy, failed,
)
from .expressions import (
    ExprType, canonical_ops, compound, constant, exact, format_sexpr, free_in, is_equation,
    is_op, is_vector, is_zero, make_product, make_sum, normalize_number, occurrences, parse_sexpr,
    substitute, symbols_in, to_tuple,
)
from .linear import linear_solve
from .polynomial import find_kernels, polynomial_coefficients, polynomial_roots
from .rearrange import rearrange
from .rewriter import exact_power
from .transform import contract, evaluate, multiply_out, tidy

logger = logging.getLogger(__name__)

# Nesting limit for log elimination
MAX_LOG_DEPTH = 4

# Largest denominator tried when cancelling log(b^k) / log(b)
MAX_LOG_DENOMINATOR = 64

# Relative and absolute tolerance when checking candidates numerically
TOLERANCE = 1e-9


class _AllValues:
    """Marker for "every value is a solution"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ALL_VALUES"


ALL_VALUES = _AllValues()


class Placeholders:
    """
    Monotonic generator of fresh parameter symbols: _0, _1, ...

    Each solve() call makes its own unless one is passed in, so callers
    that want names unique across calls share a generator:

        names = Placeholders()
        solve(["x", "y"], eq1, placeholders=names)
        solve(["x", "y"], eq2, placeholders=names)
    """

    def __init__(self, prefix: str = "_", start: int = 0):
        self.prefix = prefix
        self.counter = start

    def next(self) -> str:
        name = f"{self.prefix}{self.counter}"
        self.counter += 1
        return name

    __next__ = next

    def __iter__(self):
        return self

    def take(self, n: int) -> List[str]:
        return [self.next() for _ in range(n)]

    def __repr__(self) -> str:
        return f"Placeholders(prefix={self.prefix!r}, start={self.counter})"


def _solution_key(solution):
    if isinstance(solution, dict):
        return tuple((name, to_tuple(value)) for name, value in sorted(solution.items()))
    if solution is ALL_VALUES:
        return ALL_VALUES
    return to_tuple(solution)


class SolutionSet:
    """Ordered collection of solutions without duplicates."""

    def __init__(self, solutions: Iterable = ()):
        self._solutions = []
        self._keys = set()
        for solution in solutions:
            self.add(solution)

    def add(self, solution) -> None:
        key = _solution_key(solution)
        if key not in self._keys:
            self._keys.add(key)
            self._solutions.append(solution)

    def __iter__(self):
        return iter(self._solutions)

    def __len__(self) -> int:
        return len(self._solutions)

    def __getitem__(self, index):
        return self._solutions[index]

    def __contains__(self, solution) -> bool:
        return _solution_key(solution) in self._keys

    def __eq__(self, other):
        if isinstance(other, SolutionSet):
            return self._solutions == other._solutions
        if isinstance(other, list):
            return self._solutions == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"SolutionSet({self._solutions!r})"


# ============================================================
# Preprocessing
# ============================================================

def residual(equation: ExprType) -> ExprType:
    """lhs - rhs, both sides simplified first."""
    _, lhs, rhs = equation
    return tidy(["-", tidy(lhs), tidy(rhs)])


def _as_equations(equations) -> List[ExprType]:
    if is_equation(equations):
        equations = [equations]
    result = []
    for equation in equations:
        equation = canonical_ops(equation)
        if not is_equation(equation):
            raise MalformedExpression(f"not an equation: {format_sexpr(equation)}")
        result.append(equation)
    return result


def _unknowns_in(f: ExprType, unknowns: Sequence[str]) -> List[str]:
    return [name for name in unknowns if free_in(name, f)]


# ============================================================
# Single equation strategies
# ============================================================

def _by_rearranging(unknown: str, equation: ExprType) -> Optional[List[ExprType]]:
    if occurrences(unknown, equation) != 1:
        return None
    branches = rearrange(unknown, equation)
    if failed(branches):
        logger.debug(f"rearrange declined: {branches}")
        return None
    return [tidy(branch[2]) for branch in branches]


def clear_denominators(unknown: str, f: ExprType) -> ExprType:
    """Multiply f by every negative power containing unknown."""
    terms = expand_terms(contract(multiply_out(f)))
    denominators = {}
    for term in terms:
        for factor in product_factors(term):
            base, exponent = split_factor(factor)
            if constant(exponent) and exponent < 0 and free_in(unknown, base):
                key = to_tuple(base)
                if key not in denominators or -exponent > denominators[key][1]:
                    denominators[key] = (base, -exponent)
    if not denominators:
        return f
    multipliers = [["^", base, exponent] for base, exponent in denominators.values()]
    cleared = [contract(make_product([term] + multipliers)) for term in terms]
    return contract(multiply_out(make_sum(cleared)))


def _log_power(value: ExprType, base: ExprType) -> Optional[ExprType]:
    """The exact k with base^k = value, or None."""
    if not (exact(value) and exact(base)) or value <= 0 or base <= 0 or base == 1:
        return None
    k = Fraction(math.log(value) / math.log(base)).limit_denominator(MAX_LOG_DENOMINATOR)
    if exact_power(base, k) == value:
        return normalize_number(k)
    return None


def cancel_log_ratios(exp: ExprType) -> ExprType:
    """Replace log(c) * log(b)^-1 by k wherever c = b^k exactly."""
    if not compound(exp) or not exp:
        return exp
    exp = [exp[0]] + [cancel_log_ratios(sub) for sub in exp[1:]]
    if not is_op(exp, "*"):
        return exp
    factors = exp[1:]
    for i, num in enumerate(factors):
        if not (is_op(num, "log") and len(num) == 2):
            continue
        for j, den in enumerate(factors):
            base, exponent = split_factor(den)
            if exponent != -1 or not (is_op(base, "log") and len(base) == 2):
                continue
            k = _log_power(num[1], base[1])
            if k is not None:
                rest = [f for n, f in enumerate(factors) if n not in (i, j)]
                return tidy(make_product([k] + rest))
    return exp


def _by_polynomial(unknown: str, f: ExprType) -> Optional[List[ExprType]]:
    f = clear_denominators(unknown, f)
    for kernel in find_kernels(unknown, f):
        coefficients = polynomial_coefficients(kernel, f)
        if failed(coefficients):
            logger.debug(f"not polynomial in {format_sexpr(kernel)}: {coefficients}")
            continue
        roots = polynomial_roots(coefficients)
        if failed(roots):
            logger.debug(f"no roots in {format_sexpr(kernel)}: {roots}")
            continue
        logger.debug(f"polynomial of degree {len(coefficients) - 1} in {format_sexpr(kernel)}")
        if kernel == unknown:
            return roots
        values = []
        for root in roots:
            branch = _by_rearranging(unknown, ["=", kernel, root])
            if branch is not None:
                values.extend(cancel_log_ratios(value) for value in branch)
        return values
    return None


def _outside_logs(unknown: str, exp: ExprType) -> bool:
    """True if unknown occurs somewhere not under a log."""
    if exp == unknown:
        return True
    if is_op(exp, "log") or not compound(exp) or not exp:
        return False
    return any(_outside_logs(unknown, sub) for sub in exp[1:])


def _exp_of_sum(bindings) -> ExprType:
    return make_product([["exp", term] for term in bindings["xs"]])


LOG_ELIMINATION_RULES = """
[base]
@change-of-base "Logs to a base as natural logs": (log ?u ?b) => (* (log :u) (^ (log :b) -1))

[exponentiate]
@exp-log "Exponential of a log": (exp (log ?u)) => :u
@exp-scaled-log: (exp (* ?n:const (log ?u))) => (^ :u :n)
"""

LOG_ENGINE = RuleEngine.from_dsl(LOG_ELIMINATION_RULES)


def build_exponentiate_engine() -> SequencedEngine:
    """Split exponentials of sums, then cancel exp against log."""
    split = RuleEngine()
    split.add_rule(parse_sexpr("(exp (+ ?xs...))"), _exp_of_sum, name="exp-sum",
                   description="Exponential of a sum is a product", tags=["exponentiate"])
    return split >> LOG_ENGINE


EXPONENTIATE_ENGINE = build_exponentiate_engine()


def _isolated_log(unknown: str, f: ExprType) -> Optional[ExprType]:
    """
    Rewrite f = 0, with a log term L = (log u) appearing linearly, as
    u = exp(-rest / coefficient).
    """
    terms = expand_terms(contract(multiply_out(f)))
    target = None
    for term in terms:
        for factor in product_factors(term):
            if is_op(factor, "log") and len(factor) == 2 and free_in(unknown, factor):
                target = factor
                break
        if target is not None:
            break
    if target is None:
        return None

    coefficient, rest = [], []
    for term in terms:
        factors = product_factors(term)
        if target in factors:
            others = list(factors)
            others.remove(target)
            if free_in(target, make_product(others)) or any(free_in(unknown, o) for o in others):
                return None
            coefficient.append(make_product(others))
        else:
            rest.append(term)

    value = tidy(multiply_out(["*", -1, make_sum(rest), ["^", make_sum(coefficient), -1]]))
    exponentiated = EXPONENTIATE_ENGINE(["exp", value], groups=["exponentiate"])
    return ["=", target[1], tidy(exponentiated)]


def _by_log_elimination(unknown: str, f: ExprType, depth: int) -> Optional[List[ExprType]]:
    if depth >= MAX_LOG_DEPTH or _outside_logs(unknown, f):
        return None
    equation = _isolated_log(unknown, LOG_ENGINE(f, strategy="topdown", groups=["base"]))
    if equation is None:
        return None
    logger.debug(f"log elimination at depth {depth}: {format_sexpr(equation)}")
    values = _solve_single(unknown, equation, depth + 1)
    if failed(values):
        return None
    return values


def _solve_single(unknown: str, equation: ExprType, depth: int = 0) -> Union[List[ExprType], UnsolvableStrategy]:
    values = _by_rearranging(unknown, equation)
    if values is not None:
        return values

    f = residual(equation)
    if constant(f):
        return [ALL_VALUES] if is_zero(f) else []
    if not free_in(unknown, f):
        return UnsolvableStrategy(f"{unknown} does not occur in {format_sexpr(f)}")

    strategies = [
        ("rearrange", lambda: _by_rearranging(unknown, ["=", f, 0])),
        ("polynomial", lambda: _by_polynomial(unknown, f)),
        ("log elimination", lambda: _by_log_elimination(unknown, f, depth)),
    ]
    for name, strategy in strategies:
        try:
            values = strategy()
        except RewriteLimitExceeded as e:
            logger.debug(f"{name} abandoned: {e}")
            continue
        if values is not None:
            logger.debug(f"solved for {unknown} by {name}")
            return values
    return UnsolvableStrategy(format_sexpr(equation))


def solve_equation(unknown: str, equation: ExprType) -> Union[List[ExprType], UnsolvableStrategy]:
    """
    Candidate values of unknown for one equation, unchecked.

    Tries, in order: rearranging a single occurrence, polynomial roots in
    each kernel of the unknown, and log elimination.

    Returns:
        A list of values (possibly empty, or [ALL_VALUES]), or
        UnsolvableStrategy (falsy)

    Raises:
        MalformedExpression: if equation is not an equality
    """
    (equation,) = _as_equations(equation)
    return _solve_single(unknown, equation)


# ============================================================
# Systems
# ============================================================

def _components(residuals: List[ExprType], unknowns: List[str]) -> List[tuple]:
    """Group residuals that share unknowns; returns [(residuals, unknowns)]."""
    groups = []
    for f in residuals:
        names = set(_unknowns_in(f, unknowns))
        merged = [g for g in groups if g[1] & names]
        for g in merged:
            groups.remove(g)
            names |= g[1]
        fs = [h for g in merged for h in g[0]] + [f]
        groups.append((fs, names))
    ordered = []
    for fs, names in groups:
        fs = [f for f in residuals if f in fs]
        ordered.append((fs, [name for name in unknowns if name in names]))
    return ordered


def _substitute_into(residuals: List[ExprType], name: str, value: ExprType) -> Optional[List[ExprType]]:
    """Residuals with name replaced; None if one becomes a nonzero constant."""
    reduced = []
    for f in residuals:
        g = tidy(substitute(f, {name: value}))
        if constant(g):
            if not is_zero(g):
                return None
            continue
        reduced.append(g)
    return reduced


def _zero_factors(f: ExprType, unknowns: List[str]) -> List[ExprType]:
    """Bases of a product residual that hold unknowns, when there are two or more."""
    factors = []
    for factor in product_factors(f):
        base, exponent = split_factor(factor)
        if not _unknowns_in(base, unknowns) or not constant(exponent) or exponent <= 0:
            continue
        if base not in factors:
            factors.append(base)
    return factors if len(factors) > 1 else []


def _split_products(residuals: List[ExprType], unknowns: List[str], placeholders,
                    depth: int) -> Union[List[Dict[str, ExprType]], UnsolvableStrategy, None]:
    """Solve once per zero factor of the first product residual; None if there is none."""
    for i, f in enumerate(residuals):
        factors = _zero_factors(f, unknowns)
        if not factors:
            continue
        others = residuals[:i] + residuals[i + 1:]
        solutions = []
        for factor in factors:
            branch = _solve_system(others + [factor], unknowns, placeholders, depth + 1)
            if failed(branch):
                return branch
            solutions.extend(branch)
        logger.debug(f"split {format_sexpr(f)} into {len(factors)} factors")
        return solutions
    return None


def _by_substitution(residuals: List[ExprType], unknowns: List[str], placeholders,
                     depth: int) -> Union[List[Dict[str, ExprType]], UnsolvableStrategy]:
    split = _split_products(residuals, unknowns, placeholders, depth)
    if split is not None:
        return split
    order = sorted(range(len(residuals)), key=lambda i: len(_unknowns_in(residuals[i], unknowns)))
    for i in order:
        f = residuals[i]
        others = residuals[:i] + residuals[i + 1:]
        for name in _unknowns_in(f, unknowns):
            values = _solve_single(name, ["=", f, 0], depth)
            if failed(values) or ALL_VALUES in values:
                continue
            rest = [n for n in unknowns if n != name]
            solutions = []
            for value in values:
                reduced = _substitute_into(others, name, value)
                if reduced is None:
                    continue
                partial = _solve_system(reduced, rest, placeholders, depth + 1)
                if failed(partial):
                    solutions = partial
                    break
                for s in partial:
                    full = dict(s)
                    full[name] = tidy(substitute(value, s))
                    solutions.append(full)
            if failed(solutions):
                continue
            logger.debug(f"eliminated {name} by substitution")
            return solutions
    return UnsolvableStrategy("no equation could be solved for any unknown")


def _solve_component(residuals: List[ExprType], unknowns: List[str], placeholders,
                     depth: int, sources: Dict) -> Union[List[Dict[str, ExprType]], UnsolvableStrategy]:
    if len(residuals) > 1 or len(unknowns) > 1:
        result = linear_solve(unknowns, residuals, placeholders)
        if isinstance(result, InconsistentSystem):
            logger.debug(f"inconsistent linear system: {result}")
            return []
        if result is not None:
            return [result]
        return _by_substitution(residuals, unknowns, placeholders, depth)

    (name,) = unknowns
    f = residuals[0]
    values = _solve_single(name, sources.get(to_tuple(f), ["=", f, 0]), depth)
    if failed(values):
        return values
    return [{name: value} for value in values]


def _solve_system(residuals: List[ExprType], unknowns: List[str], placeholders,
                  depth: int = 0, sources: Optional[Dict] = None) -> Union[List[Dict[str, ExprType]], UnsolvableStrategy]:
    if depth > len(unknowns) + MAX_LOG_DEPTH + 1:
        return UnsolvableStrategy("substitution depth exceeded")

    constrained = set()
    partials = []
    for fs, names in _components(residuals, unknowns):
        if not names:
            return UnsolvableStrategy(f"no unknowns in {format_sexpr(fs[0])}")
        constrained.update(names)
        solutions = _solve_component(fs, names, placeholders, depth, sources or {})
        if failed(solutions):
            return solutions
        partials.append(solutions)

    free = {name: placeholders.next() for name in unknowns if name not in constrained}
    combined = []
    for parts in product(*partials):
        merged = {}
        for part in parts:
            merged.update(part)
        for name, value in list(merged.items()):
            if value is ALL_VALUES:
                merged[name] = placeholders.next()
        merged.update(free)
        combined.append({name: merged[name] for name in unknowns})
    return combined


# ============================================================
# Checking
# ============================================================

def _numeric(value) -> bool:
    if is_vector(value):
        return all(_numeric(item) for item in value[1:])
    return constant(value)


def _close(a, b) -> bool:
    if is_vector(a) or is_vector(b):
        return is_vector(a) and is_vector(b) and len(a) == len(b) \
            and all(_close(x, y) for x, y in zip(a[1:], b[1:]))
    return math.isclose(a, b, rel_tol=TOLERANCE, abs_tol=TOLERANCE)


def satisfies(solution: Dict[str, ExprType], equations: List[ExprType]) -> bool:
    """
    False if substituting solution makes an equation numerically false or
    undefined. Equations that stay symbolic count as satisfied.
    """
    for _, lhs, rhs in equations:
        try:
            left, right = evaluate(lhs, solution), evaluate(rhs, solution)
        except ShapeError:
            return False
        if _numeric(left) and _numeric(right):
            if not _close(left, right):
                return False
            continue
        for side in (left, right):
            if not _numeric(side) and not symbols_in(side):
                return False
    return True


# ============================================================
# Entry points
# ============================================================

def solve(unknowns: Union[str, Sequence[str]], equations, placeholders: Optional[Placeholders] = None,
          check: bool = True) -> Union[SolutionSet, UnsolvableStrategy]:
    """
    Solve one or more equations for one or more unknowns.

    Args:
        unknowns: a symbol, or a sequence of symbols
        equations: an equation (= lhs rhs) or a list of equations
        placeholders: generator for free parameters; fresh by default
        check: drop candidates that fail numerically in the originals

    Returns:
        A SolutionSet of values (single unknown) or dicts (sequence of
        unknowns), possibly empty or [ALL_VALUES]; or UnsolvableStrategy

    Raises:
        MalformedExpression: if an equation is not an equality
    """
    single = isinstance(unknowns, str)
    names = [unknowns] if single else list(unknowns)
    equations = _as_equations(equations)
    placeholders = placeholders if placeholders is not None else Placeholders()

    residuals = []
    sources = {}
    for equation in equations:
        f = residual(equation)
        if constant(f):
            if not is_zero(f):
                logger.debug(f"contradiction: {format_sexpr(equation)}")
                return SolutionSet()
            continue
        if not _unknowns_in(f, names):
            return UnsolvableStrategy(f"no unknowns in {format_sexpr(equation)}")
        residuals.append(f)
        sources[to_tuple(f)] = equation

    if not residuals:
        return SolutionSet([ALL_VALUES])

    solutions = _solve_system(residuals, names, placeholders, sources=sources)
    if failed(solutions):
        return solutions

    result = SolutionSet()
    for solution in solutions:
        if check and not satisfies(solution, equations):
            logger.debug(f"discarded candidate {solution}")
            continue
        result.add(solution[names[0]] if single else solution)
    return result


def solve_linear_system(unknowns: Sequence[str], equations,
                        placeholders: Optional[Placeholders] = None) -> Union[SolutionSet, Failure]:
    """
    Solve a system by Gauss-Jordan elimination only.

    Returns:
        A SolutionSet holding one dict, InconsistentSystem for a
        contradiction, or UnsolvableStrategy if the system is not linear
        with exact coefficients
    """
    names = list(unknowns)
    residuals = [residual(equation) for equation in _as_equations(equations)]
    placeholders = placeholders if placeholders is not None else Placeholders()
    result = linear_solve(names, residuals, placeholders)
    if result is None:
        return UnsolvableStrategy("system is not linear")
    if failed(result):
        return result
    return SolutionSet([result])
