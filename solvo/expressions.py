"""
Expression model for SOLVO.

Expressions are plain Python values:

    42, 3.5, Fraction(1, 3)      constants
    "x"                          symbols
    ["+", "x", ["*", 2, "y"]]    compounds: [operator, *operands]
    ["vec", 1, 2, 3]             vector literal (a matrix is a vec of vecs)

Compound terms are treated as immutable values. Every transformation in
the package builds new lists; nothing mutates a term it was handed, so
sub-expressions can be shared freely between terms.

The operator table (OPERATORS) records arity, associativity/commutativity
and identity/annihilator elements for the built-in operators. Operators
not in the table are allowed and are treated as opaque functions.
"""

from fractions import Fraction
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .errors import MalformedExpression

# Type aliases
NumericType = Union[int, float, Fraction]
ExprType = Union[int, float, Fraction, str, List]


# ============================================================
# Operator Table
# ============================================================

class Operator:
    """Static properties of an operator tag."""

    __slots__ = ('name', 'min_arity', 'max_arity', 'associative',
                 'commutative', 'identity', 'annihilator')

    def __init__(self, name: str, min_arity: int = 0, max_arity: Optional[int] = None,
                 associative: bool = False, commutative: bool = False,
                 identity: Optional[NumericType] = None,
                 annihilator: Optional[NumericType] = None):
        self.name = name
        self.min_arity = min_arity
        self.max_arity = max_arity
        self.associative = associative
        self.commutative = commutative
        self.identity = identity
        self.annihilator = annihilator

    @property
    def ac(self) -> bool:
        """True for associative and commutative operators."""
        return self.associative and self.commutative

    def accepts(self, arity: int) -> bool:
        if arity < self.min_arity:
            return False
        return self.max_arity is None or arity <= self.max_arity

    def __repr__(self) -> str:
        hi = "*" if self.max_arity is None else self.max_arity
        return f"Operator({self.name!r}, {self.min_arity}..{hi})"


def _unary(name: str) -> Operator:
    return Operator(name, 1, 1)


OPERATORS: Dict[str, Operator] = {
    "+": Operator("+", 0, None, associative=True, commutative=True, identity=0),
    "*": Operator("*", 0, None, associative=True, commutative=True,
                  identity=1, annihilator=0),
    "-": Operator("-", 1, 2),
    "/": Operator("/", 2, 2),
    "^": Operator("^", 2, 2),
    "=": Operator("=", 2, 2),
    "log": Operator("log", 1, 2),
    "vec": Operator("vec", 0, None),
    "dot": Operator("dot", 2, 2),
    "d": Operator("d", 2, 2),
    **{name: _unary(name) for name in (
        "exp", "abs", "sqrt", "sin", "cos", "tan", "asin", "acos", "atan",
    )},
}

# Spellings accepted at the public entry points
ALIASES: Dict[str, str] = {
    "**": "^",
    "neg": "-",
    "ln": "log",
}


# ============================================================
# Predicates
# ============================================================

def constant(exp: Any) -> bool:
    """True if exp is a numeric constant (int, float or Fraction, not bool)."""
    return isinstance(exp, (int, float, Fraction)) and not isinstance(exp, bool)


def exact(exp: Any) -> bool:
    """True if exp is an exact constant (int or Fraction)."""
    return isinstance(exp, (int, Fraction)) and not isinstance(exp, bool)


def variable(exp: Any) -> bool:
    """True if exp is a symbol (string)."""
    return isinstance(exp, str)


symbol = variable


def compound(exp: Any) -> bool:
    """True if exp is a compound (list)."""
    return isinstance(exp, list)


def atom(exp: Any) -> bool:
    """True if exp is a constant or a symbol."""
    return constant(exp) or variable(exp)


def operator_of(exp: ExprType) -> Optional[str]:
    """The operator tag of a compound, None for atoms and empty lists."""
    if compound(exp) and exp:
        return exp[0]
    return None


def operands_of(exp: ExprType) -> List:
    """The operands of a compound (a new list), [] for atoms."""
    if compound(exp) and exp:
        return list(exp[1:])
    return []


def arity_of(exp: ExprType) -> int:
    """Number of operands of a compound, 0 for atoms."""
    if compound(exp) and exp:
        return len(exp) - 1
    return 0


def is_op(exp: ExprType, *names: str) -> bool:
    """True if exp is a compound whose operator is one of names."""
    return compound(exp) and bool(exp) and exp[0] in names


def is_equation(exp: ExprType) -> bool:
    return is_op(exp, "=") and len(exp) == 3


def is_vector(exp: ExprType) -> bool:
    return is_op(exp, "vec")


def is_zero(exp: ExprType) -> bool:
    return constant(exp) and exp == 0


def is_one(exp: ExprType) -> bool:
    return constant(exp) and exp == 1


def is_integer(exp: ExprType) -> bool:
    """True for integral constants (2, 2.0, Fraction(4, 2))."""
    if isinstance(exp, bool) or not constant(exp):
        return False
    if isinstance(exp, float):
        return exp.is_integer()
    return Fraction(exp).denominator == 1


def zero_reciprocal(exp: ExprType) -> bool:
    """True for (^ 0 c) with c < 0, an undefined factor."""
    return (is_op(exp, "^") and len(exp) == 3 and is_zero(exp[1])
            and constant(exp[2]) and exp[2] < 0)


def normalize_number(value: NumericType) -> NumericType:
    """Demote integral Fractions to int."""
    if isinstance(value, Fraction) and value.denominator == 1:
        return int(value)
    return value


def check_arity(exp: ExprType) -> ExprType:
    """
    Validate operator arities recursively.

    Raises:
        MalformedExpression: if a known operator has the wrong number of operands
    """
    if not compound(exp):
        return exp
    if not exp:
        raise MalformedExpression("empty compound expression")
    op = exp[0]
    if isinstance(op, str):
        info = OPERATORS.get(op)
        if info is not None and not info.accepts(len(exp) - 1):
            raise MalformedExpression(
                f"operator {op!r} does not accept {len(exp) - 1} operand(s): "
                f"{format_sexpr(exp)}"
            )
    for sub in exp[1:]:
        check_arity(sub)
    return exp


def canonical_ops(exp: ExprType) -> ExprType:
    """Rewrite operator aliases (**, neg, ln) to canonical tags and check arity."""
    if not compound(exp) or not exp:
        return check_arity(exp)
    op = exp[0]
    if isinstance(op, str):
        op = ALIASES.get(op, op)
    result = [op] + [canonical_ops(sub) for sub in exp[1:]]
    return check_arity(result)


# ============================================================
# Construction helpers
# ============================================================

def make_sum(terms: Iterable[ExprType]) -> ExprType:
    """Build a sum, collapsing the empty and singleton cases."""
    terms = list(terms)
    if not terms:
        return 0
    if len(terms) == 1:
        return terms[0]
    return ["+"] + terms


def make_product(factors: Iterable[ExprType]) -> ExprType:
    """Build a product, collapsing the empty and singleton cases."""
    factors = list(factors)
    if not factors:
        return 1
    if len(factors) == 1:
        return factors[0]
    return ["*"] + factors


def make_power(base: ExprType, exponent: ExprType) -> ExprType:
    if is_one(exponent):
        return base
    return ["^", base, exponent]


def negate(exp: ExprType) -> ExprType:
    """Negation as a canonical product with -1."""
    if constant(exp):
        return -exp
    return ["*", -1, exp]


def make_vec(items: Iterable[ExprType]) -> List:
    return ["vec"] + list(items)


def vector_shape(exp: ExprType) -> Tuple[int, ...]:
    """
    Shape of a vector/matrix literal: (n,) for vectors, (rows, cols) for
    matrices, () for non-vectors.

    Raises:
        ShapeError: for ragged matrices
    """
    from .errors import ShapeError

    if not is_vector(exp):
        return ()
    items = exp[1:]
    if items and all(is_vector(row) for row in items):
        widths = {len(row) - 1 for row in items}
        if len(widths) != 1:
            raise ShapeError(f"ragged matrix: {format_sexpr(exp)}")
        return (len(items), widths.pop())
    return (len(items),)


# ============================================================
# Structural utilities
# ============================================================

def expr_size(exp: ExprType) -> int:
    """Number of atoms in an expression, counting operator tags."""
    if compound(exp):
        return sum(expr_size(sub) for sub in exp)
    return 1


def expr_depth(exp: ExprType) -> int:
    """Nesting depth; atoms have depth 0."""
    if compound(exp) and exp:
        return 1 + max((expr_depth(sub) for sub in exp[1:]), default=0)
    return 0


def to_tuple(exp: ExprType) -> Any:
    """Hashable form of an expression."""
    if compound(exp):
        return tuple(to_tuple(sub) for sub in exp)
    return exp


def free_in(var: ExprType, exp: ExprType) -> bool:
    """
    Check if var appears in exp.

    var is normally a symbol, but any sub-expression (a "kernel" such as
    ["exp", "x"]) can be searched for. Operator tags are not operands and
    never match.
    """
    if exp == var and type(exp) is type(var):
        return True
    if compound(exp) and exp:
        return any(free_in(var, sub) for sub in exp[1:])
    return False


def occurrences(var: ExprType, exp: ExprType) -> int:
    """Count the occurrences of var (a symbol or a kernel) in exp."""
    if exp == var and type(exp) is type(var):
        return 1
    if compound(exp) and exp:
        return sum(occurrences(var, sub) for sub in exp[1:])
    return 0


def symbols_in(exp: ExprType) -> List[str]:
    """Sorted list of distinct symbols in exp."""
    found = set()

    def visit(e):
        if variable(e):
            found.add(e)
        elif compound(e) and e:
            for sub in e[1:]:
                visit(sub)

    visit(exp)
    return sorted(found)


def substitute(exp: ExprType, mapping: Dict[str, ExprType]) -> ExprType:
    """Replace symbols according to mapping, building a new term."""
    if variable(exp):
        return mapping.get(exp, exp)
    if compound(exp) and exp:
        return [exp[0]] + [substitute(sub, mapping) for sub in exp[1:]]
    return exp


def replace(exp: ExprType, old: ExprType, new: ExprType) -> ExprType:
    """Replace every occurrence of the sub-expression old with new."""
    if exp == old and type(exp) is type(old):
        return new
    if compound(exp) and exp:
        return [exp[0]] + [replace(sub, old, new) for sub in exp[1:]]
    return exp


def order_key(exp: ExprType) -> Tuple:
    """
    Total order over expressions: constants < symbols < compounds.

    Compounds compare by operator tag, then by operands.
    """
    if constant(exp):
        return (0, exp)
    if variable(exp):
        return (1, exp)
    if compound(exp) and exp:
        return (2, str(exp[0]), tuple(order_key(sub) for sub in exp[1:]))
    return (3, repr(exp))


# ============================================================
# Expression Builder
# ============================================================

class _ExprBuilder:
    """
    Expression builder for SOLVO.

    Examples:
        from solvo import E

        expr = E("(+ x (* 2 y))")
        expr = E.op("+", "x", E.op("*", 2, "y"))
        x, y = E.vars("x", "y")
        eq = E.eq(E.op("+", x, 1), 3)
        m = E.vec(E.vec(1, 2), E.vec(3, 4))
    """

    def __call__(self, s: str) -> ExprType:
        """Parse an s-expression string: E("(+ x 1)") -> ["+", "x", 1]"""
        return parse_sexpr(s)

    def op(self, name: str, *args) -> List:
        """Build a compound: E.op("*", 2, "y") -> ["*", 2, "y"]"""
        return [name] + list(args)

    def var(self, name: str) -> str:
        return name

    def vars(self, *names: str) -> Tuple[str, ...]:
        """Create multiple symbols for unpacking: x, y = E.vars("x", "y")"""
        return names

    def const(self, value: NumericType) -> NumericType:
        return normalize_number(value)

    def eq(self, lhs: ExprType, rhs: ExprType) -> List:
        """Build an equation: E.eq("x", 2) -> ["=", "x", 2]"""
        return ["=", lhs, rhs]

    def vec(self, *items) -> List:
        """Build a vector (or, from vectors, a matrix) literal."""
        return make_vec(items)

    def __repr__(self) -> str:
        return "E (expression builder)"


# Singleton instance
E = _ExprBuilder()


def _parse_atom(s: str) -> Any:
    try:
        return int(s)
    except ValueError:
        pass
    if "/" in s and s[0] in "+-0123456789":
        try:
            return normalize_number(Fraction(s))
        except (ValueError, ZeroDivisionError):
            pass
    if s[0] in "+-.0123456789":
        try:
            return float(s)
        except ValueError:
            pass
    return None


def parse_sexpr(s: str) -> ExprType:
    """
    Parse an S-expression string into a nested list.

    Examples:
        "(+ x 1)" -> ["+", "x", 1]
        "(^ x 1/2)" -> ["^", "x", Fraction(1, 2)]
        "?x:const" -> ["?c", "x"]    (pattern syntax, used by rules)
    """
    s = s.strip()
    if not s:
        return None

    if s.startswith('('):
        depth = 0
        parts = []
        current = ''
        i = 1  # Skip opening paren

        while i < len(s):
            c = s[i]
            if c == '(':
                depth += 1
                current += c
            elif c == ')':
                if depth == 0:
                    if current.strip():
                        parts.append(parse_sexpr(current.strip()))
                    break
                depth -= 1
                current += c
            elif c in ' \t\n' and depth == 0:
                if current.strip():
                    parts.append(parse_sexpr(current.strip()))
                current = ''
            else:
                current += c
            i += 1

        return parts

    number = _parse_atom(s)
    if number is not None:
        return number

    if s.startswith('?') and len(s) > 1:
        rest = s[1:]

        is_rest = rest.endswith('...')
        if is_rest:
            rest = rest[:-3]

        # Typed syntax: ?name:type or ?name:free(var)
        if ':' in rest:
            name_part, type_part = rest.split(':', 1)
            name = name_part.strip() or 'x'

            if is_rest:
                if type_part in ('const', 'var'):
                    return ["?...", name, type_part]
                return ["?...", name]
            if type_part == 'const':
                return ["?c", name]
            if type_part == 'var':
                return ["?v", name]
            if type_part.startswith('free(') and type_part.endswith(')'):
                return ["?free", name, type_part[5:-1].strip()]
            return ["?", name]

        name = rest.strip() or 'x'
        if is_rest:
            return ["?...", name]
        return ["?", name]

    if s.startswith(':') and len(s) > 1:
        rest = s[1:].strip()
        if rest.endswith('...'):
            return [":...", rest[:-3].strip()]
        return [":", rest]

    return s


def format_sexpr(expr: ExprType, dsl_syntax: bool = True) -> str:
    """
    Format an expression as an S-expression string.

    Examples:
        ["+", "x", 1] -> "(+ x 1)"
        ["^", "x", Fraction(1, 2)] -> "(^ x 1/2)"
        ["?c", "n"] -> "?n:const" (with dsl_syntax=True)
    """
    if isinstance(expr, list):
        if not expr:
            return "()"

        if dsl_syntax and len(expr) == 2:
            op = expr[0]
            if op == "?":
                return f"?{expr[1]}"
            elif op == ":":
                return f":{expr[1]}"
            elif op == "?c":
                return f"?{expr[1]}:const"
            elif op == "?v":
                return f"?{expr[1]}:var"
            elif op == "?...":
                return f"?{expr[1]}..."
            elif op == ":...":
                return f":{expr[1]}..."

        if dsl_syntax and len(expr) == 3:
            op = expr[0]
            if op == "?free":
                return f"?{expr[1]}:free({expr[2]})"
            elif op == "?...":
                return f"?{expr[1]}:{expr[2]}..."

        parts = [format_sexpr(e, dsl_syntax) for e in expr]
        return "(" + " ".join(parts) + ")"
    if callable(expr):
        return f"<{getattr(expr, '__name__', 'builder')}>"
    return str(expr)
