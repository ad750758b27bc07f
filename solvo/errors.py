"""
Result variants and exceptions for SOLVO.

Expected outcomes ("this engine found no answer") are returned as falsy
Failure objects, in the same spirit as NoMatch in the pattern matcher:

    if result := simplify(expr, ratio=1.0):
        use(result)
    else:
        print(result.reason)

Programmer errors (wrong arity, mismatched vector shapes, a non-equation
where an equation is required) raise SolvoError subclasses instead.
"""

from typing import Any, Optional


class Failure:
    """
    Base class for expected, recoverable failures.

    Failures are always falsy and carry a short machine-readable reason
    plus an optional human-readable detail.
    """

    reason = "failure"

    __slots__ = ('detail',)

    def __init__(self, detail: Optional[Any] = None):
        self.detail = detail

    def __bool__(self) -> bool:
        return False

    def __eq__(self, other):
        return type(self) is type(other) and self.detail == other.detail

    def __hash__(self):
        return hash((type(self), repr(self.detail)))

    def __repr__(self) -> str:
        if self.detail is None:
            return f"{type(self).__name__}()"
        return f"{type(self).__name__}({self.detail!r})"

    def __str__(self) -> str:
        if self.detail is None:
            return self.reason
        return f"{self.reason}: {self.detail}"


def failed(result: Any) -> bool:
    """True for Failure results; a plain 0 or empty list is a value, not a failure."""
    return isinstance(result, Failure)


class RatioNotMet(Failure):
    """simplify could not reach the requested compression ratio."""
    reason = "ratio not met"


class NotPolynomial(Failure):
    """The term is not a polynomial in the requested main variable."""
    reason = "not polynomial"


class MultipleOccurrences(Failure):
    """rearrange needs exactly one occurrence of the unknown."""
    reason = "multiple occurrences"


class NoOccurrence(Failure):
    """The unknown does not occur in the equation."""
    reason = "no occurrence"


class UnsolvableStrategy(Failure):
    """The solver exhausted the strategies it knows."""
    reason = "unsolvable by available strategies"


class InconsistentSystem(Failure):
    """A linear system reduced to a contradiction such as 0 = 1."""
    reason = "inconsistent system"


class SolvoError(Exception):
    """Base class for programmer errors raised by SOLVO."""


class MalformedExpression(SolvoError, ValueError):
    """An expression violates the operator table or a call precondition."""


class ShapeError(MalformedExpression):
    """Vector or matrix operands have incompatible shapes."""


class RewriteLimitExceeded(SolvoError, RuntimeError):
    """A rewrite ran out of its step budget before reaching a fixpoint."""

    def __init__(self, message: str, last: Any = None):
        super().__init__(message)
        self.last = last


class RewriteCycle(RewriteLimitExceeded):
    """A rewrite revisited a term it had already produced."""
