"""Tests for isolating an unknown by peeling inverse operations."""

from fractions import Fraction

import pytest
from solvo import (
    E, MalformedExpression, MultipleOccurrences, NoOccurrence, UnsolvableStrategy, evaluate, failed,
    rearrange,
)


class TestSingleBranch:
    """Tests for operators with a single-valued inverse."""

    def test_sum(self):
        assert rearrange("x", E("(= (+ a x) b)")) == [["=", "x", ["-", "b", "a"]]]

    def test_product(self):
        assert rearrange("x", E("(= (* 2 x) 6)")) == [["=", "x", ["/", 6, 2]]]

    def test_negation(self):
        assert rearrange("x", E("(= (- x) y)")) == [["=", "x", ["-", "y"]]]

    def test_difference(self):
        assert rearrange("x", E("(= (- x a) b)")) == [["=", "x", ["+", "b", "a"]]]
        assert rearrange("x", E("(= (- a x) b)")) == [["=", "x", ["-", "a", "b"]]]

    def test_quotient(self):
        assert rearrange("x", E("(= (/ x a) b)")) == [["=", "x", ["*", "b", "a"]]]
        assert rearrange("x", E("(= (/ 1 x) b)")) == [["=", "x", ["/", 1, "b"]]]

    def test_exponent(self):
        assert rearrange("x", E("(= (^ 2 x) 8)")) == [["=", "x", ["/", ["log", 8], ["log", 2]]]]

    def test_odd_root(self):
        assert rearrange("x", E("(= (^ x 3) 8)")) == [["=", "x", ["^", 8, Fraction(1, 3)]]]

    def test_functions(self):
        assert rearrange("x", E("(= (exp x) 5)")) == [["=", "x", ["log", 5]]]
        assert rearrange("x", E("(= (log x) 2)")) == [["=", "x", ["exp", 2]]]
        assert rearrange("x", E("(= (sqrt x) 3)")) == [["=", "x", ["^", 3, 2]]]
        assert rearrange("x", E("(= (sin x) a)")) == [["=", "x", ["asin", "a"]]]

    def test_log_with_base(self):
        assert rearrange("x", E("(= (log x 2) 3)")) == [["=", "x", ["^", 2, 3]]]

    def test_nested(self):
        """Operators are peeled from the root down."""
        assert rearrange("x", E("(= (+ (* 2 x) 1) 7)")) == [["=", "x", ["/", ["-", 7, 1], 2]]]

    def test_unknown_on_right(self):
        assert rearrange("x", E("(= b (+ a x))")) == [["=", "x", ["-", "b", "a"]]]

    def test_unsimplified(self):
        """Nothing is folded."""
        assert rearrange("x", E("(= (+ x 1) 3)")) == [["=", "x", ["-", 3, 1]]]


class TestBranching:
    """Tests for multi-valued inverses."""

    def test_even_power(self):
        root = ["^", 9, Fraction(1, 2)]
        assert rearrange("x", E("(= (^ x 2) 9)")) == [["=", "x", root], ["=", "x", ["-", root]]]

    def test_abs(self):
        assert rearrange("x", E("(= (abs x) 3)")) == [["=", "x", 3], ["=", "x", ["-", 3]]]

    def test_nested_branches(self):
        result = rearrange("x", E("(= (abs (^ x 2)) 4)"))
        assert len(result) == 4


class TestPreconditions:
    """Tests for the failure results."""

    def test_no_occurrence(self):
        result = rearrange("x", E("(= (+ a b) c)"))
        assert isinstance(result, NoOccurrence)
        assert failed(result)

    def test_multiple_occurrences(self):
        assert isinstance(rearrange("x", E("(= (+ x x) 2)")), MultipleOccurrences)

    def test_no_inverse(self):
        assert isinstance(rearrange("x", E("(= (f x) 2)")), UnsolvableStrategy)

    def test_not_an_equation(self):
        with pytest.raises(MalformedExpression):
            rearrange("x", E("(+ x 1)"))


class TestBranchValues:
    """Each branch value satisfies the original equation."""

    EQUATIONS = [
        "(= (+ 3 x) 10)",
        "(= (* 4 x) 6)",
        "(= (/ 12 x) 3)",
        "(= (- 5 x) 9)",
        "(= (^ x 2) 9)",
        "(= (^ x 3) -8)",
        "(= (^ 2 x) 32)",
        "(= (exp x) 5)",
        "(= (log x) 2)",
        "(= (log x 10) 3)",
        "(= (sqrt (+ x 1)) 3)",
        "(= (abs (- x 1)) 4)",
        "(= (* 2 (^ (+ x 1) 2)) 18)",
    ]

    def test_branches_satisfy_equation(self):
        for text in self.EQUATIONS:
            _, lhs, rhs = E(text)
            branches = rearrange("x", E(text))
            assert not failed(branches), text
            for _, unknown, value in branches:
                assert unknown == "x"
                value = evaluate(value)
                assert evaluate(lhs, {"x": value}) == pytest.approx(evaluate(rhs)), text

    def test_branch_count(self):
        assert len(rearrange("x", E("(= (* 2 (^ (+ x 1) 2)) 18)"))) == 2
        assert len(rearrange("x", E("(= (abs (- x 1)) 4)"))) == 2
        assert len(rearrange("x", E("(= (^ x 3) -8)"))) == 1
