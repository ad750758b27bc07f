"""Tests for the core matcher, instantiation and exact folding."""

from fractions import Fraction

import pytest
from solvo import E, MalformedExpression, NoMatch
from solvo.rewriter import (
    ARITHMETIC_PRELUDE, EXACT_PRELUDE, MATH_PRELUDE, exact_div, exact_power,
    instantiate, match, same_expr, try_fold, wrap_bindings,
)


class TestMatch:
    """Tests for pattern matching."""

    def test_literal_match(self):
        assert match(E("(+ x 1)"), E("(+ x 1)"), []) == []
        assert match(E("(+ x 1)"), E("(+ x 2)"), []) == "failed"

    def test_bind_expression(self):
        bindings = match(E("(+ ?a ?b)"), E("(+ x (* 2 y))"), [])
        assert bindings == [["a", "x"], ["b", ["*", 2, "y"]]]

    def test_repeated_variable_must_agree(self):
        """A pattern variable used twice matches equal sub-terms only."""
        assert match(E("(- ?x ?x)"), E("(- y y)"), []) == [["x", "y"]]
        assert match(E("(- ?x ?x)"), E("(- y z)"), []) == "failed"

    def test_repeated_variable_numbers_by_value(self):
        assert match(E("(- ?x ?x)"), ["-", 2, 2.0], []) != "failed"

    def test_const_and_var_patterns(self):
        assert match(E("?c:const"), 3, []) == [["c", 3]]
        assert match(E("?c:const"), "x", []) == "failed"
        assert match(E("?v:var"), "x", []) == [["v", "x"]]
        assert match(E("?v:var"), 3, []) == "failed"

    def test_free_pattern(self):
        """?f:free(v) refers to the binding of v."""
        pattern = E("(d ?v ?f:free(v))")
        assert match(pattern, E("(d x (* 2 y))"), []) != "failed"
        assert match(pattern, E("(d x (* 2 x))"), []) == "failed"

    def test_rest_pattern(self):
        bindings = match(E("(+ 0 ?xs...)"), E("(+ 0 a b)"), [])
        assert bindings == [["xs", ["a", "b"]]]
        assert match(E("(+ 0 ?xs...)"), E("(+ 0)"), []) == [["xs", []]]

    def test_rest_pattern_outside_compound(self):
        with pytest.raises(MalformedExpression):
            match(E("?xs..."), E("(+ a b)"), [])

    def test_rest_pattern_not_last(self):
        with pytest.raises(MalformedExpression):
            match(["+", ["?...", "xs"], ["?", "y"]], E("(+ a b)"), [])

    def test_wrap_bindings(self):
        """Bindings are dict-like; NoMatch is falsy."""
        bindings = wrap_bindings(match(E("(* ?a ?b)"), E("(* 2 x)"), []))
        assert bindings["a"] == 2
        assert "b" in bindings
        assert wrap_bindings("failed") is NoMatch
        assert not NoMatch


class TestInstantiate:
    """Tests for skeleton instantiation."""

    def test_substitution(self):
        assert instantiate(E("(* :a :b)"), [["a", 2], ["b", "x"]]) == ["*", 2, "x"]

    def test_splice(self):
        assert instantiate(E("(+ 1 :xs...)"), [["xs", ["a", "b"]]]) == ["+", 1, "a", "b"]

    def test_compute(self):
        """(! op args) folds when the prelude can, else stays symbolic."""
        assert instantiate(E("(! - :n 1)"), [["n", 3]], ARITHMETIC_PRELUDE) == 2
        assert instantiate(E("(! - :n 1)"), [["n", "k"]], ARITHMETIC_PRELUDE) == ["-", "k", 1]

    def test_builder_callable(self):
        """A callable skeleton receives the Bindings."""
        def swap(b):
            return ["pair", b["y"], b["x"]]
        assert instantiate(swap, [["x", 1], ["y", 2]]) == ["pair", 2, 1]


class TestExactArithmetic:
    """Tests for exact division and powers."""

    def test_exact_div(self):
        assert exact_div(1, 3) == Fraction(1, 3)
        assert exact_div(6, 3) == 2
        assert isinstance(exact_div(6, 3), int)
        assert exact_div(1, 0) is None

    def test_integer_powers(self):
        assert exact_power(2, 10) == 1024
        assert exact_power(2, -2) == Fraction(1, 4)
        assert exact_power(Fraction(2, 3), 2) == Fraction(4, 9)

    def test_rational_roots(self):
        assert exact_power(4, Fraction(1, 2)) == 2
        assert exact_power(8, Fraction(2, 3)) == 4
        assert exact_power(-8, Fraction(1, 3)) == -2
        assert exact_power(Fraction(9, 4), Fraction(1, 2)) == Fraction(3, 2)

    def test_irrational_root_is_float(self):
        assert exact_power(2, Fraction(1, 2)) == pytest.approx(2 ** 0.5)

    def test_undefined_powers(self):
        assert exact_power(0, -1) is None
        assert exact_power(-4, Fraction(1, 2)) is None
        assert exact_power(-4.0, 0.5) is None

    def test_zero_powers(self):
        assert exact_power(0, 0) == 1
        assert exact_power(0, 3) == 0


class TestTryFold:
    """Tests for folding through preludes."""

    def test_exact_sum(self):
        assert try_fold("+", [Fraction(1, 2), Fraction(1, 2)], ARITHMETIC_PRELUDE) == 1

    def test_division_by_zero_declines(self):
        assert try_fold("/", [1, 0], ARITHMETIC_PRELUDE) is None

    def test_log_of_negative_declines(self):
        assert try_fold("log", [-1], MATH_PRELUDE) is None

    def test_exact_prelude_declines_inexact(self):
        """The exact prelude leaves irrational results unfolded."""
        assert try_fold("^", [2, Fraction(1, 2)], EXACT_PRELUDE) is None
        assert try_fold("^", [4, Fraction(1, 2)], EXACT_PRELUDE) == 2

    def test_integral_float_becomes_int(self):
        assert try_fold("*", [2.5, 2], ARITHMETIC_PRELUDE) == 5
        assert isinstance(try_fold("*", [2.5, 2], ARITHMETIC_PRELUDE), int)

    def test_unknown_operator(self):
        assert try_fold("f", [1, 2], ARITHMETIC_PRELUDE) is None

    def test_same_expr(self):
        assert same_expr(2, 2.0)
        assert not same_expr("1", 1)
        assert same_expr(E("(+ x 1)"), E("(+ x 1)"))
