"""Tests for polynomial normal form, kernels and roots."""

import pytest
from solvo import E, NotPolynomial, UnsolvableStrategy, evaluate, failed
from solvo.expressions import compound
from solvo.polynomial import (
    find_kernels, polynomial_coefficients, polynomial_degree, polynomial_roots,
    to_polynomial_normal_form,
)


class TestCoefficients:
    """Tests for coefficient extraction."""

    def test_numeric_polynomial(self):
        assert polynomial_coefficients("x", E("(+ (* 3 (^ x 2)) (* 2 x) 1)")) == [1, 2, 3]

    def test_symbolic_coefficients(self):
        assert polynomial_coefficients("x", E("(+ (* a x) b)")) == ["b", "a"]

    def test_expands_products(self):
        assert polynomial_coefficients("x", E("(* (- x 2) (- x 3))")) == [6, -5, 1]

    def test_zero_polynomial(self):
        assert polynomial_coefficients("x", 0) == [0]

    def test_constant(self):
        assert polynomial_coefficients("x", E("(+ a 1)")) == [["+", 1, "a"]]

    def test_not_polynomial(self):
        result = polynomial_coefficients("x", E("(+ (sin x) 1)"))
        assert isinstance(result, NotPolynomial)
        assert failed(result)

    def test_fractional_power_is_not_polynomial(self):
        assert failed(polynomial_coefficients("x", E("(sqrt x)")))

    def test_exponential_kernel(self):
        """2^(2x) is the square of the kernel 2^x."""
        expr = E("(+ (^ 2 (* 2 x)) (^ 2 x) -6)")
        assert polynomial_coefficients(E("(^ 2 x)"), expr) == [-6, 1, 1]

    def test_degree(self):
        assert polynomial_degree("x", E("(* (+ x 1) (^ x 3))")) == 4
        assert failed(polynomial_degree("x", E("(log x)")))


class TestNormalForm:
    """Tests for to_polynomial_normal_form."""

    def test_ascending_powers(self):
        result = to_polynomial_normal_form("x", E("(* (+ x 1) (+ x a))"))
        assert result == ["+", "a", ["*", ["+", 1, "a"], "x"], ["^", "x", 2]]

    def test_numeric(self):
        result = to_polynomial_normal_form("x", E("(+ (^ x 2) x x 1)"))
        assert result == ["+", 1, ["*", 2, "x"], ["^", "x", 2]]

    def test_failure_passes_through(self):
        assert isinstance(to_polynomial_normal_form("x", E("(exp x)")), NotPolynomial)


class TestKernels:
    """Tests for substitution-variable detection."""

    def test_plain_variable(self):
        assert find_kernels("x", E("(+ (^ x 2) x)")) == ["x"]

    def test_even_powers(self):
        assert find_kernels("x", E("(+ (^ x 4) (* 3 (^ x 2)) 2)")) == [["^", "x", 2]]

    def test_exponential(self):
        assert find_kernels("x", E("(+ (^ 2 (* 2 x)) (^ 2 x) -6)")) == [["^", 2, "x"]]

    def test_function_kernel(self):
        assert ["log", "x"] in find_kernels("x", E("(+ (log x) 1)"))


class TestRoots:
    """Tests for polynomial_roots."""

    def test_linear(self):
        assert polynomial_roots([-6, 1]) == [6]

    def test_quadratic(self):
        assert polynomial_roots([6, -5, 1]) == [2, 3]

    def test_double_root(self):
        assert polynomial_roots([1, 2, 1]) == [-1]

    def test_negative_discriminant(self):
        assert polynomial_roots([1, 0, 1]) == []

    def test_irrational_roots_stay_exact(self):
        """Roots of x^2 - 2 are radicals, not decimal approximations."""
        roots = polynomial_roots([-2, 0, 1])
        assert len(roots) == 2
        assert not any(isinstance(root, float) for root in roots)
        assert all(compound(root) for root in roots)
        values = sorted(evaluate(root) for root in roots)
        assert values == [pytest.approx(-2 ** 0.5), pytest.approx(2 ** 0.5)]

    def test_inexact_coefficients_give_floats(self):
        roots = sorted(polynomial_roots([-2.0, 0, 1]))
        assert roots == [pytest.approx(-2 ** 0.5), pytest.approx(2 ** 0.5)]

    def test_zero_root_factored(self):
        assert polynomial_roots([0, 0, 1]) == [0]

    def test_cubic_with_rational_roots(self):
        """(x - 1)(x - 2)(x - 3)"""
        assert sorted(polynomial_roots([-6, 11, -6, 1])) == [1, 2, 3]

    def test_cubic_without_rational_roots(self):
        assert isinstance(polynomial_roots([-2, 0, 0, 1]), UnsolvableStrategy)

    def test_constants(self):
        assert polynomial_roots([5]) == []
        assert failed(polynomial_roots([0]))
