"""Tests for linear-system detection and Gauss-Jordan elimination."""

from fractions import Fraction

from solvo import E, InconsistentSystem, Placeholders
from solvo.expressions import symbols_in
from solvo.linear import affine_row, gauss_jordan, linear_solve


class TestAffineRow:
    """Tests for reading a residual as a linear equation."""

    def test_numeric(self):
        coefficients, rhs = affine_row(["x", "y"], E("(+ -100 (* 3 x) (* 4 y))"))
        assert coefficients == [3, 4]
        assert rhs == 100

    def test_symbolic_constant(self):
        coefficients, rhs = affine_row(["x"], E("(+ x a)"))
        assert coefficients == [1]
        assert rhs == ["*", -1, "a"]

    def test_expands_first(self):
        coefficients, rhs = affine_row(["x", "y"], E("(* 2 (+ x (* -1 y) 1))"))
        assert coefficients == [2, -2]
        assert rhs == -2

    def test_nonlinear(self):
        assert affine_row(["x", "y"], E("(* x y)")) is None
        assert affine_row(["x"], E("(+ (^ x 2) 1)")) is None

    def test_symbolic_coefficient(self):
        assert affine_row(["x"], E("(* a x)")) is None


class TestGaussJordan:
    """Tests for row reduction."""

    def test_reduced_form(self):
        rows, pivots = gauss_jordan([([Fraction(2), Fraction(1)], 5),
                                     ([Fraction(1), Fraction(-1)], 1)])
        assert pivots == [0, 1]
        assert rows == [([1, 0], 2), ([0, 1], 1)]

    def test_rank_deficient(self):
        rows, pivots = gauss_jordan([([Fraction(1), Fraction(1)], 1),
                                     ([Fraction(2), Fraction(2)], 2)])
        assert pivots == [0]
        assert rows[1] == ([0, 0], 0)


class TestLinearSolve:
    """Tests for solving residual systems."""

    def test_unique_solution(self):
        residuals = [E("(+ (* 2 x) y -5)"), E("(- (- x y) 1)")]
        assert linear_solve(["x", "y"], residuals, Placeholders()) == {"x": 2, "y": 1}

    def test_fractional_solution(self):
        residuals = [E("(+ (* 3 x) (* 4 y) -100)"), E("(+ x (* -1 y) -20)")]
        assert linear_solve(["x", "y"], residuals, Placeholders()) == \
            {"x": Fraction(180, 7), "y": Fraction(40, 7)}

    def test_symbolic_right_hand_side(self):
        residuals = [E("(+ x y (* -1 a))"), E("(- x y)")]
        solution = linear_solve(["x", "y"], residuals, Placeholders())
        assert solution == {"x": ["*", Fraction(1, 2), "a"], "y": ["*", Fraction(1, 2), "a"]}

    def test_inconsistent(self):
        residuals = [E("(+ x y -1)"), E("(+ x y -2)")]
        assert isinstance(linear_solve(["x", "y"], residuals, Placeholders()), InconsistentSystem)

    def test_underdetermined(self):
        """Free columns are bound to fresh placeholders."""
        solution = linear_solve(["x", "y"], [E("(+ x y -1)")], Placeholders())
        assert solution["y"] == "_0"
        assert symbols_in(solution["x"]) == ["_0"]

    def test_not_linear(self):
        assert linear_solve(["x", "y"], [E("(+ (* x y) -1)"), E("(- x y)")], Placeholders()) is None
