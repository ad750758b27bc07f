"""Tests for the equation solver."""

from fractions import Fraction

import pytest
from solvo import (
    ALL_VALUES, E, InconsistentSystem, MalformedExpression, Placeholders, SolutionSet,
    UnsolvableStrategy, failed, solve, solve_equation, solve_linear_system,
)
from solvo.expressions import substitute, symbols_in
from solvo.solver import cancel_log_ratios, clear_denominators, residual, satisfies
from solvo.transform import evaluate, multiply_out, tidy


class TestSingleEquation:
    """Tests for one equation in one unknown."""

    def test_linear(self):
        assert solve("x", E("(= (+ 1 x) 3)")) == [2]

    def test_fractional_answer(self):
        assert solve("x", E("(= (* 3 x) 1)")) == [Fraction(1, 3)]

    def test_no_solution(self):
        assert solve("x", E("(= (* 0 x) 1)")) == []

    def test_every_value(self):
        assert solve("x", E("(= (* 0 x) 0)")) == [ALL_VALUES]
        assert solve("x", E("(= x x)")) == [ALL_VALUES]

    def test_quadratic(self):
        assert solve("x", E("(= (+ (^ x 2) (* -5 x) 6) 0)")) == [2, 3]

    def test_no_real_roots(self):
        assert solve("x", E("(= (^ x 2) -1)")) == []

    def test_square_root_branches(self):
        assert sorted(solve("x", E("(= (^ x 2) 9)"))) == [-3, 3]

    def test_rational_equation(self):
        """Denominators containing the unknown are cleared."""
        assert solve("x", E("(= (+ x (/ 6 (+ x 1))) 4)")) == [1, 2]

    def test_exponential_substitution(self):
        """2^(2x) + 2^x - 6 = 0 is quadratic in 2^x."""
        assert solve("x", E("(= (+ (^ 2 (* 2 x)) (^ 2 x) -6) 0)")) == [1]

    def test_log_elimination(self):
        """The root -3 of the cleared equation is discarded by the check."""
        assert solve("x", E("(= (+ (log x) (log (+ x 1))) (log 6))")) == [2]

    def test_irrational_roots_are_radicals(self):
        """x^2 - x - 1 = 0 has the golden ratio roots, kept exact."""
        values = solve("x", E("(= (+ (^ x 2) (* -1 x) -1) 0)"))
        assert len(values) == 2
        assert not any(isinstance(value, float) for value in values)
        numeric = sorted(evaluate(value) for value in values)
        assert numeric == [pytest.approx((1 - 5 ** 0.5) / 2), pytest.approx((1 + 5 ** 0.5) / 2)]

    def test_exponential_roots_are_exact(self):
        """2^x = 4 and 2^x = 16 give the integers 2 and 4."""
        values = solve("x", E("(= (+ (^ 2 (* 2 x)) (* -20 (^ 2 x)) 64) 0)"))
        assert values == [2, 4]
        assert all(isinstance(value, int) for value in values)

    def test_logs_to_a_base(self):
        """The root -2 makes both logs undefined and is discarded."""
        assert solve("x", E("(= (+ (log x 2) (log (- x 2) 2)) 3)")) == [4]

    def test_symbolic(self):
        assert solve("x", E("(= (* a x) b)")) == [["*", ["^", "a", -1], "b"]]

    def test_vector_unknown(self):
        assert solve("v", E("(= (+ v (vec 1 2)) (vec 3 5))")) == [["vec", 2, 3]]

    def test_unsolvable(self):
        result = solve("x", E("(= (+ x (sin x)) 1)"))
        assert isinstance(result, UnsolvableStrategy)
        assert failed(result)

    def test_unknown_missing(self):
        assert failed(solve("x", E("(= y 2)")))

    def test_malformed(self):
        with pytest.raises(MalformedExpression):
            solve("x", E("(+ x 1)"))


class TestSolveEquation:
    """Tests for unchecked single-equation candidates."""

    def test_candidates_unchecked(self):
        values = solve_equation("x", E("(= (+ (log x) (log (+ x 1))) (log 6))"))
        assert sorted(values) == [-3, 2]

    def test_candidates_for_polynomial(self):
        assert solve_equation("x", E("(= (^ x 3) (* 4 x))")) == [0, -2, 2]


class TestSystems:
    """Tests for simultaneous equations."""

    def test_linear_system(self):
        result = solve(["x", "y"], [E("(= (+ (* 3 x) (* 4 y)) 100)"), E("(= (- x y) 20)")])
        assert result == [{"x": Fraction(180, 7), "y": Fraction(40, 7)}]

    def test_inconsistent(self):
        assert solve(["x", "y"], [E("(= (+ x y) 1)"), E("(= (+ x y) 2)")]) == []

    def test_underdetermined(self):
        result = solve(["x", "y"], E("(= (+ x y) 1)"))
        assert len(result) == 1
        assert result[0]["y"] == "_0"
        assert symbols_in(result[0]["x"]) == ["_0"]

    def test_unconstrained_unknown(self):
        assert solve(["x", "y"], E("(= x 2)")) == [{"x": 2, "y": "_0"}]

    def test_independent_components(self):
        result = solve(["x", "y"], [E("(= (* 2 x) 4)"), E("(= (^ y 2) 1)")])
        assert len(result) == 2
        assert {"x": 2, "y": 1} in result
        assert {"x": 2, "y": -1} in result

    def test_substitution(self):
        """x*y = 6 and x - y = 1 are not linear; x is eliminated by substitution."""
        result = solve(["x", "y"], [E("(= (* x y) 6)"), E("(= (- x y) 1)")])
        assert len(result) == 2
        assert {"x": 3, "y": 2} in result
        assert {"x": -2, "y": -3} in result

    def test_zero_product(self):
        """x*y = 0 holds when either factor is zero."""
        result = solve(["x", "y"], [E("(= (* x y) 0)"), E("(= (+ x y) 2)")])
        assert len(result) == 2
        assert {"x": 0, "y": 2} in result
        assert {"x": 2, "y": 0} in result

    def test_zero_product_with_powers(self):
        result = solve(["x", "y"], [E("(= (* (^ x 2) (- y 1)) 0)"), E("(= (- x y) 3)")])
        assert len(result) == 2
        assert {"x": 0, "y": -3} in result
        assert {"x": 4, "y": 1} in result

    def test_trivial_equations_dropped(self):
        result = solve(["x"], [E("(= 0 0)"), E("(= (+ x 1) 2)")])
        assert result == [{"x": 1}]

    def test_contradiction(self):
        assert solve(["x"], [E("(= 1 0)"), E("(= x 2)")]) == []

    def test_shared_placeholders(self):
        names = Placeholders()
        solve(["x", "y"], E("(= (+ x y) 1)"), placeholders=names)
        result = solve(["x", "y"], E("(= (+ x y) 2)"), placeholders=names)
        assert result[0]["y"] == "_1"


class TestLinearSystem:
    """Tests for solve_linear_system."""

    def test_solution(self):
        result = solve_linear_system(["x", "y"], [E("(= (+ x y) 3)"), E("(= (- x y) 1)")])
        assert result == [{"x": 2, "y": 1}]

    def test_inconsistent(self):
        result = solve_linear_system(["x", "y"], [E("(= (+ x y) 1)"), E("(= (+ x y) 2)")])
        assert isinstance(result, InconsistentSystem)

    def test_not_linear(self):
        result = solve_linear_system(["x", "y"], [E("(= (* x y) 1)"), E("(= x 1)")])
        assert isinstance(result, UnsolvableStrategy)


class TestHelpers:
    """Tests for residuals, denominators, checking and result containers."""

    def test_residual(self):
        assert residual(E("(= (+ x 1) 3)")) == ["+", -2, "x"]

    def test_clear_denominators(self):
        cleared = clear_denominators("x", E("(+ 1 (^ x -1))"))
        assert cleared == ["+", 1, "x"]

    def test_cancel_log_ratios(self):
        assert cancel_log_ratios(E("(* (log 8) (^ (log 2) -1))")) == 3
        assert cancel_log_ratios(E("(* a (log 2) (^ (log 4) -1))")) == ["*", Fraction(1, 2), "a"]
        assert cancel_log_ratios(E("(* (log 3) (^ (log 2) -1))")) == E("(* (log 3) (^ (log 2) -1))")

    def test_satisfies(self):
        equations = [E("(= (+ x 1) 3)")]
        assert satisfies({"x": 2}, equations)
        assert not satisfies({"x": 3}, equations)

    def test_undefined_does_not_satisfy(self):
        assert not satisfies({"x": -1}, [E("(= (log x) 0)")])

    def test_symbolic_satisfies(self):
        assert satisfies({"x": "a"}, [E("(= (+ x 1) 3)")])

    def test_solution_set(self):
        solutions = SolutionSet([1, 2, 1])
        assert solutions == [1, 2]
        assert len(solutions) == 2
        assert 2 in solutions
        assert 3 not in solutions
        assert repr(solutions) == "SolutionSet([1, 2])"
        assert not SolutionSet()

    def test_placeholders(self):
        names = Placeholders()
        assert names.next() == "_0"
        assert next(names) == "_1"
        assert names.take(2) == ["_2", "_3"]
        assert Placeholders(prefix="t", start=5).next() == "t5"

    def test_all_values_marker(self):
        assert repr(ALL_VALUES) == "ALL_VALUES"
        assert type(ALL_VALUES)() is ALL_VALUES


class TestRoundTrip:
    """Every returned root makes the residual vanish."""

    EQUATIONS = [
        "(= (+ (^ x 2) (* -5 x) 6) 0)",
        "(= (+ (^ x 2) (* -1 x) -1) 0)",
        "(= (* 2 (^ x 2)) 3)",
        "(= (+ x (/ 6 (+ x 1))) 4)",
        "(= (^ x 3) (* 4 x))",
        "(= (sqrt (+ x 1)) 3)",
        "(= (+ (^ 2 (* 2 x)) (* -20 (^ 2 x)) 64) 0)",
        "(= (+ (log x) (log (+ x 1))) (log 6))",
        "(= (+ (log x 2) (log (- x 2) 2)) 3)",
    ]

    def test_roots_satisfy_equation(self):
        for text in self.EQUATIONS:
            equation = E(text)
            values = solve("x", equation)
            assert not failed(values), text
            assert len(values) > 0, text
            f = residual(equation)
            for value in values:
                assert evaluate(f, {"x": value}) == pytest.approx(0, abs=1e-9), text

    def test_exact_roots_cancel_exactly(self):
        """Rational roots leave an exactly zero residual after expansion."""
        for text in ["(= (+ (^ x 2) (* -5 x) 6) 0)", "(= (^ x 3) (* 4 x))",
                     "(= (+ x (/ 6 (+ x 1))) 4)"]:
            equation = E(text)
            for value in solve("x", equation):
                assert tidy(multiply_out(substitute(residual(equation), {"x": value}))) == 0, text

    def test_system_solutions_satisfy_every_equation(self):
        systems = [
            [E("(= (* x y) 0)"), E("(= (+ x y) 2)")],
            [E("(= (* x y) 6)"), E("(= (- x y) 1)")],
            [E("(= (+ (* 3 x) (* 4 y)) 100)"), E("(= (- x y) 20)")],
        ]
        for equations in systems:
            result = solve(["x", "y"], equations)
            assert len(result) > 0
            for solution in result:
                for equation in equations:
                    assert evaluate(residual(equation), solution) == pytest.approx(0, abs=1e-9)
