"""Tests for symbolic differentiation."""

from solvo import E, differentiate, simplify


class TestBasicRules:
    """Tests for the elementary derivative rules."""

    def test_constant(self):
        assert differentiate("x", 5) == 0

    def test_variable(self):
        assert differentiate("x", "x") == 1

    def test_other_symbol(self):
        """A symbol not occurring in the expression differentiates to 0."""
        assert differentiate("x", "y") == 0
        assert differentiate("x", E("(* a (exp b))")) == 0

    def test_power_rule(self):
        assert differentiate("x", E("(^ x 3)")) == ["*", 3, ["^", "x", 2]]

    def test_constant_multiple(self):
        assert simplify(differentiate("x", E("(* 3 (^ x 2))"))) == ["*", 6, "x"]

    def test_exp(self):
        assert differentiate("x", E("(exp x)")) == ["exp", "x"]

    def test_log(self):
        assert differentiate("x", E("(log x)")) == ["/", 1, "x"]

    def test_sin(self):
        assert differentiate("x", E("(sin x)")) == ["cos", "x"]

    def test_aliases(self):
        """** and ln are accepted as input."""
        assert differentiate("x", E("(** x 3)")) == differentiate("x", E("(^ x 3)"))
        assert differentiate("x", E("(ln x)")) == ["/", 1, "x"]


class TestCompositeRules:
    """Tests for sum, product, quotient and chain rules."""

    def test_sum_rule(self):
        assert simplify(differentiate("x", E("(+ (^ x 2) x 7)"))) == ["+", 1, ["*", 2, "x"]]

    def test_product_rule(self):
        result = simplify(differentiate("x", E("(* x (exp x))")))
        assert result == simplify(E("(+ (exp x) (* x (exp x)))"))

    def test_chain_rule(self):
        result = simplify(differentiate("x", E("(exp (* 2 x))")))
        assert result == ["*", 2, ["exp", ["*", 2, "x"]]]

    def test_general_power(self):
        """x^x has derivative x^x (log x + 1)."""
        result = differentiate("x", E("(^ x x)"))
        assert simplify(result) == simplify(E("(* (^ x x) (+ (log x) 1))"))

    def test_vector(self):
        assert differentiate("x", E("(vec x (^ x 2))")) == ["vec", 1, ["*", 2, "x"]]


class TestRepeated:
    """Tests for differentiating by several symbols."""

    def test_fifth_derivative(self):
        expr = E("(+ (* 2 (** x 3)) (* 4 (** x 5)))")
        assert simplify(differentiate(["x"] * 5, expr)) == 480

    def test_beyond_degree_is_zero(self):
        expr = E("(+ (^ x 3) (* 2 x) 1)")
        assert simplify(differentiate(["x"] * 4, expr)) == 0

    def test_mixed_partials_agree(self):
        expr = E("(* (^ x 2) (^ y 3))")
        xy = simplify(differentiate(["x", "y"], expr))
        yx = simplify(differentiate(["y", "x"], expr))
        assert xy == yx
        assert xy == ["*", 6, "x", ["^", "y", 2]]
