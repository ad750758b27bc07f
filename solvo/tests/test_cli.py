"""Tests for the command-line interface."""

from fractions import Fraction

import pytest
from solvo.cli import build_parser, main, parse_binding


class TestParser:
    """Tests for argument parsing."""

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_diff_takes_several_variables(self):
        args = build_parser().parse_args(["diff", "(^ x 3)", "x", "x"])
        assert args.vars == ["x", "x"]

    def test_parse_binding(self):
        assert parse_binding("x=1/2") == ("x", Fraction(1, 2))
        assert parse_binding("v=(vec 1 2)") == ("v", ["vec", 1, 2])


class TestCommands:
    """Tests for each subcommand's output."""

    def test_simplify(self, capsys):
        assert main(["simplify", "(* a 3 4)"]) == 0
        assert capsys.readouterr().out.strip() == "(* 12 a)"

    def test_simplify_ratio_not_met(self, capsys):
        assert main(["simplify", "(^ (+ a b) 2)", "--ratio", "0.5"]) == 1
        assert "Error" in capsys.readouterr().err

    def test_fold(self, capsys):
        assert main(["fold", "(+ 1 2 x)"]) == 0
        assert capsys.readouterr().out.strip() == "(+ 3 x)"

    def test_expand(self, capsys):
        assert main(["expand", "(^ (+ a b) 2)"]) == 0
        assert capsys.readouterr().out.strip() == "(+ (^ a 2) (* 2 a b) (^ b 2))"

    def test_diff(self, capsys):
        assert main(["diff", "(^ x 3)", "x"]) == 0
        assert capsys.readouterr().out.strip() == "(* 3 (^ x 2))"

    def test_poly(self, capsys):
        assert main(["poly", "x", "(+ (^ x 2) x x 1)"]) == 0
        assert capsys.readouterr().out.strip() == "(+ 1 (* 2 x) (^ x 2))"

    def test_rearrange(self, capsys):
        assert main(["rearrange", "x", "(= (+ a x) b)"]) == 0
        assert capsys.readouterr().out.strip() == "(= x (- b a))"

    def test_rearrange_failure(self, capsys):
        assert main(["rearrange", "x", "(= (+ x x) b)"]) == 1
        assert "Error" in capsys.readouterr().err

    def test_solve_single(self, capsys):
        assert main(["solve", "x", "(= (+ 1 x) 3)"]) == 0
        assert capsys.readouterr().out.strip() == "2"

    def test_solve_system(self, capsys):
        assert main(["solve", "x y", "(= (+ x y) 3)", "(= (- x y) 1)"]) == 0
        assert capsys.readouterr().out.strip() == "x = 2, y = 1"

    def test_solve_no_solutions(self, capsys):
        assert main(["solve", "x", "(= (* 0 x) 1)"]) == 0
        assert capsys.readouterr().out.strip() == "no solutions"

    def test_solve_all_values(self, capsys):
        assert main(["solve", "x", "(= x x)"]) == 0
        assert capsys.readouterr().out.strip() == "all values"

    def test_eval(self, capsys):
        assert main(["eval", "(+ x (* 2 y))", "x=1", "y=3"]) == 0
        assert capsys.readouterr().out.strip() == "7"


class TestErrors:
    """Tests for error reporting."""

    def test_bad_binding(self, capsys):
        assert main(["eval", "(+ x 1)", "oops"]) == 1
        assert "NAME=VALUE" in capsys.readouterr().err

    def test_empty_expression(self, capsys):
        assert main(["simplify", ""]) == 1
        assert "empty expression" in capsys.readouterr().err

    def test_malformed_expression(self, capsys):
        assert main(["simplify", "(^ x 1 2)"]) == 1
        assert "Error" in capsys.readouterr().err

    def test_trace(self, capsys):
        assert main(["-t", "simplify", "(+ x 0)"]) == 0
        captured = capsys.readouterr()
        assert captured.out.strip() == "x"
        assert "collect-sum" in captured.err
