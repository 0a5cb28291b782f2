"""Tests for the single-variable formula evaluator."""

import pytest

from hue_bridge_emulator.formula import evaluate


class TestEvaluate:

    def test_multiply(self):
        assert evaluate("x * 2", 5) == 10

    def test_divide(self):
        assert evaluate("x / 2", 10) == 5

    def test_precedence(self):
        assert evaluate("x + 2 * 3", 1) == 7
        assert evaluate("(x + 2) * 3", 1) == 9

    def test_unary_minus(self):
        assert evaluate("-x + 10", 4) == 6

    def test_supplementary_functions(self):
        assert evaluate("round(x * 2.54)", 50) == 127
        assert evaluate("min(x, 100)", 250) == 100
        assert evaluate("abs(x - 10)", 4) == 6

    @pytest.mark.parametrize("expression", ["", "   ", None])
    def test_empty_is_identity(self, expression):
        assert evaluate(expression, 42) == 42

    @pytest.mark.parametrize(
        "expression",
        [
            "x *",
            "x / 0",
            "y + 1",
            "__import__('os')",
            "x.real",
            "'a' * 3",
            "[x]",
            "x ** 1000",
            "True + x",
        ],
    )
    def test_malformed_returns_input(self, expression):
        assert evaluate(expression, 7) == 7

    def test_non_finite_returns_input(self):
        assert evaluate("x * 1e308 * 10", 3) == 3
