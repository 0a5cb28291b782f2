"""Single-variable formula evaluation for custom device mappings.

Formulas such as ``x * 2.54`` or ``(x - 7) * 254 / 21`` convert a scalar
between the hub's value range and the Hue brightness range. Expressions are
parsed with :mod:`ast` and only a small whitelist of nodes is evaluated, so a
user formula can never execute arbitrary code.

A formula that cannot be parsed or evaluated leaves the input unchanged.
"""
from __future__ import annotations

import ast
from functools import lru_cache
import logging
import math
import operator
from typing import Any, Callable

_LOGGER = logging.getLogger(__name__)

VARIABLE = "x"
MAX_EXPONENT = 64

_BINARY_OPERATORS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
}


class FormulaError(ValueError):
    """Raised internally when a formula cannot be evaluated."""


@lru_cache(maxsize=128)
def _parse(expression: str) -> ast.Expression:
    """Parse and cache an expression tree."""
    try:
        return ast.parse(expression.strip(), mode="eval")
    except SyntaxError as err:
        raise FormulaError(f"Invalid formula {expression!r}: {err.msg}") from err


def _eval_node(node: ast.AST, x: float) -> float:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body, x)

    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise FormulaError(f"Unsupported constant {node.value!r}")
        return node.value

    if isinstance(node, ast.Name):
        if node.id != VARIABLE:
            raise FormulaError(f"Unknown variable {node.id!r}")
        return x

    if isinstance(node, ast.BinOp):
        op = _BINARY_OPERATORS.get(type(node.op))
        if op is None:
            raise FormulaError(f"Unsupported operator {type(node.op).__name__}")
        left = _eval_node(node.left, x)
        right = _eval_node(node.right, x)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise FormulaError(f"Exponent {right} too large")
        return op(left, right)

    if isinstance(node, ast.UnaryOp):
        op = _UNARY_OPERATORS.get(type(node.op))
        if op is None:
            raise FormulaError(f"Unsupported operator {type(node.op).__name__}")
        return op(_eval_node(node.operand, x))

    if isinstance(node, ast.Call):
        if (
            not isinstance(node.func, ast.Name)
            or node.func.id not in _FUNCTIONS
            or node.keywords
        ):
            raise FormulaError("Unsupported function call")
        args = [_eval_node(arg, x) for arg in node.args]
        return _FUNCTIONS[node.func.id](*args)

    raise FormulaError(f"Unsupported expression {type(node).__name__}")


def evaluate(expression: str | None, x: float) -> float:
    """Evaluate ``expression`` with ``x`` bound to the input value.

    Returns ``x`` unchanged when the expression is empty, malformed, or does
    not produce a finite number.
    """
    if not expression or not expression.strip():
        return x

    try:
        result = _eval_node(_parse(expression), x)
    except (FormulaError, ArithmeticError, RecursionError, TypeError, ValueError) as err:
        _LOGGER.debug("Formula %r failed for x=%s: %s", expression, x, err)
        return x

    if isinstance(result, bool) or not isinstance(result, (int, float)):
        return x
    if not math.isfinite(result):
        return x
    return result
