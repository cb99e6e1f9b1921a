"""Arithmetic, comparison and logical operators on OpenSCAD values.

Operations on undef or on operand types that do not fit return ``UNDEF``
rather than raising.
"""
from __future__ import annotations
import math
from typing import Any, Callable

from .values import (
    UNDEF, is_number, is_number_vector, is_matrix, truthy, values_equal,
)


def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _modulo(a: float, b: float) -> float:
    try:
        return math.fmod(a, b)
    except ValueError:
        return math.nan


def _power(a: float, b: float) -> float:
    try:
        return math.pow(a, b)
    except ValueError:
        return math.nan
    except OverflowError:
        return math.inf


_SCALAR_OPS: dict[str, Callable[[float, float], float]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _divide,
    "%": _modulo,
    "^": _power,
}


def _elementwise(op: str, a: list, b: list) -> Any:
    if len(a) != len(b):
        return UNDEF
    return [binary(op, x, y) for x, y in zip(a, b)]


def dot(a: list, b: list) -> Any:
    if len(a) != len(b):
        return UNDEF
    return float(sum(x * y for x, y in zip(a, b)))


def _multiply_vectors(a: list, b: list) -> Any:
    if is_number_vector(a) and is_number_vector(b):
        return dot(a, b)
    if is_matrix(a) and is_number_vector(b):
        if len(a[0]) != len(b):
            return UNDEF
        return [dot(row, b) for row in a]
    if is_number_vector(a) and is_matrix(b):
        if len(a) != len(b):
            return UNDEF
        return [dot(a, [row[j] for row in b]) for j in range(len(b[0]))]
    if is_matrix(a) and is_matrix(b):
        if len(a[0]) != len(b):
            return UNDEF
        columns = [[row[j] for row in b] for j in range(len(b[0]))]
        return [[dot(row, col) for col in columns] for row in a]
    return UNDEF


def binary(op: str, a: Any, b: Any) -> Any:
    """Apply a binary operator.

    ``&&`` and ``||`` are accepted here for completeness; the evaluator
    short-circuits them before evaluating the right operand.
    """
    if op == "==":
        return values_equal(a, b)
    if op == "!=":
        return not values_equal(a, b)
    if op == "&&":
        return truthy(a) and truthy(b)
    if op == "||":
        return truthy(a) or truthy(b)
    if op in ("<", "<=", ">", ">="):
        return compare(op, a, b)

    if is_number(a) and is_number(b):
        return float(_SCALAR_OPS[op](float(a), float(b)))
    if op in ("+", "-"):
        if isinstance(a, list) and isinstance(b, list):
            return _elementwise(op, a, b)
        return UNDEF
    if op == "*":
        if isinstance(a, list) and is_number(b):
            return [binary("*", x, b) for x in a]
        if is_number(a) and isinstance(b, list):
            return [binary("*", a, y) for y in b]
        if isinstance(a, list) and isinstance(b, list):
            return _multiply_vectors(a, b)
        return UNDEF
    if op == "/":
        if isinstance(a, list) and is_number(b):
            return [binary("/", x, b) for x in a]
        if is_number(a) and isinstance(b, list):
            return [binary("/", a, y) for y in b]
        return UNDEF
    return UNDEF


def compare(op: str, a: Any, b: Any) -> Any:
    """Ordering comparison of two numbers or two strings, else undef."""
    if is_number(a) and is_number(b):
        pass
    elif isinstance(a, str) and isinstance(b, str):
        pass
    elif isinstance(a, bool) and isinstance(b, bool):
        pass
    else:
        return UNDEF
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def unary(op: str, value: Any) -> Any:
    if op == "!":
        return not truthy(value)
    if op == "-":
        if is_number(value):
            return -float(value)
        if isinstance(value, list):
            return [unary("-", v) for v in value]
        return UNDEF
    if op == "+":
        if is_number(value) or isinstance(value, list):
            return value
        return UNDEF
    raise ValueError(f"unknown unary operator {op!r}")
