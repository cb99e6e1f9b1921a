"""Built-in OpenSCAD functions.

Every built-in receives a :class:`BuiltinCall` and returns a value.
Trigonometry works in degrees. Arguments of the wrong type produce
``undef``, matching OpenSCAD.
"""
from __future__ import annotations
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..position import Position
from .values import (
    UNDEF, RangeValue, FunctionValue, is_number, is_number_vector,
    values_equal, format_value,
)

logger = logging.getLogger(__name__)


@dataclass
class BuiltinCall:
    """Evaluated arguments of a built-in function call."""
    name: str
    positional: list[Any]
    named: dict[str, Any] = field(default_factory=dict)
    position: Optional[Position] = None

    def arg(self, index: int, name: Optional[str] = None, default: Any = UNDEF) -> Any:
        """Return the argument by keyword if given, else by position, else ``default``."""
        if name is not None and name in self.named:
            return self.named[name]
        if index < len(self.positional):
            return self.positional[index]
        return default

    def number(self, index: int, name: Optional[str] = None) -> Optional[float]:
        value = self.arg(index, name)
        return float(value) if is_number(value) else None


BuiltinFunction = Callable[[BuiltinCall], Any]

BUILTIN_FUNCTIONS: dict[str, BuiltinFunction] = {}


def builtin(name: str):
    """Register a function in :data:`BUILTIN_FUNCTIONS`."""
    def register(func: BuiltinFunction) -> BuiltinFunction:
        BUILTIN_FUNCTIONS[name] = func
        return func
    return register


def _unary_math(name: str, func: Callable[[float], float]) -> None:
    def call(c: BuiltinCall) -> Any:
        x = c.number(0)
        if x is None:
            return UNDEF
        try:
            return float(func(x))
        except ValueError:
            return math.nan
        except OverflowError:
            return math.inf
    BUILTIN_FUNCTIONS[name] = call


# --- Trigonometry ---

def sin_degrees(x: float) -> float:
    if not math.isfinite(x):
        return math.nan
    reduced = math.fmod(x, 360.0)
    if reduced % 90 == 0:
        return (0.0, 1.0, 0.0, -1.0)[int(reduced // 90) % 4]
    return math.sin(math.radians(x))


def cos_degrees(x: float) -> float:
    if not math.isfinite(x):
        return math.nan
    reduced = math.fmod(x, 360.0)
    if reduced % 90 == 0:
        return (1.0, 0.0, -1.0, 0.0)[int(reduced // 90) % 4]
    return math.cos(math.radians(x))


def tan_degrees(x: float) -> float:
    if not math.isfinite(x):
        return math.nan
    reduced = math.fmod(x, 180.0)
    if reduced == 0:
        return 0.0
    if reduced % 90 == 0:
        return math.inf if reduced > 0 else -math.inf
    return math.tan(math.radians(x))


def _round_half_away(x: float) -> float:
    if not math.isfinite(x):
        return x
    return math.floor(x + 0.5) if x >= 0 else -math.floor(-x + 0.5)


def _ln(x: float) -> float:
    if x == 0:
        return -math.inf
    return math.log(x)


def _log10(x: float) -> float:
    if x == 0:
        return -math.inf
    return math.log10(x)


def _sign(x: float) -> float:
    if math.isnan(x):
        return math.nan
    return 1.0 if x > 0 else (-1.0 if x < 0 else 0.0)


_unary_math("abs", abs)
_unary_math("sign", _sign)
_unary_math("sin", sin_degrees)
_unary_math("cos", cos_degrees)
_unary_math("tan", tan_degrees)
_unary_math("asin", lambda x: math.degrees(math.asin(x)))
_unary_math("acos", lambda x: math.degrees(math.acos(x)))
_unary_math("atan", lambda x: math.degrees(math.atan(x)))
_unary_math("floor", lambda x: math.floor(x) if math.isfinite(x) else x)
_unary_math("ceil", lambda x: math.ceil(x) if math.isfinite(x) else x)
_unary_math("round", _round_half_away)
_unary_math("sqrt", lambda x: math.sqrt(x) if x >= 0 else math.nan)
_unary_math("exp", math.exp)
_unary_math("ln", _ln)


@builtin("atan2")
def _atan2(c: BuiltinCall) -> Any:
    y, x = c.number(0), c.number(1)
    if y is None or x is None:
        return UNDEF
    return math.degrees(math.atan2(y, x))


@builtin("log")
def _log(c: BuiltinCall) -> Any:
    if len(c.positional) >= 2:
        base, x = c.number(0), c.number(1)
        if base is None or x is None:
            return UNDEF
        try:
            return _ln(x) / math.log(base)
        except (ValueError, ZeroDivisionError):
            return math.nan
    x = c.number(0)
    if x is None:
        return UNDEF
    try:
        return _log10(x)
    except ValueError:
        return math.nan


@builtin("pow")
def _pow(c: BuiltinCall) -> Any:
    base, exponent = c.number(0), c.number(1)
    if base is None or exponent is None:
        return UNDEF
    try:
        return math.pow(base, exponent)
    except ValueError:
        return math.nan
    except OverflowError:
        return math.inf


def _extremum(c: BuiltinCall, pick: Callable) -> Any:
    values = c.positional
    if len(values) == 1 and isinstance(values[0], list):
        values = values[0]
    if not values or not all(is_number(v) for v in values):
        return UNDEF
    return float(pick(values))


@builtin("min")
def _min(c: BuiltinCall) -> Any:
    return _extremum(c, min)


@builtin("max")
def _max(c: BuiltinCall) -> Any:
    return _extremum(c, max)


# --- Vectors ---

@builtin("norm")
def _norm(c: BuiltinCall) -> Any:
    v = c.arg(0)
    if not is_number_vector(v):
        return UNDEF
    return math.sqrt(sum(x * x for x in v))


@builtin("cross")
def _cross(c: BuiltinCall) -> Any:
    a, b = c.arg(0), c.arg(1)
    if not (is_number_vector(a) and is_number_vector(b)) or len(a) != len(b):
        return UNDEF
    if len(a) == 2:
        return float(a[0] * b[1] - a[1] * b[0])
    if len(a) == 3:
        return [
            float(a[1] * b[2] - a[2] * b[1]),
            float(a[2] * b[0] - a[0] * b[2]),
            float(a[0] * b[1] - a[1] * b[0]),
        ]
    return UNDEF


@builtin("len")
def _len(c: BuiltinCall) -> Any:
    v = c.arg(0)
    if isinstance(v, (list, str)):
        return float(len(v))
    return UNDEF


@builtin("concat")
def _concat(c: BuiltinCall) -> Any:
    result = []
    for v in c.positional:
        if isinstance(v, list):
            result.extend(v)
        else:
            result.append(v)
    return result


@builtin("lookup")
def _lookup(c: BuiltinCall) -> Any:
    key, table = c.arg(0), c.arg(1)
    if not is_number(key) or not isinstance(table, list):
        return UNDEF
    pairs = sorted(
        (float(row[0]), float(row[1])) for row in table
        if isinstance(row, list) and len(row) >= 2 and is_number(row[0]) and is_number(row[1])
    )
    if not pairs:
        return UNDEF
    if key <= pairs[0][0]:
        return pairs[0][1]
    if key >= pairs[-1][0]:
        return pairs[-1][1]
    for (k1, v1), (k2, v2) in zip(pairs, pairs[1:]):
        if k1 <= key <= k2:
            if k2 == k1:
                return v1
            return v1 + (key - k1) * (v2 - v1) / (k2 - k1)
    return UNDEF


@builtin("search")
def _search(c: BuiltinCall) -> Any:
    match = c.arg(0, "match_value")
    target = c.arg(1, "string_or_vector")
    num_returns = c.arg(2, "num_returns_per_match", 1.0)
    index_col = c.arg(3, "index_col_num", 0.0)
    if not isinstance(target, (list, str)):
        return UNDEF
    limit = int(num_returns) if is_number(num_returns) else 1
    column = int(index_col) if is_number(index_col) else 0

    def key_at(i: int) -> Any:
        item = target[i]
        if isinstance(item, list):
            return item[column] if 0 <= column < len(item) else UNDEF
        return item

    def find(value: Any) -> list[float]:
        indices = [float(i) for i in range(len(target)) if values_equal(key_at(i), value)]
        return indices if limit <= 0 else indices[:limit]

    if isinstance(match, str):
        result = []
        for ch in match:
            found = find(ch)
            if limit == 1:
                result.extend(found)
            else:
                result.append(found)
        return result
    if isinstance(match, list):
        result = []
        for value in match:
            found = find(value)
            if limit == 1:
                result.append(found[0] if found else [])
            else:
                result.append(found)
        return result
    return find(match)


# --- Strings ---

@builtin("str")
def _str(c: BuiltinCall) -> Any:
    return "".join(format_value(v) for v in c.positional)


def _code_points(value: Any) -> list[float]:
    if is_number(value):
        return [value]
    if isinstance(value, list):
        return [code for item in value for code in _code_points(item)]
    if isinstance(value, RangeValue):
        return list(value)
    return []


@builtin("chr")
def _chr(c: BuiltinCall) -> Any:
    chars = []
    for value in c.positional:
        for code in _code_points(value):
            if math.isfinite(code) and 0 < code <= 0x10FFFF:
                chars.append(chr(int(code)))
            else:
                logger.warning("chr(): invalid code point %s", format_value(code))
    return "".join(chars)


@builtin("ord")
def _ord(c: BuiltinCall) -> Any:
    s = c.arg(0)
    if isinstance(s, str) and len(s) == 1:
        return float(ord(s))
    return UNDEF


# --- Random numbers ---

def _seeded_values(seed: float, count: int):
    state = int(seed) % 4294967296
    for _ in range(count):
        state = (state * 1664525 + 1013904223) % 4294967296
        yield state / 4294967296


@builtin("rands")
def _rands(c: BuiltinCall) -> Any:
    low = c.number(0, "min_value")
    high = c.number(1, "max_value")
    count = c.number(2, "value_count")
    if low is None or high is None or count is None or not math.isfinite(count):
        return UNDEF
    count = max(int(count), 0)
    seed = c.number(3, "seed_value")
    if seed is not None and math.isfinite(seed):
        samples = _seeded_values(seed, count)
    else:
        rng = random.Random()
        samples = (rng.random() for _ in range(count))
    return [low + r * (high - low) for r in samples]


# --- Type tests ---

@builtin("is_undef")
def _is_undef(c: BuiltinCall) -> Any:
    return c.arg(0) is UNDEF


@builtin("is_bool")
def _is_bool(c: BuiltinCall) -> Any:
    return isinstance(c.arg(0), bool)


@builtin("is_num")
def _is_num(c: BuiltinCall) -> Any:
    v = c.arg(0)
    return is_number(v) and not math.isnan(v)


@builtin("is_string")
def _is_string(c: BuiltinCall) -> Any:
    return isinstance(c.arg(0), str)


@builtin("is_list")
def _is_list(c: BuiltinCall) -> Any:
    return isinstance(c.arg(0), list)


@builtin("is_function")
def _is_function(c: BuiltinCall) -> Any:
    return isinstance(c.arg(0), FunctionValue)


# --- Version ---

VERSION = (2021.0, 1.0, 0.0)


@builtin("version")
def _version(c: BuiltinCall) -> Any:
    return list(VERSION)


@builtin("version_num")
def _version_num(c: BuiltinCall) -> Any:
    return VERSION[0] * 10000 + VERSION[1] * 100 + VERSION[2]
