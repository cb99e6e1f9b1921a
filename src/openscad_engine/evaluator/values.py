"""Runtime values of the OpenSCAD evaluator.

OpenSCAD values map onto Python objects as follows:

==========  =====================================================
number      ``float`` (never ``bool``; booleans are not numbers)
bool        ``bool``
string      ``str``
vector      ``list``
range       :class:`RangeValue`
function    :class:`FunctionValue`
module      :class:`ModuleValue`
geometry    :class:`Geometry`
undef       the :data:`UNDEF` singleton
==========  =====================================================
"""
from __future__ import annotations
import math
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Iterator, Optional

if TYPE_CHECKING:
    from ..ast.nodes import ASTNode, Expression, ModuleDeclaration, ParameterDeclaration
    from .scope import Scope


class _Undefined(object):
    """Type of the :data:`UNDEF` singleton."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "undef"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return (_Undefined, ())


UNDEF = _Undefined()


def is_number(value: Any) -> bool:
    """True for OpenSCAD numbers. Booleans are not numbers."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_number_vector(value: Any) -> bool:
    return isinstance(value, list) and all(is_number(v) for v in value)


def is_matrix(value: Any) -> bool:
    """True for a non-empty list of equal-length number vectors."""
    if not isinstance(value, list) or not value:
        return False
    if not all(is_number_vector(row) and row for row in value):
        return False
    return len({len(row) for row in value}) == 1


@dataclass(frozen=True)
class RangeValue:
    """An inclusive numeric range ``[start : step : end]``.

    Iteration is lazy, so huge ranges cost nothing until walked.
    """
    start: float
    step: float
    end: float

    def count(self) -> int:
        """Number of values the range produces."""
        if not (math.isfinite(self.start) and math.isfinite(self.step)
                and math.isfinite(self.end)) or self.step == 0:
            return 0
        steps = math.floor((self.end - self.start) / self.step + 1e-9)
        return steps + 1 if steps >= 0 else 0

    def __iter__(self) -> Iterator[float]:
        for i in range(self.count()):
            yield float(self.start + i * self.step)

    def __str__(self) -> str:
        return f"[{format_value(self.start)} : {format_value(self.step)} : {format_value(self.end)}]"


@dataclass(frozen=True, eq=False)
class FunctionValue:
    """A function closure: parameters and body bound to the defining scope."""
    parameters: list["ParameterDeclaration"]
    body: "Expression"
    scope: "Scope" = field(repr=False)
    name: str = "function"

    def __str__(self) -> str:
        params = ", ".join(str(p) for p in self.parameters)
        return f"function({params}) {self.body}"


@dataclass(frozen=True, eq=False)
class ModuleValue:
    """A module closure: a declaration bound to the defining scope."""
    declaration: "ModuleDeclaration"
    scope: "Scope" = field(repr=False)

    @property
    def name(self) -> str:
        return self.declaration.name.name

    def __str__(self) -> str:
        return f"module {self.name}"


@dataclass(frozen=True)
class Geometry:
    """An opaque geometry handle returned by a backend, plus annotations.

    Geometry values are never mutated: :meth:`annotate` returns a new value.

    Attributes:
        handle: Whatever the backend returned for this shape.
        annotations: Ordered (key, value) pairs such as ``("color", [1, 0, 0, 1])``,
            ``("highlight", True)`` or ``("background", True)``.
    """
    handle: Any
    annotations: tuple[tuple[str, Any], ...] = ()

    def annotate(self, key: str, value: Any) -> "Geometry":
        kept = tuple((k, v) for k, v in self.annotations if k != key)
        return replace(self, annotations=kept + ((key, value),))

    def annotation(self, key: str, default: Any = None) -> Any:
        for k, v in self.annotations:
            if k == key:
                return v
        return default

    def __str__(self) -> str:
        return f"<geometry {self.handle!r}>"


@dataclass(frozen=True)
class ChildrenRef:
    """The child statements of a module instantiation, with the scope they belong to.

    Passed down a module invocation so ``children()`` can evaluate the
    selected statements lazily, in the caller's scope.

    Attributes:
        statements: The literal child statements at the call site.
        scope: The caller's scope.
        outer: The children of the caller itself, for ``children()`` calls
            that appear inside the child statements.
    """
    statements: tuple["ASTNode", ...] = ()
    scope: Optional["Scope"] = field(default=None, repr=False)
    outer: Optional["ChildrenRef"] = field(default=None, repr=False)

    @property
    def count(self) -> int:
        return len(self.statements)


NO_CHILDREN = ChildrenRef()


@dataclass(frozen=True)
class GeometryProgram:
    """The result of evaluating a program.

    Attributes:
        roots: Root geometries in source order, not unioned.
        echo_log: Lines written by echo(), in order.
        root_modifier_used: True when a ``!`` modifier selected the roots.
    """
    roots: tuple[Geometry, ...] = ()
    echo_log: tuple[str, ...] = ()
    root_modifier_used: bool = False


def truthy(value: Any) -> bool:
    """OpenSCAD truthiness.

    ``undef``, ``false``, ``0``, ``""`` and ``[]`` are false; everything
    else, including every range, is true.
    """
    if value is UNDEF:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, (str, list)):
        return len(value) > 0
    return True


def values_equal(a: Any, b: Any) -> bool:
    """Structural equality. ``true`` never equals ``1``."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if isinstance(a, RangeValue) and isinstance(b, RangeValue):
        return a == b
    if a is UNDEF or b is UNDEF:
        return a is b
    if isinstance(a, Geometry) and isinstance(b, Geometry):
        return a == b
    return a is b


def format_number(value: float) -> str:
    """Format a number the way OpenSCAD prints it: up to 6 significant digits."""
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value == 0:
        return "0"
    return "%.6g" % value


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    escaped = escaped.replace("\n", "\\n").replace("\t", "\\t").replace("\r", "\\r")
    return f'"{escaped}"'


def format_value(value: Any, quote_strings: bool = False) -> str:
    """Format a value as OpenSCAD's echo() and str() do.

    Args:
        value: The value to format.
        quote_strings: If True, a top-level string is quoted. Strings nested
            in vectors are always quoted.
    """
    if value is UNDEF:
        return "undef"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(float(value))
    if isinstance(value, str):
        return _quote(value) if quote_strings else value
    if isinstance(value, list):
        return "[" + ", ".join(format_value(v, quote_strings=True) for v in value) + "]"
    return str(value)


def type_name(value: Any) -> str:
    """OpenSCAD name of a value's type, for messages."""
    if value is UNDEF:
        return "undef"
    if isinstance(value, bool):
        return "bool"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "vector"
    if isinstance(value, RangeValue):
        return "range"
    if isinstance(value, FunctionValue):
        return "function"
    if isinstance(value, ModuleValue):
        return "module"
    if isinstance(value, Geometry):
        return "geometry"
    return type(value).__name__
