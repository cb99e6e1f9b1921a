"""Built-in OpenSCAD modules.

Each built-in module receives a :class:`ModuleCall` and returns the list of
geometries it produces. Child statements are only evaluated when a module
asks for them.
"""
from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..errors import EvalError, EvalErrorKind
from ..position import Position
from . import matrix as mx
from .values import (
    UNDEF, ChildrenRef, Geometry, is_number, is_number_vector, is_matrix,
    truthy, type_name,
)

if TYPE_CHECKING:
    from ..ast.nodes import ASTNode
    from .interpreter import Evaluator
    from .scope import Scope

logger = logging.getLogger(__name__)


@dataclass
class ModuleCall:
    """A built-in module instantiation with evaluated arguments.

    Attributes:
        name: The module name.
        positional: Positional argument values.
        named: Named argument values, excluding ``$`` variables.
        statements: The child statements at the call site.
        scope: The scope of the call site.
        children: The children of the module containing the call site.
        evaluator: The running evaluator.
        position: Source position of the call.
    """
    name: str
    positional: list[Any]
    named: dict[str, Any]
    statements: list["ASTNode"]
    scope: "Scope"
    children: ChildrenRef
    evaluator: "Evaluator"
    position: Optional[Position] = None

    def arg(self, index: int, name: Optional[str] = None, default: Any = UNDEF) -> Any:
        if name is not None and name in self.named:
            return self.named[name]
        if index is not None and index < len(self.positional):
            return self.positional[index]
        return default

    def number(self, index: Optional[int], name: Optional[str], default: float) -> float:
        value = self.arg(index, name)
        return float(value) if is_number(value) else default

    def flag(self, index: Optional[int], name: Optional[str], default: bool = False) -> bool:
        value = self.arg(index, name)
        return default if value is UNDEF else truthy(value)

    def special(self, name: str) -> Any:
        return self.evaluator.context.lookup_special(name, self.position)

    def fragments(self) -> dict[str, float]:
        """Resolved ``$fn``, ``$fa`` and ``$fs`` for curved primitives."""
        result = {}
        for name, default in (("$fn", 0.0), ("$fa", 12.0), ("$fs", 2.0)):
            value = self.special(name)
            result[name] = float(value) if is_number(value) else default
        return result

    def type_error(self, message: str) -> EvalError:
        return EvalError(EvalErrorKind.TYPE_MISMATCH, f"{self.name}(): {message}", self.position)

    # --- Children ---

    def child_groups(self) -> list[Geometry]:
        """Evaluate the child statements, one geometry per statement that produced any."""
        groups = self.evaluator.execute_groups(self.statements, self.scope.child_scope(),
                                               self.children)
        return [g for g in (self.union(group) for group in groups) if g is not None]

    def child_geometries(self) -> list[Geometry]:
        """Evaluate the child statements into a flat list of geometries."""
        groups = self.evaluator.execute_groups(self.statements, self.scope.child_scope(),
                                               self.children)
        return [g for group in groups for g in group]

    # --- Backend ---

    def backend_call(self, method: str, *args) -> Any:
        return self.evaluator.backend_call(method, *args, position=self.position,
                                           label=self.name)

    def union(self, geometries: list[Geometry]) -> Optional[Geometry]:
        return self.evaluator.union(geometries, self.position, self.name)


ModuleHandler = Callable[[ModuleCall], list[Geometry]]

BUILTIN_MODULES: dict[str, ModuleHandler] = {}


def builtin_module(name: str):
    """Register a handler in :data:`BUILTIN_MODULES`."""
    def register(func: ModuleHandler) -> ModuleHandler:
        BUILTIN_MODULES[name] = func
        return func
    return register


def _vector(value: Any, size: int, fill: float) -> Optional[list[float]]:
    """Pad or cut a number vector to ``size`` entries. None if not a number vector."""
    if not is_number_vector(value):
        return None
    result = [float(v) for v in value[:size]]
    return result + [fill] * (size - len(result))


def _primitive(call: ModuleCall, kind: str, params: dict[str, Any]) -> list[Geometry]:
    if call.statements:
        logger.warning("%s(): child statements ignored", call.name)
    return [Geometry(call.backend_call("create_primitive", kind, params))]


# --- 3D primitives ---

@builtin_module("cube")
def _cube(call: ModuleCall) -> list[Geometry]:
    size = call.arg(0, "size", 1.0)
    if is_number(size):
        dims = [float(size)] * 3
    else:
        dims = _vector(size, 3, 1.0)
        if dims is None:
            logger.warning("cube(): invalid size %s, using 1", type_name(size))
            dims = [1.0, 1.0, 1.0]
    return _primitive(call, "cube", {"size": dims, "center": call.flag(1, "center")})


def _radius(call: ModuleCall, r_name: str, d_name: str, index: Optional[int],
            default: Optional[float]) -> Optional[float]:
    d = call.arg(None, d_name)
    if is_number(d):
        return float(d) / 2.0
    r = call.arg(index, r_name)
    if is_number(r):
        return float(r)
    return default


@builtin_module("sphere")
def _sphere(call: ModuleCall) -> list[Geometry]:
    params = {"r": _radius(call, "r", "d", 0, 1.0)}
    params.update(call.fragments())
    return _primitive(call, "sphere", params)


@builtin_module("cylinder")
def _cylinder(call: ModuleCall) -> list[Geometry]:
    h = call.number(0, "h", 1.0)
    r = _radius(call, "r", "d", None, None)
    r1 = _radius(call, "r1", "d1", 1, None)
    r2 = _radius(call, "r2", "d2", 2, None)
    if r1 is None:
        r1 = r if r is not None else 1.0
    if r2 is None:
        r2 = r if r is not None else 1.0
    params = {"h": h, "r1": r1, "r2": r2, "center": call.flag(3, "center")}
    params.update(call.fragments())
    return _primitive(call, "cylinder", params)


@builtin_module("polyhedron")
def _polyhedron(call: ModuleCall) -> list[Geometry]:
    points = call.arg(0, "points")
    faces = call.arg(1, "faces")
    if faces is UNDEF:
        faces = call.arg(None, "triangles")
    if not isinstance(points, list):
        raise call.type_error(f"points must be a vector, got {type_name(points)}")
    if not isinstance(faces, list):
        raise call.type_error(f"faces must be a vector, got {type_name(faces)}")
    params = {"points": points, "faces": faces, "convexity": call.number(2, "convexity", 1.0)}
    return _primitive(call, "polyhedron", params)


# --- 2D primitives ---

@builtin_module("square")
def _square(call: ModuleCall) -> list[Geometry]:
    size = call.arg(0, "size", 1.0)
    if is_number(size):
        dims = [float(size)] * 2
    else:
        dims = _vector(size, 2, 1.0)
        if dims is None:
            logger.warning("square(): invalid size %s, using 1", type_name(size))
            dims = [1.0, 1.0]
    return _primitive(call, "square", {"size": dims, "center": call.flag(1, "center")})


@builtin_module("circle")
def _circle(call: ModuleCall) -> list[Geometry]:
    params = {"r": _radius(call, "r", "d", 0, 1.0)}
    params.update(call.fragments())
    return _primitive(call, "circle", params)


@builtin_module("polygon")
def _polygon(call: ModuleCall) -> list[Geometry]:
    points = call.arg(0, "points")
    if not isinstance(points, list):
        raise call.type_error(f"points must be a vector, got {type_name(points)}")
    paths = call.arg(1, "paths")
    params = {
        "points": points,
        "paths": None if paths is UNDEF else paths,
        "convexity": call.number(2, "convexity", 1.0),
    }
    return _primitive(call, "polygon", params)


@builtin_module("text")
def _text(call: ModuleCall) -> list[Geometry]:
    text = call.arg(0, "text", "")
    params = {
        "text": text if isinstance(text, str) else "",
        "size": call.number(1, "size", 10.0),
        "font": call.arg(2, "font", "Liberation Sans"),
        "halign": call.arg(3, "halign", "left"),
        "valign": call.arg(4, "valign", "baseline"),
        "spacing": call.number(5, "spacing", 1.0),
        "direction": call.arg(6, "direction", "ltr"),
        "language": call.arg(7, "language", "en"),
        "script": call.arg(8, "script", "latin"),
    }
    params.update(call.fragments())
    return _primitive(call, "text", params)


@builtin_module("import")
def _import(call: ModuleCall) -> list[Geometry]:
    file = call.arg(0, "file")
    if not isinstance(file, str):
        raise call.type_error(f"file must be a string, got {type_name(file)}")
    params = {
        "file": file,
        "convexity": call.number(1, "convexity", 1.0),
        "layer": call.arg(2, "layer", ""),
        "center": call.flag(None, "center"),
    }
    return _primitive(call, "import", params)


# --- Transforms ---

def _transform(call: ModuleCall, matrix: mx.Matrix) -> list[Geometry]:
    target = call.union(call.child_groups())
    if target is None:
        return []
    handle = call.backend_call("transform", target.handle, matrix)
    return [Geometry(handle, target.annotations)]


@builtin_module("translate")
def _translate(call: ModuleCall) -> list[Geometry]:
    v = _vector(call.arg(0, "v"), 3, 0.0)
    if v is None:
        logger.warning("translate(): invalid vector %s, ignored", type_name(call.arg(0, "v")))
        v = [0.0, 0.0, 0.0]
    return _transform(call, mx.translation(*v))


@builtin_module("rotate")
def _rotate(call: ModuleCall) -> list[Geometry]:
    a = call.arg(0, "a")
    v = call.arg(1, "v")
    if is_number(a):
        axis = _vector(v, 3, 0.0)
        if axis is not None and any(axis):
            matrix = mx.rotation_axis(float(a), axis)
        else:
            matrix = mx.rotation_xyz(0.0, 0.0, float(a))
    else:
        angles = _vector(a, 3, 0.0)
        if angles is None:
            logger.warning("rotate(): invalid angle %s, ignored", type_name(a))
            angles = [0.0, 0.0, 0.0]
        matrix = mx.rotation_xyz(*angles)
    return _transform(call, matrix)


@builtin_module("scale")
def _scale(call: ModuleCall) -> list[Geometry]:
    v = call.arg(0, "v")
    if is_number(v):
        factors = [float(v)] * 3
    else:
        factors = _vector(v, 3, 1.0)
        if factors is None:
            logger.warning("scale(): invalid vector %s, ignored", type_name(v))
            factors = [1.0, 1.0, 1.0]
    return _transform(call, mx.scaling(*factors))


@builtin_module("mirror")
def _mirror(call: ModuleCall) -> list[Geometry]:
    normal = _vector(call.arg(0, "v"), 3, 0.0)
    if normal is None:
        normal = [1.0, 0.0, 0.0]
    return _transform(call, mx.mirroring(normal))


@builtin_module("multmatrix")
def _multmatrix(call: ModuleCall) -> list[Geometry]:
    m = call.arg(0, "m")
    if not is_matrix(m) or len(m) not in (3, 4) or len(m[0]) not in (3, 4):
        raise call.type_error("m must be a 3x4 or 4x4 matrix")
    matrix = mx.identity()
    for i, row in enumerate(m[:4]):
        for j, value in enumerate(row[:4]):
            matrix[i][j] = float(value)
    return _transform(call, matrix)


# --- Color ---

def _parse_color(value: Any) -> Any:
    if is_number_vector(value) and len(value) in (3, 4):
        rgba = [float(v) for v in value]
        return rgba if len(rgba) == 4 else rgba + [1.0]
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("#") and len(text) in (4, 5, 7, 9):
            digits = text[1:]
            if len(digits) in (3, 4):
                digits = "".join(ch * 2 for ch in digits)
            try:
                channels = [int(digits[i:i + 2], 16) / 255.0 for i in range(0, len(digits), 2)]
            except ValueError:
                return text.lower()
            return channels if len(channels) == 4 else channels + [1.0]
        return text.lower()
    return None


@builtin_module("color")
def _color(call: ModuleCall) -> list[Geometry]:
    color = _parse_color(call.arg(0, "c"))
    alpha = call.arg(1, "alpha")
    geometries = call.child_geometries()
    if color is None:
        logger.warning("color(): unsupported color value, ignored")
        return geometries
    if isinstance(color, list) and is_number(alpha):
        color[3] = float(alpha)
    result = []
    for g in geometries:
        g = g.annotate("color", color)
        if isinstance(color, str) and is_number(alpha):
            g = g.annotate("alpha", float(alpha))
        result.append(g)
    return result


# --- Combinators ---

@builtin_module("union")
def _union(call: ModuleCall) -> list[Geometry]:
    result = call.union(call.child_groups())
    return [] if result is None else [result]


def _combine(call: ModuleCall, op: str) -> list[Geometry]:
    groups = call.child_groups()
    if len(groups) <= 1:
        return groups
    return [Geometry(call.backend_call("boolean", op, [g.handle for g in groups]))]


@builtin_module("difference")
def _difference(call: ModuleCall) -> list[Geometry]:
    return _combine(call, "difference")


@builtin_module("intersection")
def _intersection(call: ModuleCall) -> list[Geometry]:
    return _combine(call, "intersection")


@builtin_module("hull")
def _hull(call: ModuleCall) -> list[Geometry]:
    geometries = call.child_geometries()
    if not geometries:
        return []
    return [Geometry(call.backend_call("hull", [g.handle for g in geometries]))]


@builtin_module("minkowski")
def _minkowski(call: ModuleCall) -> list[Geometry]:
    groups = call.child_groups()
    if not groups:
        return []
    result = groups[0].handle
    for g in groups[1:]:
        result = call.backend_call("minkowski", result, g.handle)
    return [Geometry(result)] if len(groups) > 1 else groups


@builtin_module("group")
@builtin_module("render")
def _group(call: ModuleCall) -> list[Geometry]:
    return call.child_geometries()


# --- Extrusions ---

@builtin_module("linear_extrude")
def _linear_extrude(call: ModuleCall) -> list[Geometry]:
    target = call.union(call.child_groups())
    if target is None:
        return []
    height = call.number(0, "height", math.nan)
    if math.isnan(height):
        height = call.number(None, "h", 100.0)
    twist = call.number(None, "twist", 0.0)
    scale = call.arg(None, "scale", 1.0)
    if is_number(scale):
        scale = float(scale)
    else:
        scale = _vector(scale, 2, 1.0) or 1.0
    slices = call.arg(None, "slices")
    if is_number(slices):
        slices = max(int(slices), 1)
    else:
        fn = call.fragments()["$fn"]
        slices = max(int(fn), 1) if fn > 0 else 1
    handle = call.backend_call("extrude_linear", target.handle, height, twist, scale, slices)
    if call.flag(None, "center"):
        handle = call.backend_call("transform", handle, mx.translation(0.0, 0.0, -height / 2.0))
    return [Geometry(handle, target.annotations)]


@builtin_module("rotate_extrude")
def _rotate_extrude(call: ModuleCall) -> list[Geometry]:
    target = call.union(call.child_groups())
    if target is None:
        return []
    angle = call.number(None, "angle", 360.0)
    frags = call.fragments()
    if frags["$fn"] > 0:
        segments = max(int(frags["$fn"]), 3)
    else:
        fa = frags["$fa"] if frags["$fa"] > 0 else 12.0
        segments = max(int(math.ceil(abs(angle) / fa)), 5)
    handle = call.backend_call("extrude_rotate", target.handle, angle, segments)
    return [Geometry(handle, target.annotations)]
