"""Geometry backend interface.

The evaluator computes no geometry itself. Every primitive, transform,
boolean and extrusion is delegated to a :class:`GeometryBackend`, which
returns opaque handles. A backend signals failure by raising
:class:`~openscad_engine.errors.BackendError`.
"""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)

Matrix = list[list[float]]

BOOLEAN_OPS = ("union", "difference", "intersection")


class GeometryBackend(ABC):
    """Abstract geometry kernel used by the evaluator."""

    @abstractmethod
    def create_primitive(self, kind: str, params: dict[str, Any]) -> Any:
        """Create a primitive such as ``cube`` or ``circle``.

        ``params`` holds the resolved arguments. Primitives with curved
        surfaces also receive ``$fn``, ``$fa`` and ``$fs``.
        """

    @abstractmethod
    def transform(self, handle: Any, matrix: Matrix) -> Any:
        """Apply a 4x4 row-major affine matrix."""

    @abstractmethod
    def boolean(self, op: str, handles: list[Any]) -> Any:
        """Combine handles with ``union``, ``difference`` or ``intersection``.

        For difference, the first handle is the base and the rest are subtracted.
        """

    @abstractmethod
    def hull(self, handles: list[Any]) -> Any:
        """Convex hull of all handles."""

    @abstractmethod
    def minkowski(self, a: Any, b: Any) -> Any:
        """Minkowski sum of two handles."""

    @abstractmethod
    def extrude_linear(self, handle: Any, height: float, twist: float,
                       scale: Any, slices: int) -> Any:
        """Extrude a 2D handle along +Z."""

    @abstractmethod
    def extrude_rotate(self, handle: Any, angle: float, segments: int) -> Any:
        """Revolve a 2D handle around the Z axis."""


class RecordingBackend(GeometryBackend):
    """Backend that records every call and returns sequential integer handles.

    Used by the tests and by the command line ``run`` command, where only
    the call sequence matters.

    Attributes:
        calls: ``(method, args)`` tuples in call order. ``args`` is a tuple of
            the positional arguments the method received.
    """

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self._next_handle = 0

    def _record(self, method: str, *args) -> int:
        self.calls.append((method, args))
        handle = self._next_handle
        self._next_handle += 1
        logger.debug("%s%r -> %d", method, args, handle)
        return handle

    def methods(self) -> list[str]:
        """Names of the recorded calls, in order."""
        return [method for method, _ in self.calls]

    def create_primitive(self, kind, params):
        return self._record("create_primitive", kind, params)

    def transform(self, handle, matrix):
        return self._record("transform", handle, matrix)

    def boolean(self, op, handles):
        return self._record("boolean", op, list(handles))

    def hull(self, handles):
        return self._record("hull", list(handles))

    def minkowski(self, a, b):
        return self._record("minkowski", a, b)

    def extrude_linear(self, handle, height, twist, scale, slices):
        return self._record("extrude_linear", handle, height, twist, scale, slices)

    def extrude_rotate(self, handle, angle, segments):
        return self._record("extrude_rotate", handle, angle, segments)
