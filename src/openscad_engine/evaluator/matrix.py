"""4x4 homogeneous transformation matrices as nested lists.

A matrix is a list of four row vectors. Angles are in degrees.
"""
from __future__ import annotations
import math

from .builtins import cos_degrees, sin_degrees

Matrix = list[list[float]]


def identity() -> Matrix:
    return [[1.0, 0.0, 0.0, 0.0],
            [0.0, 1.0, 0.0, 0.0],
            [0.0, 0.0, 1.0, 0.0],
            [0.0, 0.0, 0.0, 1.0]]


def multiply(a: Matrix, b: Matrix) -> Matrix:
    return [[sum(a[i][k] * b[k][j] for k in range(4)) for j in range(4)] for i in range(4)]


def translation(dx: float, dy: float, dz: float) -> Matrix:
    return [[1.0, 0.0, 0.0, dx],
            [0.0, 1.0, 0.0, dy],
            [0.0, 0.0, 1.0, dz],
            [0.0, 0.0, 0.0, 1.0]]


def scaling(sx: float, sy: float, sz: float) -> Matrix:
    return [[sx, 0.0, 0.0, 0.0],
            [0.0, sy, 0.0, 0.0],
            [0.0, 0.0, sz, 0.0],
            [0.0, 0.0, 0.0, 1.0]]


def rotation_axis(angle: float, axis: list[float]) -> Matrix:
    """Rotation by ``angle`` around an arbitrary axis through the origin.

    A zero-length axis yields the identity.
    """
    m = math.sqrt(sum(c * c for c in axis))
    if m == 0:
        return identity()
    ux, uy, uz = (c / m for c in axis)
    cang = cos_degrees(angle)
    sang = sin_degrees(angle)
    cmin = 1.0 - cang
    return [[cang + ux * ux * cmin, ux * uy * cmin - uz * sang, ux * uz * cmin + uy * sang, 0.0],
            [uy * ux * cmin + uz * sang, cang + uy * uy * cmin, uy * uz * cmin - ux * sang, 0.0],
            [uz * ux * cmin - uy * sang, uz * uy * cmin + ux * sang, cang + uz * uz * cmin, 0.0],
            [0.0, 0.0, 0.0, 1.0]]


def rotation_xyz(ax: float, ay: float, az: float) -> Matrix:
    """Rotate about X, then Y, then Z, as ``rotate([ax, ay, az])`` does."""
    rx = rotation_axis(ax, [1.0, 0.0, 0.0])
    ry = rotation_axis(ay, [0.0, 1.0, 0.0])
    rz = rotation_axis(az, [0.0, 0.0, 1.0])
    return multiply(rz, multiply(ry, rx))


def mirroring(normal: list[float]) -> Matrix:
    """Reflection through the plane through the origin with the given normal."""
    m = math.sqrt(sum(c * c for c in normal))
    if m == 0:
        return identity()
    n = [c / m for c in normal]
    result = identity()
    for i in range(3):
        for j in range(3):
            result[i][j] -= 2.0 * n[i] * n[j]
    return result
