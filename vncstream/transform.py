"""Output transforms: matrices, dimensions and damage regions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable

FIXED_ONE = 1 << 16
"""The value 1.0 in 16.16 fixed point."""

Matrix = tuple[tuple[int, int, int], tuple[int, int, int], tuple[int, int, int]]


class Transform(IntEnum):
    """Buffer transforms, numbered like Wayland output transforms."""

    NORMAL = 0
    ROT_90 = 1
    ROT_180 = 2
    ROT_270 = 3
    FLIPPED = 4
    FLIPPED_90 = 5
    FLIPPED_180 = 6
    FLIPPED_270 = 7


@dataclass(frozen=True)
class Box:
    """A rectangle spanning [x1, x2) horizontally and [y1, y2) vertically."""

    x1: int
    y1: int
    x2: int
    y2: int


_ROTATED = frozenset(
    {Transform.ROT_90, Transform.ROT_270, Transform.FLIPPED_90, Transform.FLIPPED_270}
)


def is_transform_90_degrees(transform: int) -> bool:
    """Return True if the transform swaps width and height."""
    return Transform(transform) in _ROTATED


def transform_to_matrix(transform: int, width: int, height: int) -> Matrix:
    """Return the inverse of ``transform`` as a 3x3 fixed-point matrix.

    The matrix maps points of the transformed image back onto the source.
    """
    f = FIXED_ONE
    w = width * f
    h = height * f
    matrices: dict[Transform, Matrix] = {
        Transform.NORMAL: ((f, 0, 0), (0, f, 0), (0, 0, f)),
        Transform.ROT_90: ((0, f, 0), (-f, 0, h), (0, 0, f)),
        Transform.ROT_180: ((-f, 0, w), (0, -f, h), (0, 0, f)),
        Transform.ROT_270: ((0, -f, w), (f, 0, 0), (0, 0, f)),
        Transform.FLIPPED: ((-f, 0, w), (0, f, 0), (0, 0, f)),
        Transform.FLIPPED_90: ((0, f, 0), (f, 0, 0), (0, 0, f)),
        Transform.FLIPPED_180: ((f, 0, 0), (0, -f, h), (0, 0, f)),
        Transform.FLIPPED_270: ((0, -f, w), (-f, 0, h), (0, 0, f)),
    }
    return matrices[Transform(transform)]


def transform_dimensions(transform: int, width: int, height: int) -> tuple[int, int]:
    """Return the (width, height) of a buffer after the transform."""
    if is_transform_90_degrees(transform):
        return height, width
    return width, height


def _transform_box(box: Box, transform: Transform, width: int, height: int) -> Box:
    if transform is Transform.NORMAL:
        return Box(box.x1, box.y1, box.x2, box.y2)
    if transform is Transform.ROT_90:
        return Box(height - box.y2, box.x1, height - box.y1, box.x2)
    if transform is Transform.ROT_180:
        return Box(width - box.x2, height - box.y2, width - box.x1, height - box.y1)
    if transform is Transform.ROT_270:
        return Box(box.y1, width - box.x2, box.y2, width - box.x1)
    if transform is Transform.FLIPPED:
        return Box(width - box.x2, box.y1, width - box.x1, box.y2)
    if transform is Transform.FLIPPED_90:
        return Box(box.y1, box.x1, box.y2, box.x2)
    if transform is Transform.FLIPPED_180:
        return Box(box.x1, height - box.y2, box.x2, height - box.y1)
    return Box(height - box.y2, width - box.x2, height - box.y1, width - box.x1)


def transform_region(
    boxes: Iterable[Box], transform: int, width: int, height: int
) -> list[Box]:
    """Map the boxes of a region in a ``width`` x ``height`` buffer through
    the transform."""
    kind = Transform(transform)
    return [_transform_box(box, kind, width, height) for box in boxes]