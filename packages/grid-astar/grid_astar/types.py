"""Shared value types and errors for grid-astar."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Protocol

from grid_astar import vec
from grid_astar.vec import Vec3


@dataclass(frozen=True, slots=True, order=True)
class IntVector2:
    """Integer grid coordinate. Hashable, usable as a dict key."""

    x: int
    y: int

    @classmethod
    def from_position(cls, x: float, y: float, divide_by: float = 1.0) -> IntVector2:
        """Round ``x / divide_by`` and ``y / divide_by`` to the nearest integers, halves up."""
        return cls(math.floor(x / divide_by + 0.5), math.floor(y / divide_by + 0.5))

    def __add__(self, other: IntVector2) -> IntVector2:
        return IntVector2(self.x + other.x, self.y + other.y)

    def __sub__(self, other: IntVector2) -> IntVector2:
        return IntVector2(self.x - other.x, self.y - other.y)

    def __iter__(self) -> Iterator[int]:
        yield self.x
        yield self.y

    def __str__(self) -> str:
        return f"{self.x},{self.y}"

    def with_x(self, x: int) -> IntVector2:
        return IntVector2(x, self.y)

    def with_y(self, y: int) -> IntVector2:
        return IntVector2(self.x, y)

    def distance_squared(self, other: IntVector2) -> int:
        dx = self.x - other.x
        dy = self.y - other.y
        return dx * dx + dy * dy


@dataclass(frozen=True, slots=True)
class BBox:
    """Axis-aligned bounding box."""

    mins: Vec3
    maxs: Vec3

    def __post_init__(self) -> None:
        if any(lo > hi for lo, hi in zip(self.mins, self.maxs)):
            raise ValueError(f"BBox mins {self.mins} exceed maxs {self.maxs}")

    @classmethod
    def from_center(cls, center: Vec3, half_extents: Vec3) -> BBox:
        return cls(vec.sub(center, half_extents), vec.add(center, half_extents))

    @property
    def center(self) -> Vec3:
        return vec.scale(vec.add(self.mins, self.maxs), 0.5)

    @property
    def size(self) -> Vec3:
        return vec.sub(self.maxs, self.mins)

    @property
    def corners(self) -> list[Vec3]:
        return [
            (x, y, z)
            for x in (self.mins[0], self.maxs[0])
            for y in (self.mins[1], self.maxs[1])
            for z in (self.mins[2], self.maxs[2])
        ]

    def contains(self, point: Vec3, tolerance: float = 0.0) -> bool:
        return all(
            lo - tolerance <= p <= hi + tolerance
            for p, lo, hi in zip(point, self.mins, self.maxs)
        )

    def overlaps(self, other: BBox) -> bool:
        return all(
            a_lo <= b_hi and b_lo <= a_hi
            for a_lo, a_hi, b_lo, b_hi in zip(self.mins, self.maxs, other.mins, other.maxs)
        )

    def translate(self, offset: Vec3) -> BBox:
        return BBox(vec.add(self.mins, offset), vec.add(self.maxs, offset))

    def expand(self, amount: float) -> BBox:
        pad = (amount, amount, amount)
        return BBox(vec.sub(self.mins, pad), vec.add(self.maxs, pad))

    def rotated(self, yaw: float) -> BBox:
        """Smallest axis-aligned box enclosing this box rotated around the origin."""
        if yaw == 0.0:
            return self
        points = [vec.rotate_yaw(c, yaw) for c in self.corners]
        mins = tuple(min(p[i] for p in points) for i in range(3))
        maxs = tuple(max(p[i] for p in points) for i in range(3))
        return BBox(mins, maxs)  # type: ignore[arg-type]

    def contains_rotated(self, origin: Vec3, point: Vec3, yaw: float, tolerance: float = 0.01) -> bool:
        """Whether ``point`` lies inside this box placed at ``origin`` and rotated by ``yaw``."""
        local = vec.rotate_yaw(vec.sub(point, origin), -yaw)
        return self.contains(local, tolerance)

    def contains_cylinder(self, origin: Vec3, point: Vec3, yaw: float) -> bool:
        """Whether ``point`` lies inside the (possibly squished) cylinder inscribed in this box."""
        local = vec.rotate_yaw(vec.sub(point, origin), -yaw)
        cx, cy, _ = self.center
        rx = (self.maxs[0] - self.mins[0]) / 2.0
        ry = (self.maxs[1] - self.mins[1]) / 2.0
        if rx <= 0.0 or ry <= 0.0:
            return False
        dx = local[0] - cx
        dy = local[1] - cy
        return (dx * dx) / (rx * rx) + (dy * dy) / (ry * ry) <= 1.0


class PathStatus(Enum):
    """Outcome of a path search."""

    FOUND = "found"
    PARTIAL = "partial"
    UNREACHABLE = "unreachable"
    CANCELLED = "cancelled"
    INVALID = "invalid"


class Actor(Protocol):
    """Anything that occupies cells or follows paths."""

    position: Vec3


class InvalidCellError(ValueError):
    """Raised when cell vertices violate the grid's standability limits."""


class HeapOverflowError(OverflowError):
    """Raised when adding past a PriorityHeap's fixed capacity."""


class SnapshotError(Exception):
    """Raised on restore failures (version mismatch, broken connection index)."""


class GeometryRequiredError(RuntimeError):
    """Raised when an operation needs a geometry collaborator and the grid has none."""


class GridNotFoundError(KeyError):
    """Raised when looking up an identifier that is not registered."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Grid {identifier!r} is not registered")


def max_cell_height(cell_size: float, standable_angle: float, step_size: float) -> float:
    """Largest corner spread a cell may have: the standable slope or a step."""
    return max(cell_size * math.tan(math.radians(standable_angle)), step_size)
