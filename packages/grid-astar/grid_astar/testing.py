"""Helpers for building small grids by hand, without geometry.

Used by the test suites and handy for quick experiments in a REPL.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from grid_astar import vec
from grid_astar.builder import GridBuilder
from grid_astar.cell import Cell
from grid_astar.geometry import GeometryQuery
from grid_astar.grid import Grid
from grid_astar.types import BBox, IntVector2
from grid_astar.vec import Vec3


@dataclass(eq=False)
class FakeAgent:
    """Minimal actor: anything with a position can occupy cells."""

    name: str
    position: Vec3 = vec.ZERO


def make_builder(
    width: int,
    height: int,
    cell_size: float = 1.0,
    identifier: str = "main",
    step_size: float = 12.0,
) -> GridBuilder:
    """Builder whose bounds cover ``width`` x ``height`` cells from the origin."""
    bounds = BBox((0.0, 0.0, -1.0), (width * cell_size, height * cell_size, 1.0))
    return GridBuilder(
        identifier=identifier,
        cell_size=cell_size,
        step_size=step_size,
    ).with_bounds(vec.ZERO, bounds)


def add_flat_cell(
    grid: Grid,
    coordinate: IntVector2,
    z: float = 0.0,
    tags: Iterable[str] = (),
) -> Cell:
    """Add a level cell at ``coordinate`` and return it."""
    cell = Cell(grid, grid.center_of(coordinate, z), (z, z, z, z), tags, coordinate)
    grid.add_cell(cell)
    return cell


def make_flat_grid(
    width: int,
    height: int,
    cell_size: float = 1.0,
    z: float = 0.0,
    identifier: str = "main",
    holes: Iterable[tuple[int, int]] = (),
    geometry: GeometryQuery | None = None,
) -> Grid:
    """A ``width`` x ``height`` field of level cells, minus ``holes``."""
    grid = Grid(make_builder(width, height, cell_size, identifier), geometry)
    skip = set(holes)
    for x in range(width):
        for y in range(height):
            if (x, y) not in skip:
                add_flat_cell(grid, IntVector2(x, y), z)
    return grid


def make_height_grid(
    heights: Sequence[Sequence[float | None]],
    cell_size: float = 1.0,
    identifier: str = "main",
    step_size: float = 12.0,
) -> Grid:
    """Level cells at per-coordinate heights.

    ``heights[y][x]`` is the surface height at coordinate (x, y); ``None``
    leaves the coordinate empty. Neighbouring cells whose heights differ by
    more than ``step_size`` are not connected.
    """
    rows = len(heights)
    cols = max((len(row) for row in heights), default=0)
    grid = Grid(make_builder(cols, rows, cell_size, identifier, step_size))
    for y, row in enumerate(heights):
        for x, z in enumerate(row):
            if z is not None:
                add_flat_cell(grid, IntVector2(x, y), z)
    return grid


def cell_at(grid: Grid, x: int, y: int) -> Cell:
    """The top cell at coordinate (x, y). Raises KeyError when empty."""
    stack = grid.cells.get(IntVector2(x, y))
    if not stack:
        raise KeyError(f"No cell at {x},{y}")
    return stack[0]
