"""grid-astar - Navigation grids over 3D terrain with A* path search."""
from __future__ import annotations

from grid_astar.types import (
    Actor,
    BBox,
    GeometryRequiredError,
    GridNotFoundError,
    HeapOverflowError,
    IntVector2,
    InvalidCellError,
    PathStatus,
    SnapshotError,
)
from grid_astar.heap import HeapItem, PriorityHeap
from grid_astar.geometry import BoxWorld, GeometryQuery, Solid, TraceFilter, TraceResult
from grid_astar.cell import Cell, CellConnection, CellTags
from grid_astar.grid import Grid
from grid_astar.builder import GridBuilder, JumpDefinition
from grid_astar.path import PathBuilder, PathResult, Waypoint
from grid_astar.runner import PathRunner, PathTask
from grid_astar.registry import GridRegistry

__all__ = [
    "Actor",
    "BBox",
    "GeometryRequiredError",
    "GridNotFoundError",
    "HeapOverflowError",
    "IntVector2",
    "InvalidCellError",
    "PathStatus",
    "SnapshotError",
    "HeapItem",
    "PriorityHeap",
    "BoxWorld",
    "GeometryQuery",
    "Solid",
    "TraceFilter",
    "TraceResult",
    "Cell",
    "CellConnection",
    "CellTags",
    "Grid",
    "GridBuilder",
    "JumpDefinition",
    "PathBuilder",
    "PathResult",
    "Waypoint",
    "PathRunner",
    "PathTask",
    "GridRegistry",
]
