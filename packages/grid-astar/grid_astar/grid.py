"""Grid - sparse coordinate -> cell stack storage with lookups and edits."""
from __future__ import annotations

import logging
import math
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from grid_astar import settings, vec
from grid_astar.cell import Cell
from grid_astar.geometry import GeometryQuery, TraceFilter
from grid_astar.types import BBox, GeometryRequiredError, IntVector2, SnapshotError, max_cell_height
from grid_astar.vec import Vec3

if TYPE_CHECKING:
    from grid_astar.builder import GridBuilder
    from grid_astar.path import PathBuilder

logger = logging.getLogger(__name__)

_SNAPSHOT_VERSION = 1
_PARABOLA_MAX_SAMPLES = 1024


class Grid:
    """Navigable cells keyed by integer 2D coordinate.

    Each coordinate holds a stack of cells ordered highest first, so floors
    and overhangs can share a footprint. Generation parameters come from the
    ``GridBuilder`` the grid was created with. ``geometry`` is only needed
    for generation phases and geometry-aware line of sight.
    """

    def __init__(self, builder: GridBuilder, geometry: GeometryQuery | None = None) -> None:
        self.settings = builder
        self.geometry = geometry
        self._cells: dict[IntVector2, list[Cell]] = {}
        self._count = 0
        self._max_height = max_cell_height(
            builder.cell_size, builder.standable_angle, builder.step_size
        )
        self._trace_filter = TraceFilter(
            world_only=builder.world_only,
            tags_to_include=tuple(builder.tags_to_include),
            tags_to_exclude=tuple(builder.tags_to_exclude),
        )
        bounds = builder.world_bounds
        self._origin = bounds.mins if bounds is not None else vec.ZERO

    def __repr__(self) -> str:
        return f"Grid({self.identifier!r}, cells={self._count})"

    # --- Settings ---

    @property
    def identifier(self) -> str:
        return self.settings.identifier

    @property
    def cell_size(self) -> float:
        return self.settings.cell_size

    @property
    def step_size(self) -> float:
        return self.settings.step_size

    @property
    def standable_angle(self) -> float:
        return self.settings.standable_angle

    @property
    def height_clearance(self) -> float:
        return self.settings.height_clearance

    @property
    def width_clearance(self) -> float:
        return self.settings.width_clearance

    @property
    def max_drop_height(self) -> float:
        return self.settings.max_drop_height

    @property
    def rotation(self) -> float:
        return self.settings.rotation

    @property
    def max_height(self) -> float:
        """Largest corner spread a cell may have."""
        return self._max_height

    @property
    def neighbour_tolerance(self) -> float:
        return max(self.settings.step_size, settings.NEIGHBOUR_TOLERANCE)

    @property
    def tolerance(self) -> float:
        if self.settings.grid_perfect:
            return self.settings.cell_size * settings.GRID_PERFECT_TOLERANCE
        return settings.TOLERANCE

    @property
    def trace_filter(self) -> TraceFilter:
        return self._trace_filter

    @property
    def origin(self) -> Vec3:
        return self._origin

    def require_geometry(self) -> GeometryQuery:
        if self.geometry is None:
            raise GeometryRequiredError(f"Grid {self.identifier!r} has no geometry attached")
        return self.geometry

    # --- Coordinates ---

    def coordinate_of(self, position: Vec3) -> IntVector2:
        half = self.cell_size / 2.0
        return IntVector2.from_position(
            position[0] - self._origin[0] - half,
            position[1] - self._origin[1] - half,
            self.cell_size,
        )

    def center_of(self, coordinate: IntVector2, z: float = 0.0) -> Vec3:
        half = self.cell_size / 2.0
        return (
            self._origin[0] + coordinate.x * self.cell_size + half,
            self._origin[1] + coordinate.y * self.cell_size + half,
            z,
        )

    def is_inside_bounds(self, point: Vec3) -> bool:
        bounds = self.settings.bounds
        if bounds is None:
            return True
        return bounds.contains_rotated(self.settings.position, point, self.rotation)

    def is_inside_cylinder(self, point: Vec3) -> bool:
        bounds = self.settings.bounds
        if bounds is None:
            return True
        return bounds.contains_cylinder(self.settings.position, point, self.rotation)

    # --- Lookups ---

    @property
    def cells(self) -> Mapping[IntVector2, list[Cell]]:
        return MappingProxyType(self._cells)

    @property
    def cell_count(self) -> int:
        return self._count

    def __len__(self) -> int:
        return self._count

    def __contains__(self, cell: object) -> bool:
        return isinstance(cell, Cell) and self.contains(cell)

    def contains(self, cell: Cell) -> bool:
        return any(c is cell for c in self._cells.get(cell.coordinate, ()))

    def all_cells(self) -> Iterator[Cell]:
        """Every cell, ordered by coordinate then from highest to lowest."""
        for coordinate in sorted(self._cells):
            yield from list(self._cells[coordinate])

    def get_cell(
        self,
        position: Vec3,
        find_nearest: bool = False,
        only_below: bool = True,
    ) -> Cell | None:
        """Find the cell under ``position``.

        With ``find_nearest`` an empty coordinate falls back to the 2D-nearest
        non-empty one. The fallback scans every coordinate of the grid, so
        keep it out of hot loops.
        """
        coordinate = self.coordinate_of(position)
        stack = self._cells.get(coordinate)
        if not stack:
            if not find_nearest or not self._cells:
                return None
            nearest = min(
                self._cells,
                key=lambda c: (c.distance_squared(coordinate), c.x, c.y),
            )
            stack = self._cells[nearest]

        if len(stack) == 1:
            return stack[0]

        if only_below:
            for cell in stack:
                if cell.bottom[2] - self.step_size < position[2]:
                    return cell
            return None

        return min(stack, key=lambda c: vec.distance_sq(c.position, position))

    def get_cell_at(self, coordinate: IntVector2, height: float) -> Cell | None:
        """Highest cell at ``coordinate`` that is not too far above ``height``."""
        for cell in self._cells.get(coordinate, ()):
            if cell.position[2] - self._max_height <= height:
                return cell
        return None

    def get_cell_in_area(self, position: Vec3, radius: float) -> Cell | None:
        """Nearest cell whose center lies within ``radius`` (2D) of ``position``."""
        center = self.coordinate_of(position)
        reach = int(math.ceil(radius / self.cell_size))
        best: Cell | None = None
        best_distance = math.inf
        for x in range(center.x - reach, center.x + reach + 1):
            for y in range(center.y - reach, center.y + reach + 1):
                for cell in self._cells.get(IntVector2(x, y), ()):
                    if vec.distance_2d(cell.position, position) > radius:
                        continue
                    distance = vec.distance(cell.position, position)
                    if distance < best_distance:
                        best, best_distance = cell, distance
        return best

    def find_outer_cells(self) -> list[Cell]:
        """Cells with fewer than 8 neighbours."""
        return [cell for cell in self.all_cells() if sum(1 for _ in cell.get_neighbours()) < 8]

    # --- Edits ---

    def add_cell(self, cell: Cell) -> bool:
        """Insert a cell into its coordinate stack.

        Returns False when the stack already holds a cell at the same height.
        """
        if cell.grid is not self:
            raise ValueError(f"{cell!r} belongs to another grid")
        stack = self._cells.setdefault(cell.coordinate, [])
        z = cell.position[2]
        for existing in stack:
            if abs(existing.position[2] - z) <= settings.TOLERANCE:
                return False
        index = 0
        while index < len(stack) and stack[index].position[2] > z:
            index += 1
        stack.insert(index, cell)
        cell.valid = True
        self._count += 1
        return True

    def remove_cell(self, cell: Cell, delete_connections: bool = True) -> bool:
        """Remove a cell. Without ``delete_connections`` edges into it are left dangling."""
        stack = self._cells.get(cell.coordinate)
        if not stack:
            return False
        for index, existing in enumerate(stack):
            if existing is cell:
                break
        else:
            return False
        if delete_connections:
            cell.unlink()
        del stack[index]
        if not stack:
            del self._cells[cell.coordinate]
        cell.valid = False
        self._count -= 1
        return True

    def remove_area(self, area: BBox, delete_connections: bool = True) -> int:
        """Remove every cell whose position lies inside ``area``. Returns the count."""
        doomed = [cell for cell in self.all_cells() if area.contains(cell.position, settings.TOLERANCE)]
        for cell in doomed:
            self.remove_cell(cell, delete_connections)
        return len(doomed)

    def occupy_area(self, area: BBox, occupied: bool = True) -> list[Cell]:
        """Set the occupied flag on every cell inside ``area``."""
        touched = [cell for cell in self.all_cells() if area.contains(cell.position, settings.TOLERANCE)]
        for cell in touched:
            cell.occupied = occupied
        return touched

    # --- Walkability ---

    def line_of_sight(self, start: Cell, end: Cell, path_creator: Any = None) -> bool:
        """Whether an agent can walk straight from ``start`` to ``end``.

        Every coordinate crossed by the segment must hold a cell connected to
        the previous one and not blocked by another agent. When geometry is
        attached, a clearance box swept between the two cells must not hit.
        """
        if start is end:
            return True
        steps = max(
            1,
            int(math.ceil(vec.distance_2d(start.position, end.position) / (self.cell_size / 2.0))),
        )
        previous = start
        for i in range(1, steps + 1):
            point = vec.lerp(start.position, end.position, i / steps)
            coordinate = self.coordinate_of(point)
            if coordinate == previous.coordinate:
                continue
            current = self.get_cell_at(coordinate, previous.position[2])
            if current is None or not previous.is_neighbour(current):
                return False
            if current.occupied and (path_creator is None or current.occupant is not path_creator):
                return False
            previous = current
        if previous != end:
            return False

        if self.geometry is not None and self.width_clearance > 0.0:
            half = self.width_clearance / 2.0
            top = max(self.height_clearance, self.step_size + 1.0)
            sweep = self.geometry.box(
                (-half, -half, self.step_size),
                (half, half, top),
                start.position,
                end.position,
                self._trace_filter,
            )
            if sweep.hit:
                return False
        return True

    def is_directly_walkable(self, start: Cell, end: Cell, with_connections: bool = True) -> bool:
        """Whether ``end`` is in line of sight of ``start`` or, with connections, of a cell it links to."""
        if self.line_of_sight(start, end):
            return True
        if not with_connections:
            return False
        for connection in start.connections:
            if connection.cell is end:
                return True
            if connection.cell.valid and self.line_of_sight(connection.cell, end):
                return True
        return False

    def trace_parabola(
        self,
        start: Vec3,
        horizontal_velocity: Vec3,
        vertical_speed: float,
        gravity: float,
        max_drop_height: float | None = None,
    ) -> Vec3:
        """Follow a ballistic arc from ``start`` until it hits geometry.

        Stops early once the arc falls ``max_drop_height`` below the start.
        Returns the landing (or last sampled) position.
        """
        geometry = self.require_geometry()
        floor = start[2] - (self.max_drop_height if max_drop_height is None else max_drop_height)
        speed = vec.length(horizontal_velocity)
        dt = (self.cell_size / 2.0) / speed if speed > 0.0 else 0.05
        previous = vec.add(start, (0.0, 0.0, settings.TOLERANCE))
        for sample in range(1, _PARABOLA_MAX_SAMPLES + 1):
            t = sample * dt
            point = (
                start[0] + horizontal_velocity[0] * t,
                start[1] + horizontal_velocity[1] * t,
                start[2] + vertical_speed * t - 0.5 * gravity * t * t,
            )
            result = geometry.ray(previous, point, self._trace_filter)
            if result.hit:
                return result.end_position
            if point[2] < floor:
                return point
            previous = point
        return previous

    # --- Generation phases ---

    def assign_edge_cells(self) -> list[Cell]:
        """Tag cells with fewer than 8 neighbours as ``"edge"``."""
        edges = self.find_outer_cells()
        for cell in edges:
            cell.tags.add(settings.EDGE_TAG)
        return edges

    def assign_droppable_cells(self) -> int:
        """Link edge cells to the first lower cell they can drop onto."""
        self.require_geometry()
        linked = 0
        for cell in self.all_cells():
            if not cell.tags.has(settings.EDGE_TAG):
                continue
            target = cell.get_first_valid_droppable(max_height_distance=self.max_drop_height)
            if target is None or cell.is_connected_to(target):
                continue
            cell.add_connection(target, settings.DROP_TAG)
            linked += 1
        return linked

    def assign_jumpable_cells(self) -> int:
        """Link edge cells to landings of every configured jump definition."""
        self.require_geometry()
        linked = 0
        for definition in self.settings.jump_definitions:
            for cell in self.all_cells():
                if not cell.tags.has(settings.EDGE_TAG):
                    continue
                for target in cell.get_valid_jumpables(definition, self.max_drop_height):
                    if cell.is_connected_to(target):
                        continue
                    cell.add_connection(target, definition.name)
                    linked += 1
        return linked

    # --- Searching ---

    def path_builder(self) -> PathBuilder:
        from grid_astar.path import PathBuilder

        return PathBuilder(self)

    # --- Snapshot ---

    def snapshot(self) -> dict[str, Any]:
        """Serialize settings, cells, tags and connections to a JSON-compatible dict.

        Cells are stored in ``all_cells()`` order and connections refer to
        them by index. Occupancy is transient and not stored.
        """
        ordered = list(self.all_cells())
        index_of = {id(cell): i for i, cell in enumerate(ordered)}
        cells: list[dict[str, Any]] = []
        for cell in ordered:
            tags = [tag for tag in cell.tags if tag != settings.OCCUPIED_TAG]
            connections = [
                [index_of[id(c.cell)], c.tag]
                for c in cell.connections
                if id(c.cell) in index_of
            ]
            cells.append({
                "position": list(cell.position),
                "coordinate": [cell.coordinate.x, cell.coordinate.y],
                "vertices": list(cell.vertices),
                "tag_count": len(tags),
                "tags": tags,
                "connection_count": len(connections),
                "connections": connections,
            })
        return {
            "version": _SNAPSHOT_VERSION,
            "settings": self.settings.to_dict(),
            "cell_count": len(cells),
            "cells": cells,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any], geometry: GeometryQuery | None = None) -> Grid:
        """Rebuild a grid from ``snapshot()`` output."""
        from grid_astar.builder import GridBuilder

        version = data.get("version")
        if version != _SNAPSHOT_VERSION:
            raise SnapshotError(
                f"Unsupported snapshot version {version!r}, expected {_SNAPSHOT_VERSION}"
            )
        try:
            builder = GridBuilder.from_dict(data["settings"])
            records = data["cells"]
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f"Malformed grid snapshot: {exc}") from exc
        if data.get("cell_count", len(records)) != len(records):
            raise SnapshotError(
                f"Snapshot declares {data.get('cell_count')} cells, holds {len(records)}"
            )

        grid = cls(builder, geometry)
        restored: list[Cell] = []
        for record in records:
            x, y = record["coordinate"]
            cell = Cell(
                grid,
                tuple(record["position"]),  # type: ignore[arg-type]
                record["vertices"],
                record.get("tags", ()),
                IntVector2(int(x), int(y)),
            )
            grid.add_cell(cell)
            restored.append(cell)

        for cell, record in zip(restored, records):
            for entry in record.get("connections", ()):
                index, tag = entry
                if not isinstance(index, int) or not 0 <= index < len(restored):
                    raise SnapshotError(
                        f"Connection index {index!r} out of range for {len(restored)} cells"
                    )
                cell.add_connection(restored[index], tag)

        logger.info("Restored grid %s with %d cells", grid.identifier, grid.cell_count)
        return grid
