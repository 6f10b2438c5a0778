"""Cell - one navigable tile of a Grid."""
from __future__ import annotations

import math
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Sequence

from grid_astar import settings, vec
from grid_astar.geometry import GeometryQuery, TraceFilter
from grid_astar.types import BBox, IntVector2, InvalidCellError
from grid_astar.vec import Vec3

if TYPE_CHECKING:
    from grid_astar.builder import JumpDefinition
    from grid_astar.grid import Grid

# Corner offsets in vertex order, in half-cell units.
CORNER_OFFSETS: tuple[tuple[int, int], ...] = ((-1, -1), (-1, 1), (1, -1), (1, 1))

# For each adjacent coordinate offset, pairs of (own vertex, other vertex)
# that sit on the same world-space corner.
SHARED_VERTICES: dict[tuple[int, int], tuple[tuple[int, int], ...]] = {
    (-1, -1): ((0, 3),),
    (-1, 0): ((1, 3), (0, 2)),
    (-1, 1): ((1, 2),),
    (0, -1): ((0, 1), (2, 3)),
    (0, 1): ((1, 0), (3, 2)),
    (1, -1): ((2, 1),),
    (1, 0): ((3, 1), (2, 0)),
    (1, 1): ((3, 0),),
}

_STEP_RAY_TOLERANCE = 0.01
_VERTICAL_ANGLE = 89.9


class CellTags:
    """Ordered set of string tags."""

    __slots__ = ("_tags",)

    def __init__(self, tags: Iterable[str] = ()) -> None:
        self._tags: list[str] = []
        for tag in tags:
            self.add(tag)

    def has(self, *tags: str) -> bool:
        """True if every given tag is present."""
        return all(tag in self._tags for tag in tags)

    def has_any(self, tags: Iterable[str]) -> bool:
        return any(tag in self._tags for tag in tags)

    def add(self, tag: str) -> None:
        if tag not in self._tags:
            self._tags.append(tag)

    def remove(self, tag: str) -> None:
        if tag in self._tags:
            self._tags.remove(tag)

    def clear(self) -> None:
        self._tags.clear()

    def __contains__(self, tag: object) -> bool:
        return tag in self._tags

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._tags))

    def __len__(self) -> int:
        return len(self._tags)

    def __repr__(self) -> str:
        return f"CellTags({self._tags!r})"


@dataclass(frozen=True, eq=False)
class CellConnection:
    """Directed edge to ``cell`` traversed with movement ``tag``."""

    cell: Cell
    tag: str = ""


class Cell:
    """A walkable square footprint with four corner heights.

    Vertices are absolute corner heights in the order (-x,-y), (-x,+y),
    (+x,-y), (+x,+y). Two cells are equal when they belong to the same grid
    and sit at the same position.
    """

    def __init__(
        self,
        grid: Grid,
        position: Vec3,
        vertices: Sequence[float],
        tags: Iterable[str] = (),
        coordinate: IntVector2 | None = None,
    ) -> None:
        if len(vertices) != 4:
            raise InvalidCellError(f"Cell needs 4 vertices, got {len(vertices)}")
        spread = max(vertices) - min(vertices)
        if spread > grid.max_height + settings.TOLERANCE:
            raise InvalidCellError(
                f"Cell at {position} has a corner spread of {spread:.3f}, "
                f"grid allows {grid.max_height:.3f}"
            )
        self.grid = grid
        self.position: Vec3 = (float(position[0]), float(position[1]), float(position[2]))
        self.coordinate = coordinate if coordinate is not None else grid.coordinate_of(self.position)
        self.vertices: tuple[float, float, float, float] = tuple(float(v) for v in vertices)  # type: ignore[assignment]
        self.tags = CellTags(tags)
        self.connections: list[CellConnection] = []
        self._incoming: list[CellConnection] = []
        self._occupant: weakref.ref[Any] | None = None
        self._occupant_position: Vec3 | None = None
        # Set by Grid.add_cell, cleared by Grid.remove_cell.
        self.valid = False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cell):
            return NotImplemented
        return self.grid is other.grid and self.position == other.position

    def __hash__(self) -> int:
        return hash((id(self.grid), self.position))

    def __repr__(self) -> str:
        return f"Cell({self.coordinate}, z={self.position[2]:.2f})"

    # --- Geometry ---

    @property
    def corners(self) -> list[Vec3]:
        half = self.grid.cell_size / 2.0
        x, y, _ = self.position
        return [
            (x + dx * half, y + dy * half, self.vertices[i])
            for i, (dx, dy) in enumerate(CORNER_OFFSETS)
        ]

    @property
    def height(self) -> float:
        return max(self.vertices) - min(self.vertices)

    @property
    def bottom(self) -> Vec3:
        return vec.with_z(self.position, min(self.vertices))

    @property
    def world_bounds(self) -> BBox:
        half = self.grid.width_clearance / 2.0
        x, y, z = self.position
        return BBox(
            (x - half, y - half, min(self.vertices)),
            (x + half, y + half, z + self.grid.height_clearance),
        )

    # --- Occupancy ---

    @property
    def occupied(self) -> bool:
        return settings.OCCUPIED_TAG in self.tags

    @occupied.setter
    def occupied(self, value: bool) -> None:
        if value:
            self.tags.add(settings.OCCUPIED_TAG)
        else:
            self.tags.remove(settings.OCCUPIED_TAG)

    @property
    def occupant(self) -> Any | None:
        """The agent recorded by ``set_occupant``, or None once it moved or is gone."""
        if self._occupant is None:
            return None
        agent = self._occupant()
        if agent is None or tuple(agent.position) != self._occupant_position:
            return None
        return agent

    def set_occupant(self, agent: Any) -> None:
        self._occupant = weakref.ref(agent)
        self._occupant_position = tuple(agent.position)  # type: ignore[assignment]

    def remove_occupant(self) -> None:
        self._occupant = None
        self._occupant_position = None

    def test_for_occupancy(self, tag: str = "") -> bool:
        """Whether the cell is blocked, probing dynamic geometry when nobody is recorded."""
        if self.occupant is not None:
            return self.occupied
        geometry = self.grid.geometry
        if geometry is None:
            return self.occupied
        bounds = self.world_bounds
        probe = TraceFilter(
            world_only=False,
            dynamic_only=True,
            tags_to_include=(tag,) if tag else (),
        )
        result = geometry.box(
            vec.sub(bounds.mins, self.position),
            vec.sub(bounds.maxs, self.position),
            self.position,
            self.position,
            probe,
        )
        return result.hit

    # --- Adjacency ---

    def is_neighbour(self, other: Cell) -> bool:
        """Whether ``other`` is adjacent and shares its touching corners.

        The same cell counts as its own neighbour. Other cells stacked at the
        same coordinate never do.
        """
        dx = other.coordinate.x - self.coordinate.x
        dy = other.coordinate.y - self.coordinate.y
        if dx < -1 or dx > 1 or dy < -1 or dy > 1:
            return False
        if other is self or other == self:
            return True
        if dx == 0 and dy == 0:
            return False
        tolerance = self.grid.neighbour_tolerance
        for own, theirs in SHARED_VERTICES[(dx, dy)]:
            if abs(self.vertices[own] - other.vertices[theirs]) > tolerance:
                return False
        return True

    def get_neighbours(self, ignore_height: bool = False) -> Iterator[Cell]:
        """Yield height-compatible adjacent cells, scanning the 8 offsets in fixed order."""
        height = math.inf if ignore_height else self.position[2]
        for y in (-1, 0, 1):
            for x in (-1, 0, 1):
                if x == 0 and y == 0:
                    continue
                found = self.grid.get_cell_at(
                    IntVector2(self.coordinate.x + x, self.coordinate.y + y), height
                )
                if found is not None and self.is_neighbour(found):
                    yield found

    def get_neighbours_and_connections(
        self, ignore_height: bool = False
    ) -> Iterator[tuple[Cell, str]]:
        """Plain neighbours with tag ``""``, then outgoing connections with their tags."""
        for neighbour in self.get_neighbours(ignore_height):
            yield neighbour, ""
        for connection in list(self.connections):
            yield connection.cell, connection.tag

    def get_closest_neighbour(self, position: Vec3) -> Cell | None:
        return min(
            self.get_neighbours(),
            key=lambda c: vec.distance(c.position, position),
            default=None,
        )

    def get_closest_neighbour_and_connection(self, position: Vec3) -> Cell | None:
        pairs = [c for c, _ in self.get_neighbours_and_connections() if c.valid]
        return min(pairs, key=lambda c: vec.distance(c.position, position), default=None)

    # --- Connections ---

    def add_connection(self, other: Cell, tag: str = "") -> None:
        self.connections.append(CellConnection(other, tag))
        other._incoming.append(CellConnection(self, tag))

    def remove_connections(self, other: Cell) -> None:
        """Drop every outgoing connection pointing at ``other``."""
        self.connections = [c for c in self.connections if c.cell is not other]
        other._incoming = [c for c in other._incoming if c.cell is not self]

    def is_connected_to(self, other: Cell) -> bool:
        return any(c.cell is other for c in self.connections)

    @property
    def incoming(self) -> list[Cell]:
        """Cells holding a connection that points here."""
        return [c.cell for c in self._incoming]

    def unlink(self) -> None:
        """Remove every connection into and out of this cell."""
        for source in {id(c.cell): c.cell for c in self._incoming}.values():
            source.remove_connections(self)
        for connection in list(self.connections):
            self.remove_connections(connection.cell)

    # --- Generation ---

    @classmethod
    def try_create(cls, grid: Grid, geometry: GeometryQuery, position: Vec3) -> Cell | None:
        """Build a cell around ``position`` if the ground there is walkable.

        Traces the four corners down onto the geometry, rejects cliffs and
        tall risers, then checks there is room to stand. Returns None when
        any test fails. Cells resting on stairs are tagged ``"step"``.
        """
        trace_filter = grid.trace_filter
        max_height = grid.max_height
        half = grid.cell_size / 2.0
        inset = grid.tolerance

        hits: list[Vec3] = []
        for dx, dy in CORNER_OFFSETS:
            # Sample slightly inside the footprint so grid-perfect terrain
            # does not report the neighbouring column's surface.
            offset = (dx * (half - inset), dy * (half - inset), 0.0)
            corner = vec.add(position, offset)
            result = geometry.ray(
                vec.add(corner, (0.0, 0.0, max_height * 2.0)),
                vec.add(corner, (0.0, 0.0, -max_height * 2.0)),
                trace_filter,
            )
            if result.started_solid or not result.hit:
                return None
            if result.end_position[2] > position[2] + grid.tolerance:
                return None
            hits.append(result.end_position)

        ordered = sorted(hits, key=lambda p: p[2])
        lowest, highest = ordered[0], ordered[-1]
        if _is_cliff(geometry, trace_filter, lowest, highest) or _is_cliff(
            geometry, trace_filter, lowest, position
        ):
            return None

        walkable, is_step = _test_for_steps(grid, geometry, ordered)
        if not walkable:
            return None

        if not _test_for_clearance(grid, geometry, position):
            return None

        vertices = [p[2] for p in hits]
        if max(vertices) - min(vertices) > max_height + settings.TOLERANCE:
            return None
        cell = cls(grid, position, vertices)
        if is_step:
            cell.tags.add(settings.STEP_TAG)
        return cell

    def get_first_valid_droppable(
        self,
        min_cell_distance: int = 1,
        max_cells_distance: int = 3,
        max_height_distance: float = settings.DEFAULT_DROP_HEIGHT,
    ) -> Cell | None:
        """First lower cell, in spiral order, that an agent can walk off the edge onto."""
        grid = self.grid
        geometry = grid.require_geometry()
        clearance = BBox(
            (-grid.width_clearance / 2.0, -grid.width_clearance / 2.0, 0.0),
            (
                grid.width_clearance / 2.0,
                grid.width_clearance / 2.0,
                max(grid.height_clearance - grid.step_size, 1.0),
            ),
        )
        for j in range(max_cells_distance * 2 + 1):
            spiral_y = spiral_pattern(j)
            for i in range(max_cells_distance * 2 + 1):
                spiral_x = spiral_pattern(i)
                if spiral_x == 0 and spiral_y == 0:
                    continue
                if abs(spiral_x) <= min_cell_distance and abs(spiral_y) <= min_cell_distance:
                    continue

                found = grid.get_cell_at(
                    IntVector2(self.coordinate.x + spiral_x, self.coordinate.y + spiral_y),
                    self.position[2],
                )
                if found is None or found == self or self.is_neighbour(found):
                    continue

                vertical = self.position[2] - found.position[2]
                if vertical > max_height_distance:
                    continue
                horizontal = math.hypot(spiral_x, spiral_y) - 1.0
                if vertical < grid.step_size * horizontal:
                    continue  # reachable by stepping down
                if grid.line_of_sight(self, found):
                    continue

                ledge = vec.add(self.position, (0.0, 0.0, grid.step_size))
                above_target = vec.with_z(found.position, ledge[2])
                walk_off = geometry.box(
                    clearance.mins, clearance.maxs, ledge, above_target, grid.trace_filter
                )
                if walk_off.hit:
                    continue
                fall = geometry.box(
                    clearance.mins,
                    clearance.maxs,
                    above_target,
                    vec.add(found.position, (0.0, 0.0, grid.step_size)),
                    grid.trace_filter,
                )
                if fall.hit:
                    continue
                return found
        return None

    def get_valid_jumpables(
        self,
        definition: JumpDefinition,
        max_height_distance: float = settings.DEFAULT_DROP_HEIGHT,
    ) -> list[Cell]:
        """Cells reached by jumping along the definition's directions.

        A landing cell is kept only when it cannot already be walked to from
        this cell, from its existing connections, or from a landing found
        earlier.
        """
        grid = self.grid
        geometry = grid.require_geometry()
        clearance = BBox(
            (-grid.width_clearance / 2.0, -grid.width_clearance / 2.0, grid.step_size),
            (grid.width_clearance / 2.0, grid.width_clearance / 2.0, grid.height_clearance),
        )
        found: list[Cell] = []
        for side in range(definition.sides_to_check):
            yaw = definition.angle_offset + 360.0 / definition.sides_to_check * side
            velocity = vec.scale(vec.forward(yaw), definition.horizontal_speed)
            landing = grid.trace_parabola(
                self.position,
                velocity,
                definition.vertical_speed,
                definition.gravity,
                max_height_distance,
            )
            cell = grid.get_cell_in_area(landing, grid.width_clearance)
            if cell is None or cell == self or cell in found:
                continue

            sources = [self, *found, *(c.cell for c in self.connections if c.cell.valid)]
            if any(grid.is_directly_walkable(source, cell) for source in sources):
                continue

            approach = geometry.box(
                clearance.mins, clearance.maxs, landing, cell.position, grid.trace_filter
            )
            if not approach.hit:
                found.append(cell)
            if len(found) >= definition.max_per_cell:
                break
        return found


def spiral_pattern(index: int) -> int:
    """Map 0, 1, 2, 3, 4, ... onto 0, 1, -1, 2, -2, ..."""
    magnitude = (index + 1) // 2
    return magnitude if index % 2 == 1 else -magnitude


def _is_cliff(
    geometry: GeometryQuery, trace_filter: TraceFilter, start: Vec3, end: Vec3
) -> bool:
    result = geometry.ray(start, end, trace_filter)
    return result.hit and vec.angle(vec.UP, result.normal) > 90.0


def _test_for_steps(
    grid: Grid, geometry: GeometryQuery, ordered: list[Vec3]
) -> tuple[bool, bool]:
    """(walkable, is_step) for corners sorted from lowest to highest."""
    step_size = grid.step_size
    if step_size <= settings.NEIGHBOUR_TOLERANCE:
        return True, False
    lowest, highest = ordered[0], ordered[-1]
    span = highest[2] - lowest[2]
    if span <= step_size / 2.0:
        return True, False

    start = vec.add(lowest, (0.0, 0.0, step_size / 4.0 + _STEP_RAY_TOLERANCE))
    end = vec.with_z(highest, start[2])
    result = geometry.ray(start, end, grid.trace_filter)
    if not result.hit:
        return True, False
    slope = vec.angle(vec.UP, result.normal)
    if slope <= grid.standable_angle:
        return True, False
    if slope < _VERTICAL_ANGLE:
        return False, False
    return span <= step_size, True


def _test_for_clearance(grid: Grid, geometry: GeometryQuery, position: Vec3) -> bool:
    if grid.width_clearance <= 0.0:
        return True
    half = grid.width_clearance / 2.0
    result = geometry.box(
        (-half, -half, 0.0),
        (half, half, 1.0),
        vec.add(position, (0.0, 0.0, grid.height_clearance)),
        vec.add(position, (0.0, 0.0, grid.step_size)),
        grid.trace_filter,
    )
    return not result.hit
