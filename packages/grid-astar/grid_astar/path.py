"""PathBuilder search configuration and PathResult output."""
from __future__ import annotations

import dataclasses
import math
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator

from grid_astar import settings, vec
from grid_astar.cell import Cell
from grid_astar.search import search
from grid_astar.types import PathStatus
from grid_astar.vec import Vec3

if TYPE_CHECKING:
    from grid_astar.grid import Grid


@dataclass(frozen=True)
class Waypoint:
    """A path cell and the movement used to arrive on it (``""`` for walking)."""

    cell: Cell
    movement_tag: str = ""

    @property
    def position(self) -> Vec3:
        return self.cell.position


@dataclass(frozen=True)
class PathBuilder:
    """Immutable configuration for searches over one grid.

    Attributes:
        grid: Grid to search.
        tags_to_include: When set, only cells carrying one of these tags are entered.
        tags_to_exclude: Cells carrying any of these tags are never entered.
            ``"occupied"`` is waived for cells occupied by ``path_creator``.
        tags_to_avoid: ``(tag, malus)`` pairs; entering a tagged cell costs extra.
        accepts_partial: Return the best path toward an unreachable target.
        max_check_distance: Ignore cells farther from the target than the
            start-to-target distance plus this much.
        max_drop_height: Highest drop a connection may take. Clamped to the grid's.
        path_creator: Agent the path is computed for.
    """

    grid: Grid = field(compare=False)
    tags_to_include: tuple[str, ...] = ()
    tags_to_exclude: tuple[str, ...] = (settings.OCCUPIED_TAG,)
    tags_to_avoid: tuple[tuple[str, float], ...] = ()
    accepts_partial: bool = False
    max_check_distance: float = math.inf
    max_drop_height: float | None = None
    path_creator: Any = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.max_check_distance < 0:
            raise ValueError(f"max_check_distance must be >= 0, got {self.max_check_distance}")
        if self.max_drop_height is not None and self.max_drop_height < 0:
            raise ValueError(f"max_drop_height must be >= 0, got {self.max_drop_height}")

    @property
    def effective_max_drop_height(self) -> float:
        if self.max_drop_height is None:
            return self.grid.max_drop_height
        return min(self.max_drop_height, self.grid.max_drop_height)

    # --- Copy-with methods ---

    def with_tags(self, *tags: str) -> PathBuilder:
        """Only walk on cells carrying at least one of these tags."""
        include = list(self.tags_to_include)
        for tag in tags:
            if tag not in include:
                include.append(tag)
        exclude = tuple(t for t in self.tags_to_exclude if t not in tags)
        return dataclasses.replace(self, tags_to_include=tuple(include), tags_to_exclude=exclude)

    def without_tags(self, *tags: str) -> PathBuilder:
        """Never walk on cells carrying any of these tags."""
        exclude = list(self.tags_to_exclude)
        for tag in tags:
            if tag not in exclude:
                exclude.append(tag)
        include = tuple(t for t in self.tags_to_include if t not in tags)
        return dataclasses.replace(self, tags_to_include=include, tags_to_exclude=tuple(exclude))

    def avoid_tag(self, tag: str, malus: float) -> PathBuilder:
        """Add ``malus`` to the cost of entering cells tagged ``tag``."""
        avoid = tuple(pair for pair in self.tags_to_avoid if pair[0] != tag)
        return dataclasses.replace(self, tags_to_avoid=avoid + ((tag, float(malus)),))

    def with_max_distance(self, distance: float) -> PathBuilder:
        return dataclasses.replace(self, max_check_distance=distance)

    def with_max_drop_height(self, height: float) -> PathBuilder:
        return dataclasses.replace(self, max_drop_height=height)

    def with_partial_enabled(self, enabled: bool = True) -> PathBuilder:
        return dataclasses.replace(self, accepts_partial=enabled)

    def with_path_creator(self, creator: Any) -> PathBuilder:
        return dataclasses.replace(self, path_creator=creator)

    # --- Running ---

    def resolve(self, point: Cell | Vec3 | None, find_nearest: bool = False) -> Cell | None:
        """Turn a position into the cell under it. Cells pass through."""
        if point is None or isinstance(point, Cell):
            return point
        return self.grid.get_cell(point, find_nearest=find_nearest)

    def run(
        self,
        start: Cell | Vec3 | None,
        target: Cell | Vec3 | None,
        reversed: bool = False,
        with_connections: bool = True,
        cancel: threading.Event | None = None,
        find_nearest: bool = False,
    ) -> PathResult:
        """Search synchronously from ``start`` to ``target``.

        ``reversed`` flips the resulting waypoints (used by the backward half
        of a race). ``with_connections=False`` walks plain neighbours only.
        """
        start_cell = self.resolve(start, find_nearest)
        target_cell = self.resolve(target, find_nearest)
        steps, status = search(self, start_cell, target_cell, with_connections, cancel)
        waypoints = [Waypoint(cell, tag) for cell, tag in steps]
        result = PathResult(waypoints, status, self)
        return result.reversed() if reversed else result


class PathResult:
    """Waypoints from start to target plus the search outcome.

    ``length`` is computed lazily and reset by ``simplify``.
    """

    def __init__(self, waypoints: list[Waypoint], status: PathStatus, builder: PathBuilder) -> None:
        self.waypoints = waypoints
        self.status = status
        self.builder = builder
        self._length: float | None = None

    @classmethod
    def empty(cls, builder: PathBuilder, status: PathStatus) -> PathResult:
        return cls([], status, builder)

    def __repr__(self) -> str:
        return f"PathResult({self.status.value}, {len(self.waypoints)} waypoints)"

    def __len__(self) -> int:
        return len(self.waypoints)

    def __iter__(self) -> Iterator[Waypoint]:
        return iter(self.waypoints)

    def __getitem__(self, index: int) -> Waypoint:
        return self.waypoints[index]

    @property
    def cells(self) -> list[Cell]:
        return [w.cell for w in self.waypoints]

    @property
    def count(self) -> int:
        return len(self.waypoints)

    @property
    def is_empty(self) -> bool:
        return not self.waypoints

    @property
    def is_partial(self) -> bool:
        return self.status is PathStatus.PARTIAL

    @property
    def found(self) -> bool:
        return self.status is PathStatus.FOUND

    @property
    def start(self) -> Cell | None:
        return self.waypoints[0].cell if self.waypoints else None

    @property
    def end(self) -> Cell | None:
        return self.waypoints[-1].cell if self.waypoints else None

    @property
    def length(self) -> float:
        """Sum of distances between consecutive waypoints."""
        if self._length is None:
            self._length = sum(
                vec.distance(a.position, b.position)
                for a, b in zip(self.waypoints, self.waypoints[1:])
            )
        return self._length

    def reversed(self) -> PathResult:
        """Same waypoints walked backwards. Movement tags are dropped."""
        cells = [w.cell for w in reversed(self.waypoints)]
        return PathResult([Waypoint(c) for c in cells], self.status, self.builder)

    def simplify(self, segment_amounts: int = 2, iterations: int = 8) -> PathResult:
        """Collapse runs of waypoints that are in line of sight of each other.

        Slides a window of ``segment_amounts`` hops along the path for a fixed
        number of passes. Waypoints reached through a tagged movement, and
        the waypoints they are launched from, always stay. Endpoints never
        change. Modifies the path in place and returns it.
        """
        if segment_amounts < 2 or len(self.waypoints) <= 2:
            return self
        grid = self.builder.grid
        creator = self.builder.path_creator
        points = self.waypoints

        for _ in range(iterations):
            changed = False
            first = 0
            while first < len(points) - 2:
                last = min(first + segment_amounts, len(points) - 1)
                if last - first >= 2 and not any(
                    points[k].movement_tag for k in range(first + 1, last + 1)
                ):
                    if grid.line_of_sight(points[first].cell, points[last].cell, creator):
                        del points[first + 1:last]
                        changed = True
                first += 1
            if not changed:
                break

        self._length = None
        return self
