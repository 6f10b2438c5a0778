"""Navigator - steers one actor along paths computed on a Grid.

The navigator never moves the actor. Each ``update`` returns the direction
the actor should walk in; the caller integrates movement however it likes.
"""
from __future__ import annotations

import logging
from typing import Any

from grid_astar import Cell, Grid, PathBuilder, PathResult, PathRunner, PathStatus, PathTask, Waypoint
from grid_astar import vec
from grid_astar.vec import Vec3

from grid_astar_actor.config import NavigatorConfig

logger = logging.getLogger(__name__)


class Navigator:
    """Path following for one actor.

    Requests paths synchronously, or through ``runner`` in the background
    when one is given. Every ``retrace_interval`` seconds it checks whether
    the target moved or the actor strayed from its path, and requests a new
    path if so.
    """

    def __init__(
        self,
        grid: Grid,
        actor: Any,
        config: NavigatorConfig | None = None,
        runner: PathRunner | None = None,
    ) -> None:
        self.grid = grid
        self.actor = actor
        self.config = config if config is not None else NavigatorConfig()
        self._runner = runner
        self._path: PathResult | None = None
        self._index = -1
        self._target: Cell | None = None
        self._following: Any = None
        self._pending: PathTask | None = None
        self._since_retrace = 0.0
        self._occupied: Cell | None = None
        self.arrived = False
        self.direction: Vec3 = vec.ZERO

    # --- State ---

    @property
    def builder(self) -> PathBuilder:
        return (
            self.grid.path_builder()
            .with_path_creator(self.actor)
            .with_partial_enabled(self.config.accepts_partial)
        )

    @property
    def nearest_cell(self) -> Cell | None:
        return self.grid.get_cell(self.actor.position, find_nearest=True)

    @property
    def path(self) -> PathResult | None:
        return self._path

    @property
    def path_index(self) -> int:
        """Index of the last waypoint reached, -1 when not following a path."""
        return self._index

    @property
    def target_cell(self) -> Cell | None:
        return self._target

    @property
    def following(self) -> Any:
        return self._following

    @property
    def pending(self) -> PathTask | None:
        return self._pending

    @property
    def is_following_path(self) -> bool:
        return self._index >= 0 and self._path is not None and not self._path.is_empty

    @property
    def current_waypoint(self) -> Waypoint | None:
        if not self.is_following_path:
            return None
        assert self._path is not None
        return self._path[self._index]

    @property
    def next_waypoint(self) -> Waypoint | None:
        if not self.is_following_path:
            return None
        assert self._path is not None
        return self._path[min(self._index + 1, len(self._path) - 1)]

    # --- Commands ---

    def navigate_to(self, target: Cell | Vec3) -> bool:
        """Request a path to ``target``.

        Returns False when the target cannot be resolved, the actor already
        stands on it, or (synchronous mode) no path exists. With a runner the
        request is queued and True is returned.
        """
        cell = target if isinstance(target, Cell) else self.grid.get_cell(target, find_nearest=True)
        if cell is None:
            return False
        if cell != self._target:
            self.arrived = False
        self._target = cell
        start = self.nearest_cell
        if start is None:
            return False
        if start == cell:
            self._drop_path()
            self.arrived = True
            return False
        return self._request(start, cell)

    def follow(self, other: Any) -> None:
        """Keep walking next to ``other``."""
        self._following = other
        self.arrived = False
        self._since_retrace = self.config.retrace_interval

    def stop_following(self) -> None:
        self._following = None

    def stop(self) -> None:
        """Drop the path, cancel requests and release the occupied cell."""
        self._drop_path()
        self._target = None
        self._following = None
        self._release()

    def update(self, dt: float) -> Vec3:
        """Advance navigation by ``dt`` seconds and return the walk direction."""
        self._harvest()
        if self.config.occupy_cells:
            self._update_occupancy()

        self._since_retrace += dt
        if self._since_retrace >= self.config.retrace_interval:
            self._since_retrace = 0.0
            self._check_retrace()

        self.direction = self._steer()
        return self.direction

    # --- Internals ---

    def _steer(self) -> Vec3:
        if not self.is_following_path:
            return vec.ZERO
        assert self._path is not None
        position = self.actor.position
        upcoming = self.next_waypoint
        assert upcoming is not None
        reach = self.grid.cell_size * self.config.arrival_fraction
        if (
            self.nearest_cell == upcoming.cell
            or vec.distance_2d(position, upcoming.position) <= reach
        ):
            self._index += 1

        if self._index >= len(self._path) - 1 or self._path[self._index].cell == self._target:
            self.arrived = True
            self._index = -1
            return vec.ZERO

        upcoming = self.next_waypoint
        assert upcoming is not None
        return vec.normalize(vec.with_z(vec.sub(upcoming.position, position), 0.0))

    def _check_retrace(self) -> None:
        if self._pending is not None:
            return
        if self._following is not None:
            other_cell = self.grid.get_cell(self._following.position, find_nearest=True)
            if other_cell is not None:
                beside = other_cell.get_closest_neighbour(self.actor.position) or other_cell
                if beside != self._target:
                    self._target = beside
                    self.arrived = False
        if self._target is None:
            return
        if self.arrived and (self._path is None or self._path.end == self._target):
            return
        if self._path is None or self._path.end != self._target:
            logger.debug("Retracing %r: target changed to %s", self.actor, self._target)
            self.navigate_to(self._target)
            return
        if self.is_following_path and self._strayed():
            logger.debug("Retracing %r: strayed from path", self.actor)
            self.navigate_to(self._target)

    def _strayed(self) -> bool:
        current = self.current_waypoint
        upcoming = self.next_waypoint
        if current is None or upcoming is None:
            return False
        limit = self.config.stray_factor * self.grid.cell_size / 2.0
        return _distance_to_segment_2d(self.actor.position, current.position, upcoming.position) > limit

    def _request(self, start: Cell, target: Cell) -> bool:
        builder = self.builder
        if self._runner is None:
            return self._accept(builder.run(start, target))
        if self._pending is not None:
            self._pending.cancel()
        if self.config.race:
            self._pending = self._runner.race(builder, start, target)
        else:
            self._pending = self._runner.submit(builder, start, target)
        return True

    def _harvest(self) -> None:
        task = self._pending
        if task is None or not task.done():
            return
        self._pending = None
        if task.future.cancelled():
            return
        exc = task.future.exception()
        if exc is not None:
            logger.warning("Path request for %r failed: %s", self.actor, exc)
            return
        self._accept(task.result())

    def _accept(self, result: PathResult) -> bool:
        if result.is_empty or result.status not in (PathStatus.FOUND, PathStatus.PARTIAL):
            logger.debug("No path for %r: %s", self.actor, result.status.value)
            self._drop_path()
            return False
        if self.config.simplify:
            result.simplify()
        self._path = result
        self._index = 0
        self.arrived = False
        return True

    def _drop_path(self) -> None:
        """Forget the current path and any request still in flight."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._path = None
        self._index = -1
        self.direction = vec.ZERO

    def _update_occupancy(self) -> None:
        cell = self.grid.get_cell(self.actor.position)
        if cell is not self._occupied:
            self._release()
            if cell is not None:
                cell.occupied = True
                self._occupied = cell
        if cell is not None:
            # Refresh the recorded position so the actor stays exempt on its own cell.
            cell.set_occupant(self.actor)

    def _release(self) -> None:
        cell = self._occupied
        self._occupied = None
        if cell is None:
            return
        occupant = cell.occupant
        if occupant is None or occupant is self.actor:
            cell.occupied = False
            cell.remove_occupant()


def _distance_to_segment_2d(point: Vec3, a: Vec3, b: Vec3) -> float:
    dx, dy = b[0] - a[0], b[1] - a[1]
    span = dx * dx + dy * dy
    if span == 0.0:
        return vec.distance_2d(point, a)
    t = ((point[0] - a[0]) * dx + (point[1] - a[1]) * dy) / span
    t = max(0.0, min(1.0, t))
    return vec.distance_2d(point, (a[0] + dx * t, a[1] + dy * t, 0.0))
