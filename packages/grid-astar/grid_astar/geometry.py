"""Geometry query collaborator: protocol, trace types, and BoxWorld.

The grid never owns world geometry. Generation and line of sight ask a
``GeometryQuery`` for ray and swept-box traces. ``BoxWorld`` is a small
reference implementation made of axis-aligned solid boxes, enough to
describe floors, walls, ledges, stairs and platforms.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from grid_astar import vec
from grid_astar.types import BBox
from grid_astar.vec import Vec3

_EPSILON = 1e-9


@dataclass(frozen=True)
class TraceFilter:
    """Which solids a trace may hit.

    Attributes:
        world_only: Ignore dynamic solids.
        dynamic_only: Ignore static solids (occupancy probes).
        tags_to_include: A solid must carry every one of these tags.
        tags_to_exclude: A solid carrying any of these tags is ignored.
    """

    world_only: bool = True
    dynamic_only: bool = False
    tags_to_include: tuple[str, ...] = ()
    tags_to_exclude: tuple[str, ...] = ()

    def accepts(self, tags: frozenset[str], dynamic: bool) -> bool:
        if self.world_only and dynamic:
            return False
        if self.dynamic_only and not dynamic:
            return False
        if any(tag not in tags for tag in self.tags_to_include):
            return False
        return not any(tag in tags for tag in self.tags_to_exclude)


@dataclass(frozen=True)
class TraceResult:
    """Outcome of a ray or swept-box trace.

    ``end_position`` is where the trace stopped: the hit position on a
    hit, the requested end otherwise.
    """

    hit: bool
    start_position: Vec3
    end_position: Vec3
    normal: Vec3 = vec.ZERO
    fraction: float = 1.0
    started_solid: bool = False
    tags: frozenset[str] = frozenset()

    @property
    def hit_position(self) -> Vec3:
        return self.end_position


@runtime_checkable
class GeometryQuery(Protocol):
    """World geometry as seen by grid generation and line of sight."""

    def ray(self, start: Vec3, end: Vec3, trace_filter: TraceFilter) -> TraceResult:
        """Trace an infinitely thin segment from start to end."""
        ...

    def box(
        self,
        mins: Vec3,
        maxs: Vec3,
        start: Vec3,
        end: Vec3,
        trace_filter: TraceFilter,
    ) -> TraceResult:
        """Sweep a box (extents relative to its origin) from start to end."""
        ...

    def test_point(self, position: Vec3, radius: float, trace_filter: TraceFilter) -> bool:
        """Whether a sphere at ``position`` overlaps solid geometry."""
        ...


@dataclass(frozen=True)
class Solid:
    """A box of world geometry. Dynamic solids are skipped by world-only traces."""

    bounds: BBox
    tags: frozenset[str] = frozenset({"solid"})
    dynamic: bool = False


@dataclass
class BoxWorld:
    """GeometryQuery over a list of axis-aligned solid boxes.

    Surfaces touching a trace (zero penetration) do not count as hits, so a
    box can slide along a floor it rests on.
    """

    solids: list[Solid] = field(default_factory=list)

    def add(
        self,
        mins: Vec3,
        maxs: Vec3,
        tags: tuple[str, ...] = ("solid",),
        dynamic: bool = False,
    ) -> Solid:
        solid = Solid(BBox(mins, maxs), frozenset(tags), dynamic)
        self.solids.append(solid)
        return solid

    def remove(self, solid: Solid) -> None:
        self.solids.remove(solid)

    @property
    def bounds(self) -> BBox | None:
        if not self.solids:
            return None
        mins = tuple(min(s.bounds.mins[i] for s in self.solids) for i in range(3))
        maxs = tuple(max(s.bounds.maxs[i] for s in self.solids) for i in range(3))
        return BBox(mins, maxs)  # type: ignore[arg-type]

    def ray(self, start: Vec3, end: Vec3, trace_filter: TraceFilter) -> TraceResult:
        return self.box(vec.ZERO, vec.ZERO, start, end, trace_filter)

    def box(
        self,
        mins: Vec3,
        maxs: Vec3,
        start: Vec3,
        end: Vec3,
        trace_filter: TraceFilter,
    ) -> TraceResult:
        delta = vec.sub(end, start)
        best: tuple[float, Vec3, Solid] | None = None
        for solid in self.solids:
            if not trace_filter.accepts(solid.tags, solid.dynamic):
                continue
            # Minkowski sum: sweeping the box equals tracing its origin
            # against the solid grown by the box extents.
            grown_mins = vec.sub(solid.bounds.mins, maxs)
            grown_maxs = vec.sub(solid.bounds.maxs, mins)
            if _strictly_inside(start, grown_mins, grown_maxs):
                return TraceResult(
                    hit=True,
                    start_position=start,
                    end_position=start,
                    fraction=0.0,
                    started_solid=True,
                    tags=solid.tags,
                )
            entry = _slab_entry(start, delta, grown_mins, grown_maxs)
            if entry is None:
                continue
            t, normal = entry
            if best is None or t < best[0]:
                best = (t, normal, solid)

        if best is None:
            return TraceResult(hit=False, start_position=start, end_position=end)
        t, normal, solid = best
        return TraceResult(
            hit=True,
            start_position=start,
            end_position=vec.add(start, vec.scale(delta, t)),
            normal=normal,
            fraction=t,
            tags=solid.tags,
        )

    def test_point(self, position: Vec3, radius: float, trace_filter: TraceFilter) -> bool:
        for solid in self.solids:
            if not trace_filter.accepts(solid.tags, solid.dynamic):
                continue
            lo, hi = solid.bounds.mins, solid.bounds.maxs
            closest = tuple(max(lo[i], min(position[i], hi[i])) for i in range(3))
            if vec.distance_sq(position, closest) < radius * radius:  # type: ignore[arg-type]
                return True
            if _strictly_inside(position, lo, hi):
                return True
        return False


def _strictly_inside(point: Vec3, mins: Vec3, maxs: Vec3) -> bool:
    return all(lo < p < hi for p, lo, hi in zip(point, mins, maxs))


def _slab_entry(
    start: Vec3, delta: Vec3, mins: Vec3, maxs: Vec3
) -> tuple[float, Vec3] | None:
    """Entry time in [0, 1] and face normal of a segment into a box, or None."""
    t_enter = float("-inf")
    t_exit = float("inf")
    normal: Vec3 = vec.ZERO
    for axis in range(3):
        d = delta[axis]
        if abs(d) < _EPSILON:
            if not mins[axis] < start[axis] < maxs[axis]:
                return None
            continue
        t_near = (mins[axis] - start[axis]) / d
        t_far = (maxs[axis] - start[axis]) / d
        if t_near > t_far:
            t_near, t_far = t_far, t_near
        if t_near > t_enter:
            t_enter = t_near
            face = [0.0, 0.0, 0.0]
            face[axis] = -1.0 if d > 0 else 1.0
            normal = (face[0], face[1], face[2])
        t_exit = min(t_exit, t_far)

    if t_enter == float("-inf"):
        return None  # zero-length trace
    if t_enter >= t_exit - _EPSILON:
        return None  # missed or only grazing
    if t_enter < -_EPSILON or t_enter > 1.0:
        return None
    return max(t_enter, 0.0), normal
