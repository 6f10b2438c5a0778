"""GridBuilder - immutable generation settings and the generation pipeline."""
from __future__ import annotations

import dataclasses
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from grid_astar import settings, vec
from grid_astar.cell import Cell
from grid_astar.geometry import GeometryQuery
from grid_astar.grid import Grid
from grid_astar.types import BBox, IntVector2
from grid_astar.vec import Vec3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JumpDefinition:
    """Ballistic jump an agent can perform from an edge cell.

    Attributes:
        name: Movement tag given to the resulting connections.
        horizontal_speed: Ground speed during the jump, units per second.
        vertical_speed: Initial upward speed, units per second.
        gravity: Downward acceleration, units per second squared.
        sides_to_check: Number of evenly spaced directions tried per cell.
        angle_offset: Yaw of the first direction, in degrees.
        max_per_cell: Stop after this many landings for one cell.
    """

    name: str = settings.JUMP_TAG
    horizontal_speed: float = 160.0
    vertical_speed: float = 300.0
    gravity: float = 800.0
    sides_to_check: int = 8
    angle_offset: float = 0.0
    max_per_cell: int = 2

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("JumpDefinition name must be non-empty")
        if self.horizontal_speed <= 0:
            raise ValueError(f"horizontal_speed must be > 0, got {self.horizontal_speed}")
        if self.gravity <= 0:
            raise ValueError(f"gravity must be > 0, got {self.gravity}")
        if self.sides_to_check < 1:
            raise ValueError(f"sides_to_check must be >= 1, got {self.sides_to_check}")
        if self.max_per_cell < 1:
            raise ValueError(f"max_per_cell must be >= 1, got {self.max_per_cell}")


@dataclass(frozen=True)
class GridBuilder:
    """Settings for generating a Grid from world geometry.

    Every ``with_*`` method returns a modified copy. ``bounds`` is relative
    to ``position`` and rotated by ``rotation`` (yaw, degrees); when left
    unset, ``create`` covers the geometry's own bounds. Cells are always laid
    out on an axis-aligned lattice; rotation only shapes the covered area.
    """

    identifier: str = settings.DEFAULT_IDENTIFIER
    standable_angle: float = settings.DEFAULT_STANDABLE_ANGLE
    step_size: float = settings.DEFAULT_STEP_SIZE
    cell_size: float = settings.DEFAULT_CELL_SIZE
    height_clearance: float = settings.DEFAULT_HEIGHT_CLEARANCE
    width_clearance: float = settings.DEFAULT_WIDTH_CLEARANCE
    grid_perfect: bool = settings.DEFAULT_GRID_PERFECT
    world_only: bool = settings.DEFAULT_WORLD_ONLY
    max_drop_height: float = settings.DEFAULT_DROP_HEIGHT
    cylinder_shaped: bool = False
    tags_to_include: tuple[str, ...] = ("solid",)
    tags_to_exclude: tuple[str, ...] = ("player",)
    position: Vec3 = vec.ZERO
    bounds: BBox | None = None
    rotation: float = 0.0
    jump_definitions: tuple[JumpDefinition, ...] = field(default_factory=tuple)
    workers: int = 1

    def __post_init__(self) -> None:
        if not self.identifier:
            raise ValueError("GridBuilder identifier must be non-empty")
        if self.cell_size <= 0:
            raise ValueError(f"cell_size must be > 0, got {self.cell_size}")
        if not 0 < self.standable_angle < 90:
            raise ValueError(f"standable_angle must be in (0, 90), got {self.standable_angle}")
        for name in ("step_size", "height_clearance", "width_clearance", "max_drop_height"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

    # --- Derived ---

    @property
    def world_bounds(self) -> BBox | None:
        """Axis-aligned world-space box enclosing the (rotated) bounds."""
        if self.bounds is None:
            return None
        return self.bounds.rotated(self.rotation).translate(self.position)

    # --- Copy-with methods ---

    def with_identifier(self, identifier: str) -> GridBuilder:
        return dataclasses.replace(self, identifier=identifier)

    def with_standable_angle(self, standable_angle: float) -> GridBuilder:
        return dataclasses.replace(self, standable_angle=standable_angle)

    def with_step_size(self, step_size: float) -> GridBuilder:
        """Grid-perfect grids keep a step size of 0."""
        if self.grid_perfect:
            return self
        return dataclasses.replace(self, step_size=step_size)

    def with_cell_size(self, cell_size: float) -> GridBuilder:
        return dataclasses.replace(self, cell_size=cell_size)

    def with_height_clearance(self, height_clearance: float) -> GridBuilder:
        return dataclasses.replace(self, height_clearance=height_clearance)

    def with_width_clearance(self, width_clearance: float) -> GridBuilder:
        return dataclasses.replace(self, width_clearance=width_clearance)

    def with_grid_perfect(self, grid_perfect: bool) -> GridBuilder:
        """Voxel-like terrain: corners are sampled further inside and steps are disabled."""
        if grid_perfect:
            return dataclasses.replace(self, grid_perfect=True, step_size=0.0)
        return dataclasses.replace(self, grid_perfect=False)

    def with_world_only(self, world_only: bool) -> GridBuilder:
        return dataclasses.replace(self, world_only=world_only)

    def with_tags(self, *tags: str) -> GridBuilder:
        """Only generate on solids carrying these tags."""
        include = list(self.tags_to_include)
        for tag in tags:
            if tag not in include:
                include.append(tag)
        exclude = tuple(t for t in self.tags_to_exclude if t not in tags)
        return dataclasses.replace(self, tags_to_include=tuple(include), tags_to_exclude=exclude)

    def without_tags(self, *tags: str) -> GridBuilder:
        """Ignore solids carrying these tags."""
        exclude = list(self.tags_to_exclude)
        for tag in tags:
            if tag not in exclude:
                exclude.append(tag)
        include = tuple(t for t in self.tags_to_include if t not in tags)
        return dataclasses.replace(self, tags_to_include=include, tags_to_exclude=tuple(exclude))

    def with_bounds(self, position: Vec3, bounds: BBox, rotation: float | None = None) -> GridBuilder:
        return dataclasses.replace(
            self,
            position=position,
            bounds=bounds,
            rotation=self.rotation if rotation is None else rotation,
        )

    def with_rotation(self, rotation: float) -> GridBuilder:
        return dataclasses.replace(self, rotation=rotation)

    def with_cylinder_shaped(self, cylinder_shaped: bool) -> GridBuilder:
        return dataclasses.replace(self, cylinder_shaped=cylinder_shaped)

    def with_max_drop_height(self, max_drop_height: float) -> GridBuilder:
        return dataclasses.replace(self, max_drop_height=max_drop_height)

    def with_jump_definition(self, definition: JumpDefinition) -> GridBuilder:
        return dataclasses.replace(
            self, jump_definitions=self.jump_definitions + (definition,)
        )

    def with_workers(self, workers: int) -> GridBuilder:
        """Generate terrain cells on ``workers`` threads, one column range each."""
        return dataclasses.replace(self, workers=workers)

    # --- Generation ---

    def create(self, geometry: GeometryQuery) -> Grid:
        """Generate a grid over ``geometry``.

        Phase 1 casts every column and builds terrain cells (split across
        ``workers`` threads). Once all columns are in, phases 2-4 tag edge
        cells and link drops and jumps.
        """
        builder = self
        if builder.bounds is None:
            world = getattr(geometry, "bounds", None)
            if world is None:
                raise ValueError(
                    "GridBuilder has no bounds and the geometry does not expose any"
                )
            center = world.center
            builder = builder.with_bounds(center, world.translate(vec.scale(center, -1.0)), 0.0)

        grid = Grid(builder, geometry)
        logger.info("Creating grid %s", grid.identifier)
        total_start = time.perf_counter()

        columns = builder._columns(grid)
        logger.info(
            "Grid %s casting %d columns on %d worker(s)",
            grid.identifier, len(columns), builder.workers,
        )
        phase_start = time.perf_counter()
        chunks = _split(columns, builder.workers)
        if len(chunks) > 1:
            with ThreadPoolExecutor(max_workers=len(chunks)) as pool:
                futures = [pool.submit(builder._cast_columns, grid, geometry, chunk) for chunk in chunks]
                results = [future.result() for future in futures]
        else:
            results = [builder._cast_columns(grid, geometry, columns)]
        for index, cells in enumerate(results):
            for cell in cells:
                grid.add_cell(cell)
            logger.debug("Grid %s merged chunk %d (%d cells)", grid.identifier, index, len(cells))
        logger.info(
            "Grid %s cast %d cells in %.1fms",
            grid.identifier, grid.cell_count, _elapsed_ms(phase_start),
        )

        phase_start = time.perf_counter()
        edges = grid.assign_edge_cells()
        logger.info(
            "Grid %s assigned %d edge cells in %.1fms",
            grid.identifier, len(edges), _elapsed_ms(phase_start),
        )

        phase_start = time.perf_counter()
        drops = grid.assign_droppable_cells()
        logger.info(
            "Grid %s assigned %d droppable cells in %.1fms",
            grid.identifier, drops, _elapsed_ms(phase_start),
        )

        phase_start = time.perf_counter()
        jumps = grid.assign_jumpable_cells()
        logger.info(
            "Grid %s assigned %d jumpable cells in %.1fms",
            grid.identifier, jumps, _elapsed_ms(phase_start),
        )

        logger.info("Grid %s created in %.1fms", grid.identifier, _elapsed_ms(total_start))
        return grid

    def _columns(self, grid: Grid) -> list[IntVector2]:
        bounds = self.world_bounds
        assert bounds is not None
        size = bounds.size
        rows = max(1, int(math.ceil(size[0] / self.cell_size - settings.TOLERANCE)))
        cols = max(1, int(math.ceil(size[1] / self.cell_size - settings.TOLERANCE)))
        return [IntVector2(x, y) for x in range(rows) for y in range(cols)]

    def _cast_columns(
        self, grid: Grid, geometry: GeometryQuery, columns: list[IntVector2]
    ) -> list[Cell]:
        """Find every walkable surface in the given columns, top to bottom."""
        bounds = self.world_bounds
        assert bounds is not None
        tolerance = grid.tolerance
        half = self.cell_size / 2.0 - tolerance
        probe_mins = (-half, -half, 0.0)
        probe_maxs = (half, half, settings.TOLERANCE)
        trace_filter = grid.trace_filter
        top = bounds.maxs[2] + tolerance * 2.0
        bottom = bounds.mins[2] - tolerance

        cells: list[Cell] = []
        for coordinate in columns:
            start = grid.center_of(coordinate, top)
            end = grid.center_of(coordinate, bottom)
            result = geometry.box(probe_mins, probe_maxs, start, end, trace_filter)
            while result.hit and start[2] >= end[2]:
                hit = result.end_position
                if (
                    not result.started_solid
                    and grid.is_inside_bounds(hit)
                    and (not self.cylinder_shaped or grid.is_inside_cylinder(hit))
                    and vec.angle(vec.UP, result.normal) <= self.standable_angle
                ):
                    cell = Cell.try_create(grid, geometry, hit)
                    if cell is not None:
                        cells.append(cell)

                start = vec.sub(hit, (0.0, 0.0, self.height_clearance))
                while start[2] >= end[2] and geometry.test_point(start, half, trace_filter):
                    start = vec.sub(start, (0.0, 0.0, self.height_clearance))
                if start[2] < end[2]:
                    break
                result = geometry.box(probe_mins, probe_maxs, start, end, trace_filter)
        return cells

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "standable_angle": self.standable_angle,
            "step_size": self.step_size,
            "cell_size": self.cell_size,
            "height_clearance": self.height_clearance,
            "width_clearance": self.width_clearance,
            "grid_perfect": self.grid_perfect,
            "world_only": self.world_only,
            "max_drop_height": self.max_drop_height,
            "cylinder_shaped": self.cylinder_shaped,
            "tags_to_include": list(self.tags_to_include),
            "tags_to_exclude": list(self.tags_to_exclude),
            "position": list(self.position),
            "bounds": (
                None if self.bounds is None
                else [list(self.bounds.mins), list(self.bounds.maxs)]
            ),
            "rotation": self.rotation,
            "jump_definitions": [dataclasses.asdict(d) for d in self.jump_definitions],
            "workers": self.workers,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GridBuilder:
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if "tags_to_include" in kwargs:
            kwargs["tags_to_include"] = tuple(kwargs["tags_to_include"])
        if "tags_to_exclude" in kwargs:
            kwargs["tags_to_exclude"] = tuple(kwargs["tags_to_exclude"])
        if "position" in kwargs:
            kwargs["position"] = tuple(kwargs["position"])
        if kwargs.get("bounds") is not None:
            mins, maxs = kwargs["bounds"]
            kwargs["bounds"] = BBox(tuple(mins), tuple(maxs))
        if "jump_definitions" in kwargs:
            kwargs["jump_definitions"] = tuple(
                JumpDefinition(**d) for d in kwargs["jump_definitions"]
            )
        return cls(**kwargs)


def _split(columns: list[IntVector2], workers: int) -> list[list[IntVector2]]:
    """Split columns into contiguous x ranges, one per worker."""
    if workers <= 1 or not columns:
        return [columns]
    xs = sorted({c.x for c in columns})
    per_chunk = max(1, int(math.ceil(len(xs) / workers)))
    chunks: list[list[IntVector2]] = []
    for i in range(0, len(xs), per_chunk):
        band = set(xs[i:i + per_chunk])
        chunks.append([c for c in columns if c.x in band])
    return chunks


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
