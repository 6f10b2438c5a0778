"""
Test suite for BoxWorld geometry queries.

Tests cover:
- Ray hits, misses and surface normals
- Swept box traces against walls and floors
- Starting inside a solid
- Sliding along a touching surface
- Trace filters (tags, world-only, dynamic-only)
- Sphere point tests
- World bounds
"""

import pytest
from grid_astar import BoxWorld, GeometryQuery, TraceFilter


def _floor_world():
    world = BoxWorld()
    world.add((0.0, 0.0, -10.0), (100.0, 100.0, 0.0))
    return world


class TestRays:
    """Thin segment traces."""

    def test_ray_hits_floor_from_above(self):
        world = _floor_world()
        result = world.ray((50.0, 50.0, 20.0), (50.0, 50.0, -20.0), TraceFilter())
        assert result.hit
        assert result.hit_position == pytest.approx((50.0, 50.0, 0.0))
        assert result.normal == (0.0, 0.0, 1.0)
        assert result.fraction == pytest.approx(0.5)
        assert not result.started_solid

    def test_ray_misses_outside_footprint(self):
        world = _floor_world()
        result = world.ray((150.0, 50.0, 20.0), (150.0, 50.0, -20.0), TraceFilter())
        assert not result.hit
        assert result.end_position == (150.0, 50.0, -20.0)
        assert result.fraction == 1.0

    def test_ray_hits_wall_side(self):
        world = BoxWorld()
        world.add((10.0, -5.0, 0.0), (12.0, 5.0, 10.0))
        result = world.ray((0.0, 0.0, 5.0), (20.0, 0.0, 5.0), TraceFilter())
        assert result.hit
        assert result.hit_position == pytest.approx((10.0, 0.0, 5.0))
        assert result.normal == (-1.0, 0.0, 0.0)

    def test_ray_along_surface_does_not_hit(self):
        world = _floor_world()
        result = world.ray((10.0, 10.0, 0.0), (90.0, 10.0, 0.0), TraceFilter())
        assert not result.hit

    def test_nearest_solid_wins(self):
        world = BoxWorld()
        world.add((20.0, -5.0, 0.0), (22.0, 5.0, 10.0))
        world.add((10.0, -5.0, 0.0), (12.0, 5.0, 10.0))
        result = world.ray((0.0, 0.0, 5.0), (30.0, 0.0, 5.0), TraceFilter())
        assert result.hit_position[0] == pytest.approx(10.0)

    def test_start_inside_solid(self):
        world = _floor_world()
        result = world.ray((50.0, 50.0, -5.0), (50.0, 50.0, 20.0), TraceFilter())
        assert result.hit
        assert result.started_solid
        assert result.fraction == 0.0


class TestBoxes:
    """Swept box traces."""

    def test_box_stops_before_wall(self):
        world = BoxWorld()
        world.add((10.0, -5.0, 0.0), (12.0, 5.0, 10.0))
        result = world.box(
            (-2.0, -2.0, 0.0), (2.0, 2.0, 2.0), (0.0, 0.0, 1.0), (20.0, 0.0, 1.0), TraceFilter(),
        )
        assert result.hit
        assert result.hit_position[0] == pytest.approx(8.0)

    def test_box_slides_on_floor(self):
        world = _floor_world()
        result = world.box(
            (-2.0, -2.0, 0.0), (2.0, 2.0, 2.0), (10.0, 10.0, 0.0), (90.0, 10.0, 0.0), TraceFilter(),
        )
        assert not result.hit

    def test_box_drops_onto_floor(self):
        world = _floor_world()
        result = world.box(
            (-2.0, -2.0, 0.0), (2.0, 2.0, 1.0), (50.0, 50.0, 10.0), (50.0, 50.0, -10.0), TraceFilter(),
        )
        assert result.hit
        assert result.hit_position[2] == pytest.approx(0.0)

    def test_box_overlapping_edge_of_solid_hits(self):
        world = BoxWorld()
        world.add((10.0, 0.0, 0.0), (20.0, 10.0, 10.0))
        # Box centre passes beside the solid, but its extents clip it.
        result = world.box(
            (-3.0, -3.0, -3.0), (3.0, 3.0, 3.0), (8.0, -10.0, 5.0), (8.0, 20.0, 5.0), TraceFilter(),
        )
        assert result.hit

    def test_stationary_box_reports_overlap(self):
        world = BoxWorld()
        world.add((0.0, 0.0, 0.0), (2.0, 2.0, 2.0), dynamic=True)
        probe = TraceFilter(world_only=False, dynamic_only=True)
        result = world.box((-1.0, -1.0, -1.0), (1.0, 1.0, 1.0), (1.0, 1.0, 1.0), (1.0, 1.0, 1.0), probe)
        assert result.hit
        assert result.started_solid


class TestFilters:
    """TraceFilter decides which solids count."""

    def test_excluded_tag_ignored(self):
        world = BoxWorld()
        world.add((0.0, 0.0, -10.0), (100.0, 100.0, 0.0), tags=("solid", "player"))
        result = world.ray((50.0, 50.0, 20.0), (50.0, 50.0, -20.0), TraceFilter(tags_to_exclude=("player",)))
        assert not result.hit

    def test_included_tags_all_required(self):
        world = BoxWorld()
        world.add((0.0, 0.0, -10.0), (100.0, 100.0, 0.0), tags=("solid",))
        required = TraceFilter(tags_to_include=("solid", "floor"))
        assert not world.ray((50.0, 50.0, 20.0), (50.0, 50.0, -20.0), required).hit
        assert world.ray((50.0, 50.0, 20.0), (50.0, 50.0, -20.0), TraceFilter(tags_to_include=("solid",))).hit

    def test_world_only_skips_dynamic(self):
        world = BoxWorld()
        world.add((0.0, 0.0, -10.0), (100.0, 100.0, 0.0), dynamic=True)
        start, end = (50.0, 50.0, 20.0), (50.0, 50.0, -20.0)
        assert not world.ray(start, end, TraceFilter(world_only=True)).hit
        assert world.ray(start, end, TraceFilter(world_only=False)).hit

    def test_dynamic_only_skips_static(self):
        world = _floor_world()
        probe = TraceFilter(world_only=False, dynamic_only=True)
        assert not world.ray((50.0, 50.0, 20.0), (50.0, 50.0, -20.0), probe).hit

    def test_hit_reports_solid_tags(self):
        world = BoxWorld()
        world.add((0.0, 0.0, -10.0), (100.0, 100.0, 0.0), tags=("solid", "grass"))
        result = world.ray((50.0, 50.0, 20.0), (50.0, 50.0, -20.0), TraceFilter())
        assert "grass" in result.tags


class TestPointsAndBounds:
    """Sphere tests and the world's enclosing box."""

    def test_point_inside_solid(self):
        assert _floor_world().test_point((50.0, 50.0, -5.0), 1.0, TraceFilter())

    def test_point_near_surface(self):
        world = _floor_world()
        assert world.test_point((50.0, 50.0, 0.5), 1.0, TraceFilter())
        assert not world.test_point((50.0, 50.0, 2.0), 1.0, TraceFilter())

    def test_bounds_cover_all_solids(self):
        world = _floor_world()
        world.add((50.0, 50.0, 0.0), (150.0, 60.0, 40.0))
        bounds = world.bounds
        assert bounds.mins == (0.0, 0.0, -10.0)
        assert bounds.maxs == (150.0, 100.0, 40.0)

    def test_empty_world_has_no_bounds(self):
        assert BoxWorld().bounds is None

    def test_remove_solid(self):
        world = BoxWorld()
        solid = world.add((0.0, 0.0, -10.0), (100.0, 100.0, 0.0))
        world.remove(solid)
        assert not world.ray((50.0, 50.0, 20.0), (50.0, 50.0, -20.0), TraceFilter()).hit

    def test_box_world_is_a_geometry_query(self):
        assert isinstance(BoxWorld(), GeometryQuery)
