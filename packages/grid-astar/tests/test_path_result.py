"""
Test suite for PathBuilder configuration and PathResult.

Tests cover:
- PathBuilder copy methods
- Length computation and caching
- Reversal
- Simplification (collapsing, blocked corners, tagged waypoints, endpoints)
- Empty results
"""

import pytest
from grid_astar import PathBuilder, PathResult, PathStatus, Waypoint
from grid_astar.testing import cell_at, make_flat_grid


class TestPathBuilder:
    """Immutable search configuration."""

    def test_defaults_exclude_occupied(self):
        grid = make_flat_grid(2, 2)
        builder = grid.path_builder()
        assert builder.grid is grid
        assert builder.tags_to_exclude == ("occupied",)
        assert builder.tags_to_include == ()
        assert not builder.accepts_partial

    def test_copy_methods_leave_receiver_unchanged(self):
        grid = make_flat_grid(2, 2)
        builder = PathBuilder(grid)
        changed = builder.without_tags("water").avoid_tag("mud", 3.0).with_partial_enabled()
        assert builder.tags_to_exclude == ("occupied",)
        assert changed.tags_to_exclude == ("occupied", "water")
        assert changed.tags_to_avoid == (("mud", 3.0),)
        assert changed.accepts_partial

    def test_with_tags_moves_tag_out_of_exclude(self):
        grid = make_flat_grid(2, 2)
        builder = grid.path_builder().without_tags("road").with_tags("road")
        assert builder.tags_to_include == ("road",)
        assert "road" not in builder.tags_to_exclude

    def test_avoid_tag_replaces_malus(self):
        grid = make_flat_grid(2, 2)
        builder = grid.path_builder().avoid_tag("mud", 3.0).avoid_tag("mud", 7.0)
        assert builder.tags_to_avoid == (("mud", 7.0),)

    def test_negative_drop_height_rejected(self):
        grid = make_flat_grid(2, 2)
        with pytest.raises(ValueError):
            grid.path_builder().with_max_drop_height(-1.0)


class TestLengthAndReverse:
    """Derived path data."""

    def test_length_sums_segments(self):
        grid = make_flat_grid(5, 5)
        path = PathResult(
            [Waypoint(cell_at(grid, 0, 0)), Waypoint(cell_at(grid, 3, 0)), Waypoint(cell_at(grid, 3, 4))],
            PathStatus.FOUND,
            grid.path_builder(),
        )
        assert path.length == pytest.approx(7.0)

    def test_reversed_walks_backwards_without_tags(self):
        grid = make_flat_grid(5, 1, holes=[(2, 0)])
        cell_at(grid, 1, 0).add_connection(cell_at(grid, 3, 0), "jump")
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))
        back = path.reversed()
        assert back.cells == list(reversed(path.cells))
        assert all(w.movement_tag == "" for w in back)
        assert back.status is path.status

    def test_run_reversed(self):
        grid = make_flat_grid(5, 1)
        path = grid.path_builder().run(cell_at(grid, 4, 0), cell_at(grid, 0, 0), reversed=True)
        assert path.start is cell_at(grid, 0, 0)
        assert path.end is cell_at(grid, 4, 0)

    def test_empty_result(self):
        grid = make_flat_grid(2, 2)
        path = PathResult.empty(grid.path_builder(), PathStatus.UNREACHABLE)
        assert path.is_empty
        assert path.start is None and path.end is None
        assert path.length == 0.0
        assert len(path) == 0


class TestSimplify:
    """Line-of-sight smoothing."""

    def test_open_field_collapses_to_endpoints(self):
        grid = make_flat_grid(5, 5)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 2))
        before = path.length
        start, end = path.start, path.end

        assert path.simplify() is path
        assert len(path) == 2
        assert path.start is start and path.end is end
        assert path.length < before

    def test_straight_row_collapses(self):
        grid = make_flat_grid(6, 1)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 5, 0))
        path.simplify()
        assert path.cells == [cell_at(grid, 0, 0), cell_at(grid, 5, 0)]
        assert path.length == pytest.approx(5.0)

    def test_corner_kept_when_sight_blocked(self):
        # L-shaped corridor: row y=0 then column x=4.
        holes = [(x, y) for x in range(4) for y in range(1, 5)]
        grid = make_flat_grid(5, 5, holes=holes)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 4))
        path.simplify()

        assert len(path) > 2
        for a, b in zip(path.cells, path.cells[1:]):
            assert grid.line_of_sight(a, b)

    def test_tagged_waypoints_stay(self):
        grid = make_flat_grid(9, 1, holes=[(4, 0)])
        launch, landing = cell_at(grid, 3, 0), cell_at(grid, 5, 0)
        launch.add_connection(landing, "jump")
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 8, 0))
        path.simplify()

        assert launch in path.cells
        assert landing in path.cells
        tagged = [w for w in path if w.movement_tag]
        assert [w.cell for w in tagged] == [landing]
        assert path.start is cell_at(grid, 0, 0)
        assert path.end is cell_at(grid, 8, 0)

    def test_short_paths_untouched(self):
        grid = make_flat_grid(2, 1)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 1, 0))
        path.simplify()
        assert len(path) == 2

    def test_window_below_two_is_noop(self):
        grid = make_flat_grid(5, 1)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))
        path.simplify(segment_amounts=1)
        assert len(path) == 5
