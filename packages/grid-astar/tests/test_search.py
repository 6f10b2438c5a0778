"""
Test suite for A* path search.

Tests cover:
- Straight, detouring and stepping paths
- Path validity (consecutive cells adjacent or connected)
- Invalid requests (missing, equal or removed endpoints)
- Unreachable targets and partial paths
- Occupancy and the path creator exemption
- Include, exclude and avoid tags
- Connections, dangling connections and drop limits
- Distance fence
- Cancellation before and during a search
- Node ordering (lowest f, ties broken by lowest h)
- Determinism
"""

import threading

import pytest
from grid_astar import IntVector2, PathStatus, PriorityHeap
from grid_astar.search import SearchNode
from grid_astar.testing import (
    FakeAgent,
    add_flat_cell,
    cell_at,
    make_flat_grid,
    make_height_grid,
)


def _assert_valid(path):
    for a, b in zip(path.waypoints, path.waypoints[1:]):
        assert a.cell.is_neighbour(b.cell) or a.cell.is_connected_to(b.cell)


class _CancelAfter(threading.Event):
    """Event that reports set once it has been polled ``polls`` times."""

    def __init__(self, polls):
        super().__init__()
        self.polls = polls
        self.calls = 0

    def is_set(self):
        self.calls += 1
        return self.calls > self.polls


class TestBasicPaths:
    """Paths over open ground."""

    def test_straight_row(self):
        grid = make_flat_grid(5, 5)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))

        assert path.status is PathStatus.FOUND
        assert len(path) == 5
        assert path.length == pytest.approx(4.0)
        assert [w.cell.coordinate for w in path] == [IntVector2(x, 0) for x in range(5)]

    def test_path_includes_start_and_target(self):
        grid = make_flat_grid(5, 5)
        start, target = cell_at(grid, 0, 0), cell_at(grid, 4, 4)
        path = grid.path_builder().run(start, target)
        assert path.start is start
        assert path.end is target

    def test_diagonal_is_shortest(self):
        grid = make_flat_grid(5, 5)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 4))
        assert len(path) == 5
        assert path.length == pytest.approx(4 * 2 ** 0.5)

    def test_positions_are_resolved(self):
        grid = make_flat_grid(5, 5)
        path = grid.path_builder().run((0.5, 0.5, 0.0), (4.5, 0.5, 0.0))
        assert path.found
        assert path.end is cell_at(grid, 4, 0)

    def test_walking_waypoints_have_no_tag(self):
        grid = make_flat_grid(5, 5)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 2))
        assert all(w.movement_tag == "" for w in path)

    def test_detour_around_hole(self):
        grid = make_flat_grid(5, 5, holes=[(2, 1), (2, 2), (2, 3)])
        path = grid.path_builder().run(cell_at(grid, 0, 2), cell_at(grid, 4, 2))

        assert path.found
        assert path.length > 4.0
        assert all(w.cell.coordinate.x != 2 or w.cell.coordinate.y in (0, 4) for w in path)
        _assert_valid(path)

    def test_climbs_steps_but_not_walls(self):
        grid = make_height_grid([
            [0.0, 8.0, 16.0, 24.0],
            [0.0, 40.0, 40.0, 24.0],
        ], step_size=12.0)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 3, 0))
        assert path.found
        assert [w.cell.coordinate for w in path] == [IntVector2(x, 0) for x in range(4)]
        _assert_valid(path)

    def test_deterministic(self):
        grid = make_flat_grid(8, 8, holes=[(3, y) for y in range(1, 8)])
        builder = grid.path_builder()
        first = builder.run(cell_at(grid, 0, 7), cell_at(grid, 7, 7))
        second = builder.run(cell_at(grid, 0, 7), cell_at(grid, 7, 7))
        assert first.cells == second.cells


class TestInvalidRequests:
    """Requests that cannot start a search."""

    def test_same_start_and_target(self):
        grid = make_flat_grid(3, 3)
        cell = cell_at(grid, 1, 1)
        path = grid.path_builder().run(cell, cell)
        assert path.status is PathStatus.INVALID
        assert path.is_empty

    def test_missing_endpoint(self):
        grid = make_flat_grid(3, 3)
        path = grid.path_builder().run(cell_at(grid, 0, 0), (50.0, 50.0, 0.0))
        assert path.status is PathStatus.INVALID

    def test_removed_endpoint(self):
        grid = make_flat_grid(3, 3)
        target = cell_at(grid, 2, 2)
        grid.remove_cell(target)
        path = grid.path_builder().run(cell_at(grid, 0, 0), target)
        assert path.status is PathStatus.INVALID


class TestUnreachable:
    """Targets with no route."""

    def _walled(self):
        # Column x=2 is missing, splitting the field in two.
        return make_flat_grid(5, 5, holes=[(2, y) for y in range(5)])

    def test_unreachable_returns_empty(self):
        grid = self._walled()
        path = grid.path_builder().run(cell_at(grid, 0, 2), cell_at(grid, 4, 2))
        assert path.status is PathStatus.UNREACHABLE
        assert path.is_empty

    def test_partial_path_ends_closest_to_target(self):
        grid = self._walled()
        builder = grid.path_builder().with_partial_enabled()
        path = builder.run(cell_at(grid, 0, 2), cell_at(grid, 4, 2))

        assert path.status is PathStatus.PARTIAL
        assert path.is_partial
        assert path.start is cell_at(grid, 0, 2)
        assert path.end is cell_at(grid, 1, 2)
        _assert_valid(path)

    def test_partial_not_returned_when_no_progress(self):
        grid = self._walled()
        builder = grid.path_builder().with_partial_enabled()
        path = builder.run(cell_at(grid, 1, 2), cell_at(grid, 4, 2))
        assert path.status is PathStatus.UNREACHABLE

    def test_isolated_start(self):
        grid = make_flat_grid(5, 5, holes=[(1, 0), (0, 1), (1, 1)])
        builder = grid.path_builder().with_partial_enabled()
        path = builder.run(cell_at(grid, 0, 0), cell_at(grid, 4, 4))
        assert path.status is PathStatus.UNREACHABLE


class TestOccupancy:
    """Occupied cells and the agent asking for the path."""

    def test_occupied_cells_avoided(self):
        grid = make_flat_grid(5, 5)
        cell_at(grid, 2, 2).occupied = True
        path = grid.path_builder().run(cell_at(grid, 0, 2), cell_at(grid, 4, 2))
        assert path.found
        assert cell_at(grid, 2, 2) not in path.cells

    def test_creator_walks_through_own_cell(self):
        grid = make_flat_grid(5, 1)
        agent = FakeAgent("walker", (2.5, 0.5, 0.0))
        blocker = cell_at(grid, 2, 0)
        blocker.occupied = True
        blocker.set_occupant(agent)

        blocked = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))
        assert blocked.status is PathStatus.UNREACHABLE

        builder = grid.path_builder().with_path_creator(agent)
        path = builder.run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))
        assert path.found
        assert blocker in path.cells

    def test_other_agents_still_block(self):
        grid = make_flat_grid(5, 1)
        owner = FakeAgent("owner", (2.5, 0.5, 0.0))
        other = FakeAgent("other")
        blocker = cell_at(grid, 2, 0)
        blocker.occupied = True
        blocker.set_occupant(owner)
        path = grid.path_builder().with_path_creator(other).run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))
        assert path.status is PathStatus.UNREACHABLE

    def test_start_on_occupied_cell(self):
        grid = make_flat_grid(5, 1)
        start = cell_at(grid, 0, 0)
        start.occupied = True
        path = grid.path_builder().run(start, cell_at(grid, 4, 0))
        assert path.found


class TestTags:
    """Include, exclude and avoid rules."""

    def test_excluded_tag(self):
        grid = make_flat_grid(5, 5)
        for y in range(1, 5):
            cell_at(grid, 2, y).tags.add("water")
        path = grid.path_builder().without_tags("water").run(cell_at(grid, 0, 4), cell_at(grid, 4, 4))
        assert path.found
        assert not any("water" in w.cell.tags for w in path)
        assert cell_at(grid, 2, 0) in path.cells

    def test_included_tag(self):
        grid = make_flat_grid(5, 3)
        road = [(0, 2), (0, 1), (0, 0), (1, 0), (2, 0), (3, 0), (4, 0), (4, 1), (4, 2)]
        for x, y in road:
            cell_at(grid, x, y).tags.add("road")
        path = grid.path_builder().with_tags("road").run(cell_at(grid, 0, 2), cell_at(grid, 4, 2))
        assert path.found
        assert all("road" in w.cell.tags for w in path)
        assert path.length > 4.0

    def test_avoided_tag_costs_extra(self):
        grid = make_flat_grid(5, 3)
        for x in range(1, 4):
            cell_at(grid, x, 1).tags.add("mud")

        direct = grid.path_builder().run(cell_at(grid, 0, 1), cell_at(grid, 4, 1))
        assert any("mud" in w.cell.tags for w in direct)

        around = grid.path_builder().avoid_tag("mud", 10.0).run(cell_at(grid, 0, 1), cell_at(grid, 4, 1))
        assert around.found
        assert not any("mud" in w.cell.tags for w in around)

    def test_avoid_is_not_exclude(self):
        grid = make_flat_grid(5, 1)
        for x in range(1, 4):
            cell_at(grid, x, 0).tags.add("mud")
        path = grid.path_builder().avoid_tag("mud", 10.0).run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))
        assert path.found


class TestConnections:
    """Directed jump and drop links."""

    def _gap(self):
        grid = make_flat_grid(5, 1, holes=[(2, 0)])
        cell_at(grid, 1, 0).add_connection(cell_at(grid, 3, 0), "jump")
        return grid

    def test_path_uses_connection(self):
        grid = self._gap()
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))
        assert path.found
        assert [w.movement_tag for w in path] == ["", "", "jump", ""]

    def test_connections_ignored_when_disabled(self):
        grid = self._gap()
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 0), with_connections=False)
        assert path.status is PathStatus.UNREACHABLE

    def test_connections_are_one_way(self):
        grid = self._gap()
        path = grid.path_builder().run(cell_at(grid, 4, 0), cell_at(grid, 0, 0))
        assert path.status is PathStatus.UNREACHABLE

    def test_dangling_connection_skipped(self):
        grid = self._gap()
        grid.remove_cell(cell_at(grid, 3, 0), delete_connections=False)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))
        assert path.status is PathStatus.UNREACHABLE

    def test_drop_height_limit(self):
        grid = make_height_grid([[100.0, 100.0, None, 0.0, 0.0]])
        cell_at(grid, 1, 0).add_connection(cell_at(grid, 3, 0), "drop")

        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 4, 0))
        assert path.found

        capped = grid.path_builder().with_max_drop_height(50.0)
        assert capped.run(cell_at(grid, 0, 0), cell_at(grid, 4, 0)).status is PathStatus.UNREACHABLE

    def test_drop_limit_clamped_to_grid(self):
        grid = make_flat_grid(2, 2)
        builder = grid.path_builder().with_max_drop_height(10_000.0)
        assert builder.effective_max_drop_height == grid.max_drop_height


class TestFence:
    """max_check_distance prunes cells far from the target."""

    def _u_turn(self):
        grid = make_flat_grid(5, 4, holes=[(x, 2) for x in range(4)])
        return grid, cell_at(grid, 2, 1), cell_at(grid, 2, 3)

    def test_unbounded_search_finds_detour(self):
        grid, start, target = self._u_turn()
        assert grid.path_builder().run(start, target).found

    def test_tight_fence_prunes_detour(self):
        grid, start, target = self._u_turn()
        path = grid.path_builder().with_max_distance(0.0).run(start, target)
        assert path.status is PathStatus.UNREACHABLE

    def test_loose_fence_allows_detour(self):
        grid, start, target = self._u_turn()
        assert grid.path_builder().with_max_distance(5.0).run(start, target).found

    def test_negative_fence_rejected(self):
        grid = make_flat_grid(2, 2)
        with pytest.raises(ValueError):
            grid.path_builder().with_max_distance(-1.0)


class TestCancellation:
    """The cancel event is polled every iteration."""

    def test_cancelled_before_start(self):
        grid = make_flat_grid(10, 10)
        event = threading.Event()
        event.set()
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 9, 9), cancel=event)
        assert path.status is PathStatus.CANCELLED
        assert path.is_empty

    def test_cancelled_mid_search(self):
        grid = make_flat_grid(20, 20)
        event = _CancelAfter(5)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 19, 19), cancel=event)
        assert path.status is PathStatus.CANCELLED
        assert path.is_empty
        # Polled once per iteration: five expansions, then the sixth poll stops it.
        assert event.calls == 6

    def test_unset_event_does_not_interfere(self):
        grid = make_flat_grid(20, 20)
        event = _CancelAfter(10_000)
        path = grid.path_builder().run(cell_at(grid, 0, 0), cell_at(grid, 19, 19), cancel=event)
        assert path.found
        assert event.calls >= len(path)


class TestStackedFloors:
    """Searches stay on the floor they start on."""

    def test_upper_floor_path_stays_upstairs(self):
        grid = make_flat_grid(5, 1)
        for x in range(5):
            add_flat_cell(grid, IntVector2(x, 0), 50.0)
        upper = grid.cells[IntVector2(0, 0)][0]
        target = grid.cells[IntVector2(4, 0)][0]
        path = grid.path_builder().run(upper, target)
        assert path.found
        assert all(w.position[2] == 50.0 for w in path)


class TestNodeOrdering:
    """Search nodes expand lowest f first, then lowest h."""

    def _nodes(self):
        cell = cell_at(make_flat_grid(1, 1), 0, 0)
        near = SearchNode(cell, g=3.0, h=1.0, parent=-1, index=0)
        far = SearchNode(cell, g=1.0, h=3.0, parent=-1, index=1)
        cheap = SearchNode(cell, g=1.0, h=2.0, parent=-1, index=2)
        return near, far, cheap

    def test_equal_f_prefers_lower_h(self):
        near, far, _ = self._nodes()
        assert near.f == far.f
        assert near.compare_to(far) == 1
        assert far.compare_to(near) == -1

    def test_lower_f_wins_over_h(self):
        near, _, cheap = self._nodes()
        assert cheap.compare_to(near) == 1
        assert near.compare_to(cheap) == -1

    def test_identical_keys_compare_equal(self):
        near, _, _ = self._nodes()
        twin = SearchNode(near.cell, g=3.0, h=1.0, parent=-1, index=3)
        assert near.compare_to(twin) == 0

    def test_heap_pops_tie_by_h(self):
        near, far, cheap = self._nodes()
        heap = PriorityHeap(3)
        for node in (far, near, cheap):
            heap.add(node)
        assert [heap.remove_first() for _ in range(3)] == [cheap, near, far]
