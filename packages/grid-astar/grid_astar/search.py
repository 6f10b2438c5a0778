"""A* core over a Grid's cells and connections.

Every search owns its node arena, heap and closed set. Nodes refer to their
parent by arena index, so nothing is shared between concurrent searches
running on the same grid.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from grid_astar import settings, vec
from grid_astar.cell import Cell
from grid_astar.heap import PriorityHeap
from grid_astar.types import PathStatus

if TYPE_CHECKING:
    from grid_astar.path import PathBuilder

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class SearchNode:
    """A cell as seen by one search."""

    cell: Cell
    g: float
    h: float
    parent: int
    index: int
    movement_tag: str = ""
    heap_index: int = 0

    @property
    def f(self) -> float:
        return self.g + self.h

    def compare_to(self, other: SearchNode) -> int:
        """Positive when this node should be expanded first (lower f, then lower h)."""
        f, other_f = self.f, other.f
        if f != other_f:
            return 1 if f < other_f else -1
        if self.h != other.h:
            return 1 if self.h < other.h else -1
        return 0


def search(
    config: PathBuilder,
    start: Cell | None,
    target: Cell | None,
    with_connections: bool = True,
    cancel: threading.Event | None = None,
) -> tuple[list[tuple[Cell, str]], PathStatus]:
    """Run A* from ``start`` to ``target``.

    Returns the ``(cell, movement_tag)`` sequence from start to target
    (start included) and the outcome. Never raises for missing paths.
    """
    if start is None or target is None or start == target:
        return [], PathStatus.INVALID
    if not start.valid or not target.valid:
        return [], PathStatus.INVALID

    grid = start.grid
    include = config.tags_to_include
    exclude = config.tags_to_exclude
    avoid = config.tags_to_avoid
    creator = config.path_creator
    max_drop = config.effective_max_drop_height
    straight = vec.distance(start.position, target.position)
    fence = straight + config.max_check_distance

    arena: list[SearchNode] = []
    index_of: dict[Cell, int] = {}
    closed: set[int] = set()
    heap: PriorityHeap[SearchNode] = PriorityHeap(max(grid.cell_count, 1))

    first = SearchNode(start, 0.0, straight, -1, 0)
    arena.append(first)
    index_of[start] = 0
    heap.add(first)

    while heap.count > 0:
        if cancel is not None and cancel.is_set():
            logger.debug("Search %s -> %s cancelled after %d nodes", start, target, len(closed))
            return [], PathStatus.CANCELLED

        current = heap.remove_first()
        closed.add(current.index)

        if current.cell == target:
            logger.debug("Search %s -> %s found after %d nodes", start, target, len(closed))
            return _retrace(arena, current), PathStatus.FOUND

        for cell, tag in _expand(current.cell, with_connections):
            if not cell.valid:
                continue  # dangling connection
            if tag and current.cell.position[2] - cell.position[2] > max_drop:
                continue
            if _is_excluded(cell, exclude, creator):
                continue
            if include and not cell.tags.has_any(include):
                continue
            known = index_of.get(cell)
            if known is not None and known in closed:
                continue
            h = vec.distance(cell.position, target.position)
            if h > fence:
                continue

            g = current.g + vec.distance(current.cell.position, cell.position)
            for avoided, malus in avoid:
                if avoided in cell.tags:
                    g += malus

            if known is None:
                node = SearchNode(cell, g, h, current.index, len(arena), tag)
                arena.append(node)
                index_of[cell] = node.index
                heap.add(node)
            else:
                node = arena[known]
                if g < node.g and heap.contains(node):
                    node.g = g
                    node.parent = current.index
                    node.movement_tag = tag
                    heap.update_item(node)

    if config.accepts_partial:
        candidates = [arena[i] for i in closed if i != 0]
        if candidates:
            best = min(candidates, key=lambda n: (n.h, n.g, n.index))
            if best.h < first.h:
                logger.debug("Search %s -> %s partial, ended at %s", start, target, best.cell)
                return _retrace(arena, best), PathStatus.PARTIAL

    logger.debug("Search %s -> %s unreachable after %d nodes", start, target, len(closed))
    return [], PathStatus.UNREACHABLE


def _expand(cell: Cell, with_connections: bool) -> Iterable[tuple[Cell, str]]:
    if with_connections:
        return cell.get_neighbours_and_connections()
    return ((neighbour, "") for neighbour in cell.get_neighbours())


def _is_excluded(cell: Cell, exclude: tuple[str, ...], creator: object) -> bool:
    for tag in exclude:
        if tag not in cell.tags:
            continue
        if tag == settings.OCCUPIED_TAG and creator is not None and cell.occupant is creator:
            continue
        return True
    return False


def _retrace(arena: list[SearchNode], node: SearchNode) -> list[tuple[Cell, str]]:
    steps: list[tuple[Cell, str]] = []
    current: SearchNode | None = node
    while current is not None:
        steps.append((current.cell, current.movement_tag))
        current = arena[current.parent] if current.parent >= 0 else None
    steps.reverse()
    return steps
