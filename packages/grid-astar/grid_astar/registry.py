"""GridRegistry - named grids with explicit lifecycle."""
from __future__ import annotations

import logging
from typing import Callable, Iterator

from grid_astar import settings
from grid_astar.grid import Grid
from grid_astar.types import GridNotFoundError

logger = logging.getLogger(__name__)

GridCallback = Callable[[Grid], None]


class GridRegistry:
    """Holds grids by identifier.

    Owned by whatever drives grid lifecycle; there is no global instance.
    ``remove`` tears the grid down: its cells are unlinked and invalidated.
    """

    def __init__(self) -> None:
        self._grids: dict[str, Grid] = {}
        self._on_register: list[GridCallback] = []
        self._on_remove: list[GridCallback] = []

    def register(self, grid: Grid) -> Grid:
        """Add a grid. A grid already registered under the same identifier is removed first."""
        if grid.identifier in self._grids and self._grids[grid.identifier] is not grid:
            self.remove(grid.identifier)
        self._grids[grid.identifier] = grid
        logger.info("Registered grid %s (%d cells)", grid.identifier, grid.cell_count)
        self._fire(self._on_register, grid, "on_register")
        return grid

    def get(self, identifier: str = settings.DEFAULT_IDENTIFIER) -> Grid:
        """Look up a grid. Raises GridNotFoundError if not registered."""
        if identifier not in self._grids:
            raise GridNotFoundError(identifier)
        return self._grids[identifier]

    def find(self, identifier: str = settings.DEFAULT_IDENTIFIER) -> Grid | None:
        return self._grids.get(identifier)

    def has(self, identifier: str) -> bool:
        return identifier in self._grids

    @property
    def main(self) -> Grid:
        """The grid registered as ``"main"``."""
        return self.get(settings.DEFAULT_IDENTIFIER)

    def identifiers(self) -> list[str]:
        return list(self._grids.keys())

    def remove(self, identifier: str) -> Grid:
        """Unregister and tear down a grid. Raises GridNotFoundError if not registered."""
        if identifier not in self._grids:
            raise GridNotFoundError(identifier)
        grid = self._grids.pop(identifier)
        self._fire(self._on_remove, grid, "on_remove")
        for cell in list(grid.all_cells()):
            grid.remove_cell(cell)
        logger.info("Removed grid %s", identifier)
        return grid

    def clear(self) -> None:
        for identifier in list(self._grids):
            self.remove(identifier)

    def __len__(self) -> int:
        return len(self._grids)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._grids

    def __iter__(self) -> Iterator[Grid]:
        return iter(list(self._grids.values()))

    # --- Callbacks ---

    def on_register(self, callback: GridCallback) -> None:
        self._on_register.append(callback)

    def on_remove(self, callback: GridCallback) -> None:
        """Called with the grid before its cells are torn down."""
        self._on_remove.append(callback)

    def _fire(self, callbacks: list[GridCallback], grid: Grid, name: str) -> None:
        for callback in callbacks:
            try:
                callback(grid)
            except Exception:
                logger.exception("%s callback failed for grid %s", name, grid.identifier)
