"""grid-astar-actor - Path following for agents walking a grid-astar Grid."""
from __future__ import annotations

from grid_astar_actor.config import NavigatorConfig
from grid_astar_actor.navigator import Navigator

__all__ = [
    "Navigator",
    "NavigatorConfig",
]
