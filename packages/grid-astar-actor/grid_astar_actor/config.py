"""Navigator configuration dataclass."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NavigatorConfig:
    """Immutable configuration for a Navigator.

    Attributes:
        retrace_interval: Seconds between checks for a moved target or a
            strayed actor.
        stray_factor: The actor has strayed once it is farther than
            ``stray_factor * cell_size / 2`` from the path segment it follows.
        arrival_fraction: A waypoint counts as reached within
            ``arrival_fraction * cell_size``.
        occupy_cells: Mark the actor's cell occupied so other agents route
            around it.
        simplify: Run string pulling on every new path.
        accepts_partial: Walk toward unreachable targets as far as possible.
        race: Use a bidirectional race when a runner is attached.
    """

    retrace_interval: float = 0.1
    stray_factor: float = 1.42
    arrival_fraction: float = 0.25
    occupy_cells: bool = True
    simplify: bool = True
    accepts_partial: bool = True
    race: bool = False

    def __post_init__(self) -> None:
        if self.retrace_interval < 0:
            raise ValueError(f"retrace_interval must be >= 0, got {self.retrace_interval}")
        if self.stray_factor <= 0:
            raise ValueError(f"stray_factor must be > 0, got {self.stray_factor}")
        if self.arrival_fraction <= 0:
            raise ValueError(f"arrival_fraction must be > 0, got {self.arrival_fraction}")
