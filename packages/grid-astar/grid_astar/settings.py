"""Default generation settings, in world units.

Set ``DEFAULT_STEP_SIZE`` or ``DEFAULT_WIDTH_CLEARANCE`` to 0 to skip the
step and clearance tests (faster generation).
"""
from __future__ import annotations

DEFAULT_STANDABLE_ANGLE = 40.0  # steepest walkable surface, in degrees
DEFAULT_STEP_SIZE = 12.0
DEFAULT_CELL_SIZE = 16.0
DEFAULT_HEIGHT_CLEARANCE = 72.0
DEFAULT_WIDTH_CLEARANCE = 24.0
DEFAULT_GRID_PERFECT = False
DEFAULT_WORLD_ONLY = True
DEFAULT_DROP_HEIGHT = 400.0
DEFAULT_IDENTIFIER = "main"

TOLERANCE = 0.001
GRID_PERFECT_TOLERANCE = 0.05  # fraction of the cell size
NEIGHBOUR_TOLERANCE = 0.1

OCCUPIED_TAG = "occupied"
STEP_TAG = "step"
EDGE_TAG = "edge"
DROP_TAG = "drop"
JUMP_TAG = "jump"
