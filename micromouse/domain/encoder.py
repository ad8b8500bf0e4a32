"""Map the mouse's situation to a discrete Q-table key."""

import logging
from numbers import Integral
from typing import Optional

from .maze import Maze
from .mouse import Mouse
from .types import Coord, StateKey

logger = logging.getLogger(__name__)


def wall_mask(maze: Maze, x: int, y: int) -> int:
    """4-bit wall pattern around (x, y); bit i is the neighbour in direction i."""
    mask = 0
    for i, is_wall in enumerate(maze.wall_flags(x, y)):
        if is_wall:
            mask |= 1 << i
    return mask


def encode_position(position: Coord, goal: Coord, maze: Maze) -> StateKey:
    """
    Encode a position as (goal offset, wall pattern).

    Raises:
        ValueError: If the coordinates are not integers
    """
    x, y = position
    if not all(isinstance(v, Integral) for v in (x, y, goal[0], goal[1])):
        raise ValueError(f"Non-integer coordinates: position={position}, goal={goal}")
    x, y = int(x), int(y)
    return StateKey(int(goal[0]) - x, int(goal[1]) - y, wall_mask(maze, x, y))


def encode_state(mouse: Mouse, maze: Optional[Maze] = None) -> Optional[StateKey]:
    """
    Relative state of the mouse, or None if it cannot be encoded.

    Cells with the same goal offset and wall pattern map to the same key,
    so learned values carry over between mazes.
    """
    maze = maze or mouse.maze
    try:
        return encode_position((mouse.x, mouse.y), maze.end, maze)
    except (TypeError, ValueError, IndexError, AttributeError) as e:
        logger.warning("Could not encode state at (%r, %r): %s", mouse.x, mouse.y, e)
        return None
