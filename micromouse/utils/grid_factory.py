"""Grid factory for creating and carving maze occupancy grids."""

from typing import Optional, Tuple, List, Sequence

import numpy as np

from ..domain.types import Coord, PATH, WALL
from .rng import SeededRNG, default_rng

MIN_MAZE_SIZE = 5

# Carving steps jump two cells so odd cells become rooms and even cells walls
CARVE_DIRECTIONS: List[Coord] = [(0, -2), (2, 0), (0, 2), (-2, 0)]


def normalize_dimensions(width: int, height: int) -> Tuple[int, int]:
    """
    Make maze dimensions odd and at least MIN_MAZE_SIZE.

    Args:
        width: Requested width
        height: Requested height

    Returns:
        Tuple of (width, height) usable for recursive backtracking
    """
    width = max(MIN_MAZE_SIZE, int(width))
    height = max(MIN_MAZE_SIZE, int(height))
    if width % 2 == 0:
        width += 1
    if height % 2 == 0:
        height += 1
    return width, height


def create_wall_grid(width: int, height: int) -> np.ndarray:
    """
    Create a grid filled with walls.

    Raises:
        ValueError: If width or height <= 0
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")
    return np.full((height, width), WALL, dtype=np.uint8)


def carve_passages(grid: np.ndarray, start: Coord, rng: Optional[SeededRNG] = None) -> None:
    """
    Carve a perfect maze into ``grid`` using randomized recursive backtracking.

    The recursion is unrolled onto an explicit stack; each frame keeps the
    iterator over its shuffled directions so the visiting order matches the
    recursive formulation. A neighbour is carved only when it lies strictly
    inside the border and is still a wall.
    """
    if rng is None:
        rng = default_rng

    height, width = grid.shape
    sx, sy = start
    grid[sy, sx] = PATH
    stack = [(sx, sy, iter(_shuffled_directions(rng)))]

    while stack:
        x, y, directions = stack[-1]
        for dx, dy in directions:
            nx, ny = x + dx, y + dy
            if 0 < nx < width - 1 and 0 < ny < height - 1 and grid[ny, nx] == WALL:
                # Carve wall between current and next cell
                grid[y + dy // 2, x + dx // 2] = PATH
                grid[ny, nx] = PATH
                stack.append((nx, ny, iter(_shuffled_directions(rng))))
                break
        else:
            stack.pop()


def _shuffled_directions(rng: SeededRNG) -> List[Coord]:
    directions = list(CARVE_DIRECTIONS)
    rng.shuffle(directions)
    return directions


def grid_from_layout(rows: Sequence[str]) -> Tuple[np.ndarray, Optional[Coord], Optional[Coord]]:
    """
    Build an occupancy grid from text rows.

    ``#`` marks a wall; ``.``, ``S`` (start) and ``G`` (goal) mark paths.

    Returns:
        Tuple of (grid, start_or_None, goal_or_None)

    Raises:
        ValueError: If rows are empty, ragged or contain unknown characters
    """
    if not rows:
        raise ValueError("Layout must contain at least one row")
    width = len(rows[0])
    if any(len(row) != width for row in rows):
        raise ValueError("Layout rows must all have the same length")

    grid = create_wall_grid(width, len(rows))
    start = goal = None
    for y, row in enumerate(rows):
        for x, char in enumerate(row):
            if char == "#":
                continue
            if char not in ".SG":
                raise ValueError(f"Unknown layout character {char!r} at ({x}, {y})")
            grid[y, x] = PATH
            if char == "S":
                start = (x, y)
            elif char == "G":
                goal = (x, y)
    return grid, start, goal
