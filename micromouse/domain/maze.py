"""Maze environment: topology, start/goal and spatial queries."""

from collections import deque
from typing import Optional, List, Sequence, Tuple

import numpy as np

from .types import Coord, PATH, WALL, ACTION_DELTAS, NUM_ACTIONS
from ..utils.grid_factory import (
    normalize_dimensions, create_wall_grid, carve_passages, grid_from_layout
)
from ..utils.rng import SeededRNG, default_rng


class Maze:
    """
    Grid of wall/path cells with a fixed start and goal.

    The grid is a ``numpy`` array indexed ``[y, x]``. A maze is immutable
    once generated; ``generate`` replaces the whole grid.
    """

    def __init__(self, width: int, height: int, rng: Optional[SeededRNG] = None,
                 generate: bool = True):
        self.width, self.height = normalize_dimensions(width, height)
        self.rng = rng or default_rng
        self.grid = create_wall_grid(self.width, self.height)
        self.start: Coord = (1, 1)
        self.end: Coord = (self.width - 2, self.height - 2)
        if generate:
            self.generate()

    @classmethod
    def from_layout(cls, rows: Sequence[str], start: Optional[Coord] = None,
                    end: Optional[Coord] = None) -> "Maze":
        """
        Build a maze from text rows (``#`` wall, ``.`` path, ``S``/``G`` markers).

        Start and goal default to the markers, then to (1, 1) and
        (width - 2, height - 2). They are always forced to be path cells.
        """
        grid, marked_start, marked_goal = grid_from_layout(rows)
        maze = cls.__new__(cls)
        maze.height, maze.width = grid.shape
        maze.rng = default_rng
        maze.grid = grid
        maze.start = start or marked_start or (1, 1)
        maze.end = end or marked_goal or (maze.width - 2, maze.height - 2)
        for x, y in (maze.start, maze.end):
            if not maze.in_bounds(x, y):
                raise ValueError(f"Start/goal ({x}, {y}) is outside the {maze.width}x{maze.height} grid")
            maze.grid[y, x] = PATH
        return maze

    def generate(self) -> None:
        """Generate a new perfect maze rooted at the start cell."""
        self.grid = create_wall_grid(self.width, self.height)
        self.start = (1, 1)
        self.end = (self.width - 2, self.height - 2)
        carve_passages(self.grid, self.start, self.rng)

        # Ensure start and end are clear
        self.grid[self.start[1], self.start[0]] = PATH
        self.grid[self.end[1], self.end[0]] = PATH

    # Spatial queries

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def is_wall(self, x: int, y: int) -> bool:
        """True for wall cells and for any coordinate outside the grid."""
        if not self.in_bounds(x, y):
            return True
        return bool(self.grid[y, x] == WALL)

    def is_valid_position(self, x: int, y: int) -> bool:
        """True if the coordinate is inside the grid and not a wall."""
        return self.in_bounds(x, y) and self.grid[y, x] == PATH

    def wall_flags(self, x: int, y: int) -> Tuple[bool, bool, bool, bool]:
        """Wall test for the neighbours right, down, left, up."""
        return tuple(
            self.is_wall(x + ACTION_DELTAS[a][0], y + ACTION_DELTAS[a][1])
            for a in range(NUM_ACTIONS)
        )

    def is_goal(self, x: int, y: int) -> bool:
        return (x, y) == self.end

    def path_cells(self) -> List[Coord]:
        """All path cells in row-major order."""
        ys, xs = np.nonzero(self.grid == PATH)
        return [(int(x), int(y)) for x, y in zip(xs, ys)]

    def open_neighbors(self, x: int, y: int) -> List[Coord]:
        """Orthogonal neighbours that are valid positions."""
        result = []
        for dx, dy in ACTION_DELTAS.values():
            if self.is_valid_position(x + dx, y + dy):
                result.append((x + dx, y + dy))
        return result

    def reachable_cells(self, origin: Optional[Coord] = None) -> set:
        """Cells reachable from ``origin`` (default: start) by BFS."""
        origin = origin or self.start
        seen = {origin}
        queue = deque([origin])
        while queue:
            x, y = queue.popleft()
            for neighbor in self.open_neighbors(x, y):
                if neighbor not in seen:
                    seen.add(neighbor)
                    queue.append(neighbor)
        return seen

    def shortest_path_length(self) -> Optional[int]:
        """Number of moves on the shortest start-to-goal path, None if unreachable."""
        distances = {self.start: 0}
        queue = deque([self.start])
        while queue:
            current = queue.popleft()
            if current == self.end:
                return distances[current]
            for neighbor in self.open_neighbors(*current):
                if neighbor not in distances:
                    distances[neighbor] = distances[current] + 1
                    queue.append(neighbor)
        return None

    def render_ascii(self, marks: Optional[dict] = None) -> str:
        """Text rendering of the maze; ``marks`` maps coordinates to characters."""
        marks = marks or {}
        lines = []
        for y in range(self.height):
            row = []
            for x in range(self.width):
                if (x, y) in marks:
                    row.append(marks[(x, y)])
                elif (x, y) == self.start:
                    row.append("S")
                elif (x, y) == self.end:
                    row.append("G")
                else:
                    row.append("#" if self.grid[y, x] == WALL else ".")
            lines.append("".join(row))
        return "\n".join(lines)
