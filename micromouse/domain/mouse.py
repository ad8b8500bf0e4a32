"""Agent state: the mouse's position and history within one episode."""

from collections import Counter
from typing import List, Optional, Set

from .maze import Maze
from .types import Coord, ActionInt, ACTION_DELTAS


class Mouse:
    """
    The learner's position, facing direction and per-episode trace.

    ``path`` always starts with the start cell, so ``steps`` equals
    ``len(path) - 1``.
    """

    def __init__(self, maze: Maze):
        self.maze = maze
        self.x, self.y = maze.start
        self.direction: ActionInt = 0  # 0: right, 1: down, 2: left, 3: up
        self.visited: Set[Coord] = set()
        self.visit_counts: Counter = Counter()
        self.path: List[Coord] = []
        self.steps = 0
        self.previous_position: Optional[Coord] = None
        self.reset()

    def reset(self) -> None:
        """Move back to the maze start and clear run-specific data."""
        self.x, self.y = self.maze.start
        self.direction = 0
        self.visited = {self.maze.start}
        self.visit_counts = Counter({self.maze.start: 1})
        self.path = [self.maze.start]
        self.steps = 0
        self.previous_position = None

    @property
    def position(self) -> Coord:
        return (self.x, self.y)

    def next_position(self, action: ActionInt) -> Coord:
        """Position reached by ``action`` without actually moving."""
        dx, dy = ACTION_DELTAS[action]
        return (self.x + dx, self.y + dy)

    def can_move(self, action: ActionInt) -> bool:
        return self.maze.is_valid_position(*self.next_position(action))

    def attempt_move(self, action: ActionInt) -> bool:
        """
        Move one cell in ``action``'s direction if the target is a path cell.

        Returns:
            True if the move was valid and the mouse moved
        """
        new_x, new_y = self.next_position(action)
        if not self.maze.is_valid_position(new_x, new_y):
            return False

        self.previous_position = self.position
        self.x, self.y = new_x, new_y
        self.direction = action
        self.visited.add((new_x, new_y))
        self.visit_counts[(new_x, new_y)] += 1
        self.path.append((new_x, new_y))
        self.steps += 1
        return True

    def times_visited(self, coord: Coord) -> int:
        """How many times ``coord`` has been entered this episode (start counts once)."""
        return self.visit_counts.get(coord, 0)

    def is_at_end(self) -> bool:
        return self.maze.is_goal(self.x, self.y)
