import pytest

from micromouse.domain.maze import Maze
from micromouse.domain.types import RLConfig


def room_layout(width, height, walls=()):
    """Open room with a solid border and optional inner wall cells."""
    rows = []
    for y in range(height):
        row = []
        for x in range(width):
            border = x in (0, width - 1) or y in (0, height - 1)
            row.append("#" if border or (x, y) in walls else ".")
        rows.append("".join(row))
    return rows


@pytest.fixture
def config():
    return RLConfig()


@pytest.fixture
def corridor():
    return Maze.from_layout([
        "#######",
        "#S...G#",
        "#######",
    ])


@pytest.fixture
def room():
    """12x12 open room, goal at (10, 10), a wall left of (5, 5)."""
    return Maze.from_layout(room_layout(12, 12, walls={(4, 5)}), start=(1, 1), end=(10, 10))
