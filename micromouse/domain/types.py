"""Core type definitions for the micromouse Q-learning agent."""

import logging
from dataclasses import dataclass, field, fields
from typing import Optional, Tuple, Literal, Dict, List, NamedTuple

import numpy as np

logger = logging.getLogger(__name__)

# Coordinate type for grid positions
Coord = Tuple[int, int]

# Actions the mouse can take, in the order used by the wall mask
Action = Literal["right", "down", "left", "up"]
ActionInt = Literal[0, 1, 2, 3]  # Numerical representation

NUM_ACTIONS = 4

# Cell values in the occupancy grid
PATH = 0
WALL = 1


class StateKey(NamedTuple):
    """Discrete learning state: goal offset plus local wall pattern.

    ``walls`` is a 4-bit mask, bit ``i`` set when the neighbour in
    direction ``i`` (right, down, left, up) is a wall.
    """
    dx: int
    dy: int
    walls: int

    def wall_bits(self) -> str:
        """Wall flags as '0'/'1' digits in direction order."""
        return "".join("1" if self.walls & (1 << i) else "0" for i in range(NUM_ACTIONS))

    def to_string(self) -> str:
        return f"{self.dx},{self.dy},{self.wall_bits()}"

    @classmethod
    def parse(cls, text: str) -> "StateKey":
        """
        Parse a key produced by ``to_string``.

        Raises:
            ValueError: If the text is not a well-formed state key
        """
        parts = text.split(",")
        if len(parts) != 3:
            raise ValueError(f"Malformed state key: {text!r}")
        dx, dy, bits = parts
        if len(bits) != NUM_ACTIONS or any(c not in "01" for c in bits):
            raise ValueError(f"Malformed wall pattern in state key: {text!r}")
        walls = sum(1 << i for i, c in enumerate(bits) if c == "1")
        return cls(int(dx), int(dy), walls)


@dataclass
class RLConfig:
    """Configuration for the learning agent and the training session."""
    learning_rate: float = 0.2
    discount_factor: float = 0.95
    epsilon: float = 1.0  # Start fully exploratory
    epsilon_decay: float = 0.995
    epsilon_min: float = 0.01

    # Session / driver settings
    maze_size: int = 31
    steps_per_tick: int = 10  # Learning steps per timer tick
    tick_interval_ms: int = 50
    success_pause_ms: int = 1500
    max_steps_per_episode: int = 5000  # 0 disables the cap
    scoreboard_size: int = 10

    # Reward shaping
    reward_goal: float = 100.0
    reward_wall: float = -10.0
    reward_step: float = -0.1
    reward_progress: float = 2.0
    reward_backward: float = -1.0
    revisit_penalty: float = 1.0  # Per earlier visit of the destination
    revisit_penalty_cap: float = 5.0

    # Experience replay (optional accelerator)
    use_experience_replay: bool = False
    replay_capacity: int = 10000
    replay_batch_size: int = 32

    # Adaptive learning rate
    adaptive_learning_rate: bool = False
    min_learning_rate: float = 0.1
    max_learning_rate: float = 0.5

    def __post_init__(self):
        self.clamp()

    def clamp(self) -> None:
        """Clamp every hyperparameter into its valid interval."""
        self.learning_rate = _clamp("learning_rate", self.learning_rate, 0.0, 1.0)
        self.discount_factor = _clamp("discount_factor", self.discount_factor, 0.0, 1.0)
        self.epsilon_min = _clamp("epsilon_min", self.epsilon_min, 0.0, 0.2)
        self.epsilon = _clamp("epsilon", self.epsilon, self.epsilon_min, 1.0)
        # A zero decay would wipe exploration out in one episode
        self.epsilon_decay = _clamp("epsilon_decay", self.epsilon_decay, 1e-6, 1.0)
        self.min_learning_rate = _clamp("min_learning_rate", self.min_learning_rate, 0.0, 1.0)
        self.max_learning_rate = _clamp("max_learning_rate", self.max_learning_rate,
                                        self.min_learning_rate, 1.0)
        self.maze_size = int(_clamp("maze_size", self.maze_size, 5, 1001))
        self.steps_per_tick = int(_clamp("steps_per_tick", self.steps_per_tick, 1, 10000))
        self.tick_interval_ms = int(_clamp("tick_interval_ms", self.tick_interval_ms, 0, 60_000))
        self.success_pause_ms = int(_clamp("success_pause_ms", self.success_pause_ms, 0, 600_000))
        self.max_steps_per_episode = int(_clamp("max_steps_per_episode", self.max_steps_per_episode,
                                                0, 10_000_000))
        self.scoreboard_size = int(_clamp("scoreboard_size", self.scoreboard_size, 1, 1000))
        self.replay_capacity = int(_clamp("replay_capacity", self.replay_capacity, 1, 10_000_000))
        self.replay_batch_size = int(_clamp("replay_batch_size", self.replay_batch_size, 1, 100_000))
        self.revisit_penalty_cap = _clamp("revisit_penalty_cap", self.revisit_penalty_cap, 0.0, 100.0)

    def to_dict(self) -> Dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict) -> "RLConfig":
        """Build a config from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def _clamp(name: str, value, low, high):
    """Clamp a value into [low, high], logging when it was out of range."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("Config %s=%r is not numeric, using %s", name, value, low)
        return low
    if np.isnan(number):
        logger.warning("Config %s is NaN, using %s", name, low)
        return low
    if number < low or number > high:
        clamped = min(max(number, low), high)
        logger.warning("Config %s=%s out of range [%s, %s], clamped to %s",
                       name, value, low, high, clamped)
        return clamped
    return number


@dataclass
class StepResult:
    """Outcome of one observe/act/learn cycle, for visualization."""
    state_key: Optional[StateKey]
    action: ActionInt
    reward: float
    valid_move: bool
    position: Coord
    done: bool = False
    success: bool = False
    generation: int = 0
    steps: int = 0


@dataclass
class Episode:
    """Represents a single training episode (generation)."""
    number: int
    steps: int
    total_reward: float
    reached_goal: bool
    epsilon_used: float
    unique_cells: int = 0
    wall_hits: int = 0
    manual: bool = False
    elapsed_time: float = 0.0  # Seconds


@dataclass(eq=False)
class ScoreboardEntry:
    """A successful run kept on the leaderboard, with its Q-table snapshot."""
    generation: int
    name: str
    steps: int
    q_table: Dict[StateKey, np.ndarray] = field(default_factory=dict, repr=False)


@dataclass
class TrainingResult:
    """Result of a batch of training episodes."""
    episodes: List[Episode]
    total_episodes: int
    successful_episodes: int
    average_reward: float
    final_epsilon: float
    best_steps: Optional[int] = None
    solved_optimally: bool = False

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        return self.successful_episodes / self.total_episodes if self.total_episodes > 0 else 0.0

    @property
    def average_steps(self) -> Optional[float]:
        """Average steps of successful episodes."""
        steps = [ep.steps for ep in self.episodes if ep.reached_goal]
        return sum(steps) / len(steps) if steps else None


# Action mappings
ACTION_TO_INT: Dict[Action, ActionInt] = {
    "right": 0,
    "down": 1,
    "left": 2,
    "up": 3
}

ACTION_DELTAS: Dict[ActionInt, Coord] = {
    0: (1, 0),   # right
    1: (0, 1),   # down
    2: (-1, 0),  # left
    3: (0, -1)   # up
}
