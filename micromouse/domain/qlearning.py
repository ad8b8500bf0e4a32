"""Tabular Q-learning core: value table, epsilon-greedy policy and Bellman update."""

import logging
from collections import deque
from typing import Optional, List, Dict, Iterator, Tuple

import numpy as np

from .types import StateKey, RLConfig, ActionInt, NUM_ACTIONS
from ..utils.rng import SeededRNG, default_rng

logger = logging.getLogger(__name__)

# Persisted form: [[state_key_string, [q_right, q_down, q_left, q_up]], ...]
SerializedQTable = List[list]


class QTable:
    """Sparse mapping from state key to 4 action values, zero for unseen states."""

    def __init__(self, entries: Optional[Dict[StateKey, np.ndarray]] = None):
        self._values: Dict[StateKey, np.ndarray] = {}
        if entries:
            for key, values in entries.items():
                self._values[key] = np.array(values, dtype=float)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: StateKey) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[StateKey]:
        return iter(self._values)

    def items(self) -> Iterator[Tuple[StateKey, np.ndarray]]:
        return iter(self._values.items())

    def row(self, key: StateKey) -> np.ndarray:
        """Mutable value row for ``key``, created as zeros on first access."""
        values = self._values.get(key)
        if values is None:
            values = np.zeros(NUM_ACTIONS, dtype=float)
            self._values[key] = values
        return values

    def get(self, key: StateKey) -> np.ndarray:
        """Copy of the values for ``key`` without inserting it."""
        values = self._values.get(key)
        if values is None:
            return np.zeros(NUM_ACTIONS, dtype=float)
        return values.copy()

    def max_value(self, key: StateKey) -> float:
        return float(np.max(self.row(key)))

    def clear(self) -> None:
        self._values.clear()

    def copy(self) -> "QTable":
        return QTable(self._values)

    def snapshot(self) -> Dict[StateKey, np.ndarray]:
        """Deep copy of the entries as a plain dict."""
        return {key: values.copy() for key, values in self._values.items()}

    def to_serializable(self) -> SerializedQTable:
        return [[key.to_string(), [float(v) for v in values]] for key, values in self._values.items()]

    @classmethod
    def from_serializable(cls, data) -> "QTable":
        """
        Parse the persisted list-of-pairs form.

        Raises:
            ValueError: If any entry is malformed or holds non-finite values
        """
        if not isinstance(data, (list, tuple)):
            raise ValueError(f"Expected a list of entries, got {type(data).__name__}")
        table = cls()
        for entry in data:
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                raise ValueError(f"Malformed Q-table entry: {entry!r}")
            key_text, values = entry
            if not isinstance(key_text, str):
                raise ValueError(f"State key must be a string, got {key_text!r}")
            if not isinstance(values, (list, tuple)) or len(values) != NUM_ACTIONS:
                raise ValueError(f"Expected {NUM_ACTIONS} action values for {key_text!r}")
            if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in values):
                raise ValueError(f"Non-numeric action values for {key_text!r}")
            row = np.array(values, dtype=float)
            if not np.all(np.isfinite(row)):
                raise ValueError(f"Non-finite action values for {key_text!r}")
            table._values[StateKey.parse(key_text)] = row
        return table


class ExperienceBuffer:
    """Bounded store of past transitions for experience replay."""

    def __init__(self, capacity: int = 10000, rng: Optional[SeededRNG] = None):
        self.buffer: deque = deque(maxlen=capacity)
        self.rng = rng or default_rng

    def __len__(self) -> int:
        return len(self.buffer)

    def add(self, state: StateKey, action: ActionInt, reward: float, next_state: StateKey):
        self.buffer.append((state, action, reward, next_state))

    def sample(self, batch_size: int = 32) -> list:
        """Uniform sample with replacement of up to ``batch_size`` transitions."""
        count = min(batch_size, len(self.buffer))
        return [self.buffer[self.rng.randrange(len(self.buffer))] for _ in range(count)]

    def clear(self):
        self.buffer.clear()


class PerformanceTracker:
    """Rolling window of step counts used to judge whether learning improves."""

    def __init__(self, window_size: int = 100):
        self.recent: deque = deque(maxlen=window_size)

    def add_result(self, steps: int):
        self.recent.append(steps)

    def average(self) -> float:
        if not self.recent:
            return 0.0
        return sum(self.recent) / len(self.recent)

    def is_improving(self) -> bool:
        """Lower step counts over the last 10 results than the 10 before."""
        if len(self.recent) < 20:
            return False
        values = list(self.recent)
        recent_avg = sum(values[-10:]) / 10
        older_avg = sum(values[-20:-10]) / 10
        return recent_avg < older_avg

    def clear(self):
        self.recent.clear()


class QLearningAgent:
    """Q-learning agent over relative maze states."""

    def __init__(self, config: Optional[RLConfig] = None, rng: Optional[SeededRNG] = None):
        self.config = config or RLConfig()
        self.rng = rng or default_rng
        self.learning_rate = self.config.learning_rate
        self.epsilon = self.config.epsilon
        self.q_table = QTable()
        self.experience_buffer = ExperienceBuffer(self.config.replay_capacity, self.rng)
        self.performance_tracker = PerformanceTracker()
        self.updates_skipped = 0

    def reset(self):
        """Forget everything learned and restore the initial exploration rate."""
        self.learning_rate = self.config.learning_rate
        self.epsilon = self.config.epsilon
        self.q_table.clear()
        self.experience_buffer.clear()
        self.performance_tracker.clear()
        self.updates_skipped = 0

    def sync_config(self, changed=()):
        """Pick up hyperparameters changed on the shared config."""
        if "learning_rate" in changed:
            self.learning_rate = self.config.learning_rate
        if "epsilon" in changed:
            self.epsilon = self.config.epsilon
        self.epsilon = min(1.0, max(self.config.epsilon_min, self.epsilon))

    @property
    def discount_factor(self) -> float:
        return self.config.discount_factor

    def get_q_values(self, state: StateKey) -> np.ndarray:
        """Action values for ``state`` (zeros if never seen)."""
        return self.q_table.get(state)

    def random_action(self) -> ActionInt:
        return self.rng.randrange(NUM_ACTIONS)

    def best_actions(self, state: StateKey) -> List[ActionInt]:
        """All actions attaining the maximum value for ``state``."""
        values = self.q_table.row(state)
        return [int(a) for a in np.flatnonzero(values == values.max())]

    def select_action(self, state: Optional[StateKey]) -> ActionInt:
        """
        Epsilon-greedy action selection.

        Ties between maximal actions are broken uniformly at random. An
        unusable state falls back to a random action.
        """
        if self.rng.random() < self.epsilon:
            return self.random_action()

        if state is None:
            logger.warning("No state available for action selection, acting randomly")
            return self.random_action()

        values = self.q_table.row(state)
        if not np.all(np.isfinite(values)):
            logger.warning("Non-finite Q-values %s for state %s, acting randomly", values, state)
            return self.random_action()

        return self.rng.choice(self.best_actions(state))

    def update(self, state: StateKey, action: ActionInt, reward: float,
               next_state: StateKey) -> Optional[float]:
        """
        Apply Q(s,a) += alpha * (r + gamma * max_a' Q(s',a') - Q(s,a)).

        Returns:
            The new Q(s,a), or None if the update was rejected
        """
        new_q = self._apply_update(state, action, reward, next_state)

        if new_q is not None and self.config.use_experience_replay:
            self.experience_buffer.add(state, action, reward, next_state)
            self.replay_experience()

        return new_q

    def _apply_update(self, state: StateKey, action: ActionInt, reward: float,
                      next_state: StateKey) -> Optional[float]:
        if state is None or next_state is None:
            logger.warning("Skipping update with missing state (%s -> %s)", state, next_state)
            self.updates_skipped += 1
            return None
        if not np.isfinite(reward):
            logger.warning("Skipping update with non-finite reward %r", reward)
            self.updates_skipped += 1
            return None

        row = self.q_table.row(state)
        next_max = self.q_table.max_value(next_state)
        current_q = row[action]
        new_q = current_q + self.learning_rate * (reward + self.discount_factor * next_max - current_q)

        if not np.isfinite(new_q):
            logger.warning("Update for %s action %d produced %r, keeping %r",
                           state, action, new_q, current_q)
            self.updates_skipped += 1
            return None

        row[action] = new_q
        return float(new_q)

    def replay_experience(self):
        """Re-apply the update rule to a random batch of stored transitions."""
        for state, action, reward, next_state in self.experience_buffer.sample(self.config.replay_batch_size):
            self._apply_update(state, action, reward, next_state)

    def decay_exploration(self) -> float:
        """Decay epsilon once per finished episode, never below epsilon_min."""
        self.epsilon = min(1.0, max(self.config.epsilon_min, self.epsilon * self.config.epsilon_decay))
        return self.epsilon

    def record_performance(self, steps: int):
        self.performance_tracker.add_result(steps)
        if self.config.adaptive_learning_rate:
            self.adapt_learning_rate()

    def adapt_learning_rate(self) -> float:
        """Nudge the learning rate up while step counts improve, down otherwise."""
        if self.performance_tracker.is_improving():
            self.learning_rate = min(self.config.max_learning_rate, self.learning_rate * 1.01)
        else:
            self.learning_rate = max(self.config.min_learning_rate, self.learning_rate * 0.99)
        return self.learning_rate

    # Snapshots and persistence

    def copy_q_table(self) -> Dict[StateKey, np.ndarray]:
        """Deep copy of the Q-table, e.g. for scoreboard capture."""
        return self.q_table.snapshot()

    def load_q_table(self, entries: Dict[StateKey, np.ndarray]):
        """Replace the Q-table with a copy of ``entries``."""
        self.q_table = QTable(entries)

    def export_q_table(self) -> SerializedQTable:
        return self.q_table.to_serializable()

    def import_q_table(self, data) -> bool:
        """
        Load a persisted Q-table.

        Malformed data leaves the agent with an empty table.

        Returns:
            True if every entry was loaded
        """
        try:
            self.q_table = QTable.from_serializable(data)
            return True
        except (ValueError, TypeError) as e:
            logger.warning("Rejected malformed Q-table data: %s", e)
            self.q_table = QTable()
            return False

    def get_agent_state(self) -> Dict:
        """Get current agent state for checkpointing."""
        return {
            "epsilon": self.epsilon,
            "learning_rate": self.learning_rate,
            "q_table": self.export_q_table(),
            "config": self.config.to_dict(),
        }

    def load_agent_state(self, state: Dict) -> bool:
        """Load agent state from checkpoint."""
        loaded = self.import_q_table(state.get("q_table", []))
        self.epsilon = min(1.0, max(self.config.epsilon_min, float(state.get("epsilon", self.config.epsilon))))
        self.learning_rate = float(state.get("learning_rate", self.config.learning_rate))
        return loaded
