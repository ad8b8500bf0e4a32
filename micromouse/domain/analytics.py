"""Episode statistics, convergence detection and the best-runs scoreboard."""

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Optional, List, Dict

from .maze import Maze
from .mouse import Mouse
from .rewards import manhattan_distance
from .types import ScoreboardEntry


@dataclass
class BehaviorMetrics:
    """Movement patterns observed in one episode."""
    circular_motions: int = 0  # Cells entered more than twice
    backtracking: int = 0  # Immediate A -> B -> A reversals
    wall_following: float = 0.0  # Fraction of path cells with an adjacent wall
    pattern: str = "Directed Search"


@dataclass
class EpisodeRecord:
    """Analytics captured when an episode ends."""
    generation: int
    steps: int
    successful: bool
    path_length: int
    unique_cells: int
    epsilon: float
    learning_rate: float
    path_efficiency: float
    behavior: BehaviorMetrics


@dataclass
class ConvergenceState:
    recent_steps: deque = field(default_factory=lambda: deque(maxlen=10))
    converged: bool = False
    convergence_generation: Optional[int] = None
    solved_optimally: bool = False
    optimal_steps: Optional[int] = None


def analyze_behavior(mouse: Mouse) -> BehaviorMetrics:
    """Classify how the mouse moved during the episode."""
    path = mouse.path
    behavior = BehaviorMetrics()

    counts = Counter(path)
    behavior.circular_motions = sum(1 for c in counts.values() if c > 2)

    behavior.backtracking = sum(1 for i in range(2, len(path)) if path[i] == path[i - 2])

    hugging = sum(1 for x, y in path[1:] if any(mouse.maze.wall_flags(x, y)))
    behavior.wall_following = hugging / len(path) if path else 0.0

    if behavior.wall_following > 0.7:
        behavior.pattern = "Wall Following"
    elif behavior.circular_motions > len(path) * 0.1:
        behavior.pattern = "Circular Search"
    elif behavior.backtracking > len(path) * 0.3:
        behavior.pattern = "Random Exploration"
    return behavior


def path_efficiency(maze: Maze, steps: int, optimal: Optional[int] = None) -> float:
    """Optimal moves divided by moves taken; 1.0 is a perfect run."""
    if steps <= 0:
        return 0.0
    if optimal is None:
        optimal = manhattan_distance(maze.start, maze.end)
    return min(1.0, optimal / steps)


class MazeAnalytics:
    """Collects per-episode metrics for one maze and detects convergence."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.episodes: List[EpisodeRecord] = []
        self.convergence = ConvergenceState()
        self._optimal_cache: Dict[int, Optional[int]] = {}

    def _optimal_steps(self, maze: Maze) -> Optional[int]:
        key = id(maze)
        if key not in self._optimal_cache:
            self._optimal_cache = {key: maze.shortest_path_length()}
        return self._optimal_cache[key]

    def record_episode(self, mouse: Mouse, generation: int, epsilon: float,
                       learning_rate: float, successful: bool) -> EpisodeRecord:
        """Record the finished episode and update convergence tracking."""
        record = EpisodeRecord(
            generation=generation,
            steps=mouse.steps,
            successful=successful,
            path_length=len(mouse.path),
            unique_cells=len(mouse.visited),
            epsilon=epsilon,
            learning_rate=learning_rate,
            path_efficiency=path_efficiency(mouse.maze, mouse.steps, self._optimal_steps(mouse.maze)),
            behavior=analyze_behavior(mouse),
        )
        self.episodes.append(record)
        if successful:
            self._update_convergence(mouse.steps)
        return record

    def _update_convergence(self, steps: int):
        state = self.convergence
        state.recent_steps.append(steps)
        if len(state.recent_steps) < state.recent_steps.maxlen:
            return

        avg = sum(state.recent_steps) / len(state.recent_steps)
        if not state.converged and avg > 0 and all(abs(s - avg) / avg < 0.05 for s in state.recent_steps):
            state.converged = True
            state.convergence_generation = len(self.episodes)

        # Five identical successful runs in a row mean the route has settled
        last_five = list(state.recent_steps)[-5:]
        if all(s == last_five[0] for s in last_five):
            state.solved_optimally = True
            state.optimal_steps = last_five[0]

    def learning_trend(self) -> Dict:
        """Compare the last 10 episodes' mean steps against the 10 before."""
        if len(self.episodes) < 2:
            return {"status": "Initializing", "trend": "neutral", "improvement": 0.0}

        recent = self.episodes[-10:]
        previous = self.episodes[-20:-10]
        recent_avg = sum(ep.steps for ep in recent) / len(recent)
        if not previous:
            improvement = 0.0
        else:
            previous_avg = sum(ep.steps for ep in previous) / len(previous)
            improvement = (previous_avg - recent_avg) / previous_avg * 100 if previous_avg else 0.0

        if improvement > 5:
            trend = "improving"
        elif improvement < -5:
            trend = "degrading"
        else:
            trend = "stable"
        return {
            "status": "Converged" if self.convergence.converged else "Learning",
            "trend": trend,
            "improvement": round(improvement, 2),
        }

    def summary(self) -> Dict:
        recent = self.episodes[-10:]
        if not recent:
            return {"episodes": 0}
        patterns = Counter(ep.behavior.pattern for ep in recent)
        return {
            "episodes": len(self.episodes),
            "average_steps": round(sum(ep.steps for ep in recent) / len(recent)),
            "success_rate": sum(1 for ep in recent if ep.successful) / len(recent) * 100,
            "average_unique_cells": round(sum(ep.unique_cells for ep in recent) / len(recent)),
            "efficiency": sum(ep.path_efficiency for ep in recent) / len(recent),
            "dominant_strategy": patterns.most_common(1)[0][0],
            "progress": self.learning_trend(),
            "converged": self.convergence.converged,
            "solved_optimally": self.convergence.solved_optimally,
            "optimal_steps": self.convergence.optimal_steps,
        }


class Scoreboard:
    """Best successful runs, fewest steps first."""

    def __init__(self, max_entries: int = 10):
        self.max_entries = max_entries
        self.entries: List[ScoreboardEntry] = []

    def __len__(self) -> int:
        return len(self.entries)

    def add(self, entry: ScoreboardEntry) -> bool:
        """Insert a run; returns False if it did not make the board."""
        self.entries.append(entry)
        # Stable sort keeps the earlier generation ahead on ties
        self.entries.sort(key=lambda e: e.steps)
        del self.entries[self.max_entries:]
        return any(e is entry for e in self.entries)

    def best(self) -> Optional[ScoreboardEntry]:
        return self.entries[0] if self.entries else None

    def clear(self):
        self.entries.clear()
