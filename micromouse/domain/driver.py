"""Episode driver: runs observe/act/learn cycles across generations."""

import logging
import time
from typing import Optional, List, Callable, Dict

from .analytics import MazeAnalytics, Scoreboard
from .encoder import encode_state
from .maze import Maze
from .mouse import Mouse
from .qlearning import QLearningAgent
from .rewards import compute_reward
from .types import (
    RLConfig, ActionInt, Episode, StepResult, TrainingResult, ScoreboardEntry, NUM_ACTIONS
)
from ..utils.rng import SeededRNG

logger = logging.getLogger(__name__)

MOUSE_NAMES = ("Pip", "Nibbles", "Whiskers", "Scout", "Dash")
LEARNER_NAME = "Learner"


def mouse_name_for(generation: int) -> str:
    """Display name of the mouse running ``generation``."""
    return f"{MOUSE_NAMES[generation % len(MOUSE_NAMES)]} v{generation // len(MOUSE_NAMES) + 1}"


class TrainingSession:
    """
    One maze, one mouse and one Q-learning agent, stepped by an external clock.

    ``step`` performs a full observe -> select -> move -> reward -> learn
    cycle. When an episode ends it is finalized inside that same call; the
    next episode starts either immediately (``auto_advance``) or when the
    owner calls ``start_next_episode``.
    """

    def __init__(self, config: Optional[RLConfig] = None, seed: Optional[int] = None,
                 maze: Optional[Maze] = None, auto_advance: bool = True):
        self.config = config or RLConfig()
        self.rng = SeededRNG(seed)
        self.auto_advance = auto_advance

        if maze is None:
            maze = Maze(self.config.maze_size, self.config.maze_size, rng=self.rng)
        self.maze = maze
        self.mouse = Mouse(self.maze)
        self.agent = QLearningAgent(self.config, self.rng)
        self.analytics = MazeAnalytics()
        self.scoreboard = Scoreboard(self.config.scoreboard_size)

        self.paused = False
        self.manual_mode = False
        self.awaiting_next_episode = False
        self.mouse_name = LEARNER_NAME
        self._episode_callbacks: List[Callable[[Episode], None]] = []
        self._reset_counters()
        self._begin_episode()

    def _reset_counters(self):
        self.generation = 0
        self.successful_runs = 0
        self.total_steps = 0
        self.best_steps: Optional[int] = None
        self.history: List[Episode] = []
        self.last_episode: Optional[Episode] = None

    def _begin_episode(self):
        self.mouse.reset()
        self.awaiting_next_episode = False
        self.episode_attempts = 0
        self.episode_reward = 0.0
        self.episode_wall_hits = 0
        self._epsilon_used = self.agent.epsilon
        self._episode_start_time = time.time()

    def on_episode_end(self, callback: Callable[[Episode], None]):
        """Register a callback run after each episode is finalized."""
        self._episode_callbacks.append(callback)

    # Stepping

    def can_step(self) -> bool:
        return not self.paused and not self.awaiting_next_episode

    def step(self, action: Optional[ActionInt] = None) -> Optional[StepResult]:
        """
        Run one learning step.

        Args:
            action: Externally chosen action (manual control); None lets the
                agent choose

        Returns:
            StepResult, or None if paused, between episodes, or in manual
            mode without an action

        Raises:
            ValueError: If ``action`` is not one of 0..3
        """
        if action is not None and action not in range(NUM_ACTIONS):
            raise ValueError(f"Invalid action {action!r}, expected 0-{NUM_ACTIONS - 1}")
        if not self.can_step():
            return None
        if action is None and self.manual_mode:
            return None

        self._moved = False
        self._accounted = False
        try:
            return self._run_step(action)
        except Exception:
            logger.exception("Learning step failed at %s, falling back to a random move",
                             self.mouse.position)
            return self._fallback_step()

    def _run_step(self, action: Optional[ActionInt]) -> StepResult:
        state = encode_state(self.mouse, self.maze)
        if action is None:
            action = self.agent.select_action(state)

        before = self.mouse.position
        destination = self.mouse.next_position(action)
        valid = self.maze.is_valid_position(*destination)
        prior_visits = self.mouse.times_visited(destination) if valid else 0
        reward = compute_reward(before, destination, self.maze.end, valid, prior_visits, self.config)

        if valid:
            self.mouse.attempt_move(action)
            self._moved = True
            next_state = encode_state(self.mouse, self.maze)
        else:
            self.episode_wall_hits += 1
            next_state = state

        if state is not None and next_state is not None:
            self.agent.update(state, action, reward, next_state)

        return self._account(state, action, reward, valid)

    def _fallback_step(self) -> StepResult:
        if self._accounted:
            return self._recover_after_accounting()
        if self._moved:
            action, valid = self.mouse.direction, True
        else:
            action = self.agent.random_action()
            valid = self.mouse.attempt_move(action)
        return self._account(None, action, 0.0, valid)

    def _recover_after_accounting(self) -> StepResult:
        """Result for a step whose attempt was already counted; never finalizes twice."""
        done = self.awaiting_next_episode
        result = StepResult(
            state_key=None,
            action=self.mouse.direction,
            reward=0.0,
            valid_move=self._moved,
            position=self.mouse.position,
            done=done,
            success=done and self.mouse.is_at_end(),
            generation=self.generation,
            steps=self.mouse.steps,
        )
        if done and self.auto_advance:
            self.start_next_episode()
        return result

    def _account(self, state, action: ActionInt, reward: float, valid: bool) -> StepResult:
        self._accounted = True
        self.episode_attempts += 1
        self.episode_reward += reward

        success = self.mouse.is_at_end()
        cap = self.config.max_steps_per_episode
        done = success or (cap > 0 and self.episode_attempts >= cap)

        result = StepResult(
            state_key=state,
            action=action,
            reward=reward,
            valid_move=valid,
            position=self.mouse.position,
            done=done,
            success=success,
            generation=self.generation,
            steps=self.mouse.steps,
        )
        if done:
            self._finish_episode(success)
        return result

    def run_steps(self, count: int) -> List[StepResult]:
        """Run up to ``count`` steps, stopping at an episode end or pause."""
        results = []
        for _ in range(count):
            result = self.step()
            if result is None:
                break
            results.append(result)
            if result.done and not self.auto_advance:
                break
        return results

    # Episode lifecycle

    def _finish_episode(self, success: bool):
        steps = self.mouse.steps
        episode = Episode(
            number=self.generation,
            steps=steps,
            total_reward=self.episode_reward,
            reached_goal=success,
            epsilon_used=self._epsilon_used,
            unique_cells=len(self.mouse.visited),
            wall_hits=self.episode_wall_hits,
            manual=self.manual_mode,
            elapsed_time=time.time() - self._episode_start_time,
        )
        # Set before bookkeeping: an episode is finalized at most once
        self.awaiting_next_episode = True
        self.history.append(episode)
        self.last_episode = episode

        if success:
            self.successful_runs += 1
            self.total_steps += steps
            self.best_steps = steps if self.best_steps is None else min(self.best_steps, steps)
            if not self.manual_mode:
                self.scoreboard.add(ScoreboardEntry(
                    generation=self.generation,
                    name=self.mouse_name,
                    steps=steps,
                    q_table=self.agent.copy_q_table(),
                ))
            logger.info("Generation %d (%s) reached the goal in %d steps, epsilon %.3f",
                        self.generation, self.mouse_name, steps, self.agent.epsilon)
        else:
            logger.info("Generation %d stopped after %d attempts without reaching the goal",
                        self.generation, self.episode_attempts)

        self.analytics.record_episode(self.mouse, self.generation, self.agent.epsilon,
                                      self.agent.learning_rate, success)
        self.agent.record_performance(steps)

        for callback in self._episode_callbacks:
            try:
                callback(episode)
            except Exception:
                logger.exception("Episode callback failed")

        if self.auto_advance:
            self.start_next_episode()

    def start_next_episode(self) -> bool:
        """Advance the generation, decay exploration and put the mouse back at the start."""
        if not self.awaiting_next_episode:
            return False
        self.generation += 1
        self.agent.decay_exploration()
        self.mouse_name = mouse_name_for(self.generation)
        self._begin_episode()
        return True

    def train(self, episodes: int, progress: Optional[Callable[[Episode], None]] = None) -> TrainingResult:
        """Run ``episodes`` complete episodes synchronously."""
        if self.manual_mode:
            raise RuntimeError("Cannot run automatic training in manual mode")
        was_paused = self.paused
        self.paused = False
        start = len(self.history)
        try:
            while len(self.history) - start < episodes:
                if self.awaiting_next_episode:
                    self.start_next_episode()
                result = self.step()
                if result is not None and result.done and progress:
                    progress(self.history[-1])
        finally:
            self.paused = was_paused
        return self.training_result(self.history[start:])

    def training_result(self, episodes: Optional[List[Episode]] = None) -> TrainingResult:
        episodes = self.history if episodes is None else episodes
        successful = sum(1 for ep in episodes if ep.reached_goal)
        total_reward = sum(ep.total_reward for ep in episodes)
        return TrainingResult(
            episodes=list(episodes),
            total_episodes=len(episodes),
            successful_episodes=successful,
            average_reward=total_reward / len(episodes) if episodes else 0.0,
            final_epsilon=self.agent.epsilon,
            best_steps=self.best_steps,
            solved_optimally=self.analytics.convergence.solved_optimally,
        )

    # Commands

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    def reset_agent(self, load_best: bool = True) -> bool:
        """
        Put the mouse back at the start.

        Returns:
            True if the best scoreboard run's Q-table was loaded
        """
        best = self.scoreboard.best() if load_best else None
        if best is not None:
            self.agent.load_q_table(best.q_table)
            self.mouse_name = mouse_name_for(best.generation)
        else:
            self.mouse_name = LEARNER_NAME
        self._begin_episode()
        return best is not None

    def new_maze(self, seed: Optional[int] = None, keep_q_table: bool = False):
        """Generate a new maze and restart training from generation 0."""
        if seed is not None:
            self.rng.set_seed(seed)
        q_table = self.agent.copy_q_table() if keep_q_table else None

        self.maze.generate()
        self.agent.reset()
        if q_table is not None:
            self.agent.load_q_table(q_table)
        self.analytics.reset()
        self.scoreboard.clear()
        self._reset_counters()
        self.manual_mode = False
        self.mouse_name = LEARNER_NAME
        self._begin_episode()

    def set_manual_mode(self, enabled: bool):
        """Switch between agent-chosen and externally supplied actions."""
        self.manual_mode = enabled
        self._begin_episode()

    # Persistence

    def can_persist(self) -> bool:
        return self.paused or self.awaiting_next_episode or self.episode_attempts == 0

    def save_q_table(self, store, key: Optional[str] = None) -> bool:
        """Save the Q-table through ``store``; only between episodes or while paused."""
        if not self.can_persist():
            logger.warning("Refusing to save the Q-table in the middle of a running episode")
            return False
        return store.save(self.agent, key) if key else store.save(self.agent)

    def load_q_table(self, store, key: Optional[str] = None) -> bool:
        """Load a saved Q-table and restart the current episode with it."""
        if not self.can_persist():
            logger.warning("Refusing to load the Q-table in the middle of a running episode")
            return False
        loaded = store.load(self.agent, key) if key else store.load(self.agent)
        if loaded:
            self.reset_agent(load_best=False)
        return loaded

    # Snapshots

    def statistics(self) -> Dict:
        return {
            "generation": self.generation,
            "mouse_name": self.mouse_name,
            "current_steps": self.mouse.steps,
            "successful_runs": self.successful_runs,
            "total_steps": self.total_steps,
            "average_steps": round(self.total_steps / self.successful_runs) if self.successful_runs else 0,
            "best_steps": self.best_steps,
            "epsilon": self.agent.epsilon,
            "learning_rate": self.agent.learning_rate,
            "q_table_size": len(self.agent.q_table),
            "average_recent_steps": self.agent.performance_tracker.average(),
            "manual_mode": self.manual_mode,
            "paused": self.paused,
        }
