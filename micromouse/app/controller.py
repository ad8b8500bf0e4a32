"""Application controller: drives a training session from a Qt timer."""

import logging
from typing import Optional, Union

from PySide6.QtCore import QObject, QTimer, Signal

from ..domain.driver import TrainingSession
from ..domain.types import RLConfig, Action, ActionInt, StepResult, ACTION_TO_INT
from ..utils.qtable_store import QTableStore, DEFAULT_KEY
from .fsm import SessionStateMachine, SessionState

logger = logging.getLogger(__name__)


class MicromouseController(QObject):
    """
    Controller that connects a UI (or a headless loop) to a training session.

    Each timer tick runs ``config.steps_per_tick`` learning steps. A
    successful run pauses the session for ``config.success_pause_ms``
    before the next generation starts.

    Signals:
        state_changed: Emitted when the session state changes
        step_completed: Emitted with the StepResult of every step
        episode_completed: Emitted with the Episode when a run ends
        maze_solved: Emitted with the settled step count once the route stops changing
        session_updated: Emitted when the maze or mouse needs to be redrawn
        error_occurred: Emitted when an error occurs
    """

    # Qt Signals
    state_changed = Signal(object)  # SessionState
    step_completed = Signal(object)  # StepResult
    episode_completed = Signal(object)  # Episode
    maze_solved = Signal(int)  # optimal steps
    session_updated = Signal()
    error_occurred = Signal(str)  # Error message

    def __init__(self, config: Optional[RLConfig] = None, seed: Optional[int] = None,
                 store: Optional[QTableStore] = None):
        super().__init__()

        self._config = config or RLConfig()
        self._session = TrainingSession(self._config, seed=seed, auto_advance=False)
        self._state_machine = SessionStateMachine()
        self._store = store or QTableStore()
        self._solved_announced = False

        # Timer for learning steps
        self._timer = QTimer()
        self._timer.timeout.connect(self._on_timer_tick)

        # One-shot timer for the pause after a successful run
        self._pause_timer = QTimer()
        self._pause_timer.setSingleShot(True)
        self._pause_timer.timeout.connect(self._advance_generation)

        self._setup_state_callbacks()

    def _setup_state_callbacks(self):
        """Emit state_changed on every state entry."""
        for state in SessionState:
            self._state_machine.on_state_enter(state, lambda context, s=state: self.state_changed.emit(s))

    # Properties

    @property
    def session(self) -> TrainingSession:
        return self._session

    @property
    def config(self) -> RLConfig:
        return self._config

    @property
    def current_state(self) -> SessionState:
        return self._state_machine.current_state

    @property
    def store(self) -> QTableStore:
        return self._store

    # Training control

    def start_training(self) -> bool:
        """Start or resume learning mode."""
        if not self._state_machine.can_start():
            return False

        was_solved = self.current_state == SessionState.SOLVED
        if self._session.manual_mode:
            self._session.set_manual_mode(False)
        self._session.resume()
        if self._session.awaiting_next_episode:
            self._session.start_next_episode()

        if not self._state_machine.start_training():
            return False
        if was_solved:
            logger.info("Continuing training after the maze was solved")
        self._timer.start(self._config.tick_interval_ms)
        self.session_updated.emit()
        return True

    def pause_training(self) -> bool:
        """Pause at the current step boundary."""
        if self.current_state not in (SessionState.TRAINING, SessionState.CELEBRATING):
            return False
        self._timer.stop()
        self._pause_timer.stop()
        self._session.pause()
        return self._state_machine.pause()

    def resume_training(self) -> bool:
        if not self._state_machine.is_paused():
            return False
        return self.start_training()

    def keep_training(self) -> bool:
        """Continue with the next generation after the maze was solved."""
        if self.current_state != SessionState.SOLVED:
            return False
        return self.start_training()

    def reset_agent(self, load_best: bool = True) -> bool:
        """Stop, put the mouse back at the start and optionally reload the best run's table."""
        self._stop_timers()
        self._session.manual_mode = False
        loaded = self._session.reset_agent(load_best)
        self._session.resume()
        self._state_machine.reset_to_idle()
        self.session_updated.emit()
        return loaded

    def new_maze(self, seed: Optional[int] = None, keep_q_table: bool = False) -> bool:
        """Generate a new maze and start over from generation 0."""
        try:
            self._stop_timers()
            self._session.new_maze(seed=seed, keep_q_table=keep_q_table)
            self._solved_announced = False
            self._session.resume()
            self._state_machine.reset_to_idle()
            self.session_updated.emit()
            return True
        except Exception as e:
            logger.exception("Maze generation failed")
            self.error_occurred.emit(f"Failed to generate maze: {str(e)}")
            return False

    # Manual control

    def enter_manual_mode(self) -> bool:
        if self.current_state not in (SessionState.IDLE, SessionState.TRAINING, SessionState.PAUSED):
            return False
        self._stop_timers()
        self._session.resume()
        self._session.set_manual_mode(True)
        self.session_updated.emit()
        return self._state_machine.enter_manual()

    def manual_move(self, action: Union[ActionInt, Action]) -> Optional[StepResult]:
        """Feed a user-chosen action (index or direction name) through the move/reward/learn pipeline."""
        if not self._state_machine.is_manual():
            return None
        if isinstance(action, str):
            action = ACTION_TO_INT.get(action, action)
        try:
            result = self._session.step(action)
        except ValueError as e:
            self.error_occurred.emit(str(e))
            return None
        if result is None:
            return None

        self.step_completed.emit(result)
        if result.done:
            self.episode_completed.emit(self._session.last_episode)
            self._session.start_next_episode()
        self.session_updated.emit()
        return result

    # Persistence

    def save_q_table(self, key: str = DEFAULT_KEY) -> bool:
        if self._state_machine.is_training():
            self.error_occurred.emit("Pause training before saving the Q-table")
            return False
        if not self._session.save_q_table(self._store, key):
            self.error_occurred.emit("Failed to save Q-table")
            return False
        return True

    def load_q_table(self, key: str = DEFAULT_KEY) -> bool:
        if self._state_machine.is_training():
            self.error_occurred.emit("Pause training before loading a Q-table")
            return False
        if not self._session.load_q_table(self._store, key):
            self.error_occurred.emit("Failed to load Q-table")
            return False
        self.session_updated.emit()
        return True

    # Configuration

    def update_config(self, **kwargs):
        """Update configuration values; out-of-range values are clamped."""
        for key, value in kwargs.items():
            if hasattr(self._config, key):
                setattr(self._config, key, value)
            else:
                logger.warning("Ignoring unknown config option %s", key)
        self._config.clamp()
        self._session.agent.sync_config(kwargs)
        if self._timer.isActive():
            self._timer.setInterval(self._config.tick_interval_ms)

    # Timer callbacks

    def _on_timer_tick(self):
        """Run one batch of learning steps."""
        if not self._state_machine.is_training():
            self._timer.stop()
            return
        try:
            results = self._session.run_steps(self._config.steps_per_tick)
            for result in results:
                self.step_completed.emit(result)
            if results and results[-1].done:
                self._handle_episode_end(results[-1])
            self.session_updated.emit()
        except Exception as e:
            logger.exception("Timer tick failed")
            self._timer.stop()
            self._state_machine.fail_error()
            self.error_occurred.emit(f"Training error: {str(e)}")

    def _handle_episode_end(self, result: StepResult):
        episode = self._session.last_episode
        self.episode_completed.emit(episode)

        if not result.success:
            # Forced termination: no celebration, straight on
            self._session.start_next_episode()
            return

        self._timer.stop()
        convergence = self._session.analytics.convergence
        if convergence.solved_optimally and not self._solved_announced:
            self._solved_announced = True
            self._state_machine.solved()
            self.maze_solved.emit(convergence.optimal_steps)
            return

        self._state_machine.celebrate()
        self._pause_timer.start(self._config.success_pause_ms)

    def _advance_generation(self):
        """Start the next generation once the success pause is over."""
        if self.current_state != SessionState.CELEBRATING:
            return
        self._session.start_next_episode()
        self._state_machine.start_training()
        self._timer.start(self._config.tick_interval_ms)
        self.session_updated.emit()

    def _stop_timers(self):
        self._timer.stop()
        self._pause_timer.stop()

    def cleanup(self):
        """Stop timers before shutdown."""
        try:
            self._stop_timers()
        except RuntimeError:
            pass  # Qt object already deleted

    # Utility methods

    def get_statistics(self) -> dict:
        """Get current session statistics."""
        stats = self._session.statistics()
        stats.update({
            "current_state": self.current_state.name,
            "state_description": self._state_machine.get_state_description(),
            "scoreboard": [
                {"generation": e.generation, "name": e.name, "steps": e.steps}
                for e in self._session.scoreboard.entries
            ],
        })
        return stats
