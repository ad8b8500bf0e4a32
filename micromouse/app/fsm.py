"""Finite State Machine for training session states."""

from enum import Enum, auto
from typing import Dict, Callable, Optional


class SessionState(Enum):
    """States of an interactive training session."""
    IDLE = auto()
    TRAINING = auto()
    PAUSED = auto()
    CELEBRATING = auto()  # Short pause after a successful run
    SOLVED = auto()  # Route settled; waiting for keep-training or new maze
    MANUAL = auto()
    ERROR = auto()


class SessionStateMachine:
    """State machine for managing training execution."""

    def __init__(self):
        self.current_state = SessionState.IDLE
        self._enter_callbacks: Dict[SessionState, Callable[[Optional[Dict]], None]] = {}
        self._exit_callbacks: Dict[SessionState, Callable[[Optional[Dict]], None]] = {}

        # Define valid state transitions
        self._valid_transitions = {
            SessionState.IDLE: {SessionState.TRAINING, SessionState.MANUAL},
            SessionState.TRAINING: {SessionState.PAUSED, SessionState.CELEBRATING, SessionState.SOLVED,
                                    SessionState.MANUAL, SessionState.ERROR, SessionState.IDLE},
            SessionState.PAUSED: {SessionState.TRAINING, SessionState.MANUAL, SessionState.IDLE},
            SessionState.CELEBRATING: {SessionState.TRAINING, SessionState.SOLVED, SessionState.PAUSED,
                                       SessionState.IDLE},
            SessionState.SOLVED: {SessionState.TRAINING, SessionState.IDLE},
            SessionState.MANUAL: {SessionState.TRAINING, SessionState.IDLE, SessionState.ERROR},
            SessionState.ERROR: {SessionState.IDLE},
        }

    def on_state_enter(self, state: SessionState, callback: Callable[[Optional[Dict]], None]):
        """Register callback for state entry."""
        self._enter_callbacks[state] = callback

    def on_state_exit(self, state: SessionState, callback: Callable[[Optional[Dict]], None]):
        """Register callback for state exit."""
        self._exit_callbacks[state] = callback

    def can_transition(self, to_state: SessionState) -> bool:
        """Check if transition to target state is valid."""
        return to_state in self._valid_transitions.get(self.current_state, set())

    def transition(self, to_state: SessionState, context: Optional[Dict] = None) -> bool:
        """Attempt to transition to target state."""
        if not self.can_transition(to_state):
            return False

        from_state = self.current_state
        if from_state in self._exit_callbacks:
            self._exit_callbacks[from_state](context)

        self.current_state = to_state

        if to_state in self._enter_callbacks:
            self._enter_callbacks[to_state](context)

        return True

    # Convenience methods for common transitions

    def start_training(self, context: Optional[Dict] = None) -> bool:
        return self.transition(SessionState.TRAINING, context)

    def pause(self, context: Optional[Dict] = None) -> bool:
        return self.transition(SessionState.PAUSED, context)

    def resume(self, context: Optional[Dict] = None) -> bool:
        """Resume training from paused state."""
        if self.current_state == SessionState.PAUSED:
            return self.transition(SessionState.TRAINING, context)
        return False

    def celebrate(self, context: Optional[Dict] = None) -> bool:
        return self.transition(SessionState.CELEBRATING, context)

    def solved(self, context: Optional[Dict] = None) -> bool:
        return self.transition(SessionState.SOLVED, context)

    def enter_manual(self, context: Optional[Dict] = None) -> bool:
        return self.transition(SessionState.MANUAL, context)

    def reset_to_idle(self, context: Optional[Dict] = None) -> bool:
        """Reset to idle state."""
        if self.current_state == SessionState.IDLE:
            return True
        return self.transition(SessionState.IDLE, context)

    def fail_error(self, context: Optional[Dict] = None) -> bool:
        return self.transition(SessionState.ERROR, context)

    # State checking methods

    def is_idle(self) -> bool:
        return self.current_state == SessionState.IDLE

    def is_training(self) -> bool:
        return self.current_state == SessionState.TRAINING

    def is_paused(self) -> bool:
        return self.current_state == SessionState.PAUSED

    def is_manual(self) -> bool:
        return self.current_state == SessionState.MANUAL

    def is_error(self) -> bool:
        return self.current_state == SessionState.ERROR

    def can_start(self) -> bool:
        """Check if training can be started or resumed."""
        return self.current_state in {SessionState.IDLE, SessionState.PAUSED,
                                      SessionState.SOLVED, SessionState.MANUAL}

    def get_state_description(self) -> str:
        """Get human-readable state description."""
        descriptions = {
            SessionState.IDLE: "Ready - start training to let the mouse learn",
            SessionState.TRAINING: "Learning mode",
            SessionState.PAUSED: "Training paused",
            SessionState.CELEBRATING: "Goal reached - next generation starting",
            SessionState.SOLVED: "Maze solved - keep training or try a new maze",
            SessionState.MANUAL: "Play mode",
            SessionState.ERROR: "Error occurred during execution",
        }
        return descriptions.get(self.current_state, "Unknown state")
