import pytest

pytest.importorskip("PySide6")

from PySide6.QtCore import QCoreApplication

from micromouse.app.controller import MicromouseController
from micromouse.app.fsm import SessionState
from micromouse.domain.types import RLConfig
from micromouse.utils.qtable_store import QTableStore


@pytest.fixture(scope="module")
def qapp():
    return QCoreApplication.instance() or QCoreApplication([])


@pytest.fixture
def controller(qapp, tmp_path):
    config = RLConfig(maze_size=5, steps_per_tick=50, success_pause_ms=10)
    ctrl = MicromouseController(config, seed=11, store=QTableStore(tmp_path))
    yield ctrl
    ctrl.cleanup()


def tick_until_episode_end(controller, limit=10000):
    episodes = []
    controller.episode_completed.connect(episodes.append)
    for _ in range(limit):
        controller._on_timer_tick()
        if episodes and episodes[-1].reached_goal:
            return episodes[-1]
    raise AssertionError("no successful episode")


def test_start_and_pause(controller):
    states = []
    controller.state_changed.connect(states.append)
    assert controller.start_training()
    assert controller.current_state == SessionState.TRAINING
    assert controller.pause_training()
    assert controller.session.paused
    assert controller.resume_training()
    assert states == [SessionState.TRAINING, SessionState.PAUSED, SessionState.TRAINING]


def test_success_pauses_then_advances(controller):
    controller.start_training()
    episode = tick_until_episode_end(controller)
    assert controller.current_state == SessionState.CELEBRATING
    assert controller.session.awaiting_next_episode

    controller._advance_generation()
    assert controller.current_state == SessionState.TRAINING
    assert controller.session.generation == episode.number + 1
    assert controller.session.mouse.steps == 0


def test_settled_route_reports_solved(controller):
    solved = []
    controller.maze_solved.connect(solved.append)
    controller.session.analytics.convergence.solved_optimally = True
    controller.session.analytics.convergence.optimal_steps = 4
    controller.start_training()
    tick_until_episode_end(controller)
    assert controller.current_state == SessionState.SOLVED
    assert solved == [4]
    assert controller.keep_training()
    assert controller.current_state == SessionState.TRAINING


def test_manual_moves(controller):
    assert controller.enter_manual_mode()
    steps = []
    controller.step_completed.connect(steps.append)
    result = controller.manual_move(2)
    assert result is not None and not result.valid_move
    assert steps == [result]
    assert controller.manual_move(9) is None
    assert controller.manual_move("sideways") is None
    assert controller.manual_move("up").position == controller.session.mouse.position
    assert controller.start_training()
    assert not controller.session.manual_mode


def test_save_refused_while_training(controller):
    errors = []
    controller.error_occurred.connect(errors.append)
    controller.start_training()
    assert controller.save_q_table() is False
    assert errors
    controller.pause_training()
    assert controller.save_q_table()
    assert controller.load_q_table()


def test_new_maze_returns_to_idle(controller):
    controller.start_training()
    controller._on_timer_tick()
    assert controller.new_maze(seed=3)
    assert controller.current_state == SessionState.IDLE
    assert controller.session.generation == 0


def test_update_config_clamps(controller):
    controller.update_config(learning_rate=3.0, steps_per_tick=5, bogus=1)
    assert controller.config.learning_rate == 1.0
    assert controller.config.steps_per_tick == 5


def test_statistics(controller):
    stats = controller.get_statistics()
    assert stats["current_state"] == "IDLE"
    assert stats["scoreboard"] == []


def test_update_config_reaches_the_agent(controller):
    controller.update_config(learning_rate=0.9, epsilon=0.0, epsilon_min=0.0)
    agent = controller.session.agent
    assert agent.learning_rate == 0.9
    assert agent.epsilon == 0.0

    # Up from the start is the outer wall
    result = controller.session.step(3)
    assert not result.valid_move
    assert agent.get_q_values(result.state_key)[3] == pytest.approx(-9.0)


def test_raising_epsilon_floor_lifts_agent_epsilon(controller):
    controller.session.agent.epsilon = 0.05
    controller.update_config(epsilon_min=0.1)
    assert controller.session.agent.epsilon == pytest.approx(0.1)
