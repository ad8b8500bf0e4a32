import numpy as np
import pytest

from micromouse.domain.driver import TrainingSession, mouse_name_for, LEARNER_NAME
from micromouse.domain.maze import Maze
from micromouse.domain.types import RLConfig
from micromouse.utils.qtable_store import QTableStore

from conftest import room_layout


def run_until_done(session, limit=100000):
    for _ in range(limit):
        result = session.step()
        if result.done:
            return result
    raise AssertionError("episode did not finish")


def tables_equal(a, b):
    return set(a) == set(b) and all(np.array_equal(a[k], b[k]) for k in a)


def test_training_reaches_goal_in_corridor(corridor):
    session = TrainingSession(RLConfig(), seed=1, maze=corridor)
    result = session.train(10)
    assert result.total_episodes == 10
    assert result.successful_episodes == 10
    assert result.best_steps >= corridor.shortest_path_length()
    assert result.average_steps >= result.best_steps
    assert session.generation == 10
    assert len(session.scoreboard) == 10


def test_every_episode_starts_clean(corridor):
    session = TrainingSession(RLConfig(), seed=2, maze=corridor)

    def check(episode):
        assert session.awaiting_next_episode

    session.on_episode_end(check)
    for _ in range(3):
        session.train(1)
        assert session.mouse.position == corridor.start
        assert session.mouse.steps == 0
        assert session.mouse.visited == {corridor.start}
        assert session.episode_attempts == 0


def test_q_table_survives_episode_reset(corridor):
    session = TrainingSession(RLConfig(), seed=3, maze=corridor, auto_advance=False)
    result = run_until_done(session)
    assert result.success
    before = session.agent.copy_q_table()
    epsilon = session.agent.epsilon
    assert session.start_next_episode()
    assert tables_equal(before, session.agent.copy_q_table())
    assert session.agent.epsilon == pytest.approx(epsilon * 0.995)
    assert session.generation == 1


def test_no_steps_between_episodes_without_auto_advance(corridor):
    session = TrainingSession(RLConfig(), seed=3, maze=corridor, auto_advance=False)
    run_until_done(session)
    assert session.step() is None
    assert session.run_steps(5) == []


def test_goal_step_reward(corridor):
    session = TrainingSession(RLConfig(epsilon=0.0, epsilon_min=0.0), seed=0, maze=corridor)
    results = [session.step(0) for _ in range(4)]
    assert results[-1].reward == 100
    assert results[-1].success and results[-1].done
    assert session.history[-1].steps == 4


def test_wall_hit_is_learned(corridor):
    session = TrainingSession(RLConfig(), seed=0, maze=corridor)
    state_before = session.mouse.position
    result = session.step(3)
    assert not result.valid_move
    assert result.reward == -10
    assert session.mouse.position == state_before
    assert session.agent.get_q_values(result.state_key)[3] == pytest.approx(-2.0)
    assert session.episode_wall_hits == 1


def test_pause_blocks_steps(corridor):
    session = TrainingSession(RLConfig(), seed=0, maze=corridor)
    session.pause()
    assert session.step() is None
    assert session.mouse.steps == 0
    session.resume()
    assert session.step() is not None


def test_manual_mode(corridor):
    session = TrainingSession(RLConfig(), seed=0, maze=corridor)
    session.set_manual_mode(True)
    assert session.step() is None
    result = session.step(0)
    assert result.valid_move and result.position == (2, 1)
    with pytest.raises(ValueError):
        session.step(7)


def test_manual_runs_skip_the_scoreboard(corridor):
    session = TrainingSession(RLConfig(), seed=0, maze=corridor)
    session.set_manual_mode(True)
    for _ in range(4):
        session.step(0)
    assert session.history[-1].manual
    assert session.successful_runs == 1
    assert len(session.scoreboard) == 0
    with pytest.raises(RuntimeError):
        session.train(1)


def test_step_cap_forces_next_generation():
    maze = Maze(21, 21)
    session = TrainingSession(RLConfig(max_steps_per_episode=3), seed=5, maze=maze)
    results = [session.step() for _ in range(3)]
    assert results[-1].done
    assert not results[-1].success
    assert session.generation == 1
    assert session.agent.epsilon == pytest.approx(0.995)
    assert session.history[-1].reached_goal is False
    assert len(session.scoreboard) == 0


def test_failing_step_falls_back_to_random_move(corridor, monkeypatch):
    session = TrainingSession(RLConfig(), seed=0, maze=corridor)

    def broken(state):
        raise RuntimeError("boom")

    monkeypatch.setattr(session.agent, "select_action", broken)
    result = session.step()
    assert result is not None
    assert result.state_key is None
    assert session.episode_attempts == 1


def test_failure_while_finishing_records_episode_once(corridor, monkeypatch):
    session = TrainingSession(RLConfig(), seed=0, maze=corridor, auto_advance=False)
    record = session.analytics.record_episode
    calls = []

    def fail_first(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise RuntimeError("analytics failure")
        return record(*args, **kwargs)

    monkeypatch.setattr(session.analytics, "record_episode", fail_first)
    results = [session.step(0) for _ in range(4)]

    assert results[-1].done and results[-1].success
    assert results[-1].valid_move
    assert len(session.history) == 1
    assert session.episode_attempts == 4
    assert session.successful_runs == 1
    assert len(session.scoreboard) == 1
    assert session.step() is None

    assert session.start_next_episode()
    assert session.generation == 1


def test_failure_after_move_reports_the_move(corridor, monkeypatch):
    session = TrainingSession(RLConfig(), seed=0, maze=corridor)

    def broken(*args):
        raise RuntimeError("update failure")

    monkeypatch.setattr(session.agent, "update", broken)
    result = session.step(0)
    assert result.valid_move
    assert result.action == 0
    assert session.mouse.position == (2, 1)
    assert session.episode_attempts == 1


def test_failing_callback_does_not_stop_training(corridor):
    session = TrainingSession(RLConfig(), seed=0, maze=corridor)

    def broken(episode):
        raise RuntimeError("callback failure")

    session.on_episode_end(broken)
    assert session.train(2).total_episodes == 2


def test_reset_agent_loads_best_run(corridor):
    session = TrainingSession(RLConfig(), seed=6, maze=corridor)
    session.train(5)
    best = session.scoreboard.best()
    session.agent.q_table.clear()
    session.step()

    assert session.reset_agent() is True
    assert tables_equal(session.agent.copy_q_table(), best.q_table)
    assert session.mouse.steps == 0
    assert session.mouse_name == mouse_name_for(best.generation)

    assert session.reset_agent(load_best=False) is False
    assert session.mouse_name == LEARNER_NAME


def test_new_maze_starts_over():
    session = TrainingSession(RLConfig(maze_size=9), seed=8)
    session.train(2)
    session.new_maze(seed=9)
    assert session.generation == 0
    assert len(session.agent.q_table) == 0
    assert len(session.scoreboard) == 0
    assert session.history == []
    assert session.agent.epsilon == 1.0


def test_new_maze_can_keep_q_table():
    session = TrainingSession(RLConfig(maze_size=9), seed=8)
    session.train(2)
    table = session.agent.copy_q_table()
    session.new_maze(keep_q_table=True)
    assert tables_equal(table, session.agent.copy_q_table())


def test_persistence_refused_mid_episode(tmp_path):
    maze = Maze.from_layout(room_layout(9, 9), start=(1, 1), end=(7, 7))
    session = TrainingSession(RLConfig(), seed=0, maze=maze)
    store = QTableStore(tmp_path)
    session.step(0)
    assert session.save_q_table(store) is False
    session.pause()
    assert session.save_q_table(store) is True
    assert session.load_q_table(store) is True
    assert session.mouse.steps == 0


def test_statistics(corridor):
    session = TrainingSession(RLConfig(), seed=0, maze=corridor)
    session.train(2)
    stats = session.statistics()
    assert stats["generation"] == 2
    assert stats["successful_runs"] == 2
    assert stats["best_steps"] >= 4
    assert stats["q_table_size"] == len(session.agent.q_table)


def test_mouse_names_cycle():
    assert mouse_name_for(0) == "Pip v1"
    assert mouse_name_for(6) == "Nibbles v2"
