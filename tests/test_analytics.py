from micromouse.domain.analytics import MazeAnalytics, Scoreboard, analyze_behavior, path_efficiency
from micromouse.domain.mouse import Mouse
from micromouse.domain.types import ScoreboardEntry


def entry(generation, steps):
    return ScoreboardEntry(generation=generation, name=f"m{generation}", steps=steps)


def test_scoreboard_keeps_fewest_steps_first():
    board = Scoreboard(max_entries=3)
    for generation, steps in enumerate([40, 12, 30, 12, 50]):
        board.add(entry(generation, steps))
    assert [e.steps for e in board.entries] == [12, 12, 30]
    assert board.best().generation == 1
    assert board.add(entry(9, 99)) is False
    assert len(board) == 3


def test_path_efficiency(corridor):
    assert path_efficiency(corridor, 4, 4) == 1.0
    assert path_efficiency(corridor, 8, 4) == 0.5
    assert path_efficiency(corridor, 0, 4) == 0.0


def test_behavior_counts_backtracking(corridor):
    mouse = Mouse(corridor)
    for action in (0, 2, 0, 2, 0):
        mouse.attempt_move(action)
    behavior = analyze_behavior(mouse)
    assert behavior.backtracking == 4
    assert behavior.wall_following == 5 / 6


def run_straight(mouse, analytics, generation):
    mouse.reset()
    for _ in range(4):
        mouse.attempt_move(0)
    return analytics.record_episode(mouse, generation, 0.1, 0.2, True)


def test_identical_runs_settle_the_route(corridor):
    analytics = MazeAnalytics()
    mouse = Mouse(corridor)
    for generation in range(9):
        run_straight(mouse, analytics, generation)
    assert not analytics.convergence.solved_optimally

    record = run_straight(mouse, analytics, 9)
    assert record.path_efficiency == 1.0
    assert analytics.convergence.converged
    assert analytics.convergence.solved_optimally
    assert analytics.convergence.optimal_steps == 4
    assert analytics.summary()["solved_optimally"]


def test_failed_runs_do_not_count_towards_convergence(corridor):
    analytics = MazeAnalytics()
    mouse = Mouse(corridor)
    for generation in range(12):
        analytics.record_episode(mouse, generation, 1.0, 0.2, False)
    assert not analytics.convergence.converged
    assert len(analytics.episodes) == 12


def test_learning_trend(corridor):
    analytics = MazeAnalytics()
    assert analytics.learning_trend()["status"] == "Initializing"
    mouse = Mouse(corridor)
    for generation in range(10):
        mouse.reset()
        for _ in range(10):
            mouse.attempt_move(0)
            mouse.attempt_move(2)
        analytics.record_episode(mouse, generation, 1.0, 0.2, False)
    for generation in range(10, 20):
        run_straight(mouse, analytics, generation)
    assert analytics.learning_trend()["trend"] == "improving"
