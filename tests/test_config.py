import logging

from micromouse.domain.types import RLConfig


def test_defaults():
    config = RLConfig()
    assert config.learning_rate == 0.2
    assert config.discount_factor == 0.95
    assert config.epsilon == 1.0
    assert config.epsilon_decay == 0.995
    assert config.epsilon_min == 0.01


def test_out_of_range_values_are_clamped(caplog):
    with caplog.at_level(logging.WARNING):
        config = RLConfig(learning_rate=5, discount_factor=-1, epsilon_min=0.5, epsilon=2)
    assert config.learning_rate == 1.0
    assert config.discount_factor == 0.0
    assert config.epsilon_min == 0.2
    assert config.epsilon == 1.0
    assert "learning_rate" in caplog.text


def test_non_numeric_and_nan_values():
    config = RLConfig(learning_rate="fast", discount_factor=float("nan"))
    assert config.learning_rate == 0.0
    assert config.discount_factor == 0.0


def test_integer_settings_stay_integers():
    config = RLConfig(maze_size=7.0, max_steps_per_episode=-3)
    assert config.maze_size == 7 and isinstance(config.maze_size, int)
    assert config.max_steps_per_episode == 0


def test_dict_round_trip_ignores_unknown_keys():
    data = RLConfig(learning_rate=0.3).to_dict()
    data["unknown_option"] = True
    assert RLConfig.from_dict(data).learning_rate == 0.3


def test_epsilon_is_kept_above_its_floor():
    config = RLConfig(epsilon=0.0, epsilon_min=0.05)
    assert config.epsilon == 0.05


def test_timer_settings_and_penalty_cap_are_clamped():
    config = RLConfig(tick_interval_ms=-10, success_pause_ms=-1, revisit_penalty_cap=1e9)
    assert config.tick_interval_ms == 0
    assert config.success_pause_ms == 0
    assert config.revisit_penalty_cap == 100.0
    assert isinstance(config.tick_interval_ms, int)
