"""Reward shaping for a single attempted move."""

from .types import Coord, RLConfig


def manhattan_distance(pos1: Coord, pos2: Coord) -> int:
    """Calculate Manhattan distance between two positions."""
    return abs(pos1[0] - pos2[0]) + abs(pos1[1] - pos2[1])


def revisit_penalty(prior_visits: int, config: RLConfig) -> float:
    """Penalty for entering a cell already entered ``prior_visits`` times, capped."""
    if prior_visits <= 0:
        return 0.0
    return min(config.revisit_penalty_cap, config.revisit_penalty * prior_visits)


def compute_reward(before: Coord, destination: Coord, goal: Coord, valid_move: bool,
                   prior_visits: int, config: RLConfig) -> float:
    """
    Reward for moving from ``before`` towards ``destination``.

    Rules in priority order:
      1. invalid move (wall or out of bounds): ``reward_wall``
      2. destination is the goal: ``reward_goal``
      3. ``reward_step``, plus ``reward_progress`` when the Manhattan distance
         to the goal shrinks or ``reward_backward`` when it grows, minus the
         capped revisit penalty

    Args:
        before: Position before the move
        destination: Cell the move targets
        goal: Goal cell
        valid_move: Whether the destination is a path cell inside the grid
        prior_visits: Times the destination was entered earlier this episode
        config: Reward constants
    """
    if not valid_move:
        return config.reward_wall

    if destination == goal:
        return config.reward_goal

    reward = config.reward_step

    old_dist = manhattan_distance(before, goal)
    new_dist = manhattan_distance(destination, goal)
    if new_dist < old_dist:
        reward += config.reward_progress
    elif new_dist > old_dist:
        reward += config.reward_backward

    reward -= revisit_penalty(prior_visits, config)
    return reward
