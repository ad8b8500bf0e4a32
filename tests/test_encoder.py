import pytest

from micromouse.domain.encoder import encode_position, encode_state, wall_mask
from micromouse.domain.mouse import Mouse
from micromouse.domain.types import StateKey


def test_state_is_goal_offset_and_wall_mask(corridor):
    mouse = Mouse(corridor)
    key = encode_state(mouse)
    # Goal is 4 to the right; down, left and up are walls
    assert key == StateKey(4, 0, 0b1110)
    assert key.to_string() == "4,0,0111"


def test_same_situation_same_key_across_mazes(corridor, room):
    a = encode_position((2, 1), (5, 1), corridor)
    b = encode_position((2, 1), (5, 1), corridor)
    assert a == b
    assert wall_mask(room, 5, 5) == 0b0100  # wall on the left only


def test_state_key_parse():
    assert StateKey.parse("-3,2,1010") == StateKey(-3, 2, 0b0101)
    for bad in ("1,2", "1,2,10", "a,2,0000", "1,2,0002"):
        with pytest.raises(ValueError):
            StateKey.parse(bad)


def test_non_integer_coordinates_are_rejected(corridor):
    with pytest.raises(ValueError):
        encode_position((1.5, 1), corridor.end, corridor)


def test_encode_state_returns_none_on_failure(corridor):
    mouse = Mouse(corridor)
    mouse.x = 1.5
    assert encode_state(mouse) is None
