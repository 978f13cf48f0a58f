import pytest

from pivcore.fft_common import Direction


def test_to_string():
    forward = Direction.from_string("forward")
    reverse = Direction.from_string("reverse")
    assert f"{forward} {reverse}" == "forward reverse"


@pytest.mark.parametrize("direction", list(Direction))
def test_from_string_round_trip(direction):
    assert Direction.from_string(str(direction)) is direction


def test_from_string_unknown_raises():
    with pytest.raises(ValueError, match="unknown direction"):
        Direction.from_string("sideways")


def test_exponent_signs_are_opposite():
    forward = Direction.from_string("forward")
    reverse = Direction.from_string("reverse")
    assert forward.exponent_sign == -reverse.exponent_sign
    assert forward.exponent_sign < 0