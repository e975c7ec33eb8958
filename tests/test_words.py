import struct

import pytest

from perc_core.words import (
    compose_i128,
    read_i128,
    read_u128,
    split_i128,
    split_u128,
    write_i128,
    write_u128,
)


def test_u128_above_two_to_the_64_keeps_high_word():
    value = 2**70 + 5
    buf = bytearray(16)
    write_u128(buf, 0, value)
    assert struct.unpack_from("<QQ", buf, 0) == (5, 2**6)
    assert read_u128(buf, 0) == value


def test_u128_boundary_low_word_zero():
    buf = bytearray(16)
    write_u128(buf, 0, 2**64)
    assert struct.unpack_from("<Q", buf, 0)[0] == 0
    assert read_u128(buf, 0) == 2**64


@pytest.mark.parametrize("value", [-1, -(2**64), -(2**64) + 5, -(2**127), 2**127 - 1, -(2**70) - 7])
def test_i128_sign_extends_through_high_word(value):
    buf = bytearray(16)
    write_i128(buf, 0, value)
    assert read_i128(buf, 0) == value


def test_i128_minus_one_is_all_ones():
    buf = bytes([0xFF] * 16)
    assert read_i128(buf, 0) == -1
    assert read_u128(buf, 0) == 2**128 - 1


def test_split_is_inverse_of_compose():
    lo, hi = split_i128(-(2**64) + 5)
    assert (lo, hi) == (5, -1)
    assert compose_i128(lo, hi) == -(2**64) + 5


def test_split_rejects_out_of_range():
    with pytest.raises(ValueError):
        split_u128(-1)
    with pytest.raises(ValueError):
        split_u128(2**128)
    with pytest.raises(ValueError):
        split_i128(2**127)
