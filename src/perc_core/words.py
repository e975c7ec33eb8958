"""Fixed-width little-endian words.

128-bit values are two consecutive u64 words, low word first. For signed
128-bit values the high word is read as a signed i64, so the sign extends
through the whole value.
"""
from __future__ import annotations

import struct

from .protocol import U64_MAX, U128_MAX

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")
_U64_PAIR = struct.Struct("<QQ")
_U64_I64 = struct.Struct("<Qq")


def read_u8(buf, off: int) -> int:
    return _U8.unpack_from(buf, off)[0]


def read_u16(buf, off: int) -> int:
    return _U16.unpack_from(buf, off)[0]


def read_u32(buf, off: int) -> int:
    return _U32.unpack_from(buf, off)[0]


def read_u64(buf, off: int) -> int:
    return _U64.unpack_from(buf, off)[0]


def read_i64(buf, off: int) -> int:
    return _I64.unpack_from(buf, off)[0]


def compose_u128(lo: int, hi: int) -> int:
    return (hi << 64) | lo


def compose_i128(lo: int, hi: int) -> int:
    # hi is already sign-extended; lo contributes its unsigned bits.
    return (hi << 64) | lo


def split_u128(value: int) -> tuple[int, int]:
    if not 0 <= value <= U128_MAX:
        raise ValueError(f"u128 out of range: {value}")
    return value & U64_MAX, value >> 64


def split_i128(value: int) -> tuple[int, int]:
    if not -(1 << 127) <= value < (1 << 127):
        raise ValueError(f"i128 out of range: {value}")
    return value & U64_MAX, value >> 64


def read_u128(buf, off: int) -> int:
    lo, hi = _U64_PAIR.unpack_from(buf, off)
    return compose_u128(lo, hi)


def read_i128(buf, off: int) -> int:
    lo, hi = _U64_I64.unpack_from(buf, off)
    return compose_i128(lo, hi)


def read_identity(buf, off: int) -> bytes:
    return bytes(buf[off:off + 32])


def write_u128(buf: bytearray, off: int, value: int) -> None:
    _U64_PAIR.pack_into(buf, off, *split_u128(value))


def write_i128(buf: bytearray, off: int, value: int) -> None:
    _U64_I64.pack_into(buf, off, *split_i128(value))
