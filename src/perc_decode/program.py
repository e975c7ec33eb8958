"""Upgradeable-loader account decoder.

Answers one question about a program the market depends on: can its bytecode
still change. A ProgramData account with no upgrade authority is immutable.
"""
from __future__ import annotations

from dataclasses import dataclass

from perc_core.protocol import (
    LOADER_TYPE_PROGRAM,
    LOADER_TYPE_PROGRAMDATA,
    LOADER_PROGRAM_DATA_ADDR,
    LOADER_PROGRAM_LEN,
    LOADER_PD_SLOT,
    LOADER_PD_AUTHORITY_TAG,
    LOADER_PD_AUTHORITY,
    LOADER_PD_METADATA_LEN,
)
from perc_core.words import read_identity, read_u8, read_u32, read_u64

from .errors import BadSignature, require_len


@dataclass(frozen=True)
class ProgramData:
    last_deployed_slot: int
    upgrade_authority: bytes | None
    data_len: int

    @property
    def upgradeable(self) -> bool:
        return self.upgrade_authority is not None

    @property
    def status(self) -> str:
        return "MUTABLE" if self.upgradeable else "IMMUTABLE"


def _check_type(buf, expected: int) -> None:
    require_len(buf, 4, "loader type")
    found = read_u32(buf, 0)
    if found != expected:
        raise BadSignature(expected, found)


def decode_program_account(buf) -> bytes:
    """Address of the ProgramData account a Program account points at."""
    _check_type(buf, LOADER_TYPE_PROGRAM)
    require_len(buf, LOADER_PROGRAM_LEN, "program account")
    return read_identity(buf, LOADER_PROGRAM_DATA_ADDR)


def decode_program_data(buf) -> ProgramData:
    _check_type(buf, LOADER_TYPE_PROGRAMDATA)
    require_len(buf, LOADER_PD_AUTHORITY_TAG + 1, "program data")

    authority = None
    # Only tag 1 (Some) carries a key; anything else reads as no authority.
    if read_u8(buf, LOADER_PD_AUTHORITY_TAG) == 1:
        require_len(buf, LOADER_PD_METADATA_LEN, "program data authority")
        authority = read_identity(buf, LOADER_PD_AUTHORITY)

    return ProgramData(
        last_deployed_slot=read_u64(buf, LOADER_PD_SLOT),
        upgrade_authority=authority,
        data_len=len(buf),
    )
