"""Chainlink-style price store reader."""
from __future__ import annotations

from dataclasses import dataclass

from perc_core.protocol import ORACLE_ANSWER_OFF, ORACLE_DECIMALS_OFF, ORACLE_MIN_LEN
from perc_core.words import read_i64, read_u8

from .errors import require_len


@dataclass(frozen=True)
class OraclePrice:
    price: int
    decimals: int

    def as_float(self) -> float:
        # Display only; pricing stays on the integer.
        return self.price / 10 ** self.decimals


def decode_oracle_price(buf) -> OraclePrice:
    require_len(buf, ORACLE_MIN_LEN, "oracle")
    return OraclePrice(
        price=read_i64(buf, ORACLE_ANSWER_OFF),
        decimals=read_u8(buf, ORACLE_DECIMALS_OFF),
    )
