"""Percolator decode - slab and matcher-context layout decoders."""
from loguru import logger

from .errors import LayoutError, TooShort, BadSignature, UnsupportedVersion, IndexOutOfRange
from .layout import (
    decode_header,
    decode_config,
    decode_engine,
    decode_params,
    used_indices,
    is_slot_used,
    max_valid_index,
    decode_account,
    decode_all_used_accounts,
    decode_snapshot,
)
from .matcher import decode_matcher_context
from .program import ProgramData, decode_program_data, decode_program_account

logger.disable("perc_decode")

__all__ = [
    "LayoutError", "TooShort", "BadSignature", "UnsupportedVersion", "IndexOutOfRange",
    "decode_header", "decode_config", "decode_engine", "decode_params",
    "used_indices", "is_slot_used", "max_valid_index", "decode_account",
    "decode_all_used_accounts", "decode_snapshot", "decode_matcher_context",
    "ProgramData", "decode_program_data", "decode_program_account",
]
