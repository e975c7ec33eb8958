"""Percolator core - protocol constants, identities and fixed-width words."""
from .ids import to_base58, from_base58, is_zero, is_on_curve, identity_kind
from .words import read_u128, read_i128, split_u128, split_i128

__all__ = [
    "to_base58", "from_base58", "is_zero", "is_on_curve", "identity_kind",
    "read_u128", "read_i128", "split_u128", "split_i128",
]
