"""Percolator identities - 32-byte public-key-shaped fields."""
from __future__ import annotations

import base58
from nacl.bindings import crypto_core_ed25519_is_valid_point

from .protocol import IDENTITY_LEN

ZERO_IDENTITY = bytes(IDENTITY_LEN)


def to_base58(ident: bytes) -> str:
    """Render an identity the way wallets and explorers print it."""
    return base58.b58encode(bytes(ident)).decode("ascii")


def from_base58(text: str) -> bytes:
    """Parse a base58 identity, rejecting anything that is not 32 bytes."""
    raw = base58.b58decode(text.strip())
    if len(raw) != IDENTITY_LEN:
        raise ValueError(f"identity must decode to {IDENTITY_LEN} bytes, got {len(raw)}")
    return raw


def is_zero(ident: bytes) -> bool:
    # The all-zero identity doubles as the system program id.
    return bytes(ident) == ZERO_IDENTITY


def is_on_curve(ident: bytes) -> bool:
    """True when the identity is a valid ed25519 point (a wallet key).

    Program-derived identities are deliberately off-curve.
    """
    if len(ident) != IDENTITY_LEN or is_zero(ident):
        return False
    return bool(crypto_core_ed25519_is_valid_point(bytes(ident)))


def identity_kind(ident: bytes) -> str:
    if is_zero(ident):
        return "none"
    return "wallet" if is_on_curve(ident) else "program-derived"


def short_addr(text: str) -> str:
    """First 4 + last 4 characters."""
    if len(text) <= 12:
        return text
    return text[:4] + "..." + text[-4:]
