"""Matcher context decoder.

One small fixed-layout blob per venue. The credibility snapshot fields are
written by a permissionless refresh on the external program, so they are
returned as-is together with the slot they were taken at; no freshness
correction is applied here.
"""
from __future__ import annotations

from dataclasses import dataclass

from perc_core.protocol import (
    CTX_BASE,
    CTX_BASE_BLOCK_LEN,
    CTX_CREDIBILITY_BLOCK_LEN,
    CTX_MAGIC,
    CTX_VERSION,
    CTX_KIND,
    CTX_LP_PDA,
    CTX_FEE,
    CTX_SPREAD,
    CTX_MAX_TOTAL,
    CTX_IMPACT_K,
    CTX_LIQUIDITY,
    CTX_MAX_FILL,
    CTX_INVENTORY,
    CTX_LAST_ORACLE,
    CTX_LAST_EXEC,
    CTX_MAX_INVENTORY,
    CTX_INSURANCE,
    CTX_TOTAL_OI,
    CTX_MARKET_AGE,
    CTX_LAST_DEFICIT,
    CTX_SNAPSHOT_SLOT,
    CTX_AGE_HALFLIFE,
    CTX_INSURANCE_WEIGHT,
    MATCHER_MAGIC,
    MATCHER_VERSIONS,
    MATCHER_CREDIBILITY_MIN_VERSION,
    MATCHER_KIND_PASSIVE,
    MATCHER_KIND_VAMM,
    MATCHER_KIND_CREDIBILITY,
)
from perc_core.words import read_u8, read_u32, read_u64, read_u128, read_i128, read_identity

from .errors import BadSignature, UnsupportedVersion, require_len


@dataclass(frozen=True)
class CredibilitySnapshot:
    """Last refreshed insurance/OI view. May be arbitrarily old."""

    insurance_balance: int
    total_open_interest: int
    snapshot_slot: int
    market_age_slots: int
    last_deficit_slot: int
    age_halflife_slots: int
    insurance_weight_bps: int


@dataclass(frozen=True)
class MatcherParams:
    kind: int
    fee_bps: int
    spread_bps: int
    max_total_bps: int
    impact_k_bps: int
    liquidity_notional_e6: int
    # Credibility role only
    inventory_base: int = 0
    credibility: CredibilitySnapshot | None = None

    @property
    def is_credibility(self) -> bool:
        return self.kind == MATCHER_KIND_CREDIBILITY


@dataclass(frozen=True)
class MatcherContext:
    version: int
    lp_pda: bytes
    params: MatcherParams
    max_fill_abs: int = 0
    max_inventory_abs: int = 0
    last_oracle_price_e6: int = 0
    last_exec_price_e6: int = 0


def kind_label(kind: int) -> str:
    if kind == MATCHER_KIND_PASSIVE:
        return "passive"
    if kind == MATCHER_KIND_VAMM:
        return "vAMM"
    if kind == MATCHER_KIND_CREDIBILITY:
        return "credibility"
    return f"custom({kind})"


def decode_matcher_context(buf) -> MatcherContext:
    base = CTX_BASE
    require_len(buf, base + CTX_VERSION + 4, "matcher header")

    magic = read_u64(buf, base + CTX_MAGIC)
    if magic != MATCHER_MAGIC:
        raise BadSignature(MATCHER_MAGIC, magic)

    version = read_u32(buf, base + CTX_VERSION)
    if version not in MATCHER_VERSIONS:
        raise UnsupportedVersion(version, MATCHER_VERSIONS)

    require_len(buf, base + CTX_BASE_BLOCK_LEN, "matcher params")
    kind = read_u8(buf, base + CTX_KIND)

    fields = dict(
        kind=kind,
        fee_bps=read_u32(buf, base + CTX_FEE),
        spread_bps=read_u32(buf, base + CTX_SPREAD),
        max_total_bps=read_u32(buf, base + CTX_MAX_TOTAL),
        impact_k_bps=read_u32(buf, base + CTX_IMPACT_K),
        liquidity_notional_e6=read_u128(buf, base + CTX_LIQUIDITY),
    )
    lp_pda = read_identity(buf, base + CTX_LP_PDA)

    if kind != MATCHER_KIND_CREDIBILITY:
        return MatcherContext(version=version, lp_pda=lp_pda, params=MatcherParams(**fields))

    if version < MATCHER_CREDIBILITY_MIN_VERSION:
        raise UnsupportedVersion(version, {v for v in MATCHER_VERSIONS if v >= MATCHER_CREDIBILITY_MIN_VERSION})
    require_len(buf, base + CTX_CREDIBILITY_BLOCK_LEN, "credibility params")

    snapshot = CredibilitySnapshot(
        insurance_balance=read_u128(buf, base + CTX_INSURANCE),
        total_open_interest=read_u128(buf, base + CTX_TOTAL_OI),
        snapshot_slot=read_u64(buf, base + CTX_SNAPSHOT_SLOT),
        market_age_slots=read_u64(buf, base + CTX_MARKET_AGE),
        last_deficit_slot=read_u64(buf, base + CTX_LAST_DEFICIT),
        age_halflife_slots=read_u32(buf, base + CTX_AGE_HALFLIFE),
        insurance_weight_bps=read_u32(buf, base + CTX_INSURANCE_WEIGHT),
    )
    return MatcherContext(
        version=version,
        lp_pda=lp_pda,
        params=MatcherParams(
            **fields,
            inventory_base=read_i128(buf, base + CTX_INVENTORY),
            credibility=snapshot,
        ),
        max_fill_abs=read_u128(buf, base + CTX_MAX_FILL),
        max_inventory_abs=read_u128(buf, base + CTX_MAX_INVENTORY),
        last_oracle_price_e6=read_u64(buf, base + CTX_LAST_ORACLE),
        last_exec_price_e6=read_u64(buf, base + CTX_LAST_EXEC),
    )
