"""Slab layout decoder.

Pure reads over a raw slab buffer. The header is validated before any field
past it is interpreted, and every 128-bit field is composed from both of its
words. Nothing here caches: each call decodes the bytes it is given.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

from loguru import logger

from perc_core.ids import is_zero
from perc_core.protocol import (
    HEADER_FMT,
    HEADER_LEN,
    SLAB_MAGIC,
    SLAB_LAYOUTS,
    SLAB_V1,
    SlabLayout,
    KIND_LP,
    CFG_COLLATERAL_MINT,
    CFG_VAULT,
    CFG_COLLATERAL_ORACLE,
    CFG_INDEX_ORACLE,
    CFG_MAX_STALENESS,
    CFG_CONF_FILTER_BPS,
    CFG_VAULT_AUTHORITY_BUMP,
    PARAMS_WARMUP_PERIOD,
    PARAMS_MAINTENANCE_MARGIN,
    PARAMS_INITIAL_MARGIN,
    PARAMS_TRADING_FEE,
    PARAMS_MAX_ACCOUNTS,
    PARAMS_NEW_ACCOUNT_FEE,
    PARAMS_RISK_THRESHOLD,
    PARAMS_MAINTENANCE_FEE,
    PARAMS_MAX_CRANK_STALENESS,
    PARAMS_LIQUIDATION_FEE_BPS,
    PARAMS_LIQUIDATION_FEE_CAP,
    PARAMS_LIQUIDATION_BUFFER,
    PARAMS_MIN_LIQUIDATION,
    ACCT_KIND,
    ACCT_ACCOUNT_ID,
    ACCT_CAPITAL,
    ACCT_PNL,
    ACCT_RESERVED_PNL,
    ACCT_WARMUP_STARTED,
    ACCT_WARMUP_SLOPE,
    ACCT_POSITION_SIZE,
    ACCT_ENTRY_PRICE,
    ACCT_FUNDING_INDEX,
    ACCT_MATCHER_PROGRAM,
    ACCT_MATCHER_CONTEXT,
    ACCT_OWNER,
    ACCT_FEE_CREDITS,
    ACCT_LAST_FEE_SLOT,
)
from perc_core.words import (
    read_u8,
    read_u16,
    read_u64,
    read_u128,
    read_i128,
    read_identity,
)

from .errors import BadSignature, IndexOutOfRange, UnsupportedVersion, require_len


class AccountKind(IntEnum):
    USER = 0
    LP = 1


@dataclass(frozen=True)
class Header:
    magic: int
    version: int
    bump: int
    admin: bytes
    nonce: int
    last_thr_update_slot: int

    @property
    def admin_burned(self) -> bool:
        return is_zero(self.admin)


@dataclass(frozen=True)
class Config:
    collateral_mint: bytes
    vault: bytes
    collateral_oracle: bytes
    index_oracle: bytes
    max_staleness_slots: int
    conf_filter_bps: int
    vault_authority_bump: int


@dataclass(frozen=True)
class InsuranceFund:
    balance: int
    fee_revenue: int


@dataclass(frozen=True)
class RiskParams:
    warmup_period_slots: int
    maintenance_margin_bps: int
    initial_margin_bps: int
    trading_fee_bps: int
    max_accounts: int
    new_account_fee: int
    risk_reduction_threshold: int
    maintenance_fee_per_slot: int
    max_crank_staleness_slots: int
    liquidation_fee_bps: int
    liquidation_fee_cap: int
    liquidation_buffer_bps: int
    min_liquidation_abs: int


@dataclass(frozen=True)
class EngineState:
    vault: int
    insurance_fund: InsuranceFund
    current_slot: int
    funding_index_qpb_e6: int
    last_funding_slot: int
    loss_accum: int
    risk_reduction_only: bool
    risk_reduction_mode_withdrawn: int
    warmup_paused: bool
    warmup_pause_slot: int
    last_crank_slot: int
    max_crank_staleness_slots: int
    total_open_interest: int
    warmed_pos_total: int
    warmed_neg_total: int
    warmup_insurance_reserved: int
    num_used_accounts: int
    next_account_id: int


@dataclass(frozen=True)
class Account:
    kind: AccountKind
    account_id: int
    capital: int
    pnl: int
    reserved_pnl: int
    warmup_started_at_slot: int
    warmup_slope_per_step: int
    position_size: int
    entry_price: int
    funding_index: int
    matcher_program: bytes
    matcher_context: bytes
    owner: bytes
    fee_credits: int
    last_fee_slot: int

    @property
    def is_venue(self) -> bool:
        # Older records carry kind=USER but still wire a matcher.
        return self.kind == AccountKind.LP or not is_zero(self.matcher_program)


@dataclass(frozen=True)
class SlabSnapshot:
    """Point-in-time view of one slab buffer."""

    header: Header
    config: Config
    engine: EngineState
    params: RiskParams
    accounts: list[tuple[int, Account]]


@dataclass(frozen=True)
class InsuranceSnapshot:
    balance: int
    fee_revenue: int
    losses_absorbed: int
    open_interest: int
    vault: int


@dataclass(frozen=True)
class MarketSummary:
    """One line of a market listing."""

    version: int
    admin_burned: bool
    collateral_mint: bytes
    num_used_accounts: int
    insurance_balance: int
    total_open_interest: int
    initial_margin_bps: int
    maintenance_margin_bps: int
    trading_fee_bps: int


_HEADER = struct.Struct(HEADER_FMT)


def decode_header(buf) -> Header:
    require_len(buf, HEADER_LEN, "header")

    # Signature first: a mismatch means "not a slab", nothing else is read.
    magic = read_u64(buf, 0)
    if magic != SLAB_MAGIC:
        raise BadSignature(SLAB_MAGIC, magic)

    magic, version, bump, admin, nonce, last_thr = _HEADER.unpack_from(buf, 0)
    return Header(
        magic=magic,
        version=version,
        bump=bump,
        admin=bytes(admin),
        nonce=nonce,
        last_thr_update_slot=last_thr,
    )


def layout_for(buf) -> SlabLayout:
    """Validate the header and return the offset table for its version."""
    header = decode_header(buf)
    layout = SLAB_LAYOUTS.get(header.version)
    if layout is None:
        raise UnsupportedVersion(header.version, SLAB_LAYOUTS)
    return layout


def decode_config(buf) -> Config:
    lay = layout_for(buf)
    base = lay.config_off
    require_len(buf, base + lay.config_len, "config")

    return Config(
        collateral_mint=read_identity(buf, base + CFG_COLLATERAL_MINT),
        vault=read_identity(buf, base + CFG_VAULT),
        collateral_oracle=read_identity(buf, base + CFG_COLLATERAL_ORACLE),
        index_oracle=read_identity(buf, base + CFG_INDEX_ORACLE),
        max_staleness_slots=read_u64(buf, base + CFG_MAX_STALENESS),
        conf_filter_bps=read_u16(buf, base + CFG_CONF_FILTER_BPS),
        vault_authority_bump=read_u8(buf, base + CFG_VAULT_AUTHORITY_BUMP),
    )


def decode_params(buf) -> RiskParams:
    lay = layout_for(buf)
    base = lay.params_off
    require_len(buf, base + lay.params_len, "risk params")

    return RiskParams(
        warmup_period_slots=read_u64(buf, base + PARAMS_WARMUP_PERIOD),
        maintenance_margin_bps=read_u64(buf, base + PARAMS_MAINTENANCE_MARGIN),
        initial_margin_bps=read_u64(buf, base + PARAMS_INITIAL_MARGIN),
        trading_fee_bps=read_u64(buf, base + PARAMS_TRADING_FEE),
        max_accounts=read_u64(buf, base + PARAMS_MAX_ACCOUNTS),
        new_account_fee=read_u128(buf, base + PARAMS_NEW_ACCOUNT_FEE),
        risk_reduction_threshold=read_u128(buf, base + PARAMS_RISK_THRESHOLD),
        maintenance_fee_per_slot=read_u128(buf, base + PARAMS_MAINTENANCE_FEE),
        max_crank_staleness_slots=read_u64(buf, base + PARAMS_MAX_CRANK_STALENESS),
        liquidation_fee_bps=read_u64(buf, base + PARAMS_LIQUIDATION_FEE_BPS),
        liquidation_fee_cap=read_u128(buf, base + PARAMS_LIQUIDATION_FEE_CAP),
        liquidation_buffer_bps=read_u64(buf, base + PARAMS_LIQUIDATION_BUFFER),
        min_liquidation_abs=read_u128(buf, base + PARAMS_MIN_LIQUIDATION),
    )


def decode_engine(buf) -> EngineState:
    lay = layout_for(buf)
    base = lay.engine_off
    # The aggregate block ends with counters just before the accounts array.
    require_len(buf, lay.accounts_off, "engine")

    return EngineState(
        vault=read_u128(buf, base + lay.eng_vault),
        insurance_fund=InsuranceFund(
            balance=read_u128(buf, base + lay.eng_insurance),
            fee_revenue=read_u128(buf, base + lay.eng_insurance + 16),
        ),
        current_slot=read_u64(buf, base + lay.eng_current_slot),
        funding_index_qpb_e6=read_i128(buf, base + lay.eng_funding_index),
        last_funding_slot=read_u64(buf, base + lay.eng_last_funding_slot),
        loss_accum=read_u128(buf, base + lay.eng_loss_accum),
        risk_reduction_only=read_u8(buf, base + lay.eng_risk_reduction_only) != 0,
        risk_reduction_mode_withdrawn=read_u128(buf, base + lay.eng_risk_reduction_withdrawn),
        warmup_paused=read_u8(buf, base + lay.eng_warmup_paused) != 0,
        warmup_pause_slot=read_u64(buf, base + lay.eng_warmup_pause_slot),
        last_crank_slot=read_u64(buf, base + lay.eng_last_crank_slot),
        max_crank_staleness_slots=read_u64(buf, base + lay.eng_max_crank_staleness),
        total_open_interest=read_u128(buf, base + lay.eng_total_oi),
        warmed_pos_total=read_u128(buf, base + lay.eng_warmed_pos),
        warmed_neg_total=read_u128(buf, base + lay.eng_warmed_neg),
        warmup_insurance_reserved=read_u128(buf, base + lay.eng_warmup_insurance),
        num_used_accounts=read_u16(buf, base + lay.eng_num_used),
        next_account_id=read_u64(buf, base + lay.eng_next_account_id),
    )


def _bitmap_words(buf, lay: SlabLayout) -> list[int]:
    require_len(buf, lay.bitmap_off + lay.bitmap_words * 8, "bitmap")
    return list(struct.unpack_from(f"<{lay.bitmap_words}Q", buf, lay.bitmap_off))


def used_indices(buf) -> list[int]:
    """Ascending slot indices whose bitmap bit is set."""
    lay = layout_for(buf)
    used: list[int] = []
    for word, bits in enumerate(_bitmap_words(buf, lay)):
        if bits == 0:
            continue
        while bits:
            low = bits & -bits
            used.append(word * 64 + low.bit_length() - 1)
            bits ^= low
    return used


def is_slot_used(buf, idx: int) -> bool:
    lay = layout_for(buf)
    if idx < 0 or idx >= lay.max_accounts:
        return False
    require_len(buf, lay.bitmap_off + lay.bitmap_words * 8, "bitmap")
    bits = read_u64(buf, lay.bitmap_off + (idx // 64) * 8)
    return (bits >> (idx % 64)) & 1 == 1


def max_valid_index(buffer_length: int, layout: SlabLayout = SLAB_V1) -> int:
    """Number of whole account records that fit in a buffer of this length."""
    room = buffer_length - layout.accounts_off
    if room <= 0:
        return 0
    return room // layout.account_size


def decode_account(buf, idx: int) -> Account:
    lay = layout_for(buf)
    max_idx = max_valid_index(len(buf), lay)
    if idx < 0 or idx >= max_idx:
        raise IndexOutOfRange(idx, max_idx)

    base = lay.accounts_off + idx * lay.account_size
    require_len(buf, base + lay.account_size, "account")

    kind_byte = read_u8(buf, base + ACCT_KIND)
    return Account(
        kind=AccountKind.LP if kind_byte == KIND_LP else AccountKind.USER,
        account_id=read_u64(buf, base + ACCT_ACCOUNT_ID),
        capital=read_u128(buf, base + ACCT_CAPITAL),
        pnl=read_i128(buf, base + ACCT_PNL),
        reserved_pnl=read_u128(buf, base + ACCT_RESERVED_PNL),
        warmup_started_at_slot=read_u64(buf, base + ACCT_WARMUP_STARTED),
        warmup_slope_per_step=read_u128(buf, base + ACCT_WARMUP_SLOPE),
        position_size=read_i128(buf, base + ACCT_POSITION_SIZE),
        entry_price=read_u64(buf, base + ACCT_ENTRY_PRICE),
        funding_index=read_i128(buf, base + ACCT_FUNDING_INDEX),
        matcher_program=read_identity(buf, base + ACCT_MATCHER_PROGRAM),
        matcher_context=read_identity(buf, base + ACCT_MATCHER_CONTEXT),
        owner=read_identity(buf, base + ACCT_OWNER),
        fee_credits=read_i128(buf, base + ACCT_FEE_CREDITS),
        last_fee_slot=read_u64(buf, base + ACCT_LAST_FEE_SLOT),
    )


def decode_all_used_accounts(buf) -> list[tuple[int, Account]]:
    """Live accounts that fit in this buffer.

    A bitmap bit pointing past the buffer's capacity is dropped: the buffer
    may be a truncated fetch of a larger slab.
    """
    indices = used_indices(buf)
    max_idx = max_valid_index(len(buf), layout_for(buf))
    valid = [idx for idx in indices if idx < max_idx]
    if len(valid) != len(indices):
        logger.debug(
            "Skipping {} used slot(s) beyond capacity {} of a {}-byte buffer",
            len(indices) - len(valid), max_idx, len(buf),
        )
    return [(idx, decode_account(buf, idx)) for idx in valid]


def decode_snapshot(buf) -> SlabSnapshot:
    return SlabSnapshot(
        header=decode_header(buf),
        config=decode_config(buf),
        engine=decode_engine(buf),
        params=decode_params(buf),
        accounts=decode_all_used_accounts(buf),
    )


def insurance_snapshot(engine: EngineState) -> InsuranceSnapshot:
    balance = engine.insurance_fund.balance
    fee_revenue = engine.insurance_fund.fee_revenue
    return InsuranceSnapshot(
        balance=balance,
        fee_revenue=fee_revenue,
        losses_absorbed=fee_revenue - balance if fee_revenue > balance else 0,
        open_interest=engine.total_open_interest,
        vault=engine.vault,
    )


def compact_ranges(indices: list[int]) -> list[str]:
    """Collapse ascending indices into ``"a-b"`` runs for display."""
    if not indices:
        return []
    ranges: list[str] = []
    start = end = indices[0]
    for idx in indices[1:]:
        if idx == end + 1:
            end = idx
            continue
        ranges.append(f"{start}" if start == end else f"{start}-{end}")
        start = end = idx
    ranges.append(f"{start}" if start == end else f"{start}-{end}")
    return ranges


def has_slab_magic(buf) -> bool:
    """Cheap pre-filter for market discovery: the first word is the slab magic."""
    return len(buf) >= 8 and read_u64(buf, 0) == SLAB_MAGIC


def market_summary(buf) -> MarketSummary:
    header = decode_header(buf)
    config = decode_config(buf)
    engine = decode_engine(buf)
    params = decode_params(buf)
    return MarketSummary(
        version=header.version,
        admin_burned=header.admin_burned,
        collateral_mint=config.collateral_mint,
        num_used_accounts=engine.num_used_accounts,
        insurance_balance=engine.insurance_fund.balance,
        total_open_interest=engine.total_open_interest,
        initial_margin_bps=params.initial_margin_bps,
        maintenance_margin_bps=params.maintenance_margin_bps,
        trading_fee_bps=params.trading_fee_bps,
    )
