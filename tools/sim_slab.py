"""Synthetic slab, matcher-context and oracle blobs.

Packs bytes with the same protocol tables the decoder reads, so tests and
demos exercise real layouts rather than hand-typed offsets.

Usage:
    python tools/sim_slab.py OUT_DIR [--accounts N]
"""
from __future__ import annotations

import hashlib
import struct
import sys
from pathlib import Path

from perc_core.ids import to_base58
from perc_core.protocol import (
    HEADER_FMT,
    SLAB_MAGIC,
    SLAB_V1,
    SlabLayout,
    KIND_LP,
    KIND_USER,
    CFG_COLLATERAL_MINT,
    CFG_VAULT,
    CFG_COLLATERAL_ORACLE,
    CFG_INDEX_ORACLE,
    CFG_MAX_STALENESS,
    CFG_CONF_FILTER_BPS,
    CFG_VAULT_AUTHORITY_BUMP,
    PARAMS_MAINTENANCE_MARGIN,
    PARAMS_INITIAL_MARGIN,
    PARAMS_TRADING_FEE,
    PARAMS_MAX_ACCOUNTS,
    PARAMS_NEW_ACCOUNT_FEE,
    ACCT_KIND,
    ACCT_ACCOUNT_ID,
    ACCT_CAPITAL,
    ACCT_PNL,
    ACCT_RESERVED_PNL,
    ACCT_POSITION_SIZE,
    ACCT_ENTRY_PRICE,
    ACCT_FUNDING_INDEX,
    ACCT_MATCHER_PROGRAM,
    ACCT_MATCHER_CONTEXT,
    ACCT_OWNER,
    ACCT_FEE_CREDITS,
    ACCT_LAST_FEE_SLOT,
    CTX_ACCOUNT_LEN,
    CTX_BASE,
    CTX_LP_PDA,
    CTX_FEE,
    CTX_LIQUIDITY,
    CTX_MAX_FILL,
    CTX_INVENTORY,
    CTX_MAX_INVENTORY,
    CTX_INSURANCE,
    CTX_TOTAL_OI,
    CTX_SNAPSHOT_SLOT,
    CTX_AGE_HALFLIFE,
    MATCHER_MAGIC,
    MATCHER_KIND_PASSIVE,
    MATCHER_KIND_VAMM,
    MATCHER_KIND_CREDIBILITY,
    ORACLE_ANSWER_OFF,
    ORACLE_DECIMALS_OFF,
    ORACLE_MIN_LEN,
    LOADER_TYPE_PROGRAMDATA,
    LOADER_PD_AUTHORITY,
    LOADER_PD_METADATA_LEN,
)
from perc_core.words import write_i128, write_u128


def ident(label: str) -> bytes:
    """Deterministic 32-byte identity for a label."""
    return hashlib.sha256(label.encode("utf-8")).digest()


class SlabBuilder:
    """Mutable slab image with room for ``num_accounts`` records."""

    def __init__(self, num_accounts: int = 8, version: int = 1, layout: SlabLayout = SLAB_V1):
        self.layout = layout
        self.buf = bytearray(layout.accounts_off + num_accounts * layout.account_size)
        struct.pack_into(HEADER_FMT, self.buf, 0, SLAB_MAGIC, version, 0, bytes(32), 0, 0)

    def header(self, *, version: int | None = None, bump: int = 0, admin: bytes = bytes(32),
               nonce: int = 0, last_thr_update_slot: int = 0) -> "SlabBuilder":
        if version is None:
            version = struct.unpack_from("<I", self.buf, 8)[0]
        struct.pack_into(HEADER_FMT, self.buf, 0, SLAB_MAGIC, version, bump, admin, nonce, last_thr_update_slot)
        return self

    def config(self, *, max_staleness_slots: int = 0, conf_filter_bps: int = 0,
               vault_authority_bump: int = 0) -> "SlabBuilder":
        base = self.layout.config_off
        for off, label in ((CFG_COLLATERAL_MINT, "mint"), (CFG_VAULT, "vault"),
                           (CFG_COLLATERAL_ORACLE, "collateral-oracle"), (CFG_INDEX_ORACLE, "index-oracle")):
            self.buf[base + off:base + off + 32] = ident(label)
        struct.pack_into("<Q", self.buf, base + CFG_MAX_STALENESS, max_staleness_slots)
        struct.pack_into("<H", self.buf, base + CFG_CONF_FILTER_BPS, conf_filter_bps)
        struct.pack_into("<B", self.buf, base + CFG_VAULT_AUTHORITY_BUMP, vault_authority_bump)
        return self

    def params(self, *, maintenance_margin_bps: int = 500, initial_margin_bps: int = 1000,
               trading_fee_bps: int = 10, max_accounts: int = 4096, new_account_fee: int = 0) -> "SlabBuilder":
        base = self.layout.params_off
        struct.pack_into("<Q", self.buf, base + PARAMS_MAINTENANCE_MARGIN, maintenance_margin_bps)
        struct.pack_into("<Q", self.buf, base + PARAMS_INITIAL_MARGIN, initial_margin_bps)
        struct.pack_into("<Q", self.buf, base + PARAMS_TRADING_FEE, trading_fee_bps)
        struct.pack_into("<Q", self.buf, base + PARAMS_MAX_ACCOUNTS, max_accounts)
        write_u128(self.buf, base + PARAMS_NEW_ACCOUNT_FEE, new_account_fee)
        return self

    def engine(self, *, vault: int = 0, insurance_balance: int = 0, fee_revenue: int = 0,
               current_slot: int = 0, funding_index: int = 0, loss_accum: int = 0,
               risk_reduction_only: bool = False, warmup_paused: bool = False,
               last_crank_slot: int = 0, total_open_interest: int = 0,
               num_used_accounts: int | None = None, next_account_id: int = 0) -> "SlabBuilder":
        lay = self.layout
        base = lay.engine_off
        write_u128(self.buf, base + lay.eng_vault, vault)
        write_u128(self.buf, base + lay.eng_insurance, insurance_balance)
        write_u128(self.buf, base + lay.eng_insurance + 16, fee_revenue)
        struct.pack_into("<Q", self.buf, base + lay.eng_current_slot, current_slot)
        write_i128(self.buf, base + lay.eng_funding_index, funding_index)
        write_u128(self.buf, base + lay.eng_loss_accum, loss_accum)
        self.buf[base + lay.eng_risk_reduction_only] = int(risk_reduction_only)
        self.buf[base + lay.eng_warmup_paused] = int(warmup_paused)
        struct.pack_into("<Q", self.buf, base + lay.eng_last_crank_slot, last_crank_slot)
        write_u128(self.buf, base + lay.eng_total_oi, total_open_interest)
        if num_used_accounts is not None:
            struct.pack_into("<H", self.buf, base + lay.eng_num_used, num_used_accounts)
        struct.pack_into("<Q", self.buf, base + lay.eng_next_account_id, next_account_id)
        return self

    def mark_used(self, idx: int, used: bool = True) -> "SlabBuilder":
        off = self.layout.bitmap_off + (idx // 64) * 8
        (bits,) = struct.unpack_from("<Q", self.buf, off)
        bits = bits | (1 << (idx % 64)) if used else bits & ~(1 << (idx % 64))
        struct.pack_into("<Q", self.buf, off, bits)
        return self

    def account(self, idx: int, *, lp: bool = False, account_id: int | None = None, capital: int = 0,
                pnl: int = 0, reserved_pnl: int = 0, position_size: int = 0, entry_price: int = 0,
                funding_index: int = 0, owner: bytes | None = None, matcher_program: bytes = bytes(32),
                matcher_context: bytes = bytes(32), fee_credits: int = 0,
                last_fee_slot: int = 0) -> "SlabBuilder":
        base = self.layout.accounts_off + idx * self.layout.account_size
        self.buf[base + ACCT_KIND] = KIND_LP if lp else KIND_USER
        struct.pack_into("<Q", self.buf, base + ACCT_ACCOUNT_ID, idx if account_id is None else account_id)
        write_u128(self.buf, base + ACCT_CAPITAL, capital)
        write_i128(self.buf, base + ACCT_PNL, pnl)
        write_u128(self.buf, base + ACCT_RESERVED_PNL, reserved_pnl)
        write_i128(self.buf, base + ACCT_POSITION_SIZE, position_size)
        struct.pack_into("<Q", self.buf, base + ACCT_ENTRY_PRICE, entry_price)
        write_i128(self.buf, base + ACCT_FUNDING_INDEX, funding_index)
        self.buf[base + ACCT_MATCHER_PROGRAM:base + ACCT_MATCHER_PROGRAM + 32] = matcher_program
        self.buf[base + ACCT_MATCHER_CONTEXT:base + ACCT_MATCHER_CONTEXT + 32] = matcher_context
        self.buf[base + ACCT_OWNER:base + ACCT_OWNER + 32] = owner if owner is not None else ident(f"owner-{idx}")
        write_i128(self.buf, base + ACCT_FEE_CREDITS, fee_credits)
        struct.pack_into("<Q", self.buf, base + ACCT_LAST_FEE_SLOT, last_fee_slot)
        return self.mark_used(idx)

    def build(self) -> bytes:
        return bytes(self.buf)


def build_context(kind: int = MATCHER_KIND_PASSIVE, *, version: int = 4, lp_pda: bytes = bytes(32),
                  fee_bps: int = 0, spread_bps: int = 0, max_total_bps: int = 0, impact_k_bps: int = 0,
                  liquidity: int = 0, max_fill: int = 0, inventory: int = 0, max_inventory: int = 0,
                  insurance: int = 0, total_oi: int = 0, snapshot_slot: int = 0,
                  age_halflife: int = 0, insurance_weight_bps: int = 0) -> bytes:
    """A 320-byte matcher context account. For kind 2 the spread/max fields
    hold min_spread_bps/max_spread_bps and impact_k holds imbalance_k_bps."""
    buf = bytearray(CTX_ACCOUNT_LEN)
    b = CTX_BASE
    struct.pack_into("<QIB", buf, b, MATCHER_MAGIC, version, kind)
    buf[b + CTX_LP_PDA:b + CTX_LP_PDA + 32] = lp_pda
    struct.pack_into("<IIII", buf, b + CTX_FEE, fee_bps, spread_bps, max_total_bps, impact_k_bps)
    write_u128(buf, b + CTX_LIQUIDITY, liquidity)
    write_u128(buf, b + CTX_MAX_FILL, max_fill)
    write_i128(buf, b + CTX_INVENTORY, inventory)
    write_u128(buf, b + CTX_MAX_INVENTORY, max_inventory)
    write_u128(buf, b + CTX_INSURANCE, insurance)
    write_u128(buf, b + CTX_TOTAL_OI, total_oi)
    struct.pack_into("<Q", buf, b + CTX_SNAPSHOT_SLOT, snapshot_slot)
    struct.pack_into("<II", buf, b + CTX_AGE_HALFLIFE, age_halflife, insurance_weight_bps)
    return bytes(buf)


def build_program_data(slot: int, authority: bytes | None = None, code: bytes = b"") -> bytes:
    """Upgradeable-loader ProgramData account: metadata then bytecode."""
    buf = bytearray(LOADER_PD_METADATA_LEN)
    struct.pack_into("<IQB", buf, 0, LOADER_TYPE_PROGRAMDATA, slot, 0 if authority is None else 1)
    if authority is not None:
        buf[LOADER_PD_AUTHORITY:LOADER_PD_AUTHORITY + 32] = authority
    return bytes(buf) + code


def build_oracle(price: int, decimals: int = 6) -> bytes:
    buf = bytearray(ORACLE_MIN_LEN + 8)
    struct.pack_into("<B", buf, ORACLE_DECIMALS_OFF, decimals)
    struct.pack_into("<q", buf, ORACLE_ANSWER_OFF, price)
    return bytes(buf)


def generate_market(out_dir, num_accounts: int = 8) -> Path:
    """Demo market: three venues (passive, vAMM, credibility) and two users."""
    out = Path(out_dir)
    (out / "contexts").mkdir(parents=True, exist_ok=True)

    insurance, oi = 1_000_000_000, 2_000_000_000
    slab = (
        SlabBuilder(num_accounts)
        .config(max_staleness_slots=150, conf_filter_bps=200, vault_authority_bump=254)
        .params()
        .engine(vault=5_000_000_000, insurance_balance=insurance, fee_revenue=1_200_000_000,
                current_slot=300_000_000, total_open_interest=oi, last_crank_slot=299_999_990,
                num_used_accounts=5, next_account_id=5)
    )

    venues = [
        (0, build_context(MATCHER_KIND_PASSIVE, version=1, fee_bps=5, spread_bps=50)),
        (1, build_context(MATCHER_KIND_VAMM, version=1, fee_bps=5, spread_bps=10, max_total_bps=200,
                          impact_k_bps=100, liquidity=1_000_000_000_000)),
        (3, build_context(MATCHER_KIND_CREDIBILITY, fee_bps=5, spread_bps=50, max_total_bps=500,
                          impact_k_bps=100, liquidity=1_000_000_000_000, insurance=insurance,
                          total_oi=oi, snapshot_slot=299_999_000, insurance_weight_bps=50)),
    ]
    for idx, blob in venues:
        ctx_id = ident(f"matcher-ctx-{idx}")
        slab.account(idx, lp=True, capital=10_000_000_000, matcher_program=ident("matcher-program"),
                     matcher_context=ctx_id)
        (out / "contexts" / f"{to_base58(ctx_id)}.bin").write_bytes(blob)

    slab.account(2, capital=2_000_000_000, position_size=1_000_000, entry_price=150_000_000)
    slab.account(5, capital=3_000_000_000, position_size=-1_000_000, entry_price=151_000_000, pnl=-42)

    (out / "slab.bin").write_bytes(slab.build())
    (out / "oracle.bin").write_bytes(build_oracle(150_000_000, decimals=6))

    print(f"GENERATED: {out}")
    return out


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if a]

    accounts = 8
    if "--accounts" in args:
        i = args.index("--accounts")
        if i + 1 >= len(args):
            raise SystemExit("--accounts requires a value")
        accounts = int(args[i + 1])
        args = args[:i] + args[i + 2:]

    generate_market(args[0] if args else "sim_market", num_accounts=accounts)
