"""Percolator slab and matcher-context protocol constants.

Single source of truth for magic values, record layouts and version tables.
Offsets mirror an external binary contract: a new format version gets a new
table, existing tables are never renumbered in place.
"""
from __future__ import annotations

from dataclasses import dataclass

# Magics are compared as little-endian u64 words.
SLAB_MAGIC = 0x504552434F4C4154  # "PERCOLAT"
MATCHER_MAGIC = 0x504552434D415443  # "PERCMATC"

BPS_DENOM = 10_000

U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1

IDENTITY_LEN = 32

# Header: [Magic(8) | Ver(4) | Bump(1) | pad(3) | Admin(32) | Nonce(8) | LastThrSlot(8)] = 64 bytes
HEADER_FMT = "<QIB3x32sQQ"
HEADER_LEN = 64

# Account kinds
KIND_USER = 0
KIND_LP = 1


@dataclass(frozen=True)
class SlabLayout:
    """Absolute and block-relative offsets for one slab format version."""

    version: int
    config_off: int
    config_len: int
    engine_off: int

    # Engine block, relative to engine_off
    eng_vault: int
    eng_insurance: int
    eng_params: int
    eng_current_slot: int
    eng_funding_index: int
    eng_last_funding_slot: int
    eng_loss_accum: int
    eng_risk_reduction_only: int
    eng_risk_reduction_withdrawn: int
    eng_warmup_paused: int
    eng_warmup_pause_slot: int
    eng_last_crank_slot: int
    eng_max_crank_staleness: int
    eng_total_oi: int
    eng_warmed_pos: int
    eng_warmed_neg: int
    eng_warmup_insurance: int
    eng_bitmap: int
    eng_num_used: int
    eng_next_account_id: int
    eng_accounts: int

    bitmap_words: int
    account_size: int
    params_len: int

    @property
    def max_accounts(self) -> int:
        return self.bitmap_words * 64

    @property
    def bitmap_off(self) -> int:
        return self.engine_off + self.eng_bitmap

    @property
    def accounts_off(self) -> int:
        return self.engine_off + self.eng_accounts

    @property
    def params_off(self) -> int:
        return self.engine_off + self.eng_params


SLAB_V1 = SlabLayout(
    version=1,
    config_off=HEADER_LEN,
    config_len=144,
    engine_off=208,
    eng_vault=0,
    eng_insurance=16,
    eng_params=48,
    eng_current_slot=192,
    eng_funding_index=200,
    eng_last_funding_slot=216,
    eng_loss_accum=224,
    eng_risk_reduction_only=240,
    eng_risk_reduction_withdrawn=248,
    eng_warmup_paused=264,
    eng_warmup_pause_slot=272,
    eng_last_crank_slot=280,
    eng_max_crank_staleness=288,
    eng_total_oi=296,
    eng_warmed_pos=312,
    eng_warmed_neg=328,
    eng_warmup_insurance=344,
    eng_bitmap=70032,
    eng_num_used=70544,
    eng_next_account_id=70552,
    eng_accounts=78768,
    bitmap_words=64,
    account_size=272,
    params_len=144,
)

SLAB_LAYOUTS = {SLAB_V1.version: SLAB_V1}

# Config block, relative to config_off
CFG_COLLATERAL_MINT = 0
CFG_VAULT = 32
CFG_COLLATERAL_ORACLE = 64
CFG_INDEX_ORACLE = 96
CFG_MAX_STALENESS = 128
CFG_CONF_FILTER_BPS = 136
CFG_VAULT_AUTHORITY_BUMP = 138

# RiskParams block (144 bytes), relative to params_off
PARAMS_WARMUP_PERIOD = 0
PARAMS_MAINTENANCE_MARGIN = 8
PARAMS_INITIAL_MARGIN = 16
PARAMS_TRADING_FEE = 24
PARAMS_MAX_ACCOUNTS = 32
PARAMS_NEW_ACCOUNT_FEE = 40
PARAMS_RISK_THRESHOLD = 56
PARAMS_MAINTENANCE_FEE = 72
PARAMS_MAX_CRANK_STALENESS = 88
PARAMS_LIQUIDATION_FEE_BPS = 96
PARAMS_LIQUIDATION_FEE_CAP = 104
PARAMS_LIQUIDATION_BUFFER = 120
PARAMS_MIN_LIQUIDATION = 128

# Account record (272 bytes), relative to record start
ACCT_KIND = 0
ACCT_ACCOUNT_ID = 8
ACCT_CAPITAL = 16
ACCT_PNL = 32
ACCT_RESERVED_PNL = 48
ACCT_WARMUP_STARTED = 64
ACCT_WARMUP_SLOPE = 80
ACCT_POSITION_SIZE = 96
ACCT_ENTRY_PRICE = 112
ACCT_FUNDING_INDEX = 128
ACCT_MATCHER_PROGRAM = 144
ACCT_MATCHER_CONTEXT = 176
ACCT_OWNER = 208
ACCT_FEE_CREDITS = 240
ACCT_LAST_FEE_SLOT = 256

# Matcher context account: 64 bytes of return data, then the context proper.
CTX_BASE = 64
CTX_ACCOUNT_LEN = 320

CTX_MAGIC = 0
CTX_VERSION = 8
CTX_KIND = 12
CTX_LP_PDA = 16
CTX_FEE = 48
CTX_SPREAD = 52
CTX_MAX_TOTAL = 56
CTX_IMPACT_K = 60
CTX_LIQUIDITY = 64
CTX_MAX_FILL = 80
CTX_INVENTORY = 96
CTX_LAST_ORACLE = 112
CTX_LAST_EXEC = 120
CTX_MAX_INVENTORY = 128
CTX_INSURANCE = 144
CTX_TOTAL_OI = 160
CTX_MARKET_AGE = 176
CTX_LAST_DEFICIT = 184
CTX_SNAPSHOT_SLOT = 192
CTX_AGE_HALFLIFE = 200
CTX_INSURANCE_WEIGHT = 204

# Minimum context bytes (relative to CTX_BASE) needed for each block.
CTX_BASE_BLOCK_LEN = 80
CTX_CREDIBILITY_BLOCK_LEN = 208

MATCHER_KIND_PASSIVE = 0
MATCHER_KIND_VAMM = 1
MATCHER_KIND_CREDIBILITY = 2

MATCHER_VERSIONS = frozenset({1, 2, 3, 4})
MATCHER_CREDIBILITY_MIN_VERSION = 4

# Chainlink-style oracle store account
ORACLE_DECIMALS_OFF = 138
ORACLE_ANSWER_OFF = 216
ORACLE_MIN_LEN = ORACLE_ANSWER_OFF + 8

# Upgradeable BPF loader accounts: [Type(4) | ...]
LOADER_TYPE_PROGRAM = 2
LOADER_TYPE_PROGRAMDATA = 3
# Program: [Type(4) | ProgramDataAddress(32)]
LOADER_PROGRAM_DATA_ADDR = 4
LOADER_PROGRAM_LEN = 36
# ProgramData: [Type(4) | Slot(8) | AuthorityTag(1) | Authority(32)] then bytecode
LOADER_PD_SLOT = 4
LOADER_PD_AUTHORITY_TAG = 12
LOADER_PD_AUTHORITY = 13
LOADER_PD_METADATA_LEN = 45

# Conservative pricing for venues whose context cannot be read.
FALLBACK_SPREAD_BPS = 50
