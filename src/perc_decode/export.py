"""Flatten decoded snapshots for JSON output and parquet export."""
from __future__ import annotations

import dataclasses
import json
from enum import Enum
from pathlib import Path

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from perc_core.ids import identity_kind, to_base58
from perc_core.protocol import IDENTITY_LEN

from .layout import Account

CANONICAL_JSON_KW = {"sort_keys": True, "separators": (",", ":"), "ensure_ascii": False}

# 128-bit columns do not fit an int64, so they travel as decimal strings.
ACCOUNTS_SCHEMA = pa.schema(
    [
        ("slot", pa.int32()),
        ("kind", pa.string()),
        ("account_id", pa.uint64()),
        ("capital", pa.string()),
        ("pnl", pa.string()),
        ("reserved_pnl", pa.string()),
        ("warmup_started_at_slot", pa.uint64()),
        ("warmup_slope_per_step", pa.string()),
        ("position_size", pa.string()),
        ("entry_price", pa.uint64()),
        ("funding_index", pa.string()),
        ("matcher_program", pa.string()),
        ("matcher_context", pa.string()),
        ("owner", pa.string()),
        ("owner_kind", pa.string()),
        ("fee_credits", pa.string()),
        ("last_fee_slot", pa.uint64()),
    ]
)

_WIDE = {
    "capital", "pnl", "reserved_pnl", "warmup_slope_per_step",
    "position_size", "funding_index", "fee_credits",
}


def to_record(obj):
    """Recursively turn decoded values into JSON-ready structures."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        out = {f.name: to_record(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
        for name in ("admin_burned", "is_venue"):
            if hasattr(obj, name):
                out[name] = getattr(obj, name)
        return out
    if isinstance(obj, dict):
        return {k: to_record(v) for k, v in obj.items()}
    if isinstance(obj, Enum):
        return obj.name.lower()
    if isinstance(obj, (bytes, bytearray)) and len(obj) == IDENTITY_LEN:
        return to_base58(obj)
    if isinstance(obj, (bytes, bytearray)):
        return obj.hex()
    if isinstance(obj, (list, tuple)):
        return [to_record(x) for x in obj]
    return obj


def canonical_json(obj) -> str:
    return json.dumps(to_record(obj), **CANONICAL_JSON_KW)


def account_row(slot: int, account: Account) -> dict:
    row = {"slot": slot}
    for f in dataclasses.fields(account):
        value = getattr(account, f.name)
        if f.name in _WIDE:
            value = str(value)
        row[f.name] = to_record(value)
    row["owner_kind"] = identity_kind(account.owner)
    return row


def accounts_frame(accounts: list[tuple[int, Account]]) -> pd.DataFrame:
    rows = [account_row(idx, acct) for idx, acct in accounts]
    df = pd.DataFrame(rows, columns=ACCOUNTS_SCHEMA.names)
    return df.sort_values("slot").reset_index(drop=True)


def write_accounts_parquet(accounts: list[tuple[int, Account]], out_path: Path) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    table = pa.Table.from_pandas(accounts_frame(accounts), schema=ACCOUNTS_SCHEMA, preserve_index=False)
    pq.write_table(table, out_path)
    return out_path
