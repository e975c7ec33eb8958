import functools
import sys
from pathlib import Path

import click
from loguru import logger

from perc_core.ids import identity_kind, to_base58
from .errors import LayoutError
from .export import canonical_json, write_accounts_parquet
from .layout import (
    compact_ranges,
    decode_account,
    decode_all_used_accounts,
    decode_config,
    decode_engine,
    decode_header,
    decode_params,
    has_slab_magic,
    insurance_snapshot,
    layout_for,
    market_summary,
    used_indices,
)
from .program import decode_program_data

SLAB_ARG = click.argument("slab", type=click.Path(exists=True, dir_okay=False, path_type=Path))


def fail_closed(fn):
    """One-line FATAL reason and exit 1 instead of a stack trace."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except LayoutError as e:
            click.echo(f"FATAL: {e.code}: {e}")
            raise SystemExit(1)
        except ValueError as e:
            click.echo(f"FATAL: {e}")
            raise SystemExit(1)
    return wrapper


def configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG")
        for pkg in ("perc_decode", "perc_quote"):
            logger.enable(pkg)


def emit(ctx: click.Context, payload, lines) -> None:
    if ctx.obj["json"]:
        click.echo(canonical_json(payload))
        return
    for line in lines:
        click.echo(line)


@click.group()
@click.option("--json", "as_json", is_flag=True, help="Emit canonical JSON")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to stderr")
@click.pass_context
def main(ctx: click.Context, as_json: bool, verbose: bool):
    """Inspect a raw slab dump."""
    configure_logging(verbose)
    ctx.obj = {"json": as_json}


@main.command("header")
@SLAB_ARG
@click.pass_context
@fail_closed
def header_cmd(ctx, slab: Path):
    h = decode_header(slab.read_bytes())
    emit(ctx, h, [
        f"Magic:          {h.magic:#018x}",
        f"Version:        {h.version}",
        f"Bump:           {h.bump}",
        f"Admin:          {to_base58(h.admin)}{' (burned)' if h.admin_burned else ''}",
        f"Nonce:          {h.nonce}",
        f"Last Thr Slot:  {h.last_thr_update_slot}",
    ])


@main.command("config")
@SLAB_ARG
@click.pass_context
@fail_closed
def config_cmd(ctx, slab: Path):
    c = decode_config(slab.read_bytes())
    emit(ctx, c, [
        f"Collateral Mint:     {to_base58(c.collateral_mint)}",
        f"Vault:               {to_base58(c.vault)}",
        f"Collateral Oracle:   {to_base58(c.collateral_oracle)}",
        f"Index Oracle:        {to_base58(c.index_oracle)}",
        f"Max Staleness:       {c.max_staleness_slots} slots",
        f"Conf Filter:         {c.conf_filter_bps} bps",
        f"Vault Auth Bump:     {c.vault_authority_bump}",
    ])


@main.command("engine")
@SLAB_ARG
@click.pass_context
@fail_closed
def engine_cmd(ctx, slab: Path):
    e = decode_engine(slab.read_bytes())
    emit(ctx, e, [
        "--- Vault & Insurance ---",
        f"Vault Balance:           {e.vault}",
        f"Insurance Balance:       {e.insurance_fund.balance}",
        f"Insurance Fee Revenue:   {e.insurance_fund.fee_revenue}",
        "",
        "--- Funding ---",
        f"Funding Index (qpb*1e6): {e.funding_index_qpb_e6}",
        f"Last Funding Slot:       {e.last_funding_slot}",
        f"Current Slot:            {e.current_slot}",
        "",
        "--- Risk State ---",
        f"Risk Reduction Only:     {e.risk_reduction_only}",
        f"RR Mode Withdrawn:       {e.risk_reduction_mode_withdrawn}",
        f"Loss Accumulator:        {e.loss_accum}",
        f"Total Open Interest:     {e.total_open_interest}",
        "",
        "--- Warmup ---",
        f"Warmup Paused:           {e.warmup_paused}",
        f"Warmup Pause Slot:       {e.warmup_pause_slot}",
        f"Warmed Pos Total:        {e.warmed_pos_total}",
        f"Warmed Neg Total:        {e.warmed_neg_total}",
        f"Warmup Insurance Rsv:    {e.warmup_insurance_reserved}",
        "",
        "--- Keeper ---",
        f"Last Crank Slot:         {e.last_crank_slot}",
        f"Max Crank Staleness:     {e.max_crank_staleness_slots}",
        "",
        "--- Accounts ---",
        f"Num Used Accounts:       {e.num_used_accounts}",
        f"Next Account ID:         {e.next_account_id}",
    ])


@main.command("params")
@SLAB_ARG
@click.pass_context
@fail_closed
def params_cmd(ctx, slab: Path):
    p = decode_params(slab.read_bytes())
    emit(ctx, p, [f"{name}: {value}" for name, value in vars(p).items()])


@main.command("bitmap")
@SLAB_ARG
@click.pass_context
@fail_closed
def bitmap_cmd(ctx, slab: Path):
    data = slab.read_bytes()
    indices = used_indices(data)
    engine = decode_engine(data)
    max_accounts = layout_for(data).max_accounts

    if ctx.obj["json"]:
        emit(ctx, {"num_used": engine.num_used_accounts, "max_accounts": max_accounts,
                   "used_indices": indices}, [])
        return

    click.echo(f"Used: {engine.num_used_accounts} / {max_accounts} accounts\n")
    if not indices:
        click.echo("No accounts in use")
        return

    click.echo("Used indices:")
    line = "  "
    for rng in compact_ranges(indices):
        if len(line) + len(rng) + 2 > 70:
            click.echo(line.rstrip(", "))
            line = "  "
        line += rng + ", "
    click.echo(line.rstrip(", "))


def _account_lines(idx, a) -> list[str]:
    return [
        f"[{idx}] {a.kind.name} id={a.account_id}",
        f"  capital={a.capital} pnl={a.pnl} reserved_pnl={a.reserved_pnl}",
        f"  position={a.position_size} entry={a.entry_price} funding_index={a.funding_index}",
        f"  owner={to_base58(a.owner)} ({identity_kind(a.owner)})",
        f"  fee_credits={a.fee_credits} last_fee_slot={a.last_fee_slot}",
    ] + ([
        f"  matcher_program={to_base58(a.matcher_program)}",
        f"  matcher_context={to_base58(a.matcher_context)}",
    ] if a.is_venue else [])


@main.command("account")
@SLAB_ARG
@click.argument("idx", type=int)
@click.pass_context
@fail_closed
def account_cmd(ctx, slab: Path, idx: int):
    a = decode_account(slab.read_bytes(), idx)
    emit(ctx, {"idx": idx, "account": a}, _account_lines(idx, a))


@main.command("accounts")
@SLAB_ARG
@click.option("--parquet", "parquet_out", type=click.Path(dir_okay=False, path_type=Path),
              help="Also write the accounts table to this parquet file")
@click.pass_context
@fail_closed
def accounts_cmd(ctx, slab: Path, parquet_out: Path | None):
    accounts = decode_all_used_accounts(slab.read_bytes())
    if parquet_out is not None:
        write_accounts_parquet(accounts, parquet_out)

    lines: list[str] = []
    for idx, a in accounts:
        lines.extend(_account_lines(idx, a))
    if not accounts:
        lines.append("No accounts in use")
    emit(ctx, [{"idx": idx, "account": a} for idx, a in accounts], lines)


@main.command("insurance")
@SLAB_ARG
@click.option("--header", "with_header", is_flag=True, help="Print TSV header before data")
@click.pass_context
@fail_closed
def insurance_cmd(ctx, slab: Path, with_header: bool):
    """One-line insurance snapshot. Append to a file for a time series."""
    engine = decode_engine(slab.read_bytes())
    snap = insurance_snapshot(engine)
    if with_header and not ctx.obj["json"]:
        click.echo("slot\tinsurance_balance\tfee_revenue\tlosses_absorbed\topen_interest\tvault")
    emit(ctx, {"slot": engine.current_slot, **vars(snap)}, [
        f"{engine.current_slot}\t{snap.balance}\t{snap.fee_revenue}\t"
        f"{snap.losses_absorbed}\t{snap.open_interest}\t{snap.vault}",
    ])


@main.command("markets")
@click.argument("dump_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
@fail_closed
def markets_cmd(ctx, dump_dir: Path):
    """Summarize every slab dump (``<address>.bin``) in a directory.

    Files without the slab magic are not markets and are skipped. A slab
    that carries the magic but does not decode is listed with its error.
    """
    rows = []
    for path in sorted(dump_dir.glob("*.bin")):
        data = path.read_bytes()
        if not has_slab_magic(data):
            logger.debug("Skipping {}: no slab magic", path.name)
            continue
        try:
            rows.append({"market": path.stem, "summary": market_summary(data)})
        except LayoutError as e:
            rows.append({"market": path.stem, "error": e.as_dict()})

    lines = [f"Found {len(rows)} market(s):", ""]
    for row in rows:
        lines.append(f"Market: {row['market']}")
        if "error" in row:
            lines += [f"  ERROR: {row['error']['code']}: {row['error']['detail']}", ""]
            continue
        s = row["summary"]
        lines += [
            f"  Version:            {s.version}{' (admin burned)' if s.admin_burned else ''}",
            f"  Collateral:         {to_base58(s.collateral_mint)}",
            f"  Accounts:           {s.num_used_accounts}",
            f"  Insurance:          {s.insurance_balance}",
            f"  Open Interest:      {s.total_open_interest}",
            f"  Initial Margin:     {s.initial_margin_bps} bps",
            f"  Maintenance Margin: {s.maintenance_margin_bps} bps",
            f"  Trading Fee:        {s.trading_fee_bps} bps",
            "",
        ]
    if not rows:
        lines = ["No markets found."]
    emit(ctx, rows, lines)


@main.command("program")
@click.argument("dumps", nargs=-1, required=True,
                type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
@fail_closed
def program_cmd(ctx, dumps: tuple[Path, ...]):
    """Upgrade status of one or more ProgramData account dumps."""
    results = [(path, decode_program_data(path.read_bytes())) for path in dumps]

    payload = [
        {
            "file": path.name,
            "upgradeable": pd.upgradeable,
            "upgrade_authority": pd.upgrade_authority,
            "last_deployed_slot": pd.last_deployed_slot,
            "data_len": pd.data_len,
            "status": pd.status,
        }
        for path, pd in results
    ]

    lines = []
    for path, pd in results:
        authority = to_base58(pd.upgrade_authority) if pd.upgradeable else "none (burned)"
        lines += [
            f"{path.name}",
            f"  Upgrade Authority: {authority}",
            f"  Last Deployed:     slot {pd.last_deployed_slot}",
            f"  Status:            {pd.status}",
            "",
        ]
    mutable = sum(1 for _, pd in results if pd.upgradeable)
    if mutable == 0:
        lines.append("VERDICT: All checked programs are IMMUTABLE.")
    else:
        lines.append(f"VERDICT: {mutable} of {len(results)} program(s) are UPGRADEABLE.")
    emit(ctx, payload, lines)


if __name__ == "__main__":
    main()
