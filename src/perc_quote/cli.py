"""Percolator best-price scanner."""
from __future__ import annotations

from pathlib import Path

import click
from loguru import logger

from perc_core.ids import from_base58, short_addr, to_base58
from perc_decode.cli import configure_logging, fail_closed
from perc_decode.export import canonical_json
from perc_decode.oracle import decode_oracle_price

from .aggregate import best_price


def load_contexts(ctx_dir: Path | None) -> dict[bytes, bytes]:
    """Read every ``<base58 context id>.bin`` dump in ``ctx_dir``.

    Venues with no file here are absent from the map and price at the fallback.
    """
    contexts: dict[bytes, bytes] = {}
    if ctx_dir is None:
        return contexts
    for path in sorted(ctx_dir.glob("*.bin")):
        try:
            ident = from_base58(path.stem)
        except ValueError as e:
            logger.debug("Skipping {}: {}", path.name, e)
            continue
        contexts[ident] = path.read_bytes()
    return contexts


def _fmt(price: int, decimals: int) -> str:
    return f"{price / 10 ** decimals:.4f}"


@click.group()
@click.option("--json", "as_json", is_flag=True, help="Emit canonical JSON")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to stderr")
@click.pass_context
def main(ctx: click.Context, as_json: bool, verbose: bool):
    configure_logging(verbose)
    ctx.obj = {"json": as_json}


@main.command("best-price")
@click.argument("slab", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--oracle-price", type=int, help="Oracle price as a scaled integer")
@click.option("--oracle", "oracle_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Raw oracle account dump to read the price from")
@click.option("--decimals", type=int, default=6, show_default=True,
              help="Price decimals when --oracle-price is given")
@click.option("--contexts", "ctx_dir", type=click.Path(exists=True, file_okay=False, path_type=Path),
              help="Directory of matcher context dumps named <context-id>.bin")
@click.option("--size", "trade_notional", type=int, help="Trade notional (e6) for impact estimation")
@click.pass_context
@fail_closed
def best_price_cmd(ctx, slab, oracle_price, oracle_file, decimals, ctx_dir, trade_notional):
    """Scan LPs and find the best prices for trading."""
    if (oracle_price is None) == (oracle_file is None):
        raise click.UsageError("pass exactly one of --oracle-price or --oracle")
    if oracle_file is not None:
        oracle = decode_oracle_price(oracle_file.read_bytes())
        oracle_price, decimals = oracle.price, oracle.decimals

    ledger = slab.read_bytes()
    result = best_price(ledger, load_contexts(ctx_dir), oracle_price, trade_notional)

    if ctx.obj["json"]:
        click.echo(canonical_json({
            "oracle": {"price": oracle_price, "decimals": decimals},
            "lps": [
                {
                    "index": v.slot,
                    "matcher_program": to_base58(v.account.matcher_program),
                    "matcher_kind": v.matcher_kind,
                    "fallback": v.fallback,
                    "fallback_reason": v.fallback_reason,
                    "fallback_error": v.fallback_error,
                    "quote": v.quote,
                    "capital": v.account.capital,
                    "position": v.account.position_size,
                }
                for v in result.venues
            ],
            "best_buy": {"lp_index": result.best_ask_venue.slot, "price": result.best_ask_venue.quote.ask,
                         "fallback": result.best_ask_venue.fallback},
            "best_sell": {"lp_index": result.best_bid_venue.slot, "price": result.best_bid_venue.quote.bid,
                          "fallback": result.best_bid_venue.fallback},
            "effective_spread_bps": result.effective_spread_bps,
            "degraded": result.degraded,
        }))
        return

    click.echo("=== Best Price Scanner ===\n")
    click.echo(f"Oracle: {_fmt(oracle_price, decimals)}")
    click.echo(f"LPs found: {len(result.venues)}")
    if trade_notional is not None:
        click.echo(f"Trade size: {trade_notional} (e6 notional)")
    else:
        click.echo("Impact: omitted (pass --size for trade-size impact)")

    click.echo("\n--- LP Quotes ---")
    for v in result.venues:
        q = v.quote
        parts = [f"fee={q.fee_bps}", f"spread={q.spread_bps}"]
        if q.impact_bps > 0:
            parts.append(f"impact={q.impact_bps}")
        flag = f" FALLBACK: {v.fallback_reason}" if v.fallback else ""
        click.echo(
            f"LP {v.slot} [{v.matcher_kind}] ({q.total_edge_bps}bps = {'+'.join(parts)}): "
            f"bid={_fmt(q.bid, decimals)} ask={_fmt(q.ask, decimals)} "
            f"capital={v.account.capital} pos={v.account.position_size}{flag}"
        )
        click.echo(f"  matcher={short_addr(to_base58(v.account.matcher_program))} "
                   f"ctx={short_addr(to_base58(v.account.matcher_context))}")

    click.echo("\n--- Best Prices ---")
    buy, sell = result.best_ask_venue, result.best_bid_venue
    click.echo(f"BEST BUY:  LP {buy.slot} [{buy.matcher_kind}] @ {_fmt(buy.quote.ask, decimals)}")
    click.echo(f"BEST SELL: LP {sell.slot} [{sell.matcher_kind}] @ {_fmt(sell.quote.bid, decimals)}")
    if result.degraded:
        click.echo("DEGRADED: no venue context could be read; prices use the fallback spread")
    click.echo(f"\nEffective spread: {result.effective_spread_bps} bps")


if __name__ == "__main__":
    main()
