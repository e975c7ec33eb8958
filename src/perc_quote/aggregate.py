"""Best-price scan across venues.

Each venue (an LP slot in the slab) points at a matcher context. The caller
fetches those blobs; this module decodes every one of them on every call and
prices it. A venue whose blob cannot be read is not dropped: it is priced at
the fixed fallback spread and flagged, so it can never pass silently as a
real quote.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from loguru import logger

from perc_core.ids import is_zero
from perc_core.protocol import BPS_DENOM, FALLBACK_SPREAD_BPS, MATCHER_KIND_PASSIVE
from perc_decode.errors import LayoutError
from perc_decode.layout import Account, decode_all_used_accounts
from perc_decode.matcher import MatcherParams, decode_matcher_context, kind_label

from .pricing import NoVenuesError, Quote, compute_quote

FALLBACK_PARAMS = MatcherParams(
    kind=MATCHER_KIND_PASSIVE,
    fee_bps=0,
    spread_bps=FALLBACK_SPREAD_BPS,
    max_total_bps=0,
    impact_k_bps=0,
    liquidity_notional_e6=0,
)


@dataclass(frozen=True)
class VenueQuote:
    slot: int
    account: Account
    matcher_kind: str
    quote: Quote
    fallback: bool = False
    fallback_reason: str | None = None
    # Code/message/detail of the decode failure, when there was one.
    fallback_error: dict | None = None


@dataclass(frozen=True)
class BestPrice:
    oracle_price: int
    venues: list[VenueQuote]
    best_bid_venue: VenueQuote
    best_ask_venue: VenueQuote
    effective_spread_bps: int
    # True when only fallback-priced venues were available to choose from.
    degraded: bool = False
    trade_notional: int | None = field(default=None)


def _trunc_div(numer: int, denom: int) -> int:
    q = abs(numer) // abs(denom)
    return q if (numer >= 0) == (denom > 0) else -q


def venue_accounts(ledger_buf) -> list[tuple[int, Account]]:
    return [(idx, acct) for idx, acct in decode_all_used_accounts(ledger_buf) if acct.is_venue]


def quote_venue(
    slot: int,
    account: Account,
    context_blob,
    oracle_price: int,
    trade_notional: int | None = None,
) -> VenueQuote:
    reason = None
    error = None
    params = None
    if is_zero(account.matcher_context):
        reason = "no matcher context wired"
    elif context_blob is None:
        reason = "context unavailable"
    else:
        try:
            params = decode_matcher_context(context_blob).params
        except LayoutError as e:
            reason = f"{e.code}: {e}"
            error = e.as_dict()

    if params is None:
        logger.debug("Venue {} priced at fallback {}bps ({})", slot, FALLBACK_SPREAD_BPS, reason)
        return VenueQuote(
            slot=slot,
            account=account,
            matcher_kind=f"unknown (fallback {FALLBACK_SPREAD_BPS}bps)",
            quote=compute_quote(oracle_price, FALLBACK_PARAMS, trade_notional),
            fallback=True,
            fallback_reason=reason,
            fallback_error=error,
        )

    return VenueQuote(
        slot=slot,
        account=account,
        matcher_kind=kind_label(params.kind),
        quote=compute_quote(oracle_price, params, trade_notional),
    )


def best_price(
    ledger_buf,
    contexts: Mapping[bytes, bytes | None],
    oracle_price: int,
    trade_notional: int | None = None,
) -> BestPrice:
    """Quote every venue and pick the best bid and ask.

    ``contexts`` maps a venue's matcher-context identity to the blob the
    caller fetched for it (``None`` if the fetch failed).
    """
    venues = [
        quote_venue(idx, acct, contexts.get(acct.matcher_context), oracle_price, trade_notional)
        for idx, acct in venue_accounts(ledger_buf)
    ]
    if not venues:
        raise NoVenuesError("No LPs found")

    real = [v for v in venues if not v.fallback]
    pool = real or venues

    # Strict comparisons: ties stay with the lower slot index.
    best_ask = pool[0]
    best_bid = pool[0]
    for v in pool[1:]:
        if v.quote.ask < best_ask.quote.ask:
            best_ask = v
        if v.quote.bid > best_bid.quote.bid:
            best_bid = v

    spread_bps = _trunc_div((best_ask.quote.ask - best_bid.quote.bid) * BPS_DENOM, oracle_price)

    return BestPrice(
        oracle_price=oracle_price,
        venues=venues,
        best_bid_venue=best_bid,
        best_ask_venue=best_ask,
        effective_spread_bps=spread_bps,
        degraded=not real,
        trade_notional=trade_notional,
    )
