"""Spread pricing.

Reproduces the matcher programs' fixed-point arithmetic so an off-chain quote
is never better than what execution will produce. Integer math only: every
division is an explicit floor or ceil, and every guard against a zero divisor
is written out.
"""
from __future__ import annotations

from dataclasses import dataclass

from perc_core.protocol import BPS_DENOM, U64_MAX, U128_MAX
from perc_decode.matcher import MatcherParams


class PricingError(ValueError):
    pass


class NoVenuesError(PricingError):
    pass


@dataclass(frozen=True)
class Quote:
    bid: int
    ask: int
    total_edge_bps: int
    fee_bps: int
    spread_bps: int
    impact_bps: int


@dataclass(frozen=True)
class SpreadDecomposition:
    min_spread_bps: int
    imbalance_bps: int
    insurance_discount_bps: int
    spread_bps: int
    coverage_bps: int


def _as_u64(value: int) -> int:
    return value & U64_MAX


def bid_price(oracle_price: int, total_edge_bps: int) -> int:
    """floor(P * (10000 - edge) / 10000); an edge past 100% bids zero."""
    keep = BPS_DENOM - min(total_edge_bps, BPS_DENOM)
    return oracle_price * keep // BPS_DENOM


def ask_price(oracle_price: int, total_edge_bps: int) -> int:
    """ceil(P * (10000 + edge) / 10000)."""
    numer = oracle_price * (BPS_DENOM + total_edge_bps)
    return (numer + BPS_DENOM - 1) // BPS_DENOM


def impact_bps(trade_notional: int | None, impact_k_bps: int, liquidity: int) -> int:
    if trade_notional is None or impact_k_bps == 0 or liquidity == 0:
        return 0
    return abs(trade_notional) * impact_k_bps // liquidity


def coverage_ratio_bps(insurance_balance: int, open_interest: int) -> int:
    """insurance / OI in bps, capped at 100%. Zero OI means zero coverage."""
    if open_interest == 0:
        return 0
    # u128 multiply then truncating cast to u64, as the matcher does.
    coverage = _as_u64(((insurance_balance * BPS_DENOM) & U128_MAX) // open_interest)
    return min(coverage, BPS_DENOM)


def spread_decomposition(params: MatcherParams) -> SpreadDecomposition:
    """Credibility spread, term by term."""
    snap = params.credibility
    if snap is None:
        raise PricingError(f"matcher kind {params.kind} carries no credibility snapshot")

    min_spread = params.spread_bps
    max_spread = params.max_total_bps
    spread = min_spread

    imbalance = 0
    liquidity = params.liquidity_notional_e6
    if liquidity > 0 and params.impact_k_bps > 0:
        cost = min(params.impact_k_bps * abs(params.inventory_base), U128_MAX) // liquidity
        imbalance = _as_u64(cost)
        spread = min(spread + imbalance, U64_MAX)

    coverage = 0
    discount = 0
    weight = snap.insurance_weight_bps
    if weight > 0 and snap.total_open_interest > 0:
        coverage = coverage_ratio_bps(snap.insurance_balance, snap.total_open_interest)
        discount = coverage * weight // BPS_DENOM
        spread = max(spread - discount, 0)

    # The 1 bps floor holds even when the ceiling is configured as 0.
    spread = max(1, min(spread, max(max_spread, 1)))

    return SpreadDecomposition(
        min_spread_bps=min_spread,
        imbalance_bps=imbalance,
        insurance_discount_bps=discount,
        spread_bps=spread,
        coverage_bps=coverage,
    )


def compute_quote(oracle_price: int, params: MatcherParams, trade_notional: int | None = None) -> Quote:
    if oracle_price <= 0:
        raise PricingError(f"oracle price must be positive, got {oracle_price}")

    if params.is_credibility:
        parts = spread_decomposition(params)
        total = parts.spread_bps + params.fee_bps
        return Quote(
            bid=bid_price(oracle_price, total),
            ask=ask_price(oracle_price, total),
            total_edge_bps=total,
            fee_bps=params.fee_bps,
            spread_bps=parts.spread_bps,
            impact_bps=parts.imbalance_bps,
        )

    impact = impact_bps(trade_notional, params.impact_k_bps, params.liquidity_notional_e6)
    total = params.fee_bps + params.spread_bps + impact
    if params.max_total_bps > 0 and total > params.max_total_bps:
        total = params.max_total_bps

    return Quote(
        bid=bid_price(oracle_price, total),
        ask=ask_price(oracle_price, total),
        total_edge_bps=total,
        fee_bps=params.fee_bps,
        spread_bps=params.spread_bps,
        impact_bps=impact,
    )
