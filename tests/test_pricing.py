import pytest

from perc_core.protocol import MATCHER_KIND_CREDIBILITY, MATCHER_KIND_PASSIVE, MATCHER_KIND_VAMM
from perc_decode.matcher import CredibilitySnapshot, MatcherParams, decode_matcher_context
from perc_quote.pricing import (
    PricingError,
    ask_price,
    bid_price,
    compute_quote,
    coverage_ratio_bps,
    impact_bps,
    spread_decomposition,
)
from tools.sim_slab import build_context


def passive(fee=5, spread=50, max_total=0):
    return MatcherParams(kind=MATCHER_KIND_PASSIVE, fee_bps=fee, spread_bps=spread, max_total_bps=max_total,
                         impact_k_bps=0, liquidity_notional_e6=0)


def credibility(min_spread=50, max_spread=500, fee=0, imbalance_k=100, liquidity=10**12, inventory=0,
                insurance=1_000_000_000, oi=2_000_000_000, weight=50):
    return MatcherParams(
        kind=MATCHER_KIND_CREDIBILITY, fee_bps=fee, spread_bps=min_spread, max_total_bps=max_spread,
        impact_k_bps=imbalance_k, liquidity_notional_e6=liquidity, inventory_base=inventory,
        credibility=CredibilitySnapshot(
            insurance_balance=insurance, total_open_interest=oi, snapshot_slot=0, market_age_slots=0,
            last_deficit_slot=0, age_halflife_slots=0, insurance_weight_bps=weight,
        ),
    )


def test_passive_quote():
    q = compute_quote(150_000_000, passive())
    assert q.total_edge_bps == 55
    assert q.bid == 149_175_000
    assert q.ask == 150_825_000
    assert (q.fee_bps, q.spread_bps, q.impact_bps) == (5, 50, 0)


def test_rounding_bid_floors_ask_ceils():
    assert bid_price(10_000_000, 33) == 9_967_000
    assert ask_price(10_000_000, 33) == 10_033_000

    # Off the 10000 grid the two sides round apart.
    price = 10_000_001
    bid, ask = bid_price(price, 33), ask_price(price, 33)
    assert bid == 9_967_000
    assert ask == 10_033_002
    assert (ask - bid) * 10_000 >= 2 * price * 33


@pytest.mark.parametrize("price", [1, 7, 9_999, 10_000_000, 10_000_001, 123_456_789])
def test_charged_spread_never_underestimates(price):
    q = compute_quote(price, passive(fee=0, spread=33))
    assert (q.ask - q.bid) * 10_000 >= 2 * price * q.total_edge_bps
    assert q.bid * 10_000 <= price * (10_000 - 33)
    assert q.ask * 10_000 >= price * (10_000 + 33)


def test_edge_past_full_price_bids_zero():
    assert bid_price(1_000, 12_000) == 0


def test_impact_added_to_total():
    params = MatcherParams(kind=MATCHER_KIND_VAMM, fee_bps=5, spread_bps=10, max_total_bps=0,
                           impact_k_bps=100, liquidity_notional_e6=10**12)
    q = compute_quote(150_000_000, params, trade_notional=-(10**11))
    assert q.impact_bps == 10
    assert q.total_edge_bps == 25
    assert q.spread_bps == 10


def test_impact_only_with_trade_size():
    params = MatcherParams(kind=MATCHER_KIND_VAMM, fee_bps=5, spread_bps=10, max_total_bps=0,
                           impact_k_bps=100, liquidity_notional_e6=10**12)
    assert compute_quote(150_000_000, params).impact_bps == 0


def test_zero_liquidity_means_no_impact():
    assert impact_bps(10**12, 100, 0) == 0
    assert impact_bps(10**12, 0, 10**6) == 0
    assert impact_bps(None, 100, 10**6) == 0
    assert impact_bps(-(10**6), 100, 10**6) == 100


def test_max_total_caps_edge_and_zero_means_no_cap():
    params = MatcherParams(kind=MATCHER_KIND_VAMM, fee_bps=5, spread_bps=10, max_total_bps=20,
                           impact_k_bps=100, liquidity_notional_e6=10**12)
    assert compute_quote(150_000_000, params, trade_notional=10**11).total_edge_bps == 20
    assert compute_quote(150_000_000, passive(fee=300, spread=300, max_total=0)).total_edge_bps == 600


def test_zero_oracle_price_rejected():
    with pytest.raises(PricingError):
        compute_quote(0, passive())


def test_credibility_end_to_end_spread():
    parts = spread_decomposition(credibility())
    assert parts.coverage_bps == 5_000
    assert parts.insurance_discount_bps == 25
    assert parts.imbalance_bps == 0
    assert parts.spread_bps == 25

    q = compute_quote(10_000_000, credibility())
    assert q.spread_bps == 25
    assert q.total_edge_bps == 25
    assert q.bid == 9_975_000
    assert q.ask == 10_025_000


def test_credibility_from_decoded_context():
    blob = build_context(MATCHER_KIND_CREDIBILITY, fee_bps=5, spread_bps=50, max_total_bps=500,
                         impact_k_bps=100, liquidity=10**12, insurance=1_000_000_000,
                         total_oi=2_000_000_000, insurance_weight_bps=50)
    q = compute_quote(150_000_000, decode_matcher_context(blob).params)
    assert (q.spread_bps, q.fee_bps, q.total_edge_bps) == (25, 5, 30)
    assert q.bid == 149_550_000
    assert q.ask == 150_450_000


def test_zero_open_interest_gives_no_discount():
    assert coverage_ratio_bps(10**9, 0) == 0
    parts = spread_decomposition(credibility(oi=0))
    assert parts.insurance_discount_bps == 0
    assert parts.spread_bps == 50


def test_coverage_caps_at_full():
    assert coverage_ratio_bps(4_000, 1_000) == 10_000
    assert spread_decomposition(credibility(min_spread=100, insurance=2 * 10**6, oi=10**6)).spread_bps == 50


def test_credibility_clamps_to_one_bps_floor():
    parts = spread_decomposition(credibility(min_spread=10, insurance=10**9, oi=10**9, weight=50))
    assert parts.insurance_discount_bps == 50
    assert parts.spread_bps == 1


def test_credibility_floor_holds_with_zero_min_and_zero_ceiling():
    assert spread_decomposition(credibility(min_spread=0, max_spread=0)).spread_bps == 1


def test_credibility_clamps_to_max_spread():
    parts = spread_decomposition(credibility(min_spread=50, liquidity=10**9, inventory=10**12, oi=0))
    assert parts.imbalance_bps == 100_000
    assert parts.spread_bps == 500


def test_imbalance_uses_absolute_inventory():
    long_ = spread_decomposition(credibility(liquidity=10**9, inventory=10**7, oi=0))
    short = spread_decomposition(credibility(liquidity=10**9, inventory=-(10**7), oi=0))
    assert long_.imbalance_bps == short.imbalance_bps == 1
    assert long_.spread_bps == 51


def test_credibility_ignores_trade_size():
    assert compute_quote(10_000_000, credibility(), trade_notional=10**15) == compute_quote(10_000_000, credibility())


def test_decomposition_requires_credibility_snapshot():
    with pytest.raises(PricingError):
        spread_decomposition(passive())


def test_quotes_are_deterministic():
    params = credibility(inventory=-(2**70), liquidity=3, insurance=2**100, oi=7)
    first = compute_quote(123_456_789, params, trade_notional=5)
    for _ in range(10):
        assert compute_quote(123_456_789, params, trade_notional=5) == first
