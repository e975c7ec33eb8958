import pytest

from perc_core.protocol import (
    MATCHER_KIND_CREDIBILITY,
    MATCHER_KIND_PASSIVE,
    MATCHER_KIND_VAMM,
)
from perc_decode.errors import BadSignature, TooShort, UnsupportedVersion
from perc_decode.matcher import decode_matcher_context, kind_label
from perc_decode.oracle import decode_oracle_price
from tools.sim_slab import build_context, build_oracle, ident


def test_passive_context():
    ctx = decode_matcher_context(build_context(MATCHER_KIND_PASSIVE, version=1, fee_bps=5, spread_bps=50,
                                               lp_pda=ident("lp")))
    assert ctx.version == 1
    assert ctx.lp_pda == ident("lp")
    p = ctx.params
    assert (p.kind, p.fee_bps, p.spread_bps, p.max_total_bps, p.impact_k_bps) == (0, 5, 50, 0, 0)
    assert p.credibility is None
    assert not p.is_credibility


def test_vamm_liquidity_is_128_bit():
    ctx = decode_matcher_context(build_context(MATCHER_KIND_VAMM, impact_k_bps=100, liquidity=2**80 + 1))
    assert ctx.params.liquidity_notional_e6 == 2**80 + 1
    assert ctx.params.impact_k_bps == 100


def test_credibility_context_exposes_snapshot_as_is():
    blob = build_context(
        MATCHER_KIND_CREDIBILITY, fee_bps=5, spread_bps=50, max_total_bps=500, impact_k_bps=100,
        liquidity=10**12, max_fill=10**9, inventory=-(2**66), max_inventory=10**10,
        insurance=2**70 + 5, total_oi=2**64, snapshot_slot=42, age_halflife=1000,
        insurance_weight_bps=50,
    )
    ctx = decode_matcher_context(blob)
    p = ctx.params
    assert p.is_credibility
    assert p.inventory_base == -(2**66)
    snap = p.credibility
    assert snap.insurance_balance == 2**70 + 5
    assert snap.total_open_interest == 2**64
    assert snap.snapshot_slot == 42
    assert snap.age_halflife_slots == 1000
    assert snap.insurance_weight_bps == 50
    assert ctx.max_fill_abs == 10**9
    assert ctx.max_inventory_abs == 10**10


def test_bad_magic():
    blob = bytearray(build_context())
    blob[64] ^= 0x01
    with pytest.raises(BadSignature):
        decode_matcher_context(bytes(blob))


def test_unknown_version():
    with pytest.raises(UnsupportedVersion):
        decode_matcher_context(build_context(version=9))


def test_credibility_needs_version_4():
    with pytest.raises(UnsupportedVersion):
        decode_matcher_context(build_context(MATCHER_KIND_CREDIBILITY, version=3))


def test_too_short():
    blob = build_context(MATCHER_KIND_PASSIVE)
    with pytest.raises(TooShort):
        decode_matcher_context(blob[:70])
    with pytest.raises(TooShort):
        decode_matcher_context(blob[:64 + 79])
    assert decode_matcher_context(blob[:64 + 80]).params.kind == 0


def test_credibility_block_too_short():
    blob = build_context(MATCHER_KIND_CREDIBILITY)
    with pytest.raises(TooShort):
        decode_matcher_context(blob[:64 + 200])


def test_kind_labels():
    assert kind_label(0) == "passive"
    assert kind_label(1) == "vAMM"
    assert kind_label(2) == "credibility"
    assert kind_label(7) == "custom(7)"
    assert decode_matcher_context(build_context(7)).params.kind == 7


def test_oracle_price():
    o = decode_oracle_price(build_oracle(150_000_000, decimals=6))
    assert o.price == 150_000_000
    assert o.decimals == 6
    assert o.as_float() == 150.0


def test_oracle_too_short():
    with pytest.raises(TooShort):
        decode_oracle_price(b"\x00" * 200)
