import json
import os
import subprocess
import sys
from pathlib import Path

from perc_core.ids import to_base58
from tools.sim_slab import SlabBuilder, build_context, build_program_data, ident

REPO = Path(__file__).resolve().parents[1]


def run(*args):
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join([str(REPO / "src"), str(REPO)])
    return subprocess.run([sys.executable, *map(str, args)], cwd=REPO, env=env,
                          check=False, capture_output=True, text=True)


def make_market(tmp_path):
    out = tmp_path / "market"
    r = run("tools/sim_slab.py", out)
    assert r.returncode == 0, r.stderr + r.stdout
    return out


def test_inspect_and_best_price(tmp_path):
    market = make_market(tmp_path)
    slab = market / "slab.bin"

    r = run("-m", "perc_decode.cli", "--json", "engine", slab)
    assert r.returncode == 0, r.stderr + r.stdout
    engine = json.loads(r.stdout)
    assert engine["insurance_fund"]["balance"] == 1_000_000_000
    assert engine["total_open_interest"] == 2_000_000_000

    r = run("-m", "perc_decode.cli", "bitmap", slab)
    assert r.returncode == 0, r.stderr + r.stdout
    assert "0-3" in r.stdout

    r = run("-m", "perc_quote.cli", "--json", "best-price", slab,
            "--oracle", market / "oracle.bin", "--contexts", market / "contexts")
    assert r.returncode == 0, r.stderr + r.stdout
    doc = json.loads(r.stdout)
    assert doc["oracle"] == {"price": 150_000_000, "decimals": 6}
    assert [lp["index"] for lp in doc["lps"]] == [0, 1, 3]
    assert doc["best_buy"]["lp_index"] == 1
    assert doc["best_sell"]["lp_index"] == 1
    assert doc["effective_spread_bps"] == 30
    assert doc["degraded"] is False


def test_corrupted_context_is_flagged(tmp_path):
    market = make_market(tmp_path)
    ctx = next(p for p in (market / "contexts").iterdir())
    r = run("scripts/corrupt_one_byte.py", ctx)
    assert r.returncode == 0, r.stderr + r.stdout

    r = run("-m", "perc_quote.cli", "--json", "best-price", market / "slab.bin",
            "--oracle-price", 150_000_000, "--contexts", market / "contexts")
    assert r.returncode == 0, r.stderr + r.stdout
    doc = json.loads(r.stdout)
    flagged = [lp for lp in doc["lps"] if lp["fallback"]]
    assert len(flagged) == 1
    assert "E_BAD_SIGNATURE" in flagged[0]["fallback_reason"]


def test_no_contexts_is_degraded(tmp_path):
    market = make_market(tmp_path)
    r = run("-m", "perc_quote.cli", "best-price", market / "slab.bin", "--oracle-price", 150_000_000)
    assert r.returncode == 0, r.stderr + r.stdout
    assert "DEGRADED" in r.stdout
    assert "Effective spread: 100 bps" in r.stdout


def test_accounts_parquet_export(tmp_path):
    market = make_market(tmp_path)
    out = tmp_path / "accounts.parquet"
    r = run("-m", "perc_decode.cli", "accounts", market / "slab.bin", "--parquet", out)
    assert r.returncode == 0, r.stderr + r.stdout
    assert out.exists()
    assert out.stat().st_size > 0


def test_corrupted_slab_fails_closed(tmp_path):
    market = make_market(tmp_path)
    slab = market / "slab.bin"
    r = run("scripts/corrupt_one_byte.py", slab, 0)
    assert r.returncode == 0, r.stderr + r.stdout

    for cmd in (["-m", "perc_decode.cli", "header", slab],
                ["-m", "perc_quote.cli", "best-price", slab, "--oracle-price", 1]):
        r = run(*cmd)
        assert r.returncode != 0
        assert "FATAL" in r.stdout
        assert "E_BAD_SIGNATURE" in r.stdout


def test_json_account_commands_keep_wide_values(tmp_path):
    slab = tmp_path / "wide.bin"
    slab.write_bytes(
        SlabBuilder(4)
        .account(1, lp=True, capital=2**100 + 7, pnl=-(2**70),
                 matcher_program=ident("prog"), matcher_context=ident("ctx"))
        .account(2, capital=5)
        .build()
    )

    r = run("-m", "perc_decode.cli", "--json", "account", slab, 1)
    assert r.returncode == 0, r.stderr + r.stdout
    doc = json.loads(r.stdout)
    assert doc["idx"] == 1
    assert doc["account"]["capital"] == 2**100 + 7
    assert doc["account"]["pnl"] == -(2**70)

    r = run("-m", "perc_decode.cli", "--json", "accounts", slab)
    assert r.returncode == 0, r.stderr + r.stdout
    rows = json.loads(r.stdout)
    assert [row["idx"] for row in rows] == [1, 2]
    assert rows[0]["account"]["capital"] == 2**100 + 7
    assert rows[1]["account"]["kind"] == "user"

    r = run("-m", "perc_decode.cli", "account", slab, 3)
    assert r.returncode == 0, r.stderr + r.stdout
    r = run("-m", "perc_decode.cli", "account", slab, 4)
    assert r.returncode != 0
    assert "E_INDEX_RANGE" in r.stdout


def test_best_price_json_reports_fallback_error(tmp_path):
    market = make_market(tmp_path)
    ctx = next(p for p in (market / "contexts").iterdir())
    ctx.write_bytes(ctx.read_bytes()[:70])
    (market / "contexts" / "not-an-address.bin").write_bytes(b"junk")

    r = run("-m", "perc_quote.cli", "--json", "best-price", market / "slab.bin",
            "--oracle-price", 150_000_000, "--contexts", market / "contexts")
    assert r.returncode == 0, r.stderr + r.stdout
    flagged = [lp for lp in json.loads(r.stdout)["lps"] if lp["fallback"]]
    assert len(flagged) == 1
    assert flagged[0]["fallback_error"]["code"] == "E_TOO_SHORT"
    assert flagged[0]["quote"]["total_edge_bps"] == 50


def test_markets_lists_only_slabs(tmp_path):
    dumps = tmp_path / "dumps"
    dumps.mkdir()
    (dumps / "MarketA.bin").write_bytes(
        SlabBuilder(2).config().params().engine(insurance_balance=2**70, num_used_accounts=1).build()
    )
    (dumps / "Context.bin").write_bytes(build_context())
    (dumps / "Tiny.bin").write_bytes(b"PERC")
    (dumps / "Future.bin").write_bytes(SlabBuilder(1, version=9).build())

    r = run("-m", "perc_decode.cli", "--json", "markets", dumps)
    assert r.returncode == 0, r.stderr + r.stdout
    rows = {row["market"]: row for row in json.loads(r.stdout)}
    assert set(rows) == {"MarketA", "Future"}
    assert rows["MarketA"]["summary"]["insurance_balance"] == 2**70
    assert rows["MarketA"]["summary"]["collateral_mint"] == to_base58(ident("mint"))
    assert rows["Future"]["error"]["code"] == "E_UNSUPPORTED_VERSION"

    r = run("-m", "perc_decode.cli", "markets", dumps)
    assert r.returncode == 0, r.stderr + r.stdout
    assert "Found 2 market(s)" in r.stdout


def test_program_upgrade_status(tmp_path):
    frozen = tmp_path / "frozen.bin"
    frozen.write_bytes(build_program_data(100))
    live = tmp_path / "live.bin"
    live.write_bytes(build_program_data(200, authority=ident("deployer")))

    r = run("-m", "perc_decode.cli", "program", frozen)
    assert r.returncode == 0, r.stderr + r.stdout
    assert "IMMUTABLE" in r.stdout
    assert "VERDICT: All checked programs are IMMUTABLE." in r.stdout

    r = run("-m", "perc_decode.cli", "--json", "program", frozen, live)
    assert r.returncode == 0, r.stderr + r.stdout
    doc = json.loads(r.stdout)
    assert [d["status"] for d in doc] == ["IMMUTABLE", "MUTABLE"]
    assert doc[1]["upgrade_authority"] == to_base58(ident("deployer"))
    assert doc[1]["last_deployed_slot"] == 200

    r = run("-m", "perc_decode.cli", "program", tmp_path / "missing.bin")
    assert r.returncode != 0
    junk = tmp_path / "junk.bin"
    junk.write_bytes(bytes(45))
    r = run("-m", "perc_decode.cli", "program", junk)
    assert r.returncode == 1
    assert "FATAL: E_BAD_SIGNATURE" in r.stdout
