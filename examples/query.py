"""Query an exported accounts table - venues ranked by capital."""
from __future__ import annotations

import sys
from pathlib import Path

import duckdb


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python query.py <accounts.parquet> [limit]")
        print("Example: perc-inspect accounts slab.bin --parquet out/accounts.parquet")
        print("         python query.py out/accounts.parquet 10")
        sys.exit(1)

    table = Path(sys.argv[1])
    limit = int(sys.argv[2]) if len(sys.argv) > 2 else 10

    con = duckdb.connect(":memory:")
    con.execute(f"CREATE VIEW accounts AS SELECT * FROM '{table}'")

    # 128-bit columns are stored as decimal strings; HUGEINT holds them exactly.
    sql = """
    SELECT
        slot,
        kind,
        owner,
        CAST(capital AS HUGEINT) AS capital,
        CAST(position_size AS HUGEINT) AS position,
        matcher_context
    FROM accounts
    WHERE kind = 'lp' OR matcher_program <> '11111111111111111111111111111111'
    ORDER BY capital DESC, slot
    LIMIT ?
    """

    print(f"--- Venues by capital: {table} ---\n")

    df = con.execute(sql, [limit]).fetchdf()
    if df.empty:
        print("No venues found.")
    else:
        for _, row in df.iterrows():
            print(f"LP {row['slot']} [{row['kind']}] owner={row['owner']}")
            print(f"  Capital: {row['capital']}")
            print(f"  Position: {row['position']}")
            print(f"  Context: {row['matcher_context']}")
            print()


if __name__ == "__main__":
    main()
