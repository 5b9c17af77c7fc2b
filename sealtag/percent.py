"""Percent-dry timeline: 24 hourly bins per Histos message → one row per hour."""

from __future__ import annotations

import duckdb

HOURLY_BINS = 24


def reshape_percent(con: duckdb.DuckDBPyConnection, source: str, name: str = "percent") -> str:
    """Unpivot Bin1..Bin24 of 'Percent' rows and average duplicate hours.

    Bin i covers the hour starting i - 1 hours after the message's (hour-truncated)
    date. Bins 25..72 are a different histogram and are not used. An hour whose
    contributions are all missing keeps a NULL mean.
    """
    bins = ", ".join(f"bin{i}" for i in range(1, HOURLY_BINS + 1))
    con.execute(f"""
        CREATE OR REPLACE TABLE {name} AS
        WITH long AS (
            SELECT
                p.deploy_id,
                date_trunc('hour', p."date") + to_hours(h.i) AS "date",
                p.bins[h.i + 1] AS percent_dry
            FROM (
                SELECT deploy_id, "date", [{bins}] AS bins
                FROM {source}
                WHERE hist_type = 'Percent'
            ) p
            CROSS JOIN range({HOURLY_BINS}) h(i)
        )
        SELECT
            deploy_id,
            "date",
            AVG(percent_dry) AS percent_dry
        FROM long
        GROUP BY deploy_id, "date"
        ORDER BY deploy_id, "date"
    """)
    count = con.execute(f"SELECT count(*) FROM {name}").fetchone()[0]
    print(f"  [percent] {name}: {count:,} hourly rows")
    return name
