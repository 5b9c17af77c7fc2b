"""Behavior windower: Dive/Surface events grouped into fixed multi-day windows.

Windows are anchored at each deployment's earliest retained event start, not
at a calendar boundary. `window_active_proportion` is the summed event
duration in the window over the window length and is left as computed even
when it exceeds 1.
"""

from __future__ import annotations

import duckdb

from sealtag.config import WINDOW_SECONDS
from sealtag.errors import NegativeDurationError

BEHAVIOR_TYPES = ("Dive", "Surface")


def window_behavior(
    con: duckdb.DuckDBPyConnection,
    source: str,
    name: str = "behavior",
    window_seconds: int = WINDOW_SECONDS,
) -> str:
    """Create `name` with duration_seconds, window_index and window_active_proportion."""
    kinds = ", ".join(f"'{k}'" for k in BEHAVIOR_TYPES)
    con.execute(f"""
        CREATE OR REPLACE TEMP TABLE _behavior_events AS
        SELECT
            *,
            date_diff('second', "start", "end") AS duration_seconds
        FROM {source}
        WHERE what IN ({kinds})
    """)

    negative = con.execute("""
        SELECT deploy_id, "start", "end"
        FROM _behavior_events
        WHERE duration_seconds < 0
        ORDER BY deploy_id, "start", "end"
    """).fetchall()
    if negative:
        con.execute("DROP TABLE _behavior_events")
        raise NegativeDurationError([tuple(r) for r in negative])

    con.execute(f"""
        CREATE OR REPLACE TABLE {name} AS
        WITH indexed AS (
            SELECT
                *,
                CAST(floor(
                    date_diff('second', MIN("start") OVER (PARTITION BY deploy_id), "start")
                    / {window_seconds}
                ) AS BIGINT) AS window_index
            FROM _behavior_events
        )
        SELECT
            *,
            SUM(duration_seconds) OVER (PARTITION BY deploy_id, window_index)
                / {float(window_seconds)} AS window_active_proportion
        FROM indexed
        ORDER BY deploy_id, "start", "end", what
    """)
    con.execute("DROP TABLE _behavior_events")

    count = con.execute(f"SELECT count(*) FROM {name}").fetchone()[0]
    print(f"  [behav] {name}: {count:,} Dive/Surface events")
    return name


def out_of_range_windows(con: duckdb.DuckDBPyConnection, table: str) -> int:
    """Number of (deployment, window) groups whose proportion exceeds 1."""
    return con.execute(f"""
        SELECT count(*) FROM (
            SELECT DISTINCT deploy_id, window_index
            FROM {table}
            WHERE window_active_proportion > 1
        )
    """).fetchone()[0]


def split_by_type(con: duckdb.DuckDBPyConnection, source: str) -> dict[str, str]:
    """One table per behavior type: {'Dive': 'behav_dive', 'Surface': 'behav_surf'}."""
    out: dict[str, str] = {}
    for kind, name in (("Dive", "behav_dive"), ("Surface", "behav_surf")):
        con.execute(f"""
            CREATE OR REPLACE TABLE {name} AS
            SELECT * FROM {source}
            WHERE what = '{kind}'
            ORDER BY deploy_id, "start", "end"
        """)
        out[kind] = name
    return out
