"""Write the tidy tables as CSV plus a ZSTD parquet snapshot."""

from __future__ import annotations

from pathlib import Path

import duckdb

from sealtag.readers import ident, literal

# leading sort columns per table; the remaining columns break ties
SORT_KEYS: dict[str, list[str]] = {
    "tbl_locs":       ["deploy_id", "date"],
    "tbl_percent":    ["deploy_id", "date"],
    "tbl_behav_dive": ["deploy_id", "start", "end"],
    "tbl_behav_surf": ["deploy_id", "start", "end"],
}


def export_columns(con: duckdb.DuckDBPyConnection, table: str) -> list[str]:
    """Column names in table order, without the underscore-prefixed helper columns."""
    rows = con.execute(f"DESCRIBE {table}").fetchall()
    return [r[0] for r in rows if not r[0].startswith("_")]


def _export_sql(con: duckdb.DuckDBPyConnection, table: str, keys: list[str]) -> str:
    cols = export_columns(con, table)
    order = [c for c in keys if c in cols] + [c for c in cols if c not in keys]
    return f"""
        SELECT {', '.join(ident(c) for c in cols)}
        FROM {table}
        ORDER BY {', '.join(f'{ident(c)} NULLS LAST' for c in order)}
    """


def export_table(
    con: duckdb.DuckDBPyConnection,
    table: str,
    out_dir: Path,
    prefix: str,
    keys: list[str] | None = None,
) -> list[Path]:
    """Write <prefix>_<table>.csv and .parquet. Same table in, same CSV bytes out."""
    out_dir.mkdir(parents=True, exist_ok=True)
    sql = _export_sql(con, table, keys if keys is not None else SORT_KEYS.get(table, []))

    csv_path = out_dir / f"{prefix}_{table}.csv"
    parquet_path = out_dir / f"{prefix}_{table}.parquet"
    con.execute(f"""
        COPY ({sql}) TO {literal(csv_path)}
        (HEADER, DELIMITER ',', TIMESTAMPFORMAT '%Y-%m-%d %H:%M:%S')
    """)
    con.execute(f"COPY ({sql}) TO {literal(parquet_path)} (FORMAT PARQUET, COMPRESSION ZSTD)")

    count = con.execute(f"SELECT count(*) FROM {table}").fetchone()[0]
    size_kb = csv_path.stat().st_size / 1024
    print(f"  [export] {csv_path.name}: {count:,} rows ({size_kb:.0f} KB) + {parquet_path.name}")
    return [csv_path, parquet_path]


def export_all(
    con: duckdb.DuckDBPyConnection,
    tables: list[str],
    out_dir: Path,
    prefix: str,
) -> list[Path]:
    paths: list[Path] = []
    for table in tables:
        paths.extend(export_table(con, table, out_dir, prefix))
    return paths
