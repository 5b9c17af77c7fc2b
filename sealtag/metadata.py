"""Deployment metadata: load the reference table and right-join it onto derived tables."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import duckdb

from sealtag.errors import MetadataError
from sealtag.models import JoinReport
from sealtag.readers import ident, literal, normalize_column

METADATA_COLUMNS: dict[str, str] = {
    "deploy_id": "VARCHAR",
    "deploy_dt": "TIMESTAMP",
    "end_dt":    "TIMESTAMP",
    "age_class": "VARCHAR",
    "sex":       "VARCHAR",
}

# names the column goes by in older exports of the deployment database
_ALIASES = {"deployid": "deploy_id"}


def _scan(con: duckdb.DuckDBPyConnection, source: Path, table: str) -> tuple[str, bool]:
    """Return (FROM clause, values-are-text) for the metadata source."""
    suffix = source.suffix.lower()
    if suffix in (".duckdb", ".db"):
        con.execute("DETACH DATABASE IF EXISTS deployment_db")
        con.execute(f"ATTACH {literal(source)} AS deployment_db (READ_ONLY)")
        return f"deployment_db.{ident(table)}", False
    if suffix == ".csv":
        return f"read_csv({literal(source)}, header=true, all_varchar=true)", True
    if suffix == ".parquet":
        return f"read_parquet({literal(source)})", False
    raise MetadataError(f"unsupported metadata source {source.name!r}")


def load_metadata(
    con: duckdb.DuckDBPyConnection,
    source: Path,
    table: str = "deployments",
    name: str = "deployments",
) -> str:
    """Copy the deployment metadata into `name` with normalized, typed columns."""
    source = Path(source)
    if not source.exists():
        raise MetadataError(f"metadata source {source} not found")

    try:
        scan, text = _scan(con, source, table)
        con.execute(f"SELECT * FROM {scan} LIMIT 0")
        raw_names = [d[0] for d in con.description]

        present: dict[str, str] = {}
        for raw in raw_names:
            norm = normalize_column(raw)
            present.setdefault(_ALIASES.get(norm, norm), raw)
        missing = [c for c in METADATA_COLUMNS if c not in present]
        if missing:
            raise MetadataError(f"metadata is missing column(s): {', '.join(missing)}")

        exprs, checks = [], []
        for col, sql_type in METADATA_COLUMNS.items():
            v = ident(present[col])
            if text:
                v = f"NULLIF(TRIM({v}), '')"
            typed = f"TRY_CAST({v} AS {sql_type})"
            exprs.append(f"{typed} AS {col}")
            checks.append(f"count(*) FILTER (WHERE {v} IS NOT NULL AND {typed} IS NULL)")

        bad = con.execute(f"SELECT {', '.join(checks)} FROM {scan}").fetchone()
        for col, n in zip(METADATA_COLUMNS, bad):
            if n:
                raise MetadataError(f"metadata column {col!r}: {n:,} unparseable value(s)")

        con.execute(f"""
            CREATE OR REPLACE TABLE {name} AS
            SELECT {', '.join(exprs)}
            FROM {scan}
            ORDER BY deploy_id
        """)
    except duckdb.Error as exc:
        raise MetadataError(f"could not read metadata from {source.name}: {exc}") from exc
    finally:
        if source.suffix.lower() in (".duckdb", ".db"):
            con.execute("DETACH DATABASE IF EXISTS deployment_db")

    nulls, dupes = con.execute(f"""
        SELECT
            count(*) FILTER (WHERE deploy_id IS NULL),
            count(*) - count(DISTINCT deploy_id)
        FROM {name}
    """).fetchone()
    if nulls or dupes:
        raise MetadataError(
            f"deployment ids must be unique and non-null ({nulls:,} null, {dupes:,} duplicated)"
        )

    count = con.execute(f"SELECT count(*) FROM {name}").fetchone()[0]
    print(f"  [meta] {name}: {count:,} deployments from {source.name}")
    return name


def _ids(con: duckdb.DuckDBPyConnection, sql: str) -> list[str]:
    return [r[0] for r in con.execute(sql).fetchall()]


def join_metadata(
    con: duckdb.DuckDBPyConnection,
    derived: str,
    name: str,
    ts_col: str,
    metadata: str = "deployments",
    as_of: datetime | None = None,
    filter_range: bool = True,
) -> JoinReport:
    """Right-join `metadata` onto `derived` by deploy_id into a new table `name`.

    With `as_of`, a missing end_dt is replaced by it. With `filter_range`, data
    rows outside [deploy_dt, end_dt] are dropped; rows missing either bound
    pass through. Every metadata row keeps at least one output row: a
    deployment with no data left gets its metadata-only row.
    """
    ts = ident(ts_col)
    end = f"COALESCE(m.end_dt, TIMESTAMP {literal(as_of.isoformat(sep=' '))})" if as_of else "m.end_dt"
    in_range = (
        f"deploy_dt IS NULL OR end_dt IS NULL OR {ts} IS NULL OR {ts} BETWEEN deploy_dt AND end_dt"
        if filter_range else "true"
    )

    con.execute(f"""
        CREATE OR REPLACE TEMP TABLE _joined AS
        SELECT
            m.deploy_id,
            d.* EXCLUDE (deploy_id),
            m.deploy_dt,
            {end} AS end_dt,
            m.age_class,
            m.sex
        FROM {derived} d
        RIGHT JOIN {metadata} m ON d.deploy_id = m.deploy_id
    """)
    con.execute(f"""
        CREATE OR REPLACE TABLE {name} AS
        WITH kept AS (
            SELECT * FROM _joined
            WHERE {in_range}
        )
        SELECT * FROM kept
        UNION ALL BY NAME
        SELECT m.deploy_id, m.deploy_dt, {end} AS end_dt, m.age_class, m.sex
        FROM {metadata} m
        WHERE NOT EXISTS (SELECT 1 FROM kept k WHERE k.deploy_id = m.deploy_id)
    """)

    report = JoinReport(
        table=name,
        rows_in=con.execute(f"SELECT count(*) FROM {derived}").fetchone()[0],
        rows_joined=con.execute("SELECT count(*) FROM _joined").fetchone()[0],
        rows_out=con.execute(f"SELECT count(*) FROM {name}").fetchone()[0],
        rows_filtered=con.execute(f"SELECT count(*) FROM _joined WHERE NOT ({in_range})").fetchone()[0],
        gaps=_ids(con, f"""
            SELECT DISTINCT d.deploy_id FROM {derived} d
            WHERE NOT EXISTS (SELECT 1 FROM {metadata} m WHERE m.deploy_id = d.deploy_id)
            ORDER BY 1
        """),
        unmatched_metadata=_ids(con, f"""
            SELECT m.deploy_id FROM {metadata} m
            WHERE NOT EXISTS (SELECT 1 FROM {derived} d WHERE d.deploy_id = m.deploy_id)
            ORDER BY 1
        """),
        missing_bounds=_ids(con, f"""
            SELECT deploy_id FROM {metadata}
            WHERE deploy_dt IS NULL OR end_dt IS NULL
            ORDER BY 1
        """),
        invalid_ranges=_ids(con, f"""
            SELECT deploy_id FROM {metadata}
            WHERE end_dt < deploy_dt
            ORDER BY 1
        """),
    )
    con.execute("DROP TABLE _joined")

    print(f"  [join] {name}: {report.rows_out:,} rows "
          f"({report.rows_filtered:,} outside deployment dates)")
    if report.gaps:
        print(f"  [warn] {name}: {len(report.gaps)} deployment(s) missing from metadata: "
              f"{', '.join(report.gaps)}")
    if report.unmatched_metadata:
        print(f"  [warn] {name}: {len(report.unmatched_metadata)} deployment(s) with no data rows: "
              f"{', '.join(report.unmatched_metadata)}")
    if report.missing_bounds:
        print(f"  [warn] {name}: {len(report.missing_bounds)} deployment(s) missing start/end date")
    if report.invalid_ranges:
        print(f"  [warn] {name}: {len(report.invalid_ranges)} deployment(s) end before they start: "
              f"{', '.join(report.invalid_ranges)}")
    return report
