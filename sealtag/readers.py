"""Record readers: raw Wildlife Computers CSV exports → typed DuckDB tables.

Every file is read as all-VARCHAR first, headers are normalized, and each
declared column is cast to its type. A non-empty cell that does not cast is a
schema violation for the whole file; nothing is silently turned into NULL.
Key columns (deployment id and the event timestamps) may not be empty.

Several files of one kind are combined with a fold: each step takes the
accumulated table and the next file's table and creates a new table holding
both.
"""

from __future__ import annotations

import re
from functools import reduce
from pathlib import Path
from typing import NamedTuple

import duckdb

from sealtag.config import TIMESTAMP_FORMAT
from sealtag.errors import SchemaError
from sealtag.ingest import RawFile


class Column(NamedTuple):
    name: str
    type: str  # "str" | "int" | "float" | "timestamp"
    required: bool = False
    nullable: bool = True  # key columns may not hold empty cells


_SQL_TYPES = {"str": "VARCHAR", "int": "BIGINT", "float": "DOUBLE", "timestamp": "TIMESTAMP"}

_ERROR_FIELDS = [
    Column("error_radius", "float"),
    Column("error_semi_major_axis", "float"),
    Column("error_semi_minor_axis", "float"),
    Column("error_ellipse_orientation", "float"),
    Column("offset", "float"),
    Column("offset_orientation", "float"),
    Column("gpe_msd", "float"),
    Column("gpe_u", "float"),
]

SCHEMAS: dict[str, list[Column]] = {
    "locations": [
        Column("deploy_id", "str", True, nullable=False),
        Column("ptt", "int"),
        Column("instr", "str"),
        Column("date", "timestamp", True, nullable=False),
        Column("type", "str", True),
        Column("quality", "str"),
        Column("latitude", "float", True),
        Column("longitude", "float", True),
        *_ERROR_FIELDS,
        Column("count", "int"),
        Column("comment", "str"),
    ],
    "histos": [
        Column("deploy_id", "str", True, nullable=False),
        Column("ptt", "int"),
        Column("depth_sensor", "str"),
        Column("source", "str"),
        Column("instr", "str"),
        Column("hist_type", "str", True),
        Column("date", "timestamp", True, nullable=False),
        Column("time_offset", "float"),
        Column("count", "int"),
        Column("bad_therm", "int"),
        Column("location_quality", "str"),
        Column("latitude", "float"),
        Column("longitude", "float"),
        Column("num_bins", "int"),
        Column("sum", "float"),
        *[Column(f"bin{i}", "float", i <= 24) for i in range(1, 73)],
    ],
    "behavior": [
        Column("deploy_id", "str", True, nullable=False),
        Column("ptt", "int"),
        Column("depth_sensor", "str"),
        Column("source", "str"),
        Column("instr", "str"),
        Column("count", "int"),
        Column("start", "timestamp", True, nullable=False),
        Column("end", "timestamp", True, nullable=False),
        Column("what", "str", True),
        Column("number", "int"),
        Column("shape", "str"),
        Column("depth_min", "float"),
        Column("depth_max", "float"),
        Column("duration_min", "float"),
        Column("duration_max", "float"),
        Column("shallow", "int"),
        Column("deep", "int"),
    ],
}

HIDDEN_COLUMNS = ("_source_file", "_file_ord")


def normalize_column(name: str) -> str:
    """'DeployID' → 'deploy_id', 'Error Semi-major axis' → 'error_semi_major_axis'."""
    s = re.sub(r"([a-z])([A-Z])", r"\1_\2", name.strip())
    s = re.sub(r"[^0-9a-zA-Z]+", "_", s.lower())
    return s.strip("_")


def ident(name: str) -> str:
    """Quote an identifier; raw headers carry spaces and names like `end`/`offset`."""
    return '"' + name.replace('"', '""') + '"'


def literal(value: object) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def _typed_expr(col: Column, raw: str) -> str:
    v = f"NULLIF(TRIM({ident(raw)}), '')"
    if col.type == "str":
        return v
    if col.type == "timestamp":
        return f"try_strptime({v}, {literal(TIMESTAMP_FORMAT)})"
    return f"TRY_CAST({v} AS {_SQL_TYPES[col.type]})"


def _select_list(kind: str, present: dict[str, str]) -> list[str]:
    """Typed column expressions in declared order, NULL-filled where absent."""
    out = []
    for col in SCHEMAS[kind]:
        if col.name in present:
            out.append(f"{_typed_expr(col, present[col.name])} AS {ident(col.name)}")
        else:
            out.append(f"CAST(NULL AS {_SQL_TYPES[col.type]}) AS {ident(col.name)}")
    return out


def _csv_scan(path: Path) -> str:
    return f"read_csv({literal(path)}, header=true, all_varchar=true, delim=',')"


def _deploy_ids(con: duckdb.DuckDBPyConnection, path: Path) -> list[str]:
    """Distinct DeployID values of a raw file, read as text; [] if the file is unreadable."""
    try:
        con.execute(f"SELECT * FROM {_csv_scan(path)} LIMIT 0")
        raw = next((d[0] for d in con.description if normalize_column(d[0]) == "deploy_id"), None)
        if raw is None:
            return []
        v = f"NULLIF(TRIM({ident(raw)}), '')"
        rows = con.execute(f"""
            SELECT DISTINCT {v} FROM {_csv_scan(path)}
            WHERE {v} IS NOT NULL
            ORDER BY 1
        """).fetchall()
    except duckdb.Error:
        return []
    return [r[0] for r in rows]


def _fail(con: duckdb.DuckDBPyConnection, f: RawFile, detail: str) -> SchemaError:
    return SchemaError(f.path, detail, tag=f.tag, deploy_ids=_deploy_ids(con, f.path))


def _header(con: duckdb.DuckDBPyConnection, f: RawFile) -> dict[str, str]:
    """Map normalized name → raw header for the columns this schema declares."""
    try:
        con.execute(f"SELECT * FROM {_csv_scan(f.path)} LIMIT 0")
    except duckdb.Error as exc:
        raise _fail(con, f, f"unreadable CSV: {exc}") from exc
    raw_names = [d[0] for d in con.description]

    present: dict[str, str] = {}
    for raw in raw_names:
        norm = normalize_column(raw)
        if norm in present:
            raise _fail(con, f, f"duplicate column {norm!r}")
        present[norm] = raw

    missing = [c.name for c in SCHEMAS[f.kind] if c.required and c.name not in present]
    if missing:
        raise _fail(con, f, f"missing required column(s): {', '.join(missing)}")

    declared = {c.name for c in SCHEMAS[f.kind]}
    return {k: v for k, v in present.items() if k in declared}


def _check_types(con: duckdb.DuckDBPyConnection, f: RawFile, present: dict[str, str]) -> None:
    checks = [
        c for c in SCHEMAS[f.kind]
        if c.name in present and (c.type != "str" or not c.nullable)
    ]
    if not checks:
        return
    aggs = []
    for col in checks:
        v = f"NULLIF(TRIM({ident(present[col.name])}), '')"
        bad = f"{v} IS NOT NULL AND {_typed_expr(col, present[col.name])} IS NULL"
        aggs.append(f"count(*) FILTER (WHERE {bad})")
        aggs.append(f"min({v}) FILTER (WHERE {bad})")
        aggs.append("0" if col.nullable else f"count(*) FILTER (WHERE {v} IS NULL)")
    try:
        row = con.execute(f"SELECT {', '.join(aggs)} FROM {_csv_scan(f.path)}").fetchone()
    except duckdb.Error as exc:
        raise _fail(con, f, f"unreadable CSV: {exc}") from exc

    for i, col in enumerate(checks):
        n_bad, example, n_empty = row[3 * i:3 * i + 3]
        if n_bad:
            raise _fail(
                con, f,
                f"column {col.name!r}: {n_bad:,} value(s) not parseable as {col.type} "
                f"(e.g. {example!r})",
            )
        if n_empty:
            raise _fail(con, f, f"key column {col.name!r}: {n_empty:,} empty value(s)")


def load_file(con: duckdb.DuckDBPyConnection, f: RawFile) -> str:
    """Validate one raw file and load it into its own typed temp table."""
    present = _header(con, f)
    _check_types(con, f, present)

    table = f"_{f.kind}_{f.ordinal:05d}"
    cols = _select_list(f.kind, present)
    con.execute(f"""
        CREATE OR REPLACE TEMP TABLE {table} AS
        SELECT
            {', '.join(cols)},
            {literal(f.path.name)} AS _source_file,
            {f.ordinal} AS _file_ord
        FROM {_csv_scan(f.path)}
    """)
    return table


def load_deployment(con: duckdb.DuckDBPyConnection, files: list[RawFile]) -> list[str]:
    """Load every file of one deployment tag, all or nothing."""
    tables: list[str] = []
    try:
        for f in files:
            tables.append(load_file(con, f))
    except SchemaError:
        for t in tables:
            con.execute(f"DROP TABLE IF EXISTS {t}")
        raise
    return tables


def empty_table(con: duckdb.DuckDBPyConnection, kind: str, name: str) -> str:
    cols = [f"CAST(NULL AS {_SQL_TYPES[c.type]}) AS {ident(c.name)}" for c in SCHEMAS[kind]]
    con.execute(f"""
        CREATE OR REPLACE TEMP TABLE {name} AS
        SELECT {', '.join(cols)}, CAST(NULL AS VARCHAR) AS _source_file, CAST(NULL AS BIGINT) AS _file_ord
        WHERE false
    """)
    return name


def combine(con: duckdb.DuckDBPyConnection, kind: str, tables: list[str], name: str) -> str:
    """Fold per-file tables into one table called `name`."""

    def step(acc: tuple[int, str], nxt: str) -> tuple[int, str]:
        i, prev = acc
        out = f"_{name}_acc{i + 1}"
        con.execute(f"""
            CREATE OR REPLACE TEMP TABLE {out} AS
            SELECT * FROM {prev}
            UNION ALL
            SELECT * FROM {nxt}
        """)
        # intermediates are never read again
        con.execute(f"DROP TABLE {prev}")
        con.execute(f"DROP TABLE {nxt}")
        return i + 1, out

    seed = empty_table(con, kind, f"_{name}_acc0")
    _, last = reduce(step, tables, (0, seed))

    con.execute(f"CREATE OR REPLACE TABLE {name} AS SELECT * FROM {last}")
    con.execute(f"DROP TABLE {last}")
    count = con.execute(f"SELECT count(*) FROM {name}").fetchone()[0]
    print(f"  [read] {name}: {count:,} rows from {len(tables):,} files")
    return name


def read_files(con: duckdb.DuckDBPyConnection, kind: str, files: list[RawFile], name: str) -> str:
    """Load and combine files of one kind; the first bad file aborts."""
    return combine(con, kind, [load_file(con, f) for f in files], name)
