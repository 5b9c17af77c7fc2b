"""Location reconciler: prefer FastGPS exports over Argos, then make timestamps unique."""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Callable

import duckdb

from sealtag.config import GPS_NAME_THRESHOLD
from sealtag.ingest import deployment_tag
from sealtag.readers import SCHEMAS, ident


class LocationSource(str, enum.Enum):
    ARGOS = "Argos"
    FAST_GPS = "FastGPS"


Classifier = Callable[[Path], LocationSource]


def classify_by_name_length(path: Path, threshold: int = GPS_NAME_THRESHOLD) -> LocationSource:
    """FastGPS exports are named <tag>-1-Locations.csv, so they run past the threshold.

    Nothing checks the name beyond its length; a renamed file will be misclassified.
    """
    if len(Path(path).name) > threshold:
        return LocationSource.FAST_GPS
    return LocationSource.ARGOS


def instrument_id(path: Path) -> str:
    return deployment_tag(path)


def select_location_files(
    paths: list[Path],
    classify: Classifier = classify_by_name_length,
) -> dict[Path, LocationSource]:
    """Classify files and drop Argos files whose instrument also has a FastGPS file.

    Returns the kept files (input order) with their source.
    """
    sources = {Path(p): classify(Path(p)) for p in paths}
    gps_instruments = {
        instrument_id(p) for p, src in sources.items() if src is LocationSource.FAST_GPS
    }
    return {
        p: src for p, src in sources.items()
        if src is LocationSource.FAST_GPS or instrument_id(p) not in gps_instruments
    }


def dedup_timestamps_sql(table: str, ts: str = "date", tiebreak: list[str] | None = None) -> str:
    """SELECT that bumps colliding timestamps forward one second at a time.

    Within each deployment, rows keep their sorted order and
    t'[i] = max(t[i], t'[i-1] + 1s). Unrolled, t'[i] = i + max_{j<=i}(t[j] - j),
    which is a running max over the row number. Applying it to its own output
    changes nothing.
    """
    order = ", ".join([ident(ts), *(tiebreak or [])])
    return f"""
        WITH numbered AS (
            SELECT
                *,
                date_diff('second', TIMESTAMP '1970-01-01', {ident(ts)}) AS _epoch,
                ROW_NUMBER() OVER (PARTITION BY deploy_id ORDER BY {order}) - 1 AS _rn
            FROM {table}
        ),
        bumped AS (
            SELECT
                *,
                MAX(_epoch - _rn) OVER (
                    PARTITION BY deploy_id ORDER BY _rn
                    ROWS BETWEEN UNBOUNDED PRECEDING AND CURRENT ROW
                ) + _rn AS _new_epoch
            FROM numbered
        )
        SELECT * EXCLUDE (_epoch, _rn, _new_epoch)
        FROM (
            SELECT * REPLACE ({ident(ts)} + to_seconds(_new_epoch - _epoch) AS {ident(ts)})
            FROM bumped
        )
    """


def reconcile_locations(
    con: duckdb.DuckDBPyConnection,
    source: str,
    name: str = "locations",
    classify: Classifier = classify_by_name_length,
) -> str:
    """Build the reconciled location table `name` from the combined raw table `source`."""
    files = [Path(r[0]) for r in con.execute(
        f"SELECT DISTINCT _source_file FROM {source} ORDER BY 1"
    ).fetchall()]
    kept = select_location_files(files, classify)
    dropped = len(files) - len(kept)
    if dropped:
        print(f"  [locs] {dropped:,} Argos file(s) superseded by FastGPS")

    con.execute("CREATE OR REPLACE TEMP TABLE _location_sources (_source_file VARCHAR, location_source VARCHAR)")
    if kept:
        con.executemany(
            "INSERT INTO _location_sources VALUES (?, ?)",
            [[p.name, src.value] for p, src in kept.items()],
        )

    # value columns break ties between identical timestamps so reruns agree
    values = [ident(c.name) for c in SCHEMAS["locations"] if c.name not in ("deploy_id", "date")]
    cols = ", ".join(ident(c.name) for c in SCHEMAS["locations"])
    con.execute(f"""
        CREATE OR REPLACE TEMP TABLE _locations_kept AS
        SELECT {cols}, s.location_source, r._source_file, r._file_ord
        FROM {source} r
        JOIN _location_sources s USING (_source_file)
    """)
    kept_rows, distinct_keys = con.execute("""
        SELECT count(*), (SELECT count(*) FROM (SELECT DISTINCT deploy_id, "date" FROM _locations_kept))
        FROM _locations_kept
    """).fetchone()
    dedup = dedup_timestamps_sql("_locations_kept", "date", ["_file_ord", *values])
    con.execute(f"""
        CREATE OR REPLACE TABLE {name} AS
        SELECT * FROM ({dedup})
        ORDER BY deploy_id, "date"
    """)
    con.execute("DROP TABLE _locations_kept")
    con.execute("DROP TABLE _location_sources")

    print(f"  [locs] {name}: {kept_rows:,} rows ({kept_rows - distinct_keys:,} colliding timestamps bumped)")
    return name
