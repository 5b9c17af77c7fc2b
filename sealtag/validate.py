"""Data validation checks for the harbor seal telemetry outputs.

Run after the pipeline to catch data quality issues before publishing.

Usage:
    python -m sealtag.validate
"""

from __future__ import annotations

import re
import sys
from pathlib import Path

import duckdb

from sealtag.config import OUTPUT_PREFIX, PROCESSED_DIR, TABLE_NAMES
from sealtag.readers import literal

passed = 0
failed = 0
warnings = 0

EXPECTED_COLUMNS: dict[str, list[str]] = {
    "tbl_locs": ["deploy_id", "date", "type", "latitude", "longitude", "location_source",
                 "deploy_dt", "end_dt", "age_class", "sex"],
    "tbl_percent": ["deploy_id", "date", "percent_dry", "deploy_dt", "end_dt", "age_class", "sex"],
    "tbl_behav_dive": ["deploy_id", "start", "end", "what", "duration_seconds", "window_index",
                       "window_active_proportion", "deploy_dt", "end_dt", "age_class", "sex"],
    "tbl_behav_surf": ["deploy_id", "start", "end", "what", "duration_seconds", "window_index",
                       "window_active_proportion", "deploy_dt", "end_dt", "age_class", "sex"],
}

_HEADER = re.compile(r"^[a-z][a-z0-9_]*$")


def _check(name: str, ok: bool, detail: str = "") -> None:
    global passed, failed
    if ok:
        passed += 1
        print(f"  PASS  {name}")
    else:
        failed += 1
        msg = f"  FAIL  {name}"
        if detail:
            msg += f" — {detail}"
        print(msg)


def _warn(name: str, detail: str) -> None:
    global warnings
    warnings += 1
    print(f"  WARN  {name} — {detail}")


def _csv(path: Path) -> str:
    return f"read_csv({literal(path)}, header=true)"


def validate(out_dir: Path | None = None, prefix: str = OUTPUT_PREFIX) -> int:
    """Run all validation checks. Returns number of failures."""
    global passed, failed, warnings
    passed = 0
    failed = 0
    warnings = 0

    out = Path(out_dir or PROCESSED_DIR)
    csv = {t: out / f"{prefix}_{t}.csv" for t in TABLE_NAMES}
    parquet = {t: out / f"{prefix}_{t}.parquet" for t in TABLE_NAMES}

    con = duckdb.connect()

    print("=" * 60)
    print("Data Validation — Harbor Seal Telemetry")
    print("=" * 60)

    # ── 1. File existence ──
    print("\n-- 1. File existence --")
    for t in TABLE_NAMES:
        _check(f"{csv[t].name} exists", csv[t].exists())
        _check(f"{parquet[t].name} exists", parquet[t].exists())

    present = [t for t in TABLE_NAMES if csv[t].exists() and parquet[t].exists()]

    # ── 2. Row counts ──
    print("\n-- 2. Row counts --")
    for t in present:
        n_csv = con.execute(f"SELECT count(*) FROM {_csv(csv[t])}").fetchone()[0]
        n_parquet = con.execute(f"SELECT count(*) FROM read_parquet({literal(parquet[t])})").fetchone()[0]
        _check(f"{t} has rows", n_csv > 0, f"got {n_csv:,} rows")
        _check(f"{t} csv/parquet row counts agree", n_csv == n_parquet,
               f"csv {n_csv:,} vs parquet {n_parquet:,}")

    # ── 3. Headers ──
    print("\n-- 3. Headers --")
    for t in present:
        cols = [r[0] for r in con.execute(f"DESCRIBE SELECT * FROM {_csv(csv[t])}").fetchall()]
        bad = [c for c in cols if not _HEADER.match(c)]
        _check(f"{t} headers are lower-case underscore", not bad, f"bad: {bad}")
        for col in EXPECTED_COLUMNS[t]:
            _check(f"{t} has column '{col}'", col in cols, f"columns: {cols}")

    # ── 4. Location keys ──
    print("\n-- 4. Location keys --")
    if "tbl_locs" in present:
        # a metadata-only row has a NULL date, one per deployment at most
        dupes = con.execute(f"""
            SELECT count(*) FROM (
                SELECT deploy_id, "date" FROM {_csv(csv['tbl_locs'])}
                GROUP BY ALL HAVING count(*) > 1
            )
        """).fetchone()[0]
        _check("tbl_locs (deploy_id, date) unique", dupes == 0, f"{dupes:,} duplicated keys")

    # ── 5. Percent range ──
    print("\n-- 5. Percent range --")
    if "tbl_percent" in present:
        out_of_range = con.execute(f"""
            SELECT count(*) FROM {_csv(csv['tbl_percent'])}
            WHERE TRY_CAST(percent_dry AS DOUBLE) NOT BETWEEN 0 AND 100
        """).fetchone()[0]
        _check("percent_dry within [0, 100]", out_of_range == 0, f"found {out_of_range:,}")

    # ── 6. Behavior windows ──
    print("\n-- 6. Behavior windows --")
    for t in ("tbl_behav_dive", "tbl_behav_surf"):
        if t not in present:
            continue
        neg = con.execute(f"""
            SELECT count(*) FROM {_csv(csv[t])}
            WHERE TRY_CAST(duration_seconds AS DOUBLE) < 0 OR TRY_CAST(window_index AS DOUBLE) < 0
        """).fetchone()[0]
        _check(f"{t} durations and window indices non-negative", neg == 0, f"found {neg:,}")

        over = con.execute(f"""
            SELECT count(*) FROM (
                SELECT DISTINCT deploy_id, window_index FROM {_csv(csv[t])}
                WHERE TRY_CAST(window_active_proportion AS DOUBLE) > 1
            )
        """).fetchone()[0]
        if over:
            _warn(f"{t} window_active_proportion", f"{over:,} window(s) above 1.0")

    # ── 7. Summary ──
    con.close()
    print("\n" + "=" * 60)
    print(f"Results: {passed} passed, {failed} failed, {warnings} warnings")
    print("=" * 60)

    return failed


def main() -> None:
    failures = validate()
    sys.exit(1 if failures > 0 else 0)


if __name__ == "__main__":
    main()
