"""Orchestrator: discover → read → transform → join → export → validate.

Usage:
    python -m sealtag.build --as-of 2018-01-01 [--raw-dir DIR] [--metadata FILE]
"""

from __future__ import annotations

import argparse
import sys
import time
from functools import partial

import duckdb
from pydantic import ValidationError

from sealtag.behavior import out_of_range_windows, split_by_type, window_behavior
from sealtag.config import TABLE_NAMES, PipelineConfig
from sealtag.errors import PipelineError, SchemaError
from sealtag.export import export_all
from sealtag.ingest import RAW_SUFFIXES, discover
from sealtag.locations import Classifier, classify_by_name_length, reconcile_locations
from sealtag.metadata import join_metadata, load_metadata
from sealtag.models import RunReport, SchemaFailure
from sealtag.percent import reshape_percent
from sealtag.readers import combine, load_deployment
from sealtag.validate import validate


def connect(config: PipelineConfig) -> duckdb.DuckDBPyConnection:
    if config.db_path is None:
        con = duckdb.connect()
    else:
        config.db_path.parent.mkdir(parents=True, exist_ok=True)
        con = duckdb.connect(str(config.db_path))
    # raw timestamps are UTC; keep timestamptz casts from shifting them
    con.execute("SET TimeZone = 'UTC'")
    return con


def run(config: PipelineConfig, classify: Classifier | None = None) -> RunReport:
    """Run the batch once and export the four tidy tables."""
    classify = classify or partial(classify_by_name_length, threshold=config.gps_name_threshold)
    report = RunReport()
    con = connect(config)
    try:
        print("\n── Step 1: Discover ──")
        groups = discover(config.raw_dir)
        load_metadata(con, config.metadata_source, config.metadata_table)
        print(f"  {len(groups):,} deployment tags found")

        print("\n── Step 2: Read ──")
        loaded: dict[str, list[tuple[int, str]]] = {kind: [] for kind in RAW_SUFFIXES}
        for tag, files in groups.items():
            try:
                tables = load_deployment(con, files)
            except SchemaError as exc:
                if config.strict:
                    raise
                print(f"  [error] {exc} — skipping deployment {tag}")
                report.schema_failures.append(
                    SchemaFailure(tag=tag, deploy_ids=exc.deploy_ids,
                                  file=exc.path.name, detail=exc.detail)
                )
                continue
            for f, table in zip(files, tables):
                loaded[f.kind].append((f.ordinal, table))

        raw = {
            kind: combine(con, kind, [t for _, t in sorted(tables)], f"raw_{kind}")
            for kind, tables in loaded.items()
        }

        print("\n── Step 3: Transform ──")
        locs = reconcile_locations(con, raw["locations"], classify=classify)
        percent = reshape_percent(con, raw["histos"])
        behavior = window_behavior(con, raw["behavior"], window_seconds=config.window_seconds)
        report.out_of_range_windows = out_of_range_windows(con, behavior)
        if report.out_of_range_windows:
            print(f"  [warn] {report.out_of_range_windows:,} behavior window(s) "
                  f"with active proportion above 1.0")
        by_type = split_by_type(con, behavior)

        print("\n── Step 4: Join metadata ──")
        joins = [
            ("tbl_locs", locs, "date", None),
            ("tbl_percent", percent, "date", None),
            ("tbl_behav_dive", by_type["Dive"], "start", config.as_of),
            ("tbl_behav_surf", by_type["Surface"], "start", config.as_of),
        ]
        for name, source, ts_col, as_of in joins:
            report.joins[name] = join_metadata(con, source, name, ts_col, as_of=as_of)
            report.row_counts[name] = report.joins[name].rows_out

        print("\n── Step 5: Export ──")
        report.exported = export_all(con, list(TABLE_NAMES), config.out_dir, config.prefix)
    finally:
        con.close()

    return report


def _parser() -> argparse.ArgumentParser:
    defaults = PipelineConfig.model_fields
    p = argparse.ArgumentParser(description="Harbor seal telemetry tidy-data pipeline")
    p.add_argument("--as-of", required=True,
                   help="timestamp used as the end date of open-ended deployments")
    p.add_argument("--raw-dir", default=defaults["raw_dir"].default)
    p.add_argument("--metadata", default=defaults["metadata_source"].default,
                   help="deployment metadata (.csv, .parquet or .duckdb)")
    p.add_argument("--metadata-table", default=defaults["metadata_table"].default)
    p.add_argument("--out-dir", default=defaults["out_dir"].default)
    p.add_argument("--db", default=None, help="keep intermediate tables in this DuckDB file")
    p.add_argument("--prefix", default=defaults["prefix"].default)
    p.add_argument("--strict", action="store_true",
                   help="abort on the first schema violation instead of skipping the deployment")
    return p


def main(argv: list[str] | None = None) -> None:
    args = _parser().parse_args(argv)
    try:
        config = PipelineConfig(
            as_of=args.as_of,
            raw_dir=args.raw_dir,
            out_dir=args.out_dir,
            metadata_source=args.metadata,
            metadata_table=args.metadata_table,
            db_path=args.db,
            prefix=args.prefix,
            strict=args.strict,
        )
    except ValidationError as e:
        print(f"Invalid arguments:\n{e}")
        sys.exit(2)

    t0 = time.time()

    print("=" * 60)
    print("Harbor Seal Telemetry Pipeline")
    print("=" * 60)

    try:
        report = run(config)
    except PipelineError as e:
        print(f"\n  [error] {e}")
        sys.exit(1)

    print("\n── Step 6: Validate ──")
    failures = validate(config.out_dir, config.prefix)

    elapsed = time.time() - t0
    print(f"\nPipeline complete in {elapsed:.1f}s")

    if report.schema_failures:
        print(f"\n⚠ {len(report.schema_failures)} deployment(s) skipped for schema errors:")
        for f in report.schema_failures:
            print(f"  {', '.join(f.deploy_ids) or f.tag}: {f.file} — {f.detail}")
    if failures > 0:
        print(f"\n⚠ {failures} validation check(s) failed")
    if failures > 0 or report.schema_failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
