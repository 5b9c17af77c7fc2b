"""End-to-end runs of the pipeline on a small raw directory."""

from __future__ import annotations

from datetime import datetime, timedelta

import duckdb
import pytest

from conftest import T0, seconds, write_behavior, write_histos, write_locations, write_metadata
from sealtag.build import main, run
from sealtag.config import PipelineConfig
from sealtag.errors import SchemaError
from sealtag.ingest import deployment_tag, discover
from sealtag.validate import validate

AS_OF = datetime(2018, 1, 1)


@pytest.fixture
def raw_dir(tmp_path):
    raw = tmp_path / "raw"
    (raw / "135590").mkdir(parents=True)
    (raw / "135591").mkdir(parents=True)

    write_locations(raw / "135590" / "135590-Locations.csv", [
        ("PV2015_A", T0 + seconds(7200), "2", 52.0, -174.0),
    ])
    write_locations(raw / "135590" / "135590-1-Locations.csv", [
        ("PV2015_A", T0 + seconds(3600), "FastGPS", 52.01, -174.01),
        ("PV2015_A", T0 + seconds(3600), "FastGPS", 52.02, -174.02),
    ])
    write_histos(raw / "135590" / "135590-Histos.csv", [
        ("PV2015_A", "Percent", T0, [50] * 24),
    ])
    write_behavior(raw / "135590" / "135590-Behavior.csv", [
        ("PV2015_A", T0, T0 + seconds(300), "Dive"),
        ("PV2015_A", T0 + seconds(300), T0 + seconds(400), "Surface"),
        ("PV2015_A", T0 + seconds(400), T0 + seconds(400), "Message"),
    ])

    write_locations(raw / "135591" / "135591-Locations.csv", [
        ("PV2015_B", T0 + timedelta(days=2), "3", 51.0, -175.0),
    ])
    write_behavior(raw / "135591" / "135591-Behavior.csv", [
        ("PV2015_B", T0 + timedelta(days=2), T0 + timedelta(days=2, seconds=120), "Dive"),
    ])
    return raw


@pytest.fixture
def config(tmp_path, raw_dir):
    meta = write_metadata(tmp_path / "deployments.csv", [
        ("PV2015_A", "2014-12-31", "2015-03-01", "Adult", "F"),
        ("PV2015_B", "2015-01-01", None, "Subadult", "M"),
    ])
    return PipelineConfig(
        as_of=AS_OF,
        raw_dir=raw_dir,
        out_dir=tmp_path / "processed",
        metadata_source=meta,
    )


class TestDiscover:
    def test_groups_by_tag(self, raw_dir):
        groups = discover(raw_dir)
        assert list(groups) == ["135590", "135591"]
        assert sorted(f.kind for f in groups["135590"]) == ["behavior", "histos", "locations", "locations"]

    def test_tag_from_name(self):
        assert deployment_tag("135590-1-Locations.csv") == "135590"

    def test_missing_dir(self, tmp_path):
        assert discover(tmp_path / "missing") == {}


class TestRun:
    def test_full_run(self, config):
        report = run(config)

        assert report.schema_failures == []
        assert len(report.exported) == 8
        assert all(p.exists() for p in report.exported)
        assert report.row_counts == {
            "tbl_locs": 3,
            "tbl_percent": 25,
            "tbl_behav_dive": 2,
            "tbl_behav_surf": 2,
        }

        con = duckdb.connect()
        locs = config.out_dir / "akpv_tbl_locs.csv"
        rows = con.execute(f"""
            SELECT deploy_id, "date", location_source FROM read_csv('{locs}', header=true)
            ORDER BY deploy_id, "date"
        """).fetchall()
        assert [r[2] for r in rows] == ["FastGPS", "FastGPS", "Argos"]
        assert rows[1][1] - rows[0][1] == timedelta(seconds=1)

        surf = config.out_dir / "akpv_tbl_behav_surf.csv"
        end_dt = con.execute(f"""
            SELECT end_dt FROM read_csv('{surf}', header=true) WHERE deploy_id = 'PV2015_B'
        """).fetchone()[0]
        assert end_dt == AS_OF
        con.close()

        assert validate(config.out_dir, config.prefix) == 0

    def test_validation_catches_duplicate_null_dates(self, config, capsys):
        run(config)
        locs = config.out_dir / "akpv_tbl_locs.csv"
        width = len(locs.read_text().splitlines()[0].split(","))
        with locs.open("a") as fh:
            fh.write("PV2015_X" + "," * (width - 1) + "\n")
            fh.write("PV2015_X" + "," * (width - 1) + "\n")
        capsys.readouterr()
        assert validate(config.out_dir, config.prefix) > 0
        assert "FAIL  tbl_locs (deploy_id, date) unique" in capsys.readouterr().out

    def test_rerun_is_byte_identical(self, config, tmp_path):
        run(config)
        first = {p.name: p.read_bytes() for p in config.out_dir.glob("*.csv")}
        rerun = config.model_copy(update={"out_dir": tmp_path / "again"})
        run(rerun)
        second = {p.name: p.read_bytes() for p in rerun.out_dir.glob("*.csv")}
        assert first == second

    def test_schema_error_skips_deployment(self, config, raw_dir):
        write_behavior(raw_dir / "135591" / "135591-Behavior.csv", [
            ("PV2015_B", "yesterday", "today", "Dive"),
        ])
        report = run(config)
        failures = [(f.tag, f.deploy_ids, f.file) for f in report.schema_failures]
        assert failures == [("135591", ["PV2015_B"], "135591-Behavior.csv")]
        # the deployment's locations are skipped too; only its metadata row is left
        assert report.joins["tbl_locs"].unmatched_metadata == ["PV2015_B"]

    def test_strict_reraises(self, config, raw_dir):
        write_behavior(raw_dir / "135591" / "135591-Behavior.csv", [
            ("PV2015_B", "yesterday", "today", "Dive"),
        ])
        with pytest.raises(SchemaError):
            run(config.model_copy(update={"strict": True}))

    def test_persistent_database(self, config, tmp_path):
        db = tmp_path / "db" / "telemetry.duckdb"
        run(config.model_copy(update={"db_path": db}))
        con = duckdb.connect(str(db), read_only=True)
        tables = {r[0] for r in con.execute("SELECT table_name FROM duckdb_tables()").fetchall()}
        con.close()
        assert {"tbl_locs", "tbl_percent", "tbl_behav_dive", "tbl_behav_surf"} <= tables


class TestConfig:
    def test_bad_window_rejected(self):
        with pytest.raises(ValueError):
            PipelineConfig(as_of=AS_OF, window_seconds=0)

    def test_blank_prefix_rejected(self):
        with pytest.raises(ValueError):
            PipelineConfig(as_of=AS_OF, prefix="  ")

    def test_bad_as_of_exits(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--as-of", "not-a-date"])
        assert exc.value.code == 2
