"""Tests for CSV/parquet export."""

from __future__ import annotations

import pytest

from sealtag.export import export_table


@pytest.fixture
def tbl_locs(con):
    con.execute("""
        CREATE TABLE tbl_locs AS
        SELECT * FROM (VALUES
            ('B', TIMESTAMP '2015-01-02 00:00:00', 51.5::DOUBLE, 'b.csv', 1),
            ('A', TIMESTAMP '2015-01-03 12:30:00', 52.25::DOUBLE, 'a.csv', 0),
            ('A', TIMESTAMP '2015-01-01 00:00:00', NULL::DOUBLE, 'a.csv', 0),
            ('C', NULL, NULL, NULL, NULL)
        ) t(deploy_id, "date", latitude, _source_file, _file_ord)
    """)
    return "tbl_locs"


class TestExportTable:
    def test_writes_csv_and_parquet(self, con, tmp_path, tbl_locs):
        paths = export_table(con, tbl_locs, tmp_path, "akpv")
        assert [p.name for p in paths] == ["akpv_tbl_locs.csv", "akpv_tbl_locs.parquet"]
        count = con.execute(f"SELECT count(*) FROM read_parquet('{paths[1]}')").fetchone()[0]
        assert count == 4

    def test_header_order_and_hidden_columns(self, con, tmp_path, tbl_locs):
        csv_path, _ = export_table(con, tbl_locs, tmp_path, "akpv")
        lines = csv_path.read_text().splitlines()
        assert lines[0] == "deploy_id,date,latitude"
        assert lines[1] == "A,2015-01-01 00:00:00,"
        assert lines[2] == "A,2015-01-03 12:30:00,52.25"
        assert lines[3] == "B,2015-01-02 00:00:00,51.5"
        assert lines[4] == "C,,"

    def test_export_is_byte_identical(self, con, tmp_path, tbl_locs):
        first, _ = export_table(con, tbl_locs, tmp_path / "one", "akpv")
        second, _ = export_table(con, tbl_locs, tmp_path / "two", "akpv")
        assert first.read_bytes() == second.read_bytes()
