"""Shared fixtures: small Wildlife Computers-style CSV exports written into tmp_path."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import duckdb
import pytest

from sealtag.ingest import RawFile
from sealtag.readers import read_files

T0 = datetime(2015, 1, 1)

LOCATIONS_HEADER = [
    "DeployID", "Ptt", "Instr", "Date", "Type", "Quality", "Latitude", "Longitude",
    "Error radius", "Error Semi-major axis", "Error Semi-minor axis",
    "Error Ellipse orientation", "Offset", "Offset orientation", "GPE MSD", "GPE U",
    "Count", "Comment",
]
HISTOS_HEADER = [
    "DeployID", "Ptt", "DepthSensor", "Source", "Instr", "HistType", "Date",
    "Time Offset", "Count", "BadTherm", "LocationQuality", "Latitude", "Longitude",
    "NumBins", "Sum", *[f"Bin{i}" for i in range(1, 73)],
]
BEHAVIOR_HEADER = [
    "DeployID", "Ptt", "DepthSensor", "Source", "Instr", "Count", "Start", "End",
    "What", "Number", "Shape", "DepthMin", "DepthMax", "DurationMin", "DurationMax",
    "Shallow", "Deep",
]


def wc(ts: datetime) -> str:
    """Format a timestamp the way the tag exports do."""
    return ts.strftime("%H:%M:%S %d-%b-%Y")


def _write(path: Path, header: list[str], rows: list[list[str]]) -> Path:
    lines = [",".join(header)] + [",".join(r) for r in rows]
    path.write_text("\n".join(lines) + "\n")
    return path


def write_locations(path: Path, rows: list[tuple]) -> Path:
    """rows: (deploy_id, timestamp, type, latitude, longitude)."""
    out = []
    for deploy_id, ts, kind, lat, lon in rows:
        stamp = wc(ts) if isinstance(ts, datetime) else ts
        out.append([deploy_id, "135590", "Mk10", stamp, kind, "", str(lat), str(lon)] + [""] * 10)
    return _write(path, LOCATIONS_HEADER, out)


def write_histos(path: Path, rows: list[tuple]) -> Path:
    """rows: (deploy_id, hist_type, timestamp, bins) with bins 1..N (None = empty)."""
    out = []
    for deploy_id, hist_type, ts, bins in rows:
        cells = ["" if b is None else str(b) for b in bins]
        cells += [""] * (72 - len(cells))
        out.append([deploy_id, "135590", "", "Transmission", "Mk10", hist_type, wc(ts)]
                   + [""] * 8 + cells)
    return _write(path, HISTOS_HEADER, out)


def write_behavior(path: Path, rows: list[tuple]) -> Path:
    """rows: (deploy_id, start, end, what)."""
    out = []
    for deploy_id, start, end, what in rows:
        s = wc(start) if isinstance(start, datetime) else start
        e = wc(end) if isinstance(end, datetime) else end
        out.append([deploy_id, "135590", "", "Transmission", "Mk10", "1", s, e, what] + [""] * 8)
    return _write(path, BEHAVIOR_HEADER, out)


def write_metadata(path: Path, rows: list[tuple], header: str = "deploy_id,deploy_dt,end_dt,age_class,sex") -> Path:
    """rows: (deploy_id, deploy_dt, end_dt, age_class, sex); None = empty cell."""
    lines = [header] + [",".join("" if v is None else str(v) for v in r) for r in rows]
    path.write_text("\n".join(lines) + "\n")
    return path


def load(con: duckdb.DuckDBPyConnection, kind: str, paths: list[Path], name: str | None = None) -> str:
    files = [RawFile(kind, p, i) for i, p in enumerate(sorted(paths))]
    return read_files(con, kind, files, name or f"raw_{kind}")


def seconds(n: int) -> timedelta:
    return timedelta(seconds=n)


@pytest.fixture
def con():
    c = duckdb.connect()
    c.execute("SET TimeZone = 'UTC'")
    yield c
    c.close()
