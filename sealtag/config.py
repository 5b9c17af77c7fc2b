"""Default paths and per-run settings for the harbor seal telemetry pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

_ROOT = Path(__file__).resolve().parent.parent

RAW_DIR = _ROOT / "data" / "raw"
PROCESSED_DIR = _ROOT / "data" / "processed"
METADATA_PATH = _ROOT / "data" / "metadata" / "deployments.csv"
DB_PATH = _ROOT / "db" / "telemetry.duckdb"

OUTPUT_PREFIX = "akpv"

# Wildlife Computers exports stamp every event as "HH:MM:SS DD-Mon-YYYY" (UTC)
TIMESTAMP_FORMAT = "%H:%M:%S %d-%b-%Y"

# FastGPS location exports carry an extra "-1" segment in the file name
GPS_NAME_THRESHOLD = 20

WINDOW_SECONDS = 5 * 24 * 60 * 60

TABLE_NAMES = ("tbl_locs", "tbl_percent", "tbl_behav_dive", "tbl_behav_surf")


class PipelineConfig(BaseModel):
    """Everything one run needs. ``as_of`` closes open-ended deployments."""

    as_of: datetime
    raw_dir: Path = RAW_DIR
    out_dir: Path = PROCESSED_DIR
    metadata_source: Path = METADATA_PATH
    metadata_table: str = "deployments"
    db_path: Path | None = None
    prefix: str = OUTPUT_PREFIX
    gps_name_threshold: int = GPS_NAME_THRESHOLD
    window_seconds: int = Field(default=WINDOW_SECONDS, gt=0)
    strict: bool = False

    @field_validator("prefix")
    @classmethod
    def _prefix_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prefix must not be blank")
        return v.strip()

    @field_validator("as_of")
    @classmethod
    def _as_of_naive_utc(cls, v: datetime) -> datetime:
        # all pipeline timestamps are naive UTC
        if v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v
