"""Pydantic models for what a pipeline run reports back."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class SchemaFailure(BaseModel):
    tag: str
    deploy_ids: list[str] = Field(default_factory=list)
    file: str
    detail: str


class JoinReport(BaseModel):
    table: str
    rows_in: int
    rows_joined: int
    rows_out: int
    rows_filtered: int = 0
    gaps: list[str] = Field(default_factory=list)
    unmatched_metadata: list[str] = Field(default_factory=list)
    missing_bounds: list[str] = Field(default_factory=list)
    invalid_ranges: list[str] = Field(default_factory=list)


class RunReport(BaseModel):
    row_counts: dict[str, int] = Field(default_factory=dict)
    schema_failures: list[SchemaFailure] = Field(default_factory=list)
    out_of_range_windows: int = 0
    joins: dict[str, JoinReport] = Field(default_factory=dict)
    exported: list[Path] = Field(default_factory=list)
