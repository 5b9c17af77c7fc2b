"""Exceptions raised by the pipeline stages."""

from __future__ import annotations

from pathlib import Path


class PipelineError(Exception):
    """Base class for every error the pipeline raises on purpose."""


class SchemaError(PipelineError):
    """A raw file does not match its declared schema."""

    def __init__(
        self,
        path: Path,
        detail: str,
        tag: str | None = None,
        deploy_ids: list[str] | None = None,
    ) -> None:
        self.path = Path(path)
        self.detail = detail
        self.tag = tag
        self.deploy_ids = deploy_ids or []
        where = self.path.name
        if self.deploy_ids:
            where += f" (deployment {', '.join(self.deploy_ids)})"
        super().__init__(f"{where}: {detail}")


class NegativeDurationError(PipelineError):
    """Behavior events whose end precedes their start."""

    def __init__(self, events: list[tuple[str, object, object]]) -> None:
        self.events = events
        shown = "; ".join(f"{d} start={s} end={e}" for d, s, e in events[:5])
        more = f" (+{len(events) - 5} more)" if len(events) > 5 else ""
        super().__init__(f"{len(events)} behavior event(s) with negative duration: {shown}{more}")


class MetadataError(PipelineError):
    """The deployment metadata source is missing or unusable."""
