"""Find the extracted per-deployment CSV exports and group them by deployment tag.

Archives are unpacked by a separate step; this module only looks at what
landed under the raw directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import NamedTuple

from sealtag.config import RAW_DIR

# ── Wildlife Computers export kinds → file-name suffix ──
RAW_SUFFIXES: dict[str, str] = {
    "locations": "-Locations.csv",
    "histos":    "-Histos.csv",
    "behavior":  "-Behavior.csv",
}


class RawFile(NamedTuple):
    kind: str
    path: Path
    ordinal: int  # position within all files of this kind, sorted by path

    @property
    def tag(self) -> str:
        return deployment_tag(self.path)


def deployment_tag(path: Path) -> str:
    """Basename prefix before the first '-': 135590-1-Locations.csv → 135590."""
    return Path(path).name.split("-", 1)[0]


def discover(raw_dir: Path | None = None) -> dict[str, list[RawFile]]:
    """Return raw files grouped by deployment tag, tags and files in sorted order."""
    root = Path(raw_dir or RAW_DIR)
    if not root.exists():
        print(f"  [warn] {root} not found, no raw files")
        return {}

    groups: dict[str, list[RawFile]] = {}
    for kind, suffix in RAW_SUFFIXES.items():
        paths = sorted(root.rglob(f"*{suffix}"))
        print(f"  [scan] {kind}: {len(paths):,} files")
        for i, path in enumerate(paths):
            f = RawFile(kind, path, i)
            groups.setdefault(f.tag, []).append(f)

    return {tag: groups[tag] for tag in sorted(groups)}
