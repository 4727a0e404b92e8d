"""Zones: named partitions of the corpus and where they live on disk.

Default corpus layout::

    <root>/
        scratch.md          scratchpad (single file)
        inbox/quick/        inbox
        inbox/voice/        inbox
        notes/              notes
        daily/              daily (one YYYY-MM-DD.md per day)
        maps/               maps
        archive/            archive

A :class:`ZoneLayout` maps each zone to one or more filesystem roots.  Callers
that keep notes elsewhere build the mapping themselves; everything downstream
only sees the layout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath


class Zone(str, Enum):
    SCRATCHPAD = "scratchpad"
    INBOX = "inbox"
    NOTES = "notes"
    DAILY = "daily"
    MAPS = "maps"
    ARCHIVE = "archive"

    @classmethod
    def parse(cls, value: "Zone | str") -> "Zone":
        if isinstance(value, Zone):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown zone: {value!r}") from None


@dataclass(frozen=True)
class ZoneConfig:
    searchable_by_default: bool
    requires_structure: bool
    is_transient: bool


ZONE_CONFIGS: dict[Zone, ZoneConfig] = {
    Zone.SCRATCHPAD: ZoneConfig(searchable_by_default=False, requires_structure=False, is_transient=True),
    Zone.INBOX: ZoneConfig(searchable_by_default=False, requires_structure=False, is_transient=True),
    Zone.NOTES: ZoneConfig(searchable_by_default=True, requires_structure=True, is_transient=False),
    Zone.DAILY: ZoneConfig(searchable_by_default=True, requires_structure=False, is_transient=False),
    Zone.MAPS: ZoneConfig(searchable_by_default=True, requires_structure=True, is_transient=False),
    Zone.ARCHIVE: ZoneConfig(searchable_by_default=False, requires_structure=False, is_transient=False),
}

SCRATCH_FILE = "scratch.md"


def default_search_zones() -> list[Zone]:
    return [zone for zone, cfg in ZONE_CONFIGS.items() if cfg.searchable_by_default]


def normalise_zones(zones: "list[Zone | str] | None") -> list[Zone] | None:
    if zones is None:
        return None
    return list(dict.fromkeys(Zone.parse(z) for z in zones))


@dataclass
class ZoneLayout:
    """Zone -> filesystem roots for one corpus."""

    root: Path
    roots: dict[Zone, list[Path]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        self.roots = {Zone.parse(z): [Path(p) for p in paths] for z, paths in self.roots.items()}

    @classmethod
    def from_root(cls, root: Path | str) -> "ZoneLayout":
        base = Path(root)
        return cls(
            root=base,
            roots={
                Zone.SCRATCHPAD: [base / SCRATCH_FILE],
                Zone.INBOX: [base / "inbox" / "quick", base / "inbox" / "voice"],
                Zone.NOTES: [base / "notes"],
                Zone.DAILY: [base / "daily"],
                Zone.MAPS: [base / "maps"],
                Zone.ARCHIVE: [base / "archive"],
            },
        )

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def zone_roots(self, zone: Zone | str) -> list[Path]:
        return list(self.roots.get(Zone.parse(zone), []))

    def relative_path(self, path: Path | str) -> str:
        """Root-relative, ``/``-separated key for *path*."""
        p = Path(path)
        if p.is_absolute():
            try:
                p = p.relative_to(self.root)
            except ValueError:
                pass
        return PurePosixPath(*p.parts).as_posix()

    def absolute_path(self, rel_path: str) -> Path:
        p = Path(rel_path)
        return p if p.is_absolute() else self.root / p

    def _prefixes(self, zone: Zone) -> list[str]:
        return [self.relative_path(r) for r in self.roots.get(zone, [])]

    def zone_for_path(self, rel_path: str) -> Zone | None:
        """Return the zone whose root contains *rel_path*, longest prefix first."""
        rel = self.relative_path(rel_path)
        best: tuple[int, Zone] | None = None
        for zone in self.roots:
            for prefix in self._prefixes(zone):
                if rel == prefix or rel.startswith(prefix.rstrip("/") + "/"):
                    if best is None or len(prefix) > best[0]:
                        best = (len(prefix), zone)
        return best[1] if best else None

    def in_zones(self, rel_path: str, zones: list[Zone]) -> bool:
        return self.zone_for_path(rel_path) in zones
