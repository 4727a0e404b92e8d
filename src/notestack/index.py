"""VaultIndex: persistent metadata index of every note in the corpus.

The index lives in one JSON file at the corpus root::

    {
      "version": 1,
      "lastUpdated": "2025-01-20T10:00:00+00:00",
      "notes": [{"path": "notes/alpha.md", "title": "Alpha", ..., "mtime": 1737367200.0}],
      "tags": {"python": 3},
      "skipped": ["notes/broken.md"]
    }

Each record carries the mtime of the file it was parsed from.  ``skipped``
lists the note files the last rebuild could not read, so a later process
does not mistake them for unindexed files.  The file is always written to a
temporary sibling first and then moved into place.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from notestack.errors import IndexCorruptError, NoteNotFoundError, NoteOperationError, ScanError
from notestack.note import IndexRecord, NoteMetadata, to_utc
from notestack.parser import NoteParser, parse_note
from notestack.related import link_key, note_keys
from notestack.zones import Zone, ZoneLayout, normalise_zones

logger = logging.getLogger(__name__)

INDEX_VERSION = 1
DEFAULT_INDEX_NAME = ".notestack-index.json"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class MetadataIndex:
    """In-memory form of the index file."""

    version: int = INDEX_VERSION
    last_updated: str = field(default_factory=_now_iso)
    notes: list[IndexRecord] = field(default_factory=list)
    tags: dict[str, int] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    _by_path: dict[str, IndexRecord] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._by_path = {r.path: r for r in self.notes}

    def find(self, path: str) -> IndexRecord | None:
        return self._by_path.get(path)

    def add(self, record: IndexRecord) -> None:
        self.remove(record.path)
        self.notes.append(record)
        self._by_path[record.path] = record
        for tag in record.meta.tags:
            self.tags[tag] = self.tags.get(tag, 0) + 1

    def remove(self, path: str) -> IndexRecord | None:
        record = self._by_path.pop(path, None)
        if record is None:
            return None
        self.notes.remove(record)
        for tag in record.meta.tags:
            remaining = self.tags.get(tag, 0) - 1
            if remaining > 0:
                self.tags[tag] = remaining
            else:
                self.tags.pop(tag, None)
        return record

    def recount_tags(self) -> None:
        counts: dict[str, int] = {}
        for record in self.notes:
            for tag in record.meta.tags:
                counts[tag] = counts.get(tag, 0) + 1
        self.tags = counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "notes": [r.to_dict() for r in self.notes],
            "tags": dict(self.tags),
            "skipped": sorted(self.skipped),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "MetadataIndex":
        if not isinstance(data, dict):
            raise IndexCorruptError("index root is not an object")
        if data.get("version") != INDEX_VERSION:
            raise IndexCorruptError(f"unsupported index version {data.get('version')!r}")
        try:
            records = [IndexRecord.from_dict(item) for item in data.get("notes") or []]
        except (KeyError, TypeError, ValueError) as exc:
            raise IndexCorruptError(f"invalid note record: {exc}") from exc
        skipped = data.get("skipped") or []
        if not isinstance(skipped, list) or not all(isinstance(p, str) for p in skipped):
            raise IndexCorruptError("skipped is not a list of paths")

        index = cls(
            version=INDEX_VERSION,
            last_updated=str(data.get("lastUpdated", "")),
            skipped=list(skipped),
        )
        for record in records:
            index.add(record)
        # Counts are always derived from the records so a hand-edited map cannot drift.
        index.recount_tags()
        return index


class VaultIndex:
    """Scans the configured zones and keeps the metadata index file current."""

    def __init__(
        self,
        layout: ZoneLayout,
        parser: NoteParser | None = None,
        *,
        index_name: str = DEFAULT_INDEX_NAME,
        fast_word_count: bool = False,
    ) -> None:
        self.layout = layout
        self.parser = parser or NoteParser()
        self.index_path = layout.root / index_name
        self.fast_word_count = fast_word_count
        self.data: MetadataIndex | None = None
        self.last_errors: list[ScanError] = []
        self._corrupt = False

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def load(self) -> MetadataIndex:
        """Return the index, reading it from disk on first use.

        A missing file yields an empty index.  An unreadable or malformed file
        is logged and also yields an empty index, flagged so that
        :meth:`is_stale` asks for a rebuild.
        """
        if self.data is not None:
            return self.data
        try:
            raw = self.index_path.read_text(encoding="utf-8")
            self.data = MetadataIndex.from_dict(json.loads(raw))
        except FileNotFoundError:
            self.data = MetadataIndex()
        except (OSError, ValueError, IndexCorruptError) as exc:
            logger.warning("Index %s is unusable, falling back to a rebuild: %s", self.index_path, exc)
            self.data = MetadataIndex()
            self._corrupt = True
        return self.data

    def _save(self) -> None:
        data = self.load()
        data.last_updated = _now_iso()
        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.index_path.with_name(self.index_path.name + ".tmp")
        tmp_path.write_text(json.dumps(data.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp_path, self.index_path)

    # ------------------------------------------------------------------
    # Filesystem walk
    # ------------------------------------------------------------------

    def _record_error(self, path: str, operation: str, exc: BaseException | str) -> None:
        logger.warning("[index] %s failed for %s: %s", operation, path, exc)
        self.last_errors.append(ScanError(path=path, operation=operation, message=str(exc)))

    def iter_note_files(self, zones: list[Zone] | None = None) -> Iterator[tuple[Zone, Path, str]]:
        """Yield ``(zone, absolute_path, relative_path)`` for every note file.

        Zones are walked in enum order, files in sorted order within a zone,
        and no relative path is yielded twice.
        """
        wanted = normalise_zones(zones) or list(Zone)
        extension = self.parser.note_extension
        seen: set[str] = set()
        for zone in Zone:
            if zone not in wanted:
                continue
            for root in self.layout.zone_roots(zone):
                if root.is_file():
                    files = [root]
                elif root.is_dir():
                    try:
                        files = sorted(p for p in root.rglob(f"*{extension}") if p.is_file())
                    except OSError as exc:
                        self._record_error(self.layout.relative_path(root), "scan", exc)
                        continue
                else:
                    continue
                for path in files:
                    rel = self.layout.relative_path(path)
                    if rel in seen or any(part.startswith(".") for part in Path(rel).parts):
                        continue
                    seen.add(rel)
                    yield zone, path, rel

    def _record_for(self, path: Path, rel: str) -> IndexRecord:
        note, stat = parse_note(path, rel, self.parser)
        size = stat.st_size if self.fast_word_count else None
        return IndexRecord(meta=self.parser.to_metadata(note, size), mtime=stat.st_mtime)

    # ------------------------------------------------------------------
    # Staleness / rebuild
    # ------------------------------------------------------------------

    def is_stale(self) -> bool:
        """True when the index no longer reflects the files on disk."""
        data = self.load()
        if self._corrupt:
            return True
        try:
            index_mtime: float | None = self.index_path.stat().st_mtime
        except FileNotFoundError:
            index_mtime = None

        on_disk: set[str] = set()
        for _zone, path, rel in self.iter_note_files():
            if index_mtime is None:
                return True
            try:
                if path.stat().st_mtime > index_mtime:
                    return True
            except OSError:
                continue
            on_disk.add(rel)

        indexed = {r.path for r in data.notes}
        return indexed != on_disk - set(data.skipped)

    def rebuild(self) -> MetadataIndex:
        """Re-parse every note in every zone and replace the index wholesale."""
        logger.info("[index] Rebuilding metadata index for %s", self.layout.root)
        self.last_errors = []
        fresh = MetadataIndex()
        skipped: list[str] = []
        for _zone, path, rel in self.iter_note_files():
            try:
                fresh.add(self._record_for(path, rel))
            except Exception as exc:  # noqa: BLE001
                # One bad file must not sink the whole rebuild
                skipped.append(rel)
                self._record_error(rel, "rebuild", exc)

        self.data = fresh
        self._corrupt = False
        fresh.skipped = skipped
        self._save()
        logger.info("[index] Rebuilt index with %d notes", len(fresh.notes))
        return fresh

    def ensure_fresh(self) -> bool:
        """Rebuild when stale; returns whether a rebuild happened."""
        if self.is_stale():
            logger.info("[index] Stale index detected, rebuilding")
            self.rebuild()
            return True
        return False

    # ------------------------------------------------------------------
    # Incremental maintenance
    # ------------------------------------------------------------------

    def update(self, path: str | Path) -> NoteMetadata:
        """Re-index one note after it changed on disk."""
        data = self.load()
        rel = self.layout.relative_path(path)
        if self.layout.zone_for_path(rel) is None:
            raise NoteOperationError("update", rel, "not in any zone")
        previous = data.remove(rel)
        try:
            record = self._record_for(self.layout.absolute_path(rel), rel)
        except FileNotFoundError:
            if previous is not None:
                self._save()
            raise NoteNotFoundError("update", rel) from None
        except Exception as exc:  # noqa: BLE001
            if previous is not None:
                data.add(previous)
            raise NoteOperationError("update", rel, str(exc)) from exc

        if previous is not None and previous.mtime > record.mtime:
            logger.debug("[index] Keeping newer record for %s", rel)
            record = previous
        data.add(record)
        if rel in data.skipped:
            data.skipped.remove(rel)
        self._save()
        return record.meta

    def invalidate(self, paths: list[str | Path]) -> int:
        """Drop the records for *paths*; returns how many were removed."""
        data = self.load()
        targets = {self.layout.relative_path(p) for p in paths}
        removed = sum(1 for rel in targets if data.remove(rel) is not None)
        unskipped = [p for p in data.skipped if p in targets]
        if unskipped:
            data.skipped = [p for p in data.skipped if p not in targets]
        if removed or unskipped:
            data.recount_tags()
            self._save()
        return removed

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def query(
        self,
        zones: list[Zone | str] | None = None,
        tags: list[str] | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
        match: str = "all",
    ) -> list[NoteMetadata]:
        """Filter records by zone, tag and created date; newest modification first."""
        if match not in ("all", "any"):
            raise ValueError(f"match must be 'all' or 'any', not {match!r}")
        records = list(self.load().notes)

        wanted = normalise_zones(zones)
        if wanted is not None:
            records = [r for r in records if self.layout.in_zones(r.path, wanted)]
        if tags:
            combine = all if match == "all" else any
            records = [r for r in records if combine(t in r.meta.tags for t in tags)]
        if date_from is not None:
            start = to_utc(date_from)
            records = [r for r in records if r.meta.created >= start]
        if date_to is not None:
            end = to_utc(date_to)
            records = [r for r in records if r.meta.created <= end]

        records.sort(key=lambda r: r.meta.modified, reverse=True)
        if limit is not None and limit > 0:
            records = records[:limit]
        return [r.meta for r in records]

    def get(self, path: str | Path) -> NoteMetadata | None:
        record = self.load().find(self.layout.relative_path(path))
        return record.meta if record else None

    def all_tags(self) -> dict[str, int]:
        return dict(self.load().tags)

    def stats(self) -> dict[str, Any]:
        data = self.load()
        return {
            "note_count": len(data.notes),
            "tag_count": len(data.tags),
            "last_updated": data.last_updated if self.index_path.exists() else "never",
            "is_stale": self.is_stale(),
        }

    def edges(self) -> list[tuple[str, str]]:
        """``(source_path, target_path)`` for every link that resolves to an indexed note."""
        lookup: dict[str, str] = {}
        for record in self.load().notes:
            for key in note_keys(record.path, record.meta.title, self.parser.note_extension):
                lookup.setdefault(key, record.path)

        result: list[tuple[str, str]] = []
        for record in self.load().notes:
            for link in record.meta.linked_notes:
                key = link_key(link, self.parser.note_extension)
                target = lookup.get(key) or lookup.get(Path(key).name)
                if target and (record.path, target) not in result:
                    result.append((record.path, target))
        return result

    def backlinks(self, path: str | Path) -> list[str]:
        """Paths of notes that link to *path*."""
        rel = self.layout.relative_path(path)
        return [src for src, tgt in self.edges() if tgt == rel and src != rel]
