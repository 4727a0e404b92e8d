"""Fingerprint-keyed cache of fully parsed notes."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from notestack.note import Note

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    note: Note
    fingerprint: float


class ContentCache:
    """Parsed notes keyed by path, valid while the file fingerprint has not advanced.

    One instance belongs to one :class:`~notestack.search.SearchEngine`; pass a
    shared instance explicitly when two engines should reuse parses.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def get(self, path: str, fingerprint: float) -> Note | None:
        """Return the cached note unless *fingerprint* is newer than the cached one."""
        entry = self._entries.get(path)
        if entry is None:
            self.misses += 1
            return None
        if fingerprint > entry.fingerprint:
            logger.debug("Cache entry for %s is stale (%s > %s)", path, fingerprint, entry.fingerprint)
            del self._entries[path]
            self.misses += 1
            return None
        self.hits += 1
        return entry.note

    def put(self, path: str, note: Note, fingerprint: float) -> None:
        self._entries[path] = CacheEntry(note=note, fingerprint=fingerprint)

    def invalidate(self, path: str) -> bool:
        return self._entries.pop(path, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)
