"""SearchEngine: two-phase, early-terminating search over a zoned note corpus.

Phase 1 filters on index metadata only (zone, tags, created date).  Phase 2
either scores that metadata directly (no query) or loads the bodies of the
most promising candidates, best guess first, and stops as soon as it holds
``limit`` results that all clear :data:`~notestack.scoring.CONFIDENCE_THRESHOLD`
or has spent its budget of ``limit * 3`` loads.

Usage::

    engine = SearchEngine.from_config(VaultConfig.load("~/notes"))

    results = engine.search("widgets", tags=["design"], limit=10)

    for batch in engine.search_streaming("widgets", batch_size=5):
        render(batch.results)          # stop iterating to cancel

    engine.notify_changed("notes/widgets.md")   # after writing a note
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator

from notestack.actionables import ActionableIndex
from notestack.cache import ContentCache
from notestack.config import VaultConfig
from notestack.errors import NoteNotFoundError, NoteOperationError, ScanError
from notestack.index import VaultIndex
from notestack.note import Note, NoteMetadata, RelatedNote, SearchBatch, SearchResult
from notestack.parser import NoteParser, parse_note
from notestack.perf import PerfMonitor
from notestack.related import rank_related
from notestack.scoring import (
    CONFIDENCE_THRESHOLD,
    DEFAULT_WEIGHTS,
    ScoringWeights,
    contextual_excerpt,
    estimate_relevance,
    score_metadata,
    score_note,
    tag_matches,
    title_matches,
)
from notestack.zones import Zone, ZoneLayout, default_search_zones, normalise_zones

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, list[SearchResult]], None]

SORT_KEYS = ("created", "modified", "title")


def _by_score(results: list[SearchResult]) -> None:
    results.sort(key=lambda r: r.score, reverse=True)


class SearchEngine:
    """Query a corpus by tag, date range and free text."""

    def __init__(
        self,
        layout: ZoneLayout,
        parser: NoteParser | None = None,
        index: VaultIndex | None = None,
        cache: ContentCache | None = None,
        config: VaultConfig | None = None,
        perf: PerfMonitor | None = None,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.layout = layout
        self.config = config or VaultConfig(root=layout.root)
        self.parser = parser or NoteParser(
            tag_prefix=self.config.tag_prefix,
            actionable_marker=self.config.actionable_marker,
            note_extension=self.config.note_extension,
        )
        self.index = index or VaultIndex(
            layout,
            self.parser,
            index_name=self.config.index_name,
            fast_word_count=self.config.fast_word_count,
        )
        self.cache = cache if cache is not None else ContentCache()
        self.perf = perf or PerfMonitor(enabled=self.config.perf)
        self.weights = weights
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.last_errors: list[ScanError] = []

    @classmethod
    def from_config(cls, config: VaultConfig) -> "SearchEngine":
        return cls(ZoneLayout.from_root(config.root), config=config)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _record_error(self, path: str, operation: str, exc: BaseException | str) -> None:
        logger.warning("%s failed for %s: %s", operation, path, exc)
        self.last_errors.append(ScanError(path=path, operation=operation, message=str(exc)))

    def load_note(self, path: str, use_cache: bool = True) -> Note:
        """Parse the note at *path*, reusing the cached parse while its mtime is unchanged."""
        rel = self.layout.relative_path(path)
        abs_path = self.layout.absolute_path(rel)
        try:
            mtime = abs_path.stat().st_mtime
        except FileNotFoundError:
            self.cache.invalidate(rel)
            raise NoteNotFoundError("load", rel) from None
        except OSError as exc:
            raise NoteOperationError("load", rel, str(exc)) from exc

        if use_cache:
            cached = self.cache.get(rel, mtime)
            if cached is not None:
                return cached

        try:
            note, stat = parse_note(abs_path, rel, self.parser)
        except FileNotFoundError:
            self.cache.invalidate(rel)
            raise NoteNotFoundError("load", rel) from None
        except Exception as exc:  # noqa: BLE001
            raise NoteOperationError("load", rel, str(exc)) from exc
        self.cache.put(rel, note, stat.st_mtime)
        return note

    def load_notes(self, zones: list[Zone | str] | None = None) -> list[Note]:
        """Every readable note in *zones*; unreadable files are skipped and recorded."""
        wanted = normalise_zones(zones) or default_search_zones()
        start = len(self.index.last_errors)
        notes: list[Note] = []
        for _zone, _path, rel in self.index.iter_note_files(wanted):
            try:
                notes.append(self.load_note(rel))
            except NoteOperationError as exc:
                self._record_error(rel, "load", exc)
        self.last_errors.extend(self.index.last_errors[start:])
        return notes

    def clear_cache(self) -> None:
        self.cache.clear()

    # ------------------------------------------------------------------
    # Change notifications from writers
    # ------------------------------------------------------------------

    def notify_changed(self, path: str) -> NoteMetadata:
        """Call after creating or editing a note file."""
        rel = self.layout.relative_path(path)
        self.cache.invalidate(rel)
        return self.index.update(rel)

    def notify_removed(self, paths: Iterable[str]) -> int:
        """Call after deleting or moving note files."""
        rels = [self.layout.relative_path(p) for p in paths]
        for rel in rels:
            self.cache.invalidate(rel)
        return self.index.invalidate(rels)

    # ------------------------------------------------------------------
    # Phase 1: metadata
    # ------------------------------------------------------------------

    def _ensure_index(self) -> None:
        """Rebuild a stale index and surface the files the rebuild skipped."""
        if not self.index.is_stale():
            return
        logger.info("Stale index detected, rebuilding")
        try:
            with self.perf.timer("rebuild"):
                self.index.rebuild()
        except OSError as exc:
            # The rebuilt records stay usable in memory even if the file could not be written
            self._record_error(str(self.index.index_path), "rebuild", exc)
        self.last_errors.extend(self.index.last_errors)

    def scan_metadata(
        self,
        zones: list[Zone | str] | None = None,
        tags: list[str] | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[NoteMetadata]:
        """Zone, tag (all-of) and created-date filtering from the index alone."""
        self._ensure_index()
        return self.index.query(
            zones=normalise_zones(zones) or default_search_zones(),
            tags=tags,
            date_from=date_from,
            date_to=date_to,
        )

    # ------------------------------------------------------------------
    # Phase 2: scoring
    # ------------------------------------------------------------------

    def _metadata_result(self, meta: NoteMetadata, tags: list[str] | None, now: datetime) -> SearchResult:
        s = score_metadata(meta, self.layout.zone_for_path(meta.path), tags, now, self.weights)
        return SearchResult(note=meta, excerpt="", score=s.score, matched_tags=s.matched_tags)

    def rank_candidates(self, metadata: list[NoteMetadata], query: str, now: datetime) -> list[NoteMetadata]:
        """Order candidates for loading, most promising first.

        Notes whose title or tags contain *query* come first.  With
        ``config.body_fallback`` the rest follow as a second tier so that a
        match found only in a body can still be reached within the budget.
        """

        def estimate(meta: NoteMetadata) -> float:
            return estimate_relevance(meta, self.layout.zone_for_path(meta.path), query, now, self.weights)

        primary = [m for m in metadata if title_matches(m.title, query) or tag_matches(m.tags, query)]
        primary.sort(key=estimate, reverse=True)
        if not self.config.body_fallback:
            return primary
        chosen = {m.path for m in primary}
        secondary = [m for m in metadata if m.path not in chosen]
        secondary.sort(key=estimate, reverse=True)
        return primary + secondary

    def _score_candidate(
        self, meta: NoteMetadata, query: str, tags: list[str] | None, now: datetime
    ) -> SearchResult | None:
        try:
            note = self.load_note(meta.path)
        except NoteOperationError as exc:
            self._record_error(meta.path, "load", exc)
            return None
        s = score_note(note, self.layout.zone_for_path(note.path), query, tags, now, self.weights)
        if not s.query_matched:
            return None
        return SearchResult(
            note=self.parser.to_metadata(note),
            excerpt=contextual_excerpt(note.body, query),
            score=s.score,
            matched_tags=s.matched_tags,
        )

    def search(
        self,
        query: str | None = None,
        tags: list[str] | None = None,
        zones: list[Zone | str] | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
    ) -> list[SearchResult]:
        """Ranked results, best first, at most *limit* of them."""
        limit = limit or self.config.default_limit
        query = (query or "").strip() or None
        self.last_errors = []
        with self.perf.timer("search", query=query, limit=limit) as info:
            metadata = self.scan_metadata(zones, tags, date_from, date_to)
            now = self.clock()

            if query is None:
                results = [self._metadata_result(m, tags, now) for m in metadata]
                _by_score(results)
                info["candidates"] = len(metadata)
                return results[:limit]

            candidates = self.rank_candidates(metadata, query, now)
            budget = min(limit * 3, len(candidates))
            results: list[SearchResult] = []
            processed = 0
            for meta in candidates:
                if processed >= budget:
                    break
                processed += 1
                result = self._score_candidate(meta, query, tags, now)
                if result is None:
                    continue
                results.append(result)
                _by_score(results)
                if len(results) >= limit and results[limit - 1].score >= CONFIDENCE_THRESHOLD:
                    logger.debug("Early exit after %d of %d candidates", processed, len(candidates))
                    break

            info.update(candidates=len(candidates), processed=processed)
            return results[:limit]

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def search_streaming(
        self,
        query: str | None = None,
        tags: list[str] | None = None,
        zones: list[Zone | str] | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
        batch_size: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> Iterator[SearchBatch]:
        """Yield results in batches of *batch_size* as candidates are scored.

        Nothing is loaded ahead of the batch being built, so abandoning the
        iterator stops all further file access.  Across all batches at most
        *limit* results are yielded.
        """
        limit = limit or self.config.default_limit
        batch_size = batch_size or self.config.batch_size
        query = (query or "").strip() or None
        self.last_errors = []

        metadata = self.scan_metadata(zones, tags, date_from, date_to)
        now = self.clock()

        outcomes: Iterator[SearchResult | None]
        if query is None:
            scored = [self._metadata_result(m, tags, now) for m in metadata]
            _by_score(scored)
            outcomes = iter(scored)
            total = budget = len(scored)
        else:
            candidates = self.rank_candidates(metadata, query, now)
            outcomes = (self._score_candidate(m, query, tags, now) for m in candidates)
            total = len(candidates)
            budget = min(limit * 3, total)

        yield from self._batches(outcomes, total, budget, limit, batch_size, progress)

    def _batches(
        self,
        outcomes: Iterator[SearchResult | None],
        total: int,
        budget: int,
        limit: int,
        batch_size: int,
        progress: ProgressCallback | None,
    ) -> Iterator[SearchBatch]:
        found: list[SearchResult] = []
        pending: list[SearchResult] = []
        processed = 0
        batch_no = 0
        more_promised = False

        for outcome in outcomes:
            if processed >= budget:
                break
            processed += 1
            if outcome is not None:
                found.append(outcome)
                pending.append(outcome)
            if progress is not None:
                progress(processed, total, list(found))

            finished = len(found) >= limit or processed >= budget
            if len(pending) >= batch_size or (finished and pending):
                batch_no += 1
                more_promised = not finished and processed < total
                _by_score(pending)
                yield SearchBatch(batch_no, pending, more_promised, len(found), processed)
                pending = []
            if finished:
                break

        if pending or batch_no == 0 or more_promised:
            _by_score(pending)
            yield SearchBatch(batch_no + 1, pending, False, len(found), processed)

    def search_collected(self, query: str | None = None, **kwargs) -> list[SearchResult]:
        """Drain :meth:`search_streaming` and return the results best first."""
        limit = kwargs.get("limit") or self.config.default_limit
        results = [r for batch in self.search_streaming(query, **kwargs) for r in batch.results]
        _by_score(results)
        return results[:limit]

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_by_tags(
        self,
        tags: list[str],
        match: str = "any",
        sort_by: str = "modified",
        zones: list[Zone | str] | None = None,
    ) -> list[NoteMetadata]:
        if sort_by not in SORT_KEYS:
            raise ValueError(f"sort_by must be one of {', '.join(SORT_KEYS)}; got {sort_by!r}")
        self.last_errors = []
        self._ensure_index()
        notes = self.index.query(zones=normalise_zones(zones) or default_search_zones(), tags=tags, match=match)
        if sort_by == "created":
            notes.sort(key=lambda m: m.created, reverse=True)
        elif sort_by == "title":
            notes.sort(key=lambda m: m.title.lower())
        return notes

    def list_inbox(self, subzone: str | None = None) -> list[NoteMetadata]:
        """Inbox notes, oldest first; *subzone* picks the ``quick`` or ``voice`` root."""
        self.last_errors = []
        self._ensure_index()
        notes = self.index.query(zones=[Zone.INBOX])
        if subzone:
            prefixes = [
                self.layout.relative_path(root) + "/"
                for root in self.layout.zone_roots(Zone.INBOX)
                if root.name == subzone
            ]
            notes = [m for m in notes if any(m.path.startswith(p) for p in prefixes)]
        notes.sort(key=lambda m: m.created)
        return notes

    def all_tags(self, zones: list[Zone | str] | None = None) -> dict[str, int]:
        """Tag usage counts, most used first; across every zone unless *zones* is given."""
        self.last_errors = []
        self._ensure_index()
        if zones is None:
            counts = self.index.all_tags()
        else:
            counts = {}
            for meta in self.index.query(zones=normalise_zones(zones)):
                for tag in meta.tags:
                    counts[tag] = counts.get(tag, 0) + 1
        return dict(sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])))

    # ------------------------------------------------------------------
    # Actionables / related notes
    # ------------------------------------------------------------------

    def extract_actionables(
        self,
        zones: list[Zone | str] | None = None,
        status: str = "open",
        priority: str | None = None,
    ) -> ActionableIndex:
        """Actionable items from notes the index flags as having any."""
        self.last_errors = []
        candidates = [m for m in self.scan_metadata(zones) if m.has_actionables]
        items = []
        for meta in candidates:
            try:
                note = self.load_note(meta.path)
            except NoteOperationError as exc:
                self._record_error(meta.path, "load", exc)
                continue
            items.extend(self.parser.extract_actionables(note))
        return ActionableIndex(items).filter(status, priority)

    def find_related(
        self, path: str, max_results: int = 5, zones: list[Zone | str] | None = None
    ) -> list[RelatedNote]:
        """Notes linked to, sharing tags with, or titled like the note at *path*."""
        self.last_errors = []
        reference = self.load_note(path)
        return rank_related(reference, self.load_notes(zones), max_results)
