"""Unit tests for notestack.index.VaultIndex."""

import json
import os
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from conftest import YESTERDAY, write_note
from notestack import index as index_module
from notestack.errors import IndexCorruptError, NoteNotFoundError, NoteOperationError
from notestack.index import INDEX_VERSION, MetadataIndex, VaultIndex
from notestack.zones import Zone, ZoneLayout


@pytest.fixture()
def index(layout: ZoneLayout) -> VaultIndex:
    idx = VaultIndex(layout)
    idx.rebuild()
    return idx


def _touch(path: Path, offset: float = 3600) -> None:
    stamp = time.time() + offset
    os.utime(path, (stamp, stamp))


@pytest.fixture()
def unreadable_gadgets(monkeypatch: pytest.MonkeyPatch) -> str:
    """Make notes/gadgets.md fail to read on every attempt."""
    real_parse_note = index_module.parse_note

    def parse_note(path, rel_path, parser=None):
        if rel_path == "notes/gadgets.md":
            raise PermissionError(13, "Permission denied", str(path))
        return real_parse_note(path, rel_path, parser)

    monkeypatch.setattr(index_module, "parse_note", parse_note)
    return "notes/gadgets.md"


# ---------------------------------------------------------------------------
# Load / persistence
# ---------------------------------------------------------------------------


class TestLoad:
    def test_brand_new_corpus_is_empty(self, tmp_path: Path):
        data = VaultIndex(ZoneLayout.from_root(tmp_path)).load().to_dict()
        assert data["version"] == 1
        assert data["notes"] == []
        assert data["tags"] == {}

    def test_rebuild_writes_index_file(self, index: VaultIndex):
        raw = json.loads(index.index_path.read_text(encoding="utf-8"))
        assert raw["version"] == INDEX_VERSION
        assert {"path", "title", "tags", "wordCount", "hasActionables", "mtime"} <= set(raw["notes"][0])
        assert not index.index_path.with_name(index.index_path.name + ".tmp").exists()

    def test_reload_from_disk(self, index: VaultIndex, layout: ZoneLayout):
        fresh = VaultIndex(layout)
        assert {r.path for r in fresh.load().notes} == {r.path for r in index.load().notes}
        assert fresh.all_tags() == index.all_tags()

    def test_corrupt_file_falls_back_and_is_stale(self, layout: ZoneLayout):
        idx = VaultIndex(layout)
        idx.index_path.write_text("{not json", encoding="utf-8")
        assert idx.load().notes == []
        assert idx.is_stale() is True

    def test_version_mismatch_is_corrupt(self):
        with pytest.raises(IndexCorruptError):
            MetadataIndex.from_dict({"version": 99, "notes": []})

    def test_tag_counts_are_derived_from_records(self, index: VaultIndex):
        raw = index.load().to_dict()
        raw["tags"] = {"design": 999}
        assert MetadataIndex.from_dict(raw).tags == index.load().tags


# ---------------------------------------------------------------------------
# Rebuild
# ---------------------------------------------------------------------------


class TestRebuild:
    def test_every_zone_is_indexed(self, index: VaultIndex):
        paths = {r.path for r in index.load().notes}
        assert paths == {
            "scratch.md",
            "inbox/quick/idea.md",
            "inbox/voice/memo.md",
            "notes/widgets.md",
            "notes/widgets-overview.md",
            "notes/gadgets.md",
            "daily/2025-01-19.md",
            "maps/design-map.md",
            "archive/old-widgets.md",
        }

    def test_rebuild_is_stable(self, index: VaultIndex):
        first = index.load().to_dict()
        second = index.rebuild().to_dict()
        first.pop("lastUpdated")
        second.pop("lastUpdated")
        assert first == second

    def test_tag_counts(self, index: VaultIndex):
        tags = index.all_tags()
        # widgets, widgets-overview, design-map, idea, old-widgets
        assert tags["design"] == 5
        assert tags["hardware"] == 1

    def test_hidden_files_are_skipped(self, corpus: Path, layout: ZoneLayout):
        write_note(corpus, "notes/.trash/gone.md", "# Gone\n")
        idx = VaultIndex(layout)
        idx.rebuild()
        assert idx.get("notes/.trash/gone.md") is None

    def test_directory_with_note_suffix_is_skipped(self, corpus: Path, layout: ZoneLayout):
        (corpus / "notes" / "broken.md").mkdir()
        (corpus / "notes" / "broken.md" / "inner.txt").write_text("x")
        write_note(corpus, "notes/ok.md", "# Ok\n")
        idx = VaultIndex(layout)
        idx.rebuild()
        assert idx.get("notes/ok.md") is not None

    def test_out_of_range_timestamp_is_still_indexed(self, corpus: Path, layout: ZoneLayout):
        write_note(corpus, "notes/far-future.md", "---\ncreated: 99999999999999\n---\n# Far Future\n")
        idx = VaultIndex(layout)
        idx.rebuild()
        assert idx.last_errors == []
        record = idx.load().find("notes/far-future.md")
        assert record is not None
        assert record.meta.title == "Far Future"
        assert record.meta.created <= datetime.now(timezone.utc)

    def test_unreadable_file_is_recorded_as_skipped(self, layout: ZoneLayout, unreadable_gadgets: str):
        idx = VaultIndex(layout)
        idx.rebuild()
        assert [e.path for e in idx.last_errors] == [unreadable_gadgets]
        assert idx.get(unreadable_gadgets) is None
        raw = json.loads(idx.index_path.read_text(encoding="utf-8"))
        assert raw["skipped"] == [unreadable_gadgets]


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------


class TestStaleness:
    def test_fresh_after_rebuild(self, index: VaultIndex):
        assert index.is_stale() is False
        assert index.ensure_fresh() is False

    def test_missing_index_is_stale(self, layout: ZoneLayout):
        assert VaultIndex(layout).is_stale() is True

    @pytest.mark.parametrize(
        "rel",
        ["notes/widgets.md", "daily/2025-01-19.md", "scratch.md", "inbox/voice/memo.md", "archive/old-widgets.md"],
    )
    def test_touching_any_file_makes_index_stale(self, index: VaultIndex, corpus: Path, rel: str):
        _touch(corpus / rel)
        assert index.is_stale() is True

    def test_new_file_makes_index_stale(self, index: VaultIndex, corpus: Path):
        write_note(corpus, "notes/new.md", "# New\n")
        assert index.is_stale() is True

    def test_deleted_file_makes_index_stale(self, index: VaultIndex, corpus: Path):
        (corpus / "notes" / "gadgets.md").unlink()
        assert index.is_stale() is True
        assert index.ensure_fresh() is True
        assert index.get("notes/gadgets.md") is None

    def test_skipped_file_does_not_keep_a_new_instance_stale(
        self, layout: ZoneLayout, corpus: Path, unreadable_gadgets: str
    ):
        VaultIndex(layout).rebuild()
        restarted = VaultIndex(layout)
        assert restarted.is_stale() is False
        assert restarted.ensure_fresh() is False
        _touch(corpus / unreadable_gadgets)
        assert VaultIndex(layout).is_stale() is True


# ---------------------------------------------------------------------------
# Incremental maintenance
# ---------------------------------------------------------------------------


class TestUpdateInvalidate:
    def test_update_reparses_one_note(self, index: VaultIndex, corpus: Path):
        write_note(corpus, "notes/gadgets.md", "---\ntitle: Gadgets\ntags: [hardware, tools]\n---\nNew body.\n")
        _touch(corpus / "notes" / "gadgets.md")
        meta = index.update("notes/gadgets.md")
        assert meta.tags == ["hardware", "tools"]
        assert index.all_tags()["tools"] == 1
        assert index.all_tags()["hardware"] == 1

    def test_update_accepts_absolute_path(self, index: VaultIndex, corpus: Path):
        meta = index.update(corpus / "notes" / "widgets.md")
        assert meta.path == "notes/widgets.md"

    def test_update_never_regresses_fingerprint(self, index: VaultIndex, corpus: Path):
        path = corpus / "notes" / "gadgets.md"
        before = index.load().find("notes/gadgets.md").mtime
        write_note(corpus, "notes/gadgets.md", "# Rewritten\n", mtime=YESTERDAY - 86400)
        meta = index.update("notes/gadgets.md")
        assert meta.title == "Gadgets"
        assert index.load().find("notes/gadgets.md").mtime == before
        assert path.exists()

    def test_update_missing_note_raises_and_drops_record(self, index: VaultIndex, corpus: Path):
        (corpus / "notes" / "gadgets.md").unlink()
        with pytest.raises(NoteNotFoundError) as excinfo:
            index.update("notes/gadgets.md")
        assert excinfo.value.to_dict() == {
            "operation": "update",
            "path": "notes/gadgets.md",
            "message": "note not found",
        }
        assert index.get("notes/gadgets.md") is None
        assert "hardware" not in index.all_tags()

    def test_delete_and_invalidate_only_drops_that_notes_tags(self, index: VaultIndex, corpus: Path):
        before = index.all_tags()
        (corpus / "notes" / "widgets-overview.md").unlink()
        assert index.invalidate(["notes/widgets-overview.md"]) == 1
        after = index.all_tags()
        assert "overview" not in after
        assert after["design"] == before["design"] - 1
        assert {k: v for k, v in after.items() if k != "design"} == {
            k: v for k, v in before.items() if k not in ("design", "overview")
        }

    def test_invalidate_unknown_path(self, index: VaultIndex):
        assert index.invalidate(["notes/nope.md"]) == 0

    def test_update_outside_every_zone_raises(self, index: VaultIndex, corpus: Path):
        write_note(corpus, "README.md", "# Readme\n")
        with pytest.raises(NoteOperationError) as excinfo:
            index.update("README.md")
        assert excinfo.value.to_dict() == {
            "operation": "update",
            "path": "README.md",
            "message": "not in any zone",
        }
        assert index.get("README.md") is None
        assert index.is_stale() is False

    def test_update_clears_skipped_entry(
        self, layout: ZoneLayout, monkeypatch: pytest.MonkeyPatch, unreadable_gadgets: str
    ):
        idx = VaultIndex(layout)
        idx.rebuild()
        assert idx.load().skipped == [unreadable_gadgets]
        monkeypatch.undo()

        assert idx.update(unreadable_gadgets).title == "Gadgets"
        assert VaultIndex(layout).load().skipped == []


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class TestQuery:
    def test_zone_filter(self, index: VaultIndex):
        paths = {m.path for m in index.query(zones=[Zone.INBOX])}
        assert paths == {"inbox/quick/idea.md", "inbox/voice/memo.md"}

    def test_zone_names_accepted(self, index: VaultIndex):
        assert [m.path for m in index.query(zones=["maps"])] == ["maps/design-map.md"]

    def test_all_of_is_superset(self, index: VaultIndex):
        wanted = {"design", "overview"}
        got = {m.path for m in index.query(tags=sorted(wanted))}
        expected = {r.path for r in index.load().notes if wanted <= set(r.meta.tags)}
        assert got == expected == {"notes/widgets-overview.md"}

    def test_any_of_is_union(self, index: VaultIndex):
        wanted = ["hardware", "legacy"]
        got = {m.path for m in index.query(tags=wanted, match="any")}
        expected = {r.path for r in index.load().notes if set(wanted) & set(r.meta.tags)}
        assert got == expected == {"notes/gadgets.md", "archive/old-widgets.md"}

    def test_bad_match_mode(self, index: VaultIndex):
        with pytest.raises(ValueError):
            index.query(match="some")

    def test_created_date_range(self, index: VaultIndex, corpus: Path):
        write_note(corpus, "notes/dated.md", "---\ncreated: 2020-05-01\n---\nOld.\n")
        index.rebuild()
        start = datetime(2020, 1, 1, tzinfo=timezone.utc)
        end = datetime(2020, 12, 31, tzinfo=timezone.utc)
        assert [m.path for m in index.query(date_from=start, date_to=end)] == ["notes/dated.md"]

    def test_newest_first_and_limit(self, index: VaultIndex):
        results = index.query(zones=[Zone.INBOX], limit=1)
        assert [m.path for m in results] == ["inbox/quick/idea.md"]


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------


class TestBacklinks:
    def test_backlinks(self, index: VaultIndex):
        assert set(index.backlinks("notes/widgets.md")) == {"notes/widgets-overview.md", "maps/design-map.md"}

    def test_no_duplicate_edges(self, index: VaultIndex):
        edges = index.edges()
        assert len(edges) == len(set(edges))

    def test_stats(self, index: VaultIndex):
        stats = index.stats()
        assert stats["note_count"] == 9
        assert stats["is_stale"] is False
