"""Unit tests for SearchEngine.search_streaming / search_collected."""

import pytest

from notestack.search import SearchEngine

# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------


class TestBatches:
    def test_batches_numbered_from_one(self, engine: SearchEngine):
        batches = list(engine.search_streaming(limit=3, batch_size=2))
        assert [b.batch for b in batches] == [1, 2]
        assert [len(b.results) for b in batches] == [2, 1]
        assert [b.has_more for b in batches] == [True, False]
        assert [b.total_found for b in batches] == [2, 3]
        assert [b.total_processed for b in batches] == [2, 3]

    def test_no_query_batches_have_no_excerpts(self, engine: SearchEngine):
        for batch in engine.search_streaming(batch_size=2):
            assert all(r.excerpt == "" for r in batch.results)
        assert len(engine.cache) == 0

    def test_query_batches(self, engine: SearchEngine):
        batches = list(engine.search_streaming("widgets", batch_size=2))
        assert [len(b.results) for b in batches] == [2, 1]
        assert [b.has_more for b in batches] == [True, False]
        assert [r.note.path for r in batches[0].results] == ["notes/widgets.md", "notes/widgets-overview.md"]
        assert batches[1].results[0].note.path == "maps/design-map.md"

    def test_empty_final_batch_closes_a_promise(self, engine: SearchEngine):
        batches = list(engine.search_streaming("widgets", batch_size=3))
        assert [len(b.results) for b in batches] == [3, 0]
        assert batches[0].has_more is True
        last = batches[-1]
        assert (last.batch, last.has_more, last.total_found, last.total_processed) == (2, False, 3, 5)

    def test_nothing_found_yields_one_empty_batch(self, engine: SearchEngine):
        batches = list(engine.search_streaming("zzz-nothing", batch_size=2))
        assert len(batches) == 1
        batch = batches[0]
        assert (batch.batch, batch.results, batch.has_more) == (1, [], False)
        assert (batch.total_found, batch.total_processed) == (0, 5)

    @pytest.mark.parametrize("limit", [1, 2, 3, 4, 7])
    @pytest.mark.parametrize("batch_size", [1, 2, 3])
    @pytest.mark.parametrize("query", [None, "widgets", "design"])
    def test_never_more_than_limit(self, engine: SearchEngine, query, limit, batch_size):
        batches = list(engine.search_streaming(query, limit=limit, batch_size=batch_size))
        assert sum(len(b.results) for b in batches) <= limit
        assert batches[-1].has_more is False


# ---------------------------------------------------------------------------
# Progress and cancellation
# ---------------------------------------------------------------------------


class TestProgress:
    def test_called_once_per_candidate(self, engine: SearchEngine):
        calls = []
        list(engine.search_streaming("widgets", progress=lambda p, t, r: calls.append((p, t, len(r)))))
        assert [c[0] for c in calls] == [1, 2, 3, 4, 5]
        assert {c[1] for c in calls} == {5}
        assert calls[-1][2] == 3

    def test_abandoning_the_stream_stops_loading(self, engine: SearchEngine):
        stream = engine.search_streaming("widgets", batch_size=1)
        first = next(stream)
        stream.close()
        assert [r.note.path for r in first.results] == ["notes/widgets.md"]
        assert len(engine.cache) == 1


# ---------------------------------------------------------------------------
# search_collected
# ---------------------------------------------------------------------------


class TestCollected:
    def test_matches_one_shot_search(self, engine: SearchEngine):
        collected = [r.note.path for r in engine.search_collected("widgets")]
        assert collected == [r.note.path for r in engine.search("widgets")]

    def test_respects_limit(self, engine: SearchEngine):
        assert len(engine.search_collected(limit=2)) == 2
