"""Unit tests for notestack.perf.PerfMonitor."""

import logging

from notestack.perf import PerfMonitor


class TestPerfMonitor:
    def test_timer_records_extra_metadata(self):
        perf = PerfMonitor()
        with perf.timer("scan", zone="notes") as info:
            info["files"] = 3
        (m,) = perf.by_operation("scan")
        assert m.metadata == {"zone": "notes", "files": 3}
        assert m.duration_ms >= 0

    def test_disabled_records_nothing(self):
        perf = PerfMonitor(enabled=False)
        assert perf.time("scan", lambda: 42) == 42
        assert perf.measurements == []

    def test_summary_and_report(self):
        perf = PerfMonitor()
        for ms in (1.0, 2.0, 3.0):
            perf.record("search", ms)
        summary = perf.summary("search")
        assert (summary["count"], summary["min"], summary["max"], summary["median"]) == (3, 1.0, 3.0, 2.0)
        assert "search:" in perf.report()
        assert perf.summary("missing") == {"count": 0}

    def test_logs_at_debug(self, caplog):
        perf = PerfMonitor()
        with caplog.at_level(logging.DEBUG, logger="notestack.perf"):
            perf.record("rebuild", 12.5)
        assert "[perf] rebuild" in caplog.text

    def test_clear(self):
        perf = PerfMonitor()
        perf.record("x", 1)
        perf.clear()
        assert perf.measurements == []
