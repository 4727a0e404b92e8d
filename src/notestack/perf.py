"""Operation timing for index and search work.

Measurements are kept in memory and logged at DEBUG level on the
``notestack.perf`` logger.  Each engine owns one monitor; set
``NOTESTACK_PERF=false`` (or ``VaultConfig.perf``) to disable it.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PerfMeasurement:
    operation: str
    duration_ms: float
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PerfMonitor:
    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.measurements: list[PerfMeasurement] = []

    def record(self, operation: str, duration_ms: float, **metadata: Any) -> None:
        if not self.enabled:
            return
        self.measurements.append(PerfMeasurement(operation, duration_ms, metadata))
        logger.debug("[perf] %s: %.2fms %s", operation, duration_ms, metadata or "")

    @contextmanager
    def timer(self, operation: str, **metadata: Any) -> Iterator[dict[str, Any]]:
        """Time the ``with`` block; keys added to the yielded dict are recorded too."""
        extra: dict[str, Any] = dict(metadata)
        start = time.perf_counter()
        try:
            yield extra
        finally:
            self.record(operation, (time.perf_counter() - start) * 1000, **extra)

    def time(self, operation: str, fn: Callable[[], T], **metadata: Any) -> T:
        with self.timer(operation, **metadata):
            return fn()

    def by_operation(self, operation: str) -> list[PerfMeasurement]:
        return [m for m in self.measurements if m.operation == operation]

    def summary(self, operation: str | None = None) -> dict[str, float]:
        items = self.by_operation(operation) if operation else self.measurements
        if not items:
            return {"count": 0}
        durations = sorted(m.duration_ms for m in items)
        total = sum(durations)
        return {
            "count": len(durations),
            "total": total,
            "mean": total / len(durations),
            "min": durations[0],
            "max": durations[-1],
            "median": durations[len(durations) // 2],
            "p95": durations[int(len(durations) * 0.95)],
        }

    def report(self) -> str:
        lines = ["=== Performance Report ===", f"Total measurements: {len(self.measurements)}", ""]
        for op in dict.fromkeys(m.operation for m in self.measurements):
            s = self.summary(op)
            lines += [
                f"{op}:",
                f"  Count: {s['count']}",
                f"  Mean: {s['mean']:.2f}ms",
                f"  Median: {s['median']:.2f}ms",
                f"  Min/Max: {s['min']:.2f}ms / {s['max']:.2f}ms",
                f"  P95: {s['p95']:.2f}ms",
                "",
            ]
        return "\n".join(lines)

    def clear(self) -> None:
        self.measurements.clear()
