"""Timing and tool-call trace collection."""

from __future__ import annotations

import threading
import time

from agentic_rag.types import ToolTrace


class Timer:
    """Simple context timer used by classifiers, executors and the service."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


class ToolTraceLog:
    """Thread-safe sink for registry observers.

    Hybrid retrieval runs tools from worker threads, so appends are locked.
    """

    def __init__(self, limit: int = 500) -> None:
        self._limit = limit
        self._records: list[ToolTrace] = []
        self._lock = threading.Lock()

    def __call__(self, trace: ToolTrace) -> None:
        with self._lock:
            self._records.append(trace)
            if len(self._records) > self._limit:
                del self._records[: len(self._records) - self._limit]

    def recent(self, limit: int = 20) -> list[ToolTrace]:
        with self._lock:
            return list(self._records[-limit:])

    def summary(self) -> dict[str, float | int]:
        with self._lock:
            records = list(self._records)
        if not records:
            return {"total_calls": 0, "failed_calls": 0, "avg_latency_ms": 0.0}
        return {
            "total_calls": len(records),
            "failed_calls": sum(1 for record in records if record.error),
            "avg_latency_ms": sum(record.latency_ms for record in records) / len(records),
        }


def preview(text: str, limit: int = 240) -> str:
    """Single-line preview of `text` capped at `limit` characters."""
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[:limit] + "..."
