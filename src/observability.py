"""Observability: ledger counters, commit timers and summary logging."""

import threading
import time
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    """Thread-safe counters and timers for ledger operations."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}

    def counter(self, name: str, value: int = 1):
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Record the wall time of the enclosed block under ``name``."""
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            with self._lock:
                self._timers.setdefault(name, []).append(duration)

    def summary(self) -> dict[str, Any]:
        with self._lock:
            timers = {
                name: {
                    "count": len(durations),
                    "total": sum(durations),
                    "avg": sum(durations) / len(durations),
                    "max": max(durations),
                }
                for name, durations in self._timers.items()
                if durations
            }
            return {"counters": dict(self._counters), "timers": timers}

    def reset(self):
        with self._lock:
            self._counters.clear()
            self._timers.clear()


metrics = Metrics()


def log_run_summary():
    """Log the current metrics summary via structlog."""
    logger.info("ledger_metrics", **metrics.summary())
