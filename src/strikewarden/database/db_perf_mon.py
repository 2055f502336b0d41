"""
Query timing for repository operations.

Services wrap each storage call in ``database.timer.measure(name)``. Calls slower
than the configured threshold are logged as warnings and the collected timings
are written to the debug log when the database shuts down.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator

from strikewarden.util.logger import get_logger

logger = get_logger("database_perf_mon")


@dataclass
class QueryStats:
    """Running timings of one named query, in seconds."""

    count: int = 0
    total_time: float = 0.0
    min_time: float = 0.0
    max_time: float = 0.0

    def add(self, duration: float) -> None:
        self.min_time = duration if self.count == 0 else min(self.min_time, duration)
        self.max_time = max(self.max_time, duration)
        self.total_time += duration
        self.count += 1

    @property
    def avg_time(self) -> float:
        return self.total_time / self.count if self.count else 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "total_time": self.total_time,
            "avg_time": self.avg_time,
            "min_time": self.min_time,
            "max_time": self.max_time,
        }


class QueryTimer:
    """Collects :class:`QueryStats` per query name."""

    def __init__(self, slow_query_threshold_ms: float = 100.0):
        self._stats: Dict[str, QueryStats] = {}
        self._slow_threshold = slow_query_threshold_ms / 1000.0

    @contextmanager
    def measure(self, query_name: str) -> Iterator[None]:
        """Time the enclosed block, recording it even when the block raises."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.track(query_name, time.perf_counter() - started)

    def track(self, query_name: str, duration: float) -> None:
        self._stats.setdefault(query_name, QueryStats()).add(duration)
        if duration > self._slow_threshold:
            logger.warning("[PERFORMANCE] Slow query: %s took %.2fms", query_name, duration * 1000)

    def get_statistics(self) -> Dict[str, Dict[str, float]]:
        """Snapshot keyed by query name; values are plain dicts safe to serialise."""
        return {name: stats.to_dict() for name, stats in self._stats.items()}

    def reset(self) -> None:
        self._stats.clear()
        logger.info("[PERFORMANCE] Statistics reset")

    def get_summary(self) -> str:
        """One line per query, slowest average first."""
        if not self._stats:
            return "No queries tracked yet"

        ranked = sorted(self._stats.items(), key=lambda item: (-item[1].avg_time, item[0]))
        return "\n".join(
            f"{name}: {stats.count} calls, avg {stats.avg_time * 1000:.2f}ms, max {stats.max_time * 1000:.2f}ms"
            for name, stats in ranked
        )
