"""Cache effectiveness counters.

Tracks how many reads were answered from cache, how many reached the backend,
and how long backend calls took, so the admin surface can show hit rate and
estimated time saved.
"""

from __future__ import annotations

import json
import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque

from .models import MetricsSnapshot


class CacheMetrics:  # pylint: disable=too-many-instance-attributes
    """In-memory counters shared by every memoized function of a context.

    Parameters
    ----------
    history_size: int
        Number of most recent backend response times kept for the average.
    clock: Callable[[], float]
        Wall clock in epoch seconds, used for ``last_updated``.
    """

    def __init__(
        self, history_size: int = 100, clock: Callable[[], float] = time.time
    ) -> None:
        if history_size < 1:
            raise ValueError(f"history_size must be at least 1, got {history_size}")
        self._clock = clock
        self._history_size = history_size
        self.reset()

    def reset(self) -> None:
        """Zero every counter and forget response-time history."""
        self.cache_hits = 0
        self.cache_misses = 0
        self.coalesced_requests = 0
        self.failed_requests = 0
        self._response_times_ms: Deque[float] = deque(maxlen=self._history_size)
        self._last_updated = self._clock()

    def record_hit(self) -> None:
        self.cache_hits += 1
        self._last_updated = self._clock()

    def record_coalesced(self) -> None:
        """Count a caller that joined an in-flight fetch."""
        self.coalesced_requests += 1
        self._last_updated = self._clock()

    def record_miss(self, response_time_ms: float) -> None:
        """Count a completed backend call and its latency."""
        self.cache_misses += 1
        self._response_times_ms.append(max(0.0, float(response_time_ms)))
        self._last_updated = self._clock()

    def record_failure(self) -> None:
        """Count a backend call that raised; it still counts as a miss."""
        self.cache_misses += 1
        self.failed_requests += 1
        self._last_updated = self._clock()

    def snapshot(self) -> MetricsSnapshot:
        times = self._response_times_ms
        average = sum(times) / len(times) if times else 0.0
        saved = self.cache_hits + self.coalesced_requests
        total = saved + self.cache_misses
        return MetricsSnapshot(
            cache_hits=self.cache_hits,
            cache_misses=self.cache_misses,
            coalesced_requests=self.coalesced_requests,
            failed_requests=self.failed_requests,
            api_calls_saved=saved,
            total_api_calls=self.cache_misses,
            average_response_time_ms=average,
            cache_hit_rate=(saved / total * 100.0) if total else 0.0,
            total_requests=total,
            estimated_time_saved_ms=saved * average,
            last_updated=datetime.fromtimestamp(self._last_updated, tz=timezone.utc),
        )

    def export_json(self) -> str:
        """Return the snapshot as indented JSON with an export timestamp."""
        payload = self.snapshot().model_dump(mode="json")
        payload["exported_at"] = datetime.fromtimestamp(
            self._clock(), tz=timezone.utc
        ).isoformat()
        return json.dumps(payload, indent=2)
