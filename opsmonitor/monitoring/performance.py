"""
Response time windows and percentile statistics.

Each endpoint keeps a bounded list of recent latency samples in milliseconds.
When a window grows past its capacity (100) it is cut back to its most recent
50 samples in one batch, so a window always holds the most recent samples. Every recorded sample is
handed to the configured threshold check, which raises slow response alerts.
"""

import math
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from opsmonitor.monitoring.counters import normalize_endpoint
from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)

RESPONSE_TIME_PREFIX = 'response_time.'
WINDOW_PREFIXES = (RESPONSE_TIME_PREFIX, 'query.', 'file_processing.')


@dataclass
class PercentileStats:
    """Summary statistics for a latency window."""

    count: int
    avg: int
    min: float
    max: float
    p50: float
    p95: float
    p99: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def percentile_index(count: int, fraction: float) -> int:
    """Index of the ``fraction`` percentile in a sorted list of ``count`` items."""
    return min(int(math.floor(count * fraction)), count - 1)


def compute_stats(samples: List[float]) -> Optional[PercentileStats]:
    """
    Compute count, rounded average, extremes and p50/p95/p99 for ``samples``.

    Returns:
        PercentileStats, or None when there are no samples
    """
    if not samples:
        return None

    ordered = sorted(samples)
    count = len(ordered)
    return PercentileStats(
        count=count,
        avg=int(math.floor(sum(ordered) / count + 0.5)),
        min=ordered[0],
        max=ordered[-1],
        p50=ordered[percentile_index(count, 0.50)],
        p95=ordered[percentile_index(count, 0.95)],
        p99=ordered[percentile_index(count, 0.99)],
    )


class PerformanceWindowTracker:
    """
    Bounded per-key latency windows.

    Args:
        max_samples: Window capacity
        drop_on_overflow: Batch size of the overflow drop; once capacity is exceeded
            the window is cut back to its most recent ``max_samples - drop_on_overflow``
        threshold_check: Callable invoked as ``threshold_check(endpoint, duration_ms)``
            after every HTTP response sample
    """

    def __init__(
        self,
        max_samples: int = 100,
        drop_on_overflow: int = 50,
        threshold_check: Optional[Callable[[str, float], Any]] = None
    ):
        self.max_samples = max_samples
        self.drop_on_overflow = drop_on_overflow
        self.retain_after_drop = max(0, max_samples - drop_on_overflow)
        self.threshold_check = threshold_check
        self._windows: Dict[str, List[float]] = {}
        self._lock = threading.RLock()

    def record(self, endpoint: str, duration_ms: float) -> str:
        """
        Record an HTTP response time for ``endpoint``.

        Returns:
            The window key the sample was stored under
        """
        normalized = normalize_endpoint(endpoint)
        key = f"{RESPONSE_TIME_PREFIX}{normalized}"
        self.add_sample(key, duration_ms)

        if self.threshold_check is not None:
            self.threshold_check(normalized, duration_ms)

        return key

    def add_sample(self, key: str, duration_ms: float) -> None:
        """Append a sample to an arbitrary window key without threshold checks."""
        with self._lock:
            window = self._windows.setdefault(key, [])
            window.append(float(duration_ms))
            if len(window) > self.max_samples:
                del window[:len(window) - self.retain_after_drop]

    def samples(self, key: str) -> List[float]:
        with self._lock:
            return list(self._windows.get(key, ()))

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._windows)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def window_key(self, key: str) -> str:
        """Resolve an endpoint path to its response time window; prefixed keys pass through."""
        if key.startswith(WINDOW_PREFIXES):
            return key
        return f"{RESPONSE_TIME_PREFIX}{normalize_endpoint(key)}"

    def percentiles(self, key: str) -> Optional[PercentileStats]:
        """Statistics for an endpoint path or a prefixed window key."""
        return compute_stats(self.samples(self.window_key(key)))

    def stats(self) -> Dict[str, PercentileStats]:
        """Statistics for every non-empty window."""
        with self._lock:
            windows = {key: list(values) for key, values in self._windows.items()}

        result = {}
        for key, values in windows.items():
            stats = compute_stats(values)
            if stats is not None:
                result[key] = stats
        return result

    def trim(self, keep: int = 50) -> int:
        """
        Keep only the most recent ``keep`` samples in every window.

        Returns:
            Number of samples removed
        """
        removed = 0
        with self._lock:
            for window in self._windows.values():
                excess = len(window) - keep
                if excess > 0:
                    del window[:excess]
                    removed += excess

        if removed:
            logger.debug("Latency windows trimmed", samples_removed=removed, keep=keep)
        return removed


__all__ = [
    'PercentileStats',
    'PerformanceWindowTracker',
    'compute_stats',
    'percentile_index',
    'RESPONSE_TIME_PREFIX',
    'WINDOW_PREFIXES',
]
