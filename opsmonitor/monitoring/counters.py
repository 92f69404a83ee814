"""
Counter and gauge stores for the monitoring engine.

Counters are monotonically increasing integers keyed by dot-namespaced names
(``requests.total``, ``responses.status.5xx``). Gauges hold the most recent
point-in-time value of a sampled quantity (``memory.usage_percent``).
Both stores are guarded by a re-entrant lock so request threads and the
scheduler thread can update them concurrently.
"""

import re
import threading
from typing import Any, Dict, List, Optional, Tuple

from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)

# Substrings identifying counters that survive compaction
RETAINED_KEY_MARKERS: Tuple[str, ...] = ('total', 'errors', 'status')

MAX_ENDPOINT_LENGTH = 50

_ENDPOINT_RULES = (
    (re.compile(r'/[a-f0-9-]{20,}'), '/:id'),
    (re.compile(r'/\d+'), '/:id'),
    (re.compile(r'/\+\d+'), '/:phone'),
)


def normalize_endpoint(path: Optional[str]) -> str:
    """
    Collapse identifier-like path segments so endpoints share one metric key.

    Long hexadecimal or UUID segments and numeric segments become ``/:id`` and
    phone-number segments become ``/:phone``. The result is truncated to 50
    characters. Normalizing an already normalized key returns it unchanged.

    Args:
        path: Request path or route rule

    Returns:
        Normalized endpoint key, ``unknown`` for an empty path
    """
    if not path:
        return 'unknown'

    normalized = path
    for pattern, replacement in _ENDPOINT_RULES:
        normalized = pattern.sub(replacement, normalized)

    return normalized[:MAX_ENDPOINT_LENGTH]


class MetricCounterStore:
    """
    Thread-safe store of named integer counters.
    """

    def __init__(self):
        self._counters: Dict[str, int] = {}
        self._lock = threading.RLock()

    def increment(self, key: str, amount: int = 1) -> int:
        """
        Add ``amount`` to the counter, creating it at zero if missing.

        Negative amounts are rejected: they are logged and ignored.

        Returns:
            The counter value after the update
        """
        if amount < 0:
            logger.warning("Negative counter increment ignored", key=key, amount=amount)
            return self.get(key)

        with self._lock:
            value = self._counters.get(key, 0) + amount
            self._counters[key] = value
            return value

    def get(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._counters)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._counters

    def compact(self, max_keys: int = 1000) -> bool:
        """
        Bound the number of distinct counters.

        When more than ``max_keys`` counters exist, every counter is dropped
        except those whose key contains ``total``, ``errors`` or ``status``;
        the retained counters are reset to zero.

        Returns:
            True when compaction ran
        """
        with self._lock:
            key_count = len(self._counters)
            if key_count <= max_keys:
                return False

            self._counters = {
                key: 0
                for key in self._counters
                if any(marker in key for marker in RETAINED_KEY_MARKERS)
            }
            retained = len(self._counters)

        logger.info(
            "Counter store compacted",
            keys_before=key_count,
            keys_after=retained,
            max_keys=max_keys
        )
        return True


class GaugeStore:
    """Thread-safe store of the latest sampled values."""

    def __init__(self):
        self._gauges: Dict[str, float] = {}
        self._lock = threading.RLock()

    def set(self, key: str, value: float) -> None:
        with self._lock:
            self._gauges[key] = value

    def update(self, values: Dict[str, float]) -> None:
        with self._lock:
            self._gauges.update(values)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._gauges.get(key, default)

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._gauges)

    def __len__(self) -> int:
        with self._lock:
            return len(self._gauges)


__all__ = [
    'MetricCounterStore',
    'GaugeStore',
    'normalize_endpoint',
    'RETAINED_KEY_MARKERS',
]
