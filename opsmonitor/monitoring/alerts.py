"""
Threshold-based alerting.

The AlertManager compares observed values against configurable thresholds and
raises alerts when a value strictly exceeds its threshold. Every breach creates
a new alert: there is no deduplication, so a persistent condition produces one
alert per evaluation. Alerts live for a fixed TTL (one hour by default) from
creation and are then removed whether or not the condition still holds.

Alert types:
- slow_response: a response took longer than the response time threshold
- high_error_rate: error percentage above threshold, evaluated once at least
  100 requests have been counted
- high_memory_usage / high_cpu_usage / high_disk_usage: system resource
  percentages above threshold
"""

import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from opsmonitor.config.monitoring import ThresholdConfig
from opsmonitor.monitoring.events import AlertRaised, EventBus
from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)

SLOW_RESPONSE = 'slow_response'
HIGH_ERROR_RATE = 'high_error_rate'
HIGH_MEMORY_USAGE = 'high_memory_usage'
HIGH_CPU_USAGE = 'high_cpu_usage'
HIGH_DISK_USAGE = 'high_disk_usage'


@dataclass
class SlowResponseData:
    endpoint: str
    duration: float
    threshold: float


@dataclass
class ErrorRateData:
    errorRate: float
    threshold: float
    totalRequests: int
    totalErrors: int


@dataclass
class ResourceUsageData:
    current: float
    threshold: float


AlertData = Union[SlowResponseData, ErrorRateData, ResourceUsageData]


@dataclass
class Alert:
    """A raised alert. ``created_at`` is epoch seconds from the manager clock."""

    id: str
    type: str
    data: AlertData
    created_at: float
    resolved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'data': asdict(self.data),
            'timestamp': datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat(),
            'resolved': self.resolved,
        }


# Resource kind -> (threshold attribute, alert type)
RESOURCE_RULES = {
    'memory': ('memory_usage', HIGH_MEMORY_USAGE),
    'cpu': ('cpu_usage', HIGH_CPU_USAGE),
    'disk': ('disk_space', HIGH_DISK_USAGE),
}


class AlertManager:
    """
    Raises, stores and expires alerts.

    Args:
        thresholds: Initial threshold configuration
        ttl_seconds: Alert lifetime from creation
        min_requests_for_error_rate: Request count below which error rate is not evaluated
        clock: Callable returning epoch seconds
        scheduler: Object exposing ``call_later(delay, callback)`` used for expiry
        event_bus: Optional bus receiving AlertRaised events
    """

    def __init__(
        self,
        thresholds: Optional[ThresholdConfig] = None,
        ttl_seconds: float = 3600.0,
        min_requests_for_error_rate: int = 100,
        clock: Callable[[], float] = time.time,
        scheduler: Any = None,
        event_bus: Optional[EventBus] = None
    ):
        self._thresholds = thresholds or ThresholdConfig()
        self.ttl_seconds = ttl_seconds
        self.min_requests_for_error_rate = min_requests_for_error_rate
        self._clock = clock
        self._scheduler = scheduler
        self._event_bus = event_bus
        self._alerts: Dict[str, Alert] = {}
        self._lock = threading.RLock()

    @property
    def thresholds(self) -> ThresholdConfig:
        return self._thresholds

    def set_thresholds(self, partial: Dict[str, Any]) -> ThresholdConfig:
        """Merge new threshold values over the current configuration."""
        with self._lock:
            self._thresholds = self._thresholds.merge(partial)
        logger.info("Alert thresholds updated", thresholds=self._thresholds.to_options())
        return self._thresholds

    # Evaluation

    def evaluate(self, kind: str, observed: float, context: Optional[Dict[str, Any]] = None) -> Optional[Alert]:
        """
        Compare ``observed`` against the threshold for ``kind``.

        ``kind`` is one of ``response_time``, ``error_rate``, ``memory``, ``cpu``
        or ``disk``. Response time needs ``context['endpoint']`` and error rate
        needs ``context['total']`` and ``context['errors']``.
        """
        context = context or {}
        thresholds = self._thresholds

        if kind == 'response_time':
            if observed > thresholds.response_time:
                return self.raise_alert(SLOW_RESPONSE, SlowResponseData(
                    endpoint=context.get('endpoint', 'unknown'),
                    duration=observed,
                    threshold=thresholds.response_time
                ))
            return None

        if kind == 'error_rate':
            if observed > thresholds.error_rate:
                return self.raise_alert(HIGH_ERROR_RATE, ErrorRateData(
                    errorRate=round(observed, 2),
                    threshold=thresholds.error_rate,
                    totalRequests=int(context.get('total', 0)),
                    totalErrors=int(context.get('errors', 0))
                ))
            return None

        if kind in RESOURCE_RULES:
            attribute, alert_type = RESOURCE_RULES[kind]
            threshold = getattr(thresholds, attribute)
            if observed > threshold:
                return self.raise_alert(alert_type, ResourceUsageData(
                    current=observed,
                    threshold=threshold
                ))
            return None

        raise ValueError(f"Unknown alert kind '{kind}'")

    def check_response_time(self, endpoint: str, duration_ms: float) -> Optional[Alert]:
        return self.evaluate('response_time', duration_ms, {'endpoint': endpoint})

    def check_error_rate(self, total: int, errors: int) -> Optional[Alert]:
        if total < self.min_requests_for_error_rate:
            return None
        rate = errors / total * 100
        return self.evaluate('error_rate', rate, {'total': total, 'errors': errors})

    def check_system(
        self,
        memory: Optional[float] = None,
        cpu: Optional[float] = None,
        disk: Optional[float] = None
    ) -> List[Alert]:
        raised = []
        for kind, value in (('memory', memory), ('cpu', cpu), ('disk', disk)):
            if value is None:
                continue
            alert = self.evaluate(kind, value)
            if alert is not None:
                raised.append(alert)
        return raised

    # Lifecycle

    def raise_alert(self, alert_type: str, data: AlertData) -> Alert:
        """
        Store a new alert and schedule its removal after the TTL.
        """
        created_at = self._clock()
        with self._lock:
            alert_id = f"{alert_type}_{int(created_at * 1000)}"
            suffix = 1
            while alert_id in self._alerts:
                alert_id = f"{alert_type}_{int(created_at * 1000)}_{suffix}"
                suffix += 1
            alert = Alert(id=alert_id, type=alert_type, data=data, created_at=created_at)
            self._alerts[alert_id] = alert

        logger.warning("Alert triggered", alert_id=alert_id, alert_type=alert_type, **asdict(data))

        if self._scheduler is not None:
            try:
                self._scheduler.call_later(self.ttl_seconds, lambda: self.remove(alert_id))
            except Exception as e:
                logger.error("Alert expiry scheduling failed", alert_id=alert_id, error=str(e))

        if self._event_bus is not None:
            self._event_bus.publish(AlertRaised(alert=alert))

        return alert

    def remove(self, alert_id: str) -> bool:
        with self._lock:
            removed = self._alerts.pop(alert_id, None) is not None
        if removed:
            logger.debug("Alert expired", alert_id=alert_id)
        return removed

    def resolve(self, alert_id: str) -> bool:
        """Mark an alert resolved. Resolved alerts are hidden from the active list."""
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return False
            alert.resolved = True
        logger.info("Alert resolved", alert_id=alert_id, alert_type=alert.type)
        return True

    def purge_expired(self) -> int:
        """Remove alerts older than the TTL."""
        now = self._clock()
        with self._lock:
            expired = [
                alert_id for alert_id, alert in self._alerts.items()
                if now - alert.created_at >= self.ttl_seconds
            ]
            for alert_id in expired:
                del self._alerts[alert_id]
        return len(expired)

    def active_alerts(self) -> List[Alert]:
        """Unresolved, unexpired alerts, newest first."""
        self.purge_expired()
        with self._lock:
            alerts = [alert for alert in self._alerts.values() if not alert.resolved]
        return sorted(alerts, key=lambda alert: alert.created_at, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)


__all__ = [
    'Alert',
    'AlertData',
    'AlertManager',
    'SlowResponseData',
    'ErrorRateData',
    'ResourceUsageData',
    'SLOW_RESPONSE',
    'HIGH_ERROR_RATE',
    'HIGH_MEMORY_USAGE',
    'HIGH_CPU_USAGE',
    'HIGH_DISK_USAGE',
]
