"""
Read surfaces over the monitoring engine state.

MetricsReporter builds the JSON bodies served by the health blueprint:
- health_response(): runs every probe and reports 200/503
- metrics_snapshot(): request totals, error rate, latest resource gauges,
  last known health and the active alert count, without triggering a sample
- performance_stats() / alerts_payload(): latency percentiles and active alerts

Failures while building a response are converted into error bodies and never
escape to the caller.
"""

from typing import Any, Dict, Tuple

from opsmonitor.monitoring.health import HealthStatus
from opsmonitor.monitoring.logging import get_logger
from opsmonitor.utils.formatting import (
    NOT_AVAILABLE,
    format_bytes,
    format_percent,
    format_uptime,
    utc_timestamp,
)

logger = get_logger(__name__)


def calculate_error_rate(total: int, errors: int) -> float:
    """Error percentage rounded to two decimals, 0 when nothing was counted."""
    if total <= 0:
        return 0.0
    return round(errors / total * 100, 2)


def _bytes_or_na(value: Any) -> str:
    return NOT_AVAILABLE if value is None else format_bytes(value)


class MetricsReporter:
    """
    Args:
        engine: MonitoringEngine whose state is reported
        health_timeout: Seconds a /health request waits for the probes
    """

    def __init__(self, engine: Any, health_timeout: float = 10.0):
        self.engine = engine
        self.health_timeout = health_timeout

    def _now(self) -> str:
        return utc_timestamp(self.engine.clock())

    def health_response(self) -> Tuple[Dict[str, Any], int]:
        """Run all probes and build the /health body and status code."""
        engine = self.engine
        try:
            report = engine.scheduler.run_coroutine(
                engine.health.run_all(),
                timeout=self.health_timeout
            )
            body = {
                'status': report.status.value,
                'timestamp': self._now(),
                'uptime': format_uptime(engine.uptime),
                'version': engine.config.version,
                'environment': engine.config.environment,
                'checks': {name: result.to_dict() for name, result in report.checks.items()},
            }
            status_code = 200 if report.status is HealthStatus.HEALTHY else 503
            return body, status_code

        except Exception as e:
            logger.error(
                "Health endpoint failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True
            )
            return {
                'status': 'error',
                'error': 'Health check failed',
                'timestamp': self._now(),
            }, 503

    def metrics_snapshot(self) -> Dict[str, Any]:
        engine = self.engine
        gauges = engine.gauges
        total = engine.counters.get('requests.total')
        errors = engine.counters.get('responses.errors')
        last_report = engine.health.last_report

        return {
            'timestamp': self._now(),
            'uptime': format_uptime(engine.uptime),
            'requests': {
                'total': total,
                'errors': errors,
                'errorRate': calculate_error_rate(total, errors),
            },
            'system': {
                'memory': {
                    'usage': format_percent(gauges.get('memory.usage_percent')),
                    'rss': _bytes_or_na(gauges.get('memory.rss')),
                },
                'cpu': {
                    'usage': format_percent(gauges.get('cpu.usage_percent')),
                },
                'disk': {
                    'usage': format_percent(gauges.get('disk.usage_percent')),
                    'freeSpace': _bytes_or_na(gauges.get('disk.free_space')),
                },
            },
            'health': last_report.status.value if last_report else 'unknown',
            'activeAlerts': len(engine.alerts.active_alerts()),
        }

    def metrics_response(self) -> Tuple[Dict[str, Any], int]:
        try:
            return self.metrics_snapshot(), 200
        except Exception as e:
            logger.error("Metrics collection failed", error=str(e), exc_info=True)
            return {
                'error': 'Failed to collect metrics',
                'timestamp': utc_timestamp(),
            }, 500

    def performance_stats(self) -> Dict[str, Any]:
        stats = self.engine.performance.stats()
        return {
            'timestamp': self._now(),
            'endpoints': {key: value.to_dict() for key, value in stats.items()},
        }

    def alerts_payload(self) -> Dict[str, Any]:
        alerts = self.engine.alerts.active_alerts()
        return {
            'timestamp': self._now(),
            'count': len(alerts),
            'alerts': [alert.to_dict() for alert in alerts],
        }


__all__ = ['MetricsReporter', 'calculate_error_rate']
