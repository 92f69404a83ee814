"""
Monitoring engine.

MonitoringEngine owns every monitoring component for one application:
counters and gauges, latency windows, the alert manager, the resource sampler,
the health check registry, the event bus and the scheduler that drives the
periodic work. It is created explicitly by the application factory and stored
on ``app.extensions``; producers outside the HTTP pipeline call its record_*
methods directly.

Periodic tasks:
- system_metrics (30s): resource sample, system thresholds, error rate check
- health_checks (60s): run every health probe and cache the report
- metrics_cleanup (600s): compact counters and trim latency windows
"""

import time
from typing import Any, Callable, Dict, Optional

from opsmonitor.config.monitoring import MonitoringConfig, ThresholdConfig
from opsmonitor.monitoring.alerts import Alert, AlertManager
from opsmonitor.monitoring.counters import GaugeStore, MetricCounterStore, normalize_endpoint
from opsmonitor.monitoring.events import (
    ErrorOccurred,
    EventBus,
    FileProcessed,
    QueryExecuted,
    RequestCompleted,
)
from opsmonitor.monitoring.health import (
    DatabaseProbe,
    HealthCheckRegistry,
    HealthReport,
    MemoryProbe,
    UptimeProbe,
)
from opsmonitor.monitoring.logging import get_logger
from opsmonitor.monitoring.performance import PerformanceWindowTracker
from opsmonitor.monitoring.reporting import MetricsReporter
from opsmonitor.monitoring.scheduler import MonitoringScheduler
from opsmonitor.monitoring.system import SystemResourceSampler, SystemSnapshot
from opsmonitor.utils.sanitizers import sanitize_user_agent

logger = get_logger(__name__)

SYSTEM_METRICS_TASK = 'system_metrics'
HEALTH_CHECKS_TASK = 'health_checks'
CLEANUP_TASK = 'metrics_cleanup'

# Key of the engine in Flask's app.extensions
EXTENSION_KEY = 'opsmonitor'


def status_class(status_code: int) -> str:
    """``404`` -> ``4xx``"""
    return f"{status_code // 100}xx"


class MonitoringEngine:
    """
    Args:
        config: Monitoring configuration, defaults to MonitoringConfig()
        document_store: Store used by the database probe; the probe is skipped when None
        clock: Callable returning epoch seconds
        scheduler: Scheduler instance, a new MonitoringScheduler by default
        event_bus: Event bus instance, a new EventBus by default
    """

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        document_store: Any = None,
        clock: Callable[[], float] = time.time,
        scheduler: Optional[MonitoringScheduler] = None,
        event_bus: Optional[EventBus] = None
    ):
        self.config = config or MonitoringConfig()
        self.clock = clock
        self.start_time = clock()
        self.document_store = document_store

        self.events = event_bus or EventBus()
        self.scheduler = scheduler or MonitoringScheduler()
        self.counters = MetricCounterStore()
        self.gauges = GaugeStore()

        alert_config = self.config.alerts
        self.alerts = AlertManager(
            thresholds=ThresholdConfig(**alert_config.thresholds.to_dict()),
            ttl_seconds=alert_config.ttl_seconds,
            min_requests_for_error_rate=alert_config.min_requests_for_error_rate,
            clock=clock,
            scheduler=self.scheduler,
            event_bus=self.events
        )

        windows = self.config.windows
        self.performance = PerformanceWindowTracker(
            max_samples=windows.max_samples,
            drop_on_overflow=windows.drop_on_overflow,
            threshold_check=self.alerts.check_response_time
        )

        self.sampler = SystemResourceSampler(
            gauges=self.gauges,
            alert_manager=self.alerts,
            disk_path=self.config.disk_path,
            start_time=self.start_time,
            clock=clock,
            summary_log_interval=self.config.scheduler.summary_log_interval
        )

        health_config = self.config.health
        self.health = HealthCheckRegistry(
            probe_timeout=health_config.probe_timeout_seconds,
            clock=clock
        )
        self._register_builtin_probes()

        self.reporter = MetricsReporter(self, health_timeout=health_config.http_timeout_seconds)

        self._register_tasks()

        logger.info(
            "Monitoring engine initialized",
            service=self.config.service_name,
            environment=self.config.environment,
            probes=self.health.probe_names(),
            thresholds=self.alerts.thresholds.to_options()
        )

    def _register_builtin_probes(self) -> None:
        health_config = self.config.health
        if self.document_store is not None:
            self.health.register(health_config.database_probe_name, DatabaseProbe(
                self.document_store,
                name=health_config.database_probe_name,
                collection=health_config.canary_collection,
                document_id=health_config.canary_document,
                deadline=health_config.database_deadline_seconds
            ))
        self.health.register('memory', MemoryProbe(limit_percent=health_config.memory_limit_percent))
        self.health.register('uptime', UptimeProbe(self.start_time, clock=self.clock))

    def _register_tasks(self) -> None:
        intervals = self.config.scheduler
        self.scheduler.add_task(SYSTEM_METRICS_TASK, intervals.system_metrics_interval, self.sample_system)
        self.scheduler.add_task(HEALTH_CHECKS_TASK, intervals.health_check_interval, self.run_health_checks)
        self.scheduler.add_task(CLEANUP_TASK, intervals.cleanup_interval, self.cleanup)

    # Lifecycle

    @property
    def uptime(self) -> float:
        return max(0.0, self.clock() - self.start_time)

    @property
    def is_running(self) -> bool:
        return self.scheduler.is_running

    def start(self) -> None:
        """Start the periodic tasks and take an initial sample and health report."""
        self.scheduler.start()
        self.scheduler.trigger(SYSTEM_METRICS_TASK)
        self.scheduler.trigger(HEALTH_CHECKS_TASK)

    def stop(self) -> None:
        self.scheduler.stop()

    # Periodic work

    async def sample_system(self) -> SystemSnapshot:
        snapshot = await self.sampler.sample()
        self.check_error_rate()
        return snapshot

    async def run_health_checks(self) -> HealthReport:
        return await self.health.run_all()

    def cleanup(self) -> Dict[str, Any]:
        """Compact counters, trim latency windows and drop expired alerts."""
        windows = self.config.windows
        compacted = self.counters.compact(max_keys=windows.max_counter_keys)
        trimmed = self.performance.trim(keep=windows.keep_on_cleanup)
        expired = self.alerts.purge_expired()

        result = {
            'compacted': compacted,
            'samples_trimmed': trimmed,
            'alerts_expired': expired,
            'counter_keys': len(self.counters),
            'latency_windows': len(self.performance),
            'alerts': len(self.alerts),
        }
        logger.info("Metrics cleanup completed", **result)
        return result

    def check_error_rate(self) -> Optional[Alert]:
        return self.alerts.check_error_rate(
            self.counters.get('requests.total'),
            self.counters.get('responses.errors')
        )

    # Producers

    def record_request_started(self, method: str, endpoint: str) -> None:
        self.counters.increment('requests.total')
        self.counters.increment(f"requests.method.{method.upper()}")
        self.counters.increment(f"requests.endpoint.{normalize_endpoint(endpoint)}")

    def record_request_completed(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_ms: float,
        role: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> None:
        """
        Record a finished request: latency sample, status class counter,
        role counter and, for status >= 400, the error bookkeeping.
        """
        self.performance.record(endpoint, duration_ms)
        self.counters.increment(f"responses.status.{status_class(status_code)}")

        if role:
            self.counters.increment(f"requests.role.{role}")

        if status_code >= 400:
            self.record_error(method, endpoint, status_code, duration_ms, role=role, user_agent=user_agent)

        self.events.publish(RequestCompleted(
            method=method,
            endpoint=normalize_endpoint(endpoint),
            status_code=status_code,
            duration_ms=duration_ms,
            role=role
        ))

    def record_error(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_ms: float,
        role: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> None:
        self.counters.increment('responses.errors')
        self.counters.increment(f"error.{status_code}")

        browser = sanitize_user_agent(user_agent)
        logger.warning(
            "Request failed",
            method=method,
            endpoint=normalize_endpoint(endpoint),
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
            role=role or 'anonymous',
            user_agent=browser
        )

        self.events.publish(ErrorOccurred(
            method=method,
            endpoint=normalize_endpoint(endpoint),
            status_code=status_code,
            duration_ms=duration_ms,
            role=role,
            user_agent=browser
        ))
        self.check_error_rate()

    def record_file_processed(
        self,
        file_type: str,
        duration_ms: float,
        size_bytes: Optional[int] = None,
        success: bool = True
    ) -> None:
        kind = (file_type or 'unknown').lower()
        self.counters.increment('files.processed.total')
        self.counters.increment(f"files.processed.{kind}")
        if not success:
            self.counters.increment('files.errors')
        self.performance.add_sample(f"file_processing.{kind}", duration_ms)

        self.events.publish(FileProcessed(
            file_type=kind,
            duration_ms=duration_ms,
            size_bytes=size_bytes,
            success=success
        ))

    def record_query(
        self,
        collection: str,
        operation: str,
        duration_ms: float,
        success: bool = True,
        document_count: int = 0
    ) -> None:
        self.counters.increment('queries.total')
        self.counters.increment(f"queries.operation.{operation}")
        if not success:
            self.counters.increment('queries.errors')
        self.performance.add_sample(f"query.{collection}", duration_ms)

        self.events.publish(QueryExecuted(
            collection=collection,
            operation=operation,
            duration_ms=duration_ms,
            success=success,
            document_count=document_count
        ))

    # Configuration

    def set_thresholds(self, partial: Dict[str, Any]) -> ThresholdConfig:
        return self.alerts.set_thresholds(partial)


__all__ = [
    'MonitoringEngine',
    'status_class',
    'SYSTEM_METRICS_TASK',
    'HEALTH_CHECKS_TASK',
    'CLEANUP_TASK',
    'EXTENSION_KEY',
]
