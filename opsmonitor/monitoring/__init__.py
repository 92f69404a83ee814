"""
Operational monitoring package.

Request counters, latency windows, resource sampling, health probes and
threshold alerts, owned by a MonitoringEngine and exposed through the
health blueprint.

Usage:
    from opsmonitor.monitoring import MonitoringEngine, init_monitoring

    engine = init_monitoring(app, document_store=store)
    engine.record_file_processed('pdf', duration_ms=120.0)
"""

from typing import Any, Optional

from flask import Flask

from opsmonitor.config.monitoring import MonitoringConfig
from opsmonitor.monitoring.alerts import Alert, AlertManager
from opsmonitor.monitoring.counters import GaugeStore, MetricCounterStore, normalize_endpoint
from opsmonitor.monitoring.engine import EXTENSION_KEY, MonitoringEngine
from opsmonitor.monitoring.events import EventBus
from opsmonitor.monitoring.health import HealthCheckRegistry, HealthCheckResult, HealthStatus
from opsmonitor.monitoring.logging import get_logger
from opsmonitor.monitoring.middleware import RequestMetricsMiddleware
from opsmonitor.monitoring.performance import PerformanceWindowTracker
from opsmonitor.monitoring.queries import QueryMonitor, monitor_query
from opsmonitor.monitoring.reporting import MetricsReporter
from opsmonitor.monitoring.scheduler import MonitoringScheduler
from opsmonitor.monitoring.system import SystemResourceSampler

logger = get_logger(__name__)


def init_monitoring(
    app: Flask,
    config: Optional[MonitoringConfig] = None,
    document_store: Any = None,
    start_scheduler: bool = True,
    **engine_kwargs
) -> MonitoringEngine:
    """
    Create a MonitoringEngine for ``app`` and install the request middleware.

    The engine is stored in ``app.extensions['opsmonitor']``.

    Args:
        app: Flask application instance
        config: Monitoring configuration
        document_store: Store used by the database health probe
        start_scheduler: Start the background scheduler thread
        **engine_kwargs: Passed to MonitoringEngine (clock, scheduler, event_bus)

    Returns:
        The engine instance
    """
    engine = MonitoringEngine(config=config, document_store=document_store, **engine_kwargs)
    RequestMetricsMiddleware(engine).init_app(app)
    app.extensions[EXTENSION_KEY] = engine

    if start_scheduler:
        engine.start()

    logger.info(
        "Monitoring initialized",
        app_name=app.name,
        scheduler_running=engine.is_running
    )
    return engine


def get_engine(app: Flask) -> MonitoringEngine:
    """Return the engine registered on ``app``."""
    engine = app.extensions.get(EXTENSION_KEY)
    if engine is None:
        raise RuntimeError("Monitoring is not initialized for this application")
    return engine


__all__ = [
    'EXTENSION_KEY',
    'init_monitoring',
    'get_engine',
    'Alert',
    'AlertManager',
    'EventBus',
    'GaugeStore',
    'HealthCheckRegistry',
    'HealthCheckResult',
    'HealthStatus',
    'MetricCounterStore',
    'MetricsReporter',
    'MonitoringEngine',
    'MonitoringScheduler',
    'PerformanceWindowTracker',
    'QueryMonitor',
    'RequestMetricsMiddleware',
    'SystemResourceSampler',
    'monitor_query',
    'normalize_endpoint',
]
