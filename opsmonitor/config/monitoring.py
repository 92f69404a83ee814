"""
Monitoring Engine Configuration

Dataclass configuration for the operational monitoring engine:
- Scheduler intervals for resource sampling, health checks and metric cleanup
- Latency window sizing for per-endpoint response time tracking
- Alert thresholds and alert lifetime
- Health probe deadlines and the database canary location

Values default to the production-tested settings and may be overridden through
environment variables (ALERT_*_THRESHOLD, MONITORING_*) or explicit overrides
passed to create_monitoring_config().
"""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class SchedulerConfig:
    """Intervals, in seconds, for the periodic monitoring tasks."""

    enabled: bool = True
    system_metrics_interval: float = 30.0
    health_check_interval: float = 60.0
    cleanup_interval: float = 600.0
    # Minimum seconds between two resource summary log lines
    summary_log_interval: float = 300.0


@dataclass
class WindowConfig:
    """Latency window sizing."""

    max_samples: int = 100
    drop_on_overflow: int = 50
    keep_on_cleanup: int = 50
    max_counter_keys: int = 1000


@dataclass
class ThresholdConfig:
    """
    Alert thresholds.

    memory_usage, disk_space, error_rate and cpu_usage are percentages,
    response_time is expressed in milliseconds.
    """

    memory_usage: float = 85.0
    disk_space: float = 90.0
    response_time: float = 5000.0
    error_rate: float = 5.0
    cpu_usage: float = 80.0

    # External option names accepted by set_thresholds()
    ALIASES = {
        'memoryUsage': 'memory_usage',
        'diskSpace': 'disk_space',
        'responseTime': 'response_time',
        'errorRate': 'error_rate',
        'cpuUsage': 'cpu_usage',
    }

    @classmethod
    def from_env(cls) -> 'ThresholdConfig':
        return cls(
            memory_usage=_env_float('ALERT_MEMORY_THRESHOLD', 85.0),
            disk_space=_env_float('ALERT_DISK_THRESHOLD', 90.0),
            response_time=_env_float('ALERT_RESPONSE_TIME_THRESHOLD', 5000.0),
            error_rate=_env_float('ALERT_ERROR_RATE_THRESHOLD', 5.0),
            cpu_usage=_env_float('ALERT_CPU_THRESHOLD', 80.0),
        )

    def merge(self, partial: Dict[str, Any]) -> 'ThresholdConfig':
        """
        Return a copy with the given thresholds replaced.

        Keys may use either the camelCase option names or the attribute names.
        Unknown keys are ignored and values are coerced to float.
        """
        values = self.to_dict()
        for key, value in (partial or {}).items():
            attribute = self.ALIASES.get(key, key)
            if attribute in values:
                values[attribute] = float(value)
        return ThresholdConfig(**values)

    def validate(self) -> List[str]:
        """Return a list of issues with the configured thresholds."""
        issues = []
        for name in ('memory_usage', 'disk_space', 'error_rate', 'cpu_usage'):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                issues.append(f"{name} threshold must be between 0 and 100, got {value}")
        if self.response_time <= 0:
            issues.append(f"response_time threshold must be positive, got {self.response_time}")
        return issues

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def to_options(self) -> Dict[str, float]:
        """Thresholds keyed by their external option names."""
        return {alias: getattr(self, name) for alias, name in self.ALIASES.items()}


@dataclass
class AlertConfig:
    """Alert lifetime and evaluation rules."""

    ttl_seconds: float = 3600.0
    min_requests_for_error_rate: int = 100
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig.from_env)


@dataclass
class HealthCheckConfig:
    """Health probe settings."""

    database_probe_name: str = 'firebase'
    canary_collection: str = '_health'
    canary_document: str = 'test'
    database_deadline_seconds: float = 0.5
    probe_timeout_seconds: float = 5.0
    memory_limit_percent: float = 90.0
    # Upper bound for a synchronous /health request waiting on the probes
    http_timeout_seconds: float = 10.0


@dataclass
class MonitoringConfig:
    """Aggregate configuration for the monitoring engine."""

    service_name: str = 'opsmonitor'
    version: str = '1.0.0'
    environment: str = 'development'
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    windows: WindowConfig = field(default_factory=WindowConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    health: HealthCheckConfig = field(default_factory=HealthCheckConfig)
    disk_path: str = field(default_factory=os.getcwd)

    def validate(self) -> List[str]:
        issues = list(self.alerts.thresholds.validate())
        for name in ('system_metrics_interval', 'health_check_interval', 'cleanup_interval'):
            if getattr(self.scheduler, name) <= 0:
                issues.append(f"scheduler.{name} must be positive")
        if self.windows.drop_on_overflow > self.windows.max_samples:
            issues.append("windows.drop_on_overflow cannot exceed windows.max_samples")
        return issues


def create_monitoring_config(
    environment: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> MonitoringConfig:
    """
    Build a MonitoringConfig from the environment.

    Args:
        environment: Deployment environment name, defaults to FLASK_ENV
        overrides: Optional nested overrides, e.g. {'scheduler': {'enabled': False}}

    Returns:
        MonitoringConfig instance
    """
    config = MonitoringConfig(
        service_name=os.getenv('APP_NAME', 'opsmonitor'),
        version=os.getenv('APP_VERSION', '1.0.0'),
        environment=environment or os.getenv('FLASK_ENV', 'development'),
        scheduler=SchedulerConfig(
            enabled=os.getenv('MONITORING_SCHEDULER_ENABLED', 'true').lower() == 'true',
            system_metrics_interval=_env_float('MONITORING_SAMPLE_INTERVAL', 30.0),
            health_check_interval=_env_float('MONITORING_HEALTH_INTERVAL', 60.0),
            cleanup_interval=_env_float('MONITORING_CLEANUP_INTERVAL', 600.0),
        ),
        health=HealthCheckConfig(
            database_probe_name=os.getenv('HEALTH_DATABASE_PROBE_NAME', 'firebase'),
            probe_timeout_seconds=_env_float('HEALTH_CHECK_TIMEOUT', 5.0),
        ),
    )

    for section, values in (overrides or {}).items():
        target = getattr(config, section, None)
        if isinstance(values, dict) and target is not None and hasattr(target, '__dataclass_fields__'):
            if section == 'alerts' and 'thresholds' in values:
                values = dict(values)
                thresholds = values.pop('thresholds')
                if isinstance(thresholds, dict):
                    thresholds = target.thresholds.merge(thresholds)
                target.thresholds = thresholds
            for key, value in values.items():
                setattr(target, key, value)
        else:
            setattr(config, section, values)

    return config


__all__ = [
    'SchedulerConfig',
    'WindowConfig',
    'ThresholdConfig',
    'AlertConfig',
    'HealthCheckConfig',
    'MonitoringConfig',
    'create_monitoring_config',
]
