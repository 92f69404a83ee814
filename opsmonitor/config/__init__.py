"""
Configuration package for the opsmonitor Flask service.

Exposes the environment configuration classes and the monitoring engine
dataclass configuration.
"""

from opsmonitor.config.monitoring import (
    AlertConfig,
    HealthCheckConfig,
    MonitoringConfig,
    SchedulerConfig,
    ThresholdConfig,
    WindowConfig,
    create_monitoring_config,
)
from opsmonitor.config.settings import (
    BaseConfig,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    config_map,
    get_config,
    validate_configuration,
)

__all__ = [
    'AlertConfig',
    'HealthCheckConfig',
    'MonitoringConfig',
    'SchedulerConfig',
    'ThresholdConfig',
    'WindowConfig',
    'create_monitoring_config',
    'BaseConfig',
    'DevelopmentConfig',
    'ProductionConfig',
    'TestingConfig',
    'config_map',
    'get_config',
    'validate_configuration',
]
