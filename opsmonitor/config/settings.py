"""
Main Flask Configuration Classes

Environment-specific settings (Development, Testing, Production) for the Flask
application factory. Environment variables are loaded via python-dotenv and the
monitoring engine configuration is built from opsmonitor.config.monitoring.

Key Components:
- BaseConfig with application metadata and health check settings
- Environment-specific subclasses with logging and scheduler adjustments
- get_config() environment lookup and validate_configuration() checks
"""

import logging
import os
from typing import Dict, List, Optional, Type

from dotenv import load_dotenv
from flask import Flask

from opsmonitor.config.monitoring import MonitoringConfig, create_monitoring_config

# Load environment variables early
load_dotenv()

logger = logging.getLogger(__name__)


class BaseConfig:
    """
    Base configuration shared by every environment.
    """

    SECRET_KEY = os.getenv('SECRET_KEY', os.urandom(32).hex())

    # Application Metadata
    APP_NAME = os.getenv('APP_NAME', 'opsmonitor')
    APP_VERSION = os.getenv('APP_VERSION', '1.0.0')

    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    JSON_SORT_KEYS = False

    # Monitoring engine
    MONITORING_ENABLED = os.getenv('MONITORING_ENABLED', 'true').lower() == 'true'
    MONITORING_SCHEDULER_ENABLED = os.getenv('MONITORING_SCHEDULER_ENABLED', 'true').lower() == 'true'
    MONITORING_CONFIG: Optional[MonitoringConfig] = None

    # Document store used by the database health probe
    MONGODB_URI = os.getenv('MONGODB_URI', 'mongodb://localhost:27017')
    MONGODB_DATABASE = os.getenv('MONGODB_DATABASE', 'opsmonitor')
    MONGODB_SERVER_SELECTION_TIMEOUT_MS = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '500'))

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """
        Initialize Flask application with base configuration.

        Args:
            app: Flask application instance
        """
        app.json.sort_keys = cls.JSON_SORT_KEYS

        app.logger.info(
            "Base configuration initialized",
            extra={
                'app_name': cls.APP_NAME,
                'app_version': cls.APP_VERSION,
                'environment': cls.FLASK_ENV,
                'monitoring_enabled': cls.MONITORING_ENABLED,
            }
        )


class DevelopmentConfig(BaseConfig):
    """Development environment configuration with debug features enabled."""

    DEBUG = True
    TESTING = False
    FLASK_ENV = 'development'


class TestingConfig(BaseConfig):
    """
    Testing environment configuration.

    The scheduler thread is disabled so tests drive periodic work explicitly,
    and health probes use short timeouts.
    """

    TESTING = True
    DEBUG = True
    FLASK_ENV = 'testing'
    SECRET_KEY = 'testing-secret-key-with-at-least-32-characters'

    MONITORING_SCHEDULER_ENABLED = False


class ProductionConfig(BaseConfig):
    """Production configuration."""

    DEBUG = False
    TESTING = False
    FLASK_ENV = 'production'


config_map: Dict[str, Type[BaseConfig]] = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,

    # Aliases for convenience
    'dev': DevelopmentConfig,
    'test': TestingConfig,
    'prod': ProductionConfig,
}


def get_config(environment: Optional[str] = None) -> Type[BaseConfig]:
    """
    Get configuration class for the specified environment.

    Args:
        environment: Target environment name (defaults to FLASK_ENV)

    Returns:
        Configuration class for the specified environment

    Raises:
        ValueError: If environment is not supported
    """
    if environment is None:
        environment = os.getenv('FLASK_ENV', 'development')

    environment = environment.lower()

    if environment not in config_map:
        raise ValueError(
            f"Unsupported environment '{environment}'. "
            f"Supported environments: {list(config_map.keys())}"
        )

    config_class = config_map[environment]

    logger.info(
        "Configuration class selected",
        extra={
            'environment': environment,
            'config_class': config_class.__name__
        }
    )

    return config_class


def validate_configuration(config: BaseConfig) -> List[str]:
    """
    Validate configuration settings and return list of issues.

    Args:
        config: Configuration instance to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    issues = []

    if not config.SECRET_KEY:
        issues.append("SECRET_KEY is required")
    elif len(config.SECRET_KEY) < 32:
        issues.append("SECRET_KEY should be at least 32 characters long")

    monitoring_config = config.MONITORING_CONFIG or create_monitoring_config(config.FLASK_ENV)
    issues.extend(monitoring_config.validate())

    logger.info(
        "Configuration validation completed",
        extra={
            'config_class': config.__class__.__name__,
            'issues_found': len(issues),
            'issues': issues
        }
    )

    return issues


__all__ = [
    'BaseConfig',
    'DevelopmentConfig',
    'TestingConfig',
    'ProductionConfig',
    'config_map',
    'get_config',
    'validate_configuration',
]
