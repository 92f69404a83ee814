"""
Flask Application Factory

Creates the Flask application and wires the monitoring engine into it:
- Environment-specific configuration loading and validation
- structlog structured logging with correlation ID middleware
- MonitoringEngine construction, request middleware and scheduler start
- Health and metrics blueprint registration

The engine is owned by the application (``app.extensions['opsmonitor']``) and
stopped by cleanup_application().
"""

import os
import sys
import time
from typing import Any, Optional

from flask import Flask

from opsmonitor import __version__
from opsmonitor.blueprints import register_blueprints
from opsmonitor.config.monitoring import MonitoringConfig, create_monitoring_config
from opsmonitor.config.settings import get_config, validate_configuration
from opsmonitor.data.document_store import MotorDocumentStore
from opsmonitor.monitoring import EXTENSION_KEY, init_monitoring
from opsmonitor.monitoring.logging import (
    create_flask_logging_middleware,
    get_logger,
    setup_structured_logging,
)

logger = get_logger(__name__)


class ApplicationFactory:
    """
    Flask application factory.
    """

    def create_application(
        self,
        config_name: Optional[str] = None,
        document_store: Any = None,
        monitoring_config: Optional[MonitoringConfig] = None,
        engine_options: Optional[dict] = None,
        **config_overrides
    ) -> Flask:
        """
        Create and configure the Flask application.

        Args:
            config_name: Configuration environment name (development, testing, production)
            document_store: Store for the database health probe; a MotorDocumentStore
                on MONGODB_URI is created when omitted
            monitoring_config: Monitoring configuration, built from the environment when omitted
            engine_options: Extra MonitoringEngine arguments (clock, scheduler, event_bus)
            **config_overrides: Flask configuration overrides

        Returns:
            Configured Flask application

        Raises:
            RuntimeError: If application creation fails
        """
        creation_start_time = time.time()

        try:
            app = Flask(__name__.split('.')[0])

            self._configure_application(app, config_name, **config_overrides)
            self._initialize_logging(app)
            self._initialize_monitoring(app, document_store, monitoring_config, engine_options or {})
            register_blueprints(app)

            logger.info(
                "Flask application created",
                app_name=app.name,
                environment=app.config.get('ENVIRONMENT'),
                python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
                creation_time_ms=round((time.time() - creation_start_time) * 1000, 2)
            )
            return app

        except Exception as e:
            logger.error(
                "Flask application creation failed",
                error=str(e),
                error_type=type(e).__name__,
                config_name=config_name
            )
            raise RuntimeError(f"Flask application factory failed: {str(e)}") from e

    def _configure_application(self, app: Flask, config_name: Optional[str], **config_overrides) -> None:
        environment = config_name or os.getenv('FLASK_ENV', 'development')
        config_class = get_config(environment)
        app.config.from_object(config_class)

        if config_overrides:
            app.config.update(config_overrides)
            logger.info(
                "Configuration overrides applied",
                overrides=list(config_overrides.keys()),
                environment=environment
            )

        app.config.update({
            'ENVIRONMENT': app.config.get('FLASK_ENV', environment),
            'CONFIG_CLASS': config_class.__name__,
            'APP_FACTORY_VERSION': __version__,
        })
        config_class.init_app(app)

        issues = validate_configuration(config_class())
        if issues:
            logger.warning("Configuration validation warnings", issues=issues)

    def _initialize_logging(self, app: Flask) -> None:
        if not app.config.get('STRUCTURED_LOGGING_ENABLED', True):
            return
        app_logger = setup_structured_logging(app)
        create_flask_logging_middleware(app_logger)(app)

    def _initialize_monitoring(
        self,
        app: Flask,
        document_store: Any,
        monitoring_config: Optional[MonitoringConfig],
        engine_options: dict
    ) -> None:
        if not app.config.get('MONITORING_ENABLED', True):
            logger.warning("Monitoring disabled by configuration")
            return

        config = monitoring_config or app.config.get('MONITORING_CONFIG')
        if config is None:
            config = create_monitoring_config(app.config.get('ENVIRONMENT'))
            config.version = app.config.get('APP_VERSION', config.version)

        if document_store is None and app.config.get('MONGODB_URI'):
            document_store = MotorDocumentStore(
                app.config['MONGODB_URI'],
                app.config.get('MONGODB_DATABASE', 'opsmonitor'),
                server_selection_timeout_ms=app.config.get('MONGODB_SERVER_SELECTION_TIMEOUT_MS', 500)
            )

        start_scheduler = bool(app.config.get('MONITORING_SCHEDULER_ENABLED', True)) and config.scheduler.enabled
        init_monitoring(
            app,
            config=config,
            document_store=document_store,
            start_scheduler=start_scheduler,
            **engine_options
        )


_application_factory = ApplicationFactory()


def create_app(config_name: Optional[str] = None, **kwargs) -> Flask:
    """
    Create Flask application using the application factory.

    Examples:
        app = create_app('development')
        app = create_app('testing', document_store=fake_store)
        application = create_app('production')
    """
    return _application_factory.create_application(config_name=config_name, **kwargs)


def cleanup_application(app: Flask) -> None:
    """Stop the monitoring scheduler for graceful shutdown."""
    engine = app.extensions.get(EXTENSION_KEY)
    if engine is not None:
        engine.stop()
        logger.info("Application resources released", app_name=app.name)


__all__ = ['ApplicationFactory', 'create_app', 'cleanup_application']
