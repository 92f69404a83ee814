"""
Blueprint registration for the opsmonitor application.
"""

from flask import Flask

from opsmonitor.blueprints.health import health_bp
from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)


def register_blueprints(app: Flask) -> None:
    """Register every application blueprint."""
    app.register_blueprint(health_bp)
    logger.info(
        "Blueprints registered",
        blueprints=[health_bp.name],
        endpoints=['/health', '/metrics', '/metrics/performance', '/metrics/alerts']
    )


__all__ = ['health_bp', 'register_blueprints']
