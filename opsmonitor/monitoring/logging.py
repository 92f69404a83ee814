"""
Structured Logging Implementation using structlog

JSON-formatted structured logging with correlation ID tracking for the monitoring
engine and the Flask service it instruments.

Key Features:
- structlog processors layered over the standard library logging module
- JSON or console rendering selected through LOG_FORMAT
- Correlation ID tracking through a ContextVar, propagated via the
  X-Correlation-ID / X-Request-ID headers and echoed on responses
- Flask middleware logging request completion and unhandled exceptions
"""

import logging
import logging.config
import os
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from flask import Flask, g, has_request_context, request


# Correlation ID context variable for request tracking
correlation_id_context: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


class LoggingConfig:
    """
    Logging configuration read from the environment.
    """

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')  # json, console
    COLORED_CONSOLE_OUTPUT = os.getenv('COLORED_CONSOLE_OUTPUT', 'false').lower() == 'true'

    CORRELATION_ID_ENABLED = os.getenv('CORRELATION_ID_ENABLED', 'true').lower() == 'true'
    REQUEST_LOGGING_ENABLED = os.getenv('REQUEST_LOGGING_ENABLED', 'true').lower() == 'true'

    APPLICATION_NAME = os.getenv('APPLICATION_NAME', 'opsmonitor')
    APPLICATION_VERSION = os.getenv('APPLICATION_VERSION', '1.0.0')
    ENVIRONMENT = os.getenv('FLASK_ENV', 'development')


def new_correlation_id() -> str:
    """Random request identifier used when the caller supplies none."""
    return uuid.uuid4().hex


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind ``correlation_id`` (or a new one) to the current context and request."""
    correlation_id = correlation_id or new_correlation_id()
    correlation_id_context.set(correlation_id)

    if has_request_context():
        g.correlation_id = correlation_id

    return correlation_id


def get_correlation_id() -> Optional[str]:
    correlation_id = correlation_id_context.get()
    if correlation_id:
        return correlation_id

    if has_request_context():
        return getattr(g, 'correlation_id', None)

    return None


def clear_correlation_id() -> None:
    correlation_id_context.set(None)
    if has_request_context():
        g.pop('correlation_id', None)


def add_correlation_id(logger, method_name, event_dict):
    """structlog processor adding the bound correlation ID to every event."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict.setdefault('correlation_id', correlation_id)
    return event_dict


def setup_structured_logging(app: Optional[Flask] = None) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog and the standard library logging tree.

    Args:
        app: Optional Flask application; its LOG_LEVEL config overrides the env

    Returns:
        Configured structured logger instance
    """
    log_level = LoggingConfig.LOG_LEVEL
    if app is not None:
        log_level = str(app.config.get('LOG_LEVEL', log_level)).upper()

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        add_correlation_id,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if LoggingConfig.LOG_FORMAT == 'console':
        processors.append(structlog.dev.ConsoleRenderer(colors=LoggingConfig.COLORED_CONSOLE_OUTPUT))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {
                'format': '%(message)s'
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'plain',
                'stream': 'ext://sys.stdout'
            }
        },
        'loggers': {
            '': {
                'handlers': ['console'],
                'level': log_level,
            }
        }
    })

    logger = structlog.get_logger(LoggingConfig.APPLICATION_NAME)
    logger.info(
        "Structured logging initialized",
        log_level=log_level,
        log_format=LoggingConfig.LOG_FORMAT,
        correlation_tracking=LoggingConfig.CORRELATION_ID_ENABLED,
        environment=LoggingConfig.ENVIRONMENT,
        version=LoggingConfig.APPLICATION_VERSION
    )

    return logger


def create_flask_logging_middleware(
    logger: Optional[structlog.stdlib.BoundLogger] = None
) -> Callable:
    """
    Create Flask middleware for request logging with correlation ID tracking.

    Args:
        logger: Optional logger instance

    Returns:
        Callable that installs the hooks on a Flask application
    """
    if logger is None:
        logger = structlog.get_logger(LoggingConfig.APPLICATION_NAME)

    def logging_middleware(app: Flask):
        """Install request logging hooks on the application."""

        @app.before_request
        def before_request():
            g.logging_start_time = time.perf_counter()

            if not LoggingConfig.CORRELATION_ID_ENABLED:
                return

            correlation_id = (
                request.headers.get('X-Correlation-ID') or
                request.headers.get('X-Request-ID') or
                new_correlation_id()
            )
            set_correlation_id(correlation_id)

        @app.after_request
        def after_request(response):
            if LoggingConfig.REQUEST_LOGGING_ENABLED:
                start_time = getattr(g, 'logging_start_time', None)
                duration_ms = (time.perf_counter() - start_time) * 1000 if start_time else 0

                logger.info(
                    "Request completed",
                    method=request.method,
                    path=request.path,
                    endpoint=request.endpoint,
                    status_code=response.status_code,
                    duration_ms=round(duration_ms, 2)
                )

            correlation_id = get_correlation_id()
            if correlation_id:
                response.headers['X-Correlation-ID'] = correlation_id

            return response

        @app.teardown_request
        def teardown_request(exception=None):
            clear_correlation_id()

        @app.errorhandler(Exception)
        def handle_exception(error):
            """Handle and log application exceptions."""
            # Let HTTP errors (404, 405, ...) render normally
            if hasattr(error, 'code') and hasattr(error, 'get_response'):
                return error

            correlation_id = get_correlation_id()

            logger.error(
                "Unhandled exception occurred",
                exception_type=type(error).__name__,
                exception_message=str(error),
                endpoint=request.endpoint if has_request_context() else None,
                method=request.method if has_request_context() else None,
                path=request.path if has_request_context() else None,
                exc_info=True
            )

            error_response = {
                'error': 'Internal server error',
                'correlation_id': correlation_id,
                'timestamp': datetime.now(timezone.utc).isoformat()
            }

            return error_response, 500

    return logging_middleware


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance with optional name.

    Args:
        name: Logger name, defaults to application name

    Returns:
        Configured structured logger
    """
    logger_name = name or LoggingConfig.APPLICATION_NAME
    return structlog.get_logger(logger_name)


__all__ = [
    'LoggingConfig',
    'add_correlation_id',
    'setup_structured_logging',
    'create_flask_logging_middleware',
    'get_logger',
    'set_correlation_id',
    'get_correlation_id',
    'clear_correlation_id',
]
