"""
Flask Application WSGI Entry Point

WSGI application module for Gunicorn/uWSGI deployment and local development.

Usage Examples:
    # Production WSGI deployment
    gunicorn --workers 1 --threads 8 "app:application"

    # Development server
    export FLASK_ENV=development
    python app.py --port 5000
"""

import argparse
import atexit
import os
import signal
import sys

from opsmonitor.app import cleanup_application, create_app
from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)

application = create_app(os.getenv('FLASK_ENV', 'production'))

atexit.register(cleanup_application, application)


def _graceful_shutdown(signum, frame):
    logger.info("Received shutdown signal", signal=signum)
    cleanup_application(application)
    sys.exit(0)


signal.signal(signal.SIGTERM, _graceful_shutdown)


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='opsmonitor development server')
    parser.add_argument(
        '--host',
        default=os.getenv('FLASK_HOST', '127.0.0.1'),
        help='Development server host (default: 127.0.0.1)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=int(os.getenv('FLASK_PORT', 5000)),
        help='Development server port (default: 5000)'
    )
    args = parser.parse_args()

    try:
        # The reloader would start a second scheduler thread in the child process
        application.run(host=args.host, port=args.port, threaded=True, use_reloader=False)
    except KeyboardInterrupt:
        logger.info("Development server stopped by user")
