"""
Health and Metrics Blueprint

HTTP surface of the monitoring engine.

Endpoint Implementation:
- /health: runs every health probe, HTTP 200 when healthy and 503 otherwise
- /metrics: JSON snapshot of request totals, error rate, resource gauges,
  last known health and active alert count
- /metrics/performance: latency percentiles per endpoint window
- /metrics/alerts: active alerts, newest first

The engine is looked up on ``current_app.extensions``; the blueprint holds no
state of its own.
"""

from flask import Blueprint, current_app, jsonify

from opsmonitor.monitoring import get_engine
from opsmonitor.monitoring.logging import get_logger
from opsmonitor.utils.formatting import utc_timestamp

logger = get_logger(__name__)

health_bp = Blueprint(
    'health',
    __name__,
    url_prefix=''
)


@health_bp.route('/health', methods=['GET'])
def health():
    """
    Application health endpoint for load balancers and uptime checks.

    Returns:
        JSON response with overall status, version, environment and per-probe checks
        HTTP 200 if healthy, HTTP 503 if any probe is not healthy or the run failed
    """
    try:
        reporter = get_engine(current_app).reporter
    except Exception as e:
        logger.error("Health endpoint unavailable", error=str(e))
        return jsonify({
            'status': 'error',
            'error': 'Health check failed',
            'timestamp': utc_timestamp(),
        }), 503

    response_data, status_code = reporter.health_response()
    return jsonify(response_data), status_code


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """
    Monitoring snapshot. Never triggers a resource sample.

    Returns:
        JSON metrics summary, HTTP 500 if collection fails
    """
    try:
        reporter = get_engine(current_app).reporter
    except Exception as e:
        logger.error("Metrics endpoint unavailable", error=str(e))
        return jsonify({
            'error': 'Failed to collect metrics',
            'timestamp': utc_timestamp(),
        }), 500

    response_data, status_code = reporter.metrics_response()
    return jsonify(response_data), status_code


@health_bp.route('/metrics/performance', methods=['GET'])
def performance_metrics():
    try:
        return jsonify(get_engine(current_app).reporter.performance_stats()), 200
    except Exception as e:
        logger.error("Performance statistics failed", error=str(e), exc_info=True)
        return jsonify({
            'error': 'Failed to collect performance statistics',
            'timestamp': utc_timestamp(),
        }), 500


@health_bp.route('/metrics/alerts', methods=['GET'])
def active_alerts():
    try:
        return jsonify(get_engine(current_app).reporter.alerts_payload()), 200
    except Exception as e:
        logger.error("Alert listing failed", error=str(e), exc_info=True)
        return jsonify({
            'error': 'Failed to list alerts',
            'timestamp': utc_timestamp(),
        }), 500


__all__ = ['health_bp']
