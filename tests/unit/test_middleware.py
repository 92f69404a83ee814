"""
Unit tests for the request metrics middleware.
"""

import pytest
from flask import Flask, g

from opsmonitor.monitoring.middleware import RequestMetricsMiddleware


@pytest.fixture
def instrumented(mocker):
    engine = mocker.Mock()
    app = Flask(__name__)
    RequestMetricsMiddleware(engine).init_app(app)

    @app.route('/orders/<int:order_id>')
    def order(order_id):
        g.user_role = 'manager'
        return {'id': order_id}

    @app.route('/health/live')
    def live():
        return {'status': 'ok'}

    return app, engine


class TestRequestMetricsMiddleware:

    @pytest.mark.unit
    def test_request_lifecycle_is_recorded(self, instrumented):
        app, engine = instrumented

        app.test_client().get('/orders/7', headers={'User-Agent': 'curl/8.4.0'})

        engine.record_request_started.assert_called_once_with('GET', '/orders/<int:order_id>')
        kwargs = engine.record_request_completed.call_args.kwargs
        assert kwargs['endpoint'] == '/orders/<int:order_id>'
        assert kwargs['status_code'] == 200
        assert kwargs['role'] == 'manager'
        assert kwargs['user_agent'] == 'curl/8.4.0'
        assert kwargs['duration_ms'] >= 0

    @pytest.mark.unit
    def test_monitoring_paths_are_excluded(self, instrumented):
        app, engine = instrumented

        app.test_client().get('/health/live')

        engine.record_request_started.assert_not_called()
        engine.record_request_completed.assert_not_called()

    @pytest.mark.unit
    def test_recording_failure_does_not_break_response(self, instrumented):
        app, engine = instrumented
        engine.record_request_completed.side_effect = RuntimeError("counter store unavailable")

        response = app.test_client().get('/orders/1')

        assert response.status_code == 200

    @pytest.mark.unit
    def test_custom_exclusions(self, mocker):
        engine = mocker.Mock()
        app = Flask(__name__)
        RequestMetricsMiddleware(engine, excluded_prefixes=()).init_app(app)

        @app.route('/health')
        def health():
            return {'status': 'ok'}

        app.test_client().get('/health')

        engine.record_request_started.assert_called_once_with('GET', '/health')
