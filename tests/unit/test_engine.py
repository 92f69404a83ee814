"""
Unit tests for MonitoringEngine producers, periodic work and cleanup.
"""

import pytest

from opsmonitor.monitoring.alerts import HIGH_ERROR_RATE, SLOW_RESPONSE
from opsmonitor.monitoring.engine import (
    CLEANUP_TASK,
    HEALTH_CHECKS_TASK,
    SYSTEM_METRICS_TASK,
    status_class,
)
from opsmonitor.monitoring.events import ErrorOccurred, FileProcessed, RequestCompleted
from opsmonitor.monitoring.health import HealthStatus


def _request(engine, endpoint, status_code, duration_ms=5.0, method='GET', role=None, user_agent=None):
    engine.record_request_started(method, endpoint)
    engine.record_request_completed(method, endpoint, status_code, duration_ms, role=role, user_agent=user_agent)


class TestRequestRecording:

    @pytest.mark.unit
    @pytest.mark.parametrize('code, expected', [(200, '2xx'), (302, '3xx'), (404, '4xx'), (503, '5xx')])
    def test_status_class(self, code, expected):
        assert status_class(code) == expected

    @pytest.mark.unit
    def test_counters_for_successful_request(self, engine):
        _request(engine, '/users/42', 200, method='post', role='admin')

        counters = engine.counters
        assert counters.get('requests.total') == 1
        assert counters.get('requests.method.POST') == 1
        assert counters.get('requests.endpoint./users/:id') == 1
        assert counters.get('responses.status.2xx') == 1
        assert counters.get('requests.role.admin') == 1
        assert counters.get('responses.errors') == 0
        assert engine.performance.samples('response_time./users/:id') == [5.0]

    @pytest.mark.unit
    def test_error_response_is_counted(self, engine):
        _request(engine, '/orders', 404)

        assert engine.counters.get('responses.errors') == 1
        assert engine.counters.get('error.404') == 1
        assert engine.counters.get('responses.status.4xx') == 1

    @pytest.mark.unit
    def test_events_are_published(self, engine):
        completed, errors = [], []
        engine.events.subscribe(RequestCompleted, completed.append)
        engine.events.subscribe(ErrorOccurred, errors.append)

        _request(
            engine,
            '/upload',
            500,
            method='POST',
            user_agent='Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0'
        )

        assert completed[0].status_code == 500
        assert errors[0].user_agent == 'Firefox/121.0'

    @pytest.mark.unit
    def test_slow_response_raises_alert(self, engine):
        engine.set_thresholds({'responseTime': 100})

        _request(engine, '/foo', 200, duration_ms=250.0)

        alerts = engine.alerts.active_alerts()
        assert [alert.type for alert in alerts] == [SLOW_RESPONSE]
        assert alerts[0].to_dict()['data'] == {'endpoint': '/foo', 'duration': 250.0, 'threshold': 100.0}

    @pytest.mark.unit
    def test_error_rate_alert_after_minimum_requests(self, engine):
        for _ in range(110):
            _request(engine, '/foo', 200)
        for _ in range(10):
            _request(engine, '/fail', 500)

        assert engine.counters.get('requests.total') == 120
        assert engine.counters.get('responses.errors') == 10
        assert HIGH_ERROR_RATE in {alert.type for alert in engine.alerts.active_alerts()}

    @pytest.mark.unit
    def test_error_rate_not_evaluated_below_minimum(self, engine):
        for _ in range(50):
            _request(engine, '/fail', 500)

        assert engine.check_error_rate() is None
        assert engine.alerts.active_alerts() == []


class TestProducers:

    @pytest.mark.unit
    def test_record_file_processed(self, engine):
        seen = []
        engine.events.subscribe(FileProcessed, seen.append)

        engine.record_file_processed('PDF', 120.0, size_bytes=2048)
        engine.record_file_processed('pdf', 80.0, success=False)

        assert engine.counters.get('files.processed.total') == 2
        assert engine.counters.get('files.processed.pdf') == 2
        assert engine.counters.get('files.errors') == 1
        assert engine.performance.samples('file_processing.pdf') == [120.0, 80.0]
        assert seen[0].size_bytes == 2048

    @pytest.mark.unit
    def test_record_query(self, engine):
        engine.record_query('users', 'find', 12.5, document_count=3)
        engine.record_query('users', 'update', 30.0, success=False)

        assert engine.counters.get('queries.total') == 2
        assert engine.counters.get('queries.operation.find') == 1
        assert engine.counters.get('queries.errors') == 1
        assert engine.performance.samples('query.users') == [12.5, 30.0]


class TestPeriodicWork:

    @pytest.mark.unit
    def test_tasks_are_registered(self, engine):
        assert set(engine.scheduler.task_names()) == {SYSTEM_METRICS_TASK, HEALTH_CHECKS_TASK, CLEANUP_TASK}
        assert engine.scheduler.get_task(SYSTEM_METRICS_TASK).interval == 30.0
        assert engine.scheduler.get_task(HEALTH_CHECKS_TASK).interval == 60.0
        assert engine.scheduler.get_task(CLEANUP_TASK).interval == 600.0

    @pytest.mark.unit
    def test_builtin_probes(self, engine):
        assert engine.health.probe_names() == ['firebase', 'memory', 'uptime']

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_system_metrics_task_fills_gauges(self, engine):
        assert await engine.scheduler.run_task(SYSTEM_METRICS_TASK) is True
        assert engine.gauges.get('memory.rss') is not None
        assert engine.gauges.get('uptime') == 0.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_health_task_caches_report(self, engine, mocker):
        mocker.patch.object(engine.health, '_probes', {
            name: probe for name, probe in engine.health._probes.items() if name != 'memory'
        })

        assert await engine.scheduler.run_task(HEALTH_CHECKS_TASK) is True

        report = engine.health.last_report
        assert report.status is HealthStatus.HEALTHY
        assert set(report.checks) == {'firebase', 'uptime'}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failing_sample_is_contained(self, engine, mocker):
        mocker.patch.object(engine.sampler, 'sample', side_effect=RuntimeError("psutil unavailable"))

        assert await engine.scheduler.run_task(SYSTEM_METRICS_TASK) is False
        assert engine.scheduler.get_task(SYSTEM_METRICS_TASK).failures == 1

    @pytest.mark.unit
    def test_cleanup_compacts_and_trims(self, engine, fake_clock):
        engine.config.windows.max_counter_keys = 5
        for index in range(10):
            _request(engine, f"/reports/r{index}", 200)
        for _ in range(80):
            engine.performance.record('/foo', 1.0)
        engine.alerts.check_system(cpu=99.0)
        fake_clock.advance(3600)

        result = engine.cleanup()

        assert result['compacted'] is True
        assert result['samples_trimmed'] == 30
        assert result['alerts_expired'] == 1
        assert engine.counters.get('requests.total') == 0
        assert 'requests.endpoint./reports/r0' not in engine.counters

    @pytest.mark.unit
    def test_start_without_scheduler_thread_is_safe(self, engine):
        assert engine.is_running is False
        engine.stop()
