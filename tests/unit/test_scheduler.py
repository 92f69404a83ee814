"""
Unit tests for the background monitoring scheduler.
"""

import asyncio
import threading
import time

import pytest

from opsmonitor.monitoring.exceptions import SchedulerError, UnknownTaskError
from opsmonitor.monitoring.scheduler import MonitoringScheduler


def _wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def scheduler():
    scheduler = MonitoringScheduler()
    yield scheduler
    scheduler.stop()


class TestTaskRegistration:

    @pytest.mark.unit
    def test_duplicate_name_is_rejected(self, scheduler):
        scheduler.add_task('system_metrics', 30, lambda: None)
        with pytest.raises(SchedulerError):
            scheduler.add_task('system_metrics', 60, lambda: None)

    @pytest.mark.unit
    @pytest.mark.parametrize('interval', [0, -5])
    def test_non_positive_interval_is_rejected(self, scheduler, interval):
        with pytest.raises(SchedulerError):
            scheduler.add_task('cleanup', interval, lambda: None)

    @pytest.mark.unit
    def test_unknown_task_lookup(self, scheduler):
        with pytest.raises(UnknownTaskError) as exc_info:
            scheduler.get_task('missing')
        assert exc_info.value.error_code == 'UNKNOWN_TASK'

    @pytest.mark.unit
    def test_cancel_removes_task(self, scheduler):
        scheduler.add_task('cleanup', 600, lambda: None)
        scheduler.cancel_task('cleanup')
        assert scheduler.task_names() == []
        with pytest.raises(UnknownTaskError):
            scheduler.cancel_task('cleanup')


class TestRunTask:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_sync_run(self, scheduler):
        calls = []
        scheduler.add_task('cleanup', 600, lambda: calls.append(1))

        assert await scheduler.run_task('cleanup') is True

        task = scheduler.get_task('cleanup')
        assert calls == [1]
        assert task.runs == 1
        assert task.failures == 0
        assert task.last_run is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_coroutine_function_is_awaited(self, scheduler):
        calls = []

        async def sample():
            await asyncio.sleep(0)
            calls.append('sampled')

        scheduler.add_task('system_metrics', 30, sample)

        assert await scheduler.run_task('system_metrics') is True
        assert calls == ['sampled']

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_is_contained_and_counted(self, scheduler):
        def broken():
            raise RuntimeError("sampler exploded")

        scheduler.add_task('system_metrics', 30, broken)

        assert await scheduler.run_task('system_metrics') is False
        assert await scheduler.run_task('system_metrics') is False

        task = scheduler.get_task('system_metrics')
        assert task.runs == 2
        assert task.failures == 2
        assert task.last_error == 'sampler exploded'
        assert task.to_dict()['failures'] == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_run_unknown_task(self, scheduler):
        with pytest.raises(UnknownTaskError):
            await scheduler.run_task('missing')


class TestLifecycle:

    @pytest.mark.unit
    def test_not_running_by_default(self, scheduler):
        assert scheduler.is_running is False
        assert scheduler.call_later(1, lambda: None) is False

    @pytest.mark.unit
    def test_trigger_without_loop_returns_none(self, scheduler):
        scheduler.add_task('cleanup', 600, lambda: None)
        assert scheduler.trigger('cleanup') is None

    @pytest.mark.unit
    def test_periodic_task_runs_and_survives_failures(self, scheduler):
        runs = []

        def flaky():
            runs.append(1)
            if len(runs) == 1:
                raise RuntimeError("first run fails")

        scheduler.add_task('flaky', 0.02, flaky)
        scheduler.start()

        assert scheduler.is_running
        assert _wait_until(lambda: len(runs) >= 3)
        assert scheduler.get_task('flaky').failures == 1

        scheduler.stop()
        assert scheduler.is_running is False

    @pytest.mark.unit
    def test_call_later_runs_callback_on_scheduler_thread(self, scheduler):
        fired = threading.Event()
        threads = []

        def callback():
            threads.append(threading.current_thread().name)
            fired.set()

        scheduler.start()
        assert scheduler.call_later(0.01, callback) is True

        assert fired.wait(timeout=3)
        assert threads == [MonitoringScheduler.THREAD_NAME]

    @pytest.mark.unit
    def test_trigger_runs_task_once(self, scheduler):
        calls = []
        scheduler.add_task('health_checks', 3600, lambda: calls.append(1))
        scheduler.start()

        future = scheduler.trigger('health_checks')

        assert future.result(timeout=3) is True
        assert calls == [1]

    @pytest.mark.unit
    def test_run_coroutine_uses_running_loop(self, scheduler):
        async def current_thread_name():
            return threading.current_thread().name

        scheduler.start()

        assert scheduler.run_coroutine(current_thread_name(), timeout=3) == MonitoringScheduler.THREAD_NAME

    @pytest.mark.unit
    def test_run_coroutine_without_loop(self, scheduler):
        async def answer():
            return 42

        assert scheduler.run_coroutine(answer()) == 42

    @pytest.mark.unit
    def test_run_coroutine_timeout(self, scheduler):
        async def slow():
            await asyncio.sleep(5)

        with pytest.raises(asyncio.TimeoutError):
            scheduler.run_coroutine(slow(), timeout=0.05)

    @pytest.mark.unit
    def test_status_lists_tasks(self, scheduler):
        scheduler.add_task('cleanup', 600, lambda: None)
        status = scheduler.status()
        assert status['running'] is False
        assert status['tasks']['cleanup']['interval_seconds'] == 600
