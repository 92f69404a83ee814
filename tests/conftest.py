"""
Shared pytest fixtures for the opsmonitor test suite.

Provides a controllable clock, in-memory document stores for the database
health probe, a MonitoringEngine with its scheduler stopped, and a Flask
application/client pair built through the application factory in testing mode.

Periodic work is driven explicitly in tests with ``await scheduler.run_task(name)``
or by calling the engine tick methods directly.
"""

import asyncio
from typing import Any, Dict, Optional, Tuple

import pytest

from opsmonitor.app import cleanup_application, create_app
from opsmonitor.config.monitoring import (
    AlertConfig,
    MonitoringConfig,
    SchedulerConfig,
    ThresholdConfig,
)
from opsmonitor.monitoring.engine import MonitoringEngine


def pytest_collection_modifyitems(config, items):
    """Mark tests by directory."""
    for item in items:
        test_file_path = str(item.fspath)
        if "/unit/" in test_file_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_file_path:
            item.add_marker(pytest.mark.integration)


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryDocumentStore:
    """Document store double recording canary writes."""

    def __init__(self, fail_with: Optional[Exception] = None, delay: float = 0.0, lose_writes: bool = False):
        self.fail_with = fail_with
        self.delay = delay
        self.lose_writes = lose_writes
        self.documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.writes = 0

    async def write(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.writes += 1
        if not self.lose_writes:
            self.documents[(collection, document_id)] = dict(document)

    async def read(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        return self.documents.get((collection, document_id))


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def failing_document_store():
    return InMemoryDocumentStore(fail_with=ConnectionError("connection refused by database host"))


@pytest.fixture
def lossy_document_store():
    return InMemoryDocumentStore(lose_writes=True)


@pytest.fixture
def slow_document_store():
    return InMemoryDocumentStore(delay=0.2)


@pytest.fixture
def monitoring_config(tmp_path):
    """Monitoring configuration with default thresholds and the scheduler disabled."""
    return MonitoringConfig(
        environment='testing',
        version='9.9.9-test',
        scheduler=SchedulerConfig(enabled=False),
        alerts=AlertConfig(thresholds=ThresholdConfig()),
        disk_path=str(tmp_path),
    )


@pytest.fixture
def engine(monitoring_config, document_store, fake_clock):
    return MonitoringEngine(
        config=monitoring_config,
        document_store=document_store,
        clock=fake_clock
    )


def _build_app(monitoring_config, store, clock):
    return create_app(
        'testing',
        document_store=store,
        monitoring_config=monitoring_config,
        engine_options={'clock': clock},
        STRUCTURED_LOGGING_ENABLED=False,
    )


@pytest.fixture
def flask_app(monitoring_config, document_store, fake_clock):
    app = _build_app(monitoring_config, document_store, fake_clock)

    @app.route('/foo')
    def foo():
        return {'ok': True}

    @app.route('/users/<int:user_id>')
    def user(user_id):
        return {'id': user_id}

    @app.route('/fail')
    def fail():
        return {'error': 'boom'}, 500

    yield app
    cleanup_application(app)


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def app_engine(flask_app):
    return flask_app.extensions['opsmonitor']


@pytest.fixture
def failing_app(monitoring_config, failing_document_store, fake_clock):
    app = _build_app(monitoring_config, failing_document_store, fake_clock)
    yield app
    cleanup_application(app)
