"""
Unit tests for correlation ID binding and the structlog processor.
"""

import pytest
from flask import Flask, g

from opsmonitor.monitoring.logging import (
    add_correlation_id,
    clear_correlation_id,
    get_correlation_id,
    new_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def unbound_correlation_id():
    clear_correlation_id()
    yield
    clear_correlation_id()


class TestCorrelationId:

    @pytest.mark.unit
    def test_generated_ids_are_unique(self):
        first, second = new_correlation_id(), new_correlation_id()
        assert first != second
        assert len(first) == 32

    @pytest.mark.unit
    def test_set_without_value_generates_one(self):
        correlation_id = set_correlation_id()
        assert correlation_id
        assert get_correlation_id() == correlation_id

    @pytest.mark.unit
    def test_bound_to_request_context(self):
        app = Flask(__name__)

        with app.test_request_context('/'):
            set_correlation_id('req-42')
            assert g.correlation_id == 'req-42'

            clear_correlation_id()
            assert get_correlation_id() is None
            assert 'correlation_id' not in g

    @pytest.mark.unit
    def test_processor_adds_bound_id(self):
        set_correlation_id('req-7')

        event = add_correlation_id(None, 'info', {'event': 'Request completed'})

        assert event['correlation_id'] == 'req-7'

    @pytest.mark.unit
    def test_processor_keeps_explicit_id(self):
        set_correlation_id('req-7')

        event = add_correlation_id(None, 'info', {'event': 'x', 'correlation_id': 'explicit'})

        assert event['correlation_id'] == 'explicit'

    @pytest.mark.unit
    def test_processor_without_bound_id(self):
        assert add_correlation_id(None, 'info', {'event': 'x'}) == {'event': 'x'}
