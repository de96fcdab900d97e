"""
Unit tests for the structured logging subsystem.

Test Coverage
-------------
- Health report of the queue-backed handler
- Log context stamped onto records
- JSON output carries context and extra fields
"""

import json
import logging

import pytest

from fuelpoints.core.logging import LogContext, get_logger, get_logging_health
from fuelpoints.core.logging.logger import ContextFilter, JSONFormatter


def _record(message: str = "Completion confirmed", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="fuelpoints.modules.completion.workflow",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestLoggingHealth:
    def test_initialized_on_import(self):
        health = get_logging_health()

        assert health.initialized
        assert health.queue_max_size == 10_000

    def test_records_counted_when_enqueued(self):
        before = get_logging_health().records_enqueued

        get_logger("fuelpoints.tests").warning("Logging health check")

        assert get_logging_health().records_enqueued == before + 1


@pytest.mark.unit
class TestContextFilter:
    def test_context_stamped_on_record(self):
        record = _record()

        with LogContext(player_id="p1", operation="resync"):
            ContextFilter().filter(record)

        assert record.player_id == "p1"
        assert record.operation == "resync"
        assert record.instance_id == "N/A"
        assert record.component == "fuelpoints"

    def test_explicit_extra_used_without_context(self):
        record = _record(instance_id="b1")

        ContextFilter().filter(record)

        assert record.instance_id == "b1"
        assert record.player_id == "N/A"
        assert record.correlation_id == "N/A"


@pytest.mark.unit
class TestJSONFormatter:
    def test_context_and_extra_fields_serialized(self):
        record = _record(fp_earned=3)
        with LogContext(player_id="p1", action_kind="daily_boost", correlation_id="abc123"):
            ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Completion confirmed"
        assert data["level"] == "INFO"
        assert data["player_id"] == "p1"
        assert data["action_kind"] == "daily_boost"
        assert data["correlation_id"] == "abc123"
        assert "operation" not in data
        assert data["extra"] == {"fp_earned": 3}
