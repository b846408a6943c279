"""Tests for logging configuration and formatters."""

import json
import logging
import sys
from datetime import datetime, timezone

import pytest

from hrnotify.domain.models import EmailStatus
from hrnotify.logging import ComponentLoggerAdapter, get_logger
from hrnotify.logging.config import (
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from hrnotify.logging.context import log_context


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest left it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(msg="Test message", level=logging.INFO, exc_info=None, **extra):
    record = logging.getLogger("hrnotify.test").makeRecord(
        "hrnotify.test", level, "test.py", 1, msg, (), exc_info, extra=extra or None
    )
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_mandatory_fields(self):
        """Test each line carries timestamp, level, logger and message."""
        log_obj = json.loads(JSONFormatter().format(make_record()))

        assert log_obj["level"] == "INFO"
        assert log_obj["logger"] == "hrnotify.test"
        assert log_obj["message"] == "Test message"
        assert log_obj["timestamp"].endswith("Z")

    def test_extra_fields_are_serialized(self):
        """Test enums, datetimes and plain values from extra= are emitted."""
        sent_at = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
        record = make_record(
            event="queue.email.sent",
            email_log_id=42,
            status=EmailStatus.SENT,
            sent_at=sent_at,
            detail=object(),
        )

        log_obj = json.loads(JSONFormatter().format(record))

        assert log_obj["event"] == "queue.email.sent"
        assert log_obj["email_log_id"] == 42
        assert log_obj["status"] == "SENT"
        assert log_obj["sent_at"] == sent_at.isoformat()
        assert isinstance(log_obj["detail"], str)

    def test_exception_is_included(self):
        """Test exc_info is rendered as a traceback string."""
        try:
            raise ValueError("broken template")
        except ValueError:
            record = make_record(level=logging.ERROR, exc_info=sys.exc_info())

        log_obj = json.loads(JSONFormatter().format(record))

        assert "ValueError: broken template" in log_obj["exc_info"]


class TestKeyValueFormatter:
    """Tests for KeyValueFormatter."""

    def test_fields_sorted_and_quoted(self):
        """Test extras are appended sorted, with values containing spaces quoted."""
        formatter = KeyValueFormatter("%(levelname)s %(message)s")
        record = make_record(event="queue.batch.finished", error="SMTP error: timed out", sent=3)

        output = formatter.format(record)

        assert output.startswith("INFO Test message ")
        assert output.endswith('error="SMTP error: timed out" event=queue.batch.finished sent=3')

    def test_service_and_environment_are_omitted(self):
        """Test the stamped service fields do not clutter human output."""
        formatter = KeyValueFormatter("%(message)s")
        record = make_record(service="hrnotify", environment="local")

        assert formatter.format(record) == "Test message"

    @pytest.mark.parametrize(
        "value,expected",
        [(True, "true"), (None, "null"), (EmailStatus.QUEUED, "QUEUED"), ("a=b", '"a=b"'), (1.5, "1.5")],
    )
    def test_value_formatting(self, value, expected):
        """Test individual value renderings."""
        assert KeyValueFormatter._format_value(value) == expected


class TestContextualFilter:
    """Tests for ContextualFilter."""

    def test_stamps_service_and_context(self):
        """Test service, environment and the active context reach the record."""
        record = make_record()

        with log_context(batch_id="b-1"):
            assert ContextualFilter(environment="staging").filter(record) is True

        assert record.service == "hrnotify"
        assert record.environment == "staging"
        assert record.batch_id == "b-1"

    def test_explicit_extra_wins_over_context(self):
        """Test fields passed at the call site are not overwritten."""
        record = make_record(email_log_id=7)

        with log_context(email_log_id=99):
            ContextualFilter().filter(record)

        assert record.email_log_id == 7


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_handler_installed(self, restore_root_logger):
        """Test a single JSON handler replaces existing root handlers."""
        configure_logging(level="debug", format_type="json", environment="production")

        root = restore_root_logger
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert logging.getLogger("apscheduler").level == logging.WARNING

    def test_key_value_is_default(self, restore_root_logger):
        """Test the default format is key-value."""
        configure_logging()

        assert isinstance(restore_root_logger.handlers[0].formatter, KeyValueFormatter)

    def test_invalid_level(self, restore_root_logger):
        """Test an unknown level is rejected."""
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(level="LOUD")

    def test_invalid_format(self, restore_root_logger):
        """Test an unknown format is rejected."""
        with pytest.raises(ValueError, match="Invalid log format"):
            configure_logging(format_type="xml")


class TestGetLogger:
    """Tests for get_logger."""

    def test_plain_logger_without_component(self):
        """Test no component returns the stdlib logger."""
        assert isinstance(get_logger("hrnotify.plain"), logging.Logger)

    def test_component_is_stamped(self, caplog):
        """Test the adapter adds component and call-site extras win."""
        logger = get_logger("hrnotify.adapter", component="queue")
        assert isinstance(logger, ComponentLoggerAdapter)

        with caplog.at_level(logging.INFO, logger="hrnotify.adapter"):
            logger.info("one", extra={"event": "queue.test"})
            logger.info("two", extra={"component": "override"})

        first, second = caplog.records
        assert first.component == "queue"
        assert first.event == "queue.test"
        assert second.component == "override"
