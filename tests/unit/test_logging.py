"""Tests for logging configuration."""

import json
import logging
import sys

from conductor.logging_config import (
    NamespaceFilter,
    StructuredFormatter,
    clear_event_context,
    conversation_id_var,
    event_id_var,
    get_logger,
    platform_var,
    set_event_context,
    setup_logging,
    user_var,
)


def _record(name: str = "test", level: int = logging.INFO, msg: str = "Test message"):
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestStructuredFormatter:
    """Test StructuredFormatter class."""

    def test_formats_as_json(self):
        """Test that logs are formatted as JSON."""
        parsed = json.loads(StructuredFormatter().format(_record()))

        assert parsed["level"] == "info"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "test"
        assert parsed["service"] == "test"
        assert "ts" in parsed

    def test_service_derived_from_logger_namespace(self):
        """Test the service defaults to the first logger name segment."""
        parsed = json.loads(StructuredFormatter().format(_record(name="runtime.loop")))
        assert parsed["service"] == "runtime"

    def test_includes_event_context(self):
        """Test that per-event context variables are included."""
        set_event_context(
            event_id="evt_1",
            conversation_id="conv_2",
            user="alice",
            platform="plugin-chat",
        )
        try:
            parsed = json.loads(StructuredFormatter().format(_record()))
        finally:
            clear_event_context()

        assert parsed["event_id"] == "evt_1"
        assert parsed["conversation_id"] == "conv_2"
        assert parsed["user"] == "alice"
        assert parsed["platform"] == "plugin-chat"

    def test_includes_extra_fields(self):
        """Test that whitelisted extra fields are included."""
        record = _record()
        record.service = "models"
        record.capability = "text-generation"
        record.attempt = 2
        record.steps = ["plugin-time:get_current_time"]

        parsed = json.loads(StructuredFormatter().format(record))

        assert parsed["service"] == "models"
        assert parsed["capability"] == "text-generation"
        assert parsed["attempt"] == 2
        assert parsed["steps"] == ["plugin-time:get_current_time"]

    def test_ignores_unknown_extra_fields(self):
        """Test that fields outside the whitelist are dropped."""
        record = _record()
        record.secret = "hunter2"
        parsed = json.loads(StructuredFormatter().format(record))
        assert "secret" not in parsed

    def test_includes_exception(self):
        """Test that exception info is rendered."""
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                name="test",
                level=logging.ERROR,
                pathname="test.py",
                lineno=1,
                msg="failed",
                args=(),
                exc_info=sys.exc_info(),
            )
        parsed = json.loads(StructuredFormatter().format(record))
        assert "ValueError: boom" in parsed["exception"]


class TestContextFunctions:
    """Test context management functions."""

    def test_set_and_clear_context(self):
        """Test setting and clearing event context."""
        clear_event_context()
        assert event_id_var.get() is None

        set_event_context(event_id="evt_1", user="bob")
        assert event_id_var.get() == "evt_1"
        assert user_var.get() == "bob"
        assert conversation_id_var.get() is None

        clear_event_context()
        assert event_id_var.get() is None
        assert user_var.get() is None
        assert platform_var.get() is None


class TestNamespaceFilter:
    """Test NamespaceFilter class."""

    def test_allows_info_level(self):
        """Test that INFO+ level logs pass through."""
        assert NamespaceFilter(debug_namespaces=[]).filter(_record(name="anything")) is True

    def test_filters_debug_by_namespace(self):
        """Test that DEBUG logs are filtered by namespace."""
        namespace_filter = NamespaceFilter(debug_namespaces=["runtime", "models"])

        assert namespace_filter.filter(_record(name="runtime.loop", level=logging.DEBUG)) is True
        assert namespace_filter.filter(_record(name="retrieval", level=logging.DEBUG)) is False


class TestSetupLogging:
    """Test setup_logging function."""

    def test_installs_structured_handler(self):
        """Test that the root logger gets a single structured handler."""
        root = logging.getLogger()
        previous = list(root.handlers)
        try:
            setup_logging("INFO", ["runtime"])
            assert len(root.handlers) == 1
            handler = root.handlers[0]
            assert isinstance(handler.formatter, StructuredFormatter)
            assert any(isinstance(f, NamespaceFilter) for f in handler.filters)
        finally:
            root.handlers[:] = previous


class TestGetLogger:
    """Test get_logger function."""

    def test_returns_logger(self):
        """Test that get_logger returns a Logger instance."""
        logger = get_logger("runtime")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "runtime"
