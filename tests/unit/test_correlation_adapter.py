"""Unit tests for ContextLoggerAdapter."""

import logging

import pytest

from httphost.domain.context import background, with_value
from httphost.domain.correlation_id import (
    CORRELATION_ID_KEY,
    ContextLoggerAdapter,
    generate_correlation_id,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)


@pytest.fixture(name="logger_adapter")
def logger_adapter_fixture():
    """Create a ContextLoggerAdapter on a component logger."""
    return ContextLoggerAdapter(logging.getLogger("httphost.test"), {})


def test_adapter_injects_correlation_id(logger_adapter):
    """The correlation ID of the current thread is attached."""
    set_correlation_id("test-correlation-123")

    _, kwargs = logger_adapter.process("Test message", {})

    assert kwargs["extra"]["correlation_id"] == "test-correlation-123"


def test_adapter_defaults_correlation_id_when_missing(logger_adapter):
    """Without any correlation ID the placeholder is used."""
    _, kwargs = logger_adapter.process("Test message", {})

    assert kwargs["extra"]["correlation_id"] == "-"


def test_adapter_extracts_component_from_logger_name():
    """Component is the logger name below the project namespace."""
    adapter = get_logger("transport.worker")

    _, kwargs = adapter.process("Test message", {})

    assert kwargs["extra"]["component"] == "transport.worker"


def test_adapter_handles_foreign_logger():
    """Loggers outside the project namespace keep their full name."""
    adapter = ContextLoggerAdapter(logging.getLogger("other.module"), {})

    _, kwargs = adapter.process("Test message", {})

    assert kwargs["extra"]["component"] == "other.module"


def test_adapter_preserves_call_extra_and_message(logger_adapter):
    """Per-call fields and the message pass through untouched."""
    msg, kwargs = logger_adapter.process(
        "Test {placeholder}", {"extra": {"event": "test_event", "status_code": 200}}
    )

    assert msg == "Test {placeholder}"
    assert kwargs["extra"]["event"] == "test_event"
    assert kwargs["extra"]["status_code"] == 200
    assert kwargs["extra"]["component"] == "test"


def test_with_fields_binds_and_call_extra_wins(logger_adapter):
    """Bound fields appear on every record and call fields override them."""
    bound = logger_adapter.with_fields(run="one", port=8080)

    _, kwargs = bound.process("msg", {"extra": {"port": 9090}})

    assert kwargs["extra"]["run"] == "one"
    assert kwargs["extra"]["port"] == 9090
    assert logger_adapter.extra == {}


def test_with_context_binds_correlation_id(logger_adapter):
    """A context carrying a correlation ID binds it to the adapter."""
    ctx = with_value(background(), CORRELATION_ID_KEY, "from-context")

    _, kwargs = logger_adapter.with_context(ctx).process("msg", {})

    assert kwargs["extra"]["correlation_id"] == "from-context"


def test_thread_correlation_id_overrides_bound_value(logger_adapter):
    """The per-thread correlation ID wins over a bound one."""
    ctx = with_value(background(), CORRELATION_ID_KEY, "from-context")
    set_correlation_id("from-thread")

    _, kwargs = logger_adapter.with_context(ctx).process("msg", {})

    assert kwargs["extra"]["correlation_id"] == "from-thread"


def test_with_context_without_id_keeps_placeholder(logger_adapter):
    """A context without a correlation ID leaves the placeholder."""
    _, kwargs = logger_adapter.with_context(background()).process("msg", {})

    assert kwargs["extra"]["correlation_id"] == "-"


def test_child_keeps_bound_fields():
    """Child adapters log under a nested component with the same fields."""
    parent = get_logger("lifecycle").with_fields(run="one")
    child = parent.child("transport")

    _, kwargs = child.process("msg", {})

    assert child.logger.name == "httphost.lifecycle.transport"
    assert kwargs["extra"]["component"] == "lifecycle.transport"
    assert kwargs["extra"]["run"] == "one"


def test_adapter_records_reach_handlers(caplog):
    """Fields end up as attributes on the emitted record."""
    caplog.set_level(logging.INFO, logger="httphost")
    get_logger("test").info("hello", extra={"event": "greeting"})

    record = caplog.records[-1]
    assert record.event == "greeting"
    assert record.component == "test"
    assert record.correlation_id == "-"


def test_generated_ids_are_unique():
    """Each generated correlation ID is distinct and settable."""
    first, second = generate_correlation_id(), generate_correlation_id()
    assert first != second
    set_correlation_id(first)
    assert get_correlation_id() == first
