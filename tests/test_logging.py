"""Tests for structured logging helpers."""

import json
import logging
import sys

from agentcore.logging_config import JSONFormatter, bind_context, get_logger


def make_record(context=None, exc_info=None):
    record = logging.LogRecord(
        name="agentcore.agent.agent",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg="Attempt %d failed",
        args=(2,),
        exc_info=exc_info,
    )
    if context is not None:
        record.context = context
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(make_record()))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "agentcore.agent.agent"
        assert entry["message"] == "Attempt 2 failed"
        assert "context" not in entry

    def test_correlation_ids_are_lifted(self):
        """agent_id/execution_id move to the top level; the rest stays in context."""
        record = make_record({"agent_id": "a1", "execution_id": "e1", "attempt": 2})

        entry = json.loads(JSONFormatter().format(record))

        assert entry["agent_id"] == "a1"
        assert entry["execution_id"] == "e1"
        assert entry["context"] == {"attempt": 2}
        # The record itself is left untouched
        assert record.context["agent_id"] == "a1"

    def test_exception_is_formatted(self):
        try:
            raise ValueError("bad input")
        except ValueError:
            record = make_record(exc_info=sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad input" in entry["exception"]


class TestBindContext:
    def test_bound_context_merges_with_call_context(self, caplog):
        log = bind_context(get_logger("agentcore.tests.bind"), agent_id="a1")

        with caplog.at_level(logging.INFO, logger="agentcore.tests.bind"):
            log.info("hello", extra={"context": {"execution_id": "e1"}})

        assert caplog.records[0].context == {"agent_id": "a1", "execution_id": "e1"}
