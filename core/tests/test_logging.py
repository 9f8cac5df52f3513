"""Tests for structured logging and trace-context propagation."""

import asyncio
import json
import logging
import sys

import pytest

from nodekit.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    node_logger,
    set_trace_context,
    trace_scope,
)
from nodekit.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)


def make_record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("node.flux", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTraceContext:
    def test_set_merges(self):
        set_trace_context(invocation_id="inv-1")
        set_trace_context(job_id="job-1")
        assert get_trace_context() == {"invocation_id": "inv-1", "job_id": "job-1"}

    def test_clear(self):
        set_trace_context(invocation_id="inv-1")
        clear_trace_context()
        assert get_trace_context() == {}

    def test_trace_scope_restores(self):
        set_trace_context(node_type="outer")
        with trace_scope(invocation_id="inner"):
            assert get_trace_context() == {"node_type": "outer", "invocation_id": "inner"}
        assert get_trace_context() == {"node_type": "outer"}

    def test_get_returns_copy(self):
        set_trace_context(invocation_id="inv-1")
        get_trace_context()["invocation_id"] = "changed"
        assert get_trace_context()["invocation_id"] == "inv-1"

    @pytest.mark.asyncio
    async def test_tasks_do_not_share_scopes(self):
        async def worker(name: str) -> dict:
            with trace_scope(invocation_id=name):
                await asyncio.sleep(0)
                return get_trace_context()

        first, second = await asyncio.gather(worker("a"), worker("b"))
        assert first["invocation_id"] == "a"
        assert second["invocation_id"] == "b"


class TestStructuredFormatter:
    def test_includes_context_and_extra_fields(self):
        set_trace_context(invocation_id="inv-1", node_type="flux_image_gen", mode="direct")
        record = make_record("\033[32mdone\033[0m", event="node_completed", credits=65)

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "done"
        assert entry["level"] == "info"
        assert entry["logger"] == "node.flux"
        assert entry["invocation_id"] == "inv-1"
        assert entry["mode"] == "direct"
        assert entry["event"] == "node_completed"
        assert entry["credits"] == 65
        assert "timestamp" in entry

    def test_exception_is_included(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()
        entry = json.loads(StructuredFormatter().format(record))
        assert "ValueError: bad" in entry["exception"]


class TestHumanReadableFormatter:
    def test_prefix(self):
        set_trace_context(
            invocation_id="0123456789abcdef",
            node_type="quick_rag",
            job_id="operations/op-12345678",
        )
        output = strip_ansi_codes(HumanReadableFormatter().format(make_record(event="job_ready")))
        assert output == "[INFO    ] [inv:01234567 | node:quick_rag | job:12345678] hello [job_ready]"

    def test_no_context(self):
        output = strip_ansi_codes(HumanReadableFormatter().format(make_record()))
        assert output == "[INFO    ] hello"


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_format(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        monkeypatch.setenv("FORCE_COLOR", "")
        configure_logging(level="DEBUG", format="json")
        root = logging.getLogger()
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)
        assert root.level == logging.DEBUG

    def test_auto_uses_json_in_production(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        monkeypatch.setenv("ENV", "production")
        monkeypatch.setenv("NO_COLOR", "")
        monkeypatch.setenv("FORCE_COLOR", "")
        configure_logging(format="auto")
        assert isinstance(logging.getLogger().handlers[0].formatter, StructuredFormatter)

    def test_auto_defaults_to_human(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        monkeypatch.delenv("ENV", raising=False)
        configure_logging(format="auto")
        assert isinstance(logging.getLogger().handlers[0].formatter, HumanReadableFormatter)


class TestNodeLogger:
    def test_success_level(self, caplog):
        logger = node_logger("flux_image_gen")
        with caplog.at_level(logging.INFO, logger="node.flux_image_gen"):
            logger.success("image ready", extra={"event": "node_completed"})

        record = caplog.records[0]
        assert record.levelname == "SUCCESS"
        assert record.event == "node_completed"
        assert record.name == "node.flux_image_gen"

    def test_adapter_extra_merges_with_call_extra(self, caplog):
        logger = node_logger("quick_rag", reason="error")
        with caplog.at_level(logging.INFO, logger="node.quick_rag"):
            logger.info("x", extra={"event": "tool_failed"})

        record = caplog.records[0]
        assert record.reason == "error"
        assert record.event == "tool_failed"
