"""
Logging for node invocations.

Each invocation stores invocation_id, node_type and mode in a ContextVar.
The orchestrator adds job_id once a job is submitted. Both formatters read
that context, so a plain ctx.logger.info() call inside an action is tagged
with the invocation it belongs to, including inside concurrent tool calls.

Output is JSON (StructuredFormatter) when LOG_FORMAT=json or ENV=production,
otherwise a colored single line per record (HumanReadableFormatter).
"""

import json
import logging
import os
import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")

# Record attributes copied into JSON entries when present
_EXTRA_FIELDS = ("event", "latency_ms", "credits", "attempt", "reason")

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")


def strip_ansi_codes(text: str) -> str:
    """Drop ANSI color codes so JSON messages stay plain text."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, the trace context, then known extras."""

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(context)

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            log_entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colored line prefixed with the short invocation id, node type and job id."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[34m",  # Blue
        "SUCCESS": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}
        invocation_id = context.get("invocation_id", "")
        node_type = context.get("node_type", "")
        job_id = context.get("job_id", "")

        prefix_parts = []
        if invocation_id:
            prefix_parts.append(f"inv:{invocation_id[:8]}")
        if node_type:
            prefix_parts.append(f"node:{node_type}")
        if job_id:
            prefix_parts.append(f"job:{job_id[-8:]}")

        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"

        event = ""
        record_event = getattr(record, "event", None)
        if record_event is not None:
            event = f" [{record_event}]"

        return f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}{event}"


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Install a single root handler for the process hosting the nodes.

    Args:
        level: Root log level name
        format: "json", "human", or "auto" (JSON when LOG_FORMAT=json or
            ENV=production)
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        os.environ["NO_COLOR"] = "1"
        os.environ["FORCE_COLOR"] = "0"
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Route library loggers through the root handler so JSON output stays clean
    if format == "json":
        for logger_name in ("httpcore", "httpx", "mcp", "fastmcp"):
            library_logger = logging.getLogger(logger_name)
            library_logger.handlers.clear()
            library_logger.propagate = True


class NodeLoggerAdapter(logging.LoggerAdapter):
    """Logger handed to node actions; adds a SUCCESS level between INFO and WARNING."""

    def process(self, msg, kwargs):
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def success(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(SUCCESS, msg, *args, **kwargs)


def node_logger(node_type: str, **extra: Any) -> NodeLoggerAdapter:
    """Return the adapter used for one node type's log output."""
    return NodeLoggerAdapter(logging.getLogger(f"node.{node_type}"), extra)


def set_trace_context(**kwargs: Any) -> None:
    """
    Merge fields into the trace context of the current execution.

    The context is stored in a ContextVar, so it follows the current asyncio
    task and is copied into tasks it spawns.

    AsyncJobOrchestrator.run() uses this to add job_id inside the scope
    opened by ExecutableNode.invoke() / ToolCapability.invoke() (see
    trace_scope), so the job id disappears when the invocation ends.
    """
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


@contextmanager
def trace_scope(**kwargs: Any) -> Iterator[None]:
    """Merge fields into the trace context for the duration of a block, then restore it."""
    current = trace_context.get() or {}
    token = trace_context.set({**current, **kwargs})
    try:
        yield
    finally:
        trace_context.reset(token)


def get_trace_context() -> dict:
    """Return a copy of the current trace context (empty dict if unset)."""
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear the trace context. Mostly useful between tests."""
    trace_context.set(None)
