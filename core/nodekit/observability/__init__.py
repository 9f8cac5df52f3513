"""
Observability module for invocation-scoped trace correlation and structured logging.

- Invocation context propagation via ContextVar
- Structured JSON logging for production
- Human-readable logging for development
"""

from nodekit.observability.logging import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    node_logger,
    set_trace_context,
    trace_scope,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
    "node_logger",
    "trace_scope",
]
