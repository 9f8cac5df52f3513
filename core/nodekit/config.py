"""Shared nodekit configuration utilities.

Centralises reading of ~/.nodekit/configuration.json so the orchestrator,
the CLI and every node share one implementation. Every value can be
overridden with a ``NODEKIT_*`` environment variable.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_POLL_MAX_ATTEMPTS = 20
DEFAULT_HTTP_TIMEOUT = 30.0

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

NODEKIT_CONFIG_FILE = Path.home() / ".nodekit" / "configuration.json"


def get_nodekit_config() -> dict[str, Any]:
    """Load configuration from ~/.nodekit/configuration.json."""
    if not NODEKIT_CONFIG_FILE.exists():
        return {}
    try:
        with open(NODEKIT_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_poll_interval() -> float:
    """Seconds to wait between two polls of an external job."""
    override = _env_float("NODEKIT_POLL_INTERVAL")
    if override is not None:
        return override
    return float(get_nodekit_config().get("polling", {}).get("interval", DEFAULT_POLL_INTERVAL))


def get_poll_max_attempts() -> int:
    """Maximum number of polls for attempt-bounded jobs."""
    override = _env_float("NODEKIT_POLL_MAX_ATTEMPTS")
    if override is not None:
        return int(override)
    polling = get_nodekit_config().get("polling", {})
    return int(polling.get("max_attempts", DEFAULT_POLL_MAX_ATTEMPTS))


def get_poll_timeout_seconds() -> float | None:
    """Wall-clock deadline for deadline-bounded jobs, or None when not configured."""
    override = _env_float("NODEKIT_POLL_TIMEOUT")
    if override is not None:
        return override
    value = get_nodekit_config().get("polling", {}).get("timeout_seconds")
    return float(value) if value is not None else None


def get_http_timeout() -> float:
    """Per-request timeout for outbound HTTP calls made by nodes."""
    override = _env_float("NODEKIT_HTTP_TIMEOUT")
    if override is not None:
        return override
    return float(get_nodekit_config().get("http", {}).get("timeout", DEFAULT_HTTP_TIMEOUT))


def get_log_level() -> str:
    return os.environ.get("NODEKIT_LOG_LEVEL") or get_nodekit_config().get("logging", {}).get(
        "level", "INFO"
    )


def get_log_format() -> str:
    return os.environ.get("NODEKIT_LOG_FORMAT") or get_nodekit_config().get("logging", {}).get(
        "format", "auto"
    )


# ---------------------------------------------------------------------------
# RuntimeConfig – shared across nodes
# ---------------------------------------------------------------------------


@dataclass
class RuntimeConfig:
    """Node runtime configuration loaded from ~/.nodekit/configuration.json."""

    poll_interval: float = field(default_factory=get_poll_interval)
    poll_max_attempts: int = field(default_factory=get_poll_max_attempts)
    poll_timeout_seconds: float | None = field(default_factory=get_poll_timeout_seconds)
    http_timeout: float = field(default_factory=get_http_timeout)
    log_level: str = field(default_factory=get_log_level)
    log_format: str = field(default_factory=get_log_format)
