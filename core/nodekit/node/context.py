"""
Execution context - the immutable bundle one invocation works with.

The environment replaces implicit process-wide configuration: secrets and
engine metadata are passed into ``invoke`` explicitly, and actions read them
from the context instead of ``os.environ``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from dotenv import dotenv_values

from nodekit.node.errors import CredentialError
from nodekit.observability.logging import NodeLoggerAdapter


class InvocationMode(StrEnum):
    """Who is driving the action."""

    DIRECT = "direct"  # Graph-driven, parameters resolved from inputs/config
    DELEGATED = "delegated"  # Agent-driven, parameters from tool arguments


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class Environment:
    """
    Secrets and engine metadata visible to a node.

    Usage:
        env = Environment(secrets={"FLUX_API_KEY": "..."}, metadata={"workflowId": "wf-1"})
        env.secret("FLUX_API_KEY")

        # Local runs: os.environ merged over a .env file
        env = Environment.from_os()
    """

    secrets: Mapping[str, str] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "secrets", _freeze(self.secrets))
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    def secret(self, name: str, *, required: bool = True) -> str | None:
        """Return a secret; raise CredentialError if it is required and missing."""
        value = self.secrets.get(name)
        if not value and required:
            raise CredentialError(f"Missing {name} in environment")
        return value or None

    @classmethod
    def from_os(
        cls,
        dotenv_path: Path | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Environment:
        """Build an environment from a .env file overlaid with os.environ."""
        path = dotenv_path or Path.cwd() / ".env"
        secrets: dict[str, str] = {}
        if path.exists():
            secrets.update({k: v for k, v in dotenv_values(path).items() if v is not None})
        secrets.update(os.environ)
        return cls(secrets=secrets, metadata=metadata or {})


@dataclass(frozen=True)
class ExecutionContext:
    """Per-invocation bundle; owned by exactly one invocation and never mutated."""

    parameters: Mapping[str, Any]
    environment: Environment
    logger: NodeLoggerAdapter
    invocation_id: str
    node_type: str
    mode: InvocationMode = InvocationMode.DIRECT
    runtime: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", _freeze(self.parameters))
        object.__setattr__(self, "runtime", _freeze(self.runtime))

    def param(self, name: str, default: Any = None) -> Any:
        value = self.parameters.get(name)
        return default if value is None else value

    def secret(self, name: str, *, required: bool = True) -> str | None:
        return self.environment.secret(name, required=required)
