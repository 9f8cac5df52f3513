"""
ToolCapability - a node's action exposed to an autonomous agent.

The capability wraps the same action the graph runs directly; only the source
of parameters differs (validated tool arguments instead of resolved inputs).
It never raises past ``invoke``: every failure is encoded into the returned
text, because the calling agent has no other error channel.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from nodekit.llm.provider import Tool, ToolResult, ToolUse
from nodekit.node.context import Environment, InvocationMode
from nodekit.node.credits import CreditMeter
from nodekit.node.errors import FailureReason, MissingParameter, classify
from nodekit.observability import trace_scope

if TYPE_CHECKING:
    from nodekit.node.executable import ExecutableNode


class ToolFailurePolicy(StrEnum):
    """What a failed delegated call does to the node's meter."""

    DISCARD = "discard"  # Drop only the failed call's own charges
    RESET = "reset"  # Force the whole meter to 0


def _error_text(message: str, reason: FailureReason) -> str:
    return json.dumps({"error": message, "reason": reason.value})


class ToolCapability:
    """
    Callable, schema-described wrapper around a node's action.

    Bound to the environment and meter of the invocation that created it, but
    not to any ExecutionContext: each call builds its own.

    Usage:
        capability = node.create_tool(environment, meter)
        capability.describe()  # Tool(name=..., description=..., parameters={...})
        text, credits = await capability.invoke({"prompt": "A cat"})
    """

    def __init__(
        self,
        node: ExecutableNode,
        environment: Environment,
        meter: CreditMeter,
        name: str,
        description: str,
        args_model: type[BaseModel],
    ):
        self.node = node
        self.environment = environment
        self.meter = meter
        self.name = name
        self.args_model = args_model
        self._tool = Tool(
            name=name,
            description=description,
            parameters=args_model.model_json_schema(),
        )

    @property
    def description(self) -> str:
        return self._tool.description

    @property
    def input_schema(self) -> dict[str, Any]:
        return self._tool.parameters

    def describe(self) -> Tool:
        """Name, description and JSON schema; identical on every call."""
        return self._tool

    async def invoke(
        self, args: Mapping[str, Any] | BaseModel | str | None = None
    ) -> tuple[str, int | None]:
        """
        Run the node's action with agent-supplied arguments.

        Returns:
            (result_text, credit_snapshot) where the snapshot is the meter
            after this call's charges were committed or discarded.
        """
        text, _ = await self._call(args)
        return text, self.meter.read()

    async def _call(self, args: Mapping[str, Any] | BaseModel | str | None) -> tuple[str, bool]:
        invocation_id = uuid.uuid4().hex
        with trace_scope(
            invocation_id=invocation_id,
            node_type=self.node.type,
            mode=InvocationMode.DELEGATED.value,
        ):
            return await self._run(args, invocation_id)

    def _validate(self, args: Mapping[str, Any] | BaseModel | str | bytes | None) -> BaseModel:
        """Agents may send a model, a mapping, or the raw JSON text of the arguments."""
        if isinstance(args, BaseModel):
            return self.args_model.model_validate(args.model_dump())
        if isinstance(args, str | bytes):
            return self.args_model.model_validate_json(args)
        return self.args_model.model_validate(dict(args or {}))

    async def _run(
        self, args: Mapping[str, Any] | BaseModel | str | None, invocation_id: str
    ) -> tuple[str, bool]:
        try:
            validated = self._validate(args)
        except ValidationError as e:
            self.node.logger.error(f"{self.name}: invalid arguments: {e.error_count()} error(s)")
            return _error_text(f"Invalid arguments: {e}", FailureReason.ERROR), True
        except (TypeError, ValueError) as e:
            self.node.logger.error(f"{self.name}: unreadable arguments: {e}")
            return _error_text(f"Invalid arguments: {e}", FailureReason.ERROR), True

        try:
            resolved = self.node.resolver.from_tool_args(validated.model_dump())
            if not resolved.sufficient:
                raise MissingParameter(list(resolved.missing), node_type=self.node.type)

            ctx = self.node.build_context(
                resolved.values,
                self.environment,
                invocation_id=invocation_id,
                mode=InvocationMode.DELEGATED,
            )
            with self.meter.transaction() as tx:
                payload = await self.node.execute_action(ctx, tx)
        except Exception as e:
            reason = classify(e)
            if self.node.tool_failure_policy is ToolFailurePolicy.RESET:
                self.meter.reset()
            self.node.logger.error(
                f"{self.name}: {e}",
                exc_info=reason is FailureReason.ERROR,
                extra={"event": "tool_failed", "reason": reason.value},
            )
            return _error_text(str(e), reason), True

        self.node.logger.success(f"{self.name}: completed", extra={"event": "tool_completed"})
        return self.node.tool_text(payload), False

    async def as_tool_result(self, tool_use: ToolUse) -> ToolResult:
        """Adapt an agent's ToolUse into a ToolResult for the registry."""
        text, is_error = await self._call(tool_use.input)
        return ToolResult(
            tool_use_id=tool_use.id,
            content=text,
            is_error=is_error,
            credits=self.meter.read(),
        )

    def __repr__(self) -> str:
        return f"ToolCapability(name={self.name!r}, node={self.node.type!r})"
