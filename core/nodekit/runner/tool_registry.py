"""Tool registration for node capabilities and their export over MCP."""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from nodekit.llm.provider import Tool, ToolResult, ToolUse
from nodekit.node.tool import ToolCapability

if TYPE_CHECKING:
    from fastmcp import FastMCP

logger = logging.getLogger(__name__)


@dataclass
class RegisteredTool:
    """A tool with the capability that executes it."""

    tool: Tool
    capability: ToolCapability


class ToolRegistry:
    """
    Collects the ToolCapabilities an agent may call.

    Usage:
        registry = ToolRegistry()
        registry.register_capability(node.create_tool(env, meter))
        execute = registry.get_executor()
        result = await execute(ToolUse(id="call_1", name="quickRag", input={...}))
    """

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register_capability(self, capability: ToolCapability) -> None:
        """
        Register a capability under its tool name.

        A later registration with the same name replaces the earlier one.
        """
        tool = capability.describe()
        if tool.name in self._tools:
            logger.warning(f"Tool '{tool.name}' registered twice, keeping the latest")
        self._tools[tool.name] = RegisteredTool(tool=tool, capability=capability)

    def get_tools(self) -> dict[str, Tool]:
        """Get all registered Tool objects."""
        return {name: rt.tool for name, rt in self._tools.items()}

    def get_executor(self) -> Callable[[ToolUse], Awaitable[ToolResult]]:
        """
        Get unified tool executor function.

        Returns a coroutine function that dispatches to the matching capability.
        """

        async def executor(tool_use: ToolUse) -> ToolResult:
            registered = self._tools.get(tool_use.name)
            if registered is None:
                return ToolResult(
                    tool_use_id=tool_use.id,
                    content=json.dumps({"error": f"Unknown tool: {tool_use.name}"}),
                    is_error=True,
                )
            return await registered.capability.as_tool_result(tool_use)

        return executor

    def get_registered_names(self) -> list[str]:
        """Get list of registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools


def _flat_signature(capability: ToolCapability) -> tuple[inspect.Signature, dict[str, Any]]:
    """Keyword-only signature mirroring the fields of the capability's argument model."""
    parameters = []
    annotations: dict[str, Any] = {}
    for name, info in capability.args_model.model_fields.items():
        default = inspect.Parameter.empty if info.is_required() else info.get_default()
        parameters.append(
            inspect.Parameter(
                name,
                inspect.Parameter.KEYWORD_ONLY,
                default=default,
                annotation=info.annotation,
            )
        )
        annotations[name] = info.annotation
    annotations["return"] = str
    return inspect.Signature(parameters, return_annotation=str), annotations


def _mcp_function(capability: ToolCapability) -> Callable[..., Awaitable[str]]:
    async def call(**kwargs: Any) -> str:
        text, _ = await capability.invoke(kwargs)
        return text

    signature, annotations = _flat_signature(capability)
    call.__name__ = capability.name
    call.__doc__ = capability.description
    call.__signature__ = signature
    call.__annotations__ = annotations
    return call


def register_mcp_tools(mcp: FastMCP, capabilities: Iterable[ToolCapability]) -> list[str]:
    """
    Publish capabilities on a FastMCP server.

    Each tool takes the argument model's fields as flat keyword arguments and
    returns the capability's result text.

    Returns:
        Names of the registered tools
    """
    names = []
    for capability in capabilities:
        mcp.tool(name=capability.name, description=capability.description)(
            _mcp_function(capability)
        )
        names.append(capability.name)
    logger.info(f"Registered {len(names)} MCP tools: {names}")
    return names
