"""Tool registry and MCP export for node capabilities."""

from nodekit.runner.tool_registry import ToolRegistry, register_mcp_tools

__all__ = ["ToolRegistry", "register_mcp_tools"]
