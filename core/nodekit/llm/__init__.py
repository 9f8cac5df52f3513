"""Tool types exchanged between agents and node capabilities."""

from nodekit.llm.provider import Tool, ToolResult, ToolUse

__all__ = ["Tool", "ToolUse", "ToolResult"]
