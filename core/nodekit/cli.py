"""
Command-line interface for nodekit.

Usage:
    nodekit list
    nodekit describe flux_image_gen
    nodekit invoke quick_rag --input Source=https://example.com --input Query="pricing"
    nodekit invoke widget_trigger --metadata '{"widgetPayload": {"init": true}}'
    nodekit serve-mcp flux_image_gen quick_rag --stdio
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from nodekit.config import get_log_format, get_log_level
from nodekit.node import CreditMeter, Environment
from nodekit.node.tool import ToolCapability
from nodekit.nodes import NODE_TYPES, get_node
from nodekit.observability import configure_logging

logger = logging.getLogger(__name__)


def parse_binding(raw: str) -> dict[str, Any]:
    """'Name=value' -> {"name": "Name", "value": value}; JSON values are decoded."""
    name, sep, value = raw.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"Expected Name=value, got {raw!r}")
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        decoded = value
    return {"name": name.strip(), "value": decoded}


def _json_default(value: Any) -> Any:
    if isinstance(value, ToolCapability):
        return {"tool": value.name}
    return str(value)


def _environment(args: argparse.Namespace) -> Environment:
    metadata = json.loads(args.metadata) if args.metadata else {}
    return Environment.from_os(dotenv_path=args.env_file, metadata=metadata)


def cmd_list(args: argparse.Namespace) -> int:
    for node_type, cls in sorted(NODE_TYPES.items()):
        tool = f"  [tool: {cls.tool_name}]" if cls.tool_name else ""
        print(f"{node_type:<20} {cls.title}{tool}")
    return 0


def cmd_describe(args: argparse.Namespace) -> int:
    try:
        cls = NODE_TYPES[args.node_type]
    except KeyError:
        print(f"Unknown node type: {args.node_type}", file=sys.stderr)
        return 1
    print(cls.get_config().model_dump_json(indent=2, by_alias=True))
    return 0


def cmd_invoke(args: argparse.Namespace) -> int:
    try:
        node = get_node(args.node_type)
    except KeyError as e:
        print(e.args[0], file=sys.stderr)
        return 1

    environment = _environment(args)
    if args.estimate:
        print(node.estimate_usage(args.inputs, args.fields, environment))
        return 0

    result = asyncio.run(node.invoke(args.inputs, args.fields, environment))
    print(json.dumps(result, indent=2, default=_json_default))
    return 1 if result.get("Error") else 0


def cmd_serve_mcp(args: argparse.Namespace) -> int:
    from fastmcp import FastMCP

    from nodekit.runner import register_mcp_tools

    environment = _environment(args)
    capabilities = []
    for node_type in args.node_types or sorted(NODE_TYPES):
        node = get_node(node_type)
        capability = node.create_tool(environment, CreditMeter(node.credit))
        if capability is None:
            logger.warning(f"Node '{node_type}' offers no tool, skipping")
            continue
        capabilities.append(capability)

    mcp = FastMCP("nodekit")
    register_mcp_tools(mcp, capabilities)

    if args.stdio:
        mcp.run(transport="stdio")
    else:
        logger.info(f"Starting HTTP server on {args.host}:{args.port}")
        mcp.run(transport="http", host=args.host, port=args.port)
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    list_parser = subparsers.add_parser("list", help="List available node types")
    list_parser.set_defaults(func=cmd_list)

    describe_parser = subparsers.add_parser("describe", help="Print a node's descriptor")
    describe_parser.add_argument("node_type")
    describe_parser.set_defaults(func=cmd_describe)

    env_options = argparse.ArgumentParser(add_help=False)
    env_options.add_argument("--env-file", type=Path, default=None, help=".env file with secrets")
    env_options.add_argument("--metadata", default=None, help="Engine metadata as JSON")

    invoke_parser = subparsers.add_parser("invoke", parents=[env_options], help="Run one node")
    invoke_parser.add_argument("node_type")
    invoke_parser.add_argument(
        "--input",
        dest="inputs",
        action="append",
        type=parse_binding,
        default=[],
        help="Dynamic input Name=value (repeatable)",
    )
    invoke_parser.add_argument(
        "--field",
        dest="fields",
        action="append",
        type=parse_binding,
        default=[],
        help="Static field Name=value (repeatable)",
    )
    invoke_parser.add_argument(
        "--estimate", action="store_true", help="Print the expected credit cost and exit"
    )
    invoke_parser.set_defaults(func=cmd_invoke)

    serve_parser = subparsers.add_parser(
        "serve-mcp", parents=[env_options], help="Expose node tools over MCP"
    )
    serve_parser.add_argument("node_types", nargs="*", help="Node types to expose (default: all)")
    serve_parser.add_argument("--stdio", action="store_true", help="Use STDIO transport")
    serve_parser.add_argument(
        "--port", type=int, default=int(os.getenv("MCP_PORT", "4001")), help="HTTP server port"
    )
    serve_parser.add_argument("--host", default="0.0.0.0", help="HTTP server host")
    serve_parser.set_defaults(func=cmd_serve_mcp)


def main():
    parser = argparse.ArgumentParser(
        prog="nodekit",
        description="nodekit - run workflow nodes and expose them as agent tools",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args()
    configure_logging(level=args.log_level or get_log_level(), format=get_log_format())

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
