"""Built-in node library."""

from nodekit.node import ExecutableNode
from nodekit.nodes.flux_image_gen import FluxImageGen
from nodekit.nodes.if_condition import IfCondition
from nodekit.nodes.quick_rag import QuickRag
from nodekit.nodes.terminate_node import TerminateNode
from nodekit.nodes.video_gen import VideoGen
from nodekit.nodes.widget_trigger import WidgetTrigger

NODE_TYPES: dict[str, type[ExecutableNode]] = {
    cls.type: cls
    for cls in (FluxImageGen, VideoGen, QuickRag, IfCondition, TerminateNode, WidgetTrigger)
}


def get_node(node_type: str) -> ExecutableNode:
    """Instantiate a registered node; raises KeyError for unknown types."""
    try:
        return NODE_TYPES[node_type]()
    except KeyError:
        raise KeyError(f"Unknown node type: {node_type!r}") from None


__all__ = [
    "NODE_TYPES",
    "FluxImageGen",
    "IfCondition",
    "QuickRag",
    "TerminateNode",
    "VideoGen",
    "WidgetTrigger",
    "get_node",
]
