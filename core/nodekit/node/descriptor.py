"""
Node descriptor - the static declaration an engine reads to render and wire a node.

A node class declares its ports and fields once; the same declaration drives
parameter resolution and the output keys of every result payload.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Port types that carry control signals rather than parameter values
FLOW_TYPE = "Flow"
TOOL_TYPE = "Tool"
CONTROL_PORT_TYPES = frozenset({FLOW_TYPE, TOOL_TYPE})


class Port(BaseModel):
    """An input or output connector of a node."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    desc: str = ""


class FieldSpec(BaseModel):
    """A user-editable field on the node. ``value`` is the placeholder shown in the editor."""

    model_config = ConfigDict(frozen=True, extra="allow")

    name: str
    type: str = Field(description="Text, TextArea, Number, Slider, CheckBox, select, env, social")
    desc: str = ""
    value: Any = None
    options: list[str] | None = None
    min: float | None = None
    max: float | None = None
    step: float | None = None


class NodeConfig(BaseModel):
    """Full descriptor returned by ``ExecutableNode.get_config()``."""

    title: str
    category: str = ""
    type: str
    description: str = Field(default="", alias="desc")
    credit: int | None = 0
    inputs: list[Port] = Field(default_factory=list)
    outputs: list[Port] = Field(default_factory=list)
    fields: list[FieldSpec] = Field(default_factory=list)
    difficulty: str = "easy"
    tags: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def data_outputs(self) -> list[str]:
        """Output port names that carry values (not Flow/Tool)."""
        return [p.name for p in self.outputs if p.type not in CONTROL_PORT_TYPES]

    def has_flow_output(self) -> bool:
        """True when the node gates downstream nodes through a `Flow` port."""
        return any(p.name == FLOW_TYPE and p.type == FLOW_TYPE for p in self.outputs)
