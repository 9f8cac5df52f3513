"""
Control signals - reserved result-payload keys that steer graph traversal.

A node never calls back into the engine. It returns a flat mapping and the
engine interprets these keys:

- Flow: pass/fail gate for downstream nodes wired to the default output
- Branch pairs (Success/Error, True/False): exactly one of a pair is true
- __terminate: stop traversal past this node, whatever else is present
- Credits: final meter read, attached once after all charge/reset activity
- Tool: the node's ToolCapability, when it offers one
- __error: diagnostic {reason, message}, present only on failure
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from nodekit.node.errors import ControlSignalError

if TYPE_CHECKING:
    from nodekit.node.tool import ToolCapability

FLOW = "Flow"
CREDITS = "Credits"
TOOL = "Tool"
TERMINATE = "__terminate"
ERROR_DETAIL = "__error"

RESERVED_KEYS = frozenset({FLOW, CREDITS, TOOL, TERMINATE, ERROR_DETAIL})


@dataclass(frozen=True)
class BranchPair:
    """Two mutually exclusive boolean ports."""

    on: str
    off: str

    def emit(self, value: bool) -> dict[str, bool]:
        return {self.on: bool(value), self.off: not value}

    @property
    def keys(self) -> tuple[str, str]:
        return (self.on, self.off)


SUCCESS_ERROR = BranchPair("Success", "Error")
TRUE_FALSE = BranchPair("True", "False")


@dataclass
class ResultPayload:
    """
    What a node hands back to the engine for one invocation.

    Actions build one of these (or return a plain dict of output ports);
    the node fills in Tool and Credits before serialising it.

    Example:
        ResultPayload(outputs={"Image URL": url})
        ResultPayload(outputs={"Message": ""}, flow=False, terminate=True)
        ResultPayload(outputs={"Result": res}).with_branch(TRUE_FALSE, res)
    """

    outputs: dict[str, Any] = field(default_factory=dict)
    flow: bool | None = None
    branches: dict[str, bool] = field(default_factory=dict)
    terminate: bool = False
    credits: int | None = None
    tool: ToolCapability | None = None
    error: dict[str, str] | None = None

    def __post_init__(self) -> None:
        reserved = RESERVED_KEYS.intersection(self.outputs)
        if reserved:
            raise ControlSignalError(
                f"Reserved key(s) {sorted(reserved)} cannot be used as output ports"
            )

    def with_branch(self, pair: BranchPair, value: bool) -> ResultPayload:
        self.branches.update(pair.emit(value))
        return self

    def validate(self) -> None:
        """Reject payloads that assert more than one terminal disposition."""
        if self.terminate and self.flow:
            raise ControlSignalError("A payload cannot both continue the flow and terminate")

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the mapping the engine consumes; Credits is written last."""
        self.validate()
        payload: dict[str, Any] = dict(self.outputs)
        if self.flow is not None:
            payload[FLOW] = self.flow
        payload.update(self.branches)
        if self.terminate:
            payload[TERMINATE] = True
        if self.error is not None:
            payload[ERROR_DETAIL] = dict(self.error)
        payload[TOOL] = self.tool
        payload[CREDITS] = self.credits
        return payload

    @classmethod
    def from_mapping(cls, raw: dict[str, Any], branch_keys: Iterable[str] = ()) -> ResultPayload:
        """
        Lift a plain action result into a payload, picking out the reserved keys.

        Boolean values under ``branch_keys`` become branch flags rather than
        output ports, so an action can raise its own Success/Error pair.
        """
        branch_keys = set(branch_keys)
        outputs: dict[str, Any] = {}
        branches: dict[str, bool] = {}
        for key, value in raw.items():
            if key in RESERVED_KEYS:
                continue
            if key in branch_keys and isinstance(value, bool):
                branches[key] = value
            else:
                outputs[key] = value
        return cls(
            outputs=outputs,
            flow=raw.get(FLOW),
            branches=branches,
            terminate=bool(raw.get(TERMINATE, False)),
        )
