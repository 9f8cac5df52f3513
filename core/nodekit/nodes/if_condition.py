"""If Condition - compares two inputs and raises the True or False branch."""

import operator
from collections.abc import Callable
from typing import Any

from nodekit.node import (
    TRUE_FALSE,
    CreditTransaction,
    ExecutableNode,
    ExecutionContext,
    FieldSpec,
    Port,
    ResultPayload,
)

OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def coerce(value: Any) -> Any:
    """Numeric strings compare as numbers ("10" > "9")."""
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    return value


class IfCondition(ExecutableNode):
    type = "if_condition"
    title = "If Condition"
    category = "flow"
    description = "Compare two values and branch on the result"
    credit = 0
    inputs = [
        Port(name="Input 1", type="Any", desc="First value"),
        Port(name="Input 2", type="Any", desc="Second value"),
    ]
    outputs = [
        Port(name="True", type="Flow", desc="Triggered when the condition holds"),
        Port(name="False", type="Flow", desc="Triggered when the condition fails"),
        Port(name="Result", type="Boolean", desc="Result of the comparison"),
    ]
    fields = [
        FieldSpec(
            name="Condition",
            type="select",
            desc="Comparison operator",
            value="==",
            options=list(OPERATORS),
        ),
    ]
    difficulty = "easy"
    tags = ["if", "condition", "branch"]

    defaults = {"Condition": "=="}
    required = frozenset({"Input 1", "Input 2"})
    outcome_branch = None

    async def run(self, ctx: ExecutionContext, credits: CreditTransaction) -> ResultPayload:
        condition = ctx.param("Condition")
        compare = OPERATORS.get(str(condition).strip())
        if compare is None:
            raise ValueError(f"Unknown condition: {condition!r}")

        result = bool(compare(coerce(ctx.param("Input 1")), coerce(ctx.param("Input 2"))))
        ctx.logger.success(f"Emitting result: {result}")
        return ResultPayload(outputs={"Result": result}).with_branch(TRUE_FALSE, result)
