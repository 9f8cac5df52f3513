"""Terminate Agent - stops graph traversal at this node."""

from nodekit.node import (
    CreditTransaction,
    ExecutableNode,
    ExecutionContext,
    FieldSpec,
    Port,
    ResultPayload,
)


class TerminateNode(ExecutableNode):
    type = "terminate_node"
    title = "Terminate Agent"
    category = "processing"
    description = "Terminate the flow of the agent"
    credit = 0
    inputs = [
        Port(name="Flow", type="Flow", desc="The flow of the workflow"),
        Port(name="Reason", type="Text", desc="Reason for terminating the agent (Optional)"),
    ]
    outputs = []
    fields = [
        FieldSpec(
            name="Reason",
            type="TextArea",
            desc="Reason for terminating the agent (Optional)",
            value="text here ...",
        ),
    ]
    difficulty = "easy"
    tags = ["terminate", "stop", "quit"]

    defaults = {"Reason": ""}
    outcome_branch = None

    async def run(self, ctx: ExecutionContext, credits: CreditTransaction) -> ResultPayload:
        ctx.logger.info(f"Terminating agent. Reason: {ctx.param('Reason') or 'none given'}")
        return ResultPayload(terminate=True)
