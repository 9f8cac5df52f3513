"""
ExecutableNode - the execution contract every node follows.

Per invocation:

    Resolving → {ToolOnly, Direct} → {Succeeded, Failed}

1. Resolve every declared parameter (dynamic inputs outrank static fields)
2. If a parameter required for direct execution is absent, reset the meter
   and return only the ToolCapability (all data ports null)
3. Otherwise run the action inside a credit transaction:
   - success: fill the payload, Success branch, Flow, Tool, Credits
   - any exception: reset the meter, raise the Error branch, keep the Tool

``invoke`` never raises; the engine always receives a well-formed payload.

Example:
    class EchoNode(ExecutableNode):
        type = "echo"
        title = "Echo"
        credit = 1
        inputs = [Port(name="Text", type="Text")]
        outputs = [Port(name="Text", type="Text"), Port(name="Tool", type="Tool")]
        required = frozenset({"Text"})

        tool_name = "echo"
        tool_description = "Repeats the text back."
        tool_args = EchoArgs

        async def run(self, ctx, credits):
            return {"Text": ctx.param("Text")}
"""

from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, ClassVar

from pydantic import BaseModel

from nodekit.node.context import Environment, ExecutionContext, InvocationMode
from nodekit.node.credits import CreditMeter, CreditTransaction
from nodekit.node.descriptor import CONTROL_PORT_TYPES, FieldSpec, NodeConfig, Port
from nodekit.node.errors import FailureReason, classify
from nodekit.node.params import NamedValue, ParameterResolver, ParameterSpec
from nodekit.node.signals import SUCCESS_ERROR, BranchPair, ResultPayload
from nodekit.node.tool import ToolCapability, ToolFailurePolicy
from nodekit.observability import node_logger, trace_scope

NamedValues = Iterable[NamedValue | Mapping[str, Any]] | None


class ExecutableNode(ABC):
    """
    Base class for all nodes.

    Subclasses declare their descriptor as class attributes and implement
    ``run(ctx, credits)``, returning a ResultPayload or a plain dict of
    output ports. ``run`` raises on failure; the base class turns that into
    the failure payload.
    """

    # Descriptor
    type: ClassVar[str] = "base"
    title: ClassVar[str] = "Base Node"
    category: ClassVar[str] = ""
    description: ClassVar[str] = ""
    credit: ClassVar[int | None] = 0
    inputs: ClassVar[list[Port]] = []
    outputs: ClassVar[list[Port]] = []
    fields: ClassVar[list[FieldSpec]] = []
    difficulty: ClassVar[str] = "easy"
    tags: ClassVar[list[str]] = []

    # Parameters: derived from inputs + fields unless listed explicitly
    parameters: ClassVar[list[ParameterSpec] | None] = None
    defaults: ClassVar[dict[str, Any]] = {}
    required: ClassVar[frozenset[str]] = frozenset()
    tool_arg_names: ClassVar[dict[str, str]] = {}

    # Tool version of the node (None = the node offers no tool)
    tool_name: ClassVar[str | None] = None
    tool_description: ClassVar[str] = ""
    tool_args: ClassVar[type[BaseModel] | None] = None
    tool_failure_policy: ClassVar[ToolFailurePolicy] = ToolFailurePolicy.DISCARD

    # Branch pair raised on success (on) / failure (off)
    outcome_branch: ClassVar[BranchPair | None] = SUCCESS_ERROR

    def __init__(self) -> None:
        self.resolver = ParameterResolver(self.parameter_specs())
        self.logger = node_logger(self.type)
        self._config = self.get_config()

    # ==== Descriptor ====

    @classmethod
    def get_config(cls) -> NodeConfig:
        return NodeConfig(
            title=cls.title,
            category=cls.category,
            type=cls.type,
            description=cls.description,
            credit=cls.credit,
            inputs=list(cls.inputs),
            outputs=list(cls.outputs),
            fields=list(cls.fields),
            difficulty=cls.difficulty,
            tags=list(cls.tags),
        )

    @classmethod
    def parameter_specs(cls) -> list[ParameterSpec]:
        """Every non-control input port and field, first declaration wins."""
        if cls.parameters is not None:
            return list(cls.parameters)

        specs: list[ParameterSpec] = []
        seen: set[str] = set()
        declared = [(p.name, p.type, p.desc) for p in cls.inputs]
        declared += [(f.name, f.type, f.desc) for f in cls.fields]
        for name, port_type, desc in declared:
            if port_type in CONTROL_PORT_TYPES or name in seen:
                continue
            seen.add(name)
            specs.append(
                ParameterSpec(
                    name=name,
                    default=cls.defaults.get(name),
                    required=name in cls.required,
                    description=desc,
                    tool_arg=cls.tool_arg_names.get(name),
                )
            )
        return specs

    def estimate_usage(
        self,
        dynamic: NamedValues,
        static: NamedValues,
        environment: Environment | None = None,
    ) -> int | None:
        """Expected cost before execution. Override for input-dependent pricing."""
        return self.credit

    # ==== Tool ====

    def create_tool(self, environment: Environment, meter: CreditMeter) -> ToolCapability | None:
        if self.tool_name is None or self.tool_args is None:
            return None
        return ToolCapability(
            node=self,
            environment=environment,
            meter=meter,
            name=self.tool_name,
            description=self.tool_description or self.description,
            args_model=self.tool_args,
        )

    def tool_text(self, payload: ResultPayload) -> str:
        """Text handed back to the agent after a successful delegated call."""
        return json.dumps(payload.outputs, default=str)

    # ==== Execution ====

    @abstractmethod
    async def run(
        self, ctx: ExecutionContext, credits: CreditTransaction
    ) -> ResultPayload | dict[str, Any]:
        """Perform the node's action. Raise on failure."""
        raise NotImplementedError

    def build_context(
        self,
        parameters: Mapping[str, Any],
        environment: Environment,
        invocation_id: str,
        mode: InvocationMode = InvocationMode.DIRECT,
    ) -> ExecutionContext:
        return ExecutionContext(
            parameters=parameters,
            environment=environment,
            logger=self.logger,
            invocation_id=invocation_id,
            node_type=self.type,
            mode=mode,
            runtime={"workflow_id": environment.metadata.get("workflowId")},
        )

    async def execute_action(
        self, ctx: ExecutionContext, credits: CreditTransaction
    ) -> ResultPayload:
        """Shared by the direct and delegated paths."""
        result = await self.run(ctx, credits)
        if isinstance(result, ResultPayload):
            payload = result
        else:
            branch_keys = self.outcome_branch.keys if self.outcome_branch is not None else ()
            payload = ResultPayload.from_mapping(result, branch_keys)
        payload.validate()
        return payload

    async def invoke(
        self,
        dynamic: NamedValues = None,
        static: NamedValues = None,
        environment: Environment | None = None,
    ) -> dict[str, Any]:
        """
        Engine entry point.

        Args:
            dynamic: Upstream-supplied ``{name, value}`` bindings
            static: The node's configured field values
            environment: Secrets and engine metadata

        Returns:
            Flat result payload (data ports, control signals, Tool, Credits)
        """
        environment = environment or Environment()
        invocation_id = uuid.uuid4().hex

        with trace_scope(
            invocation_id=invocation_id,
            node_type=self.type,
            mode=InvocationMode.DIRECT.value,
        ):
            return (await self._invoke(dynamic, static, environment, invocation_id)).to_dict()

    async def _invoke(
        self,
        dynamic: NamedValues,
        static: NamedValues,
        environment: Environment,
        invocation_id: str,
    ) -> ResultPayload:
        meter = CreditMeter(self.credit)
        tool = self.create_tool(environment, meter)
        self.logger.info("Begin execution", extra={"event": "node_started"})

        try:
            resolved = self.resolver.resolve_all(dynamic, static)
        except Exception as e:
            meter.reset()
            return self._failure_payload(e, tool, meter)

        if not resolved.sufficient:
            self.logger.info(
                f"Missing {', '.join(resolved.missing)}, returning tool only",
                extra={"event": "node_tool_only", "reason": FailureReason.MISSING_PARAMETER.value},
            )
            meter.reset()
            return self._tool_only_payload(tool, meter)

        ctx = self.build_context(resolved.values, environment, invocation_id)
        try:
            with meter.transaction() as tx:
                payload = await self.execute_action(ctx, tx)
        except Exception as e:
            meter.reset()
            return self._failure_payload(e, tool, meter)

        return self._success_payload(payload, tool, meter)

    # ==== Payload assembly ====

    def _null_outputs(self) -> dict[str, Any]:
        return {name: None for name in self._config.data_outputs()}

    def _tool_only_payload(self, tool: ToolCapability | None, meter: CreditMeter) -> ResultPayload:
        payload = ResultPayload(outputs=self._null_outputs(), tool=tool)
        if self._config.has_flow_output():
            payload.flow = False
        payload.credits = meter.read()
        return payload

    def _failure_payload(
        self, exc: Exception, tool: ToolCapability | None, meter: CreditMeter
    ) -> ResultPayload:
        reason = classify(exc)
        self.logger.error(
            f"Error: {exc}",
            exc_info=reason is FailureReason.ERROR,
            extra={"event": "node_failed", "reason": reason.value},
        )
        payload = ResultPayload(
            outputs=self._null_outputs(),
            tool=tool,
            error={"reason": reason.value, "message": str(exc)},
        )
        if self._config.has_flow_output():
            payload.flow = False
        if self.outcome_branch is not None:
            payload.with_branch(self.outcome_branch, False)
        payload.credits = meter.read()
        return payload

    def _success_payload(
        self, payload: ResultPayload, tool: ToolCapability | None, meter: CreditMeter
    ) -> ResultPayload:
        payload.outputs = {**self._null_outputs(), **payload.outputs}
        if self._config.has_flow_output() and payload.flow is None:
            payload.flow = not payload.terminate
        if self.outcome_branch is not None and not set(self.outcome_branch.keys) & set(
            payload.branches
        ):
            payload.with_branch(self.outcome_branch, True)
        payload.tool = tool
        payload.credits = meter.read()
        self.logger.success(
            "Execution completed",
            extra={"event": "node_completed", "credits": payload.credits},
        )
        return payload
