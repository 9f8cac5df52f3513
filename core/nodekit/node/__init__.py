"""Node execution contract: parameters, credits, control signals, tools."""

from nodekit.node.context import Environment, ExecutionContext, InvocationMode
from nodekit.node.credits import CreditMeter, CreditTransaction
from nodekit.node.descriptor import FieldSpec, NodeConfig, Port
from nodekit.node.errors import (
    ControlSignalError,
    CredentialError,
    FailureReason,
    JobError,
    JobTimeout,
    MissingParameter,
    NodeError,
    SubmissionError,
    TransportNoise,
    VendorFailed,
)
from nodekit.node.executable import ExecutableNode
from nodekit.node.params import NamedValue, ParameterResolver, ParameterSpec, resolve
from nodekit.node.signals import SUCCESS_ERROR, TRUE_FALSE, BranchPair, ResultPayload
from nodekit.node.tool import ToolCapability, ToolFailurePolicy

__all__ = [
    "BranchPair",
    "ControlSignalError",
    "CredentialError",
    "CreditMeter",
    "CreditTransaction",
    "Environment",
    "ExecutableNode",
    "ExecutionContext",
    "FailureReason",
    "FieldSpec",
    "InvocationMode",
    "JobError",
    "JobTimeout",
    "MissingParameter",
    "NamedValue",
    "NodeConfig",
    "NodeError",
    "ParameterResolver",
    "ParameterSpec",
    "Port",
    "ResultPayload",
    "SUCCESS_ERROR",
    "SubmissionError",
    "TRUE_FALSE",
    "ToolCapability",
    "ToolFailurePolicy",
    "TransportNoise",
    "VendorFailed",
    "resolve",
]
