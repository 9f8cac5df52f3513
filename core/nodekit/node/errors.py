"""Error taxonomy for node execution.

Errors are raised inside node actions and job backends and caught only at the
``ExecutableNode.invoke`` / ``ToolCapability.invoke`` boundary, where they are
classified into a :class:`FailureReason`.
"""

from enum import StrEnum


class FailureReason(StrEnum):
    """Why an invocation or a job did not produce a billable result."""

    MISSING_PARAMETER = "missing_parameter"
    SUBMISSION_ERROR = "submission_error"
    VENDOR_FAILED = "vendor_failed"
    TIMEOUT = "timeout"
    ERROR = "error"  # Anything unclassified raised by an action


class NodeError(Exception):
    """Base class for errors raised while executing a node."""

    reason: FailureReason = FailureReason.ERROR

    def __init__(self, message: str, *, node_type: str | None = None) -> None:
        self.message = message
        self.node_type = node_type
        super().__init__(message)


class MissingParameter(NodeError):
    """A parameter required for direct execution has no defined value."""

    reason = FailureReason.MISSING_PARAMETER

    def __init__(self, names: list[str], *, node_type: str | None = None) -> None:
        self.names = list(names)
        super().__init__(f"Missing required parameter(s): {', '.join(names)}", node_type=node_type)


class CredentialError(NodeError):
    """A secret the action needs is not present in the environment."""


class ControlSignalError(NodeError):
    """A result payload asserts contradictory control signals."""


class JobError(NodeError):
    """Base class for terminal failures of an external long-running job."""


class SubmissionError(JobError):
    """The submit call failed; submissions are never retried."""

    reason = FailureReason.SUBMISSION_ERROR


class VendorFailed(JobError):
    """The vendor explicitly reported the job as failed."""

    reason = FailureReason.VENDOR_FAILED


class JobTimeout(JobError):
    """The poll budget ran out before the job reached a terminal state."""

    reason = FailureReason.TIMEOUT


class TransportNoise(Exception):
    """Transient transport failure while polling; retried as Pending."""


def classify(exc: BaseException) -> FailureReason:
    """Map an exception caught at the action boundary to a failure reason."""
    if isinstance(exc, NodeError):
        return exc.reason
    if isinstance(exc, TimeoutError):
        return FailureReason.TIMEOUT
    return FailureReason.ERROR
