"""External long-running job support: submit, poll, terminal state."""

from nodekit.jobs.http import HttpJobBackend, http_client
from nodekit.jobs.orchestrator import (
    AsyncJobOrchestrator,
    AttemptBudget,
    DeadlineBudget,
    Failed,
    JobBackend,
    JobHandle,
    JobRun,
    Pending,
    PollOutcome,
    Ready,
)

__all__ = [
    "AsyncJobOrchestrator",
    "AttemptBudget",
    "DeadlineBudget",
    "Failed",
    "HttpJobBackend",
    "JobBackend",
    "JobHandle",
    "JobRun",
    "Pending",
    "PollOutcome",
    "Ready",
    "http_client",
]
