"""
Async Job Orchestrator - drives an external long-running job to a terminal state.

States:
    Submitting → Polling → {Ready, Failed}

``Polling`` loops with a fixed delay until the backend reports a terminal
outcome or the budget runs out, which yields ``Failed(TIMEOUT)``. A failed
submit is terminal immediately; submissions are never retried.

Transport noise while polling (connection resets, 5xx, timeouts) is logged and
recorded as ``Pending``. Only a vendor-reported failure or budget exhaustion
ends the job unsuccessfully.

Polls for one job are strictly sequential. There is no cancellation primitive:
a caller that stops awaiting ``run()`` simply abandons the job, and nothing is
owed to the remote side.

Example:
    orchestrator = AsyncJobOrchestrator(
        backend=FluxBackend(api_key, client),
        budget=AttemptBudget(20),
        poll_interval=3.0,
    )
    run = await orchestrator.run({"prompt": "A futuristic city"})
    image = run.unwrap()["sample"]
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from nodekit.config import get_poll_interval, get_poll_max_attempts
from nodekit.node.errors import (
    FailureReason,
    JobError,
    JobTimeout,
    SubmissionError,
    TransportNoise,
    VendorFailed,
)
from nodekit.observability import set_trace_context

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TransportNoise,
    httpx.TransportError,
    httpx.HTTPStatusError,
    TimeoutError,
    OSError,
)


# ---------------------------------------------------------------------------
# Job handle and poll outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JobHandle:
    """Reference to a submitted job; ``token`` is a poll URL or vendor task id."""

    token: str
    submission: Any = None


@dataclass(frozen=True)
class Ready:
    payload: Any
    terminal = True


@dataclass(frozen=True)
class Pending:
    detail: str | None = None
    terminal = False


@dataclass(frozen=True)
class Failed:
    reason: FailureReason
    detail: str = ""
    terminal = True


PollOutcome = Ready | Pending | Failed

_ERRORS_BY_REASON: dict[FailureReason, type[JobError]] = {
    FailureReason.SUBMISSION_ERROR: SubmissionError,
    FailureReason.VENDOR_FAILED: VendorFailed,
    FailureReason.TIMEOUT: JobTimeout,
}


class JobBackend(Protocol):
    """The two network calls of a long-running vendor job."""

    async def submit(self, request: Any) -> JobHandle: ...

    async def poll(self, handle: JobHandle) -> PollOutcome: ...


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttemptBudget:
    """Stop after a fixed number of polls."""

    max_attempts: int

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def exhausted(self, attempts: int, elapsed: float) -> bool:
        return attempts >= self.max_attempts

    def next_delay(self, interval: float, elapsed: float) -> float:
        return interval


@dataclass(frozen=True)
class DeadlineBudget:
    """Stop once a wall-clock deadline has passed."""

    seconds: float

    def __post_init__(self) -> None:
        if self.seconds <= 0:
            raise ValueError("seconds must be positive")

    def exhausted(self, attempts: int, elapsed: float) -> bool:
        return elapsed >= self.seconds

    def next_delay(self, interval: float, elapsed: float) -> float:
        return max(0.0, min(interval, self.seconds - elapsed))


PollBudget = AttemptBudget | DeadlineBudget


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------


@dataclass
class JobRun:
    """Result of driving one job; ``history`` ends with exactly one terminal outcome."""

    outcome: Ready | Failed
    history: list[PollOutcome] = field(default_factory=list)
    attempts: int = 0
    elapsed: float = 0.0
    handle: JobHandle | None = None

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Ready)

    def unwrap(self) -> Any:
        """Return the Ready payload or raise the typed JobError for the failure."""
        if isinstance(self.outcome, Ready):
            return self.outcome.payload
        error_cls = _ERRORS_BY_REASON.get(self.outcome.reason, VendorFailed)
        raise error_cls(self.outcome.detail or self.outcome.reason.value)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AsyncJobOrchestrator:
    """Generic submit → poll → terminal-state driver."""

    def __init__(
        self,
        backend: JobBackend,
        budget: PollBudget | None = None,
        poll_interval: float | None = None,
        initial_delay: float = 0.0,
        transient: tuple[type[BaseException], ...] = TRANSIENT_ERRORS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        name: str = "job",
    ):
        """
        Args:
            backend: Performs the submit and poll calls
            budget: AttemptBudget or DeadlineBudget (defaults to the configured attempt count)
            poll_interval: Seconds between polls (defaults to configuration)
            initial_delay: Seconds to wait between submit and the first poll
            transient: Exceptions from ``poll`` that count as transport noise
            sleep: Awaitable sleep, injectable for tests
            clock: Monotonic clock, injectable for tests
            name: Label used in log messages
        """
        self.backend = backend
        self.budget = budget or AttemptBudget(get_poll_max_attempts())
        self.poll_interval = get_poll_interval() if poll_interval is None else poll_interval
        self.initial_delay = initial_delay
        self.transient = transient
        self._sleep = sleep
        self._clock = clock
        self.name = name

    async def run(self, request: Any) -> JobRun:
        started = self._clock()

        try:
            handle = await self.backend.submit(request)
        except Exception as e:
            logger.error(f"{self.name}: submission failed: {e}", extra={"event": "job_submit_failed"})
            failed = Failed(FailureReason.SUBMISSION_ERROR, str(e))
            return JobRun(outcome=failed, history=[failed], elapsed=self._clock() - started)

        set_trace_context(job_id=handle.token)
        logger.info(f"{self.name}: submitted, polling", extra={"event": "job_submitted"})

        if self.initial_delay > 0:
            await self._sleep(self.initial_delay)

        history: list[PollOutcome] = []
        attempts = 0
        while True:
            attempts += 1
            outcome = await self._poll_once(handle, attempts)
            history.append(outcome)
            elapsed = self._clock() - started

            if outcome.terminal:
                self._log_terminal(outcome, attempts)
                return JobRun(outcome, history, attempts, elapsed, handle)

            if self.budget.exhausted(attempts, elapsed):
                timeout = Failed(
                    FailureReason.TIMEOUT,
                    f"{self.name} did not finish after {attempts} poll(s) in {elapsed:.1f}s",
                )
                history.append(timeout)
                self._log_terminal(timeout, attempts)
                return JobRun(timeout, history, attempts, elapsed, handle)

            await self._sleep(self.budget.next_delay(self.poll_interval, elapsed))

    async def _poll_once(self, handle: JobHandle, attempt: int) -> PollOutcome:
        try:
            return await self.backend.poll(handle)
        except self.transient as e:
            logger.warning(
                f"{self.name}: poll {attempt} failed ({e.__class__.__name__}: {e}), retrying",
                extra={"event": "job_poll_noise", "attempt": attempt},
            )
            return Pending(detail=str(e))

    def _log_terminal(self, outcome: Ready | Failed, attempts: int) -> None:
        if isinstance(outcome, Ready):
            logger.info(
                f"{self.name}: ready after {attempts} poll(s)",
                extra={"event": "job_ready", "attempt": attempts},
            )
        else:
            logger.error(
                f"{self.name}: {outcome.reason.value}: {outcome.detail}",
                extra={"event": "job_failed", "attempt": attempts, "reason": outcome.reason.value},
            )
