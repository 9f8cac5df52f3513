"""
HTTP job backend - submit/poll over httpx.

Vendors differ only in where the poll token lives and how a status body reads,
so subclasses override three hooks:

- submit_url(request): endpoint receiving the submit call
- extract_token(data): poll URL or task id from the submit response
- classify(data): turn a status body into Ready / Pending / Failed

The backend does not own the client. Actions open an ``httpx.AsyncClient``
with ``async with`` so the connection is released on every exit path.
Status endpoints that expect a POST set ``poll_method`` and ``build_poll_body``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx

from nodekit.config import get_http_timeout
from nodekit.jobs.orchestrator import JobHandle, PollOutcome
from nodekit.node.errors import SubmissionError, TransportNoise


def http_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """AsyncClient with the configured timeout; ``transport`` is injectable for tests."""
    return httpx.AsyncClient(timeout=get_http_timeout(), transport=transport)


class HttpJobBackend(ABC):
    """Base class for vendors exposing a submit endpoint and a status endpoint."""

    submit_method = "POST"
    poll_method = "GET"

    def __init__(self, client: httpx.AsyncClient, headers: dict[str, str] | None = None):
        self.client = client
        self.headers = headers or {}

    @abstractmethod
    def submit_url(self, request: Any) -> str: ...

    @abstractmethod
    def extract_token(self, data: dict[str, Any]) -> str | None: ...

    @abstractmethod
    def classify(self, data: dict[str, Any]) -> PollOutcome: ...

    def build_submit_body(self, request: Any) -> Any:
        return request

    def poll_url(self, handle: JobHandle) -> str:
        return handle.token

    def build_poll_body(self, handle: JobHandle) -> Any:
        return None

    async def submit(self, request: Any) -> JobHandle:
        response = await self.client.request(
            self.submit_method,
            self.submit_url(request),
            json=self.build_submit_body(request),
            headers=self.headers,
        )
        if response.status_code >= 400:
            raise SubmissionError(f"HTTP {response.status_code}: {response.text[:500]}")

        try:
            data = response.json()
        except ValueError as e:
            raise SubmissionError(f"Submit response is not JSON: {e}") from e

        token = self.extract_token(data)
        if not token:
            raise SubmissionError("Submit response carries no job reference")
        return JobHandle(token=str(token), submission=data)

    async def poll(self, handle: JobHandle) -> PollOutcome:
        response = await self.client.request(
            self.poll_method,
            self.poll_url(handle),
            json=self.build_poll_body(handle),
            headers=self.headers,
        )
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise TransportNoise(f"Status response is not JSON: {e}") from e
        return self.classify(data)
