"""Shared fixtures for nodekit tests."""

from __future__ import annotations

import pytest

from nodekit.observability import clear_trace_context


class FakeClock:
    """Monotonic clock advanced only by FakeSleep."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Records requested delays and advances the paired clock instead of waiting."""

    def __init__(self, clock: FakeClock | None = None):
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.clock is not None:
            self.clock.now += delay


@pytest.fixture(autouse=True)
def _clean_trace_context():
    clear_trace_context()
    yield
    clear_trace_context()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)
