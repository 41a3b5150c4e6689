"""Shared fixtures for the test suite."""

import pytest

from contract_enricher.fetchers.base import Outcome, ServiceAdapter


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedAdapter(ServiceAdapter):
    """Adapter replaying a fixed list of outcomes, or answering from a function."""

    name = "scripted"

    def __init__(self, outcomes=None, answer=None, clock=None, call_duration=0.0, retry_policy=None):
        super().__init__(retry_policy)
        self.outcomes = list(outcomes or [])
        self.answer = answer
        self.clock = clock
        self.call_duration = call_duration
        self.payloads: list[str] = []
        self.call_times: list[float] = []

    async def _attempt(self, payload: str) -> Outcome:
        self.payloads.append(payload)
        if self.clock is not None:
            self.call_times.append(self.clock())
            self.clock.advance(self.call_duration)
        if self.outcomes:
            return self.outcomes.pop(0)
        return self.answer(payload)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
