"""Uniform request -> outcome contract shared by the service adapters."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from ..logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    TRANSIENT = "transient"
    FAILURE = "failure"


class TransientKind(str, Enum):
    THROTTLED = "throttled"
    STATUS = "status"
    NETWORK = "network"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one service call, as the driver sees it."""

    kind: OutcomeKind
    value: Optional[T] = None
    reason: str = ""
    transient_kind: Optional[TransientKind] = None

    @classmethod
    def success(cls, value: Optional[T]) -> "Outcome[T]":
        return cls(OutcomeKind.SUCCESS, value=value)

    @classmethod
    def empty(cls, reason: str = "") -> "Outcome[T]":
        return cls(OutcomeKind.EMPTY, reason=reason)

    @classmethod
    def transient(cls, kind: TransientKind, reason: str) -> "Outcome[T]":
        return cls(OutcomeKind.TRANSIENT, reason=reason, transient_kind=kind)

    @classmethod
    def failure(cls, reason: str) -> "Outcome[T]":
        return cls(OutcomeKind.FAILURE, reason=reason)

    @property
    def is_transient(self) -> bool:
        return self.kind is OutcomeKind.TRANSIENT


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff per kind of transient failure. No attempt cap unless `max_attempts` is set."""

    throttle_backoff: float = 3.0
    status_backoff: float = 3.0
    network_backoff: float = 10.0
    max_attempts: Optional[int] = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def backoff_for(self, kind: Optional[TransientKind]) -> float:
        if kind is TransientKind.THROTTLED:
            return self.throttle_backoff
        if kind is TransientKind.NETWORK:
            return self.network_backoff
        return self.status_backoff

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts


class ServiceAdapter(ABC, Generic[T]):
    """Wraps one external call and retries it while it fails transiently."""

    name = "service"

    def __init__(self, retry_policy: Optional[RetryPolicy] = None):
        self.retry_policy = retry_policy or RetryPolicy()

    async def invoke(self, payload: str) -> Outcome[T]:
        """
        Call the service until it gives a non-transient answer.

        Returns SUCCESS, EMPTY or FAILURE. FAILURE only comes back when the
        adapter reports a permanent error or `max_attempts` is used up.
        """
        attempts = 0
        while True:
            attempts += 1
            outcome = await self._attempt(payload)
            if not outcome.is_transient:
                return outcome

            if self.retry_policy.exhausted(attempts):
                logger.error(f"{self.name}: giving up after {attempts} attempts: {outcome.reason}")
                return Outcome.failure(f"retries exhausted: {outcome.reason}")

            delay = self.retry_policy.backoff_for(outcome.transient_kind)
            logger.warning(f"{self.name}: {outcome.reason}. Retrying in {delay:g}s...")
            await self.retry_policy.sleep(delay)

    @abstractmethod
    async def _attempt(self, payload: str) -> Outcome[T]:
        """Make a single call and classify its response."""
