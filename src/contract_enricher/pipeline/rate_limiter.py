"""Rate limiting utilities for external API calls."""

import asyncio
import math
import time
from typing import Awaitable, Callable, Optional
from ..errors import ConfigurationError
from ..logging_config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Minimum-interval rate limiter for one external service.

    Calls are fully serialized: `acquire()` blocks until at least
    ``floor(1000 / max_rate)`` milliseconds have passed since the previous
    call completed. Use it as an async context manager so the completion
    time is recorded after the call returns:

        async with limiter:
            await call_service()
    """
    
    def __init__(
        self,
        max_rate: float,
        name: str = "service",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.
        
        Args:
            max_rate: Maximum requests per second
            name: Service name used in log messages
            clock: Monotonic clock returning seconds
            sleep: Coroutine used to wait
        """
        if max_rate <= 0:
            raise ConfigurationError(f"Rate for {name} must be positive, got {max_rate}")
        
        self.max_rate = max_rate
        self.name = name
        self.interval = math.floor(1000 / max_rate) / 1000
        self._clock = clock
        self._sleep = sleep
        self._last_completed: Optional[float] = None
        self._lock = asyncio.Lock()
    
    async def acquire(self) -> None:
        """Wait until the next call to the service is allowed."""
        async with self._lock:
            wait_time = self.time_until_ready()
            if wait_time > 0:
                logger.debug(f"Rate limit for {self.name}, waiting {wait_time:.2f}s")
                await self._sleep(wait_time)
            # Until release() reports completion, count from now
            self._last_completed = self._clock()

    def release(self) -> None:
        """Record that the call has completed."""
        self._last_completed = self._clock()
    
    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
    
    def time_until_ready(self) -> float:
        """Seconds left before the next call may start."""
        if self._last_completed is None:
            return 0.0
        elapsed = self._clock() - self._last_completed
        return max(0.0, self.interval - elapsed)
    
    def reset(self) -> None:
        """Forget the previous call."""
        self._last_completed = None
