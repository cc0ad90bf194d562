"""
Circuit breaker and timeout for lookups on the transfer path

A lookup that errors or times out counts as a failure. After enough failures
the breaker opens and calls fail fast until ``reset_timeout`` has passed; the
next calls then probe the dependency (half-open) and close the breaker again
once ``success_threshold`` of them succeed.
"""
import asyncio
import functools
import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

class CircuitState(Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    reset_timeout: float = 30.0
    success_threshold: int = 2
    timeout: float = 2.0

class CircuitBreakerException(Exception):
    """Raised instead of calling a dependency whose breaker is open"""

async def run_blocking(func: Callable, *args, **kwargs) -> Any:
    """Run a blocking call (database, redis, kafka) on the default executor"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

class CircuitBreaker:
    def __init__(self, name: str, config: CircuitBreakerConfig = None):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at = 0.0

    def _transition(self, state: CircuitState):
        if state is not self.state:
            logger.warning(f"⚡ Circuit breaker {self.name}: {self.state.value} -> {state.value}")
        self.state = state
        self.success_count = 0
        if state is CircuitState.OPEN:
            self.opened_at = time.monotonic()
        elif state is CircuitState.CLOSED:
            self.failure_count = 0

    def _on_success(self):
        if self.state is CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.success_threshold:
                self._transition(CircuitState.CLOSED)
        else:
            self.failure_count = 0

    def _on_failure(self):
        self.failure_count += 1
        if self.state is CircuitState.HALF_OPEN or self.failure_count >= self.config.failure_threshold:
            self._transition(CircuitState.OPEN)

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Run ``func`` (sync or async) within ``config.timeout`` seconds"""
        if self.state is CircuitState.OPEN:
            if time.monotonic() - self.opened_at < self.config.reset_timeout:
                raise CircuitBreakerException(f"Circuit breaker {self.name} is open")
            self._transition(CircuitState.HALF_OPEN)

        if inspect.iscoroutinefunction(func):
            pending = func(*args, **kwargs)
        else:
            pending = run_blocking(func, *args, **kwargs)
        try:
            result = await asyncio.wait_for(pending, timeout=self.config.timeout)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

def lookup_breaker(name: str, timeout: float) -> CircuitBreaker:
    """Breaker tuned for point lookups on the transfer path"""
    return CircuitBreaker(name, CircuitBreakerConfig(
        failure_threshold=5,
        reset_timeout=15.0,
        success_threshold=2,
        timeout=timeout,
    ))
