"""
Bounded retries with exponential backoff, used for optimistic balance updates
"""
import asyncio
import inspect
import random
from dataclasses import dataclass
from typing import Callable, Any, Tuple, Type
import logging

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class RetryConfig:
    """How often and how patiently to retry one operation"""
    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 1.0
    exponential_base: float = 2.0
    jitter: bool = True
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff before retry number ``attempt`` (1-based)"""
    if config.base_delay <= 0:
        return 0.0
    delay = min(config.base_delay * (config.exponential_base ** (attempt - 1)), config.max_delay)
    if config.jitter:
        # spread competing writers on the same row
        delay *= 0.5 + random.random() * 0.5
    return delay

async def retry_async(func: Callable, config: RetryConfig, *args, **kwargs) -> Any:
    """Call ``func`` until it succeeds or ``config.max_attempts`` is spent.

    Exceptions outside ``config.retry_on`` propagate at once. When every
    attempt fails, the last exception is re-raised.
    """
    name = getattr(func, "__name__", repr(func))
    for attempt in range(1, config.max_attempts + 1):
        try:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result
        except config.retry_on as e:
            if attempt == config.max_attempts:
                logger.error(f"🔁 {name} gave up after {attempt} attempts: {e!r}")
                raise
            delay = calculate_delay(attempt, config)
            logger.warning(f"🔁 {name} attempt {attempt}/{config.max_attempts} failed ({e!r}), "
                           f"retrying in {delay:.3f}s")
            if delay:
                await asyncio.sleep(delay)
