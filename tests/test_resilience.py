import asyncio
import time
import unittest

from common.circuit_breaker import (
    CircuitBreaker, CircuitBreakerConfig, CircuitBreakerException, CircuitState,
)
from common.retry import RetryConfig, calculate_delay, retry_async

class Flaky(Exception):
    pass

class TestRetry(unittest.IsolatedAsyncioTestCase):

    async def test_retries_until_success(self):
        calls = []

        async def sometimes():
            calls.append(1)
            if len(calls) < 3:
                raise Flaky()
            return "done"

        config = RetryConfig(max_attempts=5, base_delay=0, retry_on=(Flaky,))
        self.assertEqual(await retry_async(sometimes, config), "done")
        self.assertEqual(len(calls), 3)

    async def test_other_errors_are_not_retried(self):
        calls = []

        def broken():
            calls.append(1)
            raise KeyError("x")

        with self.assertRaises(KeyError):
            await retry_async(broken, RetryConfig(max_attempts=5, base_delay=0, retry_on=(Flaky,)))
        self.assertEqual(len(calls), 1)

    async def test_last_error_surfaces_when_attempts_run_out(self):
        def always():
            raise Flaky("still stale")

        with self.assertRaises(Flaky):
            await retry_async(always, RetryConfig(max_attempts=2, base_delay=0, retry_on=(Flaky,)))

    def test_delay_grows_and_is_capped(self):
        config = RetryConfig(base_delay=0.1, max_delay=0.3, jitter=False)
        self.assertEqual([calculate_delay(n, config) for n in (1, 2, 3)], [0.1, 0.2, 0.3])
        self.assertEqual(calculate_delay(3, RetryConfig(base_delay=0)), 0.0)

class TestCircuitBreaker(unittest.IsolatedAsyncioTestCase):

    def breaker(self, **overrides):
        values = dict(failure_threshold=2, reset_timeout=60.0, success_threshold=1, timeout=0.2)
        values.update(overrides)
        return CircuitBreaker("test", CircuitBreakerConfig(**values))

    async def test_sync_and_async_calls(self):
        async def lookup(x):
            return x * 2

        breaker = self.breaker()
        self.assertEqual(await breaker.call(lookup, 2), 4)
        self.assertEqual(await breaker.call(len, "abc"), 3)

    async def test_timeout_counts_as_failure(self):
        breaker = self.breaker()
        with self.assertRaises(asyncio.TimeoutError):
            await breaker.call(asyncio.sleep, 1)
        self.assertEqual(breaker.failure_count, 1)

    async def test_opens_and_fails_fast(self):
        def down():
            raise ConnectionError("no route")

        breaker = self.breaker()
        for _ in range(2):
            with self.assertRaises(ConnectionError):
                await breaker.call(down)
        self.assertIs(breaker.state, CircuitState.OPEN)
        with self.assertRaises(CircuitBreakerException):
            await breaker.call(len, "never called")

    async def test_half_open_probe_closes_breaker(self):
        breaker = self.breaker(reset_timeout=0.0)
        breaker.state = CircuitState.OPEN
        breaker.opened_at = time.monotonic() - 1
        self.assertEqual(await breaker.call(len, "ok"), 2)
        self.assertIs(breaker.state, CircuitState.CLOSED)

if __name__ == "__main__":
    unittest.main()
