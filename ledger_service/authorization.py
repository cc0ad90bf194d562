"""One-time codes that authorize a single transfer."""
import hmac
import logging
import secrets

from common.circuit_breaker import CircuitBreaker, lookup_breaker
from common.redis_client import RedisClient

logger = logging.getLogger(__name__)

class OtpAuthorizer:
    def __init__(self, redis_client: RedisClient, ttl_seconds: int = 300,
                 breaker: CircuitBreaker = None, timeout: float = 2.0):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.breaker = breaker or lookup_breaker("otp", timeout)

    async def issue(self, account) -> str:
        code = f"{secrets.randbelow(9000) + 1000}"
        await self.breaker.call(self.redis.store_otp, account.id, code, self.ttl_seconds)
        logger.info(f"🔑 OTP issued for {account.id}, valid {self.ttl_seconds}s")
        return code

    async def authorize(self, account, proof) -> bool:
        """True only for the live code; the code is spent on success.

        Lookup failures and timeouts answer False.
        """
        if not proof:
            return False
        try:
            stored = await self.breaker.call(self.redis.get_otp, account.id)
            if stored is None or not hmac.compare_digest(str(stored), str(proof)):
                return False
            await self.breaker.call(self.redis.consume_otp, account.id)
        except Exception as e:
            logger.error(f"❌ OTP check for {account.id} failed closed: {e!r}")
            return False
        return True
