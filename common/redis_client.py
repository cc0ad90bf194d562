"""
Redis client utilities for short-lived authorization codes
"""
import redis
from typing import Optional
import logging

logger = logging.getLogger(__name__)

class RedisClient:
    """Redis client wrapper with utility methods"""

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self.client = client or redis.Redis.from_url(url, decode_responses=True)

    def ping(self) -> bool:
        """Check Redis connectivity"""
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    # One-time codes
    def store_otp(self, account_id: str, code: str, ttl_seconds: int) -> bool:
        """Store a one-time code, replacing any previous one for the account"""
        return bool(self.client.setex(f"otp:{account_id}", ttl_seconds, code))

    def get_otp(self, account_id: str) -> Optional[str]:
        """Return the live one-time code for the account, if any"""
        return self.client.get(f"otp:{account_id}")

    def consume_otp(self, account_id: str) -> bool:
        """Delete the code so it cannot be used twice"""
        return bool(self.client.delete(f"otp:{account_id}"))

    def close(self):
        self.client.close()
