"""
Rate Limiting Service - Per-user generation submission throttling
"""

import time
from typing import Any, Dict, Optional

import redis

from shotdesk.config.constants import RATE_LIMIT_WINDOW_S
from shotdesk.config.settings import settings
from shotdesk.services.errors import RateLimitedError


class RateLimiter:
    """
    Sliding window rate limiter using Redis
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        redis_client: Optional[redis.Redis] = None,
        requests_per_minute: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        """
        Initialize rate limiter

        Args:
            redis_url: Redis connection URL (defaults to settings.redis_url)
            redis_client: Pre-built client, used by tests
            requests_per_minute: Submissions allowed per window
            window_seconds: Window length
        """
        self.redis_url = redis_url or settings.redis_url
        self.redis_client = redis_client or redis.from_url(
            self.redis_url,
            decode_responses=True,
        )
        self.requests_per_minute = requests_per_minute or settings.generation_rate_limit_per_min
        self.window_seconds = window_seconds or RATE_LIMIT_WINDOW_S

    @staticmethod
    def _key(user_id: str) -> str:
        return f"ratelimit:generation:{user_id}"

    def check_rate_limit(self, user_id: str) -> Dict[str, Any]:
        """
        Record a submission attempt and report whether it is within the limit

        Args:
            user_id: Submitting user

        Returns:
            Dict with {
                "allowed": bool,
                "remaining": int,
                "reset_at": int (unix timestamp)
            }
        """
        key = self._key(user_id)
        now = time.time()
        window_start = now - self.window_seconds

        # Remove timestamps outside current window
        self.redis_client.zremrangebyscore(key, 0, window_start)

        # Count requests in current window
        current_count = self.redis_client.zcard(key)

        if current_count < self.requests_per_minute:
            self.redis_client.zadd(key, {str(now): now})
            self.redis_client.expire(key, self.window_seconds)
            return {
                "allowed": True,
                "remaining": self.requests_per_minute - (current_count + 1),
                "reset_at": int(now) + self.window_seconds,
            }

        oldest_request = self.redis_client.zrange(key, 0, 0, withscores=True)
        reset_at = (
            int(oldest_request[0][1]) + self.window_seconds
            if oldest_request
            else int(now) + self.window_seconds
        )
        return {
            "allowed": False,
            "remaining": 0,
            "reset_at": reset_at,
        }

    def enforce(self, user_id: str) -> Dict[str, Any]:
        """
        Like :meth:`check_rate_limit` but raises when the limit is exceeded

        Raises:
            RateLimitedError: Too many submissions in the current window
        """
        result = self.check_rate_limit(user_id)
        if not result["allowed"]:
            raise RateLimitedError(
                f"Generation rate limit exceeded ({self.requests_per_minute} per {self.window_seconds}s)",
                reset_at=result["reset_at"],
                suggested_modifications=["Wait for running generations to finish and try again"],
            )
        return result

    def reset_rate_limit(self, user_id: str) -> None:
        """Reset rate limit counters for a user."""
        self.redis_client.delete(self._key(user_id))
