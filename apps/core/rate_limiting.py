"""
Rate limiting utilities for API requests.

Implements Redis-based fixed-window rate limiting. Each window is a
counter key that is incremented and given an expiry inside a single
MULTI/EXEC pipeline, so a counter can never be left without a TTL.

When Redis is unreachable the limiter fails open: the request is
allowed and a full budget is reported.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Optional

from django.conf import settings

from apps.core.exceptions import RateLimitError
from apps.core.security_logger import SecurityLogger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """A named window/ceiling pair applied to one kind of identifier."""

    name: str
    window_ms: int
    max_requests: int
    key_prefix: str

    def key_for(self, identifier: str) -> str:
        """Redis key prefix for an identifier (window index is appended)."""
        return f"rate_limit:{self.key_prefix}:{identifier}"


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single counter increment."""

    allowed: bool
    remaining: int
    reset_time: int  # epoch milliseconds
    count: int = 0


class RateLimiter:
    """
    Fixed-window rate limiter backed by shared Redis counters.

    The Redis client is injected; when omitted the django-redis
    connection for the default cache is acquired on first use.
    """

    def __init__(self, redis_client=None):
        self._redis = redis_client

    @property
    def redis(self):
        if self._redis is None:
            from django_redis import get_redis_connection
            self._redis = get_redis_connection('default')
        return self._redis

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    def check_limit(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """
        Count this request against the identifier's current window.

        Args:
            identifier: Client IP or user id
            config: Window and ceiling to apply

        Returns:
            RateLimitResult with allowed flag, remaining budget and reset time
        """
        now_ms = self._now_ms()
        window = now_ms // config.window_ms
        window_key = f"{config.key_for(identifier)}:{window}"

        try:
            pipeline = self.redis.pipeline(transaction=True)
            pipeline.incr(window_key)
            pipeline.expire(window_key, math.ceil(config.window_ms / 1000))
            count = int(pipeline.execute()[0])
        except Exception as e:
            logger.error(
                f"Rate limit check failed for {config.name}, allowing request: {e}",
                extra={'identifier': identifier, 'limit_name': config.name},
                exc_info=True
            )
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests,
                reset_time=now_ms + config.window_ms,
            )

        allowed = count <= config.max_requests
        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, config.max_requests - count),
            reset_time=(window + 1) * config.window_ms,
            count=count,
        )

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {config.name}: {count}/{config.max_requests}",
                extra={
                    'identifier': identifier,
                    'limit_name': config.name,
                    'count': count,
                    'max_requests': config.max_requests,
                    'window_ms': config.window_ms,
                }
            )

        return result

    def enforce_limit(
        self,
        identifier: str,
        config: RateLimitConfig,
        endpoint: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> RateLimitResult:
        """
        Check the limit and raise RateLimitError when it is exceeded.

        Raises:
            RateLimitError: carrying the seconds until the window resets
        """
        result = self.check_limit(identifier, config)

        if not result.allowed and getattr(settings, 'RATE_LIMIT_ENABLED', True):
            retry_after = max(1, math.ceil((result.reset_time - self._now_ms()) / 1000))
            SecurityLogger.log_rate_limit_exceeded(
                identifier=identifier,
                limit_type=config.name,
                endpoint=endpoint or 'unknown',
                ip_address=ip_address or 'unknown',
                limit=f"{config.max_requests}/{config.window_ms}ms"
            )
            raise RateLimitError(
                f"Rate limit exceeded. Try again in {retry_after} seconds.",
                retry_after=retry_after
            )

        return result


# Predefined rate limit configurations
RATE_LIMITS = {
    'LOGIN': RateLimitConfig(
        name='login',
        window_ms=getattr(settings, 'RATE_LIMIT_WINDOW_MS', 900000),
        max_requests=getattr(settings, 'RATE_LIMIT_MAX_REQUESTS', 5),
        key_prefix='login',
    ),
    'API_WRITE': RateLimitConfig(
        name='api_write',
        window_ms=60000,  # 1 minute
        max_requests=30,
        key_prefix='api_write',
    ),
    'API_READ': RateLimitConfig(
        name='api_read',
        window_ms=60000,  # 1 minute
        max_requests=100,
        key_prefix='api_read',
    ),
}

rate_limiter = RateLimiter()
