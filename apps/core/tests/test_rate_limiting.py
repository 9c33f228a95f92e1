"""
Tests for the Redis fixed-window rate limiter.
"""
from unittest.mock import MagicMock, patch

import pytest
import redis
from django_redis import get_redis_connection

from apps.core.exceptions import RateLimitError
from apps.core.rate_limiting import RATE_LIMITS, RateLimitConfig, RateLimiter

WINDOW_START = 1_700_000_040_000  # multiple of 60000


@pytest.fixture
def config():
    return RateLimitConfig(name='test', window_ms=60000, max_requests=3, key_prefix='test')


@pytest.fixture
def limiter():
    return RateLimiter()


def at(ms):
    return patch.object(RateLimiter, '_now_ms', return_value=ms)


class TestCheckLimit:
    """Window counting against the shared Redis."""

    def test_allows_up_to_max_then_denies(self, limiter, config):
        with at(WINDOW_START + 10):
            results = [limiter.check_limit('10.0.0.1', config) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].count == 4
        assert all(r.reset_time == WINDOW_START + 60000 for r in results)

    def test_new_window_resets_budget(self, limiter, config):
        with at(WINDOW_START + 10):
            for _ in range(4):
                limiter.check_limit('10.0.0.1', config)

        with at(WINDOW_START + 60000):
            result = limiter.check_limit('10.0.0.1', config)

        assert result.allowed
        assert result.remaining == 2

    def test_identifiers_are_counted_separately(self, limiter, config):
        with at(WINDOW_START):
            for _ in range(3):
                limiter.check_limit('10.0.0.1', config)
            assert limiter.check_limit('10.0.0.2', config).remaining == 2

    def test_counter_key_expires_with_window(self, limiter, config):
        with at(WINDOW_START):
            limiter.check_limit('10.0.0.1', config)

        client = get_redis_connection('default')
        key = f"rate_limit:test:10.0.0.1:{WINDOW_START // 60000}"
        assert int(client.get(key)) == 1
        assert 0 < client.ttl(key) <= 60

    def test_fails_open_when_redis_unavailable(self, config):
        broken = MagicMock()
        broken.pipeline.side_effect = redis.exceptions.ConnectionError('down')
        limiter = RateLimiter(redis_client=broken)

        with at(WINDOW_START):
            result = limiter.check_limit('10.0.0.1', config)

        assert result.allowed
        assert result.remaining == config.max_requests
        assert result.reset_time == WINDOW_START + config.window_ms


class TestEnforceLimit:
    """Raising RateLimitError with a Retry-After hint."""

    def test_raises_with_seconds_until_reset(self, limiter, config):
        with at(WINDOW_START + 1000):
            for _ in range(3):
                limiter.enforce_limit('user-1', config)
            with pytest.raises(RateLimitError) as exc_info:
                limiter.enforce_limit('user-1', config, endpoint='/api/incidents/')

        assert exc_info.value.retry_after == 59
        assert exc_info.value.status_code == 429
        assert exc_info.value.details == {'retry_after': 59}

    def test_retry_after_is_at_least_one_second(self, limiter, config):
        with at(WINDOW_START + 59999):
            for _ in range(3):
                limiter.enforce_limit('user-1', config)
            with pytest.raises(RateLimitError) as exc_info:
                limiter.enforce_limit('user-1', config)

        assert exc_info.value.retry_after == 1

    def test_disabled_limiting_never_raises(self, limiter, config, settings):
        settings.RATE_LIMIT_ENABLED = False

        with at(WINDOW_START):
            results = [limiter.enforce_limit('user-1', config) for _ in range(5)]

        assert results[-1].allowed is False

    def test_denial_is_reported_to_security_log(self, limiter, config):
        with at(WINDOW_START), patch(
            'apps.core.rate_limiting.SecurityLogger.log_rate_limit_exceeded'
        ) as log_exceeded:
            for _ in range(3):
                limiter.enforce_limit('203.0.113.9', config)
            with pytest.raises(RateLimitError):
                limiter.enforce_limit('203.0.113.9', config, endpoint='/api/auth/login')

        log_exceeded.assert_called_once()
        assert log_exceeded.call_args.kwargs['limit_type'] == 'test'
        assert log_exceeded.call_args.kwargs['endpoint'] == '/api/auth/login'


def test_predefined_limits():
    assert RATE_LIMITS['LOGIN'].window_ms == 900000
    assert RATE_LIMITS['LOGIN'].max_requests == 5
    assert RATE_LIMITS['API_WRITE'].max_requests < RATE_LIMITS['API_READ'].max_requests
