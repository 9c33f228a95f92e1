"""
Tests for security event logging and Sentry escalation.
"""
import logging
from unittest.mock import MagicMock, patch

from apps.core.security_logger import SecurityLogger


def test_failed_login_is_logged_with_event_type():
    with patch('apps.core.security_logger.logger') as security_log:
        SecurityLogger.log_failed_login('mallory@example.com', '198.51.100.7', 'curl/8')

    level, message = security_log.log.call_args.args
    extra = security_log.log.call_args.kwargs['extra']
    assert level == logging.WARNING
    assert message == 'Failed login attempt'
    assert extra['event_type'] == 'failed_login'
    assert extra['reason'] == 'invalid_credentials'
    assert extra['ip_address'] == '198.51.100.7'


def test_brute_force_escalates_at_threshold():
    with patch('apps.core.security_logger.sentry_sdk.capture_message') as capture:
        for _ in range(SecurityLogger.BRUTE_FORCE_THRESHOLD - 1):
            SecurityLogger.log_failed_login('mallory@example.com', '198.51.100.7')
        capture.assert_not_called()

        SecurityLogger.log_failed_login('mallory@example.com', '198.51.100.7')

    capture.assert_called_once()
    assert '198.51.100.7' in capture.call_args.args[0]


def test_counters_are_per_source():
    with patch('apps.core.security_logger.sentry_sdk.capture_message') as capture:
        for n in range(SecurityLogger.BRUTE_FORCE_THRESHOLD):
            SecurityLogger.log_failed_login('mallory@example.com', f'198.51.100.{n}')

    capture.assert_not_called()


def test_cache_outage_does_not_propagate():
    broken = MagicMock()
    broken.get.side_effect = ConnectionError('redis down')

    with patch('apps.core.security_logger.cache', broken):
        SecurityLogger.log_rate_limit_exceeded('u-1', 'api_write', '/api/incidents/', '192.0.2.1', '30/60000ms')
