"""
Security event logging for monitoring and alerting.

Events go to the ``security`` logger with an ``event_type`` field so
they can be filtered downstream. Repeated failures from one source are
counted in the cache and escalated to Sentry past a threshold.
"""
import logging
from typing import Optional

import sentry_sdk
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

logger = logging.getLogger('security')


class SecurityLogger:
    """
    Centralized security event logging.
    """

    BRUTE_FORCE_THRESHOLD = 10
    RATE_LIMIT_ABUSE_THRESHOLD = 50
    DETECTION_WINDOW = 3600  # 1 hour

    @staticmethod
    def _emit(level: int, message: str, event_type: str, **fields):
        fields['event_type'] = event_type
        fields['timestamp'] = timezone.now().isoformat()
        logger.log(level, message, extra=fields)

    @classmethod
    def log_failed_login(
        cls,
        email: str,
        ip_address: str,
        user_agent: Optional[str] = None,
        reason: str = 'invalid_credentials'
    ):
        """
        Record a rejected login.

        Args:
            email: Address that was tried (masked by the JSON formatter)
            ip_address: Source address
            user_agent: Client user agent
            reason: invalid_credentials or inactive_account
        """
        cls._emit(
            logging.WARNING, "Failed login attempt", 'failed_login',
            email=email, ip_address=ip_address, user_agent=user_agent, reason=reason,
        )
        cls._escalate(
            f"security:brute_force:login:{ip_address}",
            cls.BRUTE_FORCE_THRESHOLD,
            f"Potential brute force attack from {ip_address}",
            ip_address=ip_address,
        )

    @classmethod
    def log_permission_denied(
        cls,
        user_id: Optional[str],
        role: Optional[str],
        action: str,
        resource_id: Optional[str] = None,
        ip_address: Optional[str] = None
    ):
        """Record a 403: who tried which action on which incident or comment."""
        cls._emit(
            logging.WARNING, "Permission denied", 'permission_denied',
            user_id=user_id, role=role, action=action,
            resource_id=resource_id, ip_address=ip_address,
        )

    @classmethod
    def log_rate_limit_exceeded(
        cls,
        identifier: str,
        limit_type: str,
        endpoint: str,
        ip_address: str,
        limit: str
    ):
        """
        Record a 429.

        Args:
            identifier: User id or IP the limit is keyed on
            limit_type: login, api_read or api_write
            limit: Human-readable ceiling, e.g. "5/900000ms"
        """
        cls._emit(
            logging.WARNING, "Rate limit exceeded", 'rate_limit_exceeded',
            identifier=identifier, limit_type=limit_type, endpoint=endpoint,
            ip_address=ip_address, limit=limit,
        )
        cls._escalate(
            f"security:rate_limit_abuse:{ip_address}",
            cls.RATE_LIMIT_ABUSE_THRESHOLD,
            f"Excessive rate limiting from {ip_address}",
            ip_address=ip_address,
        )

    @classmethod
    def log_sessions_revoked(cls, user_id: str, count: int, reason: str = 'logout_all'):
        cls._emit(
            logging.INFO, "User sessions revoked", 'sessions_revoked',
            user_id=user_id, count=count, reason=reason,
        )

    @classmethod
    def _escalate(cls, counter_key: str, threshold: int, alert: str, **context):
        """
        Count an occurrence and alert Sentry once the threshold is reached.

        The counter lives for DETECTION_WINDOW seconds. An unavailable
        cache disables escalation without affecting the caller.
        """
        try:
            count = cache.get(counter_key, 0) + 1
            cache.set(counter_key, count, cls.DETECTION_WINDOW)
        except Exception as e:
            logger.error(f"Security counter unavailable for {counter_key}: {e}")
            return

        if count >= threshold and not settings.DEBUG:
            sentry_sdk.capture_message(alert, level='warning', extras={**context, 'count': count})
