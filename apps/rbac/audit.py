"""
Audit trail service.

Every write is best-effort: a failure to record an audit entry is logged
and never turns a successful user action into a failed response.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone

from apps.rbac.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction(models.TextChoices):
    LOGIN = 'LOGIN'
    LOGOUT = 'LOGOUT'
    CREATE_INCIDENT = 'CREATE_INCIDENT'
    UPDATE_INCIDENT = 'UPDATE_INCIDENT'
    DELETE_INCIDENT = 'DELETE_INCIDENT'
    CREATE_COMMENT = 'CREATE_COMMENT'
    DELETE_COMMENT = 'DELETE_COMMENT'
    VIEW_INCIDENT = 'VIEW_INCIDENT'
    SEARCH_INCIDENTS = 'SEARCH_INCIDENTS'


def request_context(request) -> Dict[str, Optional[str]]:
    """Extract ip_address and user_agent keyword arguments from a request."""
    if request is None:
        return {'ip_address': None, 'user_agent': None}
    from apps.core.middleware import get_client_ip
    ip_address = get_client_ip(request)
    return {
        'ip_address': None if ip_address == 'unknown' else ip_address,
        'user_agent': request.META.get('HTTP_USER_AGENT', ''),
    }


def _json_value(value):
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


class AuditService:
    """
    Service for appending audit records.
    """

    @classmethod
    def log(
        cls,
        action: str,
        user_id=None,
        resource: Optional[str] = None,
        resource_id=None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Append an audit record.

        With AUDIT_LOG_ASYNC enabled the record is handed to a Celery
        worker and None is returned.

        Returns:
            The created AuditLog, or None when written asynchronously or
            when the write failed
        """
        record = {
            'action': str(action),
            'user_id': str(user_id) if user_id else None,
            'resource': resource,
            'resource_id': str(resource_id) if resource_id else None,
            'details': details or {},
            'ip_address': ip_address,
            'user_agent': user_agent or '',
            'created_at': timezone.now(),
        }

        if getattr(settings, 'AUDIT_LOG_ASYNC', False):
            try:
                from apps.rbac.tasks import write_audit_log
                write_audit_log.delay({**record, 'created_at': record['created_at'].isoformat()})
            except Exception as e:
                logger.error(
                    f"Failed to enqueue audit log: {str(e)}",
                    extra={'action': record['action'], 'resource_id': record['resource_id']},
                    exc_info=True
                )
            return None

        return cls.write(record)

    @classmethod
    def write(cls, record: Dict[str, Any]) -> Optional[AuditLog]:
        """Insert one audit row inside its own savepoint."""
        try:
            with transaction.atomic():
                return AuditLog.objects.create(**record)
        except Exception as e:
            # Audit logging must not break the main operation
            logger.error(
                f"Failed to create audit log: {str(e)}",
                extra={'action': record.get('action'), 'resource_id': record.get('resource_id')},
                exc_info=True
            )
            return None

    # Convenience wrappers

    @classmethod
    def log_login(cls, user_id, ip_address=None, user_agent=None):
        return cls.log(
            AuditAction.LOGIN,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @classmethod
    def log_logout(cls, user_id, ip_address=None, user_agent=None):
        return cls.log(
            AuditAction.LOGOUT,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @classmethod
    def log_incident_create(cls, user_id, incident_id, details=None, ip_address=None, user_agent=None):
        return cls.log(
            AuditAction.CREATE_INCIDENT,
            user_id=user_id,
            resource='incident',
            resource_id=incident_id,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @classmethod
    def log_incident_update(
        cls,
        user_id,
        incident_id,
        changes: Dict[str, Dict[str, Any]],
        ip_address=None,
        user_agent=None
    ):
        """
        Record an incident update.

        Args:
            changes: {field: {'from': old, 'to': new}} for each changed field
        """
        return cls.log(
            AuditAction.UPDATE_INCIDENT,
            user_id=user_id,
            resource='incident',
            resource_id=incident_id,
            details={'changes': changes},
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @classmethod
    def log_incident_delete(cls, user_id, incident_id, ip_address=None, user_agent=None):
        return cls.log(
            AuditAction.DELETE_INCIDENT,
            user_id=user_id,
            resource='incident',
            resource_id=incident_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @classmethod
    def log_comment_create(cls, user_id, comment_id, incident_id, ip_address=None, user_agent=None):
        return cls.log(
            AuditAction.CREATE_COMMENT,
            user_id=user_id,
            resource='comment',
            resource_id=comment_id,
            details={'incident_id': str(incident_id)},
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @classmethod
    def log_comment_delete(cls, user_id, comment_id, incident_id=None, ip_address=None, user_agent=None):
        return cls.log(
            AuditAction.DELETE_COMMENT,
            user_id=user_id,
            resource='comment',
            resource_id=comment_id,
            details={'incident_id': str(incident_id)} if incident_id else None,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @classmethod
    def log_incident_view(cls, user_id, incident_id, ip_address=None, user_agent=None):
        """Record read access to a single incident for forensic review."""
        return cls.log(
            AuditAction.VIEW_INCIDENT,
            user_id=user_id,
            resource='incident',
            resource_id=incident_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @classmethod
    def log_incident_search(
        cls,
        user_id,
        query: Dict[str, Any],
        result_count: int,
        ip_address=None,
        user_agent=None
    ):
        """Record who searched for what and how many incidents matched."""
        return cls.log(
            AuditAction.SEARCH_INCIDENTS,
            user_id=user_id,
            resource='incident',
            details={
                'query': {key: _json_value(value) for key, value in query.items() if value is not None},
                'result_count': result_count,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )


def diff_fields(instance, updates: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """
    Compute {field: {'from', 'to'}} for the fields whose value changes.

    Values are stringified when they are not JSON primitives.
    """
    changes = {}
    for field in fields:
        if field not in updates:
            continue
        old, new = getattr(instance, field), updates[field]
        if old != new:
            changes[field] = {'from': _json_value(old), 'to': _json_value(new)}
    return changes
