"""
Celery tasks for session housekeeping and asynchronous audit writes.
"""
import logging

from celery import shared_task
from django.utils.dateparse import parse_datetime

from apps.core.tasks import LoggedTask

logger = logging.getLogger(__name__)


@shared_task(base=LoggedTask, ignore_result=True)
def cleanup_expired_sessions():
    """
    Periodic sweep of expired sessions (scheduled hourly by Celery beat).

    Returns:
        Number of deleted sessions
    """
    from apps.rbac.services import SessionService
    return SessionService.cleanup_expired_sessions()


@shared_task(
    base=LoggedTask,
    ignore_result=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    max_retries=3,
)
def write_audit_log(record):
    """
    Write an audit record handed off by AuditService.log.

    The row keeps the time the event was recorded, not the time the
    worker runs. Retries with backoff; a record that still cannot be
    written is logged by the task failure handler.
    """
    from apps.rbac.models import AuditLog
    if isinstance(record.get('created_at'), str):
        record = {**record, 'created_at': parse_datetime(record['created_at'])}
    AuditLog.objects.create(**record)
