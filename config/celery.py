"""
Celery configuration for the SecOps incident API.
"""
import logging
import os

from celery import Celery
from celery.signals import task_failure

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('secops')

# Load configuration from Django settings with CELERY_ prefix
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks in all installed apps
app.autodiscover_tasks()

logger = logging.getLogger(__name__)


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, args=None, kwargs=None, einfo=None, **extra):
    """Log final task failure (after retries are exhausted)."""
    logger.error(
        f"Task failed: {sender.name}",
        extra={
            'task_id': task_id,
            'task_name': sender.name,
            'exception': str(exception)[:500] if exception else None,
        },
    )


# Celery Beat Schedule for Periodic Tasks
app.conf.beat_schedule = {
    'cleanup-expired-sessions': {
        'task': 'apps.rbac.tasks.cleanup_expired_sessions',
        'schedule': 3600.0,  # Every hour
    },
}

app.conf.timezone = 'UTC'
