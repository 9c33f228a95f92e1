"""
Base Celery task class with logging and error reporting.
"""
import logging

import sentry_sdk
from celery import Task

logger = logging.getLogger(__name__)


class LoggedTask(Task):
    """
    Base task class with structured logging.

    This task class automatically:
    - Logs task start and completion
    - Logs task failures with error details and reports them to Sentry
    - Logs retry attempts with reason
    """

    SENSITIVE_KEYS = {'password', 'token', 'secret', 'user_agent', 'ip_address'}

    def __call__(self, *args, **kwargs):
        task_id = self.request.id
        task_name = self.name

        logger.info(
            f"Task started: {task_name}",
            extra={
                'task_id': task_id,
                'task_name': task_name,
                'task_kwargs': self._sanitize_kwargs(kwargs),
            }
        )

        try:
            result = super().__call__(*args, **kwargs)
        except Exception as exc:
            logger.error(
                f"Task failed: {task_name}",
                extra={
                    'task_id': task_id,
                    'task_name': task_name,
                    'exception': str(exc),
                },
                exc_info=True
            )
            sentry_sdk.set_context('task', {'task_id': task_id, 'task_name': task_name})
            sentry_sdk.capture_exception(exc)
            raise

        logger.info(
            f"Task completed: {task_name}",
            extra={
                'task_id': task_id,
                'task_name': task_name,
                'result': self._sanitize_result(result),
            }
        )
        return result

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning(
            f"Task retry: {self.name} (attempt {self.request.retries}/{self.max_retries})",
            extra={
                'task_id': task_id,
                'task_name': self.name,
                'retry_count': self.request.retries,
                'max_retries': self.max_retries,
                'exception': str(exc),
            }
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def _sanitize_kwargs(self, kwargs):
        """Mask sensitive keyword arguments for logging."""
        return {
            key: '********' if key.lower() in self.SENSITIVE_KEYS else value
            for key, value in (kwargs or {}).items()
        }

    def _sanitize_result(self, result):
        """Truncate task result for logging."""
        if result is None:
            return None
        result_str = str(result)
        if len(result_str) > 200:
            return result_str[:200] + '... (truncated)'
        return result_str
