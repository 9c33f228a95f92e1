"""
Domain errors and the DRF exception handler that renders them.

Every domain error carries a stable code, an HTTP status and a
human-readable message. Anything that is not a domain error is
rendered as a generic 500 and logged with its traceback.
"""
import logging
from typing import Any, Dict, Optional

import sentry_sdk
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base exception for platform errors."""

    code = 'INTERNAL_ERROR'
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = 'Internal server error'

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Render the error envelope returned to API callers."""
        error = {
            'code': self.code,
            'message': self.message,
        }
        if self.details:
            error['details'] = self.details
        return {'error': error}


class ValidationError(AppError):
    """Raised on malformed input or an illegal status transition."""
    code = 'VALIDATION_ERROR'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Invalid request'


class AuthenticationError(AppError):
    """Raised when the session is missing, expired or invalid."""
    code = 'AUTHENTICATION_ERROR'
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = 'Authentication required'


class AuthorizationError(AppError):
    """Raised when an authenticated user lacks the role or ownership required."""
    code = 'AUTHORIZATION_ERROR'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'Insufficient permissions'


class NotFoundError(AppError):
    """Raised when a resource does not exist."""
    code = 'NOT_FOUND'
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = 'Resource'):
        super().__init__(f'{resource} not found')


class ConflictError(AppError):
    """Reserved for write conflicts."""
    code = 'CONFLICT'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Conflict'


class RateLimitError(AppError):
    """Raised when a caller exceeds a rate limit window."""
    code = 'RATE_LIMIT_EXCEEDED'
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = 'Rate limit exceeded'

    def __init__(self, message: Optional[str] = None, retry_after: int = 60):
        self.retry_after = retry_after
        super().__init__(message, details={'retry_after': retry_after})


def _from_drf_exception(exc: drf_exceptions.APIException) -> AppError:
    """Translate DRF's own exceptions into the platform envelope."""
    if isinstance(exc, drf_exceptions.ValidationError):
        details = exc.detail if isinstance(exc.detail, dict) else {'non_field_errors': exc.detail}
        return ValidationError('Validation error', details=details)
    if isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        return AuthenticationError(str(exc.detail))
    if isinstance(exc, drf_exceptions.PermissionDenied):
        return AuthorizationError(str(exc.detail))
    if isinstance(exc, drf_exceptions.NotFound):
        return NotFoundError()
    if isinstance(exc, drf_exceptions.Throttled):
        return RateLimitError(str(exc.detail), retry_after=int(exc.wait or 60))

    error = AppError(str(exc.detail))
    error.code = str(exc.default_code).upper()
    error.status_code = exc.status_code
    return error


def custom_exception_handler(exc, context):
    """
    Render domain and DRF errors as {"error": {...}} with the request id.

    Unexpected exceptions are logged with their traceback, reported to
    Sentry, and returned as a generic 500 that does not leak the cause.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    if isinstance(exc, drf_exceptions.APIException):
        exc = _from_drf_exception(exc)

    if isinstance(exc, AppError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"API error: {exc.code}",
            extra={
                'error_code': exc.code,
                'error_message': exc.message,
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            }
        )
        data = exc.to_dict()
        if request_id:
            data['request_id'] = request_id
        response = Response(data, status=exc.status_code)
        if isinstance(exc, RateLimitError):
            # RFC 6585
            response['Retry-After'] = str(exc.retry_after)
        return response

    logger.error(
        f"Unhandled exception: {exc.__class__.__name__}",
        extra={
            'request_id': request_id,
            'path': request.path if request else None,
            'method': request.method if request else None,
        },
        exc_info=exc
    )
    sentry_sdk.capture_exception(exc)

    data = AppError().to_dict()
    if request_id:
        data['request_id'] = request_id
    return Response(data, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
