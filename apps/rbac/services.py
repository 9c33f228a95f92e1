"""
RBAC and Authentication services.

Implements:
- RBACService: role checks, object-level incident/comment authorization
- PasswordService: password hashing and verification
- SessionService: opaque session tokens with sliding expiration
- AuthService: login and logout orchestration
"""
import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.db import DatabaseError
from django.utils import timezone

from apps.core.exceptions import AuthenticationError, AuthorizationError
from apps.core.security_logger import SecurityLogger
from apps.rbac import roles
from apps.rbac.audit import AuditService
from apps.rbac.models import Session, User
from apps.rbac.roles import Role

logger = logging.getLogger(__name__)


class RBACService:
    """
    Service for authorization decisions.

    ``can_*`` methods are pure predicates; ``require_*`` methods raise
    AuthorizationError and record the denial.
    """

    @classmethod
    def has_role(cls, user: User, required: str) -> bool:
        return roles.has_role(user, required)

    @classmethod
    def require_role(cls, user: User, required: str) -> None:
        """
        Raise AuthorizationError unless the user's role ranks at least ``required``.
        """
        if not cls.has_role(user, required):
            cls._deny(user, f'role:{required}')

    @classmethod
    def _is_owner(cls, user: User, owner_id) -> bool:
        return user is not None and owner_id is not None and str(user.id) == str(owner_id)

    @classmethod
    def can_create_incident(cls, user: User) -> bool:
        return cls.has_role(user, Role.CLIENT_USER)

    @classmethod
    def can_view_incident(cls, user: User, incident) -> bool:
        return cls.has_role(user, Role.ANALYST) or cls._is_owner(user, incident.created_by_id)

    @classmethod
    def can_update_incident(cls, user: User, incident) -> bool:
        return cls.has_role(user, Role.CLIENT_ADMIN) or cls._is_owner(user, incident.created_by_id)

    @classmethod
    def can_delete_incident(cls, user: User, incident) -> bool:
        return cls.has_role(user, Role.ANALYST)

    @classmethod
    def can_create_comment(cls, user: User, incident) -> bool:
        return cls.can_view_incident(user, incident)

    @classmethod
    def can_view_comments(cls, user: User, incident) -> bool:
        return cls.can_view_incident(user, incident)

    @classmethod
    def can_delete_comment(cls, user: User, comment) -> bool:
        return cls.has_role(user, Role.ANALYST) or cls._is_owner(user, comment.author_id)

    @classmethod
    def get_incident_filter(cls, user: User) -> Dict[str, Any]:
        """
        Scoping predicate for incident queries.

        Must be applied before any other filter. Users below ANALYST only
        ever see incidents they created.

        Returns:
            ORM filter kwargs ({} when unrestricted)
        """
        if cls.has_role(user, Role.ANALYST):
            return {}
        return {'created_by_id': user.id}

    @classmethod
    def require_incident_access(cls, user: User, incident, action: str) -> None:
        """
        Enforce an object-level incident check.

        Args:
            user: Acting user
            incident: Target incident
            action: One of 'view', 'update', 'delete'

        Raises:
            AuthorizationError: If the check denies access
        """
        checks = {
            'view': cls.can_view_incident,
            'update': cls.can_update_incident,
            'delete': cls.can_delete_incident,
        }
        if action not in checks:
            raise ValueError(f"Unknown incident action: {action}")
        if not checks[action](user, incident):
            cls._deny(user, f'incident:{action}', resource_id=incident.id)

    @classmethod
    def require_comment_access(cls, user: User, incident, action: str) -> None:
        """
        Enforce comment creation or listing on an incident.

        Args:
            action: One of 'create', 'view'
        """
        checks = {
            'create': cls.can_create_comment,
            'view': cls.can_view_comments,
        }
        if action not in checks:
            raise ValueError(f"Unknown comment action: {action}")
        if not checks[action](user, incident):
            cls._deny(user, f'comment:{action}', resource_id=incident.id)

    @classmethod
    def require_comment_delete(cls, user: User, comment) -> None:
        if not cls.can_delete_comment(user, comment):
            cls._deny(user, 'comment:delete', resource_id=comment.id)

    @classmethod
    def _deny(cls, user: User, action: str, resource_id=None):
        SecurityLogger.log_permission_denied(
            user_id=str(user.id) if user else None,
            role=getattr(user, 'role', None),
            action=action,
            resource_id=str(resource_id) if resource_id else None,
        )
        raise AuthorizationError('Insufficient permissions', details={'action': action})


class PasswordService:
    """
    Password hashing through Django's hasher framework.

    The first entry of PASSWORD_HASHERS (Argon2) is used for new digests;
    each digest carries its own random salt.
    """

    @staticmethod
    def hash(password: str) -> str:
        return make_password(password)

    @staticmethod
    def verify(digest: str, password: str) -> bool:
        """
        Verify a plaintext against a digest.

        Malformed or unknown digests yield False instead of raising.
        """
        if not digest or password is None:
            return False
        try:
            return check_password(password, digest)
        except Exception as e:
            logger.warning(f"Password verification failed on malformed digest: {e}")
            return False


class SessionService:
    """
    Service for server-side sessions.

    Tokens are 256-bit random hex strings handed to the client once;
    only their SHA-256 digest is persisted.
    """

    TOKEN_BYTES = 32

    @staticmethod
    def _hash_token(token: str) -> str:
        return hashlib.sha256(token.encode('utf-8')).hexdigest()

    @staticmethod
    def _max_age() -> timedelta:
        return timedelta(seconds=settings.AUTH_SESSION_MAX_AGE)

    @staticmethod
    def _update_age() -> timedelta:
        return timedelta(seconds=settings.AUTH_SESSION_UPDATE_AGE)

    @classmethod
    def create_session(cls, user: User) -> str:
        """
        Issue a new session for a user and record the login time.

        Returns:
            The opaque session token
        """
        token = secrets.token_hex(cls.TOKEN_BYTES)
        now = timezone.now()
        Session.objects.create(
            token_hash=cls._hash_token(token),
            user=user,
            last_refreshed_at=now,
            expires_at=now + cls._max_age(),
        )
        user.update_last_login()
        logger.info("Session created", extra={'user_id': str(user.id)})
        return token

    @classmethod
    def validate_session(cls, token: str) -> Optional[User]:
        """
        Resolve a token to its user, sliding the expiry when due.

        Expired sessions are removed. Database errors propagate.

        Returns:
            User or None if the token is missing, unknown, expired or
            belongs to an inactive user
        """
        if not token:
            return None

        token_hash = cls._hash_token(token)
        session = Session.objects.select_related('user').filter(token_hash=token_hash).first()
        if session is None:
            return None

        now = timezone.now()
        if session.is_expired(now):
            Session.objects.filter(pk=session.pk).delete()
            logger.info("Expired session removed", extra={'user_id': str(session.user_id)})
            return None

        if now - session.last_refreshed_at > cls._update_age():
            # Conditional so that concurrent refreshes apply once
            refreshed = Session.objects.filter(
                pk=session.pk,
                last_refreshed_at=session.last_refreshed_at,
            ).update(last_refreshed_at=now, expires_at=now + cls._max_age())
            if refreshed:
                logger.debug("Session refreshed", extra={'user_id': str(session.user_id)})

        user = session.user
        if not user.is_active:
            return None
        return user

    @classmethod
    def destroy_session(cls, token: str) -> None:
        """Delete the session for a token. Idempotent."""
        if not token:
            return
        try:
            Session.objects.filter(token_hash=cls._hash_token(token)).delete()
        except DatabaseError as e:
            logger.error(f"Failed to destroy session: {str(e)}", exc_info=True)

    @classmethod
    def destroy_all_user_sessions(cls, user_id) -> None:
        """Delete every session of a user. Idempotent."""
        try:
            count, _ = Session.objects.for_user(user_id).delete()
        except DatabaseError as e:
            logger.error(
                f"Failed to destroy sessions: {str(e)}",
                extra={'user_id': str(user_id)},
                exc_info=True
            )
            return
        SecurityLogger.log_sessions_revoked(user_id=str(user_id), count=count)

    @classmethod
    def cleanup_expired_sessions(cls) -> int:
        """
        Sweep sessions past their expiry.

        Safe to run concurrently with validation.

        Returns:
            Number of sessions deleted
        """
        count, _ = Session.objects.expired().delete()
        if count:
            logger.info(f"Cleaned up {count} expired sessions")
        return count


class AuthService:
    """
    Service for authentication operations: login and logout.
    """

    @classmethod
    def authenticate(cls, email: str, password: str, ip_address: str = None,
                     user_agent: str = None) -> User:
        """
        Check credentials.

        Raises:
            AuthenticationError: Unknown email, wrong password or inactive account
        """
        user = User.objects.by_email(email)

        if user is None or not PasswordService.verify(user.password_hash, password):
            SecurityLogger.log_failed_login(email, ip_address or 'unknown', user_agent)
            raise AuthenticationError('Invalid email or password')

        if not user.is_active:
            SecurityLogger.log_failed_login(
                email, ip_address or 'unknown', user_agent, reason='inactive_account'
            )
            raise AuthenticationError('Invalid email or password')

        return user

    @classmethod
    def login(cls, email: str, password: str, ip_address: str = None,
              user_agent: str = None) -> Tuple[User, str]:
        """
        Authenticate and open a session.

        Returns:
            Tuple of (user, session token)
        """
        user = cls.authenticate(email, password, ip_address, user_agent)
        token = SessionService.create_session(user)
        AuditService.log_login(user.id, ip_address=ip_address, user_agent=user_agent)
        return user, token

    @classmethod
    def logout(cls, token: str, user: Optional[User] = None, ip_address: str = None,
               user_agent: str = None) -> None:
        SessionService.destroy_session(token)
        if user is not None:
            AuditService.log_logout(user.id, ip_address=ip_address, user_agent=user_agent)
