"""
RBAC models for incident access control.

Implements:
- User identity with a single ranked role
- Session (opaque token sessions, stored by hash)
- AuditLog (append-only security audit trail)
"""
import logging

from django.contrib.auth.hashers import check_password, make_password
from django.db import models
from django.utils import timezone

from apps.core.models import BaseModel
from apps.rbac.roles import Role

logger = logging.getLogger(__name__)


class UserManager(models.Manager):
    """
    Manager for User queries.

    Compatible with Django's authentication system.
    """

    def active(self):
        """Return only active users."""
        return self.filter(is_active=True)

    def by_email(self, email):
        """Find user by email."""
        return self.filter(email=self.normalize_email(email)).first()

    def create_user(self, email, password=None, **extra_fields):
        """Create a new user, hashing the password when one is given."""
        if not email:
            raise ValueError('Email address is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('role', Role.CLIENT_USER)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        user.save(using=self._db)
        return user

    @classmethod
    def normalize_email(cls, email):
        """
        Normalize the email address by lowercasing it.
        """
        return (email or '').strip().lower()

    def get_by_natural_key(self, email):
        return self.get(**{self.model.USERNAME_FIELD: email})


class User(BaseModel):
    """
    User identity.

    Authorization is derived from ``role`` alone plus, for object-level
    checks, ownership of the incident or comment.

    This is the AUTH_USER_MODEL for the application.
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text="User email address"
    )
    password_hash = models.CharField(
        max_length=255,
        blank=True,
        help_text="Hashed password"
    )
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.CLIENT_USER,
        db_index=True,
        help_text="Ranked role: CLIENT_USER < CLIENT_ADMIN < ANALYST"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether user account is active"
    )
    last_login_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last successful login"
    )

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['email']

    def __str__(self):
        return self.email

    @property
    def password(self):
        return self.password_hash

    @password.setter
    def password(self, value):
        self.password_hash = value

    def check_password(self, raw_password):
        """Check if provided password matches stored hash."""
        return check_password(raw_password, self.password_hash)

    def set_password(self, raw_password):
        """Set user password (hashes automatically)."""
        self.password_hash = make_password(raw_password)

    def update_last_login(self):
        """Update last_login_at to current time."""
        self.last_login_at = timezone.now()
        self.save(update_fields=['last_login_at'])

    @property
    def is_authenticated(self):
        """Always True for User instances (Django authentication protocol)."""
        return True

    @property
    def is_anonymous(self):
        """Always False for User instances (Django authentication protocol)."""
        return False

    def natural_key(self):
        return (self.email,)


class SessionManager(models.Manager):
    """Manager for Session queries."""

    def for_user(self, user_id):
        return self.filter(user_id=user_id)

    def expired(self, now=None):
        return self.filter(expires_at__lt=now or timezone.now())


class Session(models.Model):
    """
    Server-side login session.

    Only the SHA-256 hash of the opaque token is stored; the token itself
    is returned once to the client and never persisted.
    """

    id = models.BigAutoField(primary_key=True)
    token_hash = models.CharField(
        max_length=64,
        unique=True,
        help_text="SHA-256 hex digest of the session token"
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='sessions',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    last_refreshed_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(db_index=True)

    objects = SessionManager()

    class Meta:
        db_table = 'sessions'
        indexes = [
            models.Index(fields=['user', 'expires_at']),
        ]

    def __str__(self):
        return f"Session {self.pk} for {self.user_id}"

    def is_expired(self, now=None):
        return self.expires_at < (now or timezone.now())


class AppendOnlyError(Exception):
    """Raised on any attempt to rewrite or remove audit history."""


class AuditLogQuerySet(models.QuerySet):
    """QuerySet that refuses bulk mutation of audit rows."""

    def delete(self):
        raise AppendOnlyError("Audit log entries cannot be deleted")

    def update(self, **kwargs):
        # Detaching a deleted user (on_delete=SET_NULL) is the only permitted rewrite
        if kwargs == {'user': None}:
            return super().update(**kwargs)
        raise AppendOnlyError("Audit log entries cannot be modified")

    def for_user(self, user):
        return self.filter(user=user)

    def by_action(self, action):
        return self.filter(action=action)

    def by_resource(self, resource, resource_id=None):
        qs = self.filter(resource=resource)
        if resource_id:
            qs = qs.filter(resource_id=str(resource_id))
        return qs


class AuditLog(models.Model):
    """
    Append-only audit trail of security-relevant actions.

    Rows are inserted once and never updated or deleted by the
    application; user deletion keeps the row with a null user.
    """

    id = models.BigAutoField(primary_key=True)
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
        help_text="User who performed the action (null for system actions)"
    )
    action = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Action performed (e.g. LOGIN, UPDATE_INCIDENT)"
    )
    resource = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        help_text="Type of target resource (incident, comment)"
    )
    resource_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        db_index=True,
        help_text="Identifier of target resource"
    )
    details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Structured context (changes, query, result count)"
    )
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    objects = AuditLogQuerySet.as_manager()

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'created_at']),
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['resource', 'resource_id']),
        ]

    def __str__(self):
        user_str = self.user.email if self.user else 'System'
        return f"{user_str} - {self.action}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AppendOnlyError("Audit log entries cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AppendOnlyError("Audit log entries cannot be deleted")
