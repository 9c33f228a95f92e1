"""
Incident and comment models.
"""
from django.conf import settings
from django.db import models

from apps.core.models import BaseModel


class Severity(models.TextChoices):
    LOW = 'LOW', 'Low'
    MEDIUM = 'MEDIUM', 'Medium'
    HIGH = 'HIGH', 'High'
    CRITICAL = 'CRITICAL', 'Critical'


class Status(models.TextChoices):
    OPEN = 'OPEN', 'Open'
    IN_PROGRESS = 'IN_PROGRESS', 'In progress'
    RESOLVED = 'RESOLVED', 'Resolved'
    CLOSED = 'CLOSED', 'Closed'


class IncidentQuerySet(models.QuerySet):
    """QuerySet helpers for incident lookups."""

    def newest_first(self):
        return self.order_by('-created_at', '-id')

    def search(self, text):
        """Case-insensitive match on title or description."""
        return self.filter(
            models.Q(title__icontains=text) | models.Q(description__icontains=text)
        )


class Incident(BaseModel):
    """
    Security incident reported by a client user or an analyst.

    The creator owns the incident for authorization purposes.
    """

    title = models.CharField(max_length=255)
    description = models.TextField()
    severity = models.CharField(
        max_length=10,
        choices=Severity.choices,
        db_index=True
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.OPEN,
        db_index=True
    )
    source = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Originating system (SIEM, EDR, ...)"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='incidents',
    )

    objects = IncidentQuerySet.as_manager()

    class Meta:
        db_table = 'incidents'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['created_by', 'created_at']),
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['severity', 'created_at']),
        ]

    def __str__(self):
        return f"{self.title} ({self.status})"


class Comment(BaseModel):
    """Comment on an incident."""

    incident = models.ForeignKey(
        Incident,
        on_delete=models.CASCADE,
        related_name='comments',
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='comments',
    )
    body = models.TextField()

    class Meta:
        db_table = 'incident_comments'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['incident', 'created_at']),
        ]

    def __str__(self):
        return f"Comment {self.id} on {self.incident_id}"
