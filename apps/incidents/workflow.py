"""
Incident status state machine.

Statuses move OPEN -> IN_PROGRESS -> RESOLVED -> CLOSED with the back
edge IN_PROGRESS -> OPEN. Which edges an actor may take depends on role
and ownership:

- ANALYST: any pair of statuses
- CLIENT_ADMIN: OPEN/IN_PROGRESS -> IN_PROGRESS/RESOLVED/OPEN, never CLOSED
- owning CLIENT_USER: any status -> RESOLVED, and OPEN -> IN_PROGRESS
"""
from apps.core.exceptions import ValidationError
from apps.incidents.models import Status
from apps.rbac.roles import Role

CLIENT_ADMIN_TRANSITIONS = {
    (Status.OPEN, Status.IN_PROGRESS),
    (Status.OPEN, Status.RESOLVED),
    (Status.IN_PROGRESS, Status.OPEN),
    (Status.IN_PROGRESS, Status.RESOLVED),
}

OWNER_TRANSITIONS = {
    (Status.OPEN, Status.IN_PROGRESS),
}


class IncidentWorkflow:
    """Status transition rules for incidents."""

    INITIAL_STATUS = Status.OPEN

    @classmethod
    def can_transition_status(cls, user, incident, from_status, to_status) -> bool:
        """
        Whether ``user`` may move ``incident`` from one status to another.

        Args:
            user: Acting user
            incident: Target incident (ownership is read from created_by_id)
            from_status: Current status
            to_status: Requested status
        """
        if user is None:
            return False

        from_status, to_status = Status(from_status), Status(to_status)

        if user.role == Role.ANALYST:
            return True

        if user.role == Role.CLIENT_ADMIN:
            return (from_status, to_status) in CLIENT_ADMIN_TRANSITIONS

        if str(incident.created_by_id) == str(user.id):
            if to_status == Status.RESOLVED:
                return True
            return (from_status, to_status) in OWNER_TRANSITIONS

        return False

    @classmethod
    def validate_transition(cls, user, incident, from_status, to_status) -> None:
        """
        Raise ValidationError unless the transition is allowed.

        Requesting the current status is not a transition and passes.
        Unknown status values are rejected the same way.
        """
        try:
            Status(from_status), Status(to_status)
        except ValueError:
            raise ValidationError(
                f"Unknown status transition from {from_status} to {to_status}",
                details={'from': str(from_status), 'to': str(to_status)}
            )
        if from_status == to_status:
            return
        if not cls.can_transition_status(user, incident, from_status, to_status):
            raise ValidationError(
                f"Cannot transition from {from_status} to {to_status}",
                details={'from': str(from_status), 'to': str(to_status)}
            )
