"""
Role hierarchy.

Roles form a total order by rank. A user satisfies a role requirement
when the rank of their role is at least the rank required.
"""
from django.db import models


class Role(models.TextChoices):
    CLIENT_USER = 'CLIENT_USER', 'Client user'
    CLIENT_ADMIN = 'CLIENT_ADMIN', 'Client admin'
    ANALYST = 'ANALYST', 'Analyst'


ROLE_RANK = {
    Role.CLIENT_USER: 1,
    Role.CLIENT_ADMIN: 2,
    Role.ANALYST: 3,
}


def role_rank(role) -> int:
    """Rank of a role; unknown roles rank below every real role."""
    try:
        return ROLE_RANK[Role(role)]
    except ValueError:
        return 0


def has_role(user, required) -> bool:
    """True if the user's role ranks at least as high as ``required``."""
    if user is None:
        return False
    return role_rank(user.role) >= role_rank(required)
