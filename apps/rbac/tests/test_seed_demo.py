"""
Tests for the seed_demo management command.
"""
from io import StringIO

import pytest
from django.core.management import call_command

from apps.incidents.models import Comment, Incident
from apps.rbac.models import User
from apps.rbac.services import PasswordService


@pytest.mark.django_db
def test_seed_demo_is_idempotent():
    call_command('seed_demo', stdout=StringIO())
    call_command('seed_demo', stdout=StringIO())

    assert User.objects.count() == 4
    assert Incident.objects.count() == 5
    assert Comment.objects.count() == 4

    analyst = User.objects.by_email('analyst@secops.com')
    assert analyst.role == 'ANALYST'
    assert PasswordService.verify(analyst.password_hash, 'AnalystPass123!')


@pytest.mark.django_db
def test_users_only():
    call_command('seed_demo', '--users-only', stdout=StringIO())

    assert User.objects.count() == 4
    assert not Incident.objects.exists()
