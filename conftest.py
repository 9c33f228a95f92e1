"""
Pytest configuration and fixtures.
"""
import django
import fakeredis
import pytest
from django.conf import settings
from django.core.management import call_command


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    # django-redis on an in-process fake server: pipelines, SCAN-based
    # delete_pattern and TTLs behave as on a real Redis
    settings.CACHES['default']['OPTIONS']['CONNECTION_POOL_KWARGS'] = {
        'connection_class': fakeredis.FakeConnection,
    }
    settings.PASSWORD_HASHERS = [
        'django.contrib.auth.hashers.Argon2PasswordHasher',
        'django.contrib.auth.hashers.MD5PasswordHasher',
    ]
    settings.SECURE_SSL_REDIRECT = False
    settings.AUDIT_LOG_ASYNC = False
    settings.SENTRY_DSN = None
    django.setup()


@pytest.fixture(scope='session')
def django_db_setup(django_db_setup, django_db_blocker):
    """Set up test database with tables for unmigrated apps."""
    with django_db_blocker.unblock():
        call_command('migrate', '--run-syncdb', verbosity=0)


@pytest.fixture(autouse=True)
def clear_cache():
    """Flush the fake Redis (cache entries and rate limit counters) around each test."""
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


def _make_user(email, role):
    from apps.rbac.models import User
    return User.objects.create_user(email=email, role=role)


@pytest.fixture
def analyst(db):
    from apps.rbac.roles import Role
    return _make_user('analyst@secops.test', Role.ANALYST)


@pytest.fixture
def client_admin(db):
    from apps.rbac.roles import Role
    return _make_user('admin@secops.test', Role.CLIENT_ADMIN)


@pytest.fixture
def client_user(db):
    from apps.rbac.roles import Role
    return _make_user('user@secops.test', Role.CLIENT_USER)


@pytest.fixture
def other_client_user(db):
    from apps.rbac.roles import Role
    return _make_user('other@secops.test', Role.CLIENT_USER)


@pytest.fixture
def incident(db, client_user):
    """An OPEN incident owned by ``client_user``."""
    from apps.incidents.models import Incident, Severity
    return Incident.objects.create(
        title='Suspicious login burst',
        description='Multiple failed logins from 203.0.113.7',
        severity=Severity.HIGH,
        source='SIEM',
        created_by=client_user,
    )


@pytest.fixture
def login_as(api_client):
    """Attach a fresh session cookie for ``user`` to the API client."""
    def _login(user):
        from apps.rbac.services import SessionService
        token = SessionService.create_session(user)
        api_client.cookies[settings.AUTH_SESSION_COOKIE_NAME] = token
        return api_client
    return _login
