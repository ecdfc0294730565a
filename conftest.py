"""
Pytest configuration and fixtures.
"""
from io import StringIO

import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def clear_cache():
    """Rate limit counters live in the cache; start every test clean."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def company(db):
    """Create a test company."""
    from apps.tenants.models import Company
    return Company.objects.create(name='Acme Trading')


@pytest.fixture
def other_company(db):
    """Create another company for isolation tests."""
    from apps.tenants.models import Company
    return Company.objects.create(name='Globex Supplies')


@pytest.fixture
def make_user(db):
    """Factory for users inside a company."""
    from apps.rbac.models import User

    def _make_user(company, email, password='testpass123', **extra):
        return User.objects.create_user(email=email, password=password, tenant=company, **extra)

    return _make_user


@pytest.fixture
def admin_user(make_user, company):
    """Tenant administrator of ``company``."""
    return make_user(company, 'admin@acme.example', is_super_admin=True)


@pytest.fixture
def user(make_user, company):
    """Plain member of ``company`` without roles."""
    return make_user(company, 'clerk@acme.example', first_name='Casey', last_name='Clerk')


@pytest.fixture
def other_admin(make_user, other_company):
    """Tenant administrator of ``other_company``."""
    return make_user(other_company, 'admin@globex.example', is_super_admin=True)


@pytest.fixture
def global_catalog(db):
    """
    The global catalog as installed by ``seed_catalog``.

    Returns a dict of permission key -> Permission.
    """
    from django.core.management import call_command
    from apps.rbac.models import Permission

    call_command('seed_catalog', stdout=StringIO())
    return {
        permission.key: permission
        for permission in Permission.objects.global_only().select_related('module', 'submodule')
    }


@pytest.fixture
def role(db, company):
    """An empty role in ``company``."""
    from apps.rbac.models import Role
    return Role.objects.create(tenant=company, name='Clerk')


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def client_for(db):
    """
    Factory returning an APIClient that authenticates as ``user`` with a real JWT.

    The token goes through PrincipalMiddleware exactly like production traffic.
    """
    from rest_framework.test import APIClient
    from apps.rbac.services import AuthService

    def _client_for(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {AuthService.issue_token(user)}')
        return client

    return _client_for

