"""
Tests for the tenant directory endpoint and the create_company command.
"""
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from apps.rbac.models import AuditLog, User
from apps.tenants.models import Company


@pytest.mark.django_db
class TestCurrentCompany:
    """Test GET/PATCH /v1/company."""

    def test_member_sees_own_company(self, client_for, user, company, other_company):
        """Test that members see only their own company."""
        response = client_for(user).get('/v1/company')

        assert response.status_code == 200
        assert response.data['id'] == str(company.id)
        assert response.data['name'] == 'Acme Trading'

    def test_admin_can_rename(self, client_for, admin_user, company):
        """Test that the admin renames the company."""
        response = client_for(admin_user).patch('/v1/company', {'name': 'Acme Holdings'}, format='json')

        assert response.status_code == 200
        company.refresh_from_db()
        assert company.name == 'Acme Holdings'
        assert AuditLog.objects.for_tenant(company).by_action('company_updated').exists()

    def test_member_cannot_rename(self, client_for, user, company):
        """Test that members cannot rename the company."""
        response = client_for(user).patch('/v1/company', {'name': 'Hijacked'}, format='json')

        assert response.status_code == 403
        company.refresh_from_db()
        assert company.name == 'Acme Trading'

    def test_is_active_is_read_only(self, client_for, admin_user, company):
        """Test that the API cannot deactivate a company."""
        client_for(admin_user).patch('/v1/company', {'is_active': False}, format='json')

        company.refresh_from_db()
        assert company.is_active is True

    def test_duplicate_name_is_rejected(self, client_for, admin_user, other_company):
        """Test that company names stay unique."""
        response = client_for(admin_user).patch('/v1/company', {'name': other_company.name}, format='json')

        assert response.status_code == 400


@pytest.mark.django_db
class TestCreateCompanyCommand:
    """Test provisioning a company from the command line."""

    def test_creates_company_and_admin(self):
        """Test that the command creates a company and its admin."""
        out = StringIO()
        call_command(
            'create_company', '--name', 'Initech', '--admin-email', 'Boss@Initech.example',
            '--admin-password', 'correct-horse', stdout=out,
        )

        company = Company.objects.get(name='Initech')
        admin = User.objects.get(email='boss@initech.example')
        assert admin.tenant == company
        assert admin.is_super_admin is True
        assert admin.check_password('correct-horse')
        assert AuditLog.objects.for_tenant(company).by_action('company_created').exists()
        assert 'Created company: Initech' in out.getvalue()

    def test_rejects_duplicate_company(self, company):
        """Test that the command refuses an existing company name."""
        with pytest.raises(CommandError, match='already exists'):
            call_command(
                'create_company', '--name', company.name, '--admin-email', 'new@acme.example',
                '--admin-password', 'correct-horse', stdout=StringIO(),
            )

    def test_rejects_existing_email(self, user):
        """Test that the command refuses an email already in use."""
        with pytest.raises(CommandError, match='already exists'):
            call_command(
                'create_company', '--name', 'Initech', '--admin-email', user.email,
                '--admin-password', 'correct-horse', stdout=StringIO(),
            )
        assert not Company.objects.filter(name='Initech').exists()

    def test_rejects_short_password(self):
        """Test that the command refuses a short password."""
        with pytest.raises(CommandError, match='at least 8'):
            call_command(
                'create_company', '--name', 'Initech', '--admin-email', 'boss@initech.example',
                '--admin-password', 'short', stdout=StringIO(),
            )
