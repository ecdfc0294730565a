"""
Unit tests for RBAC administration services.

Tests the admin guard, catalog creation, grants, overrides, role
assignments, user administration and the audit trail they leave.
"""
import pytest

from apps.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from apps.rbac.models import (
    AuditLog, Module, ModuleAccess, Permission, PermissionOverride, Role, RoleAssignment,
    RoleGrant, User,
)
from apps.rbac.resolver import PermissionResolver
from apps.rbac.scope import GlobalScope, TenantScope
from apps.rbac.services import RBACService


@pytest.mark.django_db
class TestAdminGuard:
    """Every mutation requires the tenant-admin flag."""

    @pytest.mark.parametrize('call', [
        lambda actor, role: RBACService.create_role(actor, 'Approver'),
        lambda actor, role: RBACService.create_module(actor, 'Finance'),
        lambda actor, role: RBACService.create_permission(actor, 'approve'),
        lambda actor, role: RBACService.assign_role(actor, actor, role),
        lambda actor, role: RBACService.create_user(actor, 'new@acme.example', 'testpass123'),
    ])
    def test_member_is_refused(self, user, role, call):
        """Test that members cannot run administrative mutations."""
        with pytest.raises(PermissionDeniedError):
            call(user, role)

    def test_inactive_admin_is_refused(self, admin_user):
        """Test that a deactivated admin loses administrative rights."""
        admin_user.is_active = False
        with pytest.raises(PermissionDeniedError):
            RBACService.create_role(admin_user, 'Approver')

    def test_role_grants_do_not_confer_admin_rights(self, company, user, global_catalog):
        """Test that holding every permission does not make a member an admin."""
        role = Role.objects.create(tenant=company, name='Everything')
        for permission in global_catalog.values():
            RoleGrant.objects.grant(role, permission)
        RoleAssignment.objects.assign(user, role)

        with pytest.raises(PermissionDeniedError):
            RBACService.create_role(user, 'Approver')


@pytest.mark.django_db
class TestCatalog:
    """Test creating catalog rows."""

    def test_create_role(self, admin_user, company):
        """Test that a role is created in the actor's tenant and audited."""
        role = RBACService.create_role(admin_user, '  Approver ', description='Approves orders')

        assert role.tenant == company
        assert role.name == 'Approver'
        entry = AuditLog.objects.for_tenant(company).by_action('role_created').get()
        assert entry.target_id == role.id
        assert entry.user == admin_user

    def test_role_names_unique_per_tenant(self, admin_user, other_admin):
        """Test that role names clash within a tenant only."""
        RBACService.create_role(admin_user, 'Approver')

        with pytest.raises(ValidationError):
            RBACService.create_role(admin_user, 'approver')
        # Another tenant may reuse the name
        assert RBACService.create_role(other_admin, 'Approver').tenant_id == other_admin.tenant_id

    def test_blank_role_name(self, admin_user):
        """Test that a blank role name is rejected."""
        with pytest.raises(ValidationError):
            RBACService.create_role(admin_user, '   ')

    def test_created_rows_are_tenant_scoped(self, admin_user, company):
        """Test that catalog rows created through the service are tenant-owned."""
        module = RBACService.create_module(admin_user, 'Finance')
        submodule = RBACService.create_submodule(admin_user, 'Invoices', module_id=module.id)
        permission = RBACService.create_permission(
            admin_user, 'approve', module_id=module.id, submodule_id=submodule.id,
        )

        for row in (module, submodule, permission):
            assert row.scope == TenantScope(company.id)
        assert permission.key == 'finance.invoices.approve'

    def test_permission_module_taken_from_submodule(self, admin_user):
        """Test that a permission inherits its submodule's module."""
        module = RBACService.create_module(admin_user, 'Finance')
        submodule = RBACService.create_submodule(admin_user, 'Invoices', module_id=module.id)

        permission = RBACService.create_permission(admin_user, 'pay', submodule_id=submodule.id)

        assert permission.module_id == module.id

    def test_permission_submodule_must_belong_to_module(self, admin_user):
        """Test that a mismatched module and submodule are rejected."""
        finance = RBACService.create_module(admin_user, 'Finance')
        hr = RBACService.create_module(admin_user, 'HR')
        submodule = RBACService.create_submodule(admin_user, 'Invoices', module_id=finance.id)

        with pytest.raises(ValidationError):
            RBACService.create_permission(admin_user, 'pay', module_id=hr.id, submodule_id=submodule.id)

    def test_permission_under_global_module(self, admin_user, global_catalog):
        """Test that tenants may hang permissions off global modules."""
        sales = Module.objects.global_only().get(name='Sales')

        permission = RBACService.create_permission(admin_user, 'discount', module_id=sales.id)

        assert permission.module == sales
        assert permission.scope == TenantScope(admin_user.tenant_id)
        assert sales.scope == GlobalScope()

    def test_foreign_module_is_not_found(self, admin_user, other_admin):
        """Test that another tenant's module cannot be referenced."""
        foreign = RBACService.create_module(other_admin, 'Secret')

        with pytest.raises(NotFoundError):
            RBACService.create_permission(admin_user, 'peek', module_id=foreign.id)

    def test_duplicate_permission(self, admin_user):
        """Test that a permission cannot be created twice."""
        module = RBACService.create_module(admin_user, 'Finance')
        RBACService.create_permission(admin_user, 'approve', module_id=module.id)

        with pytest.raises(ValidationError):
            RBACService.create_permission(admin_user, 'Approve', module_id=module.id)


@pytest.mark.django_db
class TestGrants:
    """Test single grants and revokes."""

    def test_grant_is_idempotent(self, admin_user, role, global_catalog):
        """Test that granting twice leaves one row and one audit entry."""
        permission = global_catalog['sales.orders.create']

        _, created = RBACService.grant_permission(admin_user, role, permission)
        _, created_again = RBACService.grant_permission(admin_user, role, permission)

        assert created is True
        assert created_again is False
        assert RoleGrant.objects.filter(role=role, permission=permission).count() == 1
        assert AuditLog.objects.by_action('role_permission_granted').count() == 1

    def test_revoke_is_idempotent(self, admin_user, role, global_catalog):
        """Test that revoking a missing grant is a no-op."""
        permission = global_catalog['sales.orders.create']
        RBACService.grant_permission(admin_user, role, permission)

        assert RBACService.revoke_permission(admin_user, role, permission) == 1
        assert RBACService.revoke_permission(admin_user, role, permission) == 0
        assert not RoleGrant.objects.filter(role=role).exists()

    def test_cannot_grant_to_foreign_role(self, admin_user, other_admin, global_catalog):
        """Test that another tenant's role cannot receive grants."""
        foreign_role = RBACService.create_role(other_admin, 'Theirs')

        with pytest.raises(NotFoundError):
            RBACService.grant_permission(admin_user, foreign_role, global_catalog['sales.view'])
        assert not RoleGrant.objects.filter(role=foreign_role).exists()

    def test_cannot_grant_foreign_permission(self, admin_user, role, other_admin):
        """Test that another tenant's permission cannot be granted."""
        foreign = RBACService.create_permission(other_admin, 'peek')

        with pytest.raises(NotFoundError):
            RBACService.grant_permission(admin_user, role, foreign)

    def test_grant_changes_next_resolution(self, admin_user, user, role, global_catalog):
        """Test that a new grant takes effect on the next resolution."""
        RBACService.assign_role(admin_user, user, role)
        assert not PermissionResolver.resolve_key(user, 'sales.orders.create').allowed

        RBACService.grant_permission(admin_user, role, global_catalog['sales.orders.create'])

        assert PermissionResolver.resolve_key(user, 'sales.orders.create').allowed


@pytest.mark.django_db
class TestOverrides:
    """Test per-user overrides."""

    def test_set_override_upserts(self, admin_user, user, global_catalog):
        """Test that setting an override twice updates one row."""
        permission = global_catalog['sales.export']

        _, created = RBACService.set_override(admin_user, user, permission, True, reason='Quarter end')
        override, created_again = RBACService.set_override(admin_user, user, permission, False)

        assert created is True
        assert created_again is False
        assert override.is_allowed is False
        assert override.granted_by == admin_user
        assert PermissionOverride.objects.filter(user=user).count() == 1

    def test_clear_override_restores_role_decision(self, admin_user, user, role, global_catalog):
        """Test that clearing an override falls back to role grants."""
        permission = global_catalog['sales.export']
        RBACService.grant_permission(admin_user, role, permission)
        RBACService.assign_role(admin_user, user, role)
        RBACService.set_override(admin_user, user, permission, False)
        assert not PermissionResolver.resolve(user, permission).allowed

        assert RBACService.clear_override(admin_user, user, permission) == 1

        assert PermissionResolver.resolve(user, permission).allowed

    def test_cannot_override_foreign_user(self, admin_user, other_admin, global_catalog):
        """Test that another tenant's user cannot be overridden."""
        with pytest.raises(NotFoundError):
            RBACService.set_override(admin_user, other_admin, global_catalog['sales.view'], True)


@pytest.mark.django_db
class TestAssignments:
    """Role assignments."""

    def test_assign_and_unassign(self, admin_user, user, role):
        """Test that roles are assigned and unassigned idempotently."""
        _, created = RBACService.assign_role(admin_user, user, role)
        _, created_again = RBACService.assign_role(admin_user, user, role)

        assert created is True
        assert created_again is False
        assert user.primary_role == role

        assert RBACService.unassign_role(admin_user, user, role) == 1
        assert RBACService.unassign_role(admin_user, user, role) == 0
        assert user.primary_role is None

    def test_cannot_assign_across_tenants(self, admin_user, user, other_admin):
        """Test that a role cannot be assigned to another tenant's user."""
        foreign_role = RBACService.create_role(other_admin, 'Theirs')

        with pytest.raises(NotFoundError):
            RBACService.assign_role(admin_user, user, foreign_role)


@pytest.mark.django_db
class TestUserAdministration:
    """Test creating and updating users."""

    def test_create_user_with_role(self, admin_user, role, company):
        """Test that a user is created with its initial role."""
        user = RBACService.create_user(
            admin_user, 'New.Person@Acme.example', 'testpass123',
            first_name='New', role_id=role.id,
        )

        assert user.email == 'new.person@acme.example'
        assert user.tenant == company
        assert user.check_password('testpass123')
        assert list(user.role_assignments.values_list('role_id', flat=True)) == [role.id]

    def test_unknown_role_rolls_back_user(self, admin_user, other_admin):
        """Test that an unknown role rolls back the new user."""
        foreign_role = RBACService.create_role(other_admin, 'Theirs')

        with pytest.raises(NotFoundError):
            RBACService.create_user(admin_user, 'ghost@acme.example', 'testpass123', role_id=foreign_role.id)

        assert not User.objects.filter(email='ghost@acme.example').exists()

    def test_duplicate_email(self, admin_user, user):
        """Test that emails are unique across the platform."""
        with pytest.raises(ValidationError):
            RBACService.create_user(admin_user, user.email.upper(), 'testpass123')

    def test_short_password(self, admin_user):
        """Test that short passwords are rejected."""
        with pytest.raises(ValidationError):
            RBACService.create_user(admin_user, 'new@acme.example', 'short')

    def test_update_replaces_roles(self, admin_user, user, company):
        """Test that role_ids replaces every current assignment."""
        clerk = Role.objects.create(tenant=company, name='Clerk')
        buyer = Role.objects.create(tenant=company, name='Buyer')
        approver = Role.objects.create(tenant=company, name='Approver')
        RBACService.assign_role(admin_user, user, clerk)

        RBACService.update_user(
            admin_user, user, {'first_name': 'Casey-Jo'}, role_ids=[buyer.id, approver.id, buyer.id],
        )

        user.refresh_from_db()
        assert user.first_name == 'Casey-Jo'
        assert set(user.role_assignments.values_list('role__name', flat=True)) == {'Buyer', 'Approver'}
        entry = AuditLog.objects.by_action('user_updated').get()
        assert entry.diff['first_name'] == {'old': 'Casey', 'new': 'Casey-Jo'}

    def test_update_with_foreign_role_changes_nothing(self, admin_user, user, role, other_admin):
        """Test that a foreign role aborts the whole update."""
        RBACService.assign_role(admin_user, user, role)
        foreign_role = RBACService.create_role(other_admin, 'Theirs')

        with pytest.raises(NotFoundError):
            RBACService.update_user(admin_user, user, {'first_name': 'X'}, role_ids=[foreign_role.id])

        user.refresh_from_db()
        assert user.first_name == 'Casey'
        assert list(user.role_assignments.values_list('role_id', flat=True)) == [role.id]

    def test_set_super_admin(self, admin_user, user):
        """Test that the admin flag is toggled and audited."""
        RBACService.set_super_admin(admin_user, user, True)

        user.refresh_from_db()
        assert user.is_super_admin is True
        assert PermissionResolver.effective_keys(user) == ['*']

    def test_reset_password(self, admin_user, user):
        """Test that a password reset takes effect."""
        RBACService.reset_password(admin_user, user, 'n3w-passw0rd')

        user.refresh_from_db()
        assert user.check_password('n3w-passw0rd')
        assert AuditLog.objects.by_action('user_password_reset').exists()

    def test_cannot_touch_foreign_user(self, admin_user, other_admin):
        """Test that another tenant's user cannot be updated."""
        with pytest.raises(NotFoundError):
            RBACService.reset_password(admin_user, other_admin, 'n3w-passw0rd')
        with pytest.raises(NotFoundError):
            RBACService.get_user(admin_user.tenant_id, other_admin.id)


@pytest.mark.django_db
class TestModuleAccess:
    """Per-company module on/off flags."""

    def _flags(self, tenant):
        return {module.name: module.is_enabled for module in RBACService.module_access(tenant)}

    def test_modules_default_to_enabled(self, company, global_catalog):
        """Test that modules never configured are reported as enabled."""
        assert self._flags(company) == {'Administration': True, 'Sales': True}
        assert not ModuleAccess.objects.exists()

    def test_set_access_upserts(self, admin_user, company, global_catalog):
        """Test that a second update rewrites the same row."""
        sales = global_catalog['sales.view'].module

        _, created = RBACService.set_module_access(admin_user, sales, False)
        assert created
        _, created = RBACService.set_module_access(admin_user, sales, True)
        assert not created

        access = ModuleAccess.objects.get()
        assert access.tenant_id == company.id
        assert access.is_enabled is True
        assert AuditLog.objects.for_tenant(company).by_action('module_access_updated').count() == 2

    def test_flags_are_per_company(self, admin_user, company, other_company, global_catalog):
        """Test that one company's flag never changes another's view."""
        RBACService.set_module_access(admin_user, global_catalog['sales.view'].module, False)

        assert self._flags(company)['Sales'] is False
        assert self._flags(other_company)['Sales'] is True

    def test_listing_hides_foreign_submodules(self, admin_user, other_admin, global_catalog):
        """Test that another company's submodules under a global module stay invisible."""
        sales = global_catalog['sales.view'].module
        RBACService.create_submodule(other_admin, 'Secret', module_id=sales.id)

        modules = {module.name: module for module in RBACService.module_access(admin_user.tenant_id)}

        assert [submodule.name for submodule in modules['Sales'].submodules.all()] == ['Orders']

    def test_member_cannot_change_access(self, user, global_catalog):
        """Test that members cannot change module flags."""
        with pytest.raises(PermissionDeniedError):
            RBACService.set_module_access(user, global_catalog['sales.view'].module, False)

    def test_foreign_module_is_not_found(self, admin_user, other_admin):
        """Test that another tenant's module cannot be flagged."""
        foreign = RBACService.create_module(other_admin, 'Secret')

        with pytest.raises(NotFoundError):
            RBACService.set_module_access(admin_user, foreign, False)

        assert not ModuleAccess.objects.exists()


@pytest.mark.django_db
class TestRolePermissionTree:
    """The catalog grouped for one role with assignment flags."""

    def test_groups_and_flags(self, admin_user, role, global_catalog):
        """Test that granted permissions are flagged inside their module and submodule."""
        submit = global_catalog['sales.orders.submit']
        RBACService.grant_permission(admin_user, role, submit)

        tree = RBACService.role_permission_tree(role)
        sales = tree[submit.module_id]
        orders = sales['submodules'][submit.submodule_id]

        assert sales['module'].name == 'Sales'
        assert [p.action for p in orders['permissions']] == ['complete', 'create', 'process', 'submit', 'view']
        assert {p.action: p.is_assigned for p in orders['permissions']}['submit'] is True
        assert sum(p.is_assigned for p in orders['permissions']) == 1
        assert [p.action for p in sales['submodules'][None]['permissions']] == ['export', 'view']

    def test_permissions_without_module(self, admin_user, role, global_catalog):
        """Test that module-less permissions are grouped under None."""
        impersonate = RBACService.create_permission(admin_user, 'impersonate')

        tree = RBACService.role_permission_tree(role)

        assert tree[None]['module'] is None
        assert tree[None]['submodules'][None]['permissions'] == [impersonate]

    def test_foreign_catalog_is_excluded(self, role, other_admin, global_catalog):
        """Test that another tenant's permissions never appear in the tree."""
        RBACService.create_permission(other_admin, 'secret')

        tree = RBACService.role_permission_tree(role)

        keys = [
            permission.key
            for module in tree.values()
            for submodule in module['submodules'].values()
            for permission in submodule['permissions']
        ]
        assert 'secret' not in keys
        assert len(keys) == len(global_catalog)
