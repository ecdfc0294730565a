"""
RBAC models for multi-tenant authorization.

Implements:
- User (belongs to exactly one tenant, carries the tenant-admin flag)
- Module / Submodule / Permission (the catalog; tenant-owned or global)
- ModuleAccess (per-company module on/off flag)
- Role (per-tenant role definitions)
- RoleAssignment (user <-> role)
- RoleGrant (role <-> permission)
- PermissionOverride (per-user allow/deny that beats role grants)
- AuditLog (audit trail of authorization changes)
"""
import logging
import re

from django.contrib.auth.hashers import make_password, check_password
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.db.models import Q
from django.utils import timezone

from apps.core.models import BaseModel, TenantQuerySet
from apps.rbac.scope import scope_of, visibility_q

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')


def key_part(value):
    """Normalise one segment of a permission key."""
    return _WHITESPACE.sub('_', value.strip()).lower()


class UserManager(models.Manager.from_queryset(TenantQuerySet)):
    """
    Manager for User queries.

    Compatible with Django's authentication system and admin interface.
    """

    def active(self):
        return self.filter(is_active=True)

    def by_email(self, email):
        return self.filter(email__iexact=(email or '').strip()).first()

    def create_user(self, email, password=None, **extra_fields):
        """Create a user with a hashed password."""
        if not email:
            raise ValueError('Email address is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('is_active', True)

        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """
        Create a platform staff account for the Django admin.

        Required by ``createsuperuser``. Staff accounts have no tenant and
        can never obtain an API principal.
        """
        extra_fields.setdefault('is_staff', True)
        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True')
        return self.create_user(email, password, **extra_fields)

    @staticmethod
    def normalize_email(email):
        return (email or '').strip().lower()

    def get_by_natural_key(self, email):
        return self.get(**{self.model.USERNAME_FIELD: email})


class User(BaseModel):
    """
    A person acting inside exactly one tenant.

    ``is_super_admin`` is the tenant-scoped break-glass flag: it grants
    every permission inside the user's own tenant and nothing anywhere
    else. ``is_staff`` only opens the Django admin for platform operators.

    This is the AUTH_USER_MODEL for the project.
    """

    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='users',
        help_text="Owning company (null only for platform staff accounts)"
    )
    email = models.EmailField(
        unique=True,
        help_text="Login email (unique across the platform)"
    )
    password_hash = models.CharField(
        max_length=255,
        help_text="Hashed password"
    )
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive users cannot authenticate"
    )
    is_super_admin = models.BooleanField(
        default=False,
        help_text="Tenant-scoped administrator flag"
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Platform operator with Django admin access"
    )
    last_login = models.DateTimeField(null=True, blank=True)

    USERNAME_FIELD = 'email'
    EMAIL_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['email']
        indexes = [
            models.Index(fields=['tenant', 'is_active'], name='users_tenant_active_idx'),
        ]

    def __str__(self):
        return self.email

    @property
    def password(self):
        """Alias for password_hash; Django admin expects ``password``."""
        return self.password_hash

    @password.setter
    def password(self, value):
        self.password_hash = value

    def set_password(self, raw_password):
        # None stores an unusable password.
        self.password_hash = make_password(raw_password)

    def check_password(self, raw_password):
        return check_password(raw_password, self.password_hash)

    def get_full_name(self):
        if self.first_name or self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.email

    def get_username(self):
        return self.email

    def natural_key(self):
        return (self.email,)

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    def has_perm(self, perm, obj=None):
        return self.is_active and self.is_staff

    def has_perms(self, perm_list, obj=None):
        return self.is_active and self.is_staff

    def has_module_perms(self, app_label):
        return self.is_active and self.is_staff

    @property
    def primary_role(self):
        """
        Most recently assigned role.

        Display only; authorization always considers every assigned role.
        """
        assignment = (
            self.role_assignments.select_related('role')
            .order_by('-assigned_at')
            .first()
        )
        return assignment.role if assignment else None


class CatalogQuerySet(models.QuerySet):
    """QuerySet for catalog rows that may be tenant-owned or global."""

    def visible_to(self, tenant):
        """Rows owned by ``tenant`` plus global rows; never another tenant's."""
        return self.filter(visibility_q(tenant))

    def owned_by(self, tenant):
        return self.filter(tenant_id=getattr(tenant, 'id', tenant))

    def global_only(self):
        return self.filter(tenant__isnull=True)


class CatalogModel(BaseModel):
    """Abstract base for Module, Submodule and Permission."""

    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='+',
        help_text="Owning company; null marks a global row"
    )

    objects = CatalogQuerySet.as_manager()

    class Meta:
        abstract = True

    @property
    def scope(self):
        return scope_of(self)


class Module(CatalogModel):
    """Top-level grouping of permissions (e.g. Sales)."""

    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    class Meta:
        db_table = 'modules'
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'name'],
                name='uniq_module_name_per_tenant',
            ),
            models.UniqueConstraint(
                fields=['name'],
                condition=Q(tenant__isnull=True),
                name='uniq_global_module_name',
            ),
        ]

    def __str__(self):
        return self.name


class ModuleAccessManager(models.Manager.from_queryset(TenantQuerySet)):
    """Manager for ModuleAccess queries."""

    def set_access(self, tenant, module, is_enabled):
        """Upsert the flag for (tenant, module)."""
        return self.update_or_create(
            tenant_id=getattr(tenant, 'id', tenant),
            module=module,
            defaults={'is_enabled': is_enabled},
        )

    def flags_for(self, tenant):
        """Map of module id to the stored flag; modules without a row are enabled."""
        return dict(self.for_tenant(tenant).values_list('module_id', 'is_enabled'))


class ModuleAccess(BaseModel):
    """
    A company's on/off switch for one module.

    Absence of a row means enabled. The flag describes the company's
    configuration; permission resolution does not consult it.
    """

    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        related_name='module_access',
    )
    module = models.ForeignKey(
        Module,
        on_delete=models.CASCADE,
        related_name='access_flags',
    )
    is_enabled = models.BooleanField(default=True)

    objects = ModuleAccessManager()

    class Meta:
        db_table = 'module_access'
        unique_together = [('tenant', 'module')]

    def __str__(self):
        state = "enabled" if self.is_enabled else "disabled"
        return f"{self.module.name} {state} for {self.tenant_id}"


class Submodule(CatalogModel):
    """Second-level grouping of permissions, optionally under a Module."""

    module = models.ForeignKey(
        Module,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='submodules',
    )
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    class Meta:
        db_table = 'submodules'
        ordering = ['name']
        indexes = [
            models.Index(fields=['tenant', 'module'], name='submodules_tenant_module_idx'),
        ]

    def __str__(self):
        if self.module_id:
            return f"{self.module.name} / {self.name}"
        return self.name


class Permission(CatalogModel):
    """
    One atomic capability.

    A permission may hang off a module, a submodule, both, or neither.
    Its key is the dotted lower-cased path ``module.submodule.action`` of
    whichever parts are present.
    """

    module = models.ForeignKey(
        Module,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='permissions',
    )
    submodule = models.ForeignKey(
        Submodule,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='permissions',
    )
    action = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    class Meta:
        db_table = 'permissions'
        ordering = ['module__name', 'submodule__name', 'action']
        indexes = [
            models.Index(fields=['tenant', 'module', 'submodule'], name='permissions_tenant_parts_idx'),
            models.Index(fields=['action'], name='permissions_action_idx'),
        ]

    def __str__(self):
        return self.key

    @property
    def key(self):
        parts = [
            self.module.name if self.module_id else None,
            self.submodule.name if self.submodule_id else None,
            self.action,
        ]
        return '.'.join(key_part(part) for part in parts if part)


class Role(BaseModel):
    """A named bundle of permissions. Always tenant-owned."""

    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        related_name='roles',
    )
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        db_table = 'roles'
        ordering = ['name']
        unique_together = [('tenant', 'name')]

    def __str__(self):
        return self.name


class RoleAssignmentManager(models.Manager.from_queryset(TenantQuerySet)):
    """Manager for RoleAssignment queries."""

    def assign(self, user, role, assigned_by=None):
        """Assign role to user (idempotent)."""
        return self.get_or_create(
            user=user,
            role=role,
            defaults={'tenant_id': role.tenant_id, 'assigned_by': assigned_by},
        )

    def unassign(self, tenant, user, role):
        """Remove role from user; the delete is tenant-qualified."""
        return self.for_tenant(tenant).filter(user=user, role=role).delete()


class RoleAssignment(BaseModel):
    """A user holding a role. One row per (user, role)."""

    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        related_name='+',
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='role_assignments',
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='assignments',
    )
    assigned_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    assigned_at = models.DateTimeField(default=timezone.now, db_index=True)

    objects = RoleAssignmentManager()

    class Meta:
        db_table = 'role_assignments'
        ordering = ['-assigned_at']
        unique_together = [('user', 'role')]
        indexes = [
            models.Index(fields=['tenant', 'user'], name='role_assign_tenant_user_idx'),
        ]

    def __str__(self):
        return f"{self.user.email} -> {self.role.name}"

    def clean(self):
        if self.user.tenant_id != self.role.tenant_id:
            raise ValidationError("User and role must belong to the same company")


class RoleGrantManager(models.Manager.from_queryset(TenantQuerySet)):
    """Manager for RoleGrant queries."""

    def grant(self, role, permission):
        """Grant permission to role (idempotent)."""
        return self.get_or_create(
            role=role,
            permission=permission,
            defaults={'tenant_id': role.tenant_id},
        )

    def revoke(self, tenant, role, permission):
        """Revoke permission from role; the delete is tenant-qualified."""
        return self.for_tenant(tenant).filter(role=role, permission=permission).delete()


class RoleGrant(BaseModel):
    """A role granting a permission. One row per (role, permission)."""

    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        related_name='+',
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='grants',
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='grants',
    )

    objects = RoleGrantManager()

    class Meta:
        db_table = 'role_grants'
        unique_together = [('role', 'permission')]
        indexes = [
            models.Index(fields=['tenant', 'permission'], name='role_grants_tenant_perm_idx'),
        ]

    def __str__(self):
        return f"{self.role.name} -> {self.permission.key}"


class PermissionOverrideManager(models.Manager.from_queryset(TenantQuerySet)):
    """Manager for PermissionOverride queries."""

    def set_override(self, user, permission, is_allowed, reason='', granted_by=None):
        """Upsert the override for (user, permission)."""
        return self.update_or_create(
            user=user,
            permission=permission,
            defaults={
                'tenant_id': user.tenant_id,
                'is_allowed': is_allowed,
                'reason': reason,
                'granted_by': granted_by,
            },
        )

    def clear_override(self, tenant, user, permission):
        return self.for_tenant(tenant).filter(user=user, permission=permission).delete()


class PermissionOverride(BaseModel):
    """
    Per-user allow/deny for one permission.

    When present its ``is_allowed`` is the decision, whatever the user's
    roles say.
    """

    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        related_name='+',
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='permission_overrides',
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='overrides',
    )
    is_allowed = models.BooleanField()
    reason = models.TextField(blank=True)
    granted_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    objects = PermissionOverrideManager()

    class Meta:
        db_table = 'permission_overrides'
        unique_together = [('user', 'permission')]
        indexes = [
            models.Index(fields=['tenant', 'user'], name='overrides_tenant_user_idx'),
        ]

    def __str__(self):
        verdict = "ALLOW" if self.is_allowed else "DENY"
        return f"{verdict} {self.permission.key} for {self.user.email}"


class AuditLogQuerySet(TenantQuerySet):
    """QuerySet for AuditLog with tenant scoping and filters."""

    def by_action(self, action):
        return self.filter(action=action)

    def by_target(self, target_type, target_id=None):
        qs = self.filter(target_type=target_type)
        if target_id:
            qs = qs.filter(target_id=target_id)
        return qs


class AuditLog(BaseModel):
    """
    Audit trail for authorization changes and workflow transitions.
    """

    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='audit_logs',
    )
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
        help_text="Acting user (null for platform tooling)"
    )
    action = models.CharField(max_length=100, db_index=True)
    target_type = models.CharField(max_length=50, db_index=True)
    target_id = models.UUIDField(null=True, blank=True)
    diff = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    request_id = models.CharField(max_length=64, blank=True, db_index=True)

    objects = AuditLogQuerySet.as_manager()

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tenant', 'created_at'], name='audit_logs_tenant_created_idx'),
            models.Index(fields=['target_type', 'target_id'], name='audit_logs_target_idx'),
        ]

    def __str__(self):
        user_str = self.user.email if self.user else 'System'
        return f"{self.tenant_id} - {user_str} - {self.action}"

    @classmethod
    def log_action(cls, action, user=None, tenant=None, target_type=None,
                   target_id=None, diff=None, metadata=None, request=None):
        """
        Create an audit log entry.

        Runs in a savepoint so a failed audit insert never poisons the
        caller's transaction; the failure is logged and None returned.
        """
        if user is not None and not user.is_authenticated:
            user = None

        log_data = {
            'action': action,
            'user': user,
            'tenant': tenant,
            'target_type': target_type or '',
            'target_id': target_id,
            'diff': diff or {},
            'metadata': metadata or {},
        }

        if request is not None:
            log_data['ip_address'] = cls._get_client_ip(request)
            log_data['user_agent'] = request.META.get('HTTP_USER_AGENT', '')
            log_data['request_id'] = getattr(request, 'request_id', None) or ''

        try:
            with transaction.atomic():
                return cls.objects.create(**log_data)
        except Exception as e:
            logger.error(
                f"Failed to create audit log: {e}",
                extra={'action': action, 'tenant_id': str(getattr(tenant, 'id', '')) or None},
                exc_info=True,
            )
            return None

    @staticmethod
    def _get_client_ip(request):
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR')
