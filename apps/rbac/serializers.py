"""
RBAC serializers for REST API endpoints.

Provides serialization for:
- Authentication (login, current user)
- Users and role assignments
- Catalog: modules, submodules, permissions
- Roles, grants and bulk grants
- Permission overrides and checks
- Audit logs

Request serializers accept the legacy field spellings listed in their
``field_aliases`` and normalise them before validation.
"""
from rest_framework import serializers

from apps.core.serializers import AliasedFieldsMixin
from apps.rbac.models import (
    AuditLog, Module, Permission, PermissionOverride, Role, Submodule, User,
)
from apps.rbac.services import MIN_PASSWORD_LENGTH


class ScopeField(serializers.ReadOnlyField):
    """Render a catalog row's ownership as ``global`` or ``tenant``."""

    def __init__(self, **kwargs):
        kwargs['source'] = '*'
        super().__init__(**kwargs)

    def to_representation(self, value):
        return value.scope.label


# ===== AUTHENTICATION SERIALIZERS =====

class LoginSerializer(serializers.Serializer):
    """Serializer for user login."""

    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )

    def validate_email(self, value):
        return value.strip().lower()


# ===== USER SERIALIZERS =====

class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model, with role names."""

    full_name = serializers.CharField(source='get_full_name', read_only=True)
    roles = serializers.SerializerMethodField()
    primary_role = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name',
            'is_active', 'is_super_admin', 'roles', 'primary_role',
            'last_login', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_roles(self, obj):
        return sorted(
            assignment.role.name
            for assignment in obj.role_assignments.all()
        )

    def get_primary_role(self, obj):
        role = obj.primary_role
        return role.name if role else None


class UserCreateSerializer(serializers.Serializer):
    """Serializer for creating a user inside the caller's tenant."""

    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        min_length=MIN_PASSWORD_LENGTH,
        style={'input_type': 'password'}
    )
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=100, default='')
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=100, default='')
    role_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    is_super_admin = serializers.BooleanField(required=False, default=False)

    def validate_email(self, value):
        value = value.strip().lower()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value


class UserUpdateSerializer(serializers.Serializer):
    """Serializer for updating a user. Every field is optional."""

    email = serializers.EmailField(required=False)
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=100)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=100)
    is_active = serializers.BooleanField(required=False)
    is_super_admin = serializers.BooleanField(required=False)
    role_ids = serializers.ListField(
        child=serializers.UUIDField(),
        required=False,
        help_text="Replaces every current role assignment when supplied"
    )


class SuperAdminSerializer(serializers.Serializer):
    is_super_admin = serializers.BooleanField(required=True)


class PasswordResetSerializer(serializers.Serializer):
    """Serializer for an administrator setting a user's password."""

    password = serializers.CharField(
        required=True,
        write_only=True,
        min_length=MIN_PASSWORD_LENGTH,
        style={'input_type': 'password'}
    )


class RoleAssignSerializer(serializers.Serializer):
    role_id = serializers.UUIDField(required=True)


# ===== CATALOG SERIALIZERS =====

class ModuleSerializer(serializers.ModelSerializer):
    """Serializer for Module model."""

    scope = ScopeField()

    class Meta:
        model = Module
        fields = ['id', 'name', 'description', 'scope', 'created_at', 'updated_at']
        read_only_fields = fields


class ModuleCreateSerializer(AliasedFieldsMixin, serializers.Serializer):
    field_aliases = {'module_name': 'name'}

    name = serializers.CharField(required=True, max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, default='')


class SubmoduleSerializer(serializers.ModelSerializer):
    """Serializer for Submodule model."""

    module_id = serializers.UUIDField(read_only=True)
    module_name = serializers.CharField(source='module.name', read_only=True, default=None)
    scope = ScopeField()

    class Meta:
        model = Submodule
        fields = [
            'id', 'name', 'description', 'module_id', 'module_name',
            'scope', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class SubmoduleCreateSerializer(AliasedFieldsMixin, serializers.Serializer):
    field_aliases = {'submodule_name': 'name'}

    name = serializers.CharField(required=True, max_length=100)
    module_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    description = serializers.CharField(required=False, allow_blank=True, default='')


class PermissionSerializer(serializers.ModelSerializer):
    """Serializer for Permission model."""

    key = serializers.CharField(read_only=True)
    module_id = serializers.UUIDField(read_only=True)
    module_name = serializers.CharField(source='module.name', read_only=True, default=None)
    submodule_id = serializers.UUIDField(read_only=True)
    submodule_name = serializers.CharField(source='submodule.name', read_only=True, default=None)
    scope = ScopeField()

    class Meta:
        model = Permission
        fields = [
            'id', 'key', 'action', 'description',
            'module_id', 'module_name', 'submodule_id', 'submodule_name',
            'scope', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class AssignablePermissionSerializer(PermissionSerializer):
    """A permission annotated with whether a given role holds it."""

    is_assigned = serializers.BooleanField(read_only=True)

    class Meta(PermissionSerializer.Meta):
        fields = PermissionSerializer.Meta.fields + ['is_assigned']
        read_only_fields = fields


class ModuleAccessSerializer(serializers.ModelSerializer):
    """A module with the company's ``is_enabled`` flag and its submodules."""

    is_enabled = serializers.BooleanField(read_only=True)
    submodules = serializers.SerializerMethodField()
    scope = ScopeField()

    class Meta:
        model = Module
        fields = ['id', 'name', 'description', 'scope', 'is_enabled', 'submodules']
        read_only_fields = fields

    def get_submodules(self, obj):
        return [{'id': str(submodule.id), 'name': submodule.name} for submodule in obj.submodules.all()]


class ModuleAccessUpdateSerializer(serializers.Serializer):
    module_id = serializers.UUIDField(required=True)
    is_enabled = serializers.BooleanField(required=True)


class PermissionCreateSerializer(serializers.Serializer):
    action = serializers.CharField(required=True, max_length=100)
    module_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    submodule_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    description = serializers.CharField(required=False, allow_blank=True, default='')


# ===== ROLE SERIALIZERS =====

class RoleSerializer(serializers.ModelSerializer):
    """Serializer for Role model."""

    permission_count = serializers.SerializerMethodField()
    user_count = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = [
            'id', 'name', 'description', 'permission_count', 'user_count',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_permission_count(self, obj):
        return obj.grants.count()

    def get_user_count(self, obj):
        return obj.assignments.count()


class RoleCreateSerializer(AliasedFieldsMixin, serializers.Serializer):
    """Serializer for creating roles."""

    field_aliases = {'role_name': 'name'}

    name = serializers.CharField(required=True, max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, default='')


class RolePermissionSerializer(serializers.Serializer):
    permission_id = serializers.UUIDField(required=True)


class BulkGrantSerializer(serializers.Serializer):
    """Select a catalog slice by module and/or submodule."""

    module_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    submodule_id = serializers.UUIDField(required=False, allow_null=True, default=None)

    def validate(self, attrs):
        if attrs.get('module_id') is None and attrs.get('submodule_id') is None:
            raise serializers.ValidationError("Provide module_id or submodule_id.")
        return attrs


# ===== OVERRIDE SERIALIZERS =====

class PermissionOverrideSerializer(serializers.ModelSerializer):
    """Serializer for PermissionOverride."""

    permission_id = serializers.UUIDField(read_only=True)
    permission = serializers.CharField(source='permission.key', read_only=True)
    granted_by_email = serializers.EmailField(
        source='granted_by.email',
        read_only=True,
        default=None
    )

    class Meta:
        model = PermissionOverride
        fields = [
            'id', 'permission_id', 'permission', 'is_allowed', 'reason',
            'granted_by_email', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class PermissionOverrideCreateSerializer(AliasedFieldsMixin, serializers.Serializer):
    """Serializer for setting a user's permission override."""

    field_aliases = {
        'allowed': 'is_allowed',
        'granted': 'is_allowed',
        'allow': 'is_allowed',
    }

    permission_id = serializers.UUIDField(required=True)
    is_allowed = serializers.BooleanField(required=True)
    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        default='',
        help_text="Reason for this permission override"
    )


class PermissionCheckSerializer(serializers.Serializer):
    permission = serializers.CharField(required=True, max_length=300)


# ===== AUDIT SERIALIZERS =====

class AuditLogSerializer(serializers.ModelSerializer):
    """Serializer for AuditLog model."""

    user_email = serializers.EmailField(source='user.email', read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = [
            'id', 'user_email', 'action',
            'target_type', 'target_id', 'diff', 'metadata',
            'ip_address', 'user_agent', 'request_id',
            'created_at'
        ]
        read_only_fields = fields
