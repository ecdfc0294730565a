"""
Django admin configuration for RBAC app.
"""
from django.contrib import admin

from .models import (
    AuditLog,
    Module,
    ModuleAccess,
    Permission,
    PermissionOverride,
    Role,
    RoleAssignment,
    RoleGrant,
    Submodule,
    User,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    """
    Admin for our User model.

    Passwords are never edited here; use the reset-password endpoint.
    """
    list_display = ['email', 'tenant', 'first_name', 'last_name', 'is_active', 'is_super_admin', 'is_staff']
    list_filter = ['is_active', 'is_super_admin', 'is_staff', 'tenant']
    search_fields = ['email', 'first_name', 'last_name']
    ordering = ['email']

    fieldsets = (
        (None, {
            'fields': ('email', 'tenant')
        }),
        ('Personal Info', {
            'fields': ('first_name', 'last_name')
        }),
        ('Flags', {
            'fields': ('is_active', 'is_super_admin', 'is_staff')
        }),
        ('Activity', {
            'fields': ('last_login', 'created_at', 'updated_at')
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login']


class CatalogAdmin(admin.ModelAdmin):
    list_filter = ['tenant']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(Module)
class ModuleAdmin(CatalogAdmin):
    list_display = ['name', 'tenant', 'created_at']
    search_fields = ['name']


@admin.register(Submodule)
class SubmoduleAdmin(CatalogAdmin):
    list_display = ['name', 'module', 'tenant', 'created_at']
    search_fields = ['name', 'module__name']


@admin.register(Permission)
class PermissionAdmin(CatalogAdmin):
    list_display = ['key', 'module', 'submodule', 'tenant']
    search_fields = ['action', 'module__name', 'submodule__name']


@admin.register(ModuleAccess)
class ModuleAccessAdmin(admin.ModelAdmin):
    list_display = ['module', 'tenant', 'is_enabled', 'updated_at']
    list_filter = ['is_enabled', 'tenant']


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'tenant', 'created_at']
    list_filter = ['tenant']
    search_fields = ['name']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """Audit entries are read-only."""
    list_display = ['action', 'target_type', 'user', 'tenant', 'created_at']
    list_filter = ['action', 'target_type', 'tenant']
    search_fields = ['action', 'request_id', 'user__email']
    readonly_fields = [field.name for field in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


admin.site.register(RoleAssignment)
admin.site.register(RoleGrant)
admin.site.register(PermissionOverride)
