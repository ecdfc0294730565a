"""
RBAC API URLs.

Provides endpoints for:
- Catalog (modules, submodules, permissions, module access flags)
- Role management (roles, single and bulk grants)
- User management (users, role assignments, overrides)
- Audit log viewing
"""
from django.urls import path

from apps.rbac import views

app_name = 'rbac'

urlpatterns = [
    # Catalog endpoints
    path('modules', views.ModuleListView.as_view(), name='module-list'),
    path('modules/access', views.ModuleAccessView.as_view(), name='module-access'),
    path('modules/<uuid:module_id>/submodules', views.ModuleSubmodulesView.as_view(), name='module-submodules'),
    path('submodules', views.SubmoduleListView.as_view(), name='submodule-list'),
    path('permissions', views.PermissionListView.as_view(), name='permission-list'),
    path('permissions/available', views.AvailablePermissionsView.as_view(), name='permission-available'),
    path('permissions/me', views.MyPermissionsView.as_view(), name='permission-me'),
    path('permissions/check', views.PermissionCheckView.as_view(), name='permission-check'),

    # Role endpoints
    path('roles', views.RoleListView.as_view(), name='role-list'),
    path('roles/<uuid:role_id>', views.RoleDetailView.as_view(), name='role-detail'),
    path('roles/<uuid:role_id>/permissions', views.RolePermissionsView.as_view(), name='role-permissions'),
    path('roles/<uuid:role_id>/permissions/bulk-assign', views.RoleBulkAssignView.as_view(), name='role-bulk-assign'),
    path('roles/<uuid:role_id>/permissions/bulk-revoke', views.RoleBulkRevokeView.as_view(), name='role-bulk-revoke'),
    path('roles/<uuid:role_id>/permissions/<uuid:permission_id>', views.RolePermissionDetailView.as_view(), name='role-permission-detail'),

    # User endpoints
    path('users', views.UserListView.as_view(), name='user-list'),
    path('users/<uuid:user_id>', views.UserDetailView.as_view(), name='user-detail'),
    path('users/<uuid:user_id>/super-admin', views.UserSuperAdminView.as_view(), name='user-super-admin'),
    path('users/<uuid:user_id>/reset-password', views.UserResetPasswordView.as_view(), name='user-reset-password'),
    path('users/<uuid:user_id>/roles', views.UserRolesView.as_view(), name='user-roles'),
    path('users/<uuid:user_id>/roles/<uuid:role_id>', views.UserRoleDetailView.as_view(), name='user-role-detail'),
    path('users/<uuid:user_id>/overrides', views.UserOverridesView.as_view(), name='user-overrides'),
    path('users/<uuid:user_id>/overrides/<uuid:permission_id>', views.UserOverrideDetailView.as_view(), name='user-override-detail'),

    # Audit log endpoint
    path('audit-logs', views.AuditLogListView.as_view(), name='audit-log-list'),
]
