"""
RBAC REST API views.

Implements endpoints for:
- Catalog (modules, submodules, permissions, grouped catalog)
- Role management (roles, single and bulk permission grants)
- User management (users, role assignments, permission overrides)
- Permission introspection (my permissions, permission check)
- Audit log viewing

Reads are open to every member of the tenant; anything that reshapes the
authorization graph requires the tenant administrator flag.
"""
import logging
import uuid

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter, OpenApiExample
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import ValidationError
from apps.core.pagination import paginated_response
from apps.core.permissions import IsTenantAdmin, IsTenantAdminForWrites, get_tenant_object
from apps.rbac.models import (
    AuditLog, Module, Permission, PermissionOverride, Role, Submodule, User, key_part,
)
from apps.rbac.resolver import ALLOWING_REASONS, PermissionResolver
from apps.rbac.serializers import (
    AssignablePermissionSerializer, AuditLogSerializer, BulkGrantSerializer, ModuleAccessSerializer,
    ModuleAccessUpdateSerializer, ModuleCreateSerializer, ModuleSerializer,
    PasswordResetSerializer, PermissionCheckSerializer, PermissionCreateSerializer,
    PermissionOverrideCreateSerializer, PermissionOverrideSerializer, PermissionSerializer,
    RoleAssignSerializer, RoleCreateSerializer, RolePermissionSerializer, RoleSerializer,
    SubmoduleCreateSerializer, SubmoduleSerializer, SuperAdminSerializer, UserCreateSerializer,
    UserSerializer, UserUpdateSerializer,
)
from apps.rbac.services import BulkGrantService, RBACService

logger = logging.getLogger(__name__)

GENERAL_GROUP = 'general'


def _uuid_param(request, name):
    """Read an optional UUID query parameter."""
    value = request.query_params.get(name)
    if value in (None, ''):
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise ValidationError(f'{name} must be a valid UUID', details={name: ['Must be a valid UUID.']})


def _group_name(row):
    return row.name if row is not None else GENERAL_GROUP


def _tenant_users(request):
    return (
        User.objects.for_tenant(request.user.tenant_id)
        .prefetch_related('role_assignments__role')
    )


# ===== CATALOG =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Catalog'],
        summary='List modules',
        description='Modules owned by the caller\'s tenant plus global modules.',
        responses={200: ModuleSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Catalog'],
        summary='Create module',
        description='''
Create a module owned by the caller\'s tenant.

**Requires:** tenant administrator. `module_name` is accepted as an alias of `name`.
        ''',
        request=ModuleCreateSerializer,
        responses={201: ModuleSerializer, 400: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample('Create Module', value={'name': 'Sales'}, request_only=True),
        ],
    ),
)
class ModuleListView(APIView):
    """
    GET /v1/modules
    POST /v1/modules
    """
    permission_classes = [IsTenantAdminForWrites]

    def get(self, request):
        modules = Module.objects.visible_to(request.user.tenant_id).order_by('name')
        return paginated_response(request, modules, ModuleSerializer)

    def post(self, request):
        serializer = ModuleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        module = RBACService.create_module(request.user, request=request, **serializer.validated_data)
        return Response(ModuleSerializer(module).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Catalog'],
        summary="List modules with the company's access flags",
        description='Modules the company never configured are reported as enabled.',
        responses={200: ModuleAccessSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Catalog'],
        summary='Enable or disable a module for the company',
        description='''
Upserts the flag for the caller's company.

**Requires:** tenant administrator.
        ''',
        request=ModuleAccessUpdateSerializer,
        responses={200: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample('Disable Module', value={'module_id': '3fa85f64-5717-4562-b3fc-2c963f66afa6', 'is_enabled': False}, request_only=True),
        ],
    ),
)
class ModuleAccessView(APIView):
    """
    GET /v1/modules/access
    POST /v1/modules/access
    """
    permission_classes = [IsTenantAdminForWrites]

    def get(self, request):
        modules = RBACService.module_access(request.user.tenant_id)
        return Response(ModuleAccessSerializer(modules, many=True).data)

    def post(self, request):
        serializer = ModuleAccessUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        module = RBACService.get_module(request.user.tenant_id, serializer.validated_data['module_id'])
        access, _ = RBACService.set_module_access(
            request.user, module, serializer.validated_data['is_enabled'], request=request,
        )
        return Response({'module_id': str(module.id), 'is_enabled': access.is_enabled})


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Catalog'],
        summary='List submodules of a module',
        responses={200: SubmoduleSerializer(many=True), 404: OpenApiTypes.OBJECT},
    ),
)
class ModuleSubmodulesView(APIView):
    """
    GET /v1/modules/{module_id}/submodules
    """
    permission_classes = [IsTenantAdminForWrites]

    def get(self, request, module_id):
        module = RBACService.get_module(request.user.tenant_id, module_id)
        submodules = (
            Submodule.objects.visible_to(request.user.tenant_id)
            .filter(module=module)
            .select_related('module')
        )
        return paginated_response(request, submodules, SubmoduleSerializer)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Catalog'],
        summary='List submodules',
        parameters=[
            OpenApiParameter('module_id', OpenApiTypes.UUID, description='Only submodules of this module'),
        ],
        responses={200: SubmoduleSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Catalog'],
        summary='Create submodule',
        description='''
Create a submodule owned by the caller\'s tenant, optionally under a visible module.

**Requires:** tenant administrator. `submodule_name` is accepted as an alias of `name`.
        ''',
        request=SubmoduleCreateSerializer,
        responses={201: SubmoduleSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
class SubmoduleListView(APIView):
    """
    GET /v1/submodules
    POST /v1/submodules
    """
    permission_classes = [IsTenantAdminForWrites]

    def get(self, request):
        submodules = Submodule.objects.visible_to(request.user.tenant_id).select_related('module')
        module_id = _uuid_param(request, 'module_id')
        if module_id:
            submodules = submodules.filter(module_id=module_id)
        return paginated_response(request, submodules, SubmoduleSerializer)

    def post(self, request):
        serializer = SubmoduleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        submodule = RBACService.create_submodule(request.user, request=request, **serializer.validated_data)
        return Response(SubmoduleSerializer(submodule).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Catalog'],
        summary='List permissions',
        parameters=[
            OpenApiParameter('module_id', OpenApiTypes.UUID, description='Filter by module'),
            OpenApiParameter('submodule_id', OpenApiTypes.UUID, description='Filter by submodule'),
        ],
        responses={200: PermissionSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Catalog'],
        summary='Create permission',
        description='''
Create a permission owned by the caller\'s tenant.

A permission may hang off a module, a submodule, both, or neither.

**Requires:** tenant administrator.
        ''',
        request=PermissionCreateSerializer,
        responses={201: PermissionSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample(
                'Create Permission',
                value={'action': 'approve', 'module_id': '123e4567-e89b-12d3-a456-426614174000'},
                request_only=True,
            ),
        ],
    ),
)
class PermissionListView(APIView):
    """
    GET /v1/permissions
    POST /v1/permissions
    """
    permission_classes = [IsTenantAdminForWrites]

    def get(self, request):
        permissions = (
            Permission.objects.visible_to(request.user.tenant_id)
            .select_related('module', 'submodule')
        )
        module_id = _uuid_param(request, 'module_id')
        submodule_id = _uuid_param(request, 'submodule_id')
        if module_id:
            permissions = permissions.filter(module_id=module_id)
        if submodule_id:
            permissions = permissions.filter(submodule_id=submodule_id)
        return paginated_response(request, permissions, PermissionSerializer)

    def post(self, request):
        serializer = PermissionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        permission = RBACService.create_permission(request.user, request=request, **serializer.validated_data)
        return Response(PermissionSerializer(permission).data, status=status.HTTP_201_CREATED)


@extend_schema(
    tags=['RBAC - Catalog'],
    summary='Grouped permission catalog',
    description='''
Visible permissions grouped by module key, then by submodule key.
Permissions without a module or submodule are grouped under `general`.
    ''',
    responses={200: OpenApiTypes.OBJECT},
)
class AvailablePermissionsView(APIView):
    """
    GET /v1/permissions/available
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        permissions = (
            Permission.objects.visible_to(request.user.tenant_id)
            .select_related('module', 'submodule')
        )

        grouped = {}
        for permission in permissions:
            module_key = key_part(permission.module.name) if permission.module_id else GENERAL_GROUP
            submodule_key = key_part(permission.submodule.name) if permission.submodule_id else GENERAL_GROUP
            grouped.setdefault(module_key, {}).setdefault(submodule_key, []).append(
                PermissionSerializer(permission).data
            )

        return Response({'count': len(permissions), 'permissions': grouped})


@extend_schema(
    tags=['RBAC - Permissions'],
    summary='My effective permissions',
    description='''
Every permission key the caller is allowed. A tenant administrator gets `["*"]`.
    ''',
    responses={200: OpenApiTypes.OBJECT},
    examples=[
        OpenApiExample(
            'Success Response',
            value={
                'permissions': ['sales.orders.create', 'sales.orders.submit'],
                'is_super_admin': False,
                'roles': ['Clerk'],
            },
            response_only=True,
        ),
    ],
)
class MyPermissionsView(APIView):
    """
    GET /v1/permissions/me
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        roles = sorted(
            user.role_assignments.select_related('role').values_list('role__name', flat=True)
        )
        return Response({
            'permissions': PermissionResolver.effective_keys(user),
            'is_super_admin': user.is_super_admin,
            'roles': roles,
        })


@extend_schema(
    tags=['RBAC - Permissions'],
    summary='Check a permission',
    description='''
Resolve one permission key for the caller.

`reason` is one of `super_admin`, `override_allow`, `override_deny`,
`role_permission`, `no_permission`.
    ''',
    request=PermissionCheckSerializer,
    responses={200: OpenApiTypes.OBJECT},
    examples=[
        OpenApiExample('Check Request', value={'permission': 'sales.orders.submit'}, request_only=True),
        OpenApiExample(
            'Check Response',
            value={'has_permission': True, 'permission': 'sales.orders.submit', 'reason': 'role_permission'},
            response_only=True,
        ),
    ],
)
class PermissionCheckView(APIView):
    """
    POST /v1/permissions/check
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = PermissionCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        key = serializer.validated_data['permission'].strip().lower()
        reason = PermissionResolver.explain_key(request.user, key)
        return Response({
            'has_permission': reason in ALLOWING_REASONS,
            'permission': key,
            'reason': reason,
        })


# ===== ROLES =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='List roles',
        responses={200: RoleSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Create role',
        description='''
Create a role in the caller\'s tenant. Names are unique per tenant.

**Requires:** tenant administrator. `role_name` is accepted as an alias of `name`.
        ''',
        request=RoleCreateSerializer,
        responses={201: RoleSerializer, 400: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample('Create Role', value={'name': 'Approver', 'description': 'Approves orders'},
                           request_only=True),
        ],
    ),
)
class RoleListView(APIView):
    """
    GET /v1/roles
    POST /v1/roles
    """
    permission_classes = [IsTenantAdminForWrites]

    def get(self, request):
        roles = Role.objects.for_tenant(request.user.tenant_id).order_by('name')
        return paginated_response(request, roles, RoleSerializer)

    def post(self, request):
        serializer = RoleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        role = RBACService.create_role(request.user, request=request, **serializer.validated_data)
        return Response(RoleSerializer(role).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='Get role',
        responses={200: RoleSerializer, 404: OpenApiTypes.OBJECT},
    ),
)
class RoleDetailView(APIView):
    """
    GET /v1/roles/{role_id}
    """
    permission_classes = [IsTenantAdminForWrites]

    def get(self, request, role_id):
        role = get_tenant_object(self, request, Role.objects.all(), 'Role', id=role_id)
        return Response(RoleSerializer(role).data)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='List the catalog grouped for a role',
        description='''
Every permission visible to the role's company, grouped by module and then
submodule, each flagged with `is_assigned`. `permission_ids` lists the
granted ids alone.
        ''',
        responses={200: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Grant a permission to a role',
        description='''
Idempotent: granting an already granted permission returns 200 instead of 201.

**Requires:** tenant administrator.
        ''',
        request=RolePermissionSerializer,
        responses={200: OpenApiTypes.OBJECT, 201: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
class RolePermissionsView(APIView):
    """
    GET /v1/roles/{role_id}/permissions
    POST /v1/roles/{role_id}/permissions
    """
    permission_classes = [IsTenantAdminForWrites]

    def get(self, request, role_id):
        role = RBACService.get_role(request.user.tenant_id, role_id)
        tree = RBACService.role_permission_tree(role)

        modules = []
        permission_ids = []
        for module_id, module_node in tree.items():
            submodules = []
            for submodule_id, submodule_node in module_node['submodules'].items():
                permissions = submodule_node['permissions']
                permission_ids.extend(str(p.id) for p in permissions if p.is_assigned)
                submodules.append({
                    'submodule_id': str(submodule_id) if submodule_id else None,
                    'submodule_name': _group_name(submodule_node['submodule']),
                    'permissions': AssignablePermissionSerializer(permissions, many=True).data,
                })
            modules.append({
                'module_id': str(module_id) if module_id else None,
                'module_name': _group_name(module_node['module']),
                'submodules': submodules,
            })

        return Response({
            'role_id': str(role.id),
            'permission_ids': permission_ids,
            'modules': modules,
        })

    def post(self, request, role_id):
        role = RBACService.get_role(request.user.tenant_id, role_id)
        serializer = RolePermissionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        permission = RBACService.get_permission(request.user.tenant_id, serializer.validated_data['permission_id'])
        _, created = RBACService.grant_permission(request.user, role, permission, request=request)

        return Response(
            {'role_id': str(role.id), 'permission_id': str(permission.id), 'created': created},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


@extend_schema_view(
    delete=extend_schema(
        tags=['RBAC - Roles'],
        summary='Revoke a permission from a role',
        description='Idempotent: revoking a permission the role does not hold is a no-op.',
        responses={204: None, 404: OpenApiTypes.OBJECT},
    ),
)
class RolePermissionDetailView(APIView):
    """
    DELETE /v1/roles/{role_id}/permissions/{permission_id}
    """
    permission_classes = [IsTenantAdmin]

    def delete(self, request, role_id, permission_id):
        role = RBACService.get_role(request.user.tenant_id, role_id)
        permission = RBACService.get_permission(request.user.tenant_id, permission_id)
        RBACService.revoke_permission(request.user, role, permission, request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)


_BULK_DESCRIPTION = '''
Selects the permissions whose module AND submodule equal the supplied ids.
An id that is not supplied matches only permissions without that part, so
selecting by module alone covers the permissions attached directly to the
module and not those under its submodules.

**Requires:** tenant administrator.
'''


@extend_schema(
    tags=['RBAC - Roles'],
    summary='Grant a catalog slice to a role',
    description=_BULK_DESCRIPTION,
    request=BulkGrantSerializer,
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    examples=[
        OpenApiExample('Bulk Assign Response', value={'assigned': 4}, response_only=True),
    ],
)
class RoleBulkAssignView(APIView):
    """
    POST /v1/roles/{role_id}/permissions/bulk-assign
    """
    permission_classes = [IsTenantAdmin]

    def post(self, request, role_id):
        role = RBACService.get_role(request.user.tenant_id, role_id)
        serializer = BulkGrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        assigned = BulkGrantService.bulk_grant(request.user, role, request=request, **serializer.validated_data)
        return Response({'assigned': assigned})


@extend_schema(
    tags=['RBAC - Roles'],
    summary='Revoke a catalog slice from a role',
    description=_BULK_DESCRIPTION,
    request=BulkGrantSerializer,
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
)
class RoleBulkRevokeView(APIView):
    """
    POST /v1/roles/{role_id}/permissions/bulk-revoke
    """
    permission_classes = [IsTenantAdmin]

    def post(self, request, role_id):
        role = RBACService.get_role(request.user.tenant_id, role_id)
        serializer = BulkGrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        removed = BulkGrantService.bulk_revoke(request.user, role, request=request, **serializer.validated_data)
        return Response({'removed': removed})


# ===== USERS =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Users'],
        summary='List users',
        responses={200: UserSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Users'],
        summary='Create user',
        description='''
Create a user in the caller\'s tenant, optionally assigning one role.
The user and the role assignment are written in one transaction.

**Requires:** tenant administrator.
        ''',
        request=UserCreateSerializer,
        responses={201: UserSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
class UserListView(APIView):
    """
    GET /v1/users
    POST /v1/users
    """
    permission_classes = [IsTenantAdmin]

    def get(self, request):
        return paginated_response(request, _tenant_users(request).order_by('email'), UserSerializer)

    def post(self, request):
        serializer = UserCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = RBACService.create_user(request.user, request=request, **serializer.validated_data)
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Users'],
        summary='Get user',
        responses={200: UserSerializer, 404: OpenApiTypes.OBJECT},
    ),
    put=extend_schema(
        tags=['RBAC - Users'],
        summary='Update user',
        description='''
Update profile fields. When `role_ids` is supplied the user\'s roles are
replaced by exactly that list, in the same transaction.
        ''',
        request=UserUpdateSerializer,
        responses={200: UserSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
    patch=extend_schema(
        tags=['RBAC - Users'],
        summary='Partially update user',
        request=UserUpdateSerializer,
        responses={200: UserSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
class UserDetailView(APIView):
    """
    GET /v1/users/{user_id}
    PUT /v1/users/{user_id}
    PATCH /v1/users/{user_id}
    """
    permission_classes = [IsTenantAdmin]

    def get(self, request, user_id):
        user = get_tenant_object(
            self, request, User.objects.prefetch_related('role_assignments__role'), 'User', id=user_id,
        )
        return Response(UserSerializer(user).data)

    def put(self, request, user_id):
        user = RBACService.get_user(request.user.tenant_id, user_id)
        serializer = UserUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        changes = dict(serializer.validated_data)
        role_ids = changes.pop('role_ids', None)
        RBACService.update_user(request.user, user, changes, role_ids=role_ids, request=request)

        user = get_tenant_object(self, request, _tenant_users(request), 'User', id=user_id)
        return Response(UserSerializer(user).data)

    def patch(self, request, user_id):
        return self.put(request, user_id)


@extend_schema(
    tags=['RBAC - Users'],
    summary='Set the tenant administrator flag',
    request=SuperAdminSerializer,
    responses={200: UserSerializer, 404: OpenApiTypes.OBJECT},
)
class UserSuperAdminView(APIView):
    """
    PUT /v1/users/{user_id}/super-admin
    """
    permission_classes = [IsTenantAdmin]

    def put(self, request, user_id):
        user = RBACService.get_user(request.user.tenant_id, user_id)
        serializer = SuperAdminSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        RBACService.set_super_admin(
            request.user, user, serializer.validated_data['is_super_admin'], request=request,
        )
        return Response(UserSerializer(user).data)


@extend_schema(
    tags=['RBAC - Users'],
    summary='Reset a user\'s password',
    request=PasswordResetSerializer,
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
)
class UserResetPasswordView(APIView):
    """
    POST /v1/users/{user_id}/reset-password
    """
    permission_classes = [IsTenantAdmin]

    def post(self, request, user_id):
        user = RBACService.get_user(request.user.tenant_id, user_id)
        serializer = PasswordResetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        RBACService.reset_password(request.user, user, serializer.validated_data['password'], request=request)
        return Response({'message': 'Password has been reset'})


@extend_schema(
    tags=['RBAC - Users'],
    summary='Assign a role to a user',
    description='Idempotent: assigning a role the user already holds returns 200 instead of 201.',
    request=RoleAssignSerializer,
    responses={200: UserSerializer, 201: UserSerializer, 404: OpenApiTypes.OBJECT},
)
class UserRolesView(APIView):
    """
    POST /v1/users/{user_id}/roles
    """
    permission_classes = [IsTenantAdmin]

    def post(self, request, user_id):
        user = RBACService.get_user(request.user.tenant_id, user_id)
        serializer = RoleAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        role = RBACService.get_role(request.user.tenant_id, serializer.validated_data['role_id'])
        _, created = RBACService.assign_role(request.user, user, role, request=request)

        return Response(
            UserSerializer(user).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


@extend_schema(
    tags=['RBAC - Users'],
    summary='Unassign a role from a user',
    responses={204: None, 404: OpenApiTypes.OBJECT},
)
class UserRoleDetailView(APIView):
    """
    DELETE /v1/users/{user_id}/roles/{role_id}
    """
    permission_classes = [IsTenantAdmin]

    def delete(self, request, user_id, role_id):
        user = RBACService.get_user(request.user.tenant_id, user_id)
        role = RBACService.get_role(request.user.tenant_id, role_id)
        RBACService.unassign_role(request.user, user, role, request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Overrides'],
        summary='List a user\'s permission overrides',
        responses={200: PermissionOverrideSerializer(many=True), 404: OpenApiTypes.OBJECT},
    ),
    post=extend_schema(
        tags=['RBAC - Overrides'],
        summary='Set a permission override',
        description='''
Upsert the allow/deny override for (user, permission). An override beats
every role grant. `allowed`, `granted` and `allow` are accepted as aliases
of `is_allowed`.
        ''',
        request=PermissionOverrideCreateSerializer,
        responses={200: PermissionOverrideSerializer, 201: PermissionOverrideSerializer,
                   400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample(
                'Deny Override',
                value={
                    'permission_id': '123e4567-e89b-12d3-a456-426614174000',
                    'is_allowed': False,
                    'reason': 'Under review',
                },
                request_only=True,
            ),
        ],
    ),
)
class UserOverridesView(APIView):
    """
    GET /v1/users/{user_id}/overrides
    POST /v1/users/{user_id}/overrides
    """
    permission_classes = [IsTenantAdmin]

    def get(self, request, user_id):
        user = RBACService.get_user(request.user.tenant_id, user_id)
        overrides = (
            PermissionOverride.objects.for_tenant(request.user.tenant_id)
            .filter(user=user)
            .select_related('permission__module', 'permission__submodule', 'granted_by')
            .order_by('-updated_at')
        )
        return paginated_response(request, overrides, PermissionOverrideSerializer)

    def post(self, request, user_id):
        user = RBACService.get_user(request.user.tenant_id, user_id)
        serializer = PermissionOverrideCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        permission = RBACService.get_permission(request.user.tenant_id, serializer.validated_data['permission_id'])
        override, created = RBACService.set_override(
            request.user,
            user,
            permission,
            serializer.validated_data['is_allowed'],
            reason=serializer.validated_data['reason'],
            request=request,
        )
        return Response(
            PermissionOverrideSerializer(override).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


@extend_schema(
    tags=['RBAC - Overrides'],
    summary='Clear a permission override',
    responses={204: None, 404: OpenApiTypes.OBJECT},
)
class UserOverrideDetailView(APIView):
    """
    DELETE /v1/users/{user_id}/overrides/{permission_id}
    """
    permission_classes = [IsTenantAdmin]

    def delete(self, request, user_id, permission_id):
        user = RBACService.get_user(request.user.tenant_id, user_id)
        permission = RBACService.get_permission(request.user.tenant_id, permission_id)
        RBACService.clear_override(request.user, user, permission, request=request)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ===== AUDIT =====

@extend_schema(
    tags=['RBAC - Audit'],
    summary='List audit logs',
    parameters=[
        OpenApiParameter('action', OpenApiTypes.STR, description='Filter by action'),
        OpenApiParameter('target_type', OpenApiTypes.STR, description='Filter by target type'),
    ],
    responses={200: AuditLogSerializer(many=True)},
)
class AuditLogListView(APIView):
    """
    GET /v1/audit-logs
    """
    permission_classes = [IsTenantAdmin]

    def get(self, request):
        logs = AuditLog.objects.for_tenant(request.user.tenant_id).select_related('user')

        action = request.query_params.get('action')
        if action:
            logs = logs.by_action(action)
        target_type = request.query_params.get('target_type')
        if target_type:
            logs = logs.by_target(target_type)

        return paginated_response(request, logs.order_by('-created_at'), AuditLogSerializer)
