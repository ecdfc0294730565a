"""
DRF permission classes and decorators for tenant authorization.

This module provides:
- IsTenantAdmin: only the tenant's break-glass admin may pass
- IsTenantAdminForWrites: reads for any member, writes for the admin
- HasTenantPermission: resolver-backed check of permission keys
- @requires_permissions: declare the permission keys a view needs
- get_tenant_object: fetch a row through the object-level tenant checks
"""
import logging
from functools import wraps

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission, SAFE_METHODS

from apps.core.exceptions import NotFoundError
from apps.core.logging import SecurityLogger

logger = logging.getLogger(__name__)


def _tenant_user(request):
    """Return the authenticated user if it belongs to a tenant, else None."""
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return None
    if not getattr(user, 'tenant_id', None):
        return None
    return user


def _is_global(obj):
    scope = getattr(obj, 'scope', None)
    return scope is not None and scope.is_global


def get_tenant_object(view, request, queryset, label, **lookup):
    """
    Fetch one object and run the view's object-level permission checks.

    Another tenant's row fails the checks, is reported as cross-tenant
    access, and is then answered with NotFound exactly like a missing row.
    """
    obj = queryset.filter(**lookup).first()
    if obj is None:
        raise NotFoundError(f'{label} not found')

    try:
        view.check_object_permissions(request, obj)
    except PermissionDenied:
        if not _is_global(obj) and obj.tenant_id != request.user.tenant_id:
            raise NotFoundError(f'{label} not found')
        raise
    return obj


class TenantObjectPermission(BasePermission):
    """
    Object-level tenant isolation shared by the Warden permission classes.

    Objects owned by the request's tenant pass. Global catalog rows pass
    for reads only. Anything else is denied and reported as a cross-tenant
    access attempt.
    """

    def has_object_permission(self, request, view, obj):
        user = _tenant_user(request)
        if user is None:
            return False

        if not hasattr(obj, 'tenant_id'):
            return True

        if _is_global(obj):
            return request.method in SAFE_METHODS

        if obj.tenant_id != user.tenant_id:
            SecurityLogger.log_cross_tenant_access(
                user=user,
                tenant=getattr(request, 'tenant', None),
                object_type=obj.__class__.__name__,
                object_id=getattr(obj, 'id', None),
                object_tenant_id=obj.tenant_id,
            )
            return False

        return True


class IsTenantAdmin(TenantObjectPermission):
    """
    Allow only users whose tenant-scoped admin flag is set.

    This is the break-glass short-circuit of the resolver: the admin flag
    alone decides, no role or override is consulted.
    """
    message = 'Tenant administrator privileges are required'

    def has_permission(self, request, view):
        user = _tenant_user(request)
        if user is None:
            return False

        if user.is_super_admin:
            return True

        SecurityLogger.log_permission_denied(
            user=user,
            tenant=getattr(request, 'tenant', None),
            required={'tenant_admin'},
            path=request.path,
        )
        return False


class IsTenantAdminForWrites(IsTenantAdmin):
    """Let any tenant member read; require the admin flag to write."""

    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return _tenant_user(request) is not None
        return super().has_permission(request, view)


class HasTenantPermission(TenantObjectPermission):
    """
    Enforce permission keys declared on the view through the resolver.

    Keys are read from the handler method first (method decorator) and then
    from the view class. By default any one key suffices; set
    ``require_all_permissions`` to demand every key.

    Usage:
        @requires_permissions('sales.orders.view')
        class OrderListView(APIView):
            permission_classes = [HasTenantPermission]
    """
    message = 'You do not have permission to perform this action'

    def _required(self, view, request):
        handler = getattr(view, request.method.lower(), None)
        required = getattr(handler, 'required_permissions', None)
        require_all = getattr(handler, 'require_all_permissions', None)
        if required is None:
            required = getattr(view, 'required_permissions', None)
        if require_all is None:
            require_all = getattr(view, 'require_all_permissions', False)
        if isinstance(required, str) or callable(required):
            required = (required,)
        keys = tuple(key() if callable(key) else key for key in (required or ()))
        return keys, require_all

    def has_permission(self, request, view):
        user = _tenant_user(request)
        if user is None:
            return False

        required, require_all = self._required(view, request)
        if not required:
            return True

        from apps.rbac.resolver import PermissionResolver

        decisions = [PermissionResolver.resolve_key(user, key).allowed for key in required]
        granted = all(decisions) if require_all else any(decisions)

        if not granted:
            missing = [key for key, allowed in zip(required, decisions) if not allowed]
            logger.warning(
                f"Permission denied for user {user.id}: missing {missing}",
                extra={
                    'user_id': str(user.id),
                    'tenant_id': str(user.tenant_id),
                    'required_permissions': list(required),
                    'missing_permissions': missing,
                    'view': view.__class__.__name__,
                    'method': request.method,
                },
            )
            SecurityLogger.log_permission_denied(
                user=user,
                tenant=getattr(request, 'tenant', None),
                required=set(missing),
                path=request.path,
            )

        return granted


def requires_permissions(*keys, require_all=False):
    """
    Declare the permission keys a view class or handler method requires.

    Checked by HasTenantPermission before the handler runs. A key may also
    be a callable returning the key; it is evaluated on every request.

    Usage:
        class OrderListView(APIView):
            permission_classes = [HasTenantPermission]

            @requires_permissions('sales.orders.create')
            def post(self, request):
                ...
    """
    def decorator(view_or_method):
        if isinstance(view_or_method, type):
            view_or_method.required_permissions = tuple(keys)
            view_or_method.require_all_permissions = require_all
            return view_or_method

        @wraps(view_or_method)
        def wrapped(self, request, *args, **kwargs):
            return view_or_method(self, request, *args, **kwargs)

        wrapped.required_permissions = tuple(keys)
        wrapped.require_all_permissions = require_all
        return wrapped

    return decorator
