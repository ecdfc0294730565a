"""
Permission resolution.

The effective decision for (user, permission) is computed, in order, from:
1. the user's tenant-scoped admin flag (allow everything),
2. a per-user override for the permission (its value, verbatim),
3. the grants of the user's roles (allow if any role grants it).

Every call reads the database. Nothing is cached between calls.
"""
import enum
import logging
from typing import Dict, Iterable, List

from django.core.exceptions import ValidationError as DjangoValidationError

from apps.rbac.models import Permission, PermissionOverride, RoleGrant

logger = logging.getLogger(__name__)


class Decision(enum.Enum):
    ALLOW = 'allow'
    DENY = 'deny'

    @property
    def allowed(self) -> bool:
        return self is Decision.ALLOW


# Reasons reported by explain() and the check endpoint.
SUPER_ADMIN = 'super_admin'
OVERRIDE_ALLOW = 'override_allow'
OVERRIDE_DENY = 'override_deny'
ROLE_PERMISSION = 'role_permission'
NO_PERMISSION = 'no_permission'

ALLOWING_REASONS = {SUPER_ADMIN, OVERRIDE_ALLOW, ROLE_PERMISSION}


def matches_permission(pattern: str, key: str) -> bool:
    """
    Match a permission key against a pattern.

    Supports exact keys, ``*``, ``prefix.*`` and ``*.suffix``.
    """
    if pattern == '*' or pattern == key:
        return True
    if pattern.endswith('.*'):
        return key.startswith(pattern[:-1])
    if pattern.startswith('*.'):
        return key.endswith(pattern[1:])
    return False


class PermissionResolver:
    """Compute effective permissions for tenant users."""

    @staticmethod
    def _is_admin(user) -> bool:
        return bool(user.is_active and user.is_super_admin)

    @staticmethod
    def _visible_permissions(user):
        return Permission.objects.visible_to(user.tenant_id)

    @classmethod
    def _reasons(cls, user, permission_ids: Iterable) -> Dict:
        """
        Map each permission id to the reason it is allowed or denied.

        Issues one query for overrides and one for role grants, whatever
        the number of ids.
        """
        permission_ids = list(permission_ids)
        if not permission_ids:
            return {}

        overrides = dict(
            PermissionOverride.objects.for_tenant(user.tenant_id)
            .filter(user_id=user.id, permission_id__in=permission_ids)
            .values_list('permission_id', 'is_allowed')
        )
        granted = set(
            RoleGrant.objects.for_tenant(user.tenant_id)
            .filter(
                permission_id__in=permission_ids,
                role__assignments__user_id=user.id,
            )
            .values_list('permission_id', flat=True)
        )

        reasons = {}
        for permission_id in permission_ids:
            if permission_id in overrides:
                reasons[permission_id] = OVERRIDE_ALLOW if overrides[permission_id] else OVERRIDE_DENY
            elif permission_id in granted:
                reasons[permission_id] = ROLE_PERMISSION
            else:
                reasons[permission_id] = NO_PERMISSION
        return reasons

    @classmethod
    def _permission_id(cls, user, permission):
        """Return the id of ``permission`` if it is visible to the user, else None."""
        if isinstance(permission, Permission):
            return permission.id if permission.scope.visible_to(user.tenant_id) else None
        try:
            return (
                cls._visible_permissions(user)
                .filter(id=permission)
                .values_list('id', flat=True)
                .first()
            )
        except (DjangoValidationError, ValueError, TypeError):
            return None

    @classmethod
    def explain(cls, user, permission) -> str:
        """Return the reason behind the decision for one permission."""
        if cls._is_admin(user):
            return SUPER_ADMIN
        if not user.is_active or not user.tenant_id:
            return NO_PERMISSION

        permission_id = cls._permission_id(user, permission)
        if permission_id is None:
            return NO_PERMISSION
        return cls._reasons(user, [permission_id])[permission_id]

    @classmethod
    def resolve(cls, user, permission) -> Decision:
        """
        Resolve a Permission instance or id for ``user``.

        Unknown permissions, and permissions owned by another tenant, are
        denied rather than reported as errors.
        """
        reason = cls.explain(user, permission)
        return Decision.ALLOW if reason in ALLOWING_REASONS else Decision.DENY

    @classmethod
    def candidates_for_key(cls, user, key: str):
        """Visible permissions whose computed key equals ``key``."""
        key = (key or '').strip().lower()
        if not key:
            return []

        # Keys are not stored; compare the computed key of every visible permission
        queryset = cls._visible_permissions(user).select_related('module', 'submodule')
        return [permission for permission in queryset if permission.key == key]

    @classmethod
    def explain_key(cls, user, key: str) -> str:
        """
        Reason behind the decision for a dotted permission key.

        Several visible permissions may share a key (one global, one owned
        by the tenant). The key is allowed if any of them is allowed.
        """
        if cls._is_admin(user):
            return SUPER_ADMIN
        if not user.is_active or not user.tenant_id:
            return NO_PERMISSION

        candidates = cls.candidates_for_key(user, key)
        reasons = cls._reasons(user, [permission.id for permission in candidates])
        for preferred in (OVERRIDE_ALLOW, ROLE_PERMISSION, OVERRIDE_DENY):
            if preferred in reasons.values():
                return preferred
        return NO_PERMISSION

    @classmethod
    def resolve_key(cls, user, key: str) -> Decision:
        reason = cls.explain_key(user, key)
        return Decision.ALLOW if reason in ALLOWING_REASONS else Decision.DENY

    @classmethod
    def effective_keys(cls, user) -> List[str]:
        """
        Every permission key the user is allowed, sorted.

        A tenant admin is allowed everything and gets ``['*']``.
        """
        if cls._is_admin(user):
            return ['*']
        if not user.is_active or not user.tenant_id:
            return []

        permissions = list(cls._visible_permissions(user).select_related('module', 'submodule'))
        reasons = cls._reasons(user, [permission.id for permission in permissions])
        keys = {
            permission.key
            for permission in permissions
            if reasons[permission.id] in ALLOWING_REASONS
        }

        logger.debug(
            f"Resolved {len(keys)} effective permissions for user {user.id}",
            extra={'user_id': str(user.id), 'tenant_id': str(user.tenant_id)},
        )
        return sorted(keys)


__all__ = [
    'Decision',
    'PermissionResolver',
    'matches_permission',
]
