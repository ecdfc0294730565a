"""
RBAC and Authentication services.

Implements:
- RBACService: catalog, role, grant, override, assignment and user administration
- BulkGrantService: grant or revoke every permission under a module/submodule
- AuthService: JWT issuance/decoding and login
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional

import jwt
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Prefetch
from django.utils import timezone

from apps.core.exceptions import (
    AuthenticationError, NotFoundError, PermissionDeniedError, ValidationError,
)
from apps.rbac.models import (
    AuditLog, Module, ModuleAccess, Permission, PermissionOverride, Role,
    RoleAssignment, RoleGrant, Submodule, User,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _audit(actor, action, target, diff=None, metadata=None, request=None):
    AuditLog.log_action(
        action=action,
        user=actor,
        tenant=actor.tenant,
        target_type=target.__class__.__name__,
        target_id=target.id,
        diff=diff,
        metadata=metadata,
        request=request,
    )


def _lookup(queryset, object_id, label):
    """
    Fetch one row or raise NotFoundError.

    Malformed ids are reported as NotFound, the same as foreign ids.
    """
    if object_id is None:
        raise NotFoundError(f'{label} not found')
    try:
        return queryset.get(id=object_id)
    except (queryset.model.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise NotFoundError(f'{label} not found')


def _require_text(value, field):
    value = (value or '').strip()
    if not value:
        raise ValidationError(f'{field} is required', details={field: ['This field is required.']})
    return value


class RBACService:
    """
    Service for authorization administration.

    Every mutating method takes the acting user first and requires the
    tenant-admin flag. Rows are always stamped with the actor's tenant,
    never with a tenant taken from request input.
    """

    # Lookups ---------------------------------------------------------------

    @classmethod
    def get_role(cls, tenant, role_id) -> Role:
        return _lookup(Role.objects.for_tenant(tenant), role_id, 'Role')

    @classmethod
    def get_user(cls, tenant, user_id) -> User:
        return _lookup(User.objects.for_tenant(tenant), user_id, 'User')

    @classmethod
    def get_module(cls, tenant, module_id) -> Module:
        return _lookup(Module.objects.visible_to(tenant), module_id, 'Module')

    @classmethod
    def get_submodule(cls, tenant, submodule_id) -> Submodule:
        return _lookup(Submodule.objects.visible_to(tenant), submodule_id, 'Submodule')

    @classmethod
    def get_permission(cls, tenant, permission_id) -> Permission:
        return _lookup(
            Permission.objects.visible_to(tenant).select_related('module', 'submodule'),
            permission_id,
            'Permission',
        )

    @staticmethod
    def require_admin(actor):
        """The break-glass check every administrative mutation must pass."""
        if not (actor and actor.is_active and actor.tenant_id and actor.is_super_admin):
            raise PermissionDeniedError('Tenant administrator privileges are required')

    @staticmethod
    def _same_tenant(actor, *rows):
        for row in rows:
            if row.tenant_id != actor.tenant_id:
                raise NotFoundError(f'{row.__class__.__name__} not found')

    # Catalog ---------------------------------------------------------------

    @classmethod
    @transaction.atomic
    def create_role(cls, actor, name, description='', request=None) -> Role:
        cls.require_admin(actor)
        name = _require_text(name, 'name')
        if Role.objects.for_tenant(actor.tenant_id).filter(name__iexact=name).exists():
            raise ValidationError('A role with this name already exists',
                                  details={'name': ['A role with this name already exists.']})

        role = Role.objects.create(tenant_id=actor.tenant_id, name=name, description=description or '')
        _audit(actor, 'role_created', role, diff={'name': name}, request=request)

        logger.info(
            f"Role created: {role.name}",
            extra={'tenant_id': str(actor.tenant_id), 'role_id': str(role.id), 'user_id': str(actor.id)},
        )
        return role

    @classmethod
    @transaction.atomic
    def create_module(cls, actor, name, description='', request=None) -> Module:
        cls.require_admin(actor)
        name = _require_text(name, 'name')
        if Module.objects.owned_by(actor.tenant_id).filter(name__iexact=name).exists():
            raise ValidationError('A module with this name already exists',
                                  details={'name': ['A module with this name already exists.']})

        module = Module.objects.create(tenant_id=actor.tenant_id, name=name, description=description or '')
        _audit(actor, 'module_created', module, diff={'name': name}, request=request)
        return module

    @classmethod
    @transaction.atomic
    def create_submodule(cls, actor, name, module_id=None, description='', request=None) -> Submodule:
        cls.require_admin(actor)
        name = _require_text(name, 'name')
        module = cls.get_module(actor.tenant_id, module_id) if module_id else None

        duplicate = Submodule.objects.owned_by(actor.tenant_id).filter(name__iexact=name, module=module)
        if duplicate.exists():
            raise ValidationError('A submodule with this name already exists',
                                  details={'name': ['A submodule with this name already exists.']})

        submodule = Submodule.objects.create(
            tenant_id=actor.tenant_id,
            module=module,
            name=name,
            description=description or '',
        )
        _audit(actor, 'submodule_created', submodule,
               diff={'name': name, 'module_id': str(module.id) if module else None}, request=request)
        return submodule

    @classmethod
    @transaction.atomic
    def create_permission(cls, actor, action, module_id=None, submodule_id=None,
                          description='', request=None) -> Permission:
        cls.require_admin(actor)
        action = _require_text(action, 'action')
        module = cls.get_module(actor.tenant_id, module_id) if module_id else None
        submodule = cls.get_submodule(actor.tenant_id, submodule_id) if submodule_id else None

        if submodule and submodule.module_id and module is None:
            module = submodule.module
        if submodule and module and submodule.module_id and submodule.module_id != module.id:
            raise ValidationError('Submodule does not belong to the given module',
                                  details={'submodule_id': ['Submodule does not belong to the given module.']})

        duplicate = Permission.objects.owned_by(actor.tenant_id).filter(
            action__iexact=action, module=module, submodule=submodule,
        )
        if duplicate.exists():
            raise ValidationError('This permission already exists',
                                  details={'action': ['This permission already exists.']})

        permission = Permission.objects.create(
            tenant_id=actor.tenant_id,
            module=module,
            submodule=submodule,
            action=action,
            description=description or '',
        )
        _audit(actor, 'permission_created', permission, diff={'key': permission.key}, request=request)
        return permission

    # Module access ---------------------------------------------------------

    @classmethod
    def module_access(cls, tenant):
        """
        Every module visible to ``tenant`` with its ``is_enabled`` flag.

        Modules the company never configured report as enabled.
        """
        flags = ModuleAccess.objects.flags_for(tenant)
        modules = Module.objects.visible_to(tenant).prefetch_related(
            Prefetch('submodules', queryset=Submodule.objects.visible_to(tenant).order_by('name')),
        )
        for module in modules:
            module.is_enabled = flags.get(module.id, True)
        return list(modules)

    @classmethod
    def set_module_access(cls, actor, module, is_enabled, request=None):
        """Upsert the actor's company flag for ``module``."""
        cls.require_admin(actor)
        if not module.scope.visible_to(actor.tenant_id):
            raise NotFoundError('Module not found')

        with transaction.atomic():
            access, created = ModuleAccess.objects.set_access(actor.tenant_id, module, bool(is_enabled))
            _audit(actor, 'module_access_updated', module,
                   diff={'is_enabled': bool(is_enabled)}, request=request)

        logger.info(
            f"Module access updated: {module.name}",
            extra={'tenant_id': str(actor.tenant_id), 'module_id': str(module.id),
                   'is_enabled': bool(is_enabled)},
        )
        return access, created

    @classmethod
    def role_permission_tree(cls, role):
        """
        The role's tenant catalog grouped module > submodule > permission.

        Each permission carries ``is_assigned``. Permissions without a
        module or submodule are grouped under ``None``.
        """
        assigned = set(RoleGrant.objects.filter(role=role).values_list('permission_id', flat=True))
        permissions = (
            Permission.objects.visible_to(role.tenant_id)
            .select_related('module', 'submodule')
            .order_by('module__name', 'submodule__name', 'action')
        )

        tree = {}
        for permission in permissions:
            module = tree.setdefault(permission.module_id, {
                'module': permission.module,
                'submodules': {},
            })
            submodule = module['submodules'].setdefault(permission.submodule_id, {
                'submodule': permission.submodule,
                'permissions': [],
            })
            permission.is_assigned = permission.id in assigned
            submodule['permissions'].append(permission)
        return tree

    # Grants ----------------------------------------------------------------

    @classmethod
    def grant_permission(cls, actor, role, permission, request=None):
        """Grant ``permission`` to ``role``. Granting twice is a no-op."""
        cls.require_admin(actor)
        cls._same_tenant(actor, role)
        if not permission.scope.visible_to(actor.tenant_id):
            raise NotFoundError('Permission not found')

        with transaction.atomic():
            grant, created = RoleGrant.objects.grant(role, permission)
            if created:
                _audit(actor, 'role_permission_granted', role,
                       diff={'permission_id': str(permission.id), 'permission': permission.key},
                       request=request)
        return grant, created

    @classmethod
    def revoke_permission(cls, actor, role, permission, request=None) -> int:
        """Revoke ``permission`` from ``role``. Revoking a missing grant is a no-op."""
        cls.require_admin(actor)
        cls._same_tenant(actor, role)

        with transaction.atomic():
            removed, _ = RoleGrant.objects.revoke(actor.tenant_id, role, permission)
            if removed:
                _audit(actor, 'role_permission_revoked', role,
                       diff={'permission_id': str(permission.id), 'permission': permission.key},
                       request=request)
        return removed

    # Overrides -------------------------------------------------------------

    @classmethod
    def set_override(cls, actor, user, permission, is_allowed, reason='', request=None):
        """Upsert the override for (user, permission)."""
        cls.require_admin(actor)
        cls._same_tenant(actor, user)
        if not permission.scope.visible_to(actor.tenant_id):
            raise NotFoundError('Permission not found')

        with transaction.atomic():
            override, created = PermissionOverride.objects.set_override(
                user, permission, bool(is_allowed), reason=reason or '', granted_by=actor,
            )
            _audit(actor, 'permission_override_set', user,
                   diff={'permission_id': str(permission.id), 'permission': permission.key,
                         'is_allowed': bool(is_allowed)},
                   metadata={'reason': reason or ''}, request=request)
        return override, created

    @classmethod
    def clear_override(cls, actor, user, permission, request=None) -> int:
        cls.require_admin(actor)
        cls._same_tenant(actor, user)

        with transaction.atomic():
            removed, _ = PermissionOverride.objects.clear_override(actor.tenant_id, user, permission)
            if removed:
                _audit(actor, 'permission_override_cleared', user,
                       diff={'permission_id': str(permission.id), 'permission': permission.key},
                       request=request)
        return removed

    # Assignments -----------------------------------------------------------

    @classmethod
    def assign_role(cls, actor, user, role, request=None):
        """Assign ``role`` to ``user``. Assigning twice is a no-op."""
        cls.require_admin(actor)
        cls._same_tenant(actor, user, role)

        with transaction.atomic():
            assignment, created = RoleAssignment.objects.assign(user, role, assigned_by=actor)
            if created:
                _audit(actor, 'role_assigned', user,
                       diff={'role_id': str(role.id), 'role': role.name}, request=request)
        return assignment, created

    @classmethod
    def unassign_role(cls, actor, user, role, request=None) -> int:
        cls.require_admin(actor)
        cls._same_tenant(actor, user, role)

        with transaction.atomic():
            removed, _ = RoleAssignment.objects.unassign(actor.tenant_id, user, role)
            if removed:
                _audit(actor, 'role_unassigned', user,
                       diff={'role_id': str(role.id), 'role': role.name}, request=request)
        return removed

    # Users -----------------------------------------------------------------

    @staticmethod
    def _validate_password(password):
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f'Password must be at least {MIN_PASSWORD_LENGTH} characters',
                details={'password': [f'Ensure this field has at least {MIN_PASSWORD_LENGTH} characters.']},
            )

    @staticmethod
    def _validate_email_free(email, exclude=None):
        queryset = User.objects.filter(email__iexact=email)
        if exclude is not None:
            queryset = queryset.exclude(id=exclude.id)
        if queryset.exists():
            raise ValidationError('A user with this email already exists',
                                  details={'email': ['A user with this email already exists.']})

    @classmethod
    @transaction.atomic
    def create_user(cls, actor, email, password, first_name='', last_name='',
                    role_id=None, is_super_admin=False, request=None) -> User:
        """
        Create a user in the actor's tenant, optionally with one role.

        The user insert and the role assignment commit together; an unknown
        role rolls the user back.
        """
        cls.require_admin(actor)
        email = User.objects.normalize_email(_require_text(email, 'email'))
        cls._validate_password(password)
        cls._validate_email_free(email)

        try:
            user = User.objects.create_user(
                email=email,
                password=password,
                tenant_id=actor.tenant_id,
                first_name=first_name or '',
                last_name=last_name or '',
                is_super_admin=bool(is_super_admin),
            )
        except IntegrityError:
            raise ValidationError('A user with this email already exists',
                                  details={'email': ['A user with this email already exists.']})

        if role_id:
            role = cls.get_role(actor.tenant_id, role_id)
            RoleAssignment.objects.assign(user, role, assigned_by=actor)

        _audit(actor, 'user_created', user,
               diff={'email': email, 'role_id': str(role_id) if role_id else None,
                     'is_super_admin': bool(is_super_admin)},
               request=request)

        logger.info(
            f"User created: {user.id}",
            extra={'tenant_id': str(actor.tenant_id), 'user_id': str(user.id), 'actor_id': str(actor.id)},
        )
        return user

    UPDATABLE_USER_FIELDS = ('email', 'first_name', 'last_name', 'is_active', 'is_super_admin')

    @classmethod
    @transaction.atomic
    def update_user(cls, actor, user, changes: Dict[str, Any],
                    role_ids: Optional[Iterable] = None, request=None) -> User:
        """
        Update profile fields and optionally replace the user's roles.

        When ``role_ids`` is given every current assignment is deleted and
        the given roles are inserted, in the same transaction as the field
        update.
        """
        cls.require_admin(actor)
        cls._same_tenant(actor, user)

        diff = {}
        for field in cls.UPDATABLE_USER_FIELDS:
            if field not in changes:
                continue
            value = changes[field]
            if field == 'email':
                value = User.objects.normalize_email(_require_text(value, 'email'))
                cls._validate_email_free(value, exclude=user)
            if getattr(user, field) != value:
                diff[field] = {'old': getattr(user, field), 'new': value}
                setattr(user, field, value)

        if diff:
            user.save(update_fields=list(diff) + ['updated_at'])

        if role_ids is not None:
            roles = [cls.get_role(actor.tenant_id, role_id) for role_id in role_ids]
            previous = sorted(str(role_id) for role_id in user.role_assignments.values_list('role_id', flat=True))
            RoleAssignment.objects.for_tenant(actor.tenant_id).filter(user=user).delete()
            RoleAssignment.objects.bulk_create([
                RoleAssignment(tenant_id=actor.tenant_id, user=user, role=role, assigned_by=actor)
                for role in {role.id: role for role in roles}.values()
            ])
            diff['role_ids'] = {'old': previous, 'new': sorted(str(role.id) for role in roles)}

        if diff:
            _audit(actor, 'user_updated', user, diff=diff, request=request)
        return user

    @classmethod
    def set_super_admin(cls, actor, user, is_super_admin, request=None) -> User:
        return cls.update_user(actor, user, {'is_super_admin': bool(is_super_admin)}, request=request)

    @classmethod
    @transaction.atomic
    def reset_password(cls, actor, user, password, request=None) -> User:
        cls.require_admin(actor)
        cls._same_tenant(actor, user)
        cls._validate_password(password)

        user.set_password(password)
        user.save(update_fields=['password_hash', 'updated_at'])
        _audit(actor, 'user_password_reset', user, request=request)
        return user


class BulkGrantService:
    """
    Grant or revoke a whole slice of the catalog to a role in one statement.

    A permission is in the slice when its module AND its submodule equal
    the supplied ids, where an id that is not supplied matches only null.
    Selecting by module therefore picks the permissions attached directly
    to the module (no submodule), not those nested under its submodules.
    """

    @classmethod
    def matching_permission_ids(cls, tenant, module_id=None, submodule_id=None):
        if module_id is None and submodule_id is None:
            raise ValidationError(
                'Provide module_id or submodule_id',
                details={'non_field_errors': ['Provide module_id or submodule_id.']},
            )
        return list(
            Permission.objects.visible_to(tenant)
            .filter(module_id=module_id, submodule_id=submodule_id)
            .values_list('id', flat=True)
        )

    @classmethod
    @transaction.atomic
    def bulk_grant(cls, actor, role, module_id=None, submodule_id=None, request=None) -> int:
        """Grant every matching permission to ``role``; return the number matched."""
        RBACService.require_admin(actor)
        RBACService._same_tenant(actor, role)

        permission_ids = cls.matching_permission_ids(actor.tenant_id, module_id, submodule_id)
        RoleGrant.objects.bulk_create(
            [
                RoleGrant(tenant_id=actor.tenant_id, role=role, permission_id=permission_id)
                for permission_id in permission_ids
            ],
            ignore_conflicts=True,
        )

        _audit(actor, 'role_permissions_bulk_granted', role,
               metadata={'module_id': str(module_id) if module_id else None,
                         'submodule_id': str(submodule_id) if submodule_id else None,
                         'matched': len(permission_ids)},
               request=request)
        logger.info(
            f"Bulk granted {len(permission_ids)} permissions to role {role.id}",
            extra={'tenant_id': str(actor.tenant_id), 'role_id': str(role.id)},
        )
        return len(permission_ids)

    @classmethod
    @transaction.atomic
    def bulk_revoke(cls, actor, role, module_id=None, submodule_id=None, request=None) -> int:
        """Revoke every matching permission from ``role``; return the number matched."""
        RBACService.require_admin(actor)
        RBACService._same_tenant(actor, role)

        permission_ids = cls.matching_permission_ids(actor.tenant_id, module_id, submodule_id)
        RoleGrant.objects.for_tenant(actor.tenant_id).filter(
            role=role, permission_id__in=permission_ids,
        ).delete()

        _audit(actor, 'role_permissions_bulk_revoked', role,
               metadata={'module_id': str(module_id) if module_id else None,
                         'submodule_id': str(submodule_id) if submodule_id else None,
                         'matched': len(permission_ids)},
               request=request)
        return len(permission_ids)


class AuthService:
    """
    Service for authentication operations: JWT issuance, decoding and login.
    """

    @classmethod
    def issue_token(cls, user: User) -> str:
        """Mint a JWT for a tenant user."""
        if not user.tenant_id:
            raise AuthenticationError('Only tenant users can obtain a token', code='INVALID_CREDENTIALS')

        now = timezone.now()
        payload = {
            'user_id': str(user.id),
            'tenant_id': str(user.tenant_id),
            'exp': now + timedelta(hours=getattr(settings, 'JWT_EXPIRATION_HOURS', 24)),
            'iat': now,
        }
        return jwt.encode(
            payload,
            settings.JWT_SECRET_KEY,
            algorithm=getattr(settings, 'JWT_ALGORITHM', 'HS256'),
        )

    @classmethod
    def decode_token(cls, token: str) -> Dict[str, Any]:
        """
        Decode and verify a JWT.

        Raises:
            AuthenticationError: TOKEN_EXPIRED or INVALID_TOKEN
        """
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[getattr(settings, 'JWT_ALGORITHM', 'HS256')],
                options={'require': ['exp', 'iat', 'user_id', 'tenant_id']},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError('Token has expired', code='TOKEN_EXPIRED')
        except jwt.InvalidTokenError:
            raise AuthenticationError('Invalid token', code='INVALID_TOKEN')

    @classmethod
    def login(cls, email: str, password: str, request=None) -> Optional[Dict[str, Any]]:
        """
        Authenticate user and return JWT token.

        Returns:
            Dict with user and token, or None if authentication failed
        """
        user = User.objects.active().filter(email__iexact=(email or '').strip()).select_related('tenant').first()
        if user is None:
            # Unknown emails still cost one password hash
            User().set_password(password)
            return None

        if not user.check_password(password):
            return None
        if not user.tenant_id or not user.tenant.is_active:
            return None

        user.last_login = timezone.now()
        user.save(update_fields=['last_login'])

        token = cls.issue_token(user)

        AuditLog.log_action(
            action='user_login',
            user=user,
            tenant=user.tenant,
            target_type='User',
            target_id=user.id,
            request=request,
        )

        return {
            'user': user,
            'token': token,
        }
