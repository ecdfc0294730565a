"""
Principal resolution.

A principal is what the rest of Warden trusts about the caller: the
tenant, the user and the tenant-scoped admin flag. It is derived from a
bearer token and the stored user row, never from a request body.
"""
from dataclasses import dataclass
from uuid import UUID

from django.core.exceptions import ValidationError as DjangoValidationError

from apps.core.exceptions import AuthenticationError


@dataclass(frozen=True)
class Principal:
    tenant_id: UUID
    user_id: UUID
    is_super_admin: bool

    @classmethod
    def for_user(cls, user):
        return cls(
            tenant_id=user.tenant_id,
            user_id=user.id,
            is_super_admin=bool(user.is_super_admin),
        )


def resolve_principal(token):
    """
    Resolve a bearer token to ``(principal, user)``.

    Raises AuthenticationError with code TOKEN_EXPIRED or INVALID_TOKEN.
    The tenant always comes from the stored user; a token whose tenant
    claim disagrees with it is rejected.
    """
    from apps.rbac.models import User
    from apps.rbac.services import AuthService

    payload = AuthService.decode_token(token)

    try:
        user = User.objects.select_related('tenant').get(
            id=payload.get('user_id'),
            is_active=True,
        )
    except (User.DoesNotExist, DjangoValidationError, ValueError, TypeError) as exc:
        raise AuthenticationError('Invalid token', code='INVALID_TOKEN') from exc

    if str(user.tenant_id) != str(payload.get('tenant_id')):
        raise AuthenticationError('Invalid token', code='INVALID_TOKEN')

    if not user.tenant.is_active:
        raise AuthenticationError('Company is inactive', code='TENANT_INACTIVE')

    return Principal.for_user(user), user
