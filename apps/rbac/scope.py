"""
Ownership scope of catalog rows.

Modules, submodules and permissions are either owned by one tenant or
global. The database stores this as a nullable ``tenant_id``; everything
above the ORM works with the two-case Scope value instead, so the
null-aware comparisons live in exactly one place.
"""
from dataclasses import dataclass
from typing import Union
from uuid import UUID

from django.db.models import Q


@dataclass(frozen=True)
class GlobalScope:
    """Shared by every tenant; owned and mutated by none."""

    is_global = True
    tenant_id = None

    def visible_to(self, tenant_id) -> bool:
        return True

    @property
    def label(self) -> str:
        return 'global'


@dataclass(frozen=True)
class TenantScope:
    """Owned by, and visible to, exactly one tenant."""

    tenant_id: UUID
    is_global = False

    def visible_to(self, tenant_id) -> bool:
        return str(self.tenant_id) == str(tenant_id)

    @property
    def label(self) -> str:
        return 'tenant'


Scope = Union[GlobalScope, TenantScope]


def scope_of(row) -> Scope:
    """Map a row's stored ``tenant_id`` to its Scope."""
    if row.tenant_id is None:
        return GlobalScope()
    return TenantScope(row.tenant_id)


def visibility_q(tenant) -> Q:
    """ORM predicate for rows visible to ``tenant``: its own rows or global ones."""
    tenant_id = getattr(tenant, 'id', tenant)
    return Q(tenant_id=tenant_id) | Q(tenant__isnull=True)
