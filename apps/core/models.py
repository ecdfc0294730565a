"""
Core models for Warden.

Provides BaseModel with UUID primary keys and timestamp fields, plus the
tenant-aware queryset that every tenant-owned table builds its manager on.
"""
import uuid
from django.db import models


class TenantQuerySet(models.QuerySet):
    """QuerySet helpers for rows owned by exactly one tenant."""

    def for_tenant(self, tenant):
        """Restrict to rows owned by ``tenant`` (a Company or its id)."""
        tenant_id = getattr(tenant, 'id', tenant)
        return self.filter(tenant_id=tenant_id)


class BaseModel(models.Model):
    """
    Abstract base model with UUID primary key and timestamps.

    Rows in Warden are never soft deleted: a grant, assignment or override
    exists or it does not, so deletes are real deletes.
    """
    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier"
    )

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when the record was created"
    )

    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when the record was last updated"
    )

    class Meta:
        abstract = True
        ordering = ['-created_at']
