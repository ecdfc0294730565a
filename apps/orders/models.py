"""
Sales order models.

Implements the business document whose status is driven by the workflow:
- SalesOrder: tenant-scoped document with a policy-gated status field
- OrderStatusHistory: append-only record of every status change
"""
from django.db import models

from apps.core.exceptions import ImmutableRecordError
from apps.core.models import BaseModel, TenantQuerySet


class OrderStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    SUBMITTED = 'submitted', 'Submitted'
    PROCESSED = 'processed', 'Processed'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


class SalesOrderQuerySet(TenantQuerySet):
    """QuerySet for sales orders with tenant scoping."""

    def by_status(self, status):
        return self.filter(status=status)


class SalesOrder(BaseModel):
    """
    A sales order.

    ``status`` is only ever changed by the workflow service, through a
    conditional update that checks the status it expects to replace.
    """

    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        related_name='sales_orders',
    )
    reference = models.CharField(
        max_length=50,
        help_text="Human-readable order reference, unique per company"
    )
    supplier_name = models.CharField(max_length=255, blank=True)
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
    )
    currency = models.CharField(max_length=3, default='USD')
    notes = models.TextField(blank=True)

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.DRAFT,
        db_index=True,
    )
    created_by = models.ForeignKey(
        'rbac.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_orders',
    )

    objects = SalesOrderQuerySet.as_manager()

    class Meta:
        db_table = 'sales_orders'
        ordering = ['-created_at']
        unique_together = [('tenant', 'reference')]
        indexes = [
            models.Index(fields=['tenant', 'status'], name='sales_orders_tenant_status_idx'),
        ]

    def __str__(self):
        return f"{self.reference} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES


class OrderStatusHistory(BaseModel):
    """
    One status change of a SalesOrder.

    Rows are written once by the workflow and never changed or removed.
    """

    order = models.ForeignKey(
        SalesOrder,
        on_delete=models.CASCADE,
        related_name='status_history',
    )
    tenant = models.ForeignKey(
        'tenants.Company',
        on_delete=models.CASCADE,
        related_name='+',
    )
    from_status = models.CharField(max_length=20, choices=OrderStatus.choices)
    to_status = models.CharField(max_length=20, choices=OrderStatus.choices)
    changed_by = models.ForeignKey(
        'rbac.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    description = models.CharField(max_length=255)

    objects = TenantQuerySet.as_manager()

    class Meta:
        db_table = 'sales_order_status_history'
        ordering = ['created_at']
        verbose_name_plural = 'order status history'
        indexes = [
            models.Index(fields=['order', 'created_at'], name='order_history_order_idx'),
        ]

    def __str__(self):
        return self.description

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError('Order status history cannot be changed')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError('Order status history cannot be deleted')
