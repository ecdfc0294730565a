"""
Django admin configuration for orders app.
"""
from django.contrib import admin

from .models import OrderStatusHistory, SalesOrder


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    fields = ['from_status', 'to_status', 'changed_by', 'description', 'created_at']
    readonly_fields = fields
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(SalesOrder)
class SalesOrderAdmin(admin.ModelAdmin):
    """Status is read-only here; it only changes through the workflow."""
    list_display = ['reference', 'tenant', 'status', 'total_amount', 'currency', 'created_at']
    list_filter = ['status', 'tenant']
    search_fields = ['reference', 'supplier_name']
    readonly_fields = ['id', 'status', 'created_by', 'created_at', 'updated_at']
    inlines = [OrderStatusHistoryInline]
