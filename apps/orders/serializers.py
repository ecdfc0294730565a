"""
Serializers for sales order API endpoints.
"""
from rest_framework import serializers

from apps.core.serializers import AliasedFieldsMixin
from apps.orders.models import OrderStatus, OrderStatusHistory, SalesOrder


class SalesOrderSerializer(serializers.ModelSerializer):
    """Serializer for SalesOrder."""

    created_by_email = serializers.EmailField(source='created_by.email', read_only=True, default=None)
    is_terminal = serializers.BooleanField(read_only=True)

    class Meta:
        model = SalesOrder
        fields = [
            'id', 'reference', 'supplier_name', 'total_amount', 'currency', 'notes',
            'status', 'is_terminal', 'created_by_email', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class SalesOrderCreateSerializer(serializers.Serializer):
    """Serializer for creating a draft order."""

    reference = serializers.CharField(required=True, max_length=50)
    supplier_name = serializers.CharField(required=False, allow_blank=True, max_length=255, default='')
    total_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=0,
        required=False,
        default=0
    )
    currency = serializers.CharField(required=False, min_length=3, max_length=3, default='USD')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class OrderStatusChangeSerializer(AliasedFieldsMixin, serializers.Serializer):
    """
    Request a status transition.

    ``new_status`` is accepted as an alias of ``status``. When
    ``expected_status`` is sent the transition only happens if the order
    is still in that status.
    """

    field_aliases = {'new_status': 'status'}

    status = serializers.ChoiceField(choices=OrderStatus.choices, required=True)
    expected_status = serializers.ChoiceField(choices=OrderStatus.choices, required=False, allow_null=True, default=None)


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    """Serializer for OrderStatusHistory."""

    changed_by_email = serializers.EmailField(source='changed_by.email', read_only=True, default=None)

    class Meta:
        model = OrderStatusHistory
        fields = ['id', 'from_status', 'to_status', 'description', 'changed_by_email', 'created_at']
        read_only_fields = fields
