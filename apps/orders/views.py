"""
Sales order API views.
"""
import logging
from functools import partial

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.pagination import paginated_response
from apps.core.permissions import (
    HasTenantPermission, TenantObjectPermission, get_tenant_object, requires_permissions,
)
from apps.orders.models import OrderStatus, SalesOrder
from apps.orders.serializers import (
    OrderStatusChangeSerializer, OrderStatusHistorySerializer,
    SalesOrderCreateSerializer, SalesOrderSerializer,
)
from apps.orders.workflow import OrderService, OrderWorkflowService, capability

logger = logging.getLogger(__name__)


class OrderListView(APIView):
    """
    List and create orders.

    GET /v1/orders - List orders with filtering
    POST /v1/orders - Create a draft order
    """
    permission_classes = [HasTenantPermission]

    @extend_schema(
        tags=['Orders'],
        summary="List orders",
        description="Paginated list of the caller's company orders",
        parameters=[
            OpenApiParameter(
                name='status',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description='Filter by order status',
                enum=OrderStatus.values
            ),
        ],
        responses={200: SalesOrderSerializer(many=True)},
    )
    def get(self, request):
        orders = SalesOrder.objects.for_tenant(request.user.tenant_id).select_related('created_by')

        status_filter = request.query_params.get('status')
        if status_filter:
            orders = orders.by_status(status_filter)

        return paginated_response(request, orders, SalesOrderSerializer)

    @extend_schema(
        tags=['Orders'],
        summary="Create order",
        description="Create a draft order. Requires the order creation permission.",
        request=SalesOrderCreateSerializer,
        responses={201: SalesOrderSerializer, 400: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT},
    )
    @requires_permissions(partial(capability, 'create'))
    def post(self, request):
        serializer = SalesOrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.create_order(request.user, request=request, **serializer.validated_data)
        logger.info(
            f"Order created: {order.reference}",
            extra={'tenant_id': str(request.user.tenant_id), 'order_id': str(order.id)},
        )
        return Response(SalesOrderSerializer(order).data, status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    """
    GET /v1/orders/{order_id}
    """
    permission_classes = [IsAuthenticated, TenantObjectPermission]

    @extend_schema(
        tags=['Orders'],
        summary="Get order",
        responses={200: SalesOrderSerializer, 404: OpenApiTypes.OBJECT},
    )
    def get(self, request, order_id):
        order = get_tenant_object(
            self, request, SalesOrder.objects.select_related('created_by'), 'Order', id=order_id,
        )
        return Response(SalesOrderSerializer(order).data)


class OrderStatusView(APIView):
    """
    POST /v1/orders/{order_id}/status

    Request a status transition. The workflow decides whether the caller
    may make it.
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=['Orders'],
        summary="Change order status",
        description='''
Move the order to another status.

- `draft -> submitted`: the order's creator or the submit permission
- `submitted -> processed`: the process permission
- `processed -> completed`: the complete permission
- A tenant administrator may move a draft or submitted order to any status.
- Completed and cancelled orders never change.

Send `expected_status` to make the change conditional on the current
status; a mismatch answers 409. `new_status` is accepted as an alias of
`status`.
        ''',
        request=OrderStatusChangeSerializer,
        responses={
            200: SalesOrderSerializer,
            400: OpenApiTypes.OBJECT,
            403: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
            409: OpenApiTypes.OBJECT,
        },
        examples=[
            OpenApiExample(
                'Complete Order',
                value={'status': 'completed', 'expected_status': 'processed'},
                request_only=True,
            ),
        ],
    )
    def post(self, request, order_id):
        serializer = OrderStatusChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order, history = OrderWorkflowService.transition(
            request.user,
            order_id,
            serializer.validated_data['status'],
            expected_status=serializer.validated_data['expected_status'],
            request=request,
        )

        data = SalesOrderSerializer(order).data
        data['history_entry'] = OrderStatusHistorySerializer(history).data
        return Response(data)


class OrderHistoryView(APIView):
    """
    GET /v1/orders/{order_id}/history
    """
    permission_classes = [IsAuthenticated, TenantObjectPermission]

    @extend_schema(
        tags=['Orders'],
        summary="Order status history",
        responses={200: OrderStatusHistorySerializer(many=True), 404: OpenApiTypes.OBJECT},
    )
    def get(self, request, order_id):
        order = get_tenant_object(self, request, SalesOrder.objects.all(), 'Order', id=order_id)
        history = order.status_history.select_related('changed_by').order_by('created_at')
        return paginated_response(request, history, OrderStatusHistorySerializer)
