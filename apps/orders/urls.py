"""
URL configuration for orders API endpoints.
"""
from django.urls import path

from apps.orders.views import OrderDetailView, OrderHistoryView, OrderListView, OrderStatusView

app_name = 'orders'

urlpatterns = [
    path('', OrderListView.as_view(), name='order-list'),
    path('<uuid:order_id>', OrderDetailView.as_view(), name='order-detail'),
    path('<uuid:order_id>/status', OrderStatusView.as_view(), name='order-status'),
    path('<uuid:order_id>/history', OrderHistoryView.as_view(), name='order-history'),
]
