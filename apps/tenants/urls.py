"""
Tenant directory URLs.
"""
from django.urls import path

from apps.tenants.views import CurrentCompanyView

app_name = 'tenants'

urlpatterns = [
    path('company', CurrentCompanyView.as_view(), name='current-company'),
]
