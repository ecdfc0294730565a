"""
URL routing for authentication endpoints.
"""
from django.urls import path

from apps.rbac.views_auth import LoginView, MeView

app_name = 'auth'

urlpatterns = [
    path('login', LoginView.as_view(), name='login'),
    path('me', MeView.as_view(), name='me'),
]
