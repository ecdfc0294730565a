"""
Email authentication backend for the Django admin.

API clients authenticate with bearer tokens through PrincipalMiddleware;
this backend only serves session logins.
"""
from django.contrib.auth import get_user_model
from django.contrib.auth.backends import BaseBackend

User = get_user_model()


class EmailAuthBackend(BaseBackend):
    """Authenticate an active user by email (case-insensitive) and password."""

    def authenticate(self, request, username=None, password=None, **kwargs):
        # The admin login form passes the email as ``username``
        email = username or kwargs.get('email')
        if not email or not password:
            return None

        user = User.objects.by_email(email)
        if user is None:
            # Unknown emails still cost one password hash
            User().set_password(password)
            return None

        if user.is_active and user.check_password(password):
            return user
        return None

    def get_user(self, user_id):
        try:
            return User.objects.active().get(pk=user_id)
        except User.DoesNotExist:
            return None
