"""
Custom DRF authentication classes.
"""
from rest_framework.authentication import BaseAuthentication


class MiddlewareAuthentication(BaseAuthentication):
    """
    DRF authentication class that uses the user set by PrincipalMiddleware.

    The middleware verifies the bearer token and loads the user; this class
    simply hands that user to DRF.
    """

    def authenticate(self, request):
        django_request = request._request
        user = getattr(django_request, 'user', None)

        if user is not None and user.is_authenticated and getattr(django_request, 'principal', None):
            return (user, None)

        return None

    def authenticate_header(self, request):
        # Keeps DRF answering 401 rather than 403 for anonymous requests.
        return 'Bearer realm="api"'
