"""
Principal middleware for multi-tenant isolation.

Resolves the bearer token on every non-public request to a principal and
attaches it, the user and the tenant to the request. Requests without a
valid principal are rejected here, before any view runs a query.
"""
import logging

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

from apps.core.exceptions import AuthenticationError, error_body
from apps.core.middleware import set_request_context
from .principal import resolve_principal

logger = logging.getLogger(__name__)


class PrincipalMiddleware(MiddlewareMixin):
    """
    Authenticate ``Authorization: Bearer <jwt>`` requests.

    On success sets:
    - request.principal: Principal(tenant_id, user_id, is_super_admin)
    - request.user: the active rbac User
    - request.tenant: the user's Company
    """

    PUBLIC_PATHS = [
        '/v1/auth/login',
        '/v1/health',
        '/schema',
        '/admin/',
    ]

    def process_request(self, request):
        request.principal = None
        request.tenant = None

        if self._is_public_path(request.path):
            return None

        header = request.headers.get('Authorization', '')
        scheme, _, token = header.partition(' ')
        if scheme.lower() != 'bearer' or not token.strip():
            return self._error_response(
                request,
                'MISSING_CREDENTIALS',
                'Authorization: Bearer <token> header is required',
                status=401,
            )

        try:
            principal, user = resolve_principal(token.strip())
        except AuthenticationError as exc:
            logger.info(
                f"Rejected bearer token: {exc.code}",
                extra={'request_id': getattr(request, 'request_id', None), 'path': request.path},
            )
            return self._error_response(request, exc.code, exc.message, status=401)

        request.principal = principal
        request.user = user
        request.tenant = user.tenant
        set_request_context(tenant_id=str(principal.tenant_id))

        logger.debug(
            f"Principal resolved: user {principal.user_id} @ tenant {principal.tenant_id}",
            extra={'request_id': getattr(request, 'request_id', None)},
        )
        return None

    def _is_public_path(self, path):
        """Check if path is public and doesn't require authentication."""
        return any(path.startswith(public_path) for public_path in self.PUBLIC_PATHS)

    def _error_response(self, request, code, message, status=400, details=None):
        """Generate standardized error response."""
        return JsonResponse(
            error_body(code, message, details, getattr(request, 'request_id', None)),
            status=status,
        )
