"""
Authentication REST API views.

Implements endpoints for:
- Login (JWT issuance)
- Current user profile
"""
import logging

from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema, OpenApiExample
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import RATE_LIMIT_RETRY_AFTER, client_ip, error_body
from apps.core.logging import SecurityLogger
from apps.rbac.serializers import LoginSerializer, UserSerializer
from apps.rbac.services import AuthService
from apps.tenants.principal import Principal

logger = logging.getLogger(__name__)


@extend_schema(
    tags=['Authentication'],
    summary='Login',
    description='''
Authenticate with email and password and receive a JWT.

Send the token as `Authorization: Bearer <token>` on every other request.

**No authentication required** - this is a public endpoint.

**Rate limit**: 5 requests/minute per IP
    ''',
    request=LoginSerializer,
    responses={
        200: OpenApiTypes.OBJECT,
        400: OpenApiTypes.OBJECT,
        401: OpenApiTypes.OBJECT,
        429: OpenApiTypes.OBJECT,
    },
    examples=[
        OpenApiExample(
            'Login Request',
            value={'email': 'admin@acme.example', 'password': 'SecurePass123!'},
            request_only=True
        ),
        OpenApiExample(
            'Invalid Credentials',
            value={'error': {'code': 'INVALID_CREDENTIALS', 'message': 'Invalid email or password'}},
            response_only=True,
            status_codes=['401']
        ),
    ]
)
@method_decorator(ratelimit(key='ip', rate='5/m', method='POST', block=False), name='dispatch')
class LoginView(APIView):
    """
    POST /v1/auth/login

    Authenticate user and return JWT token.

    No authentication required.
    Rate limited to 5 requests per minute per IP address.
    """
    authentication_classes = []
    permission_classes = []

    def post(self, request):
        ip_address = client_ip(request)

        if getattr(request, 'limited', False):
            SecurityLogger.log_rate_limit_exceeded(endpoint=request.path, ip_address=ip_address)
            response = Response(
                error_body(
                    'RATE_LIMIT_EXCEEDED',
                    'Rate limit exceeded. Please try again later.',
                    request_id=getattr(request, 'request_id', None),
                ),
                status=status.HTTP_429_TOO_MANY_REQUESTS
            )
            response['Retry-After'] = str(RATE_LIMIT_RETRY_AFTER)
            return response

        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = AuthService.login(
            email=serializer.validated_data['email'],
            password=serializer.validated_data['password'],
            request=request,
        )

        if not result:
            SecurityLogger.log_failed_login(
                email=serializer.validated_data['email'],
                ip_address=ip_address,
                reason='Invalid credentials'
            )
            return Response(
                error_body(
                    'INVALID_CREDENTIALS',
                    'Invalid email or password',
                    request_id=getattr(request, 'request_id', None),
                ),
                status=status.HTTP_401_UNAUTHORIZED
            )

        user = result['user']
        logger.info("User logged in", extra={'user_id': str(user.id), 'tenant_id': str(user.tenant_id)})

        return Response({
            'token': result['token'],
            'user': UserSerializer(user).data,
        })


@extend_schema(
    tags=['Authentication'],
    summary='Current user',
    description='''
The authenticated user with the principal flags and role names.

`primary_role` is the most recently assigned role and is for display only.
    ''',
    responses={200: OpenApiTypes.OBJECT, 401: OpenApiTypes.OBJECT},
)
class MeView(APIView):
    """
    GET /v1/auth/me
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        principal = getattr(request._request, 'principal', None) or Principal.for_user(request.user)
        return Response({
            'user': UserSerializer(request.user).data,
            'tenant': {
                'id': str(request.user.tenant_id),
                'name': request.user.tenant.name,
            },
            'principal': {
                'tenant_id': str(principal.tenant_id),
                'user_id': str(principal.user_id),
                'is_super_admin': principal.is_super_admin,
            },
        })
