"""
Exception hierarchy and the DRF exception handler.

Every error leaving the API has the same body:

    {"error": {"code": ..., "message": ..., "details": ...}, "request_id": ...}
"""
import logging

from django.db import DatabaseError
from django.http import JsonResponse
from django_ratelimit.exceptions import Ratelimited
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

RATE_LIMIT_RETRY_AFTER = 60

# DRF status code -> machine code for exceptions DRF converts itself.
_STATUS_CODES = {
    400: 'VALIDATION_ERROR',
    401: 'UNAUTHENTICATED',
    403: 'FORBIDDEN',
    404: 'NOT_FOUND',
    405: 'METHOD_NOT_ALLOWED',
    409: 'CONFLICT',
    415: 'UNSUPPORTED_MEDIA_TYPE',
}


class WardenException(Exception):
    """Base exception for Warden errors."""
    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message, details=None, code=None):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)


class AuthenticationError(WardenException):
    """Raised when no valid principal can be resolved."""
    status_code = 401
    code = 'UNAUTHENTICATED'


class PermissionDeniedError(WardenException):
    """Raised when the principal is known but the guard denies the action."""
    status_code = 403
    code = 'FORBIDDEN'


class ValidationError(WardenException):
    """Raised when input validation fails."""
    status_code = 400
    code = 'VALIDATION_ERROR'


class InvalidTransition(ValidationError):
    """Raised when a document is asked to leave a terminal state."""
    code = 'INVALID_TRANSITION'


class NotFoundError(WardenException):
    """Raised for missing rows and for rows owned by another tenant."""
    status_code = 404
    code = 'NOT_FOUND'


class ConflictError(WardenException):
    """Raised when a write lost a race against another writer."""
    status_code = 409
    code = 'CONFLICT'


class StorageFailure(WardenException):
    """Raised when the backing store is unavailable."""
    status_code = 503
    code = 'STORAGE_FAILURE'


class ImmutableRecordError(WardenException):
    """Raised when code tries to change an append-only record."""
    code = 'IMMUTABLE_RECORD'


def error_body(code, message, details=None, request_id=None):
    body = {'error': {'code': code, 'message': message}}
    if details:
        body['error']['details'] = details
    if request_id:
        body['request_id'] = request_id
    return body


def client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def _log_rate_limit(request):
    from apps.core.logging import SecurityLogger

    tenant = getattr(request, 'tenant', None)
    SecurityLogger.log_rate_limit_exceeded(
        endpoint=request.path,
        ip_address=client_ip(request),
        tenant_id=str(tenant.id) if tenant else None,
    )


def ratelimit_view(request, exception):
    """
    View used by django-ratelimit when a limit is hit outside DRF.

    Returns 429 with a Retry-After header instead of the default 403.
    """
    _log_rate_limit(request)
    response = JsonResponse(
        error_body(
            'RATE_LIMIT_EXCEEDED',
            'Rate limit exceeded. Please try again later.',
            request_id=getattr(request, 'request_id', None),
        ),
        status=429,
    )
    response['Retry-After'] = str(RATE_LIMIT_RETRY_AFTER)
    return response


def custom_exception_handler(exc, context):
    """
    Map every exception raised inside a DRF view to the Warden error body.

    Storage errors are reported as a generic failure; by the time the
    handler runs the surrounding atomic block has already rolled back.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None
    log_extra = {
        'request_id': request_id,
        'path': request.path if request else None,
        'method': request.method if request else None,
        'view': context['view'].__class__.__name__ if context.get('view') else None,
    }

    if isinstance(exc, Ratelimited):
        _log_rate_limit(request)
        response = Response(
            error_body('RATE_LIMIT_EXCEEDED', 'Rate limit exceeded. Please try again later.',
                       request_id=request_id),
            status=status.HTTP_429_TOO_MANY_REQUESTS,
        )
        response['Retry-After'] = str(RATE_LIMIT_RETRY_AFTER)
        return response

    if isinstance(exc, DatabaseError):
        exc = StorageFailure('The service is temporarily unavailable')

    if isinstance(exc, WardenException):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"API error {exc.code}: {exc.message}",
            extra={**log_extra, 'error_code': exc.code},
            exc_info=exc.status_code >= 500,
        )
        return Response(
            error_body(exc.code, exc.message, exc.details, request_id),
            status=exc.status_code,
        )

    response = exception_handler(exc, context)

    if response is None:
        logger.error(f"Unhandled API exception: {exc.__class__.__name__}", extra=log_extra, exc_info=True)
        return Response(
            error_body('INTERNAL_ERROR', 'An unexpected error occurred', request_id=request_id),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    logger.warning(f"API exception: {exc.__class__.__name__}", extra=log_extra)

    code = _STATUS_CODES.get(response.status_code)
    if code is None:
        code = str(getattr(exc, 'default_code', 'error')).upper()

    if response.status_code == status.HTTP_400_BAD_REQUEST:
        message = 'Invalid request data'
        details = response.data
    else:
        data = response.data if isinstance(response.data, dict) else {}
        message = str(data.get('detail', exc))
        details = None

    response.data = error_body(code, message, details, request_id)
    return response
