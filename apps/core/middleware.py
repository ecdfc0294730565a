"""
Core middleware for request tracing.
"""
import logging
import threading
import uuid

from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)

_request_context = threading.local()


def set_request_context(**values):
    for key, value in values.items():
        setattr(_request_context, key, value)


def clear_request_context():
    _request_context.__dict__.clear()


def get_request_context(key, default=None):
    return getattr(_request_context, key, default)


class RequestIDMiddleware(MiddlewareMixin):
    """
    Inject a unique request_id into each request for tracing.

    The id is taken from ``X-Request-ID`` when the caller sends one, made
    available to log records through RequestContextFilter, and echoed back
    in the response headers.
    """

    def process_request(self, request):
        request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        request.request_id = request_id
        clear_request_context()
        set_request_context(request_id=request_id)

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id
        clear_request_context()
        return response


class RequestContextFilter(logging.Filter):
    """
    Add request_id and tenant_id to log records from the request context.
    """

    def filter(self, record):
        if not getattr(record, 'request_id', None):
            record.request_id = get_request_context('request_id')
        if not getattr(record, 'tenant_id', None):
            record.tenant_id = get_request_context('tenant_id')
        return True
