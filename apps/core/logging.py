"""
Structured JSON logging, PII masking and security event logging.
"""
import json
import logging
import re
import traceback
from datetime import datetime, timezone as dt_timezone

import sentry_sdk
from django.utils import timezone


class PIIMasker:
    """
    Utility class to mask sensitive data before it reaches a log sink.
    """

    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    SECRET_PATTERN = re.compile(
        r'(token|secret|password|authorization)["\']?\s*[:=]\s*["\']?([^"\'\s,}]+)',
        re.IGNORECASE,
    )

    SENSITIVE_FIELDS = {
        'password', 'password_hash', 'new_password',
        'token', 'access_token', 'authorization',
        'secret', 'secret_key', 'jwt_secret_key',
    }

    @classmethod
    def mask_email(cls, text):
        """Keep the first character of the local part and the domain."""
        if not isinstance(text, str):
            return text

        def mask_match(match):
            username, _, domain = match.group(0).partition('@')
            if len(username) > 1:
                username = username[0] + '*' * (len(username) - 1)
            return f"{username}@{domain}"

        return cls.EMAIL_PATTERN.sub(mask_match, text)

    @classmethod
    def mask_secrets(cls, text):
        if not isinstance(text, str):
            return text
        return cls.SECRET_PATTERN.sub(r'\1: ********', text)

    @classmethod
    def mask_text(cls, text):
        """Apply all masking patterns to text."""
        if not isinstance(text, str):
            return text
        return cls.mask_secrets(cls.mask_email(text))

    @classmethod
    def mask_dict(cls, data):
        """Recursively mask sensitive values in a dictionary."""
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            if key.lower() in cls.SENSITIVE_FIELDS:
                masked[key] = '********' if value else value
            elif isinstance(value, dict):
                masked[key] = cls.mask_dict(value)
            elif isinstance(value, list):
                masked[key] = [
                    cls.mask_dict(item) if isinstance(item, dict) else cls.mask_text(item)
                    for item in value
                ]
            else:
                masked[key] = cls.mask_text(value)
        return masked


# LogRecord attributes that are not user supplied ``extra`` fields.
_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'message', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'request_id', 'tenant_id',
}


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.

    Includes request_id and tenant_id when the request context filter has
    attached them, and masks PII in the message and in extra fields.
    """

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(dt_timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': PIIMasker.mask_text(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if getattr(record, 'request_id', None):
            log_data['request_id'] = record.request_id
        if getattr(record, 'tenant_id', None):
            log_data['tenant_id'] = str(record.tenant_id)

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': PIIMasker.mask_text(str(record.exc_info[1])),
                'traceback': [
                    PIIMasker.mask_text(line)
                    for line in traceback.format_exception(*record.exc_info)
                ],
            }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            if isinstance(value, dict):
                value = PIIMasker.mask_dict(value)
            elif isinstance(value, str):
                value = PIIMasker.mask_text(value)
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = PIIMasker.mask_text(str(value))

        return json.dumps(log_data)


class SecurityLogger:
    """
    Centralized logging for security relevant events.

    Events go to the ``security`` logger with structured context. Critical
    events are also sent to Sentry for alerting.
    """

    CRITICAL_EVENTS = {
        'cross_tenant_access',
        'suspicious_activity',
    }

    @staticmethod
    def log_event(event_type: str, level: str = 'warning', **context):
        """
        Log a security event with structured data.

        Example:
            >>> SecurityLogger.log_event('failed_login', ip_address='10.0.0.1')
        """
        logger = logging.getLogger('security')

        log_data = {
            'event_type': event_type,
            'timestamp': timezone.now().isoformat(),
        }
        log_data.update(context)
        log_data = PIIMasker.mask_dict(log_data)

        log_method = getattr(logger, level, logger.warning)
        log_method(f"Security event: {event_type}", extra={'security': log_data})

        if event_type in SecurityLogger.CRITICAL_EVENTS:
            sentry_sdk.capture_message(
                f"Critical security event: {event_type}",
                level='error',
            )

    @staticmethod
    def log_failed_login(email: str, ip_address: str, reason: str = None):
        SecurityLogger.log_event(
            'failed_login',
            level='warning',
            email=email,
            ip_address=ip_address,
            reason=reason or 'invalid_credentials',
        )

    @staticmethod
    def log_permission_denied(user, tenant, required, path: str = None):
        """Log an authorization guard rejecting a resolved principal."""
        SecurityLogger.log_event(
            'permission_denied',
            level='warning',
            user_id=str(getattr(user, 'id', '')) or None,
            tenant_id=str(getattr(tenant, 'id', '')) or None,
            required=sorted(required) if isinstance(required, (set, frozenset)) else required,
            path=path,
        )

    @staticmethod
    def log_cross_tenant_access(user, tenant, object_type: str, object_id, object_tenant_id):
        SecurityLogger.log_event(
            'cross_tenant_access',
            level='error',
            user_id=str(getattr(user, 'id', '')) or None,
            tenant_id=str(getattr(tenant, 'id', '')) or None,
            object_type=object_type,
            object_id=str(object_id),
            object_tenant_id=str(object_tenant_id),
        )

    @staticmethod
    def log_rate_limit_exceeded(endpoint: str, ip_address: str, tenant_id: str = None):
        SecurityLogger.log_event(
            'rate_limit_exceeded',
            level='warning',
            endpoint=endpoint,
            ip_address=ip_address,
            tenant_id=tenant_id,
        )
