"""
Log sanitization to prevent credential leakage.

Redacts bearer tokens, raw JWTs, passwords, secrets and database URLs
with embedded passwords from formatted log lines.
"""
import re
import logging


SANITIZE_PATTERNS = [
    (re.compile(r'Bearer\s+([a-zA-Z0-9_\-\.]{20,})', re.IGNORECASE), r'Bearer [REDACTED]'),
    (re.compile(r'eyJ[a-zA-Z0-9_\-]+\.eyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+'), r'[REDACTED_JWT]'),
    (re.compile(r'password["\s:=]+([^\s,\]}"\']+)', re.IGNORECASE), r'password=[REDACTED]'),
    (re.compile(r'secret["\s:=]+([a-zA-Z0-9_\-]{16,})', re.IGNORECASE), r'secret=[REDACTED]'),
    (re.compile(r'token["\s:=]+([a-zA-Z0-9_\-\.]{32,})', re.IGNORECASE), r'token=[REDACTED]'),
    (re.compile(r'Authorization["\s:]+([^\s,\]}"\']+)', re.IGNORECASE), r'Authorization: [REDACTED]'),
    (re.compile(r'://([^:/@]+):([^@]+)@'), r'://\1:[REDACTED]@'),
]


def sanitize(text):
    """Apply every redaction pattern to ``text``."""
    for pattern, replacement in SANITIZE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SanitizingFormatter(logging.Formatter):
    """Formatter that redacts credentials from the final log line."""

    def format(self, record):
        return sanitize(super().format(record))


class SanitizingFilter(logging.Filter):
    """
    Filter that redacts credentials from the message and its args.

    Runs before formatting, so it also protects handlers using a plain
    formatter.
    """

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = sanitize(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                sanitize(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True
