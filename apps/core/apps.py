import logging
import sys

from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

_GENERATE_HINT = (
    'Generate a strong key with: '
    'python -c "import secrets; print(secrets.token_urlsafe(32))"'
)


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Validate security critical configuration when a server starts.

        Only runserver and gunicorn validate; other management commands skip it.
        """
        if 'gunicorn' not in sys.argv[0] and (len(sys.argv) < 2 or sys.argv[1] != 'runserver'):
            return

        validate_jwt_secret(
            getattr(settings, 'JWT_SECRET_KEY', None),
            getattr(settings, 'SECRET_KEY', None),
        )
        logger.info("Startup security validation passed")


def validate_jwt_secret(jwt_secret, secret_key):
    """Raise ImproperlyConfigured unless ``jwt_secret`` is fit for signing tokens."""
    if not jwt_secret:
        raise ImproperlyConfigured(f"JWT_SECRET_KEY must be set. {_GENERATE_HINT}")

    if len(jwt_secret) < 32:
        raise ImproperlyConfigured(
            f"JWT_SECRET_KEY must be at least 32 characters long "
            f"(current length: {len(jwt_secret)}). {_GENERATE_HINT}"
        )

    if jwt_secret == secret_key:
        raise ImproperlyConfigured(
            f"JWT_SECRET_KEY must be different from SECRET_KEY. {_GENERATE_HINT}"
        )

    unique_chars = len(set(jwt_secret))
    if unique_chars < 16:
        raise ImproperlyConfigured(
            f"JWT_SECRET_KEY has insufficient entropy: {unique_chars} unique "
            f"characters, need at least 16. {_GENERATE_HINT}"
        )
