"""
Tests for startup validation of the JWT signing secret.
"""
import pytest
from django.core.exceptions import ImproperlyConfigured

from apps.core.apps import validate_jwt_secret

STRONG = 'k9F2mQ7xL4vB8nR1tY6wE3sA0dG5hJcZ'


class TestValidateJwtSecret:
    """Test the JWT secret strength check."""

    def test_strong_secret_passes(self):
        """Test that a long random secret is accepted."""
        validate_jwt_secret(STRONG, 'django-secret')

    @pytest.mark.parametrize('secret', [None, ''])
    def test_missing_secret(self, secret):
        """Test that an empty secret is refused."""
        with pytest.raises(ImproperlyConfigured, match='must be set'):
            validate_jwt_secret(secret, 'django-secret')

    def test_short_secret(self):
        """Test that a secret under 32 characters is refused."""
        with pytest.raises(ImproperlyConfigured, match='at least 32'):
            validate_jwt_secret('short-secret', 'django-secret')

    def test_same_as_secret_key(self):
        """Test that reusing SECRET_KEY is refused."""
        with pytest.raises(ImproperlyConfigured, match='different from SECRET_KEY'):
            validate_jwt_secret(STRONG, STRONG)

    def test_low_entropy(self):
        """Test that a repetitive secret is refused."""
        with pytest.raises(ImproperlyConfigured, match='insufficient entropy'):
            validate_jwt_secret('ab' * 20, 'django-secret')
