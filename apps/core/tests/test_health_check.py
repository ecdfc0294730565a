"""
Tests for the health check endpoint.
"""
from unittest.mock import patch

import pytest


@pytest.mark.django_db
class TestHealthCheck:
    """Test the dependency health endpoint."""

    def test_healthy_without_authentication(self, api_client):
        """Test that the health check needs no credentials."""
        response = api_client.get('/v1/health')

        assert response.status_code == 200
        assert response.data == {'status': 'healthy', 'database': 'healthy', 'cache': 'healthy'}

    def test_echoes_request_id(self, api_client):
        """Test that a caller-supplied request id is echoed back."""
        response = api_client.get('/v1/health', HTTP_X_REQUEST_ID='trace-42')

        assert response['X-Request-ID'] == 'trace-42'

    def test_generates_request_id(self, api_client):
        """Test that a request id is generated when none is sent."""
        response = api_client.get('/v1/health')

        assert response['X-Request-ID']

    @patch('django.core.cache.backends.locmem.LocMemCache.set', side_effect=ConnectionError('redis down'))
    def test_cache_failure_is_503(self, _cache_set, api_client):
        """Test that an unreachable cache turns the answer into a 503."""
        response = api_client.get('/v1/health')

        assert response.status_code == 503
        assert response.data['cache'] == 'unhealthy'
        assert response.data['database'] == 'healthy'
