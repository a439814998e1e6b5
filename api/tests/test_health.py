# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for health and status endpoints.
"""

import pytest
from unittest.mock import Mock, patch

from services.health import HealthCheckService


class TestHealthEndpoint:
    """Test /api/healthz."""

    def test_healthy(self, client):
        response = client.get('/api/healthz')

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["service"] == "beneficiary-portal-api"
        assert data["dependencies"]["mongodb"]["status"] == "healthy"
        assert data["dependencies"]["redis"]["status"] == "healthy"
        assert data["_links"]["self"]["href"] == "http://localhost:5000/api/healthz"

    def test_store_down_degrades(self, client, store):
        with patch.object(store, 'health_check', return_value={"status": "unhealthy", "error": "timed out"}):
            response = client.get('/api/healthz')

        assert response.status_code == 200
        assert response.get_json()["status"] == "degraded"

    def test_everything_down_is_unavailable(self, client, store, redis_service):
        with patch.object(store, 'health_check', return_value={"status": "unhealthy", "error": "timed out"}), \
                patch.object(redis_service, 'health_check', return_value={"status": "unhealthy", "message": "timeout"}):
            response = client.get('/api/healthz')

        assert response.status_code == 503
        assert response.get_json()["status"] == "unhealthy"


class TestStatusEndpoint:
    """Test /api/status."""

    def test_status(self, client):
        response = client.get('/api/status')

        assert response.status_code == 200
        data = response.get_json()
        assert data["service"] == "beneficiary-portal-api"
        assert data["environment"] == "test"
        assert data["feature_flags"]["whatsapp_send_mode"] == "manual"
        assert data["configuration"]["whatsapp_api_configured"] is False
        assert data["_links"]["health"]["href"] == "http://localhost:5000/api/healthz"


class TestOverallStatus:
    """Test how dependency results combine."""

    @pytest.fixture
    def service(self):
        return HealthCheckService(Mock(), Mock(), {"ENVIRONMENT": "test"})

    @pytest.mark.parametrize("statuses,expected", [
        (["healthy", "healthy"], "healthy"),
        (["healthy", "unhealthy"], "degraded"),
        (["unhealthy", "degraded"], "unhealthy"),
        (["unhealthy"], "unhealthy")
    ])
    def test_determine_overall_status(self, service, statuses, expected):
        assert service._determine_overall_status(statuses) == expected

    def test_unconfigured_cache_is_ignored(self):
        mongodb_service = Mock()
        mongodb_service.health_check.return_value = {"status": "healthy"}
        redis_service = Mock()
        redis_service.health_check.return_value = {"status": "unavailable"}

        health = HealthCheckService(mongodb_service, redis_service, {}).get_comprehensive_health()

        assert health["status"] == "healthy"

    def test_failing_cache_degrades(self):
        mongodb_service = Mock()
        mongodb_service.health_check.return_value = {"status": "healthy"}
        redis_service = Mock()
        redis_service.health_check.return_value = {"status": "unhealthy", "message": "timeout"}

        health = HealthCheckService(mongodb_service, redis_service, {}).get_comprehensive_health()

        assert health["status"] == "degraded"
