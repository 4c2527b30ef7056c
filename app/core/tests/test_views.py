"""
Tests for the health check endpoint.
"""

from unittest.mock import patch

from django.urls import reverse


class TestHealthCheck:
    def test_healthy(self, client, db):
        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
        }

    def test_database_down(self, client, db):
        with patch("core.views._database_ok", return_value=False):
            response = client.get(reverse("health_check"))

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_cache_down_stays_up(self, client, db):
        """Should report a dead cache without failing the probe."""
        with patch("core.views._cache_ok", return_value=False):
            response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json()["cache"] == "disconnected"
