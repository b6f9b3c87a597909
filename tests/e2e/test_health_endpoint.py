"""E2E tests for health check endpoint."""

from fastapi.testclient import TestClient

from discovery_service.main import app


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_endpoint_returns_200(self, test_client):
        """Test health endpoint returns 200."""
        response = test_client.get("/health")
        assert response.status_code == 200

    def test_health_endpoint_response_format(self, test_client):
        """Test health endpoint response format."""
        response = test_client.get("/health")
        assert response.json() == {"status": "ok"}

    def test_health_endpoint_with_client(self, mock_settings, mock_logfire):
        """Test health endpoint with explicit TestClient."""
        client = TestClient(app)
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_health_is_rate_limited_by_general_tier(self, test_client):
        """General rate limit headers are present on every route."""
        response = test_client.get("/health")
        assert response.headers["RateLimit-Limit"] == "60"
        assert "RateLimit-Remaining" in response.headers
