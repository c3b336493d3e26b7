"""Integration tests for health check endpoints."""

from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_200(self, client: TestClient) -> None:
        """Test that /health endpoint returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        """Test that /health endpoint returns healthy status."""
        response = client.get("/health")
        data = response.json()

        assert data["status"] == "healthy"
        assert data["timestamp"] is not None
        assert data["version"] == "0.1.0"


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_readiness_returns_200_when_healthy(self, client: TestClient) -> None:
        """Test that /health/ready returns 200 when all dependencies are healthy."""
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness_includes_database_and_stripe_checks(self, client: TestClient) -> None:
        response = client.get("/health/ready")
        data = response.json()

        check_names = [check["name"] for check in data["checks"]]
        assert check_names == ["database", "stripe"]

        db_check = data["checks"][0]
        assert db_check["latency_ms"] is not None

    def test_readiness_returns_503_when_database_unhealthy(
        self, mock_supabase_client: MagicMock
    ) -> None:
        """Test that /health/ready returns 503 when database is unhealthy."""
        mock_supabase_client.table.return_value.select.return_value.limit.return_value.execute.side_effect = Exception(
            "Connection failed"
        )

        from src.main import app

        with TestClient(app) as test_client:
            response = test_client.get("/health/ready")

            assert response.status_code == 503
            data = response.json()
            assert data["status"] == "unhealthy"
            db_check = next(c for c in data["checks"] if c["name"] == "database")
            assert db_check["healthy"] is False
            assert db_check["error"] == "products: Connection failed"

    def test_readiness_returns_503_without_stripe_keys(self, client: TestClient) -> None:
        with patch(
            "src.api.routes.health.check_stripe_configuration",
            return_value={"healthy": False, "error": "Missing STRIPE_WEBHOOK_SECRET"},
        ):
            response = client.get("/health/ready")

        assert response.status_code == 503
        stripe_check = next(c for c in response.json()["checks"] if c["name"] == "stripe")
        assert stripe_check["error"] == "Missing STRIPE_WEBHOOK_SECRET"


class TestErrorResponseSchema:
    """Tests for error response schema compliance."""

    def test_404_returns_error_response_format(self, client: TestClient) -> None:
        """Test that 404 errors follow ErrorResponse schema."""
        response = client.get("/nonexistent-endpoint")
        assert response.status_code == 404

        data = response.json()
        assert data["error"] == "Not Found"
        assert data["code"] == "http_error"
        assert "timestamp" in data

    def test_unhandled_exception_returns_500(self, client: TestClient) -> None:
        with patch(
            "src.api.routes.health.check_database_connection",
            side_effect=Exception("Test error"),
        ):
            response = client.get("/health/ready")

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "internal_error"
        assert data["error"] == "An unexpected error occurred"

    def test_oversized_body_is_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/checkout",
            content=b"x" * 16,
            headers={"content-length": str(10 * 1024 * 1024), "content-type": "application/json"},
        )

        assert response.status_code == 413
        assert response.json()["code"] == "request_too_large"
