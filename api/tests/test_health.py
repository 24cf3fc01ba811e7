"""Tests for health endpoints."""

from fastapi.testclient import TestClient


def test_liveness(client: TestClient) -> None:
    """Test the liveness endpoint."""
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_readiness_without_database(client: TestClient) -> None:
    """Without a progress service the app reports degraded readiness."""
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["progress_service"] is False
    assert data["cassandra"] is False
    assert "environment" in data


def test_readiness_with_progress_service(app, client: TestClient) -> None:
    """Readiness flips once the progress service is wired."""
    app.state.progress_service = object()
    response = client.get("/health/ready")
    assert response.json()["status"] == "ready"


def test_health(client: TestClient) -> None:
    """Test the general health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["app_name"] == "lessontrack"
    assert "version" in data
    assert "environment" in data


def test_root(client: TestClient) -> None:
    """Test the root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "Lessontrack" in data["message"]
    assert "version" in data


def test_request_id_header(client: TestClient) -> None:
    """Responses echo the incoming request id."""
    response = client.get("/health/live", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
