"""Health endpoint tests."""

from pharmasos.core.config import settings


def test_health_reports_service(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": settings.app_name}


def test_unknown_route_is_404(client):
    assert client.get("/nope").status_code == 404
