from sqlalchemy.exc import OperationalError

from tests.fakes import FakeDriverError


class TestHealth:
    def test_healthy_when_database_answers(self, client, session):
        session.queue(1)

        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert "timestamp" in body

    def test_unhealthy_when_database_is_down(self, client, session):
        session.queue(OperationalError("SELECT 1", {}, FakeDriverError("08006")))

        response = client.get("/api/health")

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["status"] == "unhealthy"
        assert body["database"] == "disconnected"


def test_root_lists_endpoints(client):
    body = client.get("/").json()

    assert body["documentation"] == "/api-docs"
    assert "GET /api/products" in body["endpoints"]


def test_unknown_route_is_404_with_endpoint_list(client):
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Endpoint not found"
    assert "GET /api/health" in body["available_endpoints"]


def test_dashboard_renders(client):
    response = client.get("/dashboard")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "<title>Online Retail API - Dashboard</title>" in response.text


def test_api_docs_are_served(client):
    assert client.get("/api-docs").status_code == 200
