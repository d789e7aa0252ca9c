# tests/test_health.py
"""
Tests for the health and root endpoints.
"""


class TestHealth:
    """Test GET /health."""

    def test_healthy(self, client, ledger):
        """Healthy response reports price, block and request counts."""
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["price"] == "0.01 XPL"
        assert body["currentBlock"] == ledger.block
        assert body["chainId"] == 9746
        assert body["requests"] == {"pending": 0, "verified": 0, "fulfilled": 0, "expired": 0}
        assert "timestamp" in body

    def test_request_counts(self, client):
        client.get("/api/premium-data")
        client.get("/api/premium-data")
        assert client.get("/health").json()["requests"]["pending"] == 2

    def test_unhealthy(self, client, ledger):
        """An unreachable ledger makes the gateway unhealthy."""
        ledger.unavailable = True

        response = client.get("/health")

        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "unhealthy"
        assert "connection refused" in body["error"]


class TestRoot:
    """Test GET /."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["endpoints"]["premiumData"] == "/api/premium-data"
