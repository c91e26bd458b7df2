"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
These tests verify:
- Health endpoint availability
- Auth guards on admin endpoints
- The shared error envelope
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt

from skystand.api.deps import JWT_ALGORITHM, JWT_SECRET
from conftest import auth


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert isinstance(body["auditFailures"], int)


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAdminGuards:
    ADMIN_ROUTES = [
        ("GET", "/api/activity-logs"),
        ("GET", "/api/users"),
        ("GET", "/api/discord-logs"),
        ("GET", "/api/discord-feedback"),
        ("POST", "/api/discord-logs/clean"),
        ("DELETE", "/api/parkings/1"),
    ]

    def test_no_token_returns_401(self, client):
        for method, path in self.ADMIN_ROUTES:
            resp = client.request(method, path)
            assert resp.status_code == 401, f"{method} {path}"
            assert "message" in resp.json()

    def test_garbage_token_returns_401(self, client):
        resp = client.get("/api/activity-logs", headers=auth("not-a-jwt"))
        assert resp.status_code == 401

    def test_expired_token_returns_401(self, client, admin):
        token = jwt.encode(
            {
                "userId": admin["id"],
                "username": admin["username"],
                "roles": admin["roles"],
                "exp": datetime.now(UTC) - timedelta(minutes=1),
            },
            JWT_SECRET,
            algorithm=JWT_ALGORITHM,
        )
        resp = client.get("/api/activity-logs", headers=auth(token))
        assert resp.status_code == 401
        assert "expirée" in resp.json()["message"]

    def test_non_admin_returns_403(self, client, user_headers):
        for method, path in self.ADMIN_ROUTES:
            resp = client.request(method, path, headers=user_headers)
            assert resp.status_code == 403, f"{method} {path}"

    def test_admin_passes_guard(self, client, admin_headers):
        resp = client.get("/api/activity-logs", headers=admin_headers)
        assert resp.status_code == 200


# ===========================================================================
# Error envelope
# ===========================================================================
class TestErrorEnvelope:
    def test_not_found_has_message(self, client):
        resp = client.get("/api/parkings/999")
        assert resp.status_code == 404
        assert resp.json() == {"message": "Parking non trouvé."}

    def test_validation_error_lists_fields(self, client, admin_headers):
        resp = client.post(
            "/api/parkings",
            json={"airline": "A", "airport": "LFPG"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["message"] == "Erreur de validation."
        assert "airline" in body["errors"]
        assert not body["errors"]["airline"][0].startswith("Value error")

    def test_unknown_route_is_404_envelope(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert "message" in resp.json()


# ===========================================================================
# Public stats
# ===========================================================================
class TestGlobalStats:
    def test_counts_distinct_airports_per_prefix(self, client, admin_headers):
        for airline, airport in [("AFR", "LFPG"), ("EZY", "LFPG"), ("AFR", "LFLL"), ("BAW", "EGLL")]:
            client.post("/api/parkings", json={"airline": airline, "airport": airport}, headers=admin_headers)

        body = client.get("/api/stats/global").json()
        assert body["totalParkings"] == 4
        assert body["totalAirports"] == 3
        assert body["totalCompanies"] == 3
        assert body["countryCounts"] == [{"code": "LF", "count": 2}, {"code": "EG", "count": 1}]
