"""
Integration Tests for Authentication

Verifies that the main application correctly integrates:
- JWT verification dependency
- Protected route denial (401)
- Protected route access (200) w/ valid token
"""

from app.domain.subscription import PlanTier


class TestAuthIntegration:

    def test_protected_route_no_auth(self, client):
        """Accessing a protected route without auth should return 401."""
        response = client.get("/api/preferences")
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing authorization token"

    def test_protected_route_invalid_token(self, client):
        """Accessing with invalid token should return 401."""
        response = client.get(
            "/api/preferences",
            headers={"Authorization": "Bearer invalid.token.here"}
        )
        assert response.status_code == 401

    def test_protected_route_valid_auth(self, client, auth_headers, mock_user_id, preferences_store):
        """Accessing with valid token reaches the route and creates the default row."""
        response = client.get("/api/preferences", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == mock_user_id
        assert body["plan_tier"] == PlanTier.FREE.value
        assert mock_user_id in preferences_store.rows

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
