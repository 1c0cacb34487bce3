"""
Tests for the /auth routes and application-level endpoints
"""
from app.database import utcnow
from core.security.legacy_roles import LegacyRole


class TestLogin:
    def test_login_success(self, client, make_user):
        make_user(LegacyRole.PROPERTY_MANAGER, email="gm@seaside.test", password="s3cret!")
        response = client.post("/auth/login", json={"email": "gm@seaside.test", "password": "s3cret!"})
        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["user"]["email"] == "gm@seaside.test"
        assert data["user"]["role"] == "PROPERTY_MANAGER"
        assert "password_hash" not in data["user"]

    def test_login_wrong_password(self, client, make_user):
        make_user(email="gm@seaside.test", password="s3cret!")
        response = client.post("/auth/login", json={"email": "gm@seaside.test", "password": "wrong"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_login_disabled_account(self, client, make_user):
        make_user(email="gm@seaside.test", password="s3cret!", is_active=False)
        response = client.post("/auth/login", json={"email": "gm@seaside.test", "password": "s3cret!"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Account is disabled"

    def test_login_validation(self, client):
        assert client.post("/auth/login", json={"email": "gm@seaside.test"}).status_code == 422


class TestCurrentUser:
    def test_me(self, client, staff_user, staff_headers):
        response = client.get("/auth/me", headers=staff_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == staff_user.id
        assert data["roles"] == []
        assert "*.*.own" in data["permissions"]

    def test_missing_token(self, client):
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_invalid_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_deleted_user(self, client, db_session, staff_user, staff_headers):
        staff_user.deleted_at = utcnow()
        db_session.commit()
        response = client.get("/auth/me", headers=staff_headers)
        assert response.status_code == 401
        assert response.json()["detail"] == "User not found"

    def test_inactive_user(self, client, db_session, staff_user, staff_headers):
        staff_user.is_active = False
        db_session.commit()
        response = client.get("/auth/me", headers=staff_headers)
        assert response.status_code == 401

    def test_available_properties(self, client, hotel, owner_headers):
        response = client.get("/auth/properties", headers=owner_headers)
        assert response.status_code == 200
        assert response.json() == [{
            "id": hotel.id, "name": "Seaside Downtown", "slug": "downtown",
            "organization_id": hotel.organization_id,
        }]


class TestAppRoutes:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert "name" in client.get("/").json()
