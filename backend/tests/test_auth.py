"""Tests for authentication endpoints and permission checks."""

import pytest
from httpx import AsyncClient

from nutaria.models.user import UserProfile


@pytest.mark.api
@pytest.mark.asyncio
class TestAuthEndpoints:
    """Test authentication endpoints."""

    async def test_login_success(self, client: AsyncClient, admin_user: UserProfile):
        response = await client.post(
            "/api/auth/login",
            json={"email": admin_user.email, "password": "testpassword123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert "access_token" in data
        assert "refresh_token" in data
        assert data["user"]["email"] == admin_user.email
        assert data["user"]["role"] == "admin"
        assert "process.manage" in data["user"]["permissions"]

    async def test_login_wrong_password(self, client: AsyncClient, admin_user: UserProfile):
        response = await client.post(
            "/api/auth/login",
            json={"email": admin_user.email, "password": "wrongpassword"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid credentials"

    async def test_refresh_issues_new_tokens(self, client: AsyncClient, qa_user: UserProfile):
        login = await client.post(
            "/api/auth/login",
            json={"email": qa_user.email, "password": "testpassword123"},
        )
        refresh_token = login.json()["refresh_token"]

        response = await client.post("/api/auth/refresh", json={"refresh_token": refresh_token})

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "qa"

    async def test_refresh_rejects_access_token(self, client: AsyncClient, auth_headers: dict):
        access_token = auth_headers["Authorization"].split()[1]
        response = await client.post("/api/auth/refresh", json={"refresh_token": access_token})

        assert response.status_code == 401

    async def test_get_current_user(self, client: AsyncClient, auth_headers: dict):
        response = await client.get("/api/auth/me", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "admin@example.com"
        assert data["full_name"] == "Ada Admin"

    async def test_missing_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me")

        assert response.status_code == 401

    async def test_logout_revokes_token(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/auth/logout", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"detail": "Logged out"}

        response = await client.get("/api/auth/me", headers=auth_headers)
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Token has been revoked"

    async def test_viewer_cannot_create_lot_run(
        self, client: AsyncClient, viewer_headers: dict, seeded
    ):
        response = await client.post(
            "/api/lot-runs/",
            json={"supply_batch_id": seeded.batch_id},
            headers=viewer_headers,
        )

        assert response.status_code == 403
        assert "process.manage" in response.json()["error"]["message"]


@pytest.mark.unit
class TestPasswordHashing:

    def test_hash_password(self):
        from nutaria.auth.password import hash_password, verify_password

        password = "MySecurePassword123!"
        hashed = hash_password(password)

        assert hashed != password
        assert verify_password(password, hashed)
        assert not verify_password("WrongPassword", hashed)

    def test_verify_without_hash(self):
        from nutaria.auth.password import verify_password

        assert not verify_password("anything", None)
        assert not verify_password("anything", "not-a-bcrypt-hash")


@pytest.mark.unit
class TestJWTTokens:
    """Test JWT token generation and validation."""

    def test_create_access_token(self):
        from nutaria.auth.jwt import create_access_token, decode_token

        token = create_access_token(
            user_id="user123",
            role="qa",
            permissions=["quality.read", "quality.resolve"],
        )

        payload = decode_token(token)
        assert payload["sub"] == "user123"
        assert payload["role"] == "qa"
        assert payload["type"] == "access"
        assert "quality.resolve" in payload["permissions"]

    def test_decode_invalid_token(self):
        from nutaria.auth.jwt import decode_token

        assert decode_token("invalid.token.here") == {}


@pytest.mark.unit
class TestPermissions:

    def test_role_defaults(self):
        from nutaria.auth.permissions import resolve_permissions

        viewer = resolve_permissions("viewer")
        assert "process.read" in viewer
        assert "process.write" not in viewer
        assert "quality.resolve" in resolve_permissions("qa")
        assert "quality.resolve" not in resolve_permissions("planner")

    def test_custom_overrides(self):
        from nutaria.auth.permissions import resolve_permissions

        perms = resolve_permissions(
            "viewer", {"checks.write": True, "process.read": False, "bogus.perm": True}
        )
        assert "checks.write" in perms
        assert "process.read" not in perms
        assert "bogus.perm" not in perms
        assert perms == sorted(perms)
