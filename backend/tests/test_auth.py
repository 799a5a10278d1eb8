"""Tests for authentication endpoints and JWT flow."""

from datetime import timedelta

import pytest
from jose import JWTError, jwt

from app.auth.jwt import ALGORITHM, create_access_token, decode_access_token
from app.auth.passwords import hash_password, password_policy_error, verify_password
from app.config import settings


# ── JWT utility tests ─────────────────────────────────────────────────────────

class TestJWTUtils:
    def test_create_and_decode_access_token(self):
        token = create_access_token(1, "user@example.com", "ADMIN")
        claims = decode_access_token(token)
        assert claims["sub"] == "1"
        assert claims["email"] == "user@example.com"
        assert claims["role"] == "ADMIN"
        assert claims["type"] == "access"

    def test_decode_invalid_token_raises(self):
        with pytest.raises(JWTError):
            decode_access_token("invalid.token.here")

    def test_decode_rejects_non_access_token(self):
        token = jwt.encode({"sub": "1", "role": "ADMIN", "type": "refresh"}, settings.secret_key, algorithm=ALGORITHM)
        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_decode_rejects_expired_token(self):
        token = create_access_token(1, "user@example.com", "AGENT", expires_in=timedelta(seconds=-1))
        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_decode_rejects_token_without_role(self):
        token = jwt.encode({"sub": "1", "type": "access"}, settings.secret_key, algorithm=ALGORITHM)
        with pytest.raises(JWTError, match="role"):
            decode_access_token(token)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("Secret123!")
        assert verify_password("Secret123!", hashed)
        assert not verify_password("wrong", hashed)

    def test_account_without_password_never_verifies(self):
        assert not verify_password("anything", None)

    def test_policy(self):
        assert password_policy_error("short1") is not None
        assert password_policy_error("lettersonly") is not None
        assert password_policy_error("12345678") is not None
        assert password_policy_error("letters123") is None


# ── Login endpoint tests ─────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestLogin:
    async def test_login_success(self, users, db_session, anon_client):
        users.tl.password_hash = hash_password("MyPass123!")
        await db_session.flush()

        resp = await anon_client.post("/api/auth/login", json={
            "email": "tl@example.com",
            "password": "MyPass123!",
        })

        assert resp.status_code == 200
        data = resp.json()
        assert decode_access_token(data["accessToken"])["sub"] == str(users.tl.id)
        assert data["user"]["email"] == "tl@example.com"
        assert data["user"]["role"] == "TEAM_LEADER"

    async def test_login_wrong_password(self, users, db_session, anon_client):
        users.agent.password_hash = hash_password("Correct123!")
        await db_session.flush()

        resp = await anon_client.post("/api/auth/login", json={
            "email": "agent@example.com",
            "password": "Wrong123!",
        })
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid email or password"}

    async def test_login_nonexistent_user(self, users, anon_client):
        resp = await anon_client.post("/api/auth/login", json={
            "email": "nobody@example.com",
            "password": "Whatever123",
        })
        assert resp.status_code == 401

    async def test_login_inactive_user(self, users, db_session, anon_client):
        users.agent2.password_hash = hash_password("Inactive123")
        users.agent2.is_active = False
        await db_session.flush()

        resp = await anon_client.post("/api/auth/login", json={
            "email": "agent2@example.com",
            "password": "Inactive123",
        })
        assert resp.status_code == 403

    async def test_login_validation_error_is_400(self, anon_client):
        resp = await anon_client.post("/api/auth/login", json={"email": "not-an-email"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Validation failed"
        assert {issue["path"] for issue in body["issues"]} >= {"email", "password"}


# ── Authenticated endpoints ──────────────────────────────────────────────────

@pytest.mark.asyncio
class TestMe:
    async def test_me_returns_profile(self, users, client_for):
        client = await client_for(users.agent)
        resp = await client.get("/api/auth/me")
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == users.agent.id
        assert data["teamLeaderId"] == users.tl.id
        assert data["employeeId"] == "E-001"

    async def test_me_is_cached(self, users, client_for, fake_redis):
        client = await client_for(users.agent)
        await client.get("/api/auth/me")
        assert f"user:{users.agent.id}:profile" in fake_redis.store

    async def test_me_without_token(self, anon_client):
        resp = await anon_client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    async def test_me_with_invalid_token(self, anon_client):
        resp = await anon_client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401

    async def test_token_with_unknown_role_is_rejected(self, users, anon_client):
        token = create_access_token(users.agent.id, users.agent.email, "SUPERVISOR")
        resp = await anon_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


@pytest.mark.asyncio
class TestChangePassword:
    async def test_change_password(self, users, db_session, client_for):
        users.agent.password_hash = hash_password("OldPass123")
        await db_session.flush()
        client = await client_for(users.agent)

        resp = await client.put("/api/auth/me/password", json={
            "currentPassword": "OldPass123",
            "newPassword": "NewPass456",
        })
        assert resp.status_code == 200
        assert verify_password("NewPass456", users.agent.password_hash)

    async def test_wrong_current_password(self, users, db_session, client_for):
        users.agent.password_hash = hash_password("OldPass123")
        await db_session.flush()
        client = await client_for(users.agent)

        resp = await client.put("/api/auth/me/password", json={
            "currentPassword": "Nope12345",
            "newPassword": "NewPass456",
        })
        assert resp.status_code == 400

    async def test_weak_new_password(self, users, db_session, client_for):
        users.agent.password_hash = hash_password("OldPass123")
        await db_session.flush()
        client = await client_for(users.agent)

        resp = await client.put("/api/auth/me/password", json={
            "currentPassword": "OldPass123",
            "newPassword": "short",
        })
        assert resp.status_code == 400
        assert "at least" in resp.json()["error"]


@pytest.mark.asyncio
class TestLogout:
    async def test_logout_clears_user_cache(self, users, client_for, fake_redis):
        client = await client_for(users.manager)
        await client.get("/api/auth/me")
        assert f"user:{users.manager.id}:profile" in fake_redis.store

        resp = await client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert f"user:{users.manager.id}:profile" not in fake_redis.store

    async def test_logout_requires_auth(self, users, client_for):
        client = await client_for(None)
        resp = await client.post("/api/auth/logout")
        assert resp.status_code == 401


@pytest.mark.asyncio
class TestUserPermissions:
    async def test_agent_permissions(self, users, client_for):
        client = await client_for(users.agent)
        resp = await client.get("/api/users/permissions")
        assert resp.status_code == 200
        data = resp.json()
        assert data["role"] == "AGENT"
        assert data["permissions"] == sorted(["update_profile", "view_own_metrics", "view_own_sessions"])

    async def test_admin_gets_every_capability(self, users, client_for):
        client = await client_for(users.admin)
        resp = await client.get("/api/users/permissions")
        assert "manage_roles" in resp.json()["permissions"]
        assert "view_all_data" in resp.json()["permissions"]
