"""
Tests for Authentication and Authorization.

Covers:
- Password hashing
- JWT creation, decoding, revocation
- CSRF token generation and the double-submit middleware
- Security headers middleware
- /auth endpoints (register, login, OIDC placeholder, logout, me)
- Role-based authorization (viewer < contributor < manager < admin < owner)
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import jwt as pyjwt
import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from app.api.v1 import auth as auth_api
from app.core.auth import (
    create_jwt,
    decode_jwt,
    extract_token,
    generate_csrf_token,
    hash_password,
    require_admin,
    require_contributor,
    require_manager,
    require_member,
    require_owner,
    session_ttl_seconds,
    verify_password,
)
from app.core.middleware import CSRFMiddleware, SecurityHeadersMiddleware, SECURITY_HEADERS
from fizz_shared.schemas.common import Role, role_at_least

from conftest import make_auth, make_profile, query_result


# ---------------------------------------------------------------------------
# Unit Tests: Password hashing
# ---------------------------------------------------------------------------

class TestPasswordHashing:
    def test_hash_and_verify(self):
        password = "MySecureP@ssw0rd!"
        hashed = hash_password(password)
        assert hashed != password
        assert verify_password(password, hashed)

    def test_wrong_password_fails(self):
        hashed = hash_password("correct-password")
        assert not verify_password("wrong-password", hashed)

    def test_cost_factor_is_twelve(self):
        assert hash_password("whatever").startswith("$2b$12$")


# ---------------------------------------------------------------------------
# Unit Tests: JWT
# ---------------------------------------------------------------------------

class TestJWT:
    def test_create_and_decode(self):
        uid, org_id = uuid.uuid4(), uuid.uuid4()
        token, jti = create_jwt(user_id=uid, active_org=org_id)
        payload = decode_jwt(token)
        assert payload["sub"] == str(uid)
        assert payload["active_org"] == str(org_id)
        assert payload["jti"] == jti

    def test_no_active_org(self):
        token, _ = create_jwt(user_id=uuid.uuid4())
        assert decode_jwt(token)["active_org"] is None

    def test_expired_jwt_raises(self):
        token, _ = create_jwt(user_id=uuid.uuid4(), expires_delta=timedelta(seconds=-1))
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_jwt(token)

    def test_tampered_jwt_raises(self):
        token, _ = create_jwt(user_id=uuid.uuid4())
        tampered = token[:-5] + "XXXXX"
        with pytest.raises(pyjwt.InvalidSignatureError):
            decode_jwt(tampered)

    def test_session_ttl_tracks_expiry(self):
        token, _ = create_jwt(user_id=uuid.uuid4(), expires_delta=timedelta(minutes=10))
        ttl = session_ttl_seconds(decode_jwt(token))
        assert 590 <= ttl <= 600

    def test_session_ttl_never_below_one(self):
        assert session_ttl_seconds({"exp": 0}) == 1


class TestExtractToken:
    def test_bearer_wins_over_cookie(self):
        request = SimpleNamespace(cookies={"fizz_session": "cookie-token"})
        assert extract_token(request, "Bearer header-token") == "header-token"

    def test_falls_back_to_cookie(self):
        request = SimpleNamespace(cookies={"fizz_session": "cookie-token"})
        assert extract_token(request, None) == "cookie-token"

    def test_non_bearer_header_ignored(self):
        request = SimpleNamespace(cookies={})
        assert extract_token(request, "Basic abc") is None


# ---------------------------------------------------------------------------
# Unit Tests: CSRF Token
# ---------------------------------------------------------------------------

class TestCSRFToken:
    def test_generates_unique_tokens(self):
        t1 = generate_csrf_token()
        t2 = generate_csrf_token()
        assert t1 != t2
        assert len(t1) > 20


# ---------------------------------------------------------------------------
# Integration Tests: Middleware
# ---------------------------------------------------------------------------

class TestSecurityHeadersMiddleware:
    def test_headers_present(self):
        app = FastAPI()
        app.add_middleware(SecurityHeadersMiddleware)

        @app.get("/test")
        async def test_endpoint():
            return {"ok": True}

        client = TestClient(app)
        resp = client.get("/test")
        assert resp.status_code == 200
        for header, value in SECURITY_HEADERS.items():
            assert resp.headers.get(header) == value


class TestCSRFMiddleware:
    def _make_app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(CSRFMiddleware)

        @app.get("/test")
        async def get_test():
            return {"ok": True}

        @app.post("/test")
        async def post_test():
            return {"ok": True}

        return app

    def test_get_passes_without_csrf(self):
        client = TestClient(self._make_app(), cookies={"fizz_session": "some-jwt"})
        resp = client.get("/test")
        assert resp.status_code == 200

    def test_post_with_bearer_skips_csrf(self):
        client = TestClient(self._make_app(), cookies={"fizz_session": "some-jwt"})
        resp = client.post("/test", headers={"Authorization": "Bearer some-jwt"})
        assert resp.status_code == 200

    def test_post_without_session_cookie_passes(self):
        """No session cookie = not a browser request, skip CSRF."""
        client = TestClient(self._make_app())
        resp = client.post("/test")
        assert resp.status_code == 200

    def test_post_with_session_but_no_csrf_fails(self):
        client = TestClient(self._make_app(), cookies={"fizz_session": "some-jwt"})
        resp = client.post("/test")
        assert resp.status_code == 403
        assert resp.json() == {
            "error": {
                "code": "CSRF_VALIDATION_FAILED",
                "message": "Invalid or missing CSRF token.",
                "status": 403,
            }
        }

    def test_post_with_matching_csrf_passes(self):
        csrf_token = "test-csrf-token"
        client = TestClient(
            self._make_app(),
            cookies={"fizz_session": "some-jwt", "fizz_csrf": csrf_token},
        )
        resp = client.post("/test", headers={"X-CSRF-Token": csrf_token})
        assert resp.status_code == 200

    def test_post_with_mismatched_csrf_fails(self):
        client = TestClient(
            self._make_app(),
            cookies={"fizz_session": "some-jwt", "fizz_csrf": "token-a"},
        )
        resp = client.post("/test", headers={"X-CSRF-Token": "token-b"})
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Integration Tests: Auth Endpoints
# ---------------------------------------------------------------------------

class TestAuthEndpoints:
    """Tests for /auth/* endpoints using the real app with a mocked DB session."""

    def test_register_short_password(self, api):
        resp = api().post("/auth/register", json={"email": "dana@example.com", "password": "short"})
        assert resp.status_code == 400

    def test_register_password_over_bcrypt_limit(self, api, db_session):
        resp = api().post("/auth/register", json={"email": "dana@example.com", "password": "x" * 100})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Password must be at most 72 bytes"
        db_session.add.assert_not_called()

    def test_register_limit_counts_bytes(self, api):
        # 40 characters, 80 bytes in UTF-8
        resp = api().post("/auth/register", json={"email": "dana@example.com", "password": "é" * 40})
        assert resp.status_code == 400

    def test_login_password_over_bcrypt_limit(self, api, db_session):
        resp = api().post("/auth/login", json={"email": "dana@example.com", "password": "x" * 100})
        assert resp.status_code == 400
        db_session.execute.assert_not_awaited()

    def test_register_duplicate_email(self, api, db_session):
        db_session.execute = AsyncMock(return_value=query_result(uuid.uuid4()))
        resp = api().post(
            "/auth/register", json={"email": "Dana@Example.com", "password": "long-enough"}
        )
        assert resp.status_code == 409

    def test_register_issues_session(self, api, db_session):
        db_session.execute = AsyncMock(return_value=query_result(None))
        resp = api().post(
            "/auth/register", json={"email": "Dana@Example.com", "password": "long-enough"}
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["email"] == "dana@example.com"
        assert decode_jwt(data["access_token"])["sub"] == data["user_id"]

        created = db_session.add.call_args.args[0]
        assert created.name == "dana"
        assert verify_password("long-enough", created.password_hash)

        cookies = " ".join(resp.headers.get_list("set-cookie"))
        assert "fizz_session=" in cookies
        assert "fizz_csrf=" in cookies

    def test_login_unknown_user(self, api, db_session):
        db_session.execute = AsyncMock(return_value=query_result(None))
        resp = api().post("/auth/login", json={"email": "who@example.com", "password": "whatever1"})
        assert resp.status_code == 401

    def test_login_wrong_password(self, api, db_session):
        profile = make_profile(password_hash=hash_password("right-password"))
        db_session.execute = AsyncMock(return_value=query_result(profile))
        resp = api().post("/auth/login", json={"email": profile.email, "password": "wrong-password"})
        assert resp.status_code == 401

    def test_login_stamps_last_active(self, api, db_session):
        profile = make_profile(password_hash=hash_password("right-password"))
        db_session.execute = AsyncMock(return_value=query_result(profile))
        resp = api().post("/auth/login", json={"email": profile.email, "password": "right-password"})
        assert resp.status_code == 200
        assert resp.json()["user_id"] == str(profile.id)
        assert profile.last_active_at is not None

    def test_oidc_login_placeholder(self, api):
        with patch.object(auth_api.settings, "github_client_id", "gh-client"):
            resp = api().get("/auth/login/oidc?provider=github")
        assert resp.status_code == 200
        data = resp.json()
        assert data["provider"] == "github"
        assert data["status"] == "placeholder"
        assert "client_id=gh-client" in data["authorization_url"]
        assert data["authorization_url"].startswith("https://github.com/")

    def test_oidc_login_unconfigured(self, api):
        with patch.object(auth_api.settings, "github_client_id", None):
            resp = api().get("/auth/login/oidc?provider=github")
        assert resp.status_code == 503

    def test_oidc_login_bad_provider(self, api):
        resp = api().get("/auth/login/oidc?provider=facebook")
        assert resp.status_code == 400

    def test_logout_clears_cookies(self, api):
        resp = api().post("/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out"

    def test_logout_revokes_token(self, api):
        token, jti = create_jwt(user_id=uuid.uuid4())
        with patch("app.api.v1.auth.revoke_jwt") as revoke:
            resp = api().post("/auth/logout", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert revoke.await_args.args[0] == jti

    def test_refresh_rotates_token(self, api):
        token, jti = create_jwt(user_id=uuid.uuid4())
        with patch("app.api.v1.auth.is_jwt_revoked", return_value=False), \
             patch("app.api.v1.auth.revoke_jwt") as revoke:
            resp = api().post("/auth/refresh", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["access_token"] != token
        assert revoke.await_args.args[0] == jti

    def test_refresh_rejects_revoked(self, api):
        token, _ = create_jwt(user_id=uuid.uuid4())
        with patch("app.api.v1.auth.is_jwt_revoked", return_value=True):
            resp = api().post("/auth/refresh", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_me_requires_session(self, api):
        resp = api().get("/auth/me")
        assert resp.status_code == 401

    def test_me_lists_memberships(self, api, db_session):
        auth = make_auth(Role.MANAGER)
        result = MagicMock()
        result.all.return_value = [(auth.org, Role.MANAGER)]
        db_session.execute = AsyncMock(return_value=result)

        resp = api(auth).get("/auth/me")
        assert resp.status_code == 200
        data = resp.json()
        assert data["profile"]["id"] == str(auth.user_id)
        assert data["memberships"] == [
            {"org_id": str(auth.org_id), "org_slug": "acme", "org_name": "Acme", "role": "manager"}
        ]


# ---------------------------------------------------------------------------
# Unit Tests: Role-based auth matrix
# ---------------------------------------------------------------------------

class TestRoleRanking:
    def test_order(self):
        assert role_at_least(Role.OWNER, Role.ADMIN)
        assert role_at_least(Role.MANAGER, Role.CONTRIBUTOR)
        assert role_at_least("viewer", "viewer")
        assert not role_at_least(Role.CONTRIBUTOR, Role.MANAGER)
        assert not role_at_least(Role.VIEWER, Role.CONTRIBUTOR)


class TestAuthorizationMatrix:
    """
    Verify that role dependencies enforce correct access levels.

    Calls the dependency functions directly with fake members.
    """

    MATRIX = [
        (require_contributor, {Role.OWNER, Role.ADMIN, Role.MANAGER, Role.CONTRIBUTOR}),
        (require_manager, {Role.OWNER, Role.ADMIN, Role.MANAGER}),
        (require_admin, {Role.OWNER, Role.ADMIN}),
        (require_owner, {Role.OWNER}),
    ]

    @pytest.mark.asyncio
    async def test_member_allows_all_roles(self):
        for role in Role:
            auth = make_auth(role)
            assert await require_member(auth) is auth

    @pytest.mark.asyncio
    @pytest.mark.parametrize("dependency,allowed", MATRIX)
    async def test_role_dependencies(self, dependency, allowed):
        for role in Role:
            auth = make_auth(role)
            if role in allowed:
                assert await dependency(auth) is auth
            else:
                with pytest.raises(HTTPException) as exc_info:
                    await dependency(auth)
                assert exc_info.value.status_code == 403


# ---------------------------------------------------------------------------
# Unit Tests: JWT Revocation (mocked Redis)
# ---------------------------------------------------------------------------

class TestJWTRevocation:
    @pytest.mark.asyncio
    async def test_revoke_and_check(self):
        mock_redis = AsyncMock()
        mock_redis.setex = AsyncMock()
        mock_redis.exists = AsyncMock(return_value=1)

        with patch("app.core.auth.get_redis", return_value=mock_redis):
            from app.core.auth import revoke_jwt, is_jwt_revoked

            await revoke_jwt("test-jti-123")
            mock_redis.setex.assert_called_once_with("jwt:revoked:test-jti-123", 3600, "1")

            result = await is_jwt_revoked("test-jti-123")
            assert result is True

    @pytest.mark.asyncio
    async def test_non_revoked_jwt(self):
        mock_redis = AsyncMock()
        mock_redis.exists = AsyncMock(return_value=0)

        with patch("app.core.auth.get_redis", return_value=mock_redis):
            from app.core.auth import is_jwt_revoked
            result = await is_jwt_revoked("non-existent-jti")
            assert result is False

    @pytest.mark.asyncio
    async def test_revoked_session_rejected(self):
        from app.core.auth import get_session_payload

        token, _ = create_jwt(user_id=uuid.uuid4())
        request = SimpleNamespace(cookies={})
        with patch("app.core.auth.is_jwt_revoked", return_value=True):
            with pytest.raises(HTTPException) as exc_info:
                await get_session_payload(request, f"Bearer {token}")
        assert exc_info.value.status_code == 401
