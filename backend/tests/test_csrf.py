"""Tests for CSRF token issue and validation."""

from http.cookies import SimpleCookie

import pytest
from starlette.requests import Request

from app.auth.csrf import generate_csrf_token, validate_csrf_token
from app.config import settings


def _request(method: str, cookie: str | None = None, header: str | None = None) -> Request:
    headers = []
    if cookie is not None:
        headers.append((b"cookie", f"{settings.csrf_cookie_name}={cookie}".encode()))
    if header is not None:
        headers.append((settings.csrf_header_name.encode(), header.encode()))
    return Request({
        "type": "http",
        "method": method,
        "path": "/api/agents/1/scorecard",
        "query_string": b"",
        "headers": headers,
    })


def _cookie_value(resp) -> str:
    jar = SimpleCookie()
    jar.load(resp.headers["set-cookie"])
    return jar[settings.csrf_cookie_name].value


class TestValidateToken:
    def test_matching_header_and_cookie(self):
        token = generate_csrf_token()
        assert validate_csrf_token(_request("POST", cookie=token, header=token))

    def test_mismatch(self):
        assert not validate_csrf_token(_request("POST", cookie=generate_csrf_token(), header=generate_csrf_token()))

    def test_missing_header(self):
        assert not validate_csrf_token(_request("POST", cookie=generate_csrf_token()))

    def test_missing_cookie(self):
        assert not validate_csrf_token(_request("DELETE", header=generate_csrf_token()))

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_safe_methods_always_pass(self, method):
        assert validate_csrf_token(_request(method))
        assert validate_csrf_token(_request(method, cookie="a", header="b"))

    def test_tokens_are_random_hex(self):
        a, b = generate_csrf_token(), generate_csrf_token()
        assert a != b
        assert len(a) == 64
        int(a, 16)


@pytest.mark.asyncio
class TestCsrfEndpoint:
    async def test_issue_sets_cookie_and_returns_token(self, anon_client):
        resp = await anon_client.get("/api/auth/csrf")
        assert resp.status_code == 200
        token = resp.json()["csrfToken"]
        assert _cookie_value(resp) == token

        set_cookie = resp.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=strict" in set_cookie
        assert "path=/" in set_cookie

    async def test_two_issues_are_distinct_and_each_valid(self, users, client_for):
        client = await client_for(users.tl, csrf=False)
        first = await client.get("/api/auth/csrf")
        second = await client.get("/api/auth/csrf")

        t1, t2 = first.json()["csrfToken"], second.json()["csrfToken"]
        assert t1 != t2
        for resp, token in ((first, t1), (second, t2)):
            cookie = _cookie_value(resp)
            assert validate_csrf_token(_request("POST", cookie=cookie, header=token))

    async def test_refresh_requires_login(self, users, client_for):
        anon = await client_for(None, csrf=False)
        assert (await anon.post("/api/auth/csrf")).status_code == 401

        client = await client_for(users.tl, csrf=False)
        resp = await client.post("/api/auth/csrf")
        assert resp.status_code == 200
        assert resp.json()["csrfToken"] == _cookie_value(resp)


@pytest.mark.asyncio
class TestCsrfMiddleware:
    async def test_state_change_without_token_is_rejected(self, users, client_for):
        client = await client_for(users.admin, csrf=False)
        resp = await client.post("/api/agents/%d/scorecard" % users.agent.id, json={
            "month": 3, "year": 2026, "metrics": {"service": 4},
        })
        assert resp.status_code == 403
        assert resp.json() == {"error": "Invalid CSRF token"}

    async def test_mismatched_token_is_rejected(self, users, client_for):
        client = await client_for(users.admin, csrf=False)
        resp = await client.post(
            "/api/auth/logout",
            headers={
                "Cookie": f"{settings.csrf_cookie_name}={generate_csrf_token()}",
                settings.csrf_header_name: generate_csrf_token(),
            },
        )
        assert resp.status_code == 403

    async def test_issued_token_unlocks_writes(self, users, client_for):
        client = await client_for(users.manager, csrf=False)
        token = (await client.get("/api/auth/csrf")).json()["csrfToken"]
        resp = await client.post(
            "/api/auth/logout",
            headers={
                "Cookie": f"{settings.csrf_cookie_name}={token}",
                settings.csrf_header_name: token,
            },
        )
        assert resp.status_code == 200

    async def test_reads_do_not_need_a_token(self, users, client_for):
        client = await client_for(users.manager, csrf=False)
        assert (await client.get("/api/agents")).status_code == 200

    async def test_login_is_exempt(self, users, anon_client):
        resp = await anon_client.post("/api/auth/login", json={
            "email": "nobody@example.com", "password": "x",
        })
        assert resp.status_code == 401
