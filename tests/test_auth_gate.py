"""
tests/test_auth_gate.py -- The Auth Gate in front of every protected route.

Covers:
  - no/malformed Authorization header -> 401, handler and backend never run
  - token the backend rejects -> 403
  - backend blowing up during resolution -> 500 with a generic message
  - accepted token -> handler runs with the resolved identity
  - token cache: hits skip the backend, logout evicts (every session of the
    user unless SIGN_OUT_SCOPE=local)
  - extract_bearer_token() parsing rules
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.dependencies import extract_bearer_token
from core.config import Settings

PROTECTED = [
    ("post", "/api/auth/logout", None),
    ("put", "/api/user/profile", {"username": "grace"}),
    ("put", "/api/user/password", {"password": "new-secret"}),
]


class TestMissingToken:
    """Protected routes without a bearer token are 401 and never reach the backend."""

    @pytest.mark.parametrize("method,path,body", PROTECTED)
    def test_no_header(self, client, backend, method, path, body) -> None:
        resp = client.request(method.upper(), path, json=body)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Missing authentication token"}
        assert resp.headers["www-authenticate"] == "Bearer"
        assert backend.calls == []

    @pytest.mark.parametrize("header", ["Bearer", "Bearer   ", "Basic dXNlcjpwYXNz", "token-without-scheme"])
    def test_malformed_header(self, client, backend, header) -> None:
        resp = client.put("/api/user/profile", json={"username": "grace"}, headers={"Authorization": header})
        assert resp.status_code == 401
        assert backend.calls == []


class TestTokenResolution:
    @pytest.mark.parametrize("method,path,body", PROTECTED)
    def test_rejected_token_is_403(self, client, backend, method, path, body) -> None:
        resp = client.request(method.upper(), path, json=body, headers={"Authorization": "Bearer not-a-live-token"})
        assert resp.status_code == 403
        assert resp.json() == {"error": "Invalid or expired token"}
        assert [op for op, _ in backend.calls] == ["get_user"]

    def test_backend_failure_is_500(self, client, backend, auth_headers) -> None:
        backend.fail_with["get_user"] = ConnectionError("connect timeout to auth.example.co")
        resp = client.put("/api/user/profile", json={"username": "grace"}, headers=auth_headers)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Authentication error"}
        assert "auth.example.co" not in resp.text
        assert backend.called("update_user") == []

    def test_get_user_returning_nothing_is_403(self, client, backend, auth_headers) -> None:
        async def no_user(token):
            return None

        backend.get_user = no_user
        resp = client.put("/api/user/profile", json={}, headers=auth_headers)
        assert resp.status_code == 403

    def test_accepted_token_reaches_handler(self, client, backend, user, auth_headers) -> None:
        resp = client.put("/api/user/profile", json={"full_name": "Ada Lovelace"}, headers=auth_headers)
        assert resp.status_code == 200
        identity_id, _password, _data = backend.called("update_user")[0]
        assert identity_id == user["id"]

    def test_lowercase_scheme_accepted(self, client, backend, user) -> None:
        token = backend.issue_token(user["id"])
        resp = client.put("/api/user/password", json={"password": "n3w-secret"}, headers={"Authorization": f"bearer {token}"})
        assert resp.status_code == 200


class TestTokenCache:
    """With TOKEN_CACHE_TTL_SECONDS > 0, repeat requests skip get_user."""

    @pytest.fixture
    def cached_client(self, backend, profiles):
        settings = Settings(_env_file=None, rate_limit_enabled=False, token_cache_ttl_seconds=60)
        with TestClient(create_app(backend=backend, profiles=profiles, settings=settings)) as c:
            yield c

    def test_second_request_served_from_cache(self, cached_client, backend, auth_headers) -> None:
        for _ in range(3):
            resp = cached_client.put("/api/user/profile", json={"phone": "555-0100"}, headers=auth_headers)
            assert resp.status_code == 200
        assert len(backend.called("get_user")) == 1

    def test_logout_evicts_cached_token(self, cached_client, backend, auth_headers) -> None:
        assert cached_client.put("/api/user/profile", json={}, headers=auth_headers).status_code == 200
        assert cached_client.post("/api/auth/logout", headers=auth_headers).status_code == 200
        resp = cached_client.post("/api/auth/logout", headers=auth_headers)
        assert resp.status_code == 403

    def test_global_logout_evicts_other_sessions(self, cached_client, backend, user, auth_headers) -> None:
        other = {"Authorization": f"Bearer {backend.issue_token(user['id'])}"}
        assert cached_client.put("/api/user/profile", json={}, headers=other).status_code == 200

        assert cached_client.post("/api/auth/logout", headers=auth_headers).status_code == 200

        resp = cached_client.put("/api/user/password", json={"password": "n3w-secret"}, headers=other)
        assert resp.status_code == 403
        assert len(backend.called("update_user")) == 1

    def test_local_logout_keeps_other_sessions_cached(self, backend, profiles, user, auth_headers) -> None:
        settings = Settings(_env_file=None, rate_limit_enabled=False, token_cache_ttl_seconds=60, sign_out_scope="local")
        other_token = backend.issue_token(user["id"])
        with TestClient(create_app(backend=backend, profiles=profiles, settings=settings)) as c:
            assert c.put("/api/user/profile", json={}, headers={"Authorization": f"Bearer {other_token}"}).status_code == 200
            assert c.post("/api/auth/logout", headers=auth_headers).status_code == 200
            assert len(c.app.state.token_cache) == 1

    def test_cache_disabled_by_default(self, client, backend, auth_headers) -> None:
        for _ in range(2):
            client.put("/api/user/profile", json={}, headers=auth_headers)
        assert len(backend.called("get_user")) == 2


@pytest.mark.parametrize(
    "header,expected",
    [
        (None, None),
        ("", None),
        ("Bearer abc.def.ghi", "abc.def.ghi"),
        ("bearer abc", "abc"),
        ("  Bearer   abc  ", "abc"),
        ("Bearer", None),
        ("Token abc", None),
    ],
)
def test_extract_bearer_token(header, expected) -> None:
    assert extract_bearer_token(header) == expected
