"""
tests/conftest.py -- Shared test fixtures for authrelay.

This module provides:
  - FakeIdentityBackend: in-memory IdentityBackend that records every call,
    issues real (HS256) JWTs, and revokes them on sign_out
  - FakeProfileStore: in-memory mirror store that can be told to fail
  - client: TestClient over create_app() with both fakes injected

Design: the fakes implement the same protocol as the Supabase adapter, so
tests hit the real route handlers, Auth Gate, and exception handlers with no
network access. Each test gets fresh fakes; nothing leaks between tests.

RATE_LIMIT_ENABLED must be set before any api import: the shared limiter
reads it once when api.limiter is first imported.
"""

from __future__ import annotations

import os
import time
import uuid
from collections.abc import Generator
from typing import Any, Optional

# CRITICAL: set before importing api/ so the module-level limiter is disabled.
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from api.main import create_app
from core.config import Settings
from identity.backend import BackendRejection
from identity.models import AuthResult, Identity
from profiles.models import ProfileRecord

TEST_SECRET = "test-secret-not-used-for-verification"

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeIdentityBackend:
    """In-memory identity backend.

    fail_with maps an operation name to an exception the next call raises,
    e.g. backend.fail_with["get_user"] = ConnectionError("backend down").
    """

    def __init__(self) -> None:
        self.users: dict[str, dict[str, Any]] = {}  # email -> record
        self.passwords: dict[str, str] = {}  # user id -> password
        self.active_tokens: dict[str, str] = {}  # access token -> user id
        self.calls: list[tuple[str, tuple]] = []
        self.fail_with: dict[str, Exception] = {}
        self.return_no_user_on_sign_up = False

    # -- helpers ---------------------------------------------------------

    def _record(self, op: str, *args: Any) -> None:
        self.calls.append((op, args))
        if op in self.fail_with:
            raise self.fail_with.pop(op)

    def called(self, op: str) -> list[tuple]:
        return [args for name, args in self.calls if name == op]

    def _by_id(self, user_id: str) -> dict[str, Any]:
        return next(u for u in self.users.values() if u["id"] == user_id)

    def add_user(self, email: str, password: str, **metadata: Any) -> dict[str, Any]:
        record = {
            "id": str(uuid.uuid4()),
            "email": email,
            "aud": "authenticated",
            "role": "authenticated",
            "user_metadata": dict(metadata),
        }
        self.users[email] = record
        self.passwords[record["id"]] = password
        return record

    def issue_token(self, user_id: str, expires_in: int = 3600) -> str:
        token = jwt.encode(
            {"sub": user_id, "exp": int(time.time()) + expires_in, "jti": uuid.uuid4().hex},
            TEST_SECRET,
            algorithm="HS256",
        )
        self.active_tokens[token] = user_id
        return token

    # -- IdentityBackend -------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        self._record("sign_in_with_password", email, password)
        user = self.users.get(email)
        if user is None or self.passwords[user["id"]] != password:
            raise BackendRejection("Invalid login credentials", status=400)
        token = self.issue_token(user["id"])
        session = {
            "access_token": token,
            "refresh_token": uuid.uuid4().hex,
            "token_type": "bearer",
            "expires_in": 3600,
        }
        return AuthResult(user=dict(user), session=session)

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> AuthResult:
        self._record("sign_up", email, password, metadata)
        if email in self.users:
            raise BackendRejection("User already registered", status=422)
        if len(password) < 6:
            raise BackendRejection("Password should be at least 6 characters.", status=422)
        record = self.add_user(email, password, **metadata)
        if self.return_no_user_on_sign_up:
            return AuthResult(user=None)
        return AuthResult(user=dict(record))

    async def sign_out(self, access_token: str) -> None:
        self._record("sign_out", access_token)
        user_id = self.active_tokens.get(access_token)
        if user_id is None:
            raise BackendRejection("Session not found", status=404)
        # scope=global: every session of the user ends.
        for token, owner in list(self.active_tokens.items()):
            if owner == user_id:
                del self.active_tokens[token]

    async def update_user(
        self,
        identity: Identity,
        *,
        password: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        self._record("update_user", identity.id, password, data)
        record = self._by_id(identity.id)
        if password is not None:
            if len(password) < 6:
                raise BackendRejection("Password should be at least 6 characters.", status=422)
            self.passwords[identity.id] = password
        if data is not None:
            record["user_metadata"].update(data)
        return dict(record)

    async def get_user(self, access_token: str) -> Optional[Identity]:
        self._record("get_user", access_token)
        user_id = self.active_tokens.get(access_token)
        if user_id is None:
            raise BackendRejection("invalid JWT: unable to parse or verify signature", status=403)
        return Identity.from_record(dict(self._by_id(user_id)))


class FakeProfileStore:
    """In-memory profile mirror. Set fail=True to make every write raise."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.inserts: list[ProfileRecord] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    async def insert(self, record: ProfileRecord) -> None:
        self.inserts.append(record)
        if self.fail:
            raise RuntimeError("duplicate key value violates unique constraint \"profiles_pkey\"")
        self.rows[record.id] = record.to_row()

    async def update(self, profile_id: str, fields: dict[str, Any]) -> None:
        self.updates.append((profile_id, fields))
        if self.fail:
            raise RuntimeError("relation \"profiles\" does not exist")
        self.rows.setdefault(profile_id, {"id": profile_id}).update(fields)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def backend() -> FakeIdentityBackend:
    return FakeIdentityBackend()


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any developer .env file."""
    return Settings(_env_file=None, rate_limit_enabled=False)


@pytest.fixture
def client(backend, profiles, settings) -> Generator[TestClient, None, None]:
    """TestClient over the real app with fake collaborators injected."""
    app = create_app(backend=backend, profiles=profiles, settings=settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def user(backend) -> dict[str, Any]:
    """A registered user: ada@example.com / correct-horse."""
    return backend.add_user("ada@example.com", "correct-horse", username="ada")


@pytest.fixture
def auth_headers(backend, user) -> dict[str, str]:
    """Authorization header carrying a live token for `user`."""
    return {"Authorization": f"Bearer {backend.issue_token(user['id'])}"}
