"""
identity/supabase.py -- IdentityBackend implemented against Supabase Auth.

Uses the async supabase client (acreate_client) so every backend call
suspends the request instead of blocking a worker thread. Every call is
bounded by BACKEND_TIMEOUT_SECONDS; a timeout surfaces as TimeoutError and
the route layer turns it into a 500.

Session handling:
  supabase-py listens to its own auth events: once a client signs a user in,
  it rewrites the client's Authorization header (shared with auth.admin) to
  that user's access token. Two kinds of client are therefore kept apart:

    admin client   -- built once, shared by all requests, never signs anyone
                      in. Serves every token-scoped operation:
                        get_user    -> auth.get_user(jwt)
                        sign_out    -> auth.admin.sign_out(jwt, scope)
                        update_user -> auth.admin.update_user_by_id(id, attrs)
    session client -- a fresh client per sign_in_with_password / sign_up
                      call, discarded afterwards.

  The admin calls require SUPABASE_KEY to be a service-role key.

Error mapping:
  AuthRetryableError (network failure, 502/503/504) is re-raised untouched.
  Every other AuthError becomes BackendRejection with the backend message.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from supabase import AsyncClient, AsyncClientOptions, AuthError, AuthRetryableError, acreate_client

from core.config import Settings
from identity.backend import BackendRejection
from identity.models import AuthResult, Identity

logger = logging.getLogger("authrelay.identity")

T = TypeVar("T")


def _dump(model: Any) -> Optional[dict[str, Any]]:
    """Convert a supabase_auth pydantic model to a JSON-safe dict (None stays None)."""
    if model is None:
        return None
    return model.model_dump(mode="json")


async def create_supabase_client(settings: Settings) -> AsyncClient:
    """Build an async Supabase client that keeps no session state of its own."""
    settings.require_backend_credentials()
    return await acreate_client(
        settings.supabase_url,
        settings.supabase_key,
        options=AsyncClientOptions(auto_refresh_token=False, persist_session=False),
    )


SessionClientFactory = Callable[[], Awaitable[AsyncClient]]


class SupabaseIdentityBackend:
    """Adapter from the IdentityBackend protocol to supabase.auth.

    Usage:
        backend = await SupabaseIdentityBackend.create(get_settings())
        result = await backend.sign_in_with_password("a@b.c", "secret")

    Args:
        client:          admin client; must never be used to sign a user in.
        session_clients: coroutine factory returning a fresh client for each
                         sign-in or sign-up.
    """

    def __init__(
        self,
        client: AsyncClient,
        session_clients: SessionClientFactory,
        timeout: float = 10.0,
        sign_out_scope: str = "global",
    ) -> None:
        self._client = client
        self._session_clients = session_clients
        self._timeout = timeout
        self._sign_out_scope = sign_out_scope

    @classmethod
    async def create(cls, settings: Settings) -> SupabaseIdentityBackend:
        client = await create_supabase_client(settings)
        logger.info("Supabase identity backend initialized for %s", settings.supabase_url)
        return cls(
            client,
            functools.partial(create_supabase_client, settings),
            timeout=settings.backend_timeout_seconds,
            sign_out_scope=settings.sign_out_scope,
        )

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except AuthRetryableError:
            raise
        except AuthError as exc:
            logger.info("Backend rejected %s: %s", operation, exc.message)
            raise BackendRejection(exc.message, status=getattr(exc, "status", None)) from exc
        except asyncio.TimeoutError:
            logger.error("Backend call %s timed out after %.1fs", operation, self._timeout)
            raise

    # ------------------------------------------------------------------
    # IdentityBackend
    # ------------------------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        session_client = await self._session_clients()
        response = await self._call(
            "sign_in_with_password",
            session_client.auth.sign_in_with_password({"email": email, "password": password}),
        )
        return AuthResult(user=_dump(response.user), session=_dump(response.session))

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> AuthResult:
        session_client = await self._session_clients()
        response = await self._call(
            "sign_up",
            session_client.auth.sign_up({"email": email, "password": password, "options": {"data": metadata}}),
        )
        return AuthResult(user=_dump(response.user))

    async def sign_out(self, access_token: str) -> None:
        await self._call("sign_out", self._client.auth.admin.sign_out(access_token, self._sign_out_scope))

    async def update_user(
        self,
        identity: Identity,
        *,
        password: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        attributes: dict[str, Any] = {}
        if password is not None:
            attributes["password"] = password
        if data is not None:
            attributes["user_metadata"] = data
        response = await self._call(
            "update_user",
            self._client.auth.admin.update_user_by_id(identity.id, attributes),
        )
        return _dump(response.user)

    async def get_user(self, access_token: str) -> Optional[Identity]:
        response = await self._call("get_user", self._client.auth.get_user(access_token))
        if response is None or response.user is None:
            return None
        return Identity.from_record(_dump(response.user))
