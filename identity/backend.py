"""
identity/backend.py -- The interface route handlers use to reach the identity backend.

Pattern: Protocol (structural typing). Handlers depend on IdentityBackend
only, so the Supabase adapter can be swapped for an in-memory fake in tests
without any network access.

Error contract:
  BackendRejection -- the backend answered and refused (bad credentials,
      duplicate account, weak password, expired token). Its message is safe
      to relay to the caller verbatim.
  Anything else    -- transport failure, timeout, malformed response. Route
      handlers turn these into a generic 500.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from identity.models import AuthResult, Identity


class BackendRejection(Exception):
    """The identity backend reported a domain error."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


@runtime_checkable
class IdentityBackend(Protocol):
    async def sign_in_with_password(self, email: str, password: str) -> AuthResult: ...

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> AuthResult: ...

    async def sign_out(self, access_token: str) -> None: ...

    async def update_user(
        self,
        identity: Identity,
        *,
        password: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> Optional[dict[str, Any]]: ...

    async def get_user(self, access_token: str) -> Optional[Identity]: ...
