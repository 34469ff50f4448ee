"""
auth/dependencies.py -- The Auth Gate: FastAPI Depends() helpers for protected routes.

get_current_identity() runs before every protected handler:
  1. Read `Authorization: Bearer <token>`. Missing header, another scheme, or
     an empty token -> 401. The backend is never called.
  2. Ask the identity backend to resolve the token (or take it from the
     token cache when enabled).
       - backend rejects it, or returns no user -> 403
       - the call itself fails (network, timeout, bad response) -> 500
  3. Attach the identity and raw token to request.state and return the
     identity to the handler.

No signature or expiry checks happen locally. The token is opaque.

Layer rule: no imports from api/. The backend and cache are read from
app.state, where api/main.py put them at startup.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException, Request

from auth.token_cache import TokenCache
from identity.backend import BackendRejection, IdentityBackend
from identity.models import Identity

logger = logging.getLogger("authrelay.auth")


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return <token> from a `Bearer <token>` header value, or None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


async def get_current_identity(request: Request) -> Identity:
    """Require a bearer token the identity backend accepts.

    Use as a FastAPI dependency:
        @router.put("/profile")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise HTTPException(
            status_code=401,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    backend: IdentityBackend = request.app.state.backend
    cache: TokenCache = request.app.state.token_cache

    identity = cache.get(token)
    if identity is None:
        try:
            identity = await backend.get_user(token)
        except BackendRejection as exc:
            logger.info("Token rejected by backend: %s", exc.message)
            raise HTTPException(status_code=403, detail="Invalid or expired token") from exc
        except Exception as exc:
            logger.exception("Token resolution failed")
            raise HTTPException(status_code=500, detail="Authentication error") from exc
        if identity is None:
            raise HTTPException(status_code=403, detail="Invalid or expired token")
        cache.set(token, identity)

    request.state.identity = identity
    request.state.access_token = token
    return identity


def get_access_token(request: Request) -> str:
    """Return the bearer token the Auth Gate accepted for this request.

    Only valid after get_current_identity has run (declare it first).
    """
    return request.state.access_token
