"""
api/routes/auth.py -- Session endpoints: login, registration, logout.

Routes:
  POST /api/auth/login     -- password sign-in; returns user + session
  POST /api/auth/register  -- create an identity; returns user (no session)
  POST /api/auth/logout    -- revoke the caller's session (requires auth)

Every handler follows the same shape:
  validate required fields (400, backend untouched)
  -> call the identity backend
  -> BackendRejection becomes 400/401 with the backend's message
  -> anything unexpected is logged and becomes a generic 500

Security:
  Login and register are rate-limited per client IP.
  Cache-Control: no-store on login responses (they carry tokens).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, MessageResponse, RegisterRequest, UserResponse
from auth.dependencies import get_access_token, get_current_identity
from core.config import get_settings
from identity.backend import BackendRejection, IdentityBackend
from identity.models import Identity
from profiles.mirror import mirror_insert
from profiles.models import ProfileRecord

logger = logging.getLogger("authrelay.api")

_settings = get_settings()

# Auth policy:
# - POST /api/auth/login:     public
# - POST /api/auth/register:  public
# - POST /api/auth/logout:    requires auth (get_current_identity)
router = APIRouter()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=LoginResponse)
async def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Sign in with email and password; relay the backend's user and session unchanged."""
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    backend: IdentityBackend = request.app.state.backend
    try:
        result = await backend.sign_in_with_password(body.email, body.password)
    except BackendRejection as exc:
        raise HTTPException(status_code=401, detail=exc.message) from exc
    except Exception as exc:
        logger.exception("Server error during login")
        raise HTTPException(status_code=500, detail="Server error during login") from exc

    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(message="Login successful", user=result.user, session=result.session)


@limiter.limit(_settings.register_rate_limit)
@router.post("/auth/register", response_model=UserResponse, status_code=201)
async def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create an identity, then mirror it into the profile store best-effort.

    A backend that accepts the sign-up without returning a user (e.g. email
    confirmation pending) still yields 201; the mirror insert is skipped
    because there is no id to key it on.
    """
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    backend: IdentityBackend = request.app.state.backend
    created_at = _now_iso()
    profile = body.model_dump(include={"username", "full_name", "phone"}, exclude_unset=True)

    try:
        result = await backend.sign_up(body.email, body.password, {**profile, "created_at": created_at})
    except BackendRejection as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except Exception as exc:
        logger.exception("Server error during registration")
        raise HTTPException(status_code=500, detail="Server error during registration") from exc

    if result.user_id:
        await mirror_insert(
            request.app.state.profiles,
            ProfileRecord(id=result.user_id, email=body.email, created_at=created_at, **profile),
        )

    logger.info("Registered identity %s", result.user_id or "(pending confirmation)")
    return UserResponse(message="Registration successful", user=result.user)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    token: str = Depends(get_access_token),
) -> MessageResponse:
    """Revoke the caller's session at the backend.

    No session state is held here; the client must discard its own tokens.
    """
    backend: IdentityBackend = request.app.state.backend
    try:
        await backend.sign_out(token)
    except BackendRejection as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except Exception as exc:
        logger.exception("Server error during logout")
        raise HTTPException(status_code=500, detail="Server error during logout") from exc
    finally:
        cache = request.app.state.token_cache
        cache.evict(token)
        # global/others scopes end the user's other sessions too.
        if request.app.state.settings.sign_out_scope != "local":
            cache.evict_identity(identity.id)

    logger.info("Logged out identity %s", identity.id)
    return MessageResponse(message="Logout successful")
