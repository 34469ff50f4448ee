"""
api/routes/users.py -- Self-service account endpoints (all require auth).

Routes:
  PUT /api/user/profile   -- update profile metadata; mirror best-effort
  PUT /api/user/password  -- set a new password
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import MessageResponse, PasswordUpdate, ProfileUpdate, UserResponse
from auth.dependencies import get_current_identity
from identity.backend import BackendRejection, IdentityBackend
from identity.models import Identity
from profiles.mirror import mirror_update

logger = logging.getLogger("authrelay.api")

router = APIRouter()


@router.put("/user/profile", response_model=UserResponse)
async def update_profile(
    request: Request,
    body: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
) -> UserResponse:
    """Update the caller's profile metadata.

    Omitted fields are not sent, so they are neither cleared nor merged here:
    keeping them intact is the backend's partial-update contract. An explicit
    null is sent as null and clears the field.
    """
    backend: IdentityBackend = request.app.state.backend
    metadata = {**body.model_dump(exclude_unset=True), "updated_at": datetime.now(timezone.utc).isoformat()}

    try:
        user = await backend.update_user(identity, data=metadata)
    except BackendRejection as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except Exception as exc:
        logger.exception("Server error during profile update")
        raise HTTPException(status_code=500, detail="Server error during profile update") from exc

    await mirror_update(request.app.state.profiles, identity.id, metadata)
    return UserResponse(message="Profile updated successfully", user=user)


@router.put("/user/password", response_model=MessageResponse)
async def update_password(
    request: Request,
    body: PasswordUpdate,
    identity: Identity = Depends(get_current_identity),
) -> MessageResponse:
    """Set a new password for the caller. No identity or session is returned."""
    if not body.password:
        raise HTTPException(status_code=400, detail="New password is required")

    backend: IdentityBackend = request.app.state.backend
    try:
        await backend.update_user(identity, password=body.password)
    except BackendRejection as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except Exception as exc:
        logger.exception("Server error during password update")
        raise HTTPException(status_code=500, detail="Server error during password update") from exc

    logger.info("Password updated for identity %s", identity.id)
    return MessageResponse(message="Password updated successfully")
