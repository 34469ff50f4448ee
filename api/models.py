"""
API request and response models for authrelay REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in identity/models.py
and profiles/models.py, which own the internal representation.

Request fields are all optional at the schema level: "required" checks happen
in the route handlers so a missing field yields 400 with a specific message
and the backend is never called.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: Optional[str] = None
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register. email and password are required."""

    email: Optional[str] = None
    password: Optional[str] = None
    username: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/user/profile.

    Fields left out are not sent to the backend; the backend merges metadata.
    """

    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    phone: Optional[str] = None


class PasswordUpdate(BaseModel):
    """Request body for PUT /api/user/password."""

    password: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class UserResponse(MessageResponse):
    """user is the backend's user record, echoed unchanged (may be null)."""

    user: Optional[dict[str, Any]] = None


class LoginResponse(UserResponse):
    session: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    error: str


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
