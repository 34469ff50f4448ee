"""
identity/models.py -- Domain dataclasses for identities returned by the backend.

Pattern: Data class (pure data container, zero logic beyond convenience
accessors). The backend owns the user record; these classes only carry it
between the backend adapter and the route layer.

Layer rule: no imports from api/, auth/, or profiles/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Identity:
    """A user resolved by the identity backend.

    raw is the full user record exactly as the backend returned it
    (JSON-serializable). Handlers echo raw to clients unchanged; id and email
    are lifted out for the places that need them.
    """

    id: str
    email: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Identity:
        return cls(id=str(record["id"]), email=record.get("email"), raw=record)


@dataclass
class AuthResult:
    """Outcome of a sign-in or sign-up call.

    user is None when the backend accepted the request without returning a
    user (e.g. sign-up pending email confirmation). session is None for
    sign-up: registration never implies login.
    """

    user: Optional[dict[str, Any]] = None
    session: Optional[dict[str, Any]] = None

    @property
    def user_id(self) -> Optional[str]:
        if not self.user or not self.user.get("id"):
            return None
        return str(self.user["id"])
