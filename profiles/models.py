"""
profiles/models.py -- Domain dataclass for the profile mirror.

A ProfileRecord is a denormalized, best-effort copy of select identity fields.
It is never the source of truth and never read back by this service.
"""

from dataclasses import asdict, dataclass
from typing import Any, Optional

# Columns the mirror accepts on update. Anything else is dropped before the
# store sees it.
UPDATABLE_FIELDS = ("username", "full_name", "avatar_url", "phone", "updated_at")


@dataclass
class ProfileRecord:
    """Mirror row keyed by the identity id (primary key == identity id)."""

    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_row(self) -> dict[str, Any]:
        """Return the columns that are set. Unset columns are omitted, not nulled."""
        return {k: v for k, v in asdict(self).items() if v is not None}
