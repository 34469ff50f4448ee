"""
profiles/mirror.py -- Fire-and-observe writes to the profile mirror.

Both functions await the store, log any failure with full detail, and report
the outcome as a bool. They never raise: a mirror failure must not travel
through the same channel as the identity backend's errors, and must not
change an HTTP response that has already been decided.

Registration succeeding at the identity layer while the mirror insert fails
is accepted best-effort behaviour, not a transaction to roll back.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from profiles.models import ProfileRecord
from profiles.store import ProfileStore

logger = logging.getLogger("authrelay.profiles")


async def mirror_insert(store: Optional[ProfileStore], record: ProfileRecord) -> bool:
    """Insert a mirror row. Returns False (and logs) on any failure."""
    if store is None:
        return False
    try:
        await store.insert(record)
    except Exception:
        logger.exception("Error creating profile record for %s", record.id)
        return False
    return True


async def mirror_update(store: Optional[ProfileStore], profile_id: str, fields: dict[str, Any]) -> bool:
    """Update a mirror row. Returns False (and logs) on any failure."""
    if store is None:
        return False
    try:
        await store.update(profile_id, fields)
    except Exception:
        logger.exception("Error updating profile record for %s", profile_id)
        return False
    return True
