"""
auth/token_cache.py -- Short-lived in-process cache of validated bearer tokens.

Every protected request otherwise costs one round trip to the identity
backend. With TOKEN_CACHE_TTL_SECONDS > 0, a token the backend has accepted
is remembered for at most that many seconds, and never past the token's own
expiry.

Expiry comes from the token's `exp` claim, read WITHOUT verifying the
signature (python-jose get_unverified_claims). The claim is only used to
shorten the cache lifetime; the backend already validated the token. Tokens
that are not JWTs or carry no `exp` are never cached.

Tokens are held in memory only, never written to disk. Logout must call
evict() so a revoked token stops resolving immediately, and evict_identity()
when the sign-out scope also revokes the user's other sessions.

Usage:
    cache = TokenCache(ttl=30)
    cache.set(token, identity)
    cache.get(token)          # Identity or None
    cache.evict(token)
    cache.evict_identity(identity.id)
    cache.purge_expired()     # call periodically to trim old entries
"""

from __future__ import annotations

import hashlib
import time
from typing import Callable, Optional

from jose import jwt
from jose.exceptions import JOSEError

from identity.models import Identity


def _key(token: str) -> str:
    # Index by digest so raw bearer tokens don't sit in the dict keys.
    return hashlib.sha256(token.encode()).hexdigest()


def token_expiry(token: str) -> Optional[float]:
    """Return the token's `exp` claim as a unix timestamp, or None if unreadable."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JOSEError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, (int, float)) and not isinstance(exp, bool):
        return float(exp)
    return None


class TokenCache:
    def __init__(self, ttl: int = 0, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[Identity, float]] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl > 0

    def get(self, token: str) -> Optional[Identity]:
        """Return the cached identity for token if present and not expired."""
        if not self.enabled:
            return None
        key = _key(token)
        entry = self._entries.get(key)
        if entry is None:
            return None
        identity, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return identity

    def set(self, token: str, identity: Identity) -> bool:
        """Remember identity for token. Returns False when the token is not cacheable."""
        if not self.enabled:
            return False
        exp = token_expiry(token)
        if exp is None:
            return False
        expires_at = min(self._clock() + self.ttl, exp)
        if expires_at <= self._clock():
            return False
        self._entries[_key(token)] = (identity, expires_at)
        return True

    def evict(self, token: str) -> None:
        self._entries.pop(_key(token), None)

    def evict_identity(self, identity_id: str) -> int:
        """Drop every entry resolving to identity_id. Returns number of entries removed."""
        stale = [k for k, (identity, _) in self._entries.items() if identity.id == identity_id]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def purge_expired(self) -> int:
        """Drop all expired entries. Returns number of entries removed."""
        now = self._clock()
        stale = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)
