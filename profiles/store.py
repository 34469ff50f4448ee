"""
profiles/store.py -- Persistence for the profile mirror.

Two interchangeable stores implement the same two-method interface:

  SupabaseProfileStore -- writes to a table in the Supabase project through
      the async PostgREST client. This is the default.
  SqlProfileStore      -- SQLAlchemy Core repository for a mirror kept in any
      SQL database (PROFILE_STORE_URL). Queries run in a worker thread so the
      event loop is never blocked.

Stores raise on failure. Swallowing errors is the caller's decision
(profiles/mirror.py), never the store's.

Security:
  All SQL uses bound parameters. Column names are restricted to
  UPDATABLE_FIELDS before any update is built.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from sqlalchemy import Column, MetaData, String, Table, create_engine, event
from sqlalchemy.engine import Engine
from supabase import AsyncClient

from profiles.models import UPDATABLE_FIELDS, ProfileRecord

logger = logging.getLogger("authrelay.profiles")


class ProfileStore(Protocol):
    async def insert(self, record: ProfileRecord) -> None: ...

    async def update(self, profile_id: str, fields: dict[str, Any]) -> None: ...


def _updatable(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}


# ---------------------------------------------------------------------------
# Supabase table
# ---------------------------------------------------------------------------


class SupabaseProfileStore:
    """Profile mirror backed by a Supabase (PostgREST) table.

    The client passed in must be dedicated to data access: a client that has
    performed a sign-in would send that user's JWT with every table write.
    """

    def __init__(self, client: AsyncClient, table: str = "profiles") -> None:
        self._client = client
        self._table = table

    async def insert(self, record: ProfileRecord) -> None:
        await self._client.table(self._table).insert(record.to_row()).execute()

    async def update(self, profile_id: str, fields: dict[str, Any]) -> None:
        values = _updatable(fields)
        if not values:
            return
        await self._client.table(self._table).update(values).eq("id", profile_id).execute()


# ---------------------------------------------------------------------------
# SQL database (SQLAlchemy Core)
# ---------------------------------------------------------------------------

_metadata = MetaData()

_profiles = Table(
    "profiles",
    _metadata,
    Column("id", String(64), primary_key=True),  # identity id from the backend
    Column("username", String(255)),
    Column("full_name", String(255)),
    Column("email", String(320)),
    Column("phone", String(32)),
    Column("avatar_url", String(2048)),
    Column("created_at", String(32)),
    Column("updated_at", String(32)),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so mirror writes don't block concurrent readers."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class SqlProfileStore:
    """Repository for ProfileRecord rows in a SQL database.

    Usage:
        store = SqlProfileStore("sqlite:///profiles.db")
        await store.insert(ProfileRecord(id="a1b2", username="ada"))
        await store.update("a1b2", {"full_name": "Ada Lovelace"})
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    async def insert(self, record: ProfileRecord) -> None:
        await asyncio.to_thread(self._insert, record)

    async def update(self, profile_id: str, fields: dict[str, Any]) -> None:
        values = _updatable(fields)
        if not values:
            return
        await asyncio.to_thread(self._update, profile_id, values)

    def _insert(self, record: ProfileRecord) -> None:
        with self.engine.begin() as conn:
            conn.execute(_profiles.insert().values(**record.to_row()))

    def _update(self, profile_id: str, values: dict[str, Any]) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(_profiles.update().where(_profiles.c.id == profile_id).values(**values))
        if result.rowcount == 0:
            logger.debug("No mirror row for %s; update skipped", profile_id)

    def close(self) -> None:
        self.engine.dispose()
