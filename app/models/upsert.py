"""
Dialect-native INSERT .. ON CONFLICT.

PostgreSQL in production, SQLite in tests. Both dialects expose the same
on_conflict_do_update() API on their insert constructs.
"""
from __future__ import annotations

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(db: AsyncSession):
    name = db.get_bind().dialect.name
    try:
        return _INSERTS[name]
    except KeyError:
        raise NotImplementedError(f"Upsert is not supported on dialect '{name}'")
