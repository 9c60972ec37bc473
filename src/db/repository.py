"""Repository utilities for persisting key-value state."""

from __future__ import annotations

from db.base import AsyncSessionFactory
from db.models import KeyValueEntry


class SqlKeyValueStore:
    """Async key-value store backed by the `key_values` table."""

    async def get(self, key: str) -> str | None:
        async with AsyncSessionFactory() as session:
            entry = await session.get(KeyValueEntry, key)
            return entry.value if entry is not None else None

    async def set(self, key: str, value: str) -> None:
        async with AsyncSessionFactory() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            await session.commit()

    async def delete(self, key: str) -> None:
        async with AsyncSessionFactory() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                return
            await session.delete(entry)
            await session.commit()
