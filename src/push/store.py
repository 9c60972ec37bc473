"""Small key-value persistence interface for registration state."""

from __future__ import annotations

from typing import Protocol


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None:  # pragma: no cover - protocol stub
        ...

    async def set(self, key: str, value: str) -> None:  # pragma: no cover - protocol stub
        ...

    async def delete(self, key: str) -> None:  # pragma: no cover - protocol stub
        ...


class InMemoryKeyValueStore:
    """Process-local store, used when no database is configured and in tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
