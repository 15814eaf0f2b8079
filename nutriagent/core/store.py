"""Keyed in-memory storage for sessions and tasks."""
from __future__ import annotations

import asyncio
from typing import Dict, Generic, Optional, Protocol, TypeVar

T = TypeVar("T")


class KeyValueStore(Protocol[T]):
    """Narrow storage interface used by the session and task layers."""

    async def get(self, key: str) -> Optional[T]: ...

    async def put(self, key: str, value: T) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryStore(Generic[T]):
    """Process-local store; contents are lost on restart."""

    def __init__(self) -> None:
        self._items: Dict[str, T] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[T]:
        async with self._lock:
            return self._items.get(key)

    async def put(self, key: str, value: T) -> None:
        async with self._lock:
            self._items[key] = value

    async def delete(self, key: str) -> None:
        """Remove the key if present."""
        async with self._lock:
            self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items
