"""In-memory key-value storage."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from s3kv.expiry import Clock, utcnow, validate_ttl


@dataclass
class MemoryEntry:
    """A stored value with optional expiration."""

    value: bytes
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return now > self.expires_at


class MemoryKVStore:
    """In-memory key-value store with the same TTL contract as the S3 driver.

    Suitable for development and testing. Data is lost on restart.
    Keys are listed in insertion order.
    """

    name = "memory"

    def __init__(self, ttl: int | str = 0, clock: Clock | None = None, **kwargs: Any) -> None:
        """Initialize memory KV store.

        Args:
            ttl: Default seconds-to-live, 0 for no expiry
            clock: Returns the current UTC time
            **kwargs: Ignored (for compatibility with other drivers)
        """
        self.ttl = validate_ttl(ttl)
        self._clock = clock or utcnow
        self._data: dict[str, MemoryEntry] = {}
        self._lock = asyncio.Lock()

    async def get_item_raw(self, key: str) -> bytes | None:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._data[key]
                return None
            return entry.value

    async def get_item(self, key: str) -> str | None:
        value = await self.get_item_raw(key)
        return None if value is None else value.decode("utf-8")

    async def has_item(self, key: str) -> bool:
        return await self.get_item_raw(key) is not None

    async def set_item(self, key: str, value: str | bytes, ttl: int | str | None = None) -> None:
        effective_ttl = self.ttl if ttl is None else validate_ttl(ttl)
        body = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        expires_at = None
        if effective_ttl > 0:
            expires_at = self._clock() + timedelta(seconds=effective_ttl)
        async with self._lock:
            # Re-insert so listing order follows the latest write
            self._data.pop(key, None)
            self._data[key] = MemoryEntry(value=body, expires_at=expires_at)

    async def remove_item(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def get_keys(self) -> list[str]:
        async with self._lock:
            now = self._clock()
            expired = [k for k, v in self._data.items() if v.is_expired(now)]
            for k in expired:
                del self._data[k]
            return list(self._data)

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()
