"""KVStore protocol for key-value storage drivers."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class KVStore(Protocol):
    """Protocol for key-value storage drivers (S3, in-memory)."""

    async def has_item(self, key: str) -> bool:
        """Check whether a live value exists for a key."""
        ...

    async def get_item(self, key: str) -> str | None:
        """Get a value by key. Returns None if not found or expired."""
        ...

    async def set_item(self, key: str, value: str | bytes, ttl: int | None = None) -> None:
        """Set a value with optional TTL override in seconds."""
        ...

    async def remove_item(self, key: str) -> None:
        """Delete a key. No-op if key doesn't exist."""
        ...

    async def get_keys(self) -> list[str]:
        """List all live keys."""
        ...

    async def clear(self) -> None:
        """Delete all keys."""
        ...
