"""The subset of the async S3 client used by the S3 driver.

Matches the ``aioboto3``/``aiobotocore`` S3 client call signatures, so a real
client or a test double can be injected interchangeably.
"""

from typing import Any, Protocol


class ObjectClient(Protocol):
    """Async S3 object operations."""

    async def get_object(self, **kwargs: Any) -> dict[str, Any]:
        """Fetch an object. Raises ``ClientError`` for missing/not-modified."""
        ...

    async def head_object(self, **kwargs: Any) -> dict[str, Any]:
        """Fetch an object's metadata. Raises ``ClientError`` when missing."""
        ...

    async def put_object(self, **kwargs: Any) -> dict[str, Any]:
        """Store an object."""
        ...

    async def delete_object(self, **kwargs: Any) -> dict[str, Any]:
        """Delete an object. Succeeds for missing objects."""
        ...

    async def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        """List one page of objects."""
        ...
