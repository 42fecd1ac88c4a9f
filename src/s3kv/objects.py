"""Single-object operations against an S3 bucket.

Wraps the async S3 client and turns its responses and error codes into
plain result types: a missing object and a "not modified" conditional
read are results, not exceptions. All other client errors propagate
unchanged; retries and timeouts belong to the client's own configuration.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

import aioboto3
from botocore.exceptions import ClientError

from s3kv.config import S3Credentials
from s3kv.expiry import TTL_METADATA_KEY
from s3kv.observability import get_logger
from s3kv.protocols import ObjectClient

logger = get_logger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
NOT_MODIFIED_CODES = frozenset({"304", "NotModified"})


def error_code(error: ClientError) -> str:
    """Extract the S3 error code from a botocore ClientError."""
    code = error.response.get("Error", {}).get("Code")
    if code is None:
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return str(status) if status is not None else ""
    return str(code)


def _as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parsedate_to_datetime(str(value))
        except (TypeError, ValueError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def _read_body(body: Any) -> bytes:
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    async with body as stream:
        return await stream.read()


class FetchStatus(str, Enum):
    """Outcome of a fetch."""

    FOUND = "found"
    MISSING = "missing"
    NOT_MODIFIED = "not_modified"


@dataclass(frozen=True)
class StoredObject:
    """An object body with the metadata the expiry policies need."""

    name: str
    body: bytes
    last_modified: datetime | None = None
    expires: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def recorded_ttl(self) -> int | None:
        """TTL the object was written with, if recorded in its metadata."""
        raw = self.metadata.get(TTL_METADATA_KEY)
        if raw is None:
            return None
        try:
            ttl = int(raw)
        except ValueError:
            return None
        return ttl if ttl >= 0 else None


def _stored_object(name: str, body: bytes, response: dict[str, Any]) -> StoredObject:
    expires = _as_datetime(response.get("ExpiresString")) or _as_datetime(response.get("Expires"))
    return StoredObject(
        name=name,
        body=body,
        last_modified=_as_datetime(response.get("LastModified")),
        expires=expires,
        metadata=dict(response.get("Metadata") or {}),
    )


@dataclass(frozen=True)
class FetchResult:
    """Result of :meth:`ObjectStore.fetch`."""

    status: FetchStatus
    object: StoredObject | None = None

    @classmethod
    def found(cls, obj: StoredObject) -> "FetchResult":
        return cls(FetchStatus.FOUND, obj)

    @classmethod
    def missing(cls) -> "FetchResult":
        return cls(FetchStatus.MISSING)

    @classmethod
    def not_modified(cls) -> "FetchResult":
        return cls(FetchStatus.NOT_MODIFIED)


@dataclass(frozen=True)
class ListedObject:
    """One entry of a listing page."""

    name: str
    last_modified: datetime | None = None


@dataclass(frozen=True)
class ListPage:
    """One page of a listing. ``next_token`` is None on the last page."""

    objects: list[ListedObject]
    next_token: str | None = None


class ObjectStore:
    """Bucket-scoped get/put/delete/list over an async S3 client.

    The client is created lazily on first use and reused afterwards.
    Creation is guarded by a lock so concurrent first calls share one
    client. An injected client is used as-is and is never closed here.
    """

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        credentials: S3Credentials | None = None,
        client: ObjectClient | None = None,
        session: Any | None = None,
    ) -> None:
        """Initialize the object store.

        Args:
            bucket: Bucket name
            region: AWS region; the environment is used when None
            endpoint_url: Endpoint for S3-compatible services
            credentials: Static credentials; the environment is used when None
            client: Already-constructed async S3 client to use
            session: ``aioboto3.Session`` to create the client from
        """
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.credentials = credentials
        self._session = session
        self._client = client
        self._client_context: Any | None = None
        self._lock = asyncio.Lock()

    @property
    def owns_client(self) -> bool:
        return self._client_context is not None

    async def client(self) -> ObjectClient:
        """Return the shared client, creating it on first use."""
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is None:
                session = self._session or aioboto3.Session()
                kwargs: dict[str, Any] = {}
                if self.region:
                    kwargs["region_name"] = self.region
                if self.endpoint_url:
                    kwargs["endpoint_url"] = self.endpoint_url
                if self.credentials is not None:
                    kwargs["aws_access_key_id"] = self.credentials.access_key_id
                    kwargs["aws_secret_access_key"] = self.credentials.secret_access_key
                    if self.credentials.session_token:
                        kwargs["aws_session_token"] = self.credentials.session_token

                context = session.client("s3", **kwargs)
                self._client = await context.__aenter__()
                self._client_context = context
                logger.info(
                    "S3 client created",
                    context={"bucket": self.bucket, "region": self.region, "endpoint": self.endpoint_url},
                )
        return self._client

    async def close(self) -> None:
        """Close a client this store created. Injected clients are left open."""
        if self._client_context is not None:
            context, self._client_context = self._client_context, None
            self._client = None
            await context.__aexit__(None, None, None)
            logger.debug("S3 client closed", context={"bucket": self.bucket})

    async def __aenter__(self) -> "ObjectStore":
        await self.client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def fetch(self, name: str, if_modified_since: datetime | None = None) -> FetchResult:
        """Fetch an object, optionally only if modified since an instant."""
        kwargs: dict[str, Any] = {"Bucket": self.bucket, "Key": name}
        if if_modified_since is not None:
            kwargs["IfModifiedSince"] = if_modified_since

        client = await self.client()
        try:
            response = await client.get_object(**kwargs)
        except ClientError as e:
            code = error_code(e)
            if code in NOT_FOUND_CODES:
                return FetchResult.missing()
            if code in NOT_MODIFIED_CODES:
                return FetchResult.not_modified()
            raise

        if not response or response.get("Body") is None:
            return FetchResult.missing()

        body = await _read_body(response["Body"])
        return FetchResult.found(_stored_object(name, body, response))

    async def head(self, name: str) -> FetchResult:
        """Fetch an object's metadata only. The result has an empty body."""
        client = await self.client()
        try:
            response = await client.head_object(Bucket=self.bucket, Key=name)
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                return FetchResult.missing()
            raise
        return FetchResult.found(_stored_object(name, b"", response))

    async def put(self, name: str, body: bytes, **extra: Any) -> None:
        """Store an object. ``extra`` is passed through to ``put_object``."""
        client = await self.client()
        await client.put_object(Bucket=self.bucket, Key=name, Body=body, **extra)

    async def delete(self, name: str) -> None:
        """Delete an object. Missing objects are not an error."""
        client = await self.client()
        try:
            await client.delete_object(Bucket=self.bucket, Key=name)
        except ClientError as e:
            if error_code(e) not in NOT_FOUND_CODES:
                raise

    async def list_page(self, prefix: str = "", continuation_token: str | None = None) -> ListPage:
        """List one page of objects under a prefix."""
        kwargs: dict[str, Any] = {"Bucket": self.bucket}
        if prefix:
            kwargs["Prefix"] = prefix
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token

        client = await self.client()
        response = await client.list_objects_v2(**kwargs)

        objects = [
            ListedObject(name=item["Key"], last_modified=_as_datetime(item.get("LastModified")))
            for item in response.get("Contents") or []
            if item.get("Key")
        ]

        next_token = None
        if response.get("IsTruncated"):
            next_token = response.get("NextContinuationToken")
            if not next_token:
                logger.warning(
                    "Truncated listing without continuation token",
                    context={"bucket": self.bucket, "prefix": prefix},
                )
        return ListPage(objects=objects, next_token=next_token)
