"""S3 key-value storage driver with TTL support."""

import asyncio
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from s3kv.codec import KeyCodec
from s3kv.config import S3StorageOptions, SetItemOptions, config_error
from s3kv.exceptions import ClearError, KeyDecodeError
from s3kv.expiry import Clock, select_policy, utcnow, validate_ttl
from s3kv.objects import FetchStatus, ObjectStore
from s3kv.observability import OperationContext, Timer, emit_counter, emit_timer, get_logger
from s3kv.protocols import ObjectClient

logger = get_logger(__name__)

DRIVER_NAME = "s3"


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"Value must be str or bytes, not {type(value).__name__}")


class S3KVStore:
    """Key-value store on an S3 bucket.

    Keys are stored as ``prefix + base64(key)`` objects. With ``ttl`` > 0
    values expire after that many seconds, enforced by one of the policies
    in :mod:`s3kv.expiry` (``ttl_update_last_modified`` selects which).

    Note that with the default explicit-expiry policy a read can delete:
    ``get_item`` and ``has_item`` remove an expired object before
    reporting it missing.
    """

    name = DRIVER_NAME

    def __init__(
        self,
        bucket: str | None = None,
        prefix: str | None = None,
        region: str | None = None,
        credentials: Any | None = None,
        ttl: int | str | None = None,
        ttl_update_last_modified: bool | None = None,
        client: ObjectClient | None = None,
        *,
        endpoint_url: str | None = None,
        clear_concurrency: int | None = None,
        clock: Clock | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the S3 store.

        Args:
            bucket: Bucket name (required)
            prefix: Prefix prepended to every object name
            region: AWS region; the environment is used when None
            credentials: Static credentials (mapping or S3Credentials)
            ttl: Default seconds-to-live, 0 for no expiry
            ttl_update_last_modified: Use conditional reads and delete-before-write
            client: Already-constructed async S3 client
            endpoint_url: Endpoint for S3-compatible services
            clear_concurrency: Maximum parallel deletes in ``clear``
            clock: Returns the current UTC time; used by tests
            **kwargs: Camel-case option aliases (``ttlUpdateLastModified``)

        Raises:
            ConfigError: If the bucket is missing or an option is invalid
        """
        data = {
            "bucket": bucket,
            "prefix": prefix,
            "region": region,
            "credentials": credentials,
            "ttl": ttl,
            "ttl_update_last_modified": ttl_update_last_modified,
            "endpoint_url": endpoint_url,
            "clear_concurrency": clear_concurrency,
        }
        data = {k: v for k, v in data.items() if v is not None}
        data.update(kwargs)
        try:
            options = S3StorageOptions.model_validate(data)
        except ValidationError as e:
            raise config_error(e) from e

        self._setup(options, client, clock)

    @classmethod
    def from_options(
        cls,
        options: S3StorageOptions,
        client: ObjectClient | None = None,
        clock: Clock | None = None,
    ) -> "S3KVStore":
        """Create a store from already-validated options."""
        store = cls.__new__(cls)
        store._setup(options, client, clock)
        return store

    def _setup(
        self,
        options: S3StorageOptions,
        client: ObjectClient | None,
        clock: Clock | None,
    ) -> None:
        self.options = options
        self.codec = KeyCodec(options.prefix)
        self.policy = select_policy(options.ttl, options.ttl_update_last_modified)
        self.objects = ObjectStore(
            options.bucket,
            region=options.region,
            endpoint_url=options.endpoint_url,
            credentials=options.credentials,
            client=client,
        )
        self._clock = clock or utcnow

    @property
    def bucket(self) -> str:
        return self.options.bucket

    @property
    def prefix(self) -> str:
        return self.options.prefix

    @property
    def ttl(self) -> int:
        return self.options.ttl

    async def close(self) -> None:
        """Release the S3 client if this store created it."""
        await self.objects.close()

    async def __aenter__(self) -> "S3KVStore":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _is_live(self, name: str, now: datetime) -> bool:
        """Judge an object by its own recorded TTL, from its metadata."""
        result = await self.objects.head(name)
        obj = result.object
        if obj is None:
            return False
        return not self.policy.is_expired(
            last_modified=obj.last_modified,
            expires=obj.expires,
            recorded_ttl=obj.recorded_ttl,
            now=now,
        )

    async def _get(self, key: str) -> bytes | None:
        name = self.codec.encode(key)
        now = self._clock()

        result = await self.objects.fetch(name, self.policy.read_condition(now))
        if result.status is FetchStatus.NOT_MODIFIED:
            # Older than the default window; a longer per-write TTL may apply
            if not await self._is_live(name, now):
                emit_counter("s3kv.expired", labels={"policy": self.policy.name})
                return None
            result = await self.objects.fetch(name)
        if result.status is FetchStatus.MISSING:
            return None

        obj = result.object
        if obj is None:
            return None
        expired = self.policy.is_expired(
            last_modified=obj.last_modified,
            expires=obj.expires,
            recorded_ttl=obj.recorded_ttl,
            now=now,
        )
        if not expired:
            return obj.body

        emit_counter("s3kv.expired", labels={"policy": self.policy.name})
        if self.policy.delete_on_expiry:
            await self.objects.delete(name)
            logger.info("Removed expired object", context={"key": key, "object": name})
        return None

    async def get_item_raw(self, key: str) -> bytes | None:
        """Get the stored bytes for a key. Returns None if missing or expired."""
        with OperationContext("get_item_raw", bucket=self.bucket):
            return await self._get(key)

    async def get_item(self, key: str) -> str | None:
        """Get a value as UTF-8 text. Returns None if missing or expired.

        Use :meth:`get_item_raw` for values that are not UTF-8.
        """
        with OperationContext("get_item", bucket=self.bucket):
            body = await self._get(key)
        if body is None:
            return None
        return body.decode("utf-8")

    async def has_item(self, key: str) -> bool:
        """Check whether a live value exists. Same side effects as ``get_item``."""
        with OperationContext("has_item", bucket=self.bucket):
            return await self._get(key) is not None

    async def set_item(
        self,
        key: str,
        value: str | bytes,
        ttl: int | str | None = None,
        options: SetItemOptions | dict[str, Any] | None = None,
    ) -> None:
        """Store a value.

        Args:
            key: Logical key
            value: Text (stored as UTF-8) or bytes
            ttl: Per-write TTL override in seconds, recorded on the object
                so reads and listings judge it by its own TTL
            options: Per-write options; ``ttl`` takes precedence

        Raises:
            ConfigError: If the TTL override is invalid
        """
        if ttl is None and options is not None:
            if isinstance(options, dict):
                try:
                    options = SetItemOptions.model_validate(options)
                except ValidationError as e:
                    raise config_error(e) from e
            ttl = options.ttl
        effective_ttl = self.ttl if ttl is None else validate_ttl(ttl)
        body = _to_bytes(value)

        name = self.codec.encode(key)
        now = self._clock()
        with OperationContext("set_item", bucket=self.bucket):
            if self.policy.delete_before_write(effective_ttl):
                # S3 keeps LastModified on identical overwrites
                await self.objects.delete(name)
            await self.objects.put(name, body, **self.policy.write_arguments(effective_ttl, now))

    async def remove_item(self, key: str) -> None:
        """Delete a key. Missing keys are not an error."""
        with OperationContext("remove_item", bucket=self.bucket):
            await self.objects.delete(self.codec.encode(key))

    async def _list_entries(self, include_expired: bool = False) -> list[tuple[str, str]]:
        """Walk every listing page under the prefix.

        Returns ``(object_name, key)`` pairs in listing order.
        """
        entries: list[tuple[str, str]] = []
        now = self._clock()
        token: str | None = None
        pages = 0
        rechecked = 0

        while True:
            page = await self.objects.list_page(self.prefix, token)
            pages += 1
            for obj in page.objects:
                if not include_expired and not self.policy.is_listed(obj.last_modified, now):
                    rechecked += 1
                    if not await self._is_live(obj.name, now):
                        continue
                try:
                    entries.append((obj.name, self.codec.decode(obj.name)))
                except KeyDecodeError as e:
                    logger.warning(
                        "Skipping object not written by this store",
                        context={"object": obj.name},
                        error=e,
                    )
            if page.next_token is None:
                break
            token = page.next_token

        emit_counter("s3kv.list.pages", float(pages))
        if rechecked:
            emit_counter("s3kv.list.rechecked", float(rechecked))
        return entries

    async def get_keys(self) -> list[str]:
        """List all live keys, following pagination to the last page.

        Entries older than the default TTL window are checked against the
        TTL recorded on the object, so keys written with a longer (or zero)
        per-write TTL stay listed for as long as ``get_item`` returns them.
        Keys written with a shorter per-write TTL stay listed until the
        default window passes.
        """
        with OperationContext("get_keys", bucket=self.bucket):
            async with Timer() as t:
                entries = await self._list_entries()
            emit_timer("s3kv.list.duration_ms", t.duration_ms)
        return [key for _, key in entries]

    async def clear(self) -> None:
        """Delete every object under the prefix, expired ones included.

        Deletes run concurrently (bounded by ``clear_concurrency`` when set).
        All deletes are attempted; failures are then raised together.

        Raises:
            ClearError: If any delete failed
        """
        with OperationContext("clear", bucket=self.bucket):
            entries = await self._list_entries(include_expired=True)
            limit = self.options.clear_concurrency
            semaphore = asyncio.Semaphore(limit) if limit else None

            async def delete(name: str) -> None:
                if semaphore is None:
                    await self.objects.delete(name)
                    return
                async with semaphore:
                    await self.objects.delete(name)

            results = await asyncio.gather(
                *(delete(name) for name, _ in entries),
                return_exceptions=True,
            )

            failures: list[tuple[str, BaseException]] = []
            for (_, key), result in zip(entries, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    failures.append((key, result))

            emit_counter("s3kv.clear.keys", float(len(entries) - len(failures)))
            if failures:
                logger.error(
                    "Failed to clear some keys",
                    context={"failed": len(failures), "total": len(entries)},
                    error=failures[0][1],
                )
                raise ClearError(failures)

    def __repr__(self) -> str:
        return f"S3KVStore(bucket={self.bucket!r}, prefix={self.prefix!r}, policy={self.policy!r})"
