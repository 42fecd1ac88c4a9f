"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Any

import pytest
from botocore.exceptions import ClientError


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeBody:
    """Stand-in for the aiobotocore streaming body."""

    def __init__(self, data: bytes, fail: bool = False) -> None:
        self._data = data
        self.fail = fail
        self.closed = False

    async def read(self) -> bytes:
        if self.fail:
            raise ConnectionError("connection reset while reading body")
        return self._data

    def close(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "FakeBody":
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()


def client_error(code: str, operation: str, status: int = 400) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakeS3Client:
    """In-memory S3 client with the behaviours the driver relies on.

    * ``IfModifiedSince`` on get raises a 304 ClientError when the object
      was not modified after the given instant.
    * Overwriting an object with byte-identical content leaves its
      ``LastModified`` and headers untouched.
    * Listing is sorted by name and paginated by ``page_size``.
    """

    def __init__(self, clock: FakeClock, page_size: int = 1000) -> None:
        self.clock = clock
        self.page_size = page_size
        self.objects: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.bodies: list[FakeBody] = []
        self.fail_deletes: set[str] = set()
        self.in_flight_deletes = 0
        self.max_in_flight_deletes = 0

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [kwargs for op, kwargs in self.calls if op == operation]

    async def get_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("get_object", kwargs))
        obj = self.objects.get(kwargs["Key"])
        if obj is None:
            raise client_error("NoSuchKey", "GetObject", 404)

        since = kwargs.get("IfModifiedSince")
        if since is not None and obj["LastModified"] <= since:
            raise client_error("304", "GetObject", 304)

        response = self._headers(obj)
        response["Body"] = FakeBody(obj["Body"])
        self.bodies.append(response["Body"])
        return response

    async def head_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("head_object", kwargs))
        obj = self.objects.get(kwargs["Key"])
        if obj is None:
            raise client_error("404", "HeadObject", 404)
        return self._headers(obj)

    @staticmethod
    def _headers(obj: dict[str, Any]) -> dict[str, Any]:
        response: dict[str, Any] = {
            "LastModified": obj["LastModified"],
            "Metadata": dict(obj.get("Metadata") or {}),
        }
        if obj.get("Expires") is not None:
            response["ExpiresString"] = format_datetime(obj["Expires"], usegmt=True)
        return response

    async def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("put_object", kwargs))
        key = kwargs["Key"]
        existing = self.objects.get(key)
        if existing is not None and existing["Body"] == kwargs["Body"]:
            return {}
        self.objects[key] = {
            "Body": kwargs["Body"],
            "LastModified": self.clock(),
            "Expires": kwargs.get("Expires"),
            "Metadata": kwargs.get("Metadata"),
        }
        return {}

    async def delete_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_object", kwargs))
        self.in_flight_deletes += 1
        self.max_in_flight_deletes = max(self.max_in_flight_deletes, self.in_flight_deletes)
        try:
            await asyncio.sleep(0)
            if kwargs["Key"] in self.fail_deletes:
                raise client_error("AccessDenied", "DeleteObject", 403)
            self.objects.pop(kwargs["Key"], None)
            return {}
        finally:
            self.in_flight_deletes -= 1

    async def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("list_objects_v2", kwargs))
        prefix = kwargs.get("Prefix", "")
        names = sorted(name for name in self.objects if name.startswith(prefix))
        start = int(kwargs.get("ContinuationToken") or 0)
        page = names[start:start + self.page_size]
        end = start + len(page)

        response: dict[str, Any] = {
            "IsTruncated": end < len(names),
            "KeyCount": len(page),
        }
        if page:
            response["Contents"] = [
                {"Key": name, "LastModified": self.objects[name]["LastModified"]}
                for name in page
            ]
        if end < len(names):
            response["NextContinuationToken"] = str(end)
        return response


class FakeClientContext:
    """Async context manager returned by ``session.client``."""

    def __init__(self, session: "FakeSession", client: FakeS3Client) -> None:
        self.session = session
        self.client = client

    async def __aenter__(self) -> FakeS3Client:
        self.session.entered += 1
        await asyncio.sleep(0)
        return self.client

    async def __aexit__(self, *args: Any) -> None:
        self.session.exited += 1


class FakeSession:
    """Stand-in for ``aioboto3.Session`` that counts client creation."""

    def __init__(self, client: FakeS3Client) -> None:
        self.client_obj = client
        self.client_calls: list[tuple[str, dict[str, Any]]] = []
        self.entered = 0
        self.exited = 0

    def client(self, service: str, **kwargs: Any) -> FakeClientContext:
        self.client_calls.append((service, kwargs))
        return FakeClientContext(self, self.client_obj)


@pytest.fixture
def clock() -> FakeClock:
    """A clock fixed at 2026-01-01T00:00:00Z."""
    return FakeClock()


@pytest.fixture
def s3_client(clock) -> FakeS3Client:
    """An empty fake S3 client sharing the test clock."""
    return FakeS3Client(clock)


@pytest.fixture
def fake_session(s3_client) -> FakeSession:
    """A fake aioboto3 session handing out the fake client."""
    return FakeSession(s3_client)


@pytest.fixture
def client_error_factory():
    """Build botocore ClientErrors."""
    return client_error


@pytest.fixture
def sample_options_dict():
    """Sample driver options for testing."""
    return {
        "bucket": "mocked",
        "prefix": "prefix/",
        "region": "us-east-1",
        "credentials": {},
        "ttl": 10,
        "ttlUpdateLastModified": True,
    }


@pytest.fixture
def body_factory():
    """Build streaming bodies."""
    return FakeBody
