"""Expiry policies for objects stored without native per-key TTL.

S3 keeps no TTL per object, so expiry is derived from what it does keep:
``LastModified``, the ``Expires`` header and user metadata. Two policies are
supported:

* :class:`ExplicitExpiryPolicy` writes an expiration instant next to the
  value and deletes the object when a read finds it expired.
* :class:`ConditionalReadPolicy` reads with ``If-Modified-Since`` set to
  ``now - ttl`` and treats "not modified" as expired. Writes delete the
  previous object first, because S3 leaves ``LastModified`` untouched when
  the new body is byte-identical to the stored one.

In both cases a TTL of 0 means values never expire. Per-write TTLs are
recorded in user metadata so each object is judged by its own TTL.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from s3kv.exceptions import ConfigError

Clock = Callable[[], datetime]

# User metadata entry recording the TTL an object was written with
TTL_METADATA_KEY = "ttl"


def utcnow() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def validate_ttl(value: Any, name: str = "ttl") -> int:
    """Validate a TTL option and return it as an int.

    Accepts non-negative integers and strings holding one (option files and
    environment substitution yield strings).

    Raises:
        ConfigError: If the value is negative, fractional or not numeric
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid option `{name}`.")
    if isinstance(value, float):
        if not value.is_integer():
            raise ConfigError(f"Invalid option `{name}`.")
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ConfigError(f"Invalid option `{name}`.") from None
    elif not isinstance(value, int):
        raise ConfigError(f"Invalid option `{name}`.")

    if value < 0:
        raise ConfigError(f"Invalid option `{name}`.")
    return value


class ExpiryPolicy(ABC):
    """Decides whether stored objects are live and how writes reset expiry."""

    name: str = ""
    delete_on_expiry: bool = False

    def __init__(self, ttl: int = 0) -> None:
        self.ttl = validate_ttl(ttl)

    @property
    def enabled(self) -> bool:
        return self.ttl > 0

    def write_arguments(self, ttl: int, now: datetime) -> dict[str, Any]:
        """Extra ``put_object`` arguments for a write with the given TTL."""
        return {}

    def delete_before_write(self, ttl: int) -> bool:
        return False

    def read_condition(self, now: datetime) -> datetime | None:
        """``If-Modified-Since`` instant for reads, or None for a plain read."""
        return None

    @abstractmethod
    def is_expired(
        self,
        *,
        last_modified: datetime | None,
        expires: datetime | None,
        recorded_ttl: int | None,
        now: datetime,
    ) -> bool:
        """Check a fetched object against the policy."""
        ...

    def list_cutoff(self, now: datetime) -> datetime | None:
        if not self.enabled:
            return None
        return now - timedelta(seconds=self.ttl)

    def is_listed(self, last_modified: datetime | None, now: datetime) -> bool:
        """Listing keeps entries modified after ``now - ttl``.

        Entries at or before the cutoff can still be live under a longer
        per-write TTL, so the driver rechecks them with :meth:`is_expired`.
        """
        cutoff = self.list_cutoff(now)
        if cutoff is None or last_modified is None:
            return True
        return last_modified > cutoff

    def __repr__(self) -> str:
        return f"{type(self).__name__}(ttl={self.ttl})"


class ExplicitExpiryPolicy(ExpiryPolicy):
    """Expiration marker written with the value, enforced on read."""

    name = "explicit"
    delete_on_expiry = True

    def write_arguments(self, ttl: int, now: datetime) -> dict[str, Any]:
        if ttl <= 0:
            return {}
        return {
            "Expires": now + timedelta(seconds=ttl),
            "Metadata": {TTL_METADATA_KEY: str(ttl)},
        }

    def is_expired(
        self,
        *,
        last_modified: datetime | None,
        expires: datetime | None,
        recorded_ttl: int | None,
        now: datetime,
    ) -> bool:
        # Objects written without a TTL carry no marker and never expire
        if expires is None:
            return False
        if expires < now:
            return True

        ttl = recorded_ttl if recorded_ttl is not None else self.ttl
        if ttl > 0 and last_modified is not None:
            return now > last_modified + timedelta(seconds=ttl)
        return False


class ConditionalReadPolicy(ExpiryPolicy):
    """Conditional reads against ``LastModified``; writes reset the clock.

    A per-write TTL that differs from the adapter TTL is recorded in user
    metadata, and a "not modified" read is rechecked against it.
    """

    name = "conditional"

    def write_arguments(self, ttl: int, now: datetime) -> dict[str, Any]:
        if ttl == self.ttl:
            return {}
        return {"Metadata": {TTL_METADATA_KEY: str(ttl)}}

    def delete_before_write(self, ttl: int) -> bool:
        # An identical put would also keep the previous TTL metadata
        return ttl > 0 or self.enabled

    def read_condition(self, now: datetime) -> datetime | None:
        return self.list_cutoff(now)

    def is_expired(
        self,
        *,
        last_modified: datetime | None,
        expires: datetime | None,
        recorded_ttl: int | None,
        now: datetime,
    ) -> bool:
        # Backends that ignore If-Modified-Since still return the body
        ttl = recorded_ttl if recorded_ttl is not None else self.ttl
        if ttl <= 0 or last_modified is None:
            return False
        return last_modified <= now - timedelta(seconds=ttl)


def select_policy(ttl: int, ttl_update_last_modified: bool = False) -> ExpiryPolicy:
    """Pick the policy for the ``ttl_update_last_modified`` option."""
    if ttl_update_last_modified:
        return ConditionalReadPolicy(ttl)
    return ExplicitExpiryPolicy(ttl)
