"""Protocol interfaces for pluggable drivers and backend clients."""

from s3kv.protocols.kv_store import KVStore
from s3kv.protocols.object_client import ObjectClient

__all__ = [
    "KVStore",
    "ObjectClient",
]
