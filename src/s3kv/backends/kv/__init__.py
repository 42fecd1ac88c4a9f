"""Key-value storage drivers."""

from s3kv.backends.kv.memory import MemoryKVStore
from s3kv.backends.kv.s3 import S3KVStore

__all__ = ["MemoryKVStore", "S3KVStore"]
