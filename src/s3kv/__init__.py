"""s3kv - TTL-aware key-value storage on S3."""

from s3kv.backends.kv import MemoryKVStore, S3KVStore
from s3kv.codec import KeyCodec
from s3kv.config import S3Credentials, S3StorageOptions, SetItemOptions
from s3kv.exceptions import ClearError, ConfigError, KeyDecodeError, S3KVError
from s3kv.expiry import (
    ConditionalReadPolicy,
    ExpiryPolicy,
    ExplicitExpiryPolicy,
    select_policy,
    validate_ttl,
)
from s3kv.observability import (
    LogLevel,
    OperationContext,
    StructuredLogger,
    Timer,
    configure_logging,
    get_logger,
    register_metric_callback,
)
from s3kv.plugins import create_kv_store

__version__ = "0.1.0"
__all__ = [
    # Drivers
    "MemoryKVStore",
    "S3KVStore",
    "create_kv_store",
    # Configuration
    "S3Credentials",
    "S3StorageOptions",
    "SetItemOptions",
    # Keys and expiry
    "ConditionalReadPolicy",
    "ExpiryPolicy",
    "ExplicitExpiryPolicy",
    "KeyCodec",
    "select_policy",
    "validate_ttl",
    # Errors
    "ClearError",
    "ConfigError",
    "KeyDecodeError",
    "S3KVError",
    # Observability
    "LogLevel",
    "OperationContext",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "get_logger",
    "register_metric_callback",
]
