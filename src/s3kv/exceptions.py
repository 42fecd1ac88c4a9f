"""s3kv exceptions."""


class S3KVError(Exception):
    """Base exception for s3kv."""

    pass


class ConfigError(S3KVError):
    """Configuration error (missing bucket, invalid TTL)."""

    pass


class KeyDecodeError(S3KVError):
    """Object name is not a key encoded under the configured prefix."""

    pass


class ClearError(S3KVError):
    """One or more deletes failed while clearing the store.

    Every delete is attempted before this is raised. The individual
    failures are available on ``errors`` as ``(key, exception)`` pairs.
    """

    def __init__(self, errors: list[tuple[str, BaseException]]) -> None:
        self.errors = errors
        keys = ", ".join(repr(key) for key, _ in errors[:5])
        more = f" (+{len(errors) - 5} more)" if len(errors) > 5 else ""
        super().__init__(f"Failed to delete {len(errors)} key(s): {keys}{more}")
