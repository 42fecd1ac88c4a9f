"""Driver discovery via Python entry points."""

from importlib.metadata import entry_points
from typing import Any

from s3kv.protocols import KVStore

KV_BACKEND_GROUP = "s3kv.backends.kv"


def discover_backends(group: str = KV_BACKEND_GROUP) -> dict[str, Any]:
    """Discover all registered drivers in an entry point group.

    Returns:
        Dictionary mapping driver names to their classes
    """
    eps = entry_points(group=group)
    return {ep.name: ep.load() for ep in eps}


def get_backend(name: str, group: str = KV_BACKEND_GROUP) -> Any:
    """Get a specific driver class by name.

    Raises:
        ValueError: If the driver is not registered
    """
    backends = discover_backends(group)
    if name not in backends:
        available = ", ".join(sorted(backends.keys())) or "(none)"
        raise ValueError(
            f"Backend '{name}' not found in group '{group}'. Available: {available}"
        )
    return backends[name]


def create_kv_store(backend: str, **kwargs: Any) -> KVStore:
    """Create a KVStore instance.

    Args:
        backend: The driver name (e.g., "s3", "memory")
        **kwargs: Driver-specific options

    Returns:
        A KVStore implementation
    """
    cls = get_backend(backend)
    return cls(**kwargs)
