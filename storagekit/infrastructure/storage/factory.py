"""Storage backend factory: lazy instantiation with one cached instance per identifier.

Built-in backends are registered by register_builtin_backends(); their
implementations are imported lazily inside the factory functions so that:
- The local backend only requires aiofiles.
- The S3 backend only loads boto3 when it is actually resolved.
"""

from __future__ import annotations

import logging
import threading

from storagekit.infrastructure.storage.protocol import StorageProtocol
from storagekit.infrastructure.storage.registry import BackendRegistry, backend_registry

logger = logging.getLogger(__name__)


class BackendFactory:
    """Lazy, memoized backend instantiation layered on a BackendRegistry.

    Known sharp edge: re-registering a factory for an identifier whose
    instance is already cached does not evict that instance. The stale
    instance is returned until reset() or reset_all().
    """

    def __init__(self, registry: BackendRegistry) -> None:
        self._registry = registry
        self._instances: dict[str, StorageProtocol] = {}
        # Re-entrant so a factory may itself resolve another backend
        self._lock = threading.RLock()

    @property
    def registry(self) -> BackendRegistry:
        return self._registry

    def get_backend(self, identifier: str) -> StorageProtocol:
        """Return the cached instance for identifier, creating it on first use.

        Raises:
            BackendNotRegisteredError: identifier has no registered factory.
        """
        with self._lock:
            instance = self._instances.get(identifier)
            if instance is not None:
                return instance
            factory = self._registry.get_or_raise(identifier)
            instance = factory()
            self._instances[identifier] = instance
            logger.info("Created storage backend instance: %s", identifier)
            return instance

    def is_cached(self, identifier: str) -> bool:
        return identifier in self._instances

    def reset(self) -> None:
        """Drop cached instances; registrations stay. Tests only."""
        with self._lock:
            self._instances.clear()

    def reset_all(self) -> None:
        """Drop cached instances and all registrations. Tests only."""
        with self._lock:
            self._instances.clear()
            self._registry.reset()


backend_factory = BackendFactory(backend_registry)


def get_backend(identifier: str | None = None) -> StorageProtocol:
    """Return the backend for identifier (default: the configured STORAGE_BACKEND)."""
    if identifier is None:
        from storagekit.core.config import get_storage_config

        identifier = get_storage_config().storage_backend
    return backend_factory.get_backend(identifier)


def is_backend_cached(identifier: str) -> bool:
    return backend_factory.is_cached(identifier)


def reset_factory() -> None:
    backend_factory.reset()


def reset_all() -> None:
    backend_factory.reset_all()


def _create_local_backend() -> StorageProtocol:
    from storagekit.infrastructure.storage.local_storage import create_local_backend

    return create_local_backend()


def _create_s3_backend() -> StorageProtocol:
    from storagekit.infrastructure.storage.s3_storage import create_s3_backend

    return create_s3_backend()


BUILTIN_BACKENDS = {
    "local": _create_local_backend,
    "s3": _create_s3_backend,
}


def register_builtin_backends(
    registry: BackendRegistry | None = None, overwrite: bool = False
) -> None:
    """Register factories for the built-in backends.

    Args:
        registry: Target registry; defaults to the process-wide one.
        overwrite: Replace existing registrations under the same identifiers.
    """
    target = registry if registry is not None else backend_registry
    for identifier, factory in BUILTIN_BACKENDS.items():
        if overwrite or not target.has(identifier):
            target.register(identifier, factory)


def get_configured_backend() -> StorageProtocol:
    """Return the backend selected by STORAGE_BACKEND.

    Built-ins are registered first unless a third party already claimed
    their identifiers.

    Raises:
        ConfigurationError: Invalid configuration.
        BackendNotRegisteredError: Selected backend has no factory.
    """
    register_builtin_backends(backend_factory.registry)
    return get_backend()
