"""Storage backend plugin registry: identifier -> factory.

Pure metadata store. It never calls factories and never holds instances;
lazy instantiation and caching live in the factory module.
"""

from collections.abc import Callable
from typing import TypeVar

from storagekit.domain.exceptions import BackendNotRegisteredError
from storagekit.infrastructure.storage.protocol import StorageProtocol

B = TypeVar("B", bound=StorageProtocol)

BackendFactoryFn = Callable[[], StorageProtocol]


class BackendRegistry:
    """Maps case-sensitive backend identifiers to zero-argument factories."""

    def __init__(self) -> None:
        self._factories: dict[str, BackendFactoryFn] = {}

    def register(self, identifier: str, factory: Callable[[], B]) -> None:
        """Register (or silently replace) the factory for identifier.

        Replacing a factory does not touch instances already cached by the
        factory layer.
        """
        if not callable(factory):
            raise TypeError(f"Backend factory for {identifier!r} must be callable")
        self._factories[identifier] = factory

    def get(self, identifier: str) -> BackendFactoryFn | None:
        return self._factories.get(identifier)

    def get_or_raise(self, identifier: str) -> BackendFactoryFn:
        """Return the factory for identifier.

        Raises:
            BackendNotRegisteredError: Lists the identifiers that are registered.
        """
        factory = self._factories.get(identifier)
        if factory is None:
            raise BackendNotRegisteredError(identifier, self.list())
        return factory

    def list(self) -> list[str]:
        """Registered identifiers, in registration order."""
        return list(self._factories)

    def has(self, identifier: str) -> bool:
        return identifier in self._factories

    def reset(self) -> None:
        """Clear all registrations. Tests only."""
        self._factories.clear()

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._factories

    def __len__(self) -> int:
        return len(self._factories)


backend_registry = BackendRegistry()


def register_backend(identifier: str, factory: Callable[[], B]) -> None:
    backend_registry.register(identifier, factory)


def get_backend_factory(identifier: str) -> BackendFactoryFn:
    return backend_registry.get_or_raise(identifier)


def is_backend_registered(identifier: str) -> bool:
    return backend_registry.has(identifier)


def get_registered_backends() -> list[str]:
    return backend_registry.list()


def reset_registry() -> None:
    backend_registry.reset()
