"""Registry of backend-specific configuration schemas.

When STORAGE_BACKEND matches a registered identifier, the matching schema
(a pydantic-settings BaseSettings subclass) validates the backend-specific
environment variables on first config access. Register third-party schemas
before the first call to get_storage_config().
"""

from pydantic_settings import BaseSettings

_backend_config_schemas: dict[str, type[BaseSettings]] = {}


def register_backend_config(identifier: str, schema: type[BaseSettings]) -> None:
    """Register (or replace) the configuration schema for a backend.

    Args:
        identifier: Backend identifier (e.g. "local", "s3"). Case-sensitive.
        schema: Settings class validating the backend's environment.
    """
    if not (isinstance(schema, type) and issubclass(schema, BaseSettings)):
        raise TypeError("Backend config schema must be a BaseSettings subclass")
    _backend_config_schemas[identifier] = schema


def get_backend_config_schema(identifier: str) -> type[BaseSettings] | None:
    """Return the registered schema, or None if the backend has none."""
    return _backend_config_schemas.get(identifier)


def is_backend_config_registered(identifier: str) -> bool:
    return identifier in _backend_config_schemas


def get_registered_backend_configs() -> list[str]:
    return list(_backend_config_schemas)


def reset_config_registry() -> None:
    """Clear all registered schemas. Tests only."""
    _backend_config_schemas.clear()
