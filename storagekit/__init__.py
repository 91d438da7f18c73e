"""storagekit: pluggable object storage with lazy configuration.

Backends are resolved by identifier through a registry and a memoized factory.
Configuration is read from STORAGE_* environment variables on first use.
"""

from storagekit.core.config import (
    StorageConfig,
    get_backend_config,
    get_storage_config,
    reset_storage_config,
)
from storagekit.core.config_registry import (
    get_backend_config_schema,
    get_registered_backend_configs,
    is_backend_config_registered,
    register_backend_config,
    reset_config_registry,
)
from storagekit.domain.exceptions import (
    BackendNotRegisteredError,
    ConfigurationError,
    InvalidFileTypeError,
    QuotaExceededError,
    StorageError,
    StorageErrorCode,
    StorageFileNotFoundError,
    StorageKitException,
)
from storagekit.infrastructure.storage import (
    SignedUrl,
    SignedUrlMethod,
    StorageProtocol,
    UploadResult,
    get_backend,
    get_configured_backend,
    get_registered_backends,
    is_backend_cached,
    is_backend_registered,
    register_backend,
    register_builtin_backends,
    reset_all,
    reset_factory,
    reset_registry,
)

__version__ = "0.1.0"

__all__ = [
    "BackendNotRegisteredError",
    "ConfigurationError",
    "InvalidFileTypeError",
    "QuotaExceededError",
    "SignedUrl",
    "SignedUrlMethod",
    "StorageConfig",
    "StorageError",
    "StorageErrorCode",
    "StorageFileNotFoundError",
    "StorageKitException",
    "StorageProtocol",
    "UploadResult",
    "get_backend",
    "get_backend_config",
    "get_backend_config_schema",
    "get_configured_backend",
    "get_registered_backend_configs",
    "get_registered_backends",
    "get_storage_config",
    "is_backend_cached",
    "is_backend_config_registered",
    "is_backend_registered",
    "register_backend",
    "register_backend_config",
    "register_builtin_backends",
    "reset_all",
    "reset_config_registry",
    "reset_factory",
    "reset_registry",
    "reset_storage_config",
]
