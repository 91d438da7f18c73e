"""Storage: backend registry, memoized factory, local and S3-compatible backends.

Backend implementations are loaded lazily by the built-in factories so that:
- The local backend only requires aiofiles.
- The S3 backend only loads boto3 when it is resolved.

Implementations satisfy StorageProtocol (upload, download, delete, exists,
get_signed_url).
"""

from storagekit.infrastructure.storage.factory import (
    BackendFactory,
    backend_factory,
    get_backend,
    get_configured_backend,
    is_backend_cached,
    register_builtin_backends,
    reset_all,
    reset_factory,
)
from storagekit.infrastructure.storage.protocol import (
    SignedUrl,
    SignedUrlMethod,
    StorageProtocol,
    UploadBody,
    UploadResult,
)
from storagekit.infrastructure.storage.registry import (
    BackendRegistry,
    backend_registry,
    get_backend_factory,
    get_registered_backends,
    is_backend_registered,
    register_backend,
    reset_registry,
)

__all__ = [
    "BackendFactory",
    "BackendRegistry",
    "SignedUrl",
    "SignedUrlMethod",
    "StorageProtocol",
    "UploadBody",
    "UploadResult",
    "backend_factory",
    "backend_registry",
    "get_backend",
    "get_backend_factory",
    "get_configured_backend",
    "get_registered_backends",
    "is_backend_cached",
    "is_backend_registered",
    "register_backend",
    "register_builtin_backends",
    "reset_all",
    "reset_factory",
    "reset_registry",
]
