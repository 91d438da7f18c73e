"""Local filesystem storage with path validation and atomic writes."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import secrets
import tempfile
from collections.abc import AsyncIterator
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from storagekit.core.config import (
    DEFAULT_SIGNED_URL_EXPIRATION_SECONDS,
    LocalStorageSettings,
    StorageConfig,
    get_storage_config,
    load_backend_settings,
)
from storagekit.domain.exceptions import StorageError, StorageFileNotFoundError
from storagekit.infrastructure.storage.protocol import (
    SignedUrl,
    SignedUrlMethod,
    UploadBody,
    UploadResult,
)
from storagekit.shared.telemetry.tracing import traced
from storagekit.shared.utils.datetime import expires_after, utc_now

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"


class LocalStorageService:
    """Local filesystem storage with atomic writes and path traversal protection.

    Paths are validated against storage_root. Writes use temp file + rename.
    Metadata stored in .meta.json sidecar. Signed URLs are backed by
    in-memory tokens, served by api.local_storage_routes.
    """

    CHUNK_SIZE = 64 * 1024  # 64KB
    BACKEND_NAME = "local"
    SIGNED_URL_PATH = "/storage/signed"

    def __init__(
        self,
        storage_root: str,
        base_url: str | None = None,
        signed_url_expiration: int = DEFAULT_SIGNED_URL_EXPIRATION_SECONDS,
    ) -> None:
        """Initialize local storage.

        Args:
            storage_root: Base directory for all files.
            base_url: Base URL for signed URLs (e.g. https://api.example.com).
            signed_url_expiration: Default signed URL lifetime in seconds.
        """
        self.storage_root = Path(storage_root).resolve()
        self.base_url = base_url.rstrip("/") if base_url else None
        self.default_expiration = signed_url_expiration
        self.storage_root.mkdir(parents=True, exist_ok=True, mode=0o750)
        # token -> (key, method, expires_at)
        self._signed_tokens: dict[str, tuple[str, SignedUrlMethod, datetime]] = {}

    def _error(self, message: str, key: str, operation: str, cause: str) -> StorageError:
        return StorageError(
            message,
            {"key": key, "backend": self.BACKEND_NAME, "operation": operation, "cause": cause},
        )

    def _get_full_path(self, key: str, operation: str) -> Path:
        """Resolve and validate path under storage_root. Raises StorageError on traversal."""
        if not key or key.endswith(META_SUFFIX):
            raise self._error("Invalid storage key", key, operation, "invalid_key")
        try:
            full_path = (self.storage_root / key).resolve()
            full_path.relative_to(self.storage_root)
        except (ValueError, OSError):
            raise self._error("Invalid storage key", key, operation, "invalid_key") from None
        if full_path == self.storage_root:
            raise self._error("Invalid storage key", key, operation, "invalid_key")
        return full_path

    @staticmethod
    def _meta_path(file_path: Path) -> Path:
        return file_path.with_name(file_path.name + META_SUFFIX)

    async def _write_metadata(self, file_path: Path, metadata: dict[str, Any]) -> None:
        """Write JSON sidecar."""
        meta_path = self._meta_path(file_path)
        async with aiofiles.open(meta_path, "w") as f:
            await f.write(json.dumps(metadata, indent=2))
        os.chmod(meta_path, 0o640)

    @traced("storage.local.upload", attributes={"storage.backend": "local"})
    async def upload(
        self,
        key: str,
        body: UploadBody,
        content_type: str,
        metadata: dict[str, str] | None = None,
        content_length: int | None = None,
    ) -> UploadResult:
        """Upload with an atomic write. File-like bodies are copied in chunks."""
        target_path = self._get_full_path(key, "upload")
        temp_path: str | None = None
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True, mode=0o750)
            temp_fd, temp_path = tempfile.mkstemp(
                dir=target_path.parent,
                prefix=".tmp_",
                suffix=target_path.suffix,
            )
            os.close(temp_fd)
            md5 = hashlib.md5(usedforsecurity=False)
            size = 0
            async with aiofiles.open(temp_path, "wb") as f:
                if isinstance(body, (bytes, bytearray)):
                    md5.update(body)
                    size = len(body)
                    await f.write(bytes(body))
                else:
                    while True:
                        chunk = body.read(self.CHUNK_SIZE)
                        if not chunk:
                            break
                        md5.update(chunk)
                        size += len(chunk)
                        await f.write(chunk)
            os.chmod(temp_path, 0o640)
            os.replace(temp_path, target_path)
            temp_path = None
            etag = md5.hexdigest()
            await self._write_metadata(
                target_path,
                {
                    "key": key,
                    "etag": etag,
                    "size": size,
                    "content_type": content_type,
                    "uploaded_at": utc_now().isoformat(),
                    "custom": metadata or {},
                },
            )
        except Exception as e:
            logger.error("Local upload failed for key %s (%s)", key, type(e).__name__)
            raise self._error("Storage operation failed", key, "upload", "generic") from e
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
        return UploadResult(key=key, etag=etag)

    @traced("storage.local.download", attributes={"storage.backend": "local"})
    async def download(self, key: str) -> AsyncIterator[bytes]:
        """Return a chunk stream over the file."""
        file_path = self._get_full_path(key, "download")
        if not file_path.is_file():
            raise StorageFileNotFoundError(key)
        return self._iter_file(key, file_path)

    async def _iter_file(self, key: str, file_path: Path) -> AsyncIterator[bytes]:
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    chunk = await f.read(self.CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
        except FileNotFoundError as e:
            raise StorageFileNotFoundError(key) from e
        except Exception as e:
            raise self._error("Storage operation failed", key, "download", "generic") from e

    @traced("storage.local.delete", attributes={"storage.backend": "local"})
    async def delete(self, key: str) -> None:
        """Delete file and metadata. Missing files are not an error."""
        file_path = self._get_full_path(key, "delete")
        try:
            if file_path.is_file():
                await aiofiles.os.remove(file_path)
            meta_path = self._meta_path(file_path)
            if meta_path.exists():
                await aiofiles.os.remove(meta_path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise self._error("Storage operation failed", key, "delete", "generic") from e
        parent = file_path.parent
        while parent != self.storage_root:
            try:
                if any(parent.iterdir()):
                    break
                parent.rmdir()
                parent = parent.parent
            except OSError:
                break

    @traced("storage.local.exists", attributes={"storage.backend": "local"})
    async def exists(self, key: str) -> bool:
        """Return True if file exists."""
        return self._get_full_path(key, "exists").is_file()

    @traced("storage.local.get_signed_url", attributes={"storage.backend": "local"})
    async def get_signed_url(
        self,
        key: str,
        method: SignedUrlMethod | str = SignedUrlMethod.GET,
        expires_in: int | None = None,
        content_type: str | None = None,
    ) -> SignedUrl:
        """Return a token URL (GET downloads, PUT uploads). The file is not checked for existence."""
        self._get_full_path(key, "get_signed_url")
        raw_method = method.value if isinstance(method, SignedUrlMethod) else str(method).upper()
        try:
            signed_method = SignedUrlMethod(raw_method)
        except ValueError:
            raise self._error(
                f"Unsupported signed URL method: {raw_method}", key, "get_signed_url", "generic"
            ) from None
        expires = self.default_expiration if expires_in is None else expires_in
        if expires <= 0:
            raise self._error(
                "Signed URL expiration must be greater than 0", key, "get_signed_url", "generic"
            )

        token = secrets.token_urlsafe(32)
        expires_at = expires_after(expires)
        self._signed_tokens[token] = (key, signed_method, expires_at)
        self._cleanup_expired_tokens()
        path = f"{self.SIGNED_URL_PATH}/{token}"
        url = f"{self.base_url}{path}" if self.base_url else path
        return SignedUrl(url=url, expires_at=expires_at)

    def _cleanup_expired_tokens(self) -> None:
        """Remove expired signed URL tokens."""
        now = utc_now()
        for token in [t for t, (_, _, exp) in self._signed_tokens.items() if exp <= now]:
            del self._signed_tokens[token]

    def resolve_signed_token(
        self, token: str, method: SignedUrlMethod | str = SignedUrlMethod.GET
    ) -> str | None:
        """Return the key if token is valid for method and not expired."""
        entry = self._signed_tokens.get(token)
        if entry is None:
            return None
        key, signed_method, expires_at = entry
        if utc_now() > expires_at:
            del self._signed_tokens[token]
            return None
        raw_method = method.value if isinstance(method, SignedUrlMethod) else str(method).upper()
        if signed_method.value != raw_method:
            return None
        return key


def create_local_backend(
    settings: LocalStorageSettings | None = None,
    config: StorageConfig | None = None,
) -> LocalStorageService:
    """Create a LocalStorageService from environment configuration."""
    config = config if config is not None else get_storage_config()
    if settings is None:
        if isinstance(config.backend, LocalStorageSettings):
            settings = config.backend
        else:
            settings = load_backend_settings(LocalStorageSettings, "local")
    logger.info("Local storage backend configured (root=%s)", settings.storage_local_path)
    return LocalStorageService(
        storage_root=settings.storage_local_path,
        base_url=settings.storage_local_base_url,
        signed_url_expiration=config.signed_url_expiration_seconds,
    )
