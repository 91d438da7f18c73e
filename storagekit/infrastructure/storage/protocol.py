"""Storage backend protocol (DIP) and the value types it exchanges.

Implementations: LocalStorageService, S3StorageService. Third-party backends
implement the same protocol and register a factory with the backend registry.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import BinaryIO, Protocol, runtime_checkable

# Raw bytes or a binary file-like object; backends never buffer file-likes whole.
UploadBody = bytes | bytearray | BinaryIO


class SignedUrlMethod(str, Enum):
    """HTTP method a signed URL is valid for."""

    GET = "GET"
    PUT = "PUT"


@dataclass(frozen=True)
class UploadResult:
    """Result of a successful upload."""

    key: str
    etag: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class SignedUrl:
    """Time-limited pre-authorized URL and its absolute UTC expiry."""

    url: str
    expires_at: datetime

    @property
    def expires_at_iso(self) -> str:
        return self.expires_at.isoformat()


@runtime_checkable
class StorageProtocol(Protocol):
    """Protocol for object storage backends (local, S3-compatible).

    Every method raises only storagekit exceptions: StorageFileNotFoundError
    for missing keys where relevant, StorageError for everything else.
    """

    async def upload(
        self,
        key: str,
        body: UploadBody,
        content_type: str,
        metadata: dict[str, str] | None = None,
        content_length: int | None = None,
    ) -> UploadResult:
        """Store body under key."""
        ...

    async def download(self, key: str) -> AsyncIterator[bytes]:
        """Return a stream of the object's bytes.

        Raises StorageFileNotFoundError when awaited, before any chunk is read.
        """
        ...

    async def delete(self, key: str) -> None:
        """Delete key. Idempotent: deleting a missing key succeeds."""
        ...

    async def exists(self, key: str) -> bool:
        """Return True if key exists. Absence is False, never an error."""
        ...

    async def get_signed_url(
        self,
        key: str,
        method: SignedUrlMethod | str = SignedUrlMethod.GET,
        expires_in: int | None = None,
        content_type: str | None = None,
    ) -> SignedUrl:
        """Return a signed URL for key. Does not check that the object exists."""
        ...
